"""Destination folder materializer — idempotent creation of folder chains."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Protocol

from drive_transfer.hierarchy.models import PATH_SEPARATOR, FolderNode
from drive_transfer.hierarchy.resolver import FolderIndex, normalize_path, resolve_paths

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

logger = logging.getLogger(__name__)


class FolderStore(Protocol):
    """The destination operations the materializer needs."""

    def list_folders(self) -> Sequence[FolderNode]: ...

    def create_folder(self, parent_id: str, name: str) -> str: ...

    def folder_key(self, name: str) -> str: ...


def _identity(name: str) -> str:
    return name


class FolderMaterializer:
    """Resolves logical paths to destination folder IDs, creating folders on demand.

    The index is keyed by folder paths whose segments have been passed
    through ``folder_key``, the name under which the destination stores a
    folder. Source paths are converted the same way before every lookup, so
    a folder created in an earlier run is found again even if the
    destination renamed it.

    The index is consulted before every remote create and updated before
    ``ensure_folder`` returns, so a path is created at most once per run.
    Concurrent callers for the same path are serialized by a per-path lock;
    distinct paths proceed independently.
    """

    def __init__(
        self,
        store: FolderStore,
        root_folder_id: str,
        index: FolderIndex,
        folder_key: Callable[[str], str] | None = None,
    ) -> None:
        """Initialise the materializer.

        Args:
            store: Destination collaborator that can create folders.
            root_folder_id: Destination folder that the root path ``/`` maps to.
            index: Existing destination folders keyed by folder-key path.
            folder_key: Maps one folder name to its index key. Defaults to
                the name itself.
        """
        self._store = store
        self._root_folder_id = root_folder_id
        self._index = index
        self._folder_key = folder_key or _identity
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @property
    def index(self) -> FolderIndex:
        """Destination folders known so far, keyed by folder-key path."""
        return self._index

    def ensure_folder(self, path: str) -> str:
        """Return the destination folder ID for path, creating missing folders.

        Args:
            path: Logical folder path, e.g. ``/Reports/2024``.

        Returns:
            Destination folder ID of the leaf folder.
        """
        segments = [part for part in normalize_path(path).split(PATH_SEPARATOR) if part]
        return self._ensure(segments)

    def _key_of(self, segments: Sequence[str]) -> str:
        return normalize_path(PATH_SEPARATOR.join(self._folder_key(name) for name in segments))

    def _ensure(self, segments: Sequence[str]) -> str:
        if not segments:
            return self._root_folder_id

        key = self._key_of(segments)
        existing = self._index.id_of(key)
        if existing is not None:
            return existing

        with self._lock_for(key):
            # Another worker may have created it while we waited.
            existing = self._index.id_of(key)
            if existing is not None:
                return existing

            parent_id = self._ensure(segments[:-1])
            folder_id = self._store.create_folder(parent_id, segments[-1])
            self._index.put(folder_id, key)
            logger.info(
                "[ensure_folder] created destination folder; path:%s;folder_id:%s",
                normalize_path(PATH_SEPARATOR.join(segments)),
                folder_id,
            )
            return folder_id

    def _lock_for(self, key: str) -> threading.Lock:
        """Return the lock serializing creation of one index key."""
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock


def folder_materializer_from_store(store: FolderStore, root_folder_id: str) -> FolderMaterializer:
    """Construct a FolderMaterializer seeded with the destination's existing folders.

    The root folder is added as a parentless node so that its children
    resolve to ``/<name>``. Existing names are indexed through the store's
    ``folder_key``, the same mapping applied to source paths.

    Args:
        store: Destination collaborator.
        root_folder_id: Destination root folder ID.

    Returns:
        FolderMaterializer whose index holds every existing folder.
    """
    nodes = [FolderNode(id=root_folder_id, name="", parent_id=None)]
    nodes.extend(
        FolderNode(id=node.id, name=store.folder_key(node.name), parent_id=node.parent_id)
        for node in store.list_folders()
    )
    return FolderMaterializer(store, root_folder_id, resolve_paths(nodes), store.folder_key)
