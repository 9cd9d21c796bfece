"""Folder path resolution — maps folder identifiers to full logical paths."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Iterator, Sequence

from drive_transfer.hierarchy.models import PATH_SEPARATOR, FolderNode

logger = logging.getLogger(__name__)

# Replacement for path separators that occur inside a single name.
SAFE_SEPARATOR = "-"


def normalize_path(path: str | None) -> str:
    """Return path with exactly one leading separator and no empty segments.

    ``""``, ``None`` and ``"/"`` all normalize to ``"/"``.
    """
    segments = [part for part in (path or "").split(PATH_SEPARATOR) if part]
    return PATH_SEPARATOR + PATH_SEPARATOR.join(segments)


def safe_name(name: str) -> str:
    """Replace path separators inside a single name."""
    return name.replace(PATH_SEPARATOR, SAFE_SEPARATOR)


def join_path(parent: str, name: str) -> str:
    """Append one name to a logical path."""
    return normalize_path(f"{parent}{PATH_SEPARATOR}{safe_name(name)}")


class FolderIndex:
    """Two-way mapping between folder identifiers and logical paths.

    Every identifier has exactly one live path, and every known path maps
    back to the identifier that was most recently stored under it. Storing a
    path that is already taken re-points it, dropping the previous owner.
    """

    def __init__(self, entries: Iterable[tuple[str, str]] = ()) -> None:
        self._paths: dict[str, str] = {}
        self._ids: dict[str, str] = {}
        self._lock = threading.Lock()
        for folder_id, path in entries:
            self.put(folder_id, path)

    def put(self, folder_id: str, path: str) -> None:
        """Store folder_id under path, replacing any earlier mapping of either."""
        path = normalize_path(path)
        with self._lock:
            previous_path = self._paths.pop(folder_id, None)
            if previous_path is not None and self._ids.get(previous_path) == folder_id:
                del self._ids[previous_path]
            previous_id = self._ids.get(path)
            if previous_id is not None and previous_id != folder_id:
                logger.warning(
                    "[FolderIndex.put] path collision, later folder wins;"
                    " path:%s;previous_id:%s;folder_id:%s",
                    path,
                    previous_id,
                    folder_id,
                )
                self._paths.pop(previous_id, None)
            self._paths[folder_id] = path
            self._ids[path] = folder_id

    def path_of(self, folder_id: str) -> str | None:
        """Return the path stored for folder_id, or None if it is unknown."""
        return self._paths.get(folder_id)

    def id_of(self, path: str) -> str | None:
        """Return the folder stored under path, or None.

        The path is normalized first, so ``"Reports/"`` and ``"/Reports"`` match.
        """
        return self._ids.get(normalize_path(path))

    def __contains__(self, folder_id: object) -> bool:
        return folder_id in self._paths

    def __len__(self) -> int:
        return len(self._paths)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._paths))

    def items(self) -> list[tuple[str, str]]:
        """Return a snapshot of (folder_id, path) pairs."""
        return list(self._paths.items())


def resolve_paths(nodes: Sequence[FolderNode], root_path: str = "") -> FolderIndex:
    """Build the identifier-to-path index for a flat list of folders.

    A node whose parent is absent from ``nodes`` resolves to ``root_path``.
    Every other node resolves to its parent's path with its own name
    appended. If the parent chain loops back on itself, the walk stops and
    the path accumulated so far is used.

    Args:
        nodes: Folder snapshot of one system.
        root_path: Logical path assigned to parentless folders.

    Returns:
        FolderIndex covering every node.
    """
    by_id = {node.id: node for node in nodes}
    root = normalize_path(root_path)
    index = FolderIndex()
    for node in nodes:
        index.put(node.id, _full_path(node, by_id, root))
    logger.info("[resolve_paths] folder hierarchy built; folder_count:%d", len(index))
    return index


def _full_path(node: FolderNode, by_id: dict[str, FolderNode], root: str) -> str:
    names: list[str] = []
    seen = {node.id}
    current = node
    while True:
        parent = by_id.get(current.parent_id) if current.parent_id else None
        if parent is None:
            break
        if parent.id in seen:
            logger.warning(
                "[resolve_paths] cycle in folder parents; folder_id:%s;parent_id:%s",
                node.id,
                parent.id,
            )
            break
        names.append(current.name)
        seen.add(parent.id)
        current = parent

    path = root
    for name in reversed(names):
        path = join_path(path, name)
    return path


def parent_path(parent_ids: Sequence[str], hierarchy: FolderIndex, root_path: str = "") -> str:
    """Resolve the logical folder path of an item from its parent identifiers.

    Only the first parent is considered. An unknown or missing parent falls
    back to ``root_path``.
    """
    if parent_ids:
        resolved = hierarchy.path_of(parent_ids[0])
        if resolved is not None:
            return resolved
    return normalize_path(root_path)
