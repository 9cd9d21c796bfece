"""Transfer processor — moves one source item into the destination."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from drive_transfer.export.selector import ExportSelector, Representation
from drive_transfer.hierarchy.resolver import parent_path
from drive_transfer.orchestration.guard import may_delete
from drive_transfer.source.client import RangeNotSatisfiableError

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from drive_transfer.destination.store import DocumentStore
    from drive_transfer.hierarchy.materializer import FolderMaterializer
    from drive_transfer.hierarchy.resolver import FolderIndex
    from drive_transfer.source.client import DriveSource
    from drive_transfer.source.models import SourceItem

logger = logging.getLogger(__name__)


class TransferOutcome(Enum):
    """Result of transferring one representation of an item."""

    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class RepresentationResult:
    """Outcome of one representation.

    Attributes:
        representation: The representation that was attempted.
        filename: Destination filename used for it.
        outcome: Whether it succeeded, was skipped or failed.
        local_path: Local buffer file, when one was kept.
        document_id: Destination document ID, when uploaded.
    """

    representation: Representation
    filename: str
    outcome: TransferOutcome
    local_path: Path | None = None
    document_id: str | None = None


@dataclass
class ItemResult:
    """Aggregate outcome of processing one source item."""

    item: SourceItem
    parent_path: str = ""
    transferable: bool = True
    results: list[RepresentationResult] = field(default_factory=list)
    error: str | None = None
    deleted: bool = False

    @property
    def deletion_eligible(self) -> bool:
        """True if nothing failed and at least one representation was produced."""
        if not self.transferable or self.error is not None:
            return False
        outcomes = [result.outcome for result in self.results]
        if TransferOutcome.FAILED in outcomes:
            return False
        return TransferOutcome.SUCCEEDED in outcomes


class TransferProcessor:
    """Downloads, uploads and optionally deletes individual source items.

    Instances are shared between worker threads. The hierarchy is read-only;
    the materializer serializes its own folder creation.
    """

    def __init__(
        self,
        source: DriveSource,
        selector: ExportSelector,
        hierarchy: FolderIndex,
        local_root: Path,
        store: DocumentStore | None = None,
        materializer: FolderMaterializer | None = None,
        cleanup: bool = False,
        protected_paths: Sequence[str] = (),
        root_path: str = "",
    ) -> None:
        """Initialise the processor.

        Args:
            source: Source drive collaborator.
            selector: Export selector for native types.
            hierarchy: Resolved source folder paths.
            local_root: Directory receiving the local copies.
            store: Destination collaborator, or None for download-only runs.
            materializer: Destination folder materializer; required with store.
            cleanup: Delete source items after a verified transfer.
            protected_paths: Path prefixes never deleted from the source.
            root_path: Logical path of items without a known parent.
        """
        if store is not None and materializer is None:
            raise ValueError("A destination store requires a folder materializer")
        self._source = source
        self._selector = selector
        self._hierarchy = hierarchy
        self._local_root = local_root
        self._store = store
        self._materializer = materializer
        self._cleanup = cleanup
        self._protected_paths = tuple(protected_paths)
        self._root_path = root_path

    def process_item(self, item: SourceItem) -> ItemResult:
        """Transfer every representation of item and delete it if allowed.

        Errors are logged and recorded on the result; nothing raised here
        escapes to the caller.

        Args:
            item: Source item to process.

        Returns:
            ItemResult describing each representation and the deletion.
        """
        if self._selector.is_container(item.mime_type):
            return ItemResult(item=item, transferable=False)

        result = ItemResult(item=item)
        try:
            result.parent_path = parent_path(item.parent_ids, self._hierarchy, self._root_path)
            representations = self._selector.representations(item.mime_type)
            if not representations:
                logger.warning(
                    "[process_item] no representation to export; name:%s;mime_type:%s",
                    item.name,
                    item.mime_type,
                )
                return result
            local_dir = self._local_root / result.parent_path.lstrip("/")
            local_dir.mkdir(parents=True, exist_ok=True)
            logger.info(
                "[process_item] transferring item; parent_path:%s;name:%s;mime_type:%s",
                result.parent_path,
                item.name,
                item.mime_type,
            )
            for representation in representations:
                result.results.append(
                    self._transfer(item, representation, result.parent_path, local_dir)
                )
        except Exception as exc:
            logger.error("[process_item] item failed; name:%s", item.name, exc_info=True)
            result.error = str(exc)
            return result

        if self._cleanup and self._store is not None and result.deletion_eligible:
            self._discard_local_copies(result)
            result.deleted = self._delete(item, result.parent_path)
        return result

    def _transfer(
        self,
        item: SourceItem,
        representation: Representation,
        folder_path: str,
        local_dir: Path,
    ) -> RepresentationResult:
        """Download one representation of item and upload it when a store is set.

        A 416 from the source skips the representation; any other download
        or upload error fails it. Partial local files are removed, while a
        file whose upload failed is kept.
        """
        filename = self._selector.filename_for(item.name, representation)
        local_path = local_dir / filename
        modified = item.modified_time if item.modified_time and item.modified_time > 0 else None

        try:
            with local_path.open("wb") as fh:
                if representation.verbatim:
                    self._source.download(item.id, fh)
                else:
                    self._source.export(item.id, representation.content_type, fh)
            if modified is not None:
                os.utime(local_path, (modified, modified))
        except RangeNotSatisfiableError as exc:
            logger.warning(
                "[_transfer] skipped, range not satisfiable; name:%s;content_type:%s;detail:%s",
                item.name,
                representation.content_type,
                exc.message,
            )
            local_path.unlink(missing_ok=True)
            return RepresentationResult(representation, filename, TransferOutcome.SKIPPED)
        except Exception:
            logger.error(
                "[_transfer] download failed; name:%s;content_type:%s",
                item.name,
                representation.content_type,
                exc_info=True,
            )
            local_path.unlink(missing_ok=True)
            return RepresentationResult(representation, filename, TransferOutcome.FAILED)

        logger.info(
            "[_transfer] downloaded; path:%s;size:%d", local_path, local_path.stat().st_size
        )
        if self._store is None or self._materializer is None:
            return RepresentationResult(
                representation, filename, TransferOutcome.SUCCEEDED, local_path=local_path
            )

        try:
            folder_id = self._materializer.ensure_folder(folder_path)
            document = self._store.upload_file(
                folder_id, filename, representation.content_type, modified, local_path
            )
        except Exception:
            logger.error(
                "[_transfer] upload failed; folder_path:%s;filename:%s",
                folder_path,
                filename,
                exc_info=True,
            )
            return RepresentationResult(
                representation, filename, TransferOutcome.FAILED, local_path=local_path
            )
        return RepresentationResult(
            representation,
            filename,
            TransferOutcome.SUCCEEDED,
            local_path=local_path,
            document_id=document.id,
        )

    @staticmethod
    def _discard_local_copies(result: ItemResult) -> None:
        for representation_result in result.results:
            if representation_result.local_path is not None:
                representation_result.local_path.unlink(missing_ok=True)
                representation_result.local_path = None

    def _delete(self, item: SourceItem, folder_path: str) -> bool:
        """Delete item from the source unless its folder is protected.

        Returns:
            True if the source item was deleted. A failed delete is logged
            and reported as False.
        """
        if not may_delete(folder_path, self._protected_paths):
            logger.info(
                "[_delete] skipping deletion, path is protected; name:%s;parent_path:%s",
                item.name,
                folder_path,
            )
            return False
        try:
            self._source.delete(item.id)
        except Exception:
            logger.error("[_delete] source delete failed; name:%s", item.name, exc_info=True)
            return False
        logger.info("[_delete] deleted source file; name:%s;parent_path:%s", item.name, folder_path)
        return True
