"""Migration runner — orchestrates source-to-destination runs for each configured instance."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, replace
from typing import TYPE_CHECKING, Any

from drive_transfer.config import load_config
from drive_transfer.destination.store import DocumentStore, document_store_from_config
from drive_transfer.export.selector import ExportSelector, export_selector_from_overrides
from drive_transfer.hierarchy.materializer import folder_materializer_from_store
from drive_transfer.hierarchy.resolver import resolve_paths
from drive_transfer.orchestration.processor import ItemResult, TransferOutcome, TransferProcessor
from drive_transfer.source.client import DriveSource, drive_source_from_config

if TYPE_CHECKING:
    import threading
    from collections.abc import Iterable, Iterator, Sequence
    from pathlib import Path

    from drive_transfer.config import AppConfig
    from drive_transfer.source.models import SourceItem

logger = logging.getLogger(__name__)

INVALID_CONFIGURATION = "Invalid configuration"
RUN_FAILED = "Migration failed"


@dataclass
class RunSummary:
    """Counts reported at the end of a run.

    Only the thread that consumes item results updates the counters, so
    they need no lock even when items are processed by several workers.
    """

    files_seen: int = 0
    transferred: int = 0
    skipped: int = 0
    failed: int = 0
    not_transferable: int = 0
    deleted: int = 0
    cancelled: bool = False

    def record(self, result: ItemResult) -> None:
        """Count one processed item under exactly one outcome."""
        if not result.transferable:
            self.not_transferable += 1
        elif result.error is not None or any(
            r.outcome is TransferOutcome.FAILED for r in result.results
        ):
            self.failed += 1
        elif any(r.outcome is TransferOutcome.SUCCEEDED for r in result.results):
            self.transferred += 1
        else:
            self.skipped += 1
        if result.deleted:
            self.deleted += 1

    def to_dict(self) -> dict[str, Any]:
        """Return the counters as a JSON-serialisable dict."""
        return asdict(self)


class MigrationRunner:
    """Runs the enumerate → resolve → transfer pipeline for one source drive."""

    def __init__(
        self,
        source: DriveSource,
        selector: ExportSelector,
        local_root: Path,
        store: DocumentStore | None = None,
        cleanup: bool = False,
        protected_paths: Sequence[str] = (),
        root_path: str = "",
        workers: int = 1,
    ) -> None:
        """Initialise the runner.

        Args:
            source: Source drive collaborator.
            selector: Export selector for native types.
            local_root: Directory receiving the local copies.
            store: Destination collaborator, or None to only download.
            cleanup: Delete source items after a verified transfer.
            protected_paths: Path prefixes never deleted from the source.
            root_path: Logical path of the source drive root.
            workers: Number of items processed concurrently.
        """
        self._source = source
        self._selector = selector
        self._local_root = local_root
        self._store = store
        self._cleanup = cleanup
        self._protected_paths = tuple(protected_paths)
        self._root_path = root_path
        self._workers = max(1, workers)

    def run(self, cancel_event: threading.Event | None = None) -> RunSummary:
        """Run one full migration.

        Steps:
            1. Enumerate source folders and resolve their paths.
            2. Enumerate existing destination folders (when uploading).
            3. Enumerate source files.
            4. Process every file, stopping early if cancel_event is set.

        The folder hierarchy is complete before any item is processed.
        Enumeration errors propagate to the caller; item errors do not.

        Args:
            cancel_event: Checked between items; set it to stop the run.

        Returns:
            RunSummary with per-outcome counts.
        """
        logger.info("[run] building source folder hierarchy")
        hierarchy = resolve_paths(self._source.list_folders(), self._root_path)

        materializer = None
        if self._store is not None:
            logger.info("[run] indexing destination folders")
            materializer = folder_materializer_from_store(
                self._store, self._store.resolve_root_folder_id()
            )

        processor = TransferProcessor(
            source=self._source,
            selector=self._selector,
            hierarchy=hierarchy,
            local_root=self._local_root,
            store=self._store,
            materializer=materializer,
            cleanup=self._cleanup,
            protected_paths=self._protected_paths,
            root_path=self._root_path,
        )

        items = self._source.list_files()
        summary = RunSummary(files_seen=len(items))
        if not items:
            logger.info("[run] no files found")
        for result in self._process_all(processor, items, cancel_event):
            summary.record(result)
        summary.cancelled = cancel_event is not None and cancel_event.is_set()

        logger.info(
            "[run] migration complete; files_seen:%d;transferred:%d;skipped:%d;failed:%d;"
            "not_transferable:%d;deleted:%d;cancelled:%s",
            summary.files_seen,
            summary.transferred,
            summary.skipped,
            summary.failed,
            summary.not_transferable,
            summary.deleted,
            summary.cancelled,
        )
        return summary

    def _process_all(
        self,
        processor: TransferProcessor,
        items: Sequence[SourceItem],
        cancel_event: threading.Event | None,
    ) -> Iterator[ItemResult]:
        def process(item: SourceItem) -> ItemResult | None:
            if cancel_event is not None and cancel_event.is_set():
                return None
            return processor.process_item(item)

        if self._workers == 1:
            for item in items:
                result = process(item)
                if result is None:
                    logger.warning("[run] cancelled before all items were processed")
                    return
                yield result
            return

        with ThreadPoolExecutor(max_workers=self._workers) as pool:
            for result in pool.map(process, items):
                if result is not None:
                    yield result


def migration_runner_from_config(config: AppConfig) -> MigrationRunner:
    """Construct a MigrationRunner from application configuration.

    The destination store is only created when uploads are enabled, so a
    download-only run needs no Graph credentials.

    Args:
        config: Application configuration instance.

    Returns:
        Configured MigrationRunner instance.
    """
    store = document_store_from_config(config) if config.destination_enabled else None
    return MigrationRunner(
        source=drive_source_from_config(config),
        selector=export_selector_from_overrides(config.extra_extensions),
        local_root=config.local_root,
        store=store,
        cleanup=config.cleanup,
        protected_paths=config.protected_paths,
        root_path=config.root_dir_name,
        workers=config.workers,
    )


@dataclass
class InstanceOutcome:
    """Result of running one configured instance."""

    name: str
    summary: RunSummary | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        """True when the instance was configured and its run completed."""
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        """Return the outcome as a JSON-serialisable dict."""
        body: dict[str, Any] = {"name": self.name, "status": "ok" if self.ok else "error"}
        if self.summary is not None:
            body["summary"] = self.summary.to_dict()
        if self.error is not None:
            body["message"] = self.error
        return body


def run_instances(
    names: Iterable[str],
    overrides: dict[str, Any] | None = None,
    cancel_event: threading.Event | None = None,
) -> list[InstanceOutcome]:
    """Run every configured instance in turn.

    A configuration error or an aborted run is logged and recorded for that
    instance only; the remaining instances still run.

    Args:
        names: Instance names, as returned by instance_names().
        overrides: AppConfig fields replaced in every instance's settings.
        cancel_event: Passed to each run; set it to stop the current run.

    Returns:
        One InstanceOutcome per name, in order.
    """
    outcomes: list[InstanceOutcome] = []
    for name in names:
        try:
            config = replace(load_config(name), **(overrides or {}))
            runner = migration_runner_from_config(config)
        except KeyError as exc:
            logger.error(
                "[run_instances] missing required setting; instance:%s;name:%s", name, exc.args[0]
            )
            outcomes.append(InstanceOutcome(name, error=INVALID_CONFIGURATION))
            continue
        except ValueError as exc:
            logger.error("[run_instances] invalid configuration; instance:%s;detail:%s", name, exc)
            outcomes.append(InstanceOutcome(name, error=INVALID_CONFIGURATION))
            continue

        try:
            summary = runner.run(cancel_event)
        except Exception:
            logger.error("[run_instances] migration aborted; instance:%s", name, exc_info=True)
            outcomes.append(InstanceOutcome(name, error=RUN_FAILED))
            continue
        outcomes.append(InstanceOutcome(name, summary=summary))
    return outcomes
