"""Unit tests for hierarchy/materializer.py — idempotent folder creation."""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock

import pytest

from drive_transfer.destination.store import DocumentStore
from drive_transfer.hierarchy.materializer import (
    FolderMaterializer,
    folder_materializer_from_store,
)
from drive_transfer.hierarchy.models import FolderNode
from drive_transfer.hierarchy.resolver import FolderIndex

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class _RecordingStore:
    """In-memory folder store that records every create call."""

    def __init__(self, existing: list[FolderNode] | None = None, delay: float = 0.0) -> None:
        self.existing = existing or []
        self.created: list[tuple[str, str]] = []
        self._delay = delay
        self._lock = threading.Lock()

    def list_folders(self) -> list[FolderNode]:
        return list(self.existing)

    def folder_key(self, name: str) -> str:
        return name

    def create_folder(self, parent_id: str, name: str) -> str:
        time.sleep(self._delay)
        with self._lock:
            self.created.append((parent_id, name))
            return f"new-{len(self.created)}"


# ---------------------------------------------------------------------------
# ensure_folder tests
# ---------------------------------------------------------------------------


class TestEnsureFolder:
    def test_root_returns_root_id_without_create(self) -> None:
        store = _RecordingStore()
        materializer = FolderMaterializer(store, "root-id", FolderIndex())
        assert materializer.ensure_folder("/") == "root-id"
        assert materializer.ensure_folder("") == "root-id"
        assert store.created == []

    def test_existing_folder_is_reused(self) -> None:
        store = _RecordingStore()
        materializer = FolderMaterializer(store, "root-id", FolderIndex([("d1", "/A")]))
        assert materializer.ensure_folder("/A") == "d1"
        assert store.created == []

    def test_creates_missing_chain_top_down(self) -> None:
        store = _RecordingStore()
        materializer = FolderMaterializer(store, "root-id", FolderIndex([("d1", "/A")]))
        leaf_id = materializer.ensure_folder("/A/B/C")
        assert store.created == [("d1", "B"), ("new-1", "C")]
        assert leaf_id == "new-2"
        assert materializer.index.id_of("/A/B") == "new-1"
        assert materializer.index.id_of("/A/B/C") == "new-2"

    def test_repeated_calls_create_once(self) -> None:
        store = _RecordingStore()
        materializer = FolderMaterializer(store, "root-id", FolderIndex())
        first = materializer.ensure_folder("/X/Y")
        second = materializer.ensure_folder("/X/Y")
        assert first == second
        assert len(store.created) == 2

    def test_concurrent_calls_create_each_folder_once(self) -> None:
        store = _RecordingStore(delay=0.01)
        materializer = FolderMaterializer(store, "root-id", FolderIndex())
        paths = ["/A/B/C", "/A/B/C", "/A/B", "/A/B/D", "/A/B/C"] * 4

        with ThreadPoolExecutor(max_workers=8) as pool:
            ids = list(pool.map(materializer.ensure_folder, paths))

        created_names = sorted(name for _, name in store.created)
        assert created_names == ["A", "B", "C", "D"]
        c_ids = {folder_id for path, folder_id in zip(paths, ids, strict=True) if path == "/A/B/C"}
        assert len(c_ids) == 1

    def test_create_failure_propagates_and_leaves_index_unchanged(self) -> None:
        store = MagicMock()
        store.create_folder.side_effect = RuntimeError("409 conflict")
        materializer = FolderMaterializer(store, "root-id", FolderIndex())
        with pytest.raises(RuntimeError):
            materializer.ensure_folder("/A")
        assert materializer.index.id_of("/A") is None


# ---------------------------------------------------------------------------
# folder_materializer_from_store tests
# ---------------------------------------------------------------------------


class TestFolderMaterializerFromStore:
    def test_indexes_existing_folders_under_root(self) -> None:
        store = _RecordingStore(
            existing=[
                FolderNode("d1", "Reports", "root-id"),
                FolderNode("d2", "2024", "d1"),
            ]
        )
        materializer = folder_materializer_from_store(store, "root-id")
        assert materializer.index.id_of("/Reports") == "d1"
        assert materializer.index.id_of("/Reports/2024") == "d2"
        assert materializer.ensure_folder("/Reports/2024") == "d2"
        assert store.created == []

    def test_folder_key_applied_to_existing_and_requested_names(self) -> None:
        store = _RecordingStore()
        index = FolderIndex([("d1", "/reports")])
        materializer = FolderMaterializer(store, "root-id", index, folder_key=str.lower)

        assert materializer.ensure_folder("/Reports") == "d1"
        assert materializer.ensure_folder("/REPORTS/Q1") == "new-1"
        assert store.created == [("d1", "Q1")]
        assert materializer.index.id_of("/reports/q1") == "new-1"


# ---------------------------------------------------------------------------
# Re-runs against the document library
# ---------------------------------------------------------------------------

DRIVE = "/users/user@contoso.com/drive"


def _library_with_root_children(*children: dict[str, object]) -> tuple[DocumentStore, MagicMock]:
    """Return a DocumentStore whose root folder holds the given children, and its client."""
    graph = MagicMock()
    listings = {"root-id": list(children)}
    listings.update({str(child["id"]): [] for child in children})

    def _get(path: str) -> dict[str, object]:
        folder_id = path.removeprefix(f"{DRIVE}/items/").split("/", 1)[0]
        return {"value": listings[folder_id]}

    graph.get.side_effect = _get
    return DocumentStore(graph, "user@contoso.com", "root-id"), graph


class TestRerunAgainstDocumentLibrary:
    def test_stored_name_with_replaced_characters_is_reused(self) -> None:
        store, graph = _library_with_root_children({"id": "d1", "name": "Q1_Q2", "folder": {}})

        materializer = folder_materializer_from_store(store, "root-id")

        assert materializer.ensure_folder("/Q1:Q2") == "d1"
        graph.post_json.assert_not_called()

    def test_stored_name_in_other_case_is_reused(self) -> None:
        store, graph = _library_with_root_children({"id": "d1", "name": "reports", "folder": {}})

        materializer = folder_materializer_from_store(store, "root-id")

        assert materializer.ensure_folder("/Reports") == "d1"
        graph.post_json.assert_not_called()

    def test_missing_child_created_with_source_name(self) -> None:
        store, graph = _library_with_root_children({"id": "d1", "name": "Q1_Q2", "folder": {}})
        graph.post_json.return_value = {"id": "d2"}

        materializer = folder_materializer_from_store(store, "root-id")

        assert materializer.ensure_folder("/Q1:Q2/Notes?") == "d2"
        graph.post_json.assert_called_once_with(
            f"{DRIVE}/items/d1/children",
            {"name": "Notes_", "folder": {}, "@microsoft.graph.conflictBehavior": "fail"},
        )
