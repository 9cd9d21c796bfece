"""Unit tests for orchestration/guard.py — protected path checks."""

import pytest

from drive_transfer.orchestration.guard import may_delete


class TestMayDelete:
    def test_descendant_of_protected_prefix_is_protected(self) -> None:
        assert may_delete("/A/B/c", ["/A/B"]) is False

    def test_sibling_is_not_protected(self) -> None:
        assert may_delete("/A/X", ["/A/B"]) is True

    def test_prefix_itself_is_protected(self) -> None:
        assert may_delete("/A/B", ["/A/B"]) is False

    def test_no_prefixes_allows_everything(self) -> None:
        assert may_delete("/A/B", []) is True

    def test_empty_prefix_is_ignored(self) -> None:
        assert may_delete("/A", ["", "/Z"]) is True

    def test_any_prefix_matches(self) -> None:
        assert may_delete("/Keep/x", ["/Other", "/Keep"]) is False

    @pytest.mark.parametrize("raw", ["A/B/c", "//A/B/c/"])
    def test_parent_path_is_normalized(self, raw: str) -> None:
        assert may_delete(raw, ["/A/B"]) is False

    def test_plain_string_prefix_matching(self) -> None:
        assert may_delete("/A/Bee", ["/A/B"]) is False
