"""Delete guard — keeps protected source directories from being cleaned up."""

from __future__ import annotations

from collections.abc import Iterable

from drive_transfer.hierarchy.resolver import normalize_path


def may_delete(parent_path: str, protected_prefixes: Iterable[str]) -> bool:
    """Return True if an item under parent_path may be deleted from the source.

    Prefix matching is plain string matching on the normalized path, so a
    protected prefix shields its entire subtree, including itself.

    Args:
        parent_path: Resolved logical path of the item's parent folder.
        protected_prefixes: Path prefixes under which deletion is forbidden.
    """
    path = normalize_path(parent_path)
    return not any(path.startswith(prefix) for prefix in protected_prefixes if prefix)
