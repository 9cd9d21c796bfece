"""Data models shared by the source and destination folder hierarchies."""

from __future__ import annotations

from dataclasses import dataclass

PATH_SEPARATOR = "/"


@dataclass(frozen=True)
class FolderNode:
    """A folder snapshot as enumerated from either system.

    Attributes:
        id: Identifier, unique within one system.
        name: Display name of the folder.
        parent_id: Identifier of the parent folder, or None for a root.
    """

    id: str
    name: str
    parent_id: str | None = None
