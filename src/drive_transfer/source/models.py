"""Data models for Google Drive files and folders."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

# Drive API v3 JSON field names
FIELD_ID = "id"
FIELD_NAME = "name"
FIELD_PARENTS = "parents"
FIELD_MIME_TYPE = "mimeType"
FIELD_MODIFIED_TIME = "modifiedTime"
FIELD_MD5 = "md5Checksum"
FIELD_SIZE = "size"
FIELD_FILES = "files"
FIELD_NEXT_PAGE_TOKEN = "nextPageToken"

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"

FOLDER_FIELDS = "nextPageToken, files(id, name, parents)"
FILE_FIELDS = "nextPageToken, files(id, name, parents, mimeType, modifiedTime, md5Checksum, size)"


@dataclass(frozen=True)
class SourceItem:
    """A file (or folder) listed from the source drive.

    Attributes:
        id: Drive file ID.
        name: Display name, possibly containing ``/``.
        parent_ids: Parent folder IDs; only the first is used.
        mime_type: Native content type.
        size: Size in bytes, or None for native documents.
        modified_time: Last-modified time as a POSIX timestamp, or None.
        md5_checksum: Content checksum reported by Drive, if any.
    """

    id: str
    name: str
    mime_type: str
    parent_ids: tuple[str, ...] = field(default_factory=tuple)
    size: int | None = None
    modified_time: float | None = None
    md5_checksum: str | None = None


def parse_modified_time(raw: str | None) -> float | None:
    """Parse an RFC 3339 timestamp from the Drive API into a POSIX timestamp."""
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00")).timestamp()
    except ValueError:
        return None


def parse_size(raw: str | int | None) -> int | None:
    """Parse the Drive size field; missing or malformed values give None."""
    if raw is None:
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None
