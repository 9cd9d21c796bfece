"""Data models for the Graph document library destination."""

from dataclasses import dataclass

# Graph API JSON field names
FIELD_ID = "id"
FIELD_NAME = "name"
FIELD_FOLDER = "folder"
FIELD_PARENT_REFERENCE = "parentReference"
FIELD_ETAG = "eTag"
FIELD_UPLOAD_URL = "uploadUrl"
FIELD_FILE_SYSTEM_INFO = "fileSystemInfo"
FIELD_CREATED = "createdDateTime"
FIELD_MODIFIED = "lastModifiedDateTime"
CONFLICT_BEHAVIOR = "@microsoft.graph.conflictBehavior"

# OData response keys
ODATA_NEXT_LINK = "@odata.nextLink"
ODATA_VALUE = "value"


@dataclass(frozen=True)
class UploadSession:
    """A pending document upload returned by ``createUploadSession``.

    Attributes:
        upload_url: Pre-authenticated URL that accepts byte ranges.
        parent_id: Destination folder the document is created in.
        name: Sanitized document name.
        content_type: Content type of the bytes being uploaded.
    """

    upload_url: str
    parent_id: str
    name: str
    content_type: str


@dataclass(frozen=True)
class UploadedDocument:
    """A document version created in the destination."""

    id: str
    version: str = ""
