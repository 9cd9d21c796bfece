"""Document store — folder and upload operations on a Graph document library."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

from drive_transfer.config import require
from drive_transfer.destination.client import GraphApiError, GraphClient, graph_client_from_config
from drive_transfer.destination.models import (
    CONFLICT_BEHAVIOR,
    FIELD_CREATED,
    FIELD_ETAG,
    FIELD_FILE_SYSTEM_INFO,
    FIELD_FOLDER,
    FIELD_ID,
    FIELD_MODIFIED,
    FIELD_NAME,
    FIELD_UPLOAD_URL,
    ODATA_NEXT_LINK,
    ODATA_VALUE,
    UploadedDocument,
    UploadSession,
)
from drive_transfer.hierarchy.models import FolderNode

if TYPE_CHECKING:
    from pathlib import Path

    from drive_transfer.config import AppConfig

logger = logging.getLogger(__name__)

# Characters the document library does not accept in names.
ILLEGAL_NAME_CHARACTERS = ('"', "*", ":", "<", ">", "?", "/", "\\", "|")
NAME_REPLACEMENT = "_"

# Upload session ranges must be a multiple of 320 KiB.
UPLOAD_CHUNK_SIZE = 32 * 320 * 1024

CHILDREN_SELECT = "$select=id,name,folder,parentReference"


def safe_document_name(name: str) -> str:
    """Replace characters the destination rejects in file and folder names."""
    for character in ILLEGAL_NAME_CHARACTERS:
        name = name.replace(character, NAME_REPLACEMENT)
    return name


def _timestamp(value: float) -> str:
    return datetime.fromtimestamp(value, tz=UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def _file_system_info(created: float | None, modified: float | None) -> dict[str, str]:
    info: dict[str, str] = {}
    if created is not None:
        info[FIELD_CREATED] = _timestamp(created)
    if modified is not None:
        info[FIELD_MODIFIED] = _timestamp(modified)
    return info


class DocumentStore:
    """Destination collaborator backed by a user's drive in Microsoft Graph."""

    def __init__(
        self,
        graph_client: GraphClient,
        drive_user: str,
        root_folder_id: str = "",
        chunk_size: int = UPLOAD_CHUNK_SIZE,
    ) -> None:
        """Initialise the document store.

        Args:
            graph_client: Authenticated GraphClient instance.
            drive_user: UPN or object ID whose drive receives the documents.
            root_folder_id: Folder that the logical root ``/`` maps to. When
                empty, the root of the user's drive is used.
            chunk_size: Bytes per upload range; a multiple of 320 KiB.

        Raises:
            ConfigurationError: If drive_user is blank.
        """
        self._graph = graph_client
        self._drive = f"/users/{require(drive_user, 'driveUser')}/drive"
        self._root_folder_id = root_folder_id.strip()
        self._chunk_size = chunk_size

    def resolve_root_folder_id(self) -> str:
        """Return the destination root folder ID, querying the drive root if not configured."""
        if not self._root_folder_id:
            root = self._graph.get(f"{self._drive}/root?$select=id,name")
            self._root_folder_id = require(str(root.get(FIELD_ID, "")), "rootFolderId")
            logger.info(
                "[resolve_root_folder_id] resolved drive root; root_folder_id:%s",
                self._root_folder_id,
            )
        return self._root_folder_id

    # ------------------------------------------------------------------
    # Folders
    # ------------------------------------------------------------------

    def list_folders(self) -> list[FolderNode]:
        """Enumerate every folder below the root folder.

        Walks the tree breadth-first with an explicit queue, following
        ``@odata.nextLink`` pagination for each folder.

        Returns:
            FolderNode for every descendant folder (the root itself excluded).
        """
        root_id = self.resolve_root_folder_id()
        folders: list[FolderNode] = []
        pending = [root_id]
        while pending:
            parent_id = pending.pop(0)
            for child in self._children(parent_id):
                if FIELD_FOLDER not in child:
                    continue
                node = FolderNode(
                    id=child[FIELD_ID],
                    name=child.get(FIELD_NAME, ""),
                    parent_id=parent_id,
                )
                folders.append(node)
                pending.append(node.id)
        logger.info("[list_folders] destination folders listed; folder_count:%d", len(folders))
        return folders

    def _children(self, folder_id: str) -> list[dict[str, Any]]:
        children: list[dict[str, Any]] = []
        next_path: str | None = f"{self._drive}/items/{folder_id}/children?{CHILDREN_SELECT}"
        while next_path is not None:
            response = self._graph.get(next_path)
            children.extend(response.get(ODATA_VALUE, []))
            next_path = response.get(ODATA_NEXT_LINK)
        return children

    @staticmethod
    def folder_key(name: str) -> str:
        """Return the key under which the library matches a folder name.

        Names are stored with unsupported characters replaced and are
        compared case-insensitively, so ``Q1:Q2`` and ``q1_q2`` share a key.
        """
        return safe_document_name(name).casefold()

    def create_folder(self, parent_id: str, name: str) -> str:
        """Create a folder and return its ID.

        Fails with a 409 GraphApiError rather than creating a renamed
        duplicate if the name is already taken.
        """
        response = self._graph.post_json(
            f"{self._drive}/items/{parent_id}/children",
            {
                FIELD_NAME: safe_document_name(name),
                FIELD_FOLDER: {},
                CONFLICT_BEHAVIOR: "fail",
            },
        )
        return str(response[FIELD_ID])

    # ------------------------------------------------------------------
    # Uploads
    # ------------------------------------------------------------------

    def initiate_upload(
        self,
        parent_id: str,
        name: str,
        content_type: str,
        created: float | None = None,
        modified: float | None = None,
    ) -> UploadSession:
        """Open an upload session for a new document version."""
        name = safe_document_name(name)
        item: dict[str, Any] = {CONFLICT_BEHAVIOR: "replace", FIELD_NAME: name}
        info = _file_system_info(created, modified)
        if info:
            item[FIELD_FILE_SYSTEM_INFO] = info
        response = self._graph.post_json(
            f"{self._drive}/items/{parent_id}:/{quote(name, safe='')}:/createUploadSession",
            {"item": item},
        )
        return UploadSession(
            upload_url=str(response[FIELD_UPLOAD_URL]),
            parent_id=parent_id,
            name=name,
            content_type=content_type,
        )

    def transfer(self, session: UploadSession, path: Path) -> UploadedDocument:
        """Send the bytes of path to the upload session in ranges.

        Raises:
            GraphApiError: If a range is rejected or the session never
                returns the created document.
        """
        total = path.stat().st_size
        response: dict[str, Any] = {}
        offset = 0
        with path.open("rb") as fh:
            while offset < total:
                chunk = fh.read(self._chunk_size)
                if not chunk:
                    break
                response = self._graph.put_upload_range(session.upload_url, chunk, offset, total)
                offset += len(chunk)
        if FIELD_ID not in response:
            raise GraphApiError(0, f"Upload session for {session.name} did not complete")
        return UploadedDocument(
            id=str(response[FIELD_ID]), version=str(response.get(FIELD_ETAG, ""))
        )

    def finalize(
        self, document_id: str, created: float | None = None, modified: float | None = None
    ) -> None:
        """Stamp the source timestamps onto the uploaded document version."""
        info = _file_system_info(created, modified)
        if not info:
            return
        self._graph.patch_json(f"{self._drive}/items/{document_id}", {FIELD_FILE_SYSTEM_INFO: info})

    def upload_file(
        self,
        parent_id: str,
        name: str,
        content_type: str,
        modified: float | None,
        path: Path,
    ) -> UploadedDocument:
        """Upload a local file as a new document in parent_id.

        Zero-length files cannot go through an upload session and are sent
        with a single simple PUT instead.

        Args:
            parent_id: Destination folder ID.
            name: Document name; unsupported characters are replaced.
            content_type: Content type of the file.
            modified: Source last-modified POSIX timestamp, or None.
            path: Local file holding the bytes.

        Returns:
            The created document.
        """
        name = safe_document_name(name)
        logger.info("[upload_file] uploading document; name:%s;content_type:%s", name, content_type)
        if path.stat().st_size == 0:
            item = self._graph.put_content(
                f"{self._drive}/items/{parent_id}:/{quote(name, safe='')}:/content",
                b"",
                content_type,
            )
            document = UploadedDocument(
                id=str(item[FIELD_ID]), version=str(item.get(FIELD_ETAG, ""))
            )
        else:
            session = self.initiate_upload(parent_id, name, content_type, modified, modified)
            document = self.transfer(session, path)
        self.finalize(document.id, modified, modified)
        logger.info(
            "[upload_file] document uploaded; name:%s;document_id:%s;version:%s",
            name,
            document.id,
            document.version,
        )
        return document


def document_store_from_config(config: AppConfig) -> DocumentStore:
    """Construct a DocumentStore from application configuration.

    Args:
        config: Application configuration instance.

    Returns:
        Configured DocumentStore instance.
    """
    return DocumentStore(
        graph_client=graph_client_from_config(config),
        drive_user=config.drive_user,
        root_folder_id=config.root_folder_id,
    )
