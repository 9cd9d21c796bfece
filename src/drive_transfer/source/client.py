"""Google Drive source client with installed-app OAuth authentication."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any, BinaryIO

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseDownload

from drive_transfer.config import require
from drive_transfer.hierarchy.models import FolderNode
from drive_transfer.source.models import (
    FIELD_FILES,
    FIELD_ID,
    FIELD_MD5,
    FIELD_MIME_TYPE,
    FIELD_MODIFIED_TIME,
    FIELD_NAME,
    FIELD_NEXT_PAGE_TOKEN,
    FIELD_PARENTS,
    FIELD_SIZE,
    FILE_FIELDS,
    FOLDER_FIELDS,
    FOLDER_MIME_TYPE,
    SourceItem,
    parse_modified_time,
    parse_size,
)

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

    from drive_transfer.config import AppConfig

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/drive"]
TOKEN_FILENAME = "token.json"
AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
TOKEN_URI = "https://oauth2.googleapis.com/token"

# Retries performed by the Google client's own transport.
NUM_RETRIES = 3

HTTP_RANGE_NOT_SATISFIABLE = 416

FOLDER_QUERY = f"mimeType = '{FOLDER_MIME_TYPE}' and trashed = false"
FILE_QUERY = "trashed = false"
FILE_ORDER_BY = "quotaBytesUsed"


class DriveAuthError(Exception):
    """Raised when Google OAuth credentials cannot be obtained."""


class DriveApiError(Exception):
    """Raised when the Drive API returns a non-2xx response."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"Drive API error {status_code}: {message}")
        self.status_code = status_code
        self.message = message


class RangeNotSatisfiableError(DriveApiError):
    """Raised when Drive answers a download with 416 Range Not Satisfiable."""


class DriveSource:
    """Authenticated client for the Google Drive v3 API.

    The underlying ``httplib2`` transport is not thread-safe, so each thread
    gets its own service object built from the shared credentials.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        data_dir: Path,
        local_server_host: str = "localhost",
        local_server_port: int = 5432,
        file_fetch_size: int = 1000,
        folder_fetch_size: int = 1000,
    ) -> None:
        """Initialise the Drive source.

        Args:
            client_id: Google OAuth client ID of an installed application.
            client_secret: Google OAuth client secret.
            data_dir: Directory holding the persisted authorized-user token.
            local_server_host: Host of the local OAuth redirect receiver.
            local_server_port: Port of the local OAuth redirect receiver.
            file_fetch_size: Page size when listing files.
            folder_fetch_size: Page size when listing folders.

        Raises:
            ConfigurationError: If a credential or receiver setting is blank.
        """
        self._client_id = require(client_id, "clientId")
        self._client_secret = require(client_secret, "clientSecret")
        self._local_server_host = require(local_server_host, "localServerReceiverHost")
        self._local_server_port = local_server_port
        self._token_path = data_dir / TOKEN_FILENAME
        self._file_fetch_size = file_fetch_size
        self._folder_fetch_size = folder_fetch_size
        self._credentials: Credentials | None = None
        self._credentials_lock = threading.Lock()
        self._local = threading.local()

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def _client_config(self) -> dict[str, Any]:
        return {
            "installed": {
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "auth_uri": AUTH_URI,
                "token_uri": TOKEN_URI,
                "redirect_uris": [f"http://{self._local_server_host}"],
            }
        }

    def _get_credentials(self) -> Credentials:
        """Return valid credentials, refreshing or authorizing as needed.

        Raises:
            DriveAuthError: If neither the stored token nor the browser flow
                yields valid credentials.
        """
        with self._credentials_lock:
            creds = self._credentials
            if creds is None and self._token_path.exists():
                creds = Credentials.from_authorized_user_file(str(self._token_path), SCOPES)
            if creds is not None and creds.expired and creds.refresh_token:
                creds.refresh(Request())
            if creds is None or not creds.valid:
                flow = InstalledAppFlow.from_client_config(self._client_config(), SCOPES)
                try:
                    creds = flow.run_local_server(
                        host=self._local_server_host,
                        port=self._local_server_port,
                        access_type="offline",
                    )
                except Exception as exc:
                    raise DriveAuthError(f"Google authorization failed: {exc}") from exc
            if creds is None or not creds.valid:
                raise DriveAuthError("Google authorization did not return valid credentials")

            self._token_path.parent.mkdir(parents=True, exist_ok=True)
            self._token_path.write_text(creds.to_json(), encoding="utf-8")
            if self._credentials is None:
                logger.info("[_get_credentials] credentials saved; path:%s", self._token_path)
            self._credentials = creds
            return creds

    def _service(self) -> Any:
        service = getattr(self._local, "service", None)
        if service is None:
            service = build(
                "drive", "v3", credentials=self._get_credentials(), cache_discovery=False
            )
            self._local.service = service
        return service

    # ------------------------------------------------------------------
    # Enumeration
    # ------------------------------------------------------------------

    def list_folders(self) -> list[FolderNode]:
        """Enumerate every folder, including the drive root as a parentless node.

        Returns:
            Flat list of FolderNode objects; only the first parent is kept.

        Raises:
            DriveApiError: If any page cannot be fetched.
        """
        root = self._execute(self._service().files().get(fileId="root", fields="id, name"))
        nodes = [FolderNode(id=root[FIELD_ID], name=root.get(FIELD_NAME, ""), parent_id=None)]
        for raw in self._list(FOLDER_QUERY, FOLDER_FIELDS, self._folder_fetch_size):
            parents = raw.get(FIELD_PARENTS) or []
            nodes.append(
                FolderNode(
                    id=raw[FIELD_ID],
                    name=raw.get(FIELD_NAME, ""),
                    parent_id=parents[0] if parents else None,
                )
            )
        logger.info("[list_folders] folders listed; folder_count:%d", len(nodes))
        return nodes

    def list_files(self) -> list[SourceItem]:
        """Enumerate every non-trashed item, ordered by quota bytes used.

        Raises:
            DriveApiError: If any page cannot be fetched.
        """
        items = [
            self._parse_item(raw)
            for raw in self._list(FILE_QUERY, FILE_FIELDS, self._file_fetch_size, FILE_ORDER_BY)
        ]
        logger.info("[list_files] files listed; file_count:%d", len(items))
        return items

    def _list(
        self,
        query: str,
        fields: str,
        page_size: int,
        order_by: str | None = None,
    ) -> Iterator[dict[str, Any]]:
        page_token: str | None = None
        while True:
            response = self._execute(
                self._service()
                .files()
                .list(
                    q=query,
                    fields=fields,
                    pageSize=page_size,
                    orderBy=order_by,
                    pageToken=page_token,
                )
            )
            yield from response.get(FIELD_FILES, [])
            page_token = response.get(FIELD_NEXT_PAGE_TOKEN)
            if not page_token:
                return

    @staticmethod
    def _parse_item(raw: dict[str, Any]) -> SourceItem:
        """Map a raw Drive API file dict to a SourceItem."""
        return SourceItem(
            id=raw.get(FIELD_ID, ""),
            name=raw.get(FIELD_NAME, ""),
            mime_type=raw.get(FIELD_MIME_TYPE, ""),
            parent_ids=tuple(raw.get(FIELD_PARENTS) or ()),
            size=parse_size(raw.get(FIELD_SIZE)),
            modified_time=parse_modified_time(raw.get(FIELD_MODIFIED_TIME)),
            md5_checksum=raw.get(FIELD_MD5),
        )

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    def download(self, file_id: str, fh: BinaryIO) -> None:
        """Copy the stored bytes of a file into fh.

        Raises:
            RangeNotSatisfiableError: If Drive answers with HTTP 416.
            DriveApiError: On any other API error.
        """
        self._download(self._service().files().get_media(fileId=file_id), fh)

    def export(self, file_id: str, mime_type: str, fh: BinaryIO) -> None:
        """Export a native document as mime_type into fh.

        Raises:
            RangeNotSatisfiableError: If Drive answers with HTTP 416.
            DriveApiError: On any other API error.
        """
        self._download(self._service().files().export_media(fileId=file_id, mimeType=mime_type), fh)

    def delete(self, file_id: str) -> None:
        """Permanently delete a file from the drive."""
        self._execute(self._service().files().delete(fileId=file_id))

    @staticmethod
    def _download(request: Any, fh: BinaryIO) -> None:
        downloader = MediaIoBaseDownload(fh, request)
        done = False
        try:
            while not done:
                _, done = downloader.next_chunk(num_retries=NUM_RETRIES)
        except HttpError as exc:
            raise _api_error(exc) from exc

    @staticmethod
    def _execute(request: Any) -> dict[str, Any]:
        try:
            return request.execute(num_retries=NUM_RETRIES) or {}
        except HttpError as exc:
            raise _api_error(exc) from exc


def _api_error(exc: HttpError) -> DriveApiError:
    status = int(exc.resp.status)
    reason = getattr(exc, "reason", "") or str(exc)
    if status == HTTP_RANGE_NOT_SATISFIABLE:
        return RangeNotSatisfiableError(status, reason)
    return DriveApiError(status, reason)


def drive_source_from_config(config: AppConfig) -> DriveSource:
    """Construct a DriveSource from application configuration.

    Args:
        config: Application configuration instance.

    Returns:
        Configured DriveSource instance.
    """
    return DriveSource(
        client_id=config.google_client_id,
        client_secret=config.google_client_secret,
        data_dir=config.data_dir,
        local_server_host=config.local_server_host,
        local_server_port=config.local_server_port,
        file_fetch_size=config.file_fetch_size,
        folder_fetch_size=config.folder_fetch_size,
    )
