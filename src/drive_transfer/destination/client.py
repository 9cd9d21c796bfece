"""Microsoft Graph API client with MSAL authentication."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any
from urllib import request as urllib_request
from urllib.error import HTTPError

import msal

from drive_transfer.config import DEFAULT_AUTHORITY_HOST, DEFAULT_GRAPH_ENDPOINT, require

if TYPE_CHECKING:
    from drive_transfer.config import AppConfig

logger = logging.getLogger(__name__)

GRAPH_SCOPE_SUFFIX = "/.default"


class GraphAuthError(Exception):
    """Raised when MSAL token acquisition fails."""


class GraphApiError(Exception):
    """Raised when the Graph API returns a non-2xx response."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"Graph API error {status_code}: {message}")
        self.status_code = status_code
        self.message = message


def _graph_scopes(endpoint: str) -> list[str]:
    """Derive the client-credentials scope from the Graph endpoint host."""
    scheme, _, rest = endpoint.partition("://")
    host = rest.split("/", 1)[0]
    return [f"{scheme}://{host}{GRAPH_SCOPE_SUFFIX}"]


class GraphClient:
    """Authenticated client for Microsoft Graph API."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        tenant_id: str,
        endpoint: str = DEFAULT_GRAPH_ENDPOINT,
        authority_host: str = DEFAULT_AUTHORITY_HOST,
    ) -> None:
        """Initialise the MSAL confidential client application.

        Args:
            client_id: Azure AD application (client) ID.
            client_secret: Azure AD application client secret.
            tenant_id: Azure AD tenant ID.
            endpoint: Graph API base URL, e.g. a national cloud endpoint.
            authority_host: Azure AD authority host matching the endpoint.

        Raises:
            ConfigurationError: If any credential is blank.
        """
        require(client_id, "clientId")
        require(client_secret, "clientSecret")
        require(tenant_id, "tenantId")
        self._endpoint = require(endpoint, "graphEndpoint").rstrip("/")
        self._scopes = _graph_scopes(self._endpoint)
        authority = f"{authority_host.rstrip('/')}/{tenant_id}"
        self._app = msal.ConfidentialClientApplication(
            client_id=client_id,
            client_credential=client_secret,
            authority=authority,
        )

    @property
    def endpoint(self) -> str:
        """Graph API base URL requests are sent to."""
        return self._endpoint

    def _acquire_token(self) -> str:
        """Acquire a Bearer token using client credentials flow.

        Returns:
            Access token string.

        Raises:
            GraphAuthError: If MSAL cannot acquire a token.
        """
        result: dict[str, Any] = self._app.acquire_token_for_client(scopes=self._scopes) or {}
        if "access_token" not in result:
            error = result.get("error", "unknown_error")
            description = result.get("error_description", "No description provided")
            logger.error("[_acquire_token] MSAL token acquisition failed; error:%s", error)
            raise GraphAuthError(f"Token acquisition failed: {error}: {description}")
        return str(result["access_token"])

    def _url(self, path: str) -> str:
        """Resolve a relative API path, passing absolute URLs (nextLink) through."""
        if path.startswith(("https://", "http://")):
            return path
        return f"{self._endpoint}{path}"

    def _send(self, req: urllib_request.Request) -> bytes:
        """Send req and return the raw response body.

        Raises:
            GraphApiError: On any HTTP error status, carrying the Graph error message.
        """
        try:
            with urllib_request.urlopen(req) as resp:
                return resp.read()  # type: ignore[no-any-return]
        except HTTPError as exc:
            raw = exc.read()
            try:
                detail = json.loads(raw).get("error", {}).get("message", exc.reason)
            except Exception:
                detail = exc.reason
            raise GraphApiError(exc.code, detail) from exc

    def _json_request(
        self, method: str, path: str, payload: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Send an authenticated JSON request; an empty response body becomes ``{}``."""
        token = self._acquire_token()
        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }
        data = None
        if payload is not None:
            data = json.dumps(payload).encode("utf-8")
            headers["Content-Type"] = "application/json"
        req = urllib_request.Request(self._url(path), data=data, headers=headers, method=method)
        body = self._send(req)
        return json.loads(body) if body else {}  # type: ignore[no-any-return]

    def get(self, path: str) -> dict[str, Any]:
        """Perform an authenticated GET request to the Graph API.

        Args:
            path: URL path relative to the endpoint (must start with '/'),
                or an absolute ``@odata.nextLink`` URL.

        Returns:
            Parsed JSON response body as a dict.

        Raises:
            GraphAuthError: If token acquisition fails.
            GraphApiError: If the API returns a non-2xx status code.
        """
        return self._json_request("GET", path)

    def post_json(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Perform an authenticated POST with a JSON body and return the JSON response."""
        return self._json_request("POST", path, payload)

    def patch_json(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Perform an authenticated PATCH with a JSON body and return the JSON response."""
        return self._json_request("PATCH", path, payload)

    def put_content(
        self,
        path: str,
        content: bytes,
        content_type: str = "application/octet-stream",
    ) -> dict[str, Any]:
        """Perform an authenticated PUT request to upload content to the Graph API.

        Args:
            path: URL path relative to the endpoint (must start with '/').
            content: Raw bytes to upload.
            content_type: MIME type for the Content-Type header.

        Returns:
            Parsed JSON response body (the created drive item).

        Raises:
            GraphAuthError: If token acquisition fails.
            GraphApiError: If the API returns a non-2xx status code.
        """
        token = self._acquire_token()
        req = urllib_request.Request(
            self._url(path),
            data=content,
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": content_type,
            },
            method="PUT",
        )
        body = self._send(req)
        return json.loads(body) if body else {}  # type: ignore[no-any-return]

    def put_upload_range(
        self, upload_url: str, chunk: bytes, start: int, total: int
    ) -> dict[str, Any]:
        """Upload one byte range to a pre-authenticated upload session URL.

        The session URL carries its own authorization, so no Bearer token is
        sent.

        Args:
            upload_url: ``uploadUrl`` returned by ``createUploadSession``.
            chunk: Bytes of this range.
            start: Offset of the first byte of chunk.
            total: Total size of the file being uploaded.

        Returns:
            Parsed JSON response: upload progress, or the drive item once the
            last range is accepted.

        Raises:
            GraphApiError: If the upload endpoint rejects the range.
        """
        end = start + len(chunk) - 1
        req = urllib_request.Request(
            upload_url,
            data=chunk,
            headers={
                "Content-Length": str(len(chunk)),
                "Content-Range": f"bytes {start}-{end}/{total}",
            },
            method="PUT",
        )
        body = self._send(req)
        return json.loads(body) if body else {}  # type: ignore[no-any-return]


def graph_client_from_config(config: AppConfig) -> GraphClient:
    """Construct a GraphClient from application configuration.

    Args:
        config: Application configuration instance.

    Returns:
        Configured GraphClient instance.
    """
    return GraphClient(
        client_id=config.graph_client_id,
        client_secret=config.graph_client_secret,
        tenant_id=config.tenant_id,
        endpoint=config.graph_endpoint,
        authority_host=config.authority_host,
    )
