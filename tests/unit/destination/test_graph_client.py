"""Unit tests for destination/client.py — MSAL auth and Graph HTTP calls."""

import json
from io import BytesIO
from typing import Any
from unittest.mock import MagicMock, patch
from urllib.error import HTTPError

import pytest

from drive_transfer.config import AppConfig, ConfigurationError
from drive_transfer.destination.client import (
    GraphApiError,
    GraphAuthError,
    GraphClient,
    graph_client_from_config,
)

URLOPEN = "drive_transfer.destination.client.urllib_request.urlopen"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_client(endpoint: str = "https://graph.microsoft.com/v1.0") -> GraphClient:
    """Return a GraphClient whose MSAL app always yields a token."""
    with patch("drive_transfer.destination.client.msal.ConfidentialClientApplication"):
        client = GraphClient("cid", "csecret", "tid", endpoint=endpoint)
    client._app.acquire_token_for_client.return_value = {  # type: ignore[attr-defined]
        "access_token": "fake-token"
    }
    return client


def _response(payload: Any = None) -> MagicMock:
    """Return a context-manager mock whose read() yields payload as JSON."""
    response = MagicMock()
    response.read.return_value = b"" if payload is None else json.dumps(payload).encode()
    response.__enter__ = lambda s: s
    response.__exit__ = MagicMock(return_value=False)
    return response


def _http_error(code: int, body: bytes) -> HTTPError:
    return HTTPError(
        url="https://graph.microsoft.com/v1.0/x",
        code=code,
        msg="error",
        hdrs=MagicMock(),  # type: ignore[arg-type]
        fp=BytesIO(body),
    )


# ---------------------------------------------------------------------------
# Constructor tests
# ---------------------------------------------------------------------------


class TestGraphClientInit:
    def test_msal_app_created_with_authority(self) -> None:
        with patch(
            "drive_transfer.destination.client.msal.ConfidentialClientApplication"
        ) as mock_msal:
            GraphClient("cid", "csecret", "tid-001", authority_host="https://login.example.us/")
        mock_msal.assert_called_once_with(
            client_id="cid",
            client_credential="csecret",
            authority="https://login.example.us/tid-001",
        )

    @pytest.mark.parametrize(
        ("client_id", "secret", "tenant", "name"),
        [("", "s", "t", "clientId"), ("c", "", "t", "clientSecret"), ("c", "s", " ", "tenantId")],
    )
    def test_blank_credentials_rejected(
        self, client_id: str, secret: str, tenant: str, name: str
    ) -> None:
        with pytest.raises(ConfigurationError, match=name):
            GraphClient(client_id, secret, tenant)

    def test_scope_follows_national_cloud_endpoint(self) -> None:
        client = _make_client("https://graph.microsoft.us/v1.0/")
        assert client.endpoint == "https://graph.microsoft.us/v1.0"
        assert client._scopes == ["https://graph.microsoft.us/.default"]

    def test_from_config(self) -> None:
        config = AppConfig(
            google_client_id="g",
            google_client_secret="gs",
            graph_client_id="cid",
            graph_client_secret="cs",
            tenant_id="tid",
        )
        with patch(
            "drive_transfer.destination.client.msal.ConfidentialClientApplication"
        ) as mock_msal:
            client = graph_client_from_config(config)
        assert client.endpoint == "https://graph.microsoft.com/v1.0"
        assert mock_msal.call_args.kwargs["authority"] == "https://login.microsoftonline.com/tid"


# ---------------------------------------------------------------------------
# _acquire_token tests
# ---------------------------------------------------------------------------


class TestAcquireToken:
    def test_returns_token(self) -> None:
        assert _make_client()._acquire_token() == "fake-token"

    def test_raises_auth_error_on_failure(self) -> None:
        client = _make_client()
        client._app.acquire_token_for_client.return_value = {  # type: ignore[attr-defined]
            "error": "invalid_client",
            "error_description": "Client secret is wrong",
        }
        with pytest.raises(GraphAuthError, match="invalid_client"):
            client._acquire_token()


# ---------------------------------------------------------------------------
# JSON request tests
# ---------------------------------------------------------------------------


class TestJsonRequests:
    def test_get_builds_url_and_bearer_header(self) -> None:
        client = _make_client()
        with patch(URLOPEN, return_value=_response({"id": "root"})) as mock_urlopen:
            result = client.get("/users/u/drive/root")

        assert result == {"id": "root"}
        req = mock_urlopen.call_args[0][0]
        assert req.full_url == "https://graph.microsoft.com/v1.0/users/u/drive/root"
        assert req.get_header("Authorization") == "Bearer fake-token"
        assert req.get_method() == "GET"

    def test_get_passes_absolute_next_link_through(self) -> None:
        client = _make_client()
        next_link = "https://graph.microsoft.com/v1.0/users/u/drive/items/x/children?$skiptoken=a"
        with patch(URLOPEN, return_value=_response({"value": []})) as mock_urlopen:
            client.get(next_link)
        assert mock_urlopen.call_args[0][0].full_url == next_link

    def test_post_json_sends_body(self) -> None:
        client = _make_client()
        with patch(URLOPEN, return_value=_response({"id": "new"})) as mock_urlopen:
            result = client.post_json("/items/p/children", {"name": "A", "folder": {}})

        req = mock_urlopen.call_args[0][0]
        assert result == {"id": "new"}
        assert req.get_method() == "POST"
        assert req.get_header("Content-type") == "application/json"
        assert json.loads(req.data) == {"name": "A", "folder": {}}

    def test_patch_json_with_empty_response(self) -> None:
        client = _make_client()
        with patch(URLOPEN, return_value=_response()) as mock_urlopen:
            result = client.patch_json("/items/d", {"fileSystemInfo": {}})
        assert result == {}
        assert mock_urlopen.call_args[0][0].get_method() == "PATCH"

    def test_error_message_taken_from_body(self) -> None:
        client = _make_client()
        body = json.dumps({"error": {"message": "Name already exists"}}).encode()
        with (
            patch(URLOPEN, side_effect=_http_error(409, body)),
            pytest.raises(GraphApiError) as exc_info,
        ):
            client.post_json("/items/p/children", {})
        assert exc_info.value.status_code == 409
        assert "Name already exists" in exc_info.value.message

    def test_non_json_error_body(self) -> None:
        client = _make_client()
        with (
            patch(URLOPEN, side_effect=_http_error(502, b"<html>bad gateway</html>")),
            pytest.raises(GraphApiError) as exc_info,
        ):
            client.get("/x")
        assert exc_info.value.status_code == 502


# ---------------------------------------------------------------------------
# Upload tests
# ---------------------------------------------------------------------------


class TestUploads:
    def test_put_content_headers(self) -> None:
        client = _make_client()
        with patch(URLOPEN, return_value=_response({"id": "doc"})) as mock_urlopen:
            result = client.put_content("/items/p:/empty.txt:/content", b"", "text/plain")

        req = mock_urlopen.call_args[0][0]
        assert result == {"id": "doc"}
        assert req.get_method() == "PUT"
        assert req.get_header("Content-type") == "text/plain"
        assert req.get_header("Authorization") == "Bearer fake-token"

    def test_put_upload_range_sets_content_range_without_auth(self) -> None:
        client = _make_client()
        with patch(URLOPEN, return_value=_response({"nextExpectedRanges": ["4-"]})) as mock_urlopen:
            client.put_upload_range("https://upload.example/session", b"abcd", 0, 10)

        req = mock_urlopen.call_args[0][0]
        assert req.full_url == "https://upload.example/session"
        assert req.get_header("Content-range") == "bytes 0-3/10"
        assert req.get_header("Content-length") == "4"
        assert req.get_header("Authorization") is None
        client._app.acquire_token_for_client.assert_not_called()  # type: ignore[attr-defined]


# ---------------------------------------------------------------------------
# GraphApiError tests
# ---------------------------------------------------------------------------


class TestGraphApiError:
    def test_str_includes_status_code(self) -> None:
        err = GraphApiError(429, "Too many requests")
        assert err.status_code == 429
        assert "429" in str(err)
