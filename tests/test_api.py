"""Unit tests for the Dropbox API client."""

import hashlib
import json
import os
import stat

import httpx
import pytest

from pydbxsync.api import DropboxClient
from pydbxsync.exceptions import (
    DbxAPIError,
    DbxAuthenticationError,
    DbxCredentialMissingError,
    DbxDownloadError,
    DbxNetworkError,
    DbxNotFoundError,
    DbxPermissionError,
    DbxUploadError,
)


def _hash(data: bytes) -> str:
    return hashlib.sha256(hashlib.sha256(data).digest()).hexdigest()


def _file_metadata(path: str = "/sync/notes.txt", data: bytes = b"hello\n") -> dict:
    return {
        ".tag": "file",
        "name": path.rsplit("/", 1)[-1],
        "path_display": path,
        "size": len(data),
        "client_modified": "2023-11-14T22:13:20Z",
        "server_modified": "2023-11-14T22:13:25Z",
        "content_hash": _hash(data),
    }


def _not_found() -> httpx.Response:
    return httpx.Response(
        409,
        json={
            "error_summary": "path/not_found/..",
            "error": {".tag": "path", "path": {".tag": "not_found"}},
        },
    )


def _client(handler, **kwargs) -> DropboxClient:
    kwargs.setdefault("retry_delay", 0.0)
    return DropboxClient(
        access_token="test_token", transport=httpx.MockTransport(handler), **kwargs
    )


class TestDropboxClient:
    """Tests for DropboxClient initialization and basic functionality."""

    def test_init_with_token(self):
        client = DropboxClient(access_token="test_token")
        assert client.access_token == "test_token"
        assert client.api_url == "https://api.dropboxapi.com/2"
        assert client.content_url == "https://content.dropboxapi.com/2"

    def test_init_without_token_raises_error(self):
        with pytest.raises(DbxCredentialMissingError):
            DropboxClient(access_token=None)

    def test_authorization_header(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(200, json=_file_metadata())

        with _client(handler) as client:
            client.get_metadata("/sync/notes.txt")

        assert seen["auth"] == "Bearer test_token"

    def test_close(self):
        client = _client(lambda request: httpx.Response(200, json={}))
        http_client = client._get_client()

        client.close()

        assert http_client.is_closed
        assert client._client is None


class TestGetMetadata:
    """Tests for get_metadata."""

    def test_returns_file_metadata(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=_file_metadata())

        client = _client(handler)
        metadata = client.get_metadata("/sync/notes.txt")

        assert seen["url"] == "https://api.dropboxapi.com/2/files/get_metadata"
        assert seen["body"] == {"path": "/sync/notes.txt"}
        assert metadata["content_hash"] == _hash(b"hello\n")

    def test_not_found(self):
        client = _client(lambda request: _not_found())

        with pytest.raises(DbxNotFoundError):
            client.get_metadata("/sync/missing.txt")

    def test_not_found_is_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return _not_found()

        client = _client(handler)
        with pytest.raises(DbxNotFoundError):
            client.get_metadata("/sync/missing.txt")

        assert len(calls) == 1

    def test_other_conflict_is_api_error(self):
        def handler(request):
            return httpx.Response(409, json={"error_summary": "path/malformed_path/"})

        client = _client(handler)
        with pytest.raises(DbxAPIError, match="malformed_path") as exc_info:
            client.get_metadata("bad")

        assert not isinstance(exc_info.value, DbxNotFoundError)

    def test_folder_is_rejected(self):
        def handler(request):
            return httpx.Response(
                200, json={".tag": "folder", "path_display": "/sync/notes.txt"}
            )

        client = _client(handler)
        with pytest.raises(DbxAPIError, match="not a file"):
            client.get_metadata("/sync/notes.txt")

    def test_unauthorized(self):
        client = _client(lambda request: httpx.Response(401, json={}))

        with pytest.raises(DbxAuthenticationError):
            client.get_metadata("/sync/notes.txt")

    def test_forbidden(self):
        client = _client(lambda request: httpx.Response(403, json={}))

        with pytest.raises(DbxPermissionError):
            client.get_metadata("/sync/notes.txt")

    def test_bad_request_plain_text(self):
        def handler(request):
            return httpx.Response(400, text="Error in call to API function")

        client = _client(handler)
        with pytest.raises(DbxAPIError, match="Error in call to API function"):
            client.get_metadata("/sync/notes.txt")


class TestRetries:
    """Tests for retry behavior of _request."""

    def test_server_error_then_success(self):
        responses = [httpx.Response(503), httpx.Response(200, json=_file_metadata())]
        calls = []

        def handler(request):
            calls.append(request)
            return responses.pop(0)

        client = _client(handler)
        metadata = client.get_metadata("/sync/notes.txt")

        assert metadata[".tag"] == "file"
        assert len(calls) == 2

    def test_server_error_exhausts_retries(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500)

        client = _client(handler, max_retries=2)
        with pytest.raises(DbxAPIError, match="status 500"):
            client.get_metadata("/sync/notes.txt")

        assert len(calls) == 3

    def test_rate_limit_uses_retry_after(self, monkeypatch):
        sleeps = []
        monkeypatch.setattr("pydbxsync.api.time.sleep", sleeps.append)
        responses = [
            httpx.Response(429, headers={"Retry-After": "7"}),
            httpx.Response(200, json=_file_metadata()),
        ]

        client = _client(lambda request: responses.pop(0))
        client.get_metadata("/sync/notes.txt")

        assert sleeps == [7.0]

    def test_network_error(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        client = _client(handler, max_retries=1)
        with pytest.raises(DbxNetworkError, match="connection refused"):
            client.get_metadata("/sync/notes.txt")

        assert len(calls) == 2

    def test_retry_delay_grows(self):
        client = DropboxClient(access_token="test_token", retry_delay=1.0)

        first = client._calculate_retry_delay(0)
        third = client._calculate_retry_delay(2)

        assert 0.75 <= first <= 1.25
        assert 3.0 <= third <= 5.0


class TestUpload:
    """Tests for upload."""

    def test_small_upload(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_bytes(b"hello\n")
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["arg"] = json.loads(request.headers["Dropbox-API-Arg"])
            seen["content_type"] = request.headers["Content-Type"]
            seen["body"] = request.content
            return httpx.Response(200, json=_file_metadata())

        client = _client(handler)
        result = client.upload("/sync/notes.txt", path, "2023-11-14T22:13:20Z")

        assert seen["url"] == "https://content.dropboxapi.com/2/files/upload"
        assert seen["arg"] == {
            "path": "/sync/notes.txt",
            "mode": "overwrite",
            "client_modified": "2023-11-14T22:13:20Z",
            "mute": True,
            "strict_conflict": False,
        }
        assert seen["content_type"] == "application/octet-stream"
        assert seen["body"] == b"hello\n"
        assert result["content_hash"] == _hash(b"hello\n")

    def test_non_ascii_path_is_escaped(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_bytes(b"hello\n")
        seen = {}

        def handler(request):
            seen["raw"] = request.headers["Dropbox-API-Arg"]
            return httpx.Response(200, json=_file_metadata())

        client = _client(handler)
        client.upload("/sync/café.txt", path, "2023-11-14T22:13:20Z")

        assert "\\u00e9" in seen["raw"]
        assert json.loads(seen["raw"])["path"] == "/sync/café.txt"

    def test_upload_hash_mismatch(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_bytes(b"hello\n")

        def handler(request):
            return httpx.Response(200, json=_file_metadata(data=b"other\n"))

        client = _client(handler)
        with pytest.raises(DbxUploadError, match="verification failed"):
            client.upload("/sync/notes.txt", path, "2023-11-14T22:13:20Z")

    def test_upload_session(self, tmp_path):
        data = b"0123456789A"
        path = tmp_path / "big.bin"
        path.write_bytes(data)
        requests = []

        def handler(request):
            endpoint = request.url.path.split("/2/files/", 1)[1]
            arg = json.loads(request.headers["Dropbox-API-Arg"])
            requests.append((endpoint, arg, request.content))
            if endpoint == "upload_session/start":
                return httpx.Response(200, json={"session_id": "sid"})
            if endpoint == "upload_session/append_v2":
                return httpx.Response(200, json=None)
            return httpx.Response(200, json=_file_metadata("/sync/big.bin", data))

        client = _client(handler)
        result = client.upload(
            "/sync/big.bin",
            path,
            "2023-11-14T22:13:20Z",
            session_threshold=10,
            chunk_size=4,
        )

        assert [r[0] for r in requests] == [
            "upload_session/start",
            "upload_session/append_v2",
            "upload_session/finish",
        ]
        assert requests[0][2] == b"0123"
        assert requests[1][1]["cursor"] == {"session_id": "sid", "offset": 4}
        assert requests[1][2] == b"4567"
        assert requests[2][1]["cursor"] == {"session_id": "sid", "offset": 8}
        assert requests[2][1]["commit"]["mode"] == "overwrite"
        assert requests[2][2] == b"89A"
        assert result["content_hash"] == _hash(data)

    def test_upload_session_without_id(self, tmp_path):
        path = tmp_path / "big.bin"
        path.write_bytes(b"0123456789A")

        client = _client(lambda request: httpx.Response(200, json={}))
        with pytest.raises(DbxUploadError, match="upload session"):
            client.upload(
                "/sync/big.bin",
                path,
                "2023-11-14T22:13:20Z",
                session_threshold=10,
                chunk_size=4,
            )

    def test_upload_uses_expected_hash(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_bytes(b"hello\n")

        def handler(request):
            return httpx.Response(200, json=_file_metadata(data=b"other\n"))

        client = _client(handler)
        result = client.upload(
            "/sync/notes.txt",
            path,
            "2023-11-14T22:13:20Z",
            expected_hash=_hash(b"other\n"),
        )

        assert result["content_hash"] == _hash(b"other\n")

    def test_upload_retry_resends_whole_file(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_bytes(b"hello\n")
        bodies = []
        responses = [httpx.Response(503), httpx.Response(200, json=_file_metadata())]

        def handler(request):
            bodies.append(request.content)
            return responses.pop(0)

        client = _client(handler)
        client.upload("/sync/notes.txt", path, "2023-11-14T22:13:20Z")

        assert bodies == [b"hello\n", b"hello\n"]


class TestDownload:
    """Tests for download."""

    def test_download_replaces_file(self, tmp_path):
        target = tmp_path / "notes.txt"
        target.write_bytes(b"old\n")
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["arg"] = json.loads(request.headers["Dropbox-API-Arg"])
            return httpx.Response(
                200,
                content=b"new\n",
                headers={
                    "Dropbox-API-Result": json.dumps(_file_metadata(data=b"new\n"))
                },
            )

        client = _client(handler)
        metadata = client.download("/sync/notes.txt", target)

        assert seen["url"] == "https://content.dropboxapi.com/2/files/download"
        assert seen["arg"] == {"path": "/sync/notes.txt"}
        assert target.read_bytes() == b"new\n"
        assert metadata["client_modified"] == "2023-11-14T22:13:20Z"
        assert list(tmp_path.iterdir()) == [target]

    def test_download_new_file(self, tmp_path):
        target = tmp_path / "notes.txt"

        def handler(request):
            return httpx.Response(
                200,
                content=b"new\n",
                headers={
                    "Dropbox-API-Result": json.dumps(_file_metadata(data=b"new\n"))
                },
            )

        _client(handler).download("/sync/notes.txt", target)

        assert target.read_bytes() == b"new\n"

    def test_corrupt_download_leaves_file(self, tmp_path):
        target = tmp_path / "notes.txt"
        target.write_bytes(b"old\n")

        def handler(request):
            return httpx.Response(
                200,
                content=b"truncated",
                headers={
                    "Dropbox-API-Result": json.dumps(_file_metadata(data=b"new\n"))
                },
            )

        client = _client(handler)
        with pytest.raises(DbxDownloadError, match="corrupt"):
            client.download("/sync/notes.txt", target)

        assert target.read_bytes() == b"old\n"
        assert list(tmp_path.iterdir()) == [target]

    def test_download_not_found(self, tmp_path):
        target = tmp_path / "notes.txt"

        client = _client(lambda request: _not_found())
        with pytest.raises(DbxNotFoundError):
            client.download("/sync/notes.txt", target)

        assert not target.exists()
        assert list(tmp_path.iterdir()) == []

    def test_download_network_error(self, tmp_path):
        target = tmp_path / "notes.txt"

        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        client = _client(handler)
        with pytest.raises(DbxNetworkError):
            client.download("/sync/notes.txt", target)

        assert list(tmp_path.iterdir()) == []

    def test_download_keeps_permissions(self, tmp_path):
        target = tmp_path / "notes.txt"
        target.write_bytes(b"old\n")
        os.chmod(target, 0o644)

        def handler(request):
            return httpx.Response(
                200,
                content=b"new\n",
                headers={
                    "Dropbox-API-Result": json.dumps(_file_metadata(data=b"new\n"))
                },
            )

        _client(handler).download("/sync/notes.txt", target)

        assert target.read_bytes() == b"new\n"
        assert stat.S_IMODE(target.stat().st_mode) == 0o644

    def test_download_follows_symlink(self, tmp_path):
        real = tmp_path / "real.txt"
        real.write_bytes(b"old\n")
        link = tmp_path / "notes.txt"
        link.symlink_to(real)

        def handler(request):
            return httpx.Response(
                200,
                content=b"new\n",
                headers={
                    "Dropbox-API-Result": json.dumps(_file_metadata(data=b"new\n"))
                },
            )

        _client(handler).download("/sync/notes.txt", link)

        assert link.is_symlink()
        assert real.read_bytes() == b"new\n"
        assert sorted(p.name for p in tmp_path.iterdir()) == ["notes.txt", "real.txt"]

    def test_download_server_error_then_success(self, tmp_path):
        target = tmp_path / "notes.txt"
        target.write_bytes(b"old\n")
        calls = []
        responses = [
            httpx.Response(503, content=b"partial"),
            httpx.Response(
                200,
                content=b"new\n",
                headers={
                    "Dropbox-API-Result": json.dumps(_file_metadata(data=b"new\n"))
                },
            ),
        ]

        def handler(request):
            calls.append(request)
            return responses.pop(0)

        _client(handler).download("/sync/notes.txt", target)

        assert len(calls) == 2
        assert target.read_bytes() == b"new\n"
        assert list(tmp_path.iterdir()) == [target]

    def test_download_network_error_is_retried(self, tmp_path):
        target = tmp_path / "notes.txt"
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        client = _client(handler, max_retries=2)
        with pytest.raises(DbxNetworkError, match="connection refused"):
            client.download("/sync/notes.txt", target)

        assert len(calls) == 3
