"""API client for Dropbox."""

from __future__ import annotations

import json
import logging
import os
import random
import shutil
import tempfile
import time
from pathlib import Path
from typing import Any

import httpx

from .exceptions import (
    DbxAPIError,
    DbxAuthenticationError,
    DbxCredentialMissingError,
    DbxDownloadError,
    DbxInvalidResponseError,
    DbxNetworkError,
    DbxNotFoundError,
    DbxPermissionError,
    DbxRateLimitError,
    DbxUploadError,
)
from .hashing import ContentHasher, content_hash
from .utils import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_DELAY,
    UPLOAD_SESSION_THRESHOLD,
    format_size,
)

logger = logging.getLogger(__name__)

API_URL = "https://api.dropboxapi.com/2"
CONTENT_URL = "https://content.dropboxapi.com/2"


def _api_arg(arg: dict[str, Any]) -> str:
    # HTTP headers must be ASCII; json.dumps escapes everything else
    return json.dumps(arg, ensure_ascii=True)


class DropboxClient:
    """Client for the Dropbox files API.

    Implements the metadata/upload/download operations used by the sync
    engine.
    """

    def __init__(
        self,
        access_token: str | None,
        api_url: str = API_URL,
        content_url: str = CONTENT_URL,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize Dropbox API client.

        Args:
            access_token: OAuth2 bearer token
            api_url: Base URL of RPC endpoints
            content_url: Base URL of content (upload/download) endpoints
            max_retries: Maximum number of retry attempts (default: 3)
            retry_delay: Initial delay between retries in seconds (default: 1.0)
            timeout: Request timeout in seconds (default: 30.0)
            transport: Optional httpx transport (used by tests)
        """
        if not access_token:
            raise DbxCredentialMissingError("No Dropbox access token available")

        self.access_token = access_token
        self.api_url = api_url.rstrip("/")
        self.content_url = content_url.rstrip("/")
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.Client | None = None

    def __enter__(self) -> DropboxClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _get_client(self) -> httpx.Client:
        """Get or create the httpx client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client(
                headers={"Authorization": f"Bearer {self.access_token}"},
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    def close(self) -> None:
        """Close the client and release connections."""
        if self._client is not None and not self._client.is_closed:
            self._client.close()
            self._client = None

    def _calculate_retry_delay(self, attempt: int) -> float:
        """Calculate delay before next retry using exponential backoff.

        Args:
            attempt: Current attempt number (0-based)

        Returns:
            Delay in seconds
        """
        base_delay = self.retry_delay * (2**attempt)
        # Add jitter: +/- 25% of base delay
        jitter = base_delay * 0.25 * (2 * random.random() - 1)
        return base_delay + jitter

    def _handle_http_error(
        self, e: httpx.HTTPStatusError, attempt: int
    ) -> tuple[DbxAPIError, bool]:
        """Map an HTTP error to an exception and decide whether to retry.

        Args:
            e: The HTTP error exception
            attempt: Current attempt number

        Returns:
            Tuple of (exception to raise, should_retry)
        """
        response = e.response
        status_code = response.status_code

        summary = ""
        try:
            if response.content:
                error_data = response.json()
                if isinstance(error_data, dict):
                    summary = error_data.get("error_summary") or ""
        except ValueError:
            # Dropbox sends plain text for 400 errors
            summary = response.text.strip()

        if status_code == 401:
            return DbxAuthenticationError("Invalid or expired access token"), False
        if status_code == 403:
            return DbxPermissionError("Access forbidden - check app permissions"), False
        if status_code == 409:
            if "not_found" in summary:
                return DbxNotFoundError(summary or "Path not found"), False
            return DbxAPIError(f"API request failed: {summary}"), False
        if status_code == 429:
            return (
                DbxRateLimitError("Rate limit exceeded - please try again later"),
                attempt < self.max_retries,
            )

        error_msg = f"API request failed with status {status_code}"
        if summary:
            error_msg = f"{error_msg}: {summary}"
        should_retry = 500 <= status_code < 600 and attempt < self.max_retries
        return DbxAPIError(error_msg), should_retry

    def _retry_delay_for(
        self, error: DbxAPIError, e: httpx.HTTPStatusError, attempt: int
    ) -> float:
        if isinstance(error, DbxRateLimitError):
            retry_after = e.response.headers.get("Retry-After")
            if retry_after and retry_after.isdigit():
                return float(retry_after)
        return self._calculate_retry_delay(attempt)

    def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        """Make an API request with retry logic.

        Args:
            method: HTTP method
            url: Full endpoint URL
            **kwargs: Additional arguments passed to httpx

        Returns:
            Response JSON data

        Raises:
            DbxAPIError: If the request fails after all retries
        """
        client = self._get_client()

        content = kwargs.get("content")

        for attempt in range(self.max_retries + 1):
            if hasattr(content, "seek"):
                content.seek(0)
            try:
                logger.debug("%s %s (attempt %d)", method, url, attempt + 1)
                response = client.request(method, url, **kwargs)
                response.raise_for_status()

                content_type = response.headers.get("Content-Type", "")
                if response.content and "application/json" not in content_type:
                    raise DbxInvalidResponseError(
                        f"Unexpected response type: {content_type}"
                    )

                if response.content:
                    try:
                        return response.json()
                    except ValueError as e:
                        raise DbxInvalidResponseError(
                            "Invalid JSON response from server"
                        ) from e
                return {}

            except httpx.HTTPStatusError as e:
                error, should_retry = self._handle_http_error(e, attempt)
                if should_retry:
                    delay = self._retry_delay_for(error, e, attempt)
                    logger.debug("Retrying in %.1fs after: %s", delay, error)
                    time.sleep(delay)
                    continue
                raise error from e
            except httpx.RequestError as e:
                if attempt < self.max_retries:
                    delay = self._calculate_retry_delay(attempt)
                    logger.debug("Network error, retrying in %.1fs: %s", delay, e)
                    time.sleep(delay)
                    continue
                raise DbxNetworkError(f"Network error: {e}") from e

        raise DbxAPIError("Request failed after all retry attempts")

    def _rpc(self, endpoint: str, payload: dict[str, Any]) -> Any:
        return self._request(
            "POST", f"{self.api_url}/{endpoint.lstrip('/')}", json=payload
        )

    def _content_upload(self, endpoint: str, arg: dict[str, Any], data: Any) -> Any:
        return self._request(
            "POST",
            f"{self.content_url}/{endpoint.lstrip('/')}",
            headers={
                "Dropbox-API-Arg": _api_arg(arg),
                "Content-Type": "application/octet-stream",
            },
            content=data,
        )

    # =========================
    # Metadata
    # =========================

    def get_metadata(self, remote_path: str) -> dict[str, Any]:
        """Get metadata of a remote file.

        Args:
            remote_path: Dropbox path (e.g. "/notes/todo.txt")

        Returns:
            File metadata including ``content_hash`` and ``client_modified``

        Raises:
            DbxNotFoundError: If nothing exists at the path
            DbxAPIError: If the request fails or the path is a folder
        """
        metadata = self._rpc("files/get_metadata", {"path": remote_path})
        tag = metadata.get(".tag")
        if tag == "deleted":
            raise DbxNotFoundError(f"path/not_found: {remote_path} was deleted")
        if tag != "file":
            raise DbxAPIError(f"Remote path {remote_path} is not a file ({tag})")
        return metadata

    # =========================
    # Upload Operations
    # =========================

    def upload(
        self,
        remote_path: str,
        local_path: Path,
        client_modified: str,
        expected_hash: str | None = None,
        session_threshold: int = UPLOAD_SESSION_THRESHOLD,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> dict[str, Any]:
        """Upload a file, replacing any remote object at the path.

        Files above ``session_threshold`` are sent through an upload
        session in ``chunk_size`` pieces. The content hash Dropbox reports
        for the stored file is checked against the local one.

        Args:
            remote_path: Destination Dropbox path
            local_path: Local file to upload
            client_modified: Modification time to record ("YYYY-MM-DDTHH:MM:SSZ")
            expected_hash: Content hash of the local file (computed if None)
            session_threshold: Size above which an upload session is used
            chunk_size: Upload session chunk size

        Returns:
            Metadata of the stored file

        Raises:
            DbxUploadError: If the stored content does not match
            OSError: If the local file cannot be read
        """
        if expected_hash is None:
            expected_hash = content_hash(local_path)

        commit = {
            "path": remote_path,
            "mode": "overwrite",
            "client_modified": client_modified,
            "mute": True,
            "strict_conflict": False,
        }

        file_size = local_path.stat().st_size
        if file_size > session_threshold:
            result = self._upload_session(local_path, file_size, commit, chunk_size)
        else:
            with open(local_path, "rb") as f:
                result = self._content_upload("files/upload", commit, f)

        stored_hash = result.get("content_hash") if isinstance(result, dict) else None
        if stored_hash != expected_hash:
            raise DbxUploadError(
                f"Upload verification failed for {remote_path}: "
                f"expected {expected_hash}, got {stored_hash}"
            )
        return result

    def _upload_session(
        self,
        local_path: Path,
        file_size: int,
        commit: dict[str, Any],
        chunk_size: int,
    ) -> Any:
        """Upload a large file in chunks through an upload session."""
        logger.debug(
            "Uploading %s (%s) in session chunks of %s",
            local_path,
            format_size(file_size),
            format_size(chunk_size),
        )
        with open(local_path, "rb") as f:
            chunk = f.read(chunk_size)
            start = self._content_upload(
                "files/upload_session/start", {"close": False}, chunk
            )
            session_id = start.get("session_id")
            if not session_id:
                raise DbxUploadError("Failed to start upload session")
            offset = len(chunk)

            while file_size - offset > chunk_size:
                chunk = f.read(chunk_size)
                self._content_upload(
                    "files/upload_session/append_v2",
                    {
                        "cursor": {"session_id": session_id, "offset": offset},
                        "close": False,
                    },
                    chunk,
                )
                offset += len(chunk)

            chunk = f.read()
            return self._content_upload(
                "files/upload_session/finish",
                {
                    "cursor": {"session_id": session_id, "offset": offset},
                    "commit": commit,
                },
                chunk,
            )

    # =========================
    # Download Operations
    # =========================

    def download(self, remote_path: str, local_path: Path) -> dict[str, Any]:
        """Download a remote file over ``local_path``.

        Symlinks are followed, so the file they point to is the one that
        gets overwritten. Content is written to a temporary file in the same
        directory, checked against the content hash Dropbox reports and then
        moved into place with the old file's permissions, so the target is
        either fully replaced or left untouched.

        Args:
            remote_path: Dropbox path to download
            local_path: Local path to overwrite

        Returns:
            Metadata of the downloaded file

        Raises:
            DbxNotFoundError: If nothing exists at the path
            DbxDownloadError: If the download fails or is corrupt
        """
        target = Path(local_path).resolve()

        try:
            fd, tmp_name = tempfile.mkstemp(
                prefix=".pydbxsync-", suffix=".part", dir=target.parent
            )
        except OSError as e:
            raise DbxDownloadError(f"Failed to write file: {e}") from e
        os.close(fd)
        tmp_path = Path(tmp_name)

        try:
            metadata, received = self._download_to(remote_path, tmp_path)

            expected = metadata.get("content_hash")
            if expected and expected != received:
                raise DbxDownloadError(
                    f"Download of {remote_path} is corrupt: "
                    f"expected {expected}, got {received}"
                )

            if target.exists():
                shutil.copymode(target, tmp_path)
            os.replace(tmp_path, target)
            return metadata

        except OSError as e:
            raise DbxDownloadError(f"Failed to write file: {e}") from e
        finally:
            if tmp_path.exists():
                tmp_path.unlink()

    def _download_to(self, remote_path: str, tmp_path: Path) -> tuple[dict, str]:
        """Stream a remote file into ``tmp_path`` with retry logic.

        Returns:
            Tuple of (metadata from Dropbox-API-Result, content hash received)
        """
        url = f"{self.content_url}/files/download"
        client = self._get_client()
        headers = {"Dropbox-API-Arg": _api_arg({"path": remote_path})}

        for attempt in range(self.max_retries + 1):
            try:
                logger.debug("POST %s (attempt %d)", url, attempt + 1)
                with open(tmp_path, "wb") as f, client.stream(
                    "POST", url, headers=headers
                ) as response:
                    if response.is_error:
                        response.read()
                    response.raise_for_status()

                    try:
                        metadata = json.loads(
                            response.headers.get("Dropbox-API-Result", "{}")
                        )
                    except ValueError as e:
                        raise DbxInvalidResponseError(
                            "Invalid Dropbox-API-Result header"
                        ) from e

                    hasher = ContentHasher()
                    for chunk in response.iter_bytes(chunk_size=65536):
                        f.write(chunk)
                        hasher.update(chunk)
                return metadata, hasher.hexdigest()

            except httpx.HTTPStatusError as e:
                error, should_retry = self._handle_http_error(e, attempt)
                if should_retry:
                    delay = self._retry_delay_for(error, e, attempt)
                    logger.debug("Retrying download in %.1fs after: %s", delay, error)
                    time.sleep(delay)
                    continue
                raise error from e
            except httpx.RequestError as e:
                if attempt < self.max_retries:
                    delay = self._calculate_retry_delay(attempt)
                    logger.debug("Network error, retrying in %.1fs: %s", delay, e)
                    time.sleep(delay)
                    continue
                raise DbxNetworkError(f"Network error during download: {e}") from e

        raise DbxAPIError("Download failed after all retry attempts")
