"""Sync operations wrapper around the remote store."""

import logging
import os
import posixpath
from pathlib import Path
from typing import Any, Optional, Protocol

from ..exceptions import DbxNotFoundError
from ..utils import format_dropbox_timestamp, parse_dropbox_timestamp
from .scanner import LocalFile, RemoteFile

logger = logging.getLogger(__name__)


class RemoteStore(Protocol):
    """Capabilities the sync engine needs from the remote object store."""

    def get_metadata(self, remote_path: str) -> dict[str, Any]:
        """Return file metadata; raise DbxNotFoundError if absent."""
        ...

    def upload(
        self,
        remote_path: str,
        local_path: Path,
        client_modified: str,
        expected_hash: Optional[str] = None,
    ) -> dict[str, Any]:
        """Overwrite the remote object with the local file."""
        ...

    def download(self, remote_path: str, local_path: Path) -> dict[str, Any]:
        """Overwrite the local file with the remote object."""
        ...


def remote_path_for(remote_dir: str, local_path: Path) -> str:
    """Map a local file to its remote path.

    Only the basename is kept, so all files land flat in ``remote_dir``.

    Examples:
        >>> remote_path_for("/notes", Path("/home/me/todo.txt"))
        '/notes/todo.txt'
        >>> remote_path_for("/", Path("todo.txt"))
        '/todo.txt'
    """
    return posixpath.join(remote_dir.rstrip("/") or "/", local_path.name)


class SyncOperations:
    """Unified operations for metadata/upload/download with common interface."""

    def __init__(self, store: RemoteStore, remote_dir: str):
        """Initialize sync operations.

        Args:
            store: Remote store client
            remote_dir: Remote folder all files are synced into
        """
        self.store = store
        self.remote_dir = remote_dir

    def remote_path(self, local_path: Path) -> str:
        return remote_path_for(self.remote_dir, local_path)

    def fetch_remote(self, local_path: Path) -> RemoteFile:
        """Fetch the remote state for a local file.

        Args:
            local_path: Local file path

        Returns:
            RemoteFile, with ``exists=False`` if there is no remote object

        Raises:
            DbxAPIError: On any failure other than "not found"
        """
        remote_path = self.remote_path(local_path)
        try:
            metadata = self.store.get_metadata(remote_path)
        except DbxNotFoundError:
            logger.debug("No remote object at %s", remote_path)
            return RemoteFile.missing(remote_path)
        return RemoteFile.from_metadata(remote_path, metadata)

    def upload_file(self, local_file: LocalFile) -> Any:
        """Upload a local file, recording its modification time remotely.

        Args:
            local_file: Local file to upload

        Returns:
            Upload response from API
        """
        remote_path = self.remote_path(local_file.path)
        client_modified = format_dropbox_timestamp(local_file.mtime)
        logger.debug(
            "Uploading %s to %s (client_modified=%s)",
            local_file.path,
            remote_path,
            client_modified,
        )
        return self.store.upload(
            remote_path,
            local_file.path,
            client_modified,
            expected_hash=local_file.digest,
        )

    def download_file(self, remote_file: RemoteFile, local_path: Path) -> Any:
        """Download a remote file over the local one.

        The local modification time is set to the remote one afterwards so
        the next comparison sees equal times.

        Args:
            remote_file: Remote file to download
            local_path: Local path where file should be saved

        Returns:
            Download response metadata from API
        """
        local_path.parent.mkdir(parents=True, exist_ok=True)

        logger.debug("Downloading %s to %s", remote_file.path, local_path)
        result = self.store.download(remote_file.path, local_path)

        mtime = remote_file.mtime
        if isinstance(result, dict) and result.get("client_modified"):
            mtime = parse_dropbox_timestamp(result["client_modified"]) or mtime
        if mtime is not None:
            os.utime(local_path, (mtime, mtime))
        return result
