"""Local and remote file state for sync operations."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from ..hashing import content_hash
from ..utils import parse_dropbox_timestamp, truncate_mtime

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocalFile:
    """Represents a local file with metadata."""

    path: Path
    """Path to the file"""

    size: int
    """File size in bytes"""

    mtime: int
    """Last modification time (Unix timestamp, whole seconds)"""

    digest: str
    """Dropbox content hash of the current file content"""

    @classmethod
    def from_path(cls, file_path: Path) -> "LocalFile":
        """Create LocalFile from a path, hashing its current content.

        Args:
            file_path: Path to the file

        Returns:
            LocalFile instance

        Raises:
            OSError: If the file cannot be stat'ed or read
        """
        stat = file_path.stat()
        digest = content_hash(file_path)

        return cls(
            path=file_path,
            size=stat.st_size,
            mtime=truncate_mtime(stat.st_mtime),
            digest=digest,
        )


@dataclass(frozen=True)
class RemoteFile:
    """Represents the remote copy of a file (or its absence)."""

    path: str
    """Remote path"""

    exists: bool
    """False when Dropbox has no object at ``path``"""

    digest: Optional[str] = None
    """Dropbox content hash"""

    mtime: Optional[int] = None
    """Client modification time recorded by Dropbox (Unix timestamp)"""

    size: Optional[int] = None
    """File size in bytes"""

    @classmethod
    def missing(cls, path: str) -> "RemoteFile":
        """State for a path with no remote object."""
        return cls(path=path, exists=False)

    @classmethod
    def from_metadata(cls, path: str, metadata: dict[str, Any]) -> "RemoteFile":
        """Create RemoteFile from a Dropbox file metadata response.

        Args:
            path: Remote path the metadata was requested for
            metadata: JSON metadata as returned by ``files/get_metadata``

        Returns:
            RemoteFile instance
        """
        # Older upload tools may only have set server_modified
        timestamp = metadata.get("client_modified") or metadata.get("server_modified")

        return cls(
            path=path,
            exists=True,
            digest=metadata.get("content_hash"),
            mtime=parse_dropbox_timestamp(timestamp),
            size=metadata.get("size"),
        )
