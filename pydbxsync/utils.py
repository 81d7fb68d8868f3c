"""Utility functions for pydbxsync."""

from datetime import datetime, timezone
from typing import Optional

# =============================================================================
# Constants for file operations
# =============================================================================

# Block size of the Dropbox content hash (4 MiB)
DROPBOX_BLOCK_SIZE: int = 4 * 1024 * 1024

# Files above this size go through an upload session (150 MiB)
UPLOAD_SESSION_THRESHOLD: int = 150 * 1024 * 1024

# Chunk size for upload sessions, a multiple of the hash block size (32 MiB)
DEFAULT_CHUNK_SIZE: int = 8 * DROPBOX_BLOCK_SIZE

# Retry configuration for transient errors
DEFAULT_MAX_RETRIES: int = 3
DEFAULT_RETRY_DELAY: float = 1.0  # seconds

DROPBOX_TIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def ceil_div(numerator: int, denominator: int) -> int:
    """Integer division rounding up.

    Examples:
        >>> ceil_div(0, 4)
        0
        >>> ceil_div(5, 4)
        2
        >>> ceil_div(8, 4)
        2
    """
    if denominator <= 0:
        raise ValueError("denominator must be positive")
    return -(-numerator // denominator)


# =============================================================================
# Timestamp utilities
# =============================================================================


def truncate_mtime(mtime: float) -> int:
    """Truncate a filesystem timestamp to whole seconds."""
    return int(mtime)


def format_dropbox_timestamp(timestamp: float) -> str:
    """Encode a Unix timestamp as a whole-second UTC Dropbox timestamp.

    Examples:
        >>> format_dropbox_timestamp(1700000000.75)
        '2023-11-14T22:13:20Z'
    """
    dt = datetime.fromtimestamp(truncate_mtime(timestamp), tz=timezone.utc)
    return dt.strftime(DROPBOX_TIME_FORMAT)


def parse_dropbox_timestamp(timestamp_str: Optional[str]) -> Optional[int]:
    """Parse a Dropbox ISO 8601 timestamp into whole Unix seconds.

    Args:
        timestamp_str: Timestamp such as "2023-11-14T22:13:20Z"

    Returns:
        Unix timestamp in whole seconds, or None if missing or unparseable
    """
    if not timestamp_str:
        return None

    # Python < 3.11 does not accept the 'Z' suffix
    if timestamp_str.endswith("Z"):
        timestamp_str = timestamp_str[:-1] + "+00:00"

    try:
        dt = datetime.fromisoformat(timestamp_str)
    except (ValueError, TypeError):
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return truncate_mtime(dt.timestamp())


# =============================================================================
# Size formatting utilities
# =============================================================================


def format_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string (e.g., "1.5 MB", "256 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / 1024 / 1024:.1f} MB"
    else:
        return f"{size_bytes / 1024 / 1024 / 1024:.1f} GB"
