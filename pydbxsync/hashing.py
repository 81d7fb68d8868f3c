"""Dropbox content hash calculation.

Dropbox identifies file content with a hash built from 4 MiB blocks:
each block is hashed with SHA-256, the raw block digests are concatenated
in order, and the concatenation is hashed with SHA-256 again. The result is
encoded as lower-case hex. Computing the same value locally lets the sync
engine compare a local file with its remote copy without transferring it.

See https://www.dropbox.com/developers/reference/content-hash
"""

import hashlib
import logging
from pathlib import Path
from typing import Optional, Union

from .utils import DROPBOX_BLOCK_SIZE, ceil_div

logger = logging.getLogger(__name__)

# SHA-256 over the digest of an empty block
EMPTY_CONTENT_HASH = hashlib.sha256(hashlib.sha256(b"").digest()).hexdigest()


class ContentHasher:
    """Incremental Dropbox content hasher.

    Bytes can be fed in pieces of any size; block boundaries are tracked
    internally so the result only depends on the content.

    Examples:
        >>> hasher = ContentHasher()
        >>> hasher.update(b"hello ")
        >>> hasher.update(b"world")
        >>> len(hasher.hexdigest())
        64
    """

    def __init__(self, block_size: int = DROPBOX_BLOCK_SIZE):
        if block_size <= 0:
            raise ValueError("block_size must be positive")
        self.block_size = block_size
        self._overall = hashlib.sha256()
        self._block = hashlib.sha256()
        self._block_pos = 0
        self._block_count = 0

    def update(self, data: bytes) -> None:
        """Feed more content bytes."""
        view = memoryview(data)
        while len(view) > 0:
            if self._block_pos == self.block_size:
                self._finish_block()
            take = min(len(view), self.block_size - self._block_pos)
            self._block.update(view[:take])
            self._block_pos += take
            view = view[take:]

    def _finish_block(self) -> None:
        self._overall.update(self._block.digest())
        self._block = hashlib.sha256()
        self._block_pos = 0
        self._block_count += 1

    def hexdigest(self) -> str:
        """Return the content hash of all bytes fed so far.

        Does not modify the hasher state.
        """
        overall = self._overall.copy()
        # The pending block is always included, even when empty: an empty
        # file hashes as a single empty block.
        if self._block_pos > 0 or self._block_count == 0:
            overall.update(self._block.digest())
        return overall.hexdigest()


def block_count(size: int, block_size: int = DROPBOX_BLOCK_SIZE) -> int:
    """Number of hash blocks for a file of ``size`` bytes.

    A zero-byte file has no blocks; its hash is ``EMPTY_CONTENT_HASH``.
    """
    if size < 0:
        raise ValueError("size must not be negative")
    return ceil_div(size, block_size)


def content_hash(
    file_path: Union[str, Path],
    block_size: int = DROPBOX_BLOCK_SIZE,
    read_size: Optional[int] = None,
) -> str:
    """Compute the Dropbox content hash of a local file.

    The file is streamed one read at a time; it is never loaded whole.

    Args:
        file_path: Path to the file
        block_size: Hash block size (Dropbox uses 4 MiB)
        read_size: Bytes per read call (defaults to ``block_size``)

    Returns:
        64 character lower-case hex digest

    Raises:
        OSError: If the file cannot be read
    """
    hasher = ContentHasher(block_size=block_size)
    read_size = read_size or block_size

    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(read_size), b""):
            hasher.update(chunk)

    digest = hasher.hexdigest()
    logger.debug("Content hash of %s: %s", file_path, digest)
    return digest
