"""PyDbxSync - reconcile a few local files with a Dropbox folder."""

from .api import DropboxClient
from .exceptions import (
    DbxAPIError,
    DbxAuthenticationError,
    DbxConfigError,
    DbxCredentialError,
    DbxCredentialMissingError,
    DbxDownloadError,
    DbxInvalidResponseError,
    DbxNetworkError,
    DbxNotFoundError,
    DbxPermissionError,
    DbxRateLimitError,
    DbxSyncError,
    DbxUploadError,
)
from .hashing import ContentHasher, content_hash

__all__ = [
    "DropboxClient",
    "DbxAPIError",
    "DbxAuthenticationError",
    "DbxConfigError",
    "DbxCredentialError",
    "DbxCredentialMissingError",
    "DbxDownloadError",
    "DbxInvalidResponseError",
    "DbxNetworkError",
    "DbxNotFoundError",
    "DbxPermissionError",
    "DbxRateLimitError",
    "DbxSyncError",
    "DbxUploadError",
    "ContentHasher",
    "content_hash",
]
