"""Exceptions raised by pydbxsync."""


class DbxSyncError(Exception):
    """Base exception for all pydbxsync errors."""


class DbxConfigError(DbxSyncError):
    """Required configuration is missing or invalid."""


class DbxCredentialMissingError(DbxSyncError):
    """No stored access token was found."""


class DbxCredentialError(DbxSyncError):
    """The access token could not be obtained (bootstrap aborted or failed)."""


class DbxAPIError(DbxSyncError):
    """Request to the Dropbox API failed."""


class DbxNetworkError(DbxAPIError):
    """Network-level failure talking to Dropbox."""


class DbxAuthenticationError(DbxAPIError):
    """Access token rejected by Dropbox."""


class DbxPermissionError(DbxAPIError):
    """Access to the resource is forbidden."""


class DbxNotFoundError(DbxAPIError):
    """No object exists at the requested remote path."""


class DbxRateLimitError(DbxAPIError):
    """Too many requests."""


class DbxInvalidResponseError(DbxAPIError):
    """Dropbox returned a response that could not be understood."""


class DbxUploadError(DbxAPIError):
    """Upload failed or the stored content does not match the local file."""


class DbxDownloadError(DbxAPIError):
    """Download failed or the received content is corrupt."""
