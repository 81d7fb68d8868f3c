"""Access token storage and first-run bootstrap."""

import logging
import os
from pathlib import Path
from typing import Any, Callable, Optional
from urllib.parse import urlencode

import click
import httpx

from .config import SyncConfig
from .exceptions import DbxCredentialError, DbxCredentialMissingError

logger = logging.getLogger(__name__)

AUTHORIZE_URL = "https://www.dropbox.com/oauth2/authorize"
TOKEN_URL = "https://api.dropboxapi.com/oauth2/token"


class TokenStore:
    """Reads and writes the access token file.

    The file holds only the bearer token and is readable by its owner only.
    """

    def __init__(self, path: Path):
        self.path = path

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> Optional[str]:
        """Return the stored token, or None if there is none."""
        if not self.exists():
            return None
        token = self.path.read_text(encoding="utf-8").strip()
        return token or None

    def require(self) -> str:
        """Return the stored token.

        Raises:
            DbxCredentialMissingError: If no token is stored
        """
        token = self.load()
        if token is None:
            raise DbxCredentialMissingError(f"No access token in {self.path}")
        return token

    def save(self, token: str) -> None:
        """Store the token with owner-only permissions."""
        self.path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(token.strip() + "\n")
        # O_CREAT does not change the mode of an existing file
        os.chmod(self.path, 0o600)
        logger.debug("Saved access token to %s", self.path)


def authorize_url(app_key: str) -> str:
    """URL where the user approves the app and receives a code."""
    query = urlencode({"client_id": app_key, "response_type": "code"})
    return f"{AUTHORIZE_URL}?{query}"


def exchange_code(
    code: str,
    app_key: str,
    app_secret: Optional[str],
    transport: Optional[httpx.BaseTransport] = None,
) -> str:
    """Exchange an authorization code for an access token.

    Raises:
        DbxCredentialError: If Dropbox rejects the code
    """
    data = {"code": code, "grant_type": "authorization_code", "client_id": app_key}
    if app_secret:
        data["client_secret"] = app_secret

    try:
        with httpx.Client(transport=transport, timeout=30.0) as client:
            response = client.post(TOKEN_URL, data=data)
            response.raise_for_status()
            payload: Any = response.json()
    except httpx.HTTPStatusError as e:
        raise DbxCredentialError(
            f"Authorization code rejected ({e.response.status_code})"
        ) from e
    except httpx.RequestError as e:
        raise DbxCredentialError(f"Network error during authorization: {e}") from e
    except ValueError as e:
        raise DbxCredentialError("Invalid response from token endpoint") from e

    token = payload.get("access_token") if isinstance(payload, dict) else None
    if not token:
        raise DbxCredentialError("Token endpoint returned no access token")
    return token


def ensure_credential(
    config: SyncConfig,
    prompt: Callable[[str], str] = click.prompt,
    echo: Callable[[str], Any] = click.echo,
    transport: Optional[httpx.BaseTransport] = None,
) -> str:
    """Return a usable access token, running the first-time setup if needed.

    With an app key configured the user approves the app in the browser
    and pastes the code shown; otherwise they paste a token generated in
    the Dropbox app console.

    Args:
        config: Sync configuration (token file and app credentials)
        prompt: Asks the user for a line of input
        echo: Prints a line to the user
        transport: Optional httpx transport for the code exchange

    Returns:
        Access token

    Raises:
        DbxCredentialError: If the setup is aborted or fails
    """
    store = TokenStore(config.token_file)
    try:
        return store.require()
    except DbxCredentialMissingError:
        logger.debug("No token in %s, starting setup", config.token_file)

    try:
        if config.app_key:
            echo("Open this URL, allow access and copy the code shown:")
            echo(f"  {authorize_url(config.app_key)}")
            code = prompt("Authorization code").strip()
            if not code:
                raise DbxCredentialError("No authorization code entered")
            token = exchange_code(code, config.app_key, config.app_secret, transport)
        else:
            echo("Generate an access token in the Dropbox app console.")
            token = prompt("Access token").strip()
            if not token:
                raise DbxCredentialError("No access token entered")
    except click.Abort as e:
        raise DbxCredentialError("Setup aborted") from e

    store.save(token)
    echo(f"Access token saved to {config.token_file}")
    return token
