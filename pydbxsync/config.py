"""Configuration management for pydbxsync.

Settings come from environment variables, falling back to a ``KEY=value``
config file at ``~/.config/pydbxsync/config``. They are read once, at
startup, into an immutable :class:`SyncConfig`.
"""

import logging
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import dotenv_values

from .exceptions import DbxConfigError

logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".config" / "pydbxsync"
CONFIG_FILE = CONFIG_DIR / "config"
DEFAULT_TOKEN_FILE = CONFIG_DIR / "token"

ENV_FILES = "PYDBXSYNC_FILES"
ENV_REMOTE_DIR = "PYDBXSYNC_REMOTE_DIR"
ENV_TOKEN_FILE = "PYDBXSYNC_TOKEN_FILE"
ENV_APP_KEY = "PYDBXSYNC_APP_KEY"
ENV_APP_SECRET = "PYDBXSYNC_APP_SECRET"


@dataclass(frozen=True)
class SyncConfig:
    """Settings for one sync run."""

    files: tuple[Path, ...]
    """Local files to sync, in processing order"""

    remote_dir: str
    """Dropbox folder holding the remote copies"""

    token_file: Path = DEFAULT_TOKEN_FILE
    """File holding the Dropbox access token"""

    app_key: Optional[str] = None
    """Dropbox app key, enables the OAuth code flow"""

    app_secret: Optional[str] = None
    """Dropbox app secret"""


def read_config_file(config_file: Path) -> dict[str, str]:
    """Read ``KEY=value`` lines from a config file in dotenv format.

    Comments, ``export`` prefixes and quoted values are handled by
    python-dotenv. Keys without a value are ignored.

    Args:
        config_file: Path to the config file

    Returns:
        Dictionary of settings (empty if the file does not exist)
    """
    if not config_file.exists():
        return {}

    values: dict[str, str] = {}
    for key, value in dotenv_values(config_file).items():
        if value is None:
            logger.debug("Ignoring config key without a value: %s", key)
            continue
        values[key] = value
    return values


def split_file_list(value: str) -> list[str]:
    """Split a list of paths separated by ``os.pathsep`` or commas.

    Examples:
        >>> split_file_list("a.txt, b.txt")
        ['a.txt', 'b.txt']
    """
    separators = re.escape(os.pathsep) + ","
    return [item.strip() for item in re.split(f"[{separators}]", value) if item.strip()]


def normalize_remote_dir(remote_dir: str) -> str:
    """Give a remote folder a leading slash and no trailing slash.

    Examples:
        >>> normalize_remote_dir("notes/")
        '/notes'
        >>> normalize_remote_dir("/")
        '/'
    """
    remote_dir = "/" + remote_dir.strip().strip("/")
    return remote_dir


def load_config(
    environ: Optional[Mapping[str, str]] = None,
    config_file: Optional[Path] = None,
) -> SyncConfig:
    """Load the sync configuration.

    Args:
        environ: Environment mapping (defaults to ``os.environ``)
        config_file: Config file path (defaults to ``CONFIG_FILE``)

    Returns:
        SyncConfig instance

    Raises:
        DbxConfigError: If the file list or remote folder is missing, or
            two files share a basename
    """
    if environ is None:
        environ = os.environ
    file_values = read_config_file(config_file or CONFIG_FILE)

    def get(key: str) -> Optional[str]:
        value = environ.get(key) or file_values.get(key)
        return value or None

    files_value = get(ENV_FILES)
    if not files_value:
        raise DbxConfigError(f"No files to sync. Please set {ENV_FILES}.")
    files = tuple(Path(item).expanduser() for item in split_file_list(files_value))
    if not files:
        raise DbxConfigError(f"No files to sync. Please set {ENV_FILES}.")

    seen: dict[str, Path] = {}
    for path in files:
        if path.name in seen:
            raise DbxConfigError(
                f"{seen[path.name]} and {path} would both sync to the same "
                f"remote file '{path.name}'"
            )
        seen[path.name] = path

    remote_dir = get(ENV_REMOTE_DIR)
    if not remote_dir:
        raise DbxConfigError(f"No remote folder. Please set {ENV_REMOTE_DIR}.")

    token_file = get(ENV_TOKEN_FILE)

    return SyncConfig(
        files=files,
        remote_dir=normalize_remote_dir(remote_dir),
        token_file=Path(token_file).expanduser() if token_file else DEFAULT_TOKEN_FILE,
        app_key=get(ENV_APP_KEY),
        app_secret=get(ENV_APP_SECRET),
    )
