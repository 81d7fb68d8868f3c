"""CLI interface for pydbxsync."""

import logging
from typing import Any, Optional

import click

from .api import DropboxClient
from .auth import ensure_credential
from .config import load_config
from .exceptions import DbxConfigError, DbxCredentialError
from .output import OutputFormatter
from .sync import FileComparator, SyncEngine
from .sync.engine import click_confirm

logger = logging.getLogger(__name__)

USAGE_LINE = (
    "Usage: pydbxsync [usage] - sync the files in PYDBXSYNC_FILES with the "
    "Dropbox folder PYDBXSYNC_REMOTE_DIR"
)


@click.command()
@click.argument("command", required=False)
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option(
    "--yes",
    "-y",
    is_flag=True,
    help="Transfer without asking for confirmation",
)
@click.option(
    "--dry-run",
    is_flag=True,
    help="Show what would be transferred without changing anything",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option(package_name="pydbxsync")
@click.pass_context
def main(
    ctx: Any,
    command: Optional[str],
    quiet: bool,
    yes: bool,
    dry_run: bool,
    verbose: bool,
) -> None:
    """PyDbxSync - keep a few local files in sync with a Dropbox folder.

    Each configured file is compared with its copy in the remote folder by
    content hash and modification time. Transfers are confirmed before they
    overwrite anything.
    """
    if command == "usage":
        click.echo(USAGE_LINE)
        return

    # Configure logging based on verbose flag
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("pydbxsync").setLevel(logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)

    out = OutputFormatter(quiet=quiet)

    try:
        config = load_config()
        token = ensure_credential(config)
    except (DbxConfigError, DbxCredentialError) as e:
        out.error(str(e))
        ctx.exit(1)
        return

    logger.debug("Syncing %d file(s) with %s", len(config.files), config.remote_dir)

    try:
        with DropboxClient(access_token=token) as client:
            engine = SyncEngine(
                client,
                config.remote_dir,
                confirm=click_confirm,
                output=out,
                comparator=FileComparator(prompt=not yes),
                dry_run=dry_run,
            )
            engine.run(config.files)
    except (KeyboardInterrupt, click.Abort):
        out.warning("\nSync cancelled by user")
        ctx.exit(130)  # Standard exit code for SIGINT


if __name__ == "__main__":
    main()
