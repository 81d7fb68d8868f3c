"""Core sync engine for executing sync operations."""

import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

import click

from ..exceptions import DbxAPIError
from ..output import OutputFormatter
from .comparator import FileComparator, SyncAction, SyncDecision
from .operations import RemoteStore, SyncOperations
from .scanner import LocalFile, RemoteFile

logger = logging.getLogger(__name__)

ConfirmCallback = Callable[[str, bool], bool]
"""Callable(prompt, default_yes) -> bool asking the operator to confirm."""


def click_confirm(prompt: str, default: bool = True) -> bool:
    """Ask on the terminal, returning ``default`` on an empty answer."""
    return click.confirm(prompt, default=default)


class SyncStatus(str, Enum):
    """Per-file result of a sync run."""

    SKIPPED = "skipped"
    UPLOADED = "uploaded"
    DOWNLOADED = "downloaded"
    DECLINED = "declined"
    FAILED = "failed"
    TIE = "tie"
    MISSING = "missing"
    PLANNED = "planned"


@dataclass
class SyncOutcome:
    """Result of reconciling one file."""

    path: str
    """Local path, as configured"""

    decision: Optional[SyncAction]
    """Reconciliation decision (None if it could not be made)"""

    confirmed: bool
    """Whether a transfer was approved"""

    transferred: bool
    """Whether bytes were actually transferred"""

    status: SyncStatus
    """Status reported to the operator"""

    message: str = ""
    """Reason or error message"""


class SyncEngine:
    """Core sync engine that reconciles configured files one at a time."""

    def __init__(
        self,
        store: RemoteStore,
        remote_dir: str,
        confirm: ConfirmCallback = click_confirm,
        output: Optional[OutputFormatter] = None,
        comparator: Optional[FileComparator] = None,
        dry_run: bool = False,
    ):
        """Initialize sync engine.

        Args:
            store: Remote store client
            remote_dir: Remote folder all files are synced into
            confirm: Callback asking the operator to confirm a transfer
            output: Output formatter for displaying status
            comparator: Decision maker (prompting comparator by default)
            dry_run: If True, only report decisions without transferring
        """
        self.store = store
        self.operations = SyncOperations(store, remote_dir)
        self.confirm = confirm
        self.output = output or OutputFormatter()
        self.comparator = comparator or FileComparator()
        self.dry_run = dry_run

    def run(self, paths: Sequence[Path]) -> list[SyncOutcome]:
        """Sync each file in order.

        Files are processed strictly in the given order; a failure on one
        file is reported and the run moves on to the next.

        Args:
            paths: Local files to sync

        Returns:
            One SyncOutcome per path, in the same order

        Examples:
            >>> engine = SyncEngine(client, "/notes")
            >>> outcomes = engine.run([Path("todo.txt")])
            >>> print(outcomes[0].status.value)
        """
        if self.dry_run:
            self.output.info("Dry run: No changes will be made")

        outcomes: list[SyncOutcome] = []
        for path in paths:
            start = time.time()
            outcome = self.sync_file(Path(path))
            logger.debug(
                "Finished %s in %.2fs: %s",
                outcome.path,
                time.time() - start,
                outcome.status.value,
            )
            self._report(outcome)
            outcomes.append(outcome)

        self._display_summary(outcomes)
        return outcomes

    def sync_file(self, path: Path) -> SyncOutcome:
        """Reconcile a single file and perform the chosen action.

        Args:
            path: Local file path

        Returns:
            SyncOutcome for this file
        """
        display = str(path)

        try:
            remote_file = self.operations.fetch_remote(path)
        except DbxAPIError as e:
            logger.warning("Metadata fetch failed for %s: %s", display, e)
            return self._failed(display, None, f"metadata fetch failed: {e}")

        if not path.is_file():
            return SyncOutcome(
                path=display,
                decision=SyncAction.SKIP,
                confirmed=False,
                transferred=False,
                status=SyncStatus.MISSING,
                message="local file does not exist",
            )

        try:
            local_file = LocalFile.from_path(path)
        except OSError as e:
            logger.warning("Cannot read %s: %s", display, e)
            return self._failed(display, None, f"cannot read local file: {e}")

        decision = self.comparator.decide(local_file, remote_file)
        return self._execute(decision, local_file, remote_file)

    def _execute(
        self, decision: SyncDecision, local_file: LocalFile, remote_file: RemoteFile
    ) -> SyncOutcome:
        action = decision.action
        display = decision.relative_path

        if action == SyncAction.SKIP:
            return SyncOutcome(
                path=display,
                decision=action,
                confirmed=False,
                transferred=False,
                status=SyncStatus.TIE if decision.tie else SyncStatus.SKIPPED,
                message=decision.reason,
            )

        if self.dry_run:
            return SyncOutcome(
                path=display,
                decision=action,
                confirmed=False,
                transferred=False,
                status=SyncStatus.PLANNED,
                message=f"would {'upload' if action.is_upload else 'download'}",
            )

        if action.is_prompt:
            direction = "Upload" if action.is_upload else "Download"
            prompt = f"{direction} {display}? {decision.reason}"
            if not self.confirm(prompt, True):
                return SyncOutcome(
                    path=display,
                    decision=action,
                    confirmed=False,
                    transferred=False,
                    status=SyncStatus.DECLINED,
                    message=decision.reason,
                )

        try:
            if action.is_upload:
                self.operations.upload_file(local_file)
                status = SyncStatus.UPLOADED
            else:
                self.operations.download_file(remote_file, local_file.path)
                status = SyncStatus.DOWNLOADED
        except (DbxAPIError, OSError) as e:
            logger.warning("Transfer failed for %s: %s", display, e)
            return self._failed(display, action, str(e), confirmed=True)

        return SyncOutcome(
            path=display,
            decision=action,
            confirmed=True,
            transferred=True,
            status=status,
            message=decision.reason,
        )

    @staticmethod
    def _failed(
        path: str,
        action: Optional[SyncAction],
        message: str,
        confirmed: bool = False,
    ) -> SyncOutcome:
        return SyncOutcome(
            path=path,
            decision=action,
            confirmed=confirmed,
            transferred=False,
            status=SyncStatus.FAILED,
            message=message,
        )

    def _report(self, outcome: SyncOutcome) -> None:
        """Print the status line for one file."""
        if outcome.status == SyncStatus.TIE:
            self.output.status_line(
                outcome.status.value,
                outcome.path,
                f"{outcome.message}; resolve manually",
            )
        elif outcome.status in (
            SyncStatus.SKIPPED,
            SyncStatus.MISSING,
            SyncStatus.FAILED,
        ):
            self.output.status_line(outcome.status.value, outcome.path, outcome.message)
        else:
            self.output.status_line(outcome.status.value, outcome.path)

    def _display_summary(self, outcomes: list[SyncOutcome]) -> None:
        """Display summary of the run."""
        if self.output.quiet or not outcomes:
            return

        counts: dict[str, int] = {}
        for outcome in outcomes:
            counts[outcome.status.value] = counts.get(outcome.status.value, 0) + 1

        self.output.print("")
        if self.dry_run:
            self.output.success("Dry run complete!")
        else:
            self.output.success("Sync complete!")
        self.output.print_summary(
            "Summary",
            [
                (status.value, str(counts[status.value]))
                for status in SyncStatus
                if status.value in counts
            ],
        )
