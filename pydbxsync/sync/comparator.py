"""File comparison logic for sync operations."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .scanner import LocalFile, RemoteFile

logger = logging.getLogger(__name__)


class SyncAction(str, Enum):
    """Actions that can be taken during sync."""

    UPLOAD = "upload"
    """Upload local file to remote"""

    DOWNLOAD = "download"
    """Download remote file to local"""

    SKIP = "skip"
    """Skip file (no action needed or possible)"""

    PROMPT_UPLOAD = "prompt_upload"
    """Upload local file to remote after operator confirmation"""

    PROMPT_DOWNLOAD = "prompt_download"
    """Download remote file to local after operator confirmation"""

    @property
    def is_prompt(self) -> bool:
        """Whether the action needs confirmation before transferring."""
        return self in (SyncAction.PROMPT_UPLOAD, SyncAction.PROMPT_DOWNLOAD)

    @property
    def is_upload(self) -> bool:
        return self in (SyncAction.UPLOAD, SyncAction.PROMPT_UPLOAD)

    @property
    def is_download(self) -> bool:
        return self in (SyncAction.DOWNLOAD, SyncAction.PROMPT_DOWNLOAD)


@dataclass(frozen=True)
class SyncDecision:
    """Represents a decision about how to sync a file."""

    action: SyncAction
    """Action to take"""

    reason: str
    """Human-readable reason for this decision"""

    relative_path: str
    """Local path of the file, as configured"""

    local_file: Optional[LocalFile]
    """Local file (if exists)"""

    remote_file: Optional[RemoteFile]
    """Remote file state"""

    tie: bool = False
    """Content differs but neither side is newer; manual action may be needed"""


class FileComparator:
    """Compares local and remote file state to determine sync actions.

    The comparison never picks a direction on equal timestamps and, unless
    ``prompt`` is disabled, every transfer is returned as a prompting action
    so the caller asks before overwriting anything.
    """

    def __init__(self, prompt: bool = True):
        """Initialize file comparator.

        Args:
            prompt: If False, return UPLOAD/DOWNLOAD instead of the
                prompting actions (operator pre-approved all transfers)
        """
        self.prompt = prompt

    def _upload(self) -> SyncAction:
        return SyncAction.PROMPT_UPLOAD if self.prompt else SyncAction.UPLOAD

    def _download(self) -> SyncAction:
        return SyncAction.PROMPT_DOWNLOAD if self.prompt else SyncAction.DOWNLOAD

    def decide(self, local_file: LocalFile, remote_file: RemoteFile) -> SyncDecision:
        """Decide how to reconcile one file.

        Rules, in order:

        1. Remote object absent: upload.
        2. Content hashes equal: skip, whatever the timestamps say.
        3. Local older than remote: download.
        4. Remote older than local: upload.
        5. Otherwise: skip, flagged as a tie.

        Args:
            local_file: Current local state
            remote_file: Current remote state

        Returns:
            SyncDecision for this file
        """
        path = str(local_file.path)

        # Absence is checked before the hashes: a first upload must always
        # be offered.
        if not remote_file.exists:
            decision = self._make(
                path, self._upload(), "New local file", local_file, remote_file
            )
        elif local_file.digest == remote_file.digest:
            decision = self._make(
                path, SyncAction.SKIP, "Files are identical", local_file, remote_file
            )
        elif remote_file.mtime is None:
            decision = self._make(
                path,
                SyncAction.SKIP,
                "Files differ and remote modification time is unknown",
                local_file,
                remote_file,
                tie=True,
            )
        elif local_file.mtime < remote_file.mtime:
            decision = self._make(
                path, self._download(), "Remote file is newer", local_file, remote_file
            )
        elif remote_file.mtime < local_file.mtime:
            decision = self._make(
                path, self._upload(), "Local file is newer", local_file, remote_file
            )
        else:
            decision = self._make(
                path,
                SyncAction.SKIP,
                "Files differ but have the same modification time",
                local_file,
                remote_file,
                tie=True,
            )

        logger.debug(
            "Decision for %s: %s (%s)", path, decision.action.value, decision.reason
        )
        return decision

    def compare_files(
        self, pairs: Iterable[tuple[LocalFile, RemoteFile]]
    ) -> list[SyncDecision]:
        """Decide for several files, keeping their order.

        Args:
            pairs: (local, remote) state pairs

        Returns:
            List of SyncDecision objects in input order
        """
        return [self.decide(local, remote) for local, remote in pairs]

    @staticmethod
    def _make(
        path: str,
        action: SyncAction,
        reason: str,
        local_file: LocalFile,
        remote_file: RemoteFile,
        tie: bool = False,
    ) -> SyncDecision:
        return SyncDecision(
            action=action,
            reason=reason,
            relative_path=path,
            local_file=local_file,
            remote_file=remote_file,
            tie=tie,
        )
