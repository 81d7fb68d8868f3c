"""Sync engine for pydbxsync - per-file reconciliation with Dropbox."""

from .comparator import FileComparator, SyncAction, SyncDecision
from .engine import SyncEngine, SyncOutcome, SyncStatus
from .operations import RemoteStore, SyncOperations, remote_path_for
from .scanner import LocalFile, RemoteFile

__all__ = [
    "SyncEngine",
    "SyncOutcome",
    "SyncStatus",
    "SyncOperations",
    "RemoteStore",
    "remote_path_for",
    "FileComparator",
    "SyncAction",
    "SyncDecision",
    "LocalFile",
    "RemoteFile",
]
