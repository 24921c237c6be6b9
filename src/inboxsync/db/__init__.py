"""Database module for the local SQLite ledger."""

from .ledger import DedupLedger
from .models import ProjectState, SyncLogEntry, SyncRecordRow
from .schemas import InboxItem, Project, ProjectSyncStats, SyncRecord, SyncState
from .sqlite import Database, get_db, reset_db

__all__ = [
    "SyncRecordRow",
    "ProjectState",
    "SyncLogEntry",
    "InboxItem",
    "Project",
    "ProjectSyncStats",
    "SyncRecord",
    "SyncState",
    "Database",
    "DedupLedger",
    "get_db",
    "reset_db",
]
