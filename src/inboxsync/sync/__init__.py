"""Sync module for Notion API integration.

Handles the forward sync from local inboxes into Notion databases and
the reverse pull of workflow changes, including conflict resolution.
"""

from .conflict import (
    ConflictResolution,
    ConflictType,
    SyncConflict,
    resolve_page,
)
from .notion import (
    DEFAULT_STATUS,
    DatabaseRef,
    RemotePage,
    RemoteWorkspaceClient,
    RetryPolicy,
    build_properties,
    translate_error,
)
from .processor import (
    CancelToken,
    ItemError,
    PlannedUpsert,
    RunPhase,
    RunResult,
    SyncProcessor,
)
from .reverse import ReverseResult, ReverseSyncer

__all__ = [
    # Notion client
    "RemoteWorkspaceClient",
    "RemotePage",
    "DatabaseRef",
    "RetryPolicy",
    "DEFAULT_STATUS",
    "build_properties",
    "translate_error",
    # Conflict handling
    "ConflictType",
    "ConflictResolution",
    "SyncConflict",
    "resolve_page",
    # Forward sync
    "SyncProcessor",
    "RunResult",
    "RunPhase",
    "ItemError",
    "PlannedUpsert",
    "CancelToken",
    # Reverse sync
    "ReverseSyncer",
    "ReverseResult",
]
