"""Pydantic schemas for data validation.

These schemas define the structure of projects, captured inbox items and
sync records as they move between local storage, the ledger and the
remote workspace.
"""

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class SyncState(str, Enum):
    """State of a sync record."""

    PENDING = "pending"
    SYNCED = "synced"
    FAILED = "failed"


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ============================================================================
# Projects and Inbox Items
# ============================================================================


class Project(BaseModel):
    """A local project whose inbox is synced to the remote workspace."""

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    slug: Optional[str] = None
    active: bool = True
    database_id: Optional[str] = Field(None, description="Overrides NOTION_DATABASE_ID")
    inbox_path: Optional[str] = Field(None, description="Overrides <data_dir>/inbox/<id>")
    ai_enabled: bool = True
    reverse_sync_enabled: bool = True

    def matches(self, key: str) -> bool:
        """Check whether a scope string names this project."""
        return key in (self.id, self.slug, self.name)


class InboxItem(BaseModel):
    """A captured unit of content. Immutable once captured."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    project_id: str = Field(..., min_length=1)
    raw_content: str
    created_at: datetime
    source_path: Optional[Path] = None
    # Workflow fields pulled back from the remote workspace (status, title, tags)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("created_at")
    @classmethod
    def normalize_created_at(cls, v: datetime) -> datetime:
        return ensure_utc(v)


# ============================================================================
# Ledger
# ============================================================================


class SyncRecord(BaseModel):
    """Outcome of syncing one fingerprint within one project."""

    fingerprint: str = Field(..., min_length=1)
    project_id: str = Field(..., min_length=1)
    item_id: Optional[str] = None
    remote_id: Optional[str] = None
    state: SyncState = SyncState.PENDING
    last_attempt_at: Optional[datetime] = None
    last_error: Optional[str] = None
    attempts: int = Field(0, ge=0)
    last_edited_at: Optional[datetime] = Field(
        None, description="Remote last_edited_time already seen locally"
    )

    @field_validator("last_attempt_at", "last_edited_at")
    @classmethod
    def normalize_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    @model_validator(mode="after")
    def synced_requires_remote_id(self) -> "SyncRecord":
        if self.state == SyncState.SYNCED and not self.remote_id:
            raise ValueError("a synced record must reference a remote page")
        return self


class ProjectSyncStats(BaseModel):
    """Aggregate counters for a project, recomputed from sync records."""

    project_id: str
    synced: int = 0
    skipped: int = 0
    failed: int = 0
    pending: int = 0
    last_run_at: Optional[datetime] = None
    computed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def total(self) -> int:
        return self.synced + self.failed + self.pending
