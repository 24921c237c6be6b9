"""SQLAlchemy ORM models for the local SQLite ledger.

Tables:
- sync_records: One row per (project, fingerprint), never deleted
- project_state: Per-project run bookkeeping and reverse-sync watermark
- sync_logs: Activity log entries surfaced by the dashboard
"""

import json
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from .schemas import SyncState


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def generate_uuid() -> str:
    """Generate a UUID string for primary keys."""
    return str(uuid4())


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SyncRecordRow(Base):
    """Sync record - the ledger entry for one fingerprint in one project."""

    __tablename__ = "sync_records"
    __table_args__ = (
        UniqueConstraint("project_id", "fingerprint", name="uq_sync_records_project_fingerprint"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    project_id: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    fingerprint: Mapped[str] = mapped_column(String(64), nullable=False)
    item_id: Mapped[Optional[str]] = mapped_column(String(200))
    remote_id: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    state: Mapped[str] = mapped_column(
        String(20), default=SyncState.PENDING.value, index=True
    )
    last_attempt_at: Mapped[Optional[str]] = mapped_column(String(32))  # ISO datetime
    last_error: Mapped[Optional[str]] = mapped_column(Text)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    last_edited_at: Mapped[Optional[str]] = mapped_column(String(32))  # remote watermark

    created_at: Mapped[str] = mapped_column(String(32), default=utcnow_iso)
    updated_at: Mapped[str] = mapped_column(String(32), default=utcnow_iso, onupdate=utcnow_iso)

    def __repr__(self) -> str:
        return (
            f"<SyncRecordRow(project={self.project_id}, "
            f"fingerprint={self.fingerprint[:12]}, state={self.state})>"
        )


class ProjectState(Base):
    """Per-project run bookkeeping."""

    __tablename__ = "project_state"

    project_id: Mapped[str] = mapped_column(String(200), primary_key=True)
    last_run_at: Mapped[Optional[str]] = mapped_column(String(32))
    last_skipped: Mapped[int] = mapped_column(Integer, default=0)
    last_reverse_at: Mapped[Optional[str]] = mapped_column(String(32))

    def __repr__(self) -> str:
        return f"<ProjectState(project={self.project_id}, last_run_at={self.last_run_at})>"


class SyncLogEntry(Base):
    """Activity log entry."""

    __tablename__ = "sync_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    level: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    project_id: Mapped[Optional[str]] = mapped_column(String(200), index=True)
    details: Mapped[Optional[str]] = mapped_column(Text)  # JSON
    created_at: Mapped[str] = mapped_column(String(32), default=utcnow_iso)

    def __repr__(self) -> str:
        return f"<SyncLogEntry(level={self.level}, message='{self.message[:40]}')>"

    def get_details(self) -> dict:
        """Get details as dict."""
        if self.details:
            return json.loads(self.details)
        return {}

    def set_details(self, details: dict) -> None:
        """Set details from dict."""
        self.details = json.dumps(details, default=str) if details else None
