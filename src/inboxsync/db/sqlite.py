"""SQLite database operations.

Handles database connection, session management, and CRUD operations
for sync records, project run state and the activity log.
"""

from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import create_engine, delete, func, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base, ProjectState, SyncLogEntry, SyncRecordRow, utcnow_iso
from .schemas import SyncRecord, SyncState

MAX_LOG_ENTRIES = 1000


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def row_to_record(row: SyncRecordRow) -> SyncRecord:
    """Convert an ORM row to a SyncRecord schema."""
    return SyncRecord(
        fingerprint=row.fingerprint,
        project_id=row.project_id,
        item_id=row.item_id,
        remote_id=row.remote_id,
        state=SyncState(row.state),
        last_attempt_at=_parse(row.last_attempt_at),
        last_error=row.last_error,
        attempts=row.attempts or 0,
        last_edited_at=_parse(row.last_edited_at),
    )


class Database:
    """Database connection and operations manager."""

    def __init__(self, db_path: str | Path):
        """Initialize database connection.

        Args:
            db_path: Path to SQLite database file, or ":memory:"
        """
        self.db_path = Path(db_path)
        self._is_memory = str(db_path) == ":memory:"

        if not self._is_memory:
            self._ensure_directory()

        # For in-memory databases, use StaticPool to reuse the same connection
        # This ensures all sessions share the same in-memory database
        if self._is_memory:
            self.engine = create_engine(
                "sqlite:///:memory:",
                echo=False,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.engine = create_engine(
                f"sqlite:///{self.db_path}",
                echo=False,
                connect_args={"check_same_thread": False, "timeout": 30},
            )
        self.SessionLocal = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)

    def _ensure_directory(self) -> None:
        """Ensure the database directory exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def create_tables(self) -> None:
        """Create all database tables."""
        Base.metadata.create_all(self.engine)

    def dispose(self) -> None:
        """Close pooled connections."""
        self.engine.dispose()

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Get a database session context manager."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ========================================================================
    # Sync Record Operations
    # ========================================================================

    def get_record(self, project_id: str, fingerprint: str) -> Optional[SyncRecord]:
        """Get the sync record for a fingerprint in a project."""
        with self.get_session() as s:
            stmt = select(SyncRecordRow).where(
                SyncRecordRow.project_id == project_id,
                SyncRecordRow.fingerprint == fingerprint,
            )
            row = s.execute(stmt).scalar_one_or_none()
            return row_to_record(row) if row else None

    def get_record_by_remote_id(self, project_id: str, remote_id: str) -> Optional[SyncRecord]:
        """Get the sync record that points at a remote page."""
        with self.get_session() as s:
            stmt = (
                select(SyncRecordRow)
                .where(
                    SyncRecordRow.project_id == project_id,
                    SyncRecordRow.remote_id == remote_id,
                )
                .order_by(SyncRecordRow.updated_at.desc())
            )
            row = s.execute(stmt).scalars().first()
            return row_to_record(row) if row else None

    def list_records(
        self, project_id: str, state: Optional[SyncState] = None
    ) -> list[SyncRecord]:
        """List sync records for a project, oldest first."""
        with self.get_session() as s:
            stmt = select(SyncRecordRow).where(SyncRecordRow.project_id == project_id)
            if state is not None:
                stmt = stmt.where(SyncRecordRow.state == state.value)
            stmt = stmt.order_by(SyncRecordRow.created_at)
            return [row_to_record(row) for row in s.execute(stmt).scalars().all()]

    def upsert_record(self, record: SyncRecord, session: Optional[Session] = None) -> None:
        """Insert or replace the record for (project_id, fingerprint).

        A single INSERT ... ON CONFLICT statement, so concurrent writers for
        the same key never produce two rows.
        """
        values = {
            "project_id": record.project_id,
            "fingerprint": record.fingerprint,
            "item_id": record.item_id,
            "remote_id": record.remote_id,
            "state": record.state.value,
            "last_attempt_at": _iso(record.last_attempt_at),
            "last_error": record.last_error,
            "attempts": record.attempts,
            "last_edited_at": _iso(record.last_edited_at),
        }
        stmt = sqlite_insert(SyncRecordRow).values(**values)
        updates = {k: v for k, v in values.items() if k not in ("project_id", "fingerprint")}
        updates["updated_at"] = utcnow_iso()
        stmt = stmt.on_conflict_do_update(
            index_elements=["project_id", "fingerprint"],
            set_=updates,
        )

        if session:
            session.execute(stmt)
        else:
            with self.get_session() as s:
                s.execute(stmt)

    def count_records_by_state(self, project_id: str) -> dict[str, int]:
        """Count a project's records grouped by state."""
        with self.get_session() as s:
            stmt = (
                select(SyncRecordRow.state, func.count())
                .where(SyncRecordRow.project_id == project_id)
                .group_by(SyncRecordRow.state)
            )
            counts = {state.value: 0 for state in SyncState}
            for state, count in s.execute(stmt).all():
                counts[state] = count
            return counts

    # ========================================================================
    # Project State Operations
    # ========================================================================

    def get_project_state(self, project_id: str) -> Optional[ProjectState]:
        """Get run bookkeeping for a project (detached)."""
        with self.get_session() as s:
            state = s.get(ProjectState, project_id)
            if state:
                s.expunge(state)
            return state

    def _project_state(self, s: Session, project_id: str) -> ProjectState:
        state = s.get(ProjectState, project_id)
        if state is None:
            state = ProjectState(project_id=project_id, last_skipped=0)
            s.add(state)
        return state

    def save_run(self, project_id: str, ran_at: datetime, skipped: int) -> None:
        """Persist the outcome of a forward run."""
        with self.get_session() as s:
            state = self._project_state(s, project_id)
            state.last_run_at = ran_at.isoformat()
            state.last_skipped = skipped

    def set_reverse_watermark(self, project_id: str, watermark: datetime) -> None:
        """Persist the newest remote edit pulled by reverse sync."""
        with self.get_session() as s:
            state = self._project_state(s, project_id)
            state.last_reverse_at = watermark.isoformat()

    # ========================================================================
    # Activity Log Operations
    # ========================================================================

    def append_log(
        self,
        level: str,
        message: str,
        project_id: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> None:
        """Append an activity log entry, keeping the newest entries only."""
        with self.get_session() as s:
            entry = SyncLogEntry(level=level.lower(), message=message, project_id=project_id)
            entry.set_details(details or {})
            s.add(entry)
            s.flush()

            cutoff = (
                select(SyncLogEntry.id)
                .order_by(SyncLogEntry.id.desc())
                .offset(MAX_LOG_ENTRIES)
                .limit(1)
            )
            oldest_kept = s.execute(cutoff).scalar_one_or_none()
            if oldest_kept is not None:
                s.execute(delete(SyncLogEntry).where(SyncLogEntry.id <= oldest_kept))

    def get_logs(self, limit: int = 100, project_id: Optional[str] = None) -> list[SyncLogEntry]:
        """Get the most recent log entries, newest first."""
        with self.get_session() as s:
            stmt = select(SyncLogEntry).order_by(SyncLogEntry.id.desc()).limit(limit)
            if project_id:
                stmt = stmt.where(SyncLogEntry.project_id == project_id)
            entries = list(s.execute(stmt).scalars().all())
            for entry in entries:
                s.expunge(entry)
            return entries


# Global database instance
_db: Optional[Database] = None


def get_db(db_path: Optional[str | Path] = None) -> Database:
    """Get or create the global database instance."""
    global _db
    if _db is None:
        if db_path is None:
            from ..config import get_config

            db_path = get_config().db_path
        _db = Database(db_path)
        _db.create_tables()
    return _db


def reset_db() -> None:
    """Reset the global database instance. Used for testing."""
    global _db
    if _db is not None:
        _db.dispose()
    _db = None
