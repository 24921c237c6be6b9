"""Deduplication ledger.

Async facade over ``Database`` that maps (project, fingerprint) to a
sync outcome. Writers for the same project are serialized through a
per-project lock; different projects never share a lock.
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from ..errors import StorageError
from .models import SyncLogEntry
from .schemas import ProjectSyncStats, SyncRecord, SyncState
from .sqlite import Database


class DedupLedger:
    """Persisted per-project map from fingerprint to sync outcome."""

    def __init__(
        self,
        database: Database,
        stats_ttl: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.db = database
        self.stats_ttl = stats_ttl
        self._clock = clock
        self._locks: dict[str, asyncio.Lock] = {}
        self._stats_cache: dict[str, tuple[float, ProjectSyncStats]] = {}

    def lock(self, project_id: str) -> asyncio.Lock:
        """Lock serializing ledger writers for one project."""
        if project_id not in self._locks:
            self._locks[project_id] = asyncio.Lock()
        return self._locks[project_id]

    async def _run(self, fn: Callable[..., Any], *args, **kwargs) -> Any:
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except SQLAlchemyError as e:
            raise StorageError(f"Ledger operation failed: {e}") from e
        except OSError as e:
            raise StorageError(f"Ledger I/O failed: {e}") from e

    # ========================================================================
    # Records
    # ========================================================================

    async def lookup(self, project_id: str, fingerprint: str) -> Optional[SyncRecord]:
        return await self._run(self.db.get_record, project_id, fingerprint)

    async def lookup_by_remote_id(self, project_id: str, remote_id: str) -> Optional[SyncRecord]:
        return await self._run(self.db.get_record_by_remote_id, project_id, remote_id)

    async def upsert(self, record: SyncRecord) -> None:
        """Replace the record for (project_id, fingerprint)."""
        await self._run(self.db.upsert_record, record)
        self._stats_cache.pop(record.project_id, None)

    async def records_for(
        self, project_id: str, state: Optional[SyncState] = None
    ) -> list[SyncRecord]:
        return await self._run(self.db.list_records, project_id, state)

    # ========================================================================
    # Stats
    # ========================================================================

    async def stats_for(self, project_id: str, refresh: bool = False) -> ProjectSyncStats:
        """Aggregate stats for a project.

        Results are cached for ``stats_ttl`` seconds; any write to the
        project's records or run state drops the cached value. Pass
        ``refresh=True`` to force a recompute.
        """
        cached = self._stats_cache.get(project_id)
        if cached and not refresh:
            cached_at, stats = cached
            if self._clock() - cached_at < self.stats_ttl:
                return stats

        counts = await self._run(self.db.count_records_by_state, project_id)
        state = await self._run(self.db.get_project_state, project_id)

        last_run_at = None
        skipped = 0
        if state is not None:
            skipped = state.last_skipped or 0
            if state.last_run_at:
                last_run_at = datetime.fromisoformat(state.last_run_at)

        stats = ProjectSyncStats(
            project_id=project_id,
            synced=counts.get(SyncState.SYNCED.value, 0),
            failed=counts.get(SyncState.FAILED.value, 0),
            pending=counts.get(SyncState.PENDING.value, 0),
            skipped=skipped,
            last_run_at=last_run_at,
        )
        self._stats_cache[project_id] = (self._clock(), stats)
        return stats

    async def record_run(
        self, project_id: str, skipped: int, ran_at: Optional[datetime] = None
    ) -> None:
        """Persist lastRunAt and the skipped count of a finished run."""
        ran_at = ran_at or datetime.now(timezone.utc)
        await self._run(self.db.save_run, project_id, ran_at, skipped)
        self._stats_cache.pop(project_id, None)

    # ========================================================================
    # Reverse sync watermark
    # ========================================================================

    async def reverse_watermark(self, project_id: str) -> Optional[datetime]:
        state = await self._run(self.db.get_project_state, project_id)
        if state is None or not state.last_reverse_at:
            return None
        return datetime.fromisoformat(state.last_reverse_at)

    async def set_reverse_watermark(self, project_id: str, watermark: datetime) -> None:
        await self._run(self.db.set_reverse_watermark, project_id, watermark)

    # ========================================================================
    # Activity log
    # ========================================================================

    async def append_log(
        self, level: str, message: str, project_id: Optional[str] = None, **details
    ) -> None:
        """Persist an activity log entry.

        A failed log write is reported through loguru and not raised, so a
        full disk never turns a finished sync into a failed one.
        """
        try:
            await self._run(self.db.append_log, level, message, project_id, details)
        except StorageError as e:
            logger.error(f"Could not persist activity log entry: {e}")

    async def recent_logs(
        self, limit: int = 100, project_id: Optional[str] = None
    ) -> list[SyncLogEntry]:
        return await self._run(self.db.get_logs, limit, project_id)
