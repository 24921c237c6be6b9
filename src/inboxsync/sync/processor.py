"""Sync processor: inbox items to Notion pages.

Runs projects concurrently and the items of one project strictly in
scan order. Item failures are recorded and the project carries on;
project failures are recorded and the other projects carry on.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from loguru import logger

from ..classify.classifier import Classifier
from ..config import Config
from ..db.ledger import DedupLedger
from ..db.schemas import InboxItem, Project, ProjectSyncStats, SyncRecord, SyncState
from ..errors import AuthError, RemoteError, StorageError, ValidationError
from ..fingerprint import fingerprint
from ..inbox.scanner import InboxScanner
from ..storage.local import LocalStore
from .notion import RemoteWorkspaceClient


class RunPhase(str, Enum):
    """Phase a project run reached."""

    INIT = "init"
    SCANNING = "scanning"
    PROCESSING_ITEMS = "processing_items"
    FINALIZING = "finalizing"
    DONE = "done"


class CancelToken:
    """Cooperative cancellation shared by every project of a run."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


@dataclass
class ItemError:
    """Failure of a single inbox item."""

    item_id: str
    fingerprint: str
    kind: str
    message: str
    attempts: int = 0


@dataclass
class PlannedUpsert:
    """A write a dry run would have made."""

    item_id: str
    fingerprint: str
    title: str
    action: str  # "create" or "update"


@dataclass
class RunResult:
    """Outcome of one project's run."""

    project_id: str
    project_name: str = ""
    synced: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[ItemError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    processed: list[str] = field(default_factory=list)
    phase: RunPhase = RunPhase.INIT
    cancelled: bool = False
    error: Optional[str] = None
    error_kind: Optional[str] = None
    stats: Optional[ProjectSyncStats] = None
    dry_run: bool = False
    planned: list[PlannedUpsert] = field(default_factory=list)

    @property
    def status(self) -> str:
        if self.error:
            return "failed"
        if self.cancelled:
            return "cancelled"
        if self.failed:
            return "partial"
        return "ok"

    @property
    def success(self) -> bool:
        return self.status == "ok"


class SyncProcessor:
    """Moves inbox items into Notion, one ledger record per fingerprint."""

    def __init__(
        self,
        config: Config,
        store: LocalStore,
        ledger: DedupLedger,
        remote: RemoteWorkspaceClient,
        classifier: Classifier,
        scanner: Optional[InboxScanner] = None,
    ):
        self.config = config
        self.store = store
        self.ledger = ledger
        self.remote = remote
        self.classifier = classifier
        self.scanner = scanner or InboxScanner(store)

    async def _select_projects(self, scope: Optional[str]) -> list[Project]:
        projects = await self.store.read_projects()
        if scope is None:
            return [p for p in projects if p.active]
        for project in projects:
            if project.matches(scope):
                return [project]
        raise ValidationError(f"Unknown project: {scope}")

    async def run(
        self,
        scope: Optional[str] = None,
        cancel_token: Optional[CancelToken] = None,
        dry_run: bool = False,
    ) -> list[RunResult]:
        """Sync one project (by id, slug or name) or every active project.

        Returns one RunResult per selected project. Only an unknown scope
        raises; every other failure is reported in the results.

        With ``dry_run`` nothing is written to Notion, the ledger or the
        activity log. Items that would be synced are counted as synced and
        listed in ``RunResult.planned``.
        """
        projects = await self._select_projects(scope)
        token = cancel_token or CancelToken()
        self.classifier.begin_run()

        if not projects:
            logger.info("No active projects to sync")
            return []

        loop = asyncio.get_running_loop()
        timer = None
        if self.config.run_timeout:
            timer = loop.call_later(self.config.run_timeout, token.cancel, "run timeout")

        semaphore = asyncio.Semaphore(self.config.max_parallel_projects)

        async def guarded(project: Project) -> RunResult:
            async with semaphore:
                if token.cancelled:
                    return RunResult(
                        project_id=project.id,
                        project_name=project.name,
                        cancelled=True,
                        dry_run=dry_run,
                    )
                return await self.sync_project(project, token, dry_run=dry_run)

        try:
            results = await asyncio.gather(*(guarded(p) for p in projects))
        finally:
            if timer is not None:
                timer.cancel()

        for result in results:
            if token.reason == "auth" and result.cancelled and result.error_kind is None:
                result.error_kind = "auth"
                result.error = result.error or "Notion token is invalid or revoked"

        synced = sum(r.synced for r in results)
        failed = sum(r.failed for r in results)
        logger.info(
            f"Run finished: {len(results)} projects, {synced} synced, {failed} failed"
        )
        return list(results)

    async def sync_project(
        self, project: Project, token: CancelToken, dry_run: bool = False
    ) -> RunResult:
        """Run one project. Never raises."""
        result = RunResult(project_id=project.id, project_name=project.name, dry_run=dry_run)

        try:
            async with self.ledger.lock(project.id):
                await self._sync_project_locked(project, token, result)
        except AuthError as e:
            token.cancel("auth")
            result.error = str(e)
            result.error_kind = e.kind
            result.cancelled = True
        except (ValidationError, StorageError, RemoteError) as e:
            result.error = str(e)
            result.error_kind = e.kind
            logger.error(f"Project {project.id} failed in {result.phase.value}: {e}")
        except Exception as e:
            # Anything unexpected still fails only this project
            result.error = f"{type(e).__name__}: {e}"
            result.error_kind = "internal"
            logger.exception(f"Project {project.id} crashed in {result.phase.value}")

        if not dry_run:
            await self._log_result(result)
        return result

    async def _sync_project_locked(
        self, project: Project, token: CancelToken, result: RunResult
    ) -> None:
        database_id = project.database_id or self.config.notion_database_id
        if not database_id:
            raise ValidationError(f"No Notion database configured for project {project.id}")

        result.phase = RunPhase.SCANNING
        items = await self.scanner.scan(project, on_warning=result.warnings.append)

        result.phase = RunPhase.PROCESSING_ITEMS
        try:
            for item in items:
                if token.cancelled:
                    result.cancelled = True
                    logger.info(f"Project {project.id} stopped: {token.reason}")
                    break
                await self._process_item(project, database_id, item, result)
        finally:
            # Stats for the items handled so far are kept even when the pass
            # ends early
            result.phase = RunPhase.FINALIZING
            if not result.dry_run:
                await self.ledger.record_run(project.id, result.skipped)
            result.stats = await self.ledger.stats_for(project.id, refresh=True)

        result.phase = RunPhase.DONE

    async def _process_item(
        self,
        project: Project,
        database_id: str,
        item: InboxItem,
        result: RunResult,
    ) -> None:
        fp = fingerprint(item)
        existing = await self.ledger.lookup(project.id, fp)

        if existing is not None and existing.state == SyncState.SYNCED:
            result.skipped += 1
            return

        attempts = (existing.attempts if existing else 0) + 1
        remote_id = existing.remote_id if existing else None
        now = datetime.now(timezone.utc)

        if result.dry_run:
            # Preview titles come from passthrough so no provider budget is spent
            classification = await self.classifier.classify(item, use_ai=False)
            result.processed.append(item.id)
            result.planned.append(
                PlannedUpsert(
                    item_id=item.id,
                    fingerprint=fp,
                    title=classification.title,
                    action="update" if remote_id else "create",
                )
            )
            result.synced += 1
            logger.info(f"[DRY RUN] Would {result.planned[-1].action} page for {item.id}")
            return

        # Written before the upsert so a crash leaves a visible attempt
        await self.ledger.upsert(
            SyncRecord(
                fingerprint=fp,
                project_id=project.id,
                item_id=item.id,
                remote_id=remote_id,
                state=SyncState.PENDING,
                last_attempt_at=now,
                attempts=attempts,
                last_edited_at=existing.last_edited_at if existing else None,
            )
        )
        result.processed.append(item.id)

        classification = await self.classifier.classify(item, use_ai=project.ai_enabled)

        try:
            page = await self.remote.upsert(
                database_id,
                fp,
                classification,
                item=item,
                project_name=project.name,
                remote_id=remote_id,
                # A previous attempt may have created the page before failing
                check_existing=existing is not None and remote_id is None,
            )
        except RemoteError as e:
            await self.ledger.upsert(
                SyncRecord(
                    fingerprint=fp,
                    project_id=project.id,
                    item_id=item.id,
                    remote_id=remote_id,
                    state=SyncState.FAILED,
                    last_attempt_at=now,
                    last_error=str(e),
                    attempts=attempts,
                    last_edited_at=existing.last_edited_at if existing else None,
                )
            )
            result.failed += 1
            result.errors.append(
                ItemError(
                    item_id=item.id,
                    fingerprint=fp,
                    kind=e.kind,
                    message=str(e),
                    attempts=getattr(e, "attempts", 0) or 1,
                )
            )
            logger.warning(f"Item {item.id} in {project.id} failed: {e}")
            if isinstance(e, AuthError):
                raise
            return

        await self.ledger.upsert(
            SyncRecord(
                fingerprint=fp,
                project_id=project.id,
                item_id=item.id,
                remote_id=page.remote_id,
                state=SyncState.SYNCED,
                last_attempt_at=now,
                attempts=attempts,
                last_edited_at=page.last_edited_at,
            )
        )
        result.synced += 1
        logger.debug(f"Synced item {item.id} -> {page.remote_id}")

    async def _log_result(self, result: RunResult) -> None:
        level = "info" if result.status == "ok" else "warning"
        message = (
            f"Sync {result.status} for {result.project_name or result.project_id}: "
            f"{result.synced} synced, {result.skipped} skipped, {result.failed} failed"
        )
        if result.error:
            message += f" ({result.error})"
        await self.ledger.append_log(
            level,
            message,
            project_id=result.project_id,
            synced=result.synced,
            skipped=result.skipped,
            failed=result.failed,
            error_kind=result.error_kind,
        )
