"""Reverse sync: pull workflow changes from Notion back to the inbox."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from loguru import logger

from ..db.ledger import DedupLedger
from ..db.schemas import InboxItem, Project, SyncRecord
from ..errors import AuthError, RemoteError, StorageError, ValidationError
from ..fingerprint import fingerprint
from ..inbox.scanner import InboxScanner
from ..storage.local import LocalStore
from .conflict import SyncConflict, resolve_page
from .notion import RemotePage, RemoteWorkspaceClient


@dataclass
class ReverseResult:
    """Outcome of one reverse sync pass."""

    project_id: str
    pulled: int = 0
    skipped: int = 0
    conflicts: list[SyncConflict] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    watermark: Optional[datetime] = None
    dry_run: bool = False

    @property
    def success(self) -> bool:
        return not self.errors


class ReverseSyncer:
    """Applies remote edits to local item metadata under the conflict policy."""

    def __init__(
        self,
        store: LocalStore,
        ledger: DedupLedger,
        remote: RemoteWorkspaceClient,
        default_database_id: Optional[str] = None,
        scanner: Optional[InboxScanner] = None,
    ):
        self.store = store
        self.ledger = ledger
        self.remote = remote
        self.default_database_id = default_database_id
        self.scanner = scanner or InboxScanner(store)

    async def _resolve_project(self, key: str) -> Project:
        project = await self.store.get_project(key)
        if project is None:
            raise ValidationError(f"Unknown project: {key}")
        if not project.reverse_sync_enabled:
            raise ValidationError(f"Reverse sync is disabled for project {project.id}")
        return project

    async def reverse(self, project_id: str, dry_run: bool = False) -> ReverseResult:
        """Pull pages edited since the last successful pass.

        With ``dry_run`` the conflict policy is evaluated and counted but no
        item metadata, ledger record or watermark is written.

        Raises:
            ValidationError: Unknown project, reverse sync disabled, or no
                database configured
            AuthError: The Notion token was rejected
            StorageError: Local storage failed
        """
        project = await self._resolve_project(project_id)
        database_id = project.database_id or self.default_database_id
        if not database_id:
            raise ValidationError(f"No Notion database configured for project {project.id}")

        result = ReverseResult(project_id=project.id, dry_run=dry_run)

        async with self.ledger.lock(project.id):
            since = await self.ledger.reverse_watermark(project.id)
            items = {
                fingerprint(item): item
                for item in await self.scanner.scan(project, on_warning=result.warnings.append)
            }
            newest = since

            try:
                async for page in self.remote.list_pages(database_id, since=since):
                    await self._apply_page(project, page, items, result)
                    if page.last_edited_at and (newest is None or page.last_edited_at > newest):
                        newest = page.last_edited_at
            except AuthError:
                raise
            except RemoteError as e:
                result.errors.append(f"Listing pages failed: {e}")
                logger.error(f"Reverse sync listing failed for {project.id}: {e}")

            # Only a clean pass may move the watermark, so nothing is missed
            if not dry_run and not result.errors and newest is not None and newest != since:
                await self.ledger.set_reverse_watermark(project.id, newest)
                result.watermark = newest
            else:
                result.watermark = since

        if dry_run:
            return result

        await self.ledger.append_log(
            "warning" if result.conflicts or result.errors else "info",
            f"Reverse sync for {project.name}: {result.pulled} pulled, "
            f"{len(result.conflicts)} conflicts",
            project_id=project.id,
            pulled=result.pulled,
            skipped=result.skipped,
            conflicts=len(result.conflicts),
        )
        return result

    async def _find_record(self, project_id: str, page: RemotePage) -> Optional[SyncRecord]:
        if page.fingerprint:
            record = await self.ledger.lookup(project_id, page.fingerprint)
            if record is not None:
                return record
        return await self.ledger.lookup_by_remote_id(project_id, page.remote_id)

    async def _apply_page(
        self,
        project: Project,
        page: RemotePage,
        items: dict[str, InboxItem],
        result: ReverseResult,
    ) -> None:
        record = await self._find_record(project.id, page)
        if record is None:
            logger.debug(f"Page {page.remote_id} has no local record, skipping")
            result.skipped += 1
            return

        # Not newer than what this side already saw (including our own upsert)
        if (
            record.last_edited_at
            and page.last_edited_at
            and page.last_edited_at <= record.last_edited_at
        ):
            result.skipped += 1
            return

        item = items.get(record.fingerprint)
        if item is None:
            logger.debug(f"Local item for page {page.remote_id} is gone, skipping")
            result.skipped += 1
            return

        updates, conflicts = resolve_page(item, page, record.fingerprint)
        for conflict in conflicts:
            logger.warning(
                f"Conflict on {conflict.field} of {item.id}, resolved {conflict.resolution.value}"
            )
        result.conflicts.extend(conflicts)

        if result.dry_run:
            if updates:
                logger.info(f"[DRY RUN] Would update {item.id}: {sorted(updates)}")
                result.pulled += 1
            else:
                result.skipped += 1
            return

        try:
            if updates:
                await self.store.write_item_metadata(item, updates)
        except StorageError as e:
            result.errors.append(f"{item.id}: {e}")
            return

        await self.ledger.upsert(record.model_copy(update={"last_edited_at": page.last_edited_at}))
        if updates:
            result.pulled += 1
        else:
            result.skipped += 1
