"""Conflict detection and resolution for reverse sync.

The workspace is authoritative for workflow metadata (status, title,
tags); the local capture is authoritative for raw content. Conflicts are
always recorded, whichever side wins.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from ..db.schemas import InboxItem
from ..fingerprint import normalize_content
from .notion import RemotePage


class ConflictType(str, Enum):
    """Type of reverse sync conflict."""

    METADATA_DIVERGED = "metadata_diverged"  # Local metadata edited, Notion changed it too
    CONTENT_DIVERGED = "content_diverged"  # Page content no longer matches the capture


class ConflictResolution(str, Enum):
    """Which side was kept."""

    KEEP_LOCAL = "keep_local"
    KEEP_REMOTE = "keep_remote"


# Workflow metadata fields owned by the workspace
REMOTE_WINS_FIELDS = ("status", "title", "tags")


@dataclass
class SyncConflict:
    """A field where local and remote values differed."""

    item_id: str
    fingerprint: Optional[str]
    remote_id: str
    field: str
    conflict_type: ConflictType
    local_value: Any
    remote_value: Any
    resolution: ConflictResolution

    def __repr__(self) -> str:
        return (
            f"SyncConflict({self.item_id!r}, field={self.field}, "
            f"resolution={self.resolution.value})"
        )


def _remote_fields(page: RemotePage) -> dict[str, Any]:
    return {"status": page.status, "title": page.title or None, "tags": page.tags}


def _same(local: Any, remote: Any) -> bool:
    if isinstance(local, list) and isinstance(remote, list):
        return sorted(map(str, local)) == sorted(map(str, remote))
    return local == remote


def resolve_page(
    item: InboxItem,
    page: RemotePage,
    fingerprint: Optional[str] = None,
) -> tuple[dict[str, Any], list[SyncConflict]]:
    """Apply the field policy to one page.

    Args:
        item: Local inbox item the page was created from
        page: Page as it currently reads in Notion
        fingerprint: Fingerprint linking the two, for reporting

    Returns:
        (metadata updates to write locally, conflicts to surface)
    """
    updates: dict[str, Any] = {}
    conflicts: list[SyncConflict] = []

    remote_fields = _remote_fields(page)
    for name in REMOTE_WINS_FIELDS:
        remote_value = remote_fields[name]
        if remote_value is None or remote_value == []:
            continue
        local_value = item.metadata.get(name)
        if _same(local_value, remote_value):
            continue
        updates[name] = remote_value
        if local_value not in (None, "", []):
            conflicts.append(
                SyncConflict(
                    item_id=item.id,
                    fingerprint=fingerprint,
                    remote_id=page.remote_id,
                    field=name,
                    conflict_type=ConflictType.METADATA_DIVERGED,
                    local_value=local_value,
                    remote_value=remote_value,
                    resolution=ConflictResolution.KEEP_REMOTE,
                )
            )

    remote_content = page.content
    if remote_content and normalize_content(remote_content) != normalize_content(
        item.raw_content
    ):
        conflicts.append(
            SyncConflict(
                item_id=item.id,
                fingerprint=fingerprint,
                remote_id=page.remote_id,
                field="content",
                conflict_type=ConflictType.CONTENT_DIVERGED,
                local_value=item.raw_content,
                remote_value=remote_content,
                resolution=ConflictResolution.KEEP_LOCAL,
            )
        )

    return updates, conflicts
