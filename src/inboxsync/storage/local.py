"""Local project storage.

Layout under the data directory::

    projects.json                  list of projects
    inbox/<project_id>/<id>.json   one captured item per file

Item files hold ``{"id", "content", "created_at", "metadata"}``. Only the
``metadata`` key is ever rewritten; captured content stays as written.
"""

import asyncio
import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from ..db.schemas import InboxItem, Project
from ..errors import CorruptItemError, StorageError

PROJECTS_FILE = "projects.json"
INBOX_DIR = "inbox"


def _parse_created_at(value: Any) -> datetime:
    if isinstance(value, (int, float)):
        # Epoch milliseconds, as written by the capture tools
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str) and value:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    raise ValueError(f"invalid created_at: {value!r}")


def _atomic_write_json(path: Path, data: Any) -> None:
    tmp = path.with_suffix(path.suffix + ".tmp")
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
    os.replace(tmp, path)


class LocalStore:
    """Reads projects and inbox items from the local data directory."""

    def __init__(self, data_dir: str | Path):
        self.data_dir = Path(data_dir)

    @property
    def projects_path(self) -> Path:
        return self.data_dir / PROJECTS_FILE

    def inbox_dir(self, project: Project) -> Path:
        """Directory holding a project's inbox item files."""
        if project.inbox_path:
            return Path(project.inbox_path).expanduser()
        return self.data_dir / INBOX_DIR / project.id

    # ========================================================================
    # Projects
    # ========================================================================

    def _read_projects(self) -> list[Project]:
        if not self.projects_path.exists():
            return []
        try:
            with open(self.projects_path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Cannot read {self.projects_path}: {e}") from e

        if isinstance(data, dict):
            data = data.get("projects", [])
        try:
            return [Project.model_validate(entry) for entry in data]
        except (PydanticValidationError, TypeError) as e:
            raise StorageError(f"Invalid project entry in {self.projects_path}: {e}") from e

    async def read_projects(self) -> list[Project]:
        """Read every configured project, active or not."""
        return await asyncio.to_thread(self._read_projects)

    async def get_project(self, key: str) -> Optional[Project]:
        """Find a project by id, slug or name."""
        for project in await self.read_projects():
            if project.matches(key):
                return project
        return None

    def _save_projects(self, projects: list[Project]) -> None:
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            _atomic_write_json(
                self.projects_path,
                [p.model_dump(exclude_none=True) for p in projects],
            )
        except OSError as e:
            raise StorageError(f"Cannot write {self.projects_path}: {e}") from e

    async def save_projects(self, projects: list[Project]) -> None:
        await asyncio.to_thread(self._save_projects, projects)

    # ========================================================================
    # Inbox items
    # ========================================================================

    def _list_inbox_files(self, project: Project) -> list[Path]:
        inbox = self.inbox_dir(project)
        if not inbox.exists():
            return []
        try:
            return sorted(p for p in inbox.iterdir() if p.is_file() and p.suffix == ".json")
        except OSError as e:
            raise StorageError(f"Cannot list inbox {inbox}: {e}") from e

    async def list_inbox_files(self, project: Project) -> list[Path]:
        """Item files for a project. A missing inbox directory means no items."""
        return await asyncio.to_thread(self._list_inbox_files, project)

    def _load_item(self, path: Path, project_id: str) -> InboxItem:
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise CorruptItemError(f"Cannot read {path.name}: {e}") from e

        if not isinstance(data, dict):
            raise CorruptItemError(f"{path.name}: expected a JSON object")

        try:
            return InboxItem(
                id=str(data.get("id") or path.stem),
                project_id=project_id,
                raw_content=data["content"],
                created_at=_parse_created_at(data.get("created_at")),
                source_path=path,
                metadata=data.get("metadata") or {},
            )
        except (
            KeyError,
            ValueError,
            TypeError,
            OverflowError,
            OSError,
            PydanticValidationError,
        ) as e:
            # fromtimestamp raises OverflowError/OSError for out-of-range epochs
            raise CorruptItemError(f"{path.name}: {e}") from e

    async def load_item(self, path: Path, project_id: str) -> InboxItem:
        """Parse one item file. Raises CorruptItemError for unreadable files."""
        return await asyncio.to_thread(self._load_item, path, project_id)

    def _write_item_metadata(self, item: InboxItem, updates: dict[str, Any]) -> InboxItem:
        if item.source_path is None:
            raise StorageError(f"Item {item.id} has no source file")
        path = Path(item.source_path)
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            metadata = dict(data.get("metadata") or {})
            metadata.update(updates)
            data["metadata"] = metadata
            _atomic_write_json(path, data)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Cannot update metadata for {path.name}: {e}") from e

        logger.debug(f"Updated metadata of {item.id}: {sorted(updates)}")
        return item.model_copy(update={"metadata": metadata})

    async def write_item_metadata(self, item: InboxItem, updates: dict[str, Any]) -> InboxItem:
        """Merge workflow fields into an item file's metadata.

        Returns the item as it now reads on disk. ``raw_content`` is never
        touched.
        """
        return await asyncio.to_thread(self._write_item_metadata, item, updates)
