"""Inbox scanning.

Each scan re-reads the project's inbox directory; nothing is cached
between calls, so a scan can be repeated at any time.
"""

from typing import Callable, Optional, Union

from loguru import logger

from ..db.schemas import InboxItem, Project
from ..errors import CorruptItemError, ValidationError
from ..storage.local import LocalStore

WarningCallback = Callable[[str], None]


class InboxScanner:
    """Enumerates a project's inbox items, oldest first."""

    def __init__(self, store: LocalStore):
        self.store = store

    async def _resolve(self, project: Union[Project, str]) -> Project:
        if isinstance(project, Project):
            return project
        resolved = await self.store.get_project(project)
        if resolved is None:
            raise ValidationError(f"Unknown project: {project}")
        return resolved

    async def scan(
        self,
        project: Union[Project, str],
        on_warning: Optional[WarningCallback] = None,
    ) -> list[InboxItem]:
        """Read a project's inbox.

        Args:
            project: Project, or its id/slug/name
            on_warning: Called with a message for every skipped item file

        Returns:
            Items ordered by created_at ascending, ties broken by id

        Raises:
            StorageError: If the inbox itself cannot be read
        """
        project = await self._resolve(project)
        items: list[InboxItem] = []

        for path in await self.store.list_inbox_files(project):
            try:
                items.append(await self.store.load_item(path, project.id))
            except CorruptItemError as e:
                message = f"Skipped unreadable item in {project.id}: {e}"
                logger.warning(message)
                if on_warning:
                    on_warning(message)

        items.sort(key=lambda item: (item.created_at, item.id))
        logger.debug(f"Scanned {len(items)} items for project {project.id}")
        return items
