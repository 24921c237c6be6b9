"""Pytest configuration and shared fixtures.

This module provides fixtures for testing inboxsync, including a
temporary ledger database, a temporary data directory with projects and
inbox items, a fake Notion workspace and fake AI providers.
"""

import asyncio
import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Generator, Optional
from uuid import uuid4

import pytest

from inboxsync.classify.base import ClassificationResult
from inboxsync.classify.classifier import Classifier
from inboxsync.config import Config, reset_config
from inboxsync.db.ledger import DedupLedger
from inboxsync.db.sqlite import Database, reset_db
from inboxsync.inbox.scanner import InboxScanner
from inboxsync.storage.local import LocalStore
from inboxsync.sync.notion import DEFAULT_STATUS, RemotePage
from inboxsync.sync.processor import SyncProcessor

BASE_TIME = datetime(2025, 1, 20, 10, 0, tzinfo=timezone.utc)


# ============================================================================
# Notion page helpers
# ============================================================================


def _text_prop(kind: str, value: Optional[str]) -> dict:
    parts = [{"plain_text": value, "text": {"content": value}}] if value else []
    return {"type": kind, kind: parts}


def page_response(
    remote_id: str,
    *,
    title: str = "",
    status: Optional[str] = DEFAULT_STATUS,
    tags: Optional[list[str]] = None,
    content: str = "",
    fingerprint: Optional[str] = None,
    item_id: Optional[str] = None,
    edited_at: datetime = BASE_TIME,
) -> dict:
    """Build a page object shaped like the Notion API returns it."""
    return {
        "object": "page",
        "id": remote_id,
        "url": f"https://www.notion.so/{remote_id.replace('-', '')}",
        "created_time": BASE_TIME.isoformat().replace("+00:00", "Z"),
        "last_edited_time": edited_at.isoformat().replace("+00:00", "Z"),
        "parent": {"type": "data_source_id", "data_source_id": "db-default"},
        "properties": {
            "Name": _text_prop("title", title),
            "Status": {"type": "select", "select": {"name": status} if status else None},
            "Tags": {
                "type": "multi_select",
                "multi_select": [{"name": t} for t in (tags or [])],
            },
            "Content": _text_prop("rich_text", content),
            "Fingerprint": _text_prop("rich_text", fingerprint),
            "Item ID": _text_prop("rich_text", item_id),
        },
    }


class FakeRemote:
    """In-memory stand-in for RemoteWorkspaceClient."""

    def __init__(self) -> None:
        self.pages: dict[str, dict] = {}
        self.upserts: list[dict[str, Any]] = []
        self.fail_items: dict[str, Exception] = {}
        self.fail_all: Optional[Exception] = None
        self.list_error: Optional[Exception] = None
        self._tick = 0

    def _now(self) -> datetime:
        self._tick += 1
        return BASE_TIME + timedelta(minutes=self._tick)

    @property
    def created(self) -> int:
        return sum(1 for call in self.upserts if call["created"])

    async def upsert(
        self,
        database_id,
        fingerprint,
        classification,
        *,
        item,
        project_name=None,
        remote_id=None,
        check_existing=False,
    ) -> RemotePage:
        if self.fail_all is not None:
            raise self.fail_all
        if item.id in self.fail_items:
            raise self.fail_items[item.id]

        if not remote_id and check_existing:
            existing = await self.find_page(database_id, fingerprint)
            if existing is not None:
                remote_id = existing.remote_id

        created = remote_id is None
        remote_id = remote_id or str(uuid4())
        status = self.pages[remote_id]["status"] if not created else DEFAULT_STATUS
        self.pages[remote_id] = {
            "title": classification.title,
            "status": status,
            "tags": list(classification.tags),
            "content": item.raw_content,
            "fingerprint": fingerprint,
            "item_id": item.id,
            "edited_at": self._now(),
        }
        self.upserts.append(
            {
                "item_id": item.id,
                "database_id": database_id,
                "title": classification.title,
                "project_name": project_name,
                "created": created,
                "remote_id": remote_id,
            }
        )
        return self.page(remote_id)

    def page(self, remote_id: str) -> RemotePage:
        data = self.pages[remote_id]
        return RemotePage.from_api_response(
            page_response(
                remote_id,
                title=data["title"],
                status=data["status"],
                tags=data["tags"],
                content=data["content"],
                fingerprint=data["fingerprint"],
                item_id=data["item_id"],
                edited_at=data["edited_at"],
            ),
            "db-default",
        )

    def edit(self, remote_id: str, edited_at: Optional[datetime] = None, **changes) -> None:
        """Simulate a human edit in Notion."""
        self.pages[remote_id].update(changes)
        self.pages[remote_id]["edited_at"] = edited_at or self._now()

    async def find_page(self, database_id, fingerprint) -> Optional[RemotePage]:
        for remote_id, data in self.pages.items():
            if data["fingerprint"] == fingerprint:
                return self.page(remote_id)
        return None

    async def list_pages(self, database_id, since=None, page_size=100):
        if self.list_error is not None:
            raise self.list_error
        ordered = sorted(self.pages, key=lambda rid: self.pages[rid]["edited_at"])
        for remote_id in ordered:
            if since is None or self.pages[remote_id]["edited_at"] >= since:
                yield self.page(remote_id)

    async def list_databases(self):
        return []

    async def aclose(self) -> None:
        pass


class FakeProvider:
    """AI provider double returning a fixed result or raising."""

    def __init__(
        self,
        name: str = "fake",
        result: Optional[ClassificationResult] = None,
        error: Optional[Exception] = None,
        delay: float = 0.0,
    ):
        self.name = name
        self.result = result or ClassificationResult(title=f"{name} title", tags=["ai"], provider=name)
        self.error = error
        self.delay = delay
        self.calls: list[str] = []

    async def classify(self, content: str) -> ClassificationResult:
        self.calls.append(content)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture(scope="function")
def temp_db_path(tmp_path: Path) -> Path:
    """Temporary database file path."""
    return tmp_path / "ledger.db"


@pytest.fixture(scope="function")
def db(temp_db_path: Path) -> Generator[Database, None, None]:
    """Create a test database instance."""
    # Reset any global state
    reset_db()
    reset_config()

    database = Database(str(temp_db_path))
    database.create_tables()
    yield database

    database.dispose()
    reset_db()


@pytest.fixture
def ledger(db: Database) -> DedupLedger:
    return DedupLedger(db, stats_ttl=60)


# ============================================================================
# Local Storage Fixtures
# ============================================================================


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def store(data_dir: Path) -> LocalStore:
    return LocalStore(data_dir)


@pytest.fixture
def write_projects(data_dir: Path) -> Callable[[list[dict]], Path]:
    """Write projects.json and return its path."""

    def _write(projects: list[dict]) -> Path:
        path = data_dir / "projects.json"
        path.write_text(json.dumps(projects), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def write_item(data_dir: Path) -> Callable[..., Path]:
    """Write one inbox item file and return its path."""

    def _write(
        project_id: str,
        item_id: str,
        content: str,
        created_at: datetime = BASE_TIME,
        metadata: Optional[dict] = None,
    ) -> Path:
        inbox = data_dir / "inbox" / project_id
        inbox.mkdir(parents=True, exist_ok=True)
        path = inbox / f"{item_id}.json"
        payload = {
            "id": item_id,
            "content": content,
            "created_at": created_at.isoformat(),
            "metadata": metadata or {},
        }
        path.write_text(json.dumps(payload), encoding="utf-8")
        return path

    return _write


# ============================================================================
# Engine Fixtures
# ============================================================================


@pytest.fixture
def config(data_dir: Path, temp_db_path: Path) -> Config:
    """Config with fast retries and no throttling."""
    return Config(
        data_dir=data_dir,
        db_path=temp_db_path,
        notion_token="secret_test",
        notion_database_id="db-default",
        ai_provider_priority=[],
        sync_retry_base_delay=0.0,
        min_request_interval=0.0,
    )


@pytest.fixture
def fake_remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def fake_provider_factory() -> Callable[..., FakeProvider]:
    return FakeProvider


@pytest.fixture
def classifier() -> Classifier:
    """Classifier with no providers: passthrough only."""
    return Classifier([])


@pytest.fixture
def scanner(store: LocalStore) -> InboxScanner:
    return InboxScanner(store)


@pytest.fixture
def processor(config, store, ledger, fake_remote, classifier) -> SyncProcessor:
    return SyncProcessor(config, store, ledger, fake_remote, classifier)


@pytest.fixture
def api_page() -> Callable[..., dict]:
    """Factory for Notion API page objects."""
    return page_response


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch, tmp_path: Path) -> Generator[None, None, None]:
    """Keep tests away from the real ~/.notion-sync-manager and .env values."""
    for key in (
        "NOTION_TOKEN",
        "NOTION_API_KEY",
        "NOTION_DATABASE_ID",
        "ANTHROPIC_API_KEY",
        "GEMINI_API_KEY",
        "INBOXSYNC_AI_PROVIDERS",
        "INBOXSYNC_RUN_TIMEOUT",
    ):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("INBOXSYNC_DATA_DIR", str(tmp_path / "env-data"))
    reset_config()
    yield
    reset_config()
