"""Notion API client wrapper for inbox item pages.

Handles all Notion API interactions with rate limiting, per-call
timeouts, bounded retries and data mapping between inbox items and
Notion page properties.
"""

import asyncio
import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

import httpx
from loguru import logger
from notion_client import AsyncClient
from notion_client.errors import HTTPResponseError, RequestTimeoutError

from ..classify.base import ClassificationResult
from ..db.schemas import InboxItem, ensure_utc
from ..errors import (
    AuthError,
    RemoteError,
    SyncError,
    TransientRemoteError,
    ValidationError,
)

# Page property names
PROP_TITLE = "Name"
PROP_TAGS = "Tags"
PROP_STATUS = "Status"
PROP_CONTENT = "Content"
PROP_FINGERPRINT = "Fingerprint"
PROP_ITEM_ID = "Item ID"
PROP_PROJECT = "Project"
PROP_CAPTURED = "Captured"

RESERVED_PROPERTIES = {
    PROP_TITLE,
    PROP_TAGS,
    PROP_STATUS,
    PROP_CONTENT,
    PROP_FINGERPRINT,
    PROP_ITEM_ID,
    PROP_PROJECT,
    PROP_CAPTURED,
}

DEFAULT_STATUS = "Not started"

# Notion limits: 2000 chars per rich text object, 100 objects per property
RICH_TEXT_LIMIT = 2000
MAX_RICH_TEXT_CHUNKS = 100


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


def _plain_text(prop: dict) -> str:
    key = prop.get("type") or ("title" if "title" in prop else "rich_text")
    return "".join(t.get("plain_text", "") for t in prop.get(key) or [])


def _select_name(prop: dict) -> Optional[str]:
    value = prop.get("select") or prop.get("status")
    return value.get("name") if value else None


@dataclass
class RemotePage:
    """A Notion page holding one synced inbox item."""

    remote_id: str
    database_id: Optional[str]
    properties: dict[str, Any]
    last_edited_at: Optional[datetime]
    created_at: Optional[datetime] = None
    url: Optional[str] = None

    @classmethod
    def from_api_response(cls, page: dict, database_id: Optional[str] = None) -> "RemotePage":
        """Create RemotePage from API response."""
        parent = page.get("parent", {})
        return cls(
            remote_id=page["id"],
            database_id=database_id
            or parent.get("data_source_id")
            or parent.get("database_id"),
            properties=page.get("properties", {}),
            last_edited_at=_parse_time(page.get("last_edited_time")),
            created_at=_parse_time(page.get("created_time")),
            url=page.get("url"),
        )

    @property
    def title(self) -> str:
        for prop in self.properties.values():
            if prop.get("type") == "title" or "title" in prop:
                return _plain_text(prop)
        return ""

    @property
    def status(self) -> Optional[str]:
        return _select_name(self.properties.get(PROP_STATUS, {}))

    @property
    def tags(self) -> list[str]:
        options = self.properties.get(PROP_TAGS, {}).get("multi_select") or []
        return [opt.get("name", "") for opt in options]

    @property
    def content(self) -> str:
        return _plain_text(self.properties.get(PROP_CONTENT, {}))

    @property
    def fingerprint(self) -> Optional[str]:
        return _plain_text(self.properties.get(PROP_FINGERPRINT, {})) or None

    @property
    def item_id(self) -> Optional[str]:
        return _plain_text(self.properties.get(PROP_ITEM_ID, {})) or None


@dataclass
class DatabaseRef:
    """A Notion database (data source) the token can reach."""

    id: str
    title: str
    url: Optional[str] = None

    @classmethod
    def from_api_response(cls, data: dict) -> "DatabaseRef":
        title = "".join(t.get("plain_text", "") for t in data.get("title") or [])
        return cls(id=data["id"], title=title or "Untitled", url=data.get("url"))


# ============================================================================
# Property mapping
# ============================================================================


def _rich_text(value: str) -> list[dict]:
    chunks = [
        value[i : i + RICH_TEXT_LIMIT] for i in range(0, len(value), RICH_TEXT_LIMIT)
    ][:MAX_RICH_TEXT_CHUNKS]
    return [{"text": {"content": chunk}} for chunk in chunks]


def _option(value: Any) -> dict:
    # Select option names cannot contain commas
    return {"name": str(value).replace(",", " ")[:100]}


def _extra_property(value: Any) -> Optional[dict]:
    if isinstance(value, bool):
        return {"checkbox": value}
    if isinstance(value, (int, float)):
        return {"number": value}
    if isinstance(value, str) and value:
        return {"select": _option(value)}
    if isinstance(value, (list, tuple)):
        return {"multi_select": [_option(v) for v in value if str(v)]}
    return None


def build_properties(
    item: InboxItem,
    fingerprint: str,
    classification: ClassificationResult,
    project_name: Optional[str] = None,
    create: bool = True,
) -> dict[str, Any]:
    """Convert an item and its classification to Notion properties format.

    Status is only set on create: once a page exists its workflow status
    belongs to the workspace.
    """
    props: dict[str, Any] = {
        PROP_TITLE: {"title": [{"text": {"content": classification.title[:RICH_TEXT_LIMIT]}}]},
        PROP_TAGS: {"multi_select": [_option(tag) for tag in classification.tags]},
        PROP_CONTENT: {"rich_text": _rich_text(item.raw_content)},
        PROP_FINGERPRINT: {"rich_text": [{"text": {"content": fingerprint}}]},
        PROP_ITEM_ID: {"rich_text": [{"text": {"content": item.id}}]},
        PROP_CAPTURED: {"date": {"start": item.created_at.isoformat()}},
    }

    if project_name:
        props[PROP_PROJECT] = {"select": _option(project_name)}

    if create:
        props[PROP_STATUS] = {"select": {"name": DEFAULT_STATUS}}

    for name, value in classification.properties.items():
        if name in RESERVED_PROPERTIES:
            continue
        prop = _extra_property(value)
        if prop is not None:
            props[name] = prop

    return props


# ============================================================================
# Errors and retry
# ============================================================================


def _retry_after(headers: Any) -> Optional[float]:
    if not headers:
        return None
    value = headers.get("retry-after") or headers.get("Retry-After")
    try:
        return float(value) if value is not None else None
    except ValueError:
        return None


def translate_error(exc: BaseException) -> SyncError:
    """Map SDK and transport exceptions onto the sync error taxonomy."""
    if isinstance(exc, SyncError):
        return exc

    if isinstance(exc, HTTPResponseError):
        status = exc.status
        message = f"Notion API error {status}: {exc}"
        if status == 401:
            return AuthError("Notion token is invalid or revoked", status=status)
        if status in (409, 429) or status >= 500:
            return TransientRemoteError(
                message, status=status, retry_after=_retry_after(getattr(exc, "headers", None))
            )
        return RemoteError(message, status=status)

    if isinstance(exc, (RequestTimeoutError, asyncio.TimeoutError)):
        return TransientRemoteError("Notion request timed out")

    if isinstance(exc, httpx.TransportError):
        return TransientRemoteError(f"Network error: {exc}")

    return RemoteError(f"Unexpected Notion client error: {exc}")


@dataclass
class RetryPolicy:
    """Bounded exponential backoff with jitter."""

    max_attempts: int = 5
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter: float = 0.1  # fraction of the computed delay
    rand: Callable[[], float] = field(default=random.random, repr=False)

    def delay_for(self, attempt: int, retry_after: Optional[float] = None) -> float:
        """Delay before retrying after the given (1-based) failed attempt."""
        backoff = self.base_delay * (2 ** (attempt - 1))
        backoff += backoff * self.jitter * self.rand()
        if retry_after is not None:
            backoff = max(backoff, retry_after)
        return min(backoff, self.max_delay)


_TRANSLATED = (
    SyncError,
    HTTPResponseError,
    RequestTimeoutError,
    asyncio.TimeoutError,
    httpx.TransportError,
)


# ============================================================================
# Client
# ============================================================================


class RemoteWorkspaceClient:
    """Client for the Notion databases inbox items are synced into."""

    def __init__(
        self,
        token: Optional[str],
        retry: Optional[RetryPolicy] = None,
        request_timeout: float = 30.0,
        min_request_interval: float = 0.35,
        client: Optional[Any] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize Notion client.

        Args:
            token: Notion integration token
            retry: Retry policy for transient failures
            request_timeout: Timeout in seconds for each API call
            min_request_interval: Minimum spacing between calls (~3 req/s)
            client: Pre-built AsyncClient, mainly for tests
            sleep: Awaitable used for backoff and throttle delays
        """
        if not token and client is None:
            raise ValidationError("NOTION_TOKEN not set")

        self.retry = retry or RetryPolicy()
        self.request_timeout = request_timeout
        self._client = client or AsyncClient(auth=token, timeout_ms=int(request_timeout * 1000))
        self._sleep = sleep
        self._min_request_interval = min_request_interval
        self._last_request_time = 0.0
        self._throttle_lock = asyncio.Lock()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _throttle(self) -> None:
        """Enforce spacing between requests."""
        if self._min_request_interval <= 0:
            return
        async with self._throttle_lock:
            loop = asyncio.get_running_loop()
            elapsed = loop.time() - self._last_request_time
            if elapsed < self._min_request_interval:
                await self._sleep(self._min_request_interval - elapsed)
            self._last_request_time = loop.time()

    async def _call(self, label: str, fn: Callable[..., Awaitable[Any]], **kwargs) -> Any:
        """Run one API call with throttling, a timeout and bounded retries."""
        attempt = 0
        while True:
            attempt += 1
            await self._throttle()
            try:
                return await asyncio.wait_for(fn(**kwargs), timeout=self.request_timeout)
            except _TRANSLATED as e:
                error = translate_error(e)
                terminal = not isinstance(error, TransientRemoteError)
                if not terminal and attempt >= self.retry.max_attempts:
                    error.attempts = attempt
                    logger.error(f"Notion {label} failed after {attempt} attempts: {error}")
                    terminal = True
                if terminal:
                    if error is e:
                        raise
                    raise error from e

                delay = self.retry.delay_for(attempt, error.retry_after)
                logger.warning(
                    f"Notion {label} attempt {attempt}/{self.retry.max_attempts} failed "
                    f"({error}). Retrying in {delay:.1f}s..."
                )
                await self._sleep(delay)

    # ========================================================================
    # Write Operations
    # ========================================================================

    async def upsert(
        self,
        database_id: str,
        fingerprint: str,
        classification: ClassificationResult,
        *,
        item: InboxItem,
        project_name: Optional[str] = None,
        remote_id: Optional[str] = None,
        check_existing: bool = False,
    ) -> RemotePage:
        """Create or update the page for a fingerprint.

        Args:
            database_id: Target data source ID
            fingerprint: Idempotency key of the item
            classification: Title, tags and properties for the page
            item: The inbox item being synced
            project_name: Value for the Project property
            remote_id: Existing page to update, if known
            check_existing: Look the fingerprint up remotely before creating

        Returns:
            The created or updated page
        """
        if not remote_id and check_existing:
            existing = await self.find_page(database_id, fingerprint)
            if existing is not None:
                logger.info(f"Found existing page {existing.remote_id} for item {item.id}")
                remote_id = existing.remote_id

        if remote_id:
            properties = build_properties(
                item, fingerprint, classification, project_name, create=False
            )
            response = await self._call(
                "update", self._client.pages.update, page_id=remote_id, properties=properties
            )
        else:
            properties = build_properties(
                item, fingerprint, classification, project_name, create=True
            )
            response = await self._call(
                "create",
                self._client.pages.create,
                parent={"data_source_id": database_id},
                properties=properties,
            )

        return RemotePage.from_api_response(response, database_id)

    # ========================================================================
    # Query Operations
    # ========================================================================

    async def find_page(self, database_id: str, fingerprint: str) -> Optional[RemotePage]:
        """Find the page carrying a fingerprint, if any."""
        response = await self._call(
            "query",
            self._client.data_sources.query,
            data_source_id=database_id,
            page_size=1,
            filter={"property": PROP_FINGERPRINT, "rich_text": {"equals": fingerprint}},
        )
        results = response.get("results", [])
        if not results:
            return None
        return RemotePage.from_api_response(results[0], database_id)

    async def list_pages(
        self,
        database_id: str,
        since: Optional[datetime] = None,
        page_size: int = 100,
    ) -> AsyncIterator[RemotePage]:
        """Yield pages edited at or after ``since``, oldest edit first.

        Notion reports ``last_edited_time`` to the minute, so pages from the
        watermark minute are listed again; callers drop the ones already
        applied. Follows continuation cursors until the result set is
        exhausted.
        """
        start_cursor: Optional[str] = None

        while True:
            kwargs: dict[str, Any] = {
                "data_source_id": database_id,
                "page_size": page_size,
                "sorts": [{"timestamp": "last_edited_time", "direction": "ascending"}],
            }
            if since is not None:
                kwargs["filter"] = {
                    "timestamp": "last_edited_time",
                    "last_edited_time": {"on_or_after": since.isoformat()},
                }
            if start_cursor:
                kwargs["start_cursor"] = start_cursor

            response = await self._call("query", self._client.data_sources.query, **kwargs)

            for page in response.get("results", []):
                if page.get("object", "page") == "page":
                    yield RemotePage.from_api_response(page, database_id)

            if not response.get("has_more"):
                break

            start_cursor = response.get("next_cursor")
            if not start_cursor:
                break

    async def list_databases(self) -> list[DatabaseRef]:
        """List every database (data source) shared with the integration."""
        databases = []
        start_cursor: Optional[str] = None

        while True:
            kwargs: dict[str, Any] = {
                "filter": {"property": "object", "value": "data_source"},
                "page_size": 100,
            }
            if start_cursor:
                kwargs["start_cursor"] = start_cursor

            response = await self._call("search", self._client.search, **kwargs)

            for result in response.get("results", []):
                databases.append(DatabaseRef.from_api_response(result))

            if not response.get("has_more") or not response.get("next_cursor"):
                break
            start_cursor = response.get("next_cursor")

        return databases
