"""Wires every sync component from one explicit Config."""

from dataclasses import dataclass
from typing import Optional

from .classify.classifier import Classifier, build_classifier
from .config import Config
from .db.ledger import DedupLedger
from .db.sqlite import Database
from .errors import ValidationError
from .inbox.scanner import InboxScanner
from .storage.local import LocalStore
from .sync.notion import RemoteWorkspaceClient, RetryPolicy
from .sync.processor import SyncProcessor
from .sync.reverse import ReverseSyncer


@dataclass
class SyncEngine:
    """The assembled core. Callers use ``processor``, ``reverser`` and ``ledger``."""

    config: Config
    database: Database
    ledger: DedupLedger
    store: LocalStore
    scanner: InboxScanner
    classifier: Classifier
    remote: Optional[RemoteWorkspaceClient] = None

    @classmethod
    def from_config(cls, config: Config) -> "SyncEngine":
        database = Database(config.db_path)
        database.create_tables()
        store = LocalStore(config.data_dir)

        remote = None
        if config.notion_token:
            remote = RemoteWorkspaceClient(
                config.notion_token,
                retry=RetryPolicy(
                    max_attempts=config.sync_retry_max,
                    base_delay=config.sync_retry_base_delay,
                    max_delay=config.sync_retry_max_delay,
                ),
                request_timeout=config.request_timeout,
                min_request_interval=config.min_request_interval,
            )

        return cls(
            config=config,
            database=database,
            ledger=DedupLedger(database, stats_ttl=config.stats_ttl),
            store=store,
            scanner=InboxScanner(store),
            classifier=build_classifier(config),
            remote=remote,
        )

    def _require_remote(self) -> RemoteWorkspaceClient:
        if self.remote is None:
            raise ValidationError("Notion not configured. Set NOTION_TOKEN.")
        return self.remote

    @property
    def processor(self) -> SyncProcessor:
        return SyncProcessor(
            self.config,
            self.store,
            self.ledger,
            self._require_remote(),
            self.classifier,
            scanner=self.scanner,
        )

    @property
    def reverser(self) -> ReverseSyncer:
        return ReverseSyncer(
            self.store,
            self.ledger,
            self._require_remote(),
            default_database_id=self.config.notion_database_id,
            scanner=self.scanner,
        )

    async def aclose(self) -> None:
        if self.remote is not None:
            await self.remote.aclose()
        await self.classifier.aclose()
        self.database.dispose()
