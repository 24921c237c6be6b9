"""Configuration management for inboxsync.

Loads configuration from environment variables and provides defaults.
Core components receive a ``Config`` explicitly; the module-level
instance is only a convenience for the CLI and tests.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env file if present
load_dotenv()

KNOWN_PROVIDERS = ("anthropic", "gemini")


def _optional_float(value: Optional[str]) -> Optional[float]:
    if value is None or value.strip() == "":
        return None
    return float(value)


@dataclass
class Config:
    """Application configuration."""

    # Storage
    data_dir: Path
    db_path: Path

    # Notion
    notion_token: Optional[str] = field(default=None, repr=False)
    notion_database_id: Optional[str] = None

    # AI providers
    anthropic_api_key: Optional[str] = field(default=None, repr=False)
    gemini_api_key: Optional[str] = field(default=None, repr=False)
    ai_provider_priority: list[str] = field(default_factory=lambda: list(KNOWN_PROVIDERS))
    anthropic_model: str = "claude-sonnet-4-20250514"
    gemini_model: str = "gemini-1.5-pro"

    # Classifier budget
    classifier_max_calls: int = 50  # per run
    classifier_max_per_minute: int = 30
    classifier_timeout: float = 30.0  # seconds

    # Sync
    sync_retry_max: int = 5
    sync_retry_base_delay: float = 1.0  # seconds
    sync_retry_max_delay: float = 30.0  # seconds
    request_timeout: float = 30.0  # seconds, per remote call
    min_request_interval: float = 0.35  # ~3 requests per second (Notion limit)
    run_timeout: Optional[float] = None  # seconds, whole run
    max_parallel_projects: int = 4

    # Stats cache
    stats_ttl: int = 60  # seconds

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        data_dir = Path(
            os.environ.get(
                "INBOXSYNC_DATA_DIR",
                str(Path.home() / ".notion-sync-manager"),
            )
        ).expanduser()
        db_path = Path(
            os.environ.get("INBOXSYNC_DB_PATH", str(data_dir / "ledger.db"))
        ).expanduser()

        priority = [
            name.strip().lower()
            for name in os.environ.get("INBOXSYNC_AI_PROVIDERS", ",".join(KNOWN_PROVIDERS)).split(",")
            if name.strip()
        ]

        return cls(
            data_dir=data_dir,
            db_path=db_path,
            notion_token=os.environ.get("NOTION_TOKEN") or os.environ.get("NOTION_API_KEY"),
            notion_database_id=os.environ.get("NOTION_DATABASE_ID"),
            anthropic_api_key=os.environ.get("ANTHROPIC_API_KEY"),
            gemini_api_key=os.environ.get("GEMINI_API_KEY"),
            ai_provider_priority=priority,
            anthropic_model=os.environ.get("INBOXSYNC_ANTHROPIC_MODEL", "claude-sonnet-4-20250514"),
            gemini_model=os.environ.get("INBOXSYNC_GEMINI_MODEL", "gemini-1.5-pro"),
            classifier_max_calls=int(os.environ.get("INBOXSYNC_CLASSIFIER_MAX_CALLS", "50")),
            classifier_max_per_minute=int(
                os.environ.get("INBOXSYNC_CLASSIFIER_MAX_PER_MINUTE", "30")
            ),
            classifier_timeout=float(os.environ.get("INBOXSYNC_CLASSIFIER_TIMEOUT", "30")),
            sync_retry_max=int(os.environ.get("INBOXSYNC_SYNC_RETRY_MAX", "5")),
            sync_retry_base_delay=float(os.environ.get("INBOXSYNC_SYNC_RETRY_DELAY", "1.0")),
            sync_retry_max_delay=float(
                os.environ.get("INBOXSYNC_SYNC_RETRY_MAX_DELAY", "30.0")
            ),
            request_timeout=float(os.environ.get("INBOXSYNC_REQUEST_TIMEOUT", "30")),
            min_request_interval=float(
                os.environ.get("INBOXSYNC_MIN_REQUEST_INTERVAL", "0.35")
            ),
            run_timeout=_optional_float(os.environ.get("INBOXSYNC_RUN_TIMEOUT")),
            max_parallel_projects=int(os.environ.get("INBOXSYNC_MAX_PARALLEL_PROJECTS", "4")),
            stats_ttl=int(os.environ.get("INBOXSYNC_STATS_TTL", "60")),
            log_level=os.environ.get("INBOXSYNC_LOG_LEVEL", "INFO").upper(),
        )

    def validate(self) -> list[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if not self.data_dir.exists():
            try:
                self.data_dir.mkdir(parents=True, exist_ok=True)
            except PermissionError:
                errors.append(f"Cannot create data directory: {self.data_dir}")

        unknown = [name for name in self.ai_provider_priority if name not in KNOWN_PROVIDERS]
        if unknown:
            errors.append(f"Unknown AI providers: {', '.join(unknown)}")

        if self.sync_retry_max < 1:
            errors.append("INBOXSYNC_SYNC_RETRY_MAX must be at least 1")
        if self.max_parallel_projects < 1:
            errors.append("INBOXSYNC_MAX_PARALLEL_PROJECTS must be at least 1")
        if self.run_timeout is not None and self.run_timeout <= 0:
            errors.append("INBOXSYNC_RUN_TIMEOUT must be positive")

        return errors

    def has_notion_config(self) -> bool:
        """Check if Notion configuration is present."""
        return bool(self.notion_token and self.notion_database_id)

    def configured_providers(self) -> list[str]:
        """Provider names that have an API key, in priority order."""
        keys = {
            "anthropic": self.anthropic_api_key,
            "gemini": self.gemini_api_key,
        }
        return [
            name
            for name in self.ai_provider_priority
            if name in keys and keys[name] and keys[name].strip()
        ]


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create the global config instance."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def reset_config() -> None:
    """Reset the global config instance. Used for testing."""
    global _config
    _config = None
