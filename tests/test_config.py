"""Tests for configuration loading."""

from pathlib import Path

from inboxsync.config import Config, get_config, reset_config


class TestConfigFromEnv:
    """Tests for Config.from_env."""

    def test_defaults(self, monkeypatch, tmp_path):
        monkeypatch.setenv("INBOXSYNC_DATA_DIR", str(tmp_path))
        config = Config.from_env()

        assert config.data_dir == tmp_path
        assert config.db_path == tmp_path / "ledger.db"
        assert config.ai_provider_priority == ["anthropic", "gemini"]
        assert config.sync_retry_max == 5
        assert config.min_request_interval == 0.35
        assert config.run_timeout is None
        assert config.notion_token is None

    def test_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("INBOXSYNC_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("INBOXSYNC_DB_PATH", str(tmp_path / "other.db"))
        monkeypatch.setenv("NOTION_TOKEN", "secret_abc")
        monkeypatch.setenv("NOTION_DATABASE_ID", "db-1")
        monkeypatch.setenv("INBOXSYNC_AI_PROVIDERS", "Gemini, anthropic")
        monkeypatch.setenv("INBOXSYNC_RUN_TIMEOUT", "12.5")
        monkeypatch.setenv("INBOXSYNC_SYNC_RETRY_MAX", "3")

        config = Config.from_env()

        assert config.db_path == tmp_path / "other.db"
        assert config.notion_token == "secret_abc"
        assert config.has_notion_config()
        assert config.ai_provider_priority == ["gemini", "anthropic"]
        assert config.run_timeout == 12.5
        assert config.sync_retry_max == 3

    def test_blank_run_timeout_means_none(self, monkeypatch):
        monkeypatch.setenv("INBOXSYNC_RUN_TIMEOUT", "  ")
        assert Config.from_env().run_timeout is None

    def test_secrets_not_in_repr(self, tmp_path):
        config = Config(
            data_dir=tmp_path,
            db_path=tmp_path / "l.db",
            notion_token="secret_hidden",
            anthropic_api_key="sk-ant-hidden",
        )
        assert "secret_hidden" not in repr(config)
        assert "sk-ant-hidden" not in repr(config)


class TestConfigChecks:
    """Tests for validation helpers."""

    def test_configured_providers_follow_priority(self, tmp_path):
        config = Config(
            data_dir=tmp_path,
            db_path=tmp_path / "l.db",
            anthropic_api_key="a",
            gemini_api_key="g",
            ai_provider_priority=["gemini", "anthropic"],
        )
        assert config.configured_providers() == ["gemini", "anthropic"]

    def test_providers_without_key_are_dropped(self, tmp_path):
        config = Config(data_dir=tmp_path, db_path=tmp_path / "l.db", gemini_api_key="  ")
        assert config.configured_providers() == []

    def test_validate_reports_problems(self, tmp_path):
        config = Config(
            data_dir=tmp_path / "new",
            db_path=tmp_path / "l.db",
            ai_provider_priority=["openai"],
            sync_retry_max=0,
        )
        errors = config.validate()

        assert any("openai" in e for e in errors)
        assert any("RETRY_MAX" in e for e in errors)
        assert (tmp_path / "new").exists()

    def test_validate_ok(self, tmp_path):
        assert Config(data_dir=tmp_path, db_path=tmp_path / "l.db").validate() == []


class TestGlobalConfig:
    """Tests for the global config instance."""

    def test_get_config_is_cached(self):
        assert get_config() is get_config()

    def test_reset_config(self, monkeypatch, tmp_path):
        first = get_config()
        monkeypatch.setenv("INBOXSYNC_DATA_DIR", str(tmp_path / "elsewhere"))
        reset_config()
        second = get_config()

        assert first is not second
        assert second.data_dir == Path(tmp_path / "elsewhere")
