"""Tests for the CLI interface."""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from inboxsync.cli import app
from inboxsync.db.sqlite import reset_db
from inboxsync.errors import AuthError


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def env_data(tmp_path: Path) -> Path:
    """Data directory the CLI reads through INBOXSYNC_DATA_DIR."""
    path = tmp_path / "env-data"
    path.mkdir(exist_ok=True)
    yield path
    reset_db()


@pytest.fixture
def cli_project(env_data: Path) -> Path:
    """One project with one inbox item under the CLI data directory."""
    (env_data / "projects.json").write_text(
        json.dumps([{"id": "alpha", "name": "Alpha", "slug": "a"}])
    )
    inbox = env_data / "inbox" / "alpha"
    inbox.mkdir(parents=True)
    (inbox / "i1.json").write_text(
        json.dumps({"id": "i1", "content": "Buy milk", "created_at": "2025-01-20T10:00:00+00:00"})
    )
    return env_data


@pytest.fixture
def notion_env(monkeypatch, fake_remote):
    """Configure Notion and route the engine to the fake workspace."""
    monkeypatch.setenv("NOTION_TOKEN", "secret_test")
    monkeypatch.setenv("NOTION_DATABASE_ID", "db-default")
    monkeypatch.setenv("INBOXSYNC_SYNC_RETRY_DELAY", "0")
    monkeypatch.setattr("inboxsync.engine.RemoteWorkspaceClient", lambda *a, **kw: fake_remote)
    return fake_remote


class TestCLIBasics:
    """Tests for basic CLI functionality."""

    def test_help(self, runner: CliRunner):
        """Test that help command works."""
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "Notion" in result.stdout

    def test_status_without_notion(self, runner: CliRunner, env_data):
        result = runner.invoke(app, ["status"])
        assert result.exit_code == 0
        assert "not configured" in result.stdout
        assert "No projects configured" in result.stdout

    def test_status_lists_projects(self, runner: CliRunner, cli_project):
        result = runner.invoke(app, ["status"])
        assert result.exit_code == 0
        assert "Alpha" in result.stdout


class TestRunCommand:
    """Tests for the run command."""

    def test_run_requires_token(self, runner: CliRunner, cli_project):
        result = runner.invoke(app, ["run"])
        assert result.exit_code == 1
        assert "NOTION_TOKEN" in result.stdout

    def test_run_syncs(self, runner: CliRunner, cli_project, notion_env):
        result = runner.invoke(app, ["run", "--project", "a"])

        assert result.exit_code == 0
        assert "Synced 1 items" in result.stdout
        assert notion_env.created == 1

    def test_run_twice_skips(self, runner: CliRunner, cli_project, notion_env):
        runner.invoke(app, ["run"])
        result = runner.invoke(app, ["run"])

        assert result.exit_code == 0
        assert "Synced 0 items" in result.stdout
        assert notion_env.created == 1

    def test_run_auth_failure(self, runner: CliRunner, cli_project, notion_env):
        notion_env.fail_all = AuthError("Notion token is invalid or revoked", status=401)

        result = runner.invoke(app, ["run"])

        assert result.exit_code == 2
        assert "NOTION_TOKEN" in result.stdout

    def test_run_unknown_project(self, runner: CliRunner, cli_project, notion_env):
        result = runner.invoke(app, ["run", "-p", "ghost"])
        assert result.exit_code == 1
        assert "Unknown project" in result.stdout

    def test_run_dry_run(self, runner: CliRunner, cli_project, notion_env):
        result = runner.invoke(app, ["run", "--dry-run"])

        assert result.exit_code == 0
        assert "DRY RUN" in result.stdout
        assert "Would create alpha/i1: Buy milk" in result.stdout
        assert "Would sync 1 items" in result.stdout
        assert notion_env.upserts == []

        logs = runner.invoke(app, ["logs"])
        assert "No activity yet" in logs.stdout

        real = runner.invoke(app, ["run"])
        assert "Synced 1 items" in real.stdout
        assert notion_env.created == 1

    def test_run_no_projects(self, runner: CliRunner, env_data, notion_env):
        result = runner.invoke(app, ["run"])
        assert result.exit_code == 0
        assert "No active projects" in result.stdout


class TestReportingCommands:
    """Tests for stats, logs, reverse and databases."""

    def test_stats_after_run(self, runner: CliRunner, cli_project, notion_env):
        runner.invoke(app, ["run"])

        result = runner.invoke(app, ["stats", "alpha", "--refresh"])

        assert result.exit_code == 0
        assert "Synced:" in result.stdout
        assert "1" in result.stdout

    def test_stats_unknown_project(self, runner: CliRunner, env_data):
        result = runner.invoke(app, ["stats", "ghost"])
        assert result.exit_code == 1

    def test_logs_empty(self, runner: CliRunner, env_data):
        result = runner.invoke(app, ["logs"])
        assert result.exit_code == 0
        assert "No activity yet" in result.stdout

    def test_logs_after_run(self, runner: CliRunner, cli_project, notion_env):
        runner.invoke(app, ["run"])
        result = runner.invoke(app, ["logs", "--project", "alpha"])
        assert result.exit_code == 0
        assert "alpha" in result.stdout

    def test_reverse(self, runner: CliRunner, cli_project, notion_env):
        runner.invoke(app, ["run"])
        remote_id = notion_env.upserts[0]["remote_id"]
        notion_env.edit(remote_id, status="Done")

        result = runner.invoke(app, ["reverse", "alpha"])

        assert result.exit_code == 0
        assert "Pulled: 1" in result.stdout
        item = json.loads((cli_project / "inbox" / "alpha" / "i1.json").read_text())
        assert item["metadata"]["status"] == "Done"

    def test_reverse_dry_run(self, runner: CliRunner, cli_project, notion_env):
        runner.invoke(app, ["run"])
        notion_env.edit(notion_env.upserts[0]["remote_id"], status="Done")

        result = runner.invoke(app, ["reverse", "alpha", "-n"])

        assert result.exit_code == 0
        assert "Pulled: 1" in result.stdout
        item = json.loads((cli_project / "inbox" / "alpha" / "i1.json").read_text())
        assert "status" not in item.get("metadata", {})

    def test_databases_requires_token(self, runner: CliRunner, env_data):
        result = runner.invoke(app, ["databases"])
        assert result.exit_code == 1
