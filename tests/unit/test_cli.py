"""
Command Line Test Suite
=======================
"""

import json

import pytest
from click.testing import CliRunner

from main import cli
from feedrelay.database.connection import DatabaseConnection
from feedrelay.database.models import ContentItem
from feedrelay.storage.content_store import ContentStore


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "source": {"url": "https://example.com", "name": "example"},
        "feed": {"file_name": "feed.json"},
        "database": {"path": str(tmp_path / "data" / "cli.db")},
        "storage": {"output_dir": str(tmp_path / "output")},
        "logging": {"file_path": "", "console_logging": False},
        "run": {"lock_dir": str(tmp_path / "locks")},
    }), encoding="utf-8")
    return str(path)


class TestCli:
    def test_help_without_command(self):
        result = CliRunner().invoke(cli, [])
        assert result.exit_code == 0
        assert "check-config" in result.output

    def test_check_config(self, config_file):
        result = CliRunner().invoke(cli, ["--config", config_file, "check-config"])
        assert result.exit_code == 0
        assert "example" in result.output

    def test_check_config_reports_missing_keys(self, tmp_path):
        path = tmp_path / "partial.json"
        path.write_text(json.dumps({"source": {"url": "https://example.com"}}), encoding="utf-8")

        result = CliRunner().invoke(cli, ["--config", str(path), "check-config"])

        assert result.exit_code == 1
        assert "source.name" in result.output

    def test_init_db_then_show_items(self, config_file, tmp_path):
        runner = CliRunner()
        assert runner.invoke(cli, ["--config", config_file, "init-db"]).exit_code == 0

        db = DatabaseConnection(str(tmp_path / "data" / "cli.db"), pool_size=1)
        try:
            ContentStore(db).insert(ContentItem(
                content_hash="abc123def456",
                source="example",
                platform="wordpress",
                feed_type="article",
                guid="1",
                metadata={"title": "Stored post"},
                full_content={"title": "Stored post"},
            ))
        finally:
            db.close_all_connections()

        result = runner.invoke(cli, ["--config", config_file, "show-items", "--status", "pending"])

        assert result.exit_code == 0
        assert "Stored post" in result.output
        assert "pending: 1" in result.output

    def test_show_items_rejects_unknown_status(self, config_file):
        result = CliRunner().invoke(cli, ["--config", config_file, "show-items", "--status", "archived"])
        assert result.exit_code == 2
