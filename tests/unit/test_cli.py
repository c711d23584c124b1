from unittest.mock import patch
from typer.testing import CliRunner

from apps.api.cli import app

runner = CliRunner()


class TestCli:

    def test_check_db_connected(self, storage):
        with patch("apps.api.main.create_storage", return_value=storage):
            result = runner.invoke(app, ["check-db"])
        assert result.exit_code == 0
        assert "connected" in result.stdout

    def test_check_db_disconnected(self, storage):
        with patch("apps.api.main.create_storage", return_value=storage), \
             patch.object(storage, "ping", return_value=False):
            result = runner.invoke(app, ["check-db"])
        assert result.exit_code == 1
        assert "disconnected" in result.stdout

    def test_init_db_creates_indexes(self, mongo_client, storage):
        storage.reports.drop_indexes()
        with patch("apps.api.main.create_storage", return_value=storage):
            result = runner.invoke(app, ["init-db"])
        assert result.exit_code == 0
        assert "reportId_1" in storage.reports.index_information()
