"""Unit tests for CLI commands."""

import pytest
import typer
from typer.testing import CliRunner

from fitconnect.accounts import AccountService
from fitconnect.cli import app
from fitconnect.database import DatabaseManager
from fitconnect.posts import PostService

runner = CliRunner()


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "cli.db"


@pytest.fixture
def seeded_db(db_path):
    """File database with one account and one post."""
    db = DatabaseManager(db_path)
    db.initialize()
    with db.session() as session:
        account = AccountService(session).register("ana@example.com", "Ana", "hash")
        PostService(session).create_post(account.id, "Hello")
        account_id = account.id
    db.close()
    return db_path, account_id


class TestCLICommands:
    """Tests for CLI commands."""

    def test_cli_app_exists(self):
        """Test CLI app is defined."""
        assert isinstance(app, typer.Typer)

    def test_init_command(self, db_path):
        """Test init creates the database file."""
        result = runner.invoke(app, ["init", "--database", str(db_path)])

        assert result.exit_code == 0
        assert "Database created" in result.stdout
        assert db_path.exists()

    def test_init_command_existing(self, seeded_db):
        """Test init leaves an existing database alone without --force."""
        db_path, _ = seeded_db

        result = runner.invoke(app, ["init", "--database", str(db_path)])

        assert result.exit_code == 0
        assert "Database already exists" in result.stdout

    def test_init_command_force(self, seeded_db):
        """Test init --force recreates an empty database."""
        db_path, _ = seeded_db

        result = runner.invoke(app, ["init", "--database", str(db_path), "--force"])

        assert result.exit_code == 0
        db = DatabaseManager(db_path)
        db.initialize()
        assert db.table_counts()["accounts"] == 0
        db.close()

    def test_status_command(self, seeded_db):
        """Test status prints configuration and row counts."""
        db_path, _ = seeded_db

        result = runner.invoke(app, ["status", "--database", str(db_path)])

        assert result.exit_code == 0
        assert "Configuration" in result.stdout
        assert "Database Statistics" in result.stdout
        assert "Accounts" in result.stdout

    def test_feed_command(self, seeded_db):
        """Test feed prints the viewer's posts."""
        db_path, account_id = seeded_db

        result = runner.invoke(app, ["feed", str(account_id), "--database", str(db_path)])

        assert result.exit_code == 0
        assert "Feed for account" in result.stdout

    def test_feed_command_empty(self, db_path):
        """Test feed reports an empty feed."""
        db = DatabaseManager(db_path)
        db.initialize()
        with db.session() as session:
            account_id = AccountService(session).register("bo@example.com", "Bo", "hash").id
        db.close()

        result = runner.invoke(app, ["feed", str(account_id), "--database", str(db_path)])

        assert result.exit_code == 0
        assert "Feed is empty" in result.stdout

    def test_feed_command_unknown_account(self, seeded_db):
        """Test feed exits non-zero for a missing account."""
        db_path, _ = seeded_db

        result = runner.invoke(app, ["feed", "999", "--database", str(db_path)])

        assert result.exit_code == 1
        assert "Account not found" in result.stdout

    def test_serve_command(self, mocker):
        """Test serve hands the app factory to uvicorn."""
        run = mocker.patch("fitconnect.cli.uvicorn.run")

        result = runner.invoke(app, ["serve", "--port", "8123"])

        assert result.exit_code == 0
        run.assert_called_once()
        args, kwargs = run.call_args
        assert args == ("fitconnect.api:create_app",)
        assert kwargs["factory"] is True
        assert kwargs["port"] == 8123
