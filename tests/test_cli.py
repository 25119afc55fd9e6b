"""Tests for the CLI interface."""

import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from typer.testing import CliRunner

from shelfshare.books import ListingManager
from shelfshare.cli import app
from shelfshare.config import reset_config
from shelfshare.db.schemas import BookCreate, UserCreate
from shelfshare.db.sqlite import get_db, reset_db
from shelfshare.lending import LendingManager, LoanCreate
from shelfshare.users import UserManager


@pytest.fixture(autouse=True)
def setup_test_db():
    """Set up a test database for each test."""
    reset_db()
    reset_config()

    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name

    os.environ["SHELFSHARE_DB_PATH"] = db_path

    yield db_path

    # Cleanup
    reset_db()
    reset_config()
    if "SHELFSHARE_DB_PATH" in os.environ:
        del os.environ["SHELFSHARE_DB_PATH"]
    if Path(db_path).exists():
        Path(db_path).unlink()


@pytest.fixture
def runner():
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def seeded():
    """Two members, one listing and a pending loan request."""
    db = get_db()
    users = UserManager(db)
    lender = users.register(
        UserCreate(username="olivia", email="olivia@example.com", password="secret123",
                   first_name="Olivia", last_name="Owner", location="Portland")
    )
    borrower = users.register(
        UserCreate(username="bruno", email="bruno@example.com", password="secret123",
                   first_name="Bruno", last_name="Borrower")
    )
    book = ListingManager(db).create_book(
        BookCreate(title="Dune", author="Frank Herbert", description="Spice.",
                   genre="Science Fiction", daily_rate=1.5, location="Portland"),
        lender.id,
    )
    start = datetime.now(timezone.utc) + timedelta(hours=1)
    loan = LendingManager(db).create_loan(
        LoanCreate(book_id=book.id, start_date=start, end_date=start + timedelta(days=3),
                   pickup_location="Cafe", return_location="Cafe"),
        borrower.id,
    )
    return {"lender": lender, "borrower": borrower, "book": book, "loan": loan}


class TestCLIBasics:
    """Tests for basic CLI functionality."""

    def test_help(self, runner: CliRunner):
        """Test that help command works."""
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "book lending marketplace" in result.stdout

    def test_version(self, runner: CliRunner):
        """Test version command."""
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.stdout

    def test_init_db(self, runner: CliRunner, setup_test_db):
        result = runner.invoke(app, ["init-db"])
        assert result.exit_code == 0
        assert "Database ready" in result.stdout
        assert Path(setup_test_db).exists()


class TestBooksCommands:
    """Tests for books commands."""

    def test_list_empty(self, runner: CliRunner):
        result = runner.invoke(app, ["books", "list"])
        assert result.exit_code == 0
        assert "No books found" in result.stdout

    def test_list(self, runner: CliRunner, seeded):
        result = runner.invoke(app, ["books", "list", "--search", "dune"])
        assert result.exit_code == 0
        assert "Dune" in result.stdout
        assert "1 books" in result.stdout

    def test_show(self, runner: CliRunner, seeded):
        result = runner.invoke(app, ["books", "show", seeded["book"].id])
        assert result.exit_code == 0
        assert "Frank Herbert" in result.stdout
        assert "olivia" in result.stdout

    def test_show_missing(self, runner: CliRunner):
        result = runner.invoke(app, ["books", "show", "missing"])
        assert result.exit_code == 1
        assert "Book not found" in result.stdout


class TestLoansCommands:
    """Tests for loans commands."""

    def test_list(self, runner: CliRunner, seeded):
        result = runner.invoke(app, ["loans", "list", "--user", "bruno"])
        assert result.exit_code == 0
        assert "Dune" in result.stdout
        assert "pending" in result.stdout

    def test_list_unknown_user(self, runner: CliRunner):
        result = runner.invoke(app, ["loans", "list", "--user", "ghost"])
        assert result.exit_code == 1

    def test_approve(self, runner: CliRunner, seeded):
        loan_id = seeded["loan"].id
        result = runner.invoke(app, ["loans", "status", loan_id, "approved", "--as", "olivia"])
        assert result.exit_code == 0
        assert "approved" in result.stdout
        assert get_db().get_book(seeded["book"].id).is_available is False

    def test_borrower_cannot_approve(self, runner: CliRunner, seeded):
        loan_id = seeded["loan"].id
        result = runner.invoke(app, ["loans", "status", loan_id, "approved", "--as", "bruno"])
        assert result.exit_code == 1
        assert "Only the lender" in result.stdout

    def test_overdue_none(self, runner: CliRunner, seeded):
        result = runner.invoke(app, ["loans", "overdue"])
        assert result.exit_code == 0
        assert "No overdue loans" in result.stdout

    def test_overdue_with_deleted_listing(self, runner: CliRunner, seeded):
        db = get_db()
        now = datetime.now(timezone.utc)
        with db.get_session() as session:
            db.create_loan(
                session,
                book_id="deleted-book",
                borrower_id=seeded["borrower"].id,
                lender_id=seeded["lender"].id,
                status="active",
                start_date=(now - timedelta(days=9)).isoformat(),
                end_date=(now - timedelta(days=2)).isoformat(),
                total_amount=10.0,
                pickup_location="Cafe",
                return_location="Cafe",
            )

        result = runner.invoke(app, ["loans", "overdue"])
        assert result.exit_code == 0
        assert "deleted listing" in result.stdout


class TestUsersCommands:
    """Tests for users commands."""

    def test_show(self, runner: CliRunner, seeded):
        result = runner.invoke(app, ["users", "show", "olivia"])
        assert result.exit_code == 0
        assert "Olivia Owner" in result.stdout
        assert "Books listed: 1" in result.stdout

    def test_show_unknown(self, runner: CliRunner):
        result = runner.invoke(app, ["users", "show", "ghost"])
        assert result.exit_code == 1
        assert "No user found" in result.stdout
