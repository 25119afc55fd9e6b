"""Pytest configuration and shared fixtures.

This module provides fixtures for testing the shelfshare application,
including temporary databases, registered members and sample listings.
"""

import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Generator

import pytest
from passlib.context import CryptContext

from shelfshare import auth
from shelfshare.books import ListingManager
from shelfshare.config import CancelPolicy, Config, reset_config
from shelfshare.db.models import Book, User
from shelfshare.db.schemas import BookCreate, UserCreate
from shelfshare.db.sqlite import Database, reset_db
from shelfshare.lending import LendingManager, LoanCreate
from shelfshare.users import UserManager


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def fast_password_hashing(monkeypatch):
    """Use the minimum bcrypt cost so registering members stays quick."""
    monkeypatch.setattr(
        auth, "pwd_context", CryptContext(schemes=["bcrypt"], bcrypt__rounds=4)
    )


@pytest.fixture(scope="function")
def temp_db_path() -> Generator[Path, None, None]:
    """Create a temporary database file path."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)
    yield db_path
    # Cleanup
    if db_path.exists():
        db_path.unlink()


@pytest.fixture(scope="function")
def db(temp_db_path: Path) -> Generator[Database, None, None]:
    """Create a test database instance."""
    # Reset any global state
    reset_db()
    reset_config()

    # Set environment variable for test database
    os.environ["SHELFSHARE_DB_PATH"] = str(temp_db_path)

    database = Database(str(temp_db_path))
    database.create_tables()
    yield database

    # Cleanup
    database.engine.dispose()
    reset_db()
    reset_config()
    if "SHELFSHARE_DB_PATH" in os.environ:
        del os.environ["SHELFSHARE_DB_PATH"]


@pytest.fixture
def config(temp_db_path: Path) -> Config:
    """Configuration for tests."""
    return Config(
        db_path=temp_db_path,
        secret_key="test-secret",
        token_ttl_hours=1,
        cancel_policy=CancelPolicy.PARTICIPANTS,
        log_level="DEBUG",
        host="127.0.0.1",
        port=5001,
    )


# ============================================================================
# Manager Fixtures
# ============================================================================


@pytest.fixture
def users(db: Database) -> UserManager:
    return UserManager(db)


@pytest.fixture
def listings(db: Database) -> ListingManager:
    return ListingManager(db)


@pytest.fixture
def lending(db: Database) -> LendingManager:
    return LendingManager(db, cancel_policy=CancelPolicy.PARTICIPANTS)


# ============================================================================
# Sample Data Fixtures
# ============================================================================


def make_user_data(username: str, **overrides) -> UserCreate:
    """Registration data for a test member."""
    data = {
        "username": username,
        "email": f"{username}@example.com",
        "password": "secret123",
        "first_name": username.title(),
        "last_name": "Tester",
        "location": "Portland",
    }
    data.update(overrides)
    return UserCreate(**data)


@pytest.fixture
def owner(users: UserManager) -> User:
    """Member who lists books (the lender)."""
    return users.register(make_user_data("olivia"))


@pytest.fixture
def borrower(users: UserManager) -> User:
    """Member who requests loans."""
    return users.register(make_user_data("bruno"))


@pytest.fixture
def stranger(users: UserManager) -> User:
    """Member with no part in the loans under test."""
    return users.register(make_user_data("sam", location="Seattle"))


@pytest.fixture
def sample_book_data() -> BookCreate:
    """Listing data with all three pricing tiers."""
    return BookCreate(
        title="The Left Hand of Darkness",
        author="Ursula K. Le Guin",
        isbn="9780441478125",
        description="Genly Ai's mission to the planet Gethen.",
        genre="Science Fiction",
        condition="Very Good",
        pages=304,
        published_year=1969,
        daily_rate=2.0,
        weekly_rate=10.0,
        monthly_rate=30.0,
        deposit=15.0,
        location="Portland",
        tags=["classic", "hugo"],
        rules=["No food near the book"],
    )


@pytest.fixture
def book(listings: ListingManager, owner: User, sample_book_data: BookCreate) -> Book:
    """A listed, available book owned by ``owner``."""
    return listings.create_book(sample_book_data, owner.id)


@pytest.fixture
def make_book(listings: ListingManager, owner: User) -> Callable[..., Book]:
    """Factory for listings with custom fields."""

    def _make(owner_id: str = None, **overrides) -> Book:
        data = {
            "title": "Untitled",
            "author": "Anonymous",
            "description": "A book.",
            "genre": "Fiction",
            "daily_rate": 1.0,
            "location": "Portland",
        }
        data.update(overrides)
        return listings.create_book(BookCreate(**data), owner_id or owner.id)

    return _make


# ============================================================================
# Loan Fixtures
# ============================================================================


def loan_window(days: int, starts_in_hours: int = 1) -> tuple[datetime, datetime]:
    """A future loan window of exactly ``days`` days."""
    start = datetime.now(timezone.utc) + timedelta(hours=starts_in_hours)
    return start, start + timedelta(days=days)


def make_loan_data(book_id: str, days: int = 5, **overrides) -> LoanCreate:
    start, end = loan_window(days)
    data = {
        "book_id": book_id,
        "start_date": start,
        "end_date": end,
        "pickup_location": "Central Library steps",
        "return_location": "Central Library steps",
    }
    data.update(overrides)
    return LoanCreate(**data)


@pytest.fixture
def pending_loan(lending: LendingManager, book: Book, borrower: User):
    """A 5-day loan request on ``book`` by ``borrower``."""
    return lending.create_loan(make_loan_data(book.id), borrower.id)


@pytest.fixture
def completed_loan(lending: LendingManager, pending_loan, owner: User, borrower: User):
    """A loan taken through approval and activation to completion."""
    from shelfshare.lending import LoanStatusUpdate

    lending.update_status(pending_loan.id, LoanStatusUpdate(status="approved"), owner.id)
    lending.update_status(pending_loan.id, LoanStatusUpdate(status="active"), borrower.id)
    return lending.update_status(pending_loan.id, LoanStatusUpdate(status="completed"), owner.id)


@pytest.fixture
def loan_data() -> Callable[..., LoanCreate]:
    """Factory for loan requests: ``loan_data(book_id, days=5, **overrides)``."""
    return make_loan_data


@pytest.fixture
def user_data() -> Callable[..., UserCreate]:
    """Factory for registration data: ``user_data(username, **overrides)``."""
    return make_user_data
