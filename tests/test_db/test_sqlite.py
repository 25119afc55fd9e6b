"""Tests for SQLite database operations."""

from uuid import UUID

import pytest

from shelfshare.db.models import Book, User
from shelfshare.db.sqlite import Database, get_db, reset_db
from shelfshare.errors import InternalError
from shelfshare.lending import LoanStatusUpdate
from shelfshare.lending.models import Loan


class TestDatabaseCreation:
    """Tests for database initialization."""

    def test_database_creates_tables(self, db: Database):
        """Test that database creates all required tables."""
        with db.get_session() as session:
            # These queries should not raise
            session.query(User).first()
            session.query(Book).first()
            session.query(Loan).first()

    def test_database_path_created(self, db: Database):
        """Test that database file is created."""
        assert db.db_path.exists()

    def test_database_failure_raises_internal_error(self, db: Database):
        """Test that SQLAlchemy failures surface as InternalError."""
        db.drop_tables()
        with pytest.raises(InternalError, match="Database error"):
            db.get_user("anyone")

    def test_in_memory_database_shares_connection(self):
        database = Database(":memory:")
        database.create_tables()
        with database.get_session() as session:
            session.add(
                User(username="mem", email="mem@example.com", password_hash="x",
                     first_name="M", last_name="Em")
            )
        with database.get_session() as session:
            assert session.query(User).count() == 1

    def test_global_instance(self, db: Database):
        reset_db()
        try:
            assert get_db() is get_db()
        finally:
            reset_db()

    def test_session_rolls_back_on_error(self, db: Database, owner: User):
        with pytest.raises(RuntimeError):
            with db.get_session() as session:
                user = db.get_user(owner.id, session)
                user.first_name = "Changed"
                session.flush()
                raise RuntimeError("boom")

        assert db.get_user(owner.id).first_name == "Olivia"


class TestRecords:
    """Tests for record lookups."""

    def test_ids_are_uuids(self, book: Book, owner: User):
        assert str(UUID(book.id)) == book.id
        assert str(UUID(owner.id)) == owner.id

    def test_get_missing(self, db: Database):
        assert db.get_user("missing") is None
        assert db.get_book("missing") is None
        assert db.get_loan("missing") is None

    def test_update_book_availability(self, db: Database, book: Book):
        assert db.update_book_availability(book.id, False) is True
        assert db.get_book(book.id).is_available is False
        assert db.update_book_availability("missing", False) is False

    def test_holding_loans_for_book(self, db: Database, lending, pending_loan, book, owner):
        with db.get_session() as session:
            assert db.holding_loans_for_book(session, book.id) == []

        lending.update_status(pending_loan.id, LoanStatusUpdate(status="approved"), owner.id)
        with db.get_session() as session:
            holding = db.holding_loans_for_book(session, book.id)
            assert [loan.id for loan in holding] == [pending_loan.id]
            assert db.holding_loans_for_book(session, book.id, exclude_loan_id=pending_loan.id) == []


class TestConditionalWrites:
    """Tests for the compare-and-set primitives."""

    def test_status_write_matches_expected(self, db: Database, pending_loan):
        with db.get_session() as session:
            assert db.compare_and_set_loan_status(
                session, pending_loan.id, ["pending"], "approved", notes="ok"
            )
        loan = db.get_loan(pending_loan.id)
        assert loan.status == "approved"
        assert loan.notes == "ok"
        assert loan.return_date is None

    def test_status_write_refuses_stale(self, db: Database, pending_loan):
        with db.get_session() as session:
            assert not db.compare_and_set_loan_status(
                session, pending_loan.id, ["active"], "completed"
            )
        assert db.get_loan(pending_loan.id).status == "pending"

    def test_completion_sets_return_date(self, db: Database, pending_loan):
        with db.get_session() as session:
            db.compare_and_set_loan_status(session, pending_loan.id, ["pending"], "completed")
        assert db.get_loan(pending_loan.id).return_date is not None

    def test_rating_slot_written_once(self, db: Database, pending_loan):
        with db.get_session() as session:
            assert db.set_rating_if_empty(session, pending_loan.id, "borrower", 4, "Nice")
            assert not db.set_rating_if_empty(session, pending_loan.id, "borrower", 1)
            assert db.set_rating_if_empty(session, pending_loan.id, "lender", 5)

        loan = db.get_loan(pending_loan.id)
        assert loan.borrower_rating == 4
        assert loan.borrower_rating_comment == "Nice"
        assert loan.lender_rating == 5

    def test_unknown_rating_side(self, db: Database, pending_loan):
        with db.get_session() as session:
            with pytest.raises(ValueError):
                db.set_rating_if_empty(session, pending_loan.id, "owner", 3)

    def test_apply_user_rating(self, db: Database, owner: User):
        with db.get_session() as session:
            assert db.apply_user_rating(session, owner.id, 4)
            assert db.apply_user_rating(session, owner.id, 2)
            assert not db.apply_user_rating(session, "missing", 5)

        user = db.get_user(owner.id)
        assert user.rating == pytest.approx(3.0)
        assert user.total_ratings == 2
