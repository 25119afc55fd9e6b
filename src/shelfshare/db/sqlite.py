"""SQLite database operations.

Handles database connection, session management, and the record lookups and
conditional writes the lending core depends on.
"""

import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Iterable, Optional

from sqlalchemy import create_engine, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..errors import InternalError
from .models import Base, Book, User, utcnow_iso

logger = logging.getLogger(__name__)

RATING_SIDES = ("borrower", "lender")


class Database:
    """Database connection and operations manager."""

    def __init__(self, db_path: Optional[str] = None):
        """Initialize database connection.

        Args:
            db_path: Path to SQLite database file. If None, uses
                     SHELFSHARE_DB_PATH env var or default location.
        """
        if db_path is None:
            db_path = os.environ.get(
                "SHELFSHARE_DB_PATH",
                str(Path.home() / ".shelfshare" / "shelfshare.db"),
            )

        self.db_path = Path(db_path)
        self._is_memory = str(db_path) == ":memory:"

        if not self._is_memory:
            self._ensure_directory()

        # For in-memory databases, use StaticPool to reuse the same connection
        # This ensures all sessions share the same in-memory database
        if self._is_memory:
            self.engine = create_engine(
                "sqlite:///:memory:",
                echo=False,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.engine = create_engine(
                f"sqlite:///{self.db_path}",
                echo=False,
                connect_args={"check_same_thread": False},
            )
        # Returned records stay readable after their session closes
        self.SessionLocal = sessionmaker(
            bind=self.engine, autocommit=False, autoflush=False, expire_on_commit=False
        )

    def _ensure_directory(self) -> None:
        """Ensure the database directory exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def create_tables(self) -> None:
        """Create all database tables."""
        # Import lending models to register them with Base
        from ..lending.models import Loan  # noqa: F401

        Base.metadata.create_all(self.engine)
        logger.debug("Tables ready at %s", self.db_path)

    def drop_tables(self) -> None:
        """Drop all database tables. Use with caution!"""
        Base.metadata.drop_all(self.engine)

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Get a database session context manager.

        SQLAlchemy failures are rolled back and re-raised as ``InternalError``.
        """
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.exception("Database operation failed")
            raise InternalError("Database error") from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ========================================================================
    # User Operations
    # ========================================================================

    def get_user(self, user_id: str, session: Optional[Session] = None) -> Optional[User]:
        """Get a user by ID."""

        def _get(s: Session) -> Optional[User]:
            return s.get(User, user_id)

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                return _get(s)

    def apply_user_rating(self, session: Session, user_id: str, rating: int) -> bool:
        """Fold one rating into a user's running mean in a single statement.

        The mean is multiplied back out by the count before re-averaging:
        ``rating = (rating * total_ratings + new) / (total_ratings + 1)``.

        Returns:
            True if the user exists and was updated
        """
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(
                rating=(User.rating * User.total_ratings + rating)
                / (User.total_ratings + 1),
                total_ratings=User.total_ratings + 1,
                updated_at=utcnow_iso(),
            )
            .execution_options(synchronize_session=False)
        )
        return session.execute(stmt).rowcount == 1

    # ========================================================================
    # Book Operations
    # ========================================================================

    def get_book(self, book_id: str, session: Optional[Session] = None) -> Optional[Book]:
        """Get a book by ID."""

        def _get(s: Session) -> Optional[Book]:
            return s.get(Book, book_id)

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                return _get(s)

    def update_book_availability(
        self, book_id: str, is_available: bool, session: Optional[Session] = None
    ) -> bool:
        """Set a book's availability flag. Returns True if the book exists."""

        def _update(s: Session) -> bool:
            stmt = (
                update(Book)
                .where(Book.id == book_id)
                .values(is_available=is_available, updated_at=utcnow_iso())
                .execution_options(synchronize_session="fetch")
            )
            return s.execute(stmt).rowcount == 1

        if session:
            return _update(session)
        else:
            with self.get_session() as s:
                return _update(s)

    # ========================================================================
    # Loan Operations
    # ========================================================================

    def get_loan(self, loan_id: str, session: Optional[Session] = None):
        """Get a loan by ID."""
        from ..lending.models import Loan

        def _get(s: Session):
            return s.get(Loan, loan_id)

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                return _get(s)

    def create_loan(self, session: Session, **fields):
        """Insert a loan record and flush it so its ID is assigned."""
        from ..lending.models import Loan

        loan = Loan(**fields)
        session.add(loan)
        session.flush()
        return loan

    def holding_loans_for_book(
        self, session: Session, book_id: str, exclude_loan_id: Optional[str] = None
    ) -> list:
        """Loans on a book that are approved or active."""
        from ..lending.models import Loan
        from ..lending.schemas import HOLDING_STATUSES

        stmt = select(Loan).where(
            Loan.book_id == book_id,
            Loan.status.in_([s.value for s in HOLDING_STATUSES]),
        )
        if exclude_loan_id:
            stmt = stmt.where(Loan.id != exclude_loan_id)
        return list(session.execute(stmt).scalars().all())

    def reject_pending_loans_for_book(
        self, session: Session, book_id: str, notes: Optional[str] = None
    ) -> int:
        """Reject every pending request on a book.

        Returns:
            Number of loans rejected
        """
        from ..lending.models import Loan

        values = {"status": "rejected", "updated_at": utcnow_iso()}
        if notes:
            values["notes"] = notes

        stmt = (
            update(Loan)
            .where(Loan.book_id == book_id, Loan.status == "pending")
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )
        return session.execute(stmt).rowcount

    def compare_and_set_loan_status(
        self,
        session: Session,
        loan_id: str,
        expected: Iterable[str],
        new_status: str,
        notes: Optional[str] = None,
    ) -> bool:
        """Move a loan to ``new_status`` only if its status is still in ``expected``.

        Returns:
            True if the loan was updated, False if its status had changed
        """
        from ..lending.models import Loan

        values = {"status": new_status, "updated_at": utcnow_iso()}
        if notes:
            values["notes"] = notes
        if new_status == "completed":
            values["return_date"] = utcnow_iso()

        stmt = (
            update(Loan)
            .where(Loan.id == loan_id, Loan.status.in_(list(expected)))
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )
        return session.execute(stmt).rowcount == 1

    def set_rating_if_empty(
        self,
        session: Session,
        loan_id: str,
        side: str,
        rating: int,
        comment: Optional[str] = None,
    ) -> bool:
        """Write one side's rating slot only if that slot is still empty.

        Args:
            side: ``"borrower"`` (borrower rates lender) or ``"lender"``

        Returns:
            True if the slot was written, False if it was already set
        """
        from ..lending.models import Loan

        if side not in RATING_SIDES:
            raise ValueError(f"Unknown rating side: {side}")

        slot = getattr(Loan, f"{side}_rating")
        stmt = (
            update(Loan)
            .where(Loan.id == loan_id, slot.is_(None))
            .values(
                {
                    f"{side}_rating": rating,
                    f"{side}_rating_comment": comment,
                    f"{side}_rating_date": utcnow_iso(),
                    "updated_at": utcnow_iso(),
                }
            )
            .execution_options(synchronize_session="fetch")
        )
        return session.execute(stmt).rowcount == 1


# Global database instance
_db: Optional[Database] = None


def get_db(db_path: Optional[str] = None) -> Database:
    """Get or create the global database instance."""
    global _db
    if _db is None:
        _db = Database(db_path)
        _db.create_tables()
    return _db


def reset_db() -> None:
    """Reset the global database instance. Used for testing."""
    global _db
    _db = None
