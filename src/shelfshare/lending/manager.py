"""Lending manager for loan lifecycle operations.

Drives a loan from request to completion: validates the request against the
book, prices it, applies status transitions with their authorization rules
and book availability side effects, and records the two one-shot ratings.
"""

import logging
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from ..config import CancelPolicy, get_config
from ..db.models import Book
from ..db.schemas import UserSummary
from ..db.sqlite import Database, get_db
from ..errors import ForbiddenError, InvalidStateError, NotFoundError
from .models import Loan
from .pricing import price_loan
from .schemas import (
    HOLDING_STATUSES,
    TERMINAL_STATUSES,
    LoanCreate,
    LoanRole,
    LoanStatus,
    LoanStatusUpdate,
    LoanSummary,
    OverdueReport,
    RatingCreate,
    ReviewEntry,
)

logger = logging.getLogger(__name__)

DELETED_BOOK_TITLE = "(deleted listing)"


def is_book_available(book: Book, loans: Iterable[Loan]) -> bool:
    """A book is free unless one of its loans is approved or active."""
    holding = {s.value for s in HOLDING_STATUSES}
    return not any(loan.book_id == book.id and loan.status in holding for loan in loans)


def next_rating_mean(mean: float, count: int, rating: int) -> tuple[float, int]:
    """Fold one rating into a running mean.

    Mirrors ``Database.apply_user_rating``: the stored mean is multiplied
    back out by the count before re-averaging.

    Returns:
        (new mean, new count)
    """
    total = count + 1
    return (mean * count + rating) / total, total


class LendingManager:
    """Manages book lending operations."""

    def __init__(
        self,
        db: Optional[Database] = None,
        cancel_policy: Optional[CancelPolicy] = None,
    ):
        """Initialize lending manager.

        Args:
            db: Database instance
            cancel_policy: Who may cancel a loan (defaults to config)
        """
        self.db = db or get_db()
        self.cancel_policy = cancel_policy or get_config().cancel_policy

    def _fetch(self, session: Session, loan_id: str) -> Loan:
        """Reload a loan with its book and parties from the database."""
        stmt = (
            select(Loan)
            .where(Loan.id == loan_id)
            .execution_options(populate_existing=True)
        )
        return session.execute(stmt).scalar_one()

    # -------------------------------------------------------------------------
    # Loan Creation
    # -------------------------------------------------------------------------

    def create_loan(self, data: LoanCreate, borrower_id: str) -> Loan:
        """Request a loan of a book.

        Checks run in order and the first failure wins: the book exists, is
        available, is not the borrower's own, the start is not in the past,
        and the end is after the start.

        Args:
            data: Loan request
            borrower_id: Acting user

        Returns:
            Created loan in ``pending`` status

        Raises:
            NotFoundError: Book does not exist
            InvalidStateError: A lending rule was broken
        """
        with self.db.get_session() as session:
            book = self.db.get_book(data.book_id, session)
            if not book:
                raise NotFoundError("Book not found")

            if not book.is_available:
                raise InvalidStateError("Book is not available for lending")

            if book.owner_id == borrower_id:
                raise InvalidStateError("You cannot borrow your own book")

            now = datetime.now(timezone.utc)
            if data.start_date < now:
                raise InvalidStateError("Start date cannot be in the past")

            if data.end_date <= data.start_date:
                raise InvalidStateError("End date must be after start date")

            duration, total_amount = price_loan(book, data.start_date, data.end_date)

            loan = self.db.create_loan(
                session,
                book_id=book.id,
                borrower_id=borrower_id,
                lender_id=book.owner_id,
                status=LoanStatus.PENDING.value,
                start_date=data.start_date.isoformat(),
                end_date=data.end_date.isoformat(),
                total_amount=total_amount,
                deposit=book.deposit or 0.0,
                pickup_location=data.pickup_location,
                return_location=data.return_location,
                notes=data.notes or "",
            )
            session.commit()

            logger.info(
                "Loan %s requested for book %s: %d days, total %.2f",
                loan.id, book.id, duration, total_amount,
            )
            return self._fetch(session, loan.id)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_loan(self, loan_id: str, user_id: str) -> Loan:
        """Get a loan the user is party to.

        Raises:
            NotFoundError: Loan does not exist
            ForbiddenError: User is neither borrower nor lender
        """
        with self.db.get_session() as session:
            loan = self.db.get_loan(loan_id, session)
            if not loan:
                raise NotFoundError("Loan not found")
            if not loan.is_party(user_id):
                raise ForbiddenError("Not authorized to view this loan")
            return loan

    def list_loans(
        self,
        user_id: str,
        role: LoanRole = LoanRole.ALL,
        status: Optional[LoanStatus] = None,
    ) -> list[Loan]:
        """List a user's loans, newest first.

        Args:
            user_id: User whose loans to list
            role: Only loans where the user borrows, lends, or either
            status: Filter by status

        Returns:
            List of loans
        """
        with self.db.get_session() as session:
            stmt = select(Loan)

            if role == LoanRole.BORROWER:
                stmt = stmt.where(Loan.borrower_id == user_id)
            elif role == LoanRole.LENDER:
                stmt = stmt.where(Loan.lender_id == user_id)
            else:
                stmt = stmt.where(
                    or_(Loan.borrower_id == user_id, Loan.lender_id == user_id)
                )

            if status:
                stmt = stmt.where(Loan.status == status.value)

            stmt = stmt.order_by(Loan.created_at.desc())
            return list(session.execute(stmt).scalars().all())

    def get_overdue_loans(self) -> OverdueReport:
        """Get report of active loans past their end date."""
        with self.db.get_session() as session:
            stmt = (
                select(Loan)
                .where(Loan.status == LoanStatus.ACTIVE.value)
                .order_by(Loan.end_date)
            )
            loans = [loan for loan in session.execute(stmt).scalars().all() if loan.is_overdue]

        summaries = [
            LoanSummary(
                id=loan.id,
                book_title=loan.book.title if loan.book else DELETED_BOOK_TITLE,
                borrower=loan.borrower.username,
                lender=loan.lender.username,
                status=LoanStatus(loan.status),
                end_date=loan.end_at,
                is_overdue=True,
                days_overdue=loan.days_overdue,
            )
            for loan in loans
        ]
        return OverdueReport(
            loans=summaries,
            total_overdue=len(summaries),
            oldest_overdue_days=max((s.days_overdue for s in summaries), default=0),
        )

    def get_reviews_for_user(self, user_id: str) -> list[ReviewEntry]:
        """Ratings a user received from the other side of their loans."""
        with self.db.get_session() as session:
            stmt = (
                select(Loan)
                .where(
                    or_(
                        and_(Loan.lender_id == user_id, Loan.borrower_rating.isnot(None)),
                        and_(Loan.borrower_id == user_id, Loan.lender_rating.isnot(None)),
                    )
                )
                .order_by(Loan.updated_at.desc())
            )
            loans = list(session.execute(stmt).scalars().all())

        reviews = []
        for loan in loans:
            if loan.lender_id == user_id and loan.borrower_rating is not None:
                reviews.append(
                    ReviewEntry(
                        loan_id=loan.id,
                        book_title=loan.book.title if loan.book else DELETED_BOOK_TITLE,
                        reviewer=UserSummary.model_validate(loan.borrower),
                        rating=loan.borrower_rating,
                        comment=loan.borrower_rating_comment,
                        date=loan.borrower_rating_date,
                    )
                )
            if loan.borrower_id == user_id and loan.lender_rating is not None:
                reviews.append(
                    ReviewEntry(
                        loan_id=loan.id,
                        book_title=loan.book.title if loan.book else DELETED_BOOK_TITLE,
                        reviewer=UserSummary.model_validate(loan.lender),
                        rating=loan.lender_rating,
                        comment=loan.lender_rating_comment,
                        date=loan.lender_rating_date,
                    )
                )
        return reviews

    def count_loans_for_user(self, user_id: str) -> int:
        """Number of loans the user took part in, on either side."""
        return len(self.list_loans(user_id))

    # -------------------------------------------------------------------------
    # Status Transitions
    # -------------------------------------------------------------------------

    def _authorize_transition(self, loan: Loan, target: LoanStatus, user_id: str) -> None:
        """Raise ForbiddenError unless the user may move the loan to ``target``."""
        if target in (LoanStatus.APPROVED, LoanStatus.REJECTED):
            if user_id != loan.lender_id:
                raise ForbiddenError("Only the lender can approve or reject loans")
        elif target in (LoanStatus.ACTIVE, LoanStatus.COMPLETED):
            if not loan.is_party(user_id):
                raise ForbiddenError("Not authorized to update this loan")
        elif target == LoanStatus.CANCELLED:
            allowed = {
                CancelPolicy.ANY: True,
                CancelPolicy.PARTICIPANTS: loan.is_party(user_id),
                CancelPolicy.BORROWER: user_id == loan.borrower_id,
                CancelPolicy.LENDER: user_id == loan.lender_id,
            }[self.cancel_policy]
            if not allowed:
                raise ForbiddenError("Not authorized to cancel this loan")

    def _sync_book_availability(
        self, session: Session, loan: Loan, target: LoanStatus
    ) -> None:
        """Apply the book side effect of a transition inside its transaction."""
        if target == LoanStatus.APPROVED:
            self.db.update_book_availability(loan.book_id, False, session)
        elif target in (LoanStatus.COMPLETED, LoanStatus.CANCELLED):
            book = self.db.get_book(loan.book_id, session)
            if not book:
                logger.warning("Loan %s references missing book %s", loan.id, loan.book_id)
                return
            others = self.db.holding_loans_for_book(session, book.id, exclude_loan_id=loan.id)
            self.db.update_book_availability(book.id, is_book_available(book, others), session)
            if target == LoanStatus.COMPLETED:
                book.total_loans = (book.total_loans or 0) + 1

    def update_status(self, loan_id: str, data: LoanStatusUpdate, user_id: str) -> Loan:
        """Move a loan to a new status.

        The status write is conditional on the status read at the start, so
        two racing updates cannot both succeed. The book availability change
        commits in the same transaction.

        Args:
            loan_id: Loan ID
            data: Target status and optional notes
            user_id: Acting user

        Returns:
            Updated loan

        Raises:
            NotFoundError: Loan does not exist
            ForbiddenError: User may not make this transition
            InvalidStateError: Loan is in a terminal status or changed concurrently
        """
        target = LoanStatus(data.status.value)

        with self.db.get_session() as session:
            loan = self.db.get_loan(loan_id, session)
            if not loan:
                raise NotFoundError("Loan not found")

            self._authorize_transition(loan, target, user_id)

            current = LoanStatus(loan.status)
            if current in TERMINAL_STATUSES:
                raise InvalidStateError(f"Loan is already {current.value}")

            if target in HOLDING_STATUSES and not self.db.get_book(loan.book_id, session):
                raise NotFoundError("Book not found")

            if not self.db.compare_and_set_loan_status(
                session, loan.id, [current.value], target.value, data.notes
            ):
                raise InvalidStateError("Loan status changed, please retry")

            self._sync_book_availability(session, loan, target)
            session.commit()

            logger.info(
                "Loan %s moved %s -> %s by %s", loan.id, current.value, target.value, user_id
            )
            return self._fetch(session, loan.id)

    # -------------------------------------------------------------------------
    # Ratings
    # -------------------------------------------------------------------------

    def rate_loan(self, loan_id: str, data: RatingCreate, user_id: str) -> Loan:
        """Rate the other party of a completed loan.

        The borrower rates the lender and the lender rates the borrower; each
        side may do so once. The rated user's aggregate is updated in the same
        transaction.

        Raises:
            NotFoundError: Loan does not exist
            ForbiddenError: User is neither borrower nor lender
            InvalidStateError: Loan not completed, or this side already rated
        """
        with self.db.get_session() as session:
            loan = self.db.get_loan(loan_id, session)
            if not loan:
                raise NotFoundError("Loan not found")

            if not loan.is_party(user_id):
                raise ForbiddenError("Not authorized to rate this loan")

            if loan.status != LoanStatus.COMPLETED.value:
                raise InvalidStateError("Can only rate completed loans")

            if user_id == loan.borrower_id:
                side, target_id = "borrower", loan.lender_id
            else:
                side, target_id = "lender", loan.borrower_id

            if getattr(loan, f"{side}_rating") is not None or not self.db.set_rating_if_empty(
                session, loan.id, side, data.rating, data.comment
            ):
                raise InvalidStateError("You have already rated this loan")

            if not self.db.apply_user_rating(session, target_id, data.rating):
                logger.warning("Rated user %s no longer exists", target_id)

            session.commit()
            logger.info("Loan %s rated %d by %s", loan.id, data.rating, side)
            return self._fetch(session, loan.id)
