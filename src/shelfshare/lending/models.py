"""SQLAlchemy models for book lending.

Tables:
- loans: Individual loan transactions between a borrower and a lender
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..db.models import Base, Book, User, generate_uuid, utcnow_iso
from .pricing import ensure_utc, loan_duration_days


class Loan(Base):
    """Loan model - a time-bounded borrowing agreement over one book."""

    __tablename__ = "loans"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)

    # Parties and book
    book_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("books.id"), nullable=False, index=True
    )
    borrower_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id"), nullable=False, index=True
    )
    # Always the book owner at creation
    lender_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id"), nullable=False, index=True
    )

    # Status
    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)

    # Dates (ISO datetimes, UTC)
    start_date: Mapped[str] = mapped_column(String(32), nullable=False)
    end_date: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    return_date: Mapped[Optional[str]] = mapped_column(String(32))

    # Money (fixed at creation)
    total_amount: Mapped[float] = mapped_column(Float, nullable=False)
    deposit: Mapped[float] = mapped_column(Float, default=0.0)

    # Handover
    pickup_location: Mapped[str] = mapped_column(String(200), nullable=False)
    return_location: Mapped[str] = mapped_column(String(200), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    # Borrower's rating of the lender
    borrower_rating: Mapped[Optional[int]] = mapped_column(Integer)
    borrower_rating_comment: Mapped[Optional[str]] = mapped_column(Text)
    borrower_rating_date: Mapped[Optional[str]] = mapped_column(String(32))

    # Lender's rating of the borrower
    lender_rating: Mapped[Optional[int]] = mapped_column(Integer)
    lender_rating_comment: Mapped[Optional[str]] = mapped_column(Text)
    lender_rating_date: Mapped[Optional[str]] = mapped_column(String(32))

    # Timestamps
    created_at: Mapped[str] = mapped_column(String(32), default=utcnow_iso, index=True)
    updated_at: Mapped[str] = mapped_column(
        String(32), default=utcnow_iso, onupdate=utcnow_iso
    )

    # Relationships
    book: Mapped["Book"] = relationship("Book", lazy="joined")
    borrower: Mapped["User"] = relationship("User", foreign_keys=[borrower_id], lazy="joined")
    lender: Mapped["User"] = relationship("User", foreign_keys=[lender_id], lazy="joined")

    def __repr__(self) -> str:
        return f"<Loan(id={self.id}, book_id={self.book_id}, status={self.status})>"

    @property
    def start_at(self) -> datetime:
        return ensure_utc(datetime.fromisoformat(self.start_date))

    @property
    def end_at(self) -> datetime:
        return ensure_utc(datetime.fromisoformat(self.end_date))

    @property
    def duration(self) -> int:
        """Loan length in days, partial days rounded up."""
        if not self.start_date or not self.end_date:
            return 0
        return loan_duration_days(self.start_at, self.end_at)

    @property
    def is_overdue(self) -> bool:
        """Check if an active loan is past its end date."""
        if self.status != "active" or not self.end_date:
            return False
        return datetime.now(timezone.utc) > self.end_at

    @property
    def days_overdue(self) -> int:
        """Whole days overdue (0 if not overdue)."""
        if not self.is_overdue:
            return 0
        return (datetime.now(timezone.utc) - self.end_at).days

    def is_party(self, user_id: str) -> bool:
        """Check if the user is the borrower or the lender."""
        return user_id in (self.borrower_id, self.lender_id)

    @property
    def borrower_rating_entry(self) -> Optional[dict]:
        """Borrower's rating of the lender, if given."""
        if self.borrower_rating is None:
            return None
        return {
            "rating": self.borrower_rating,
            "comment": self.borrower_rating_comment,
            "date": self.borrower_rating_date,
        }

    @property
    def lender_rating_entry(self) -> Optional[dict]:
        """Lender's rating of the borrower, if given."""
        if self.lender_rating is None:
            return None
        return {
            "rating": self.lender_rating,
            "comment": self.lender_rating_comment,
            "date": self.lender_rating_date,
        }
