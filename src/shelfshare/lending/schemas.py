"""Pydantic schemas for book lending."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ..db.schemas import UserSummary
from .pricing import ensure_utc


class LoanStatus(str, Enum):
    """Status of a loan."""

    PENDING = "pending"
    APPROVED = "approved"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


# No transition leaves these
TERMINAL_STATUSES = frozenset(
    {LoanStatus.COMPLETED, LoanStatus.CANCELLED, LoanStatus.REJECTED}
)

# A loan in one of these holds the book
HOLDING_STATUSES = frozenset({LoanStatus.APPROVED, LoanStatus.ACTIVE})


class TargetStatus(str, Enum):
    """Statuses a loan can be moved to through a status update."""

    APPROVED = "approved"
    REJECTED = "rejected"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class LoanRole(str, Enum):
    """Which side of a loan to list."""

    BORROWER = "borrower"
    LENDER = "lender"
    ALL = "all"


class LoanCreate(BaseModel):
    """Schema for requesting a loan.

    Date ordering is checked by the manager, after the book checks.
    """

    book_id: str = Field(..., min_length=1)
    start_date: datetime
    end_date: datetime
    pickup_location: str = Field(..., min_length=1, max_length=200)
    return_location: str = Field(..., min_length=1, max_length=200)
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator("start_date", "end_date")
    @classmethod
    def to_utc(cls, v: datetime) -> datetime:
        """Naive datetimes are UTC."""
        return ensure_utc(v)

    @field_validator("pickup_location", "return_location", mode="before")
    @classmethod
    def strip_location(cls, v):
        if isinstance(v, str):
            return v.strip()
        return v


class LoanQuery(BaseModel):
    """Filters for listing a user's loans."""

    role: LoanRole = LoanRole.ALL
    status: Optional[LoanStatus] = None


class LoanStatusUpdate(BaseModel):
    """Schema for moving a loan to a new status."""

    status: TargetStatus
    notes: Optional[str] = Field(None, max_length=500)


class RatingCreate(BaseModel):
    """Schema for rating the other party of a completed loan."""

    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=500)


class RatingEntry(BaseModel):
    """A rating left on a loan by one side."""

    rating: int
    comment: Optional[str] = None
    date: datetime


class BookSummary(BaseModel):
    """Listing fields shown on a loan."""

    id: str
    title: str
    author: str
    location: str
    daily_rate: float

    model_config = {"from_attributes": True}


class LoanResponse(BaseModel):
    """Schema for loan responses."""

    id: str
    book_id: str
    borrower_id: str
    lender_id: str
    status: LoanStatus
    start_date: datetime
    end_date: datetime
    return_date: Optional[datetime] = None
    total_amount: float
    deposit: float
    pickup_location: str
    return_location: str
    notes: Optional[str] = None
    borrower_rating: Optional[RatingEntry] = Field(None, validation_alias="borrower_rating_entry")
    lender_rating: Optional[RatingEntry] = Field(None, validation_alias="lender_rating_entry")
    duration: int
    is_overdue: bool
    created_at: datetime
    updated_at: datetime

    # Related data (eager-loaded with the loan)
    book: Optional[BookSummary] = None
    borrower: Optional[UserSummary] = None
    lender: Optional[UserSummary] = None

    model_config = {"from_attributes": True}


class ReviewEntry(BaseModel):
    """A rating a user received on one loan."""

    loan_id: str
    book_title: str
    reviewer: UserSummary
    rating: int
    comment: Optional[str] = None
    date: datetime


class LoanSummary(BaseModel):
    """Summary of a loan for listing."""

    id: str
    book_title: str
    borrower: str
    lender: str
    status: LoanStatus
    end_date: datetime
    is_overdue: bool
    days_overdue: int


class OverdueReport(BaseModel):
    """Report of overdue loans."""

    loans: list[LoanSummary]
    total_overdue: int
    oldest_overdue_days: int
