"""Book lending module.

Provides functionality for:
- Requesting loans with duration-tier pricing
- Loan status transitions and book availability
- Post-loan ratings between borrower and lender
"""

from .manager import LendingManager, is_book_available, next_rating_mean
from .models import Loan
from .pricing import compute_total_amount, loan_duration_days
from .schemas import (
    LoanCreate,
    LoanQuery,
    LoanResponse,
    LoanRole,
    LoanStatus,
    LoanStatusUpdate,
    RatingCreate,
    TargetStatus,
)

__all__ = [
    "LendingManager",
    "Loan",
    "LoanCreate",
    "LoanQuery",
    "LoanResponse",
    "LoanRole",
    "LoanStatus",
    "LoanStatusUpdate",
    "RatingCreate",
    "TargetStatus",
    "compute_total_amount",
    "is_book_available",
    "loan_duration_days",
    "next_rating_mean",
]
