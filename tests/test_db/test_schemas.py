"""Tests for schemas and the error taxonomy."""

import pytest
from pydantic import ValidationError as PydanticValidationError

from shelfshare.db.schemas import UserCreate, UserPrivate, UserResponse
from shelfshare.errors import (
    ForbiddenError,
    InternalError,
    InvalidStateError,
    NotFoundError,
    UnauthenticatedError,
    ValidationError,
)
from shelfshare.lending import LoanResponse, RatingCreate


class TestUserSchemas:
    """Tests for user schemas."""

    def test_email_lowercased(self):
        data = UserCreate(
            username="Reader_1",
            email="Reader@Example.COM",
            password="secret123",
            first_name="R",
            last_name="One",
        )
        assert data.email == "reader@example.com"

    def test_public_profile_hides_email(self, owner):
        assert "email" not in UserResponse.model_validate(owner).model_dump()
        assert UserPrivate.model_validate(owner).email == "olivia@example.com"


class TestLoanResponse:
    """Tests for serializing loans."""

    def test_from_loan(self, pending_loan):
        response = LoanResponse.model_validate(pending_loan)

        assert response.status.value == "pending"
        assert response.duration == 5
        assert response.is_overdue is False
        assert response.borrower_rating is None
        assert response.book.title == "The Left Hand of Darkness"
        assert response.lender.username == "olivia"

    def test_rating_entries(self, lending, completed_loan, borrower):
        loan = lending.rate_loan(completed_loan.id, RatingCreate(rating=4, comment="Good"), borrower.id)
        response = LoanResponse.model_validate(loan)

        assert response.borrower_rating.rating == 4
        assert response.borrower_rating.comment == "Good"
        assert response.lender_rating is None


class TestErrors:
    """Tests for the error taxonomy."""

    @pytest.mark.parametrize(
        "error_class,status",
        [
            (NotFoundError, 404),
            (ValidationError, 400),
            (InvalidStateError, 400),
            (ForbiddenError, 403),
            (UnauthenticatedError, 401),
            (InternalError, 500),
        ],
    )
    def test_status_codes(self, error_class, status):
        assert error_class("x").status_code == status

    def test_to_dict(self):
        assert NotFoundError("Loan not found").to_dict() == {"message": "Loan not found"}

    def test_from_pydantic(self):
        with pytest.raises(PydanticValidationError) as exc_info:
            UserCreate(username="ab", email="x@y.z", password="secret123",
                       first_name="A", last_name="B")

        error = ValidationError.from_pydantic(exc_info.value)
        body = error.to_dict()
        assert body["errors"][0]["field"] == "username"
        assert body["message"] == body["errors"][0]["message"]
