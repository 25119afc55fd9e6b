"""Pydantic schemas for accounts and profiles."""

from typing import Optional

from pydantic import BaseModel, Field, model_validator

from ..books.schemas import Pagination
from ..db.schemas import BookResponse, UserPrivate, UserResponse


class LoginRequest(BaseModel):
    """Credentials for logging in. ``login`` is a username or an email."""

    login: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)

    @model_validator(mode="before")
    @classmethod
    def accept_email_or_username(cls, data):
        """Allow ``email`` or ``username`` in place of ``login``."""
        if isinstance(data, dict) and "login" not in data:
            data = dict(data)
            data["login"] = data.get("email") or data.get("username")
        return data


class Token(BaseModel):
    """Issued access token."""

    access_token: str
    token_type: str = "bearer"
    user: Optional[UserPrivate] = None


class UserQuery(BaseModel):
    """Filters for browsing members."""

    search: Optional[str] = None
    location: Optional[str] = None
    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1, le=50)


class UserStats(BaseModel):
    """Counters shown on a profile."""

    total_books: int = 0
    available_books: int = 0
    total_loans: int = 0
    average_rating: float = 0


class UserProfile(BaseModel):
    """A member's public profile with their available books."""

    user: UserResponse
    books: list[BookResponse]
    stats: UserStats


class UserPage(BaseModel):
    """One page of members."""

    users: list[UserResponse]
    pagination: Pagination
