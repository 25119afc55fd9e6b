"""Pydantic schemas for data validation.

These schemas validate listing and user data at the API boundary,
independent of how the records are stored.
"""

import json
from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class BookCondition(str, Enum):
    """Physical condition of a listed book."""

    NEW = "New"
    LIKE_NEW = "Like New"
    VERY_GOOD = "Very Good"
    GOOD = "Good"
    FAIR = "Fair"
    POOR = "Poor"


def _current_year() -> int:
    return date.today().year


# ============================================================================
# Book Schemas
# ============================================================================


class Coordinates(BaseModel):
    """Stored map position of a listing. Never used for computation."""

    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class BookBase(BaseModel):
    """Base listing fields common to create/response."""

    # Core fields
    title: str = Field(..., min_length=1, max_length=500)
    author: str = Field(..., min_length=1, max_length=500)
    isbn: Optional[str] = Field(None, max_length=20)
    description: str = Field(..., min_length=1, max_length=1000)
    genre: str = Field(..., min_length=1, max_length=100)
    condition: BookCondition = BookCondition.GOOD
    language: str = "English"
    pages: Optional[int] = Field(None, ge=1)
    published_year: Optional[int] = Field(None, ge=1800)

    # Pricing
    daily_rate: float = Field(..., ge=0.01)
    weekly_rate: Optional[float] = Field(None, ge=0.01)
    monthly_rate: Optional[float] = Field(None, ge=0.01)
    deposit: float = Field(0, ge=0)

    # Pickup
    location: str = Field(..., min_length=1, max_length=200)
    coordinates: Optional[Coordinates] = None

    tags: list[str] = Field(default_factory=list)
    rules: list[str] = Field(default_factory=list)

    @field_validator("title", "author", "genre", "location", "isbn", mode="before")
    @classmethod
    def strip_text(cls, v):
        """Trim surrounding whitespace."""
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("published_year")
    @classmethod
    def not_in_future(cls, v: Optional[int]) -> Optional[int]:
        """Published year cannot be later than the current year."""
        if v is not None and v > _current_year():
            raise ValueError("published_year cannot be in the future")
        return v

    @field_validator("tags", mode="before")
    @classmethod
    def clean_tags(cls, v):
        """Decode stored JSON and drop blank tags."""
        if v is None:
            return []
        if isinstance(v, str):
            v = json.loads(v)
        return [t.strip() for t in v if isinstance(t, str) and t.strip()]

    @field_validator("rules", mode="before")
    @classmethod
    def check_rules(cls, v):
        """Decode stored JSON; each rule is at most 200 characters."""
        if v is None:
            return []
        if isinstance(v, str):
            v = json.loads(v)
        for rule in v:
            if len(rule) > 200:
                raise ValueError("Each rule cannot exceed 200 characters")
        return v


class BookCreate(BookBase):
    """Schema for creating a new listing."""

    pass


class BookUpdate(BaseModel):
    """Schema for updating a listing. All fields optional; owner is immutable."""

    title: Optional[str] = Field(None, min_length=1, max_length=500)
    author: Optional[str] = Field(None, min_length=1, max_length=500)
    isbn: Optional[str] = Field(None, max_length=20)
    description: Optional[str] = Field(None, min_length=1, max_length=1000)
    genre: Optional[str] = Field(None, min_length=1, max_length=100)
    condition: Optional[BookCondition] = None
    language: Optional[str] = None
    pages: Optional[int] = Field(None, ge=1)
    published_year: Optional[int] = Field(None, ge=1800)
    daily_rate: Optional[float] = Field(None, ge=0.01)
    weekly_rate: Optional[float] = Field(None, ge=0.01)
    monthly_rate: Optional[float] = Field(None, ge=0.01)
    deposit: Optional[float] = Field(None, ge=0)
    location: Optional[str] = Field(None, min_length=1, max_length=200)
    coordinates: Optional[Coordinates] = None
    tags: Optional[list[str]] = None
    rules: Optional[list[str]] = None
    is_available: Optional[bool] = None

    model_config = {"extra": "forbid"}


class BookResponse(BookBase):
    """Schema for listing responses (includes DB-generated fields)."""

    id: str
    owner_id: str
    is_available: bool
    rating: float = 0
    total_ratings: int = 0
    average_rating: float = 0
    total_loans: int = 0
    created_at: datetime
    updated_at: datetime

    # Related data (populated by manager)
    owner: Optional["UserSummary"] = None

    model_config = {"from_attributes": True}


# ============================================================================
# User Schemas
# ============================================================================


class UserCreate(BaseModel):
    """Schema for registering a user."""

    username: str = Field(..., min_length=3, max_length=30, pattern=r"^[A-Za-z0-9_.-]+$")
    email: str = Field(..., min_length=3, max_length=200, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    password: str = Field(..., min_length=6, max_length=128)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    location: Optional[str] = Field(None, max_length=200)
    bio: Optional[str] = Field(None, max_length=500)

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        """Emails compare case-insensitively."""
        return v.lower()


class UserSummary(BaseModel):
    """Public subset of a user shown next to listings and loans."""

    id: str
    username: str
    first_name: str
    last_name: str
    rating: float = 0
    total_ratings: int = 0

    model_config = {"from_attributes": True}


class UserResponse(UserSummary):
    """Public profile fields."""

    bio: Optional[str] = None
    location: Optional[str] = None
    is_verified: bool = False
    join_date: datetime


class UserPrivate(UserResponse):
    """Profile returned to the user themselves."""

    email: str


BookResponse.model_rebuild()
