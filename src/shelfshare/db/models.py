"""SQLAlchemy ORM models for the marketplace database.

Tables:
- users: Marketplace members (owners and borrowers)
- books: Book listings offered for lending
"""

import json
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from .schemas import BookCondition


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def generate_uuid() -> str:
    """Generate a UUID string for primary keys."""
    return str(uuid4())


def utcnow_iso() -> str:
    """Current UTC time as an ISO string."""
    return datetime.now(timezone.utc).isoformat()


class User(Base):
    """User model - a marketplace member who lists and borrows books."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    username: Mapped[str] = mapped_column(String(30), nullable=False, unique=True, index=True)
    email: Mapped[str] = mapped_column(String(200), nullable=False, unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(200), nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    bio: Mapped[Optional[str]] = mapped_column(Text)
    location: Mapped[Optional[str]] = mapped_column(String(200), index=True)
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False)

    # Rating aggregate: running mean plus the count behind it
    rating: Mapped[float] = mapped_column(Float, default=0.0)
    total_ratings: Mapped[int] = mapped_column(Integer, default=0)

    # Timestamps
    join_date: Mapped[str] = mapped_column(String(32), default=utcnow_iso)
    created_at: Mapped[str] = mapped_column(String(32), default=utcnow_iso)
    updated_at: Mapped[str] = mapped_column(
        String(32), default=utcnow_iso, onupdate=utcnow_iso
    )

    # Relationships
    books: Mapped[list["Book"]] = relationship("Book", back_populates="owner")

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username='{self.username}')>"

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def average_rating(self) -> float:
        """Stored mean rounded for display (0 when unrated)."""
        if not self.total_ratings:
            return 0.0
        return round(self.rating, 1)


class Book(Base):
    """Book model - a listing offered for lending by its owner."""

    __tablename__ = "books"

    # Primary key
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)

    # Core fields
    title: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    author: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    isbn: Mapped[Optional[str]] = mapped_column(String(20), index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    genre: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    condition: Mapped[str] = mapped_column(String(20), default=BookCondition.GOOD.value)
    language: Mapped[str] = mapped_column(String(50), default="English")
    pages: Mapped[Optional[int]] = mapped_column(Integer)
    published_year: Mapped[Optional[int]] = mapped_column(Integer)
    tags: Mapped[Optional[str]] = mapped_column(Text)  # JSON array
    rules: Mapped[Optional[str]] = mapped_column(Text)  # JSON array

    # Ownership (set once at creation)
    owner_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id"), nullable=False, index=True
    )
    is_available: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    # Pricing
    daily_rate: Mapped[float] = mapped_column(Float, nullable=False)
    weekly_rate: Mapped[Optional[float]] = mapped_column(Float)
    monthly_rate: Mapped[Optional[float]] = mapped_column(Float)
    deposit: Mapped[float] = mapped_column(Float, default=0.0)

    # Location
    location: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float)
    longitude: Mapped[Optional[float]] = mapped_column(Float)

    # Rating accumulator (sum) and count
    rating: Mapped[float] = mapped_column(Float, default=0.0)
    total_ratings: Mapped[int] = mapped_column(Integer, default=0)
    total_loans: Mapped[int] = mapped_column(Integer, default=0)

    # Timestamps
    created_at: Mapped[str] = mapped_column(String(32), default=utcnow_iso, index=True)
    updated_at: Mapped[str] = mapped_column(
        String(32), default=utcnow_iso, onupdate=utcnow_iso
    )

    # Relationships
    owner: Mapped["User"] = relationship("User", back_populates="books", lazy="joined")

    def __repr__(self) -> str:
        return f"<Book(id={self.id}, title='{self.title}', owner_id={self.owner_id})>"

    @property
    def average_rating(self) -> float:
        """Rating sum over count, rounded to one decimal (0 when unrated)."""
        if not self.total_ratings:
            return 0.0
        return round(self.rating / self.total_ratings, 1)

    @property
    def coordinates(self) -> Optional[dict[str, float]]:
        if self.latitude is None or self.longitude is None:
            return None
        return {"lat": self.latitude, "lng": self.longitude}

    def set_coordinates(self, coordinates: Optional[dict[str, float]]) -> None:
        """Set latitude/longitude from a ``{"lat", "lng"}`` dict."""
        if coordinates:
            self.latitude = coordinates["lat"]
            self.longitude = coordinates["lng"]
        else:
            self.latitude = None
            self.longitude = None

    # Helper methods for JSON fields
    def get_tags(self) -> list[str]:
        """Get tags as list."""
        if self.tags:
            return json.loads(self.tags)
        return []

    def set_tags(self, tags: list[str]) -> None:
        """Set tags from list."""
        self.tags = json.dumps(tags) if tags else None

    def get_rules(self) -> list[str]:
        """Get rules as list."""
        if self.rules:
            return json.loads(self.rules)
        return []

    def set_rules(self, rules: list[str]) -> None:
        """Set rules from list."""
        self.rules = json.dumps(rules) if rules else None
