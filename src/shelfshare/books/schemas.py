"""Pydantic schemas for listing search."""

import math
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from ..db.schemas import BookCondition, BookResponse


class BookQuery(BaseModel):
    """Filters for browsing available listings."""

    search: Optional[str] = None
    genre: Optional[str] = None
    location: Optional[str] = None
    min_price: Optional[float] = Field(None, ge=0)
    max_price: Optional[float] = Field(None, ge=0)
    condition: Optional[BookCondition] = None
    page: int = Field(1, ge=1)
    limit: int = Field(12, ge=1, le=50)

    @model_validator(mode="after")
    def blank_to_none(self):
        """Treat empty text filters as absent."""
        for name in ("search", "genre", "location"):
            value = getattr(self, name)
            if value is not None and not value.strip():
                setattr(self, name, None)
            elif value is not None:
                setattr(self, name, value.strip())
        return self

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class Pagination(BaseModel):
    """Page information returned with list results."""

    current_page: int
    total_pages: int
    total_items: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, page: int, limit: int, returned: int, total: int) -> "Pagination":
        """Compute pagination for one page of ``returned`` items out of ``total``."""
        offset = (page - 1) * limit
        return cls(
            current_page=page,
            total_pages=math.ceil(total / limit) if limit else 0,
            total_items=total,
            has_next=offset + returned < total,
            has_prev=page > 1,
        )


class BookPage(BaseModel):
    """One page of listings."""

    books: list[BookResponse]
    pagination: Pagination


class AvailabilityUpdate(BaseModel):
    """Owner toggle for a listing's availability."""

    is_available: bool
