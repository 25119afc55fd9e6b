"""Book listings module.

Provides functionality for:
- Creating, editing and removing listings
- Browsing available listings with filters and paging
"""

from .manager import ListingManager
from .schemas import AvailabilityUpdate, BookPage, BookQuery, Pagination

__all__ = [
    "ListingManager",
    "AvailabilityUpdate",
    "BookPage",
    "BookQuery",
    "Pagination",
]
