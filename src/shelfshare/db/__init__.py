"""Database module for local SQLite storage."""

from .models import Book, User
from .schemas import BookCondition, BookCreate, BookResponse, BookUpdate, UserCreate
from .sqlite import Database, get_db

__all__ = [
    "Book",
    "User",
    "BookCondition",
    "BookCreate",
    "BookUpdate",
    "BookResponse",
    "UserCreate",
    "Database",
    "get_db",
]
