"""Listing manager for book listing operations."""

import logging
from typing import Optional

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from ..db.models import Book, utcnow_iso
from ..db.schemas import BookCreate, BookUpdate
from ..db.sqlite import Database, get_db
from ..errors import ForbiddenError, InvalidStateError, NotFoundError
from .schemas import BookQuery, Pagination

logger = logging.getLogger(__name__)

# Columns an update may not clear
REQUIRED_FIELDS = frozenset(
    {"title", "author", "description", "genre", "condition", "language",
     "daily_rate", "deposit", "location", "is_available"}
)


class ListingManager:
    """Manages the books members offer for lending."""

    def __init__(self, db: Optional[Database] = None):
        """Initialize listing manager.

        Args:
            db: Database instance
        """
        self.db = db or get_db()

    def _get_owned(self, session: Session, book_id: str, user_id: str) -> Book:
        """Load a book and check the user owns it."""
        book = self.db.get_book(book_id, session)
        if not book:
            raise NotFoundError("Book not found")
        if book.owner_id != user_id:
            raise ForbiddenError("Not authorized to update this book")
        return book

    # -------------------------------------------------------------------------
    # CRUD
    # -------------------------------------------------------------------------

    def create_book(self, data: BookCreate, owner_id: str) -> Book:
        """Create a listing owned by ``owner_id``.

        Args:
            data: Listing data
            owner_id: Acting user, recorded as owner

        Returns:
            Created book
        """
        with self.db.get_session() as session:
            book = Book(
                title=data.title,
                author=data.author,
                isbn=data.isbn,
                description=data.description,
                genre=data.genre,
                condition=data.condition.value,
                language=data.language,
                pages=data.pages,
                published_year=data.published_year,
                owner_id=owner_id,
                daily_rate=data.daily_rate,
                weekly_rate=data.weekly_rate,
                monthly_rate=data.monthly_rate,
                deposit=data.deposit,
                location=data.location,
            )
            book.set_tags(data.tags)
            book.set_rules(data.rules)
            book.set_coordinates(data.coordinates.model_dump() if data.coordinates else None)

            session.add(book)
            session.commit()
            session.refresh(book)
            logger.info("Book %s listed by %s", book.id, owner_id)
            return book

    def get_book(self, book_id: str) -> Book:
        """Get a listing by ID.

        Raises:
            NotFoundError: Book does not exist
        """
        book = self.db.get_book(book_id)
        if not book:
            raise NotFoundError("Book not found")
        return book

    def update_book(self, book_id: str, data: BookUpdate, user_id: str) -> Book:
        """Update a listing. Only the owner may edit; ownership never changes.

        Args:
            book_id: Book ID
            data: Fields to change
            user_id: Acting user

        Returns:
            Updated book
        """
        with self.db.get_session() as session:
            book = self._get_owned(session, book_id, user_id)

            update_data = data.model_dump(exclude_unset=True)
            for field, value in update_data.items():
                if field == "tags":
                    book.set_tags(value or [])
                elif field == "rules":
                    book.set_rules(value or [])
                elif field == "coordinates":
                    book.set_coordinates(value)
                elif value is None and field in REQUIRED_FIELDS:
                    continue
                elif field == "condition":
                    book.condition = value.value
                else:
                    setattr(book, field, value)

            book.updated_at = utcnow_iso()
            session.commit()
            session.refresh(book)
            return book

    def delete_book(self, book_id: str, user_id: str) -> None:
        """Delete a listing.

        Raises:
            NotFoundError: Book does not exist
            ForbiddenError: User is not the owner
            InvalidStateError: A loan on the book is approved or active

        Pending requests on the book are rejected in the same transaction.
        """
        with self.db.get_session() as session:
            book = self._get_owned(session, book_id, user_id)

            if self.db.holding_loans_for_book(session, book.id):
                raise InvalidStateError("Cannot delete a book with an active loan")

            rejected = self.db.reject_pending_loans_for_book(
                session, book.id, notes="Listing removed by owner"
            )
            session.delete(book)
            logger.info(
                "Book %s deleted by %s, %d pending request(s) rejected",
                book_id, user_id, rejected,
            )

    def set_availability(self, book_id: str, is_available: bool, user_id: str) -> Book:
        """Owner toggle for whether the book can be requested."""
        with self.db.get_session() as session:
            book = self._get_owned(session, book_id, user_id)
            book.is_available = is_available
            book.updated_at = utcnow_iso()
            session.commit()
            session.refresh(book)
            return book

    # -------------------------------------------------------------------------
    # Browsing
    # -------------------------------------------------------------------------

    def search_books(self, query: BookQuery) -> tuple[list[Book], Pagination]:
        """Search available listings, newest first.

        Args:
            query: Filters and paging

        Returns:
            (books on the requested page, pagination)
        """
        with self.db.get_session() as session:
            stmt = select(Book).where(Book.is_available.is_(True))

            if query.search:
                pattern = f"%{query.search}%"
                stmt = stmt.where(
                    or_(
                        Book.title.ilike(pattern),
                        Book.author.ilike(pattern),
                        Book.description.ilike(pattern),
                        Book.genre.ilike(pattern),
                    )
                )
            if query.genre:
                stmt = stmt.where(Book.genre.ilike(f"%{query.genre}%"))
            if query.location:
                stmt = stmt.where(Book.location.ilike(f"%{query.location}%"))
            if query.min_price is not None:
                stmt = stmt.where(Book.daily_rate >= query.min_price)
            if query.max_price is not None:
                stmt = stmt.where(Book.daily_rate <= query.max_price)
            if query.condition:
                stmt = stmt.where(Book.condition == query.condition.value)

            return self._page(session, stmt, query.page, query.limit)

    def list_user_books(
        self,
        owner_id: str,
        available_only: bool = False,
        page: int = 1,
        limit: int = 12,
    ) -> tuple[list[Book], Pagination]:
        """List books owned by a user, newest first."""
        with self.db.get_session() as session:
            stmt = select(Book).where(Book.owner_id == owner_id)
            if available_only:
                stmt = stmt.where(Book.is_available.is_(True))
            return self._page(session, stmt, page, limit)

    def count_books(self, owner_id: str, available_only: bool = False) -> int:
        """Count books owned by a user."""
        with self.db.get_session() as session:
            stmt = select(func.count()).select_from(Book).where(Book.owner_id == owner_id)
            if available_only:
                stmt = stmt.where(Book.is_available.is_(True))
            return session.execute(stmt).scalar() or 0

    def _page(self, session: Session, stmt, page: int, limit: int) -> tuple[list[Book], Pagination]:
        total = session.execute(
            select(func.count()).select_from(stmt.subquery())
        ).scalar() or 0

        offset = (page - 1) * limit
        books = list(
            session.execute(
                stmt.order_by(Book.created_at.desc()).offset(offset).limit(limit)
            ).scalars().all()
        )
        return books, Pagination.build(page, limit, len(books), total)
