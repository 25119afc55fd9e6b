"""User manager for accounts, profiles and member search."""

import logging
from typing import Optional

from sqlalchemy import func, or_, select

from ..auth import hash_password, verify_password
from ..books.manager import ListingManager
from ..books.schemas import Pagination
from ..db.models import User, utcnow_iso
from ..db.schemas import BookResponse, UserCreate, UserResponse
from ..db.sqlite import Database, get_db
from ..errors import ForbiddenError, NotFoundError, UnauthenticatedError, ValidationError
from ..lending.manager import LendingManager
from .schemas import LoginRequest, UserProfile, UserQuery, UserStats

logger = logging.getLogger(__name__)


class UserManager:
    """Manages marketplace members."""

    def __init__(self, db: Optional[Database] = None):
        """Initialize user manager.

        Args:
            db: Database instance
        """
        self.db = db or get_db()

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    def register(self, data: UserCreate) -> User:
        """Create an account.

        Raises:
            ValidationError: Username or email already taken
        """
        with self.db.get_session() as session:
            existing = session.execute(
                select(User).where(
                    or_(User.username == data.username, User.email == data.email)
                )
            ).scalars().first()
            if existing:
                field = "username" if existing.username == data.username else "email"
                raise ValidationError(
                    f"User with this {field} already exists",
                    details=[{"field": field, "message": "already exists"}],
                )

            user = User(
                username=data.username,
                email=data.email,
                password_hash=hash_password(data.password),
                first_name=data.first_name,
                last_name=data.last_name,
                location=data.location,
                bio=data.bio,
            )
            session.add(user)
            session.commit()
            session.refresh(user)
            logger.info("Registered user %s (%s)", user.username, user.id)
            return user

    def authenticate(self, data: LoginRequest) -> User:
        """Check credentials and return the user.

        Raises:
            UnauthenticatedError: Unknown login or wrong password
        """
        login = data.login.strip()
        with self.db.get_session() as session:
            user = session.execute(
                select(User).where(
                    or_(User.username == login, User.email == login.lower())
                )
            ).scalars().first()

        if not user or not verify_password(data.password, user.password_hash):
            logger.info("Failed login for %s", login)
            raise UnauthenticatedError("Invalid credentials")
        return user

    def get_user(self, user_id: str) -> Optional[User]:
        """Get a user by ID, or None."""
        return self.db.get_user(user_id)

    def find_user(self, identifier: str) -> Optional[User]:
        """Look up a user by ID or username."""
        user = self.db.get_user(identifier)
        if user:
            return user
        with self.db.get_session() as session:
            return session.execute(
                select(User).where(User.username == identifier)
            ).scalars().first()

    def require_user(self, user_id: str) -> User:
        """Get a user by ID.

        Raises:
            NotFoundError: User does not exist
        """
        user = self.db.get_user(user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    def verify_user(self, user_id: str, acting_user_id: str) -> User:
        """Mark a user as verified. Users may only verify themselves."""
        with self.db.get_session() as session:
            user = self.db.get_user(user_id, session)
            if not user:
                raise NotFoundError("User not found")
            if user.id != acting_user_id:
                raise ForbiddenError("Not authorized to verify other users")

            user.is_verified = True
            user.updated_at = utcnow_iso()
            session.commit()
            session.refresh(user)
            return user

    # -------------------------------------------------------------------------
    # Profiles
    # -------------------------------------------------------------------------

    def get_profile(self, user_id: str, book_limit: int = 12) -> UserProfile:
        """Public profile with available books and counters."""
        user = self.require_user(user_id)

        listings = ListingManager(self.db)
        books, _ = listings.list_user_books(user_id, available_only=True, limit=book_limit)
        stats = UserStats(
            total_books=listings.count_books(user_id),
            available_books=listings.count_books(user_id, available_only=True),
            total_loans=LendingManager(self.db).count_loans_for_user(user_id),
            average_rating=user.average_rating,
        )
        return UserProfile(
            user=UserResponse.model_validate(user),
            books=[BookResponse.model_validate(b) for b in books],
            stats=stats,
        )

    def search_users(self, query: UserQuery) -> tuple[list[User], Pagination]:
        """Search members, best rated first."""
        with self.db.get_session() as session:
            stmt = select(User)

            if query.search:
                pattern = f"%{query.search.strip()}%"
                stmt = stmt.where(
                    or_(
                        User.username.ilike(pattern),
                        User.first_name.ilike(pattern),
                        User.last_name.ilike(pattern),
                    )
                )
            if query.location:
                stmt = stmt.where(User.location.ilike(f"%{query.location.strip()}%"))

            total = session.execute(
                select(func.count()).select_from(stmt.subquery())
            ).scalar() or 0

            offset = (query.page - 1) * query.limit
            users = list(
                session.execute(
                    stmt.order_by(User.rating.desc(), User.total_ratings.desc())
                    .offset(offset)
                    .limit(query.limit)
                ).scalars().all()
            )
            return users, Pagination.build(query.page, query.limit, len(users), total)
