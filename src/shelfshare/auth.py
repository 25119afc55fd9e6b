"""Authentication helpers.

Passwords are stored as bcrypt hashes through a passlib ``CryptContext``.
Tokens are HS256 JWTs whose ``sub`` claim is the user ID, signed with the
configured secret and sent as ``Authorization: Bearer <token>``.
"""

from datetime import datetime, timedelta, timezone
from functools import wraps
from typing import Callable, Optional

import jwt
from flask import current_app, g, request
from passlib.context import CryptContext

from .config import get_config
from .errors import UnauthenticatedError

JWT_ALGORITHM = "HS256"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


# ============================================================================
# Passwords
# ============================================================================


def hash_password(password: str) -> str:
    """Hash a password with a random salt."""
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    """Check a password against a stored hash."""
    try:
        return pwd_context.verify(password, hashed)
    except ValueError:
        return False


# ============================================================================
# Tokens
# ============================================================================


def make_token(
    user_id: str,
    secret: Optional[str] = None,
    ttl_hours: Optional[int] = None,
) -> str:
    """Create a signed token for a user."""
    config = get_config()
    secret = secret or config.secret_key
    ttl_hours = ttl_hours if ttl_hours is not None else config.token_ttl_hours

    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(hours=ttl_hours)).timestamp()),
    }
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def parse_token(token: str, secret: Optional[str] = None) -> Optional[str]:
    """Return the user ID from a valid, unexpired token, else None."""
    secret = secret or get_config().secret_key
    try:
        data = jwt.decode(
            token, secret, algorithms=[JWT_ALGORITHM], options={"require": ["exp", "sub"]}
        )
    except jwt.InvalidTokenError:
        return None
    return data.get("sub")


# ============================================================================
# Request identity
# ============================================================================


def _bearer_token() -> Optional[str]:
    header = request.headers.get("Authorization", "")
    if header.startswith("Bearer "):
        return header[len("Bearer "):].strip() or None
    return None


def resolve_identity(required: bool = True):
    """Resolve the current request to a user.

    Args:
        required: Raise when no valid identity is present

    Returns:
        The user, or None when ``required`` is False and none is present

    Raises:
        UnauthenticatedError: Identity required but missing or invalid
    """
    token = _bearer_token()
    if not token:
        if required:
            raise UnauthenticatedError("No token, authorization denied")
        return None

    secret = current_app.config["SECRET_KEY"]
    user_id = parse_token(token, secret)
    user = current_app.extensions["shelfshare"]["users"].get_user(user_id) if user_id else None
    if user is None:
        if required:
            raise UnauthenticatedError("Token is not valid")
        return None
    return user


def login_required(view: Callable) -> Callable:
    """Require an authenticated user; sets ``g.user``."""

    @wraps(view)
    def wrapper(*args, **kwargs):
        g.user = resolve_identity(required=True)
        return view(*args, **kwargs)

    return wrapper


def login_optional(view: Callable) -> Callable:
    """Resolve the user if a valid token is present; ``g.user`` may be None."""

    @wraps(view)
    def wrapper(*args, **kwargs):
        g.user = resolve_identity(required=False)
        return view(*args, **kwargs)

    return wrapper
