"""Accounts module.

Provides functionality for:
- Registration and login
- Public profiles and member search
"""

from .manager import UserManager
from .schemas import LoginRequest, Token, UserPage, UserProfile, UserQuery, UserStats

__all__ = [
    "UserManager",
    "LoginRequest",
    "Token",
    "UserPage",
    "UserProfile",
    "UserQuery",
    "UserStats",
]
