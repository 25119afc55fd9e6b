"""Error taxonomy for the marketplace.

Every business failure is raised as a ``MarketplaceError`` subclass carrying a
user-facing message and the HTTP status code it maps to.
"""

from typing import Any, Optional


class MarketplaceError(Exception):
    """Base exception for all marketplace errors."""

    status_code = 500

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a dictionary for API responses."""
        result: dict[str, Any] = {"message": self.message}
        if self.details:
            result["errors"] = self.details
        return result


class NotFoundError(MarketplaceError):
    """Raised when a book, loan or user does not exist."""

    status_code = 404


class ValidationError(MarketplaceError):
    """Raised for missing, malformed or out-of-range input."""

    status_code = 400

    @classmethod
    def from_pydantic(cls, exc) -> "ValidationError":
        """Build from a ``pydantic.ValidationError``."""
        errors = [
            {
                "field": ".".join(str(p) for p in err.get("loc", ())),
                "message": err.get("msg", "Invalid value"),
            }
            for err in exc.errors()
        ]
        message = errors[0]["message"] if errors else "Invalid input"
        return cls(message, details=errors)


class InvalidStateError(MarketplaceError):
    """Raised when a business-rule precondition fails."""

    status_code = 400


class ForbiddenError(MarketplaceError):
    """Raised when the actor is authenticated but not permitted."""

    status_code = 403


class UnauthenticatedError(MarketplaceError):
    """Raised when no identity could be resolved."""

    status_code = 401


class InternalError(MarketplaceError):
    """Raised for unexpected persistence failures."""

    status_code = 500
