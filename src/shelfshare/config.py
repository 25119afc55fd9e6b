"""Configuration management for shelfshare.

Loads configuration from environment variables and provides defaults.
"""

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env file if present
load_dotenv()


class CancelPolicy(str, Enum):
    """Who may move a loan to ``cancelled``."""

    ANY = "any"  # Any authenticated user
    PARTICIPANTS = "participants"  # Borrower or lender
    BORROWER = "borrower"
    LENDER = "lender"


@dataclass
class Config:
    """Application configuration."""

    # Database
    db_path: Path

    # Auth
    secret_key: str
    token_ttl_hours: int

    # Lending
    cancel_policy: CancelPolicy

    # Logging
    log_level: str

    # HTTP server
    host: str
    port: int

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        db_path_str = os.environ.get(
            "SHELFSHARE_DB_PATH",
            str(Path.home() / ".shelfshare" / "shelfshare.db"),
        )
        db_path = Path(db_path_str).expanduser()

        policy = os.environ.get("SHELFSHARE_CANCEL_POLICY", CancelPolicy.PARTICIPANTS.value)

        return cls(
            db_path=db_path,
            secret_key=os.environ.get("SHELFSHARE_SECRET_KEY", "dev-secret"),
            token_ttl_hours=int(os.environ.get("SHELFSHARE_TOKEN_TTL_HOURS", "24")),
            cancel_policy=CancelPolicy(policy.lower()),
            log_level=os.environ.get("SHELFSHARE_LOG_LEVEL", "INFO").upper(),
            host=os.environ.get("SHELFSHARE_HOST", "127.0.0.1"),
            port=int(os.environ.get("SHELFSHARE_PORT", "5000")),
        )

    def validate(self) -> list[str]:
        """Validate configuration, return list of errors."""
        errors = []

        # Check database directory is writable
        if str(self.db_path) != ":memory:" and not self.db_path.parent.exists():
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            except PermissionError:
                errors.append(f"Cannot create database directory: {self.db_path.parent}")

        if self.secret_key == "dev-secret":
            errors.append("SHELFSHARE_SECRET_KEY is not set; using the development secret")

        if self.token_ttl_hours <= 0:
            errors.append("SHELFSHARE_TOKEN_TTL_HOURS must be positive")

        return errors


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create the global config instance."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def reset_config() -> None:
    """Reset the global config instance. Used for testing."""
    global _config
    _config = None
