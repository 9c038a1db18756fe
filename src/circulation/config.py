"""Configuration management for circulation.

Loads configuration from environment variables and provides defaults.
"""

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env file if present
load_dotenv()

_TRUE_VALUES = {"1", "true", "yes", "on"}

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _env_decimal(name: str, default: str) -> Decimal:
    raw = os.environ.get(name, default)
    try:
        return Decimal(raw)
    except InvalidOperation:
        raise ValueError(f"{name} must be a decimal number, got {raw!r}")


@dataclass
class Config:
    """Application configuration."""

    # Database
    db_path: Path
    busy_timeout: float  # seconds

    # Penalties
    base_fee: Decimal
    daily_fee: Decimal

    # Lending
    default_loan_days: int
    strict_invariants: bool

    # Logging
    log_level: str

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        db_path_str = os.environ.get(
            "CIRCULATION_DB_PATH",
            str(Path.home() / ".circulation" / "circulation.db"),
        )
        db_path = Path(db_path_str).expanduser()

        return cls(
            db_path=db_path,
            busy_timeout=float(os.environ.get("CIRCULATION_BUSY_TIMEOUT", "30")),
            base_fee=_env_decimal("CIRCULATION_BASE_FEE", "10"),
            daily_fee=_env_decimal("CIRCULATION_DAILY_FEE", "0.5"),
            default_loan_days=int(os.environ.get("CIRCULATION_LOAN_DAYS", "14")),
            strict_invariants=_env_bool("CIRCULATION_STRICT_INVARIANTS"),
            log_level=os.environ.get("CIRCULATION_LOG_LEVEL", "WARNING").upper(),
        )

    def validate(self) -> list[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if self.base_fee < 0:
            errors.append(f"Base fee cannot be negative: {self.base_fee}")
        if self.daily_fee < 0:
            errors.append(f"Daily fee cannot be negative: {self.daily_fee}")
        if self.default_loan_days <= 0:
            errors.append(f"Loan length must be positive: {self.default_loan_days}")
        if self.busy_timeout <= 0:
            errors.append(f"Busy timeout must be positive: {self.busy_timeout}")
        if self.log_level not in LOG_LEVELS:
            errors.append(
                f"Unknown log level: {self.log_level} (expected one of {', '.join(LOG_LEVELS)})"
            )

        # Check database directory is writable
        if str(self.db_path) != ":memory:" and not self.db_path.parent.exists():
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            except PermissionError:
                errors.append(f"Cannot create database directory: {self.db_path.parent}")

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
