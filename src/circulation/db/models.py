"""SQLAlchemy ORM models for the local database.

Tables:
- items: Lendable works and their copy counters
- loans: Defined in circulation.lending.models
"""

from datetime import date, datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import CheckConstraint, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def generate_uuid() -> str:
    """Generate a UUID string for primary keys."""
    return str(uuid4())


def utc_timestamp() -> str:
    """Row timestamp in ISO format."""
    return datetime.now(timezone.utc).isoformat()


class Item(Base):
    """Item model - a catalog entry with a fixed number of copies."""

    __tablename__ = "items"
    __table_args__ = (
        CheckConstraint("total_copies >= 0", name="ck_items_total_nonnegative"),
        CheckConstraint("available_copies >= 0", name="ck_items_available_nonnegative"),
        CheckConstraint(
            "available_copies <= total_copies", name="ck_items_available_le_total"
        ),
    )

    # Primary key
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)

    # Core fields
    title: Mapped[str] = mapped_column(String(150), nullable=False, unique=True, index=True)
    author: Mapped[Optional[str]] = mapped_column(String(100), index=True)
    genre: Mapped[Optional[str]] = mapped_column(String(100), index=True)
    published_date: Mapped[Optional[str]] = mapped_column(String(10))  # ISO date

    # Copy counters; available_copies only changes through InventoryLedger
    total_copies: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    available_copies: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Timestamps
    created_at: Mapped[str] = mapped_column(String(32), default=utc_timestamp)
    updated_at: Mapped[str] = mapped_column(
        String(32), default=utc_timestamp, onupdate=utc_timestamp
    )

    def __repr__(self) -> str:
        return (
            f"<Item(id={self.id}, title='{self.title}', "
            f"available={self.available_copies}/{self.total_copies})>"
        )

    @property
    def copies_on_loan(self) -> int:
        """Copies currently out (active or awaiting payment)."""
        return self.total_copies - self.available_copies

    @property
    def is_available(self) -> bool:
        return self.available_copies > 0

    @property
    def published(self) -> Optional[date]:
        if not self.published_date:
            return None
        return date.fromisoformat(self.published_date)
