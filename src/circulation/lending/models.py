"""SQLAlchemy models for lending.

Tables:
- loans: One borrowing episode of an item; never deleted
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..clock import parse_instant
from ..db.models import Base, Item, generate_uuid, utc_timestamp


class Loan(Base):
    """Loan model - tracks a single checkout of one copy."""

    __tablename__ = "loans"
    __table_args__ = (Index("ix_loans_item_state", "item_id", "state"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)

    # Item being borrowed; an item with loans cannot be deleted
    item_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("items.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    # Opaque identity supplied by the caller
    borrower_id: Mapped[str] = mapped_column(String(200), nullable=False, index=True)

    # Status: active, pending_payment, returned
    state: Mapped[str] = mapped_column(String(20), nullable=False, default="active", index=True)

    # Instants (fixed-width ISO text, UTC)
    checkout_ts: Mapped[str] = mapped_column(String(32), nullable=False)
    due_ts: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    return_requested_ts: Mapped[Optional[str]] = mapped_column(String(32))
    closed_ts: Mapped[Optional[str]] = mapped_column(String(32))

    # Penalty frozen at the first return request (decimal text)
    penalty_due: Mapped[Optional[str]] = mapped_column(String(20))

    # Timestamps
    created_at: Mapped[str] = mapped_column(String(32), default=utc_timestamp)
    updated_at: Mapped[str] = mapped_column(
        String(32), default=utc_timestamp, onupdate=utc_timestamp
    )

    # Relationships
    item: Mapped["Item"] = relationship("Item")

    def __repr__(self) -> str:
        return f"<Loan(id={self.id}, item_id={self.item_id}, state={self.state})>"

    @property
    def checkout_at(self) -> datetime:
        return parse_instant(self.checkout_ts)

    @property
    def due_at(self) -> datetime:
        return parse_instant(self.due_ts)

    @property
    def return_requested_at(self) -> Optional[datetime]:
        return parse_instant(self.return_requested_ts)

    @property
    def closed_at(self) -> Optional[datetime]:
        return parse_instant(self.closed_ts)

    @property
    def penalty_snapshot(self) -> Optional[Decimal]:
        """Frozen penalty, or None if no return has been requested yet."""
        if self.penalty_due is None:
            return None
        return Decimal(self.penalty_due)
