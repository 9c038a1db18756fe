"""Pydantic schemas for lending."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from ..clock import ensure_utc


class LoanState(str, Enum):
    """State of a loan.

    active -> returned, or active -> pending_payment -> returned.
    """

    ACTIVE = "active"
    PENDING_PAYMENT = "pending_payment"
    RETURNED = "returned"


OPEN_STATES = (LoanState.ACTIVE.value, LoanState.PENDING_PAYMENT.value)


class CheckoutOutcome(str, Enum):
    """Result of a checkout request."""

    CHECKED_OUT = "checked_out"
    NO_COPIES_AVAILABLE = "no_copies_available"


class ReturnOutcome(str, Enum):
    """Result of a return request."""

    RETURNED = "returned"
    PENALTY_DUE = "penalty_due"


# ============================================================================
# Requests
# ============================================================================


class CheckoutRequest(BaseModel):
    """Schema for a checkout request."""

    item_id: str = Field(..., min_length=1)
    borrower_id: str = Field(..., min_length=1, max_length=200)
    due_at: datetime

    @field_validator("item_id", "borrower_id", mode="before")
    @classmethod
    def coerce_identifier(cls, v):
        """Accept UUIDs and surrounding whitespace."""
        if isinstance(v, UUID):
            return str(v)
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("due_at")
    @classmethod
    def normalize_due(cls, v: datetime) -> datetime:
        return ensure_utc(v)


# ============================================================================
# Results
# ============================================================================


class CheckoutResult(BaseModel):
    """Outcome of a checkout; running out of copies is not an error."""

    item_id: str
    outcome: CheckoutOutcome
    loan_id: Optional[str] = None

    @property
    def checked_out(self) -> bool:
        return self.outcome == CheckoutOutcome.CHECKED_OUT


class ReturnResult(BaseModel):
    """Outcome of a return request."""

    loan_id: str
    outcome: ReturnOutcome
    penalty_due: Decimal = Decimal("0.00")

    @property
    def returned(self) -> bool:
        return self.outcome == ReturnOutcome.RETURNED


class LoanResponse(BaseModel):
    """Read view of a loan."""

    id: str
    item_id: str
    borrower_id: str
    state: LoanState
    checkout_at: datetime
    due_at: datetime
    return_requested_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    penalty_snapshot: Optional[Decimal] = None

    # Related data (populated by lifecycle)
    item_title: Optional[str] = None

    model_config = {"from_attributes": True}


class OverdueLoan(BaseModel):
    """An active loan past its due instant."""

    loan: LoanResponse
    overdue_days: int
    penalty_if_returned_now: Decimal


class OverdueReport(BaseModel):
    """Report of overdue loans."""

    generated_at: datetime
    loans: list[OverdueLoan]
    total_overdue: int
    oldest_overdue_days: int
