"""Overdue penalty computation."""

from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from ..clock import ensure_utc

DEFAULT_BASE_FEE = Decimal("10")
DEFAULT_DAILY_FEE = Decimal("0.5")

_CENTS = Decimal("0.01")
_ONE_DAY = timedelta(days=1)


class PenaltyPolicy:
    """Maps a due instant and an evaluation instant to a penalty amount.

    A loan evaluated before its due instant costs nothing. From the due
    instant on, the borrower owes the base fee plus the daily fee for each
    whole day past due.
    """

    def __init__(
        self,
        base_fee: Optional[Decimal] = None,
        daily_fee: Optional[Decimal] = None,
    ):
        self.base_fee = Decimal(base_fee) if base_fee is not None else DEFAULT_BASE_FEE
        self.daily_fee = Decimal(daily_fee) if daily_fee is not None else DEFAULT_DAILY_FEE
        if self.base_fee < 0 or self.daily_fee < 0:
            raise ValueError("Penalty fees cannot be negative")

    @classmethod
    def from_config(cls, config) -> "PenaltyPolicy":
        return cls(base_fee=config.base_fee, daily_fee=config.daily_fee)

    @staticmethod
    def overdue_days(due_at: datetime, evaluated_at: datetime) -> int:
        """Whole days elapsed past the due instant (0 if not yet due)."""
        elapsed = ensure_utc(evaluated_at) - ensure_utc(due_at)
        if elapsed < timedelta(0):
            return 0
        return elapsed // _ONE_DAY

    def is_overdue(self, due_at: datetime, evaluated_at: datetime) -> bool:
        return ensure_utc(evaluated_at) >= ensure_utc(due_at)

    def compute(self, due_at: datetime, evaluated_at: datetime) -> Decimal:
        """Penalty owed if the loan were closed at evaluated_at.

        Args:
            due_at: Instant the loan was due
            evaluated_at: Instant the penalty is evaluated at

        Returns:
            Amount rounded to cents; Decimal("0.00") when not overdue
        """
        if not self.is_overdue(due_at, evaluated_at):
            return Decimal("0.00")

        days = self.overdue_days(due_at, evaluated_at)
        amount = self.base_fee + self.daily_fee * days
        return amount.quantize(_CENTS, rounding=ROUND_HALF_UP)

    def __repr__(self) -> str:
        return f"<PenaltyPolicy(base_fee={self.base_fee}, daily_fee={self.daily_fee})>"
