"""Lending service: the entry point for the surrounding application."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from ..clock import Clock, SystemClock
from ..config import Config, get_config
from ..db.models import Item
from ..db.schemas import InventoryAudit
from ..db.sqlite import Database, get_db
from ..inventory.ledger import InventoryLedger
from ..penalties.policy import PenaltyPolicy
from .lifecycle import CheckoutLifecycle
from .schemas import CheckoutResult, LoanResponse, OverdueReport, ReturnResult


class LendingService:
    """Checkout, return and payment of item copies.

    Callers are expected to supply an authenticated borrower identity and
    well-typed parameters. Running out of copies and owing a penalty are
    reported through the returned results; misuse raises a LendingError.
    """

    def __init__(
        self,
        db: Optional[Database] = None,
        clock: Optional[Clock] = None,
        policy: Optional[PenaltyPolicy] = None,
        config: Optional[Config] = None,
    ):
        self.config = config or get_config()
        self.db = db or get_db()
        self.clock = clock or SystemClock()
        self.policy = policy or PenaltyPolicy.from_config(self.config)
        self.ledger = InventoryLedger(self.db, strict=self.config.strict_invariants)
        self.lifecycle = CheckoutLifecycle(
            self.db, ledger=self.ledger, policy=self.policy, clock=self.clock
        )

    def checkout(self, item_id: str, borrower_id: str, due_at: datetime) -> CheckoutResult:
        """Lend a copy of an item until due_at."""
        return self.lifecycle.checkout(item_id, borrower_id, due_at)

    def return_item(self, loan_id: str) -> ReturnResult:
        """Return a loan; the result carries any penalty now due."""
        return self.lifecycle.return_loan(loan_id)

    def process_payment(self, loan_id: str) -> LoanResponse:
        """Record payment of a frozen penalty and close the loan."""
        return self.lifecycle.process_payment(loan_id)

    def get_loan(self, loan_id: str) -> Optional[LoanResponse]:
        return self.lifecycle.get_loan(loan_id)

    def list_loans_for_borrower(self, borrower_id: str) -> list[LoanResponse]:
        return self.lifecycle.list_loans_for_borrower(borrower_id)

    def list_overdue_loans(self) -> OverdueReport:
        return self.lifecycle.list_overdue_loans()

    def preview_penalty(self, loan_id: str) -> Decimal:
        return self.lifecycle.preview_penalty(loan_id)

    def get_item(self, item_id: str) -> Optional[Item]:
        return self.db.get_item(item_id)

    def audit_item(self, item_id: str) -> InventoryAudit:
        return self.ledger.audit(item_id)


# Global service instance
_service: Optional[LendingService] = None


def get_lending_service() -> LendingService:
    """Get or create the global lending service."""
    global _service
    if _service is None:
        _service = LendingService()
    return _service


def reset_lending_service() -> None:
    """Reset the global lending service. Used for testing."""
    global _service
    _service = None
