"""Checkout lifecycle for individual loans.

A loan moves through at most two transitions:

    active -> returned
    active -> pending_payment -> returned

Every transition is a compare-and-set on the loan's state, so two
requests racing on the same loan cannot both apply. Copies are reserved
and released through the InventoryLedger inside the same transaction as
the loan change.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import ValidationError
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ..clock import Clock, SystemClock, format_instant
from ..db.sqlite import Database, get_db
from ..errors import (
    AlreadyPendingPaymentError,
    AlreadyReturnedError,
    InvalidDueDateError,
    ItemNotFoundError,
    LendingValidationError,
    LoanNotFoundError,
    NotPendingPaymentError,
)
from ..inventory.ledger import InventoryLedger, ReservationOutcome
from ..penalties.policy import PenaltyPolicy
from .models import Loan
from .schemas import (
    CheckoutOutcome,
    CheckoutRequest,
    CheckoutResult,
    LoanResponse,
    LoanState,
    OverdueLoan,
    OverdueReport,
    ReturnOutcome,
    ReturnResult,
)

logger = logging.getLogger(__name__)


class CheckoutLifecycle:
    """Owns the state machine of every loan."""

    def __init__(
        self,
        db: Optional[Database] = None,
        ledger: Optional[InventoryLedger] = None,
        policy: Optional[PenaltyPolicy] = None,
        clock: Optional[Clock] = None,
    ):
        """Initialize the lifecycle.

        Args:
            db: Database instance
            ledger: Inventory ledger sharing the same database
            policy: Penalty policy applied on return
            clock: Source of the current instant
        """
        self.db = db or get_db()
        self.ledger = ledger or InventoryLedger(self.db)
        self.policy = policy or PenaltyPolicy()
        self.clock = clock or SystemClock()

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def checkout(self, item_id: str, borrower_id: str, due_at: datetime) -> CheckoutResult:
        """Lend one copy of an item.

        Args:
            item_id: Item to borrow
            borrower_id: Opaque borrower identity
            due_at: Instant the copy is due back; must be after now

        Returns:
            CheckoutResult with the new loan ID, or outcome
            NO_COPIES_AVAILABLE when every copy is out

        Raises:
            InvalidDueDateError: If due_at is not after the checkout instant
            LendingValidationError: If the identifiers are malformed
            ItemNotFoundError: If the item does not exist
        """
        try:
            request = CheckoutRequest(item_id=item_id, borrower_id=borrower_id, due_at=due_at)
        except ValidationError as e:
            raise LendingValidationError(f"Invalid checkout request: {e}") from e

        checkout_at = self.clock.now()
        if request.due_at <= checkout_at:
            raise InvalidDueDateError(
                f"Due date {request.due_at.isoformat()} must be after "
                f"checkout date {checkout_at.isoformat()}"
            )

        with self.db.get_session() as session:
            if not self.db.item_exists(request.item_id, session):
                raise ItemNotFoundError(request.item_id)

            reservation = self.ledger.try_reserve(request.item_id, session)
            if reservation == ReservationOutcome.NO_COPIES_AVAILABLE:
                logger.info(
                    "Checkout of item %s by %s refused: no copies available",
                    request.item_id,
                    request.borrower_id,
                )
                return CheckoutResult(
                    item_id=request.item_id,
                    outcome=CheckoutOutcome.NO_COPIES_AVAILABLE,
                )

            loan = Loan(
                item_id=request.item_id,
                borrower_id=request.borrower_id,
                state=LoanState.ACTIVE.value,
                checkout_ts=format_instant(checkout_at),
                due_ts=format_instant(request.due_at),
            )
            session.add(loan)
            session.flush()
            loan_id = loan.id

        logger.info(
            "Loan %s: item %s checked out by %s, due %s",
            loan_id,
            request.item_id,
            request.borrower_id,
            request.due_at.isoformat(),
        )
        return CheckoutResult(
            item_id=request.item_id,
            outcome=CheckoutOutcome.CHECKED_OUT,
            loan_id=loan_id,
        )

    def return_loan(self, loan_id: str) -> ReturnResult:
        """Request the return of a loan.

        A loan returned on time is closed and its copy released. An overdue
        loan moves to pending_payment with the penalty frozen; the copy
        stays out until the penalty is paid.

        Raises:
            LoanNotFoundError: If the loan does not exist
            AlreadyReturnedError: If the loan is already closed
            AlreadyPendingPaymentError: If a penalty is already waiting
        """
        now = self.clock.now()

        with self.db.get_session() as session:
            loan = self._require_loan(session, loan_id)
            self._ensure_returnable(loan)

            penalty = self.policy.compute(loan.due_at, now)
            requested_ts = format_instant(now)

            if penalty == 0:
                self._transition(
                    session,
                    loan,
                    LoanState.ACTIVE,
                    LoanState.RETURNED,
                    return_requested_ts=requested_ts,
                    closed_ts=requested_ts,
                    penalty_due=str(penalty),
                )
                self.ledger.release(loan.item_id, session)
                outcome = ReturnOutcome.RETURNED
            else:
                self._transition(
                    session,
                    loan,
                    LoanState.ACTIVE,
                    LoanState.PENDING_PAYMENT,
                    return_requested_ts=requested_ts,
                    penalty_due=str(penalty),
                )
                outcome = ReturnOutcome.PENALTY_DUE

            loan_id = loan.id

        if outcome == ReturnOutcome.RETURNED:
            logger.info("Loan %s returned on time", loan_id)
        else:
            logger.info("Loan %s returned late: penalty %s due", loan_id, penalty)

        return ReturnResult(loan_id=loan_id, outcome=outcome, penalty_due=penalty)

    def process_payment(self, loan_id: str) -> LoanResponse:
        """Close a loan whose penalty has been paid and release its copy.

        Charging the borrower happens elsewhere; this call records that the
        frozen penalty was settled.

        Raises:
            LoanNotFoundError: If the loan does not exist
            NotPendingPaymentError: If the loan has no outstanding penalty
        """
        now = self.clock.now()

        with self.db.get_session() as session:
            loan = self._require_loan(session, loan_id)
            if loan.state != LoanState.PENDING_PAYMENT.value:
                raise NotPendingPaymentError(loan.id, loan.state)

            self._transition(
                session,
                loan,
                LoanState.PENDING_PAYMENT,
                LoanState.RETURNED,
                closed_ts=format_instant(now),
            )
            self.ledger.release(loan.item_id, session)

            session.refresh(loan)
            response = self._to_response(loan)

        logger.info(
            "Loan %s closed after payment of %s", response.id, response.penalty_snapshot
        )
        return response

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_loan(self, loan_id: str) -> Optional[LoanResponse]:
        """Get a loan by ID.

        Args:
            loan_id: Loan ID

        Returns:
            LoanResponse or None
        """
        with self.db.get_session() as session:
            loan = session.get(Loan, str(loan_id))
            if loan is None:
                return None
            return self._to_response(loan)

    def list_loans_for_borrower(
        self, borrower_id: str, state: Optional[LoanState] = None
    ) -> list[LoanResponse]:
        """List a borrower's loans, most recent first."""
        return self.list_loans(borrower_id=borrower_id, state=state)

    def list_loans(
        self,
        borrower_id: Optional[str] = None,
        item_id: Optional[str] = None,
        state: Optional[LoanState] = None,
    ) -> list[LoanResponse]:
        """List loans with optional filters.

        Args:
            borrower_id: Filter by borrower
            item_id: Filter by item
            state: Filter by state

        Returns:
            List of loans, most recent checkout first
        """
        with self.db.get_session() as session:
            stmt = select(Loan)

            if borrower_id is not None:
                stmt = stmt.where(Loan.borrower_id == borrower_id.strip())
            if item_id is not None:
                stmt = stmt.where(Loan.item_id == str(item_id))
            if state is not None:
                stmt = stmt.where(Loan.state == LoanState(state).value)

            stmt = stmt.order_by(Loan.checkout_ts.desc(), Loan.id)

            loans = session.execute(stmt).scalars().all()
            return [self._to_response(loan) for loan in loans]

    def list_overdue_loans(self) -> OverdueReport:
        """Active loans whose due instant has passed."""
        now = self.clock.now()

        with self.db.get_session() as session:
            stmt = (
                select(Loan)
                .where(
                    Loan.state == LoanState.ACTIVE.value,
                    Loan.due_ts <= format_instant(now),
                )
                .order_by(Loan.due_ts)
            )
            loans = session.execute(stmt).scalars().all()

            entries = [
                OverdueLoan(
                    loan=self._to_response(loan),
                    overdue_days=self.policy.overdue_days(loan.due_at, now),
                    penalty_if_returned_now=self.policy.compute(loan.due_at, now),
                )
                for loan in loans
            ]

        return OverdueReport(
            generated_at=now,
            loans=entries,
            total_overdue=len(entries),
            oldest_overdue_days=max((e.overdue_days for e in entries), default=0),
        )

    def preview_penalty(self, loan_id: str) -> Decimal:
        """Penalty owed for a loan as of now.

        Once a return has been requested the frozen snapshot is reported;
        before that, the amount a return right now would freeze.

        Raises:
            LoanNotFoundError: If the loan does not exist
        """
        with self.db.get_session() as session:
            loan = self._require_loan(session, loan_id)
            if loan.penalty_snapshot is not None:
                return loan.penalty_snapshot
            return self.policy.compute(loan.due_at, self.clock.now())

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _require_loan(session: Session, loan_id: str) -> Loan:
        loan = session.get(Loan, str(loan_id))
        if loan is None:
            raise LoanNotFoundError(str(loan_id))
        return loan

    @staticmethod
    def _ensure_returnable(loan: Loan) -> None:
        if loan.state == LoanState.RETURNED.value:
            raise AlreadyReturnedError(loan.id)
        if loan.state == LoanState.PENDING_PAYMENT.value:
            raise AlreadyPendingPaymentError(loan.id)

    def _transition(
        self,
        session: Session,
        loan: Loan,
        expected: LoanState,
        target: LoanState,
        **values,
    ) -> None:
        """Move a loan from expected to target, or fail if someone got there first."""
        stmt = (
            update(Loan)
            .where(Loan.id == loan.id, Loan.state == expected.value)
            .values(state=target.value, **values)
            .execution_options(synchronize_session=False)
        )
        result = session.execute(stmt)
        if result.rowcount == 1:
            return

        # Lost the race: report the state the winner left behind
        session.refresh(loan)
        logger.warning(
            "Loan %s: transition %s -> %s lost to concurrent change (now %s)",
            loan.id,
            expected.value,
            target.value,
            loan.state,
        )
        if expected == LoanState.ACTIVE:
            self._ensure_returnable(loan)
        raise NotPendingPaymentError(loan.id, loan.state)

    @staticmethod
    def _to_response(loan: Loan) -> LoanResponse:
        response = LoanResponse.model_validate(loan)
        if loan.item is not None:
            response.item_title = loan.item.title
        return response
