"""Copy counter for lendable items.

InventoryLedger is the only code that changes ``Item.available_copies``
once an item exists. Each change is a single conditional UPDATE evaluated
by the database, so concurrent requests for the last copy can never
overdraw it.
"""

import logging
from enum import Enum
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from ..db.models import Item
from ..db.schemas import InventoryAudit
from ..db.sqlite import Database, get_db
from ..errors import InvalidCopyCountError, InventoryInvariantError, ItemNotFoundError

logger = logging.getLogger(__name__)


class ReservationOutcome(str, Enum):
    """Result of trying to take a copy off the shelf."""

    RESERVED = "reserved"
    NO_COPIES_AVAILABLE = "no_copies_available"


class InventoryLedger:
    """Atomic reserve / release of item copies."""

    def __init__(self, db: Optional[Database] = None, strict: Optional[bool] = None):
        """Initialize the ledger.

        Args:
            db: Database instance
            strict: Raise instead of clamping when a release would push
                    available copies past the total. Defaults to the
                    CIRCULATION_STRICT_INVARIANTS setting.
        """
        self.db = db or get_db()
        if strict is None:
            from ..config import get_config

            strict = get_config().strict_invariants
        self.strict = strict

    def try_reserve(self, item_id: str, session: Optional[Session] = None) -> ReservationOutcome:
        """Take one copy if any is available.

        The check and the decrement are one statement; when no copy is left
        nothing changes.
        """

        def _reserve(s: Session) -> ReservationOutcome:
            stmt = (
                update(Item)
                .where(Item.id == str(item_id), Item.available_copies > 0)
                .values(available_copies=Item.available_copies - 1)
                .execution_options(synchronize_session=False)
            )
            result = s.execute(stmt)
            if result.rowcount == 1:
                logger.debug("Reserved a copy of item %s", item_id)
                return ReservationOutcome.RESERVED

            logger.debug("No copies available for item %s", item_id)
            return ReservationOutcome.NO_COPIES_AVAILABLE

        if session:
            return _reserve(session)
        else:
            with self.db.get_session() as s:
                return _reserve(s)

    def release(self, item_id: str, session: Optional[Session] = None) -> None:
        """Put one copy back on the shelf.

        Never raises the count above ``total_copies``. Hitting that bound
        means a caller released a copy it never reserved.

        Raises:
            ItemNotFoundError: If the item does not exist
            InventoryInvariantError: In strict mode, if the copy count is
                already at its total
        """

        def _release(s: Session) -> None:
            stmt = (
                update(Item)
                .where(
                    Item.id == str(item_id),
                    Item.available_copies < Item.total_copies,
                )
                .values(available_copies=Item.available_copies + 1)
                .execution_options(synchronize_session=False)
            )
            result = s.execute(stmt)
            if result.rowcount == 1:
                logger.debug("Released a copy of item %s", item_id)
                return

            item = s.get(Item, str(item_id))
            if item is None:
                raise ItemNotFoundError(str(item_id))

            message = (
                f"Release of item {item_id} would exceed its total of "
                f"{item.total_copies} copies"
            )
            if self.strict:
                raise InventoryInvariantError(message)
            logger.error("%s; count left unchanged", message)

        if session:
            _release(session)
        else:
            with self.db.get_session() as s:
                _release(s)

    def adjust_total_copies(
        self, item_id: str, total_copies: int, session: Optional[Session] = None
    ) -> Item:
        """Change the number of copies owned.

        Available copies move by the same delta as the total, so copies on
        loan are unaffected.

        Raises:
            ItemNotFoundError: If the item does not exist
            InvalidCopyCountError: If the new total is negative or smaller
                than the number of copies on loan
        """
        if total_copies < 0:
            raise InvalidCopyCountError(f"Total copies cannot be negative: {total_copies}")

        def _adjust(s: Session) -> Item:
            stmt = (
                update(Item)
                .where(
                    Item.id == str(item_id),
                    Item.total_copies - Item.available_copies <= total_copies,
                )
                .values(
                    total_copies=total_copies,
                    available_copies=Item.available_copies + (total_copies - Item.total_copies),
                )
                .execution_options(synchronize_session=False)
            )
            result = s.execute(stmt)

            item = s.get(Item, str(item_id))
            if item is None:
                raise ItemNotFoundError(str(item_id))
            s.refresh(item)
            if result.rowcount != 1:
                raise InvalidCopyCountError(
                    f"Cannot reduce item {item_id} to {total_copies} copies; "
                    f"{item.copies_on_loan} are on loan"
                )

            logger.info(
                "Adjusted item %s to %d copies (%d available)",
                item.id,
                item.total_copies,
                item.available_copies,
            )
            return item

        if session:
            return _adjust(session)
        else:
            with self.db.get_session() as s:
                item = _adjust(s)
                s.expunge(item)
                return item

    def available_copies(self, item_id: str, session: Optional[Session] = None) -> int:
        """Current number of copies on the shelf."""

        def _get(s: Session) -> int:
            value = s.execute(
                select(Item.available_copies).where(Item.id == str(item_id))
            ).scalar_one_or_none()
            if value is None:
                raise ItemNotFoundError(str(item_id))
            return value

        if session:
            return _get(session)
        else:
            with self.db.get_session() as s:
                return _get(s)

    def audit(self, item_id: str, session: Optional[Session] = None) -> InventoryAudit:
        """Reconcile an item's counters against its open loans."""
        from ..lending.models import Loan
        from ..lending.schemas import OPEN_STATES

        def _audit(s: Session) -> InventoryAudit:
            item = s.get(Item, str(item_id))
            if item is None:
                raise ItemNotFoundError(str(item_id))
            s.refresh(item)

            outstanding = s.execute(
                select(func.count())
                .select_from(Loan)
                .where(Loan.item_id == item.id, Loan.state.in_(OPEN_STATES))
            ).scalar() or 0

            report = InventoryAudit(
                item_id=item.id,
                total_copies=item.total_copies,
                available_copies=item.available_copies,
                outstanding_loans=outstanding,
            )
            if not report.consistent:
                logger.error(
                    "Inventory mismatch for item %s: %d available + %d on loan != %d total",
                    item.id,
                    item.available_copies,
                    outstanding,
                    item.total_copies,
                )
            return report

        if session:
            return _audit(session)
        else:
            with self.db.get_session() as s:
                return _audit(s)
