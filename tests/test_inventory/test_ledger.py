"""Tests for InventoryLedger."""

import threading

import pytest

from circulation.db.schemas import ItemCreate
from circulation.errors import (
    InvalidCopyCountError,
    InventoryInvariantError,
    ItemNotFoundError,
)
from circulation.inventory.ledger import InventoryLedger, ReservationOutcome


class TestTryReserve:
    """Tests for reserving copies."""

    def test_reserve_decrements(self, ledger, db, sample_item):
        """Test a reservation takes one copy."""
        outcome = ledger.try_reserve(sample_item.id)

        assert outcome == ReservationOutcome.RESERVED
        assert ledger.available_copies(sample_item.id) == 1

    def test_reserve_until_empty(self, ledger, sample_item):
        """Test reservations stop at zero without going negative."""
        assert ledger.try_reserve(sample_item.id) == ReservationOutcome.RESERVED
        assert ledger.try_reserve(sample_item.id) == ReservationOutcome.RESERVED
        assert ledger.try_reserve(sample_item.id) == ReservationOutcome.NO_COPIES_AVAILABLE
        assert ledger.available_copies(sample_item.id) == 0

    def test_reserve_item_with_no_copies(self, ledger, db):
        """Test an item owning zero copies can never be reserved."""
        item = db.create_item(ItemCreate(title="Reference Only", total_copies=0))
        assert ledger.try_reserve(item.id) == ReservationOutcome.NO_COPIES_AVAILABLE
        assert ledger.available_copies(item.id) == 0

    def test_reserve_unknown_item(self, ledger):
        """Test an unknown item is simply not reservable."""
        assert ledger.try_reserve("missing") == ReservationOutcome.NO_COPIES_AVAILABLE

    def test_reserve_rolls_back_with_session(self, ledger, db, sample_item):
        """Test a reservation inside a failed transaction is undone."""
        with pytest.raises(RuntimeError):
            with db.get_session() as session:
                ledger.try_reserve(sample_item.id, session)
                raise RuntimeError("storage failure")

        assert ledger.available_copies(sample_item.id) == 2

    def test_concurrent_reservations_never_overdraw(self, ledger, db):
        """Test exactly as many reservations succeed as there are copies."""
        item = db.create_item(ItemCreate(title="Popular Book", total_copies=3))
        workers = 12
        barrier = threading.Barrier(workers)
        outcomes = []
        lock = threading.Lock()

        def worker():
            barrier.wait()
            outcome = ledger.try_reserve(item.id)
            with lock:
                outcomes.append(outcome)

        threads = [threading.Thread(target=worker) for _ in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count(ReservationOutcome.RESERVED) == 3
        assert outcomes.count(ReservationOutcome.NO_COPIES_AVAILABLE) == workers - 3
        assert ledger.available_copies(item.id) == 0


class TestRelease:
    """Tests for releasing copies."""

    def test_release_increments(self, ledger, sample_item):
        ledger.try_reserve(sample_item.id)
        ledger.release(sample_item.id)
        assert ledger.available_copies(sample_item.id) == 2

    def test_release_past_total_strict(self, ledger, sample_item):
        """Test strict mode fails loudly on a release that was never reserved."""
        with pytest.raises(InventoryInvariantError):
            ledger.release(sample_item.id)
        assert ledger.available_copies(sample_item.id) == 2

    def test_release_past_total_clamps(self, db, sample_item, caplog):
        """Test lenient mode keeps the count at its total and logs an error."""
        lenient = InventoryLedger(db, strict=False)

        with caplog.at_level("ERROR", logger="circulation.inventory.ledger"):
            lenient.release(sample_item.id)

        assert lenient.available_copies(sample_item.id) == 2
        assert "would exceed" in caplog.text

    def test_release_unknown_item(self, ledger):
        with pytest.raises(ItemNotFoundError):
            ledger.release("missing")


class TestAdjustTotalCopies:
    """Tests for changing the number of copies owned."""

    def test_increase_total(self, ledger, sample_item):
        ledger.try_reserve(sample_item.id)

        item = ledger.adjust_total_copies(sample_item.id, 5)

        assert item.total_copies == 5
        assert item.available_copies == 4

    def test_decrease_total(self, ledger, sample_item):
        item = ledger.adjust_total_copies(sample_item.id, 1)

        assert item.total_copies == 1
        assert item.available_copies == 1

    def test_decrease_to_copies_on_loan(self, ledger, sample_item):
        """Test the total can shrink to exactly the copies on loan."""
        ledger.try_reserve(sample_item.id)

        item = ledger.adjust_total_copies(sample_item.id, 1)

        assert item.total_copies == 1
        assert item.available_copies == 0

    def test_cannot_drop_below_copies_on_loan(self, ledger, sample_item):
        ledger.try_reserve(sample_item.id)
        ledger.try_reserve(sample_item.id)

        with pytest.raises(InvalidCopyCountError, match="are on loan"):
            ledger.adjust_total_copies(sample_item.id, 1)

        assert ledger.available_copies(sample_item.id) == 0

    def test_negative_total_rejected(self, ledger, sample_item):
        with pytest.raises(InvalidCopyCountError):
            ledger.adjust_total_copies(sample_item.id, -1)

    def test_unknown_item(self, ledger):
        with pytest.raises(ItemNotFoundError):
            ledger.adjust_total_copies("missing", 3)


class TestAudit:
    """Tests for reconciling counters with open loans."""

    def test_audit_fresh_item(self, ledger, sample_item):
        report = ledger.audit(sample_item.id)

        assert report.total_copies == 2
        assert report.available_copies == 2
        assert report.outstanding_loans == 0
        assert report.consistent

    def test_audit_tracks_loans(self, service, sample_item, due_at):
        service.checkout(sample_item.id, "alice", due_at)

        report = service.ledger.audit(sample_item.id)

        assert report.available_copies == 1
        assert report.outstanding_loans == 1
        assert report.consistent

    def test_audit_detects_reservation_without_loan(self, ledger, sample_item, caplog):
        """Test a bare reservation shows up as an inconsistency."""
        ledger.try_reserve(sample_item.id)

        with caplog.at_level("ERROR", logger="circulation.inventory.ledger"):
            report = ledger.audit(sample_item.id)

        assert not report.consistent
        assert "Inventory mismatch" in caplog.text

    def test_audit_unknown_item(self, ledger):
        with pytest.raises(ItemNotFoundError):
            ledger.audit("missing")
