"""Tests for Pydantic schemas."""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from pydantic import ValidationError

from circulation.db.schemas import InventoryAudit, ItemCreate, ItemResponse, ItemUpdate
from circulation.lending.schemas import (
    CheckoutOutcome,
    CheckoutRequest,
    CheckoutResult,
    LoanState,
    OPEN_STATES,
    ReturnOutcome,
    ReturnResult,
)


class TestItemCreate:
    """Tests for ItemCreate schema."""

    def test_create_minimal_item(self):
        """Test creating an item with only a title."""
        item = ItemCreate(title="Beloved")
        assert item.title == "Beloved"
        assert item.author is None
        assert item.total_copies == 1  # default

    def test_title_is_stripped(self):
        assert ItemCreate(title="  Beloved ").title == "Beloved"

    def test_empty_title_rejected(self):
        with pytest.raises(ValidationError):
            ItemCreate(title="")

    def test_blank_title_rejected(self):
        with pytest.raises(ValidationError):
            ItemCreate(title="   ")

    def test_negative_copies_rejected(self):
        with pytest.raises(ValidationError):
            ItemCreate(title="Beloved", total_copies=-1)

    def test_zero_copies_allowed(self):
        assert ItemCreate(title="Reference", total_copies=0).total_copies == 0

    def test_published_date_parsed(self):
        item = ItemCreate(title="Beloved", published_date="1987-09-02")
        assert item.published_date == date(1987, 9, 2)


class TestItemUpdate:
    def test_only_set_fields_dumped(self):
        update = ItemUpdate(genre="Literary Fiction")
        assert update.model_dump(exclude_unset=True) == {"genre": "Literary Fiction"}


class TestItemResponse:
    def test_from_orm_item(self, db, sample_item):
        response = ItemResponse.model_validate(sample_item)

        assert str(response.id) == sample_item.id
        assert response.total_copies == 2
        assert response.copies_on_loan == 0


class TestInventoryAudit:
    def test_consistent(self):
        audit = InventoryAudit(
            item_id=uuid4(), total_copies=3, available_copies=1, outstanding_loans=2
        )
        assert audit.consistent

    def test_inconsistent(self):
        audit = InventoryAudit(
            item_id=uuid4(), total_copies=3, available_copies=2, outstanding_loans=2
        )
        assert not audit.consistent


class TestCheckoutRequest:
    """Tests for CheckoutRequest schema."""

    DUE = datetime(2025, 3, 15, 9, 0, tzinfo=timezone.utc)

    def test_identifiers_stripped(self):
        request = CheckoutRequest(item_id=" abc ", borrower_id=" alice ", due_at=self.DUE)
        assert request.item_id == "abc"
        assert request.borrower_id == "alice"

    def test_uuid_item_id_accepted(self):
        item_id = uuid4()
        request = CheckoutRequest(item_id=item_id, borrower_id="alice", due_at=self.DUE)
        assert request.item_id == str(item_id)

    def test_blank_borrower_rejected(self):
        with pytest.raises(ValidationError):
            CheckoutRequest(item_id="abc", borrower_id="  ", due_at=self.DUE)

    def test_due_normalized_to_utc(self):
        local = self.DUE.astimezone(timezone(timedelta(hours=-5)))
        request = CheckoutRequest(item_id="abc", borrower_id="alice", due_at=local)
        assert request.due_at == self.DUE
        assert request.due_at.tzinfo == timezone.utc

    def test_naive_due_taken_as_utc(self):
        request = CheckoutRequest(
            item_id="abc", borrower_id="alice", due_at=self.DUE.replace(tzinfo=None)
        )
        assert request.due_at == self.DUE


class TestResults:
    def test_checkout_result_flags(self):
        assert CheckoutResult(
            item_id="abc", outcome=CheckoutOutcome.CHECKED_OUT, loan_id="l1"
        ).checked_out
        refused = CheckoutResult(item_id="abc", outcome=CheckoutOutcome.NO_COPIES_AVAILABLE)
        assert not refused.checked_out
        assert refused.loan_id is None

    def test_return_result_defaults(self):
        result = ReturnResult(loan_id="l1", outcome=ReturnOutcome.RETURNED)
        assert result.returned
        assert result.penalty_due == Decimal("0")

    def test_open_states(self):
        assert LoanState.ACTIVE in OPEN_STATES
        assert LoanState.PENDING_PAYMENT in OPEN_STATES
        assert LoanState.RETURNED not in OPEN_STATES
