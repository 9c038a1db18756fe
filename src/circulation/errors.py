"""Error types raised by the lending core.

Expected business outcomes (no copies left, penalty due) are returned as
typed results. These exceptions cover caller misuse, misses on write paths
and invariant breaches.
"""

from typing import Optional


class LendingError(Exception):
    """Base class for all lending errors."""

    code = "lending_error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.__class__.__doc__)


# Not found


class NotFoundError(LendingError):
    """Requested record does not exist."""

    code = "not_found"


class ItemNotFoundError(NotFoundError):
    """Item not found."""

    code = "item_not_found"

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Item not found: {item_id}")


class LoanNotFoundError(NotFoundError):
    """Loan not found."""

    code = "loan_not_found"

    def __init__(self, loan_id: str):
        self.loan_id = loan_id
        super().__init__(f"Loan not found: {loan_id}")


# Validation


class LendingValidationError(LendingError, ValueError):
    """Request rejected before any state change."""

    code = "validation_error"


class InvalidDueDateError(LendingValidationError):
    """Due date must be after the checkout date."""

    code = "invalid_due_date"


class DuplicateTitleError(LendingValidationError):
    """An item with this title already exists."""

    code = "duplicate_title"

    def __init__(self, title: str):
        self.title = title
        super().__init__(f"An item titled {title!r} already exists")


class InvalidCopyCountError(LendingValidationError):
    """Copy count is out of range."""

    code = "invalid_copy_count"


# State conflicts


class StateConflictError(LendingError):
    """Operation does not apply to the record's current state."""

    code = "state_conflict"


class AlreadyReturnedError(StateConflictError):
    """Loan has already been returned."""

    code = "already_returned"

    def __init__(self, loan_id: str):
        self.loan_id = loan_id
        super().__init__(f"Loan {loan_id} has already been returned")


class AlreadyPendingPaymentError(StateConflictError):
    """Loan is already waiting for penalty payment."""

    code = "already_pending_payment"

    def __init__(self, loan_id: str):
        self.loan_id = loan_id
        super().__init__(f"Loan {loan_id} is already waiting for penalty payment")


class NotPendingPaymentError(StateConflictError):
    """Loan has no outstanding penalty to pay."""

    code = "not_pending_payment"

    def __init__(self, loan_id: str, state: str):
        self.loan_id = loan_id
        self.state = state
        super().__init__(f"Loan {loan_id} is not pending payment (state: {state})")


class ItemInUseError(StateConflictError):
    """Item is referenced by loans and cannot be deleted."""

    code = "item_in_use"

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Cannot delete item with loan records: {item_id}")


# Faults


class InventoryInvariantError(LendingError):
    """Copy counts would leave their valid range."""

    code = "inventory_invariant"
