"""Lending core.

Provides functionality for:
- Checking out copies of an item
- Returning loans, with penalties for overdue returns
- Closing loans once a penalty is paid
"""

from .lifecycle import CheckoutLifecycle
from .models import Loan
from .schemas import (
    CheckoutOutcome,
    CheckoutResult,
    LoanResponse,
    LoanState,
    OverdueLoan,
    OverdueReport,
    ReturnOutcome,
    ReturnResult,
)
from .service import LendingService, get_lending_service, reset_lending_service

__all__ = [
    "CheckoutLifecycle",
    "LendingService",
    "get_lending_service",
    "reset_lending_service",
    "Loan",
    "LoanState",
    "LoanResponse",
    "CheckoutOutcome",
    "CheckoutResult",
    "ReturnOutcome",
    "ReturnResult",
    "OverdueLoan",
    "OverdueReport",
]
