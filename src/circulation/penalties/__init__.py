"""Overdue penalty policy."""

from .policy import DEFAULT_BASE_FEE, DEFAULT_DAILY_FEE, PenaltyPolicy

__all__ = [
    "PenaltyPolicy",
    "DEFAULT_BASE_FEE",
    "DEFAULT_DAILY_FEE",
]
