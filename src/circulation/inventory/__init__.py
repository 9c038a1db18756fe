"""Inventory ledger: the sole owner of available copy counts."""

from .ledger import InventoryLedger, ReservationOutcome

__all__ = [
    "InventoryLedger",
    "ReservationOutcome",
]
