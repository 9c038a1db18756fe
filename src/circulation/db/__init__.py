"""Database module for local SQLite storage."""

from .models import Base, Item
from .schemas import InventoryAudit, ItemCreate, ItemResponse, ItemUpdate, SearchField
from .sqlite import Database, get_db, reset_db

__all__ = [
    "Base",
    "Item",
    "InventoryAudit",
    "ItemCreate",
    "ItemUpdate",
    "ItemResponse",
    "SearchField",
    "Database",
    "get_db",
    "reset_db",
]
