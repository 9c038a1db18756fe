"""Pydantic schemas for catalog items.

Catalog management is a collaborator of the lending core: it creates items
and adjusts their descriptive fields. Copy counts after creation belong to
the inventory ledger.
"""

from datetime import date, datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class SearchField(str, Enum):
    """Fields the catalog can be searched by."""

    TITLE = "title"
    AUTHOR = "author"
    GENRE = "genre"


# ============================================================================
# Item Schemas
# ============================================================================


class ItemBase(BaseModel):
    """Base item fields."""

    title: str = Field(..., min_length=1, max_length=150)
    author: Optional[str] = Field(None, max_length=100)
    genre: Optional[str] = Field(None, max_length=100)
    published_date: Optional[date] = None

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        """Titles are unique, so surrounding whitespace must not matter."""
        v = v.strip()
        if not v:
            raise ValueError("title must not be blank")
        return v


class ItemCreate(ItemBase):
    """Schema for creating an item."""

    total_copies: int = Field(1, ge=0, description="Number of copies owned")


class ItemUpdate(BaseModel):
    """Schema for updating an item's descriptive fields."""

    title: Optional[str] = Field(None, min_length=1, max_length=150)
    author: Optional[str] = Field(None, max_length=100)
    genre: Optional[str] = Field(None, max_length=100)
    published_date: Optional[date] = None


class ItemResponse(BaseModel):
    """Schema for item responses."""

    id: UUID
    title: str
    author: Optional[str]
    genre: Optional[str]
    published_date: Optional[date]
    total_copies: int
    available_copies: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @property
    def copies_on_loan(self) -> int:
        return self.total_copies - self.available_copies


class InventoryAudit(BaseModel):
    """Result of reconciling an item's counters against its open loans."""

    item_id: UUID
    total_copies: int
    available_copies: int
    outstanding_loans: int

    @property
    def consistent(self) -> bool:
        """True when available + outstanding == total."""
        return (
            0 <= self.available_copies <= self.total_copies
            and self.available_copies + self.outstanding_loans == self.total_copies
        )
