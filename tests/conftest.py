"""Pytest configuration and shared fixtures.

This module provides fixtures for testing the lending core, including
temporary databases, a controllable clock and sample items.
"""

import os
import tempfile
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Generator

import pytest

from circulation.clock import FixedClock
from circulation.config import Config, reset_config
from circulation.db.models import Item
from circulation.db.schemas import ItemCreate
from circulation.db.sqlite import Database, reset_db
from circulation.inventory.ledger import InventoryLedger
from circulation.lending.lifecycle import CheckoutLifecycle
from circulation.lending.service import LendingService, reset_lending_service
from circulation.penalties.policy import PenaltyPolicy

START = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture(scope="function")
def temp_db_path() -> Generator[Path, None, None]:
    """Create a temporary database file path."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)
    yield db_path
    # Cleanup
    if db_path.exists():
        db_path.unlink()


@pytest.fixture(scope="function")
def db(temp_db_path: Path) -> Generator[Database, None, None]:
    """Create a file-backed test database instance."""
    # Reset any global state
    reset_db()
    reset_config()
    reset_lending_service()

    # Set environment variable for test database
    os.environ["CIRCULATION_DB_PATH"] = str(temp_db_path)

    database = Database(str(temp_db_path), busy_timeout=30)
    database.create_tables()
    yield database

    # Cleanup
    database.engine.dispose()
    reset_db()
    reset_config()
    reset_lending_service()
    if "CIRCULATION_DB_PATH" in os.environ:
        del os.environ["CIRCULATION_DB_PATH"]


@pytest.fixture
def memory_db() -> Database:
    """Create an in-memory database."""
    database = Database(":memory:")
    database.create_tables()
    return database


# ============================================================================
# Core Fixtures
# ============================================================================


@pytest.fixture
def clock() -> FixedClock:
    """A clock frozen at the start of the test scenario."""
    return FixedClock(START)


@pytest.fixture
def config(temp_db_path: Path) -> Config:
    """Configuration with default fees and strict invariants."""
    return Config(
        db_path=temp_db_path,
        busy_timeout=30.0,
        base_fee=Decimal("10"),
        daily_fee=Decimal("0.5"),
        default_loan_days=14,
        strict_invariants=True,
        log_level="WARNING",
    )


@pytest.fixture
def policy() -> PenaltyPolicy:
    return PenaltyPolicy()


@pytest.fixture
def ledger(db: Database) -> InventoryLedger:
    return InventoryLedger(db, strict=True)


@pytest.fixture
def lifecycle(db: Database, ledger: InventoryLedger, policy: PenaltyPolicy, clock: FixedClock):
    return CheckoutLifecycle(db, ledger=ledger, policy=policy, clock=clock)


@pytest.fixture
def service(db: Database, clock: FixedClock, config: Config) -> LendingService:
    """Lending service wired to the test database and clock."""
    return LendingService(db, clock=clock, config=config)


# ============================================================================
# Sample Data Fixtures
# ============================================================================


@pytest.fixture
def sample_item_data() -> ItemCreate:
    """Create sample item data for testing."""
    return ItemCreate(
        title="Dune",
        author="Frank Herbert",
        genre="Science Fiction",
        total_copies=2,
    )


@pytest.fixture
def sample_item(db: Database, sample_item_data: ItemCreate) -> Item:
    """Create and return an item with two copies."""
    return db.create_item(sample_item_data)


@pytest.fixture
def single_copy_item(db: Database) -> Item:
    """Create and return an item with exactly one copy."""
    return db.create_item(ItemCreate(title="The Left Hand of Darkness", total_copies=1))


@pytest.fixture
def due_at(clock: FixedClock) -> datetime:
    """Due instant two weeks after the start of the scenario."""
    return clock.now() + timedelta(days=14)
