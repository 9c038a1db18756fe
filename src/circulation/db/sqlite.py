"""SQLite database operations.

Handles database connection, session management, and catalog item CRUD.
"""

import logging
import os
import threading
from contextlib import contextmanager, nullcontext
from datetime import datetime, timezone
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import create_engine, event, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..errors import DuplicateTitleError, ItemInUseError
from .models import Base, Item
from .schemas import ItemCreate, ItemUpdate, SearchField

logger = logging.getLogger(__name__)

DEFAULT_BUSY_TIMEOUT = 30.0


def _configure_sqlite(engine) -> None:
    """Enforce foreign keys and take the write lock when a transaction begins.

    pysqlite's own transaction handling is switched off so that every
    transaction starts with BEGIN IMMEDIATE. Writers then queue on the busy
    timeout instead of failing when upgrading a read lock.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class Database:
    """Database connection and operations manager."""

    def __init__(self, db_path: Optional[str] = None, busy_timeout: Optional[float] = None):
        """Initialize database connection.

        Args:
            db_path: Path to SQLite database file. If None, uses
                     CIRCULATION_DB_PATH env var or default location.
            busy_timeout: Seconds a writer waits for the database lock.
        """
        if db_path is None:
            db_path = os.environ.get(
                "CIRCULATION_DB_PATH",
                str(Path.home() / ".circulation" / "circulation.db"),
            )
        if busy_timeout is None:
            busy_timeout = float(
                os.environ.get("CIRCULATION_BUSY_TIMEOUT", DEFAULT_BUSY_TIMEOUT)
            )

        self.db_path = Path(db_path).expanduser()
        self._is_memory = str(db_path) == ":memory:"
        # One shared connection in memory: transactions must not interleave
        self._session_lock = threading.RLock() if self._is_memory else nullcontext()

        if not self._is_memory:
            self._ensure_directory()

        # For in-memory databases, use StaticPool to reuse the same connection
        # This ensures all sessions share the same in-memory database
        if self._is_memory:
            self.engine = create_engine(
                "sqlite:///:memory:",
                echo=False,
                connect_args={"check_same_thread": False, "timeout": busy_timeout},
                poolclass=StaticPool,
            )
        else:
            self.engine = create_engine(
                f"sqlite:///{self.db_path}",
                echo=False,
                connect_args={"check_same_thread": False, "timeout": busy_timeout},
            )
        _configure_sqlite(self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)

    def _ensure_directory(self) -> None:
        """Ensure the database directory exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def create_tables(self) -> None:
        """Create all database tables."""
        # Import lending models to register them with Base
        from ..lending.models import Loan  # noqa: F401

        Base.metadata.create_all(self.engine)

    def drop_tables(self) -> None:
        """Drop all database tables. Use with caution!"""
        from ..lending.models import Loan  # noqa: F401

        Base.metadata.drop_all(self.engine)

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Get a database session context manager."""
        with self._session_lock:
            session = self.SessionLocal()
            try:
                yield session
                session.commit()
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()

    # ========================================================================
    # Item Operations
    # ========================================================================

    def create_item(self, item: ItemCreate, session: Optional[Session] = None) -> Item:
        """Create a new item with all of its copies available.

        Raises:
            DuplicateTitleError: If another item already has this title
        """

        def _create(s: Session) -> Item:
            if self.get_item_by_title(item.title, s):
                raise DuplicateTitleError(item.title)

            db_item = Item(
                title=item.title,
                author=item.author,
                genre=item.genre,
                published_date=(
                    item.published_date.isoformat() if item.published_date else None
                ),
                total_copies=item.total_copies,
                available_copies=item.total_copies,
            )
            s.add(db_item)
            try:
                s.flush()
            except IntegrityError as e:
                # Lost a race with a concurrent insert of the same title
                raise DuplicateTitleError(item.title) from e

            logger.info(
                "Created item %s %r with %d copies",
                db_item.id,
                db_item.title,
                db_item.total_copies,
            )
            return db_item

        if session:
            return _create(session)
        else:
            with self.get_session() as s:
                db_item = _create(s)
                s.flush()
                s.refresh(db_item)
                s.expunge(db_item)
                return db_item

    def get_item(self, item_id: str, session: Optional[Session] = None) -> Optional[Item]:
        """Get an item by ID."""

        def _get(s: Session) -> Optional[Item]:
            return s.get(Item, str(item_id))

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                item = _get(s)
                if item:
                    s.expunge(item)
                return item

    def item_exists(self, item_id: str, session: Optional[Session] = None) -> bool:
        """Check whether an item exists."""

        def _exists(s: Session) -> bool:
            stmt = select(func.count()).select_from(Item).where(Item.id == str(item_id))
            return (s.execute(stmt).scalar() or 0) > 0

        if session:
            return _exists(session)
        else:
            with self.get_session() as s:
                return _exists(s)

    def get_item_by_title(
        self, title: str, session: Optional[Session] = None
    ) -> Optional[Item]:
        """Get an item by its exact title."""

        def _get(s: Session) -> Optional[Item]:
            stmt = select(Item).where(Item.title == title.strip())
            return s.execute(stmt).scalar_one_or_none()

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                item = _get(s)
                if item:
                    s.expunge(item)
                return item

    def list_items(
        self, available_only: bool = False, session: Optional[Session] = None
    ) -> list[Item]:
        """Get all items ordered by title."""

        def _get(s: Session) -> list[Item]:
            stmt = select(Item).order_by(Item.title)
            if available_only:
                stmt = stmt.where(Item.available_copies > 0)
            return list(s.execute(stmt).scalars().all())

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                items = _get(s)
                for item in items:
                    s.expunge(item)
                return items

    def search_items(
        self,
        query: str,
        search_by: SearchField = SearchField.TITLE,
        limit: int = 50,
        session: Optional[Session] = None,
    ) -> list[Item]:
        """Search items by title, author or genre (case insensitive substring)."""

        def _search(s: Session) -> list[Item]:
            column = getattr(Item, SearchField(search_by).value)
            pattern = f"%{query.strip()}%"
            stmt = (
                select(Item)
                .where(column.ilike(pattern))
                .order_by(Item.title)
                .limit(limit)
            )
            return list(s.execute(stmt).scalars().all())

        if not query or not query.strip():
            return []

        if session:
            return _search(session)
        else:
            with self.get_session() as s:
                items = _search(s)
                for item in items:
                    s.expunge(item)
                return items

    def update_item(
        self, item_id: str, update: ItemUpdate, session: Optional[Session] = None
    ) -> Optional[Item]:
        """Update an item's descriptive fields.

        Copy counts are not touched here; see InventoryLedger.adjust_total_copies.
        """

        def _update(s: Session) -> Optional[Item]:
            item = s.get(Item, str(item_id))
            if not item:
                return None

            update_data = update.model_dump(exclude_unset=True)
            for field, value in update_data.items():
                if field == "title":
                    if value is None:
                        continue
                    value = value.strip()
                    existing = self.get_item_by_title(value, s)
                    if existing and existing.id != item.id:
                        raise DuplicateTitleError(value)
                    item.title = value
                elif field == "published_date":
                    item.published_date = value.isoformat() if value else None
                else:
                    setattr(item, field, value)

            item.updated_at = datetime.now(timezone.utc).isoformat()
            s.flush()
            return item

        if session:
            return _update(session)
        else:
            with self.get_session() as s:
                item = _update(s)
                if item:
                    s.refresh(item)
                    s.expunge(item)
                return item

    def delete_item(self, item_id: str, session: Optional[Session] = None) -> bool:
        """Delete an item that has never been lent.

        Loans are kept as an audit trail, so an item with any loan record
        cannot be removed.

        Raises:
            ItemInUseError: If any loan references the item
        """
        from ..lending.models import Loan

        def _delete(s: Session) -> bool:
            item = s.get(Item, str(item_id))
            if not item:
                return False

            loan_count = s.execute(
                select(func.count()).select_from(Loan).where(Loan.item_id == item.id)
            ).scalar() or 0
            if loan_count:
                raise ItemInUseError(item.id)

            s.delete(item)
            logger.info("Deleted item %s %r", item.id, item.title)
            return True

        if session:
            return _delete(session)
        else:
            with self.get_session() as s:
                return _delete(s)


# Global database instance
_db: Optional[Database] = None


def get_db(db_path: Optional[str] = None) -> Database:
    """Get or create the global database instance."""
    global _db
    if _db is None:
        _db = Database(db_path)
        _db.create_tables()
    return _db


def reset_db() -> None:
    """Reset the global database instance. Used for testing."""
    global _db
    if _db is not None:
        _db.engine.dispose()
    _db = None
