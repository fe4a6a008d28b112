"""Database engine and session management for FitConnect.

This module provides SQLite database management with:
- Engine creation with foreign keys enforced on every connection
- WAL mode for file databases
- Index creation for the feed and listing queries
- Request-scoped sessions

Example:
    >>> from fitconnect.database import DatabaseManager
    >>>
    >>> db = DatabaseManager()
    >>> db.initialize()
    >>>
    >>> with db.session() as session:
    ...     accounts = AccountService(session)
    ...     accounts.register("ana@example.com", "Ana", "opaque-hash")
    >>>
    >>> db.close()
"""

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import event, func, text
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, select

from fitconnect.config import settings
from fitconnect.logging import logger
from fitconnect.models import (
    AccountRow,
    ActivityRow,
    CommentRow,
    ConnectionRow,
    GoalRow,
    LikeRow,
    NotificationRow,
    PostRow,
    ProfileRow,
)

MEMORY = ":memory:"

_INDEXES = (
    "CREATE INDEX IF NOT EXISTS idx_post_author_created "
    "ON postrow(author_id, created_at DESC, id DESC)",
    "CREATE INDEX IF NOT EXISTS idx_post_created "
    "ON postrow(created_at DESC, id DESC)",
    "CREATE INDEX IF NOT EXISTS idx_comment_post_created "
    "ON commentrow(post_id, created_at DESC, id DESC)",
    "CREATE INDEX IF NOT EXISTS idx_like_account "
    "ON likerow(account_id)",
    "CREATE INDEX IF NOT EXISTS idx_connection_status "
    "ON connectionrow(status, requester_id, receiver_id)",
    "CREATE INDEX IF NOT EXISTS idx_goal_owner_status "
    "ON goalrow(owner_id, status)",
    "CREATE INDEX IF NOT EXISTS idx_activity_account_created "
    "ON activityrow(account_id, created_at DESC)",
    "CREATE INDEX IF NOT EXISTS idx_notification_recipient_read "
    "ON notificationrow(recipient_id, is_read, created_at DESC)",
)

TABLES = {
    "accounts": AccountRow,
    "profiles": ProfileRow,
    "goals": GoalRow,
    "connections": ConnectionRow,
    "posts": PostRow,
    "likes": LikeRow,
    "comments": CommentRow,
    "activities": ActivityRow,
    "notifications": NotificationRow,
}


def _enable_sqlite_pragmas(dbapi_connection, connection_record) -> None:  # noqa: ARG001
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# =============================================================================
# Database Manager
# =============================================================================


class DatabaseManager:
    """Owns the SQLAlchemy engine and hands out sessions.

    Features:
    - ``PRAGMA foreign_keys=ON`` on every pooled connection so ``ON DELETE
      CASCADE`` removes a deleted account's rows
    - WAL journal for file databases
    - A single shared connection (``StaticPool``) for ``:memory:`` databases

    Args:
        database_path: Path to SQLite database file, or ``":memory:"``
            (defaults to settings.database_path)

    Example:
        >>> db = DatabaseManager(Path(":memory:"))
        >>> db.initialize()
        >>> with db.session() as session:
        ...     ...
    """

    def __init__(self, database_path: Path | str | None = None):
        self.database_path = Path(database_path) if database_path else settings.database_path
        self.engine: Engine | None = None

    @property
    def is_memory(self) -> bool:
        return str(self.database_path) == MEMORY

    @property
    def url(self) -> str:
        """SQLAlchemy URL for the configured database."""
        if self.is_memory:
            return "sqlite://"
        return f"sqlite:///{self.database_path}"

    def initialize(self) -> None:
        """Create the engine, tables and indexes.

        This method:
        1. Creates the database file's parent directory if needed
        2. Registers the foreign-key PRAGMA listener
        3. Creates all tables from SQLModel metadata
        4. Enables WAL mode for file databases
        5. Creates indexes for the common queries
        """
        if self.engine is not None:
            return

        if self.is_memory:
            self.engine = create_engine(
                self.url,
                echo=False,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.database_path.parent.mkdir(parents=True, exist_ok=True)
            self.engine = create_engine(
                self.url,
                echo=False,
                connect_args={"check_same_thread": False},
            )

        event.listen(self.engine, "connect", _enable_sqlite_pragmas)

        SQLModel.metadata.create_all(self.engine)

        if not self.is_memory:
            with self.engine.connect() as conn:
                conn.exec_driver_sql("PRAGMA journal_mode = WAL;")
                conn.exec_driver_sql("PRAGMA synchronous = NORMAL;")
                conn.commit()

        self.create_indexes()
        logger.info(f"✅ Database initialized at {self.database_path}")

    def create_indexes(self) -> None:
        """Create secondary indexes.

        Indexes created:
        - Posts by author and recency for feed assembly
        - Comments by post and recency for previews
        - Connections by status, goals by owner/status
        - Activities and notifications by owner and recency
        """
        if self.engine is None:
            raise RuntimeError("Database not initialized")

        with self.engine.connect() as conn:
            for statement in _INDEXES:
                conn.execute(text(statement))
            conn.commit()

        logger.debug("✅ Database indexes created")

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Open a session that is closed on exit.

        Services commit explicitly; an exception escaping the block rolls the
        session back.
        """
        if self.engine is None:
            raise RuntimeError("Database not initialized")

        session = Session(self.engine)
        try:
            yield session
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def session_scope(self) -> Iterator[Session]:
        """Generator form of :meth:`session` for use as a FastAPI dependency."""
        with self.session() as session:
            yield session

    def table_counts(self) -> dict[str, int]:
        """Row count per table, keyed by a human-readable table name."""
        counts: dict[str, int] = {}
        with self.session() as session:
            for name, model in TABLES.items():
                counts[name] = session.exec(select(func.count()).select_from(model)).one()
        return counts

    def close(self) -> None:
        """Dispose of the engine and its pooled connections."""
        if self.engine is not None:
            self.engine.dispose()
            self.engine = None


# =============================================================================
# Export Public API
# =============================================================================

__all__ = ["DatabaseManager", "TABLES"]
