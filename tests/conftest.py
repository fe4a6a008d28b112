"""Pytest configuration and shared fixtures for FitConnect tests."""

import itertools
import os
import sys
import tempfile
from collections.abc import Callable, Generator
from datetime import UTC, datetime, timedelta

# Settings are read at import time, so the profile must be chosen first
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="fitconnect-tests-"))

import pytest  # noqa: E402
from loguru import logger  # noqa: E402
from sqlmodel import Session  # noqa: E402

from fitconnect.accounts import AccountService  # noqa: E402
from fitconnect.connections import ConnectionService  # noqa: E402
from fitconnect.database import DatabaseManager  # noqa: E402
from fitconnect.models import AccountView, CommentRow, ConnectionView, PostRow  # noqa: E402

BASE_TIME = datetime(2024, 3, 1, 8, 0, tzinfo=UTC)


# =============================================================================
# Test Configuration
# =============================================================================


@pytest.fixture(scope="function", autouse=True)
def reset_loguru():
    """Reset loguru handlers before each test to prevent I/O errors."""
    logger.remove()
    logger.add(
        sys.stderr,
        level="ERROR",
        format="{time} {level} {message}",
        catch=True,
        enqueue=True,
    )
    yield
    logger.remove()


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def db() -> Generator[DatabaseManager, None, None]:
    """Fresh in-memory database per test."""
    manager = DatabaseManager(":memory:")
    manager.initialize()
    yield manager
    manager.close()


@pytest.fixture
def session(db: DatabaseManager) -> Generator[Session, None, None]:
    """Session bound to the test database."""
    with db.session() as s:
        yield s


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def make_account(session: Session) -> Callable[..., AccountView]:
    """Register accounts with unique emails."""
    counter = itertools.count(1)

    def _make(display_name: str | None = None, **kwargs) -> AccountView:
        n = next(counter)
        return AccountService(session).register(
            kwargs.pop("email", f"user{n}@example.com"),
            display_name or f"User {n}",
            kwargs.pop("credential_hash", "opaque-hash"),
            **kwargs,
        )

    return _make


@pytest.fixture
def connect(session: Session) -> Callable[[int, int], ConnectionView]:
    """Create an accepted connection between two accounts."""

    def _connect(requester_id: int, receiver_id: int) -> ConnectionView:
        connections = ConnectionService(session)
        pending = connections.send_request(requester_id, receiver_id)
        return connections.accept(pending.id, receiver_id)

    return _connect


@pytest.fixture
def make_post(session: Session) -> Callable[..., PostRow]:
    """Insert a post with a controlled creation time (minutes after BASE_TIME)."""

    def _make(author_id: int, content: str = "Workout done", minute: int = 0) -> PostRow:
        created = BASE_TIME + timedelta(minutes=minute)
        post = PostRow(author_id=author_id, content=content, created_at=created, updated_at=created)
        session.add(post)
        session.commit()
        session.refresh(post)
        return post

    return _make


@pytest.fixture
def make_comment(session: Session) -> Callable[..., CommentRow]:
    """Insert a comment with a controlled creation time (minutes after BASE_TIME)."""

    def _make(post_id: int, author_id: int, content: str = "Nice!", minute: int = 0) -> CommentRow:
        comment = CommentRow(
            post_id=post_id,
            author_id=author_id,
            content=content,
            created_at=BASE_TIME + timedelta(minutes=minute),
        )
        session.add(comment)
        session.commit()
        session.refresh(comment)
        return comment

    return _make
