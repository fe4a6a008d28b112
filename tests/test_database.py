"""Tests for DatabaseManager: schema, pragmas, constraints and sessions."""

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from fitconnect.database import TABLES, DatabaseManager
from fitconnect.models import AccountRow, ConnectionRow, LikeRow, PostRow


def _account(session, n: int) -> AccountRow:
    account = AccountRow(email=f"db{n}@example.com", display_name=f"Db {n}", credential_hash="h")
    session.add(account)
    session.commit()
    session.refresh(account)
    return account


def test_memory_database_properties():
    """Test :memory: paths map to the in-memory SQLite URL."""
    db = DatabaseManager(":memory:")
    assert db.is_memory
    assert db.url == "sqlite://"


def test_file_database_url(tmp_path):
    """Test file paths map to a sqlite:/// URL."""
    db = DatabaseManager(tmp_path / "fit.db")
    assert not db.is_memory
    assert db.url == f"sqlite:///{tmp_path / 'fit.db'}"


def test_session_before_initialize_raises():
    """Test sessions require an initialized engine."""
    db = DatabaseManager(":memory:")
    with pytest.raises(RuntimeError, match="not initialized"):
        with db.session():
            pass


def test_initialize_is_idempotent(db):
    """Test a second initialize keeps the existing engine."""
    engine = db.engine
    db.initialize()
    assert db.engine is engine


def test_all_tables_created(db):
    """Test every table starts empty."""
    assert db.table_counts() == {name: 0 for name in TABLES}


def test_indexes_created(db):
    """Test the secondary indexes exist."""
    with db.session() as session:
        rows = session.connection().execute(
            text("SELECT name FROM sqlite_master WHERE type = 'index'")
        )
        names = set(rows.scalars())
    assert {
        "idx_post_author_created",
        "idx_comment_post_created",
        "idx_connection_status",
        "idx_notification_recipient_read",
    } <= names


def test_foreign_keys_enforced(session):
    """Test the foreign-key pragma is on for pooled connections."""
    assert session.connection().execute(text("PRAGMA foreign_keys")).scalar() == 1

    session.add(PostRow(author_id=999, content="orphan"))
    with pytest.raises(IntegrityError):
        session.commit()
    session.rollback()


def test_account_delete_cascades(session):
    """Test deleting an account removes its posts and likes."""
    author = _account(session, 1)
    fan = _account(session, 2)
    fan_id = fan.id
    post = PostRow(author_id=author.id, content="Leg day")
    session.add(post)
    session.commit()
    post_id = post.id
    session.add(LikeRow(post_id=post_id, account_id=fan_id))
    session.commit()

    session.delete(author)
    session.commit()
    session.expire_all()

    assert session.get(PostRow, post_id) is None
    assert session.get(LikeRow, (post_id, fan_id)) is None
    assert session.get(AccountRow, fan_id) is not None
    assert session.connection().execute(text("SELECT COUNT(*) FROM likerow")).scalar() == 0


def test_connection_pair_is_unique(session):
    """Test only one connection row may exist per unordered pair."""
    a = _account(session, 1)
    b = _account(session, 2)
    low, high = sorted((a.id, b.id))
    session.add(ConnectionRow(requester_id=a.id, receiver_id=b.id, pair_low=low, pair_high=high))
    session.commit()

    session.add(ConnectionRow(requester_id=b.id, receiver_id=a.id, pair_low=low, pair_high=high))
    with pytest.raises(IntegrityError):
        session.commit()
    session.rollback()


def test_connection_to_self_rejected(session):
    """Test the storage layer refuses self-connections."""
    a = _account(session, 1)
    session.add(ConnectionRow(requester_id=a.id, receiver_id=a.id, pair_low=a.id, pair_high=a.id))
    with pytest.raises(IntegrityError):
        session.commit()
    session.rollback()


def test_duplicate_like_rejected(session):
    """Test the composite key allows one like per account and post."""
    a = _account(session, 1)
    account_id = a.id
    post = PostRow(author_id=account_id, content="Leg day")
    session.add(post)
    session.commit()
    post_id = post.id

    session.add(LikeRow(post_id=post_id, account_id=account_id))
    session.commit()
    session.expunge_all()
    session.add(LikeRow(post_id=post_id, account_id=account_id))
    with pytest.raises(IntegrityError):
        session.commit()
    session.rollback()


def test_session_rolls_back_on_error(db):
    """Test an exception inside the block discards pending changes."""
    with pytest.raises(ValueError):
        with db.session() as session:
            session.add(AccountRow(email="x@example.com", display_name="Xx", credential_hash="h"))
            session.flush()
            raise ValueError("boom")

    assert db.table_counts()["accounts"] == 0


def test_file_database_uses_wal(tmp_path):
    """Test file databases are switched to WAL journaling."""
    db = DatabaseManager(tmp_path / "nested" / "fit.db")
    db.initialize()
    try:
        assert (tmp_path / "nested" / "fit.db").exists()
        with db.session() as session:
            assert session.connection().execute(text("PRAGMA journal_mode")).scalar() == "wal"
    finally:
        db.close()
    assert db.engine is None
