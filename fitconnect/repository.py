"""Generic repository over SQLModel tables.

``Repository[T]`` wraps the handful of session calls every service repeats.
It never commits: the owning service decides where the transaction ends, so
a primary write and the rows that must accompany it land in one commit.

Example:
    >>> from fitconnect.repository import Repository
    >>> from fitconnect.models import GoalRow
    >>>
    >>> goals = Repository[GoalRow](session, GoalRow)
    >>> goal = goals.get(3)
    >>> active = goals.count(owner_id=7, status=GoalStatus.ACTIVE)
    >>> session.commit()
"""

from typing import Any, Generic, TypeVar

from sqlalchemy import func
from sqlmodel import Session, SQLModel, select

# =============================================================================
# Type Variables
# =============================================================================

T = TypeVar("T", bound=SQLModel)


# =============================================================================
# Generic Repository
# =============================================================================


class Repository(Generic[T]):
    """Type-safe CRUD helpers for one SQLModel table.

    Type Parameter:
        T: SQLModel table type (AccountRow, GoalRow, PostRow, ...)

    Args:
        session: Request-scoped SQLModel Session
        model: SQLModel table class
    """

    def __init__(self, session: Session, model: type[T]):
        self.session = session
        self.model = model

    def get(self, entity_id: Any) -> T | None:
        """Get entity by primary key, or None when absent.

        Composite keys are passed as a tuple, e.g. ``likes.get((post_id, account_id))``.
        """
        return self.session.get(self.model, entity_id)

    def add(self, entity: T) -> T:
        """Stage an entity and flush so generated keys are populated.

        Example:
            >>> post = posts.add(PostRow(author_id=7, content="Leg day"))
            >>> post.id
            12
        """
        self.session.add(entity)
        self.session.flush()
        self.session.refresh(entity)
        return entity

    def delete(self, entity: T) -> None:
        """Delete an entity and flush. Database cascades remove dependent rows."""
        self.session.delete(entity)
        self.session.flush()

    def first_by(self, **filters: Any) -> T | None:
        """First row matching equality filters on column attributes, or None.

        Unknown attribute names raise ``AttributeError`` rather than being
        silently ignored.
        """
        stmt = select(self.model)
        for key, value in filters.items():
            stmt = stmt.where(getattr(self.model, key) == value)
        return self.session.exec(stmt).first()

    def count(self, **filters: Any) -> int:
        """Count rows, optionally restricted by equality filters."""
        stmt = select(func.count()).select_from(self.model)
        for key, value in filters.items():
            stmt = stmt.where(getattr(self.model, key) == value)
        return self.session.exec(stmt).one()

    def exists(self, entity_id: Any) -> bool:
        """Check whether a row with this primary key exists."""
        return self.get(entity_id) is not None


# =============================================================================
# Export Public API
# =============================================================================

__all__ = ["Repository"]
