"""FitConnect - social fitness-tracking backend.

Accounts set and track wellness goals, connect with each other and share
posts in a feed built from their accepted connections. The package exposes
the domain services over a FastAPI REST API and a Typer CLI, persisting to
SQLite through SQLModel.

Example:
    >>> from fitconnect import DatabaseManager, AccountService, FeedService
    >>>
    >>> db = DatabaseManager()
    >>> db.initialize()
    >>> with db.session() as session:
    ...     ana = AccountService(session).register("ana@example.com", "Ana", "hash")
    ...     FeedService(session).get_feed(ana.id)
    []
"""

__version__ = "0.1.0"

from fitconnect.accounts import AccountService  # noqa: E402
from fitconnect.activity import ActivityService  # noqa: E402
from fitconnect.config import settings  # noqa: E402
from fitconnect.connections import ConnectionService  # noqa: E402
from fitconnect.database import DatabaseManager  # noqa: E402
from fitconnect.feed import FeedService  # noqa: E402
from fitconnect.goals import GoalService  # noqa: E402
from fitconnect.notifications import NotificationService  # noqa: E402
from fitconnect.posts import PostService  # noqa: E402
from fitconnect.profiles import ProfileService  # noqa: E402

__all__ = [
    # Infrastructure
    "DatabaseManager",
    "settings",
    # Services
    "AccountService",
    "ProfileService",
    "GoalService",
    "ConnectionService",
    "PostService",
    "FeedService",
    "ActivityService",
    "NotificationService",
]
