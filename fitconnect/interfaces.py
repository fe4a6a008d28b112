"""Protocol interfaces for dependency injection.

Services that emit secondary side effects depend on these protocols rather
than on the concrete ``ActivityService``/``NotificationService``, so tests can
pass a stub that fails on purpose.

Example:
    >>> from fitconnect.interfaces import INotificationSink
    >>> class NullSink:
    ...     def notify_quietly(self, **kwargs):
    ...         return None
    >>> isinstance(NullSink(), INotificationSink)
    True
"""

from typing import Any, Protocol, runtime_checkable

from fitconnect.models import ActivityRow, ActivityType, NotificationRow, NotificationType


@runtime_checkable
class IActivityRecorder(Protocol):
    """Writes activity log entries."""

    def record(
        self,
        account_id: int,
        type: ActivityType,
        data: dict[str, Any],
        related_entity_type: str | None = None,
        related_entity_id: int | None = None,
    ) -> ActivityRow:
        """Stage an activity in the caller's transaction (no commit)."""
        ...

    def record_quietly(
        self,
        account_id: int,
        type: ActivityType,
        data: dict[str, Any],
        related_entity_type: str | None = None,
        related_entity_id: int | None = None,
    ) -> ActivityRow | None:
        """Record and commit an activity; failures are logged and swallowed.

        Returns:
            The stored row, or None when the write failed
        """
        ...


@runtime_checkable
class INotificationSink(Protocol):
    """Delivers notifications to recipients."""

    def notify_quietly(
        self,
        recipient_id: int,
        type: NotificationType,
        message: str,
        actor_id: int | None = None,
        entity_type: str | None = None,
        entity_id: int | None = None,
    ) -> NotificationRow | None:
        """Create and commit a notification; failures are logged and swallowed."""
        ...


__all__ = ["IActivityRecorder", "INotificationSink"]
