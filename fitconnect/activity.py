"""Activity log service.

Activity records are append-only: there is no update path. Most activities
are secondary side effects written through :meth:`ActivityService.record_quietly`
after the primary change has committed; goal progress stages its activity
with :meth:`ActivityService.record` inside the goal's own transaction.
"""

from typing import Any

from sqlmodel import Session, col, select

from fitconnect.config import settings
from fitconnect.errors import NotFoundError, ValidationError
from fitconnect.logging import logger
from fitconnect.metrics import side_effect_failures_total, track_operation
from fitconnect.models import AccountRow, ActivityRow, ActivityType, ActivityView
from fitconnect.repository import Repository
from fitconnect.utils import resolve_page
from fitconnect.visibility import check_access


class ActivityService:
    """Writes and reads the activity log.

    Args:
        session: Request-scoped session shared with the calling service
    """

    def __init__(self, session: Session):
        self.session = session
        self.activities = Repository[ActivityRow](session, ActivityRow)

    def record(
        self,
        account_id: int,
        type: ActivityType,
        data: dict[str, Any],
        related_entity_type: str | None = None,
        related_entity_id: int | None = None,
    ) -> ActivityRow:
        """Stage an activity in the current transaction. The caller commits."""
        row = ActivityRow(
            account_id=account_id,
            type=type,
            data=dict(data),
            related_entity_type=related_entity_type,
            related_entity_id=related_entity_id,
        )
        return self.activities.add(row)

    def record_quietly(
        self,
        account_id: int,
        type: ActivityType,
        data: dict[str, Any],
        related_entity_type: str | None = None,
        related_entity_id: int | None = None,
    ) -> ActivityRow | None:
        """Record and commit an activity, logging and skipping any failure.

        Only call this after the primary change has been committed: a failure
        rolls back the session.
        """
        try:
            row = self.record(account_id, type, data, related_entity_type, related_entity_id)
            self.session.commit()
            return row
        except Exception as exc:
            self.session.rollback()
            side_effect_failures_total.labels(kind="activity").inc()
            logger.opt(exception=exc).warning(
                f"⚠️  Could not record {type} activity for account {account_id}"
            )
            return None

    @track_operation("list_activities")
    def list_for(
        self,
        account_id: int,
        type: ActivityType | str | None = None,
        limit: int | None = None,
        offset: int | None = 0,
    ) -> list[ActivityView]:
        """Activities of one account, newest first.

        Raises:
            NotFoundError: If the account does not exist
            ValidationError: If pagination arguments are invalid
        """
        limit, offset = resolve_page(
            limit, offset, settings.page_default_limit, settings.page_max_limit
        )
        if self.session.get(AccountRow, account_id) is None:
            raise NotFoundError("Account not found")

        stmt = select(ActivityRow).where(ActivityRow.account_id == account_id)
        if type is not None:
            try:
                type = ActivityType(type)
            except ValueError as exc:
                raise ValidationError(f"Unknown activity type: {type}") from exc
            stmt = stmt.where(ActivityRow.type == type)
        stmt = (
            stmt.order_by(col(ActivityRow.created_at).desc(), col(ActivityRow.id).desc())
            .limit(limit)
            .offset(offset)
        )
        return [ActivityView.model_validate(row) for row in self.session.exec(stmt).all()]

    @track_operation("list_visible_activities")
    def list_visible(
        self,
        viewer_id: int,
        account_id: int,
        limit: int | None = None,
        offset: int | None = 0,
    ) -> list[ActivityView]:
        """Activities of ``account_id`` as seen by ``viewer_id``.

        Honours the owner's ``profile_visibility`` and ``show_activity``.

        Raises:
            NotFoundError: If the account does not exist
            ForbiddenError: If the owner hides their activity from the viewer
        """
        check_access(self.session, viewer_id, account_id, section="show_activity")
        return self.list_for(account_id, limit=limit, offset=offset)


__all__ = ["ActivityService"]
