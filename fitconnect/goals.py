"""Goal ledger and progress tracking.

Progress updates are the one place where the activity record is part of the
primary transaction: a successful :meth:`GoalService.apply_progress` writes
exactly one ``goal_progress`` or ``goal_completed`` entry, and a failed one
writes none.

Example:
    >>> goals = GoalService(session)
    >>> goal = goals.create_goal(7, {"title": "Run 100 km", "category": "cardio",
    ...                              "target_value": 100, "unit": "km"})
    >>> goals.apply_progress(goal.id, 7, 100).status
    <GoalStatus.COMPLETED: 'completed'>
"""

from typing import Any

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select

from fitconnect.activity import ActivityService
from fitconnect.config import settings
from fitconnect.errors import (
    InternalError,
    InvalidOperationError,
    NotFoundError,
    ValidationError,
    from_pydantic,
)
from fitconnect.logging import logger
from fitconnect.metrics import track_operation
from fitconnect.models import (
    AccountRow,
    ActivityType,
    GoalCategory,
    GoalCreate,
    GoalRow,
    GoalStatus,
    GoalUpdate,
    GoalView,
)
from fitconnect.repository import Repository
from fitconnect.types import (
    GoalCompletedData,
    GoalCreatedData,
    GoalDeletedData,
    GoalProgressData,
    GoalUpdatedData,
)
from fitconnect.utils import is_non_negative_real, resolve_page, utc_now

NOTES_MAX = 500

# Fields that may not be explicitly set to null by an update
_REQUIRED_ON_UPDATE = ("title", "category", "target_value", "unit", "status", "priority", "is_public")


def _validated(model: type, payload: Any) -> Any:
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload)
    except PydanticValidationError as exc:
        raise from_pydantic(exc) from exc


def _clean_notes(notes: Any) -> str | None:
    if notes is None:
        return None
    if not isinstance(notes, str):
        raise ValidationError("Notes must be a string")
    if len(notes) > NOTES_MAX:
        raise ValidationError(f"Notes must be at most {NOTES_MAX} characters")
    return notes.strip() or None


class GoalService:
    """Create, read, update and delete goals and record progress against them.

    Args:
        session: Request-scoped SQLModel session
        activities: Activity service bound to the same session. Progress
            activities are staged in the goal's transaction, so this must share
            ``session``.
    """

    def __init__(self, session: Session, activities: ActivityService | None = None):
        self.session = session
        self.goals = Repository[GoalRow](session, GoalRow)
        self.activities = activities or ActivityService(session)

    def _owned(self, goal_id: int, owner_id: int) -> GoalRow:
        goal = self.goals.get(goal_id)
        if goal is None or goal.owner_id != owner_id:
            raise NotFoundError("Goal not found")
        return goal

    # =========================================================================
    # Ledger Operations
    # =========================================================================

    @track_operation("create_goal")
    def create_goal(self, owner_id: int, payload: GoalCreate | dict[str, Any]) -> GoalView:
        """Create a goal for ``owner_id``.

        Raises:
            ValidationError: If the payload is invalid
            NotFoundError: If the owner does not exist
        """
        data = _validated(GoalCreate, payload)
        if self.session.get(AccountRow, owner_id) is None:
            raise NotFoundError("Account not found")

        goal = self.goals.add(GoalRow(owner_id=owner_id, **data.model_dump()))
        self.session.commit()
        self.session.refresh(goal)

        created: GoalCreatedData = {
            "goal_title": goal.title,
            "category": str(goal.category),
            "target_value": goal.target_value,
            "unit": goal.unit,
        }
        self.activities.record_quietly(
            owner_id, ActivityType.GOAL_CREATED, dict(created), "goal", goal.id
        )
        return GoalView.model_validate(goal)

    @track_operation("list_goals")
    def list_goals(
        self,
        owner_id: int,
        status: GoalStatus | str | None = None,
        category: GoalCategory | str | None = None,
        limit: int | None = None,
        offset: int | None = 0,
    ) -> list[GoalView]:
        """Goals of one owner, newest first, optionally filtered."""
        limit, offset = resolve_page(
            limit, offset, settings.page_default_limit, settings.page_max_limit
        )
        stmt = select(GoalRow).where(GoalRow.owner_id == owner_id)
        try:
            if status is not None:
                stmt = stmt.where(GoalRow.status == GoalStatus(status))
            if category is not None:
                stmt = stmt.where(GoalRow.category == GoalCategory(category))
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

        stmt = (
            stmt.order_by(col(GoalRow.created_at).desc(), col(GoalRow.id).desc())
            .limit(limit)
            .offset(offset)
        )
        return [GoalView.model_validate(goal) for goal in self.session.exec(stmt).all()]

    def get_goal(self, goal_id: int, owner_id: int) -> GoalView:
        return GoalView.model_validate(self._owned(goal_id, owner_id))

    @track_operation("update_goal")
    def update_goal(
        self, goal_id: int, owner_id: int, payload: GoalUpdate | dict[str, Any]
    ) -> GoalView:
        """Update goal attributes other than progress.

        A completed goal cannot be moved to another status, and a goal can only
        be marked completed once ``current_value >= target_value``. Lowering
        the target of an active goal to or below its current value completes it.

        Raises:
            NotFoundError: If the goal does not exist or belongs to someone else
            ValidationError: If the payload is invalid or empty
            InvalidOperationError: If the status change is not allowed
        """
        data = _validated(GoalUpdate, payload)
        changes = data.model_dump(exclude_unset=True)
        if not changes:
            raise ValidationError("Nothing to update")
        for field in _REQUIRED_ON_UPDATE:
            if field in changes and changes[field] is None:
                raise ValidationError(f"{field} cannot be null")

        goal = self._owned(goal_id, owner_id)
        target = changes.get("target_value", goal.target_value)
        new_status = changes.get("status", goal.status)

        if goal.status == GoalStatus.COMPLETED and new_status != GoalStatus.COMPLETED:
            raise InvalidOperationError("A completed goal cannot change status")
        if (
            new_status == GoalStatus.COMPLETED
            and goal.status != GoalStatus.COMPLETED
            and goal.current_value < target
        ):
            raise InvalidOperationError("Goal cannot be completed before reaching its target")

        was_completed = goal.status == GoalStatus.COMPLETED
        for field, value in changes.items():
            setattr(goal, field, value)
        if goal.status == GoalStatus.ACTIVE and goal.current_value >= goal.target_value:
            goal.status = GoalStatus.COMPLETED
        if goal.status == GoalStatus.COMPLETED and not was_completed:
            goal.completed_at = utc_now()
        goal.updated_at = utc_now()

        self.session.add(goal)
        self.session.commit()
        self.session.refresh(goal)

        if goal.status == GoalStatus.COMPLETED and not was_completed:
            completed: GoalCompletedData = {
                "goal_title": goal.title,
                "final_value": goal.current_value,
                "target_value": goal.target_value,
                "unit": goal.unit,
            }
            self.activities.record_quietly(
                owner_id, ActivityType.GOAL_COMPLETED, dict(completed), "goal", goal.id
            )
        else:
            updated: GoalUpdatedData = {"goal_title": goal.title, "changed_fields": sorted(changes)}
            self.activities.record_quietly(
                owner_id, ActivityType.GOAL_UPDATED, dict(updated), "goal", goal.id
            )
        return GoalView.model_validate(goal)

    @track_operation("delete_goal")
    def delete_goal(self, goal_id: int, owner_id: int) -> None:
        goal = self._owned(goal_id, owner_id)
        deleted: GoalDeletedData = {"goal_title": goal.title}
        self.goals.delete(goal)
        self.session.commit()
        self.activities.record_quietly(
            owner_id, ActivityType.GOAL_DELETED, dict(deleted), "goal", goal_id
        )

    # =========================================================================
    # Progress
    # =========================================================================

    @track_operation("apply_goal_progress")
    def apply_progress(
        self,
        goal_id: int,
        owner_id: int,
        new_value: float,
        notes: str | None = None,
    ) -> GoalView:
        """Set a goal's current value and log exactly one activity.

        The value is stored as given, even above the target. An active goal
        whose value reaches the target becomes completed; a completed goal
        stays completed.

        Args:
            goal_id: Goal to update
            owner_id: Caller; must own the goal
            new_value: Finite, non-negative number
            notes: Optional note of at most 500 characters

        Returns:
            The updated goal

        Raises:
            ValidationError: If the value or notes are invalid
            NotFoundError: If the goal does not exist or belongs to someone else
            InternalError: If the transaction could not be committed
        """
        if not is_non_negative_real(new_value):
            raise ValidationError("Progress value must be a non-negative number")
        notes = _clean_notes(notes)

        goal = self._owned(goal_id, owner_id)
        previous_value = goal.current_value
        goal.current_value = float(new_value)
        if notes is not None:
            goal.notes = notes
        goal.updated_at = utc_now()

        completed_now = goal.status == GoalStatus.ACTIVE and goal.current_value >= goal.target_value
        try:
            if completed_now:
                goal.status = GoalStatus.COMPLETED
                goal.completed_at = utc_now()
                completed: GoalCompletedData = {
                    "goal_title": goal.title,
                    "final_value": goal.current_value,
                    "target_value": goal.target_value,
                    "unit": goal.unit,
                }
                if notes:
                    completed["notes"] = notes
                self.activities.record(
                    owner_id, ActivityType.GOAL_COMPLETED, dict(completed), "goal", goal.id
                )
            else:
                progress: GoalProgressData = {
                    "goal_title": goal.title,
                    "previous_value": previous_value,
                    "new_value": goal.current_value,
                    "target_value": goal.target_value,
                    "unit": goal.unit,
                }
                if notes:
                    progress["notes"] = notes
                self.activities.record(
                    owner_id, ActivityType.GOAL_PROGRESS, dict(progress), "goal", goal.id
                )
            self.session.add(goal)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.opt(exception=exc).error(f"❌ Failed to apply progress to goal {goal_id}")
            raise InternalError("Failed to update goal progress") from exc

        self.session.refresh(goal)
        if completed_now:
            logger.info(f"🏁 Goal {goal_id} completed")
        return GoalView.model_validate(goal)

    @track_operation("apply_goal_increment")
    def apply_increment(
        self,
        goal_id: int,
        owner_id: int,
        increment: float,
        notes: str | None = None,
    ) -> GoalView:
        """Add ``increment`` to a goal's progress, clamped to its target.

        A value already above the target is left where it is.

        This is the path used by automated progress sources; manual progress
        goes through :meth:`apply_progress`, which does not clamp.
        """
        if not is_non_negative_real(increment):
            raise ValidationError("Progress increment must be a non-negative number")
        goal = self._owned(goal_id, owner_id)
        new_value = max(goal.current_value, min(goal.current_value + increment, goal.target_value))
        return self.apply_progress(goal_id, owner_id, new_value, notes)


__all__ = ["GoalService", "NOTES_MAX"]
