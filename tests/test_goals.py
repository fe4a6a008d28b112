"""Tests for the goal ledger and progress updates."""

import pytest
from sqlalchemy.exc import OperationalError

from fitconnect.activity import ActivityService
from fitconnect.errors import (
    InternalError,
    InvalidOperationError,
    NotFoundError,
    ValidationError,
)
from fitconnect.goals import GoalService
from fitconnect.models import ActivityType, GoalStatus, GoalUpdate


@pytest.fixture
def owner(make_account):
    return make_account("Goal Owner")


@pytest.fixture
def goals(session):
    return GoalService(session)


@pytest.fixture
def goal(goals, owner):
    """Active goal at 8/10 km."""
    return goals.create_goal(
        owner.id,
        {
            "title": "Run 10 km",
            "category": "cardio",
            "target_value": 10,
            "current_value": 8,
            "unit": "km",
        },
    )


def _types(session, account_id):
    return [a.type for a in ActivityService(session).list_for(account_id)]


class TestCreateAndList:
    """Tests for creating and listing goals."""

    def test_create_goal(self, session, goal, owner):
        """Test a new goal is active and logged."""
        assert goal.status is GoalStatus.ACTIVE
        assert goal.current_value == 8
        assert goal.unit == "km"
        assert goal.completed_at is None

        activities = ActivityService(session).list_for(owner.id)
        assert [a.type for a in activities] == [ActivityType.GOAL_CREATED]
        assert activities[0].data["goal_title"] == "Run 10 km"
        assert activities[0].related_entity_id == goal.id

    def test_create_goal_validation(self, goals, owner):
        """Test invalid payloads raise the service ValidationError."""
        with pytest.raises(ValidationError, match="target_value"):
            goals.create_goal(owner.id, {"title": "x", "category": "cardio", "target_value": 0})

    @pytest.mark.parametrize("target", [float("inf"), float("nan")])
    def test_create_goal_rejects_non_finite_target(self, goals, owner, target):
        """Test targets must be finite numbers and nothing is stored otherwise."""
        with pytest.raises(ValidationError, match="target_value"):
            goals.create_goal(owner.id, {"title": "x", "category": "cardio", "target_value": target})

        assert goals.list_goals(owner.id) == []

    def test_create_goal_unknown_owner(self, goals):
        """Test goals need an existing owner."""
        with pytest.raises(NotFoundError):
            goals.create_goal(999, {"title": "x", "category": "cardio", "target_value": 1})

    def test_list_goals_filters(self, goals, owner):
        """Test status and category filters."""
        goals.create_goal(owner.id, {"title": "Sleep", "category": "sleep", "target_value": 8})
        water = goals.create_goal(
            owner.id, {"title": "Water", "category": "hydration", "target_value": 2}
        )
        goals.update_goal(water.id, owner.id, {"status": "paused"})

        assert [g.title for g in goals.list_goals(owner.id)] == ["Water", "Sleep"]
        assert [g.title for g in goals.list_goals(owner.id, status="paused")] == ["Water"]
        assert [g.title for g in goals.list_goals(owner.id, category="sleep")] == ["Sleep"]

    def test_list_goals_rejects_unknown_filter(self, goals, owner):
        """Test unknown enum values are validation errors."""
        with pytest.raises(ValidationError):
            goals.list_goals(owner.id, status="finished")

    def test_other_owner_cannot_see_goal(self, goals, goal, make_account):
        """Test goals are scoped to their owner."""
        other = make_account()
        with pytest.raises(NotFoundError, match="Goal not found"):
            goals.get_goal(goal.id, other.id)
        with pytest.raises(NotFoundError):
            goals.apply_progress(goal.id, other.id, 9)
        with pytest.raises(NotFoundError):
            goals.delete_goal(goal.id, other.id)


class TestApplyProgress:
    """Tests for progress updates and completion."""

    def test_reaching_target_completes_goal(self, session, goals, goal, owner):
        """Test reaching the target completes the goal with one completion record."""
        updated = goals.apply_progress(goal.id, owner.id, 10)

        assert updated.status is GoalStatus.COMPLETED
        assert updated.current_value == 10
        assert updated.completed_at is not None
        assert _types(session, owner.id).count(ActivityType.GOAL_COMPLETED) == 1
        assert ActivityType.GOAL_PROGRESS not in _types(session, owner.id)

    def test_progress_below_target(self, session, goals, goal, owner):
        """Test partial progress logs previous and new values."""
        updated = goals.apply_progress(goal.id, owner.id, 9, notes="  Easy run  ")

        assert updated.status is GoalStatus.ACTIVE
        assert updated.notes == "Easy run"
        latest = ActivityService(session).list_for(owner.id, type=ActivityType.GOAL_PROGRESS)
        assert len(latest) == 1
        assert latest[0].data["previous_value"] == 8
        assert latest[0].data["new_value"] == 9
        assert latest[0].data["notes"] == "Easy run"

    def test_completed_goal_stays_completed(self, session, goals, goal, owner):
        """Test later progress never moves a completed goal back to active."""
        goals.apply_progress(goal.id, owner.id, 10)

        for value in (4, 0, 12):
            updated = goals.apply_progress(goal.id, owner.id, value)
            assert updated.status is GoalStatus.COMPLETED

        assert _types(session, owner.id).count(ActivityType.GOAL_COMPLETED) == 1

    def test_repeated_identical_progress_logs_each_call(self, session, goals, goal, owner):
        """Test each call logs its own activity."""
        goals.apply_progress(goal.id, owner.id, 9)
        goals.apply_progress(goal.id, owner.id, 9)

        assert _types(session, owner.id).count(ActivityType.GOAL_PROGRESS) == 2

    def test_progress_is_not_clamped(self, goals, goal, owner):
        """Test values above the target are stored as given."""
        assert goals.apply_progress(goal.id, owner.id, 14.5).current_value == 14.5

    @pytest.mark.parametrize("value", [-1, float("nan"), "9", None, True])
    def test_invalid_progress_value(self, goals, goal, owner, value):
        """Test malformed progress values are rejected."""
        with pytest.raises(ValidationError, match="non-negative number"):
            goals.apply_progress(goal.id, owner.id, value)

    def test_notes_length(self, goals, goal, owner):
        """Test notes longer than 500 characters are rejected."""
        with pytest.raises(ValidationError, match="500"):
            goals.apply_progress(goal.id, owner.id, 9, notes="x" * 501)

    def test_storage_failure_raises_internal_error(self, session, goals, goal, owner, mocker):
        """Test a failed commit leaves neither progress nor activity behind."""
        mocker.patch.object(
            session, "commit", side_effect=OperationalError("COMMIT", {}, Exception("disk I/O"))
        )

        with pytest.raises(InternalError):
            goals.apply_progress(goal.id, owner.id, 10)

        mocker.stopall()
        session.expire_all()
        assert goals.get_goal(goal.id, owner.id).current_value == 8
        assert _types(session, owner.id) == [ActivityType.GOAL_CREATED]


class TestApplyIncrement:
    """Tests for clamped increments."""

    def test_increment_clamps_to_target(self, goals, goal, owner):
        """Test increments stop at the target."""
        updated = goals.apply_increment(goal.id, owner.id, 5)

        assert updated.current_value == 10
        assert updated.status is GoalStatus.COMPLETED

    def test_increment_keeps_value_above_target(self, goals, goal, owner):
        """Test a value already past the target is never lowered."""
        goals.apply_progress(goal.id, owner.id, 15)
        assert goals.apply_increment(goal.id, owner.id, 1).current_value == 15

    def test_negative_increment(self, goals, goal, owner):
        """Test negative increments are rejected."""
        with pytest.raises(ValidationError):
            goals.apply_increment(goal.id, owner.id, -2)


class TestUpdateGoal:
    """Tests for attribute updates and status guards."""

    def test_update_title(self, session, goals, goal, owner):
        """Test attribute updates are logged with their field names."""
        updated = goals.update_goal(goal.id, owner.id, GoalUpdate(title="Run 12 km"))

        assert updated.title == "Run 12 km"
        latest = ActivityService(session).list_for(owner.id, type="goal_updated")
        assert latest[0].data["changed_fields"] == ["title"]

    def test_empty_update(self, goals, goal, owner):
        """Test an update without fields is rejected."""
        with pytest.raises(ValidationError, match="Nothing to update"):
            goals.update_goal(goal.id, owner.id, {})

    def test_null_required_field(self, goals, goal, owner):
        """Test required fields cannot be cleared."""
        with pytest.raises(ValidationError, match="cannot be null"):
            goals.update_goal(goal.id, owner.id, {"title": None})

    def test_update_rejects_infinite_target(self, goals, goal, owner):
        """Test an update cannot set an unreachable target."""
        with pytest.raises(ValidationError, match="target_value"):
            goals.update_goal(goal.id, owner.id, {"target_value": float("inf")})

        assert goals.get_goal(goal.id, owner.id).target_value == 10

    def test_cannot_complete_early(self, goals, goal, owner):
        """Test status=completed requires reaching the target."""
        with pytest.raises(InvalidOperationError):
            goals.update_goal(goal.id, owner.id, {"status": "completed"})

    def test_lowering_target_completes_goal(self, session, goals, goal, owner):
        """Test a target at or below the current value completes the goal."""
        updated = goals.update_goal(goal.id, owner.id, {"target_value": 8})

        assert updated.status is GoalStatus.COMPLETED
        assert updated.completed_at is not None
        assert ActivityType.GOAL_COMPLETED in _types(session, owner.id)

    def test_completed_goal_status_is_final(self, goals, goal, owner):
        """Test a completed goal cannot be reopened."""
        goals.apply_progress(goal.id, owner.id, 10)

        with pytest.raises(InvalidOperationError, match="cannot change status"):
            goals.update_goal(goal.id, owner.id, {"status": "active"})

    def test_delete_goal(self, session, goals, goal, owner):
        """Test deletion removes the goal and logs it."""
        goals.delete_goal(goal.id, owner.id)

        with pytest.raises(NotFoundError):
            goals.get_goal(goal.id, owner.id)
        assert _types(session, owner.id)[0] is ActivityType.GOAL_DELETED
