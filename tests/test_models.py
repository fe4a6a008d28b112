"""Unit tests for payload, view and table models."""

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from fitconnect.models import (
    AccountRow,
    AccountView,
    ConnectionStatus,
    GoalCategory,
    GoalCreate,
    GoalPriority,
    GoalRow,
    GoalStatus,
    GoalUpdate,
    GoalView,
    ProfileUpdate,
    ProfileVisibility,
    default_privacy_settings,
)


class TestEnums:
    """Tests for model enumerations."""

    def test_connection_status_values(self):
        """Test the four connection states."""
        assert [s.value for s in ConnectionStatus] == ["pending", "accepted", "rejected", "blocked"]

    def test_goal_status_values(self):
        """Test goal lifecycle states."""
        assert GoalStatus("completed") is GoalStatus.COMPLETED
        with pytest.raises(ValueError):
            GoalStatus("finished")

    def test_default_privacy_settings(self):
        """Test new profiles are public with every section shown."""
        assert default_privacy_settings() == {
            "profile_visibility": "public",
            "show_activity": True,
            "show_goals": True,
            "show_connections": True,
        }
        assert default_privacy_settings() is not default_privacy_settings()


class TestGoalCreate:
    """Tests for the GoalCreate payload."""

    def test_defaults(self):
        """Test optional fields get their defaults."""
        goal = GoalCreate(title="  Run 100 km  ", category="cardio", target_value=100)

        assert goal.title == "Run 100 km"
        assert goal.category is GoalCategory.CARDIO
        assert goal.current_value == 0.0
        assert goal.unit == "units"
        assert goal.priority is GoalPriority.MEDIUM
        assert goal.is_public is False

    def test_blank_unit_becomes_default(self):
        """Test a blank unit falls back to 'units'."""
        assert GoalCreate(title="x", category="sleep", target_value=8, unit="  ").unit == "units"

    @pytest.mark.parametrize(
        "payload",
        [
            {"title": "", "category": "cardio", "target_value": 10},
            {"title": "   ", "category": "cardio", "target_value": 10},
            {"title": "x" * 201, "category": "cardio", "target_value": 10},
            {"title": "Run", "category": "running", "target_value": 10},
            {"title": "Run", "category": "cardio", "target_value": 0},
            {"title": "Run", "category": "cardio", "target_value": 10, "current_value": -1},
            {"title": "Run", "category": "cardio", "target_value": float("inf")},
            {"title": "Run", "category": "cardio", "target_value": float("nan")},
            {"title": "Run", "category": "cardio", "target_value": 10, "current_value": float("inf")},
            {"title": "Run", "target_value": 10},
        ],
    )
    def test_invalid_payloads(self, payload):
        """Test malformed goal payloads are rejected."""
        with pytest.raises(ValidationError):
            GoalCreate.model_validate(payload)


class TestGoalUpdate:
    """Tests for the GoalUpdate payload."""

    def test_only_set_fields_are_dumped(self):
        """Test partial updates only carry explicit fields."""
        update = GoalUpdate(title="New title", status="paused")
        assert update.model_dump(exclude_unset=True) == {
            "title": "New title",
            "status": GoalStatus.PAUSED,
        }

    def test_rejects_non_positive_target(self):
        """Test target_value must stay positive."""
        with pytest.raises(ValidationError):
            GoalUpdate(target_value=-5)

    @pytest.mark.parametrize("value", [float("inf"), float("-inf"), float("nan")])
    def test_rejects_non_finite_target(self, value):
        """Test target_value must be a finite number."""
        with pytest.raises(ValidationError):
            GoalUpdate(target_value=value)


class TestProfileUpdate:
    """Tests for the ProfileUpdate payload."""

    def test_normalizes_text_and_fitness_level(self):
        """Test text is trimmed and fitness level lower-cased."""
        update = ProfileUpdate(bio="  Trail runner ", location="   ", fitness_level="ADVANCED")

        assert update.bio == "Trail runner"
        assert update.location is None
        assert update.fitness_level == "advanced"

    @pytest.mark.parametrize(
        "payload",
        [
            {"height_cm": 20},
            {"weight_kg": 900},
            {"bio": "x" * 1001},
            {"pronouns": "x" * 51},
            {"fitness_level": "elite"},
            {"cover_photo": "ftp://example.com/c.png"},
            {"privacy_settings": {"profile_visibility": "friends"}},
        ],
    )
    def test_invalid_payloads(self, payload):
        """Test out-of-range profile values are rejected."""
        with pytest.raises(ValidationError):
            ProfileUpdate.model_validate(payload)

    def test_partial_privacy_settings(self):
        """Test only the provided privacy switches are marked as set."""
        update = ProfileUpdate(privacy_settings={"profile_visibility": "private"})

        assert update.privacy_settings.profile_visibility is ProfileVisibility.PRIVATE
        assert update.privacy_settings.model_dump(exclude_unset=True) == {
            "profile_visibility": ProfileVisibility.PRIVATE
        }


class TestViews:
    """Tests for views built from rows."""

    def test_account_view_hides_credential(self):
        """Test the credential hash never reaches a view."""
        row = AccountRow(
            id=1,
            email="ana@example.com",
            display_name="Ana",
            credential_hash="secret-hash",
            created_at=datetime(2024, 1, 1, 12, 0),
        )
        view = AccountView.model_validate(row)

        assert "credential_hash" not in view.model_dump()
        assert view.created_at == datetime(2024, 1, 1, 12, 0, tzinfo=UTC)

    def test_goal_view_from_row(self):
        """Test a goal row converts to a view with aware timestamps."""
        row = GoalRow(
            id=3,
            owner_id=1,
            title="Sleep 8h",
            category=GoalCategory.SLEEP,
            target_value=8,
            current_value=6,
            unit="hours",
            created_at=datetime(2024, 2, 1, 7, 0),
            updated_at=datetime(2024, 2, 1, 7, 0),
        )
        view = GoalView.model_validate(row)

        assert view.status is GoalStatus.ACTIVE
        assert view.priority is GoalPriority.MEDIUM
        assert view.created_at.tzinfo == UTC
        assert view.completed_at is None
