"""Type definitions for FitConnect.

TypedDict shapes of the JSON ``data`` payload stored on activity records.
One shape per activity type keeps producers and consumers in agreement.

Example:
    >>> from fitconnect.types import GoalProgressData
    >>> data: GoalProgressData = {
    ...     "goal_title": "Run 100 km",
    ...     "previous_value": 40.0,
    ...     "new_value": 55.0,
    ...     "target_value": 100.0,
    ...     "unit": "km",
    ... }
"""

from typing import NotRequired, Required, TypedDict


# =============================================================================
# Goal Activity Payloads
# =============================================================================


class GoalCreatedData(TypedDict):
    """Payload of a ``goal_created`` activity."""

    goal_title: str
    category: str
    target_value: float
    unit: str


class GoalUpdatedData(TypedDict):
    """Payload of a ``goal_updated`` activity.

    Attributes:
        goal_title: Title after the update
        changed_fields: Names of the fields that were modified
    """

    goal_title: str
    changed_fields: list[str]


class GoalProgressData(TypedDict, total=False):
    """Payload of a ``goal_progress`` activity.

    Attributes:
        goal_title: Goal title at the time of the update
        previous_value: current_value before the update
        new_value: current_value after the update
        target_value: Goal target
        unit: Goal unit
        notes: Optional free-text note (<= 500 chars)
    """

    goal_title: Required[str]
    previous_value: Required[float]
    new_value: Required[float]
    target_value: Required[float]
    unit: Required[str]
    notes: NotRequired[str]


class GoalCompletedData(TypedDict, total=False):
    """Payload of a ``goal_completed`` activity."""

    goal_title: Required[str]
    final_value: Required[float]
    target_value: Required[float]
    unit: Required[str]
    notes: NotRequired[str]


class GoalDeletedData(TypedDict):
    """Payload of a ``goal_deleted`` activity."""

    goal_title: str


# =============================================================================
# Social Activity Payloads
# =============================================================================


class ConnectionEventData(TypedDict):
    """Payload of ``connection_requested`` and ``connection_accepted`` activities.

    Attributes:
        connection_id: Connection row id
        other_account_id: The other participant
        other_display_name: The other participant's display name
    """

    connection_id: int
    other_account_id: int
    other_display_name: str


class ProfileUpdatedData(TypedDict):
    """Payload of a ``profile_updated`` activity."""

    changed_fields: list[str]


__all__ = [
    "GoalCreatedData",
    "GoalUpdatedData",
    "GoalProgressData",
    "GoalCompletedData",
    "GoalDeletedData",
    "ConnectionEventData",
    "ProfileUpdatedData",
]
