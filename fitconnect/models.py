"""Data models for FitConnect.

This module defines both Pydantic models (request payloads and the public
views returned by the services) and SQLModel ORM models (persistence).

Models are organized into three sections:
1. Enumerations shared by tables and views
2. Pydantic payload and view models
3. SQLModel tables for database persistence
"""

from datetime import date, datetime
from enum import StrEnum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field as PydanticField, field_validator
from sqlalchemy import JSON, CheckConstraint, Column, UniqueConstraint
from sqlmodel import Field, SQLModel

from fitconnect.utils import blank_to_none, is_valid_image_ref, parse_datetime, utc_now

# =============================================================================
# Section 1: Enumerations
# =============================================================================


class ConnectionStatus(StrEnum):
    """Connection lifecycle states. Only PENDING has outgoing transitions."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    BLOCKED = "blocked"


class GoalStatus(StrEnum):
    """Goal lifecycle states."""

    ACTIVE = "active"
    COMPLETED = "completed"
    PAUSED = "paused"
    CANCELLED = "cancelled"


class GoalCategory(StrEnum):
    """Wellness goal categories."""

    WEIGHT_LOSS = "weight_loss"
    WEIGHT_GAIN = "weight_gain"
    MUSCLE_GAIN = "muscle_gain"
    CARDIO = "cardio"
    FLEXIBILITY = "flexibility"
    NUTRITION = "nutrition"
    MENTAL_HEALTH = "mental_health"
    SLEEP = "sleep"
    HYDRATION = "hydration"
    OTHER = "other"


class GoalPriority(StrEnum):
    """Goal priority levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class FitnessLevel(StrEnum):
    """Self-reported fitness level on a profile."""

    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class ProfileVisibility(StrEnum):
    """Who may read a profile."""

    PUBLIC = "public"
    CONNECTIONS = "connections"
    PRIVATE = "private"


class ActivityType(StrEnum):
    """Kinds of activity log entries."""

    GOAL_CREATED = "goal_created"
    GOAL_UPDATED = "goal_updated"
    GOAL_PROGRESS = "goal_progress"
    GOAL_COMPLETED = "goal_completed"
    GOAL_DELETED = "goal_deleted"
    PROFILE_UPDATED = "profile_updated"
    CONNECTION_REQUESTED = "connection_requested"
    CONNECTION_ACCEPTED = "connection_accepted"


class NotificationType(StrEnum):
    """Kinds of notifications delivered to a recipient."""

    POST_LIKE = "post_like"
    POST_COMMENT = "post_comment"
    CONNECTION_REQUEST = "connection_request"
    CONNECTION_ACCEPTED = "connection_accepted"


def default_privacy_settings() -> dict[str, Any]:
    """Privacy settings given to every new profile."""
    return {
        "profile_visibility": ProfileVisibility.PUBLIC.value,
        "show_activity": True,
        "show_goals": True,
        "show_connections": True,
    }


# =============================================================================
# Section 2: Pydantic Payload and View Models
# =============================================================================


class _View(BaseModel):
    """Base for views built from ORM rows."""

    model_config = ConfigDict(from_attributes=True, extra="ignore")


class AccountPublic(_View):
    """Public projection of an account. Never carries the credential hash.

    Attributes:
        id: Account ID
        display_name: Name shown to other accounts
        avatar_url: Optional avatar image reference
    """

    id: int
    display_name: str
    avatar_url: Optional[str] = None


class AccountView(AccountPublic):
    """Projection of an account returned to its owner.

    Attributes:
        email: Login email (lower-cased)
        created_at: Registration timestamp (UTC)
        updated_at: Last modification timestamp (UTC)
    """

    email: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _coerce_timestamps(cls, v: Optional[str | datetime]) -> Optional[datetime]:
        return parse_datetime(v)


class PrivacySettings(BaseModel):
    """Profile privacy switches."""

    model_config = ConfigDict(extra="ignore")

    profile_visibility: ProfileVisibility = ProfileVisibility.PUBLIC
    show_activity: bool = True
    show_goals: bool = True
    show_connections: bool = True


class ProfileUpdate(BaseModel):
    """Partial profile update. Only fields explicitly set are applied."""

    model_config = ConfigDict(extra="ignore")

    pronouns: Optional[str] = PydanticField(default=None, max_length=50)
    bio: Optional[str] = PydanticField(default=None, max_length=1000)
    location: Optional[str] = PydanticField(default=None, max_length=100)
    date_of_birth: Optional[date] = None
    height_cm: Optional[int] = PydanticField(default=None, ge=50, le=300)
    weight_kg: Optional[float] = PydanticField(default=None, ge=10, le=500)
    fitness_level: Optional[FitnessLevel] = None
    primary_goals: Optional[list[str]] = None
    skills: Optional[list[str]] = None
    privacy_settings: Optional[PrivacySettings] = None
    cover_photo: Optional[str] = None

    @field_validator("pronouns", "bio", "location", mode="before")
    @classmethod
    def _strip_text(cls, v: Optional[str]) -> Optional[str]:
        return blank_to_none(v) if isinstance(v, str) else v

    @field_validator("fitness_level", mode="before")
    @classmethod
    def _lower_fitness_level(cls, v: Any) -> Any:
        if isinstance(v, str):
            return blank_to_none(v.lower())
        return v

    @field_validator("cover_photo")
    @classmethod
    def _check_cover_photo(cls, v: Optional[str]) -> Optional[str]:
        if not is_valid_image_ref(v):
            raise ValueError("Cover photo must be an http(s) URL or a data:image URL")
        return blank_to_none(v)


class ProfileView(_View):
    """Profile as returned by the profile service."""

    account_id: int
    pronouns: Optional[str] = None
    bio: Optional[str] = None
    location: Optional[str] = None
    date_of_birth: Optional[date] = None
    height_cm: Optional[int] = None
    weight_kg: Optional[float] = None
    fitness_level: Optional[FitnessLevel] = None
    primary_goals: list[str] = PydanticField(default_factory=list)
    skills: list[str] = PydanticField(default_factory=list)
    privacy_settings: PrivacySettings = PydanticField(default_factory=PrivacySettings)
    cover_photo: Optional[str] = None
    account: Optional[AccountPublic] = None


class GoalCreate(BaseModel):
    """Payload for creating a goal."""

    model_config = ConfigDict(extra="ignore", allow_inf_nan=False)

    title: str = PydanticField(min_length=1, max_length=200)
    description: Optional[str] = PydanticField(default=None, max_length=1000)
    category: GoalCategory
    target_value: float = PydanticField(gt=0)
    current_value: float = PydanticField(default=0.0, ge=0)
    unit: str = PydanticField(default="units", max_length=50)
    target_date: Optional[date] = None
    priority: GoalPriority = GoalPriority.MEDIUM
    is_public: bool = False

    @field_validator("title", mode="before")
    @classmethod
    def _strip_title(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("unit", mode="before")
    @classmethod
    def _default_unit(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return "units"
        return v.strip() if isinstance(v, str) else v


class GoalUpdate(BaseModel):
    """Partial goal update. Progress goes through ``apply_progress`` instead."""

    model_config = ConfigDict(extra="ignore", allow_inf_nan=False)

    title: Optional[str] = PydanticField(default=None, min_length=1, max_length=200)
    description: Optional[str] = PydanticField(default=None, max_length=1000)
    category: Optional[GoalCategory] = None
    target_value: Optional[float] = PydanticField(default=None, gt=0)
    unit: Optional[str] = PydanticField(default=None, min_length=1, max_length=50)
    target_date: Optional[date] = None
    status: Optional[GoalStatus] = None
    priority: Optional[GoalPriority] = None
    is_public: Optional[bool] = None

    @field_validator("title", "unit", mode="before")
    @classmethod
    def _strip(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v


class GoalView(_View):
    """Goal as returned to its owner."""

    id: int
    owner_id: int
    title: str
    description: Optional[str] = None
    category: GoalCategory
    target_value: float
    current_value: float
    unit: str
    target_date: Optional[date] = None
    status: GoalStatus
    priority: GoalPriority
    is_public: bool
    notes: Optional[str] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("completed_at", "created_at", "updated_at", mode="before")
    @classmethod
    def _coerce_timestamps(cls, v: Optional[str | datetime]) -> Optional[datetime]:
        return parse_datetime(v)


class ConnectionView(_View):
    """A connection row as seen by one of its participants."""

    id: int
    requester_id: int
    receiver_id: int
    status: ConnectionStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _coerce_timestamps(cls, v: Optional[str | datetime]) -> Optional[datetime]:
        return parse_datetime(v)


class ConnectedAccount(BaseModel):
    """An accepted connection partner."""

    connection_id: int
    account: AccountPublic
    connected_since: Optional[datetime] = None

    @field_validator("connected_since", mode="before")
    @classmethod
    def _coerce_connected_since(cls, v: Optional[str | datetime]) -> Optional[datetime]:
        return parse_datetime(v)


class CommentPreview(_View):
    """Comment with its author, as embedded in feed posts."""

    id: int
    author_id: int
    content: str
    created_at: Optional[datetime] = None
    author: Optional[AccountPublic] = None

    @field_validator("created_at", mode="before")
    @classmethod
    def _coerce_created_at(cls, v: Optional[str | datetime]) -> Optional[datetime]:
        return parse_datetime(v)


class CommentView(CommentPreview):
    """Comment returned by the comment endpoints."""

    post_id: int


class PostView(_View):
    """Post with engagement counts and the viewer's like state.

    Attributes:
        id: Post ID
        author_id: Authoring account ID
        content: Post body
        image_ref: Optional http(s) URL or data:image URL
        created_at: Creation timestamp (UTC)
        like_count: Number of likes
        comment_count: Number of comments
        is_liked: Whether the viewer liked the post
        comments: Most recent comments, newest first
        author: Public projection of the author
    """

    id: int
    author_id: int
    content: str
    image_ref: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    like_count: int = 0
    comment_count: int = 0
    is_liked: bool = False
    comments: list[CommentPreview] = PydanticField(default_factory=list)
    author: Optional[AccountPublic] = None

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _coerce_timestamps(cls, v: Optional[str | datetime]) -> Optional[datetime]:
        return parse_datetime(v)


class ActivityView(_View):
    """Activity log entry."""

    id: int
    account_id: int
    type: ActivityType
    data: dict[str, Any] = PydanticField(default_factory=dict)
    related_entity_type: Optional[str] = None
    related_entity_id: Optional[int] = None
    created_at: Optional[datetime] = None

    @field_validator("created_at", mode="before")
    @classmethod
    def _coerce_created_at(cls, v: Optional[str | datetime]) -> Optional[datetime]:
        return parse_datetime(v)


class NotificationView(_View):
    """Notification delivered to a recipient."""

    id: int
    recipient_id: int
    actor_id: Optional[int] = None
    type: NotificationType
    entity_type: Optional[str] = None
    entity_id: Optional[int] = None
    message: str
    is_read: bool
    created_at: Optional[datetime] = None

    @field_validator("created_at", mode="before")
    @classmethod
    def _coerce_created_at(cls, v: Optional[str | datetime]) -> Optional[datetime]:
        return parse_datetime(v)


# =============================================================================
# Section 3: SQLModel Tables for Database Persistence
# =============================================================================


class AccountRow(SQLModel, table=True):
    """Persisted account identity.

    Attributes:
        id: Auto-incremented primary key
        email: Unique, lower-cased login email
        display_name: 2-100 characters
        credential_hash: Opaque hash produced by the external auth layer
        avatar_url: Optional image reference
    """

    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(unique=True, index=True)
    display_name: str
    credential_hash: str
    avatar_url: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class ProfileRow(SQLModel, table=True):
    """One-to-one profile extension of an account."""

    id: Optional[int] = Field(default=None, primary_key=True)
    account_id: int = Field(foreign_key="accountrow.id", ondelete="CASCADE", unique=True)
    pronouns: Optional[str] = None
    bio: Optional[str] = None
    location: Optional[str] = None
    date_of_birth: Optional[date] = None
    height_cm: Optional[int] = None
    weight_kg: Optional[float] = None
    fitness_level: Optional[FitnessLevel] = None
    primary_goals: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    skills: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    privacy_settings: dict[str, Any] = Field(
        default_factory=default_privacy_settings, sa_column=Column(JSON)
    )
    cover_photo: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class GoalRow(SQLModel, table=True):
    """Tracked objective owned by an account.

    Attributes:
        owner_id: FK to AccountRow.id (indexed)
        target_value: Positive target
        current_value: Progress so far, never negative
        status: Lifecycle state; COMPLETED only once current_value >= target_value
        completed_at: Set when the goal transitions to COMPLETED
    """

    id: Optional[int] = Field(default=None, primary_key=True)
    owner_id: int = Field(foreign_key="accountrow.id", ondelete="CASCADE", index=True)
    title: str
    description: Optional[str] = None
    category: GoalCategory = GoalCategory.OTHER
    target_value: float
    current_value: float = 0.0
    unit: str = "units"
    target_date: Optional[date] = None
    status: GoalStatus = Field(default=GoalStatus.ACTIVE, index=True)
    priority: GoalPriority = GoalPriority.MEDIUM
    is_public: bool = False
    notes: Optional[str] = None
    completed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now, index=True)
    updated_at: datetime = Field(default_factory=utc_now)


class ConnectionRow(SQLModel, table=True):
    """Relationship between two accounts.

    ``pair_low``/``pair_high`` hold the sorted account ids so the unique
    constraint covers the unordered pair.
    """

    __table_args__ = (
        UniqueConstraint("pair_low", "pair_high", name="uq_connection_pair"),
        CheckConstraint("requester_id <> receiver_id", name="ck_connection_distinct"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    requester_id: int = Field(foreign_key="accountrow.id", ondelete="CASCADE", index=True)
    receiver_id: int = Field(foreign_key="accountrow.id", ondelete="CASCADE", index=True)
    pair_low: int
    pair_high: int
    status: ConnectionStatus = Field(default=ConnectionStatus.PENDING, index=True)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class PostRow(SQLModel, table=True):
    """Content item authored by an account."""

    id: Optional[int] = Field(default=None, primary_key=True)
    author_id: int = Field(foreign_key="accountrow.id", ondelete="CASCADE", index=True)
    content: str
    image_ref: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now, index=True)
    updated_at: datetime = Field(default_factory=utc_now)


class LikeRow(SQLModel, table=True):
    """Like on a post. The composite primary key allows one like per account."""

    post_id: int = Field(primary_key=True, foreign_key="postrow.id", ondelete="CASCADE")
    account_id: int = Field(primary_key=True, foreign_key="accountrow.id", ondelete="CASCADE")
    created_at: datetime = Field(default_factory=utc_now)


class CommentRow(SQLModel, table=True):
    """Comment on a post."""

    id: Optional[int] = Field(default=None, primary_key=True)
    post_id: int = Field(foreign_key="postrow.id", ondelete="CASCADE", index=True)
    author_id: int = Field(foreign_key="accountrow.id", ondelete="CASCADE", index=True)
    content: str
    created_at: datetime = Field(default_factory=utc_now, index=True)


class ActivityRow(SQLModel, table=True):
    """Append-only activity log entry."""

    id: Optional[int] = Field(default=None, primary_key=True)
    account_id: int = Field(foreign_key="accountrow.id", ondelete="CASCADE", index=True)
    type: ActivityType = Field(index=True)
    data: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    related_entity_type: Optional[str] = None
    related_entity_id: Optional[int] = None
    created_at: datetime = Field(default_factory=utc_now, index=True)


class NotificationRow(SQLModel, table=True):
    """Alert for a recipient, referencing the account that triggered it."""

    id: Optional[int] = Field(default=None, primary_key=True)
    recipient_id: int = Field(foreign_key="accountrow.id", ondelete="CASCADE", index=True)
    actor_id: Optional[int] = Field(
        default=None, foreign_key="accountrow.id", ondelete="CASCADE"
    )
    type: NotificationType
    entity_type: Optional[str] = None
    entity_id: Optional[int] = None
    message: str
    is_read: bool = Field(default=False, index=True)
    created_at: datetime = Field(default_factory=utc_now, index=True)
