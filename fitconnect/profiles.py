"""Profile reads and updates with privacy enforcement."""

from typing import Any

from pydantic import ValidationError as PydanticValidationError
from sqlmodel import Session, select

from fitconnect.activity import ActivityService
from fitconnect.errors import NotFoundError, ValidationError, from_pydantic
from fitconnect.interfaces import IActivityRecorder
from fitconnect.metrics import track_operation
from fitconnect.models import (
    AccountPublic,
    AccountRow,
    ActivityType,
    ProfileRow,
    ProfileUpdate,
    ProfileView,
)
from fitconnect.types import ProfileUpdatedData
from fitconnect.utils import utc_now
from fitconnect.visibility import check_access, privacy_of


def _to_view(profile: ProfileRow, account: AccountRow) -> ProfileView:
    view = ProfileView.model_validate(profile)
    view.account = AccountPublic.model_validate(account)
    return view


class ProfileService:
    """Reads and updates the one-to-one profile of an account.

    Args:
        session: Request-scoped SQLModel session
        activities: Recorder for the secondary ``profile_updated`` activity
    """

    def __init__(self, session: Session, activities: IActivityRecorder | None = None):
        self.session = session
        self.activities = activities or ActivityService(session)

    def _load(self, account_id: int) -> tuple[AccountRow, ProfileRow]:
        account = self.session.get(AccountRow, account_id)
        if account is None:
            raise NotFoundError("Account not found")
        profile = self.session.exec(
            select(ProfileRow).where(ProfileRow.account_id == account_id)
        ).first()
        if profile is None:
            profile = ProfileRow(account_id=account_id)
            self.session.add(profile)
            self.session.flush()
        return account, profile

    def get_own_profile(self, account_id: int) -> ProfileView:
        account, profile = self._load(account_id)
        return _to_view(profile, account)

    @track_operation("update_profile")
    def update_profile(self, account_id: int, payload: ProfileUpdate | dict[str, Any]) -> ProfileView:
        """Apply the explicitly provided fields of ``payload``.

        ``privacy_settings`` is merged key by key into the stored settings.

        Raises:
            NotFoundError: If the account does not exist
            ValidationError: If a field is out of range or nothing is given
        """
        if not isinstance(payload, ProfileUpdate):
            try:
                payload = ProfileUpdate.model_validate(payload)
            except PydanticValidationError as exc:
                raise from_pydantic(exc) from exc

        changes = payload.model_dump(exclude_unset=True)
        if not changes:
            raise ValidationError("Nothing to update")

        account, profile = self._load(account_id)

        for field, value in changes.items():
            if field == "privacy_settings":
                merged = privacy_of(profile)
                if payload.privacy_settings is not None:
                    merged.update(payload.privacy_settings.model_dump(exclude_unset=True, mode="json"))
                profile.privacy_settings = merged
            elif field in ("primary_goals", "skills"):
                setattr(profile, field, list(value or []))
            else:
                setattr(profile, field, value)
        profile.updated_at = utc_now()

        self.session.add(profile)
        self.session.commit()
        self.session.refresh(profile)

        data: ProfileUpdatedData = {"changed_fields": sorted(changes)}
        self.activities.record_quietly(
            account_id,
            ActivityType.PROFILE_UPDATED,
            dict(data),
            related_entity_type="profile",
            related_entity_id=profile.id,
        )
        return _to_view(profile, account)

    @track_operation("get_profile")
    def get_profile(self, viewer_id: int, account_id: int) -> ProfileView:
        """Profile of ``account_id`` as seen by ``viewer_id``.

        Raises:
            NotFoundError: If the account does not exist
            ForbiddenError: If the profile is private, or connections-only and
                the viewer is not connected
        """
        check_access(self.session, viewer_id, account_id)
        account, profile = self._load(account_id)
        return _to_view(profile, account)


__all__ = ["ProfileService"]
