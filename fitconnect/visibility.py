"""Connection-graph lookups and profile privacy checks.

These are plain functions over a session so that the feed, the connection
service and the privacy-aware readers (profiles, activities) share one
definition of "connected".
"""

from sqlmodel import Session, or_, select

from fitconnect.errors import ForbiddenError, NotFoundError
from fitconnect.models import (
    AccountRow,
    ConnectionRow,
    ConnectionStatus,
    ProfileRow,
    ProfileVisibility,
    default_privacy_settings,
)
from fitconnect.utils import pair_key


def connected_account_ids(session: Session, account_id: int) -> set[int]:
    """Ids of every account with an accepted connection to ``account_id``."""
    stmt = select(ConnectionRow.requester_id, ConnectionRow.receiver_id).where(
        ConnectionRow.status == ConnectionStatus.ACCEPTED,
        or_(
            ConnectionRow.requester_id == account_id,
            ConnectionRow.receiver_id == account_id,
        ),
    )
    ids: set[int] = set()
    for requester_id, receiver_id in session.exec(stmt).all():
        ids.add(receiver_id if requester_id == account_id else requester_id)
    return ids


def are_connected(session: Session, a: int, b: int) -> bool:
    """True when the unordered pair has an accepted connection."""
    if a == b:
        return False
    low, high = pair_key(a, b)
    stmt = select(ConnectionRow.id).where(
        ConnectionRow.pair_low == low,
        ConnectionRow.pair_high == high,
        ConnectionRow.status == ConnectionStatus.ACCEPTED,
    )
    return session.exec(stmt).first() is not None


def privacy_of(profile: ProfileRow | None) -> dict:
    """Effective privacy settings, filling gaps with the defaults."""
    settings = default_privacy_settings()
    if profile is not None and profile.privacy_settings:
        settings.update(profile.privacy_settings)
    return settings


def check_access(
    session: Session,
    viewer_id: int,
    owner_id: int,
    section: str | None = None,
) -> tuple[AccountRow, ProfileRow | None]:
    """Ensure ``viewer_id`` may read ``owner_id``'s profile (and a section of it).

    Args:
        session: Active session
        viewer_id: Account doing the reading
        owner_id: Account being read
        section: Optional privacy switch that must also be on, e.g.
            ``"show_activity"`` or ``"show_goals"``

    Returns:
        The owner's account row and profile row (profile may be None)

    Raises:
        NotFoundError: If the owner account does not exist
        ForbiddenError: If the owner's privacy settings exclude the viewer
    """
    account = session.get(AccountRow, owner_id)
    if account is None:
        raise NotFoundError("Account not found")

    profile = session.exec(select(ProfileRow).where(ProfileRow.account_id == owner_id)).first()
    if viewer_id == owner_id:
        return account, profile

    privacy = privacy_of(profile)
    visibility = privacy.get("profile_visibility", ProfileVisibility.PUBLIC.value)
    if visibility == ProfileVisibility.PRIVATE:
        raise ForbiddenError("This profile is private")
    if visibility == ProfileVisibility.CONNECTIONS and not are_connected(session, viewer_id, owner_id):
        raise ForbiddenError("This profile is only visible to connections")
    if section is not None and not privacy.get(section, True):
        raise ForbiddenError("This information is hidden by its owner")

    return account, profile


__all__ = ["connected_account_ids", "are_connected", "privacy_of", "check_access"]
