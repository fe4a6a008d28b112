"""Account registration and maintenance.

Credential hashing lives outside this service: ``register`` stores whatever
opaque hash the caller supplies and no view ever exposes it.
"""

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from fitconnect.errors import ConflictError, NotFoundError, ValidationError
from fitconnect.logging import logger
from fitconnect.metrics import track_operation
from fitconnect.models import AccountRow, AccountView, ProfileRow
from fitconnect.repository import Repository
from fitconnect.utils import (
    blank_to_none,
    is_valid_email,
    is_valid_image_ref,
    normalize_email,
    utc_now,
)

DISPLAY_NAME_MIN = 2
DISPLAY_NAME_MAX = 100

_UNSET = object()


def _clean_display_name(value: object) -> str:
    if not isinstance(value, str):
        raise ValidationError("Display name must be a string")
    value = value.strip()
    if not DISPLAY_NAME_MIN <= len(value) <= DISPLAY_NAME_MAX:
        raise ValidationError(
            f"Display name must be between {DISPLAY_NAME_MIN} and {DISPLAY_NAME_MAX} characters"
        )
    return value


def _clean_avatar(value: str | None) -> str | None:
    if value is not None and not isinstance(value, str):
        raise ValidationError("Avatar must be a string")
    if not is_valid_image_ref(value):
        raise ValidationError("Avatar must be an http(s) URL or a data:image URL")
    return blank_to_none(value)


class AccountService:
    """Registers, reads, updates and deletes accounts.

    Args:
        session: Request-scoped SQLModel session
    """

    def __init__(self, session: Session):
        self.session = session
        self.accounts = Repository[AccountRow](session, AccountRow)

    def require(self, account_id: int) -> AccountRow:
        """Account row by id.

        Raises:
            NotFoundError: If the account does not exist
        """
        account = self.accounts.get(account_id)
        if account is None:
            raise NotFoundError("Account not found")
        return account

    @track_operation("register_account")
    def register(
        self,
        email: str,
        display_name: str,
        credential_hash: str,
        avatar_url: str | None = None,
    ) -> AccountView:
        """Create an account and its empty profile in one transaction.

        Args:
            email: Login email; stored trimmed and lower-cased
            display_name: 2-100 characters after trimming
            credential_hash: Opaque hash produced by the auth layer
            avatar_url: Optional http(s) or data:image reference

        Returns:
            The owner's view of the new account

        Raises:
            ValidationError: If any field is malformed
            ConflictError: If the email is already registered
        """
        if not isinstance(email, str) or not is_valid_email(normalize_email(email)):
            raise ValidationError("A valid email address is required")
        email = normalize_email(email)
        display_name = _clean_display_name(display_name)
        if not isinstance(credential_hash, str) or not credential_hash:
            raise ValidationError("Credential hash is required")
        avatar_url = _clean_avatar(avatar_url)

        if self.accounts.first_by(email=email) is not None:
            raise ConflictError("An account with this email already exists")

        try:
            account = self.accounts.add(
                AccountRow(
                    email=email,
                    display_name=display_name,
                    credential_hash=credential_hash,
                    avatar_url=avatar_url,
                )
            )
            self.session.add(ProfileRow(account_id=account.id))
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise ConflictError("An account with this email already exists") from exc

        self.session.refresh(account)
        logger.info(f"✅ Registered account {account.id}")
        return AccountView.model_validate(account)

    def get_account(self, account_id: int) -> AccountView:
        return AccountView.model_validate(self.require(account_id))

    def get_account_by_email(self, email: str) -> AccountView:
        """Look up an account by (case-insensitive) email.

        Raises:
            NotFoundError: If no account uses this email
        """
        account = self.session.exec(
            select(AccountRow).where(AccountRow.email == normalize_email(email))
        ).first()
        if account is None:
            raise NotFoundError("Account not found")
        return AccountView.model_validate(account)

    @track_operation("update_account")
    def update_account(
        self,
        account_id: int,
        display_name: str | None = None,
        avatar_url: object = _UNSET,
    ) -> AccountView:
        """Change the display name and/or avatar.

        Passing ``avatar_url=None`` (or an empty string) clears the avatar;
        omitting it leaves the avatar unchanged.

        Raises:
            NotFoundError: If the account does not exist
            ValidationError: If nothing is given or a value is malformed
        """
        if display_name is None and avatar_url is _UNSET:
            raise ValidationError("Nothing to update")

        account = self.require(account_id)
        if display_name is not None:
            account.display_name = _clean_display_name(display_name)
        if avatar_url is not _UNSET:
            account.avatar_url = _clean_avatar(avatar_url)  # type: ignore[arg-type]
        account.updated_at = utc_now()

        self.session.add(account)
        self.session.commit()
        self.session.refresh(account)
        return AccountView.model_validate(account)

    @track_operation("delete_account")
    def delete_account(self, account_id: int) -> None:
        """Delete an account; foreign-key cascades remove everything it owns."""
        account = self.require(account_id)
        self.accounts.delete(account)
        self.session.commit()
        logger.info(f"🗑️  Deleted account {account_id}")


__all__ = ["AccountService", "DISPLAY_NAME_MIN", "DISPLAY_NAME_MAX"]
