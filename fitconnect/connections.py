"""Connection graph service.

A connection is one row per unordered account pair. The storage layer
enforces that with a unique constraint on the sorted pair, so two racing
requests cannot create two rows: the loser's insert fails and is re-resolved
against the winner's row.

Lifecycle::

    pending --accept--> accepted
    pending --reject--> rejected
    pending --block---> blocked

A pending request answered by a request in the opposite direction is
accepted automatically.
"""

from typing import Literal

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, or_, select

from fitconnect.activity import ActivityService
from fitconnect.config import settings
from fitconnect.errors import (
    ConflictError,
    ForbiddenError,
    InternalError,
    InvalidOperationError,
    NotFoundError,
    ValidationError,
)
from fitconnect.interfaces import IActivityRecorder, INotificationSink
from fitconnect.logging import logger
from fitconnect.metrics import track_operation
from fitconnect.models import (
    AccountPublic,
    AccountRow,
    ActivityType,
    ConnectedAccount,
    ConnectionRow,
    ConnectionStatus,
    ConnectionView,
    NotificationType,
)
from fitconnect.notifications import NotificationService
from fitconnect.repository import Repository
from fitconnect.types import ConnectionEventData
from fitconnect.utils import pair_key, resolve_page, utc_now
from fitconnect import visibility


class ConnectionService:
    """Sends, answers and lists connection requests.

    Args:
        session: Request-scoped SQLModel session
        activities: Recorder for secondary activities
        notifications: Sink for secondary notifications
    """

    def __init__(
        self,
        session: Session,
        activities: IActivityRecorder | None = None,
        notifications: INotificationSink | None = None,
    ):
        self.session = session
        self.connections = Repository[ConnectionRow](session, ConnectionRow)
        self.activities = activities or ActivityService(session)
        self.notifications = notifications or NotificationService(session)

    def _account(self, account_id: int) -> AccountRow:
        account = self.session.get(AccountRow, account_id)
        if account is None:
            raise NotFoundError("Account not found")
        return account

    def _pair_row(self, a: int, b: int) -> ConnectionRow | None:
        low, high = pair_key(a, b)
        return self.session.exec(
            select(ConnectionRow).where(
                ConnectionRow.pair_low == low, ConnectionRow.pair_high == high
            )
        ).first()

    def _transition(self, connection: ConnectionRow, status: ConnectionStatus) -> bool:
        """Move a pending row to ``status`` only if it is still pending.

        Returns:
            False when another request changed the row first
        """
        result = self.session.connection().execute(
            update(ConnectionRow)
            .where(
                col(ConnectionRow.id) == connection.id,
                col(ConnectionRow.status) == ConnectionStatus.PENDING,
            )
            .values(status=status, updated_at=utc_now())
        )
        if result.rowcount != 1:
            self.session.rollback()
            return False
        self.session.commit()
        self.session.refresh(connection)
        return True

    # =========================================================================
    # Requests
    # =========================================================================

    @track_operation("send_connection_request")
    def send_request(self, requester_id: int, receiver_id: int) -> ConnectionView:
        """Ask ``receiver_id`` to connect.

        Returns:
            The new pending connection, or the accepted one when the receiver
            had already asked ``requester_id``

        Raises:
            InvalidOperationError: If both ids are the same account
            NotFoundError: If either account does not exist
            ConflictError: If the pair already has a connection
        """
        if requester_id == receiver_id:
            raise InvalidOperationError("Cannot send a connection request to yourself")
        requester = self._account(requester_id)
        receiver = self._account(receiver_id)

        existing = self._pair_row(requester_id, receiver_id)
        if existing is not None:
            return self._resolve_existing(existing, requester_id)

        low, high = pair_key(requester_id, receiver_id)
        try:
            connection = self.connections.add(
                ConnectionRow(
                    requester_id=requester_id,
                    receiver_id=receiver_id,
                    pair_low=low,
                    pair_high=high,
                )
            )
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            winner = self._pair_row(requester_id, receiver_id)
            if winner is None:
                raise InternalError("Failed to create connection") from exc
            logger.debug(f"Concurrent request for pair ({low}, {high}) resolved against row {winner.id}")
            return self._resolve_existing(winner, requester_id)

        logger.info(f"🤝 Connection request {connection.id}: {requester_id} -> {receiver_id}")

        requested: ConnectionEventData = {
            "connection_id": connection.id,
            "other_account_id": receiver_id,
            "other_display_name": receiver.display_name,
        }
        self.activities.record_quietly(
            requester_id, ActivityType.CONNECTION_REQUESTED, dict(requested), "connection", connection.id
        )
        self.notifications.notify_quietly(
            receiver_id,
            NotificationType.CONNECTION_REQUEST,
            f"{requester.display_name} sent you a connection request",
            actor_id=requester_id,
            entity_type="connection",
            entity_id=connection.id,
        )
        return ConnectionView.model_validate(connection)

    def _resolve_existing(self, connection: ConnectionRow, requester_id: int) -> ConnectionView:
        if connection.status == ConnectionStatus.PENDING and connection.receiver_id == requester_id:
            if self._transition(connection, ConnectionStatus.ACCEPTED):
                logger.info(f"🤝 Connection {connection.id} auto-accepted")
                self._after_accept(connection)
                return ConnectionView.model_validate(connection)
        raise ConflictError("Connection already exists")

    def _after_accept(self, connection: ConnectionRow) -> None:
        requester = self.session.get(AccountRow, connection.requester_id)
        receiver = self.session.get(AccountRow, connection.receiver_id)
        for me, other in ((requester, receiver), (receiver, requester)):
            accepted: ConnectionEventData = {
                "connection_id": connection.id,
                "other_account_id": other.id,
                "other_display_name": other.display_name,
            }
            self.activities.record_quietly(
                me.id, ActivityType.CONNECTION_ACCEPTED, dict(accepted), "connection", connection.id
            )
        self.notifications.notify_quietly(
            requester.id,
            NotificationType.CONNECTION_ACCEPTED,
            f"{receiver.display_name} accepted your connection request",
            actor_id=receiver.id,
            entity_type="connection",
            entity_id=connection.id,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def _participant_row(self, connection_id: int, account_id: int) -> ConnectionRow:
        connection = self.connections.get(connection_id)
        if connection is None or account_id not in (connection.requester_id, connection.receiver_id):
            raise NotFoundError("Connection not found")
        return connection

    def _respond(self, connection_id: int, account_id: int, status: ConnectionStatus) -> ConnectionRow:
        connection = self._participant_row(connection_id, account_id)
        if connection.receiver_id != account_id:
            raise ForbiddenError("Only the receiver can respond to a connection request")
        if connection.status != ConnectionStatus.PENDING:
            raise InvalidOperationError(f"Connection is already {connection.status}")
        if not self._transition(connection, status):
            raise InvalidOperationError("Connection is no longer pending")
        return connection

    @track_operation("accept_connection")
    def accept(self, connection_id: int, account_id: int) -> ConnectionView:
        """Accept a pending request addressed to ``account_id``."""
        connection = self._respond(connection_id, account_id, ConnectionStatus.ACCEPTED)
        self._after_accept(connection)
        return ConnectionView.model_validate(connection)

    @track_operation("reject_connection")
    def reject(self, connection_id: int, account_id: int) -> ConnectionView:
        """Reject a pending request addressed to ``account_id``."""
        connection = self._respond(connection_id, account_id, ConnectionStatus.REJECTED)
        return ConnectionView.model_validate(connection)

    @track_operation("block_connection")
    def block(self, connection_id: int, account_id: int) -> ConnectionView:
        """Block a pending request. Either participant may block."""
        connection = self._participant_row(connection_id, account_id)
        if connection.status != ConnectionStatus.PENDING:
            raise InvalidOperationError(f"Connection is already {connection.status}")
        if not self._transition(connection, ConnectionStatus.BLOCKED):
            raise InvalidOperationError("Connection is no longer pending")
        return ConnectionView.model_validate(connection)

    # =========================================================================
    # Queries
    # =========================================================================

    @track_operation("list_connections")
    def list_connections(
        self, account_id: int, limit: int | None = None, offset: int | None = 0
    ) -> list[ConnectedAccount]:
        """Accepted connection partners, most recently connected first."""
        limit, offset = resolve_page(
            limit, offset, settings.page_default_limit, settings.page_max_limit
        )
        self._account(account_id)
        stmt = (
            select(ConnectionRow)
            .where(
                ConnectionRow.status == ConnectionStatus.ACCEPTED,
                or_(
                    ConnectionRow.requester_id == account_id,
                    ConnectionRow.receiver_id == account_id,
                ),
            )
            .order_by(col(ConnectionRow.updated_at).desc(), col(ConnectionRow.id).desc())
            .limit(limit)
            .offset(offset)
        )
        rows = self.session.exec(stmt).all()
        partner_ids = {
            row.receiver_id if row.requester_id == account_id else row.requester_id for row in rows
        }
        partners = {
            account.id: account
            for account in self.session.exec(
                select(AccountRow).where(col(AccountRow.id).in_(partner_ids))
            ).all()
        }
        result = []
        for row in rows:
            other_id = row.receiver_id if row.requester_id == account_id else row.requester_id
            result.append(
                ConnectedAccount(
                    connection_id=row.id,
                    account=AccountPublic.model_validate(partners[other_id]),
                    connected_since=row.updated_at,
                )
            )
        return result

    def connected_account_ids(self, account_id: int) -> set[int]:
        return visibility.connected_account_ids(self.session, account_id)

    def pending_requests(
        self,
        account_id: int,
        direction: Literal["incoming", "outgoing"] = "incoming",
    ) -> list[ConnectionView]:
        """Pending requests received by (incoming) or sent by (outgoing) an account."""
        if direction == "incoming":
            column = ConnectionRow.receiver_id
        elif direction == "outgoing":
            column = ConnectionRow.requester_id
        else:
            raise ValidationError("direction must be 'incoming' or 'outgoing'")

        stmt = (
            select(ConnectionRow)
            .where(column == account_id, ConnectionRow.status == ConnectionStatus.PENDING)
            .order_by(col(ConnectionRow.created_at).desc(), col(ConnectionRow.id).desc())
        )
        return [ConnectionView.model_validate(row) for row in self.session.exec(stmt).all()]

    def are_connected(self, a: int, b: int) -> bool:
        return visibility.are_connected(self.session, a, b)


__all__ = ["ConnectionService"]
