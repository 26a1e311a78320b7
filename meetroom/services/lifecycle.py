# meetroom/services/lifecycle.py

from __future__ import annotations

import logging
from typing import Any, List, Optional

from meetroom.core.errors import AppError, ErrorKind, call_with_timeout
from meetroom.models.models import SYSTEM_USER_ID, SYSTEM_USER_NAME, ChatMessageType, Identity, utc_now
from meetroom.services.auth_service import IdentityVerifier
from meetroom.services.chat_store import ChatStore
from meetroom.services.connection_manager import Connection, ConnectionManager
from meetroom.services.delivery import Delivery, to_connection, to_meeting
from meetroom.services.room_manager import RoomCoordinator

logger = logging.getLogger(__name__)

JOINED_NOTICE = "joined the meeting"
LEFT_NOTICE = "left the meeting"
DISCONNECTED_NOTICE = "disconnected"


class LifecycleManager:
    """
    Drives a connection through Unjoined -> Joined(meeting) -> Unjoined.

    Every membership transition follows the same order:
        1. persisted change through the RoomCoordinator (may fail, nothing else happens)
        2. membership index update
        3. one broadcast to the meeting group
        4. one system chat entry, broadcast as "chat-message"

    Steps 3 and 4 are best effort: once step 1 succeeded a failure there is
    logged, not reported, and clients recover by resyncing.

    Handlers return the deliveries to perform instead of sending them, so
    they can be exercised without a network layer.
    """

    def __init__(
        self,
        verifier: IdentityVerifier,
        coordinator: RoomCoordinator,
        connections: ConnectionManager,
        chat_store: ChatStore,
        verify_timeout: float = 2.0,
        store_timeout: float = 5.0,
    ) -> None:
        self.verifier = verifier
        self.coordinator = coordinator
        self.connections = connections
        self.chat_store = chat_store
        self.verify_timeout = verify_timeout
        self.store_timeout = store_timeout

    async def authenticate(self, token: Optional[str]) -> Identity:
        return await call_with_timeout(self.verifier.verify(token), self.verify_timeout, "verify credentials")

    async def connect(self, websocket: Any, token: Optional[str]) -> Connection:
        """
        Verify the handshake credential and register the socket.

        Raises AppError(Unauthenticated) before the socket is accepted; the
        caller must close it without processing anything else.
        """
        identity = await self.authenticate(token)
        return await self.connections.connect(websocket, identity)

    async def join(self, connection: Connection, meeting_id: str) -> List[Delivery]:
        """
        Handle ``join-meeting``.

        Raises:
            AppError(InvalidState): connection is joined to another meeting
            AppError(NotFound | MeetingEnded | MeetingFull | Unavailable): from the coordinator
        """
        current = connection.meeting_id
        if current is not None and current != meeting_id:
            raise AppError(
                ErrorKind.INVALID_STATE,
                "Already in another meeting, leave it before joining a new one",
            )

        await self.coordinator.join(meeting_id, connection.user_id)

        timestamp = utc_now()
        confirmation = to_connection(connection.id, "joined-meeting", {"meetingId": meeting_id, "timestamp": timestamp})
        if current == meeting_id:
            # Rejoin on the same connection: already subscribed, nobody else needs to hear about it
            return [confirmation]

        # Another connection of this user is already in the group: same participant, no new presence
        already_present = self.connections.user_in_meeting(connection.user_id, meeting_id, exclude=connection.id)
        self.connections.bind_meeting(connection.id, meeting_id)
        logger.info("User %s joined meeting %s on %s", connection.user_id, meeting_id, connection.id)
        if already_present:
            return [confirmation]

        deliveries = [
            to_meeting(meeting_id, "user-joined", self._presence(connection, timestamp), exclude=connection.id),
            confirmation,
        ]
        deliveries.extend(await self._system_notice(meeting_id, f"{connection.user_name} {JOINED_NOTICE}"))
        return deliveries

    async def leave(self, connection: Connection, meeting_id: Optional[str] = None) -> List[Delivery]:
        """
        Handle ``leave-meeting``.

        Leaving while Unjoined is a no-op. Naming a meeting other than the one
        the connection is in is an InvalidState error. A failed persisted
        leave is reported and the connection stays joined.
        """
        if connection.meeting_id is None:
            logger.debug("Leave from %s ignored: not in a meeting", connection.id)
            return []
        if meeting_id is not None and meeting_id != connection.meeting_id:
            raise AppError(ErrorKind.INVALID_STATE, "Not in this meeting")

        left_meeting = connection.meeting_id
        deliveries = await self._leave_path(connection, LEFT_NOTICE)
        deliveries.insert(0, to_connection(connection.id, "left-meeting", {"meetingId": left_meeting, "timestamp": utc_now()}))
        return deliveries

    async def disconnect(self, connection: Connection) -> List[Delivery]:
        """
        Handle socket loss. Same cleanup as an explicit leave.

        Errors are logged, never raised: there is nobody left to tell. The
        connection is removed from the index whatever the store says.
        """
        deliveries: List[Delivery] = []
        try:
            if connection.meeting_id is not None:
                deliveries = await self._leave_path(connection, DISCONNECTED_NOTICE)
        except AppError as e:
            logger.error("Cleanup for %s in meeting %s failed: %s",
                         connection.user_id, connection.meeting_id, e.message)
        except Exception:
            logger.exception("Unhandled error cleaning up %s in meeting %s",
                             connection.user_id, connection.meeting_id)
        finally:
            self.connections.unregister(connection.id)
        return deliveries

    async def _leave_path(self, connection: Connection, notice: str) -> List[Delivery]:
        """
        Persisted leave, unsubscribe, presence broadcast and system notice.

        A user stays a participant while any of their connections is still in
        the meeting, so only the last one to go marks them inactive and tells
        the others.
        """
        meeting_id = connection.meeting_id
        if self.connections.user_in_meeting(connection.user_id, meeting_id, exclude=connection.id):
            self.connections.unbind_meeting(connection.id)
            logger.info("Connection %s left meeting %s; user %s still present on another connection",
                        connection.id, meeting_id, connection.user_id)
            return []

        await self.coordinator.leave(meeting_id, connection.user_id)

        self.connections.unbind_meeting(connection.id)
        logger.info("User %s %s: meeting %s on %s", connection.user_id, notice, meeting_id, connection.id)

        deliveries = [to_meeting(meeting_id, "user-left", self._presence(connection, utc_now()))]
        deliveries.extend(await self._system_notice(meeting_id, f"{connection.user_name} {notice}"))
        return deliveries

    async def _system_notice(self, meeting_id: str, text: str) -> List[Delivery]:
        try:
            message = await call_with_timeout(
                self.chat_store.append(meeting_id, SYSTEM_USER_ID, SYSTEM_USER_NAME, text, ChatMessageType.SYSTEM),
                self.store_timeout,
                "save system message",
            )
        except AppError as e:
            logger.warning("System message for meeting %s not saved: %s", meeting_id, e.message)
            return []
        return [to_meeting(meeting_id, "chat-message", message.to_wire())]

    @staticmethod
    def _presence(connection: Connection, timestamp: str) -> dict:
        return {"userId": connection.user_id, "userName": connection.user_name, "timestamp": timestamp}
