# meetroom/services/message_router.py

from __future__ import annotations

import logging
from typing import List

from meetroom.core.errors import AppError, ErrorKind, call_with_timeout
from meetroom.models.models import (
    ChatMessageType,
    MediaControlRequest,
    ParticipantsRequest,
    SendMessageRequest,
    TypingRequest,
    WebRTCSignalRequest,
)
from meetroom.services.chat_store import ChatStore
from meetroom.services.connection_manager import Connection, ConnectionManager
from meetroom.services.delivery import Delivery, to_connection, to_meeting, to_user
from meetroom.services.room_manager import RoomCoordinator

logger = logging.getLogger(__name__)


class MessageRouter:
    """
    Routes chat, presence, media-state and signaling events.

    Two kinds of destination:
        - meeting groups: every connection subscribed to a meeting
        - user channels: every connection authenticated as a given user

    The router reads the membership index to decide who may send to a
    meeting and never changes it. Payloads are forwarded as-is apart from
    the routing fields; sender identity always comes from the connection.
    """

    def __init__(
        self,
        connections: ConnectionManager,
        coordinator: RoomCoordinator,
        chat_store: ChatStore,
        store_timeout: float = 5.0,
    ) -> None:
        self.connections = connections
        self.coordinator = coordinator
        self.chat_store = chat_store
        self.store_timeout = store_timeout

    def _in_meeting(self, connection: Connection, meeting_id: str) -> bool:
        return self.connections.is_subscribed(connection.id, meeting_id)

    async def send_message(self, connection: Connection, request: SendMessageRequest) -> List[Delivery]:
        """
        Persist then broadcast a chat message to the whole meeting, sender included.

        Blank messages are dropped without touching the chat store.
        """
        text = request.message.strip()
        if not text:
            logger.debug("Dropped empty message from %s", connection.user_id)
            return []

        if not self._in_meeting(connection, request.meeting_id):
            raise AppError(ErrorKind.INVALID_STATE, "You are not in this meeting")

        message = await call_with_timeout(
            self.chat_store.append(request.meeting_id, connection.user_id, connection.user_name, text, ChatMessageType.TEXT),
            self.store_timeout,
            "send message",
        )
        logger.info("Message sent in meeting %s by user %s", request.meeting_id, connection.user_id)
        return [to_meeting(request.meeting_id, "chat-message", message.to_wire())]

    def typing(self, connection: Connection, request: TypingRequest) -> List[Delivery]:
        if not self._in_meeting(connection, request.meeting_id):
            logger.debug("Typing from %s ignored: not in meeting %s", connection.user_id, request.meeting_id)
            return []
        payload = {
            "userId": connection.user_id,
            "userName": connection.user_name,
            "meetingId": request.meeting_id,
            "isTyping": request.is_typing,
        }
        return [to_meeting(request.meeting_id, "user-typing", payload, exclude=connection.id)]

    def media_control(self, connection: Connection, request: MediaControlRequest) -> List[Delivery]:
        if not self._in_meeting(connection, request.meeting_id):
            logger.debug("Media control from %s ignored: not in meeting %s", connection.user_id, request.meeting_id)
            return []
        logger.info("User %s %s %s in meeting %s", connection.user_id,
                    "enabled" if request.enabled else "disabled", request.type, request.meeting_id)
        payload = {"userId": connection.user_id, "type": request.type, "enabled": request.enabled}
        return [to_meeting(request.meeting_id, "user-media-changed", payload, exclude=connection.id)]

    def webrtc_signal(self, connection: Connection, request: WebRTCSignalRequest) -> List[Delivery]:
        """
        Forward an offer/answer/ICE candidate to the recipient's user channel.

        The recipient is trusted as given; meeting co-membership is not
        checked. ``from`` is stamped from the authenticated connection.
        """
        payload = {
            "type": request.type.value,
            "from": connection.user_id,
            "signal": request.signal,
            "mediaType": request.media_type.value,
        }
        logger.debug("WebRTC %s forwarded from %s to %s", request.type.value, connection.user_id, request.to)
        return [to_user(request.to, "webrtc-signal", payload)]

    async def participants(self, connection: Connection, request: ParticipantsRequest) -> List[Delivery]:
        """Unicast the coordinator's current view of the meeting."""
        view = await self.coordinator.get(request.meeting_id)
        payload = {
            "meetingId": view.id,
            "participants": [p.to_wire() for p in view.participants],
            "participantCount": view.participant_count,
            "maxParticipants": view.max_participants,
            "status": view.status.value,
            "canJoin": view.can_join,
        }
        return [to_connection(connection.id, "participants-list", payload)]
