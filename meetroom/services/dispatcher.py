# meetroom/services/dispatcher.py

from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, List, Tuple, Type, Union

from pydantic import BaseModel, ValidationError

from meetroom.core.errors import AppError, ErrorKind
from meetroom.models.models import (
    JoinMeetingRequest,
    LeaveMeetingRequest,
    MediaControlRequest,
    ParticipantsRequest,
    SendMessageRequest,
    TypingRequest,
    WebRTCSignalRequest,
)
from meetroom.services.connection_manager import Connection, ConnectionManager
from meetroom.services.delivery import Delivery, error_to
from meetroom.services.lifecycle import LifecycleManager
from meetroom.services.message_router import MessageRouter

logger = logging.getLogger(__name__)

HandlerResult = Union[List[Delivery], Awaitable[List[Delivery]]]
Handler = Callable[[Connection, Any], HandlerResult]


class EventDispatcher:
    """
    Turns one inbound frame into the list of deliveries it causes.

    Frame format (both directions):
        {"event": "<name>", "data": {...}}

    Client -> Server events:
        join-meeting      {meetingId}
        leave-meeting     {meetingId}
        send-message      {meetingId, message}
        typing            {meetingId, isTyping}
        webrtc-signal     {to, type, signal, mediaType}
        media-control     {meetingId, type, enabled}
        get-participants  {meetingId}

    Error Handling:
        Any failure becomes a single "error" delivery to the sender. Nothing
        here closes the connection.
    """

    def __init__(self, lifecycle: LifecycleManager, router: MessageRouter, connections: ConnectionManager) -> None:
        self.connections = connections
        self.handlers: Dict[str, Tuple[Type[BaseModel], Handler]] = {
            "join-meeting": (JoinMeetingRequest, lambda c, r: lifecycle.join(c, r.meeting_id)),
            "leave-meeting": (LeaveMeetingRequest, lambda c, r: lifecycle.leave(c, r.meeting_id)),
            "send-message": (SendMessageRequest, router.send_message),
            "typing": (TypingRequest, router.typing),
            "webrtc-signal": (WebRTCSignalRequest, router.webrtc_signal),
            "media-control": (MediaControlRequest, router.media_control),
            "get-participants": (ParticipantsRequest, router.participants),
        }

    async def handle(self, connection: Connection, frame: Any) -> List[Delivery]:
        if not isinstance(frame, dict):
            return [error_to(connection.id, "Invalid message format")]

        event = frame.get("event")
        entry = self.handlers.get(event) if isinstance(event, str) else None
        if entry is None:
            return [error_to(connection.id, f"Unknown event: {event}")]
        request_model, handler = entry

        logger.debug("Websocket input from %s: %s", connection.user_id, event)
        try:
            request = request_model.model_validate(frame.get("data") or {})
            result = handler(connection, request)
            if inspect.isawaitable(result):
                result = await result
            return result
        except ValidationError as e:
            message = _validation_message(event, e)
            logger.info("Rejected %s from %s: %s", event, connection.user_id, message)
            return [error_to(connection.id, message)]
        except AppError as e:
            log = logger.warning if e.kind == ErrorKind.UNAVAILABLE else logger.info
            log("%s from %s failed: %s (%s)", event, connection.user_id, e.message, e.kind.value)
            return [error_to(connection.id, e.message)]
        except Exception:
            logger.exception("Unhandled error processing %s from %s", event, connection.user_id)
            return [error_to(connection.id, "Internal server error")]

    async def dispatch(self, connection: Connection, frame: Any) -> None:
        await self.connections.deliver(await self.handle(connection, frame))


def _validation_message(event: str, error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ())) or "payload"
    return f"Invalid {event} payload: {location}: {first.get('msg', 'invalid value')}"
