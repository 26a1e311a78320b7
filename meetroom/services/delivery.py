# meetroom/services/delivery.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class Target(str, Enum):
    CONNECTION = "connection"
    MEETING = "meeting"
    USER = "user"


@dataclass(frozen=True)
class Delivery:
    """
    One outbound event, addressed to a group rather than to sockets.

    Handlers return lists of these; ConnectionManager.deliver resolves the
    group against the membership index at send time.

    Attributes:
        target: which kind of group ``key`` names
        key: connection id, meeting id or user id
        event: wire event name, e.g. "chat-message"
        data: JSON-serializable payload
        exclude: connection id to skip (the sender, for "everyone else" events)
    """

    target: Target
    key: str
    event: str
    data: Dict[str, Any] = field(default_factory=dict)
    exclude: Optional[str] = None


def to_connection(connection_id: str, event: str, data: Dict[str, Any]) -> Delivery:
    return Delivery(Target.CONNECTION, connection_id, event, data)


def to_meeting(meeting_id: str, event: str, data: Dict[str, Any], exclude: Optional[str] = None) -> Delivery:
    return Delivery(Target.MEETING, meeting_id, event, data, exclude)


def to_user(user_id: str, event: str, data: Dict[str, Any]) -> Delivery:
    return Delivery(Target.USER, user_id, event, data)


def error_to(connection_id: str, message: str) -> Delivery:
    return to_connection(connection_id, "error", {"message": message})
