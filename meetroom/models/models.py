# meetroom/models/models.py
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

MIN_PARTICIPANTS = 2
MAX_PARTICIPANTS = 10
DEFAULT_MAX_PARTICIPANTS = 10

SYSTEM_USER_ID = "system"
SYSTEM_USER_NAME = "System"


def utc_now() -> str:
    """ISO-8601 UTC timestamp used for every persisted and broadcast time."""
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


class CamelModel(BaseModel):
    """Base model: snake_case in Python, camelCase on the wire and in storage."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# ============================================================================
# IDENTITY
# ============================================================================

class Identity(CamelModel):
    user_id: str
    email: str


# ============================================================================
# MEETINGS
# ============================================================================

class MeetingStatus(str, Enum):
    ACTIVE = "active"
    ENDED = "ended"


class Participant(CamelModel):
    user_id: str
    joined_at: str
    active: bool = True


class Meeting(CamelModel):
    id: str
    created_by: str
    created_at: str
    updated_at: str
    status: MeetingStatus = MeetingStatus.ACTIVE
    max_participants: int = DEFAULT_MAX_PARTICIPANTS
    participants: List[Participant] = Field(default_factory=list)

    def find_participant(self, user_id: str) -> Optional[Participant]:
        for participant in self.participants:
            if participant.user_id == user_id:
                return participant
        return None

    def active_count(self) -> int:
        return sum(1 for p in self.participants if p.active)


class MeetingView(Meeting):
    """
    Meeting plus the values derived from it.

    Always built from a freshly read Meeting, never cached.
    """

    participant_count: int
    can_join: bool

    @classmethod
    def from_meeting(cls, meeting: Meeting) -> "MeetingView":
        count = meeting.active_count()
        return cls(
            **meeting.model_dump(),
            participant_count=count,
            can_join=meeting.status == MeetingStatus.ACTIVE and count < meeting.max_participants,
        )


# ============================================================================
# CHAT
# ============================================================================

class ChatMessageType(str, Enum):
    TEXT = "text"
    SYSTEM = "system"


class ChatMessage(CamelModel):
    id: str
    meeting_id: str
    user_id: str
    user_name: str
    message: str
    timestamp: str
    type: ChatMessageType = ChatMessageType.TEXT


# ============================================================================
# WEBRTC / MEDIA
# ============================================================================

class SignalType(str, Enum):
    OFFER = "offer"
    ANSWER = "answer"
    ICE_CANDIDATE = "ice-candidate"


class MediaType(str, Enum):
    AUDIO = "audio"
    VIDEO = "video"
    BOTH = "both"


# ============================================================================
# INBOUND EVENT PAYLOADS
# ============================================================================

class JoinMeetingRequest(CamelModel):
    meeting_id: str = Field(min_length=1)


class LeaveMeetingRequest(CamelModel):
    meeting_id: Optional[str] = None


class SendMessageRequest(CamelModel):
    meeting_id: str = Field(min_length=1)
    message: str = ""


class TypingRequest(CamelModel):
    meeting_id: str = Field(min_length=1)
    is_typing: bool = True


class WebRTCSignalRequest(CamelModel):
    """Client side of ``webrtc-signal``. Any ``from`` field sent by the client is ignored."""

    to: str = Field(min_length=1)
    type: SignalType
    signal: Any = None
    media_type: MediaType = MediaType.BOTH
    meeting_id: Optional[str] = None


class MediaControlRequest(CamelModel):
    meeting_id: str = Field(min_length=1)
    type: Literal["audio", "video"]
    enabled: bool


class ParticipantsRequest(CamelModel):
    meeting_id: str = Field(min_length=1)


# ============================================================================
# REST PAYLOADS
# ============================================================================

class CreateMeetingRequest(CamelModel):
    max_participants: Optional[int] = None
