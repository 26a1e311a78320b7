# meetroom/services/room_manager.py

from __future__ import annotations

import logging
import uuid
from typing import List, Optional

from meetroom.core.errors import AppError, ErrorKind, call_with_timeout
from meetroom.models.models import (
    DEFAULT_MAX_PARTICIPANTS,
    MAX_PARTICIPANTS,
    MIN_PARTICIPANTS,
    Meeting,
    MeetingStatus,
    MeetingView,
    Participant,
    utc_now,
)
from meetroom.services.meeting_store import MeetingStore

logger = logging.getLogger(__name__)


# ============================================================================
# ROOM COORDINATOR
# ============================================================================

class RoomCoordinator:
    """
    Decides who may be in which meeting.

    This is the only component that mutates persisted meeting state. Every
    admission decision is taken inside a single atomic store update, so the
    capacity check and the participant append can never be split by a
    concurrent join, whether it comes from this process or another one.

    Every store call is bounded by ``timeout``; a timeout surfaces as
    ``Unavailable``.

    Usage:
        coordinator = RoomCoordinator(InMemoryMeetingStore(), timeout=5)
        view = await coordinator.create("alice", max_participants=4)
        view = await coordinator.join(view.id, "bob")
    """

    def __init__(self, store: MeetingStore, timeout: float = 5.0) -> None:
        self.store = store
        self.timeout = timeout

    async def create(self, created_by: str, max_participants: Optional[int] = None) -> MeetingView:
        """
        Create an active meeting with no participants.

        Args:
            created_by: userId of the creator (the only user allowed to end it)
            max_participants: 2..10, defaults to 10 when unset

        Raises:
            AppError(InvalidArgument): max_participants out of range
        """
        if max_participants is None:
            max_participants = DEFAULT_MAX_PARTICIPANTS
        if (
            isinstance(max_participants, bool)
            or not isinstance(max_participants, int)
            or not MIN_PARTICIPANTS <= max_participants <= MAX_PARTICIPANTS
        ):
            raise AppError(
                ErrorKind.INVALID_ARGUMENT,
                f"Maximum participants must be between {MIN_PARTICIPANTS} and {MAX_PARTICIPANTS}",
            )

        now = utc_now()
        meeting = Meeting(
            id=str(uuid.uuid4()),
            created_by=created_by,
            created_at=now,
            updated_at=now,
            status=MeetingStatus.ACTIVE,
            max_participants=max_participants,
            participants=[],
        )
        await call_with_timeout(self.store.create(meeting), self.timeout, "create meeting")

        logger.info("✓ Meeting created: %s by user %s (max %d)", meeting.id, created_by, max_participants)
        return MeetingView.from_meeting(meeting)

    async def get(self, meeting_id: str) -> MeetingView:
        meeting = await call_with_timeout(self.store.get(meeting_id), self.timeout, "load meeting")
        if meeting is None:
            raise AppError(ErrorKind.NOT_FOUND, "Meeting not found")
        return MeetingView.from_meeting(meeting)

    async def list_for_creator(self, user_id: str) -> List[MeetingView]:
        meetings = await call_with_timeout(self.store.list_by_creator(user_id), self.timeout, "list meetings")
        return [MeetingView.from_meeting(m) for m in meetings]

    async def join(self, meeting_id: str, user_id: str) -> MeetingView:
        """
        Admit ``user_id`` to the meeting.

        - Unknown meeting: NotFound
        - Ended meeting: MeetingEnded
        - Already active participant: no-op success (reconnect races)
        - Inactive participant: reactivated, subject to capacity
        - New participant: appended with joinedAt=now, subject to capacity

        Reactivation counts against ``maxParticipants`` like a fresh join, so
        a returning participant is turned away from a full meeting. Letting
        them back in unconditionally would push the active count past the
        limit.

        Raises:
            AppError(NotFound | MeetingEnded | MeetingFull | Unavailable)
        """

        def admit(meeting: Meeting) -> Optional[Meeting]:
            if meeting.status != MeetingStatus.ACTIVE:
                raise AppError(ErrorKind.MEETING_ENDED, "This meeting has ended")

            existing = meeting.find_participant(user_id)
            if existing is not None and existing.active:
                return None

            if meeting.active_count() >= meeting.max_participants:
                raise AppError(ErrorKind.MEETING_FULL, "Meeting is full")

            now = utc_now()
            if existing is not None:
                existing.active = True
            else:
                meeting.participants.append(Participant(user_id=user_id, joined_at=now, active=True))
            meeting.updated_at = now
            return meeting

        meeting = await call_with_timeout(self.store.update(meeting_id, admit), self.timeout, "join meeting")
        logger.info("→ User %s joined meeting %s (%d active)", user_id, meeting_id, meeting.active_count())
        return MeetingView.from_meeting(meeting)

    async def leave(self, meeting_id: str, user_id: str) -> MeetingView:
        """
        Mark the participant inactive.

        Safe to call redundantly: a user who is not (or no longer) an active
        participant leaves the document untouched.
        """

        def deactivate(meeting: Meeting) -> Optional[Meeting]:
            participant = meeting.find_participant(user_id)
            if participant is None or not participant.active:
                return None
            participant.active = False
            meeting.updated_at = utc_now()
            return meeting

        meeting = await call_with_timeout(self.store.update(meeting_id, deactivate), self.timeout, "leave meeting")
        logger.info("← User %s left meeting %s (%d active)", user_id, meeting_id, meeting.active_count())
        return MeetingView.from_meeting(meeting)

    async def end(self, meeting_id: str, requester_user_id: str) -> MeetingView:
        """
        End the meeting. Only the creator may do this.

        Ending blocks future joins; connected participants are not evicted.
        Ending an already ended meeting is a no-op.
        """

        def finish(meeting: Meeting) -> Optional[Meeting]:
            if meeting.created_by != requester_user_id:
                raise AppError(ErrorKind.FORBIDDEN, "Only the meeting creator can end the meeting")
            if meeting.status == MeetingStatus.ENDED:
                return None
            meeting.status = MeetingStatus.ENDED
            meeting.updated_at = utc_now()
            return meeting

        meeting = await call_with_timeout(self.store.update(meeting_id, finish), self.timeout, "end meeting")
        logger.info("✓ Meeting ended: %s by user %s", meeting_id, requester_user_id)
        return MeetingView.from_meeting(meeting)
