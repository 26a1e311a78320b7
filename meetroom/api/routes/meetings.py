# meetroom/api/routes/meetings.py

from typing import Optional

from fastapi import APIRouter, Depends, status

from meetroom.core.state import AppState
from meetroom.models.models import CreateMeetingRequest, Identity
from meetroom.api.routes.utils import get_app_state, get_current_identity, success

router = APIRouter(prefix="/api/meetings", tags=["Meetings"])

# ============================================================================
# MEETING ENDPOINTS
# ============================================================================
#
# REST mirror of the coordinator operations. These change persisted state
# only; live sockets learn about membership through the WebSocket channel.

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_meeting(
    request: Optional[CreateMeetingRequest] = None,
    identity: Identity = Depends(get_current_identity),
    state: AppState = Depends(get_app_state),
):
    """
    Create a new meeting owned by the caller.

    Args:
        request: optional maxParticipants (2..10, default 10)

    Returns:
        The derived meeting view (participantCount, canJoin included)

    Raises:
        400 if maxParticipants is out of range
    """
    max_participants = request.max_participants if request else None
    meeting = await state.coordinator.create(identity.user_id, max_participants)
    return success(meeting.to_wire(), "Meeting created successfully")


@router.get("")
async def list_my_meetings(
    identity: Identity = Depends(get_current_identity),
    state: AppState = Depends(get_app_state),
):
    """Meetings created by the caller, newest first."""
    meetings = await state.coordinator.list_for_creator(identity.user_id)
    return success([m.to_wire() for m in meetings])


@router.get("/{meeting_id}")
async def get_meeting(
    meeting_id: str,
    identity: Identity = Depends(get_current_identity),
    state: AppState = Depends(get_app_state),
):
    meeting = await state.coordinator.get(meeting_id)
    return success(meeting.to_wire())


@router.post("/{meeting_id}/join")
async def join_meeting(
    meeting_id: str,
    identity: Identity = Depends(get_current_identity),
    state: AppState = Depends(get_app_state),
):
    meeting = await state.coordinator.join(meeting_id, identity.user_id)
    return success(meeting.to_wire(), "Joined meeting successfully")


@router.post("/{meeting_id}/leave")
async def leave_meeting(
    meeting_id: str,
    identity: Identity = Depends(get_current_identity),
    state: AppState = Depends(get_app_state),
):
    await state.coordinator.leave(meeting_id, identity.user_id)
    return success(None, "Left meeting successfully")


@router.post("/{meeting_id}/end")
async def end_meeting(
    meeting_id: str,
    identity: Identity = Depends(get_current_identity),
    state: AppState = Depends(get_app_state),
):
    """
    End a meeting (creator only).

    Connected participants are not kicked; clients leave when they see the
    meeting has ended. Raises 403 for anyone but the creator.
    """
    await state.coordinator.end(meeting_id, identity.user_id)
    return success(None, "Meeting ended successfully")
