# meetroom/api/routes/chat.py

from fastapi import APIRouter, Depends, Query

from meetroom.core.errors import AppError, ErrorKind, call_with_timeout
from meetroom.core.state import AppState
from meetroom.models.models import Identity
from meetroom.api.routes.utils import get_app_state, get_current_identity, success
from meetroom.services.chat_store import DEFAULT_HISTORY_LIMIT

router = APIRouter(prefix="/api/chat", tags=["Chat"])

MAX_HISTORY_LIMIT = 500


@router.get("/{meeting_id}")
async def get_chat_messages(
    meeting_id: str,
    limit: int = Query(DEFAULT_HISTORY_LIMIT, ge=1, le=MAX_HISTORY_LIMIT),
    identity: Identity = Depends(get_current_identity),
    state: AppState = Depends(get_app_state),
):
    """Chat history for a meeting, oldest first, at most ``limit`` messages."""
    await state.coordinator.get(meeting_id)
    messages = await call_with_timeout(
        state.chat_store.list_messages(meeting_id, limit),
        state.settings.STORE_TIMEOUT_SECONDS,
        "load chat history",
    )
    return success([m.to_wire() for m in messages])


@router.delete("/{meeting_id}")
async def delete_chat_messages(
    meeting_id: str,
    identity: Identity = Depends(get_current_identity),
    state: AppState = Depends(get_app_state),
):
    """
    Delete a meeting's chat history.

    Raises:
        403 unless the caller created the meeting
    """
    meeting = await state.coordinator.get(meeting_id)
    if meeting.created_by != identity.user_id:
        raise AppError(ErrorKind.FORBIDDEN, "Only the meeting creator can delete chat messages")

    removed = await call_with_timeout(
        state.chat_store.delete_for_meeting(meeting_id),
        state.settings.STORE_TIMEOUT_SECONDS,
        "delete chat history",
    )
    return success({"deleted": removed}, "Chat messages deleted successfully")
