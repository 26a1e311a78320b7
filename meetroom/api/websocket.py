# meetroom/api/websocket.py

from __future__ import annotations

import json
import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from meetroom.core.errors import AppError
from meetroom.core.state import AppState
from meetroom.services.auth_service import bearer_token

logger = logging.getLogger(__name__)

router = APIRouter()

# ============================================================================
# WEBSOCKET ENDPOINT
# ============================================================================

@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, token: Optional[str] = None):
    """
    Real-time channel for meeting membership, chat and WebRTC signaling.

    Protocol:
    =========

    Every frame is JSON: {"event": "<name>", "data": {...}}

    Client -> Server:
    -----------------
    join-meeting      {"meetingId": "m-1"}
    leave-meeting     {"meetingId": "m-1"}
    send-message      {"meetingId": "m-1", "message": "hi"}
    typing            {"meetingId": "m-1", "isTyping": true}
    webrtc-signal     {"to": "user-2", "type": "offer", "signal": {...}, "mediaType": "both"}
    media-control     {"meetingId": "m-1", "type": "audio", "enabled": false}
    get-participants  {"meetingId": "m-1"}

    Server -> Client:
    -----------------
    joined-meeting / left-meeting   {meetingId, timestamp}          (to the requester)
    user-joined / user-left         {userId, userName, timestamp}   (meeting group)
    chat-message                    full ChatMessage record          (meeting group)
    user-typing                     {userId, userName, meetingId, isTyping}
    user-media-changed              {userId, type, enabled}
    webrtc-signal                   {type, from, signal, mediaType} (recipient's user channel)
    participants-list               {participants, ...}              (to the requester)
    error                           {message}                        (to the requester)

    Lifecycle:
    ==========
    1. Client connects with ?token=<jwt> or an "Authorization: Bearer" header
    2. Invalid or missing credential: socket closed before it is accepted
    3. Connection subscribed to its user channel
    4. Client joins at most one meeting at a time
    5. On disconnect, the same cleanup as leave-meeting runs
    """
    state: AppState = websocket.app.state.meetroom
    credential = token or bearer_token(websocket.headers.get("authorization"))

    try:
        connection = await state.lifecycle.connect(websocket, credential)
    except AppError as e:
        logger.warning("WebSocket connection rejected: %s", e.message)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=e.message)
        return

    try:
        while True:
            data = await websocket.receive_text()

            try:
                frame = json.loads(data)
            except json.JSONDecodeError:
                await state.connections.send(connection.id, "error", {"message": "Invalid JSON"})
                continue

            await state.dispatcher.dispatch(connection, frame)

    except WebSocketDisconnect:
        logger.info("WebSocket disconnected for user %s (%s)", connection.user_id, connection.id)
    except Exception as e:
        logger.error("WebSocket error for %s: %s", connection.id, e)
    finally:
        await state.connections.deliver(await state.lifecycle.disconnect(connection))
