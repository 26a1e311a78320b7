# meetroom/api/routes/utils.py

from __future__ import annotations

from typing import Any, Optional

from fastapi import Depends, Header, Request

from meetroom.core.errors import AppError, ErrorKind
from meetroom.core.state import AppState
from meetroom.models.models import Identity
from meetroom.services.auth_service import bearer_token


def get_app_state(request: Request) -> AppState:
    return request.app.state.meetroom


async def get_current_identity(
    authorization: Optional[str] = Header(default=None),
    state: AppState = Depends(get_app_state),
) -> Identity:
    """
    Resolve the caller from the ``Authorization: Bearer <token>`` header.

    Use as dependency for protected endpoints.
    """
    if not authorization:
        raise AppError(ErrorKind.UNAUTHENTICATED, "No authorization header provided")
    token = bearer_token(authorization)
    if token is None:
        raise AppError(ErrorKind.UNAUTHENTICATED, "Invalid authorization header format")
    return await state.lifecycle.authenticate(token)


def success(data: Any, message: Optional[str] = None) -> dict:
    """Response envelope shared by every REST endpoint."""
    body = {"success": True, "data": data}
    if message:
        body["message"] = message
    return body
