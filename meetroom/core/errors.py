# meetroom/core/errors.py

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Awaitable, Optional, TypeVar

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

T = TypeVar("T")


class ErrorKind(str, Enum):
    """
    Every failure the coordinator can report.

    Each kind carries the HTTP-equivalent status used by the REST layer, a
    default message, and whether a client may simply retry the request.
    Callers dispatch on ``AppError.kind``, never on exception subclasses.
    """

    UNAUTHENTICATED = "Unauthenticated"
    NOT_FOUND = "NotFound"
    INVALID_ARGUMENT = "InvalidArgument"
    MEETING_ENDED = "MeetingEnded"
    MEETING_FULL = "MeetingFull"
    FORBIDDEN = "Forbidden"
    INVALID_STATE = "InvalidState"
    UNAVAILABLE = "Unavailable"

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self]

    @property
    def default_message(self) -> str:
        return _DEFAULT_MESSAGES[self]

    @property
    def retryable(self) -> bool:
        return self is ErrorKind.UNAVAILABLE


_STATUS_CODES = {
    ErrorKind.UNAUTHENTICATED: 401,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INVALID_ARGUMENT: 400,
    ErrorKind.MEETING_ENDED: 410,
    ErrorKind.MEETING_FULL: 409,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.INVALID_STATE: 409,
    ErrorKind.UNAVAILABLE: 503,
}

_DEFAULT_MESSAGES = {
    ErrorKind.UNAUTHENTICATED: "Authentication required",
    ErrorKind.NOT_FOUND: "Resource not found",
    ErrorKind.INVALID_ARGUMENT: "Invalid request",
    ErrorKind.MEETING_ENDED: "This meeting has ended",
    ErrorKind.MEETING_FULL: "Meeting is full",
    ErrorKind.FORBIDDEN: "Forbidden",
    ErrorKind.INVALID_STATE: "Invalid state for this request",
    ErrorKind.UNAVAILABLE: "Service temporarily unavailable",
}


class AppError(Exception):
    """
    The single application error type.

    Attributes:
        kind: ErrorKind tag used for dispatch
        message: Flat, user-facing message (sent as ``error.message``)
        status_code: HTTP-equivalent status derived from the kind
    """

    def __init__(self, kind: ErrorKind, message: Optional[str] = None) -> None:
        self.kind = kind
        self.message = message or kind.default_message
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return self.kind.status_code

    @property
    def retryable(self) -> bool:
        return self.kind.retryable

    def __repr__(self) -> str:
        return f"AppError({self.kind.value}, {self.message!r})"


async def call_with_timeout(awaitable: Awaitable[T], timeout: float, operation: str) -> T:
    """
    Await a store or verifier call with a bounded timeout.

    Timeouts and connection failures of the backing service surface as
    ``Unavailable`` so callers can tell them apart from validation errors.
    ``AppError`` raised by the call itself passes through unchanged.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError:
        raise AppError(ErrorKind.UNAVAILABLE, f"Timed out while trying to {operation}")
    except (RedisConnectionError, RedisTimeoutError, ConnectionError) as e:
        raise AppError(ErrorKind.UNAVAILABLE, f"Storage unavailable while trying to {operation}") from e
