"""Shared fixtures for the meeting coordinator tests."""

from typing import Any, List, Optional

import pytest

from meetroom.core.config import Settings
from meetroom.core.state import AppState
from meetroom.services.auth_service import JwtIdentityVerifier
from meetroom.services.chat_store import InMemoryChatStore
from meetroom.services.meeting_store import InMemoryMeetingStore

TEST_SECRET = "test-secret"


class FakeSocket:
    """Stands in for a Starlette WebSocket; records every frame sent to it."""

    def __init__(self, fail_sends: bool = False) -> None:
        self.accepted = False
        self.closed_with: Optional[int] = None
        self.sent: List[dict] = []
        self.fail_sends = fail_sends

    async def accept(self) -> None:
        self.accepted = True

    async def send_json(self, data: Any) -> None:
        if self.fail_sends:
            raise RuntimeError("socket is closed")
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None:
        self.closed_with = code

    def events(self) -> List[str]:
        return [frame["event"] for frame in self.sent]

    def frames(self, event: str) -> List[dict]:
        return [frame["data"] for frame in self.sent if frame["event"] == event]


@pytest.fixture
def settings():
    return Settings(
        JWT_SECRET=TEST_SECRET,
        STORE_BACKEND="memory",
        STORE_TIMEOUT_SECONDS=1.0,
        VERIFY_TIMEOUT_SECONDS=1.0,
    )


@pytest.fixture
def verifier():
    return JwtIdentityVerifier(TEST_SECRET)


@pytest.fixture
def app_state(settings, verifier):
    """An AppState wired with in-memory stores, no network involved."""
    return AppState(settings, InMemoryMeetingStore(), InMemoryChatStore(), verifier)


@pytest.fixture
def token_for(verifier):
    def _token_for(user_id: str) -> str:
        return verifier.issue_token(user_id, f"{user_id}@example.com")

    return _token_for


@pytest.fixture
def connect(app_state, token_for):
    """Factory: open an authenticated connection for ``user_id``."""

    async def _connect(user_id: str, socket: Optional[FakeSocket] = None):
        socket = socket or FakeSocket()
        connection = await app_state.lifecycle.connect(socket, token_for(user_id))
        return connection, socket

    return _connect
