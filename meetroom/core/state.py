# meetroom/core/state.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

import redis.asyncio as redis

from meetroom.core.config import Settings
from meetroom.services.auth_service import IdentityVerifier, JwtIdentityVerifier
from meetroom.services.chat_store import ChatStore, InMemoryChatStore, RedisChatStore
from meetroom.services.connection_manager import ConnectionManager
from meetroom.services.dispatcher import EventDispatcher
from meetroom.services.lifecycle import LifecycleManager
from meetroom.services.meeting_store import InMemoryMeetingStore, MeetingStore, RedisMeetingStore
from meetroom.services.message_router import MessageRouter
from meetroom.services.room_manager import RoomCoordinator

logger = logging.getLogger(__name__)


class AppState:
    """
    Everything one process needs to coordinate meetings.

    Built once at startup, handed by reference to the WebSocket and REST
    layers (via ``app.state.meetroom``), and drained with ``shutdown``.
    There is no module-level singleton.

    Usage:
        state = await AppState.create(settings)
        ...
        await state.shutdown()
    """

    def __init__(
        self,
        settings: Settings,
        meeting_store: MeetingStore,
        chat_store: ChatStore,
        verifier: IdentityVerifier,
        redis_client: Optional[redis.Redis] = None,
    ) -> None:
        self.settings = settings
        self.meeting_store = meeting_store
        self.chat_store = chat_store
        self.verifier = verifier
        self.redis_client = redis_client

        self.connections = ConnectionManager()
        self.coordinator = RoomCoordinator(meeting_store, timeout=settings.STORE_TIMEOUT_SECONDS)
        self.router = MessageRouter(
            self.connections,
            self.coordinator,
            chat_store,
            store_timeout=settings.STORE_TIMEOUT_SECONDS,
        )
        self.lifecycle = LifecycleManager(
            verifier,
            self.coordinator,
            self.connections,
            chat_store,
            verify_timeout=settings.VERIFY_TIMEOUT_SECONDS,
            store_timeout=settings.STORE_TIMEOUT_SECONDS,
        )
        self.dispatcher = EventDispatcher(self.lifecycle, self.router, self.connections)
        self.started_at = datetime.now(timezone.utc)

    @classmethod
    async def create(cls, settings: Settings) -> "AppState":
        verifier = JwtIdentityVerifier(
            settings.JWT_SECRET,
            algorithm=settings.JWT_ALGORITHM,
            expires_in_seconds=settings.JWT_EXPIRES_IN_SECONDS,
        )

        if settings.STORE_BACKEND == "redis":
            client = redis.from_url(settings.redis_url, decode_responses=True)
            await client.ping()
            logger.info("✓ Connected to Redis at %s:%s", settings.REDIS_HOST, settings.REDIS_PORT)
            return cls(settings, RedisMeetingStore(client), RedisChatStore(client), verifier, redis_client=client)

        if settings.STORE_BACKEND != "memory":
            raise ValueError(f"Unknown STORE_BACKEND: {settings.STORE_BACKEND}")

        logger.info("Using in-memory meeting and chat stores")
        return cls(settings, InMemoryMeetingStore(), InMemoryChatStore(), verifier)

    async def shutdown(self) -> None:
        """Drain hook: close live sockets, then the store clients."""
        logger.info("Shutting down: closing %d connections", len(self.connections.connections))
        await self.connections.close_all()
        await self.meeting_store.close()
        await self.chat_store.close()
        if self.redis_client is not None:
            await self.redis_client.aclose()
            logger.info("Redis connection closed")
