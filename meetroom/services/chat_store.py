# meetroom/services/chat_store.py

from __future__ import annotations

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Dict, List

import redis.asyncio as redis

from meetroom.models.models import ChatMessage, ChatMessageType
from meetroom.services.redis_keys import chat_key

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 100

# Meetings whose last chat timestamp is remembered for clock-skew clamping
TIMESTAMP_CACHE_SIZE = 1024


class ChatStore(ABC):
    """
    Append-only chat log, one per meeting.

    ``append`` assigns the id and timestamp. Timestamps handed out for a
    meeting never go backwards, even if the wall clock does, so the log is
    ordered by timestamp as well as by insertion.

    The last timestamp is kept for the ``timestamp_cache_size`` most recently
    active meetings only; the least recently used entry is dropped first.
    """

    def __init__(self, timestamp_cache_size: int = TIMESTAMP_CACHE_SIZE) -> None:
        self.timestamp_cache_size = timestamp_cache_size
        self._last_timestamp: OrderedDict[str, datetime] = OrderedDict()

    def _next_timestamp(self, meeting_id: str) -> str:
        now = datetime.now(timezone.utc)
        last = self._last_timestamp.get(meeting_id)
        if last is not None and now < last:
            now = last
        self._last_timestamp[meeting_id] = now
        self._last_timestamp.move_to_end(meeting_id)
        while len(self._last_timestamp) > self.timestamp_cache_size:
            self._last_timestamp.popitem(last=False)
        return now.isoformat(timespec="microseconds")

    def _build(
        self,
        meeting_id: str,
        user_id: str,
        user_name: str,
        message: str,
        message_type: ChatMessageType,
    ) -> ChatMessage:
        return ChatMessage(
            id=str(uuid.uuid4()),
            meeting_id=meeting_id,
            user_id=user_id,
            user_name=user_name,
            message=message,
            timestamp=self._next_timestamp(meeting_id),
            type=message_type,
        )

    @abstractmethod
    async def append(
        self,
        meeting_id: str,
        user_id: str,
        user_name: str,
        message: str,
        message_type: ChatMessageType = ChatMessageType.TEXT,
    ) -> ChatMessage: ...

    @abstractmethod
    async def list_messages(self, meeting_id: str, limit: int = DEFAULT_HISTORY_LIMIT) -> List[ChatMessage]:
        """Oldest first, at most ``limit`` messages."""

    @abstractmethod
    async def delete_for_meeting(self, meeting_id: str) -> int: ...

    @abstractmethod
    async def count(self, meeting_id: str) -> int: ...

    async def close(self) -> None:
        return None


class InMemoryChatStore(ChatStore):
    def __init__(self, latency: float = 0.0, timestamp_cache_size: int = TIMESTAMP_CACHE_SIZE) -> None:
        super().__init__(timestamp_cache_size)
        self.latency = latency
        self._messages: Dict[str, List[ChatMessage]] = {}

    async def append(self, meeting_id, user_id, user_name, message, message_type=ChatMessageType.TEXT):
        await asyncio.sleep(self.latency)
        chat_message = self._build(meeting_id, user_id, user_name, message, message_type)
        self._messages.setdefault(meeting_id, []).append(chat_message)
        logger.info("Chat message saved: %s in meeting: %s", chat_message.id, meeting_id)
        return chat_message

    async def list_messages(self, meeting_id, limit=DEFAULT_HISTORY_LIMIT):
        await asyncio.sleep(self.latency)
        return list(self._messages.get(meeting_id, [])[:limit])

    async def delete_for_meeting(self, meeting_id):
        await asyncio.sleep(self.latency)
        removed = self._messages.pop(meeting_id, [])
        self._last_timestamp.pop(meeting_id, None)
        return len(removed)

    async def count(self, meeting_id):
        return len(self._messages.get(meeting_id, []))


class RedisChatStore(ChatStore):
    """
    Chat log kept in a Redis list per meeting (``chat:{meetingId}``).

    RPUSH order is the persistence order, which is also timestamp order.
    """

    def __init__(self, client: redis.Redis, timestamp_cache_size: int = TIMESTAMP_CACHE_SIZE) -> None:
        super().__init__(timestamp_cache_size)
        self.client = client

    async def append(self, meeting_id, user_id, user_name, message, message_type=ChatMessageType.TEXT):
        chat_message = self._build(meeting_id, user_id, user_name, message, message_type)
        await self.client.rpush(chat_key(meeting_id), chat_message.model_dump_json(by_alias=True))
        logger.info("Chat message saved: %s in meeting: %s", chat_message.id, meeting_id)
        return chat_message

    async def list_messages(self, meeting_id, limit=DEFAULT_HISTORY_LIMIT):
        if limit <= 0:
            return []
        raw_messages = await self.client.lrange(chat_key(meeting_id), 0, limit - 1)
        return [ChatMessage.model_validate_json(raw) for raw in raw_messages]

    async def delete_for_meeting(self, meeting_id):
        key = chat_key(meeting_id)
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.llen(key)
            pipe.delete(key)
            removed, _ = await pipe.execute()
        self._last_timestamp.pop(meeting_id, None)
        logger.info("Deleted %d chat messages for meeting: %s", removed, meeting_id)
        return removed

    async def count(self, meeting_id):
        return await self.client.llen(chat_key(meeting_id))
