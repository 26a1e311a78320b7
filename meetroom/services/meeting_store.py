# meetroom/services/meeting_store.py

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

import redis.asyncio as redis
from redis.exceptions import WatchError

from meetroom.core.errors import AppError, ErrorKind
from meetroom.models.models import Meeting
from meetroom.services.redis_keys import meeting_key, meetings_by_creator_key

logger = logging.getLogger(__name__)

# A mutator receives a private copy of the current document and returns the
# document to write, or None when nothing needs to change. Raising AppError
# aborts the update without writing anything.
Mutator = Callable[[Meeting], Optional[Meeting]]

MAX_UPDATE_ATTEMPTS = 10


# ============================================================================
# MEETING STORE INTERFACE
# ============================================================================

class MeetingStore(ABC):
    """
    Durable meeting documents with an atomic per-document update.

    ``update`` is the only write path for existing meetings. Implementations
    must apply the mutator as a conditional write: if the document changed
    between the read and the write, the write is discarded and the mutator is
    re-run against the fresh document. This is what keeps two concurrent joins
    from both taking the last free slot.
    """

    @abstractmethod
    async def create(self, meeting: Meeting) -> Meeting: ...

    @abstractmethod
    async def get(self, meeting_id: str) -> Optional[Meeting]: ...

    @abstractmethod
    async def list_by_creator(self, user_id: str) -> List[Meeting]: ...

    @abstractmethod
    async def update(self, meeting_id: str, mutate: Mutator) -> Meeting:
        """Apply ``mutate`` atomically. Raises NotFound if the meeting is absent."""

    async def close(self) -> None:
        return None


def _not_found() -> AppError:
    return AppError(ErrorKind.NOT_FOUND, "Meeting not found")


def _contention() -> AppError:
    return AppError(ErrorKind.UNAVAILABLE, "Meeting is busy, please retry")


def _already_exists() -> AppError:
    return AppError(ErrorKind.INVALID_STATE, "Meeting already exists")


# ============================================================================
# IN-MEMORY STORE
# ============================================================================

class InMemoryMeetingStore(MeetingStore):
    """
    Process-local store with versioned documents.

    Every read and write yields to the event loop (optionally sleeping
    ``latency`` seconds) so concurrent updates really interleave; the write
    is only accepted if the version read is still current.

    Storage Format:
        {"meeting-id": (version, "<meeting json>")}
    """

    def __init__(self, latency: float = 0.0) -> None:
        self.latency = latency
        self._documents: Dict[str, Tuple[int, str]] = {}

    async def _read(self, meeting_id: str) -> Optional[Tuple[int, Meeting]]:
        await asyncio.sleep(self.latency)
        entry = self._documents.get(meeting_id)
        if entry is None:
            return None
        version, raw = entry
        return version, Meeting.model_validate_json(raw)

    async def create(self, meeting: Meeting) -> Meeting:
        await asyncio.sleep(self.latency)
        if meeting.id in self._documents:
            raise _already_exists()
        self._documents[meeting.id] = (1, meeting.model_dump_json(by_alias=True))
        return meeting

    async def get(self, meeting_id: str) -> Optional[Meeting]:
        entry = await self._read(meeting_id)
        return entry[1] if entry else None

    async def list_by_creator(self, user_id: str) -> List[Meeting]:
        await asyncio.sleep(self.latency)
        meetings = [
            Meeting.model_validate_json(raw)
            for _, raw in self._documents.values()
        ]
        mine = [m for m in meetings if m.created_by == user_id]
        return sorted(mine, key=lambda m: m.created_at, reverse=True)

    async def update(self, meeting_id: str, mutate: Mutator) -> Meeting:
        for attempt in range(MAX_UPDATE_ATTEMPTS):
            entry = await self._read(meeting_id)
            if entry is None:
                raise _not_found()
            version, current = entry

            updated = mutate(current.model_copy(deep=True))
            if updated is None:
                return current

            # Write round trip; other updates may land in the meantime
            await asyncio.sleep(self.latency)

            # Conditional write: no await between this check and the write
            latest_version, _ = self._documents[meeting_id]
            if latest_version != version:
                logger.debug("Meeting %s changed during update (attempt %d), retrying", meeting_id, attempt + 1)
                continue

            self._documents[meeting_id] = (version + 1, updated.model_dump_json(by_alias=True))
            return updated

        raise _contention()


# ============================================================================
# REDIS STORE
# ============================================================================

class RedisMeetingStore(MeetingStore):
    """
    Meeting documents stored as JSON strings in Redis.

    Updates use WATCH/MULTI/EXEC: the document key is watched, read, mutated
    in Python and written inside a transaction. A concurrent write to the
    same key aborts EXEC with WatchError and the update is retried.

    Keys:
        meeting:{id}                  -> meeting JSON
        meetings:by-creator:{user_id} -> sorted set of meeting ids by createdAt
    """

    def __init__(self, client: redis.Redis) -> None:
        self.client = client

    async def create(self, meeting: Meeting) -> Meeting:
        """Write the document and its by-creator index entry in one transaction."""
        key = meeting_key(meeting.id)
        score = datetime.fromisoformat(meeting.created_at).timestamp()

        async with self.client.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(key)
                if await pipe.exists(key):
                    raise _already_exists()

                pipe.multi()
                pipe.set(key, meeting.model_dump_json(by_alias=True))
                pipe.zadd(meetings_by_creator_key(meeting.created_by), {meeting.id: score})
                await pipe.execute()
            except WatchError:
                # Someone else created the same id between WATCH and EXEC
                raise _already_exists()
        return meeting

    async def get(self, meeting_id: str) -> Optional[Meeting]:
        raw = await self.client.get(meeting_key(meeting_id))
        if raw is None:
            return None
        return Meeting.model_validate_json(raw)

    async def list_by_creator(self, user_id: str) -> List[Meeting]:
        meeting_ids = await self.client.zrevrange(meetings_by_creator_key(user_id), 0, -1)
        if not meeting_ids:
            return []
        raw_docs = await self.client.mget([meeting_key(mid) for mid in meeting_ids])
        return [Meeting.model_validate_json(raw) for raw in raw_docs if raw is not None]

    async def update(self, meeting_id: str, mutate: Mutator) -> Meeting:
        key = meeting_key(meeting_id)

        for attempt in range(MAX_UPDATE_ATTEMPTS):
            async with self.client.pipeline(transaction=True) as pipe:
                try:
                    await pipe.watch(key)
                    raw = await pipe.get(key)
                    if raw is None:
                        raise _not_found()
                    current = Meeting.model_validate_json(raw)

                    updated = mutate(current.model_copy(deep=True))
                    if updated is None:
                        return current

                    pipe.multi()
                    pipe.set(key, updated.model_dump_json(by_alias=True))
                    await pipe.execute()
                    return updated
                except WatchError:
                    logger.debug("Meeting %s changed during update (attempt %d), retrying", meeting_id, attempt + 1)
                    continue

        raise _contention()
