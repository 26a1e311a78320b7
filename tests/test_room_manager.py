"""Tests for the RoomCoordinator: admission, capacity and meeting lifecycle."""

import asyncio
import random

import fakeredis
import pytest

from meetroom.core.errors import AppError, ErrorKind
from meetroom.models.models import MeetingStatus
from meetroom.services.meeting_store import InMemoryMeetingStore, RedisMeetingStore
from meetroom.services.room_manager import RoomCoordinator


@pytest.fixture
def coordinator():
    return RoomCoordinator(InMemoryMeetingStore(), timeout=1.0)


BACKENDS = ["memory", "redis"]


def make_racing_coordinator(backend, latency, timeout):
    """Coordinator whose store yields between read and write, so concurrent updates interleave."""
    if backend == "redis":
        store = RedisMeetingStore(fakeredis.FakeAsyncRedis(decode_responses=True))
    else:
        store = InMemoryMeetingStore(latency=latency)
    return RoomCoordinator(store, timeout=timeout)


@pytest.mark.asyncio
async def test_create_defaults_to_ten_participants(coordinator):
    view = await coordinator.create("alice")

    assert view.max_participants == 10
    assert view.status == MeetingStatus.ACTIVE
    assert view.participants == []
    assert view.participant_count == 0
    assert view.can_join is True
    assert view.created_at == view.updated_at


@pytest.mark.asyncio
@pytest.mark.parametrize("value", [1, 11, 0, -3, True, "5", 2.5])
async def test_create_rejects_out_of_range_capacity(coordinator, value):
    with pytest.raises(AppError) as exc_info:
        await coordinator.create("alice", value)

    assert exc_info.value.kind == ErrorKind.INVALID_ARGUMENT
    assert exc_info.value.message == "Maximum participants must be between 2 and 10"


@pytest.mark.asyncio
@pytest.mark.parametrize("value", [2, 10])
async def test_create_accepts_capacity_bounds(coordinator, value):
    view = await coordinator.create("alice", value)
    assert view.max_participants == value


@pytest.mark.asyncio
async def test_get_unknown_meeting(coordinator):
    with pytest.raises(AppError) as exc_info:
        await coordinator.get("nope")

    assert exc_info.value.kind == ErrorKind.NOT_FOUND


@pytest.mark.asyncio
async def test_join_unknown_meeting(coordinator):
    with pytest.raises(AppError) as exc_info:
        await coordinator.join("nope", "bob")

    assert exc_info.value.kind == ErrorKind.NOT_FOUND


@pytest.mark.asyncio
async def test_join_is_idempotent_for_active_participant(coordinator):
    meeting = await coordinator.create("alice", 3)

    first = await coordinator.join(meeting.id, "bob")
    second = await coordinator.join(meeting.id, "bob")

    assert second.participant_count == 1
    assert len(second.participants) == 1
    assert second.updated_at == first.updated_at


@pytest.mark.asyncio
async def test_rejoin_after_leave_reuses_participant_record(coordinator):
    meeting = await coordinator.create("alice", 3)

    joined = await coordinator.join(meeting.id, "bob")
    left = await coordinator.leave(meeting.id, "bob")
    rejoined = await coordinator.join(meeting.id, "bob")

    assert left.participant_count == 0
    assert left.participants[0].active is False
    assert len(rejoined.participants) == 1
    assert rejoined.participants[0].active is True
    assert rejoined.participants[0].joined_at == joined.participants[0].joined_at


@pytest.mark.asyncio
async def test_leave_by_non_participant_is_noop(coordinator):
    meeting = await coordinator.create("alice", 3)

    view = await coordinator.leave(meeting.id, "stranger")

    assert view.participants == []
    assert view.updated_at == meeting.updated_at


@pytest.mark.asyncio
async def test_join_full_meeting(coordinator):
    meeting = await coordinator.create("alice", 2)
    await coordinator.join(meeting.id, "alice")
    full = await coordinator.join(meeting.id, "bob")

    assert full.can_join is False
    with pytest.raises(AppError) as exc_info:
        await coordinator.join(meeting.id, "carol")

    assert exc_info.value.kind == ErrorKind.MEETING_FULL
    assert exc_info.value.message == "Meeting is full"


@pytest.mark.asyncio
async def test_reactivation_respects_capacity(coordinator):
    meeting = await coordinator.create("alice", 2)
    await coordinator.join(meeting.id, "alice")
    await coordinator.join(meeting.id, "bob")
    await coordinator.leave(meeting.id, "bob")
    await coordinator.join(meeting.id, "carol")

    with pytest.raises(AppError) as exc_info:
        await coordinator.join(meeting.id, "bob")

    assert exc_info.value.kind == ErrorKind.MEETING_FULL
    view = await coordinator.get(meeting.id)
    assert view.participant_count == 2


@pytest.mark.asyncio
async def test_only_creator_can_end(coordinator):
    meeting = await coordinator.create("alice", 4)

    with pytest.raises(AppError) as exc_info:
        await coordinator.end(meeting.id, "bob")

    assert exc_info.value.kind == ErrorKind.FORBIDDEN
    assert (await coordinator.get(meeting.id)).status == MeetingStatus.ACTIVE


@pytest.mark.asyncio
async def test_ended_meeting_rejects_joins(coordinator):
    meeting = await coordinator.create("alice", 4)
    await coordinator.join(meeting.id, "bob")

    ended = await coordinator.end(meeting.id, "alice")

    assert ended.status == MeetingStatus.ENDED
    assert ended.can_join is False
    # Ending does not evict anyone
    assert ended.participant_count == 1
    with pytest.raises(AppError) as exc_info:
        await coordinator.join(meeting.id, "carol")
    assert exc_info.value.kind == ErrorKind.MEETING_ENDED
    assert exc_info.value.message == "This meeting has ended"


@pytest.mark.asyncio
async def test_ending_twice_is_noop(coordinator):
    meeting = await coordinator.create("alice", 4)
    first = await coordinator.end(meeting.id, "alice")
    second = await coordinator.end(meeting.id, "alice")

    assert second.updated_at == first.updated_at


@pytest.mark.asyncio
async def test_list_for_creator(coordinator):
    await coordinator.create("alice", 3)
    await coordinator.create("alice", 4)
    await coordinator.create("bob", 5)

    meetings = await coordinator.list_for_creator("alice")

    assert sorted(m.max_participants for m in meetings) == [3, 4]


@pytest.mark.asyncio
@pytest.mark.parametrize("backend", BACKENDS)
async def test_concurrent_joins_for_last_slot(backend):
    """Two users racing for the last slot: exactly one gets in."""
    coordinator = make_racing_coordinator(backend, latency=0.01, timeout=1.0)
    meeting = await coordinator.create("alice", 2)
    await coordinator.join(meeting.id, "alice")

    results = await asyncio.gather(
        coordinator.join(meeting.id, "bob"),
        coordinator.join(meeting.id, "carol"),
        return_exceptions=True,
    )

    failures = [r for r in results if isinstance(r, AppError)]
    assert len(failures) == 1
    assert failures[0].kind == ErrorKind.MEETING_FULL
    view = await coordinator.get(meeting.id)
    assert view.participant_count == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("backend", BACKENDS)
async def test_random_join_leave_never_exceeds_capacity(backend):
    """Interleaved joins and leaves keep the active count within capacity."""
    rng = random.Random(1234)
    coordinator = make_racing_coordinator(backend, latency=0.001, timeout=5.0)
    users = [f"user-{i}" for i in range(12)]

    for max_participants in range(2, 11):
        meeting = await coordinator.create("alice", max_participants)
        await _churn(coordinator, meeting.id, users, rng)


async def _churn(coordinator, meeting_id, users, rng):
    for _ in range(10):
        operations = []
        for user in rng.sample(users, 6):
            if rng.random() < 0.6:
                operations.append(coordinator.join(meeting_id, user))
            else:
                operations.append(coordinator.leave(meeting_id, user))
        results = await asyncio.gather(*operations, return_exceptions=True)

        for result in results:
            if isinstance(result, AppError):
                assert result.kind == ErrorKind.MEETING_FULL
            elif isinstance(result, Exception):
                raise result

        view = await coordinator.get(meeting_id)
        assert view.participant_count <= view.max_participants
        user_ids = [p.user_id for p in view.participants]
        assert len(user_ids) == len(set(user_ids))


@pytest.mark.asyncio
async def test_slow_store_surfaces_unavailable():
    store = InMemoryMeetingStore()
    fast = RoomCoordinator(store, timeout=1.0)
    meeting = await fast.create("alice", 3)

    store.latency = 0.5
    slow = RoomCoordinator(store, timeout=0.05)
    with pytest.raises(AppError) as exc_info:
        await slow.join(meeting.id, "bob")

    assert exc_info.value.kind == ErrorKind.UNAVAILABLE
    assert exc_info.value.retryable
