"""Tests for inbound frame validation and error reporting."""

from unittest.mock import AsyncMock

import pytest

from meetroom.services.delivery import Target

from conftest import FakeSocket


def _only_error(deliveries):
    assert len(deliveries) == 1
    [delivery] = deliveries
    assert delivery.event == "error"
    assert delivery.target == Target.CONNECTION
    return delivery.data["message"]


@pytest.mark.asyncio
async def test_unknown_event(app_state, connect):
    connection, _ = await connect("u1")

    message = _only_error(await app_state.dispatcher.handle(connection, {"event": "dance", "data": {}}))

    assert message == "Unknown event: dance"


@pytest.mark.asyncio
async def test_frame_must_be_an_object(app_state, connect):
    connection, _ = await connect("u1")

    message = _only_error(await app_state.dispatcher.handle(connection, ["join-meeting"]))

    assert message == "Invalid message format"


@pytest.mark.asyncio
async def test_invalid_payload(app_state, connect):
    connection, _ = await connect("u1")

    message = _only_error(
        await app_state.dispatcher.handle(connection, {"event": "join-meeting", "data": {"meetingId": ""}})
    )

    assert message.startswith("Invalid join-meeting payload:")


@pytest.mark.asyncio
async def test_app_error_becomes_error_event(app_state, connect):
    connection, _ = await connect("u1")

    message = _only_error(
        await app_state.dispatcher.handle(connection, {"event": "join-meeting", "data": {"meetingId": "missing"}})
    )

    assert message == "Meeting not found"
    assert connection.meeting_id is None


@pytest.mark.asyncio
async def test_unexpected_error_is_reported_generically(app_state, connect):
    connection, _ = await connect("u1")

    request_model, _ = app_state.dispatcher.handlers["get-participants"]
    app_state.dispatcher.handlers["get-participants"] = (request_model, AsyncMock(side_effect=RuntimeError("boom")))
    message = _only_error(
        await app_state.dispatcher.handle(connection, {"event": "get-participants", "data": {"meetingId": "m"}})
    )

    assert message == "Internal server error"


@pytest.mark.asyncio
async def test_dispatch_runs_join_end_to_end(app_state, connect):
    meeting = await app_state.coordinator.create("u1", 4)
    connection, socket = await connect("u1")

    await app_state.dispatcher.dispatch(connection, {"event": "join-meeting", "data": {"meetingId": meeting.id}})

    assert socket.events() == ["joined-meeting", "chat-message"]
    assert socket.frames("joined-meeting")[0]["meetingId"] == meeting.id


@pytest.mark.asyncio
async def test_failed_send_does_not_break_delivery(app_state, connect):
    meeting = await app_state.coordinator.create("u1", 4)
    alice, alice_socket = await connect("u1")
    bob, _ = await connect("u2", FakeSocket(fail_sends=True))
    await app_state.lifecycle.join(bob, meeting.id)

    await app_state.dispatcher.dispatch(alice, {"event": "join-meeting", "data": {"meetingId": meeting.id}})

    assert alice_socket.events() == ["joined-meeting", "chat-message"]
