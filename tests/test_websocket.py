"""End-to-end tests for the /ws endpoint through the FastAPI TestClient."""

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from meetroom.main import create_app


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings)) as test_client:
        yield test_client


def _auth(token):
    return {"Authorization": f"Bearer {token}"}


def _create_meeting(client, token, max_participants=4):
    response = client.post("/api/meetings", json={"maxParticipants": max_participants}, headers=_auth(token))
    assert response.status_code == 201
    return response.json()["data"]["id"]


def test_connection_without_token_is_closed(client):
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect("/ws") as websocket:
            websocket.receive_json()

    assert exc_info.value.code == 1008


def test_connection_with_bad_token_is_closed(client):
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect("/ws?token=not-a-jwt") as websocket:
            websocket.receive_json()

    assert exc_info.value.code == 1008


def test_join_and_chat(client, token_for):
    token = token_for("alice")
    meeting_id = _create_meeting(client, token)

    with client.websocket_connect(f"/ws?token={token}") as websocket:
        websocket.send_json({"event": "join-meeting", "data": {"meetingId": meeting_id}})
        joined = websocket.receive_json()
        notice = websocket.receive_json()

        assert joined["event"] == "joined-meeting"
        assert joined["data"]["meetingId"] == meeting_id
        assert notice["event"] == "chat-message"
        assert notice["data"]["type"] == "system"
        assert notice["data"]["message"] == "alice@example.com joined the meeting"

        websocket.send_json({"event": "send-message", "data": {"meetingId": meeting_id, "message": "hello"}})
        message = websocket.receive_json()

        assert message["event"] == "chat-message"
        assert message["data"]["message"] == "hello"
        assert message["data"]["userId"] == "alice"


def test_bearer_header_is_accepted(client, token_for):
    token = token_for("alice")
    meeting_id = _create_meeting(client, token)

    with client.websocket_connect("/ws", headers=_auth(token)) as websocket:
        websocket.send_json({"event": "get-participants", "data": {"meetingId": meeting_id}})
        reply = websocket.receive_json()

    assert reply["event"] == "participants-list"
    assert reply["data"]["participantCount"] == 0


def test_invalid_json_keeps_connection_open(client, token_for):
    token = token_for("alice")
    meeting_id = _create_meeting(client, token)

    with client.websocket_connect(f"/ws?token={token}") as websocket:
        websocket.send_text("{not json")
        assert websocket.receive_json() == {"event": "error", "data": {"message": "Invalid JSON"}}

        websocket.send_json({"event": "nope", "data": {}})
        assert websocket.receive_json() == {"event": "error", "data": {"message": "Unknown event: nope"}}

        websocket.send_json({"event": "join-meeting", "data": {"meetingId": meeting_id}})
        assert websocket.receive_json()["event"] == "joined-meeting"


def test_join_missing_meeting_reports_error(client, token_for):
    with client.websocket_connect(f"/ws?token={token_for('alice')}") as websocket:
        websocket.send_json({"event": "join-meeting", "data": {"meetingId": "missing"}})
        reply = websocket.receive_json()

    assert reply == {"event": "error", "data": {"message": "Meeting not found"}}


def test_two_participants_signal_each_other(client, token_for):
    alice_token = token_for("alice")
    bob_token = token_for("bob")
    meeting_id = _create_meeting(client, alice_token)

    with client.websocket_connect(f"/ws?token={alice_token}") as alice, \
            client.websocket_connect(f"/ws?token={bob_token}") as bob:
        alice.send_json({"event": "join-meeting", "data": {"meetingId": meeting_id}})
        assert alice.receive_json()["event"] == "joined-meeting"
        assert alice.receive_json()["event"] == "chat-message"

        bob.send_json({"event": "join-meeting", "data": {"meetingId": meeting_id}})
        assert bob.receive_json()["event"] == "joined-meeting"
        assert bob.receive_json()["event"] == "chat-message"

        user_joined = alice.receive_json()
        assert user_joined["event"] == "user-joined"
        assert user_joined["data"]["userId"] == "bob"
        assert alice.receive_json()["data"]["message"] == "bob@example.com joined the meeting"

        alice.send_json({
            "event": "webrtc-signal",
            "data": {"to": "bob", "type": "offer", "signal": {"sdp": "v=0"}, "mediaType": "both"},
        })
        signal = bob.receive_json()
        assert signal == {
            "event": "webrtc-signal",
            "data": {"type": "offer", "from": "alice", "signal": {"sdp": "v=0"}, "mediaType": "both"},
        }

        bob.send_json({"event": "leave-meeting", "data": {"meetingId": meeting_id}})
        assert bob.receive_json()["event"] == "left-meeting"

        user_left = alice.receive_json()
        assert user_left["event"] == "user-left"
        assert user_left["data"]["userId"] == "bob"
        assert alice.receive_json()["data"]["message"] == "bob@example.com left the meeting"
