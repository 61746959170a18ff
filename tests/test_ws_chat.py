"""End-to-end websocket chat sessions over the FastAPI TestClient."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from app.core.security import create_access_token
from app.models import Message, User
from innerlight.realtime.managers import get_background_tasks


@pytest.fixture()
def users(session_factory) -> list[int]:
    with session_factory() as session:
        created = [
            User(login="alice", hashed_password="hashed"),
            User(login="bob", hashed_password="hashed"),
        ]
        session.add_all(created)
        session.commit()
        return [user.id for user in created]


def _connect(client: TestClient, user_id: int):
    token = create_access_token({"sub": str(user_id)})
    return client.websocket_connect(f"/ws/chat?token={token}")


def _drain(client: TestClient) -> None:
    client.portal.call(get_background_tasks().drain)


def test_presence_rooms_and_relay(client: TestClient, session_factory, users):
    alice_id, bob_id = users

    with _connect(client, alice_id) as alice:
        alice.send_json({"type": "go_online", "user_id": alice_id})
        assert alice.receive_json() == {"type": "online_users", "users": [str(alice_id)]}

        with _connect(client, bob_id) as bob:
            bob.send_json({"type": "go_online"})
            expected = {"type": "online_users", "users": sorted([str(alice_id), str(bob_id)])}
            assert bob.receive_json() == expected
            assert alice.receive_json() == expected

            alice.send_json({"type": "join_room", "peer_id": bob_id})
            bob.send_json({"type": "join_room", "peer_id": alice_id})
            room = f"{alice_id}-{bob_id}"
            assert alice.receive_json() == {"type": "room_joined", "room": room}
            assert bob.receive_json() == {"type": "room_joined", "room": room}

            alice.send_json({"type": "send_message", "receiver_id": bob_id, "text": "  hi bob  "})
            delivered = bob.receive_json()
            echoed = alice.receive_json()
            assert delivered == echoed
            assert delivered["type"] == "message"
            assert delivered["room"] == room
            assert delivered["message"]["text"] == "hi bob"
            assert delivered["message"]["sender_id"] == alice_id
            assert delivered["message"]["receiver_id"] == bob_id
            assert delivered["message"]["read"] is True

            # let the message insert finish before the last_seen write starts
            _drain(client)

        # bob's socket closed without go_offline
        assert alice.receive_json() == {"type": "online_users", "users": [str(alice_id)]}

    _drain(client)
    with session_factory() as session:
        stored = session.query(Message).all()
        assert [(m.sender_id, m.receiver_id, m.text, m.read) for m in stored] == [
            (alice_id, bob_id, "hi bob", True)
        ]
        assert session.get(User, bob_id).last_seen is not None


def test_invalid_frames_get_error_replies(client: TestClient, users):
    alice_id, bob_id = users

    with _connect(client, alice_id) as alice:
        alice.send_json({"type": "go_online", "user_id": bob_id})
        assert alice.receive_json() == {
            "type": "error",
            "detail": "Identity does not match the authenticated user",
        }

        alice.send_json({"type": "send_message", "receiver_id": bob_id, "text": "   "})
        assert alice.receive_json() == {"type": "error", "detail": "Message text is required"}

        alice.send_json({"type": "join_room", "peer_id": alice_id})
        assert alice.receive_json()["type"] == "error"

        alice.send_json({"type": "dance"})
        assert alice.receive_json() == {"type": "error", "detail": "Unsupported event type"}

        alice.send_text("not json")
        assert alice.receive_json() == {"type": "error", "detail": "Invalid payload"}

        # the session survives bad frames
        alice.send_json({"type": "ping"})
        assert alice.receive_json() == {"type": "pong"}

    _drain(client)


def test_go_offline_updates_last_seen(client: TestClient, session_factory, users):
    alice_id, _ = users

    with _connect(client, alice_id) as alice:
        alice.send_json({"type": "go_online"})
        assert alice.receive_json()["users"] == [str(alice_id)]
        alice.send_json({"type": "go_offline", "user_id": alice_id})
        assert alice.receive_json() == {"type": "online_users", "users": []}

    _drain(client)
    with session_factory() as session:
        assert session.get(User, alice_id).last_seen is not None


def test_connection_without_token_is_rejected(client: TestClient):
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect("/ws/chat"):
            pass

    assert exc.value.code == 1008


def test_connection_with_bad_token_is_rejected(client: TestClient):
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect("/ws/chat?token=garbage"):
            pass

    assert exc.value.code == 1008


def test_binary_frame_gets_error_and_session_survives(client: TestClient, users):
    alice_id, _ = users

    with _connect(client, alice_id) as alice:
        alice.send_bytes(b"\x00\x01")
        assert alice.receive_json() == {"type": "error", "detail": "Invalid payload"}

        alice.send_json({"type": "ping"})
        assert alice.receive_json() == {"type": "pong"}
