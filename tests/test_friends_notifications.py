"""Integration tests for friendships and durable notifications."""

from __future__ import annotations

from fastapi.testclient import TestClient


def _signup(client: TestClient, login: str, display_name: str | None = None) -> tuple[int, dict[str, str]]:
    password = f"{login}-password"
    created = client.post(
        "/api/auth/register",
        json={"login": login, "password": password, "display_name": display_name},
    )
    assert created.status_code == 201, created.text
    token = client.post("/api/auth/login", json={"login": login, "password": password})
    assert token.status_code == 200, token.text
    return created.json()["id"], {"Authorization": f"Bearer {token.json()['access_token']}"}


def _status(client: TestClient, headers: dict[str, str], user_id: int) -> str:
    response = client.get(f"/api/friends/status/{user_id}", headers=headers)
    assert response.status_code == 200
    return response.json()["status"]


def test_friend_request_accept_flow(client: TestClient):
    alice_id, alice = _signup(client, "alice", "Alice")
    bob_id, bob = _signup(client, "bob", "Bob")

    sent = client.post(f"/api/friends/requests/{bob_id}", headers=alice)
    assert sent.status_code == 201, sent.text
    request_id = sent.json()["id"]
    assert sent.json()["status"] == "pending"

    assert _status(client, alice, bob_id) == "pending"
    assert _status(client, bob, alice_id) == "received"
    assert _status(client, alice, alice_id) == "self"

    requests = client.get("/api/friends/requests", headers=bob).json()
    assert [item["id"] for item in requests["incoming"]] == [request_id]
    assert requests["outgoing"] == []

    notifications = client.get("/api/notifications", headers=bob).json()
    assert len(notifications) == 1
    assert notifications[0]["type"] == "friend_request"
    assert notifications[0]["message"] == "Alice sent you a friend request"
    assert notifications[0]["from_user"]["id"] == alice_id

    forbidden = client.post(f"/api/friends/requests/{request_id}/accept", headers=alice)
    assert forbidden.status_code == 403

    accepted = client.post(f"/api/friends/requests/{request_id}/accept", headers=bob)
    assert accepted.status_code == 200
    assert accepted.json()["status"] == "accepted"
    assert accepted.json()["responded_at"] is not None

    assert _status(client, alice, bob_id) == "friends"
    assert [friend["login"] for friend in client.get("/api/friends", headers=alice).json()] == ["bob"]
    assert [friend["login"] for friend in client.get("/api/friends", headers=bob).json()] == ["alice"]

    alice_notifications = client.get("/api/notifications", headers=alice).json()
    assert alice_notifications[0]["message"] == "Bob accepted your friend request"


def test_friend_request_guards(client: TestClient):
    alice_id, alice = _signup(client, "alice")
    bob_id, bob = _signup(client, "bob")

    assert client.post(f"/api/friends/requests/{alice_id}", headers=alice).status_code == 400
    assert client.post("/api/friends/requests/999", headers=alice).status_code == 404

    assert client.post(f"/api/friends/requests/{bob_id}", headers=alice).status_code == 201
    duplicate = client.post(f"/api/friends/requests/{bob_id}", headers=alice)
    assert duplicate.status_code == 400
    assert duplicate.json()["message"] == "Already sent request"

    reverse = client.post(f"/api/friends/requests/{alice_id}", headers=bob)
    assert reverse.status_code == 400
    assert reverse.json()["message"] == "Incoming request pending"


def test_rejected_request_can_be_sent_again(client: TestClient):
    alice_id, alice = _signup(client, "alice")
    bob_id, bob = _signup(client, "bob")

    request_id = client.post(f"/api/friends/requests/{bob_id}", headers=alice).json()["id"]
    rejected = client.post(f"/api/friends/requests/{request_id}/reject", headers=bob)
    assert rejected.status_code == 200
    assert rejected.json()["status"] == "declined"
    assert _status(client, alice, bob_id) == "not-friends"

    again = client.post(f"/api/friends/requests/{request_id}/reject", headers=bob)
    assert again.status_code == 400

    # bob now asks alice; the declined link is reused in the new direction
    reopened = client.post(f"/api/friends/requests/{alice_id}", headers=bob)
    assert reopened.status_code == 201
    assert reopened.json()["id"] == request_id
    assert reopened.json()["requester"]["id"] == bob_id
    assert _status(client, alice, bob_id) == "received"


def test_cancel_request_and_remove_friend(client: TestClient):
    alice_id, alice = _signup(client, "alice")
    bob_id, bob = _signup(client, "bob")

    client.post(f"/api/friends/requests/{bob_id}", headers=alice)
    # only the requester can cancel
    assert client.delete(f"/api/friends/requests/{alice_id}", headers=bob).status_code == 404
    cancelled = client.delete(f"/api/friends/requests/{bob_id}", headers=alice)
    assert cancelled.status_code == 200
    assert _status(client, alice, bob_id) == "not-friends"

    request_id = client.post(f"/api/friends/requests/{bob_id}", headers=alice).json()["id"]
    client.post(f"/api/friends/requests/{request_id}/accept", headers=bob)

    removed = client.delete(f"/api/friends/{alice_id}", headers=bob)
    assert removed.status_code == 200
    assert removed.json() == {"message": "Friend removed successfully"}
    assert client.get("/api/friends", headers=alice).json() == []

    missing = client.delete(f"/api/friends/{alice_id}", headers=bob)
    assert missing.status_code == 400


def test_mutual_friends(client: TestClient):
    _, alice = _signup(client, "alice")
    bob_id, bob = _signup(client, "bob")
    carol_id, carol = _signup(client, "carol")
    dave_id, dave = _signup(client, "dave")

    def befriend(headers, accepter_headers, target_id):
        request_id = client.post(f"/api/friends/requests/{target_id}", headers=headers).json()["id"]
        client.post(f"/api/friends/requests/{request_id}/accept", headers=accepter_headers)

    befriend(alice, carol, carol_id)
    befriend(alice, dave, dave_id)
    befriend(bob, carol, carol_id)

    mutual = client.get(f"/api/friends/mutual/{bob_id}", headers=alice)
    assert mutual.status_code == 200
    assert [friend["login"] for friend in mutual.json()] == ["carol"]
    assert client.get("/api/friends/mutual/999", headers=alice).status_code == 404


def test_notification_crud(client: TestClient):
    alice_id, alice = _signup(client, "alice", "Alice")
    bob_id, bob = _signup(client, "bob")

    created = client.post(
        "/api/notifications",
        json={"user_id": bob_id, "type": "like", "message": " Alice liked your post ", "link": "/posts/1"},
        headers=alice,
    )
    assert created.status_code == 201, created.text
    body = created.json()
    assert body["message"] == "Alice liked your post"
    assert body["is_read"] is False
    assert body["from_user"]["id"] == alice_id

    unknown_type = client.post(
        "/api/notifications",
        json={"user_id": bob_id, "type": "poke", "message": "hi"},
        headers=alice,
    )
    assert unknown_type.status_code == 422

    unknown_user = client.post(
        "/api/notifications",
        json={"user_id": 999, "type": "like", "message": "hi"},
        headers=alice,
    )
    assert unknown_user.status_code == 404

    assert client.get("/api/notifications", headers=alice).json() == []

    # notifications are private to their recipient
    assert client.put(f"/api/notifications/{body['id']}/read", headers=alice).status_code == 404
    read = client.put(f"/api/notifications/{body['id']}/read", headers=bob)
    assert read.status_code == 200
    assert read.json()["is_read"] is True

    cleared = client.delete("/api/notifications", headers=bob)
    assert cleared.json() == {"message": "All notifications cleared"}
    assert client.get("/api/notifications", headers=bob).json() == []
