"""
Tests for in-app notifications
"""
from uuid import UUID, uuid4

import pytest

from insider.core.errors import ValidationError
from insider.services.notification_service import NotificationService


@pytest.fixture
def resource(client, moderator):
    response = client.post("/api/resources/", headers=moderator["headers"], json={
        "title": "MCP Server Cookbook",
        "url": "https://example.org/mcp",
        "category": "tutorials",
    })
    return response.json()


def _notifications(client, user, kind=None, **params):
    response = client.get("/api/notifications/", headers=user["headers"], params=params)
    assert response.status_code == 200, response.text
    body = response.json()
    if kind is not None:
        body["notifications"] = [n for n in body["notifications"] if n["type"] == kind]
    return body


def _comment(client, user, resource, content, parent_id=None):
    payload = {"content": content}
    if parent_id:
        payload["parent_id"] = parent_id
    response = client.post(f"/api/resources/{resource['id']}/comments", headers=user["headers"], json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def test_notifications_require_login(client):
    assert client.get("/api/notifications/").status_code == 401
    assert client.get("/api/notifications/unread-count").status_code == 401


def test_follow_notifies_target(client, alice, bob):
    client.post(f"/api/users/{bob['id']}/follow", headers=alice["headers"])

    body = _notifications(client, bob)
    assert body["total"] == 1
    assert body["unread_count"] == 1
    notification = body["notifications"][0]
    assert notification["type"] == "follow"
    assert notification["title"] == "alice started following you"
    assert notification["actor_id"] == alice["id"]
    assert notification["resource_type"] == "user"
    assert notification["resource_id"] == "alice"
    assert notification["read"] is False

    assert _notifications(client, alice, kind="follow")["notifications"] == []


def test_reply_notifies_parent_author(client, alice, bob, resource):
    root = _comment(client, alice, resource, "Which transport do you use?")
    reply = _comment(client, bob, resource, "stdio works fine locally", parent_id=root["id"])

    replies = _notifications(client, alice, kind="reply")["notifications"]
    assert len(replies) == 1
    assert replies[0]["title"] == "bob replied to your comment"
    assert replies[0]["message"] == "stdio works fine locally"
    assert replies[0]["data"] == {"comment_id": reply["id"], "resource_id": resource["id"]}
    assert replies[0]["resource_id"] == root["id"]


def test_replying_to_yourself_is_silent(client, alice, resource):
    root = _comment(client, alice, resource, "Which transport do you use?")
    _comment(client, alice, resource, "Answering myself: stdio", parent_id=root["id"])
    assert _notifications(client, alice, kind="reply")["notifications"] == []


def test_direct_message_notifies_recipients(client, alice, bob, carol):
    cid = client.post("/api/messages/conversations", headers=alice["headers"],
                      json={"participant_ids": [bob["id"], carol["id"]]}).json()["id"]
    client.post(f"/api/messages/conversations/{cid}/messages", headers=alice["headers"],
                json={"content": "Standup moved to 10"})

    for user in (bob, carol):
        messages = _notifications(client, user, kind="message")["notifications"]
        assert len(messages) == 1
        assert messages[0]["title"] == "New message from alice"
        assert messages[0]["message"] == "Standup moved to 10"
        assert messages[0]["data"] == {"conversation_id": cid}
    assert _notifications(client, alice, kind="message")["notifications"] == []


def test_encrypted_message_notification_has_no_content(client, alice, bob):
    cid = client.post("/api/messages/conversations", headers=alice["headers"],
                      json={"participant_ids": [bob["id"]], "e2ee": True}).json()["id"]
    client.post(f"/api/messages/conversations/{cid}/messages", headers=alice["headers"], json={
        "encrypted_content": "b64-ciphertext",
        "encryption_algorithm": "olm.v1",
        "sender_device_id": "ALICE1",
        "sender_key": "curve-key",
    })

    messages = _notifications(client, bob, kind="message")["notifications"]
    assert len(messages) == 1
    assert messages[0]["message"] is None
    assert "b64-ciphertext" not in str(messages[0])


def test_mark_read(client, alice, bob, carol):
    client.post(f"/api/users/{carol['id']}/follow", headers=alice["headers"])
    client.post(f"/api/users/{carol['id']}/follow", headers=bob["headers"])
    first, second = _notifications(client, carol)["notifications"]

    response = client.post("/api/notifications/read", headers=carol["headers"],
                           json={"notification_ids": [first["id"]]})
    assert response.json() == {"updated": 1, "unread_count": 1}

    unread = _notifications(client, carol, unread_only=True)
    assert [n["id"] for n in unread["notifications"]] == [second["id"]]
    assert unread["total"] == 1

    response = client.post("/api/notifications/read", headers=carol["headers"], json={})
    assert response.json() == {"updated": 1, "unread_count": 0}
    assert client.get("/api/notifications/unread-count", headers=carol["headers"]).json() == {"unread_count": 0}
    assert all(n["read_at"] for n in _notifications(client, carol)["notifications"])


def test_mark_read_ignores_other_users(client, alice, bob, carol):
    client.post(f"/api/users/{bob['id']}/follow", headers=alice["headers"])
    notification = _notifications(client, bob)["notifications"][0]

    response = client.post("/api/notifications/read", headers=carol["headers"],
                           json={"notification_ids": [notification["id"]]})
    assert response.json()["updated"] == 0
    assert client.get("/api/notifications/unread-count", headers=bob["headers"]).json()["unread_count"] == 1


def test_delete_and_delete_read(client, alice, bob, carol):
    client.post(f"/api/users/{carol['id']}/follow", headers=alice["headers"])
    client.post(f"/api/users/{carol['id']}/follow", headers=bob["headers"])
    first, second = _notifications(client, carol)["notifications"]

    assert client.delete(f"/api/notifications/{first['id']}", headers=alice["headers"]).status_code == 404
    assert client.delete(f"/api/notifications/{uuid4()}", headers=carol["headers"]).status_code == 404
    assert client.delete(f"/api/notifications/{first['id']}", headers=carol["headers"]).status_code == 204

    client.post("/api/notifications/read", headers=carol["headers"], json={"notification_ids": [second["id"]]})
    assert client.request("DELETE", "/api/notifications/read", headers=carol["headers"]).json() == {"deleted": 1}
    assert _notifications(client, carol)["total"] == 0


def test_pagination(client, alice, bob, carol, make_user):
    dave = make_user("dave")
    for user in (alice, bob, carol):
        client.post(f"/api/users/{dave['id']}/follow", headers=user["headers"])

    page = _notifications(client, dave, limit=2, offset=0)
    assert len(page["notifications"]) == 2
    assert page["total"] == 3
    rest = _notifications(client, dave, limit=2, offset=2)
    assert len(rest["notifications"]) == 1
    seen = {n["id"] for n in page["notifications"] + rest["notifications"]}
    assert len(seen) == 3

    response = client.get("/api/notifications/", headers=dave["headers"], params={"limit": 0})
    assert response.status_code == 422


def test_preferences_mute_a_type(client, alice, bob):
    defaults = client.get("/api/notifications/preferences", headers=bob["headers"]).json()
    assert defaults == {
        "in_app_comments": True,
        "in_app_replies": True,
        "in_app_follows": True,
        "in_app_messages": True,
        "in_app_achievements": True,
    }

    response = client.put("/api/notifications/preferences", headers=bob["headers"],
                          json={"in_app_follows": False})
    assert response.status_code == 200
    assert response.json()["in_app_follows"] is False
    assert response.json()["in_app_replies"] is True

    client.post(f"/api/users/{bob['id']}/follow", headers=alice["headers"])
    assert _notifications(client, bob)["total"] == 0


def test_unknown_preference_rejected(db, alice):
    with pytest.raises(ValidationError):
        NotificationService(db).update_preferences(UUID(alice["id"]), {"email_digest": True})
