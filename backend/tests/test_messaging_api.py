"""
Tests for direct messaging API
"""
from uuid import uuid4

from insider.models.messaging import ENCRYPTED_PREVIEW


def _start(client, user, *others, e2ee=False):
    response = client.post("/api/messages/conversations", headers=user["headers"],
                           json={"participant_ids": [o["id"] for o in others], "e2ee": e2ee})
    assert response.status_code == 201, response.text
    return response.json()


def test_start_conversation(client, alice, bob):
    conversation = _start(client, alice, bob)
    assert sorted(conversation["participant_ids"]) == sorted([alice["id"], bob["id"]])


def test_direct_conversation_is_reused(client, alice, bob):
    first = _start(client, alice, bob)
    second = _start(client, bob, alice)
    assert first["id"] == second["id"]


def test_group_conversation_is_not_reused(client, alice, bob, carol):
    first = _start(client, alice, bob, carol)
    second = _start(client, alice, bob, carol)
    assert first["id"] != second["id"]


def test_start_validation(client, alice):
    response = client.post("/api/messages/conversations", headers=alice["headers"],
                           json={"participant_ids": [alice["id"]]})
    assert response.status_code == 400

    response = client.post("/api/messages/conversations", headers=alice["headers"],
                           json={"participant_ids": [str(uuid4())]})
    assert response.status_code == 404


def test_send_and_read_plaintext(client, alice, bob):
    cid = _start(client, alice, bob)["id"]

    response = client.post(f"/api/messages/conversations/{cid}/messages", headers=alice["headers"],
                           json={"content": "Hello Bob"})
    assert response.status_code == 201
    message = response.json()
    assert message["content"] == "Hello Bob"
    assert message["is_encrypted"] is False
    assert message["sender_id"] == alice["id"]

    conversations = client.get("/api/messages/conversations", headers=bob["headers"]).json()["conversations"]
    assert conversations[0]["unread_count"] == 1
    assert conversations[0]["last_message_preview"] == "Hello Bob"

    mine = client.get("/api/messages/conversations", headers=alice["headers"]).json()["conversations"]
    assert mine[0]["unread_count"] == 0

    response = client.post(f"/api/messages/conversations/{cid}/read", headers=bob["headers"])
    assert response.json()["unread_count"] == 0
    conversations = client.get("/api/messages/conversations", headers=bob["headers"]).json()["conversations"]
    assert conversations[0]["unread_count"] == 0

    messages = client.get(f"/api/messages/conversations/{cid}/messages", headers=bob["headers"]).json()["messages"]
    assert [m["content"] for m in messages] == ["Hello Bob"]


def test_non_participant_cannot_read_or_send(client, alice, bob, carol):
    cid = _start(client, alice, bob)["id"]
    assert client.get(f"/api/messages/conversations/{cid}/messages", headers=carol["headers"]).status_code == 403
    response = client.post(f"/api/messages/conversations/{cid}/messages", headers=carol["headers"],
                           json={"content": "hi"})
    assert response.status_code == 403


def test_unknown_conversation(client, alice):
    response = client.get(f"/api/messages/conversations/{uuid4()}/messages", headers=alice["headers"])
    assert response.status_code == 404


def test_empty_message_rejected(client, alice, bob):
    cid = _start(client, alice, bob)["id"]
    response = client.post(f"/api/messages/conversations/{cid}/messages", headers=alice["headers"],
                           json={"content": "   "})
    assert response.status_code == 400


class TestEncryptedMessages:
    """Test encrypted envelopes and E2EE-only conversations"""

    def test_encrypted_message_hides_content(self, client, alice, bob):
        cid = _start(client, alice, bob, e2ee=True)["id"]
        response = client.post(f"/api/messages/conversations/{cid}/messages", headers=alice["headers"], json={
            "encrypted_content": "b64-ciphertext",
            "encryption_algorithm": "olm.v1",
            "sender_device_id": "ALICE1",
            "sender_key": "curve-key",
        })
        assert response.status_code == 201
        message = response.json()
        assert message["is_encrypted"] is True
        assert message["content"] is None

        conversations = client.get("/api/messages/conversations", headers=bob["headers"]).json()["conversations"]
        assert conversations[0]["e2ee_enabled"] is True
        assert conversations[0]["last_message_preview"] == ENCRYPTED_PREVIEW

    def test_plaintext_rejected_when_e2ee_required(self, client, alice, bob):
        cid = _start(client, alice, bob, e2ee=True)["id"]
        response = client.post(f"/api/messages/conversations/{cid}/messages", headers=alice["headers"],
                               json={"content": "plain"})
        assert response.status_code == 400

    def test_reused_plaintext_conversation_is_upgraded(self, client, alice, bob):
        plain = _start(client, alice, bob)
        assert plain["e2ee_required"] is False
        url = f"/api/messages/conversations/{plain['id']}/messages"
        assert client.post(url, headers=alice["headers"], json={"content": "before"}).status_code == 201

        encrypted = _start(client, bob, alice, e2ee=True)
        assert encrypted["id"] == plain["id"]
        assert encrypted["e2ee_required"] is True

        assert client.post(url, headers=alice["headers"], json={"content": "after"}).status_code == 400
        conversations = client.get("/api/messages/conversations", headers=alice["headers"]).json()["conversations"]
        assert conversations[0]["e2ee_enabled"] is True

    def test_encrypted_conversation_is_not_downgraded(self, client, alice, bob):
        encrypted = _start(client, alice, bob, e2ee=True)
        again = _start(client, bob, alice)
        assert again["id"] == encrypted["id"]
        assert again["e2ee_required"] is True

    def test_algorithm_validation(self, client, alice, bob):
        cid = _start(client, alice, bob, e2ee=True)["id"]
        url = f"/api/messages/conversations/{cid}/messages"

        response = client.post(url, headers=alice["headers"],
                               json={"encrypted_content": "x", "encryption_algorithm": "rot13"})
        assert response.status_code == 400

        response = client.post(url, headers=alice["headers"],
                               json={"encrypted_content": "x", "encryption_algorithm": "megolm.v1"})
        assert response.status_code == 400

        response = client.post(url, headers=alice["headers"], json={
            "encrypted_content": "x",
            "encryption_algorithm": "megolm.v1",
            "session_id": "session-1",
        })
        assert response.status_code == 201
