"""
Tests for Megolm session key distribution and rotation
"""
from datetime import timedelta
from uuid import UUID

import pytest

from insider.core.utils import utcnow
from insider.models.e2ee import ConversationE2EESettings


@pytest.fixture
def conversation_id(client, alice, bob):
    response = client.post("/api/messages/conversations", headers=alice["headers"],
                           json={"participant_ids": [bob["id"]], "e2ee": True})
    return response.json()["id"]


def _share(client, user, conversation_id, recipient, session_id="session-1", device="BOB1"):
    return client.post("/api/e2ee/sessions/share", headers=user["headers"], json={
        "conversation_id": conversation_id,
        "session_id": session_id,
        "sender_device_id": "ALICE1",
        "shares": [{
            "recipient_user_id": recipient["id"],
            "recipient_device_id": device,
            "encrypted_session_key": f"olm({session_id})",
        }],
    })


def test_share_and_claim_once(client, alice, bob, conversation_id):
    response = _share(client, alice, conversation_id, bob)
    assert response.status_code == 200
    assert response.json() == {"session_id": "session-1", "shared": 1}

    response = client.post("/api/e2ee/sessions/claim", headers=bob["headers"], json={"device_id": "BOB1"})
    sessions = response.json()["sessions"]
    assert len(sessions) == 1
    assert sessions[0]["encrypted_session_key"] == "olm(session-1)"
    assert sessions[0]["sender_user_id"] == alice["id"]
    assert sessions[0]["key_algorithm"] == "olm.v1"

    response = client.post("/api/e2ee/sessions/claim", headers=bob["headers"], json={"device_id": "BOB1"})
    assert response.json()["sessions"] == []


def test_duplicate_share_is_skipped(client, alice, bob, conversation_id):
    _share(client, alice, conversation_id, bob)
    response = _share(client, alice, conversation_id, bob)
    assert response.json()["shared"] == 0


def test_share_to_non_member_rejected(client, alice, bob, carol, conversation_id):
    response = _share(client, alice, conversation_id, carol, device="CAROL1")
    assert response.status_code == 400


def test_non_member_cannot_share(client, bob, carol, conversation_id):
    response = _share(client, carol, conversation_id, bob)
    assert response.status_code == 403


def test_empty_share_list_rejected(client, alice, conversation_id):
    response = client.post("/api/e2ee/sessions/share", headers=alice["headers"], json={
        "conversation_id": conversation_id,
        "session_id": "session-1",
        "sender_device_id": "ALICE1",
        "shares": [],
    })
    assert response.status_code == 400


class TestRotation:
    """Test the session rotation policy"""

    def test_no_session_needs_rotation(self, client, alice, conversation_id):
        response = client.get(f"/api/e2ee/sessions/{conversation_id}/rotation", headers=alice["headers"])
        assert response.json()["needs_rotation"] is True
        assert response.json()["reason"] == "no_session"

    def test_rotate_resets_counter(self, client, alice, bob, conversation_id):
        response = client.post("/api/e2ee/sessions/rotate", headers=alice["headers"],
                               json={"conversation_id": conversation_id, "session_id": "session-1"})
        assert response.status_code == 200
        assert response.json()["current_session_id"] == "session-1"
        assert response.json()["session_message_count"] == 0

        for _ in range(3):
            client.post(f"/api/messages/conversations/{conversation_id}/messages", headers=bob["headers"], json={
                "encrypted_content": "x",
                "encryption_algorithm": "megolm.v1",
                "session_id": "session-1",
            })
        # Messages on another session do not count
        client.post(f"/api/messages/conversations/{conversation_id}/messages", headers=bob["headers"], json={
            "encrypted_content": "x",
            "encryption_algorithm": "megolm.v1",
            "session_id": "old-session",
        })

        status = client.get(f"/api/e2ee/sessions/{conversation_id}/rotation", headers=alice["headers"]).json()
        assert status["needs_rotation"] is False
        assert status["session_message_count"] == 3

    def test_rotation_keeps_plaintext_conversation_open(self, client, alice, bob):
        response = client.post("/api/messages/conversations", headers=alice["headers"],
                               json={"participant_ids": [bob["id"]]})
        plain_id = response.json()["id"]

        response = client.post("/api/e2ee/sessions/rotate", headers=alice["headers"],
                               json={"conversation_id": plain_id, "session_id": "session-1"})
        assert response.status_code == 200
        assert response.json()["e2ee_required"] is False

        response = client.post(f"/api/messages/conversations/{plain_id}/messages", headers=bob["headers"],
                               json={"content": "still plaintext"})
        assert response.status_code == 201

    def test_rotation_keeps_e2ee_requirement(self, client, alice, conversation_id):
        response = client.post("/api/e2ee/sessions/rotate", headers=alice["headers"],
                               json={"conversation_id": conversation_id, "session_id": "session-2"})
        assert response.json()["e2ee_required"] is True

    def test_message_limit_triggers_rotation(self, client, alice, db, conversation_id):
        client.post("/api/e2ee/sessions/rotate", headers=alice["headers"],
                    json={"conversation_id": conversation_id, "session_id": "session-1"})
        row = db.query(ConversationE2EESettings).filter(
            ConversationE2EESettings.conversation_id == UUID(conversation_id)
        ).one()
        row.session_message_count = 100
        db.commit()

        status = client.get(f"/api/e2ee/sessions/{conversation_id}/rotation", headers=alice["headers"]).json()
        assert status["reason"] == "message_limit"

    def test_age_triggers_rotation(self, client, alice, db, conversation_id):
        client.post("/api/e2ee/sessions/rotate", headers=alice["headers"],
                    json={"conversation_id": conversation_id, "session_id": "session-1"})
        row = db.query(ConversationE2EESettings).filter(
            ConversationE2EESettings.conversation_id == UUID(conversation_id)
        ).one()
        row.current_session_created_at = utcnow() - timedelta(days=8)
        db.commit()

        status = client.get(f"/api/e2ee/sessions/{conversation_id}/rotation", headers=alice["headers"]).json()
        assert status["reason"] == "max_age"

    def test_rotation_status_requires_membership(self, client, carol, conversation_id):
        response = client.get(f"/api/e2ee/sessions/{conversation_id}/rotation", headers=carol["headers"])
        assert response.status_code == 403
