"""
Tests for SAS verification, cross-signing and trust API
"""
from datetime import timedelta

from insider.core.sas import create_commitment
from insider.core.utils import utcnow
from insider.models.verification import SasVerification


def _register_device(client, user, device_id, identity_key="identity"):
    response = client.post("/api/e2ee/devices", headers=user["headers"], json={
        "device_id": device_id,
        "identity_key": f"{identity_key}-{device_id}",
        "signing_key": f"signing-{device_id}",
        "signed_prekey": f"spk-{device_id}",
        "signed_prekey_id": 1,
        "signed_prekey_signature": f"sig-{device_id}",
        "device_name": "Browser",
    })
    assert response.status_code == 201, response.text
    return response.json()


def _start(client, alice, bob, public_key="ephemeral-A"):
    response = client.post("/api/e2ee/verification/start", headers=alice["headers"], json={
        "initiator_device_id": "ALICE1",
        "target_user_id": bob["id"],
        "target_device_id": "BOB1",
        "public_key": public_key,
        "commitment": create_commitment(public_key),
    })
    assert response.status_code == 200, response.text
    return response.json()


def _setup(client, alice, bob):
    _register_device(client, alice, "ALICE1")
    _register_device(client, bob, "BOB1")
    return _start(client, alice, bob)


def test_full_sas_flow_marks_both_devices_verified(client, alice, bob):
    started = _setup(client, alice, bob)
    txn = started["transaction_id"]
    assert started["status"] == "started"
    assert len(txn) == 32

    response = client.post(f"/api/e2ee/verification/{txn}/accept", headers=bob["headers"],
                           json={"public_key": "ephemeral-B"})
    assert response.status_code == 200
    assert response.json()["status"] == "key_exchanged"

    response = client.post(f"/api/e2ee/verification/{txn}/reveal", headers=alice["headers"], json={
        "public_key": "ephemeral-A",
        "emoji_indices": [0, 1, 2, 3, 4, 5, 63],
        "sas_decimal": "1000-2000-3000",
    })
    assert response.status_code == 200
    assert response.json()["status"] == "sas_ready"
    assert response.json()["sas_emoji_indices"] == [0, 1, 2, 3, 4, 5, 63]

    response = client.post(f"/api/e2ee/verification/{txn}/confirm", headers=bob["headers"],
                           json={"is_match": True})
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "verified"
    assert data["completed_at"] is not None

    response = client.get(f"/api/e2ee/verification/users/{bob['id']}/verified-devices", headers=alice["headers"])
    devices = response.json()["devices"]
    assert [d["device_id"] for d in devices] == ["BOB1"]
    assert devices[0]["verification_method"] == "sas"

    response = client.get(
        f"/api/e2ee/verification/users/{alice['id']}/verified-devices",
        params={"device_id": "ALICE1"},
        headers=bob["headers"],
    )
    assert response.json() == {"device_id": "ALICE1", "is_verified": True}


def test_confirm_without_reveal(client, alice, bob):
    txn = _setup(client, alice, bob)["transaction_id"]
    client.post(f"/api/e2ee/verification/{txn}/accept", headers=bob["headers"], json={"public_key": "B"})

    response = client.post(f"/api/e2ee/verification/{txn}/confirm", headers=alice["headers"],
                           json={"is_match": True})
    assert response.status_code == 200
    assert response.json()["status"] == "verified"


def test_mismatch_cancels(client, alice, bob):
    txn = _setup(client, alice, bob)["transaction_id"]
    client.post(f"/api/e2ee/verification/{txn}/accept", headers=bob["headers"], json={"public_key": "B"})

    response = client.post(f"/api/e2ee/verification/{txn}/confirm", headers=bob["headers"],
                           json={"is_match": False})
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"

    response = client.get(f"/api/e2ee/verification/users/{bob['id']}/verified-devices", headers=alice["headers"])
    assert response.json()["devices"] == []


def test_wrong_reveal_cancels_verification(client, alice, bob, db):
    txn = _setup(client, alice, bob)["transaction_id"]
    client.post(f"/api/e2ee/verification/{txn}/accept", headers=bob["headers"], json={"public_key": "B"})

    response = client.post(f"/api/e2ee/verification/{txn}/reveal", headers=alice["headers"],
                           json={"public_key": "swapped-key"})
    assert response.status_code == 400

    row = db.query(SasVerification).filter(SasVerification.transaction_id == txn).one()
    db.refresh(row)
    assert row.status == "cancelled"


def test_only_target_accepts(client, alice, bob):
    txn = _setup(client, alice, bob)["transaction_id"]
    response = client.post(f"/api/e2ee/verification/{txn}/accept", headers=alice["headers"],
                           json={"public_key": "A2"})
    assert response.status_code == 403


def test_outsider_is_rejected(client, alice, bob, carol):
    txn = _setup(client, alice, bob)["transaction_id"]
    response = client.post(f"/api/e2ee/verification/{txn}/cancel", headers=carol["headers"])
    assert response.status_code == 403


def test_terminal_state_rejects_further_steps(client, alice, bob):
    txn = _setup(client, alice, bob)["transaction_id"]
    response = client.post(f"/api/e2ee/verification/{txn}/cancel", headers=alice["headers"])
    assert response.json()["status"] == "cancelled"

    response = client.post(f"/api/e2ee/verification/{txn}/accept", headers=bob["headers"],
                           json={"public_key": "B"})
    assert response.status_code == 409


def test_confirm_before_key_exchange_is_rejected(client, alice, bob):
    txn = _setup(client, alice, bob)["transaction_id"]
    response = client.post(f"/api/e2ee/verification/{txn}/confirm", headers=bob["headers"],
                           json={"is_match": True})
    assert response.status_code == 409


def test_invalid_emoji_indices(client, alice, bob):
    txn = _setup(client, alice, bob)["transaction_id"]
    client.post(f"/api/e2ee/verification/{txn}/accept", headers=bob["headers"], json={"public_key": "B"})

    response = client.post(f"/api/e2ee/verification/{txn}/confirm", headers=bob["headers"],
                           json={"is_match": True, "emoji_indices": [1, 2, 3]})
    assert response.status_code == 400

    response = client.post(f"/api/e2ee/verification/{txn}/confirm", headers=bob["headers"],
                           json={"is_match": True, "emoji_indices": [0, 1, 2, 3, 4, 5, 64]})
    assert response.status_code == 400


def test_start_requires_existing_target_device(client, alice, bob):
    _register_device(client, alice, "ALICE1")
    response = client.post("/api/e2ee/verification/start", headers=alice["headers"], json={
        "initiator_device_id": "ALICE1",
        "target_user_id": bob["id"],
        "target_device_id": "MISSING",
        "public_key": "k",
        "commitment": create_commitment("k"),
    })
    assert response.status_code == 404


def test_device_cannot_verify_itself(client, alice):
    _register_device(client, alice, "ALICE1")
    response = client.post("/api/e2ee/verification/start", headers=alice["headers"], json={
        "initiator_device_id": "ALICE1",
        "target_user_id": alice["id"],
        "target_device_id": "ALICE1",
        "public_key": "k",
        "commitment": create_commitment("k"),
    })
    assert response.status_code == 400


def test_pending_and_expiry(client, alice, bob, moderator, db):
    txn = _setup(client, alice, bob)["transaction_id"]

    response = client.get("/api/e2ee/verification/pending", headers=bob["headers"], params={"device_id": "BOB1"})
    assert [v["transaction_id"] for v in response.json()["verifications"]] == [txn]

    row = db.query(SasVerification).filter(SasVerification.transaction_id == txn).one()
    row.expires_at = utcnow() - timedelta(minutes=1)
    db.commit()

    response = client.get("/api/e2ee/verification/pending", headers=bob["headers"])
    assert response.json()["verifications"] == []

    response = client.post("/api/e2ee/verification/cleanup", headers=bob["headers"])
    assert response.status_code == 403

    response = client.post("/api/e2ee/verification/cleanup", headers=moderator["headers"])
    assert response.json() == {"expired": 1}


def test_expired_verification_cannot_be_accepted(client, alice, bob, db):
    txn = _setup(client, alice, bob)["transaction_id"]
    row = db.query(SasVerification).filter(SasVerification.transaction_id == txn).one()
    row.expires_at = utcnow() - timedelta(seconds=1)
    db.commit()

    response = client.post(f"/api/e2ee/verification/{txn}/accept", headers=bob["headers"],
                           json={"public_key": "B"})
    assert response.status_code == 409
    db.refresh(row)
    assert row.status == "expired"


def test_identity_key_change_clears_verification(client, alice, bob):
    txn = _setup(client, alice, bob)["transaction_id"]
    client.post(f"/api/e2ee/verification/{txn}/accept", headers=bob["headers"], json={"public_key": "B"})
    client.post(f"/api/e2ee/verification/{txn}/confirm", headers=bob["headers"], json={"is_match": True})

    device = _register_device(client, bob, "BOB1", identity_key="rotated")
    assert device["is_verified"] is False
    assert device["verification_method"] is None


class TestCrossSigning:
    """Test cross-signing keys, device signatures and trust"""

    def test_self_signing_marks_device_verified(self, client, alice):
        _register_device(client, alice, "ALICE1")
        response = client.post("/api/e2ee/verification/cross-signing/keys", headers=alice["headers"],
                               json={"key_type": "self_signing", "public_key": "ssk-1"})
        assert response.status_code == 200

        response = client.post("/api/e2ee/verification/cross-signing/signatures", headers=alice["headers"], json={
            "device_owner_id": alice["id"],
            "device_id": "ALICE1",
            "signer_key_type": "self_signing",
            "signer_key_id": "ssk-1",
            "signature": "sig",
        })
        assert response.status_code == 200

        devices = client.get("/api/e2ee/devices", headers=alice["headers"]).json()["devices"]
        assert devices[0]["is_verified"] is True
        assert devices[0]["verification_method"] == "cross_sign"

        signatures = client.get(f"/api/e2ee/verification/cross-signing/signatures/{alice['id']}/ALICE1",
                                headers=alice["headers"]).json()["signatures"]
        assert [(s["signer_key_type"], s["signer_key_id"]) for s in signatures] == [("self_signing", "ssk-1")]
        assert client.get(f"/api/e2ee/verification/cross-signing/signatures/{alice['id']}/NOPE",
                          headers=alice["headers"]).status_code == 404

        response = client.post("/api/e2ee/verification/cross-signing/signatures", headers=alice["headers"], json={
            "device_owner_id": alice["id"],
            "device_id": "ALICE1",
            "signer_key_type": "self_signing",
            "signer_key_id": "ssk-1",
            "signature": "sig",
        })
        assert response.status_code == 409

    def test_uploading_new_key_revokes_previous(self, client, alice, bob):
        for key in ("master-1", "master-2"):
            client.post("/api/e2ee/verification/cross-signing/keys", headers=alice["headers"],
                        json={"key_type": "master", "public_key": key})

        keys = client.get(f"/api/e2ee/verification/cross-signing/keys/{alice['id']}",
                          headers=bob["headers"]).json()["keys"]
        assert [k["public_key"] for k in keys] == ["master-2"]

    def test_invalid_key_type(self, client, alice):
        response = client.post("/api/e2ee/verification/cross-signing/keys", headers=alice["headers"],
                               json={"key_type": "bogus", "public_key": "k"})
        assert response.status_code == 400

    def test_trust_requires_current_master_key(self, client, alice, bob):
        client.post("/api/e2ee/verification/cross-signing/keys", headers=bob["headers"],
                    json={"key_type": "master", "public_key": "bob-master"})

        response = client.put("/api/e2ee/verification/trust", headers=alice["headers"],
                              json={"trusted_user_id": bob["id"], "trusted_master_key": "stale"})
        assert response.status_code == 409

        response = client.get(f"/api/e2ee/verification/trust/{bob['id']}", headers=alice["headers"])
        assert response.json() == {"trusted_user_id": bob["id"], "trust_level": None}

        response = client.put("/api/e2ee/verification/trust", headers=alice["headers"], json={
            "trusted_user_id": bob["id"],
            "trusted_master_key": "bob-master",
            "verification_method": "sas",
        })
        assert response.status_code == 200
        assert response.json()["trust_level"] == "verified"

        trusted = client.get("/api/e2ee/verification/trust", headers=alice["headers"]).json()["trusted"]
        assert [t["trusted_user_id"] for t in trusted] == [bob["id"]]

        response = client.get(f"/api/e2ee/verification/trust/{bob['id']}", headers=alice["headers"])
        assert response.json()["trusted_master_key"] == "bob-master"

    def test_cannot_trust_self(self, client, alice):
        response = client.put("/api/e2ee/verification/trust", headers=alice["headers"],
                              json={"trusted_user_id": alice["id"], "trusted_master_key": "k"})
        assert response.status_code == 400
