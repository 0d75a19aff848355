"""
Tests for registration, sessions and personal API keys
"""
from datetime import timedelta

from insider.core.utils import utcnow
from insider.models.user import Session as UserSession
from insider.services.auth_service import AuthService

PASSWORD = "correct-horse-battery"


def _register(client, username="dana", email="dana@claudeinsider.com", password=PASSWORD):
    return client.post("/api/auth/register", json={
        "username": username, "email": email, "password": password, "name": "Dana",
    })


def _login(client, username="dana", password=PASSWORD):
    return client.post("/api/auth/login", json={"username": username, "password": password})


def test_register(client):
    response = _register(client)
    assert response.status_code == 201
    user = response.json()
    assert user["username"] == "dana"
    assert user["role"] == "user"
    assert user["has_api_key"] is False
    assert "password_hash" not in user


def test_register_duplicates(client):
    _register(client)
    assert _register(client, email="other@claudeinsider.com").status_code == 400
    assert _register(client, username="other").status_code == 400


def test_register_validation(client):
    assert _register(client, password="short").status_code == 422
    assert _register(client, email="not-an-email").status_code == 422


def test_login_by_username_or_email(client):
    _register(client)

    response = _login(client)
    assert response.status_code == 200
    data = response.json()
    assert data["token"]
    assert data["user"]["username"] == "dana"
    assert data["user"]["last_login"] is not None
    assert data["expires_at"]
    assert "session_token" in response.cookies

    assert _login(client, username="dana@claudeinsider.com").status_code == 200
    assert _login(client, password="wrong-password").status_code == 401
    assert _login(client, username="ghost").status_code == 401


def test_me_with_bearer_and_cookie(client):
    _register(client)
    token = _login(client).json()["token"]

    assert client.get("/api/auth/me").json()["username"] == "dana"

    client.cookies.clear()
    assert client.get("/api/auth/me").status_code == 401
    response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert response.json()["username"] == "dana"

    response = client.get("/api/auth/me", headers={"Authorization": "Bearer bogus"})
    assert response.status_code == 401


def test_logout_invalidates_session(client):
    _register(client)
    token = _login(client).json()["token"]
    client.cookies.clear()
    headers = {"Authorization": f"Bearer {token}"}

    assert client.post("/api/auth/logout", headers=headers).status_code == 204
    assert client.get("/api/auth/me", headers=headers).status_code == 401


def test_refresh_replaces_session(client):
    _register(client)
    old = _login(client).json()["token"]
    client.cookies.clear()

    response = client.post("/api/auth/refresh", headers={"Authorization": f"Bearer {old}"})
    assert response.status_code == 200
    new = response.json()["token"]
    assert new != old
    client.cookies.clear()

    assert client.get("/api/auth/me", headers={"Authorization": f"Bearer {old}"}).status_code == 401
    assert client.get("/api/auth/me", headers={"Authorization": f"Bearer {new}"}).status_code == 200
    assert client.post("/api/auth/refresh").status_code == 401


def test_expired_session_is_rejected(client, db):
    _register(client)
    token = _login(client).json()["token"]
    client.cookies.clear()

    session = db.query(UserSession).filter(UserSession.token == token).one()
    session.expires_at = utcnow() - timedelta(minutes=1)
    db.commit()

    assert client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"}).status_code == 401
    assert db.query(UserSession).count() == 0


def test_personal_api_key(client, alice):
    response = client.put("/api/auth/api-key", headers=alice["headers"], json={"api_key": "sk-ant-user"})
    assert response.json()["has_api_key"] is True

    response = client.put("/api/auth/api-key", headers=alice["headers"], json={"api_key": "  "})
    assert response.json()["has_api_key"] is False

    client.put("/api/auth/api-key", headers=alice["headers"], json={"api_key": "sk-ant-user"})
    response = client.delete("/api/auth/api-key", headers=alice["headers"])
    assert response.json()["has_api_key"] is False


def test_cleanup_expired_sessions(client, db):
    _register(client)
    expired = _login(client).json()["token"]
    _login(client)
    client.cookies.clear()

    session = db.query(UserSession).filter(UserSession.token == expired).one()
    session.expires_at = utcnow() - timedelta(hours=1)
    db.commit()

    assert AuthService(db).cleanup_expired_sessions() == 1
    assert db.query(UserSession).count() == 1
