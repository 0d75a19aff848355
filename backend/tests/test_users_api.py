"""
Tests for public profiles, follows and role management
"""
from uuid import UUID, uuid4

from insider.core.database import get_session_local
from insider.models.user import User
from insider.services.follow_service import FollowService


def test_profile(client, alice, bob):
    response = client.get("/api/users/alice")
    assert response.status_code == 200
    profile = response.json()
    assert profile["id"] == alice["id"]
    assert profile["role"] == "user"
    assert profile["is_following"] is False
    assert "email" not in profile

    assert client.get("/api/users/nobody").status_code == 404


def test_follow_and_unfollow(client, alice, bob):
    response = client.post(f"/api/users/{bob['id']}/follow", headers=alice["headers"])
    assert response.status_code == 201
    assert response.json()["followers_count"] == 1

    assert client.get("/api/users/bob", headers=alice["headers"]).json()["is_following"] is True
    assert client.get("/api/users/alice").json()["following_count"] == 1

    followers = client.get(f"/api/users/{bob['id']}/followers").json()["users"]
    assert [u["username"] for u in followers] == ["alice"]
    following = client.get(f"/api/users/{alice['id']}/following").json()["users"]
    assert [u["username"] for u in following] == ["bob"]

    assert client.delete(f"/api/users/{bob['id']}/follow", headers=alice["headers"]).status_code == 204
    assert client.get("/api/users/bob").json()["followers_count"] == 0
    assert client.get("/api/users/alice").json()["following_count"] == 0
    assert client.delete(f"/api/users/{bob['id']}/follow", headers=alice["headers"]).status_code == 404


def test_follows_from_overlapping_sessions_are_all_counted(client, db, alice, bob, carol):
    other = get_session_local()()
    try:
        target = other.query(User).filter(User.id == UUID(bob["id"])).one()
        follower = other.query(User).filter(User.id == UUID(carol["id"])).one()
        assert target.followers_count == 0

        assert client.post(f"/api/users/{bob['id']}/follow", headers=alice["headers"]).status_code == 201

        FollowService(other).follow(follower, target.id)
        other.refresh(target)
        assert target.followers_count == 2
    finally:
        other.close()

    db.expire_all()
    assert client.get("/api/users/bob").json()["followers_count"] == 2
    assert client.get("/api/users/carol").json()["following_count"] == 1


def test_follow_validation(client, alice, bob):
    assert client.post(f"/api/users/{alice['id']}/follow", headers=alice["headers"]).status_code == 400
    assert client.post(f"/api/users/{uuid4()}/follow", headers=alice["headers"]).status_code == 404
    assert client.post(f"/api/users/{bob['id']}/follow").status_code == 401

    client.post(f"/api/users/{bob['id']}/follow", headers=alice["headers"])
    assert client.post(f"/api/users/{bob['id']}/follow", headers=alice["headers"]).status_code == 409


def test_followers_of_unknown_user(client):
    assert client.get(f"/api/users/{uuid4()}/followers").status_code == 404


def test_set_role_requires_admin(client, alice, moderator, admin):
    url = f"/api/users/{alice['id']}/role"
    assert client.put(url, headers=moderator["headers"], json={"role": "moderator"}).status_code == 403

    response = client.put(url, headers=admin["headers"], json={"role": "moderator"})
    assert response.status_code == 200
    assert response.json()["role"] == "moderator"

    assert client.put(url, headers=admin["headers"], json={"role": "overlord"}).status_code == 400
    assert client.put(f"/api/users/{uuid4()}/role", headers=admin["headers"],
                      json={"role": "user"}).status_code == 404
