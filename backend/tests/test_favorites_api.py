"""
Tests for user favorites
"""
from uuid import uuid4

import pytest


@pytest.fixture
def resource(client, moderator):
    response = client.post("/api/resources/", headers=moderator["headers"], json={
        "title": "Prompt Engineering Guide",
        "url": "https://example.org/prompting",
        "category": "tutorials",
    })
    return response.json()


def test_favorites_require_login(client):
    assert client.get("/api/favorites/").status_code == 401


def test_add_and_list(client, alice, resource):
    response = client.post("/api/favorites/", headers=alice["headers"],
                           json={"resource_id": resource["id"], "notes": "read later"})
    assert response.status_code == 201
    favorite = response.json()
    assert favorite["resource_id"] == resource["id"]
    assert favorite["notes"] == "read later"

    favorites = client.get("/api/favorites/", headers=alice["headers"]).json()["favorites"]
    assert [f["id"] for f in favorites] == [favorite["id"]]
    assert client.get(f"/api/resources/{resource['id']}").json()["favorites_count"] == 1


def test_duplicate_favorite(client, alice, resource):
    client.post("/api/favorites/", headers=alice["headers"], json={"resource_id": resource["id"]})
    response = client.post("/api/favorites/", headers=alice["headers"], json={"resource_id": resource["id"]})
    assert response.status_code == 409
    assert client.get(f"/api/resources/{resource['id']}").json()["favorites_count"] == 1


def test_unknown_resource(client, alice):
    response = client.post("/api/favorites/", headers=alice["headers"], json={"resource_id": str(uuid4())})
    assert response.status_code == 404


def test_delete_only_own(client, alice, bob, resource):
    favorite = client.post("/api/favorites/", headers=alice["headers"],
                           json={"resource_id": resource["id"]}).json()

    assert client.delete(f"/api/favorites/{favorite['id']}", headers=bob["headers"]).status_code == 404
    assert client.delete(f"/api/favorites/{favorite['id']}", headers=alice["headers"]).status_code == 204
    assert client.get("/api/favorites/", headers=alice["headers"]).json()["favorites"] == []
    assert client.get(f"/api/resources/{resource['id']}").json()["favorites_count"] == 0
