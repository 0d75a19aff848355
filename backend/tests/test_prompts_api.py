"""
Tests for the prompt library API
"""
import pytest

from insider.models.prompt import Prompt


def _create(client, user, title="Code Review Helper", content="Review this {{language}} code:", **extra):
    payload = {"title": title, "content": content, **extra}
    return client.post("/api/prompts/", headers=user["headers"], json=payload)


@pytest.fixture
def public_prompt(client, alice):
    response = _create(client, alice, visibility="public", tags=["review", "code"],
                       variables=[{"name": "language", "default": "python"}])
    assert response.status_code == 201, response.text
    return response.json()


def test_create_prompt(client, alice, public_prompt):
    assert public_prompt["slug"].startswith("code-review-helper-")
    assert public_prompt["author_id"] == alice["id"]
    assert public_prompt["can_edit"] is True
    assert public_prompt["is_saved"] is False
    assert public_prompt["user_rating"] is None


def test_create_validation(client, alice):
    assert _create(client, alice, title=None).status_code == 400
    assert _create(client, alice, content="").status_code == 400
    assert _create(client, alice, visibility="secret").status_code == 400
    assert client.post("/api/prompts/", json={"title": "x", "content": "y"}).status_code == 401


def test_private_prompt_hidden_from_others(client, alice, bob):
    prompt = _create(client, alice).json()
    assert prompt["visibility"] == "private"

    assert client.get(f"/api/prompts/{prompt['id']}", headers=alice["headers"]).status_code == 200
    assert client.get(f"/api/prompts/{prompt['slug']}", headers=bob["headers"]).status_code == 404
    assert client.get(f"/api/prompts/{prompt['id']}").status_code == 404


def test_unlisted_prompt_reachable_but_not_listed(client, alice, bob):
    prompt = _create(client, alice, visibility="unlisted").json()
    assert client.get(f"/api/prompts/{prompt['slug']}", headers=bob["headers"]).status_code == 200
    assert client.get("/api/prompts/", headers=bob["headers"]).json()["prompts"] == []


def test_list_visibility_and_filters(client, alice, bob, public_prompt):
    _create(client, alice, title="Private Notes")
    _create(client, bob, title="Test Writer", content="Write tests for:", visibility="public", tags=["testing"])

    anonymous = client.get("/api/prompts/").json()
    assert {p["title"] for p in anonymous["prompts"]} == {"Code Review Helper", "Test Writer"}

    own = client.get("/api/prompts/", headers=alice["headers"], params={"mine": True}).json()
    assert {p["title"] for p in own["prompts"]} == {"Code Review Helper", "Private Notes"}

    tagged = client.get("/api/prompts/", params={"tags": "testing,docs"}).json()
    assert [p["title"] for p in tagged["prompts"]] == ["Test Writer"]

    found = client.get("/api/prompts/", params={"search": "review"}).json()
    assert [p["title"] for p in found["prompts"]] == ["Code Review Helper"]

    assert client.get("/api/prompts/", params={"sort": "alphabetical"}).status_code == 422


def test_list_pagination(client, alice):
    for title in ("First Prompt", "Second Prompt", "Third Prompt"):
        assert _create(client, alice, title=title, visibility="public").status_code == 201

    first = client.get("/api/prompts/", params={"limit": 2, "sort": "recent"}).json()
    second = client.get("/api/prompts/", params={"limit": 2, "page": 2, "sort": "recent"}).json()
    assert len(first["prompts"]) == 2
    assert len(second["prompts"]) == 1
    assert second["pagination"] == {"page": 2, "limit": 2, "total": 3, "total_pages": 2}
    titles = {p["title"] for p in first["prompts"] + second["prompts"]}
    assert titles == {"First Prompt", "Second Prompt", "Third Prompt"}


def test_update_and_delete(client, alice, bob, admin, public_prompt):
    url = f"/api/prompts/{public_prompt['id']}"
    assert client.patch(url, headers=bob["headers"], json={"title": "Mine now"}).status_code == 403
    assert client.patch(url, headers=alice["headers"], json={"visibility": "everyone"}).status_code == 400
    assert client.patch(url, headers=alice["headers"], json={"is_featured": True}).status_code == 400

    response = client.patch(url, headers=alice["headers"], json={"title": "Careful Code Review"})
    assert response.json()["title"] == "Careful Code Review"

    response = client.patch(url, headers=admin["headers"], json={"is_featured": True})
    assert response.json()["is_featured"] is True
    assert response.json()["can_edit"] is True

    assert client.delete(url, headers=bob["headers"]).status_code == 403
    assert client.delete(url, headers=alice["headers"]).status_code == 204
    assert client.get(url).status_code == 404


def test_system_prompts_are_protected(client, alice, admin, db):
    prompt = Prompt(slug="explain-code", title="Explain Code", content="Explain:", is_system=True)
    db.add(prompt)
    db.commit()

    assert client.get("/api/prompts/explain-code").status_code == 200
    assert client.patch(f"/api/prompts/{prompt.id}", headers=alice["headers"],
                        json={"title": "x"}).status_code == 403
    assert client.delete(f"/api/prompts/{prompt.id}", headers=admin["headers"]).status_code == 403

    listed = client.get("/api/prompts/", params={"system": True}).json()["prompts"]
    assert [p["slug"] for p in listed] == ["explain-code"]


class TestEngagement:
    """Test saves, ratings and use counts"""

    def test_save_and_unsave(self, client, bob, public_prompt):
        url = f"/api/prompts/{public_prompt['id']}/save"

        response = client.post(url, headers=bob["headers"])
        assert response.json() == {"prompt_id": public_prompt["id"], "save_count": 1, "is_saved": True}
        assert client.post(url, headers=bob["headers"]).status_code == 409

        saved = client.get("/api/prompts/", headers=bob["headers"], params={"saved": True}).json()["prompts"]
        assert [p["id"] for p in saved] == [public_prompt["id"]]
        assert saved[0]["is_saved"] is True

        response = client.delete(url, headers=bob["headers"])
        assert response.json()["save_count"] == 0
        assert client.delete(url, headers=bob["headers"]).status_code == 404

    def test_cannot_save_private_prompt_of_another_user(self, client, alice, bob):
        prompt = _create(client, alice).json()
        assert client.post(f"/api/prompts/{prompt['id']}/save", headers=bob["headers"]).status_code == 404

    def test_rating_is_upserted(self, client, alice, bob, public_prompt):
        url = f"/api/prompts/{public_prompt['id']}/rate"

        response = client.post(url, headers=bob["headers"], json={"rating": 4})
        assert response.json() == {"prompt_id": public_prompt["id"], "avg_rating": 4.0,
                                   "rating_count": 1, "user_rating": 4}

        client.post(url, headers=alice["headers"], json={"rating": 1})
        response = client.post(url, headers=bob["headers"], json={"rating": 5})
        assert response.json()["rating_count"] == 2
        assert response.json()["avg_rating"] == 3.0

        detail = client.get(f"/api/prompts/{public_prompt['id']}", headers=bob["headers"]).json()
        assert detail["user_rating"] == 5

        assert client.post(url, headers=bob["headers"], json={"rating": 0}).status_code == 422

    def test_record_use(self, client, public_prompt):
        url = f"/api/prompts/{public_prompt['id']}/use"
        client.post(url)
        assert client.post(url).json()["use_count"] == 2

        most_used = client.get("/api/prompts/", params={"sort": "most-used"}).json()["prompts"]
        assert most_used[0]["use_count"] == 2


class TestCategories:
    """Test prompt categories"""

    def test_create_requires_admin(self, client, alice, admin):
        payload = {"slug": "coding", "name": "Coding", "icon": "code"}
        assert client.post("/api/prompts/categories", headers=alice["headers"], json=payload).status_code == 403

        response = client.post("/api/prompts/categories", headers=admin["headers"], json=payload)
        assert response.status_code == 201
        assert response.json()["slug"] == "coding"

        assert client.post("/api/prompts/categories", headers=admin["headers"], json=payload).status_code == 409

    def test_category_counts_and_filter(self, client, alice, admin):
        category = client.post("/api/prompts/categories", headers=admin["headers"],
                               json={"slug": "writing", "name": "Writing"}).json()
        _create(client, alice, title="Blog Outline", content="Outline:", visibility="public",
                category_id=category["id"])
        _create(client, alice, title="Hidden Draft", content="Draft:", category_id=category["id"])

        categories = client.get("/api/prompts/categories").json()["categories"]
        assert categories == [{"id": category["id"], "slug": "writing", "name": "Writing",
                               "icon": None, "prompt_count": 1}]

        listed = client.get("/api/prompts/", params={"category": "writing"}).json()["prompts"]
        assert [p["title"] for p in listed] == ["Blog Outline"]
        assert listed[0]["category"]["slug"] == "writing"

    def test_unknown_category_rejected(self, client, alice):
        response = _create(client, alice, category_id="00000000-0000-0000-0000-000000000000")
        assert response.status_code == 400
