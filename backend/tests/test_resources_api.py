"""
Tests for the resource directory: resources, reviews and comments
"""
from uuid import UUID

import pytest

from insider.core.database import get_session_local
from insider.models.resource import ResourceComment
from insider.services.comment_service import CommentService


def _create_resource(client, user, title="Claude Code Hooks Guide", url="https://example.org/hooks", **extra):
    payload = {"title": title, "url": url, "category": "tutorials", **extra}
    response = client.post("/api/resources/", headers=user["headers"], json=payload)
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
def resource(client, moderator):
    return _create_resource(client, moderator, tags=["hooks", "automation"], difficulty="intermediate")


def test_create_requires_resource_manager(client, alice):
    response = client.post("/api/resources/", headers=alice["headers"],
                           json={"title": "Mine", "url": "https://example.org/mine", "category": "tools"})
    assert response.status_code == 403


def test_create_and_fetch(client, moderator, resource):
    assert resource["slug"] == "claude-code-hooks-guide"
    assert resource["status"] == "community"
    assert resource["reviews_count"] == 0
    assert resource["average_rating"] == 0

    by_slug = client.get(f"/api/resources/{resource['slug']}")
    by_id = client.get(f"/api/resources/{resource['id']}")
    assert by_slug.json()["id"] == by_id.json()["id"] == resource["id"]
    assert client.get("/api/resources/does-not-exist").status_code == 404

    response = client.post("/api/resources/", headers=moderator["headers"],
                           json={"title": "Copy", "url": resource["url"], "category": "tools"})
    assert response.status_code == 409


def test_same_title_gets_distinct_slug(client, moderator, resource):
    other = _create_resource(client, moderator, url="https://example.org/hooks-2")
    assert other["slug"] != resource["slug"]
    assert other["slug"].startswith("claude-code-hooks-guide-")


def test_list_filters_and_stats(client, moderator, resource):
    _create_resource(client, moderator, title="MCP Inspector", url="https://example.org/inspector",
                     category="tools", tags=["mcp"], status="official")

    data = client.get("/api/resources/").json()
    assert data["pagination"]["total"] == 2

    assert [r["title"] for r in client.get("/api/resources/", params={"category": "tools"}).json()["resources"]] \
        == ["MCP Inspector"]
    assert [r["title"] for r in client.get("/api/resources/", params={"tag": "hooks"}).json()["resources"]] \
        == ["Claude Code Hooks Guide"]
    assert [r["title"] for r in client.get("/api/resources/", params={"status": "official"}).json()["resources"]] \
        == ["MCP Inspector"]
    assert client.get("/api/resources/", params={"search": "inspector"}).json()["pagination"]["total"] == 1

    assert client.get("/api/resources/stats").json() == {"total": 2, "categories": {"tutorials": 1, "tools": 1}}


def test_update_and_delete(client, moderator, alice, resource):
    url = f"/api/resources/{resource['id']}"
    assert client.patch(url, headers=alice["headers"], json={"title": "Nope"}).status_code == 403

    response = client.patch(url, headers=moderator["headers"], json={"github_stars": 42, "status": "beta"})
    assert response.status_code == 200
    assert response.json()["github_stars"] == 42
    assert response.json()["status"] == "beta"

    assert client.delete(url, headers=moderator["headers"]).status_code == 204
    assert client.get(url).status_code == 404


class TestReviews:
    """Test reviews, moderation and helpful votes"""

    def _review(self, client, user, resource, rating=4, content="Clear and practical walkthrough."):
        return client.post(f"/api/resources/{resource['id']}/reviews", headers=user["headers"],
                           json={"rating": rating, "content": content, "pros": ["examples"]})

    def test_review_counts_after_approval(self, client, alice, bob, moderator, resource):
        response = self._review(client, alice, resource, rating=5)
        assert response.status_code == 201
        first = response.json()
        assert first["status"] == "pending"

        assert client.get(f"/api/resources/{resource['id']}").json()["reviews_count"] == 0
        assert client.get(f"/api/resources/{resource['id']}/reviews").json()["reviews"] == []

        pending = client.get(f"/api/resources/{resource['id']}/reviews", headers=moderator["headers"],
                             params={"include_all": True}).json()["reviews"]
        assert [r["id"] for r in pending] == [first["id"]]

        second = self._review(client, bob, resource, rating=2).json()
        for review in (first, second):
            response = client.post(f"/api/resources/reviews/{review['id']}/moderate",
                                   headers=moderator["headers"], json={"status": "approved"})
            assert response.json()["status"] == "approved"

        data = client.get(f"/api/resources/{resource['id']}").json()
        assert data["reviews_count"] == 2
        assert data["average_rating"] == 3.5

    def test_review_validation(self, client, alice, resource):
        assert self._review(client, alice, resource, content="Too short").status_code == 400
        assert self._review(client, alice, resource, rating=6).status_code == 422
        assert self._review(client, alice, resource).status_code == 201
        assert self._review(client, alice, resource).status_code == 409

    def test_moderation_requires_permission(self, client, alice, bob, moderator, resource):
        review = self._review(client, alice, resource).json()
        url = f"/api/resources/reviews/{review['id']}/moderate"
        assert client.post(url, headers=bob["headers"], json={"status": "approved"}).status_code == 403
        assert client.post(url, headers=moderator["headers"], json={"status": "great"}).status_code == 400

    def test_edit_returns_review_to_moderation(self, client, alice, bob, moderator, resource):
        review = self._review(client, alice, resource).json()
        client.post(f"/api/resources/reviews/{review['id']}/moderate", headers=moderator["headers"],
                    json={"status": "approved"})

        url = f"/api/resources/reviews/{review['id']}"
        assert client.patch(url, headers=bob["headers"], json={"rating": 1}).status_code == 403

        response = client.patch(url, headers=alice["headers"], json={"rating": 3})
        assert response.json()["status"] == "pending"
        assert response.json()["rating"] == 3
        assert client.get(f"/api/resources/{resource['id']}").json()["reviews_count"] == 0

    def test_delete_review(self, client, alice, bob, moderator, resource):
        review = self._review(client, alice, resource).json()
        client.post(f"/api/resources/reviews/{review['id']}/moderate", headers=moderator["headers"],
                    json={"status": "approved"})

        url = f"/api/resources/reviews/{review['id']}"
        assert client.delete(url, headers=bob["headers"]).status_code == 403
        assert client.delete(url, headers=alice["headers"]).status_code == 204
        assert client.get(f"/api/resources/{resource['id']}").json()["reviews_count"] == 0

    def test_helpful_votes(self, client, alice, bob, resource):
        review = self._review(client, alice, resource).json()
        url = f"/api/resources/reviews/{review['id']}/vote"

        assert client.post(url, headers=alice["headers"], json={"is_helpful": True}).status_code == 400

        data = client.post(url, headers=bob["headers"], json={"is_helpful": True}).json()
        assert (data["helpful_count"], data["not_helpful_count"]) == (1, 0)

        data = client.post(url, headers=bob["headers"], json={"is_helpful": True}).json()
        assert (data["helpful_count"], data["not_helpful_count"]) == (1, 0)

        data = client.post(url, headers=bob["headers"], json={"is_helpful": False}).json()
        assert (data["helpful_count"], data["not_helpful_count"]) == (0, 1)

        data = client.delete(url, headers=bob["headers"]).json()
        assert (data["helpful_count"], data["not_helpful_count"]) == (0, 0)


class TestComments:
    """Test threaded comments and likes"""

    def _comment(self, client, user, resource, content, parent_id=None):
        payload = {"content": content}
        if parent_id:
            payload["parent_id"] = parent_id
        return client.post(f"/api/resources/{resource['id']}/comments", headers=user["headers"], json=payload)

    def test_comment_tree(self, client, alice, bob, resource):
        root = self._comment(client, alice, resource, "Does this work with MCP?").json()
        assert root["status"] == "approved"
        reply = self._comment(client, bob, resource, "Yes, since 1.0", parent_id=root["id"]).json()
        assert reply["parent_id"] == root["id"]

        comments = client.get(f"/api/resources/{resource['id']}/comments").json()["comments"]
        assert [c["id"] for c in comments] == [root["id"]]
        assert [r["id"] for r in comments[0]["replies"]] == [reply["id"]]
        assert client.get(f"/api/resources/{resource['id']}").json()["comments_count"] == 2

    def test_reply_must_share_resource(self, client, moderator, alice, resource):
        other = _create_resource(client, moderator, title="Other", url="https://example.org/other")
        root = self._comment(client, alice, other, "On another resource").json()
        response = self._comment(client, alice, resource, "Misplaced reply", parent_id=root["id"])
        assert response.status_code == 400

    def test_empty_comment_rejected(self, client, alice, resource):
        assert self._comment(client, alice, resource, "   ").status_code == 400

    def test_edit_and_moderate(self, client, alice, bob, moderator, resource):
        comment = self._comment(client, alice, resource, "First draft").json()
        url = f"/api/resources/comments/{comment['id']}"

        assert client.patch(url, headers=bob["headers"], json={"content": "hijack"}).status_code == 403
        response = client.patch(url, headers=alice["headers"], json={"content": "Second draft"})
        assert response.json()["is_edited"] is True

        assert client.post(f"{url}/moderate", headers=alice["headers"], json={"status": "rejected"}).status_code == 403
        response = client.post(f"{url}/moderate", headers=moderator["headers"], json={"status": "rejected"})
        assert response.json()["status"] == "rejected"
        assert client.get(f"/api/resources/{resource['id']}/comments").json()["comments"] == []
        assert client.get(f"/api/resources/{resource['id']}").json()["comments_count"] == 0

    def test_delete_comment(self, client, alice, bob, moderator, resource):
        first = self._comment(client, alice, resource, "Mine").json()
        second = self._comment(client, alice, resource, "Also mine").json()

        assert client.delete(f"/api/resources/comments/{first['id']}", headers=bob["headers"]).status_code == 403
        assert client.delete(f"/api/resources/comments/{first['id']}", headers=alice["headers"]).status_code == 204
        assert client.delete(f"/api/resources/comments/{second['id']}",
                             headers=moderator["headers"]).status_code == 204
        assert client.get(f"/api/resources/{resource['id']}").json()["comments_count"] == 0

    def test_like_once_per_user(self, client, alice, bob, resource):
        comment = self._comment(client, alice, resource, "Like me").json()
        url = f"/api/resources/comments/{comment['id']}/like"

        response = client.post(url, headers=bob["headers"])
        assert response.json() == {"comment_id": comment["id"], "likes_count": 1, "liked": True}
        assert client.post(url, headers=bob["headers"]).status_code == 409

        response = client.delete(url, headers=bob["headers"])
        assert response.json() == {"comment_id": comment["id"], "likes_count": 0, "liked": False}
        assert client.delete(url, headers=bob["headers"]).status_code == 404

    def test_likes_from_overlapping_sessions_are_all_counted(self, client, db, alice, bob, carol, resource):
        comment = self._comment(client, alice, resource, "Worth a like").json()
        comment_id = UUID(comment["id"])

        other = get_session_local()()
        try:
            stale = other.query(ResourceComment).filter(ResourceComment.id == comment_id).one()
            assert stale.likes_count == 0

            response = client.post(f"/api/resources/comments/{comment['id']}/like", headers=bob["headers"])
            assert response.json()["likes_count"] == 1

            # The other session still holds likes_count == 0 in its identity map
            liked = CommentService(other).like(comment_id, UUID(carol["id"]))
            assert liked.likes_count == 2
        finally:
            other.close()

        db.expire_all()
        comments = client.get(f"/api/resources/{resource['id']}/comments").json()["comments"]
        assert comments[0]["likes_count"] == 2
