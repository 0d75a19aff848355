"""
Tests for the assistant API: documentation chat, search and DM mentions
"""
import json

import httpx
import pytest

from insider.api.routes.assistant import get_assistant_service
from insider.core.config import get_settings
from insider.core.llm_client import LLMClient
from insider.models.ai_consent import AIAccessLog
from insider.services.assistant_service import AssistantService
from insider.services.rag_service import DocumentIndex


class FakeAnthropic:
    """Records Messages API requests and answers with canned text"""

    def __init__(self, text="Install it with npm, see [Installation](/docs/getting-started/installation)."):
        self.text = text
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append(body)
        if body.get("stream"):
            events = [
                {"type": "message_start", "message": {"usage": {"input_tokens": 3}}},
                {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "Streamed "}},
                {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "answer"}},
                {"type": "message_stop"},
            ]
            content = "".join(f"data: {json.dumps(e)}\n\n" for e in events)
            return httpx.Response(200, content=content.encode("utf-8"))
        return httpx.Response(200, json={
            "model": "claude-test",
            "content": [{"type": "text", "text": self.text}],
            "stop_reason": "end_turn",
            "usage": {"input_tokens": 20, "output_tokens": 10},
        })


@pytest.fixture
def fake_llm():
    return FakeAnthropic()


@pytest.fixture
def assistant_client(client, db, docs_dir, fake_llm):
    """Test client whose assistant uses the fake API and the sample docs"""
    from main import app

    llm = LLMClient(transport=httpx.MockTransport(fake_llm))
    llm._settings = get_settings().model_copy(update={"anthropic_api_key": "site-key"})
    index = DocumentIndex(docs_dir)

    app.dependency_overrides[get_assistant_service] = lambda: AssistantService(db, llm=llm, index=index)
    yield client


def test_chat_uses_documentation_context(assistant_client, fake_llm):
    response = assistant_client.post("/api/assistant/chat", json={
        "message": "How do I install the CLI with npm?",
        "history": [
            {"role": "user", "content": "Hi"},
            {"role": "assistant", "content": "Hello! Ask me anything."},
            {"role": "system", "content": "ignored"},
        ],
    })
    assert response.status_code == 200
    data = response.json()
    assert data["answer"].startswith("Install it with npm")
    assert data["model"] == "claude-test"
    assert data["usage"] == {"input_tokens": 20, "output_tokens": 10}
    assert data["sources"][0]["url"] == "/docs/getting-started/installation"

    sent = fake_llm.requests[0]
    assert [m["role"] for m in sent["messages"]] == ["user", "assistant", "user"]
    assert "RELEVANT DOCUMENTATION" in sent["messages"][-1]["content"]
    assert "Claude Insider" in sent["system"]


def test_chat_stream(assistant_client):
    response = assistant_client.post("/api/assistant/chat/stream", json={"message": "permission rules"})
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")

    events = [json.loads(line[len("data: "):]) for line in response.text.splitlines() if line.startswith("data: ")]
    assert "".join(e["content"] for e in events) == "Streamed answer"
    assert events[-1]["done"] is True


def test_chat_requires_message(assistant_client):
    assert assistant_client.post("/api/assistant/chat", json={"message": ""}).status_code == 422


def test_search(assistant_client):
    response = assistant_client.get("/api/assistant/search", params={"q": "environment variables"})
    assert response.status_code == 200
    results = response.json()["results"]
    assert results[0]["section"] == "Environment variables"
    assert results[0]["category"] == "Configuration"
    assert results[0]["score"] > 0


def test_chat_without_api_key(client, db, docs_dir):
    from main import app

    llm = LLMClient(transport=httpx.MockTransport(FakeAnthropic()))
    llm._settings = get_settings().model_copy(update={"anthropic_api_key": None})
    app.dependency_overrides[get_assistant_service] = lambda: AssistantService(
        db, llm=llm, index=DocumentIndex(docs_dir)
    )

    response = client.post("/api/assistant/chat", json={"message": "hello there"})
    assert response.status_code == 503
    assert response.json()["type"] == "ServiceUnavailableError"


class TestMentions:
    """Test @claudeinsider replies in direct messages"""

    def _conversation(self, client, alice, bob, e2ee=False):
        response = client.post("/api/messages/conversations", headers=alice["headers"],
                               json={"participant_ids": [bob["id"]], "e2ee": e2ee})
        return response.json()["id"]

    def test_plaintext_mention(self, assistant_client, alice, bob, fake_llm):
        cid = self._conversation(assistant_client, alice, bob)
        trigger = assistant_client.post(
            f"/api/messages/conversations/{cid}/messages",
            headers=alice["headers"],
            json={"content": "@claudeinsider how do I install the CLI?"},
        ).json()

        response = assistant_client.post(f"/api/assistant/conversations/{cid}/mention", headers=alice["headers"],
                                         json={"trigger_message_id": trigger["id"]})
        assert response.status_code == 200
        reply = response.json()
        assert reply["is_ai_generated"] is True
        assert reply["sender_id"] is None
        assert reply["ai_response_to"] == trigger["id"]
        assert reply["content"] == fake_llm.text

        sent = fake_llm.requests[0]
        assert sent["max_tokens"] == get_settings().llm_mention_max_tokens
        assert sent["messages"][-1]["content"].startswith('User\'s question: "how do I install the CLI?"')

        conversations = assistant_client.get("/api/messages/conversations",
                                             headers=bob["headers"]).json()["conversations"]
        assert conversations[0]["unread_count"] == 2

    def test_mention_requires_participant(self, assistant_client, alice, bob, carol):
        cid = self._conversation(assistant_client, alice, bob)
        response = assistant_client.post(f"/api/assistant/conversations/{cid}/mention", headers=carol["headers"],
                                         json={"question": "hi"})
        assert response.status_code == 403

    def test_encrypted_mention_blocked_without_consent(self, assistant_client, alice, bob, fake_llm):
        cid = self._conversation(assistant_client, alice, bob, e2ee=True)
        response = assistant_client.post(f"/api/assistant/conversations/{cid}/mention", headers=alice["headers"],
                                         json={"question": "@claudeinsider what is MCP?"})
        assert response.status_code == 403
        assert fake_llm.requests == []

    def test_encrypted_mention_with_consent(self, assistant_client, alice, bob, db, fake_llm):
        cid = self._conversation(assistant_client, alice, bob, e2ee=True)
        for user in (alice, bob):
            assistant_client.post(f"/api/e2ee/ai-consent/{cid}/grant", headers=user["headers"], json={})

        response = assistant_client.post(f"/api/assistant/conversations/{cid}/mention", headers=alice["headers"],
                                         json={"device_id": "ALICE1"})
        assert response.status_code == 400

        response = assistant_client.post(f"/api/assistant/conversations/{cid}/mention", headers=alice["headers"], json={
            "question": "@claudeinsider what are permission rules?",
            "context_messages": [
                {"content": "Earlier AI answer", "is_ai_generated": True},
                {"content": "Thanks!", "is_ai_generated": False},
            ],
            "device_id": "ALICE1",
        })
        assert response.status_code == 200
        assert response.json()["is_ai_generated"] is True
        assert response.json()["is_encrypted"] is False

        sent = fake_llm.requests[-1]
        assert sent["messages"][0]["role"] == "user"
        assert "permission rules" in sent["messages"][-1]["content"]

        entries = db.query(AIAccessLog).all()
        assert len(entries) == 1
        assert entries[0].feature_used == "mention_response"
        assert entries[0].authorizing_device_id == "ALICE1"


def test_tts_not_configured(assistant_client, alice):
    response = assistant_client.post("/api/assistant/tts", headers=alice["headers"], json={"text": "Hello"})
    assert response.status_code == 503
