"""
Tests for the Anthropic Messages API client
"""
import json

import httpx
import pytest

from insider.core.config import get_settings
from insider.core.errors import LLMError, ServiceUnavailableError
from insider.core.llm_client import LLMClient


def _message_response(text="Hello", model="claude-test"):
    return {
        "id": "msg_1",
        "type": "message",
        "model": model,
        "content": [{"type": "text", "text": text}],
        "stop_reason": "end_turn",
        "usage": {"input_tokens": 12, "output_tokens": 5},
    }


def _client(handler, site_key=None) -> LLMClient:
    client = LLMClient(transport=httpx.MockTransport(handler))
    client._settings = get_settings().model_copy(update={"anthropic_api_key": site_key})
    return client


class TestGenerate:
    """Test complete answers"""

    @pytest.mark.asyncio
    async def test_generate_with_site_key(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["key"] = request.headers["x-api-key"]
            seen["version"] = request.headers["anthropic-version"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=_message_response())

        client = _client(handler, site_key="site-key")
        result = await client.generate([{"role": "user", "content": "Hi"}], system="Be brief", max_tokens=100)

        assert result.text == "Hello"
        assert result.model == "claude-test"
        assert result.input_tokens == 12
        assert result.output_tokens == 5
        assert result.stop_reason == "end_turn"
        assert result.used_site_key is True
        assert seen["path"] == "/v1/messages"
        assert seen["key"] == "site-key"
        assert seen["version"] == "2023-06-01"
        assert seen["body"]["system"] == "Be brief"
        assert seen["body"]["max_tokens"] == 100
        assert "stream" not in seen["body"]
        await client.close()

    @pytest.mark.asyncio
    async def test_user_key_is_preferred(self):
        keys = []

        def handler(request):
            keys.append(request.headers["x-api-key"])
            return httpx.Response(200, json=_message_response())

        client = _client(handler, site_key="site-key")
        result = await client.generate([{"role": "user", "content": "Hi"}], user_api_key="user-key")

        assert keys == ["user-key"]
        assert result.used_site_key is False

    @pytest.mark.asyncio
    async def test_rejected_user_key_falls_back_to_site_key(self):
        keys = []

        def handler(request):
            keys.append(request.headers["x-api-key"])
            if request.headers["x-api-key"] == "user-key":
                return httpx.Response(401, json={"error": {"message": "invalid x-api-key"}})
            return httpx.Response(200, json=_message_response())

        client = _client(handler, site_key="site-key")
        result = await client.generate([{"role": "user", "content": "Hi"}], user_api_key="user-key")

        assert keys == ["user-key", "site-key"]
        assert result.used_site_key is True

    @pytest.mark.asyncio
    async def test_rejected_key_without_fallback(self):
        client = _client(lambda request: httpx.Response(401, json={"error": {"message": "invalid"}}))
        with pytest.raises(LLMError):
            await client.generate([{"role": "user", "content": "Hi"}], user_api_key="user-key")

    @pytest.mark.asyncio
    async def test_server_error_is_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request.headers["x-api-key"])
            return httpx.Response(529, json={"error": {"message": "overloaded"}})

        client = _client(handler, site_key="site-key")
        with pytest.raises(LLMError) as exc_info:
            await client.generate([{"role": "user", "content": "Hi"}], user_api_key="user-key")

        assert calls == ["user-key"]
        assert "overloaded" in exc_info.value.detail
        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_no_key_configured(self):
        client = _client(lambda request: httpx.Response(200, json=_message_response()))
        assert client.is_configured() is False
        with pytest.raises(ServiceUnavailableError):
            await client.generate([{"role": "user", "content": "Hi"}])


def _sse(*events) -> bytes:
    lines = []
    for event in events:
        lines.append(f"event: {event['type']}")
        lines.append(f"data: {json.dumps(event)}")
        lines.append("")
    return ("\n".join(lines) + "\n").encode("utf-8")


STREAM_BODY = _sse(
    {"type": "message_start", "message": {"usage": {"input_tokens": 10}}},
    {"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}},
    {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "Hel"}},
    {"type": "ping"},
    {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "lo"}},
    {"type": "message_delta", "delta": {"stop_reason": "end_turn"}, "usage": {"output_tokens": 2}},
    {"type": "message_stop"},
)


class TestStream:
    """Test streamed answers"""

    @pytest.mark.asyncio
    async def test_stream_yields_deltas_then_done(self):
        def handler(request):
            assert json.loads(request.content)["stream"] is True
            return httpx.Response(200, content=STREAM_BODY, headers={"content-type": "text/event-stream"})

        client = _client(handler, site_key="site-key")
        chunks = [c async for c in client.generate_stream([{"role": "user", "content": "Hi"}])]

        assert [c.content for c in chunks if not c.done] == ["Hel", "lo"]
        assert chunks[-1].done is True
        assert sum(1 for c in chunks if c.done) == 1

    @pytest.mark.asyncio
    async def test_stream_falls_back_to_site_key(self):
        def handler(request):
            if request.headers["x-api-key"] == "user-key":
                return httpx.Response(401, json={"error": {"message": "invalid"}})
            return httpx.Response(200, content=STREAM_BODY)

        client = _client(handler, site_key="site-key")
        chunks = [c async for c in client.generate_stream([{"role": "user", "content": "Hi"}],
                                                          user_api_key="user-key")]
        assert "".join(c.content for c in chunks) == "Hello"

    @pytest.mark.asyncio
    async def test_stream_error_event(self):
        body = _sse(
            {"type": "content_block_delta", "delta": {"text": "par"}},
            {"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}},
        )
        client = _client(lambda request: httpx.Response(200, content=body), site_key="site-key")

        received = []
        with pytest.raises(LLMError):
            async for chunk in client.generate_stream([{"role": "user", "content": "Hi"}]):
                received.append(chunk.content)
        assert received == ["par"]
