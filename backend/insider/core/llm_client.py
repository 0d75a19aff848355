"""
Anthropic Messages API client with streaming and API-key fallback.

A user's personal API key is tried first. When the API rejects it as an
authentication failure the request is retried once with the site key.
"""
import json
import time
from typing import AsyncIterator, Dict, List, Optional, Tuple

import httpx
from pydantic import BaseModel

from insider.core.config import get_settings
from insider.core.errors import LLMError, ServiceUnavailableError
from insider.core.logging_config import LoggingConfig
from insider.core.metrics import (llm_errors_total, llm_key_fallbacks_total,
                                  llm_request_duration_seconds,
                                  llm_requests_total, llm_tokens_total)

logger = LoggingConfig.get_logger(__name__)

MESSAGES_PATH = "/v1/messages"


class LLMResponse(BaseModel):
    """Complete (non-streaming) answer"""
    model: str
    text: str
    input_tokens: int = 0
    output_tokens: int = 0
    stop_reason: Optional[str] = None
    used_site_key: bool = False


class StreamChunk(BaseModel):
    """One piece of a streamed answer"""
    content: str = ""
    done: bool = False


class _AuthRejected(Exception):
    """The API answered 401 for the key in use"""


class LLMClient:
    """
    Client for the Anthropic Messages API.

    ``transport`` lets tests plug in ``httpx.MockTransport``.
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._settings = None
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def settings(self):
        """Lazy load settings"""
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    def is_configured(self, user_api_key: Optional[str] = None) -> bool:
        return bool(user_api_key or self.settings.anthropic_api_key)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.settings.anthropic_base_url,
                timeout=float(self.settings.llm_timeout_seconds),
                transport=self._transport,
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
            )
        return self._client

    def _keys(self, user_api_key: Optional[str]) -> List[Tuple[str, bool]]:
        """Keys to try in order, each paired with whether it is the site key"""
        keys = []
        if user_api_key:
            keys.append((user_api_key, False))
        site_key = self.settings.anthropic_api_key
        if site_key and site_key != user_api_key:
            keys.append((site_key, True))
        if not keys:
            raise ServiceUnavailableError("AI assistant is not configured")
        return keys

    def _headers(self, api_key: str) -> Dict[str, str]:
        return {
            "x-api-key": api_key,
            "anthropic-version": self.settings.anthropic_version,
            "content-type": "application/json",
        }

    def _payload(
        self,
        messages: List[Dict[str, str]],
        system: Optional[str],
        model: str,
        max_tokens: Optional[int],
        stream: bool
    ) -> Dict:
        payload = {
            "model": model,
            "max_tokens": max_tokens or self.settings.llm_max_tokens,
            "messages": messages,
        }
        if system:
            payload["system"] = system
        if stream:
            payload["stream"] = True
        return payload

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            return response.json().get("error", {}).get("message") or response.text
        except (ValueError, AttributeError):
            return response.text

    async def generate(
        self,
        messages: List[Dict[str, str]],
        system: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        user_api_key: Optional[str] = None,
        feature: str = "chat"
    ) -> LLMResponse:
        """
        Generate a complete answer.

        Args:
            messages: Conversation in Messages API format (``role``/``content``)
            system: System prompt
            model: Model name, defaults to the configured model
            max_tokens: Answer token cap, defaults to the configured value
            user_api_key: Caller's personal key, tried before the site key
            feature: Label for metrics (``chat``, ``mention``, ...)

        Raises:
            ServiceUnavailableError: No API key is available
            LLMError: The API failed or returned an error
        """
        model = model or self.settings.llm_model
        payload = self._payload(messages, system, model, max_tokens, stream=False)
        client = await self._get_client()
        keys = self._keys(user_api_key)
        start = time.time()

        for position, (api_key, is_site_key) in enumerate(keys):
            try:
                response = await client.post(MESSAGES_PATH, json=payload, headers=self._headers(api_key))
            except httpx.HTTPError as e:
                self._record_error(model, feature, type(e).__name__)
                raise LLMError(f"LLM request failed: {e}") from e

            if response.status_code == 401 and position + 1 < len(keys):
                logger.warning("User API key rejected, retrying with site key")
                llm_key_fallbacks_total.inc()
                continue
            if response.status_code >= 400:
                self._record_error(model, feature, f"http_{response.status_code}")
                raise LLMError(f"LLM API error ({response.status_code}): {self._error_message(response)}")

            data = response.json()
            text = "".join(
                block.get("text", "") for block in data.get("content", []) if block.get("type") == "text"
            )
            usage = data.get("usage", {})
            result = LLMResponse(
                model=data.get("model", model),
                text=text,
                input_tokens=usage.get("input_tokens", 0),
                output_tokens=usage.get("output_tokens", 0),
                stop_reason=data.get("stop_reason"),
                used_site_key=is_site_key,
            )
            self._record_success(model, feature, time.time() - start, result.input_tokens, result.output_tokens)
            return result

        # Only reachable when every key was rejected
        self._record_error(model, feature, "authentication")
        raise LLMError("LLM API rejected all API keys")

    async def generate_stream(
        self,
        messages: List[Dict[str, str]],
        system: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        user_api_key: Optional[str] = None,
        feature: str = "chat"
    ) -> AsyncIterator[StreamChunk]:
        """
        Stream an answer as text deltas.

        Key fallback happens before the first chunk is yielded. The last
        chunk has ``done=True``.
        """
        model = model or self.settings.llm_model
        payload = self._payload(messages, system, model, max_tokens, stream=True)
        client = await self._get_client()
        keys = self._keys(user_api_key)
        start = time.time()

        for position, (api_key, _) in enumerate(keys):
            try:
                async for chunk in self._stream_once(client, payload, api_key, model, feature, start):
                    yield chunk
                return
            except _AuthRejected:
                if position + 1 < len(keys):
                    logger.warning("User API key rejected, retrying stream with site key")
                    llm_key_fallbacks_total.inc()
                    continue
                self._record_error(model, feature, "authentication")
                raise LLMError("LLM API rejected all API keys")
            except httpx.HTTPError as e:
                self._record_error(model, feature, type(e).__name__)
                raise LLMError(f"LLM stream failed: {e}") from e

    async def _stream_once(
        self,
        client: httpx.AsyncClient,
        payload: Dict,
        api_key: str,
        model: str,
        feature: str,
        start: float
    ) -> AsyncIterator[StreamChunk]:
        input_tokens = 0
        output_tokens = 0
        async with client.stream("POST", MESSAGES_PATH, json=payload, headers=self._headers(api_key)) as response:
            if response.status_code == 401:
                raise _AuthRejected()
            if response.status_code >= 400:
                body = (await response.aread()).decode("utf-8", errors="replace")
                self._record_error(model, feature, f"http_{response.status_code}")
                raise LLMError(f"LLM API error ({response.status_code}): {body}")

            async for line in response.aiter_lines():
                if not line.startswith("data:"):
                    continue
                try:
                    event = json.loads(line[len("data:"):].strip())
                except json.JSONDecodeError:
                    continue

                event_type = event.get("type")
                if event_type == "content_block_delta":
                    text = event.get("delta", {}).get("text", "")
                    if text:
                        yield StreamChunk(content=text)
                elif event_type == "message_start":
                    input_tokens = event.get("message", {}).get("usage", {}).get("input_tokens", 0)
                elif event_type == "message_delta":
                    output_tokens = event.get("usage", {}).get("output_tokens", output_tokens)
                elif event_type == "error":
                    message = event.get("error", {}).get("message", "stream error")
                    self._record_error(model, feature, "stream_error")
                    raise LLMError(f"LLM stream error: {message}")
                elif event_type == "message_stop":
                    break

        self._record_success(model, feature, time.time() - start, input_tokens, output_tokens)
        yield StreamChunk(done=True)

    def _record_success(self, model: str, feature: str, duration: float, input_tokens: int, output_tokens: int):
        llm_requests_total.labels(model=model, feature=feature, status="success").inc()
        llm_request_duration_seconds.labels(model=model, feature=feature).observe(duration)
        llm_tokens_total.labels(model=model, type="input").inc(input_tokens)
        llm_tokens_total.labels(model=model, type="output").inc(output_tokens)

    def _record_error(self, model: str, feature: str, error_type: str):
        llm_requests_total.labels(model=model, feature=feature, status="error").inc()
        llm_errors_total.labels(model=model, error_type=error_type).inc()
        logger.error(f"LLM request failed: model={model} feature={feature} error={error_type}")

    async def close(self):
        """Close the HTTP client"""
        if self._client is not None:
            await self._client.aclose()
            self._client = None


# Global client instance
_llm_client: Optional[LLMClient] = None


def get_llm_client() -> LLMClient:
    """Get global LLM client instance"""
    global _llm_client
    if _llm_client is None:
        _llm_client = LLMClient()
    return _llm_client
