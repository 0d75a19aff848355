"""
AI assistant: documentation chat, DM mention replies and text-to-speech
"""
import re
from typing import Any, AsyncIterator, Dict, List, Optional
from uuid import UUID

import httpx
from sqlalchemy.orm import Session

from insider.core.config import get_settings
from insider.core.errors import (LLMError, NotFoundError,
                                 PermissionDeniedError, ServiceUnavailableError,
                                 ValidationError)
from insider.core.llm_client import LLMClient, StreamChunk, get_llm_client
from insider.core.logging_config import LoggingConfig
from insider.models.ai_consent import AIFeature
from insider.models.e2ee import ConversationE2EESettings
from insider.models.messaging import DMMessage
from insider.models.user import User
from insider.services.ai_consent_service import AIConsentService
from insider.services.messaging_service import MessagingService
from insider.services.rag_service import DocumentIndex, get_document_index

logger = LoggingConfig.get_logger(__name__)

MENTION_RE = re.compile(r'@claudeinsider', re.IGNORECASE)
MENTION_CONTEXT_MESSAGES = 6
MAX_HISTORY_MESSAGES = 20

CHAT_SYSTEM_PROMPT = """You are Claude Insider, the AI assistant for the Claude Insider documentation website.

Answer questions about Claude, Claude Code and the Anthropic ecosystem. Prefer the documentation \
excerpts you are given and link to pages with markdown links such as [title](/docs/path). \
If the documentation does not cover the question, say so and point to /docs."""

DM_SYSTEM_PROMPT = """You are Claude Insider, the AI assistant for the Claude Insider documentation website.

You are responding to a @mention in a direct message conversation. Keep the answer to 2-4 \
friendly, conversational sentences, link to relevant docs using markdown ([title](/docs/path)), \
do not use headers or bullet points and do not repeat the question. If you are unsure, \
suggest the main docs page at /docs."""


class AssistantService:
    """Chat, search and mention replies backed by the documentation index"""

    def __init__(self, db: Optional[Session] = None, llm: Optional[LLMClient] = None,
                 index: Optional[DocumentIndex] = None):
        self.db = db
        self.llm = llm or get_llm_client()
        self.index = index or get_document_index()
        self.settings = get_settings()

    # ------------------------------------------------------------------
    # Documentation chat
    # ------------------------------------------------------------------

    def search(self, query: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        return [
            {**r.chunk.to_dict(), "score": round(r.score, 4), "excerpt": r.chunk.content[:300]}
            for r in self.index.search(query, limit)
        ]

    def _chat_messages(self, message: str, history: Optional[List[Dict[str, str]]]) -> List[Dict[str, str]]:
        if not message or not message.strip():
            raise ValidationError("Message is required")
        messages = []
        for item in (history or [])[-MAX_HISTORY_MESSAGES:]:
            role = item.get("role")
            content = item.get("content")
            if role in ("user", "assistant") and content:
                messages.append({"role": role, "content": content})

        context = self.index.context_for(message)
        messages.append({"role": "user", "content": f"{message}{context}"})
        return messages

    def _sources(self, message: str) -> List[Dict[str, Any]]:
        return [r.chunk.to_dict() for r in self.index.search(message, 3)]

    async def chat(self, message: str, history: Optional[List[Dict[str, str]]] = None,
                   user: Optional[User] = None) -> Dict[str, Any]:
        messages = self._chat_messages(message, history)
        response = await self.llm.generate(
            messages,
            system=CHAT_SYSTEM_PROMPT,
            user_api_key=user.anthropic_api_key if user else None,
            feature="chat",
        )
        return {
            "answer": response.text,
            "model": response.model,
            "sources": self._sources(message),
            "usage": {"input_tokens": response.input_tokens, "output_tokens": response.output_tokens},
        }

    async def chat_stream(self, message: str, history: Optional[List[Dict[str, str]]] = None,
                          user: Optional[User] = None) -> AsyncIterator[StreamChunk]:
        messages = self._chat_messages(message, history)
        async for chunk in self.llm.generate_stream(
            messages,
            system=CHAT_SYSTEM_PROMPT,
            user_api_key=user.anthropic_api_key if user else None,
            feature="chat_stream",
        ):
            yield chunk

    # ------------------------------------------------------------------
    # DM mentions
    # ------------------------------------------------------------------

    def _is_encrypted(self, conversation_id: UUID, trigger: Optional[DMMessage]) -> bool:
        if trigger is not None and trigger.is_encrypted:
            return True
        settings = self.db.query(ConversationE2EESettings).filter(
            ConversationE2EESettings.conversation_id == conversation_id
        ).first()
        return bool(settings and settings.e2ee_required)

    async def respond_to_mention(
        self,
        conversation_id: UUID,
        user: User,
        trigger_message_id: Optional[UUID] = None,
        question: Optional[str] = None,
        context_messages: Optional[List[Dict[str, Any]]] = None,
        device_id: Optional[str] = None
    ) -> DMMessage:
        """
        Answer an ``@claudeinsider`` mention and store the reply in the conversation.

        For encrypted conversations the server cannot read the messages: the
        caller sends the decrypted question (and optionally the recent
        messages), the conversation's AI consent must allow
        ``mention_response``, and the access is written to the AI access log.
        """
        messaging = MessagingService(self.db)
        messaging.require_participant(conversation_id, user.id)

        trigger = None
        if trigger_message_id is not None:
            trigger = self.db.query(DMMessage).filter(
                DMMessage.id == trigger_message_id,
                DMMessage.conversation_id == conversation_id
            ).first()
            if trigger is None:
                raise NotFoundError("Trigger message not found")

        encrypted = self._is_encrypted(conversation_id, trigger)
        consent = AIConsentService(self.db)
        if encrypted:
            check = consent.check_consent(conversation_id, AIFeature.MENTION_RESPONSE.value)
            if not check["allowed"]:
                raise PermissionDeniedError(f"AI access not permitted: {check['reason']}")
            if not question:
                raise ValidationError("Decrypted question is required for encrypted conversations")
            history = [
                {"is_ai_generated": bool(m.get("is_ai_generated")), "content": m.get("content") or ""}
                for m in (context_messages or [])[-MENTION_CONTEXT_MESSAGES:]
            ]
        else:
            if question is None:
                if trigger is None or not trigger.content:
                    raise ValidationError("A question or trigger message is required")
                question = trigger.content
            history = [
                {"is_ai_generated": m.is_ai_generated, "content": m.content or ""}
                for m in messaging.recent_messages(conversation_id, MENTION_CONTEXT_MESSAGES)
                if not m.is_encrypted
            ]

        user_question = MENTION_RE.sub("", question).strip()
        if not user_question:
            raise ValidationError("Question is empty")

        messages = self._mention_messages(user_question, history)
        response = await self.llm.generate(
            messages,
            system=DM_SYSTEM_PROMPT,
            max_tokens=self.settings.llm_mention_max_tokens,
            user_api_key=user.anthropic_api_key,
            feature="mention",
        )
        if not response.text:
            raise LLMError("Failed to generate response")

        if encrypted:
            consent.log_access(
                conversation_id,
                user.id,
                AIFeature.MENTION_RESPONSE.value,
                content=user_question,
                message_id=trigger.id if trigger else None,
                device_id=device_id,
                model=response.model,
            )

        reply = messaging.send_message(
            conversation_id,
            sender_id=None,
            content=response.text,
            is_ai_generated=True,
            ai_response_to=trigger.id if trigger else None,
        )
        logger.info(f"AI replied to mention in conversation {conversation_id}")
        return reply

    def _mention_messages(self, question: str, history: List[Dict[str, Any]]) -> List[Dict[str, str]]:
        messages = [
            {"role": "assistant" if m["is_ai_generated"] else "user", "content": m["content"]}
            for m in history if m["content"]
        ]
        context = self.index.context_for(question)
        enhanced = f'User\'s question: "{question}"'
        if context:
            enhanced += f"\n\nRelevant documentation context:\n{context}"

        if messages and messages[-1]["role"] == "user":
            messages[-1]["content"] = enhanced
        else:
            messages.append({"role": "user", "content": enhanced})

        # The Messages API requires the first turn to come from the user
        while messages and messages[0]["role"] != "user":
            messages.pop(0)
        return messages

    # ------------------------------------------------------------------
    # Text-to-speech
    # ------------------------------------------------------------------

    async def text_to_speech(self, text: str, voice_id: Optional[str] = None,
                             transport: Optional[httpx.AsyncBaseTransport] = None) -> bytes:
        """Proxy text to the TTS API and return the audio bytes"""
        if not self.settings.tts_api_key:
            raise ServiceUnavailableError("Text-to-speech is not configured")
        if not text or not text.strip():
            raise ValidationError("Text is required")
        if len(text) > self.settings.tts_max_chars:
            raise ValidationError(f"Text must be at most {self.settings.tts_max_chars} characters")

        url = f"{self.settings.tts_api_url.rstrip('/')}/{voice_id or self.settings.tts_default_voice}"
        async with httpx.AsyncClient(timeout=float(self.settings.llm_timeout_seconds), transport=transport) as client:
            try:
                response = await client.post(
                    url,
                    json={"text": text, "model_id": "eleven_turbo_v2_5"},
                    headers={"xi-api-key": self.settings.tts_api_key, "accept": "audio/mpeg"},
                )
            except httpx.HTTPError as e:
                raise LLMError(f"TTS request failed: {e}") from e
        if response.status_code >= 400:
            logger.error(f"TTS API error {response.status_code}: {response.text[:200]}")
            raise LLMError(f"TTS API error ({response.status_code})")
        return response.content
