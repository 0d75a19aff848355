"""
Consent tracking for AI access to end-to-end encrypted conversations.

The server cannot read encrypted messages; a participant's client decrypts
and forwards content to the assistant only when the conversation's consent
requirement is met. Every such access is recorded in the access log.
"""
import hashlib
from datetime import timedelta
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from insider.core.errors import ValidationError
from insider.core.logging_config import LoggingConfig
from insider.core.metrics import ai_consent_checks_total
from insider.core.utils import utcnow
from insider.models.ai_consent import (AIAccessLog, AIConsent, AIFeature,
                                       ConsentStatus, ConversationAISettings)
from insider.services.messaging_service import MessagingService

logger = LoggingConfig.get_logger(__name__)

FEATURES = [f.value for f in AIFeature]


class AIConsentService:
    def __init__(self, db: Session):
        self.db = db
        self.messaging = MessagingService(db)

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def get_settings_row(self, conversation_id: UUID) -> Optional[ConversationAISettings]:
        return self.db.query(ConversationAISettings).filter(
            ConversationAISettings.conversation_id == conversation_id
        ).first()

    def _ensure_settings_row(self, conversation_id: UUID) -> ConversationAISettings:
        row = self.get_settings_row(conversation_id)
        if row is None:
            row = ConversationAISettings(
                conversation_id=conversation_id,
                ai_allowed=False,
                require_unanimous_consent=True,
                enabled_features=[AIFeature.MENTION_RESPONSE.value],
            )
            self.db.add(row)
            self.db.flush()
        return row

    def update_settings(
        self,
        conversation_id: UUID,
        user_id: UUID,
        require_unanimous_consent: Optional[bool] = None,
        enabled_features: Optional[List[str]] = None,
        consent_expiry_days: Optional[int] = None
    ) -> ConversationAISettings:
        self.messaging.require_participant(conversation_id, user_id)
        row = self._ensure_settings_row(conversation_id)

        if require_unanimous_consent is not None:
            row.require_unanimous_consent = require_unanimous_consent
        if enabled_features is not None:
            self._check_features(enabled_features)
            row.enabled_features = list(enabled_features)
        if consent_expiry_days is not None:
            if consent_expiry_days < 1:
                raise ValidationError("consent_expiry_days must be positive")
            row.consent_expiry_days = consent_expiry_days

        row.ai_allowed = any(self._consent_sufficient(conversation_id, row, f) for f in row.enabled_features or [])
        row.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(row)
        logger.info(f"AI settings updated for conversation {conversation_id} by {user_id}")
        return row

    # ------------------------------------------------------------------
    # Consent
    # ------------------------------------------------------------------

    def get_consent(self, conversation_id: UUID, user_id: UUID) -> Optional[AIConsent]:
        return self.db.query(AIConsent).filter(
            AIConsent.conversation_id == conversation_id,
            AIConsent.user_id == user_id
        ).first()

    def _upsert_consent(self, conversation_id: UUID, user_id: UUID) -> AIConsent:
        consent = self.get_consent(conversation_id, user_id)
        if consent is None:
            consent = AIConsent(conversation_id=conversation_id, user_id=user_id)
            self.db.add(consent)
        consent.updated_at = utcnow()
        return consent

    def grant(
        self,
        conversation_id: UUID,
        user_id: UUID,
        features: Optional[List[str]] = None,
        device_id: Optional[str] = None,
        reason: Optional[str] = None
    ) -> AIConsent:
        """
        Grant consent for the given features.

        AI access is switched on for the conversation once the consent
        requirement is met for one of its enabled features.
        """
        self.messaging.require_participant(conversation_id, user_id)
        features = features or [AIFeature.MENTION_RESPONSE.value]
        self._check_features(features)
        settings = self._ensure_settings_row(conversation_id)

        now = utcnow()
        consent = self._upsert_consent(conversation_id, user_id)
        consent.consent_status = ConsentStatus.GRANTED.value
        consent.allowed_features = list(dict.fromkeys(features))
        consent.consent_given_at = now
        consent.consent_expires_at = (
            now + timedelta(days=settings.consent_expiry_days) if settings.consent_expiry_days else None
        )
        consent.consent_reason = reason
        consent.device_id = device_id
        self.db.flush()

        if not settings.ai_allowed and any(
            self._consent_sufficient(conversation_id, settings, f) for f in settings.enabled_features or []
        ):
            settings.ai_allowed = True
            settings.updated_at = now
            logger.info(f"AI access enabled for conversation {conversation_id}")

        self.db.commit()
        self.db.refresh(consent)
        return consent

    def deny(self, conversation_id: UUID, user_id: UUID, reason: Optional[str] = None) -> AIConsent:
        return self._withdraw(conversation_id, user_id, ConsentStatus.DENIED, reason)

    def revoke(self, conversation_id: UUID, user_id: UUID, reason: Optional[str] = None) -> AIConsent:
        return self._withdraw(conversation_id, user_id, ConsentStatus.REVOKED, reason)

    def _withdraw(self, conversation_id: UUID, user_id: UUID, status: ConsentStatus, reason: Optional[str]) -> AIConsent:
        self.messaging.require_participant(conversation_id, user_id)
        consent = self._upsert_consent(conversation_id, user_id)
        consent.consent_status = status.value
        consent.allowed_features = []
        consent.consent_reason = reason
        self.db.flush()

        settings = self.get_settings_row(conversation_id)
        if settings and settings.ai_allowed:
            if settings.require_unanimous_consent or not any(
                self._consent_sufficient(conversation_id, settings, f) for f in settings.enabled_features or []
            ):
                settings.ai_allowed = False
                settings.updated_at = utcnow()
                logger.info(f"AI access disabled for conversation {conversation_id} after consent {status.value}")

        self.db.commit()
        self.db.refresh(consent)
        return consent

    def _granted_count(self, conversation_id: UUID, feature: str) -> int:
        now = utcnow()
        consents = self.db.query(AIConsent).filter(
            AIConsent.conversation_id == conversation_id,
            AIConsent.consent_status == ConsentStatus.GRANTED.value
        ).all()
        return sum(
            1 for c in consents
            if feature in (c.allowed_features or [])
            and (c.consent_expires_at is None or c.consent_expires_at > now)
        )

    def _consent_sufficient(self, conversation_id: UUID, settings: ConversationAISettings, feature: str) -> bool:
        if feature not in (settings.enabled_features or []):
            return False
        participants = len(self.messaging.participant_ids(conversation_id))
        granted = self._granted_count(conversation_id, feature)
        if settings.require_unanimous_consent:
            return participants > 0 and granted == participants
        return granted > participants / 2

    def check_consent(self, conversation_id: UUID, feature: str) -> Dict[str, Any]:
        """Whether the assistant may process content of this conversation for a feature"""
        settings = self.get_settings_row(conversation_id)
        participants = len(self.messaging.participant_ids(conversation_id))
        granted = self._granted_count(conversation_id, feature)

        if settings is None:
            allowed, reason = False, "AI not configured for this conversation"
        elif not settings.ai_allowed:
            allowed, reason = False, "AI access is disabled for this conversation"
        elif feature not in (settings.enabled_features or []):
            allowed, reason = False, f"Feature '{feature}' is not enabled"
        elif self._consent_sufficient(conversation_id, settings, feature):
            allowed, reason = True, None
        else:
            allowed, reason = False, "Not enough participants have consented"

        ai_consent_checks_total.labels(feature=feature, result="allowed" if allowed else "denied").inc()
        return {
            "allowed": allowed,
            "reason": reason,
            "granted_count": granted,
            "participant_count": participants,
            "require_unanimous_consent": settings.require_unanimous_consent if settings else True,
        }

    def consent_status(self, conversation_id: UUID, user_id: UUID) -> Dict[str, Any]:
        self.messaging.require_participant(conversation_id, user_id)
        settings = self.get_settings_row(conversation_id)
        consents = {
            c.user_id: c for c in self.db.query(AIConsent).filter(AIConsent.conversation_id == conversation_id).all()
        }
        participants = self.messaging.participant_ids(conversation_id)
        entries = []
        missing = []
        for pid in participants:
            consent = consents.get(pid)
            status = consent.consent_status if consent else ConsentStatus.PENDING.value
            if status != ConsentStatus.GRANTED.value:
                missing.append(str(pid))
            entries.append({
                "user_id": str(pid),
                "status": status,
                "allowed_features": (consent.allowed_features or []) if consent else [],
                "consent_given_at": consent.consent_given_at.isoformat() if consent and consent.consent_given_at else None,
                "consent_expires_at": (
                    consent.consent_expires_at.isoformat() if consent and consent.consent_expires_at else None
                ),
            })
        return {
            "conversation_id": str(conversation_id),
            "ai_allowed": settings.ai_allowed if settings else False,
            "require_unanimous_consent": settings.require_unanimous_consent if settings else True,
            "enabled_features": (settings.enabled_features or []) if settings else [AIFeature.MENTION_RESPONSE.value],
            "consent_expiry_days": settings.consent_expiry_days if settings else None,
            "participants": entries,
            "missing_consent": missing,
        }

    # ------------------------------------------------------------------
    # Access log
    # ------------------------------------------------------------------

    def log_access(
        self,
        conversation_id: UUID,
        authorizing_user_id: UUID,
        feature: str,
        content: Optional[str] = None,
        message_id: Optional[UUID] = None,
        device_id: Optional[str] = None,
        model: Optional[str] = None
    ) -> AIAccessLog:
        self.messaging.require_participant(conversation_id, authorizing_user_id)
        self._check_features([feature])
        entry = AIAccessLog(
            conversation_id=conversation_id,
            message_id=message_id,
            authorizing_user_id=authorizing_user_id,
            authorizing_device_id=device_id,
            feature_used=feature,
            content_hash=hashlib.sha256(content.encode("utf-8")).hexdigest() if content is not None else None,
            ai_model_used=model,
        )
        self.db.add(entry)
        self.db.commit()
        self.db.refresh(entry)
        return entry

    def list_access_log(self, conversation_id: UUID, user_id: UUID, limit: int = 50) -> List[AIAccessLog]:
        self.messaging.require_participant(conversation_id, user_id)
        return self.db.query(AIAccessLog).filter(
            AIAccessLog.conversation_id == conversation_id
        ).order_by(AIAccessLog.created_at.desc()).limit(limit).all()

    @staticmethod
    def _check_features(features: List[str]) -> None:
        invalid = [f for f in features if f not in FEATURES]
        if invalid:
            raise ValidationError(f"Unknown AI features: {invalid}. Allowed: {FEATURES}")
