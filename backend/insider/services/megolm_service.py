"""
Megolm group-session key distribution and rotation bookkeeping
"""
from datetime import timedelta
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from insider.core.config import get_settings
from insider.core.errors import ValidationError
from insider.core.logging_config import LoggingConfig
from insider.core.metrics import e2ee_megolm_shares_total
from insider.core.utils import utcnow
from insider.models.e2ee import ConversationE2EESettings, MegolmSessionShare
from insider.services.messaging_service import MessagingService

logger = LoggingConfig.get_logger(__name__)


class MegolmService:
    """Stores per-device session key shares and tracks the current outbound session"""

    def __init__(self, db: Session):
        self.db = db
        self.settings = get_settings()
        self.messaging = MessagingService(db)

    def share_session(
        self,
        conversation_id: UUID,
        session_id: str,
        sender_user_id: UUID,
        sender_device_id: str,
        shares: List[Dict[str, Any]],
        first_known_index: int = 0
    ) -> int:
        """
        Store a session key share per recipient device.

        Shares for a ``(session_id, recipient_device_id)`` pair that already
        exists are skipped.

        Returns:
            Number of shares inserted
        """
        if not shares:
            raise ValidationError("No session key shares provided")

        self.messaging.require_participant(conversation_id, sender_user_id)
        members = set(self.messaging.participant_ids(conversation_id))

        for share in shares:
            if share["recipient_user_id"] not in members:
                raise ValidationError(f"User {share['recipient_user_id']} is not a participant")

        recipient_devices = [s["recipient_device_id"] for s in shares]
        existing = {
            device_id for (device_id,) in self.db.query(MegolmSessionShare.recipient_device_id).filter(
                MegolmSessionShare.session_id == session_id,
                MegolmSessionShare.recipient_device_id.in_(recipient_devices)
            ).all()
        }

        inserted = 0
        for share in shares:
            device_id = share["recipient_device_id"]
            if device_id in existing:
                continue
            existing.add(device_id)
            self.db.add(MegolmSessionShare(
                conversation_id=conversation_id,
                session_id=session_id,
                sender_user_id=sender_user_id,
                sender_device_id=sender_device_id,
                recipient_user_id=share["recipient_user_id"],
                recipient_device_id=device_id,
                encrypted_session_key=share["encrypted_session_key"],
                key_algorithm=share.get("key_algorithm") or "olm.v1",
                first_known_index=first_known_index,
            ))
            inserted += 1

        self.db.commit()
        e2ee_megolm_shares_total.inc(inserted)
        logger.info(f"Shared Megolm session {session_id} with {inserted} devices in conversation {conversation_id}")
        return inserted

    def claim_sessions(self, user_id: UUID, device_id: str) -> List[MegolmSessionShare]:
        """Return every unclaimed share for a device and mark them claimed"""
        shares = self.db.query(MegolmSessionShare).filter(
            MegolmSessionShare.recipient_user_id == user_id,
            MegolmSessionShare.recipient_device_id == device_id,
            MegolmSessionShare.claimed_at.is_(None)
        ).order_by(MegolmSessionShare.created_at).with_for_update(skip_locked=True).all()

        now = utcnow()
        for share in shares:
            share.claimed_at = now
        self.db.commit()

        if shares:
            logger.info(f"Device {device_id} claimed {len(shares)} Megolm session shares")
        return shares

    def get_settings_row(self, conversation_id: UUID) -> Optional[ConversationE2EESettings]:
        return self.db.query(ConversationE2EESettings).filter(
            ConversationE2EESettings.conversation_id == conversation_id
        ).first()

    def rotate_session(self, conversation_id: UUID, user_id: UUID, new_session_id: str) -> ConversationE2EESettings:
        """Record a new outbound session and reset the rotation counters"""
        self.messaging.require_participant(conversation_id, user_id)
        row = self.get_settings_row(conversation_id)
        if row is None:
            # Rotating keys never changes whether plaintext is accepted
            row = ConversationE2EESettings(conversation_id=conversation_id, e2ee_required=False)
            self.db.add(row)

        row.current_session_id = new_session_id
        row.current_session_created_at = utcnow()
        row.session_message_count = 0
        row.updated_at = utcnow()

        self.db.commit()
        self.db.refresh(row)
        logger.info(f"Rotated Megolm session for conversation {conversation_id}")
        return row

    def needs_rotation(self, conversation_id: UUID) -> Dict[str, Any]:
        row = self.get_settings_row(conversation_id)
        reason = None
        if row is None or not row.current_session_id:
            reason = "no_session"
        elif row.session_message_count >= self.settings.megolm_rotation_messages:
            reason = "message_limit"
        elif row.current_session_created_at and (
            utcnow() - row.current_session_created_at >= timedelta(days=self.settings.megolm_rotation_days)
        ):
            reason = "max_age"

        return {
            "needs_rotation": reason is not None,
            "reason": reason,
            "current_session_id": row.current_session_id if row else None,
            "session_message_count": row.session_message_count if row else 0,
            "current_session_created_at": (
                row.current_session_created_at.isoformat()
                if row and row.current_session_created_at else None
            ),
        }
