"""
Direct messaging service
"""
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from insider.core.errors import NotFoundError, PermissionDeniedError, ValidationError
from insider.core.logging_config import LoggingConfig
from insider.core.utils import utcnow
from insider.models.e2ee import ConversationE2EESettings
from insider.models.messaging import (DMConversation, DMMessage, DMParticipant,
                                      EncryptionAlgorithm)
from insider.models.notification import NotificationType
from insider.models.user import User
from insider.services.notification_service import NotificationService

logger = LoggingConfig.get_logger(__name__)


class MessagingService:
    """Conversations, participants and messages"""

    def __init__(self, db: Session):
        self.db = db

    def get_conversation(self, conversation_id: UUID) -> DMConversation:
        conversation = self.db.query(DMConversation).filter(DMConversation.id == conversation_id).first()
        if not conversation:
            raise NotFoundError("Conversation not found")
        return conversation

    def get_participant(self, conversation_id: UUID, user_id: UUID) -> Optional[DMParticipant]:
        return self.db.query(DMParticipant).filter(
            DMParticipant.conversation_id == conversation_id,
            DMParticipant.user_id == user_id
        ).first()

    def require_participant(self, conversation_id: UUID, user_id: UUID) -> DMParticipant:
        self.get_conversation(conversation_id)
        participant = self.get_participant(conversation_id, user_id)
        if not participant:
            raise PermissionDeniedError("Not a participant in this conversation")
        return participant

    def participant_ids(self, conversation_id: UUID) -> List[UUID]:
        rows = self.db.query(DMParticipant.user_id).filter(
            DMParticipant.conversation_id == conversation_id
        ).all()
        return [user_id for (user_id,) in rows]

    def start_conversation(self, creator_id: UUID, participant_ids: List[UUID], e2ee: bool = False) -> DMConversation:
        """
        Create a conversation between the creator and the given users.

        An existing two-person conversation with the same pair is returned instead
        of creating a duplicate. Asking for ``e2ee`` on a reused plaintext
        conversation upgrades it to require encryption; a conversation that
        already requires encryption is never downgraded.
        """
        members = list(dict.fromkeys([creator_id, *participant_ids]))
        if len(members) < 2:
            raise ValidationError("A conversation needs at least one other participant")

        found = self.db.query(User.id).filter(User.id.in_(members)).count()
        if found != len(members):
            raise NotFoundError("One or more participants not found")

        if len(members) == 2:
            existing = self._find_direct_conversation(members[0], members[1])
            if existing:
                if e2ee and not self.is_e2ee_required(existing.id):
                    self._require_e2ee(existing.id)
                    self.db.commit()
                    self.db.refresh(existing)
                    logger.info(f"Conversation {existing.id} upgraded to end-to-end encryption")
                return existing

        conversation = DMConversation(created_by=creator_id)
        self.db.add(conversation)
        self.db.flush()
        for user_id in members:
            self.db.add(DMParticipant(
                conversation_id=conversation.id,
                user_id=user_id,
                e2ee_enabled=e2ee,
            ))
        if e2ee:
            self._require_e2ee(conversation.id)

        self.db.commit()
        self.db.refresh(conversation)
        logger.info(f"Started conversation {conversation.id} with {len(members)} participants")
        return conversation

    def is_e2ee_required(self, conversation_id: UUID) -> bool:
        settings = self.db.query(ConversationE2EESettings).filter(
            ConversationE2EESettings.conversation_id == conversation_id
        ).first()
        return bool(settings and settings.e2ee_required)

    def _require_e2ee(self, conversation_id: UUID) -> None:
        settings = self.db.query(ConversationE2EESettings).filter(
            ConversationE2EESettings.conversation_id == conversation_id
        ).first()
        if settings is None:
            self.db.add(ConversationE2EESettings(conversation_id=conversation_id, e2ee_required=True))
        else:
            settings.e2ee_required = True
            settings.updated_at = utcnow()
        self.db.query(DMParticipant).filter(
            DMParticipant.conversation_id == conversation_id
        ).update({DMParticipant.e2ee_enabled: True}, synchronize_session=False)

    def _find_direct_conversation(self, user_a: UUID, user_b: UUID) -> Optional[DMConversation]:
        candidate_ids = [
            cid for (cid,) in self.db.query(DMParticipant.conversation_id).filter(DMParticipant.user_id == user_a).all()
        ]
        for conversation_id in candidate_ids:
            ids = set(self.participant_ids(conversation_id))
            if ids == {user_a, user_b}:
                return self.get_conversation(conversation_id)
        return None

    def list_conversations(self, user_id: UUID) -> List[dict]:
        rows = self.db.query(DMConversation, DMParticipant).join(
            DMParticipant, DMParticipant.conversation_id == DMConversation.id
        ).filter(
            DMParticipant.user_id == user_id
        ).order_by(DMConversation.last_message_at.desc(), DMConversation.created_at.desc()).all()

        return [
            {
                "id": str(conversation.id),
                "participant_ids": [str(pid) for pid in self.participant_ids(conversation.id)],
                "last_message_at": conversation.last_message_at.isoformat() if conversation.last_message_at else None,
                "last_message_preview": conversation.last_message_preview,
                "unread_count": participant.unread_count,
                "e2ee_enabled": participant.e2ee_enabled,
            }
            for conversation, participant in rows
        ]

    def list_messages(self, conversation_id: UUID, user_id: UUID, limit: int = 50, before=None) -> List[DMMessage]:
        self.require_participant(conversation_id, user_id)
        query = self.db.query(DMMessage).filter(DMMessage.conversation_id == conversation_id)
        if before is not None:
            query = query.filter(DMMessage.created_at < before)
        messages = query.order_by(DMMessage.created_at.desc()).limit(limit).all()
        return list(reversed(messages))

    def recent_messages(self, conversation_id: UUID, limit: int = 6) -> List[DMMessage]:
        messages = self.db.query(DMMessage).filter(
            DMMessage.conversation_id == conversation_id
        ).order_by(DMMessage.created_at.desc()).limit(limit).all()
        return list(reversed(messages))

    def send_message(
        self,
        conversation_id: UUID,
        sender_id: Optional[UUID],
        content: Optional[str] = None,
        encrypted_content: Optional[str] = None,
        encryption_algorithm: Optional[str] = None,
        sender_device_id: Optional[str] = None,
        sender_key: Optional[str] = None,
        session_id: Optional[str] = None,
        is_ai_generated: bool = False,
        ai_response_to: Optional[UUID] = None
    ) -> DMMessage:
        """
        Store a message and update the conversation preview and unread counts.

        Megolm-encrypted messages also advance the conversation's session
        message counter used by the rotation policy.
        """
        if not is_ai_generated:
            self.require_participant(conversation_id, sender_id)
        conversation = self.get_conversation(conversation_id)

        is_encrypted = encrypted_content is not None
        if is_encrypted:
            if encryption_algorithm not in [a.value for a in EncryptionAlgorithm]:
                raise ValidationError("Encrypted messages need encryption_algorithm 'olm.v1' or 'megolm.v1'")
            if encryption_algorithm == EncryptionAlgorithm.MEGOLM.value and not session_id:
                raise ValidationError("Megolm messages need a session_id")
        else:
            if not content or not content.strip():
                raise ValidationError("Message content is required")
            if not is_ai_generated:
                self._ensure_plaintext_allowed(conversation_id)

        message = DMMessage(
            conversation_id=conversation_id,
            sender_id=sender_id,
            content=None if is_encrypted else content,
            is_encrypted=is_encrypted,
            encrypted_content=encrypted_content,
            encryption_algorithm=encryption_algorithm if is_encrypted else None,
            sender_device_id=sender_device_id,
            sender_key=sender_key,
            session_id=session_id,
            is_ai_generated=is_ai_generated,
            ai_response_to=ai_response_to,
            created_at=utcnow(),
        )
        self.db.add(message)

        conversation.last_message_at = message.created_at
        conversation.last_message_preview = message.preview

        recipients = self.db.query(DMParticipant).filter(DMParticipant.conversation_id == conversation_id)
        if sender_id is not None:
            recipients = recipients.filter(DMParticipant.user_id != sender_id)
        if not is_ai_generated:
            self._notify_recipients(recipients, message)
        recipients.update(
            {DMParticipant.unread_count: DMParticipant.unread_count + 1},
            synchronize_session=False
        )

        if is_encrypted and encryption_algorithm == EncryptionAlgorithm.MEGOLM.value:
            self.db.query(ConversationE2EESettings).filter(
                ConversationE2EESettings.conversation_id == conversation_id,
                ConversationE2EESettings.current_session_id == session_id
            ).update(
                {ConversationE2EESettings.session_message_count: ConversationE2EESettings.session_message_count + 1},
                synchronize_session=False
            )

        self.db.commit()
        self.db.refresh(message)
        return message

    def _notify_recipients(self, recipients, message: DMMessage) -> None:
        """One notification per recipient; encrypted content never leaves the message row"""
        sender = self.db.query(User.username).filter(User.id == message.sender_id).scalar()
        notifications = NotificationService(self.db)
        for (user_id,) in recipients.with_entities(DMParticipant.user_id).all():
            notifications.notify(
                user_id,
                NotificationType.MESSAGE.value,
                f"New message from {sender}",
                message=None if message.is_encrypted else message.preview,
                data={"conversation_id": str(message.conversation_id)},
                actor_id=message.sender_id,
                resource_type="conversation",
                resource_id=str(message.conversation_id),
            )

    def _ensure_plaintext_allowed(self, conversation_id: UUID) -> None:
        if self.is_e2ee_required(conversation_id):
            raise ValidationError("This conversation requires end-to-end encryption")

    def mark_read(self, conversation_id: UUID, user_id: UUID) -> DMParticipant:
        participant = self.require_participant(conversation_id, user_id)
        participant.unread_count = 0
        participant.last_read_at = utcnow()
        self.db.commit()
        return participant
