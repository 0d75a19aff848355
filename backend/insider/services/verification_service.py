"""
Interactive SAS device verification.

Status flow::

    started -> key_exchanged -> (sas_ready) -> (sas_match) -> verified
                      any non-terminal state -> cancelled | expired

Rows are created directly in ``started``; ``pending`` is kept for clients
that announce a request before sending their key.
"""
from datetime import timedelta
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from insider.core.config import get_settings
from insider.core.errors import (InvalidStateError, NotFoundError,
                                 PermissionDeniedError, ValidationError)
from insider.core.logging_config import LoggingConfig
from insider.core.metrics import sas_verifications_total
from insider.core.sas import SAS_EMOJI_COUNT, generate_transaction_id, verify_commitment
from insider.core.utils import utcnow
from insider.models.e2ee import DeviceKey, VerificationMethod
from insider.models.verification import (TERMINAL_SAS_STATUSES, SasStatus,
                                         SasVerification)

logger = LoggingConfig.get_logger(__name__)

CONFIRMABLE_STATUSES = (
    SasStatus.KEY_EXCHANGED.value,
    SasStatus.SAS_READY.value,
    SasStatus.SAS_MATCH.value,
)


class VerificationService:
    """SAS verification state machine"""

    def __init__(self, db: Session):
        self.db = db
        self.settings = get_settings()

    def get_by_transaction(self, transaction_id: str) -> SasVerification:
        verification = self.db.query(SasVerification).filter(
            SasVerification.transaction_id == transaction_id
        ).first()
        if not verification:
            raise NotFoundError("Verification not found")
        return verification

    def _get_device(self, user_id: UUID, device_id: str) -> Optional[DeviceKey]:
        return self.db.query(DeviceKey).filter(
            DeviceKey.user_id == user_id,
            DeviceKey.device_id == device_id
        ).first()

    def _set_status(self, verification: SasVerification, status: SasStatus) -> None:
        verification.status = status.value
        verification.updated_at = utcnow()
        sas_verifications_total.labels(status=status.value).inc()

    def _guard(self, verification: SasVerification, user_id: UUID) -> None:
        """Participant check, lazy expiry and terminal-state check"""
        if user_id not in (verification.initiator_user_id, verification.target_user_id):
            raise PermissionDeniedError("Not a participant in this verification")

        if not verification.is_terminal and verification.expires_at <= utcnow():
            self._set_status(verification, SasStatus.EXPIRED)
            self.db.commit()
            logger.info(f"Verification {verification.transaction_id} expired")

        if verification.is_terminal:
            raise InvalidStateError(f"Verification is already {verification.status}")

    def start(
        self,
        initiator_user_id: UUID,
        initiator_device_id: str,
        target_user_id: UUID,
        target_device_id: str,
        public_key: str,
        commitment: str
    ) -> SasVerification:
        """Create a verification in ``started`` with the initiator's key and commitment"""
        if initiator_user_id == target_user_id and initiator_device_id == target_device_id:
            raise ValidationError("A device cannot verify itself")
        if not self._get_device(target_user_id, target_device_id):
            raise NotFoundError("Target device not found")

        now = utcnow()
        verification = SasVerification(
            initiator_user_id=initiator_user_id,
            initiator_device_id=initiator_device_id,
            target_user_id=target_user_id,
            target_device_id=target_device_id,
            status=SasStatus.STARTED.value,
            initiator_public_key=public_key,
            initiator_commitment=commitment,
            transaction_id=generate_transaction_id(),
            expires_at=now + timedelta(minutes=self.settings.sas_expiry_minutes),
            created_at=now,
            updated_at=now,
        )
        self.db.add(verification)
        self.db.commit()
        self.db.refresh(verification)

        sas_verifications_total.labels(status=SasStatus.STARTED.value).inc()
        logger.info(
            f"Verification {verification.transaction_id} started: "
            f"{initiator_device_id} -> {target_device_id}"
        )
        return verification

    def accept(self, transaction_id: str, user_id: UUID, public_key: str) -> SasVerification:
        """Target accepts and sends its ephemeral key: started -> key_exchanged"""
        verification = self.get_by_transaction(transaction_id)
        self._guard(verification, user_id)

        if user_id != verification.target_user_id:
            raise PermissionDeniedError("Only the target can accept a verification")
        if verification.status != SasStatus.STARTED.value:
            raise InvalidStateError(f"Cannot accept a verification in state {verification.status}")

        verification.target_public_key = public_key
        self._set_status(verification, SasStatus.KEY_EXCHANGED)
        self.db.commit()
        self.db.refresh(verification)
        return verification

    def reveal(
        self,
        transaction_id: str,
        user_id: UUID,
        public_key: str,
        emoji_indices: Optional[List[int]] = None,
        sas_decimal: Optional[str] = None
    ) -> SasVerification:
        """
        Initiator proves its committed key: key_exchanged -> sas_ready.

        A key that does not match the commitment cancels the verification.
        """
        verification = self.get_by_transaction(transaction_id)
        self._guard(verification, user_id)

        if user_id != verification.initiator_user_id:
            raise PermissionDeniedError("Only the initiator can reveal its key")
        if verification.status != SasStatus.KEY_EXCHANGED.value:
            raise InvalidStateError(f"Cannot reveal in state {verification.status}")

        if public_key != verification.initiator_public_key or not verify_commitment(
            verification.initiator_commitment or "", public_key
        ):
            self._set_status(verification, SasStatus.CANCELLED)
            self.db.commit()
            logger.warning(f"Commitment mismatch for verification {transaction_id}, cancelled")
            raise ValidationError("Commitment does not match the revealed key")

        if emoji_indices is not None:
            verification.sas_emoji_indices = self._check_indices(emoji_indices)
        if sas_decimal is not None:
            verification.sas_decimal = sas_decimal
        self._set_status(verification, SasStatus.SAS_READY)
        self.db.commit()
        self.db.refresh(verification)
        return verification

    def confirm(
        self,
        transaction_id: str,
        user_id: UUID,
        is_match: bool,
        emoji_indices: Optional[List[int]] = None,
        sas_decimal: Optional[str] = None
    ) -> SasVerification:
        """
        Record the users' comparison result.

        A match verifies both devices with method ``sas``; a mismatch cancels.
        """
        verification = self.get_by_transaction(transaction_id)
        self._guard(verification, user_id)

        if not is_match:
            self._set_status(verification, SasStatus.CANCELLED)
            self.db.commit()
            self.db.refresh(verification)
            logger.warning(f"SAS mismatch reported for verification {transaction_id}")
            return verification

        if verification.status not in CONFIRMABLE_STATUSES:
            raise InvalidStateError(f"Cannot confirm a verification in state {verification.status}")

        if emoji_indices is not None:
            verification.sas_emoji_indices = self._check_indices(emoji_indices)
        if sas_decimal is not None:
            verification.sas_decimal = sas_decimal

        now = utcnow()
        self._set_status(verification, SasStatus.VERIFIED)
        verification.completed_at = now

        initiator_device = self._get_device(verification.initiator_user_id, verification.initiator_device_id)
        target_device = self._get_device(verification.target_user_id, verification.target_device_id)
        self._mark_verified(target_device, verification.initiator_user_id, verification.initiator_device_id, now)
        self._mark_verified(initiator_device, verification.target_user_id, verification.target_device_id, now)

        self.db.commit()
        self.db.refresh(verification)
        logger.info(f"Verification {transaction_id} completed")
        return verification

    def cancel(self, transaction_id: str, user_id: UUID) -> SasVerification:
        verification = self.get_by_transaction(transaction_id)
        self._guard(verification, user_id)
        self._set_status(verification, SasStatus.CANCELLED)
        self.db.commit()
        self.db.refresh(verification)
        logger.info(f"Verification {transaction_id} cancelled")
        return verification

    def list_pending(self, user_id: UUID, device_id: Optional[str] = None) -> List[SasVerification]:
        """Active verifications where the caller (optionally a specific device) takes part"""
        as_target = SasVerification.target_user_id == user_id
        as_initiator = SasVerification.initiator_user_id == user_id
        if device_id:
            as_target = as_target & (SasVerification.target_device_id == device_id)
            as_initiator = as_initiator & (SasVerification.initiator_device_id == device_id)

        return self.db.query(SasVerification).filter(
            or_(as_target, as_initiator),
            SasVerification.status.notin_(sorted(TERMINAL_SAS_STATUSES)),
            SasVerification.expires_at > utcnow()
        ).order_by(SasVerification.created_at.desc()).all()

    def cleanup_expired(self) -> int:
        """Mark every stale non-terminal verification as expired"""
        count = self.db.query(SasVerification).filter(
            SasVerification.status.notin_(sorted(TERMINAL_SAS_STATUSES)),
            SasVerification.expires_at <= utcnow()
        ).update(
            {SasVerification.status: SasStatus.EXPIRED.value, SasVerification.updated_at: utcnow()},
            synchronize_session=False
        )
        self.db.commit()
        if count:
            sas_verifications_total.labels(status=SasStatus.EXPIRED.value).inc(count)
            logger.info(f"Expired {count} stale verifications")
        return count

    def is_device_verified(self, user_id: UUID, device_id: str) -> bool:
        device = self._get_device(user_id, device_id)
        return bool(device and device.is_verified)

    def get_verified_devices(self, user_id: UUID) -> List[Dict]:
        devices = self.db.query(DeviceKey).filter(
            DeviceKey.user_id == user_id,
            DeviceKey.is_verified.is_(True)
        ).order_by(DeviceKey.verified_at.desc()).all()
        return [
            {
                "device_id": d.device_id,
                "verified_at": d.verified_at.isoformat() if d.verified_at else None,
                "verification_method": d.verification_method,
            }
            for d in devices
        ]

    def _mark_verified(self, device: Optional[DeviceKey], by_user_id: UUID, by_device_id: str, when) -> None:
        if device is None:
            return
        device.is_verified = True
        device.verified_at = when
        device.verified_by_user_id = by_user_id
        device.verified_by_device_id = by_device_id
        device.verification_method = VerificationMethod.SAS.value

    @staticmethod
    def _check_indices(indices: List[int]) -> List[int]:
        if len(indices) != SAS_EMOJI_COUNT or any(not 0 <= i <= 63 for i in indices):
            raise ValidationError(f"SAS must be {SAS_EMOJI_COUNT} emoji indices between 0 and 63")
        return list(indices)
