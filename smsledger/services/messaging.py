import logging
from datetime import datetime
from typing import Dict, Any, Optional
from sqlalchemy.orm import Session

from smsledger.services.errors import InsufficientCredits, SmsDeliveryFailed, ValidationError
from smsledger.services.ledger import ledger_service
from smsledger.services.sms_gateway import sms_gateway
from smsledger.services.validation import require_email, clean_phone

logger = logging.getLogger(__name__)

class SmsSendService:
    """Credit-gated sending: check balance, send, then debit.

    The debit commits only after a provider accepted the message. A debit
    that fails after delivery is logged and not compensated.
    """

    def __init__(self, gateway=None):
        self.gateway = gateway

    def _balance_after_failed_debit(self, db: Session, user_email: str) -> Optional[int]:
        """Best-effort balance read; None when the store is unreachable"""
        try:
            db.rollback()
            return ledger_service.check_credits(db, user_email)["credits_remaining"]
        except Exception as e:
            logger.error(f"Error reading balance for {user_email} after failed debit: {str(e)}")
            return None

    async def send(
        self,
        db: Session,
        user_email: str,
        recipient_phone: str,
        message: str,
        recipient_name: Optional[str] = None
    ) -> Dict[str, Any]:
        user_email = require_email(user_email)
        phone = clean_phone(recipient_phone)
        if not message or not message.strip():
            raise ValidationError("Message is required")

        credit_check = ledger_service.check_credits(db, user_email)
        if not credit_check["has_credits"]:
            raise InsufficientCredits(credit_check["credits_remaining"])

        gateway = self.gateway or sms_gateway
        sms_result = await gateway.send(phone, message)
        if not sms_result.get("success"):
            logger.error(f"SMS to {phone} for {user_email} failed: {sms_result.get('error')}")
            raise SmsDeliveryFailed(sms_result.get("error") or "Failed to send SMS")

        credit_deducted = True
        try:
            credits_remaining = ledger_service.deduct_credit(db, user_email)
        except Exception as e:
            # Message already delivered; the charge is dropped, not retried
            logger.error(f"Error deducting credit for {user_email} after successful send: {str(e)}")
            credit_deducted = False
            credits_remaining = self._balance_after_failed_debit(db, user_email)

        if credit_deducted:
            ledger_service.record_activity(
                db,
                user_email,
                recipient_phone=phone,
                status="sent",
                provider=sms_result.get("provider"),
                message_id=sms_result.get("message_id"),
                recipient_name=recipient_name,
                timestamp=datetime.utcnow()
            )

        return {
            "recipient_phone": phone,
            "message_id": sms_result.get("message_id"),
            "provider": sms_result.get("provider"),
            "credits_remaining": credits_remaining,
            "credit_deducted": credit_deducted
        }

# Global service instance
sms_send_service = SmsSendService()
