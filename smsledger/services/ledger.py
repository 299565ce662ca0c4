import logging
from datetime import datetime
from typing import Dict, Any, Optional
from sqlalchemy import update
from sqlalchemy.orm import Session

from smsledger.database import run_transaction
from smsledger.models import User, SmsLog, SUBSCRIPTION_ACTIVE, SUBSCRIPTION_INACTIVE
from smsledger.services.errors import UserNotFound, InsufficientCredits
from config import settings

logger = logging.getLogger(__name__)

def new_user(email: str, now: datetime, **profile) -> User:
    """Build a user row with an empty balance and zeroed counters"""
    return User(
        email=email,
        sms_credits=0,
        subscription_status=SUBSCRIPTION_INACTIVE,
        total_sent=0,
        this_month_sent=0,
        recent_activity=[],
        created_at=now,
        last_updated=now,
        **profile
    )

class CreditLedgerService:
    """Balance mutations for the users table.

    Every write goes through a versioned read-modify-write so that two
    callers touching the same user never overwrite each other.
    """

    def __init__(self, activity_limit: int = None):
        self.activity_limit = activity_limit or settings.RECENT_ACTIVITY_LIMIT

    def apply_payment(self, db: Session, user_email: str, credits_to_add: int, now: datetime) -> User:
        """Grant credits for an approved payment.

        Must be called from inside the approval transaction body; it only
        stages changes and never commits.
        """
        user = db.get(User, user_email)
        if user is None:
            user = new_user(user_email, now, source="payment")
            db.add(user)

        user.sms_credits = (user.sms_credits or 0) + credits_to_add
        user.subscription_status = SUBSCRIPTION_ACTIVE
        user.last_payment_date = now
        user.last_updated = now
        return user

    def deduct_credit(self, db: Session, user_email: str) -> int:
        """Debit one credit after a successful send; returns the new balance"""

        def _deduct(db: Session) -> int:
            user = db.get(User, user_email)
            if user is None:
                raise UserNotFound(f"User {user_email} not found")

            current_credits = user.sms_credits or 0
            new_credits = current_credits - 1
            if new_credits < 0:
                raise InsufficientCredits(current_credits)

            now = datetime.utcnow()
            user.sms_credits = new_credits
            user.last_used = now
            user.last_updated = now
            user.total_sent = (user.total_sent or 0) + 1
            user.this_month_sent = (user.this_month_sent or 0) + 1
            db.flush()
            return new_credits

        new_balance = run_transaction(db, _deduct)
        logger.info(f"Deducted 1 SMS credit for user: {user_email} ({new_balance} remaining)")
        return new_balance

    def check_credits(self, db: Session, user_email: str) -> Dict[str, Any]:
        user = db.get(User, user_email)
        credits = (user.sms_credits or 0) if user else 0
        return {
            "has_credits": credits > 0,
            "credits_remaining": credits
        }

    def get_usage(self, db: Session, user_email: str) -> Dict[str, Any]:
        """Balance plus usage counters; absent users read as an empty account"""
        user = db.get(User, user_email)
        if user is None:
            return {
                "user_email": user_email,
                "sms_credits": 0,
                "has_credits": False,
                "subscription_status": SUBSCRIPTION_INACTIVE,
                "last_used": None,
                "total_sent": 0,
                "this_month_sent": 0
            }

        credits = user.sms_credits or 0
        return {
            "user_email": user_email,
            "sms_credits": credits,
            "has_credits": credits > 0,
            "subscription_status": user.subscription_status or SUBSCRIPTION_INACTIVE,
            "last_used": user.last_used,
            "total_sent": user.total_sent or 0,
            "this_month_sent": user.this_month_sent or 0
        }

    def record_activity(
        self,
        db: Session,
        user_email: str,
        recipient_phone: str,
        status: str = "sent",
        provider: Optional[str] = None,
        message_id: Optional[str] = None,
        recipient_name: Optional[str] = None,
        timestamp: Optional[datetime] = None
    ) -> bool:
        """Append a send to the audit log and the user's recent activity.

        Best effort: the send and the deduction are already committed, so a
        failure here is logged and reported as False, never raised.
        """
        timestamp = timestamp or datetime.utcnow()

        def _append(db: Session):
            db.add(SmsLog(
                user_email=user_email,
                recipient_phone=recipient_phone,
                recipient_name=recipient_name,
                provider=provider,
                message_id=message_id,
                status=status,
                timestamp=timestamp
            ))

            user = db.get(User, user_email)
            if user is not None:
                entry = {
                    "recipient": recipient_phone,
                    "timestamp": timestamp.isoformat(),
                    "status": status
                }
                # Reassign so the JSON column is marked dirty
                user.recent_activity = ([entry] + list(user.recent_activity or []))[:self.activity_limit]
            db.flush()

        try:
            run_transaction(db, _append)
            return True
        except Exception as e:
            logger.error(f"Error logging SMS activity for {user_email}: {str(e)}")
            return False

    def reset_monthly_counters(self, db: Session) -> int:
        """Zero this_month_sent for every user; returns the number of rows reset"""
        try:
            result = db.execute(
                update(User)
                .where(User.this_month_sent != 0)
                .values(this_month_sent=0, version=User.version + 1)
                .execution_options(synchronize_session=False)
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

        logger.info(f"Monthly SMS counters reset for {result.rowcount} users")
        return result.rowcount

# Global service instance
ledger_service = CreditLedgerService()
