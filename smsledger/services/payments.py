import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, Any, List, Optional
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from smsledger.database import run_transaction, APPROVAL_RETRY_ERRORS
from smsledger.models import Payment, User
from smsledger.services.errors import (
    ValidationError,
    PaymentNotFound,
    AlreadyApproved,
    AlreadyRejected,
    CannotRejectApproved,
    CannotApproveRejected,
    DuplicateTransaction,
)
from smsledger.services.ledger import ledger_service
from smsledger.services.validation import require_email, parse_amount, credits_for_amount
from config import settings

logger = logging.getLogger(__name__)

PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"

ALLOWED = {
    PENDING: {APPROVED, REJECTED},
    APPROVED: set(),
    REJECTED: set(),
}

TRANSITION_ERRORS = {
    (APPROVED, APPROVED): (AlreadyApproved, "Payment already approved"),
    (REJECTED, APPROVED): (CannotApproveRejected, "Cannot approve rejected payment"),
    (REJECTED, REJECTED): (AlreadyRejected, "Payment already rejected"),
    (APPROVED, REJECTED): (CannotRejectApproved, "Cannot reject approved payment"),
}

DEFAULT_ADMIN = "admin"

def assert_transition(current: str, target: str) -> None:
    if target in ALLOWED.get(current, set()):
        return
    error_class, message = TRANSITION_ERRORS.get(
        (current, target),
        (ValidationError, f"Illegal payment transition: {current} -> {target}")
    )
    raise error_class(message)

def payment_to_dict(payment: Payment) -> Dict[str, Any]:
    return {
        "id": payment.id,
        "email": payment.email,
        "amount": payment.amount,
        "credits": credits_for_amount(payment.amount),
        "txid": payment.txid,
        "currency": payment.currency,
        "status": payment.status,
        "created_at": payment.created_at,
        "updated_at": payment.updated_at,
        "approved_at": payment.approved_at,
        "approved_by": payment.approved_by,
        "rejected_at": payment.rejected_at,
        "rejected_by": payment.rejected_by
    }

class PaymentService:
    """Payment lifecycle: pending -> approved | rejected, plus deletion."""

    def submit(
        self,
        db: Session,
        email: str,
        amount: Any,
        txid: str,
        currency: Optional[str] = None
    ) -> Payment:
        email = require_email(email)
        amount = parse_amount(amount)
        txid = (txid or "").strip()
        if not txid:
            raise ValidationError("Transaction ID is required")

        if db.query(Payment).filter(Payment.txid == txid).first():
            raise DuplicateTransaction(f"Transaction {txid} has already been submitted")

        now = datetime.utcnow()
        payment = Payment(
            email=email,
            amount=amount,
            txid=txid,
            currency=currency or settings.DEFAULT_PAYMENT_CURRENCY,
            status=PENDING,
            created_at=now,
            updated_at=now
        )

        try:
            db.add(payment)
            db.commit()
        except IntegrityError:
            # Lost a race with an identical submission
            db.rollback()
            raise DuplicateTransaction(f"Transaction {txid} has already been submitted")

        db.refresh(payment)
        logger.info(f"Payment {payment.id} submitted by {email}: ${amount} ({txid})")
        return payment

    def approve(self, db: Session, payment_id: str, admin_email: Optional[str] = None) -> Dict[str, Any]:
        """Approve a pending payment and grant its credits in one transaction"""
        if not payment_id:
            raise ValidationError("Payment ID required")

        approved_by = admin_email or DEFAULT_ADMIN

        def _approve(db: Session) -> Dict[str, Any]:
            # Re-read inside the transaction; a concurrent approval makes this
            # either see APPROVED or fail the versioned UPDATE and retry.
            payment = db.get(Payment, payment_id)
            if payment is None:
                raise PaymentNotFound(f"Payment {payment_id} not found")

            assert_transition(payment.status, APPROVED)

            now = datetime.utcnow()
            credits_to_add = credits_for_amount(payment.amount)

            payment.status = APPROVED
            payment.approved_by = approved_by
            payment.approved_at = now
            payment.updated_at = now

            user = ledger_service.apply_payment(db, payment.email, credits_to_add, now)
            db.flush()

            return {
                "payment": payment_to_dict(payment),
                "credits_added": credits_to_add,
                "sms_credits": user.sms_credits
            }

        result = run_transaction(db, _approve, retry_on=APPROVAL_RETRY_ERRORS)
        logger.info(
            f"Approved payment {payment_id} for {result['payment']['email']}: "
            f"+{result['credits_added']} credits (by {approved_by})"
        )
        return result

    def reject(self, db: Session, payment_id: str, admin_email: Optional[str] = None) -> Dict[str, Any]:
        if not payment_id:
            raise ValidationError("Payment ID required")

        rejected_by = admin_email or DEFAULT_ADMIN

        def _reject(db: Session) -> Dict[str, Any]:
            payment = db.get(Payment, payment_id)
            if payment is None:
                raise PaymentNotFound(f"Payment {payment_id} not found")

            assert_transition(payment.status, REJECTED)

            now = datetime.utcnow()
            payment.status = REJECTED
            payment.rejected_by = rejected_by
            payment.rejected_at = now
            payment.updated_at = now
            db.flush()
            return payment_to_dict(payment)

        result = run_transaction(db, _reject)
        logger.info(f"Rejected payment {payment_id} for {result['email']} (by {rejected_by})")
        return result

    def delete(self, db: Session, payment_id: str) -> Dict[str, Any]:
        """Remove a payment in any status; granted credits are kept"""
        if not payment_id:
            raise ValidationError("Payment ID required")

        def _delete(db: Session) -> Dict[str, Any]:
            payment = db.get(Payment, payment_id)
            if payment is None:
                raise PaymentNotFound(f"Payment {payment_id} not found")

            snapshot = payment_to_dict(payment)
            db.delete(payment)
            db.flush()
            return snapshot

        result = run_transaction(db, _delete)
        logger.info(f"Deleted payment {payment_id} ({result['status']}) for {result['email']}")
        return result

    def list_pending(self, db: Session) -> List[Payment]:
        return db.query(Payment).filter(
            Payment.status == PENDING
        ).order_by(Payment.created_at.desc()).all()

    def list_for_user(self, db: Session, email: str) -> List[Payment]:
        email = require_email(email)
        return db.query(Payment).filter(
            Payment.email == email
        ).order_by(Payment.created_at.desc()).all()

    def get_stats(self, db: Session, since: Optional[datetime] = None) -> Dict[str, Any]:
        """Aggregate user, revenue and credit totals, optionally since a cutoff"""
        approved = db.query(
            func.count(Payment.id), func.coalesce(func.sum(Payment.amount), 0)
        ).filter(Payment.status == APPROVED)
        pending_count = db.query(func.count(Payment.id)).filter(Payment.status == PENDING).scalar()
        total_users = db.query(func.count(User.email)).scalar()
        total_credits = db.query(func.coalesce(func.sum(User.sms_credits), 0)).scalar()

        stats = {
            "total_users": total_users or 0,
            "pending_payments": pending_count or 0,
            "total_credits": int(total_credits or 0)
        }

        approved_count, revenue = approved.one()
        stats["approved_payments"] = approved_count or 0
        stats["total_revenue"] = Decimal(str(revenue or 0))

        if since is not None:
            stats["new_users"] = db.query(func.count(User.email)).filter(User.created_at >= since).scalar() or 0
            stats["new_payments"] = db.query(func.count(Payment.id)).filter(Payment.created_at >= since).scalar() or 0
            recent_revenue = db.query(func.coalesce(func.sum(Payment.amount), 0)).filter(
                Payment.status == APPROVED,
                Payment.approved_at >= since
            ).scalar()
            stats["revenue_since"] = Decimal(str(recent_revenue or 0))

        return stats

# Global service instance
payment_service = PaymentService()
