from fastapi import APIRouter, Depends, HTTPException, status, Header, Query, BackgroundTasks
from sqlalchemy.orm import Session
from typing import List, Optional
import logging

from smsledger.database import get_db
from smsledger.schemas import (
    PaymentActionRequest,
    DeletePaymentRequest,
    DeleteUserRequest,
    PaymentResponse,
    ApprovalResponse,
    UserResponse,
    StatsResponse,
    ResetResponse,
    StatusResponse,
    ErrorResponse
)
from smsledger.routes.errors import http_error
from smsledger.services.ledger import ledger_service
from smsledger.services.payments import payment_service, payment_to_dict
from smsledger.services.telegram import (
    telegram_notifier,
    payment_approved_message,
    payment_rejected_message,
    payment_deleted_message
)
from smsledger.services.users import user_service
from config import settings

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/admin", tags=["admin"])

NOTIFY_SOURCE = "Admin Panel"

def verify_admin_key(x_api_key: str = Header(..., description="Admin API key for authentication")):
    """Verify admin API key"""
    if x_api_key != settings.ADMIN_API_KEY:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key"
        )
    return x_api_key

UNAUTHORIZED_RESPONSE = {
    "description": "Invalid or missing API key",
    "model": ErrorResponse,
    "content": {
        "application/json": {
            "example": {
                "detail": "Invalid API key"
            }
        }
    }
}

@router.get(
    "/payments/pending",
    response_model=List[PaymentResponse],
    summary="List Pending Payments (Admin Only)",
    description="""
    All payments awaiting review, newest first.

    **Admin Authentication Required** - Include `X-API-Key` header with your admin API key.
    """,
    responses={401: UNAUTHORIZED_RESPONSE}
)
async def list_pending_payments(
    db: Session = Depends(get_db),
    _: str = Depends(verify_admin_key)
):
    try:
        return [payment_to_dict(payment) for payment in payment_service.list_pending(db)]
    except HTTPException:
        raise
    except Exception as e:
        raise http_error(e, "list pending payments")

@router.post(
    "/payments/approve",
    response_model=ApprovalResponse,
    summary="Approve Payment (Admin Only)",
    description="""
    Approve a pending payment and credit the user's balance.

    **Admin Authentication Required** - Include `X-API-Key` header with your admin API key.

    ### Process:
    1. Re-reads the payment and checks it is still `pending`
    2. Marks it `approved` with the approving admin and time
    3. Adds `floor(amount)` SMS credits to the user, creating the user if needed
    4. Sets the user's subscription to `active`

    Steps 1-4 commit together. If the same payment is approved concurrently
    (for example from the Telegram bot) exactly one approval grants credits;
    the other receives 409.
    """,
    responses={
        401: UNAUTHORIZED_RESPONSE,
        404: {"description": "Payment not found", "model": ErrorResponse},
        409: {
            "description": "Payment is not pending",
            "model": ErrorResponse,
            "content": {
                "application/json": {
                    "examples": {
                        "already_approved": {
                            "summary": "Payment already approved",
                            "value": {"detail": "Payment already approved"}
                        },
                        "rejected": {
                            "summary": "Payment was rejected",
                            "value": {"detail": "Cannot approve rejected payment"}
                        }
                    }
                }
            }
        }
    }
)
async def approve_payment(
    request: PaymentActionRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    _: str = Depends(verify_admin_key)
):
    """Approve a payment and grant its credits"""
    try:
        result = payment_service.approve(db, request.payment_id, admin_email=request.admin_email)
        payment = result["payment"]

        background_tasks.add_task(
            telegram_notifier.notify,
            payment_approved_message(payment, result["credits_added"], NOTIFY_SOURCE)
        )

        return ApprovalResponse(
            status="success",
            message=f"Payment approved. {result['credits_added']} SMS credits added to {payment['email']}",
            payment=PaymentResponse(**payment),
            credits_added=result["credits_added"],
            sms_credits=result["sms_credits"]
        )
    except HTTPException:
        raise
    except Exception as e:
        raise http_error(e, "approve payment")

@router.post(
    "/payments/reject",
    response_model=PaymentResponse,
    summary="Reject Payment (Admin Only)",
    description="""
    Reject a pending payment. No credits are granted.

    **Admin Authentication Required** - Include `X-API-Key` header with your admin API key.
    """,
    responses={
        401: UNAUTHORIZED_RESPONSE,
        404: {"description": "Payment not found", "model": ErrorResponse},
        409: {"description": "Payment is not pending", "model": ErrorResponse}
    }
)
async def reject_payment(
    request: PaymentActionRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    _: str = Depends(verify_admin_key)
):
    try:
        payment = payment_service.reject(db, request.payment_id, admin_email=request.admin_email)
        background_tasks.add_task(telegram_notifier.notify, payment_rejected_message(payment, NOTIFY_SOURCE))
        return payment
    except HTTPException:
        raise
    except Exception as e:
        raise http_error(e, "reject payment")

@router.post(
    "/payments/delete",
    response_model=StatusResponse,
    summary="Delete Payment (Admin Only)",
    description="""
    Permanently remove a payment in any status.

    **Admin Authentication Required** - Include `X-API-Key` header with your admin API key.

    ### Important Notes:
    - Credits already granted by an approved payment are **not** reversed
    - The transaction ID becomes available for submission again
    """,
    responses={
        401: UNAUTHORIZED_RESPONSE,
        404: {"description": "Payment not found", "model": ErrorResponse}
    }
)
async def delete_payment(
    request: DeletePaymentRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    _: str = Depends(verify_admin_key)
):
    try:
        deleted = payment_service.delete(db, request.payment_id)
        background_tasks.add_task(telegram_notifier.notify, payment_deleted_message(deleted["id"], NOTIFY_SOURCE))
        return StatusResponse(
            status="success",
            message=f"Payment {deleted['id']} deleted"
        )
    except HTTPException:
        raise
    except Exception as e:
        raise http_error(e, "delete payment")

@router.get(
    "/users",
    response_model=List[UserResponse],
    summary="List Users (Admin Only)",
    description="""
    All users, newest first.

    **Admin Authentication Required** - Include `X-API-Key` header with your admin API key.
    """,
    responses={401: UNAUTHORIZED_RESPONSE}
)
async def list_users(
    limit: Optional[int] = Query(None, ge=1, le=1000, description="Maximum number of users to return"),
    db: Session = Depends(get_db),
    _: str = Depends(verify_admin_key)
):
    try:
        return user_service.list_users(db, limit=limit)
    except HTTPException:
        raise
    except Exception as e:
        raise http_error(e, "list users")

@router.post(
    "/users/delete",
    response_model=StatusResponse,
    summary="Delete User (Admin Only)",
    description="""
    Remove a user and their balance. Their payments are kept.

    **Admin Authentication Required** - Include `X-API-Key` header with your admin API key.
    """,
    responses={
        401: UNAUTHORIZED_RESPONSE,
        404: {"description": "User not found", "model": ErrorResponse}
    }
)
async def delete_user(
    request: DeleteUserRequest,
    db: Session = Depends(get_db),
    _: str = Depends(verify_admin_key)
):
    try:
        email = user_service.delete_user(db, request.email)
        return StatusResponse(
            status="success",
            message=f"User {email} deleted"
        )
    except HTTPException:
        raise
    except Exception as e:
        raise http_error(e, "delete user")

@router.get(
    "/stats",
    response_model=StatsResponse,
    summary="Ledger Statistics (Admin Only)",
    description="""
    User count, approved revenue, pending payments and outstanding credits.

    **Admin Authentication Required** - Include `X-API-Key` header with your admin API key.
    """,
    responses={401: UNAUTHORIZED_RESPONSE}
)
async def get_stats(
    db: Session = Depends(get_db),
    _: str = Depends(verify_admin_key)
):
    try:
        return payment_service.get_stats(db)
    except HTTPException:
        raise
    except Exception as e:
        raise http_error(e, "get stats")

@router.post(
    "/sms/reset-monthly",
    response_model=ResetResponse,
    summary="Reset Monthly SMS Counters (Admin Only)",
    description="""
    Set `this_month_sent` to 0 for every user. Balances are not affected.

    **Admin Authentication Required** - Include `X-API-Key` header with your admin API key.

    The same reset can run automatically each month with `MONTHLY_RESET_ENABLED=true`.
    """,
    responses={401: UNAUTHORIZED_RESPONSE}
)
async def reset_monthly_counters(
    db: Session = Depends(get_db),
    _: str = Depends(verify_admin_key)
):
    try:
        users_reset = ledger_service.reset_monthly_counters(db)
        return ResetResponse(status="success", users_reset=users_reset)
    except HTTPException:
        raise
    except Exception as e:
        raise http_error(e, "reset monthly SMS counters")
