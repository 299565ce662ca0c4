from fastapi import APIRouter, Depends, HTTPException, BackgroundTasks
from sqlalchemy.orm import Session
from typing import List

from smsledger.database import get_db
from smsledger.schemas import (
    RegisterUserRequest,
    ValidateUserRequest,
    ValidateUserResponse,
    UserResponse,
    SubmitPaymentRequest,
    PaymentResponse,
    CreditCheckResponse,
    SendSmsRequest,
    SendSmsResponse,
    ErrorResponse
)
from smsledger.routes.errors import http_error
from smsledger.services.ledger import ledger_service
from smsledger.services.messaging import sms_send_service
from smsledger.services.payments import payment_service, payment_to_dict
from smsledger.services.telegram import telegram_notifier, payment_submitted_message, payment_action_buttons
from smsledger.services.users import user_service
from smsledger.services.validation import require_email

router = APIRouter(prefix="/api", tags=["public"])

@router.post(
    "/users/register",
    response_model=UserResponse,
    summary="Register User",
    description="""
    Create a user or merge profile fields into an existing one.

    ### Merge rules:
    - New users start with 0 SMS credits and an `inactive` subscription
    - Existing users only have the supplied profile fields updated
    - Balances, counters and activity are never touched by registration
    """,
    responses={
        400: {"description": "Invalid email", "model": ErrorResponse}
    }
)
async def register_user(
    request: RegisterUserRequest,
    db: Session = Depends(get_db)
):
    """Register or update a user profile"""
    try:
        profile = request.model_dump(exclude={"email", "source"})
        return user_service.register(db, request.email, source=request.source, **profile)
    except HTTPException:
        raise
    except Exception as e:
        raise http_error(e, "register user")

@router.post(
    "/users/validate",
    response_model=ValidateUserResponse,
    summary="Validate User",
    description="Check whether a user exists for the given email (exact match).",
    responses={
        400: {"description": "Invalid email", "model": ErrorResponse}
    }
)
async def validate_user(
    request: ValidateUserRequest,
    db: Session = Depends(get_db)
):
    """Check if a user exists"""
    try:
        email = require_email(request.email)
        return ValidateUserResponse(email=email, exists=user_service.exists(db, email))
    except HTTPException:
        raise
    except Exception as e:
        raise http_error(e, "validate user")

@router.get(
    "/users/{email}",
    response_model=UserResponse,
    summary="Get User",
    description="Return a user's profile, balance, usage counters and recent activity.",
    responses={
        404: {
            "description": "User not found",
            "model": ErrorResponse,
            "content": {
                "application/json": {
                    "example": {
                        "detail": "User alice@example.com not found"
                    }
                }
            }
        }
    }
)
async def get_user(
    email: str,
    db: Session = Depends(get_db)
):
    try:
        return user_service.get_user(db, email)
    except HTTPException:
        raise
    except Exception as e:
        raise http_error(e, "get user")

@router.get(
    "/users/{email}/payments",
    response_model=List[PaymentResponse],
    summary="List User Payments",
    description="All payments submitted for this email, newest first, with the credits each one grants."
)
async def list_user_payments(
    email: str,
    db: Session = Depends(get_db)
):
    try:
        return [payment_to_dict(payment) for payment in payment_service.list_for_user(db, email)]
    except HTTPException:
        raise
    except Exception as e:
        raise http_error(e, "list user payments")

@router.post(
    "/payments",
    response_model=PaymentResponse,
    summary="Submit Payment",
    description="""
    Submit a crypto transfer for admin review.

    ### Process:
    1. Validates email, amount and transaction ID
    2. Rejects transaction IDs that were already submitted
    3. Stores the payment as `pending`
    4. Notifies the admin chat with approve/reject buttons

    One SMS credit is granted per whole US dollar once the payment is approved
    (`4.99` grants 4 credits).
    """,
    responses={
        400: {
            "description": "Invalid input",
            "model": ErrorResponse,
            "content": {
                "application/json": {
                    "examples": {
                        "invalid_amount": {
                            "summary": "Amount is not a positive number",
                            "value": {"detail": "Amount must be greater than zero"}
                        },
                        "missing_txid": {
                            "summary": "Missing transaction ID",
                            "value": {"detail": "Transaction ID is required"}
                        }
                    }
                }
            }
        },
        409: {
            "description": "Transaction ID already submitted",
            "model": ErrorResponse
        }
    }
)
async def submit_payment(
    request: SubmitPaymentRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db)
):
    """Record a pending payment"""
    try:
        payment = payment_service.submit(
            db,
            email=request.email,
            amount=request.amount,
            txid=request.txid,
            currency=request.currency
        )
        payment_data = payment_to_dict(payment)

        background_tasks.add_task(
            telegram_notifier.notify,
            payment_submitted_message(payment_data),
            buttons=payment_action_buttons(payment.id)
        )

        return payment_data

    except HTTPException:
        raise
    except Exception as e:
        raise http_error(e, "submit payment")

@router.get(
    "/sms/credits/{email}",
    response_model=CreditCheckResponse,
    summary="Check SMS Credits",
    description="Balance and usage counters. Unknown emails read as an empty, inactive account."
)
async def check_sms_credits(
    email: str,
    db: Session = Depends(get_db)
):
    try:
        return ledger_service.get_usage(db, require_email(email))
    except HTTPException:
        raise
    except Exception as e:
        raise http_error(e, "check SMS credits")

@router.post(
    "/sms/send",
    response_model=SendSmsResponse,
    summary="Send SMS",
    description="""
    Send one SMS on behalf of a user, paid with one credit.

    ### Process:
    1. Checks the user has at least one credit
    2. Sends through the configured providers in order until one accepts
    3. Deducts one credit
    4. Records the send in the activity log

    A failed send never deducts a credit.
    """,
    responses={
        400: {"description": "Invalid input", "model": ErrorResponse},
        402: {
            "description": "No SMS credits left",
            "model": ErrorResponse,
            "content": {
                "application/json": {
                    "example": {
                        "detail": "Insufficient SMS credits (0 remaining)"
                    }
                }
            }
        },
        502: {"description": "All SMS providers failed", "model": ErrorResponse}
    }
)
async def send_sms(
    request: SendSmsRequest,
    db: Session = Depends(get_db)
):
    """Send an SMS and charge one credit"""
    try:
        result = await sms_send_service.send(
            db,
            user_email=request.user_email,
            recipient_phone=request.recipient_phone,
            message=request.message,
            recipient_name=request.recipient_name
        )
        return SendSmsResponse(success=True, **result)
    except HTTPException:
        raise
    except Exception as e:
        raise http_error(e, "send SMS")
