from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List, Union
from datetime import datetime
from decimal import Decimal

# User schemas
class RegisterUserRequest(BaseModel):
    email: str = Field(
        ...,
        description="User's email address (ledger key, matched exactly)",
        example="alice@example.com"
    )
    first_name: Optional[str] = Field(None, description="First name", example="Alice")
    last_name: Optional[str] = Field(None, description="Last name", example="Smith")
    name: Optional[str] = Field(None, description="Display name", example="Alice Smith")
    phone: Optional[str] = Field(None, description="Contact phone number", example="+15551234567")
    location: Optional[str] = Field(None, description="City or region", example="Austin, TX")
    country: Optional[str] = Field(None, description="Country", example="US")
    source: str = Field("main_app", description="Where the registration came from", example="main_app")

    class Config:
        json_schema_extra = {
            "example": {
                "email": "alice@example.com",
                "first_name": "Alice",
                "last_name": "Smith",
                "phone": "+15551234567",
                "country": "US"
            }
        }

class ValidateUserRequest(BaseModel):
    email: str = Field(..., description="Email address to look up", example="alice@example.com")

class ValidateUserResponse(BaseModel):
    email: str = Field(..., description="Email address that was checked", example="alice@example.com")
    exists: bool = Field(..., description="Whether a user row exists for this email", example=True)

class ActivityEntry(BaseModel):
    recipient: str = Field(..., description="Recipient phone number", example="+15557654321")
    timestamp: str = Field(..., description="Send time (ISO 8601)", example="2024-01-15T14:30:00")
    status: str = Field(..., description="Send status", example="sent")

class UserResponse(BaseModel):
    email: str = Field(..., description="User's email address", example="alice@example.com")
    sms_credits: int = Field(..., description="Remaining SMS credits", example=19)
    subscription_status: str = Field(..., description="Subscription status (active/inactive)", example="active")
    total_sent: int = Field(..., description="Total SMS sent", example=1)
    this_month_sent: int = Field(..., description="SMS sent in the current month", example=1)
    recent_activity: List[ActivityEntry] = Field(
        default_factory=list,
        description="Most recent sends, newest first"
    )
    first_name: Optional[str] = Field(None, example="Alice")
    last_name: Optional[str] = Field(None, example="Smith")
    name: Optional[str] = Field(None, example="Alice Smith")
    phone: Optional[str] = Field(None, example="+15551234567")
    location: Optional[str] = Field(None, example="Austin, TX")
    country: Optional[str] = Field(None, example="US")
    source: Optional[str] = Field(None, example="main_app")
    last_used: Optional[datetime] = Field(None, description="Last successful send", example="2024-01-15T14:30:00")
    last_payment_date: Optional[datetime] = Field(None, description="Last approved payment", example="2024-01-15T12:00:00")
    created_at: Optional[datetime] = Field(None, description="User creation timestamp", example="2024-01-01T12:00:00")
    last_updated: Optional[datetime] = Field(None, description="Last modification timestamp", example="2024-01-15T14:30:00")

    class Config:
        from_attributes = True
        json_schema_extra = {
            "example": {
                "email": "alice@example.com",
                "sms_credits": 19,
                "subscription_status": "active",
                "total_sent": 1,
                "this_month_sent": 1,
                "recent_activity": [
                    {"recipient": "+15557654321", "timestamp": "2024-01-15T14:30:00", "status": "sent"}
                ],
                "first_name": "Alice",
                "last_name": "Smith",
                "created_at": "2024-01-01T12:00:00"
            }
        }

class DeleteUserRequest(BaseModel):
    email: str = Field(..., description="Email address of the user to delete", example="alice@example.com")

# Payment schemas
class SubmitPaymentRequest(BaseModel):
    email: str = Field(..., description="Email of the paying user", example="alice@example.com")
    amount: Union[str, float] = Field(
        ...,
        description="USD value of the transfer; one SMS credit per whole dollar",
        example="20"
    )
    txid: str = Field(
        ...,
        description="Blockchain transaction ID of the transfer",
        example="0x9f2c4a7e1b3d5f60718293a4b5c6d7e8f9012345678901234567890abcdef12"
    )
    currency: Optional[str] = Field(None, description="Asset that was sent (defaults to USDT)", example="USDT")

    class Config:
        json_schema_extra = {
            "example": {
                "email": "alice@example.com",
                "amount": "20",
                "txid": "0x9f2c4a7e1b3d5f60718293a4b5c6d7e8f9012345678901234567890abcdef12",
                "currency": "USDT"
            }
        }

class PaymentResponse(BaseModel):
    id: str = Field(..., description="Generated payment ID", example="5f0c6e2a9b8d4c3e8f1a2b3c4d5e6f70")
    email: str = Field(..., description="Email of the paying user", example="alice@example.com")
    amount: Decimal = Field(..., description="USD value of the transfer", example="20")
    credits: int = Field(..., description="SMS credits this payment grants when approved", example=20)
    txid: str = Field(..., description="Blockchain transaction ID", example="0x9f2c4a7e...")
    currency: str = Field(..., description="Payment asset", example="USDT")
    status: str = Field(..., description="Payment status (pending/approved/rejected)", example="pending")
    created_at: Optional[datetime] = Field(None, example="2024-01-15T12:00:00")
    updated_at: Optional[datetime] = Field(None, example="2024-01-15T12:00:00")
    approved_at: Optional[datetime] = Field(None, example=None)
    approved_by: Optional[str] = Field(None, example=None)
    rejected_at: Optional[datetime] = Field(None, example=None)
    rejected_by: Optional[str] = Field(None, example=None)

class PaymentActionRequest(BaseModel):
    payment_id: str = Field(..., description="ID of the payment", example="5f0c6e2a9b8d4c3e8f1a2b3c4d5e6f70")
    admin_email: Optional[str] = Field(
        None,
        description="Admin performing the action (defaults to 'admin')",
        example="admin@example.com"
    )

class DeletePaymentRequest(BaseModel):
    payment_id: str = Field(..., description="ID of the payment to delete", example="5f0c6e2a9b8d4c3e8f1a2b3c4d5e6f70")

class ApprovalResponse(BaseModel):
    status: str = Field(..., example="success")
    message: str = Field(..., example="Payment approved. 20 SMS credits added to alice@example.com")
    payment: PaymentResponse
    credits_added: int = Field(..., description="Credits granted by this approval", example=20)
    sms_credits: int = Field(..., description="User's balance after the grant", example=20)

# SMS schemas
class CreditCheckResponse(BaseModel):
    user_email: str = Field(..., example="alice@example.com")
    sms_credits: int = Field(..., description="Remaining SMS credits", example=20)
    has_credits: bool = Field(..., description="Whether at least one credit remains", example=True)
    subscription_status: str = Field(..., example="active")
    last_used: Optional[datetime] = Field(None, example="2024-01-15T14:30:00")
    total_sent: int = Field(..., example=0)
    this_month_sent: int = Field(..., example=0)

class SendSmsRequest(BaseModel):
    user_email: str = Field(..., description="Email of the user whose credit pays for the message", example="alice@example.com")
    recipient_phone: str = Field(..., description="Destination number (E.164 preferred)", example="+15557654321")
    recipient_name: Optional[str] = Field(None, description="Recipient display name for the activity log", example="Bob")
    message: str = Field(..., min_length=1, max_length=1600, description="Message body", example="Your order has shipped.")

    class Config:
        json_schema_extra = {
            "example": {
                "user_email": "alice@example.com",
                "recipient_phone": "+15557654321",
                "recipient_name": "Bob",
                "message": "Your order has shipped."
            }
        }

class SendSmsResponse(BaseModel):
    success: bool = Field(..., example=True)
    recipient_phone: str = Field(..., example="+15557654321")
    message_id: Optional[str] = Field(None, description="Provider message ID", example="SM1234567890abcdef")
    provider: Optional[str] = Field(None, description="Provider that accepted the message", example="twilio")
    credits_remaining: Optional[int] = Field(..., description="None if the balance could not be read after a failed debit", example=19)
    credit_deducted: bool = Field(..., description="False if the debit failed after delivery", example=True)

# Admin schemas
class StatsResponse(BaseModel):
    total_users: int = Field(..., example=42)
    pending_payments: int = Field(..., example=3)
    approved_payments: int = Field(..., example=17)
    total_revenue: Decimal = Field(..., description="Sum of approved payment amounts (USD)", example="340.00")
    total_credits: int = Field(..., description="Outstanding credits across all users", example=215)

class ResetResponse(BaseModel):
    status: str = Field(..., example="success")
    users_reset: int = Field(..., description="Number of users whose monthly counter was zeroed", example=12)

# Status schemas
class StatusResponse(BaseModel):
    status: str = Field(
        ...,
        description="Operation status",
        example="success"
    )
    message: str = Field(
        ...,
        description="Human-readable status message",
        example="Payment rejected"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "status": "success",
                "message": "Payment rejected"
            }
        }

# Error schemas
class ErrorResponse(BaseModel):
    detail: Optional[str] = Field(
        None,
        description="Detailed error message",
        example="Payment already approved"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "detail": "Payment already approved"
            }
        }

class TelegramCallbackResponse(BaseModel):
    ok: bool = Field(..., example=True)
    result: Optional[Dict[str, Any]] = Field(None, description="Outcome of the handled callback")
