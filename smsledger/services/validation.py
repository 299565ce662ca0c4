import re
from decimal import Decimal, InvalidOperation, ROUND_FLOOR
from typing import Any

from smsledger.services.errors import ValidationError

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
PHONE_PATTERN = re.compile(r'^\+?[1-9]\d{0,15}$')

# Matches Payment.amount: Numeric(18, 8)
AMOUNT_QUANTUM = Decimal("0.00000001")
MAX_AMOUNT = Decimal(10) ** 10

def require_email(email: Any) -> str:
    """Validate an email used as a ledger key (exact match, no case folding)"""
    if not email or not isinstance(email, str):
        raise ValidationError("Email is required")

    email = email.strip()
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("Invalid email format")

    return email

def parse_amount(value: Any) -> Decimal:
    """Parse a USD payment amount into a finite, positive Decimal.

    Zero is refused along with missing values: a payment must carry a
    non-zero amount to be submitted. Digits past the column's 8 decimal
    places are cut off (never rounded up) so the stored amount floors to
    the same credit count as the submitted one. Amounts that do not fit
    the column (10 integer digits) are rejected.
    """
    if value is None or isinstance(value, bool) or (isinstance(value, str) and not value.strip()):
        raise ValidationError("Amount is required")

    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid amount: {value!r}")

    if not amount.is_finite():
        raise ValidationError(f"Invalid amount: {value!r}")

    if amount <= 0:
        raise ValidationError("Amount must be greater than zero")

    if amount >= MAX_AMOUNT:
        raise ValidationError(f"Amount must be less than {MAX_AMOUNT}")

    amount = amount.quantize(AMOUNT_QUANTUM, rounding=ROUND_FLOOR)
    if amount <= 0:
        raise ValidationError("Amount must be greater than zero")

    return amount

def credits_for_amount(amount: Decimal) -> int:
    """$1 buys one SMS credit; fractional dollars are truncated"""
    return int(Decimal(amount).to_integral_value(rounding=ROUND_FLOOR))

def clean_phone(phone: Any) -> str:
    """Strip whitespace from a recipient number and check its format"""
    if not phone or not isinstance(phone, str):
        raise ValidationError("Recipient phone is required")

    cleaned = re.sub(r'\s', '', phone)
    if not PHONE_PATTERN.match(cleaned):
        raise ValidationError("Invalid phone number format")

    return cleaned
