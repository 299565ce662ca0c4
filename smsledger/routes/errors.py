import logging
from fastapi import HTTPException, status

from smsledger.services.errors import (
    ValidationError,
    NotFound,
    ConflictError,
    InsufficientCredits,
    SmsDeliveryFailed,
)

logger = logging.getLogger(__name__)

INTERNAL_ERROR_DETAIL = "Internal server error"

def http_error(e: Exception, action: str) -> HTTPException:
    """Translate a service exception into the HTTPException a route raises"""
    if isinstance(e, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if isinstance(e, NotFound):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, ConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if isinstance(e, InsufficientCredits):
        return HTTPException(status_code=status.HTTP_402_PAYMENT_REQUIRED, detail=str(e))
    if isinstance(e, SmsDeliveryFailed):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))

    # Store failures and anything unexpected: log the cause, return nothing internal
    logger.error(f"Failed to {action}: {type(e).__name__}: {str(e)}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=INTERNAL_ERROR_DETAIL
    )
