from fastapi import APIRouter, Depends, BackgroundTasks, Body, Header, HTTPException, status
from sqlalchemy.orm import Session
from typing import Dict, Any, Optional
import logging

from smsledger.database import get_db
from smsledger.schemas import TelegramCallbackResponse
from smsledger.services.errors import LedgerError
from smsledger.services.payments import payment_service
from smsledger.services.telegram import (
    telegram_notifier,
    payment_approved_message,
    payment_rejected_message,
    payment_deleted_message
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/telegram", tags=["telegram"])

TELEGRAM_ADMIN = "telegram_admin"
NOTIFY_SOURCE = "Telegram"

# Longest prefix first: "delete_payment_" must not be read as another action
CALLBACK_ACTIONS = (
    ("delete_payment_", "delete"),
    ("approve_", "approve"),
    ("reject_", "reject"),
)

def parse_callback_data(data: str):
    """Split callback data like ``approve_<id>`` into (action, payment_id)"""
    for prefix, action in CALLBACK_ACTIONS:
        if data.startswith(prefix) and len(data) > len(prefix):
            return action, data[len(prefix):]
    return None, None

@router.post(
    "/webhook",
    response_model=TelegramCallbackResponse,
    include_in_schema=False,  # Hide from Swagger docs
    summary="Telegram Bot Webhook",
    description="""
    Receives updates from the Telegram Bot API.

    Only inline button callbacks (`approve_<id>`, `reject_<id>`,
    `delete_payment_<id>`) from the configured admin chat are acted on.
    Every other update is acknowledged and ignored.
    When `TELEGRAM_WEBHOOK_SECRET` is set, requests must carry it in the
    `X-Telegram-Bot-Api-Secret-Token` header.
    """
)
async def telegram_webhook(
    background_tasks: BackgroundTasks,
    update: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    x_telegram_bot_api_secret_token: Optional[str] = Header(None)
):
    if not telegram_notifier.is_valid_webhook_token(x_telegram_bot_api_secret_token):
        logger.warning("Telegram webhook called with an invalid secret token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook secret"
        )

    callback_query = update.get("callback_query")
    if not callback_query:
        logger.debug("Telegram update without callback query - ignored")
        return TelegramCallbackResponse(ok=True)

    callback_id = callback_query.get("id")
    data = callback_query.get("data") or ""
    chat_id = ((callback_query.get("message") or {}).get("chat") or {}).get("id")

    if not telegram_notifier.is_admin_chat(chat_id):
        logger.warning(f"Unauthorized Telegram callback from chat {chat_id}")
        await telegram_notifier.answer_callback_query(callback_id, "❌ Unauthorized access")
        return TelegramCallbackResponse(ok=True)

    action, payment_id = parse_callback_data(data)
    if action is None:
        logger.info(f"Unsupported Telegram callback: {data}")
        await telegram_notifier.answer_callback_query(callback_id, "Unsupported action")
        return TelegramCallbackResponse(ok=True)

    try:
        if action == "approve":
            result = payment_service.approve(db, payment_id, admin_email=TELEGRAM_ADMIN)
            await telegram_notifier.answer_callback_query(
                callback_id, f"✅ Approved: {result['credits_added']} credits added"
            )
            background_tasks.add_task(
                telegram_notifier.notify,
                payment_approved_message(result["payment"], result["credits_added"], NOTIFY_SOURCE),
                chat_id=str(chat_id)
            )
        elif action == "reject":
            payment = payment_service.reject(db, payment_id, admin_email=TELEGRAM_ADMIN)
            await telegram_notifier.answer_callback_query(callback_id, "❌ Payment rejected")
            background_tasks.add_task(
                telegram_notifier.notify,
                payment_rejected_message(payment, NOTIFY_SOURCE),
                chat_id=str(chat_id)
            )
        else:
            deleted = payment_service.delete(db, payment_id)
            await telegram_notifier.answer_callback_query(callback_id, "🗑️ Payment deleted")
            background_tasks.add_task(
                telegram_notifier.notify,
                payment_deleted_message(deleted["id"], NOTIFY_SOURCE),
                chat_id=str(chat_id)
            )

        return TelegramCallbackResponse(ok=True, result={"action": action, "payment_id": payment_id})

    except LedgerError as e:
        # Expected outcomes such as a double approval are reported back to the button
        logger.info(f"Telegram {action} of payment {payment_id} refused: {str(e)}")
        await telegram_notifier.answer_callback_query(callback_id, f"⚠️ {str(e)}")
        return TelegramCallbackResponse(ok=True, result={"action": action, "payment_id": payment_id, "error": str(e)})
    except Exception as e:
        logger.error(f"Error handling Telegram callback {data}: {str(e)}")
        await telegram_notifier.answer_callback_query(callback_id, "❌ Error processing request")
        return TelegramCallbackResponse(ok=True, result={"action": action, "payment_id": payment_id, "error": "Internal server error"})
