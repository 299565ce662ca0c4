import hmac
import html
import httpx
import logging
from typing import Dict, List, Optional, Any

from config import settings

logger = logging.getLogger(__name__)

Buttons = List[List[Dict[str, str]]]

class TelegramNotifier:
    """Best-effort admin alerts through the Telegram Bot API.

    Nothing here raises: every failure is logged and reported as False so a
    notification can never fail the ledger operation that triggered it.
    """

    def __init__(self):
        self.bot_token = settings.TELEGRAM_BOT_TOKEN
        self.admin_chat_id = settings.TELEGRAM_ADMIN_CHAT_ID
        self.api_url = settings.TELEGRAM_API_URL.rstrip('/')
        self.webhook_secret = settings.TELEGRAM_WEBHOOK_SECRET

    def is_enabled(self) -> bool:
        return settings.TELEGRAM_ENABLED and bool(self.bot_token) and bool(self.admin_chat_id)

    def is_admin_chat(self, chat_id: Any) -> bool:
        return bool(self.admin_chat_id) and str(chat_id) == str(self.admin_chat_id)

    def is_valid_webhook_token(self, token: Optional[str]) -> bool:
        if not self.webhook_secret:
            return True
        return token is not None and hmac.compare_digest(token, self.webhook_secret)

    async def _call(self, method: str, payload: Dict[str, Any]) -> bool:
        async with httpx.AsyncClient() as client:
            try:
                response = await client.post(
                    f"{self.api_url}/bot{self.bot_token}/{method}",
                    json=payload,
                    timeout=10.0
                )
                data = response.json()
                if not data.get('ok'):
                    logger.error(f"Telegram API error ({method}): {data}")
                    return False
                return True
            except Exception as e:
                logger.error(f"Error calling Telegram {method}: {str(e)}")
                return False

    async def notify(
        self,
        text: str,
        chat_id: Optional[str] = None,
        buttons: Optional[Buttons] = None,
        disable_preview: bool = False
    ) -> bool:
        """Send an HTML message to the admin chat (or ``chat_id``)"""
        if not settings.TELEGRAM_ENABLED:
            logger.debug("Telegram notifications disabled - skipping message")
            return False

        target_chat = chat_id or self.admin_chat_id
        if not self.bot_token or not target_chat:
            logger.warning("Telegram Bot Token or Admin Chat ID missing. Skipping notification.")
            return False

        payload = {
            'chat_id': target_chat,
            'text': text,
            'parse_mode': 'HTML',
            'disable_web_page_preview': disable_preview
        }
        if buttons:
            payload['reply_markup'] = {'inline_keyboard': buttons}

        sent = await self._call('sendMessage', payload)
        if sent:
            logger.info("Telegram notification sent successfully.")
        return sent

    async def answer_callback_query(self, callback_query_id: Optional[str], text: str) -> bool:
        if not callback_query_id or not self.bot_token:
            return False
        return await self._call('answerCallbackQuery', {
            'callback_query_id': callback_query_id,
            'text': text,
            'show_alert': False
        })

def _admin_panel_row() -> Buttons:
    if not settings.ADMIN_PANEL_URL:
        return []
    return [[{'text': '🔗 Open Admin Panel', 'url': settings.ADMIN_PANEL_URL}]]

def payment_action_buttons(payment_id: str) -> Buttons:
    return [
        [
            {'text': '✅ Approve Payment', 'callback_data': f'approve_{payment_id}'},
            {'text': '❌ Reject Payment', 'callback_data': f'reject_{payment_id}'}
        ],
        [
            {'text': '🗑️ Delete Payment', 'callback_data': f'delete_payment_{payment_id}'}
        ]
    ] + _admin_panel_row()

def payment_submitted_message(payment: Dict[str, Any]) -> str:
    return (
        "💰 <b>New Payment Request - PENDING APPROVAL!</b>\n\n"
        f"<b>User:</b> {html.escape(payment['email'])}\n"
        f"<b>Amount:</b> ${payment['amount']} {html.escape(payment['currency'])}\n"
        f"<b>TXID:</b> <code>{html.escape(payment['txid'])}</code>\n"
        f"<b>Payment ID:</b> <code>{payment['id']}</code>\n"
        "<b>Status:</b> ⏳ <b>PENDING</b>\n\n"
        "<i>Tap a button below to approve or reject.</i>"
    )

def payment_approved_message(payment: Dict[str, Any], credits_added: int, source: str = "Admin Panel") -> str:
    return (
        f"✅ <b>Payment Approved via {source}</b>\n\n"
        f"<b>User:</b> {html.escape(payment['email'])}\n"
        f"<b>Amount:</b> ${payment['amount']}\n"
        f"<b>Credits Added:</b> {credits_added} SMS\n"
        f"<b>Payment ID:</b> <code>{payment['id']}</code>"
    )

def payment_rejected_message(payment: Dict[str, Any], source: str = "Admin Panel") -> str:
    return (
        f"❌ <b>Payment Rejected via {source}</b>\n\n"
        f"<b>User:</b> {html.escape(payment['email'])}\n"
        f"<b>Amount:</b> ${payment['amount']}\n"
        f"<b>Payment ID:</b> <code>{payment['id']}</code>"
    )

def payment_deleted_message(payment_id: str, source: str = "Admin Panel") -> str:
    return (
        f"🗑️ <b>Payment Deleted via {source}</b>\n\n"
        f"<b>Payment ID:</b> <code>{payment_id}</code>"
    )

def pending_reminder_message(payments: List[Dict[str, Any]]) -> str:
    message = (
        "⚠️ <b>PENDING PAYMENT ALERT!</b>\n\n"
        f"<b>{len(payments)} payment(s) awaiting approval</b>\n\n"
    )
    for index, payment in enumerate(payments[:5], start=1):
        created = payment['created_at'].strftime("%Y-%m-%d") if payment.get('created_at') else 'N/A'
        message += f"{index}. <b>${payment['amount']}</b> - {html.escape(payment['email'])}\n"
        message += f"   ID: <code>{payment['id']}</code> | Date: {created}\n\n"
    if len(payments) > 5:
        message += f"... and {len(payments) - 5} more\n"
    return message

def daily_summary_message(stats: Dict[str, Any]) -> str:
    pending = stats.get('pending_payments', 0)
    footer = (
        f"⚠️ <b>Action Required:</b> {pending} payment(s) need approval"
        if pending else "✅ All payments processed"
    )
    return (
        "📊 <b>Daily Summary Report</b>\n\n"
        "👥 <b>Users:</b>\n"
        f"   • New today: {stats.get('new_users', 0)}\n"
        f"   • Total: {stats.get('total_users', 0)}\n\n"
        "💰 <b>Payments:</b>\n"
        f"   • New today: {stats.get('new_payments', 0)}\n"
        f"   • Pending: {pending}\n"
        f"   • Revenue today: ${float(stats.get('revenue_since', 0)):.2f}\n\n"
        "💳 <b>Credits:</b>\n"
        f"   • Outstanding credits: {stats.get('total_credits', 0)}\n\n"
        f"{footer}"
    )

# Global notifier instance
telegram_notifier = TelegramNotifier()
