import logging
from datetime import datetime, timedelta
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from smsledger.database import SessionLocal
from smsledger.services.ledger import ledger_service
from smsledger.services.payments import payment_service, payment_to_dict
from smsledger.services.telegram import (
    telegram_notifier,
    pending_reminder_message,
    daily_summary_message,
)
from config import settings

logger = logging.getLogger(__name__)

class LedgerScheduler:
    def __init__(self):
        self.scheduler = AsyncIOScheduler()
        self.is_running = False

    def start(self):
        """Start the background scheduler"""
        if not self.is_running:
            # Monthly usage counter reset (explicitly opt-in)
            if settings.MONTHLY_RESET_ENABLED:
                self.scheduler.add_job(
                    self.reset_monthly_counters,
                    CronTrigger(day=settings.MONTHLY_RESET_DAY, hour=settings.MONTHLY_RESET_HOUR, minute=0),
                    id='reset_monthly_counters',
                    replace_existing=True
                )
                logger.info(
                    f"Monthly SMS counter reset enabled - day {settings.MONTHLY_RESET_DAY} "
                    f"at {settings.MONTHLY_RESET_HOUR:02d}:00"
                )
            else:
                logger.info("Monthly SMS counter reset disabled (MONTHLY_RESET_ENABLED=false)")

            # Admin reminders need a working Telegram sink
            if telegram_notifier.is_enabled():
                if settings.PENDING_REMINDER_ENABLED:
                    self.scheduler.add_job(
                        self.remind_pending_payments,
                        IntervalTrigger(hours=settings.PENDING_REMINDER_INTERVAL_HOURS),
                        id='remind_pending_payments',
                        replace_existing=True
                    )
                    logger.info(f"Pending payment reminders enabled - every {settings.PENDING_REMINDER_INTERVAL_HOURS} hours")

                if settings.DAILY_SUMMARY_ENABLED:
                    self.scheduler.add_job(
                        self.send_daily_summary,
                        CronTrigger(hour=settings.DAILY_SUMMARY_HOUR, minute=0),
                        id='daily_summary',
                        replace_existing=True
                    )
                    logger.info(f"Daily summary enabled - sent at {settings.DAILY_SUMMARY_HOUR:02d}:00")
            else:
                logger.info("Admin reminders disabled (Telegram not configured)")

            self.scheduler.start()
            self.is_running = True
            logger.info("Background scheduler started")

    def stop(self):
        """Stop the background scheduler"""
        if self.is_running:
            self.scheduler.shutdown()
            self.is_running = False
            logger.info("Background scheduler stopped")

    async def reset_monthly_counters(self):
        """Zero every user's this_month_sent counter"""
        db = SessionLocal()
        try:
            ledger_service.reset_monthly_counters(db)
        except Exception as e:
            logger.error(f"Error resetting monthly SMS counters: {str(e)}")
        finally:
            db.close()

    async def remind_pending_payments(self):
        """Alert the admin chat about payments still waiting for review"""
        db = SessionLocal()
        try:
            # Oldest first so the longest-waiting payments are listed
            pending = [payment_to_dict(p) for p in reversed(payment_service.list_pending(db))]
            if not pending:
                logger.debug("No pending payments - reminder skipped")
                return

            await telegram_notifier.notify(
                pending_reminder_message(pending),
                buttons=[[{'text': '📋 Open Admin Panel', 'url': settings.ADMIN_PANEL_URL}]] if settings.ADMIN_PANEL_URL else None
            )
            logger.info(f"Sent pending payment reminder for {len(pending)} payments")
        except Exception as e:
            logger.error(f"Error sending pending payment reminder: {str(e)}")
        finally:
            db.close()

    async def send_daily_summary(self):
        """Send the last 24 hours of activity to the admin chat"""
        db = SessionLocal()
        try:
            stats = payment_service.get_stats(db, since=datetime.utcnow() - timedelta(days=1))
            await telegram_notifier.notify(daily_summary_message(stats))
        except Exception as e:
            logger.error(f"Error sending daily summary: {str(e)}")
        finally:
            db.close()

# Global scheduler instance
ledger_scheduler = LedgerScheduler()
