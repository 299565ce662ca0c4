import logging
import os
from datetime import datetime
from typing import Dict, Any
from sqlalchemy import text

from smsledger.database import create_tables, verify_database_schema, get_table_columns, table_exists, engine
from smsledger.services.rate_limiter import SCOPE_PROCESS, SCOPE_NONE
from smsledger.services.sms_gateway import sms_gateway
from config import settings

logger = logging.getLogger(__name__)

class StartupManager:
    """Manages application startup tasks and health checks"""

    def __init__(self):
        self.startup_time = None
        self.startup_checks = {
            "database": False,
            "schema": False,
            "config": False,
            "sms_providers": False
        }
        self.startup_errors = []

    async def run_startup_checks(self) -> Dict[str, Any]:
        """Run all startup checks and return status"""
        self.startup_time = datetime.utcnow()
        logger.info("=== SMS Ledger Startup Checks ===")

        # Check 1: Database Creation
        try:
            logger.info("1. Checking database...")
            create_tables()
            self.startup_checks["database"] = True
            logger.info("✓ Database initialized successfully")
        except Exception as e:
            error_msg = f"Database initialization failed: {str(e)}"
            logger.error(f"✗ {error_msg}")
            self.startup_errors.append(error_msg)

        # Check 2: Schema Verification
        try:
            logger.info("2. Verifying database schema...")
            if verify_database_schema():
                self.startup_checks["schema"] = True
                logger.info("✓ Database schema verified successfully")
            else:
                raise Exception("Schema verification failed")
        except Exception as e:
            error_msg = f"Database schema verification failed: {str(e)}"
            logger.error(f"✗ {error_msg}")
            self.startup_errors.append(error_msg)

        # Check 3: Configuration Validation
        try:
            logger.info("3. Validating configuration...")
            self._validate_configuration()
            self.startup_checks["config"] = True
            logger.info("✓ Configuration validated successfully")
        except Exception as e:
            error_msg = f"Configuration validation failed: {str(e)}"
            logger.error(f"✗ {error_msg}")
            self.startup_errors.append(error_msg)

        # Check 4: SMS providers
        providers = sms_gateway.configured_providers()
        if providers:
            logger.info(f"✓ SMS providers configured: {', '.join(providers)}")
        else:
            # Sending fails cleanly without providers; don't fail startup for it
            logger.warning("⚠ No SMS providers configured - sends will be rejected")
        self.startup_checks["sms_providers"] = True

        # Log final status
        total_checks = len(self.startup_checks)
        passed_checks = sum(self.startup_checks.values())

        if passed_checks == total_checks and not self.startup_errors:
            logger.info(f"=== Startup Complete: {passed_checks}/{total_checks} checks passed ===")
        else:
            logger.warning(f"=== Startup Complete: {passed_checks}/{total_checks} checks passed, {len(self.startup_errors)} errors ===")
            for error in self.startup_errors:
                logger.error(f"  • {error}")

        return self.get_startup_status()

    def _validate_configuration(self):
        """Validate critical configuration settings"""
        errors = []

        if not settings.DATABASE_URL:
            errors.append("DATABASE_URL not configured")

        if not settings.ADMIN_API_KEY:
            errors.append("ADMIN_API_KEY not configured")

        if settings.TRANSACTION_MAX_ATTEMPTS < 1:
            errors.append("TRANSACTION_MAX_ATTEMPTS must be at least 1")

        if settings.RECENT_ACTIVITY_LIMIT < 1:
            errors.append("RECENT_ACTIVITY_LIMIT must be at least 1")

        if settings.SMS_RATE_LIMIT_SCOPE.lower() not in (SCOPE_PROCESS, SCOPE_NONE):
            errors.append(f"SMS_RATE_LIMIT_SCOPE must be '{SCOPE_PROCESS}' or '{SCOPE_NONE}'")

        if settings.TELEGRAM_ENABLED:
            if not settings.TELEGRAM_BOT_TOKEN:
                errors.append("TELEGRAM_BOT_TOKEN required when TELEGRAM_ENABLED=true")
            if not settings.TELEGRAM_ADMIN_CHAT_ID:
                errors.append("TELEGRAM_ADMIN_CHAT_ID required when TELEGRAM_ENABLED=true")

        if settings.MONTHLY_RESET_ENABLED and not 1 <= settings.MONTHLY_RESET_DAY <= 28:
            errors.append("MONTHLY_RESET_DAY must be between 1 and 28")

        # Check if database file directory exists (for SQLite)
        if "sqlite" in settings.DATABASE_URL and ":memory:" not in settings.DATABASE_URL:
            db_path = settings.DATABASE_URL.replace("sqlite:///", "")
            db_dir = os.path.dirname(os.path.abspath(db_path))
            if not os.path.exists(db_dir):
                errors.append(f"Database directory does not exist: {db_dir}")
            elif not os.access(db_dir, os.W_OK):
                errors.append(f"Database directory is not writable: {db_dir}")

        if errors:
            raise Exception("; ".join(errors))

    def get_startup_status(self) -> Dict[str, Any]:
        """Get current startup status"""
        return {
            "startup_time": self.startup_time.isoformat() if self.startup_time else None,
            "uptime_seconds": (datetime.utcnow() - self.startup_time).total_seconds() if self.startup_time else 0,
            "checks": self.startup_checks,
            "checks_passed": sum(self.startup_checks.values()),
            "total_checks": len(self.startup_checks),
            "errors": self.startup_errors,
            "status": "healthy" if all(self.startup_checks.values()) and not self.startup_errors else "degraded"
        }

    def get_database_info(self) -> Dict[str, Any]:
        """Get detailed database information"""
        try:
            with engine.connect() as conn:
                db_info = {
                    "url": settings.DATABASE_URL.split("://")[0] + "://***",  # Hide credentials
                    "tables": {}
                }

                if table_exists(conn, "users"):
                    user_columns = get_table_columns(conn, "users")
                    user_count = conn.execute(text("SELECT COUNT(*) FROM users")).scalar()
                    active_count = conn.execute(text("SELECT COUNT(*) FROM users WHERE subscription_status = 'active'")).scalar()

                    db_info["tables"]["users"] = {
                        "exists": True,
                        "columns": len(user_columns),
                        "total_users": user_count,
                        "active_users": active_count
                    }
                else:
                    db_info["tables"]["users"] = {"exists": False}

                if table_exists(conn, "payments"):
                    payment_columns = get_table_columns(conn, "payments")
                    payment_count = conn.execute(text("SELECT COUNT(*) FROM payments")).scalar()
                    pending_count = conn.execute(text("SELECT COUNT(*) FROM payments WHERE status = 'pending'")).scalar()

                    db_info["tables"]["payments"] = {
                        "exists": True,
                        "columns": len(payment_columns),
                        "total_payments": payment_count,
                        "pending_payments": pending_count
                    }
                else:
                    db_info["tables"]["payments"] = {"exists": False}

                if table_exists(conn, "sms_logs"):
                    db_info["tables"]["sms_logs"] = {
                        "exists": True,
                        "total_sent": conn.execute(text("SELECT COUNT(*) FROM sms_logs")).scalar()
                    }
                else:
                    db_info["tables"]["sms_logs"] = {"exists": False}

                return db_info

        except Exception as e:
            logger.error(f"Failed to get database info: {e}")
            return {"error": str(e)}

# Global startup manager instance
startup_manager = StartupManager()
