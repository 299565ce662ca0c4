import os
from typing import List
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

class Settings:
    # Admin API security
    ADMIN_API_KEY: str = os.getenv("ADMIN_API_KEY", "your-secret-admin-key-here")

    # CORS configuration
    CORS_ENABLED: bool = os.getenv("CORS_ENABLED", "true").lower() == "true"
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "*")
    CORS_ALLOW_CREDENTIALS: bool = os.getenv("CORS_ALLOW_CREDENTIALS", "true").lower() == "true"
    CORS_ALLOW_METHODS: str = os.getenv("CORS_ALLOW_METHODS", "*")
    CORS_ALLOW_HEADERS: str = os.getenv("CORS_ALLOW_HEADERS", "*")

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./smsledger.db")

    # Ledger transactions
    TRANSACTION_MAX_ATTEMPTS: int = int(os.getenv("TRANSACTION_MAX_ATTEMPTS", "5"))
    RECENT_ACTIVITY_LIMIT: int = int(os.getenv("RECENT_ACTIVITY_LIMIT", "10"))
    DEFAULT_PAYMENT_CURRENCY: str = os.getenv("DEFAULT_PAYMENT_CURRENCY", "USDT")

    # Telegram admin notifications
    TELEGRAM_ENABLED: bool = os.getenv("TELEGRAM_ENABLED", "true").lower() == "true"
    TELEGRAM_BOT_TOKEN: str = os.getenv("TELEGRAM_BOT_TOKEN", "")
    TELEGRAM_ADMIN_CHAT_ID: str = os.getenv("TELEGRAM_ADMIN_CHAT_ID", "")
    TELEGRAM_API_URL: str = os.getenv("TELEGRAM_API_URL", "https://api.telegram.org")
    # Compared with the X-Telegram-Bot-Api-Secret-Token header; empty disables the check
    TELEGRAM_WEBHOOK_SECRET: str = os.getenv("TELEGRAM_WEBHOOK_SECRET", "")
    ADMIN_PANEL_URL: str = os.getenv("ADMIN_PANEL_URL", "")

    # SMS providers (tried in SMS_PROVIDER_ORDER until one accepts the message)
    SMS_PROVIDER_ORDER: str = os.getenv("SMS_PROVIDER_ORDER", "twilio,textbelt")
    TWILIO_ACCOUNT_SID: str = os.getenv("TWILIO_ACCOUNT_SID", "")
    TWILIO_AUTH_TOKEN: str = os.getenv("TWILIO_AUTH_TOKEN", "")
    TWILIO_FROM_NUMBER: str = os.getenv("TWILIO_FROM_NUMBER", "")
    TWILIO_API_URL: str = os.getenv("TWILIO_API_URL", "https://api.twilio.com")
    TEXTBELT_API_KEY: str = os.getenv("TEXTBELT_API_KEY", "")
    TEXTBELT_API_URL: str = os.getenv("TEXTBELT_API_URL", "https://textbelt.com/text")
    SMS_HTTP_TIMEOUT: float = float(os.getenv("SMS_HTTP_TIMEOUT", "30"))

    # SMS rate limiting
    SMS_MIN_INTERVAL_MS: int = int(os.getenv("SMS_MIN_INTERVAL_MS", "1000"))
    SMS_RATE_LIMIT_SCOPE: str = os.getenv("SMS_RATE_LIMIT_SCOPE", "process")  # process, none

    # Monthly usage counter reset (off unless explicitly scheduled)
    MONTHLY_RESET_ENABLED: bool = os.getenv("MONTHLY_RESET_ENABLED", "false").lower() == "true"
    MONTHLY_RESET_DAY: int = int(os.getenv("MONTHLY_RESET_DAY", "1"))
    MONTHLY_RESET_HOUR: int = int(os.getenv("MONTHLY_RESET_HOUR", "0"))

    # Admin reminders
    PENDING_REMINDER_ENABLED: bool = os.getenv("PENDING_REMINDER_ENABLED", "true").lower() == "true"
    PENDING_REMINDER_INTERVAL_HOURS: int = int(os.getenv("PENDING_REMINDER_INTERVAL_HOURS", "6"))
    DAILY_SUMMARY_ENABLED: bool = os.getenv("DAILY_SUMMARY_ENABLED", "true").lower() == "true"
    DAILY_SUMMARY_HOUR: int = int(os.getenv("DAILY_SUMMARY_HOUR", "9"))

    @property
    def cors_origins_list(self) -> List[str]:
        """Convert CORS_ORIGINS string to list"""
        if self.CORS_ORIGINS == "*":
            return ["*"]
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def cors_methods_list(self) -> List[str]:
        """Convert CORS_ALLOW_METHODS string to list"""
        if self.CORS_ALLOW_METHODS == "*":
            return ["*"]
        return [method.strip() for method in self.CORS_ALLOW_METHODS.split(",") if method.strip()]

    @property
    def cors_headers_list(self) -> List[str]:
        """Convert CORS_ALLOW_HEADERS string to list"""
        if self.CORS_ALLOW_HEADERS == "*":
            return ["*"]
        return [header.strip() for header in self.CORS_ALLOW_HEADERS.split(",") if header.strip()]

    @property
    def sms_provider_order_list(self) -> List[str]:
        """Convert SMS_PROVIDER_ORDER string to list"""
        return [name.strip().lower() for name in self.SMS_PROVIDER_ORDER.split(",") if name.strip()]

# Global settings instance
settings = Settings()
