from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.openapi.utils import get_openapi
from contextlib import asynccontextmanager
import logging

from smsledger.routes import public, admin, telegram
from smsledger.services.scheduler import ledger_scheduler
from smsledger.services.sms_gateway import sms_gateway
from smsledger.services.startup import startup_manager
from smsledger.services.telegram import telegram_notifier
from config import settings

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown"""

    # Startup
    logger.info("Starting SMS Ledger API application...")

    # Run comprehensive startup checks
    startup_status = await startup_manager.run_startup_checks()

    # Check if startup was successful
    if startup_status["status"] == "degraded":
        # Log critical errors but continue running (some issues may be non-critical)
        logger.warning("Application started with some issues - check logs above")

    # Start background jobs
    ledger_scheduler.start()

    if telegram_notifier.is_enabled():
        logger.info("Telegram admin notifications enabled")
    else:
        logger.info("Telegram admin notifications disabled - approvals via admin API only")

    yield

    # Shutdown
    logger.info("Shutting down SMS Ledger API application...")

    # Stop scheduler
    ledger_scheduler.stop()
    logger.info("Application shutdown complete")

def custom_openapi():
    """Generate custom OpenAPI schema"""
    if app.openapi_schema:
        return app.openapi_schema

    openapi_schema = get_openapi(
        title="SMS Ledger API",
        version="1.0.0",
        description="""
## Prepaid SMS Credit Ledger

Users buy SMS credits with a crypto transfer, an admin approves the payment,
and every SMS sent through the gateway spends one credit.

### Features
- 💰 **Payments**: Submit a transaction ID, admin approves or rejects
- 💳 **Credits**: One SMS credit per whole US dollar, granted atomically on approval
- 📱 **SMS Gateway**: Twilio first, Textbelt as fallback, with rate limiting
- 🤖 **Telegram Bot**: Approve, reject or delete payments from the admin chat
- 📊 **Reporting**: Stats endpoint, pending reminders and a daily summary

### Consistency
Approvals and credit deductions are single transactions guarded by row
versions. A payment approved from the admin API and the Telegram bot at the
same moment grants credits exactly once.

### Authentication
Admin endpoints require the `X-API-Key` header with your admin API key.

### Response Formats
All endpoints return JSON. Errors carry a `detail` message.
        """,
        routes=app.routes,
        tags=[
            {
                "name": "public",
                "description": "User registration, payment submission, credit checks and SMS sending"
            },
            {
                "name": "admin",
                "description": "Payment review and user management (requires API key)"
            },
            {
                "name": "health",
                "description": "Health check and status endpoints"
            }
        ]
    )

    openapi_schema["info"]["license"] = {
        "name": "MIT License",
        "url": "https://opensource.org/licenses/MIT"
    }

    app.openapi_schema = openapi_schema
    return app.openapi_schema

# Create FastAPI application
app = FastAPI(
    title="SMS Ledger API",
    description="Prepaid SMS credits paid by crypto transfer",
    version="1.0.0",
    lifespan=lifespan,
    docs_url=None,  # Disable default docs
    redoc_url=None,  # Disable ReDoc
    openapi_url="/openapi.json"
)

# Set custom OpenAPI
app.openapi = custom_openapi

# Add CORS middleware conditionally
if settings.CORS_ENABLED:
    logger.info(f"CORS enabled with origins: {settings.CORS_ORIGINS}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
        allow_methods=settings.cors_methods_list,
        allow_headers=settings.cors_headers_list,
    )
else:
    logger.info("CORS disabled - assuming handled by nginx/webserver")

# Include routers
app.include_router(public.router)
app.include_router(admin.router)
app.include_router(telegram.router)

# Custom Swagger UI endpoint
@app.get("/api-docs", include_in_schema=False)
async def api_documentation():
    """Serve Swagger UI documentation"""
    return get_swagger_ui_html(
        openapi_url="/openapi.json",
        title="SMS Ledger API Documentation",
        swagger_ui_parameters={
            "deepLinking": True,
            "displayRequestDuration": True,
            "docExpansion": "list",
            "operationsSorter": "method",
            "filter": True,
            "tryItOutEnabled": True
        }
    )

# Health check endpoint
@app.get("/", tags=["health"], summary="Basic health check", include_in_schema=False)
async def root():
    """
    Basic health check endpoint

    Returns basic service information and status.
    """
    return {
        "service": "SMS Ledger API",
        "status": "healthy",
        "version": "1.0.0",
        "telegram_enabled": telegram_notifier.is_enabled(),
        "sms_providers": sms_gateway.configured_providers(),
        "cors_enabled": settings.CORS_ENABLED,
        "documentation": "/api-docs"
    }

@app.get("/health", tags=["health"], summary="Detailed health check")
async def health_check():
    """
    Detailed health check endpoint

    Returns comprehensive system status including:
    - Service health status
    - Server uptime
    - Enabled features
    - Startup checks status
    - Database information
    """
    # Get startup status
    startup_status = startup_manager.get_startup_status()

    # Calculate uptime
    uptime_seconds = int(startup_status["uptime_seconds"])
    uptime_formatted = "Unknown"

    if uptime_seconds > 0:
        # Format uptime as human-readable string
        days = uptime_seconds // 86400
        hours = (uptime_seconds % 86400) // 3600
        minutes = (uptime_seconds % 3600) // 60
        seconds = uptime_seconds % 60

        if days > 0:
            uptime_formatted = f"{days}d {hours}h {minutes}m {seconds}s"
        elif hours > 0:
            uptime_formatted = f"{hours}h {minutes}m {seconds}s"
        elif minutes > 0:
            uptime_formatted = f"{minutes}m {seconds}s"
        else:
            uptime_formatted = f"{seconds}s"

    return {
        "status": startup_status["status"],
        "uptime_seconds": uptime_seconds,
        "uptime": uptime_formatted,
        "startup_checks": {
            "passed": startup_status["checks_passed"],
            "total": startup_status["total_checks"],
            "details": startup_status["checks"],
            "errors": startup_status["errors"]
        },
        "scheduler_running": ledger_scheduler.is_running,
        "features": {
            "telegram_enabled": telegram_notifier.is_enabled(),
            "sms_providers": sms_gateway.configured_providers(),
            "sms_rate_limit_scope": settings.SMS_RATE_LIMIT_SCOPE,
            "monthly_reset_enabled": settings.MONTHLY_RESET_ENABLED,
            "pending_reminder_enabled": settings.PENDING_REMINDER_ENABLED,
            "daily_summary_enabled": settings.DAILY_SUMMARY_ENABLED,
            "cors_enabled": settings.CORS_ENABLED
        },
        "database": startup_manager.get_database_info(),
        "documentation": "/api-docs"
    }
