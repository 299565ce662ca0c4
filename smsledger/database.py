from typing import Callable, Tuple, Type, TypeVar
from sqlalchemy import create_engine, text, inspect
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.orm.exc import StaleDataError
from config import settings
import logging

from smsledger.services.errors import TransactionConflict

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Approvals may also race to insert the same first-time user row
APPROVAL_RETRY_ERRORS = (StaleDataError, IntegrityError)

# Create SQLAlchemy engine
engine = create_engine(
    settings.DATABASE_URL,
    connect_args={"check_same_thread": False} if "sqlite" in settings.DATABASE_URL else {}
)

# Create SessionLocal class
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Create Base class for models
Base = declarative_base()

# Dependency to get database session
def get_db() -> Session:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def run_transaction(
    db: Session,
    work: Callable[[Session], T],
    retry_on: Tuple[Type[Exception], ...] = (StaleDataError,),
    max_attempts: int = None,
) -> T:
    """
    Run ``work`` as one atomic unit and commit it.

    Versioned rows make a conflicting concurrent write surface as
    StaleDataError at flush time. The session is then rolled back, which
    expires every loaded row, and ``work`` runs again against fresh state.
    Any other exception rolls back and propagates unchanged.
    """
    attempts = max_attempts or settings.TRANSACTION_MAX_ATTEMPTS

    for attempt in range(1, attempts + 1):
        try:
            result = work(db)
            db.commit()
            return result
        except retry_on as e:
            db.rollback()
            logger.warning(f"Transaction conflict (attempt {attempt}/{attempts}): {type(e).__name__}")
            if attempt == attempts:
                raise TransactionConflict(
                    f"Transaction aborted after {attempts} conflicting attempts"
                ) from e
        except Exception:
            db.rollback()
            raise

def get_table_columns(conn, table_name: str) -> list:
    """Get list of column names for a table"""
    try:
        if "sqlite" in settings.DATABASE_URL:
            # SQLite specific query
            result = conn.execute(text(f"PRAGMA table_info({table_name})"))
            columns = [row[1] for row in result]  # Column name is at index 1
            return columns
        else:
            # PostgreSQL/MySQL compatible approach
            inspector = inspect(conn)
            columns = [col['name'] for col in inspector.get_columns(table_name)]
            return columns
    except Exception as e:
        logger.debug(f"Error getting columns for {table_name}: {e}")
        return []

def table_exists(conn, table_name: str) -> bool:
    """Check if a table exists"""
    try:
        return table_name in inspect(conn).get_table_names()
    except Exception as e:
        logger.error(f"Error checking if table {table_name} exists: {e}")
        return False

REQUIRED_COLUMNS = {
    "users": [
        'email', 'sms_credits', 'subscription_status', 'total_sent',
        'this_month_sent', 'last_used', 'last_payment_date', 'recent_activity',
        'created_at', 'last_updated', 'version'
    ],
    "payments": [
        'id', 'email', 'amount', 'txid', 'currency', 'status', 'created_at',
        'updated_at', 'approved_at', 'approved_by', 'rejected_at',
        'rejected_by', 'version'
    ],
    "sms_logs": [
        'id', 'user_email', 'recipient_phone', 'provider', 'message_id',
        'status', 'timestamp', 'created_at'
    ],
}

def verify_database_schema():
    """Verify that the database schema matches the expected structure"""
    try:
        with engine.connect() as conn:
            for table_name, required_columns in REQUIRED_COLUMNS.items():
                if not table_exists(conn, table_name):
                    logger.error(f"Missing table: {table_name}")
                    return False

                columns = get_table_columns(conn, table_name)
                missing_columns = [col for col in required_columns if col not in columns]
                if missing_columns:
                    logger.error(f"Missing columns in {table_name} table: {missing_columns}")
                    return False
                logger.info(f"{table_name.capitalize()} table schema verified successfully")

            return True

    except Exception as e:
        logger.error(f"Database schema verification failed: {e}")
        return False

# Create all tables
def create_tables():
    """Create all tables and verify the resulting schema"""
    # Register models on Base.metadata
    from smsledger import models  # noqa: F401

    try:
        logger.info("Creating database tables...")

        Base.metadata.create_all(bind=engine)
        logger.info("SQLAlchemy tables created successfully")

        if verify_database_schema():
            logger.info("Database initialization completed successfully")
        else:
            raise Exception("Database schema verification failed")

    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise
