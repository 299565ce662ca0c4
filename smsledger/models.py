from sqlalchemy import Column, Integer, String, DateTime, Numeric, JSON, Text
from datetime import datetime
from uuid import uuid4
from smsledger.database import Base

SUBSCRIPTION_ACTIVE = "active"
SUBSCRIPTION_INACTIVE = "inactive"

def generate_payment_id() -> str:
    return uuid4().hex

class User(Base):
    __tablename__ = "users"

    email = Column(String, primary_key=True)  # case-sensitive, never normalized

    # Credit balance (only mutated inside ledger transactions)
    sms_credits = Column(Integer, nullable=False, default=0)
    subscription_status = Column(String, nullable=False, default=SUBSCRIPTION_INACTIVE)  # active, inactive

    # Usage counters
    total_sent = Column(Integer, nullable=False, default=0)
    this_month_sent = Column(Integer, nullable=False, default=0)
    recent_activity = Column(JSON, nullable=False, default=list)  # newest first, bounded

    # Profile (merged on registration)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    name = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    location = Column(String, nullable=True)
    country = Column(String, nullable=True)
    source = Column(String, nullable=True)  # main_app, payment

    # Timestamps
    last_used = Column(DateTime, nullable=True)
    last_payment_date = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    last_updated = Column(DateTime, default=datetime.utcnow)

    # Optimistic concurrency: every UPDATE is guarded by the version it read
    version = Column(Integer, nullable=False)
    __mapper_args__ = {"version_id_col": version}

class Payment(Base):
    __tablename__ = "payments"

    id = Column(String, primary_key=True, default=generate_payment_id)
    email = Column(String, index=True, nullable=False)  # owner, user row may not exist yet
    amount = Column(Numeric(18, 8), nullable=False)  # USD value
    txid = Column(String, unique=True, index=True, nullable=False)
    currency = Column(String, nullable=False)
    status = Column(String, index=True, nullable=False, default="pending")  # pending, approved, rejected

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)

    # Transition audit (each pair set once, by its own transition)
    approved_at = Column(DateTime, nullable=True)
    approved_by = Column(String, nullable=True)
    rejected_at = Column(DateTime, nullable=True)
    rejected_by = Column(String, nullable=True)

    version = Column(Integer, nullable=False)
    __mapper_args__ = {"version_id_col": version}

class SmsLog(Base):
    __tablename__ = "sms_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_email = Column(String, index=True, nullable=False)
    recipient_phone = Column(String, nullable=False)
    recipient_name = Column(String, nullable=True)
    provider = Column(String, nullable=True)
    message_id = Column(String, nullable=True)
    status = Column(String, nullable=False)  # sent
    error = Column(Text, nullable=True)
    timestamp = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
