import logging
from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session

from smsledger.database import run_transaction, APPROVAL_RETRY_ERRORS
from smsledger.models import User
from smsledger.services.errors import UserNotFound
from smsledger.services.ledger import new_user
from smsledger.services.validation import require_email

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("first_name", "last_name", "name", "phone", "location", "country")

class UserService:
    def register(self, db: Session, email: str, source: str = "main_app", **profile) -> User:
        """Create the user or merge profile fields into the existing row.

        Balances, counters and activity are only initialized on creation, so
        registering after a payment-driven grant never clobbers the ledger.
        """
        email = require_email(email)
        updates = {key: value for key, value in profile.items() if key in PROFILE_FIELDS and value is not None}

        def _register(db: Session) -> User:
            now = datetime.utcnow()
            user = db.get(User, email)
            if user is None:
                user = new_user(email, now, source=source, **updates)
                db.add(user)
            else:
                for key, value in updates.items():
                    setattr(user, key, value)
                if not user.source:
                    user.source = source
                user.last_updated = now
            db.flush()
            return user

        user = run_transaction(db, _register, retry_on=APPROVAL_RETRY_ERRORS)
        logger.info(f"User registered/updated: {email}")
        return user

    def exists(self, db: Session, email: str) -> bool:
        return db.get(User, require_email(email)) is not None

    def get_user(self, db: Session, email: str) -> User:
        user = db.get(User, require_email(email))
        if user is None:
            raise UserNotFound(f"User {email} not found")
        return user

    def list_users(self, db: Session, limit: Optional[int] = None) -> List[User]:
        query = db.query(User).order_by(User.created_at.desc())
        if limit:
            query = query.limit(limit)
        return query.all()

    def delete_user(self, db: Session, email: str) -> str:
        email = require_email(email)

        def _delete(db: Session) -> str:
            user = db.get(User, email)
            if user is None:
                raise UserNotFound(f"User {email} not found")
            db.delete(user)
            db.flush()
            return email

        run_transaction(db, _delete)
        logger.info(f"Deleted user {email}")
        return email

# Global service instance
user_service = UserService()
