"""Owner id -> notification email"""
from typing import Optional, Protocol

from sqlalchemy.orm import Session

from app.models.user import User


class IdentityResolver(Protocol):
    async def get_email(self, user_id: str) -> Optional[str]:
        ...


class DatabaseIdentityResolver:
    """Reads the owner's email from the users table mirrored from the auth provider"""

    def __init__(self, db: Session):
        self.db = db

    async def get_email(self, user_id: str) -> Optional[str]:
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user or not user.is_active or not user.email:
            return None
        return user.email.strip() or None
