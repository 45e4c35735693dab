"""Owner accounts and notification preferences"""
from datetime import datetime

from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey
from app.models.base import Base


class User(Base):
    """Café owner, mirrored from the external auth provider"""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True)
    email = Column(String, index=True, nullable=True)
    display_name = Column(String, nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class UserPreference(Base):
    __tablename__ = "user_preferences"

    user_id = Column(String(36), ForeignKey("users.id"), primary_key=True)
    digest_enabled = Column(Boolean, default=True, nullable=False)
    unsubscribed_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def allows_digest(self) -> bool:
        return bool(self.digest_enabled) and self.unsubscribed_at is None
