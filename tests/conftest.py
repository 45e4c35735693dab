"""
Shared fixtures: in-memory database, settings and email/identity test doubles.
"""
import os

# Must be set before app.config / app.models.base are imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LOG_DIR"] = ""

from datetime import datetime, timedelta
from typing import Dict, List, Optional

import pytest
from sqlalchemy.orm import sessionmaker

from app.config import Settings
from app.models.base import Base, build_engine, init_db
from app.models.cafe import Cafe, CompetitorSnapshot, Review
from app.models.user import User, UserPreference
from app.services.email_sender import EmailMessage, SendResult

NOW = datetime(2026, 10, 18, 9, 30)


class FakeSender:
    """Records messages instead of calling the provider."""

    def __init__(self):
        self.sent: List[EmailMessage] = []
        self.fail_with: Optional[str] = None

    async def send(self, message: EmailMessage) -> SendResult:
        if self.fail_with:
            return SendResult(success=False, error=self.fail_with, attempts=1, errors=[self.fail_with])
        self.sent.append(message)
        return SendResult(success=True, message_id=f"msg_{len(self.sent)}", attempts=1)


class FakeResolver:
    def __init__(self, emails: Optional[Dict[str, str]] = None):
        self.emails = emails or {}
        self.broken: set = set()

    async def get_email(self, user_id: str) -> Optional[str]:
        if user_id in self.broken:
            raise RuntimeError("auth provider unavailable")
        return self.emails.get(user_id)


@pytest.fixture
def db():
    engine = build_engine("sqlite://")
    init_db(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def settings():
    return Settings(
        app_base_url="https://app.example.com",
        cron_secret="cron-secret",
        digest_unsubscribe_secret="unsub-secret",
        resend_api_key="re_test_key",
        log_dir="",
    )


@pytest.fixture
def sender():
    return FakeSender()


@pytest.fixture
def resolver():
    return FakeResolver()


@pytest.fixture
def make_cafe(db, resolver):
    """
    Create an owner and café; returns the Cafe.

    `ratings` become reviews spread over the day before NOW, newest first.
    """
    counter = {"n": 0}

    def _make(
        name: str = "Bean There",
        email: Optional[str] = "owner@example.com",
        ratings: Optional[List[int]] = None,
        topics: Optional[List] = None,
        competitor_ratings: Optional[List[float]] = None,
        now: datetime = NOW,
    ) -> Cafe:
        counter["n"] += 1
        n = counter["n"]
        owner = User(id=f"user-{n}", email=email, display_name=f"Owner {n}")
        cafe = Cafe(id=f"cafe-{n}", name=name, owner_id=owner.id, created_at=now - timedelta(days=100 - n))
        db.add_all([owner, cafe])

        for i, rating in enumerate(ratings or []):
            db.add(Review(
                cafe_id=cafe.id,
                rating=rating,
                review_created_at=now - timedelta(hours=i + 1),
                sentiment_topics=(topics[i] if topics else None),
            ))

        for i, rating in enumerate(competitor_ratings or []):
            db.add(CompetitorSnapshot(
                cafe_id=cafe.id,
                place_id=f"place-{n}-{i}",
                rating=rating,
                total_reviews=100,
                snapshot_date=now.date(),
            ))

        db.commit()
        if email:
            resolver.emails[owner.id] = email
        return cafe

    return _make


@pytest.fixture
def opt_out(db):
    def _opt_out(user_id: str, digest_enabled: bool = False, unsubscribed_at: Optional[datetime] = None):
        db.add(UserPreference(user_id=user_id, digest_enabled=digest_enabled, unsubscribed_at=unsubscribed_at))
        db.commit()

    return _opt_out
