"""
Weekly Digest Models

One DigestRun per (café, period), one DigestRecipient per (run, owner) and the
ranked insights that went into the email.
"""
from sqlalchemy import Column, Integer, String, Float, DateTime, JSON, Text, Date, ForeignKey, UniqueConstraint
from datetime import datetime

from app.models.base import Base

RUN_PENDING = "pending"
RUN_SENT = "sent"
RUN_FAILED = "failed"

RECIPIENT_QUEUED = "queued"
RECIPIENT_SENT = "sent"
RECIPIENT_FAILED = "failed"


class DigestRun(Base):
    """
    One weekly digest computation for one café

    Status: pending -> sent | failed. A failed run is picked up again by the
    next invocation for the same period.
    """
    __tablename__ = "digest_runs"

    id = Column(Integer, primary_key=True, index=True)
    cafe_id = Column(String(36), ForeignKey("cafes.id"), index=True, nullable=False)

    # Period
    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)
    period_label = Column(String, nullable=True)  # "Week of Mar 3"
    window_days = Column(Integer, default=7)

    # Status
    status = Column(String, default=RUN_PENDING, index=True)
    sent_at = Column(DateTime, nullable=True)
    cta_url = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("cafe_id", "period_start", "period_end", name="uq_digest_runs_cafe_period"),
    )


class DigestRecipient(Base):
    """
    Delivery of one DigestRun to one owner

    A recipient in "sent" status is never sent again.
    """
    __tablename__ = "digest_recipients"

    id = Column(Integer, primary_key=True, index=True)
    digest_run_id = Column(Integer, ForeignKey("digest_runs.id"), index=True, nullable=False)
    user_id = Column(String(36), nullable=False)
    email = Column(String, nullable=False)

    # Delivery
    status = Column(String, default=RECIPIENT_QUEUED, index=True)  # queued, sent, failed
    sent_at = Column(DateTime, nullable=True)
    error = Column(Text, nullable=True)
    provider_message_id = Column(String, nullable=True)

    # Logged before the provider call; lets a reconciliation job match
    # provider-accepted sends that were never marked locally
    correlation_id = Column(String(32), nullable=True, index=True)

    # Engagement
    clicked_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("digest_run_id", "user_id", name="uq_digest_recipients_run_user"),
    )


class DigestInsight(Base):
    """Persisted copy of a ranked insight included in a digest"""
    __tablename__ = "digest_insights"

    id = Column(Integer, primary_key=True, index=True)
    digest_run_id = Column(Integer, ForeignKey("digest_runs.id"), index=True, nullable=False)

    insight_id = Column(String, nullable=False)  # e.g. recurring_complaint_42
    insight_type = Column(String, index=True, nullable=False)
    severity = Column(String, nullable=False)  # info, warn, success, error
    title = Column(String, nullable=False)
    summary = Column(Text, nullable=False)

    metric_label = Column(String, nullable=True)
    metric_value = Column(String, nullable=True)
    action_items = Column(JSON, nullable=True)

    score = Column(Float, nullable=True)
    rank = Column(Integer, nullable=True)

    deep_link = Column(Text, nullable=True)
    supporting_data = Column(JSON, nullable=True)
    """
    {
        "period_start": "2026-10-11T00:00:00",
        "period_end": "2026-10-18T00:00:00"
    }
    """

    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("digest_run_id", "insight_id", name="uq_digest_insights_run_insight"),
    )
