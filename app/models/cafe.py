"""
Café, review and competitor snapshot models

Reviews and competitor snapshots are written by the external sync jobs and are
read-only to the insight pipeline.
"""
import uuid
from datetime import datetime

from sqlalchemy import Column, Integer, String, Float, DateTime, Date, JSON, Text, ForeignKey, Index

from app.models.base import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class Cafe(Base):
    """One physical location with one owner"""
    __tablename__ = "cafes"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String, nullable=True)
    owner_id = Column(String(36), ForeignKey("users.id"), index=True, nullable=False)
    google_place_id = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class Review(Base):
    """
    One Google review

    A review without a numeric rating is excluded from every aggregate.
    """
    __tablename__ = "reviews"

    id = Column(Integer, primary_key=True, index=True)
    cafe_id = Column(String(36), ForeignKey("cafes.id"), nullable=False)
    external_id = Column(String, nullable=True)

    rating = Column(Integer, nullable=True)  # 1-5
    text = Column(Text, nullable=True)
    author_name = Column(String, nullable=True)
    review_created_at = Column(DateTime, nullable=True)  # platform time, not ingestion time

    # Sentiment scorer output
    sentiment_score = Column(Float, nullable=True)  # -1..1
    sentiment_label = Column(String, nullable=True)  # positive, neutral, negative
    sentiment_topics = Column(JSON, nullable=True)
    """
    Stored in any of three shapes:
        ["coffee", "wait time"]
        {"topics": ["coffee", "wait time"]}
        {"coffee": 0.8, "wait time": -0.6}
    """

    ingested_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_reviews_cafe_created", "cafe_id", "review_created_at"),
    )


class CompetitorSnapshot(Base):
    """Metrics for one nearby business as of a snapshot date"""
    __tablename__ = "competitor_snapshots"

    id = Column(Integer, primary_key=True, index=True)
    cafe_id = Column(String(36), ForeignKey("cafes.id"), nullable=False)
    place_id = Column(String, nullable=True)
    name = Column(String, nullable=True)

    rating = Column(Float, nullable=True)
    total_reviews = Column(Integer, nullable=True)
    snapshot_date = Column(Date, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_competitor_snapshots_cafe_date", "cafe_id", "snapshot_date"),
    )
