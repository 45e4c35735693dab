"""
Digest persistence

Run/recipient/insight storage plus the read queries the digest batch needs.
Run and recipient creation are insert-first under unique constraints, so two
overlapping batches for the same café and week converge on one row instead
of racing a read-then-write.
"""
from datetime import date, datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.cafe import Cafe, Review, CompetitorSnapshot
from app.models.digest import (
    DigestRun,
    DigestRecipient,
    DigestInsight,
    RUN_PENDING,
    RUN_SENT,
    RUN_FAILED,
    RECIPIENT_QUEUED,
    RECIPIENT_SENT,
    RECIPIENT_FAILED,
)
from app.models.user import UserPreference
from app.utils.logger import log


class DigestRepository:
    """SQLAlchemy-backed store for digest runs, recipients and insights"""

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_cafes(self, cafe_id: Optional[str] = None) -> List[Cafe]:
        query = self.db.query(Cafe)
        if cafe_id:
            query = query.filter(Cafe.id == cafe_id)
        return query.order_by(Cafe.created_at, Cafe.id).all()

    def get_preference(self, user_id: str) -> Optional[UserPreference]:
        return self.db.query(UserPreference).filter(UserPreference.user_id == user_id).first()

    def load_reviews(self, cafe_id: str, since: datetime) -> List[Review]:
        """Reviews created on or after `since`, newest first"""
        return (
            self.db.query(Review)
            .filter(Review.cafe_id == cafe_id, Review.review_created_at >= since)
            .order_by(Review.review_created_at.desc(), Review.id.desc())
            .all()
        )

    def load_latest_snapshots(self, cafe_id: str) -> List[CompetitorSnapshot]:
        """The most recent snapshot batch only"""
        latest = (
            self.db.query(func.max(CompetitorSnapshot.snapshot_date))
            .filter(CompetitorSnapshot.cafe_id == cafe_id)
            .scalar()
        )
        if latest is None:
            return []
        return (
            self.db.query(CompetitorSnapshot)
            .filter(CompetitorSnapshot.cafe_id == cafe_id, CompetitorSnapshot.snapshot_date == latest)
            .all()
        )

    def find_run(self, cafe_id: str, period_start: date, period_end: date) -> Optional[DigestRun]:
        return (
            self.db.query(DigestRun)
            .filter(
                DigestRun.cafe_id == cafe_id,
                DigestRun.period_start == period_start,
                DigestRun.period_end == period_end,
            )
            .first()
        )

    def find_recipient(self, run_id: int, user_id: str) -> Optional[DigestRecipient]:
        return (
            self.db.query(DigestRecipient)
            .filter(DigestRecipient.digest_run_id == run_id, DigestRecipient.user_id == user_id)
            .first()
        )

    def get_recipient(self, recipient_id: int) -> Optional[DigestRecipient]:
        return self.db.query(DigestRecipient).filter(DigestRecipient.id == recipient_id).first()

    def list_insights(self, run_id: int) -> List[DigestInsight]:
        return (
            self.db.query(DigestInsight)
            .filter(DigestInsight.digest_run_id == run_id)
            .order_by(DigestInsight.rank)
            .all()
        )

    # ------------------------------------------------------------------
    # Conditional inserts
    # ------------------------------------------------------------------

    def get_or_create_run(
        self,
        cafe_id: str,
        period_start: date,
        period_end: date,
        period_label: str,
        window_days: int = 7,
    ) -> Tuple[DigestRun, bool]:
        """
        Return (run, created). A concurrent insert for the same period loses
        on the unique constraint and reads back the winner.
        """
        existing = self.find_run(cafe_id, period_start, period_end)
        if existing:
            return existing, False

        run = DigestRun(
            cafe_id=cafe_id,
            period_start=period_start,
            period_end=period_end,
            period_label=period_label,
            window_days=window_days,
            status=RUN_PENDING,
        )
        self.db.add(run)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            winner = self.find_run(cafe_id, period_start, period_end)
            if winner is None:
                raise
            log.info(f"Digest run for cafe {cafe_id} {period_start} created concurrently, reusing #{winner.id}")
            return winner, False

        self.db.refresh(run)
        return run, True

    def get_or_create_recipient(self, run: DigestRun, user_id: str, email: str) -> Tuple[DigestRecipient, bool]:
        existing = self.find_recipient(run.id, user_id)
        if existing:
            return existing, False

        recipient = DigestRecipient(
            digest_run_id=run.id,
            user_id=user_id,
            email=email,
            status=RECIPIENT_QUEUED,
        )
        self.db.add(recipient)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            winner = self.find_recipient(run.id, user_id)
            if winner is None:
                raise
            return winner, False

        self.db.refresh(recipient)
        return recipient, True

    def save_insights(self, run_id: int, rows: List[Dict]) -> int:
        """
        Store the run's current summary rows.

        Ids already stored keep their row with the new rank; stored ids no
        longer in the summary are removed, so a resumed run never holds more
        than one summary. Returns the number of new rows.
        """
        stored = {
            insight.insight_id: insight
            for insight in self.db.query(DigestInsight).filter(DigestInsight.digest_run_id == run_id).all()
        }
        wanted = {row['insight_id'] for row in rows}
        for insight_id, insight in stored.items():
            if insight_id not in wanted:
                self.db.delete(insight)

        created = 0
        for row in rows:
            existing = stored.get(row['insight_id'])
            if existing is not None:
                existing.rank = row['rank']
                existing.score = row['score']
                continue
            self.db.add(DigestInsight(digest_run_id=run_id, **row))
            created += 1
        self.db.commit()
        return created

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    def mark_run_sent(self, run: DigestRun, cta_url: str, sent_at: datetime) -> None:
        run.status = RUN_SENT
        run.sent_at = sent_at
        run.cta_url = cta_url
        self.db.commit()

    def mark_run_failed(self, run: DigestRun) -> None:
        run.status = RUN_FAILED
        self.db.commit()

    def set_correlation_id(self, recipient: DigestRecipient, correlation_id: str) -> None:
        recipient.correlation_id = correlation_id
        self.db.commit()

    def mark_recipient_sent(self, recipient: DigestRecipient, message_id: Optional[str], sent_at: datetime) -> None:
        recipient.status = RECIPIENT_SENT
        recipient.sent_at = sent_at
        recipient.provider_message_id = message_id
        recipient.error = None
        self.db.commit()

    def mark_recipient_failed(self, recipient: DigestRecipient, error: Optional[str]) -> None:
        recipient.status = RECIPIENT_FAILED
        recipient.error = error
        self.db.commit()

    def record_click(self, recipient_id: int, clicked_at: datetime) -> bool:
        recipient = self.get_recipient(recipient_id)
        if recipient is None:
            return False
        recipient.clicked_at = clicked_at
        self.db.commit()
        return True

    def unsubscribe(self, user_id: str, unsubscribed_at: datetime) -> UserPreference:
        """Upsert the owner's preference to digest_enabled=False"""
        pref = self.get_preference(user_id)
        if pref is None:
            pref = UserPreference(user_id=user_id)
            self.db.add(pref)
        pref.digest_enabled = False
        pref.unsubscribed_at = unsubscribed_at
        self.db.commit()
        return pref
