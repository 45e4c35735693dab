"""
Insights Overview Service

Live, read-only sibling of the weekly digest: the same statistics, themes,
benchmark and rules over a caller-chosen window, returned whole for the
dashboard. Nothing is written.
"""
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from app.exceptions import CafeNotFoundError, ReviewLoadError
from app.models.cafe import Cafe
from app.services.competitor_benchmark import benchmark_competitors
from app.services.digest_repository import DigestRepository
from app.services.insight_ranker import rank_candidates
from app.services.insight_rules import OVERVIEW_THRESHOLDS, generate_candidates
from app.services.insight_types import KIND_OPPORTUNITY, KIND_SIGNAL
from app.services.review_stats import (
    SECONDARY_VELOCITY_DAYS,
    ReviewRecord,
    aggregate_reviews,
    rated_reviews,
    start_of_day,
    window_reviews,
)
from app.services.theme_extractor import extract_themes
from app.utils.helpers import clamp_int
from app.utils.logger import log

DEFAULT_WINDOW_DAYS = 180
MIN_WINDOW_DAYS = 7
MAX_WINDOW_DAYS = 365
TOP_PHRASES = 6
RECENT_HIGHLIGHTS = 3


def clamp_window_days(raw) -> int:
    """Query-string window to [7, 365]; blank or non-numeric means 180"""
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return DEFAULT_WINDOW_DAYS
    return clamp_int(raw, MIN_WINDOW_DAYS, MAX_WINDOW_DAYS, default=DEFAULT_WINDOW_DAYS)


def _highlight(review: ReviewRecord) -> Dict:
    return {
        'rating': review.rating,
        'text': review.text,
        'created_at': review.created_at.isoformat() if review.created_at else None,
        'sentiment_score': review.sentiment_score,
        'sentiment_label': review.sentiment_label,
        'sentiment_topics': review.sentiment_topics,
    }


class InsightsOverviewService:
    """Service for the live insights overview"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = DigestRepository(db)

    def get_overview(self, cafe_id: str, window_days=DEFAULT_WINDOW_DAYS, now: Optional[datetime] = None) -> Dict:
        """
        Build the overview payload for one café

        Args:
            cafe_id: Café to summarise
            window_days: Primary window; clamped to [7, 365]
            now: Reference instant (defaults to utcnow)

        Raises:
            CafeNotFoundError: unknown café
            ReviewLoadError: reviews or snapshots could not be read
        """
        window_days = clamp_window_days(window_days)
        now = now or datetime.utcnow()

        cafe = self.db.query(Cafe).filter(Cafe.id == cafe_id).first()
        if cafe is None:
            raise CafeNotFoundError(cafe_id)

        day_start = start_of_day(now)
        query_start = min(
            day_start - timedelta(days=window_days),
            day_start - timedelta(days=SECONDARY_VELOCITY_DAYS * 2),
        )

        try:
            rows = self.repo.load_reviews(cafe_id, query_start)
            snapshots = self.repo.load_latest_snapshots(cafe_id)
        except Exception as e:
            log.error(f"Overview load failed for cafe {cafe_id}: {str(e)}")
            raise ReviewLoadError(f"Failed to load reviews for cafe {cafe_id}") from e

        # rows arrive newest-first; highlights and theme tie-breaks rely on it
        rated = rated_reviews(rows)
        in_window = window_reviews(rated, now, window_days)

        aggregate = aggregate_reviews(rated, now, window_days)
        themes = extract_themes(in_window)
        benchmark = benchmark_competitors(snapshots, aggregate.avg_rating)

        candidates = rank_candidates(
            generate_candidates(aggregate, themes, benchmark, OVERVIEW_THRESHOLDS, window_days)
        )
        cards = [c.to_card() for c in candidates]

        log.info(f"Overview for cafe {cafe_id}: {aggregate.total} reviews, {len(cards)} insights ({window_days}d)")

        top = themes.top(TOP_PHRASES)
        return {
            'ok': True,
            'window_days': window_days,
            'insight_cards': cards,
            'signals': self._of_kind(cards, KIND_SIGNAL),
            'opportunities': self._of_kind(cards, KIND_OPPORTUNITY),
            'reviews': {
                'total': aggregate.total,
                'avg_rating': aggregate.avg_rating,
                'avg_sentiment': aggregate.avg_sentiment,
                'review_velocity': aggregate.velocity(),
                'top_complaints': top['top_complaints'],
                'top_praise': top['top_praise'],
                'recent_highlights': [_highlight(r) for r in in_window[:RECENT_HIGHLIGHTS]],
            },
            'competitors': benchmark.to_dict(aggregate.avg_rating, aggregate.total),
        }

    @staticmethod
    def _of_kind(cards: List[Dict], kind: str) -> List[Dict]:
        return [c for c in cards if c['kind'] == kind]
