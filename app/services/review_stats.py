"""
Review Window Statistics

Counts, average rating and average sentiment over a trailing window, plus the
7-over-7 and 30-over-30 review velocity used by both the weekly digest and the
live overview.

All cutoffs are whole days back from the start of the reference day, so a
review posted at 23:59 yesterday and one posted at 00:01 yesterday always land
in the same bucket.
"""
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, List, Optional

from app.utils.helpers import calculate_percentage_change, is_number, mean_or_none

VELOCITY_DAYS = 7
SECONDARY_VELOCITY_DAYS = 30


@dataclass
class ReviewRecord:
    """The slice of a review the insight pipeline reads"""
    rating: Optional[int]
    text: Optional[str] = None
    created_at: Optional[datetime] = None
    sentiment_score: Optional[float] = None
    sentiment_label: Optional[str] = None
    sentiment_topics: Any = None

    @classmethod
    def from_row(cls, row: Any) -> "ReviewRecord":
        """Build from a Review model instance or a plain dict"""
        if isinstance(row, dict):
            get = row.get
        else:
            def get(name, default=None):
                return getattr(row, name, default)
        return cls(
            rating=get("rating"),
            text=get("text"),
            created_at=get("review_created_at") or get("created_at"),
            sentiment_score=get("sentiment_score"),
            sentiment_label=get("sentiment_label"),
            sentiment_topics=get("sentiment_topics"),
        )

    @property
    def has_rating(self) -> bool:
        return is_number(self.rating)


@dataclass
class ReviewAggregate:
    total: int
    avg_rating: Optional[float]
    avg_sentiment: Optional[float]
    last7: int
    prev7: int
    delta_pct: Optional[float]
    last30: int
    prev30: int
    delta30_pct: Optional[float]

    def velocity(self) -> dict:
        return {
            'last7': self.last7,
            'prev7': self.prev7,
            'delta_pct': self.delta_pct,
            'last30': self.last30,
            'prev30': self.prev30,
            'delta30_pct': self.delta30_pct,
        }

    def to_dict(self) -> dict:
        return asdict(self)


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def start_of_day(now: datetime) -> datetime:
    """Truncate to midnight of the same calendar day (naive UTC)"""
    return _naive_utc(now).replace(hour=0, minute=0, second=0, microsecond=0)


def delta_pct(current: int, previous: int) -> Optional[float]:
    """Velocity delta: +100 for activity after a silent period, None when both are zero"""
    return calculate_percentage_change(current, previous)


def rated_reviews(reviews: Iterable[Any]) -> List[ReviewRecord]:
    """Normalise rows and drop anything without a numeric rating"""
    records = [r if isinstance(r, ReviewRecord) else ReviewRecord.from_row(r) for r in reviews]
    return [r for r in records if r.has_rating]


def count_between(reviews: Iterable[ReviewRecord], start: datetime, end: Optional[datetime] = None) -> int:
    """Reviews with start <= created_at (< end when given); undated reviews never count"""
    count = 0
    for review in reviews:
        if review.created_at is None:
            continue
        created = _naive_utc(review.created_at)
        if created < start:
            continue
        if end is not None and created >= end:
            continue
        count += 1
    return count


def window_reviews(reviews: Iterable[ReviewRecord], now: datetime, window_days: int) -> List[ReviewRecord]:
    """Rated reviews inside the trailing window, in input order"""
    cutoff = start_of_day(now) - timedelta(days=window_days)
    return [
        r for r in reviews
        if r.created_at is not None and _naive_utc(r.created_at) >= cutoff
    ]


def aggregate_reviews(reviews: Iterable[Any], now: datetime, window_days: int) -> ReviewAggregate:
    """
    Compute window statistics and velocity

    Args:
        reviews: Review rows (model instances, dicts or ReviewRecord); the
            caller should load enough history for the 14-day velocity
            lookback and, for the 30-day delta, 60 days
        now: Reference instant
        window_days: Primary window length for total/averages

    Returns:
        ReviewAggregate
    """
    rated = rated_reviews(reviews)
    in_window = window_reviews(rated, now, window_days)

    total = len(in_window)
    avg_rating = mean_or_none(float(r.rating) for r in in_window)
    avg_sentiment = mean_or_none(
        float(r.sentiment_score) for r in in_window if is_number(r.sentiment_score)
    )

    day_start = start_of_day(now)
    last7_start = day_start - timedelta(days=VELOCITY_DAYS)
    prev7_start = day_start - timedelta(days=VELOCITY_DAYS * 2)
    last30_start = day_start - timedelta(days=SECONDARY_VELOCITY_DAYS)
    prev30_start = day_start - timedelta(days=SECONDARY_VELOCITY_DAYS * 2)

    last7 = count_between(rated, last7_start)
    prev7 = count_between(rated, prev7_start, last7_start)
    last30 = count_between(rated, last30_start)
    prev30 = count_between(rated, prev30_start, last30_start)

    return ReviewAggregate(
        total=total,
        avg_rating=avg_rating,
        avg_sentiment=avg_sentiment,
        last7=last7,
        prev7=prev7,
        delta_pct=delta_pct(last7, prev7),
        last30=last30,
        prev30=prev30,
        delta30_pct=delta_pct(last30, prev30),
    )
