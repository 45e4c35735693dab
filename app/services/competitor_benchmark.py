"""
Competitor benchmark

Only the latest snapshot batch counts; older batches are history.
"""
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Iterable, Optional

from app.utils.helpers import is_number, mean_or_none


@dataclass
class CompetitorBenchmark:
    count: int = 0
    snapshot_at: Optional[date] = None
    avg_rating: Optional[float] = None
    avg_review_count: Optional[float] = None
    rating_gap: Optional[float] = None

    @property
    def is_ready(self) -> bool:
        """A benchmark exists that rating-based insights can quote"""
        return self.count > 0 and self.avg_rating is not None

    def to_dict(self, own_avg_rating: Optional[float] = None, own_total: int = 0) -> dict:
        return {
            'count': self.count,
            'snapshot_at': self.snapshot_at.isoformat() if self.snapshot_at else None,
            'avg_rating': self.avg_rating,
            'avg_review_count': self.avg_review_count,
            'your_vs_competitors': {
                'your_rating': own_avg_rating,
                'competitor_avg_rating': self.avg_rating,
                'rating_gap': self.rating_gap,
                'your_total_reviews': own_total,
                'competitor_avg_total_reviews': self.avg_review_count,
            },
        }


def _field(row: Any, name: str):
    return row.get(name) if isinstance(row, dict) else getattr(row, name, None)


def _as_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value:
        return date.fromisoformat(value[:10])
    return None


def benchmark_competitors(snapshots: Iterable[Any], own_avg_rating: Optional[float] = None) -> CompetitorBenchmark:
    """
    Average the most recent snapshot batch

    Args:
        snapshots: CompetitorSnapshot rows (or dicts) for one café, any dates
        own_avg_rating: The café's own average rating for the gap, if known

    Returns:
        CompetitorBenchmark; count=0 and all-None when there are no snapshots
    """
    rows = [(row, _as_date(_field(row, "snapshot_date"))) for row in snapshots]
    dated = [(row, d) for row, d in rows if d is not None]
    if not dated:
        return CompetitorBenchmark()

    latest = max(d for _, d in dated)
    batch = [row for row, d in dated if d == latest]

    avg_rating = mean_or_none(
        float(_field(r, "rating")) for r in batch if is_number(_field(r, "rating"))
    )
    avg_review_count = mean_or_none(
        float(_field(r, "total_reviews")) for r in batch if is_number(_field(r, "total_reviews"))
    )

    rating_gap = None
    if own_avg_rating is not None and avg_rating is not None:
        rating_gap = own_avg_rating - avg_rating

    return CompetitorBenchmark(
        count=len(batch),
        snapshot_at=latest,
        avg_rating=avg_rating,
        avg_review_count=avg_review_count,
        rating_gap=rating_gap,
    )
