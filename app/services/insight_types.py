"""
Insight candidate shared by the rule engine, the ranker and both consumers
"""
from dataclasses import dataclass, field
from typing import List, Optional

SEVERITY_ERROR = "error"
SEVERITY_WARN = "warn"
SEVERITY_SUCCESS = "success"
SEVERITY_INFO = "info"

KIND_SIGNAL = "signal"
KIND_OPPORTUNITY = "opportunity"

# Type tags
NO_REVIEWS = "no_reviews"
REVIEWS_SUMMARY = "reviews_summary"
STRONG_PRAISE = "strong_praise"
RECURRING_COMPLAINT = "recurring_complaint"
REVIEW_VELOCITY_DROP = "review_velocity_drop"
REVIEW_VELOCITY_SPIKE = "review_velocity_spike"
COMPETITOR_GAP = "competitor_gap"
RATING_GAP = "rating_gap"
RATING_SENTIMENT_MISMATCH = "rating_sentiment_mismatch"
LOW_REVIEW_VOLUME = "low_review_volume"
COMPETITOR_BENCHMARK_READY = "competitor_benchmark_ready"


@dataclass
class InsightCandidate:
    """
    One derived observation about a café's reviews or competitors

    Ephemeral in the overview; the digest persists its top-ranked subset as
    DigestInsight rows.
    """
    insight_id: str
    insight_type: str
    title: str
    summary: str
    severity: str
    kind: str = KIND_SIGNAL
    metric_label: Optional[str] = None
    metric_value: Optional[str] = None
    action_items: List[str] = field(default_factory=list)

    # Scoring inputs
    magnitude: float = 0.0
    volume: int = 0
    score: float = 0.0

    # Position in the rule table; secondary ranking key
    rule_order: int = 0

    @property
    def is_urgent(self) -> bool:
        return self.severity in (SEVERITY_WARN, SEVERITY_ERROR)

    def to_card(self) -> dict:
        """Overview card shape"""
        card = {
            'id': self.insight_id,
            'type': self.insight_type,
            'title': self.title,
            'kind': self.kind,
            'severity': self.severity,
            'why': self.summary,
            'action': list(self.action_items),
            'score': self.score,
        }
        if self.metric_label is not None and self.metric_value is not None:
            card['metric'] = {'label': self.metric_label, 'value': self.metric_value}
        return card
