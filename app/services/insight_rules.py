"""
Insight Rule Table

Deterministic (no LLM) rules that turn review statistics, themes and the
competitor benchmark into insight candidates. The weekly digest and the live
overview run the same rules under different threshold sets; every place the
two disagree is a field on InsightThresholds.

Rules fire at most once per evaluation and are evaluated in declaration
order, which is also the ranking tie-break.
"""
from dataclasses import dataclass
from typing import Callable, List, Optional

from app.services.competitor_benchmark import CompetitorBenchmark
from app.services.insight_ranker import score_candidate
from app.services.insight_types import (
    InsightCandidate,
    KIND_SIGNAL,
    KIND_OPPORTUNITY,
    SEVERITY_WARN,
    SEVERITY_SUCCESS,
    SEVERITY_INFO,
    NO_REVIEWS,
    REVIEWS_SUMMARY,
    STRONG_PRAISE,
    RECURRING_COMPLAINT,
    REVIEW_VELOCITY_DROP,
    REVIEW_VELOCITY_SPIKE,
    COMPETITOR_GAP,
    RATING_GAP,
    RATING_SENTIMENT_MISMATCH,
    LOW_REVIEW_VOLUME,
    COMPETITOR_BENCHMARK_READY,
)
from app.services.review_stats import ReviewAggregate
from app.services.theme_extractor import ThemeTables
from app.utils.helpers import format_pct, format_rating, pluralize


# ---------------------------------------------------------------------------
# Threshold sets
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class InsightThresholds:
    name: str

    # Minimum window reviews before theme insights are trusted
    min_reviews_for_themes: int
    # 0 < total < low_volume_threshold fires low_review_volume
    low_volume_threshold: int
    velocity_threshold_pct: float
    mismatch_min_rating: float

    no_reviews_severity: str
    complaint_severity: str
    velocity_drop_severity: str
    mismatch_severity: str
    negative_gap_severity: str
    low_volume_severity: str

    gap_insight_type: str
    include_reviews_summary: bool
    include_benchmark_ready: bool
    # Target quoted in the low-volume action
    review_target: str


DIGEST_THRESHOLDS = InsightThresholds(
    name="digest",
    min_reviews_for_themes=3,
    low_volume_threshold=10,
    velocity_threshold_pct=30.0,
    mismatch_min_rating=4.0,
    no_reviews_severity=SEVERITY_WARN,
    complaint_severity=SEVERITY_WARN,
    velocity_drop_severity=SEVERITY_WARN,
    mismatch_severity=SEVERITY_WARN,
    negative_gap_severity=SEVERITY_WARN,
    low_volume_severity=SEVERITY_WARN,
    gap_insight_type=COMPETITOR_GAP,
    include_reviews_summary=False,
    include_benchmark_ready=False,
    review_target="10-15",
)

OVERVIEW_THRESHOLDS = InsightThresholds(
    name="overview",
    min_reviews_for_themes=1,
    low_volume_threshold=5,
    velocity_threshold_pct=30.0,
    mismatch_min_rating=4.0,
    no_reviews_severity=SEVERITY_INFO,
    complaint_severity=SEVERITY_INFO,
    velocity_drop_severity=SEVERITY_INFO,
    mismatch_severity=SEVERITY_INFO,
    negative_gap_severity=SEVERITY_INFO,
    low_volume_severity=SEVERITY_INFO,
    gap_insight_type=RATING_GAP,
    include_reviews_summary=True,
    include_benchmark_ready=True,
    review_target="5-10",
)


@dataclass
class RuleContext:
    aggregate: ReviewAggregate
    themes: ThemeTables
    benchmark: CompetitorBenchmark
    thresholds: InsightThresholds
    window_days: int

    @property
    def window_phrase(self) -> str:
        return f"the last {self.window_days} days"


PROMPT_FOR_REVIEWS = [
    "Ask staff to prompt reviews at checkout.",
    "Add a QR code to receipts.",
]


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

def _no_reviews(ctx: RuleContext) -> Optional[InsightCandidate]:
    if ctx.aggregate.total != 0:
        return None
    return InsightCandidate(
        insight_id=NO_REVIEWS,
        insight_type=NO_REVIEWS,
        title="No new reviews to analyse",
        summary=f"We found 0 reviews in {ctx.window_phrase}, so no clear trend can be surfaced yet.",
        severity=ctx.thresholds.no_reviews_severity,
        kind=KIND_SIGNAL,
        action_items=PROMPT_FOR_REVIEWS + ["Check that review sync is connected to the right Google listing."],
        magnitude=1,
        volume=0,
    )


def _reviews_summary(ctx: RuleContext) -> Optional[InsightCandidate]:
    agg = ctx.aggregate
    if not ctx.thresholds.include_reviews_summary or agg.total == 0:
        return None
    count = pluralize(agg.total, "review")
    if agg.avg_rating is not None:
        summary = f"You have {count} in {ctx.window_phrase} with an average rating of {format_rating(agg.avg_rating)} stars."
    else:
        summary = f"You have {count} in {ctx.window_phrase}."
    strong = agg.avg_rating is not None and agg.avg_rating >= 4
    return InsightCandidate(
        insight_id=REVIEWS_SUMMARY,
        insight_type=REVIEWS_SUMMARY,
        title="Reviews summary",
        summary=summary,
        severity=SEVERITY_SUCCESS if strong else SEVERITY_INFO,
        kind=KIND_SIGNAL,
        metric_label="Average rating" if agg.avg_rating is not None else None,
        metric_value=format_rating(agg.avg_rating) if agg.avg_rating is not None else None,
        action_items=[
            "Respond to new reviews promptly to boost visibility.",
            "Share your top reviews on social to drive more visits.",
        ],
        magnitude=agg.avg_rating or 0,
        volume=agg.total,
    )


def _strong_praise(ctx: RuleContext) -> Optional[InsightCandidate]:
    top = ctx.themes.top_praise
    if top is None or ctx.aggregate.total < ctx.thresholds.min_reviews_for_themes:
        return None
    return InsightCandidate(
        insight_id=STRONG_PRAISE,
        insight_type=STRONG_PRAISE,
        title=f'Customers love your "{top.phrase}"',
        summary=f"Mentioned in {pluralize(top.count, 'recent review')}.",
        severity=SEVERITY_SUCCESS,
        kind=KIND_OPPORTUNITY,
        metric_label="Mentions",
        metric_value=str(top.count),
        action_items=[
            "Feature this in your Google review responses.",
            "Highlight it in marketing copy.",
        ],
        magnitude=top.count,
        volume=ctx.aggregate.total,
    )


def _recurring_complaint(ctx: RuleContext) -> Optional[InsightCandidate]:
    top = ctx.themes.top_complaint
    total = ctx.aggregate.total
    if top is None or total < ctx.thresholds.min_reviews_for_themes:
        return None
    return InsightCandidate(
        insight_id=RECURRING_COMPLAINT,
        insight_type=RECURRING_COMPLAINT,
        title=f'Customers repeatedly mention "{top.phrase}"',
        summary=f"Appears in {top.count} of the last {pluralize(total, 'review')}.",
        severity=ctx.thresholds.complaint_severity,
        kind=KIND_SIGNAL,
        metric_label="Mentions",
        metric_value=str(top.count),
        action_items=[
            "Review peak-hour staffing.",
            "Set expectations at the counter.",
        ],
        magnitude=top.count,
        volume=total,
    )


def _velocity_drop(ctx: RuleContext) -> Optional[InsightCandidate]:
    delta = ctx.aggregate.delta_pct
    if delta is None or delta > -ctx.thresholds.velocity_threshold_pct:
        return None
    return InsightCandidate(
        insight_id=REVIEW_VELOCITY_DROP,
        insight_type=REVIEW_VELOCITY_DROP,
        title="Review momentum is slowing",
        summary=f"Reviews down {format_pct(abs(delta))} vs the previous week.",
        severity=ctx.thresholds.velocity_drop_severity,
        kind=KIND_SIGNAL,
        metric_label="Review velocity",
        metric_value=format_pct(delta, signed=True),
        action_items=list(PROMPT_FOR_REVIEWS),
        magnitude=delta,
        volume=ctx.aggregate.last7,
    )


def _velocity_spike(ctx: RuleContext) -> Optional[InsightCandidate]:
    delta = ctx.aggregate.delta_pct
    if delta is None or delta < ctx.thresholds.velocity_threshold_pct:
        return None
    return InsightCandidate(
        insight_id=REVIEW_VELOCITY_SPIKE,
        insight_type=REVIEW_VELOCITY_SPIKE,
        title="Review momentum is increasing",
        summary=f"Reviews up {format_pct(delta)} vs the previous week.",
        severity=SEVERITY_SUCCESS,
        kind=KIND_OPPORTUNITY,
        metric_label="Review velocity",
        metric_value=format_pct(delta, signed=True),
        action_items=[
            "Keep current review prompts running.",
            "Respond to new reviews quickly.",
        ],
        magnitude=delta,
        volume=ctx.aggregate.last7,
    )


def _rating_gap(ctx: RuleContext) -> Optional[InsightCandidate]:
    own = ctx.aggregate.avg_rating
    theirs = ctx.benchmark.avg_rating
    if own is None or theirs is None or ctx.benchmark.count == 0:
        return None
    gap = own - theirs
    ahead = gap >= 0
    insight_type = ctx.thresholds.gap_insight_type
    return InsightCandidate(
        insight_id=insight_type,
        insight_type=insight_type,
        title="Rated higher than nearby competitors" if ahead else "Competitors are rated higher",
        summary=f"You average {format_rating(own)} stars vs competitors at {format_rating(theirs)}.",
        severity=SEVERITY_SUCCESS if ahead else ctx.thresholds.negative_gap_severity,
        kind=KIND_OPPORTUNITY if ahead else KIND_SIGNAL,
        metric_label="Rating gap",
        metric_value=f"{gap:+.1f}",
        action_items=[
            "Promote your rating on signage and your website.",
            "Respond to new reviews to keep momentum.",
        ] if ahead else [
            "Review top complaints for patterns.",
            "Focus on service consistency this week.",
        ],
        magnitude=gap * 10,
        volume=ctx.aggregate.total,
    )


def _rating_sentiment_mismatch(ctx: RuleContext) -> Optional[InsightCandidate]:
    agg = ctx.aggregate
    if agg.avg_rating is None or agg.avg_sentiment is None:
        return None
    if agg.avg_rating < ctx.thresholds.mismatch_min_rating or agg.avg_sentiment >= 0:
        return None
    return InsightCandidate(
        insight_id=RATING_SENTIMENT_MISMATCH,
        insight_type=RATING_SENTIMENT_MISMATCH,
        title="High ratings but negative themes",
        summary=(
            f"Ratings average {format_rating(agg.avg_rating)} stars, but review text "
            f"leans negative (sentiment {agg.avg_sentiment:.2f})."
        ),
        severity=ctx.thresholds.mismatch_severity,
        kind=KIND_SIGNAL,
        metric_label="Avg sentiment",
        metric_value=f"{agg.avg_sentiment:.2f}",
        action_items=[
            "Address service issues before they impact ratings.",
            "Review recent negative topics for quick fixes.",
        ],
        magnitude=agg.avg_sentiment,
        volume=agg.total,
    )


def _low_review_volume(ctx: RuleContext) -> Optional[InsightCandidate]:
    total = ctx.aggregate.total
    if not (0 < total < ctx.thresholds.low_volume_threshold):
        return None
    return InsightCandidate(
        insight_id=LOW_REVIEW_VOLUME,
        insight_type=LOW_REVIEW_VOLUME,
        title="Too few reviews for strong conclusions",
        summary=f"Only {pluralize(total, 'review')} in {ctx.window_phrase}.",
        severity=ctx.thresholds.low_volume_severity,
        kind=KIND_SIGNAL,
        metric_label="Reviews",
        metric_value=str(total),
        action_items=[
            f"Aim for {ctx.thresholds.review_target} reviews to unlock deeper insights.",
            "Prompt happy customers to leave feedback.",
        ],
        magnitude=total,
        volume=total,
    )


def _competitor_benchmark_ready(ctx: RuleContext) -> Optional[InsightCandidate]:
    if not ctx.thresholds.include_benchmark_ready:
        return None
    if ctx.aggregate.total != 0 or not ctx.benchmark.is_ready:
        return None
    bench = ctx.benchmark
    if bench.avg_review_count is not None:
        summary = (
            f"Nearby competitors average {format_rating(bench.avg_rating)} stars "
            f"across ~{round(bench.avg_review_count)} reviews."
        )
    else:
        summary = f"Nearby competitors average {format_rating(bench.avg_rating)} stars."
    return InsightCandidate(
        insight_id=COMPETITOR_BENCHMARK_READY,
        insight_type=COMPETITOR_BENCHMARK_READY,
        title="Competitor benchmark is ready",
        summary=summary,
        severity=SEVERITY_INFO,
        kind=KIND_SIGNAL,
        metric_label="Competitor avg",
        metric_value=format_rating(bench.avg_rating),
        action_items=[
            "Get your first 10 reviews to unlock rating-gap insights.",
            "Use QR codes or receipts to prompt happy customers.",
        ],
        magnitude=0,
        volume=0,
    )


RULES: List[Callable[[RuleContext], Optional[InsightCandidate]]] = [
    _no_reviews,
    _reviews_summary,
    _strong_praise,
    _recurring_complaint,
    _velocity_drop,
    _velocity_spike,
    _rating_gap,
    _rating_sentiment_mismatch,
    _low_review_volume,
    _competitor_benchmark_ready,
]


def generate_candidates(
    aggregate: ReviewAggregate,
    themes: ThemeTables,
    benchmark: CompetitorBenchmark,
    thresholds: InsightThresholds,
    window_days: int,
    id_suffix: Optional[str] = None,
) -> List[InsightCandidate]:
    """
    Evaluate every rule once

    Args:
        id_suffix: Appended to each insight id ("recurring_complaint" -> "recurring_complaint_42")
            so persisted digest insights are unique per run

    Returns:
        Fired candidates in rule order, each scored
    """
    ctx = RuleContext(
        aggregate=aggregate,
        themes=themes,
        benchmark=benchmark,
        thresholds=thresholds,
        window_days=window_days,
    )

    candidates = []
    for order, rule in enumerate(RULES):
        candidate = rule(ctx)
        if candidate is None:
            continue
        candidate.rule_order = order
        candidate.score = score_candidate(candidate.severity, candidate.magnitude, candidate.volume)
        if id_suffix:
            candidate.insight_id = f"{candidate.insight_id}_{id_suffix}"
        candidates.append(candidate)

    return candidates
