"""
Insight scoring and ranking

score = severity_weight * 10 + min(10, |magnitude|) + min(6, volume)

Each severity step is worth 10 points while magnitude and volume together add
at most 16, so a strong candidate can overtake a weak one from the band
directly above it. At equal magnitude and volume the higher severity always
ranks first.

Equal scores fall back to rule declaration order, then insight id.
"""
from dataclasses import dataclass, field
from typing import List, Optional

from app.services.insight_types import (
    InsightCandidate,
    SEVERITY_ERROR,
    SEVERITY_WARN,
    SEVERITY_SUCCESS,
    SEVERITY_INFO,
)

SEVERITY_WEIGHTS = {
    SEVERITY_ERROR: 4,
    SEVERITY_WARN: 3,
    SEVERITY_SUCCESS: 2,
    SEVERITY_INFO: 1,
}

MAX_MAGNITUDE_POINTS = 10
MAX_VOLUME_POINTS = 6
SUMMARY_SIZE = 3


@dataclass
class RankedInsights:
    ranked: List[InsightCandidate] = field(default_factory=list)
    summary: List[InsightCandidate] = field(default_factory=list)
    focus: Optional[InsightCandidate] = None


def severity_weight(severity: str) -> int:
    return SEVERITY_WEIGHTS.get(severity, SEVERITY_WEIGHTS[SEVERITY_INFO])


def score_candidate(severity: str, magnitude: float, volume: float) -> float:
    """Severity dominates; magnitude and volume order within a band"""
    return (
        severity_weight(severity) * 10
        + min(MAX_MAGNITUDE_POINTS, abs(magnitude or 0))
        + min(MAX_VOLUME_POINTS, max(0, volume or 0))
    )


def rank_candidates(candidates: List[InsightCandidate]) -> List[InsightCandidate]:
    """Score every candidate and return them best-first (input is not mutated in order)"""
    for candidate in candidates:
        candidate.score = score_candidate(candidate.severity, candidate.magnitude, candidate.volume)
    return sorted(candidates, key=lambda c: (-c.score, c.rule_order, c.insight_id))


def select_summary(ranked: List[InsightCandidate], size: int = SUMMARY_SIZE) -> List[InsightCandidate]:
    return ranked[:size]


def select_focus(ranked: List[InsightCandidate]) -> Optional[InsightCandidate]:
    """First warn/error candidate, else the top-ranked one"""
    for candidate in ranked:
        if candidate.is_urgent:
            return candidate
    return ranked[0] if ranked else None


def rank_insights(candidates: List[InsightCandidate], summary_size: int = SUMMARY_SIZE) -> RankedInsights:
    ranked = rank_candidates(candidates)
    return RankedInsights(
        ranked=ranked,
        summary=select_summary(ranked, summary_size),
        focus=select_focus(ranked),
    )
