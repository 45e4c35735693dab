"""
Praise / complaint theme extraction

Counts recurring phrases per bucket. Sentiment topics are preferred; reviews
without topics fall back to a cheap keyword split of the review text.

Ordering contract: count descending, then first-seen order within the review
sequence passed in. Callers pass reviews newest-first, so on a tie the phrase
that appeared in the most recent review wins.
"""
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from app.services.review_stats import ReviewRecord

PRAISE = "praise"
COMPLAINT = "complaint"

MIN_TOKEN_LENGTH = 4
MAX_TOKENS_PER_REVIEW = 40

STOPWORDS = frozenset([
    "this", "that", "with", "have", "they", "them", "from", "were", "when", "what", "your", "just",
    "very", "really", "nice", "like", "okay", "fine", "more",
    "been", "there", "here", "also", "because", "would", "could", "should", "about", "into",
])

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")


@dataclass(frozen=True)
class PhraseCount:
    phrase: str
    count: int

    def to_dict(self) -> dict:
        return {'phrase': self.phrase, 'count': self.count}


@dataclass
class ThemeTables:
    praise: List[PhraseCount] = field(default_factory=list)
    complaint: List[PhraseCount] = field(default_factory=list)

    @property
    def top_praise(self) -> Optional[PhraseCount]:
        return self.praise[0] if self.praise else None

    @property
    def top_complaint(self) -> Optional[PhraseCount]:
        return self.complaint[0] if self.complaint else None

    def top(self, n: int) -> Dict[str, List[dict]]:
        return {
            'top_praise': [p.to_dict() for p in self.praise[:n]],
            'top_complaints': [p.to_dict() for p in self.complaint[:n]],
        }


def normalise_topics(value: Any) -> List[str]:
    """Flatten stored sentiment topics into lowercase strings"""
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        items = value
    elif isinstance(value, dict):
        topics = value.get("topics")
        items = topics if isinstance(topics, (list, tuple)) else list(value.keys())
    else:
        return []
    normalised = (str(item).strip().lower() for item in items if item is not None)
    return [t for t in normalised if t]


def extract_phrases(text: str) -> List[str]:
    """Fallback keyword extraction for reviews without topics"""
    cleaned = _NON_ALNUM.sub(" ", text.lower())
    tokens = [
        w for w in cleaned.split()
        if len(w) >= MIN_TOKEN_LENGTH and w not in STOPWORDS
    ]
    return tokens[:MAX_TOKENS_PER_REVIEW]


def review_tokens(review: ReviewRecord) -> List[str]:
    topics = normalise_topics(review.sentiment_topics)
    if topics:
        return topics
    text = (review.text or "").strip()
    return extract_phrases(text) if text else []


def review_bucket(rating: Optional[float], sentiment_label: Optional[str]) -> Optional[str]:
    """
    4-5 stars is praise, 1-2 is complaint. A 3-star review follows its
    sentiment label and counts nowhere when neutral or unlabelled.
    """
    if rating is None:
        return None
    if rating >= 4:
        return PRAISE
    if rating <= 2:
        return COMPLAINT
    label = (sentiment_label or "").lower()
    if label == "positive":
        return PRAISE
    if label == "negative":
        return COMPLAINT
    return None


def _ranked(counts: Dict[str, int]) -> List[PhraseCount]:
    # dicts keep insertion order, so enumerate() gives first-seen position
    order = {phrase: i for i, phrase in enumerate(counts)}
    return [
        PhraseCount(phrase, count)
        for phrase, count in sorted(counts.items(), key=lambda kv: (-kv[1], order[kv[0]]))
    ]


def extract_themes(reviews: Iterable[ReviewRecord]) -> ThemeTables:
    """Build praise and complaint frequency tables for the given window"""
    buckets: Dict[str, Dict[str, int]] = {PRAISE: {}, COMPLAINT: {}}

    for review in reviews:
        bucket = review_bucket(review.rating, review.sentiment_label)
        if bucket is None:
            continue
        counts = buckets[bucket]
        for token in review_tokens(review):
            counts[token] = counts.get(token, 0) + 1

    return ThemeTables(praise=_ranked(buckets[PRAISE]), complaint=_ranked(buckets[COMPLAINT]))
