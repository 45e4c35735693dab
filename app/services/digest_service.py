"""
Weekly Digest Service

Builds and sends one insight digest per café per week.
Answers: "What changed at my café in the last 7 days?"

Per café the batch walks a fixed sequence (preference, existing run, owner
email, run, recipient, reviews, insights, render, send, mark) and records a
sent / skipped / failed outcome. A café that fails never stops the batch.

Re-running for a week that is already sent is a no-op. Re-running after a
failure resumes the same run row. The provider call happens before the local
"sent" write, so a crash between the two can re-send on the next run; the
recipient's correlation id is stored and logged ahead of the call so such a
send can be matched against the provider's log.
"""
import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from app.config import Settings, get_settings
from app.exceptions import CafeNotFoundError, DigestConfigError
from app.models.cafe import Cafe
from app.models.digest import DigestRun, DigestRecipient, RECIPIENT_SENT
from app.services.competitor_benchmark import benchmark_competitors
from app.services.digest_email import (
    DigestEmailContext,
    SummaryItem,
    digest_subject,
    render_weekly_digest,
    severity_tone,
)
from app.services.digest_links import build_insight_link, build_unsubscribe_url, wrap_tracking_link
from app.services.digest_repository import DigestRepository
from app.services.email_sender import EmailMessage, EmailSender
from app.services.identity_resolver import IdentityResolver
from app.services.insight_ranker import RankedInsights, rank_insights
from app.services.insight_rules import DIGEST_THRESHOLDS, generate_candidates
from app.services.review_stats import aggregate_reviews, rated_reviews, start_of_day, window_reviews
from app.services.theme_extractor import extract_themes
from app.utils.digest_tokens import create_unsubscribe_token
from app.utils.logger import log

DIGEST_WINDOW_DAYS = 7
REVIEW_LOOKBACK_DAYS = 14
CTA_INSIGHT_ID = "weekly_digest"
FOCUS_FALLBACK_ID = "focus"
DEFAULT_CAFE_NAME = "Your cafe"

STATUS_SENT = "sent"
STATUS_SKIPPED = "skipped"
STATUS_FAILED = "failed"


@dataclass
class DigestPeriod:
    start: datetime
    end: datetime
    label: str
    review_query_start: datetime


@dataclass
class CafeDigestResult:
    cafe_id: str
    status: str
    detail: Optional[str] = None

    def to_dict(self) -> Dict:
        result = {'cafe_id': self.cafe_id, 'status': self.status}
        if self.detail:
            result['detail'] = self.detail
        return result


@dataclass
class DigestBatchResult:
    period_start: datetime
    period_end: datetime
    results: List[CafeDigestResult] = field(default_factory=list)

    def count(self, status: str) -> int:
        return sum(1 for r in self.results if r.status == status)

    def to_dict(self) -> Dict:
        return {
            'ok': True,
            'period_start': self.period_start.isoformat(),
            'period_end': self.period_end.isoformat(),
            'results': [r.to_dict() for r in self.results],
        }


def _epoch_seconds(value: datetime) -> float:
    """Naive datetimes are UTC; aware ones keep their own offset"""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()


def weekly_period(now: datetime) -> DigestPeriod:
    """The 7 whole days ending at the start of today"""
    end = start_of_day(now)
    start = end - timedelta(days=DIGEST_WINDOW_DAYS)
    return DigestPeriod(
        start=start,
        end=end,
        label=f"Week of {start:%b} {start.day}",
        review_query_start=end - timedelta(days=REVIEW_LOOKBACK_DAYS),
    )


class WeeklyDigestService:
    """Service for weekly digest generation and delivery"""

    def __init__(
        self,
        db: Session,
        sender: EmailSender,
        identity_resolver: IdentityResolver,
        settings: Optional[Settings] = None,
        now: Optional[datetime] = None,
    ):
        self.db = db
        self.repo = DigestRepository(db)
        self.sender = sender
        self.identity_resolver = identity_resolver
        self.settings = settings or get_settings()
        self._now = now

    def now(self) -> datetime:
        return self._now or datetime.utcnow()

    async def run(self, cafe_id: Optional[str] = None) -> DigestBatchResult:
        """
        Process every café, or only `cafe_id` when given

        Raises:
            CafeNotFoundError: the cafe_id filter matched nothing
        """
        period = weekly_period(self.now())
        cafes = self.repo.list_cafes(cafe_id)
        if cafe_id and not cafes:
            raise CafeNotFoundError(cafe_id)

        log.info(f"Running weekly digest for {period.label} ({len(cafes)} cafes)")

        batch = DigestBatchResult(period_start=period.start, period_end=period.end)
        for cafe in cafes:
            try:
                result = await self.process_cafe(cafe, period)
            except Exception as e:
                log.error(f"Weekly digest failed for cafe {cafe.id}: {str(e)}")
                self.db.rollback()
                self._fail_open_run(cafe.id, period)
                result = CafeDigestResult(cafe.id, STATUS_FAILED, "unexpected_error")
            batch.results.append(result)

        log.info(
            f"Weekly digest {period.label}: {batch.count(STATUS_SENT)} sent, "
            f"{batch.count(STATUS_SKIPPED)} skipped, {batch.count(STATUS_FAILED)} failed"
        )
        return batch

    async def process_cafe(self, cafe: Cafe, period: DigestPeriod) -> CafeDigestResult:
        cafe_id = cafe.id
        owner_id = cafe.owner_id

        # 1. Preference
        pref = self.repo.get_preference(owner_id) if owner_id else None
        if pref is not None and not pref.allows_digest:
            log.info(f"Cafe {cafe_id}: digest disabled by owner")
            return CafeDigestResult(cafe_id, STATUS_SKIPPED, "disabled")

        # 2. Existing run
        existing = self.repo.find_run(cafe_id, period.start.date(), period.end.date())
        if existing is not None and existing.sent_at:
            return CafeDigestResult(cafe_id, STATUS_SKIPPED, "already_sent")

        # 3. Owner email
        email = await self.identity_resolver.get_email(owner_id) if owner_id else None
        if not email:
            log.warning(f"Cafe {cafe_id}: no notification email for owner {owner_id}")
            return CafeDigestResult(cafe_id, STATUS_SKIPPED, "missing_email")

        # 4. Run
        try:
            run, created = self.repo.get_or_create_run(
                cafe_id, period.start.date(), period.end.date(), period.label, DIGEST_WINDOW_DAYS
            )
        except Exception as e:
            log.error(f"Cafe {cafe_id}: could not create digest run: {str(e)}")
            self.db.rollback()
            return CafeDigestResult(cafe_id, STATUS_FAILED, "digest_run_insert")
        if created:
            log.info(f"Cafe {cafe_id}: created digest run #{run.id}")
        elif run.sent_at:
            # Another batch finished this week between steps 2 and 4
            return CafeDigestResult(cafe_id, STATUS_SKIPPED, "already_sent")

        # 5. Recipient
        try:
            recipient, _ = self.repo.get_or_create_recipient(run, owner_id, email)
        except Exception as e:
            log.error(f"Cafe {cafe_id}: could not create digest recipient: {str(e)}")
            self.db.rollback()
            self.repo.mark_run_failed(run)
            return CafeDigestResult(cafe_id, STATUS_FAILED, "recipient_insert")
        if recipient.status == RECIPIENT_SENT:
            return CafeDigestResult(cafe_id, STATUS_SKIPPED, "recipient_sent")

        # 6. Reviews, competitors and insights
        try:
            reviews = self.repo.load_reviews(cafe_id, period.review_query_start)
            snapshots = self.repo.load_latest_snapshots(cafe_id)
        except Exception as e:
            log.error(f"Cafe {cafe_id}: could not load reviews: {str(e)}")
            self.db.rollback()
            self._mark_failed(run, recipient, f"reviews_load: {str(e)}")
            return CafeDigestResult(cafe_id, STATUS_FAILED, "reviews_load")

        insights = self.build_insights(reviews, snapshots, period, id_suffix=str(run.id))

        # 7. Persist (best-effort)
        self._save_insights(run, cafe_id, insights, period)

        # 8. Render and send
        try:
            unsubscribe_url = self._unsubscribe_url(owner_id)
        except DigestConfigError as e:
            log.error(f"Cafe {cafe_id}: {str(e)}")
            self._mark_failed(run, recipient, str(e))
            return CafeDigestResult(cafe_id, STATUS_FAILED, "missing_email_config")

        try:
            context = self.build_email_context(cafe, recipient, insights, period, unsubscribe_url)
            html = render_weekly_digest(context)
        except Exception as e:
            log.error(f"Cafe {cafe_id}: digest render failed: {str(e)}")
            self._mark_failed(run, recipient, f"render_failed: {str(e)}")
            return CafeDigestResult(cafe_id, STATUS_FAILED, "render_failed")

        correlation_id = uuid.uuid4().hex
        self.repo.set_correlation_id(recipient, correlation_id)
        log.info(f"Cafe {cafe_id}: sending digest run #{run.id} to {email} (correlation {correlation_id})")

        message = EmailMessage(
            sender=self.settings.resend_from,
            to=email,
            subject=digest_subject(period.label),
            html=html,
        )
        try:
            result = await self.sender.send(message)
        except DigestConfigError as e:
            log.error(f"Cafe {cafe_id}: {str(e)}")
            self._mark_failed(run, recipient, str(e))
            return CafeDigestResult(cafe_id, STATUS_FAILED, "missing_email_config")

        if not result.success:
            error = json.dumps({'error': result.error, 'attempts': result.attempts})
            self._mark_failed(run, recipient, error)
            return CafeDigestResult(cafe_id, STATUS_FAILED, "send_failed")

        # 9. Mark sent
        sent_at = self.now()
        self.repo.mark_run_sent(run, context.cta_url, sent_at)
        self.repo.mark_recipient_sent(recipient, result.message_id, sent_at)
        log.info(f"Cafe {cafe_id}: digest sent (message {result.message_id})")
        return CafeDigestResult(cafe_id, STATUS_SENT)

    def build_insights(self, reviews, snapshots, period: DigestPeriod, id_suffix: Optional[str] = None) -> RankedInsights:
        """Run stats, themes, benchmark, rules and ranking for the digest window"""
        now = period.end
        aggregate = aggregate_reviews(reviews, now, DIGEST_WINDOW_DAYS)
        themes = extract_themes(window_reviews(rated_reviews(reviews), now, DIGEST_WINDOW_DAYS))
        benchmark = benchmark_competitors(snapshots, aggregate.avg_rating)
        candidates = generate_candidates(
            aggregate, themes, benchmark, DIGEST_THRESHOLDS, DIGEST_WINDOW_DAYS, id_suffix=id_suffix
        )
        return rank_insights(candidates)

    def build_email_context(
        self,
        cafe: Cafe,
        recipient: DigestRecipient,
        insights: RankedInsights,
        period: DigestPeriod,
        unsubscribe_url: Optional[str],
    ) -> DigestEmailContext:
        base_url = self.settings.app_base_url

        def tracked(insight_id: str) -> str:
            target = build_insight_link(base_url, cafe.id, insight_id, period.start, period.end)
            return wrap_tracking_link(base_url, recipient.id, insight_id, target)

        summary_items = [
            SummaryItem(
                label=candidate.title,
                value=candidate.summary,
                tone=severity_tone(candidate.severity),
                href=tracked(candidate.insight_id),
            )
            for candidate in insights.summary
        ]

        focus = insights.focus
        context = DigestEmailContext(
            cafe_name=cafe.name or DEFAULT_CAFE_NAME,
            week_of=period.label,
            summary_items=summary_items,
            focus_link=tracked(focus.insight_id if focus else FOCUS_FALLBACK_ID),
            cta_url=tracked(CTA_INSIGHT_ID),
            unsubscribe_url=unsubscribe_url,
        )
        if focus is not None:
            if focus.action_items:
                context.focus_line = focus.action_items[0]
            context.focus_reason = focus.summary
        return context

    def _unsubscribe_url(self, owner_id: str) -> str:
        token = create_unsubscribe_token(
            owner_id,
            self.settings.digest_unsubscribe_secret,
            days_valid=self.settings.unsubscribe_token_days,
            now=_epoch_seconds(self.now()),
        )
        return build_unsubscribe_url(self.settings.app_base_url, token)

    def _save_insights(self, run: DigestRun, cafe_id: str, insights: RankedInsights, period: DigestPeriod) -> None:
        base_url = self.settings.app_base_url
        rows = []
        for rank, candidate in enumerate(insights.summary, start=1):
            rows.append({
                'insight_id': candidate.insight_id,
                'insight_type': candidate.insight_type,
                'severity': candidate.severity,
                'title': candidate.title,
                'summary': candidate.summary,
                'metric_label': candidate.metric_label,
                'metric_value': candidate.metric_value,
                'action_items': list(candidate.action_items) or None,
                'score': candidate.score,
                'rank': rank,
                'deep_link': build_insight_link(base_url, cafe_id, candidate.insight_id, period.start, period.end),
                'supporting_data': {
                    'period_start': period.start.isoformat(),
                    'period_end': period.end.isoformat(),
                },
            })
        if not rows:
            return
        try:
            created = self.repo.save_insights(run.id, rows)
            log.info(f"Cafe {cafe_id}: stored {created} digest insights for run #{run.id}")
        except Exception as e:
            self.db.rollback()
            log.warning(f"Cafe {cafe_id}: could not store digest insights: {str(e)}")

    def _mark_failed(self, run: DigestRun, recipient: Optional[DigestRecipient], error: Optional[str]) -> None:
        self.repo.mark_run_failed(run)
        if recipient is not None:
            self.repo.mark_recipient_failed(recipient, error)

    def _fail_open_run(self, cafe_id: str, period: DigestPeriod) -> None:
        """Mark this week's unsent run failed after an unexpected error"""
        try:
            run = self.repo.find_run(cafe_id, period.start.date(), period.end.date())
            if run is not None and not run.sent_at:
                self.repo.mark_run_failed(run)
        except Exception as e:
            self.db.rollback()
            log.warning(f"Cafe {cafe_id}: could not mark digest run failed: {str(e)}")

