"""
Weekly digest batch tests.

Guards against:
1. Sending the same week twice
2. One café's failure stopping the rest of the batch
3. Skip conditions creating rows or sending email
4. Failed runs not being resumed on the next invocation
"""
import asyncio
import json
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

import pytest

from app.config import Settings
from app.exceptions import CafeNotFoundError
from app.models.digest import DigestInsight, DigestRecipient, DigestRun
from app.services.digest_repository import DigestRepository
from app.services.digest_service import WeeklyDigestService, weekly_period
from app.services.email_sender import ResendEmailSender
from app.utils.digest_tokens import verify_unsubscribe_token

NOW = datetime(2026, 10, 18, 9, 30)

# 6 praise reviews about coffee, 6 complaints about wait time
RATINGS = [5] * 6 + [2] * 6
TOPICS = [["coffee"]] * 6 + [["wait time"]] * 6


def _run(coro):
    """Run an async coroutine in a sync test."""
    return asyncio.run(coro)


def _service(db, sender, resolver, settings):
    return WeeklyDigestService(db, sender, resolver, settings=settings, now=NOW)


def _statuses(batch):
    return [(r.status, r.detail) for r in batch.results]


class TestWeeklyPeriod:

    def test_seven_days_ending_at_midnight(self):
        period = weekly_period(NOW)
        assert period.start == datetime(2026, 10, 11)
        assert period.end == datetime(2026, 10, 18)
        assert period.review_query_start == datetime(2026, 10, 4)
        assert period.label == "Week of Oct 11"

    def test_label_has_no_leading_zero(self):
        assert weekly_period(datetime(2026, 3, 10, 6, 0)).label == "Week of Mar 3"


class TestSend:

    def test_sends_digest_once(self, db, sender, resolver, settings, make_cafe):
        cafe = make_cafe(ratings=RATINGS, topics=TOPICS)
        service = _service(db, sender, resolver, settings)

        first = _run(service.run())
        assert _statuses(first) == [("sent", None)]
        assert first.to_dict()["period_start"] == "2026-10-11T00:00:00"

        message = sender.sent[0]
        assert message.to == "owner@example.com"
        assert message.subject == "Weekly Digest - Week of Oct 11"
        assert message.sender == settings.resend_from
        assert "Bean There" in message.html

        run = db.query(DigestRun).one()
        assert run.cafe_id == cafe.id
        assert run.status == "sent"
        assert run.sent_at == NOW
        assert "iid=weekly_digest" in run.cta_url
        recipient = db.query(DigestRecipient).one()
        assert recipient.status == "sent"
        assert recipient.provider_message_id == "msg_1"
        assert len(recipient.correlation_id) == 32

        second = _run(service.run())
        assert _statuses(second) == [("skipped", "already_sent")]
        assert len(sender.sent) == 1
        assert db.query(DigestRun).count() == 1

    def test_email_content(self, db, sender, resolver, settings, make_cafe):
        make_cafe(ratings=RATINGS, topics=TOPICS)
        _run(_service(db, sender, resolver, settings).run())

        html = sender.sent[0].html
        assert "Customers repeatedly mention &quot;wait time&quot;" in html
        assert "Review momentum is increasing" in html
        assert "Customers love your &quot;coffee&quot;" in html
        # Focus is the top warning
        assert "Review peak-hour staffing." in html
        assert "https://app.example.com/digests/redirect?rid=" in html
        assert "https://app.example.com/digests/unsubscribe?token=" in html

    def test_persists_ranked_insights_per_run(self, db, sender, resolver, settings, make_cafe):
        make_cafe(ratings=RATINGS, topics=TOPICS)
        _run(_service(db, sender, resolver, settings).run())

        run = db.query(DigestRun).one()
        insights = DigestRepository(db).list_insights(run.id)
        assert [i.insight_id for i in insights] == [
            f"recurring_complaint_{run.id}",
            f"review_velocity_spike_{run.id}",
            f"strong_praise_{run.id}",
        ]
        assert [i.rank for i in insights] == [1, 2, 3]
        assert insights[0].severity == "warn"
        assert insights[0].deep_link.startswith("https://app.example.com/dashboard?")
        assert insights[0].supporting_data == {
            "period_start": "2026-10-11T00:00:00",
            "period_end": "2026-10-18T00:00:00",
        }

    def test_cafe_without_reviews_still_gets_a_digest(self, db, sender, resolver, settings, make_cafe):
        make_cafe()
        batch = _run(_service(db, sender, resolver, settings).run())
        assert _statuses(batch) == [("sent", None)]
        assert "No new reviews to analyse" in sender.sent[0].html

    def test_unnamed_cafe(self, db, sender, resolver, settings, make_cafe):
        make_cafe(name=None)
        _run(_service(db, sender, resolver, settings).run())
        assert "Your cafe" in sender.sent[0].html

    def test_cafe_filter(self, db, sender, resolver, settings, make_cafe):
        make_cafe(email="first@example.com")
        second = make_cafe(email="second@example.com")
        batch = _run(_service(db, sender, resolver, settings).run(cafe_id=second.id))
        assert [r.cafe_id for r in batch.results] == [second.id]
        assert [m.to for m in sender.sent] == ["second@example.com"]

    def test_unknown_cafe_filter_raises(self, db, sender, resolver, settings):
        with pytest.raises(CafeNotFoundError):
            _run(_service(db, sender, resolver, settings).run(cafe_id="nope"))


class TestSkips:

    def test_digest_disabled(self, db, sender, resolver, settings, make_cafe, opt_out):
        cafe = make_cafe()
        opt_out(cafe.owner_id)
        batch = _run(_service(db, sender, resolver, settings).run())
        assert _statuses(batch) == [("skipped", "disabled")]
        assert sender.sent == []
        assert db.query(DigestRun).count() == 0

    def test_unsubscribed(self, db, sender, resolver, settings, make_cafe, opt_out):
        cafe = make_cafe()
        opt_out(cafe.owner_id, digest_enabled=True, unsubscribed_at=NOW)
        batch = _run(_service(db, sender, resolver, settings).run())
        assert _statuses(batch) == [("skipped", "disabled")]

    def test_missing_email_creates_nothing(self, db, sender, resolver, settings, make_cafe):
        make_cafe(email=None)
        batch = _run(_service(db, sender, resolver, settings).run())
        assert _statuses(batch) == [("skipped", "missing_email")]
        assert db.query(DigestRun).count() == 0
        assert db.query(DigestRecipient).count() == 0

    def test_recipient_already_sent(self, db, sender, resolver, settings, make_cafe):
        cafe = make_cafe()
        period = weekly_period(NOW)
        repo = DigestRepository(db)
        run, _ = repo.get_or_create_run(cafe.id, period.start.date(), period.end.date(), period.label)
        recipient, _ = repo.get_or_create_recipient(run, cafe.owner_id, "owner@example.com")
        repo.mark_recipient_sent(recipient, "msg_earlier", NOW)

        batch = _run(_service(db, sender, resolver, settings).run())
        assert _statuses(batch) == [("skipped", "recipient_sent")]
        assert sender.sent == []


class TestFailures:

    def test_send_failure_is_recorded_and_retried(self, db, sender, resolver, settings, make_cafe):
        make_cafe(ratings=RATINGS, topics=TOPICS)
        service = _service(db, sender, resolver, settings)

        sender.fail_with = "HTTP 503: busy"
        batch = _run(service.run())
        assert _statuses(batch) == [("failed", "send_failed")]

        run = db.query(DigestRun).one()
        assert run.status == "failed"
        assert run.sent_at is None
        recipient = db.query(DigestRecipient).one()
        assert recipient.status == "failed"
        assert json.loads(recipient.error) == {"error": "HTTP 503: busy", "attempts": 1}

        sender.fail_with = None
        batch = _run(service.run())
        assert _statuses(batch) == [("sent", None)]
        assert db.query(DigestRun).count() == 1
        assert db.query(DigestRecipient).count() == 1
        assert db.query(DigestRecipient).one().error is None
        assert db.query(DigestRun).one().status == "sent"

    def test_one_cafe_failure_does_not_stop_the_batch(self, db, sender, resolver, settings, make_cafe):
        broken = make_cafe(email="first@example.com")
        healthy = make_cafe(email="second@example.com")
        resolver.broken.add(broken.owner_id)

        batch = _run(_service(db, sender, resolver, settings).run())
        assert [(r.cafe_id, r.status, r.detail) for r in batch.results] == [
            (broken.id, "failed", "unexpected_error"),
            (healthy.id, "sent", None),
        ]
        assert batch.count("sent") == 1
        assert batch.count("failed") == 1
        assert [m.to for m in sender.sent] == ["second@example.com"]

    def test_missing_provider_key(self, db, resolver, settings, make_cafe):
        make_cafe()
        no_key = Settings(
            app_base_url=settings.app_base_url,
            digest_unsubscribe_secret="unsub-secret",
            resend_api_key=None,
            log_dir="",
        )
        service = WeeklyDigestService(db, ResendEmailSender(no_key), resolver, settings=no_key, now=NOW)
        batch = _run(service.run())
        assert _statuses(batch) == [("failed", "missing_email_config")]
        assert db.query(DigestRun).one().status == "failed"
        assert db.query(DigestRecipient).one().status == "failed"

    def test_missing_unsubscribe_secret_sends_nothing(self, db, sender, resolver, make_cafe):
        make_cafe()
        no_secret = Settings(
            app_base_url="https://app.example.com",
            digest_unsubscribe_secret=None,
            resend_api_key="re_test_key",
            log_dir="",
        )
        batch = _run(_service(db, sender, resolver, no_secret).run())
        assert _statuses(batch) == [("failed", "missing_email_config")]
        assert sender.sent == []

    def test_review_load_failure_marks_run_and_recipient(self, db, sender, resolver, settings, make_cafe, monkeypatch):
        broken = make_cafe(email="first@example.com")
        healthy = make_cafe(email="second@example.com")
        original = DigestRepository.load_reviews

        def load_reviews(repo, cafe_id, since):
            if cafe_id == broken.id:
                raise RuntimeError("reviews table unavailable")
            return original(repo, cafe_id, since)

        monkeypatch.setattr(DigestRepository, "load_reviews", load_reviews)
        batch = _run(_service(db, sender, resolver, settings).run())

        assert [(r.cafe_id, r.status, r.detail) for r in batch.results] == [
            (broken.id, "failed", "reviews_load"),
            (healthy.id, "sent", None),
        ]
        run = db.query(DigestRun).filter(DigestRun.cafe_id == broken.id).one()
        assert run.status == "failed"
        recipient = db.query(DigestRecipient).filter(DigestRecipient.digest_run_id == run.id).one()
        assert recipient.status == "failed"
        assert recipient.error.startswith("reviews_load")
        assert [m.to for m in sender.sent] == ["second@example.com"]

    def test_render_failure_sends_nothing(self, db, sender, resolver, settings, make_cafe, monkeypatch):
        make_cafe(ratings=RATINGS, topics=TOPICS)

        def render_weekly_digest(context):
            raise ValueError("template exploded")

        monkeypatch.setattr("app.services.digest_service.render_weekly_digest", render_weekly_digest)
        batch = _run(_service(db, sender, resolver, settings).run())

        assert _statuses(batch) == [("failed", "render_failed")]
        assert sender.sent == []
        assert db.query(DigestRun).one().status == "failed"
        recipient = db.query(DigestRecipient).one()
        assert recipient.status == "failed"
        assert recipient.error.startswith("render_failed")

    def test_insight_storage_failure_still_sends(self, db, sender, resolver, settings, make_cafe, monkeypatch):
        make_cafe(ratings=RATINGS, topics=TOPICS)

        def save_insights(repo, run_id, rows):
            raise RuntimeError("disk full")

        monkeypatch.setattr(DigestRepository, "save_insights", save_insights)
        batch = _run(_service(db, sender, resolver, settings).run())

        assert _statuses(batch) == [("sent", None)]
        assert len(sender.sent) == 1
        assert db.query(DigestRun).one().status == "sent"
        assert db.query(DigestRecipient).one().status == "sent"
        assert db.query(DigestInsight).count() == 0


def _insight_row(insight_id, rank):
    return {
        'insight_id': insight_id,
        'insight_type': insight_id.rsplit('_', 1)[0],
        'severity': 'info',
        'title': insight_id,
        'summary': insight_id,
        'score': 10.0 - rank,
        'rank': rank,
    }


class TestInsightStorage:

    def _run_row(self, db, make_cafe):
        cafe = make_cafe()
        period = weekly_period(NOW)
        run, _ = DigestRepository(db).get_or_create_run(cafe.id, period.start.date(), period.end.date(), period.label)
        return run

    def test_existing_ids_are_not_duplicated(self, db, make_cafe):
        run = self._run_row(db, make_cafe)
        repo = DigestRepository(db)
        rows = [_insight_row("strong_praise_1", 1), _insight_row("reviews_summary_1", 2)]
        assert repo.save_insights(run.id, rows) == 2
        assert repo.save_insights(run.id, rows) == 0
        assert db.query(DigestInsight).count() == 2

    def test_resumed_run_replaces_stale_summary(self, db, make_cafe):
        run = self._run_row(db, make_cafe)
        repo = DigestRepository(db)
        repo.save_insights(run.id, [
            _insight_row("strong_praise_1", 1),
            _insight_row("reviews_summary_1", 2),
            _insight_row("low_review_volume_1", 3),
        ])

        created = repo.save_insights(run.id, [
            _insight_row("recurring_complaint_1", 1),
            _insight_row("strong_praise_1", 2),
            _insight_row("reviews_summary_1", 3),
        ])

        assert created == 1
        insights = repo.list_insights(run.id)
        assert [(i.insight_id, i.rank) for i in insights] == [
            ("recurring_complaint_1", 1),
            ("strong_praise_1", 2),
            ("reviews_summary_1", 3),
        ]


def test_unsubscribe_expiry_uses_the_real_instant(db, sender, resolver, settings):
    # 11:30 at +02:00 is 09:30 UTC
    local_now = datetime(2026, 10, 18, 11, 30, tzinfo=timezone(timedelta(hours=2)))
    service = WeeklyDigestService(db, sender, resolver, settings=settings, now=local_now)

    url = service._unsubscribe_url("user-1")
    token = parse_qs(urlparse(url).query)["token"][0]
    issued = datetime(2026, 10, 18, 9, 30, tzinfo=timezone.utc).timestamp()
    payload = verify_unsubscribe_token(token, "unsub-secret", now=issued)
    assert payload["exp"] == int(issued) + settings.unsubscribe_token_days * 24 * 60 * 60
