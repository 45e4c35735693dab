"""
HTTP surface tests: cron auth, digest triggers, click tracking, unsubscribe
and the overview endpoint.
"""
from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from app.api.deps import get_email_sender
from app.config import Settings, get_settings
from app.main import app
from app.models.base import get_db
from app.models.cafe import Review
from app.models.digest import DigestRun
from app.models.user import UserPreference
from app.services.digest_repository import DigestRepository
from app.services.digest_service import weekly_period
from app.utils.digest_tokens import create_unsubscribe_token
from app.utils.response_cache import ResponseCache

CRON = {"x-cron-secret": "cron-secret"}


@pytest.fixture
def client(db, settings, sender):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_email_sender] = lambda: sender
    # No lifespan: the database comes from the fixture
    yield TestClient(app)
    app.dependency_overrides.clear()
    if hasattr(app.state, "response_cache"):
        del app.state.response_cache


def _override_settings(**changes):
    values = dict(
        app_base_url="https://app.example.com",
        cron_secret="cron-secret",
        digest_unsubscribe_secret="unsub-secret",
        resend_api_key="re_test_key",
        log_dir="",
    )
    values.update(changes)
    app.dependency_overrides[get_settings] = lambda: Settings(**values)


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_robots(client):
    assert "Disallow: /" in client.get("/robots.txt").text


class TestCronAuth:

    def test_missing_secret_header(self, client):
        response = client.get("/digests/weekly")
        assert response.status_code == 401
        assert response.json() == {"detail": "Unauthorized"}

    def test_wrong_secret(self, client):
        assert client.get("/digests/weekly", headers={"x-cron-secret": "nope"}).status_code == 401

    def test_unconfigured_secret(self, client):
        _override_settings(cron_secret=None)
        response = client.get("/digests/weekly", headers=CRON)
        assert response.status_code == 500
        assert response.json() == {"detail": "Missing CRON_SECRET"}

    def test_non_ascii_secret_is_unauthorized(self, client):
        assert client.get("/digests/weekly", params={"secret": "é"}).status_code == 401

    def test_query_secret(self, client):
        response = client.post("/digests/weekly", params={"secret": "cron-secret"})
        assert response.status_code == 200
        assert response.json()["ok"] is True


class TestWeeklyTrigger:

    def test_runs_batch(self, client, sender, make_cafe):
        cafe = make_cafe(now=datetime.utcnow())
        response = client.get("/digests/weekly", headers=CRON)
        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["results"] == [{"cafe_id": cafe.id, "status": "sent"}]
        assert [m.to for m in sender.sent] == ["owner@example.com"]

        again = client.post("/digests/weekly", headers=CRON).json()
        assert again["results"] == [{"cafe_id": cafe.id, "status": "skipped", "detail": "already_sent"}]

    def test_skips_are_reported(self, client, make_cafe):
        cafe = make_cafe(email=None)
        body = client.get("/digests/weekly", headers=CRON).json()
        assert body["results"] == [{"cafe_id": cafe.id, "status": "skipped", "detail": "missing_email"}]

    def test_unknown_cafe(self, client):
        response = client.get("/digests/weekly", params={"cafe_id": "nope"}, headers=CRON)
        assert response.status_code == 404
        assert response.json() == {"ok": False, "error": "Cafe not found"}

    def test_send_now_requires_cafe(self, client):
        response = client.post("/digests/send-now", headers=CRON, json={})
        assert response.status_code == 400
        assert response.json() == {"ok": False, "error": "Missing cafe_id"}

    def test_send_now_requires_auth(self, client):
        assert client.post("/digests/send-now", json={"cafe_id": "x"}).status_code == 401

    def test_send_now_accepts_camel_case(self, client, sender, make_cafe):
        make_cafe(email="first@example.com")
        second = make_cafe(email="second@example.com")
        response = client.post("/digests/send-now", headers=CRON, json={"cafeId": second.id})
        assert response.status_code == 200
        assert [r["cafe_id"] for r in response.json()["results"]] == [second.id]
        assert [m.to for m in sender.sent] == ["second@example.com"]


class TestRedirect:

    def _recipient(self, db, cafe):
        period = weekly_period(datetime.utcnow())
        repo = DigestRepository(db)
        run, _ = repo.get_or_create_run(cafe.id, period.start.date(), period.end.date(), period.label)
        recipient, _ = repo.get_or_create_recipient(run, cafe.owner_id, "owner@example.com")
        return recipient

    def test_records_click_and_forwards(self, client, db, make_cafe):
        recipient = self._recipient(db, make_cafe())
        target = "https://app.example.com/dashboard?insightId=weekly_digest_1"
        response = client.get(
            "/digests/redirect",
            params={"rid": str(recipient.id), "iid": "weekly_digest", "next": target},
            follow_redirects=False,
        )
        assert response.status_code == 307
        assert response.headers["location"] == target
        db.refresh(recipient)
        assert recipient.clicked_at is not None

    def test_foreign_target_goes_to_app_root(self, client):
        response = client.get(
            "/digests/redirect",
            params={"next": "https://app.example.com.evil.test/"},
            follow_redirects=False,
        )
        assert response.status_code == 307
        assert response.headers["location"] == "https://app.example.com/"

    def test_bad_recipient_still_redirects(self, client):
        for rid in ("abc", "999"):
            response = client.get("/digests/redirect", params={"rid": rid}, follow_redirects=False)
            assert response.status_code == 307
            assert response.headers["location"] == "https://app.example.com/"


class TestUnsubscribe:

    def test_unsubscribes_owner(self, client, db, make_cafe):
        cafe = make_cafe()
        token = create_unsubscribe_token(cafe.owner_id, "unsub-secret")
        response = client.get("/digests/unsubscribe", params={"token": token})
        assert response.status_code == 200
        assert "You are unsubscribed from weekly digests." in response.text

        pref = db.query(UserPreference).filter(UserPreference.user_id == cafe.owner_id).one()
        assert pref.digest_enabled is False
        assert pref.unsubscribed_at is not None

    def test_unsubscribed_owner_is_skipped(self, client, make_cafe):
        cafe = make_cafe(now=datetime.utcnow())
        client.get("/digests/unsubscribe", params={"token": create_unsubscribe_token(cafe.owner_id, "unsub-secret")})
        body = client.get("/digests/weekly", headers=CRON).json()
        assert body["results"] == [{"cafe_id": cafe.id, "status": "skipped", "detail": "disabled"}]

    def test_missing_token(self, client):
        response = client.get("/digests/unsubscribe")
        assert response.status_code == 400
        assert response.json() == {"ok": False, "error": "Missing token"}

    def test_invalid_token(self, client):
        token = create_unsubscribe_token("user-1", "some-other-secret")
        response = client.get("/digests/unsubscribe", params={"token": token})
        assert response.status_code == 400
        assert response.json() == {"ok": False, "error": "Invalid or expired token"}

    def test_non_ascii_token(self, client):
        response = client.get("/digests/unsubscribe", params={"token": "é.x"})
        assert response.status_code == 400
        assert response.json() == {"ok": False, "error": "Invalid or expired token"}

    def test_unconfigured_secret(self, client):
        _override_settings(digest_unsubscribe_secret=None)
        response = client.get("/digests/unsubscribe", params={"token": "a.b"})
        assert response.status_code == 500


class TestOverview:

    def test_overview(self, client, make_cafe):
        cafe = make_cafe(ratings=[5, 4, 4], now=datetime.utcnow())
        response = client.get("/insights/overview", params={"cafe_id": cafe.id, "window_days": "3"})
        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["window_days"] == 7
        assert body["reviews"]["total"] == 3

    def test_unknown_cafe(self, client):
        response = client.get("/insights/overview", params={"cafe_id": "nope"})
        assert response.status_code == 404
        assert response.json() == {"ok": False, "error": "Cafe not found"}

    def test_cafe_id_required(self, client):
        assert client.get("/insights/overview").status_code == 422

    def test_responses_are_cached_per_window(self, client, db, make_cafe):
        app.state.response_cache = ResponseCache()
        cafe = make_cafe(ratings=[5, 4, 4], now=datetime.utcnow())

        first = client.get("/insights/overview", params={"cafe_id": cafe.id}).json()
        db.add(Review(cafe_id=cafe.id, rating=1, review_created_at=datetime.utcnow()))
        db.commit()

        cached = client.get("/insights/overview", params={"cafe_id": cafe.id}).json()
        assert cached == first
        assert cached["reviews"]["total"] == 3

        other_window = client.get("/insights/overview", params={"cafe_id": cafe.id, "window_days": "30"}).json()
        assert other_window["reviews"]["total"] == 4

    def test_overview_does_not_create_digest_rows(self, client, db, make_cafe):
        cafe = make_cafe(ratings=[5])
        client.get("/insights/overview", params={"cafe_id": cafe.id})
        assert db.query(DigestRun).count() == 0


def test_status_reports_features(client):
    body = client.get("/status").json()
    assert set(body["features"]) == {
        "digest_scheduler",
        "email_configured",
        "unsubscribe_configured",
        "cron_configured",
    }
    assert body["jobs"] == []
