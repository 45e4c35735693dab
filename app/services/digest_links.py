"""
Digest link building

Every link in a digest email goes through the click-tracking redirect, which
only forwards to URLs under the application's own base URL.
"""
from datetime import datetime
from typing import Optional
from urllib.parse import urlencode, urlparse

REDIRECT_PATH = "/digests/redirect"
UNSUBSCRIBE_PATH = "/digests/unsubscribe"


def _base(base_url: str) -> str:
    return base_url.rstrip("/")


def build_insight_link(
    base_url: str,
    cafe_id: str,
    insight_id: str,
    period_start: datetime,
    period_end: datetime,
) -> str:
    """Dashboard deep link for one insight"""
    params = urlencode({
        'locationId': cafe_id,
        'insightId': insight_id,
        'periodStart': period_start.isoformat(),
        'periodEnd': period_end.isoformat(),
    })
    return f"{_base(base_url)}/dashboard?{params}"


def wrap_tracking_link(base_url: str, recipient_id, insight_id: str, next_url: str) -> str:
    params = urlencode({
        'rid': str(recipient_id),
        'iid': insight_id,
        'next': next_url,
    })
    return f"{_base(base_url)}{REDIRECT_PATH}?{params}"


def build_unsubscribe_url(base_url: str, token: str) -> str:
    return f"{_base(base_url)}{UNSUBSCRIBE_PATH}?{urlencode({'token': token})}"


def is_safe_redirect(next_url: Optional[str], base_url: str) -> bool:
    """
    True only for absolute URLs on the app's own origin and under its base path

    Scheme and host must match exactly, so a lookalike host such as
    app.example.com.evil.test is rejected.
    """
    if not next_url:
        return False
    target = urlparse(next_url)
    base = urlparse(_base(base_url))
    if target.scheme != base.scheme or target.netloc.lower() != base.netloc.lower():
        return False
    base_path = base.path.rstrip("/")
    if not base_path:
        return True
    return target.path == base_path or target.path.startswith(base_path + "/")


def resolve_redirect(next_url: Optional[str], base_url: str) -> str:
    """The URL the tracking redirect should send the browser to"""
    if is_safe_redirect(next_url, base_url):
        return next_url
    return f"{_base(base_url)}/"
