"""
Signed unsubscribe tokens

Format: base64url(json payload) + "." + base64url(HMAC-SHA256(secret, body)),
padding stripped. Payload: {"userId": ..., "exp": unix seconds}. Verifiable
without a database lookup.
"""
import base64
import hashlib
import hmac
import json
import time
from typing import Optional

from app.exceptions import DigestConfigError


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _b64url_decode(value: str) -> bytes:
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(value + padding)


def _signature(body: str, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), body.encode("ascii"), hashlib.sha256).digest()
    return _b64url_encode(digest)


def _require_secret(secret: Optional[str]) -> str:
    if not secret:
        raise DigestConfigError("Missing DIGEST_UNSUBSCRIBE_SECRET")
    return secret


def create_unsubscribe_token(
    user_id: str,
    secret: Optional[str],
    days_valid: int = 14,
    now: Optional[float] = None,
) -> str:
    secret = _require_secret(secret)
    issued = time.time() if now is None else now
    payload = {"userId": str(user_id), "exp": int(issued) + days_valid * 24 * 60 * 60}
    body = _b64url_encode(json.dumps(payload, separators=(",", ":")).encode("utf-8"))
    return f"{body}.{_signature(body, secret)}"


def verify_unsubscribe_token(token: str, secret: Optional[str], now: Optional[float] = None) -> Optional[dict]:
    """Return the payload for a genuine, unexpired token, else None"""
    secret = _require_secret(secret)
    if not token or token.count(".") != 1:
        return None

    body, signature = token.split(".")
    if not body or not signature or not body.isascii():
        return None
    if not hmac.compare_digest(_signature(body, secret).encode("utf-8"), signature.encode("utf-8")):
        return None

    try:
        payload = json.loads(_b64url_decode(body))
    except (ValueError, UnicodeDecodeError):
        return None

    if not isinstance(payload, dict) or not payload.get("userId") or not payload.get("exp"):
        return None

    current = time.time() if now is None else now
    if current > payload["exp"]:
        return None
    return payload
