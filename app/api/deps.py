"""
Shared router dependencies
"""
import secrets
from typing import Optional

from fastapi import Depends, Header, HTTPException, Query, Request
from sqlalchemy.orm import Session

from app.config import Settings, get_settings
from app.models.base import get_db
from app.services.email_sender import ResendEmailSender
from app.services.identity_resolver import DatabaseIdentityResolver
from app.utils.logger import log
from app.utils.response_cache import ResponseCache


def require_cron_secret(
    x_cron_secret: Optional[str] = Header(None),
    secret: Optional[str] = Query(None),
    settings: Settings = Depends(get_settings),
) -> None:
    """Scheduled trigger auth: `x-cron-secret` header or `?secret=`"""
    if not settings.cron_secret:
        log.error("CRON_SECRET is not configured; refusing scheduled trigger")
        raise HTTPException(status_code=500, detail="Missing CRON_SECRET")

    provided = x_cron_secret or secret
    if not provided or not secrets.compare_digest(provided.encode("utf-8"), settings.cron_secret.encode("utf-8")):
        raise HTTPException(status_code=401, detail="Unauthorized")


def get_email_sender(settings: Settings = Depends(get_settings)) -> ResendEmailSender:
    return ResendEmailSender(settings)


def get_identity_resolver(db: Session = Depends(get_db)) -> DatabaseIdentityResolver:
    return DatabaseIdentityResolver(db)


def get_response_cache(request: Request) -> Optional[ResponseCache]:
    return getattr(request.app.state, "response_cache", None)
