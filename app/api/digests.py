"""
Weekly Digest API

Scheduled trigger, manual send, click tracking and unsubscribe.
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from pydantic import AliasChoices, BaseModel, Field
from sqlalchemy.orm import Session

from app.api.deps import get_email_sender, get_identity_resolver, require_cron_secret
from app.config import Settings, get_settings
from app.exceptions import CafeNotFoundError, DigestConfigError
from app.models.base import get_db
from app.services.digest_links import resolve_redirect
from app.services.digest_repository import DigestRepository
from app.services.digest_service import WeeklyDigestService
from app.utils.digest_tokens import verify_unsubscribe_token
from app.utils.logger import log

router = APIRouter(prefix="/digests", tags=["digests"])

UNSUBSCRIBED_PAGE = (
    '<html><body style="font-family:Arial,Helvetica,sans-serif;padding:32px;">'
    "You are unsubscribed from weekly digests."
    "</body></html>"
)


class SendNowRequest(BaseModel):
    cafe_id: Optional[str] = Field(None, validation_alias=AliasChoices("cafe_id", "cafeId"))


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"ok": False, "error": message})


async def _run_digest(service: WeeklyDigestService, cafe_id: Optional[str]):
    try:
        batch = await service.run(cafe_id=cafe_id)
        return batch.to_dict()

    except CafeNotFoundError as e:
        log.warning(f"Weekly digest requested for unknown cafe {e.cafe_id}")
        return _error(404, "Cafe not found")
    except Exception as e:
        log.error(f"Error running weekly digest: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.api_route("/weekly", methods=["GET", "POST"], dependencies=[Depends(require_cron_secret)])
async def run_weekly_digest(
    cafe_id: Optional[str] = Query(None, description="Only process this cafe"),
    db: Session = Depends(get_db),
    sender=Depends(get_email_sender),
    identity_resolver=Depends(get_identity_resolver),
    settings: Settings = Depends(get_settings),
):
    """
    Send this week's digest to every café owner

    Returns a per-café outcome (sent / skipped / failed with a reason code).
    Safe to call repeatedly; cafés already sent this week are skipped.
    """
    service = WeeklyDigestService(db, sender, identity_resolver, settings)
    return await _run_digest(service, cafe_id)


@router.post("/send-now", dependencies=[Depends(require_cron_secret)])
async def send_digest_now(
    payload: Optional[SendNowRequest] = None,
    db: Session = Depends(get_db),
    sender=Depends(get_email_sender),
    identity_resolver=Depends(get_identity_resolver),
    settings: Settings = Depends(get_settings),
):
    """Run the weekly digest for a single café"""
    cafe_id = payload.cafe_id.strip() if payload and payload.cafe_id else ""
    if not cafe_id:
        return _error(400, "Missing cafe_id")

    service = WeeklyDigestService(db, sender, identity_resolver, settings)
    return await _run_digest(service, cafe_id)


@router.get("/redirect")
async def tracking_redirect(
    rid: Optional[str] = Query(None),
    iid: Optional[str] = Query(None),
    next_url: Optional[str] = Query(None, alias="next"),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Record a digest link click, then forward within the app only"""
    if rid:
        try:
            rid_int = int(rid)
        except ValueError:
            rid_int = None
        if rid_int is not None:
            try:
                if DigestRepository(db).record_click(rid_int, datetime.utcnow()):
                    log.info(f"Digest click: recipient {rid_int} insight {iid}")
            except Exception as e:
                db.rollback()
                log.warning(f"Could not record digest click for recipient {rid}: {str(e)}")

    return RedirectResponse(resolve_redirect(next_url, settings.app_base_url), status_code=307)


@router.get("/unsubscribe")
async def unsubscribe(
    token: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """One-click unsubscribe from weekly digests"""
    if not token:
        return _error(400, "Missing token")

    try:
        payload = verify_unsubscribe_token(token, settings.digest_unsubscribe_secret)
    except DigestConfigError as e:
        log.error(f"Unsubscribe unavailable: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

    if not payload:
        return _error(400, "Invalid or expired token")

    try:
        DigestRepository(db).unsubscribe(payload["userId"], datetime.utcnow())
        log.info(f"User {payload['userId']} unsubscribed from weekly digests")
    except Exception as e:
        db.rollback()
        log.error(f"Error unsubscribing user {payload['userId']}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

    return HTMLResponse(content=UNSUBSCRIBED_PAGE)
