"""
Insights Overview API

Live dashboard view of review insights for one café.
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api.deps import get_response_cache
from app.config import Settings, get_settings
from app.exceptions import CafeNotFoundError, ReviewLoadError
from app.models.base import get_db
from app.services.insights_overview_service import InsightsOverviewService, clamp_window_days
from app.utils.logger import log
from app.utils.response_cache import ResponseCache

router = APIRouter(prefix="/insights", tags=["insights"])


@router.get("/overview")
async def get_insights_overview(
    cafe_id: str = Query(..., description="Cafe to summarise"),
    window_days: Optional[str] = Query(None, description="Window in days (7-365, default 180)"),
    db: Session = Depends(get_db),
    cache: Optional[ResponseCache] = Depends(get_response_cache),
    settings: Settings = Depends(get_settings),
):
    """
    Review insights for the dashboard

    Returns:
    - Ranked insight cards, split into signals and opportunities
    - Review totals, averages and velocity
    - Top praise and complaint phrases
    - Competitor benchmark
    """
    days = clamp_window_days(window_days)
    cache_key = f"overview:{cafe_id}:{days}"
    if cache is not None:
        cached = cache.get(cache_key)
        if cached:
            return cached

    try:
        result = InsightsOverviewService(db).get_overview(cafe_id, days)

    except CafeNotFoundError:
        return JSONResponse(status_code=404, content={"ok": False, "error": "Cafe not found"})
    except ReviewLoadError as e:
        return JSONResponse(status_code=500, content={"ok": False, "error": str(e)})
    except Exception as e:
        log.error(f"Error building insights overview: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

    if cache is not None:
        cache.set(cache_key, result, ttl=settings.overview_cache_ttl_seconds)
    return result
