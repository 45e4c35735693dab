"""
Health check and status endpoints
"""
from fastapi import APIRouter
from datetime import datetime
from app.config import get_settings
from app import __version__

router = APIRouter()


@router.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "version": __version__
    }


@router.get("/status")
async def get_status():
    """Get system status"""
    from app.scheduler import get_scheduled_jobs

    settings = get_settings()
    return {
        "app_name": settings.app_name,
        "version": __version__,
        "environment": settings.environment,
        "features": {
            "digest_scheduler": settings.enable_digest_scheduler,
            "email_configured": bool(settings.resend_api_key),
            "unsubscribe_configured": bool(settings.digest_unsubscribe_secret),
            "cron_configured": bool(settings.cron_secret),
        },
        "jobs": get_scheduled_jobs(),
        "timestamp": datetime.utcnow().isoformat()
    }
