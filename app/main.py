"""
LocalPulse Café Insights
Main FastAPI application
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from starlette.middleware.gzip import GZipMiddleware
from contextlib import asynccontextmanager

from app.config import get_settings
from app.utils.logger import log
from app.utils.response_cache import ResponseCache
from app import __version__

# Import routers
from app.api import health, insights, digests

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    # Startup
    log.info(f"Starting {settings.app_name} v{__version__}")
    log.info(f"Environment: {settings.environment}")

    app.state.response_cache = ResponseCache(
        max_entries=settings.overview_cache_max_entries,
        default_ttl=settings.overview_cache_ttl_seconds,
    )

    # Initialize database
    try:
        from app.models.base import init_db
        init_db()
        log.info("Database initialized")
    except Exception as e:
        log.error(f"Database initialization error: {str(e)}")

    # Weekly digest job (off by default; an external cron can call /digests/weekly instead)
    scheduler_started = False
    if settings.enable_digest_scheduler:
        try:
            from app.scheduler import start_scheduler
            start_scheduler()
            scheduler_started = True
        except Exception as e:
            log.error(f"Scheduler startup error: {str(e)}")

    yield

    # Shutdown
    if scheduler_started:
        from app.scheduler import stop_scheduler
        stop_scheduler()
    log.info("Shutting down application")


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=__version__,
    description="""
    Review insights for independent cafés

    - Live insights overview: review velocity, praise and complaint themes,
      competitor rating benchmark, ranked insight cards
    - Weekly digest email with the top insights and a suggested focus,
      sent at most once per café per week
    - Click tracking and one-click unsubscribe for digest emails
    """,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.app_base_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Gzip compression
app.add_middleware(GZipMiddleware, minimum_size=500)

# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(insights.router)
app.include_router(digests.router)


@app.get("/robots.txt", response_class=PlainTextResponse)
async def robots_txt():
    """Block all crawlers"""
    return "User-agent: *\nDisallow: /\n"


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug
    )
