"""
Configuration management for the café insights service
"""
from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "Cafe Insights & Weekly Digest"
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"
    log_dir: str = "logs"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Database
    database_url: str = "sqlite:///./cafe_insights.db"

    # Public base URL used for deep links, tracking redirects and unsubscribe links
    app_base_url: str = "http://localhost:3000"

    # Scheduled trigger auth (x-cron-secret header or ?secret=)
    cron_secret: Optional[str] = None

    # Unsubscribe tokens
    digest_unsubscribe_secret: Optional[str] = None
    unsubscribe_token_days: int = 14

    # Resend (transactional email)
    resend_api_key: Optional[str] = None
    resend_from: str = "LocalPulse <insights@localpulsehq.com>"
    resend_api_url: str = "https://api.resend.com/emails"
    email_timeout_seconds: float = 30.0
    email_max_attempts: int = 3
    email_retry_base_delay: float = 2.0
    email_retry_max_delay: float = 30.0

    # Weekly digest schedule
    enable_digest_scheduler: bool = False
    digest_schedule_day_of_week: str = "mon"
    digest_schedule_hour: int = 8
    digest_schedule_minute: int = 0
    digest_timezone: str = "UTC"

    # Overview response cache
    overview_cache_ttl_seconds: int = 120
    overview_cache_max_entries: int = 200

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
