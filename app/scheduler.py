"""
Scheduler for the weekly digest

Uses APScheduler to send the weekly insight digest once a week. The batch is
idempotent, so an overlapping or repeated trigger cannot double-send.
"""
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from zoneinfo import ZoneInfo
import asyncio
from typing import Optional

from app.config import get_settings
from app.models.base import SessionLocal
from app.services.digest_service import WeeklyDigestService
from app.services.email_sender import ResendEmailSender
from app.services.identity_resolver import DatabaseIdentityResolver
from app.utils.logger import log

WEEKLY_DIGEST_JOB_ID = 'weekly_digest'

scheduler = AsyncIOScheduler()


async def send_weekly_digest(cafe_id: Optional[str] = None) -> dict:
    """Run the weekly digest batch in its own session"""
    settings = get_settings()
    db = SessionLocal()
    try:
        log.info("Starting scheduled weekly digest...")
        service = WeeklyDigestService(
            db,
            sender=ResendEmailSender(settings),
            identity_resolver=DatabaseIdentityResolver(db),
            settings=settings,
        )
        batch = await service.run(cafe_id=cafe_id)
        return batch.to_dict()

    except Exception as e:
        log.error(f"Weekly digest job error: {str(e)}")
        return {'ok': False, 'error': str(e)}

    finally:
        db.close()


def setup_scheduler():
    """
    Configure the weekly digest job.

    Runs on digest_schedule_day_of_week at digest_schedule_hour:minute in
    digest_timezone (default Monday 08:00 UTC).
    """
    settings = get_settings()
    scheduler.add_job(
        send_weekly_digest,
        trigger=CronTrigger(
            day_of_week=settings.digest_schedule_day_of_week,
            hour=settings.digest_schedule_hour,
            minute=settings.digest_schedule_minute,
            timezone=ZoneInfo(settings.digest_timezone),
        ),
        id=WEEKLY_DIGEST_JOB_ID,
        name='Weekly Insight Digest',
        replace_existing=True,
        max_instances=1
    )


def start_scheduler():
    """Start the scheduler"""
    setup_scheduler()
    scheduler.start()
    log.info("Scheduler started")


def stop_scheduler():
    """Stop the scheduler"""
    if scheduler.running:
        scheduler.shutdown()
        log.info("Scheduler stopped")


def get_scheduled_jobs() -> list:
    """
    Get list of all scheduled jobs

    Returns:
        List of job info dicts
    """
    jobs = []

    for job in scheduler.get_jobs():
        next_run = getattr(job, 'next_run_time', None)

        jobs.append({
            'id': job.id,
            'name': job.name,
            'next_run': next_run.isoformat() if next_run else None,
            'trigger': str(job.trigger)
        })

    return jobs


# CLI for manual runs

if __name__ == "__main__":
    import json
    import sys

    if len(sys.argv) < 2:
        print("Usage: python -m app.scheduler <command> [cafe_id]")
        print("\nCommands:")
        print("  digest [cafe_id]   Send this week's digest now")
        print("  list               Show the configured job")
        sys.exit(1)

    command = sys.argv[1]

    if command == "digest":
        from app.models.base import init_db
        init_db()
        result = asyncio.run(send_weekly_digest(sys.argv[2] if len(sys.argv) > 2 else None))
        print(json.dumps(result, indent=2))

    elif command == "list":
        setup_scheduler()
        for job in get_scheduled_jobs():
            print(f"{job['id']}: {job['name']} ({job['trigger']})")

    else:
        print(f"Unknown command: {command}")
        sys.exit(1)
