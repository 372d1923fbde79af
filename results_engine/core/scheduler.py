"""APScheduler configuration for background jobs."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from results_engine.core.config import settings
from results_engine.services.grading import GradingPolicyProvider, grading_policy_provider

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler: AsyncIOScheduler | None = None


def refresh_grading_policy_job(provider: GradingPolicyProvider | None = None):
    """
    Reload grading tables from the database.
    Picks up policy edits made by other processes.
    """
    provider = provider or grading_policy_provider
    logger.info("Starting grading policy refresh job")
    try:
        provider.refresh()
        logger.info("Grading policy refreshed")
    except Exception as e:
        logger.exception(f"Error refreshing grading policy: {e}")


def init_scheduler() -> AsyncIOScheduler:
    """Initialize and configure the scheduler."""
    global scheduler

    scheduler = AsyncIOScheduler(
        timezone=settings.SCHEDULER_TIMEZONE,
        job_defaults={
            "coalesce": True,  # Combine missed runs
            "max_instances": 1,  # Only one instance of each job at a time
            "misfire_grace_time": 300,
        }
    )

    scheduler.add_job(
        refresh_grading_policy_job,
        trigger=IntervalTrigger(minutes=settings.POLICY_REFRESH_INTERVAL_MINUTES),
        id="refresh_grading_policy",
        name="Refresh grading policy",
        replace_existing=True,
    )

    logger.info(
        f"Scheduler initialized with grading policy refresh every "
        f"{settings.POLICY_REFRESH_INTERVAL_MINUTES} minutes ({settings.SCHEDULER_TIMEZONE})"
    )
    return scheduler


def start_scheduler():
    """Start the scheduler."""
    global scheduler
    if scheduler is None:
        scheduler = init_scheduler()

    if not scheduler.running:
        scheduler.start()
        logger.info("Scheduler started")


def stop_scheduler():
    """Stop the scheduler gracefully."""
    global scheduler
    if scheduler and scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Scheduler stopped")
