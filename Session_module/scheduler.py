"""
Scheduler setup for background tasks.
Uses APScheduler to run the session cleanup and alert retention sweeps.
"""
import logging
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from config import settings
from Alert_module.alert_cleanup import purge_alerts_job
from .session_cleanup import cleanup_sessions_job

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = None


def start_scheduler():
    """
    Start the background scheduler for periodic tasks.
    - Session cleanup: every SESSION_CLEANUP_INTERVAL_MINUTES
    - Alert purge: every ALERT_PURGE_INTERVAL_HOURS
    """
    global scheduler

    if scheduler is not None:
        logger.warning("Scheduler is already running")
        return scheduler

    scheduler = BackgroundScheduler(timezone="UTC")

    scheduler.add_job(
        cleanup_sessions_job,
        trigger=IntervalTrigger(minutes=settings.SESSION_CLEANUP_INTERVAL_MINUTES),
        id='session_cleanup',
        name='Cleanup expired and inactive sessions',
        replace_existing=True
    )
    scheduler.add_job(
        purge_alerts_job,
        trigger=IntervalTrigger(hours=settings.ALERT_PURGE_INTERVAL_HOURS),
        id='alert_purge',
        name='Purge old security alerts',
        replace_existing=True
    )

    scheduler.start()
    logger.info(
        f"Background scheduler started. Session cleanup every {settings.SESSION_CLEANUP_INTERVAL_MINUTES} minutes, "
        f"alert purge every {settings.ALERT_PURGE_INTERVAL_HOURS} hours."
    )

    return scheduler


def shutdown_scheduler():
    """
    Shutdown the background scheduler.
    """
    global scheduler

    if scheduler is not None:
        scheduler.shutdown()
        scheduler = None
        logger.info("Background scheduler stopped.")
