"""
Session cleanup cron job.
Deletes expired sessions and inactive sessions past the retention window.
"""
import logging
from sqlalchemy.orm import Session
from config import settings
from database import SessionLocal
from Login_module.Utils.datetime_utils import now_utc
from .Session_crud import cleanup_expired_sessions

logger = logging.getLogger(__name__)


def cleanup_sessions_job():
    """
    Cron job function to cleanup sessions.
    Errors are logged and never propagate to the scheduler.
    """
    db: Session = SessionLocal()
    try:
        deleted_count = cleanup_expired_sessions(db, config=settings.session_config())
        logger.info(f"Session cleanup completed at {now_utc()}. Deleted {deleted_count} sessions.")
    except Exception as e:
        logger.error(f"Error during session cleanup: {str(e)}")
    finally:
        db.close()
