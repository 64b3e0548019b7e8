"""
Security alert retention job.
"""
import logging
from sqlalchemy.orm import Session
from config import settings
from database import SessionLocal
from Login_module.Utils.datetime_utils import now_utc
from .Alert_crud import purge_old_alerts

logger = logging.getLogger(__name__)


def purge_alerts_job():
    """Delete acknowledged alerts older than ALERT_RETENTION_DAYS. Unread alerts are kept."""
    db: Session = SessionLocal()
    try:
        deleted_count = purge_old_alerts(db, config=settings.alert_config())
        logger.info(f"Alert purge completed at {now_utc()}. Deleted {deleted_count} alerts.")
    except Exception as e:
        logger.error(f"Error during alert purge: {str(e)}")
    finally:
        db.close()
