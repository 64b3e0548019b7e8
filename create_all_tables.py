"""
Maintenance script to create missing database tables.
This script checks the database and creates only the missing tables.

Usage:
    python create_all_tables.py

Alembic remains the owner of the schema; use this only to repair a database
that is missing tables.
"""
import sys
from pathlib import Path
from dotenv import load_dotenv
import logging

# Add project root to path
ROOT_DIR = Path(__file__).resolve().parent
sys.path.insert(0, str(ROOT_DIR))

# Load environment variables
load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)

from database import Base, engine
from sqlalchemy import inspect
from sqlalchemy.exc import OperationalError

EXPECTED_TABLES = {
    'users': 'Login_module.User.user_model.User',
    'login_sessions': 'Session_module.Session_model.LoginSession',
    'session_audit_logs': 'Session_module.Session_audit_model.SessionAuditLog',
    'security_alerts': 'Alert_module.Alert_model.SecurityAlert',
    'security_alert_preferences': 'Alert_module.Alert_preference_model.AlertPreference',
}


def import_all_models() -> bool:
    """Import all models to register them with SQLAlchemy Base.metadata"""
    from Login_module.User.user_model import User
    from Session_module.Session_model import LoginSession
    from Session_module.Session_audit_model import SessionAuditLog
    from Alert_module.Alert_model import SecurityAlert
    from Alert_module.Alert_preference_model import AlertPreference

    missing = [name for name in EXPECTED_TABLES if name not in Base.metadata.tables]
    if missing:
        logger.error(f"Models not registered in Base.metadata: {', '.join(missing)}")
        return False
    logger.info(f"{len(Base.metadata.tables)} table(s) registered in Base.metadata")
    return True


def get_existing_tables():
    """Get list of existing tables in the database"""
    try:
        return inspect(engine).get_table_names()
    except OperationalError as e:
        logger.error(f"Cannot connect to database: {e}")
        logger.error("Please check your DATABASE_URL environment variable")
        return None


def create_missing_tables() -> bool:
    if not import_all_models():
        return False

    existing = get_existing_tables()
    if existing is None:
        return False

    missing = [name for name in EXPECTED_TABLES if name not in existing]
    if not missing:
        logger.info("All tables already exist")
        return True

    logger.info(f"Creating missing tables: {', '.join(missing)}")
    Base.metadata.create_all(
        bind=engine,
        tables=[Base.metadata.tables[name] for name in missing],
    )

    still_missing = [name for name in missing if name not in (get_existing_tables() or [])]
    if still_missing:
        logger.error(f"Failed to create: {', '.join(still_missing)}")
        return False
    logger.info(f"Created {len(missing)} table(s)")
    return True


if __name__ == "__main__":
    sys.exit(0 if create_missing_tables() else 1)
