import os
from pathlib import Path
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import QueuePool, StaticPool
from dotenv import load_dotenv
import logging

from config import settings

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent

load_dotenv(dotenv_path=BASE_DIR / ".env")

DATABASE_URL = (settings.DATABASE_URL or os.getenv("DATABASE_URL", "")).strip()

# Some hosting environments accidentally prepend "DATABASE_URL=" to the value
PREFIX = "DATABASE_URL="
if DATABASE_URL.startswith(PREFIX):
    DATABASE_URL = DATABASE_URL[len(PREFIX):].strip()

if not DATABASE_URL:
    default_sqlite_path = BASE_DIR / "civic_security.db"
    DATABASE_URL = f"sqlite:///{default_sqlite_path.as_posix()}"
    logger.warning(
        "DATABASE_URL not found in environment. Falling back to SQLite at %s",
        default_sqlite_path
    )

# Connection pooling configuration (used for non-SQLite databases)
POOL_SIZE = int(os.getenv("DB_POOL_SIZE", 10))
MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", 20))
POOL_TIMEOUT = int(os.getenv("DB_POOL_TIMEOUT", 30))
POOL_RECYCLE = int(os.getenv("DB_POOL_RECYCLE", 3600))


def is_in_memory_sqlite(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in url


engine_kwargs = {
    "echo": False,
    "future": True,
    "pool_pre_ping": True,
}

if DATABASE_URL.startswith("sqlite"):
    engine_kwargs["connect_args"] = {"check_same_thread": False}
    # In-memory databases live inside a single connection
    if is_in_memory_sqlite(DATABASE_URL):
        engine_kwargs["poolclass"] = StaticPool
else:
    engine_kwargs.update(
        {
            "poolclass": QueuePool,
            "pool_size": POOL_SIZE,
            "max_overflow": MAX_OVERFLOW,
            "pool_timeout": POOL_TIMEOUT,
            "pool_recycle": POOL_RECYCLE,
        }
    )

engine = create_engine(DATABASE_URL, **engine_kwargs)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)

Base = declarative_base()

if DATABASE_URL.startswith("sqlite"):
    logger.info("Database configured with SQLite at %s", DATABASE_URL)
else:
    logger.info("Database connection pool configured: size=%s, max_overflow=%s", POOL_SIZE, MAX_OVERFLOW)
