"""Database connection and session management"""

from typing import Optional
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from config.settings import settings
from database.models import Base
from core.logging import logger, log_structured


SessionLocal: Optional[sessionmaker] = None


def init_database(database_url: Optional[str] = None) -> bool:
    """
    Initialize database connection and create tables

    Args:
        database_url: Overrides settings.DATABASE_URL

    Returns:
        bool: True if successful, False otherwise
    """
    global SessionLocal

    url = database_url or settings.DATABASE_URL
    if not url:
        logger.warning("⚠️ DATABASE_URL is not set - history will not be persisted")
        return False

    try:
        if url.startswith("sqlite"):
            engine_kwargs = {"connect_args": {"check_same_thread": False}}
            if ":memory:" in url:
                # in-memory SQLite must share one connection
                engine_kwargs["poolclass"] = StaticPool
            engine = create_engine(url, **engine_kwargs)
        else:
            engine = create_engine(
                url,
                pool_pre_ping=True,
                pool_recycle=3600,
                echo=False
            )

        SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
        Base.metadata.create_all(bind=engine)

        db_host = url.split('@')[1] if '@' in url else url.split(':')[0]
        logger.info(f"✅ Database connected ({db_host})")
        log_structured("database_connected", {
            "tables": sorted(Base.metadata.tables.keys())
        })
        return True

    except Exception as e:
        logger.error(f"❌ Database connection failed: {str(e)}")
        SessionLocal = None
        return False


def get_db_session() -> Optional[Session]:
    """
    Get database session for direct use

    Returns:
        Optional[Session]: SQLAlchemy database session or None if not initialized
    """
    if SessionLocal is None:
        return None
    return SessionLocal()
