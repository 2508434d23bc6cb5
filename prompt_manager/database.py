"""
Database Configuration and Session Management
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from prompt_manager.config import settings
import logging

logger = logging.getLogger(__name__)

# Create SQLAlchemy engine
engine = None
SessionLocal = None


def _normalize_url(database_url: str) -> str:
    """Use the psycopg3 driver for bare postgresql:// URLs"""
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+psycopg://", 1)
    return database_url


def build_engine(database_url: str):
    """
    Create an engine for the given URL.

    PostgreSQL connections are pinned to UTC (usage aggregation groups by
    calendar day in the session time zone) and get a statement timeout so a
    stuck query surfaces as a cancellation instead of hanging the request.
    """
    url = _normalize_url(database_url)

    if url.startswith("postgresql"):
        options = "-c timezone=UTC"
        if settings.statement_timeout_ms > 0:
            options += f" -c statement_timeout={settings.statement_timeout_ms}"
        return create_engine(
            url,
            pool_pre_ping=True,  # Verify connections before using them
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            connect_args={"options": options},
        )

    return create_engine(url, pool_pre_ping=True)


def init_db():
    """Initialize database connection"""
    global engine, SessionLocal

    if not settings.database_url:
        logger.warning("DATABASE_URL not configured - database features disabled")
        return

    logger.info("Connecting to database...")
    engine = build_engine(settings.database_url)

    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    logger.info("Database connection established")


def get_db():
    """
    Dependency for getting database session
    Usage: db: Session = Depends(get_db)

    Yields None if the database is not configured; routes answer 503.
    """
    if SessionLocal is None:
        logger.warning("Database not configured")
        yield None
        return

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# Base class for all models
Base = declarative_base()
