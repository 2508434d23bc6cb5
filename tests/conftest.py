"""
Shared fixtures: in-memory SQLite database and service wiring
"""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from prompt_manager.config import settings
from prompt_manager.database import Base
import prompt_manager.models  # noqa: F401  (registers tables on Base.metadata)
from prompt_manager.services.prompt_service import PromptService


@pytest.fixture
def engine():
    """One shared in-memory connection, usable from the TestClient thread."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    """Database session bound to the in-memory engine."""
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def no_retry_backoff(monkeypatch):
    """Version conflict retries run without sleeping."""
    monkeypatch.setattr(settings, "version_create_backoff_ms", 0)
    monkeypatch.setattr(settings, "version_create_max_attempts", 3)


@pytest.fixture
def service(db):
    return PromptService(db)
