"""
Application Configuration
"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Database
    database_url: Optional[str] = None
    statement_timeout_ms: int = 5000  # PostgreSQL only, 0 disables
    database_pool_size: int = 5
    database_max_overflow: int = 10

    # Environment
    environment: str = "development"
    log_level: str = "INFO"

    # Listing
    default_page_size: int = 50

    # Version numbering (retry on (prompt_id, version_number) conflicts)
    version_create_max_attempts: int = 3
    version_create_backoff_ms: int = 50

    # Execution stats window when caller passes days <= 0
    stats_default_days: int = 7

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
