"""
Prompt Model
Named template aggregate with a weak pointer to its active version
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, Text, DateTime, JSON, Index, CheckConstraint
from sqlalchemy.sql import text
from prompt_manager.database import Base


PROMPT_STATUS_ACTIVE = "active"
PROMPT_STATUS_DELETED = "deleted"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class Prompt(Base):
    """
    Named, versioned prompt template.

    Lifecycle:
    1. Created with status='active' and no active version
    2. Versions are appended via PromptService.create_prompt_version
    3. active_version_id moves on activation (weak reference, never owns the version)
    4. Soft delete flips status to 'deleted' and stamps deleted_at
    5. Restore flips it back; the cycle may repeat

    Name uniqueness only holds among active prompts (partial unique index),
    so a deleted prompt's name may be taken by a new prompt.
    """
    __tablename__ = "prompts"

    # Primary Key
    id = Column(String(36), primary_key=True, default=new_id)

    # Identity
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    tags = Column(JSON, nullable=True)  # List of strings, opaque to the core

    # Weak reference to prompt_versions.id (no FK: versions reference prompts)
    active_version_id = Column(String(36), nullable=True)

    # Lifecycle
    status = Column(String(20), nullable=False, default=PROMPT_STATUS_ACTIVE)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    # Audit
    created_by = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("status IN ('active', 'deleted')", name="prompt_status_valid"),
        Index(
            "uq_prompts_active_name",
            "name",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
        Index("idx_prompts_updated_at", "updated_at"),
    )

    # Derived, filled in by the store on reads (not persisted)
    active_version_body = None

    @property
    def is_deleted(self) -> bool:
        return self.status == PROMPT_STATUS_DELETED

    def __repr__(self):
        return f"<Prompt(id='{self.id}', name='{self.name}', status={self.status})>"
