"""
PromptVersion Model
Immutable, numbered snapshot of a prompt body
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, ForeignKey, CheckConstraint, UniqueConstraint, Index
from prompt_manager.database import Base
from prompt_manager.models.prompt import utcnow, new_id


VERSION_STATUS_DRAFT = "draft"
VERSION_STATUS_PUBLISHED = "published"
VERSION_STATUS_ARCHIVED = "archived"

VERSION_STATUSES = (VERSION_STATUS_DRAFT, VERSION_STATUS_PUBLISHED, VERSION_STATUS_ARCHIVED)


class PromptVersion(Base):
    """
    Immutable prompt version.

    version_number starts at 1 and grows by one per prompt. The
    (prompt_id, version_number) unique constraint is what keeps two concurrent
    writers from claiming the same number; the loser gets an IntegrityError
    and the service retries.

    Body, number and prompt_id never change after insert. Only status may be
    updated out-of-band.
    """
    __tablename__ = "prompt_versions"

    # Primary Key
    id = Column(String(36), primary_key=True, default=new_id)

    # Owner
    prompt_id = Column(String(36), ForeignKey("prompts.id"), nullable=False)
    version_number = Column(Integer, nullable=False)

    # Content (immutable after creation)
    body = Column(Text, nullable=False)
    variables_schema = Column(JSON, nullable=True)
    # 'metadata' is reserved on declarative classes
    metadata_ = Column("metadata", JSON, nullable=True)

    status = Column(String(20), nullable=False, default=VERSION_STATUS_DRAFT)

    # Audit
    created_by = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("version_number > 0", name="version_number_positive"),
        UniqueConstraint("prompt_id", "version_number", name="uq_prompt_versions_number"),
        Index("idx_prompt_versions_prompt_created", "prompt_id", "created_at"),
    )

    def __repr__(self):
        return f"<PromptVersion(prompt_id='{self.prompt_id}' v{self.version_number} [{self.status}])>"
