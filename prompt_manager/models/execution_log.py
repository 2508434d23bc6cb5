"""
Prompt Execution and Audit Log Models
"""

from dataclasses import dataclass
from datetime import date

from sqlalchemy import Column, Integer, String, DateTime, JSON, ForeignKey, Index
from prompt_manager.database import Base
from prompt_manager.models.prompt import utcnow, new_id


EXECUTION_STATUS_SUCCESS = "success"
EXECUTION_STATUS_FAILED = "failed"


class PromptExecutionLog(Base):
    """
    One invocation of a prompt version.

    Written by callers that render and run prompts; the core only reads
    these rows to build usage aggregates.
    """
    __tablename__ = "prompt_execution_logs"

    # Primary Key
    id = Column(String(36), primary_key=True, default=new_id)

    # References
    prompt_id = Column(String(36), ForeignKey("prompts.id"), nullable=False)
    prompt_version_id = Column(String(36), ForeignKey("prompt_versions.id"), nullable=False)
    user_id = Column(String(255), nullable=True)

    # Outcome
    status = Column(String(20), nullable=False)  # success, failed
    duration_ms = Column(Integer, nullable=True)  # NULL = not measured, excluded from averages

    # Payloads
    request_payload = Column(JSON, nullable=True)
    response_metadata = Column(JSON, nullable=True)

    # Timestamp
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_prompt_execution_logs_lookup", "prompt_id", "created_at"),
    )

    def __repr__(self):
        return f"<PromptExecutionLog(id='{self.id}', prompt_id='{self.prompt_id}', status={self.status})>"


class PromptAuditLog(Base):
    """
    Lifecycle events of a prompt (delete, restore).

    Payload structure:
    {
        "status": "deleted"
    }
    """
    __tablename__ = "prompt_audit_logs"

    id = Column(String(36), primary_key=True, default=new_id)
    prompt_id = Column(String(36), ForeignKey("prompts.id"), nullable=False)
    action = Column(String(50), nullable=False)  # prompt.deleted, prompt.restored
    payload = Column(JSON, nullable=True)
    created_by = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_prompt_audit_logs_prompt", "prompt_id", "created_at"),
    )

    def __repr__(self):
        return f"<PromptAuditLog(prompt_id='{self.prompt_id}', action={self.action})>"


@dataclass
class ExecutionAggregate:
    """
    Calendar-day (UTC) usage bucket. Derived, not persisted.
    """
    day: date
    total_calls: int
    success_calls: int
    average_ms: float = 0.0  # 0.0 when no log of the day recorded a duration
