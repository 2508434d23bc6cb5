"""
Persistence Contracts
Abstract stores consumed by the prompt services, plus the store-level signals
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from prompt_manager.models.prompt import Prompt
from prompt_manager.models.prompt_version import PromptVersion
from prompt_manager.models.execution_log import PromptExecutionLog, PromptAuditLog, ExecutionAggregate


CONFLICT_UNIQUE = "unique"
CONFLICT_FOREIGN_KEY = "foreign_key"
CONFLICT_OTHER = "other"


class StoreNotFound(LookupError):
    """The single not-found signal of every store; services translate it."""


class StoreConflict(Exception):
    """
    A constraint violation reported by the backing store.

    kind is one of CONFLICT_UNIQUE, CONFLICT_FOREIGN_KEY, CONFLICT_OTHER and is
    derived from the driver's structured error code, not from message text.
    """

    def __init__(self, kind: str, message: str = ""):
        self.kind = kind
        super().__init__(message or f"Store constraint violation ({kind})")

    @property
    def is_unique_violation(self) -> bool:
        return self.kind == CONFLICT_UNIQUE


class StoreCancelled(Exception):
    """The store aborted a statement (timeout or cancel request)."""


class PromptStore(ABC):
    """Prompt aggregate persistence."""

    @abstractmethod
    def create(self, prompt: Prompt) -> Prompt:
        ...

    @abstractmethod
    def get_by_id(self, prompt_id: str) -> Prompt:
        """Active prompts only; raises StoreNotFound for missing or deleted."""

    @abstractmethod
    def get_by_id_including_deleted(self, prompt_id: str) -> Prompt:
        ...

    @abstractmethod
    def get_by_name(self, name: str, include_deleted: bool = False) -> Prompt:
        ...

    @abstractmethod
    def list(
        self,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
        include_deleted: bool = False,
    ) -> List[Prompt]:
        ...

    @abstractmethod
    def count(self, search: Optional[str] = None, include_deleted: bool = False) -> int:
        ...

    @abstractmethod
    def update(self, prompt_id: str, fields: Dict[str, Any]) -> None:
        """Apply name/description/tags to an active prompt."""

    @abstractmethod
    def update_active_version(self, prompt_id: str, version_id: Optional[str]) -> None:
        ...

    @abstractmethod
    def soft_delete(self, prompt_id: str) -> None:
        """Raises StoreNotFound unless the prompt exists and is active."""

    @abstractmethod
    def restore(self, prompt_id: str, fields: Dict[str, Any]) -> None:
        """Raises StoreNotFound unless the prompt exists and is deleted."""


class VersionStore(ABC):
    """Prompt version persistence."""

    @abstractmethod
    def create(self, version: PromptVersion) -> PromptVersion:
        ...

    @abstractmethod
    def get_by_id(self, version_id: str) -> PromptVersion:
        ...

    @abstractmethod
    def list_by_prompt(self, prompt_id: str, limit: int = 50, offset: int = 0) -> List[PromptVersion]:
        ...

    @abstractmethod
    def get_latest_version_number(self, prompt_id: str) -> int:
        """0 when the prompt has no versions yet."""

    @abstractmethod
    def get_previous_version(self, prompt_id: str, version_number: int) -> PromptVersion:
        """The version numbered version_number - 1 of the same prompt."""


class ExecutionLogStore(ABC):
    """Execution log persistence and aggregation."""

    @abstractmethod
    def create(self, log: PromptExecutionLog) -> PromptExecutionLog:
        ...

    @abstractmethod
    def list_recent(self, prompt_id: str, limit: int = 20) -> List[PromptExecutionLog]:
        ...

    @abstractmethod
    def aggregate_usage(self, prompt_id: str, since: datetime) -> List[ExecutionAggregate]:
        ...


class AuditLogStore(ABC):
    """Prompt lifecycle audit trail."""

    @abstractmethod
    def create(self, entry: PromptAuditLog) -> PromptAuditLog:
        ...

    @abstractmethod
    def list_by_prompt(self, prompt_id: str, limit: int = 50) -> List[PromptAuditLog]:
        ...


def page_bounds(limit: int, offset: int, default_limit: int = 50) -> Tuple[int, int]:
    """Normalize pagination: limit <= 0 falls back to the default, offset < 0 to 0."""
    if limit is None or limit <= 0:
        limit = default_limit
    if offset is None or offset < 0:
        offset = 0
    return limit, offset
