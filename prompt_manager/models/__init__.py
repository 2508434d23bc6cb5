"""
Database Models
"""

from prompt_manager.models.prompt import Prompt
from prompt_manager.models.prompt_version import PromptVersion
from prompt_manager.models.execution_log import PromptExecutionLog, PromptAuditLog, ExecutionAggregate

__all__ = [
    "Prompt",
    "PromptVersion",
    "PromptExecutionLog",
    "PromptAuditLog",
    "ExecutionAggregate",
]
