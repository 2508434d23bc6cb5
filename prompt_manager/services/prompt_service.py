"""
PromptService
Manages prompt and version lifecycle: create, version, activate, diff, delete, restore
"""

import json
import time
from contextlib import contextmanager
from typing import Any, List, Optional, Tuple

from sqlalchemy.orm import Session
import structlog

from prompt_manager.config import settings
from prompt_manager.errors import (
    InvalidInput,
    NoFieldsToUpdate,
    PromptNotFound,
    VersionNotFound,
    AlreadyExists,
    NotDeleted,
    VersionConflict,
    OperationCancelled,
)
from prompt_manager.models.prompt import Prompt
from prompt_manager.models.prompt_version import PromptVersion, VERSION_STATUSES, VERSION_STATUS_DRAFT
from prompt_manager.models.execution_log import (
    PromptExecutionLog,
    PromptAuditLog,
    ExecutionAggregate,
    EXECUTION_STATUS_SUCCESS,
    EXECUTION_STATUS_FAILED,
)
from prompt_manager.services.stores import (
    PromptStore,
    VersionStore,
    ExecutionLogStore,
    AuditLogStore,
    StoreNotFound,
    StoreConflict,
    StoreCancelled,
)
from prompt_manager.services.sql_stores import (
    SQLPromptStore,
    SQLVersionStore,
    SQLExecutionLogStore,
    SQLAuditLogStore,
)
from prompt_manager.services.diff_engine import VersionDiff, build_version_diff
from prompt_manager.services.diff_resolver import DiffResolver, DiffPolicy
from prompt_manager.services.usage_aggregator import UsageAggregator, window_start

logger = structlog.get_logger(__name__)

AUDIT_PROMPT_DELETED = "prompt.deleted"
AUDIT_PROMPT_RESTORED = "prompt.restored"

# Marks an optional argument the caller did not pass (None means "clear")
UNSET = object()


def optional_string(value: Optional[str]) -> Optional[str]:
    """Trimmed value, or None when empty."""
    if value is None:
        return None
    trimmed = value.strip()
    return trimmed or None


def normalize_version_status(status: Optional[str]) -> str:
    """draft, published or archived; anything else is draft."""
    value = (status or "").strip().lower()
    if value in VERSION_STATUSES:
        return value
    return VERSION_STATUS_DRAFT


def _normalize_tags(tags: Optional[List[str]]) -> Optional[List[str]]:
    if tags is None:
        return None
    if isinstance(tags, str) or not all(isinstance(tag, str) for tag in tags):
        raise InvalidInput("tags must be a list of strings")
    return list(tags) or None


def _ensure_json(value: Any, field_name: str) -> Any:
    if value is None:
        return None
    try:
        json.dumps(value)
    except (TypeError, ValueError) as e:
        raise InvalidInput(f"{field_name} is not JSON serializable: {e}")
    return value


class PromptService:
    """
    Prompt version control.

    Each public method runs in one transaction on the given session: it
    commits on success and rolls back on any failure, so an operation such
    as "insert version + activate it" is never left half applied.

    Store not-found and unique-constraint signals are translated into the
    typed errors of prompt_manager.errors here and nowhere else; any other
    database failure propagates unchanged.

    Example:
        service = PromptService(db)
        prompt = service.create_prompt("welcome_email", created_by="admin@example.com")
        v1 = service.create_prompt_version(prompt.id, "Hello {{name}}", activate=True)
        v2 = service.create_prompt_version(prompt.id, "Hello there {{name}}")
        diff = service.diff_prompt_version(prompt.id, v2.id)  # v2 against v1
    """

    def __init__(
        self,
        db: Session,
        prompts: Optional[PromptStore] = None,
        versions: Optional[VersionStore] = None,
        executions: Optional[ExecutionLogStore] = None,
        audit: Optional[AuditLogStore] = None,
    ):
        """
        Initialize service with database session.

        Args:
            db: SQLAlchemy database session (transaction boundary)
            prompts/versions/executions/audit: Store overrides, SQL stores by default
        """
        self.db = db
        self.prompts = prompts or SQLPromptStore(db)
        self.versions = versions or SQLVersionStore(db)
        self.executions = executions or SQLExecutionLogStore(db)
        self.audit = audit or SQLAuditLogStore(db)
        self.resolver = DiffResolver(self.prompts, self.versions)
        self.aggregator = UsageAggregator(self.executions)

    @contextmanager
    def _transaction(self, commit: bool = True):
        try:
            yield
            if commit:
                self.db.commit()
        except StoreCancelled as e:
            self.db.rollback()
            raise OperationCancelled(str(e)) from e
        except Exception:
            self.db.rollback()
            raise

    def _require_prompt(self, prompt_id: str) -> Prompt:
        try:
            return self.prompts.get_by_id(prompt_id)
        except StoreNotFound:
            raise PromptNotFound(prompt_id)

    def _require_version(self, version_id: str) -> PromptVersion:
        try:
            return self.versions.get_by_id(version_id)
        except StoreNotFound:
            raise VersionNotFound(f"Prompt version not found: {version_id}")

    # ---- Prompts ----

    def create_prompt(
        self,
        name: str,
        description: Optional[str] = None,
        tags: Optional[List[str]] = None,
        created_by: Optional[str] = None,
    ) -> Prompt:
        """
        Create a prompt with no versions.

        A name held only by soft-deleted prompts is free: the call inserts a
        new prompt and leaves the deleted one untouched (restore_prompt is the
        way back for that one).

        Args:
            name: Unique among active prompts (case-sensitive), trimmed
            description: Optional, trimmed; empty becomes None
            tags: Optional list of strings; empty becomes None
            created_by: Creator reference for audit trail

        Returns:
            The persisted Prompt, read back after commit

        Raises:
            InvalidInput: Empty name or malformed tags
            AlreadyExists: An active prompt already has this name
        """
        name = (name or "").strip()
        if not name:
            raise InvalidInput("prompt name required")

        prompt = Prompt(
            name=name,
            description=optional_string(description),
            tags=_normalize_tags(tags),
            created_by=optional_string(created_by),
        )

        try:
            with self._transaction():
                try:
                    self.prompts.get_by_name(name)
                    raise AlreadyExists(name)
                except StoreNotFound:
                    pass
                self.prompts.create(prompt)
        except StoreConflict as e:
            # Lost the race against a concurrent create of the same name
            if e.is_unique_violation:
                raise AlreadyExists(name) from e
            raise

        logger.info(
            "prompt_created",
            prompt_id=prompt.id,
            name=name,
            created_by=prompt.created_by
        )

        return self.get_prompt(prompt.id)

    def get_prompt(self, prompt_id: str) -> Prompt:
        """Active prompt by id; PromptNotFound if missing or deleted."""
        with self._transaction(commit=False):
            return self._require_prompt(prompt_id)

    def get_prompt_by_name(self, name: str, include_deleted: bool = False) -> Prompt:
        """
        Prompt by exact name.

        With include_deleted, a deleted prompt is returned too (the most
        recently updated one when the name was reused).
        """
        with self._transaction(commit=False):
            try:
                return self.prompts.get_by_name((name or "").strip(), include_deleted=include_deleted)
            except StoreNotFound:
                raise PromptNotFound(name)

    def list_prompts(
        self,
        search: Optional[str] = None,
        limit: int = 0,
        offset: int = 0,
        include_deleted: bool = False,
    ) -> Tuple[List[Prompt], int]:
        """
        Page of prompts, most recently updated first.

        Args:
            search: Case-insensitive substring of the name
            limit: Page size, default_page_size when <= 0
            offset: Rows to skip, 0 when < 0
            include_deleted: Also list soft-deleted prompts

        Returns:
            (prompts, total) where total ignores limit/offset; every prompt
            carries active_version_body
        """
        if limit is None or limit <= 0:
            limit = settings.default_page_size
        if offset is None or offset < 0:
            offset = 0
        search = (search or "").strip() or None

        with self._transaction(commit=False):
            prompts = self.prompts.list(search=search, limit=limit, offset=offset, include_deleted=include_deleted)
            total = self.prompts.count(search=search, include_deleted=include_deleted)

        logger.debug(
            "prompts_listed",
            search=search,
            limit=limit,
            offset=offset,
            returned=len(prompts),
            total=total
        )

        return prompts, total

    def update_prompt(
        self,
        prompt_id: str,
        name: Any = UNSET,
        description: Any = UNSET,
        tags: Any = UNSET,
    ) -> Prompt:
        """
        Update prompt metadata. Only the arguments passed are applied.

        Passing description=None or tags=None clears the field.

        Raises:
            NoFieldsToUpdate: Nothing passed
            InvalidInput: Empty name
            PromptNotFound: Missing or deleted prompt
            AlreadyExists: New name clashes with another active prompt
        """
        fields = {}

        if name is not UNSET:
            trimmed = (name or "").strip()
            if not trimmed:
                raise InvalidInput("prompt name required")
            fields["name"] = trimmed

        if description is not UNSET:
            fields["description"] = optional_string(description)

        if tags is not UNSET:
            fields["tags"] = _normalize_tags(tags)

        if not fields:
            raise NoFieldsToUpdate("no prompt fields to update")

        try:
            with self._transaction():
                current = self._require_prompt(prompt_id)
                if "name" in fields and fields["name"] != current.name:
                    try:
                        self.prompts.get_by_name(fields["name"])
                        raise AlreadyExists(fields["name"])
                    except StoreNotFound:
                        pass
                try:
                    self.prompts.update(prompt_id, fields)
                except StoreNotFound:
                    raise PromptNotFound(prompt_id)
        except StoreConflict as e:
            if e.is_unique_violation:
                raise AlreadyExists(fields.get("name", "")) from e
            raise

        logger.info("prompt_updated", prompt_id=prompt_id, fields=sorted(fields))

        return self.get_prompt(prompt_id)

    def delete_prompt(self, prompt_id: str, deleted_by: Optional[str] = None) -> None:
        """
        Soft delete: status='deleted' plus deleted_at.

        Deleting an already-deleted prompt raises PromptNotFound, matching
        get_prompt which does not see deleted prompts either.
        """
        with self._transaction():
            try:
                self.prompts.soft_delete(prompt_id)
            except StoreNotFound:
                raise PromptNotFound(prompt_id)

            self.audit.create(PromptAuditLog(
                prompt_id=prompt_id,
                action=AUDIT_PROMPT_DELETED,
                payload={"status": "deleted"},
                created_by=optional_string(deleted_by),
            ))

        logger.info("prompt_deleted", prompt_id=prompt_id, deleted_by=deleted_by)

    def restore_prompt(
        self,
        prompt_id: str,
        description: Any = UNSET,
        tags: Any = UNSET,
        restored_by: Optional[str] = None,
    ) -> Prompt:
        """
        Bring a soft-deleted prompt back to active.

        Args:
            prompt_id: Deleted prompt
            description/tags: Optional overrides applied in the same write
            restored_by: Actor for the audit entry

        Raises:
            PromptNotFound: No such prompt at all
            NotDeleted: Prompt is currently active
            AlreadyExists: Another active prompt took the name meanwhile
        """
        fields = {}
        if description is not UNSET:
            fields["description"] = optional_string(description)
        if tags is not UNSET:
            fields["tags"] = _normalize_tags(tags)

        name = ""
        try:
            with self._transaction():
                try:
                    existing = self.prompts.get_by_id_including_deleted(prompt_id)
                except StoreNotFound:
                    raise PromptNotFound(prompt_id)
                if not existing.is_deleted:
                    raise NotDeleted(prompt_id)
                name = existing.name

                try:
                    self.prompts.restore(prompt_id, fields)
                except StoreNotFound:
                    # Restored concurrently between the read and the write
                    raise NotDeleted(prompt_id)

                self.audit.create(PromptAuditLog(
                    prompt_id=prompt_id,
                    action=AUDIT_PROMPT_RESTORED,
                    payload={"status": "active"},
                    created_by=optional_string(restored_by),
                ))
        except StoreConflict as e:
            if e.is_unique_violation:
                raise AlreadyExists(name) from e
            raise

        logger.info("prompt_restored", prompt_id=prompt_id, restored_by=restored_by)

        return self.get_prompt(prompt_id)

    def list_audit_log(self, prompt_id: str, limit: int = 50) -> List[PromptAuditLog]:
        """Lifecycle events of a prompt, newest first (deleted prompts included)."""
        with self._transaction(commit=False):
            return self.audit.list_by_prompt(prompt_id, limit=limit)

    # ---- Versions ----

    def create_prompt_version(
        self,
        prompt_id: str,
        body: str,
        variables_schema: Any = None,
        metadata: Any = None,
        status: Optional[str] = None,
        created_by: Optional[str] = None,
        activate: bool = False,
    ) -> PromptVersion:
        """
        Append a version with number max + 1.

        The read-max-then-insert sequence can race with another writer on the
        same prompt; the (prompt_id, version_number) unique constraint turns
        the loser's insert into a conflict and the whole sequence is retried
        with exponential backoff. When every attempt conflicts, VersionConflict
        is raised; it is retryable as-is.

        Args:
            prompt_id: Active prompt
            body: Template body, trimmed, must not be empty
            variables_schema: Optional JSON value
            metadata: Optional JSON value
            status: draft/published/archived, anything else is draft
            created_by: Creator reference
            activate: Move the active pointer to the new version (same transaction)

        Returns:
            The persisted PromptVersion, read back after commit
        """
        body = (body or "").strip()
        if not body:
            raise InvalidInput("prompt body required")

        variables_schema = _ensure_json(variables_schema, "variables_schema")
        metadata = _ensure_json(metadata, "metadata")
        normalized_status = normalize_version_status(status)
        creator = optional_string(created_by)

        max_attempts = max(1, settings.version_create_max_attempts)
        backoff = max(0, settings.version_create_backoff_ms) / 1000.0

        for attempt in range(1, max_attempts + 1):
            try:
                with self._transaction():
                    prompt = self._require_prompt(prompt_id)
                    latest = self.versions.get_latest_version_number(prompt.id)

                    version = PromptVersion(
                        prompt_id=prompt.id,
                        version_number=latest + 1,
                        body=body,
                        variables_schema=variables_schema,
                        metadata_=metadata,
                        status=normalized_status,
                        created_by=creator,
                    )
                    self.versions.create(version)

                    if activate:
                        self.prompts.update_active_version(prompt.id, version.id)
                break

            except StoreConflict as e:
                if not e.is_unique_violation:
                    raise
                if attempt == max_attempts:
                    logger.error(
                        "prompt_version_conflict_exhausted",
                        prompt_id=prompt_id,
                        attempts=attempt
                    )
                    raise VersionConflict(prompt_id, attempt) from e

                delay = backoff * (2 ** (attempt - 1))
                logger.warning(
                    "prompt_version_conflict_retry",
                    prompt_id=prompt_id,
                    attempt=attempt,
                    retry_in_s=delay
                )
                if delay:
                    time.sleep(delay)

        version_id = version.id
        logger.info(
            "prompt_version_created",
            prompt_id=prompt_id,
            version_id=version_id,
            version=version.version_number,
            status=normalized_status,
            created_by=creator,
            activated=activate
        )

        with self._transaction(commit=False):
            return self._require_version(version_id)

    def list_prompt_versions(self, prompt_id: str, limit: int = 0, offset: int = 0) -> List[PromptVersion]:
        """Versions of an active prompt, highest version number first."""
        if limit is None or limit <= 0:
            limit = settings.default_page_size
        if offset is None or offset < 0:
            offset = 0

        with self._transaction(commit=False):
            self._require_prompt(prompt_id)
            versions = self.versions.list_by_prompt(prompt_id, limit=limit, offset=offset)

        logger.debug("prompt_versions_listed", prompt_id=prompt_id, count=len(versions))
        return versions

    def get_prompt_version(self, prompt_id: str, version_id: str) -> PromptVersion:
        """Version of an active prompt; VersionNotFound if it belongs elsewhere."""
        with self._transaction(commit=False):
            self._require_prompt(prompt_id)
            version = self._require_version(version_id)
            if version.prompt_id != prompt_id:
                raise VersionNotFound(f"Prompt version not found: {version_id}")
            return version

    def set_active_version(self, prompt_id: str, version_id: str) -> Prompt:
        """
        Point the prompt at one of its versions.

        Re-activating the current active version is a no-op in effect.

        Raises:
            PromptNotFound: Missing or deleted prompt
            VersionNotFound: Missing version or version of another prompt
        """
        with self._transaction():
            prompt = self._require_prompt(prompt_id)
            version = self._require_version(version_id)
            if version.prompt_id != prompt.id:
                raise VersionNotFound(f"Prompt version not found: {version_id}")

            previous_version_id = prompt.active_version_id
            try:
                self.prompts.update_active_version(prompt.id, version.id)
            except StoreNotFound:
                raise PromptNotFound(prompt_id)

        logger.info(
            "prompt_version_activated",
            prompt_id=prompt_id,
            version_id=version_id,
            version=version.version_number,
            previous_version_id=previous_version_id
        )

        return self.get_prompt(prompt_id)

    # ---- Diff ----

    def diff_prompt_version(
        self,
        prompt_id: str,
        base_version_id: str,
        target_version_id: Optional[str] = None,
        compare_to_active: bool = False,
        compare_to_previous: bool = False,
    ) -> VersionDiff:
        """
        Compare a version with a target picked by DiffResolver.

        Raises:
            VersionNotFound: Base missing or of another prompt, or no target
            PromptNotFound: compare_to_active on a missing/deleted prompt
        """
        policy = DiffPolicy(
            target_version_id=target_version_id,
            compare_to_active=compare_to_active,
            compare_to_previous=compare_to_previous,
        )

        with self._transaction(commit=False):
            base = self._require_version(base_version_id)
            if base.prompt_id != prompt_id:
                raise VersionNotFound(f"Prompt version not found: {base_version_id}")
            target = self.resolver.resolve(base, policy)

        diff = build_version_diff(base, target)

        logger.info(
            "prompt_version_diffed",
            prompt_id=prompt_id,
            base_version=base.version_number,
            target_version=target.version_number,
            policy=policy.name,
            segments=len(diff.body),
            has_changes=diff.has_changes
        )

        return diff

    # ---- Executions ----

    def record_execution(
        self,
        prompt_id: str,
        version_id: str,
        status: str,
        duration_ms: Optional[int] = None,
        user_id: Optional[str] = None,
        request_payload: Any = None,
        response_metadata: Any = None,
    ) -> PromptExecutionLog:
        """
        Store one execution of a prompt version.

        Raises:
            InvalidInput: Status other than success/failed, negative duration
            PromptNotFound / VersionNotFound
        """
        normalized = (status or "").strip().lower()
        if normalized not in (EXECUTION_STATUS_SUCCESS, EXECUTION_STATUS_FAILED):
            raise InvalidInput(f"execution status must be success or failed, got {status!r}")
        if duration_ms is not None and duration_ms < 0:
            raise InvalidInput("duration_ms must not be negative")

        log = PromptExecutionLog(
            prompt_id=prompt_id,
            prompt_version_id=version_id,
            user_id=optional_string(user_id),
            status=normalized,
            duration_ms=duration_ms,
            request_payload=_ensure_json(request_payload, "request_payload"),
            response_metadata=_ensure_json(response_metadata, "response_metadata"),
        )

        with self._transaction():
            self._require_prompt(prompt_id)
            version = self._require_version(version_id)
            if version.prompt_id != prompt_id:
                raise VersionNotFound(f"Prompt version not found: {version_id}")
            self.executions.create(log)

        logger.info(
            "prompt_execution_recorded",
            prompt_id=prompt_id,
            version_id=version_id,
            status=normalized,
            duration_ms=duration_ms
        )
        return log

    def list_recent_executions(self, prompt_id: str, limit: int = 20) -> List[PromptExecutionLog]:
        with self._transaction(commit=False):
            self._require_prompt(prompt_id)
            return self.executions.list_recent(prompt_id, limit=limit)

    def get_execution_stats(self, prompt_id: str, days: int = 0) -> List[ExecutionAggregate]:
        """
        Daily usage of the last `days` days (stats_default_days when <= 0).

        Returns:
            ExecutionAggregate list, most recent day first
        """
        if days is None or days <= 0:
            days = settings.stats_default_days

        with self._transaction(commit=False):
            self._require_prompt(prompt_id)
            return self.aggregator.aggregate_usage(prompt_id, window_start(days))
