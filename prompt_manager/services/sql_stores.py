"""
SQL Stores
SQLAlchemy implementation of the persistence contracts

Stores flush but never commit: PromptService owns the transaction so that a
multi-step operation (insert version + move active pointer) commits or rolls
back as one unit.
"""

from contextlib import contextmanager
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func, case
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session
import structlog

from prompt_manager.models.prompt import Prompt, PROMPT_STATUS_ACTIVE, PROMPT_STATUS_DELETED, utcnow
from prompt_manager.models.prompt_version import PromptVersion
from prompt_manager.models.execution_log import (
    PromptExecutionLog,
    PromptAuditLog,
    ExecutionAggregate,
    EXECUTION_STATUS_SUCCESS,
)
from prompt_manager.services.stores import (
    PromptStore,
    VersionStore,
    ExecutionLogStore,
    AuditLogStore,
    StoreNotFound,
    StoreConflict,
    StoreCancelled,
    CONFLICT_UNIQUE,
    CONFLICT_FOREIGN_KEY,
    CONFLICT_OTHER,
    page_bounds,
)

logger = structlog.get_logger(__name__)

# PostgreSQL SQLSTATE codes
PG_UNIQUE_VIOLATION = "23505"
PG_FOREIGN_KEY_VIOLATION = "23503"
PG_QUERY_CANCELED = "57014"

# sqlite3 extended error names (Python 3.11+)
SQLITE_UNIQUE_ERRORS = ("SQLITE_CONSTRAINT_UNIQUE", "SQLITE_CONSTRAINT_PRIMARYKEY")
SQLITE_FOREIGN_KEY_ERROR = "SQLITE_CONSTRAINT_FOREIGNKEY"


def _sqlstate(exc: Exception) -> Optional[str]:
    orig = getattr(exc, "orig", None)
    # psycopg 3 exposes .sqlstate, psycopg2 exposes .pgcode
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def classify_integrity_error(exc: IntegrityError) -> str:
    """
    Map a driver IntegrityError to a conflict kind.

    Uses the structured error code of the DBAPI exception: SQLSTATE on
    PostgreSQL, the extended error name on SQLite.
    """
    sqlstate = _sqlstate(exc)
    if sqlstate == PG_UNIQUE_VIOLATION:
        return CONFLICT_UNIQUE
    if sqlstate == PG_FOREIGN_KEY_VIOLATION:
        return CONFLICT_FOREIGN_KEY

    errorname = getattr(getattr(exc, "orig", None), "sqlite_errorname", None)
    if errorname in SQLITE_UNIQUE_ERRORS:
        return CONFLICT_UNIQUE
    if errorname == SQLITE_FOREIGN_KEY_ERROR:
        return CONFLICT_FOREIGN_KEY

    return CONFLICT_OTHER


@contextmanager
def translate_store_errors():
    """Turn driver constraint and cancellation errors into store signals."""
    try:
        yield
    except IntegrityError as e:
        kind = classify_integrity_error(e)
        logger.warning("store_constraint_violation", kind=kind, error=str(e.orig))
        raise StoreConflict(kind, str(e.orig)) from e
    except OperationalError as e:
        if _sqlstate(e) == PG_QUERY_CANCELED:
            logger.warning("store_statement_cancelled", error=str(e.orig))
            raise StoreCancelled(str(e.orig)) from e
        raise


def _as_date(value: Any) -> date:
    # func.date() yields a date on PostgreSQL and an ISO string on SQLite
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SQLPromptStore(PromptStore):
    """Prompt rows, with the active version's body joined in on reads."""

    def __init__(self, db: Session):
        self.db = db

    def _select(self):
        return self.db.query(Prompt, PromptVersion.body).outerjoin(
            PromptVersion, PromptVersion.id == Prompt.active_version_id
        )

    @staticmethod
    def _attach_body(row) -> Prompt:
        prompt, body = row
        prompt.active_version_body = body
        return prompt

    def _filtered(self, query, search: Optional[str], include_deleted: bool):
        if not include_deleted:
            query = query.filter(Prompt.status == PROMPT_STATUS_ACTIVE)
        term = (search or "").strip().lower()
        if term:
            query = query.filter(
                func.lower(Prompt.name).like(f"%{_escape_like(term)}%", escape="\\")
            )
        return query

    def create(self, prompt: Prompt) -> Prompt:
        with translate_store_errors():
            self.db.add(prompt)
            self.db.flush()
        return prompt

    def get_by_id(self, prompt_id: str) -> Prompt:
        with translate_store_errors():
            row = self._select().filter(
                Prompt.id == prompt_id,
                Prompt.status == PROMPT_STATUS_ACTIVE,
            ).first()
        if row is None:
            raise StoreNotFound(f"prompt {prompt_id}")
        return self._attach_body(row)

    def get_by_id_including_deleted(self, prompt_id: str) -> Prompt:
        with translate_store_errors():
            row = self._select().filter(Prompt.id == prompt_id).first()
        if row is None:
            raise StoreNotFound(f"prompt {prompt_id}")
        return self._attach_body(row)

    def get_by_name(self, name: str, include_deleted: bool = False) -> Prompt:
        query = self._select().filter(Prompt.name == name)
        if not include_deleted:
            query = query.filter(Prompt.status == PROMPT_STATUS_ACTIVE)
        with translate_store_errors():
            # A reused name can match several deleted rows; newest wins
            row = query.order_by(Prompt.updated_at.desc()).first()
        if row is None:
            raise StoreNotFound(f"prompt named {name!r}")
        return self._attach_body(row)

    def list(
        self,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
        include_deleted: bool = False,
    ) -> List[Prompt]:
        limit, offset = page_bounds(limit, offset)
        query = self._filtered(self._select(), search, include_deleted)
        with translate_store_errors():
            rows = query.order_by(
                Prompt.updated_at.desc(),
                Prompt.created_at.desc(),
            ).limit(limit).offset(offset).all()
        return [self._attach_body(row) for row in rows]

    def count(self, search: Optional[str] = None, include_deleted: bool = False) -> int:
        query = self._filtered(self.db.query(func.count(Prompt.id)), search, include_deleted)
        with translate_store_errors():
            return query.scalar() or 0

    def update(self, prompt_id: str, fields: Dict[str, Any]) -> None:
        if not fields:
            return
        values = dict(fields)
        values["updated_at"] = utcnow()
        with translate_store_errors():
            rows = self.db.query(Prompt).filter(
                Prompt.id == prompt_id,
                Prompt.status == PROMPT_STATUS_ACTIVE,
            ).update(values, synchronize_session="fetch")
            self.db.flush()
        if rows == 0:
            raise StoreNotFound(f"prompt {prompt_id}")

    def update_active_version(self, prompt_id: str, version_id: Optional[str]) -> None:
        with translate_store_errors():
            rows = self.db.query(Prompt).filter(
                Prompt.id == prompt_id,
                Prompt.status == PROMPT_STATUS_ACTIVE,
            ).update(
                {"active_version_id": version_id, "updated_at": utcnow()},
                synchronize_session="fetch",
            )
        if rows == 0:
            raise StoreNotFound(f"prompt {prompt_id}")

    def soft_delete(self, prompt_id: str) -> None:
        now = utcnow()
        with translate_store_errors():
            rows = self.db.query(Prompt).filter(
                Prompt.id == prompt_id,
                Prompt.status == PROMPT_STATUS_ACTIVE,
            ).update(
                {
                    "status": PROMPT_STATUS_DELETED,
                    "deleted_at": now,
                    "updated_at": now,
                },
                synchronize_session="fetch",
            )
        if rows == 0:
            raise StoreNotFound(f"prompt {prompt_id}")

    def restore(self, prompt_id: str, fields: Dict[str, Any]) -> None:
        values = dict(fields)
        values.update({
            "status": PROMPT_STATUS_ACTIVE,
            "deleted_at": None,
            "updated_at": utcnow(),
        })
        with translate_store_errors():
            rows = self.db.query(Prompt).filter(
                Prompt.id == prompt_id,
                Prompt.status == PROMPT_STATUS_DELETED,
            ).update(values, synchronize_session="fetch")
            self.db.flush()
        if rows == 0:
            raise StoreNotFound(f"deleted prompt {prompt_id}")


class SQLVersionStore(VersionStore):
    def __init__(self, db: Session):
        self.db = db

    def create(self, version: PromptVersion) -> PromptVersion:
        with translate_store_errors():
            self.db.add(version)
            self.db.flush()
        return version

    def get_by_id(self, version_id: str) -> PromptVersion:
        with translate_store_errors():
            version = self.db.query(PromptVersion).filter(PromptVersion.id == version_id).first()
        if version is None:
            raise StoreNotFound(f"version {version_id}")
        return version

    def list_by_prompt(self, prompt_id: str, limit: int = 50, offset: int = 0) -> List[PromptVersion]:
        limit, offset = page_bounds(limit, offset)
        with translate_store_errors():
            return self.db.query(PromptVersion).filter(
                PromptVersion.prompt_id == prompt_id
            ).order_by(PromptVersion.version_number.desc()).limit(limit).offset(offset).all()

    def get_latest_version_number(self, prompt_id: str) -> int:
        with translate_store_errors():
            latest = self.db.query(
                func.coalesce(func.max(PromptVersion.version_number), 0)
            ).filter(PromptVersion.prompt_id == prompt_id).scalar()
        return int(latest or 0)

    def get_previous_version(self, prompt_id: str, version_number: int) -> PromptVersion:
        with translate_store_errors():
            previous = self.db.query(PromptVersion).filter(
                PromptVersion.prompt_id == prompt_id,
                PromptVersion.version_number == version_number - 1,
            ).first()
        if previous is None:
            raise StoreNotFound(f"version {version_number - 1} of prompt {prompt_id}")
        return previous


class SQLExecutionLogStore(ExecutionLogStore):
    def __init__(self, db: Session):
        self.db = db

    def create(self, log: PromptExecutionLog) -> PromptExecutionLog:
        with translate_store_errors():
            self.db.add(log)
            self.db.flush()
        return log

    def list_recent(self, prompt_id: str, limit: int = 20) -> List[PromptExecutionLog]:
        limit, _ = page_bounds(limit, 0, default_limit=20)
        with translate_store_errors():
            return self.db.query(PromptExecutionLog).filter(
                PromptExecutionLog.prompt_id == prompt_id
            ).order_by(PromptExecutionLog.created_at.desc()).limit(limit).all()

    def aggregate_usage(self, prompt_id: str, since: datetime) -> List[ExecutionAggregate]:
        """
        Per-day totals for one prompt since the given instant.

        Days are calendar days of created_at in the session time zone, which
        database.build_engine pins to UTC on PostgreSQL. AVG ignores NULL
        durations on its own.
        """
        day = func.date(PromptExecutionLog.created_at)
        stmt = self.db.query(
            day.label("day"),
            func.count(PromptExecutionLog.id).label("total_calls"),
            func.sum(
                case((PromptExecutionLog.status == EXECUTION_STATUS_SUCCESS, 1), else_=0)
            ).label("success_calls"),
            func.avg(PromptExecutionLog.duration_ms).label("average_ms"),
        ).filter(
            PromptExecutionLog.prompt_id == prompt_id,
            PromptExecutionLog.created_at >= since,
        ).group_by(day).order_by(day.desc())

        with translate_store_errors():
            rows = stmt.all()

        return [
            ExecutionAggregate(
                day=_as_date(row.day),
                total_calls=int(row.total_calls or 0),
                success_calls=int(row.success_calls or 0),
                average_ms=float(row.average_ms) if row.average_ms is not None else 0.0,
            )
            for row in rows
        ]


class SQLAuditLogStore(AuditLogStore):
    def __init__(self, db: Session):
        self.db = db

    def create(self, entry: PromptAuditLog) -> PromptAuditLog:
        with translate_store_errors():
            self.db.add(entry)
            self.db.flush()
        return entry

    def list_by_prompt(self, prompt_id: str, limit: int = 50) -> List[PromptAuditLog]:
        limit, _ = page_bounds(limit, 0)
        with translate_store_errors():
            return self.db.query(PromptAuditLog).filter(
                PromptAuditLog.prompt_id == prompt_id
            ).order_by(PromptAuditLog.created_at.desc()).limit(limit).all()
