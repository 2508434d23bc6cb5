"""
Prompt API Router
REST endpoints for prompts, versions, diffs and usage stats
"""

from dataclasses import asdict
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
import structlog

from prompt_manager.database import get_db
from prompt_manager.errors import (
    PromptManagerError,
    InvalidInput,
    NotFound,
    AlreadyExists,
    NotDeleted,
    VersionConflict,
    OperationCancelled,
)
from prompt_manager.models.prompt import Prompt
from prompt_manager.models.prompt_version import PromptVersion
from prompt_manager.models.execution_log import PromptExecutionLog
from prompt_manager.models.schemas import (
    PromptCreateRequest,
    PromptUpdateRequest,
    PromptRestoreRequest,
    PromptVersionCreateRequest,
    ExecutionCreateRequest,
    PromptResponse,
    PromptVersionResponse,
    PromptListResponse,
)
from prompt_manager.services.diff_engine import VersionDiff
from prompt_manager.services.prompt_service import PromptService

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/prompts", tags=["prompts"])

# Most specific class first
ERROR_STATUS = (
    (InvalidInput, 400),
    (NotDeleted, 400),
    (NotFound, 404),
    (AlreadyExists, 409),
    (VersionConflict, 409),
    (OperationCancelled, 503),
)


def status_for_error(exc: PromptManagerError) -> int:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return 500


async def prompt_error_handler(request: Request, exc: PromptManagerError) -> JSONResponse:
    """Render typed prompt failures as {"detail", "code"}."""
    status_code = status_for_error(exc)
    logger.info(
        "prompt_request_failed",
        path=request.url.path,
        code=exc.code,
        status_code=status_code,
        error=str(exc)
    )
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "code": exc.code, "retryable": exc.retryable},
    )


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def prompt_to_response(prompt: Prompt) -> PromptResponse:
    return PromptResponse(
        id=prompt.id,
        name=prompt.name,
        description=prompt.description,
        tags=prompt.tags,
        active_version_id=prompt.active_version_id,
        active_version_body=prompt.active_version_body,
        status=prompt.status,
        deleted_at=_iso(prompt.deleted_at),
        created_by=prompt.created_by,
        created_at=_iso(prompt.created_at),
        updated_at=_iso(prompt.updated_at),
    )


def version_to_response(version: PromptVersion) -> PromptVersionResponse:
    return PromptVersionResponse(
        id=version.id,
        prompt_id=version.prompt_id,
        version_number=version.version_number,
        body=version.body,
        variables_schema=version.variables_schema,
        metadata=version.metadata_,
        status=version.status,
        created_by=version.created_by,
        created_at=_iso(version.created_at),
    )


def execution_to_dict(log: PromptExecutionLog) -> dict:
    return {
        "id": log.id,
        "prompt_id": log.prompt_id,
        "prompt_version_id": log.prompt_version_id,
        "user_id": log.user_id,
        "status": log.status,
        "duration_ms": log.duration_ms,
        "request_payload": log.request_payload,
        "response_metadata": log.response_metadata,
        "created_at": _iso(log.created_at),
    }


def diff_to_dict(diff: VersionDiff) -> dict:
    payload = asdict(diff)
    payload["base"]["created_at"] = _iso(diff.base.created_at)
    payload["target"]["created_at"] = _iso(diff.target.created_at)
    return payload


def _service(db: Optional[Session]) -> PromptService:
    if db is None:
        raise HTTPException(status_code=503, detail="Database not configured")
    return PromptService(db)


@router.get("", response_model=PromptListResponse)
async def list_prompts(
    search: Optional[str] = Query(None, description="Case-insensitive name substring"),
    limit: int = Query(50, description="Page size (<= 0 uses the default)"),
    offset: int = Query(0, description="Rows to skip"),
    include_deleted: bool = Query(False),
    db: Session = Depends(get_db)
):
    """
    List prompts, most recently updated first

    Returns:
        dict with total (ignores pagination) and items
    """
    prompts, total = _service(db).list_prompts(
        search=search, limit=limit, offset=offset, include_deleted=include_deleted
    )
    return PromptListResponse(total=total, items=[prompt_to_response(p) for p in prompts])


@router.post("", response_model=PromptResponse, status_code=201)
async def create_prompt(payload: PromptCreateRequest, db: Session = Depends(get_db)):
    prompt = _service(db).create_prompt(
        name=payload.name,
        description=payload.description,
        tags=payload.tags,
        created_by=payload.created_by,
    )
    return prompt_to_response(prompt)


@router.get("/{prompt_id}", response_model=PromptResponse)
async def get_prompt(prompt_id: str, db: Session = Depends(get_db)):
    return prompt_to_response(_service(db).get_prompt(prompt_id))


@router.patch("/{prompt_id}", response_model=PromptResponse)
async def update_prompt(prompt_id: str, payload: PromptUpdateRequest, db: Session = Depends(get_db)):
    """Apply only the fields present in the request body"""
    fields = payload.model_dump(exclude_unset=True)
    return prompt_to_response(_service(db).update_prompt(prompt_id, **fields))


@router.delete("/{prompt_id}")
async def delete_prompt(
    prompt_id: str,
    deleted_by: Optional[str] = Query(None),
    db: Session = Depends(get_db)
):
    _service(db).delete_prompt(prompt_id, deleted_by=deleted_by)
    return {"id": prompt_id, "status": "deleted"}


@router.post("/{prompt_id}/restore", response_model=PromptResponse)
async def restore_prompt(
    prompt_id: str,
    payload: Optional[PromptRestoreRequest] = None,
    db: Session = Depends(get_db)
):
    overrides = payload.model_dump(exclude_unset=True) if payload else {}
    restored_by = overrides.pop("restored_by", None)
    prompt = _service(db).restore_prompt(prompt_id, restored_by=restored_by, **overrides)
    return prompt_to_response(prompt)


@router.get("/{prompt_id}/versions")
async def list_prompt_versions(
    prompt_id: str,
    limit: int = Query(50),
    offset: int = Query(0),
    db: Session = Depends(get_db)
):
    versions = _service(db).list_prompt_versions(prompt_id, limit=limit, offset=offset)
    return {"items": [version_to_response(v) for v in versions]}


@router.post("/{prompt_id}/versions", response_model=PromptVersionResponse, status_code=201)
async def create_prompt_version(
    prompt_id: str,
    payload: PromptVersionCreateRequest,
    db: Session = Depends(get_db)
):
    version = _service(db).create_prompt_version(
        prompt_id,
        body=payload.body,
        variables_schema=payload.variables_schema,
        metadata=payload.metadata,
        status=payload.status,
        created_by=payload.created_by,
        activate=payload.activate,
    )
    return version_to_response(version)


@router.post("/{prompt_id}/versions/{version_id}/activate", response_model=PromptResponse)
async def activate_prompt_version(prompt_id: str, version_id: str, db: Session = Depends(get_db)):
    return prompt_to_response(_service(db).set_active_version(prompt_id, version_id))


@router.get("/{prompt_id}/versions/{version_id}/diff")
async def diff_prompt_version(
    prompt_id: str,
    version_id: str,
    target_version_id: Optional[str] = Query(None, description="Explicit comparison target"),
    compare_to: Optional[str] = Query(None, description="'active' or 'previous' (default previous)"),
    db: Session = Depends(get_db)
):
    """
    Diff a version against an explicit target, the active version, or its predecessor
    """
    mode = (compare_to or "").strip().lower()
    if mode not in ("", "active", "previous"):
        raise InvalidInput(f"compare_to must be 'active' or 'previous', got {compare_to!r}")

    diff = _service(db).diff_prompt_version(
        prompt_id,
        version_id,
        target_version_id=target_version_id,
        compare_to_active=mode == "active",
        compare_to_previous=mode == "previous",
    )
    return diff_to_dict(diff)


@router.get("/{prompt_id}/stats")
async def get_prompt_stats(
    prompt_id: str,
    days: int = Query(7, description="Window in days (<= 0 uses the default)"),
    db: Session = Depends(get_db)
):
    stats = _service(db).get_execution_stats(prompt_id, days=days)
    return {
        "prompt_id": prompt_id,
        "days": [
            {
                "day": bucket.day.isoformat(),
                "total_calls": bucket.total_calls,
                "success_calls": bucket.success_calls,
                "average_ms": bucket.average_ms,
            }
            for bucket in stats
        ],
    }


@router.post("/{prompt_id}/executions", status_code=201)
async def record_execution(prompt_id: str, payload: ExecutionCreateRequest, db: Session = Depends(get_db)):
    log = _service(db).record_execution(
        prompt_id,
        version_id=payload.version_id,
        status=payload.status,
        duration_ms=payload.duration_ms,
        user_id=payload.user_id,
        request_payload=payload.request_payload,
        response_metadata=payload.response_metadata,
    )
    return execution_to_dict(log)


@router.get("/{prompt_id}/executions")
async def list_recent_executions(
    prompt_id: str,
    limit: int = Query(20, ge=1, le=200),
    db: Session = Depends(get_db)
):
    logs = _service(db).list_recent_executions(prompt_id, limit=limit)
    return {"items": [execution_to_dict(log) for log in logs]}
