"""
Pydantic schemas for prompt API payloads
"""

from pydantic import BaseModel, Field
from typing import Any, List, Optional


class PromptCreateRequest(BaseModel):
    """Request body for creating a prompt"""
    name: str = Field(..., description="Prompt name, unique among active prompts")
    description: Optional[str] = Field(None, description="Free-form description")
    tags: Optional[List[str]] = Field(None, description="Ordered tag list")
    created_by: Optional[str] = Field(None, description="Creator reference")


class PromptUpdateRequest(BaseModel):
    """
    Request body for updating prompt metadata.

    Only fields present in the payload are applied; an explicit null clears
    description or tags.
    """
    name: Optional[str] = None
    description: Optional[str] = None
    tags: Optional[List[str]] = None


class PromptRestoreRequest(BaseModel):
    """Optional overrides applied while restoring a prompt"""
    description: Optional[str] = None
    tags: Optional[List[str]] = None
    restored_by: Optional[str] = None


class PromptVersionCreateRequest(BaseModel):
    """Request body for appending a version"""
    body: str = Field(..., description="Template body")
    variables_schema: Optional[Any] = Field(None, description="Expected template variables (JSON)")
    metadata: Optional[Any] = Field(None, description="Free-form version metadata (JSON)")
    status: Optional[str] = Field(None, description="draft, published or archived (default draft)")
    created_by: Optional[str] = None
    activate: bool = Field(False, description="Point the prompt at the new version")


class ExecutionCreateRequest(BaseModel):
    """Request body for recording one prompt execution"""
    version_id: str
    status: str = Field(..., description="success or failed")
    duration_ms: Optional[int] = Field(None, ge=0)
    user_id: Optional[str] = None
    request_payload: Optional[Any] = None
    response_metadata: Optional[Any] = None


class PromptResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    tags: Optional[Any] = None
    active_version_id: Optional[str] = None
    active_version_body: Optional[str] = None
    status: str
    deleted_at: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class PromptVersionResponse(BaseModel):
    id: str
    prompt_id: str
    version_number: int
    body: str
    variables_schema: Optional[Any] = None
    metadata: Optional[Any] = None
    status: str
    created_by: Optional[str] = None
    created_at: Optional[str] = None


class PromptListResponse(BaseModel):
    """Page of prompts plus the unpaginated total"""
    total: int
    items: List[PromptResponse]
