"""HTTP request and response bodies."""

from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .generation import GenerationOptions
from .provider import TaskType


class _ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GenerateRequest(_ApiModel):
    """Body of POST /generate/{workspace_id} and its estimate endpoint."""
    prompt: str = Field(..., min_length=1, max_length=10000)
    options: Optional[GenerationOptions] = None


class RefineRequest(_ApiModel):
    """Body of POST /generate/{workspace_id}/refine."""
    prompt: str = Field(..., min_length=1, max_length=10000)
    previous_context: Optional[str] = None


class StreamRequest(_ApiModel):
    """Body of POST /generate/stream."""
    prompt: str = Field(..., min_length=1, max_length=10000)
    system_prompt: Optional[str] = None
    task: TaskType = TaskType.REASONING


class EstimateResponse(_ApiModel):
    estimated_tokens: int
    estimated_credits: int
    complexity: str


class GenerationStarted(_ApiModel):
    success: bool = True
    session_id: str
    message: str


class WorkspaceCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)


class SessionResponse(BaseModel):
    """Externally visible state of a generation session."""
    id: str
    workspace_id: str
    user_id: Optional[str] = None
    kind: str
    prompt: str
    status: str
    plan: Optional[dict[str, Any]] = None
    files_planned: int = 0
    files_generated: int = 0
    tokens_used: int = 0
    credits_used: int = 0
    error_message: Optional[str] = None
    file_results: list[dict[str, Any]] = Field(default_factory=list)
    suggestions: list[dict[str, Any]] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
