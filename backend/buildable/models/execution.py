"""Execution engine request/response models."""

from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from .provider import ProviderType, TaskType


class ExecutionRequest(BaseModel):
    """One logical request, independent of which provider serves it."""

    task: TaskType = Field(..., description="Task type used for routing")
    system_prompt: str = Field(..., description="System instructions")
    user_prompt: str = Field(..., description="User task prompt")
    temperature: float = Field(default=0.3, ge=0, le=2)
    max_tokens: int = Field(default=8000, gt=0, description="Maximum output tokens")
    json_mode: bool = Field(default=False, description="Ask the provider for a JSON object")
    images: list[str] = Field(
        default_factory=list,
        description="Image payloads as data URLs or plain URLs (multimodal tasks)",
    )


class ExecutionResponse(BaseModel):
    """Successful result of an execution, with usage and cost."""

    content: str
    provider: ProviderType
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    cost: float = Field(default=0.0, description="Estimated USD cost")
    latency_ms: float = Field(default=0.0, description="End-to-end latency including retries")

    model_config = ConfigDict(use_enum_values=True, protected_namespaces=())


class StreamChunk(BaseModel):
    """
    One item from a streaming execution.

    Every stream ends with exactly one chunk where ``done`` is True. If the
    stream failed, that terminal chunk carries ``error`` instead of raising.
    """

    content: str = ""
    done: bool = False
    error: Optional[str] = None
    provider: Optional[ProviderType] = None
    model: Optional[str] = None

    model_config = ConfigDict(use_enum_values=True, protected_namespaces=())
