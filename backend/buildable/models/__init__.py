"""Data models for the Buildable generation backend."""

from .provider import ProviderType, TaskType, ModelType
from .execution import ExecutionRequest, ExecutionResponse, StreamChunk
from .generation import (
    SessionStatus,
    FileSpec,
    ProjectPlan,
    GeneratedFile,
    ValidationResult,
    FixResult,
    Suggestion,
    SuggestionList,
    RefinementAnalysis,
    GenerationOptions,
    PipelineResult,
)
from .credits import Complexity, CreditEstimate, CreditDeduction

__all__ = [
    "ProviderType",
    "TaskType",
    "ModelType",
    "ExecutionRequest",
    "ExecutionResponse",
    "StreamChunk",
    "SessionStatus",
    "FileSpec",
    "ProjectPlan",
    "GeneratedFile",
    "ValidationResult",
    "FixResult",
    "Suggestion",
    "SuggestionList",
    "RefinementAnalysis",
    "GenerationOptions",
    "PipelineResult",
    "Complexity",
    "CreditEstimate",
    "CreditDeduction",
]
