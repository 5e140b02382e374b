"""Generation pipeline models: plans, files, validation and session status."""

from enum import Enum
from typing import Literal, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class SessionStatus(str, Enum):
    """Externally visible status of a generation session."""
    PENDING = "pending"
    PLANNING = "planning"
    SCAFFOLDING = "scaffolding"
    GENERATING = "generating"
    VALIDATING = "validating"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.FAILED)

    @classmethod
    def can_transition(cls, current: "SessionStatus", new: "SessionStatus") -> bool:
        """Check a status change against the session state machine."""
        current, new = cls(current), cls(new)
        if current.is_terminal:
            return False
        if new == cls.FAILED:
            return True
        return new in _TRANSITIONS[current]


# generating -> generating is the per-file progress update.
# pending -> generating is the refinement path (no plan/scaffold).
_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.PENDING: frozenset({SessionStatus.PLANNING, SessionStatus.GENERATING}),
    SessionStatus.PLANNING: frozenset({SessionStatus.SCAFFOLDING}),
    SessionStatus.SCAFFOLDING: frozenset({SessionStatus.GENERATING}),
    SessionStatus.GENERATING: frozenset({
        SessionStatus.GENERATING,
        SessionStatus.VALIDATING,
        SessionStatus.COMPLETED,
    }),
    SessionStatus.VALIDATING: frozenset({SessionStatus.COMPLETED}),
}


ProjectType = Literal[
    "landing-page",
    "dashboard",
    "e-commerce",
    "blog",
    "app",
    "mobile-app",
    "api",
    "fullstack",
]

Framework = Literal["react", "vue", "svelte", "node", "django", "react-native", "flutter"]

Styling = Literal["tailwind", "css", "scss", "styled-components"]


class _CamelModel(BaseModel):
    """Accepts the camelCase keys models emit as well as snake_case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FileSpec(_CamelModel):
    """A single file in a project plan."""
    path: str = Field(..., min_length=1)
    purpose: str = ""
    dependencies: list[str] = Field(default_factory=list)
    priority: Optional[int] = Field(default=None, description="Lower is generated earlier")

    @property
    def order_key(self) -> int:
        """Generation order: explicit priority, else dependency count."""
        if self.priority is not None:
            return self.priority
        return len(self.dependencies)


class ProjectPlan(_CamelModel):
    """Structured project plan produced by the planning phase."""
    project_type: ProjectType
    description: str
    files: list[FileSpec]
    dependencies: list[str] = Field(default_factory=list)
    routes: Optional[list[str]] = None
    framework: Optional[Framework] = None
    styling: Optional[Styling] = None

    model_config = ConfigDict(frozen=True)


class GeneratedFile(BaseModel):
    """A generated file. Content and flags are updated by validate/repair."""
    path: str
    content: str
    validated: bool = False
    issues: list[str] = Field(default_factory=list)


class ValidationResult(BaseModel):
    """Outcome of a single validation call."""
    valid: bool
    issues: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    tokens_used: int = 0
    cost: float = 0.0


class FixResult(BaseModel):
    """Outcome of a single repair call."""
    content: str
    changes_applied: list[str] = Field(default_factory=list)
    tokens_used: int = 0
    cost: float = 0.0


class Suggestion(BaseModel):
    """A follow-up suggestion produced after generation."""
    title: str
    description: str = ""
    priority: Literal["high", "medium", "low"] = "medium"


class SuggestionList(BaseModel):
    suggestions: list[Suggestion] = Field(default_factory=list)


class FileModification(_CamelModel):
    path: str = Field(..., min_length=1)
    changes: str


class NewFile(_CamelModel):
    path: str = Field(..., min_length=1)
    purpose: str = ""


class RefinementAnalysis(_CamelModel):
    """Which existing files to edit and which new files to create."""
    files_to_modify: list[FileModification] = Field(default_factory=list)
    new_files: list[NewFile] = Field(default_factory=list)


class GenerationOptions(_CamelModel):
    """Caller-supplied options for a generation run."""
    template: Optional[str] = None
    model: Optional[str] = None
    framework: Optional[Framework] = None
    max_validation_retries: Optional[int] = Field(default=None, ge=0, le=5)


class PipelineResult(BaseModel):
    """Final result of an orchestrator run."""
    success: bool
    plan: Optional[ProjectPlan] = None
    files: list[GeneratedFile] = Field(default_factory=list)
    total_tokens: int = 0
    total_cost: float = 0.0
    credits_used: int = 0
    suggestions: list[Suggestion] = Field(default_factory=list)
    error: Optional[str] = None
