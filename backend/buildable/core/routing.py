"""Task type to provider/model routing."""

from dataclasses import dataclass

from .errors import ConfigurationError, NoConfiguredProvider
from .registry import ProviderRegistry
from ..models.provider import ModelType, ProviderType, TaskType


@dataclass(frozen=True)
class ModelRoute:
    provider: ProviderType
    model: str


_CLAUDE_FALLBACK = ModelRoute(ProviderType.ANTHROPIC, ModelType.CLAUDE_SONNET_4.value)

# Primary first, then fallbacks in order of preference
ROUTING: dict[TaskType, tuple[ModelRoute, ...]] = {
    TaskType.PLANNING: (
        ModelRoute(ProviderType.GEMINI, ModelType.GEMINI_2_5_PRO.value),
        ModelRoute(ProviderType.OPENAI, ModelType.GPT_5_MINI.value),
        _CLAUDE_FALLBACK,
    ),
    TaskType.CODING: (
        ModelRoute(ProviderType.GROK, ModelType.GROK_CODE_FAST_1.value),
        ModelRoute(ProviderType.OPENAI, ModelType.GPT_5.value),
        _CLAUDE_FALLBACK,
    ),
    TaskType.DEBUGGING: (
        ModelRoute(ProviderType.GROK, ModelType.GROK_CODE_FAST_1.value),
        ModelRoute(ProviderType.OPENAI, ModelType.GPT_5_MINI.value),
        _CLAUDE_FALLBACK,
    ),
    TaskType.REASONING: (
        ModelRoute(ProviderType.OPENAI, ModelType.GPT_5_2.value),
        ModelRoute(ProviderType.GEMINI, ModelType.GEMINI_2_5_PRO.value),
        _CLAUDE_FALLBACK,
    ),
    TaskType.MULTIMODAL: (
        ModelRoute(ProviderType.GEMINI, ModelType.GEMINI_3_PRO_PREVIEW.value),
        ModelRoute(ProviderType.GROK, ModelType.GROK_VISION.value),
        ModelRoute(ProviderType.OPENAI, ModelType.GPT_5.value),
    ),
    TaskType.VALIDATION: (
        ModelRoute(ProviderType.GROK, ModelType.GROK_4_1_FAST.value),
        ModelRoute(ProviderType.OPENAI, ModelType.GPT_5_NANO.value),
        ModelRoute(ProviderType.ANTHROPIC, ModelType.CLAUDE_HAIKU.value),
    ),
    TaskType.REFINEMENT: (
        ModelRoute(ProviderType.OPENAI, ModelType.GPT_5.value),
        ModelRoute(ProviderType.GROK, ModelType.GROK_CODE_FAST_1.value),
        _CLAUDE_FALLBACK,
    ),
}


class ProviderRouter:
    """Pure lookup from task type to the ordered candidates that can serve it."""

    def __init__(self, registry: ProviderRegistry, table: dict[TaskType, tuple[ModelRoute, ...]] = ROUTING):
        missing = [t.value for t in TaskType if not table.get(t)]
        if missing:
            raise ConfigurationError(f"Routing table has no entry for: {', '.join(missing)}")
        self.registry = registry
        self.table = table

    def resolve_candidates(self, task: TaskType) -> list[ModelRoute]:
        """Routing order for a task, restricted to providers with credentials."""
        return [
            route for route in self.table[TaskType(task)]
            if self.registry.is_configured(route.provider)
        ]

    def validate(self) -> None:
        """
        Check that every task type can be served.

        Raises:
            NoConfiguredProvider: for the first task with no usable candidate
        """
        for task in TaskType:
            if not self.resolve_candidates(task):
                raise NoConfiguredProvider(task.value)
