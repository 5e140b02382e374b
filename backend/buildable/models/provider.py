"""Provider, model and task type definitions."""

from enum import Enum


class ProviderType(str, Enum):
    """Supported AI providers."""
    GROK = "grok"
    OPENAI = "openai"
    GEMINI = "gemini"
    ANTHROPIC = "anthropic"


class TaskType(str, Enum):
    """Category of work. Used only to select a routing entry."""
    PLANNING = "planning"
    CODING = "coding"
    DEBUGGING = "debugging"
    REASONING = "reasoning"
    MULTIMODAL = "multimodal"
    VALIDATION = "validation"
    REFINEMENT = "refinement"


class ModelType(str, Enum):
    """Supported AI models across providers."""
    # xAI Grok (OpenAI-compatible API, 2M context)
    GROK_4_1_FAST = "grok-4.1-fast"
    GROK_CODE_FAST_1 = "grok-code-fast-1"
    GROK_VISION = "grok-vision-beta"

    # OpenAI
    GPT_5 = "gpt-5"
    GPT_5_MINI = "gpt-5-mini"
    GPT_5_NANO = "gpt-5-nano"
    GPT_5_2 = "gpt-5.2"

    # Google
    GEMINI_2_5_FLASH = "gemini-2.5-flash"
    GEMINI_2_5_PRO = "gemini-2.5-pro"
    GEMINI_3_FLASH_PREVIEW = "gemini-3-flash-preview"
    GEMINI_3_PRO_PREVIEW = "gemini-3-pro-preview"

    # Anthropic
    CLAUDE_SONNET_4 = "claude-sonnet-4-5-20250929"
    CLAUDE_HAIKU = "claude-3-5-haiku-20241022"
