"""AI provider integrations."""

from .base import AIProvider, ProviderResponse, translate_error
from .anthropic_provider import AnthropicProvider
from .google_provider import GeminiProvider
from .grok_provider import GrokProvider
from .openai_provider import OpenAIProvider

__all__ = [
    "AIProvider",
    "ProviderResponse",
    "translate_error",
    "AnthropicProvider",
    "GeminiProvider",
    "GrokProvider",
    "OpenAIProvider",
]
