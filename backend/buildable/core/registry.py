"""Provider registry: descriptors and long-lived adapter clients."""

import logging
from dataclasses import dataclass
from typing import Mapping, Optional

from .config import Settings
from .errors import ConfigurationError
from ..models.provider import ProviderType
from ..providers import (
    AIProvider,
    AnthropicProvider,
    GeminiProvider,
    GrokProvider,
    OpenAIProvider,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderDescriptor:
    """Static facts about a provider. Immutable after process start."""
    provider: ProviderType
    has_credentials: bool
    input_cost_per_1k: float
    output_cost_per_1k: float
    context_window: int
    supports_streaming: bool = True
    supports_images: bool = False

    def cost(self, input_tokens: int, output_tokens: int) -> float:
        """Estimated USD cost of a call."""
        return (
            input_tokens / 1000 * self.input_cost_per_1k
            + output_tokens / 1000 * self.output_cost_per_1k
        )


# Pricing per 1K tokens (approximate, varies by model)
PROVIDER_CATALOG: dict[ProviderType, dict] = {
    ProviderType.GROK: {
        "input_cost_per_1k": 0.001,
        "output_cost_per_1k": 0.002,
        "context_window": 2_000_000,
        "supports_images": True,
    },
    ProviderType.OPENAI: {
        "input_cost_per_1k": 0.003,
        "output_cost_per_1k": 0.006,
        "context_window": 256_000,
        "supports_images": True,
    },
    ProviderType.GEMINI: {
        "input_cost_per_1k": 0.0005,
        "output_cost_per_1k": 0.001,
        "context_window": 2_000_000,
        "supports_images": True,
    },
    ProviderType.ANTHROPIC: {
        "input_cost_per_1k": 0.003,
        "output_cost_per_1k": 0.015,
        "context_window": 200_000,
        "supports_images": True,
    },
}


def _descriptor(provider: ProviderType, has_credentials: bool) -> ProviderDescriptor:
    return ProviderDescriptor(
        provider=provider,
        has_credentials=has_credentials,
        **PROVIDER_CATALOG[provider],
    )


class ProviderRegistry:
    """
    One descriptor per provider and one adapter per configured provider.

    Built once at startup and passed explicitly to the router and the
    execution engine.
    """

    def __init__(self, adapters: Mapping[ProviderType, AIProvider]):
        self._adapters: dict[ProviderType, AIProvider] = {
            ProviderType(p): adapter for p, adapter in adapters.items()
        }
        self._descriptors: dict[ProviderType, ProviderDescriptor] = {
            p: _descriptor(p, p in self._adapters) for p in ProviderType
        }

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProviderRegistry":
        """Create adapter clients for every provider with an API key."""
        adapters: dict[ProviderType, AIProvider] = {}

        if settings.grok_api_key:
            adapters[ProviderType.GROK] = GrokProvider(api_key=settings.grok_api_key)

        if settings.openai_api_key:
            adapters[ProviderType.OPENAI] = OpenAIProvider(api_key=settings.openai_api_key)

        if settings.gemini_api_key:
            adapters[ProviderType.GEMINI] = GeminiProvider(api_key=settings.gemini_api_key)

        if settings.anthropic_api_key:
            adapters[ProviderType.ANTHROPIC] = AnthropicProvider(api_key=settings.anthropic_api_key)

        logger.info(f"Configured providers: {[p.value for p in adapters] or 'none'}")
        return cls(adapters)

    def descriptor(self, provider: ProviderType) -> ProviderDescriptor:
        return self._descriptors[ProviderType(provider)]

    def descriptors(self) -> list[ProviderDescriptor]:
        return list(self._descriptors.values())

    def adapter(self, provider: ProviderType) -> AIProvider:
        """Get the adapter for a provider. Only configured providers have one."""
        adapter: Optional[AIProvider] = self._adapters.get(ProviderType(provider))
        if adapter is None:
            raise ConfigurationError(f"Provider {ProviderType(provider).value} is not configured")
        return adapter

    def is_configured(self, provider: ProviderType) -> bool:
        return self.descriptor(provider).has_credentials

    def configured_providers(self) -> list[ProviderType]:
        return [d.provider for d in self._descriptors.values() if d.has_credentials]
