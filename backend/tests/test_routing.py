"""Tests for the provider registry and task routing."""

import pytest

from buildable.core.config import Settings
from buildable.core.errors import ConfigurationError, NoConfiguredProvider
from buildable.core.registry import ProviderRegistry
from buildable.core.routing import ROUTING, ModelRoute, ProviderRouter
from buildable.models.provider import ProviderType, TaskType

from conftest import ScriptedProvider


def registry_with(*providers: ProviderType) -> ProviderRegistry:
    return ProviderRegistry({p: ScriptedProvider(p.value) for p in providers})


class TestRegistry:

    def test_descriptors_exist_for_every_provider(self):
        registry = registry_with(ProviderType.OPENAI)

        assert {d.provider for d in registry.descriptors()} == set(ProviderType)
        assert registry.is_configured(ProviderType.OPENAI)
        assert not registry.is_configured(ProviderType.GROK)
        assert registry.configured_providers() == [ProviderType.OPENAI]

    def test_adapter_for_unconfigured_provider_raises(self):
        registry = registry_with(ProviderType.OPENAI)

        with pytest.raises(ConfigurationError):
            registry.adapter(ProviderType.ANTHROPIC)

    def test_from_settings_only_builds_providers_with_keys(self):
        settings = Settings(
            grok_api_key="",
            openai_api_key="",
            gemini_api_key="",
            anthropic_api_key="sk-ant-test",
            _env_file=None,
        )

        registry = ProviderRegistry.from_settings(settings)

        assert registry.configured_providers() == [ProviderType.ANTHROPIC]
        assert registry.adapter(ProviderType.ANTHROPIC).provider_id == "anthropic"

    def test_descriptor_cost(self):
        descriptor = registry_with().descriptor(ProviderType.GEMINI)

        assert descriptor.cost(2000, 1000) == pytest.approx(2 * 0.0005 + 1 * 0.001)


class TestRouter:

    def test_every_task_type_has_routes(self):
        assert set(ROUTING) == set(TaskType)
        assert all(ROUTING[task] for task in TaskType)

    def test_candidates_keep_preference_order(self):
        router = ProviderRouter(registry_with(ProviderType.ANTHROPIC, ProviderType.OPENAI, ProviderType.GROK))

        candidates = router.resolve_candidates(TaskType.CODING)

        assert [c.provider for c in candidates] == [
            ProviderType.GROK,
            ProviderType.OPENAI,
            ProviderType.ANTHROPIC,
        ]
        assert candidates[0].model == "grok-code-fast-1"

    def test_unconfigured_providers_are_filtered(self):
        router = ProviderRouter(registry_with(ProviderType.ANTHROPIC))

        assert router.resolve_candidates(TaskType.PLANNING) == [
            ModelRoute(ProviderType.ANTHROPIC, "claude-sonnet-4-5-20250929"),
        ]
        assert router.resolve_candidates(TaskType.MULTIMODAL) == []

    def test_validate_reports_unservable_task(self):
        router = ProviderRouter(registry_with(ProviderType.ANTHROPIC))

        with pytest.raises(NoConfiguredProvider) as exc_info:
            router.validate()

        assert exc_info.value.task == "multimodal"

    def test_validate_passes_when_every_task_is_covered(self):
        router = ProviderRouter(registry_with(ProviderType.ANTHROPIC, ProviderType.GEMINI))

        router.validate()

    def test_incomplete_table_is_rejected(self):
        table = {TaskType.CODING: (ModelRoute(ProviderType.GROK, "grok-code-fast-1"),)}

        with pytest.raises(ConfigurationError):
            ProviderRouter(registry_with(ProviderType.GROK), table=table)
