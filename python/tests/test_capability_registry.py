"""Tests for the capability registry and profile validation."""

from decimal import Decimal

import pytest

from switchyard.exceptions_unified import ConfigurationError
from switchyard.llm.capability_registry import CapabilityRegistry
from switchyard.llm.models import CapabilityProfile


def _profile(complexity: int = 3, **overrides) -> CapabilityProfile:
    fields = dict(
        supported_languages={"python"},
        supported_tasks={"code_generation"},
        max_complexity=complexity,
        max_tokens=4096,
        cost_per_token=Decimal("0.00001"),
    )
    fields.update(overrides)
    return CapabilityProfile(**fields)


class TestDefaults:
    def test_default_catalogue_order(self):
        registry = CapabilityRegistry.with_defaults()
        assert registry.names() == ["gpt-4", "gpt-3.5-turbo", "claude-3"]

    def test_default_profiles(self):
        registry = CapabilityRegistry.with_defaults()
        claude = registry.get("claude-3")
        assert "rust" in claude.supported_languages
        assert "security_analysis" in claude.supported_tasks
        assert registry.get("gpt-3.5-turbo").max_complexity == 3
        assert registry.get("gpt-4").cost_per_token == Decimal("0.00003")


class TestMutation:
    def test_register_preserves_order(self):
        registry = CapabilityRegistry()
        for name in ("b", "a", "c"):
            registry.register(name, _profile())
        assert registry.names() == ["b", "a", "c"]
        assert len(registry) == 3
        assert "a" in registry

    def test_update_keeps_position_and_returns_previous(self):
        registry = CapabilityRegistry()
        registry.register("a", _profile(2))
        registry.register("b", _profile(2))
        previous = registry.update("a", _profile(5))
        assert previous.max_complexity == 2
        assert registry.get("a").max_complexity == 5
        assert registry.names() == ["a", "b"]

    def test_update_unknown_raises(self):
        with pytest.raises(KeyError):
            CapabilityRegistry().update("ghost", _profile())

    def test_unregister(self):
        registry = CapabilityRegistry()
        registry.register("a", _profile())
        assert registry.unregister("a") is True
        assert registry.unregister("a") is False
        assert registry.get("a") is None

    def test_empty_name_rejected(self):
        with pytest.raises(ConfigurationError):
            CapabilityRegistry().register("  ", _profile())

    def test_reregister_rejected_profile_kept(self):
        registry = CapabilityRegistry()
        registry.register("a", _profile(5))
        with pytest.raises(ConfigurationError):
            registry.register("a", _profile(1))
        assert registry.get("a").max_complexity == 5
        assert registry.names() == ["a"]


class TestProfile:
    @pytest.mark.parametrize("complexity", [0, 6])
    def test_complexity_out_of_range(self, complexity):
        with pytest.raises(ConfigurationError):
            _profile(complexity)

    def test_profile_is_immutable(self):
        profile = _profile()
        with pytest.raises(AttributeError):
            profile.max_complexity = 5

    def test_sets_are_frozen(self):
        profile = _profile(supported_languages=["python", "rust"])
        assert profile.supported_languages == frozenset({"python", "rust"})

    def test_language_match_semantics(self):
        profile = _profile(supported_languages={"python", "java"})
        assert profile.supports_languages([])
        assert profile.supports_languages(["rust", "java"])
        assert not profile.supports_languages(["rust"])

    def test_task_match_requires_non_empty_task(self):
        profile = _profile()
        assert profile.supports_task("code_generation")
        assert not profile.supports_task("")
        assert not profile.supports_task("testing")
