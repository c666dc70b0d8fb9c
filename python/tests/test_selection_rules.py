"""Tests for tagged-variant selection rules (switchyard/llm/rules.py)."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from switchyard.exceptions_unified import ConfigurationError
from switchyard.llm.models import CapabilityProfile, CompletionRequest
from switchyard.llm.rules import RuleKind, SelectionRule, SelectionRuleSet, default_rules

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
HOUR = timedelta(hours=1)


def _profile(complexity: int = 5, cost: str = "0.000002") -> CapabilityProfile:
    return CapabilityProfile(frozenset({"python"}), frozenset({"code_generation"}),
                             complexity, 4096, Decimal(cost))


def _dynamic(name: str, at: datetime) -> SelectionRule:
    return SelectionRule(name, 1, RuleKind.ALWAYS, is_dynamic=True, last_updated=at)


class TestRuleKinds:
    def test_high_complexity(self):
        rule = default_rules(T0)[0]
        assert rule.kind is RuleKind.HIGH_COMPLEXITY
        assert rule.matches(CompletionRequest("x", complexity_level=4), _profile(5))
        assert not rule.matches(CompletionRequest("x", complexity_level=3), _profile(5))
        assert not rule.matches(CompletionRequest("x", complexity_level=4), _profile(3))

    def test_cost_ceiling(self):
        rule = default_rules(T0)[1]
        big = CompletionRequest("x", max_tokens=2000)
        assert rule.matches(big, _profile(cost="0.000002"))
        assert not rule.matches(big, _profile(cost="0.00003"))
        assert not rule.matches(CompletionRequest("x", max_tokens=1000), _profile(cost="0.000002"))

    def test_always_matches_without_profile(self):
        assert _dynamic("d", T0).matches(CompletionRequest("x"), None)

    def test_params_override_defaults(self):
        rule = SelectionRule("strict", 3, RuleKind.HIGH_COMPLEXITY, params={"min_complexity": 5})
        assert rule.params["min_complexity"] == 5
        assert not rule.matches(CompletionRequest("x", complexity_level=4), _profile(5))

    def test_empty_name_rejected(self):
        with pytest.raises(ConfigurationError):
            SelectionRule("", 1, RuleKind.ALWAYS)

    def test_to_dict(self):
        d = _dynamic("Performance_Optimization_1", T0).to_dict()
        assert d["kind"] == "always"
        assert d["is_dynamic"] is True
        assert d["last_updated"] == T0.isoformat()


class TestRuleSet:
    def test_defaults_installed(self):
        rules = SelectionRuleSet()
        assert [r.name for r in rules.rules()] == ["High_Complexity_Code_Generation",
                                                   "Cost_Optimization"]
        assert rules.dynamic_rules() == []

    def test_rules_sorted_by_priority_then_insertion(self):
        rules = SelectionRuleSet(rules=[])
        rules.add(SelectionRule("p2", 2, RuleKind.ALWAYS))
        rules.add(SelectionRule("p1a", 1, RuleKind.ALWAYS))
        rules.add(SelectionRule("p1b", 1, RuleKind.ALWAYS))
        assert [r.name for r in rules.rules()] == ["p1a", "p1b", "p2"]

    def test_prune_only_touches_stale_dynamic_rules(self):
        old_builtin = SelectionRule("builtin", 1, RuleKind.HIGH_COMPLEXITY,
                                    last_updated=T0 - 10 * HOUR)
        rules = SelectionRuleSet(rules=[old_builtin])
        rules.add(_dynamic("stale", T0 - 2 * HOUR))
        rules.add(_dynamic("fresh", T0 - timedelta(minutes=30)))

        pruned = rules.prune_stale(T0, HOUR)

        assert [r.name for r in pruned] == ["stale"]
        assert {r.name for r in rules.rules()} == {"builtin", "fresh"}

    def test_refresh_dynamic_prunes_then_adds(self):
        rules = SelectionRuleSet()
        rules.add(_dynamic("old", T0 - 2 * HOUR))
        pruned = rules.refresh_dynamic(T0, HOUR, [_dynamic("new", T0)])
        assert [r.name for r in pruned] == ["old"]
        assert [r.name for r in rules.dynamic_rules()] == ["new"]
        assert len(rules.builtin_rules()) == 2

    def test_matching(self):
        rules = SelectionRuleSet()
        request = CompletionRequest("x", complexity_level=4, max_tokens=2000)
        names = [r.name for r in rules.matching(request, _profile(5, "0.000002"))]
        assert names == ["High_Complexity_Code_Generation", "Cost_Optimization"]
