"""
Selection rules as inspectable data.

A rule is a RuleKind tag plus parameters rather than a closure, so the
rule set can be serialized, logged and compared. Built-in rules live for
the process lifetime; dynamic rules are installed by the adaptive rule
engine and pruned once they go stale.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from switchyard.exceptions_unified import ConfigurationError
from switchyard.llm.models import CapabilityProfile, CompletionRequest, to_decimal

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RuleKind(str, Enum):
    """Closed set of rule conditions."""
    HIGH_COMPLEXITY = "high_complexity"   # request and provider both at/above min_complexity
    COST_CEILING = "cost_ceiling"         # large request served by a cheap provider
    ALWAYS = "always"                     # slot reserved for future heuristics


_DEFAULT_PARAMS: Dict[RuleKind, Dict[str, Any]] = {
    RuleKind.HIGH_COMPLEXITY: {"min_complexity": 4},
    RuleKind.COST_CEILING: {"min_request_tokens": 1000, "max_cost_per_token": "0.00001"},
    RuleKind.ALWAYS: {},
}


@dataclass(frozen=True)
class SelectionRule:
    name: str
    priority: int
    kind: RuleKind
    params: Dict[str, Any] = field(default_factory=dict, hash=False, compare=False)
    is_dynamic: bool = False
    last_updated: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        if not self.name:
            raise ConfigurationError("Rule name must not be empty")
        merged = dict(_DEFAULT_PARAMS[self.kind])
        merged.update(self.params)
        object.__setattr__(self, "params", merged)

    def matches(self, request: CompletionRequest, profile: Optional[CapabilityProfile]) -> bool:
        if self.kind is RuleKind.ALWAYS:
            return True
        if profile is None:
            return False
        if self.kind is RuleKind.HIGH_COMPLEXITY:
            threshold = int(self.params["min_complexity"])
            return request.complexity_level >= threshold and profile.max_complexity >= threshold
        if self.kind is RuleKind.COST_CEILING:
            return (request.max_tokens > int(self.params["min_request_tokens"])
                    and profile.cost_per_token < to_decimal(self.params["max_cost_per_token"]))
        return False

    def is_stale(self, now: datetime, ttl: timedelta) -> bool:
        return self.is_dynamic and now - self.last_updated > ttl

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "priority": self.priority,
            "kind": self.kind.value,
            "params": {k: str(v) for k, v in self.params.items()},
            "is_dynamic": self.is_dynamic,
            "last_updated": self.last_updated.isoformat(),
        }


def default_rules(now: Optional[datetime] = None) -> List[SelectionRule]:
    """Built-in rules installed on every new rule set."""
    now = now or utcnow()
    return [
        SelectionRule("High_Complexity_Code_Generation", 1, RuleKind.HIGH_COMPLEXITY,
                      last_updated=now),
        SelectionRule("Cost_Optimization", 2, RuleKind.COST_CEILING, last_updated=now),
    ]


class SelectionRuleSet:
    """Ordered rule list guarded by the metrics store's lock."""

    def __init__(self, lock: Optional[threading.Lock] = None,
                 rules: Optional[List[SelectionRule]] = None) -> None:
        self.lock = lock or threading.Lock()
        self._rules: List[SelectionRule] = list(default_rules() if rules is None else rules)

    def add(self, rule: SelectionRule) -> None:
        with self.lock:
            self._rules.append(rule)
        logger.debug("Added %s rule %s", "dynamic" if rule.is_dynamic else "built-in", rule.name)

    def prune_stale(self, now: datetime, ttl: timedelta) -> List[SelectionRule]:
        """Drop dynamic rules older than ``ttl``. Built-in rules are never touched."""
        with self.lock:
            stale = [r for r in self._rules if r.is_stale(now, ttl)]
            if stale:
                self._rules = [r for r in self._rules if not r.is_stale(now, ttl)]
        if stale:
            logger.info("Pruned %d stale dynamic rule(s)", len(stale))
        return stale

    def refresh_dynamic(self, now: datetime, ttl: timedelta,
                        additions: List[SelectionRule]) -> List[SelectionRule]:
        """Prune stale dynamic rules then append ``additions`` in one critical section."""
        with self.lock:
            stale = [r for r in self._rules if r.is_stale(now, ttl)]
            self._rules = [r for r in self._rules if not r.is_stale(now, ttl)]
            self._rules.extend(additions)
        if stale or additions:
            logger.info("Dynamic rules refreshed: %d pruned, %d added", len(stale), len(additions))
        return stale

    def rules(self) -> List[SelectionRule]:
        """All rules by priority; equal priorities keep insertion order."""
        with self.lock:
            return sorted(self._rules, key=lambda r: r.priority)

    def dynamic_rules(self) -> List[SelectionRule]:
        return [r for r in self.rules() if r.is_dynamic]

    def builtin_rules(self) -> List[SelectionRule]:
        return [r for r in self.rules() if not r.is_dynamic]

    def matching(self, request: CompletionRequest,
                 profile: Optional[CapabilityProfile]) -> List[SelectionRule]:
        return [r for r in self.rules() if r.matches(request, profile)]

    def __len__(self) -> int:
        with self.lock:
            return len(self._rules)
