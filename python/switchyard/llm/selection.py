"""
Selection Engine: weighted multi-factor provider ranking.

    score = 0.4 * capability + 0.3 * performance + 0.2 * cost + 0.1 * reliability

Providers without history get a neutral 0.5 on the three history-based
terms. Ranking is a stable sort over registration order, so equal scores
resolve to the provider registered first.
"""

import logging
from dataclasses import dataclass, field
from typing import AbstractSet, Any, Dict, List, Optional

from switchyard.config.settings import Settings, get_settings
from switchyard.exceptions_unified import NoCandidateAvailableError
from switchyard.llm.capability_registry import CapabilityRegistry
from switchyard.llm.metrics_store import MetricsStore
from switchyard.llm.models import CapabilityProfile, CompletionRequest, PerformanceMetrics
from switchyard.llm.rules import SelectionRuleSet

logger = logging.getLogger(__name__)

CAPABILITY_WEIGHT = 0.4
PERFORMANCE_WEIGHT = 0.3
COST_WEIGHT = 0.2
RELIABILITY_WEIGHT = 0.1

NEUTRAL_SCORE = 0.5


# ── Component scores ─────────────────────────────────────────────


def capability_match(request: CompletionRequest, profile: CapabilityProfile) -> float:
    """Mean of language, task and complexity matches (each 0 or 1)."""
    language = 1.0 if profile.supports_languages(request.required_languages) else 0.0
    task = 1.0 if profile.supports_task(request.task_type) else 0.0
    complexity = 1.0 if profile.handles_complexity(request.complexity_level) else 0.0
    return (language + task + complexity) / 3.0


def performance_score(metrics: PerformanceMetrics, latency_normalization_ms: float = 10000.0) -> float:
    if not metrics.has_history:
        return NEUTRAL_SCORE
    latency = max(0.0, 1.0 - metrics.average_response_time_ms / latency_normalization_ms)
    return (latency + metrics.success_rate) / 2.0


def cost_efficiency(metrics: PerformanceMetrics, epsilon: float = 0.001) -> float:
    if not metrics.has_history:
        return NEUTRAL_SCORE
    return min(1.0, 1.0 / (float(metrics.average_cost_per_token) + epsilon))


def reliability(metrics: PerformanceMetrics) -> float:
    if not metrics.has_history:
        return NEUTRAL_SCORE
    return (metrics.success_rate + max(0.0, 1.0 - metrics.error_rate)) / 2.0


@dataclass(frozen=True)
class ScoredCandidate:
    name: str
    score: float
    capability: float
    performance: float
    cost: float
    reliability: float
    matched_rules: List[str] = field(default_factory=list, hash=False, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "score": round(self.score, 4),
            "capability": round(self.capability, 4),
            "performance": round(self.performance, 4),
            "cost": round(self.cost, 4),
            "reliability": round(self.reliability, 4),
            "matched_rules": list(self.matched_rules),
        }


# ── Engine ───────────────────────────────────────────────────────


class SelectionEngine:
    """Scores every registered, non-excluded provider against a request."""

    def __init__(
        self,
        registry: CapabilityRegistry,
        metrics: MetricsStore,
        rules: Optional[SelectionRuleSet] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.registry = registry
        self.metrics = metrics
        self.rules = rules if rules is not None else SelectionRuleSet(lock=metrics.lock)
        self.settings = settings or get_settings()

    def score(self, request: CompletionRequest, name: str,
              profile: Optional[CapabilityProfile] = None,
              metrics: Optional[PerformanceMetrics] = None) -> ScoredCandidate:
        profile = profile or self.registry.get(name)
        if profile is None:
            raise KeyError(name)
        metrics = metrics or self.metrics.get(name)

        cap = capability_match(request, profile)
        perf = performance_score(metrics, self.settings.latency_normalization_ms)
        cost = cost_efficiency(metrics, self.settings.cost_epsilon)
        rel = reliability(metrics)
        total = (CAPABILITY_WEIGHT * cap + PERFORMANCE_WEIGHT * perf
                 + COST_WEIGHT * cost + RELIABILITY_WEIGHT * rel)

        return ScoredCandidate(
            name=name,
            score=total,
            capability=cap,
            performance=perf,
            cost=cost,
            reliability=rel,
            matched_rules=[r.name for r in self.rules.matching(request, profile)],
        )

    def rank(self, request: CompletionRequest,
             excluded: AbstractSet[str] = frozenset()) -> List[ScoredCandidate]:
        """Candidates by descending score; ties keep registration order."""
        snapshot = self.metrics.snapshot()
        candidates = [
            self.score(request, name, profile, snapshot.get(name, PerformanceMetrics()))
            for name, profile in self.registry.items()
            if name not in excluded
        ]
        ranked = sorted(candidates, key=lambda c: c.score, reverse=True)
        for c in ranked:
            logger.debug("Candidate %s scored %.4f", c.name, c.score)
        return ranked

    def select_optimal(self, request: CompletionRequest,
                       excluded: AbstractSet[str] = frozenset()) -> str:
        ranked = self.rank(request, excluded)
        if not ranked:
            raise NoCandidateAvailableError(excluded=excluded)
        best = ranked[0]
        logger.debug("Selected %s (score=%.4f, rules=%s)", best.name, best.score,
                     best.matched_rules)
        return best.name
