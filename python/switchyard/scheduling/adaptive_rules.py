"""Adaptive rule engine: feeds metrics back into selection rules.

A caller-triggered pass reads the metrics store, describes bottlenecks,
turns them into recommendations and installs one dynamic rule per
high-priority performance recommendation. Dynamic rules older than the
configured TTL are pruned in the same critical section; built-in rules
are never touched.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from switchyard.config.settings import Settings, get_settings
from switchyard.enhanced_logging import track_performance
from switchyard.llm.metrics_store import MetricsStore
from switchyard.llm.rules import RuleKind, SelectionRule, SelectionRuleSet, utcnow

logger = logging.getLogger(__name__)

DYNAMIC_RULE_PREFIX = "Performance_Optimization"
DYNAMIC_RULE_PRIORITY = 1


# ── Value objects ────────────────────────────────────────────────────


class OptimizationType(str, Enum):
    PERFORMANCE = "performance"
    COST = "cost"


class OptimizationPriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class PerformancePattern:
    provider: str
    average_response_time_ms: float
    success_rate: float
    average_cost_per_token: Decimal
    request_volume: int


@dataclass(frozen=True)
class OptimizationRecommendation:
    type: OptimizationType
    priority: OptimizationPriority
    description: str
    estimated_impact: str = "Medium"

    @property
    def is_high_priority_performance(self) -> bool:
        return (self.type is OptimizationType.PERFORMANCE
                and self.priority is OptimizationPriority.HIGH)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "priority": self.priority.value,
            "description": self.description,
            "estimated_impact": self.estimated_impact,
        }


@dataclass
class OptimizationResult:
    success: bool
    performance_analysis: List[PerformancePattern] = field(default_factory=list)
    bottlenecks: List[str] = field(default_factory=list)
    recommendations: List[OptimizationRecommendation] = field(default_factory=list)
    rules_added: List[str] = field(default_factory=list)
    rules_pruned: List[str] = field(default_factory=list)


# ── Engine ───────────────────────────────────────────────────────────


class AdaptiveRuleEngine:
    """Derives dynamic selection rules from accumulated provider metrics."""

    def __init__(
        self,
        metrics: MetricsStore,
        rules: SelectionRuleSet,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.metrics = metrics
        self.rules = rules
        self.settings = settings or get_settings()
        self._clock = clock or utcnow
        self._sequence = itertools.count(1)
        self._history: List[Dict[str, Any]] = []
        self._max_history = 50

    # ── Analysis ─────────────────────────────────────────────────────

    def analyze_performance_patterns(self) -> List[PerformancePattern]:
        return [
            PerformancePattern(
                provider=name,
                average_response_time_ms=m.average_response_time_ms,
                success_rate=m.success_rate,
                average_cost_per_token=m.average_cost_per_token,
                request_volume=m.total_requests,
            )
            for name, m in self.metrics.snapshot().items()
        ]

    def identify_bottlenecks(self) -> List[str]:
        s = self.settings
        bottlenecks: List[str] = []
        for name, m in self.metrics.snapshot().items():
            if m.average_response_time_ms > s.bottleneck_latency_ms:
                bottlenecks.append(
                    f"High response time for {name}: {m.average_response_time_ms:.0f}ms")
            if m.success_rate < s.bottleneck_success_rate:
                bottlenecks.append(f"Low success rate for {name}: {m.success_rate:.1%}")
            if m.average_cost_per_token > Decimal(str(s.bottleneck_cost_per_token)):
                bottlenecks.append(
                    f"High cost for {name}: ${m.average_cost_per_token:.4f} per token")
        return bottlenecks

    def generate_recommendations(
        self, patterns: List[PerformancePattern], bottlenecks: List[str]
    ) -> List[OptimizationRecommendation]:
        recs = [
            OptimizationRecommendation(OptimizationType.PERFORMANCE,
                                       OptimizationPriority.HIGH, b)
            for b in bottlenecks
        ]

        slow = [p.provider for p in patterns
                if p.average_response_time_ms > self.settings.slow_provider_latency_ms]
        if slow:
            recs.append(OptimizationRecommendation(
                OptimizationType.PERFORMANCE, OptimizationPriority.MEDIUM,
                f"Consider caching for slow models: {', '.join(slow)}", "High",
            ))

        ceiling = Decimal(str(self.settings.expensive_cost_per_token))
        expensive = [p.provider for p in patterns if p.average_cost_per_token > ceiling]
        if expensive:
            recs.append(OptimizationRecommendation(
                OptimizationType.COST, OptimizationPriority.MEDIUM,
                f"Consider alternative models for cost optimization: {', '.join(expensive)}",
                "High",
            ))
        return recs

    # ── Rule update ──────────────────────────────────────────────────

    def update_rules(self, recommendations: List[OptimizationRecommendation]) -> tuple:
        """Prune stale dynamic rules and add one per high-priority performance item.

        Returns (added rules, pruned rules).
        """
        now = self._clock()
        additions = [
            SelectionRule(
                name=f"{DYNAMIC_RULE_PREFIX}_{next(self._sequence)}",
                priority=DYNAMIC_RULE_PRIORITY,
                kind=RuleKind.ALWAYS,
                is_dynamic=True,
                last_updated=now,
            )
            for rec in recommendations
            if rec.is_high_priority_performance
        ]
        ttl = timedelta(seconds=self.settings.dynamic_rule_ttl_seconds)
        pruned = self.rules.refresh_dynamic(now, ttl, additions)
        return additions, pruned

    @track_performance
    def analyze_and_optimize(self) -> OptimizationResult:
        logger.info("Analyzing provider performance")
        patterns = self.analyze_performance_patterns()
        bottlenecks = self.identify_bottlenecks()
        recommendations = self.generate_recommendations(patterns, bottlenecks)
        added, pruned = self.update_rules(recommendations)

        result = OptimizationResult(
            success=True,
            performance_analysis=patterns,
            bottlenecks=bottlenecks,
            recommendations=recommendations,
            rules_added=[r.name for r in added],
            rules_pruned=[r.name for r in pruned],
        )

        self._history.append({
            "timestamp": self._clock().isoformat(),
            "bottlenecks": len(bottlenecks),
            "recommendations": len(recommendations),
            "rules_added": len(added),
            "rules_pruned": len(pruned),
        })
        if len(self._history) > self._max_history:
            self._history = self._history[-self._max_history:]

        if bottlenecks:
            logger.info("Adaptive pass: %d bottleneck(s), %d rule(s) added",
                        len(bottlenecks), len(added))
        return result

    @property
    def history(self) -> List[Dict[str, Any]]:
        return list(self._history)

    @property
    def stats(self) -> Dict[str, Any]:
        return {
            "passes": len(self._history),
            "dynamic_rules": len(self.rules.dynamic_rules()),
            "builtin_rules": len(self.rules.builtin_rules()),
        }
