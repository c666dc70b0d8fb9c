"""Adaptive rule updates and resource-aware batch scheduling."""

from switchyard.scheduling.adaptive_rules import (
    AdaptiveRuleEngine,
    OptimizationPriority,
    OptimizationRecommendation,
    OptimizationResult,
    OptimizationType,
    PerformancePattern,
)
from switchyard.scheduling.parallel_scheduler import (
    ParallelScheduler,
    PriorityLevel,
    ProcessingOptimization,
    ProcessingPerformance,
    ProcessingStrategy,
    RequestAnalysis,
    ResourceAllocation,
    metrics_key,
)
from switchyard.scheduling.resource_monitor import PsutilResourceMonitor, StaticResourceManager

__all__ = [
    # Adaptive rules
    "AdaptiveRuleEngine",
    "OptimizationPriority",
    "OptimizationRecommendation",
    "OptimizationResult",
    "OptimizationType",
    "PerformancePattern",
    # Parallel scheduling
    "ParallelScheduler",
    "PriorityLevel",
    "ProcessingOptimization",
    "ProcessingPerformance",
    "ProcessingStrategy",
    "RequestAnalysis",
    "ResourceAllocation",
    "metrics_key",
    # Resources
    "PsutilResourceMonitor",
    "StaticResourceManager",
]
