"""Provider data model, selection and post-processing."""

from switchyard.llm.capability_registry import CapabilityRegistry, default_capabilities
from switchyard.llm.metrics_store import MetricsStore
from switchyard.llm.models import (
    CapabilityProfile,
    CompletionRequest,
    CompletionResponse,
    PerformanceMetrics,
    PostProcessingOption,
    PostProcessingResult,
    PostProcessingType,
)
from switchyard.llm.rules import RuleKind, SelectionRule, SelectionRuleSet, default_rules
from switchyard.llm.selection import ScoredCandidate, SelectionEngine

__all__ = [
    # Data model
    "CapabilityProfile",
    "CompletionRequest",
    "CompletionResponse",
    "PerformanceMetrics",
    "PostProcessingOption",
    "PostProcessingResult",
    "PostProcessingType",
    # State
    "CapabilityRegistry",
    "MetricsStore",
    "default_capabilities",
    # Rules
    "RuleKind",
    "SelectionRule",
    "SelectionRuleSet",
    "default_rules",
    # Selection
    "ScoredCandidate",
    "SelectionEngine",
]
