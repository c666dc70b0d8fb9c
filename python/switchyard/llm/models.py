"""
Data model shared by the routing core.

CapabilityProfile   static declaration of what a provider can handle
PerformanceMetrics  running counters accumulated per provider
CompletionRequest   one unit of work routed to a provider
CompletionResponse  outcome of a request, successful or not
PostProcessing*     ordered content transformations applied after execution
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Union

from switchyard.exceptions_unified import ConfigurationError, FailureKind

Number = Union[int, float, Decimal]

MIN_COMPLEXITY = 1
MAX_COMPLEXITY = 5


def to_decimal(value: Optional[Number]) -> Decimal:
    """Convert a numeric value to Decimal without binary float artefacts."""
    if value is None:
        return Decimal(0)
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


# ── Capabilities ─────────────────────────────────────────────────


@dataclass(frozen=True)
class CapabilityProfile:
    """What a provider can handle. Replaced only through an explicit update."""

    supported_languages: FrozenSet[str]
    supported_tasks: FrozenSet[str]
    max_complexity: int
    max_tokens: int
    cost_per_token: Decimal = Decimal(0)

    def __post_init__(self) -> None:
        object.__setattr__(self, "supported_languages", frozenset(self.supported_languages))
        object.__setattr__(self, "supported_tasks", frozenset(self.supported_tasks))
        object.__setattr__(self, "cost_per_token", to_decimal(self.cost_per_token))
        if not MIN_COMPLEXITY <= self.max_complexity <= MAX_COMPLEXITY:
            raise ConfigurationError(
                f"max_complexity must be in {MIN_COMPLEXITY}..{MAX_COMPLEXITY}, "
                f"got {self.max_complexity}"
            )
        if self.max_tokens < 1:
            raise ConfigurationError(f"max_tokens must be positive, got {self.max_tokens}")
        if self.cost_per_token < 0:
            raise ConfigurationError("cost_per_token must not be negative")

    def supports_languages(self, languages: Iterable[str]) -> bool:
        """True when no language is required or at least one required one is supported."""
        required = set(languages)
        if not required:
            return True
        return bool(required & self.supported_languages)

    def supports_task(self, task_type: str) -> bool:
        return bool(task_type) and task_type in self.supported_tasks

    def handles_complexity(self, level: int) -> bool:
        return self.max_complexity >= level

    def to_dict(self) -> Dict[str, Any]:
        return {
            "supported_languages": sorted(self.supported_languages),
            "supported_tasks": sorted(self.supported_tasks),
            "max_complexity": self.max_complexity,
            "max_tokens": self.max_tokens,
            "cost_per_token": str(self.cost_per_token),
        }


# ── Metrics ──────────────────────────────────────────────────────


@dataclass
class PerformanceMetrics:
    """Running performance counters for one provider (or synthetic key)."""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    total_processing_time_ms: float = 0.0
    average_response_time_ms: float = 0.0
    success_rate: float = 0.0
    error_rate: float = 0.0
    total_tokens: int = 0
    average_tokens_per_request: float = 0.0
    total_cost: Decimal = Decimal(0)
    average_cost_per_token: Decimal = Decimal(0)

    @property
    def has_history(self) -> bool:
        return self.total_requests > 0

    def copy(self) -> "PerformanceMetrics":
        return PerformanceMetrics(**self.__dict__)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_requests": self.total_requests,
            "successful_requests": self.successful_requests,
            "failed_requests": self.failed_requests,
            "total_processing_time_ms": round(self.total_processing_time_ms, 3),
            "average_response_time_ms": round(self.average_response_time_ms, 3),
            "success_rate": round(self.success_rate, 4),
            "error_rate": round(self.error_rate, 4),
            "total_tokens": self.total_tokens,
            "average_tokens_per_request": round(self.average_tokens_per_request, 3),
            "total_cost": str(self.total_cost),
            "average_cost_per_token": str(self.average_cost_per_token),
        }


# ── Post-processing ──────────────────────────────────────────────


class PostProcessingType(str, Enum):
    FORMATTING = "formatting"
    VALIDATION = "validation"
    ENHANCEMENT = "enhancement"


@dataclass(frozen=True)
class PostProcessingOption:
    type: PostProcessingType
    parameters: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", PostProcessingType(self.type))


@dataclass
class PostProcessingResult:
    type: PostProcessingType
    success: bool
    processing_time_ms: float = 0.0
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "success": self.success,
            "processing_time_ms": round(self.processing_time_ms, 3),
            "error_message": self.error_message,
        }


# ── Requests / responses ─────────────────────────────────────────


@dataclass
class CompletionRequest:
    """A unit of work routed to one provider."""

    input: str
    task_type: str = "general"
    required_languages: FrozenSet[str] = frozenset()
    complexity_level: int = 1
    max_tokens: int = 2048
    temperature: float = 0.7
    post_processing_options: List[PostProcessingOption] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.required_languages = frozenset(self.required_languages)


@dataclass
class CompletionResponse:
    """Outcome of a request. Failures are values, never exceptions."""

    content: str = ""
    success: bool = False
    error_message: Optional[str] = None
    model_used: str = ""
    processing_time_ms: float = 0.0
    tokens_used: int = 0
    cost: Decimal = Decimal(0)
    post_processing_results: List[PostProcessingResult] = field(default_factory=list)
    fallback_used: bool = False
    attempts: int = 0
    failure_kind: Optional[FailureKind] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.cost = to_decimal(self.cost)

    @classmethod
    def failed(
        cls,
        error_message: str,
        failure_kind: FailureKind = FailureKind.PROVIDER_EXECUTION,
        **kwargs: Any,
    ) -> "CompletionResponse":
        return cls(success=False, error_message=error_message,
                   failure_kind=failure_kind, **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": self.content,
            "success": self.success,
            "error_message": self.error_message,
            "model_used": self.model_used,
            "processing_time_ms": round(self.processing_time_ms, 3),
            "tokens_used": self.tokens_used,
            "cost": str(self.cost),
            "post_processing_results": [r.to_dict() for r in self.post_processing_results],
            "fallback_used": self.fallback_used,
            "attempts": self.attempts,
            "failure_kind": self.failure_kind.value if self.failure_kind else None,
            "metadata": self.metadata,
        }
