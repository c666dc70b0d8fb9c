"""Resource-aware parallel batch scheduler.

Planning turns a batch of requests plus a resource snapshot into an
immutable ProcessingStrategy. Execution runs the batch in groups of
``batch_size``, shortest input first, behind one asyncio.Semaphore sized
to ``max_parallelism`` and shared by every group, so the concurrency
ceiling holds across the whole batch. Groups run one after another and a
cancel event is checked at each group boundary.

Usage::

    scheduler = ParallelScheduler(PsutilResourceMonitor(), StaticResourceManager.from_host())
    strategy = scheduler.plan_strategy(requests)
    responses = await scheduler.execute(requests, strategy,
                                        coordinator.execute_with_fallback)
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Sequence

import psutil

from switchyard.config.settings import Settings, get_settings
from switchyard.enhanced_logging import track_performance
from switchyard.exceptions_unified import ConfigurationError, failure_kind_for
from switchyard.interfaces.resources import (
    IResourceManager,
    IResourceMonitor,
    ResourceLimits,
    ResourceSnapshot,
    ResourceType,
)
from switchyard.llm.metrics_store import MetricsStore
from switchyard.llm.models import CompletionRequest, CompletionResponse

logger = logging.getLogger(__name__)

Processor = Callable[[CompletionRequest], Awaitable[CompletionResponse]]

GIB = 1024 ** 3
DEFAULT_BATCH_SIZE = 5
DEFAULT_ESTIMATE_MS = 5 * 60 * 1000
DEFAULT_CPU_ALLOCATION = 50.0
MAX_CPU_ALLOCATION = 80.0
MAX_CONCURRENT_ALLOCATION = 10
ESTIMATE_CPU_PENALTY_PERCENT = 70.0
ESTIMATE_CPU_PENALTY = 1.5
RECORD_HISTORY = 1000


# ── Value objects ────────────────────────────────────────────────────


class PriorityLevel(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


@dataclass(frozen=True)
class RequestAnalysis:
    total_requests: int
    average_input_length: float
    max_input_length: int
    min_input_length: int
    request_types: Dict[str, int] = field(default_factory=dict, hash=False, compare=False)
    complexity_score: float = 0.0


@dataclass(frozen=True)
class ResourceAllocation:
    max_cpu_percentage: float = DEFAULT_CPU_ALLOCATION
    max_memory_bytes: float = float(GIB)
    max_concurrent_requests: int = 0
    priority_level: PriorityLevel = PriorityLevel.NORMAL


@dataclass(frozen=True)
class ProcessingStrategy:
    """Computed fresh per batch; never mutated after creation."""

    max_parallelism: int
    batch_size: int
    processing_order: tuple = ()
    resource_allocation: ResourceAllocation = field(default_factory=ResourceAllocation)
    estimated_duration_ms: float = 0.0
    priority_level: PriorityLevel = PriorityLevel.NORMAL

    def __post_init__(self) -> None:
        if self.max_parallelism < 1:
            raise ConfigurationError(f"max_parallelism must be >= 1, got {self.max_parallelism}")
        if self.batch_size < 1:
            raise ConfigurationError(f"batch_size must be >= 1, got {self.batch_size}")
        object.__setattr__(self, "processing_order", tuple(self.processing_order))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_parallelism": self.max_parallelism,
            "batch_size": self.batch_size,
            "requests": len(self.processing_order),
            "estimated_duration_ms": round(self.estimated_duration_ms, 1),
            "priority_level": self.priority_level.value,
            "max_cpu_percentage": self.resource_allocation.max_cpu_percentage,
            "max_memory_bytes": self.resource_allocation.max_memory_bytes,
            "max_concurrent_requests": self.resource_allocation.max_concurrent_requests,
        }


@dataclass(frozen=True)
class ProcessingRecord:
    """Outcome of one scheduled item."""

    key: str
    request_type: str
    processing_time_ms: float
    response_size: int
    success: bool
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class TrendDirection(str, Enum):
    IMPROVING = "improving"
    DEGRADING = "degrading"


@dataclass(frozen=True)
class ProcessingTrend:
    metric: str
    direction: TrendDirection
    change_percentage: float


@dataclass
class ProcessingPerformance:
    total_requests_processed: int = 0
    average_processing_time_ms: float = 0.0
    average_response_size: float = 0.0
    success_rate: float = 0.0
    trends: List[ProcessingTrend] = field(default_factory=list)


@dataclass
class ProcessingOptimization:
    recommended_strategy: ProcessingStrategy
    average_processing_time_ms: float = 0.0
    processing_time_variance: float = 0.0
    success_rate: float = 0.0
    bottlenecks: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    expected_improvement: float = 0.0


# ── Helpers ──────────────────────────────────────────────────────────


def metrics_key(request: CompletionRequest) -> str:
    """Synthetic metrics key: content hash plus token limit."""
    digest = hashlib.sha256(request.input.encode("utf-8")).hexdigest()[:16]
    return f"{digest}_{request.max_tokens}"


def request_type(request: CompletionRequest) -> str:
    value = request.metadata.get("type")
    return str(value) if value is not None else "unknown"


def order_requests(requests: Sequence[CompletionRequest]) -> List[CompletionRequest]:
    """Shortest input first; stable for equal lengths."""
    return sorted(requests, key=lambda r: len(r.input))


def _variance(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    mean = sum(values) / len(values)
    return sum((v - mean) ** 2 for v in values) / len(values)


# ── Scheduler ────────────────────────────────────────────────────────


class ParallelScheduler:
    """Plans and executes bursts of requests under bounded concurrency."""

    def __init__(
        self,
        monitor: IResourceMonitor,
        manager: IResourceManager,
        metrics: Optional[MetricsStore] = None,
        settings: Optional[Settings] = None,
        cpu_count: Optional[int] = None,
    ):
        self.monitor = monitor
        self.manager = manager
        self.metrics = metrics if metrics is not None else MetricsStore()
        self.settings = settings or get_settings()
        self.cpu_count = max(1, cpu_count or psutil.cpu_count(logical=True) or 1)
        self._records: Deque[ProcessingRecord] = deque(maxlen=RECORD_HISTORY)
        self._records_lock = threading.Lock()
        self._in_flight = 0
        self._peak_in_flight = 0
        self._batches_run = 0
        self._cancelled_batches = 0

    # ── Analysis ─────────────────────────────────────────────────────

    @staticmethod
    def complexity_score(requests: Sequence[CompletionRequest]) -> float:
        """Mean of length, token and metadata-density scores, each in [0, 1]."""
        if not requests:
            return 0.0
        avg_length = sum(len(r.input) for r in requests) / len(requests)
        max_tokens = max(r.max_tokens for r in requests)
        with_metadata = sum(1 for r in requests if r.metadata)

        length_score = min(avg_length / 1000.0, 1.0)
        token_score = min(max_tokens / 4000.0, 1.0)
        metadata_score = with_metadata / len(requests)
        return (length_score + token_score + metadata_score) / 3.0

    def analyze_requests(self, requests: Sequence[CompletionRequest]) -> RequestAnalysis:
        lengths = [len(r.input) for r in requests] or [0]
        types: Dict[str, int] = {}
        for r in requests:
            t = request_type(r)
            types[t] = types.get(t, 0) + 1
        return RequestAnalysis(
            total_requests=len(requests),
            average_input_length=sum(lengths) / len(lengths),
            max_input_length=max(lengths),
            min_input_length=min(lengths),
            request_types=types,
            complexity_score=self.complexity_score(requests),
        )

    # ── Planning ─────────────────────────────────────────────────────

    def optimal_parallelism(self, analysis: RequestAnalysis, snapshot: ResourceSnapshot) -> int:
        parallelism = self.cpu_count
        if snapshot.cpu_utilization > self.settings.high_cpu_percent:
            parallelism //= 2
        elif snapshot.cpu_utilization < self.settings.low_cpu_percent:
            logger.debug("CPU at %.0f%% is below %.0f%%; parallelism stays at %d cores",
                         snapshot.cpu_utilization, self.settings.low_cpu_percent, parallelism)
        if analysis.complexity_score > self.settings.complexity_halving_threshold:
            parallelism //= 2
        return max(1, parallelism)

    def optimal_batch_size(self, analysis: RequestAnalysis, parallelism: int) -> int:
        return min(max(1, analysis.total_requests // parallelism), self.settings.max_batch_size)

    @staticmethod
    def priority_for(score: float) -> PriorityLevel:
        if score > 0.8:
            return PriorityLevel.HIGH
        if score > 0.5:
            return PriorityLevel.NORMAL
        return PriorityLevel.LOW

    def resource_allocation(self, analysis: RequestAnalysis, limits: ResourceLimits) -> ResourceAllocation:
        cpu_limit = limits.get(ResourceType.CPU)
        memory_limit = limits.get(ResourceType.MEMORY)
        return ResourceAllocation(
            max_cpu_percentage=min(MAX_CPU_ALLOCATION,
                                   cpu_limit / 100.0 if cpu_limit is not None else DEFAULT_CPU_ALLOCATION),
            max_memory_bytes=memory_limit if memory_limit is not None else float(GIB),
            max_concurrent_requests=min(MAX_CONCURRENT_ALLOCATION, analysis.total_requests),
            priority_level=self.priority_for(analysis.complexity_score),
        )

    def estimate_duration_ms(self, total: int, parallelism: int, snapshot: ResourceSnapshot) -> float:
        estimate = total * self.settings.default_item_estimate_ms / parallelism
        if snapshot.cpu_utilization > ESTIMATE_CPU_PENALTY_PERCENT:
            estimate *= ESTIMATE_CPU_PENALTY
        return estimate

    def default_strategy(self) -> ProcessingStrategy:
        return ProcessingStrategy(
            max_parallelism=self.cpu_count,
            batch_size=DEFAULT_BATCH_SIZE,
            estimated_duration_ms=DEFAULT_ESTIMATE_MS,
            priority_level=PriorityLevel.NORMAL,
        )

    @track_performance
    def plan_strategy(
        self,
        requests: Sequence[CompletionRequest],
        snapshot: Optional[ResourceSnapshot] = None,
        limits: Optional[ResourceLimits] = None,
    ) -> ProcessingStrategy:
        if not requests:
            return self.default_strategy()

        snapshot = snapshot or self.monitor.snapshot()
        limits = limits or self.manager.limits()
        analysis = self.analyze_requests(requests)
        parallelism = self.optimal_parallelism(analysis, snapshot)

        strategy = ProcessingStrategy(
            max_parallelism=parallelism,
            batch_size=self.optimal_batch_size(analysis, parallelism),
            processing_order=tuple(order_requests(requests)),
            resource_allocation=self.resource_allocation(analysis, limits),
            estimated_duration_ms=self.estimate_duration_ms(len(requests), parallelism, snapshot),
            priority_level=self.priority_for(analysis.complexity_score),
        )
        logger.info(
            "Strategy for %d requests: parallelism=%d batch=%d priority=%s (cpu=%.0f%%, complexity=%.2f)",
            len(requests), strategy.max_parallelism, strategy.batch_size,
            strategy.priority_level.value, snapshot.cpu_utilization, analysis.complexity_score,
        )
        return strategy

    # ── Execution ────────────────────────────────────────────────────

    async def _run_item(self, request: CompletionRequest, processor: Processor,
                        gate: asyncio.Semaphore) -> CompletionResponse:
        async with gate:
            self._in_flight += 1
            self._peak_in_flight = max(self._peak_in_flight, self._in_flight)
            start = time.perf_counter()
            try:
                response = await processor(request)
            except Exception as e:  # one item's failure never cancels its siblings
                logger.warning("Scheduled item failed: %s", e)
                response = CompletionResponse.failed(
                    f"{type(e).__name__}: {e}", failure_kind_for(e),
                )
            finally:
                self._in_flight -= 1
            elapsed_ms = (time.perf_counter() - start) * 1000

        self._record(request, response, elapsed_ms)
        return response

    def _record(self, request: CompletionRequest, response: CompletionResponse,
                elapsed_ms: float) -> None:
        key = metrics_key(request)
        self.metrics.record_outcome(
            key,
            duration_ms=elapsed_ms,
            success=response.success,
            tokens_used=response.tokens_used,
            cost=response.cost,
        )
        with self._records_lock:
            self._records.append(ProcessingRecord(
                key=key,
                request_type=request_type(request),
                processing_time_ms=elapsed_ms,
                response_size=len(response.content or ""),
                success=response.success,
            ))

    async def execute(
        self,
        requests: Sequence[CompletionRequest],
        strategy: ProcessingStrategy,
        processor: Processor,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[CompletionResponse]:
        """Run ``requests`` group by group; results follow processing order.

        The strategy's ``processing_order`` is used when it is set;
        otherwise ``requests`` are ordered shortest input first.

        When ``cancel_event`` is set, no further group is started and the
        results gathered so far are returned.
        """
        ordered = list(strategy.processing_order) or order_requests(requests)
        gate = asyncio.Semaphore(strategy.max_parallelism)
        size = strategy.batch_size
        groups = [ordered[i:i + size] for i in range(0, len(ordered), size)]
        results: List[CompletionResponse] = []
        self._batches_run += 1

        for index, group in enumerate(groups):
            if cancel_event is not None and cancel_event.is_set():
                self._cancelled_batches += 1
                logger.warning("Batch cancelled after %d of %d groups", index, len(groups))
                break
            group_results = await asyncio.gather(
                *(self._run_item(r, processor, gate) for r in group)
            )
            results.extend(group_results)

        logger.info("Processed %d of %d requests (%d succeeded)", len(results), len(ordered),
                    sum(1 for r in results if r.success))
        return results

    async def run(
        self,
        requests: Sequence[CompletionRequest],
        processor: Processor,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[CompletionResponse]:
        """Plan a strategy from live resources and execute with it."""
        strategy = self.plan_strategy(requests)
        return await self.execute(requests, strategy, processor, cancel_event)

    # ── Performance analysis ─────────────────────────────────────────

    def records(self) -> List[ProcessingRecord]:
        with self._records_lock:
            return list(self._records)

    def get_performance_metrics(self, now: Optional[datetime] = None) -> ProcessingPerformance:
        records = self.records()
        if not records:
            return ProcessingPerformance()
        return ProcessingPerformance(
            total_requests_processed=len(records),
            average_processing_time_ms=sum(r.processing_time_ms for r in records) / len(records),
            average_response_size=sum(r.response_size for r in records) / len(records),
            success_rate=sum(1 for r in records if r.success) / len(records),
            trends=self.processing_trends(records, now),
        )

    @staticmethod
    def processing_trends(records: Sequence[ProcessingRecord],
                          now: Optional[datetime] = None) -> List[ProcessingTrend]:
        """Compare the last hour against everything older."""
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(hours=1)
        recent = [r.processing_time_ms for r in records if r.timestamp > cutoff]
        older = [r.processing_time_ms for r in records if r.timestamp <= cutoff]
        if not recent or not older:
            return []
        recent_avg = sum(recent) / len(recent)
        older_avg = sum(older) / len(older)
        if older_avg == 0:
            return []
        return [ProcessingTrend(
            metric="processing_time",
            direction=TrendDirection.IMPROVING if recent_avg < older_avg else TrendDirection.DEGRADING,
            change_percentage=abs((recent_avg - older_avg) / older_avg * 100),
        )]

    def optimize_processing(self, records: Optional[Sequence[ProcessingRecord]] = None) -> ProcessingOptimization:
        records = list(records) if records is not None else self.records()
        if not records:
            return ProcessingOptimization(recommended_strategy=self.default_strategy())

        times = [r.processing_time_ms for r in records]
        avg = sum(times) / len(times)
        variance = _variance(times)
        success_rate = sum(1 for r in records if r.success) / len(records)

        bottlenecks: List[str] = []
        slow = [t for t in times if t > avg * 2]
        if slow:
            bottlenecks.append(f"Slow processing: {len(slow)} requests taking >{avg * 2:.0f}ms")
        failure_rate = 1.0 - success_rate
        if failure_rate > 0.1:
            bottlenecks.append(f"High failure rate: {failure_rate:.1%}")

        recommendations: List[str] = []
        if variance > 1000:
            recommendations.append("Consider request batching to reduce processing time variance")
        if avg > 5000:
            recommendations.append("Consider increasing parallelism or optimizing request processing")
        if success_rate < 0.9:
            recommendations.append("Investigate and fix processing failures")
        recommendations.extend(f"Address bottleneck: {b}" for b in bottlenecks)

        default = self.default_strategy()
        recommended = ProcessingStrategy(
            max_parallelism=max(1, default.max_parallelism - 1) if avg > 5000 else default.max_parallelism,
            batch_size=max(1, default.batch_size - 1) if variance > 1000 else default.batch_size,
            estimated_duration_ms=default.estimated_duration_ms,
            priority_level=default.priority_level,
        )

        improvement = 0.0
        if avg > 5000:
            improvement += 0.2
        if success_rate < 0.9:
            improvement += 0.1

        logger.info("Processing optimization produced %d recommendation(s)", len(recommendations))
        return ProcessingOptimization(
            recommended_strategy=recommended,
            average_processing_time_ms=avg,
            processing_time_variance=variance,
            success_rate=success_rate,
            bottlenecks=bottlenecks,
            recommendations=recommendations,
            expected_improvement=min(improvement, 0.5),
        )

    @property
    def stats(self) -> Dict[str, Any]:
        return {
            "cpu_count": self.cpu_count,
            "batches_run": self._batches_run,
            "cancelled_batches": self._cancelled_batches,
            "peak_concurrency": self._peak_in_flight,
            "records": len(self.records()),
        }
