"""Tests for the parallel batch scheduler (switchyard/scheduling/parallel_scheduler.py)."""

import asyncio
import hashlib
import logging
import random
from datetime import datetime, timedelta, timezone

import pytest

from switchyard.exceptions_unified import ConfigurationError
from switchyard.interfaces.resources import ResourceLimits, ResourceSnapshot, ResourceType
from switchyard.llm.capability_registry import CapabilityRegistry
from switchyard.llm.models import CompletionRequest, CompletionResponse
from switchyard.llm.providers.base import CompletionProvider
from switchyard.orchestration.execution_coordinator import ExecutionCoordinator
from switchyard.scheduling.parallel_scheduler import (
    GIB,
    ParallelScheduler,
    PriorityLevel,
    ProcessingRecord,
    ProcessingStrategy,
    TrendDirection,
    metrics_key,
    order_requests,
)


# ── Helpers ──────────────────────────────────────────────────────────


class _Monitor:
    def __init__(self, cpu=50.0):
        self.cpu = cpu
        self.calls = 0

    def snapshot(self):
        self.calls += 1
        return ResourceSnapshot(cpu_utilization=self.cpu, memory_utilization=40.0)


class _Manager:
    def __init__(self, limits=None):
        self._limits = ResourceLimits(dict(limits or {}))
        self.calls = 0

    def limits(self):
        self.calls += 1
        return self._limits


def _scheduler(settings, cpu=50.0, cores=8, limits=None):
    return ParallelScheduler(_Monitor(cpu), _Manager(limits), settings=settings, cpu_count=cores)


def _requests(n, max_tokens=100):
    """n requests with distinct input lengths 1..n, shuffled."""
    reqs = [CompletionRequest(input="x" * i, max_tokens=max_tokens) for i in range(1, n + 1)]
    random.Random(7).shuffle(reqs)
    return reqs


def _heavy(n):
    return [CompletionRequest(input="y" * 2000, max_tokens=4000, metadata={"type": "doc"})
            for _ in range(n)]


async def _echo(request):
    await asyncio.sleep(0.001)
    return CompletionResponse(content=request.input, success=True)


# =========================================================================
# Planning
# =========================================================================


class TestParallelism:
    @pytest.mark.parametrize("cpu, expected", [(50.0, 8), (90.0, 4), (10.0, 8), (80.0, 8)])
    def test_cpu_adjustment(self, settings, cpu, expected):
        scheduler = _scheduler(settings, cpu=cpu, cores=8)
        assert scheduler.plan_strategy(_requests(4)).max_parallelism == expected

    def test_low_cpu_keeps_core_count(self, settings, caplog):
        settings.low_cpu_percent = 40.0
        scheduler = _scheduler(settings, cpu=35.0, cores=6)
        with caplog.at_level(logging.DEBUG, logger="switchyard.scheduling.parallel_scheduler"):
            parallelism = scheduler.plan_strategy(_requests(4)).max_parallelism
        assert parallelism == 6
        assert any("below 40%" in r.getMessage() for r in caplog.records)

    def test_high_complexity_halves(self, settings):
        scheduler = _scheduler(settings, cpu=50.0, cores=8)
        assert scheduler.plan_strategy(_heavy(4)).max_parallelism == 4

    def test_both_halvings_stack(self, settings):
        scheduler = _scheduler(settings, cpu=95.0, cores=8)
        assert scheduler.plan_strategy(_heavy(4)).max_parallelism == 2

    def test_floor_of_one(self, settings):
        scheduler = _scheduler(settings, cpu=95.0, cores=1)
        assert scheduler.plan_strategy(_heavy(4)).max_parallelism == 1


class TestBatchAndOrder:
    @pytest.mark.parametrize("n, cores, expected", [(12, 4, 3), (100, 2, 10), (3, 8, 1)])
    def test_batch_size(self, settings, n, cores, expected):
        scheduler = _scheduler(settings, cores=cores)
        assert scheduler.plan_strategy(_requests(n)).batch_size == expected

    def test_shortest_input_first(self, settings):
        strategy = _scheduler(settings).plan_strategy(_requests(6))
        assert [len(r.input) for r in strategy.processing_order] == [1, 2, 3, 4, 5, 6]

    def test_order_is_stable_for_equal_lengths(self):
        a, b, c = (CompletionRequest(input=s) for s in ("aa", "b", "cc"))
        assert order_requests([a, b, c]) == [b, a, c]


class TestComplexityAndPriority:
    def test_complexity_score(self):
        reqs = [
            CompletionRequest(input="a" * 300, max_tokens=2000, metadata={"type": "x"}),
            CompletionRequest(input="a" * 700, max_tokens=1000),
        ]
        assert ParallelScheduler.complexity_score(reqs) == pytest.approx(0.5)

    def test_complexity_score_saturates(self):
        assert ParallelScheduler.complexity_score(_heavy(3)) == pytest.approx(1.0)

    @pytest.mark.parametrize("score, level", [
        (0.81, PriorityLevel.HIGH),
        (0.8, PriorityLevel.NORMAL),
        (0.51, PriorityLevel.NORMAL),
        (0.5, PriorityLevel.LOW),
    ])
    def test_priority_thresholds(self, score, level):
        assert ParallelScheduler.priority_for(score) is level

    def test_request_types_counted(self, settings):
        reqs = _heavy(2) + [CompletionRequest(input="z")]
        analysis = _scheduler(settings).analyze_requests(reqs)
        assert analysis.request_types == {"doc": 2, "unknown": 1}
        assert analysis.max_input_length == 2000
        assert analysis.min_input_length == 1


class TestStrategyDetails:
    def test_estimate(self, settings):
        strategy = _scheduler(settings, cpu=50.0, cores=4).plan_strategy(_requests(12))
        assert strategy.estimated_duration_ms == pytest.approx(3000)

    def test_estimate_cpu_penalty(self, settings):
        strategy = _scheduler(settings, cpu=75.0, cores=4).plan_strategy(_requests(12))
        assert strategy.estimated_duration_ms == pytest.approx(4500)

    def test_allocation_defaults(self, settings):
        strategy = _scheduler(settings).plan_strategy(_requests(12))
        alloc = strategy.resource_allocation
        assert alloc.max_cpu_percentage == 50.0
        assert alloc.max_memory_bytes == float(GIB)
        assert alloc.max_concurrent_requests == 10

    def test_allocation_from_limits(self, settings):
        limits = {ResourceType.CPU: 9000.0, ResourceType.MEMORY: 2.0 * GIB}
        strategy = _scheduler(settings, limits=limits).plan_strategy(_requests(3))
        alloc = strategy.resource_allocation
        assert alloc.max_cpu_percentage == 80.0
        assert alloc.max_memory_bytes == 2.0 * GIB
        assert alloc.max_concurrent_requests == 3

    def test_empty_batch_gets_default_strategy(self, settings):
        scheduler = _scheduler(settings, cores=6)
        strategy = scheduler.plan_strategy([])
        assert strategy.max_parallelism == 6
        assert strategy.batch_size == 5
        assert strategy.estimated_duration_ms == 300000
        assert strategy.priority_level is PriorityLevel.NORMAL
        assert scheduler.monitor.calls == 0

    def test_collaborators_queried_once(self, settings):
        scheduler = _scheduler(settings)
        scheduler.plan_strategy(_requests(5))
        assert scheduler.monitor.calls == 1
        assert scheduler.manager.calls == 1

    @pytest.mark.parametrize("parallelism, batch", [(0, 1), (1, 0)])
    def test_invalid_strategy_rejected(self, parallelism, batch):
        with pytest.raises(ConfigurationError):
            ProcessingStrategy(max_parallelism=parallelism, batch_size=batch)


# =========================================================================
# Execution
# =========================================================================


class TestExecution:
    async def test_concurrency_never_exceeds_parallelism(self, settings):
        scheduler = _scheduler(settings)
        in_flight = 0
        peak = 0

        async def processor(request):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return CompletionResponse(content=request.input, success=True)

        strategy = ProcessingStrategy(max_parallelism=3, batch_size=10)
        results = await scheduler.execute(_requests(10), strategy, processor)

        assert len(results) == 10
        assert peak <= 3
        assert scheduler.stats["peak_concurrency"] <= 3

    async def test_groups_run_in_sequence(self, settings):
        scheduler = _scheduler(settings, cores=4)
        events = []

        async def processor(request):
            events.append(("start", len(request.input)))
            await asyncio.sleep(0.001 * (13 - len(request.input)))
            events.append(("end", len(request.input)))
            return CompletionResponse(content=request.input, success=True)

        requests = _requests(12)
        strategy = scheduler.plan_strategy(requests)
        assert (strategy.max_parallelism, strategy.batch_size) == (4, 3)

        results = await scheduler.execute(requests, strategy, processor)

        assert [len(r.content) for r in results] == list(range(1, 13))
        groups = [range(1, 4), range(4, 7), range(7, 10), range(10, 13)]
        for previous, current in zip(groups, groups[1:]):
            last_end = max(i for i, e in enumerate(events) if e[0] == "end" and e[1] in previous)
            first_start = min(i for i, e in enumerate(events)
                              if e[0] == "start" and e[1] in current)
            assert first_start > last_end

    async def test_strategy_order_is_followed(self, settings):
        requests = _requests(4)
        custom = sorted(requests, key=lambda r: -len(r.input))
        strategy = ProcessingStrategy(2, 2, processing_order=custom)

        results = await _scheduler(settings).execute(requests, strategy, _echo)

        assert [len(r.content) for r in results] == [4, 3, 2, 1]

    async def test_failure_is_isolated(self, settings):
        scheduler = _scheduler(settings)

        async def processor(request):
            if len(request.input) == 2:
                raise RuntimeError("boom")
            return CompletionResponse(content=request.input, success=True)

        results = await scheduler.execute(_requests(6), ProcessingStrategy(2, 3), processor)

        assert len(results) == 6
        assert [r.success for r in results] == [True, False, True, True, True, True]
        assert results[1].error_message == "RuntimeError: boom"

    async def test_cancel_mid_batch_returns_partial(self, settings):
        scheduler = _scheduler(settings)
        cancel = asyncio.Event()

        async def processor(request):
            cancel.set()
            return CompletionResponse(content=request.input, success=True)

        results = await scheduler.execute(_requests(12), ProcessingStrategy(4, 3),
                                          processor, cancel_event=cancel)

        assert [len(r.content) for r in results] == [1, 2, 3]
        assert scheduler.stats["cancelled_batches"] == 1

    async def test_cancel_before_start(self, settings):
        scheduler = _scheduler(settings)
        cancel = asyncio.Event()
        cancel.set()
        results = await scheduler.execute(_requests(4), ProcessingStrategy(2, 2), _echo,
                                          cancel_event=cancel)
        assert results == []
        assert scheduler.records() == []

    async def test_metrics_recorded_per_synthetic_key(self, settings):
        scheduler = _scheduler(settings)
        requests = _requests(4)
        await scheduler.run(requests, _echo)

        for request in requests:
            assert scheduler.metrics.get(metrics_key(request)).total_requests == 1
        assert len(scheduler.records()) == 4

    def test_metrics_key_format(self):
        request = CompletionRequest(input="abc", max_tokens=50)
        digest = hashlib.sha256(b"abc").hexdigest()[:16]
        assert metrics_key(request) == f"{digest}_50"

    async def test_through_coordinator_uses_registered_providers(self, settings):
        class _Ok(CompletionProvider):
            async def execute(self, request):
                return CompletionResponse(content="done", success=True, tokens_used=5)

        registry = CapabilityRegistry.with_defaults()
        coordinator = ExecutionCoordinator(
            registry, {name: _Ok(name) for name in registry.names()}, settings=settings)
        scheduler = _scheduler(settings, cores=2)

        results = await scheduler.run(_requests(8), coordinator.execute_with_fallback)

        assert len(results) == 8
        assert all(r.success for r in results)
        assert {r.model_used for r in results} <= set(registry.names())


# =========================================================================
# Performance analysis
# =========================================================================


NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def _record(ms, success=True, age=timedelta(0)):
    return ProcessingRecord(key="k", request_type="unknown", processing_time_ms=ms,
                            response_size=10, success=success, timestamp=NOW - age)


class TestPerformanceAnalysis:
    async def test_performance_metrics(self, settings):
        scheduler = _scheduler(settings)

        async def processor(request):
            return CompletionResponse(content="ab", success=len(request.input) != 1)

        await scheduler.execute(_requests(4), ProcessingStrategy(2, 2), processor)
        perf = scheduler.get_performance_metrics()

        assert perf.total_requests_processed == 4
        assert perf.success_rate == pytest.approx(0.75)
        assert perf.average_response_size == pytest.approx(2.0)

    def test_no_records(self, settings):
        perf = _scheduler(settings).get_performance_metrics()
        assert perf.total_requests_processed == 0
        assert perf.trends == []

    def test_trend_improving(self):
        records = [_record(100, age=timedelta(hours=2)), _record(50)]
        [trend] = ParallelScheduler.processing_trends(records, NOW)
        assert trend.direction is TrendDirection.IMPROVING
        assert trend.change_percentage == pytest.approx(50.0)

    def test_trend_needs_both_windows(self):
        assert ParallelScheduler.processing_trends([_record(100)], NOW) == []

    def test_optimize_empty(self, settings):
        result = _scheduler(settings, cores=3).optimize_processing([])
        assert result.recommended_strategy.max_parallelism == 3
        assert result.recommendations == []

    def test_optimize_flags_variance_and_failures(self, settings):
        records = [_record(100) for _ in range(7)]
        records += [_record(100, success=False), _record(100, success=False), _record(10000)]

        result = _scheduler(settings, cores=4).optimize_processing(records)

        assert result.average_processing_time_ms == pytest.approx(1090)
        assert "Slow processing: 1 requests taking >2180ms" in result.bottlenecks
        assert "High failure rate: 20.0%" in result.bottlenecks
        assert "Investigate and fix processing failures" in result.recommendations
        assert result.recommended_strategy.batch_size == 4
        assert result.recommended_strategy.max_parallelism == 4
        assert result.expected_improvement == pytest.approx(0.1)
