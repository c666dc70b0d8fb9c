"""
Metrics Store: running performance counters per provider.

All reads and writes go through one exclusive lock. The same lock is
handed to SelectionRuleSet so that metrics and dynamic rules share a
single mutation discipline.
"""

import logging
import threading
from decimal import Decimal
from typing import Dict, List, Optional

from switchyard.llm.models import Number, PerformanceMetrics, to_decimal

logger = logging.getLogger(__name__)


class MetricsStore:
    """Owned, lock-guarded map of provider name → PerformanceMetrics."""

    def __init__(self, lock: Optional[threading.Lock] = None) -> None:
        self.lock = lock or threading.Lock()
        self._metrics: Dict[str, PerformanceMetrics] = {}

    def record_outcome(
        self,
        name: str,
        duration_ms: float,
        success: bool,
        tokens_used: int = 0,
        cost: Number = 0,
    ) -> PerformanceMetrics:
        """Accumulate one outcome and return a snapshot of the updated counters."""
        cost = to_decimal(cost)
        with self.lock:
            m = self._metrics.setdefault(name, PerformanceMetrics())
            m.total_requests += 1
            m.total_processing_time_ms += duration_ms
            m.average_response_time_ms = m.total_processing_time_ms / m.total_requests

            if success:
                m.successful_requests += 1
            else:
                m.failed_requests += 1
            m.success_rate = m.successful_requests / m.total_requests
            m.error_rate = m.failed_requests / m.total_requests

            if tokens_used > 0:
                m.total_tokens += tokens_used
                m.average_tokens_per_request = m.total_tokens / m.total_requests

            if cost > 0:
                m.total_cost += cost
                if m.total_tokens > 0:
                    m.average_cost_per_token = m.total_cost / Decimal(m.total_tokens)

            snapshot = m.copy()

        logger.debug(
            "Recorded %s for %s in %.1fms (requests=%d)",
            "success" if success else "failure", name, duration_ms, snapshot.total_requests,
        )
        return snapshot

    def get(self, name: str) -> PerformanceMetrics:
        """Copy of the counters for ``name``; zeroed counters when unknown."""
        with self.lock:
            m = self._metrics.get(name)
            return m.copy() if m else PerformanceMetrics()

    def snapshot(self) -> Dict[str, PerformanceMetrics]:
        with self.lock:
            return {name: m.copy() for name, m in self._metrics.items()}

    def names(self) -> List[str]:
        with self.lock:
            return list(self._metrics)

