"""
Host resource adapters for the parallel scheduler.

PsutilResourceMonitor reads live utilization through psutil;
StaticResourceManager hands out limits supplied at construction time.
Keeps a short history of snapshots for trend inspection.
"""

import logging
from collections import deque
from typing import Deque, Dict, List, Optional

import psutil

from switchyard.interfaces.resources import ResourceLimits, ResourceSnapshot, ResourceType

logger = logging.getLogger(__name__)


class PsutilResourceMonitor:
    """Live CPU, memory and disk utilization from psutil."""

    def __init__(self, disk_path: str = "/", history_window: int = 120):
        self.disk_path = disk_path
        self.history: Deque[ResourceSnapshot] = deque(maxlen=history_window)

    def snapshot(self) -> ResourceSnapshot:
        # interval=None compares against the previous call; never blocks
        cpu = psutil.cpu_percent(interval=None)
        memory = psutil.virtual_memory().percent
        try:
            disk = psutil.disk_usage(self.disk_path).percent
        except OSError as e:
            logger.warning("Disk usage unavailable for %s: %s", self.disk_path, e)
            disk = 0.0
        snap = ResourceSnapshot(cpu_utilization=cpu, memory_utilization=memory,
                                disk_utilization=disk)
        self.history.append(snap)
        return snap

    def average_cpu(self, last_n: Optional[int] = None) -> float:
        samples: List[ResourceSnapshot] = list(self.history)
        if last_n:
            samples = samples[-last_n:]
        if not samples:
            return 0.0
        return sum(s.cpu_utilization for s in samples) / len(samples)


class StaticResourceManager:
    """Fixed per-resource limits."""

    def __init__(self, limits: Optional[Dict[ResourceType, float]] = None):
        self._limits = ResourceLimits(dict(limits or {}))

    @classmethod
    def from_host(cls) -> "StaticResourceManager":
        """Memory limit = total physical memory; CPU and storage left unset."""
        return cls({ResourceType.MEMORY: float(psutil.virtual_memory().total)})

    def limits(self) -> ResourceLimits:
        return self._limits
