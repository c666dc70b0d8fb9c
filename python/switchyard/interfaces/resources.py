"""Interfaces for host resource inspection.

Both collaborators are queried once per scheduling decision.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Protocol


class ResourceType(str, Enum):
    CPU = "cpu"
    MEMORY = "memory"
    STORAGE = "storage"


@dataclass(frozen=True)
class ResourceSnapshot:
    """Point-in-time utilization, each value a percentage in 0..100."""
    cpu_utilization: float
    memory_utilization: float
    disk_utilization: float = 0.0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cpu_utilization": self.cpu_utilization,
            "memory_utilization": self.memory_utilization,
            "disk_utilization": self.disk_utilization,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class ResourceLimits:
    max_by_resource_type: Dict[ResourceType, float] = field(default_factory=dict)

    def get(self, resource: ResourceType) -> Optional[float]:
        return self.max_by_resource_type.get(resource)


class IResourceMonitor(Protocol):
    def snapshot(self) -> ResourceSnapshot:
        """Current CPU, memory and disk utilization."""
        ...


class IResourceManager(Protocol):
    def limits(self) -> ResourceLimits:
        """Maximum allowance per resource type."""
        ...
