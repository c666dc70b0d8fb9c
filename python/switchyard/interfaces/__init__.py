"""Protocols for the collaborators the routing core consumes."""

from switchyard.interfaces.provider import IProvider
from switchyard.interfaces.resources import (
    IResourceManager,
    IResourceMonitor,
    ResourceLimits,
    ResourceSnapshot,
    ResourceType,
)

__all__ = [
    "IProvider",
    "IResourceManager",
    "IResourceMonitor",
    "ResourceLimits",
    "ResourceSnapshot",
    "ResourceType",
]
