"""
Provider contract.

A provider is an opaque backend: it receives a CompletionRequest and
returns a CompletionResponse. Raising, or returning ``success=False``,
both count as a provider execution failure for the coordinator.
"""

from abc import ABC, abstractmethod

from switchyard.llm.models import CompletionRequest, CompletionResponse


class CompletionProvider(ABC):
    """Abstract base class for completion backends."""

    def __init__(self, name: str):
        self.name = name

    @abstractmethod
    async def execute(self, request: CompletionRequest) -> CompletionResponse:
        """Run the request and return the provider's response."""
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
