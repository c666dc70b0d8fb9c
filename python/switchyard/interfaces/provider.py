"""Interface for completion backends.

Anything with a ``name`` and an async ``execute`` can be wired into the
ExecutionCoordinator; subclassing CompletionProvider is optional.
"""

from typing import Protocol

from switchyard.llm.models import CompletionRequest, CompletionResponse


class IProvider(Protocol):
    """Opaque request → response capability."""

    name: str

    async def execute(self, request: CompletionRequest) -> CompletionResponse:
        """Execute the request. May raise; failures are handled by the caller."""
        ...
