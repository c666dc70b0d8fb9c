"""Provider backends."""

from switchyard.llm.providers.base import CompletionProvider
from switchyard.llm.providers.openai_compatible import OpenAICompatibleProvider

__all__ = [
    "CompletionProvider",
    "OpenAICompatibleProvider",
]
