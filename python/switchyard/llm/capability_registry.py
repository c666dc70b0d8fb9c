"""
Capability Registry: provider name → CapabilityProfile.

Registration order is preserved and is the tie-break order used by
selection, so iteration is always deterministic.
"""

import logging
import threading
from decimal import Decimal
from typing import Dict, Iterator, List, Optional, Tuple

from switchyard.exceptions_unified import ConfigurationError
from switchyard.llm.models import CapabilityProfile

logger = logging.getLogger(__name__)


def default_capabilities() -> List[Tuple[str, CapabilityProfile]]:
    """Built-in catalogue seeded by ``CapabilityRegistry.with_defaults``."""
    return [
        ("gpt-4", CapabilityProfile(
            supported_languages=frozenset({"csharp", "javascript", "python", "java", "typescript"}),
            supported_tasks=frozenset({"code_generation", "code_analysis", "documentation",
                                       "refactoring", "testing"}),
            max_complexity=5,
            max_tokens=8192,
            cost_per_token=Decimal("0.00003"),
        )),
        ("gpt-3.5-turbo", CapabilityProfile(
            supported_languages=frozenset({"csharp", "javascript", "python"}),
            supported_tasks=frozenset({"code_generation", "code_analysis", "documentation"}),
            max_complexity=3,
            max_tokens=4096,
            cost_per_token=Decimal("0.000002"),
        )),
        ("claude-3", CapabilityProfile(
            supported_languages=frozenset({"csharp", "javascript", "python", "java",
                                           "typescript", "rust"}),
            supported_tasks=frozenset({"code_generation", "code_analysis", "documentation",
                                       "refactoring", "testing", "security_analysis"}),
            max_complexity=5,
            max_tokens=100000,
            cost_per_token=Decimal("0.000015"),
        )),
    ]


class CapabilityRegistry:
    """Insertion-ordered, lock-guarded mapping of provider capabilities."""

    def __init__(self) -> None:
        self._profiles: Dict[str, CapabilityProfile] = {}
        self._lock = threading.Lock()

    @classmethod
    def with_defaults(cls) -> "CapabilityRegistry":
        registry = cls()
        for name, profile in default_capabilities():
            registry.register(name, profile)
        return registry

    # ── Mutation ─────────────────────────────────────────────────

    def register(self, name: str, profile: CapabilityProfile) -> None:
        """Register a new provider. Known names change only through ``update``."""
        if not name or not name.strip():
            raise ConfigurationError("Provider name must not be empty")
        with self._lock:
            if name in self._profiles:
                raise ConfigurationError(f"Provider {name} is already registered; use update()")
            self._profiles[name] = profile
        logger.debug("Registered capabilities for %s", name)

    def update(self, name: str, profile: CapabilityProfile) -> CapabilityProfile:
        """Replace the profile of an existing provider; returns the previous one."""
        with self._lock:
            if name not in self._profiles:
                raise KeyError(name)
            previous = self._profiles[name]
            self._profiles[name] = profile
        logger.info("Updated capabilities for %s", name)
        return previous

    def unregister(self, name: str) -> bool:
        with self._lock:
            removed = self._profiles.pop(name, None) is not None
        if removed:
            logger.info("Unregistered provider %s", name)
        return removed

    # ── Queries ──────────────────────────────────────────────────

    def get(self, name: str) -> Optional[CapabilityProfile]:
        with self._lock:
            return self._profiles.get(name)

    def names(self) -> List[str]:
        """Provider names in registration order."""
        with self._lock:
            return list(self._profiles)

    def items(self) -> List[Tuple[str, CapabilityProfile]]:
        with self._lock:
            return list(self._profiles.items())

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._profiles

    def __len__(self) -> int:
        with self._lock:
            return len(self._profiles)

    def __iter__(self) -> Iterator[str]:
        return iter(self.names())
