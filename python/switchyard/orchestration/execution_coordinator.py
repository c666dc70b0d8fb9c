"""
Execution Coordinator: provider selection with bounded fallback.

The fallback policy is an explicit loop: each failed provider is added to
an accumulated exclusion set and the loop stops after
``settings.max_execution_attempts`` invocations (two by default: the
original call plus one fallback). Nothing raised by a provider escapes
``execute_with_fallback``; failures come back as failed responses.
"""

import logging
import time
from typing import Any, Dict, Mapping, Optional, Set

from switchyard.config.settings import Settings, get_settings
from switchyard.exceptions_unified import (
    FailureKind,
    NoCandidateAvailableError,
    ProviderExecutionError,
    ProviderNotWiredError,
    failure_kind_for,
)
from switchyard.interfaces.provider import IProvider
from switchyard.llm.capability_registry import CapabilityRegistry
from switchyard.llm.metrics_store import MetricsStore
from switchyard.llm.models import CapabilityProfile, CompletionRequest, CompletionResponse
from switchyard.llm.post_processing import apply_post_processing
from switchyard.llm.rules import SelectionRuleSet
from switchyard.llm.selection import SelectionEngine

logger = logging.getLogger(__name__)


class ExecutionCoordinator:
    """Drives the selection engine and providers for single requests."""

    def __init__(
        self,
        registry: CapabilityRegistry,
        providers: Optional[Mapping[str, IProvider]] = None,
        metrics: Optional[MetricsStore] = None,
        rules: Optional[SelectionRuleSet] = None,
        selector: Optional[SelectionEngine] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.registry = registry
        self.providers: Dict[str, IProvider] = dict(providers or {})
        self.metrics = metrics or MetricsStore()
        self.selector = selector or SelectionEngine(
            registry, self.metrics, rules=rules, settings=self.settings
        )

    @property
    def rules(self) -> SelectionRuleSet:
        return self.selector.rules

    # ── Wiring ───────────────────────────────────────────────────

    def register_provider(self, name: str, provider: IProvider,
                          profile: Optional[CapabilityProfile] = None) -> None:
        """Attach a backend; registers capabilities when a profile is given."""
        if profile is not None:
            self.registry.register(name, profile)
        self.providers[name] = provider
        logger.info("Provider %s wired", name)

    def update_capabilities(self, name: str, profile: CapabilityProfile) -> None:
        self.registry.update(name, profile)

    # ── Execution ────────────────────────────────────────────────

    async def execute_with_fallback(self, request: CompletionRequest) -> CompletionResponse:
        excluded: Set[str] = set()
        attempts = 0
        last_failure: Optional[CompletionResponse] = None

        while attempts < self.settings.max_execution_attempts:
            try:
                name = self.selector.select_optimal(request, excluded)
            except NoCandidateAvailableError as e:
                if attempts > 0:
                    logger.warning("No fallback provider left after %s failed", sorted(excluded))
                    break
                name = self.settings.default_provider
                if name not in self.providers:
                    logger.warning("No candidate and default provider %s is not wired", name)
                    return CompletionResponse.failed(
                        e.message, FailureKind.NO_CANDIDATE, model_used=name,
                    )
                logger.warning("No candidate available, using default provider %s", name)

            if name in excluded:
                break

            attempts += 1
            if attempts > 1:
                logger.info("Falling back to %s (excluded: %s)", name, sorted(excluded))
            response = await self._invoke(name, request)
            if response.success:
                response.attempts = attempts
                response.fallback_used = attempts > 1
                logger.info("Request served by %s in %.1fms", name, response.processing_time_ms)
                return apply_post_processing(response, request.post_processing_options)

            excluded.add(name)
            last_failure = response

        if last_failure is None:
            return CompletionResponse.failed(
                "No candidate provider available", FailureKind.NO_CANDIDATE,
            )
        last_failure.attempts = attempts
        last_failure.fallback_used = True
        return last_failure

    async def _invoke(self, name: str, request: CompletionRequest) -> CompletionResponse:
        """One provider call. Always records an outcome and never raises."""
        start = time.perf_counter()
        provider = self.providers.get(name)
        try:
            if provider is None:
                raise ProviderNotWiredError(f"No backend wired for provider {name}", provider=name)
            response = await provider.execute(request)
        except ProviderExecutionError as e:
            response = CompletionResponse.failed(e.message, model_used=name)
        except Exception as e:  # opaque backend: any error is a provider failure
            response = CompletionResponse.failed(f"{type(e).__name__}: {e}", failure_kind_for(e),
                                                 model_used=name)
        elapsed_ms = (time.perf_counter() - start) * 1000

        response.model_used = name
        response.processing_time_ms = response.processing_time_ms or elapsed_ms
        if not response.success:
            response.failure_kind = response.failure_kind or FailureKind.PROVIDER_EXECUTION
            response.error_message = response.error_message or "Provider reported failure"
            logger.warning("Provider %s failed: %s", name, response.error_message)

        self.metrics.record_outcome(
            name,
            duration_ms=elapsed_ms,
            success=response.success,
            tokens_used=response.tokens_used if response.success else 0,
            cost=response.cost if response.success else 0,
        )
        return response

    # ── Introspection ────────────────────────────────────────────

    def get_stats(self) -> Dict[str, Any]:
        return {
            "providers": self.registry.names(),
            "wired": sorted(self.providers),
            "metrics": {name: m.to_dict() for name, m in self.metrics.snapshot().items()},
            "rules": [r.to_dict() for r in self.rules.rules()],
        }
