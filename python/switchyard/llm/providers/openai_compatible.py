"""
OpenAI-compatible HTTP provider.

Posts to ``{base_url}/chat/completions`` and maps the reply onto a
CompletionResponse. Transport errors are retried with exponential
backoff; HTTP error statuses are not retried and surface as
ProviderExecutionError.
"""

import time
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from switchyard.config.settings import Settings, get_settings
from switchyard.enhanced_logging import get_logger
from switchyard.exceptions_unified import ProviderExecutionError
from switchyard.llm.models import CompletionRequest, CompletionResponse, Number, to_decimal
from switchyard.llm.providers.base import CompletionProvider

logger = get_logger(__name__)


class OpenAICompatibleProvider(CompletionProvider):
    """Any endpoint speaking the OpenAI chat completions protocol."""

    def __init__(
        self,
        name: str,
        base_url: str,
        model: str,
        api_key: Optional[str] = None,
        cost_per_token: Number = Decimal(0),
        client: Optional[httpx.AsyncClient] = None,
        settings: Optional[Settings] = None,
        extra_headers: Optional[Dict[str, str]] = None,
        wait: Optional[wait_base] = None,
    ):
        super().__init__(name)
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.api_key = api_key
        self.cost_per_token = to_decimal(cost_per_token)
        self.settings = settings or get_settings()
        self.extra_headers = extra_headers or {}
        self._client = client
        self._wait = wait or wait_exponential(multiplier=1, min=2, max=10)

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        headers.update(self.extra_headers)
        return headers

    def _payload(self, request: CompletionRequest) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [{"role": "user", "content": request.input}],
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
        }

    async def _post(self, client: httpx.AsyncClient, request: CompletionRequest) -> httpx.Response:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.settings.provider_max_retries),
            wait=self._wait,
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        ):
            with attempt:
                return await client.post(
                    f"{self.base_url}/chat/completions",
                    headers=self._headers(),
                    json=self._payload(request),
                )
        raise ProviderExecutionError("Retry loop exited without a response", provider=self.name)

    async def execute(self, request: CompletionRequest) -> CompletionResponse:
        start = time.perf_counter()
        try:
            if self._client is not None:
                r = await self._post(self._client, request)
            else:
                async with httpx.AsyncClient(timeout=self.settings.provider_timeout_seconds) as client:
                    r = await self._post(client, request)
        except httpx.TransportError as e:
            raise ProviderExecutionError(
                f"Transport error calling {self.base_url}: {e}", provider=self.name
            ) from e

        if r.status_code != 200:
            raise ProviderExecutionError(
                f"OpenAI-compatible API error ({self.base_url}): {r.status_code}",
                provider=self.name,
            )

        try:
            d = r.json()
            content = d["choices"][0]["message"]["content"]
            tokens = int(d.get("usage", {}).get("total_tokens", 0))
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ProviderExecutionError(
                f"Malformed response from {self.base_url}", provider=self.name
            ) from e

        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.debug("%s returned %d tokens in %.1fms", self.name, tokens, elapsed_ms)
        return CompletionResponse(
            content=content,
            success=True,
            model_used=self.name,
            processing_time_ms=elapsed_ms,
            tokens_used=tokens,
            cost=self.cost_per_token * tokens,
        )
