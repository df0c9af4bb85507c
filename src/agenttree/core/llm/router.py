"""Provider router with retry and ordered failover.

Route selection precedence:
1. A configured model route whose hint prefixes the requested model
2. The session's provider
3. The configured default provider
4. ``reliability.fallback_providers`` in order, skipping providers already tried

Each candidate gets its own retry budget. Retry is inner, failover outer.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from agenttree.config.schema import LLMConfig, ModelRouteConfig, ReliabilityConfig
from agenttree.core.llm.provider import (
    ChatMessage,
    ChatResponse,
    ChunkCallback,
    LLMProvider,
    ToolSchema,
)
from agenttree.core.llm.registry import ProviderRegistry
from agenttree.core.llm.retry import RetryPolicy, SleepFn, call_with_retry
from agenttree.errors import ErrorKind, NotFoundError, ProviderError
from agenttree.logging import get_logger

log = get_logger("router")


@dataclass(slots=True)
class RouteTarget:
    """One provider attempt: which adapter and which model to ask for."""

    provider: LLMProvider
    model: str | None
    reason: str


class ProviderRouter:
    """Routes chat calls to providers and handles retry and failover."""

    def __init__(
        self,
        registry: ProviderRegistry,
        *,
        llm_config: LLMConfig | None = None,
        reliability: ReliabilityConfig | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._registry = registry
        self._llm = llm_config or LLMConfig()
        self._reliability = reliability or ReliabilityConfig()
        self._policy = RetryPolicy(
            retries=max(0, self._reliability.provider_retries),
            backoff_ms=max(0, self._reliability.provider_backoff_ms),
        )
        self._sleep = sleep
        # Adapters built for routes that carry their own credentials
        self._route_adapters: dict[str, LLMProvider] = {}

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    def match_route(self, model: str | None) -> ModelRouteConfig | None:
        if not model:
            return None
        for route in self._llm.model_routes:
            if model.startswith(route.hint):
                return route
        return None

    def _route_adapter(self, route: ModelRouteConfig) -> LLMProvider:
        if not route.api_key:
            return self._registry.get(route.provider)
        adapter = self._route_adapters.get(route.hint)
        if adapter is None:
            adapter = self._registry.create(route.provider, api_key=route.api_key)
            self._route_adapters[route.hint] = adapter
        return adapter

    def primary(self, model: str | None, session_provider: str | None) -> RouteTarget:
        """Pick the first provider to try."""
        route = self.match_route(model)
        if route is not None:
            return RouteTarget(
                self._route_adapter(route), route.model or model, f"route:{route.hint}"
            )
        if session_provider:
            return RouteTarget(self._registry.get(session_provider), model, "session")
        return RouteTarget(
            self._registry.get(self._llm.default_provider),
            model or self._llm.default_model,
            "default",
        )

    def candidates(self, model: str | None, session_provider: str | None) -> list[RouteTarget]:
        """Ordered list of providers to try for one call."""
        targets: list[RouteTarget] = []
        tried: set[str] = set()
        try:
            first = self.primary(model, session_provider)
        except NotFoundError as e:
            unknown = e
            log.warning("Primary provider unavailable, trying fallbacks: %s", e)
        else:
            unknown = None
            targets.append(first)
            tried.add(first.provider.name)
        for name in self._reliability.fallback_providers:
            if name in tried:
                continue
            try:
                provider = self._registry.get(name)
            except NotFoundError:
                log.warning("Skipping unknown fallback provider %s", name)
                continue
            tried.add(name)
            # Model names are vendor specific; fallbacks use their own default.
            targets.append(RouteTarget(provider, None, "fallback"))
        if not targets and unknown is not None:
            raise unknown
        return targets

    async def chat(
        self,
        messages: list[ChatMessage],
        *,
        tools: list[ToolSchema] | None = None,
        model: str | None = None,
        provider_name: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> ChatResponse:
        """Send a chat request with retry and failover."""
        last_error: ProviderError | None = None
        attempted: list[str] = []

        for target in self.candidates(model, provider_name):
            attempted.append(target.provider.name)

            async def attempt(target: RouteTarget = target) -> ChatResponse:
                return await target.provider.chat(
                    messages,
                    tools=tools,
                    model=target.model,
                    temperature=temperature,
                    max_tokens=max_tokens,
                )

            try:
                response = await call_with_retry(
                    attempt, self._policy, sleep=self._sleep, label=target.provider.name
                )
            except ProviderError as e:
                last_error = e
                log.warning(
                    "Provider %s (%s) failed: %s", target.provider.name, target.reason, e
                )
                continue
            response.provider = response.provider or target.provider.name
            return response

        raise self._exhausted(attempted, last_error) from last_error

    async def chat_stream(
        self,
        messages: list[ChatMessage],
        *,
        on_chunk: ChunkCallback,
        tools: list[ToolSchema] | None = None,
        model: str | None = None,
        provider_name: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> ChatResponse:
        """Stream a chat response with retry and failover.

        Once any chunk has reached ``on_chunk`` the call is committed to that
        provider: a later failure is raised without retry or failover.
        """
        delivered = False

        def forward(text: str):
            nonlocal delivered
            delivered = True
            return on_chunk(text)

        last_error: ProviderError | None = None
        attempted: list[str] = []

        for target in self.candidates(model, provider_name):
            attempted.append(target.provider.name)

            async def attempt(target: RouteTarget = target) -> ChatResponse:
                return await target.provider.chat_stream(
                    messages,
                    on_chunk=forward,
                    tools=tools,
                    model=target.model,
                    temperature=temperature,
                    max_tokens=max_tokens,
                )

            try:
                response = await call_with_retry(
                    attempt,
                    self._policy,
                    sleep=self._sleep,
                    can_retry=lambda _: not delivered,
                    label=target.provider.name,
                )
            except ProviderError as e:
                if delivered:
                    raise
                last_error = e
                log.warning(
                    "Provider %s (%s) failed: %s", target.provider.name, target.reason, e
                )
                continue
            response.provider = response.provider or target.provider.name
            return response

        raise self._exhausted(attempted, last_error) from last_error

    def _exhausted(self, attempted: list[str], last_error: ProviderError | None) -> ProviderError:
        kind = last_error.kind if last_error else ErrorKind.PROVIDER_UNAVAILABLE
        return ProviderError(
            f"All providers failed ({', '.join(attempted)}): {last_error}",
            kind=kind,
            status=getattr(last_error, "status", None),
        )

    async def health_check(self) -> dict[str, bool]:
        """Probe every adapter instantiated so far."""
        results: dict[str, bool] = {}
        adapters = dict(self._registry.instances())
        for route_hint, adapter in self._route_adapters.items():
            adapters.setdefault(f"{adapter.name}@{route_hint}", adapter)
        for name, adapter in adapters.items():
            try:
                results[name] = await adapter.health_check()
            except ProviderError as e:
                log.warning("Health check for %s raised: %s", name, e)
                results[name] = False
        return results
