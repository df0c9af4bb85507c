"""Shared test utilities for agenttree tests."""

from __future__ import annotations

import inspect
import json
from collections.abc import Callable
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock

from agenttree.agent import Agent
from agenttree.config import Config
from agenttree.core.llm import (
    ChatMessage,
    ChatResponse,
    HealthStatus,
    ProviderRegistry,
    ToolCall,
    ToolSchema,
)
from agenttree.core.llm.provider import ChunkCallback

# =============================================================================
# Scripted provider
# =============================================================================


def call(name: str, arguments: dict[str, Any] | None = None, call_id: str = "") -> ToolCall:
    """Build a ToolCall with JSON-encoded arguments."""
    return ToolCall(id=call_id or f"call_{name}", name=name, arguments=json.dumps(arguments or {}))


def reply(text: str = "", *calls: ToolCall, model: str = "scripted-model") -> ChatResponse:
    """Build a ChatResponse, with tool calls when given."""
    return ChatResponse(
        content=text,
        finish_reason="tool_calls" if calls else "stop",
        model=model,
        input_tokens=10,
        output_tokens=5,
        tool_calls=list(calls),
    )


class ScriptedProvider:
    """LLMProvider that plays back a script of responses.

    Each script entry is a ChatResponse to return, an exception to raise, or
    a callable taking the request messages and returning either. When the
    script runs out, ``fallback`` is used.

    Attributes:
        requests: Recorded kwargs of every chat/chat_stream call
    """

    def __init__(
        self,
        name: str = "scripted",
        script: list[Any] | None = None,
        *,
        default_model: str = "scripted-model",
        fallback: ChatResponse | None = None,
        healthy: bool = True,
    ) -> None:
        self._name = name
        self._default_model = default_model
        self.script: list[Any] = list(script or [])
        self.fallback = fallback or reply("done")
        self.healthy = healthy
        self.requests: list[dict[str, Any]] = []
        self.fail_after_first_chunk: Exception | None = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def default_model(self) -> str:
        return self._default_model

    def queue(self, *entries: Any) -> None:
        self.script.extend(entries)

    def _next(self, messages: list[ChatMessage]) -> ChatResponse:
        entry = self.script.pop(0) if self.script else self.fallback
        if callable(entry):
            entry = entry(messages)
        if isinstance(entry, BaseException):
            raise entry
        return entry

    async def chat(
        self,
        messages: list[ChatMessage],
        *,
        tools: list[ToolSchema] | None = None,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> ChatResponse:
        self.requests.append(
            {"messages": list(messages), "tools": tools, "model": model, "stream": False}
        )
        return self._next(messages)

    async def chat_stream(
        self,
        messages: list[ChatMessage],
        *,
        on_chunk: ChunkCallback,
        tools: list[ToolSchema] | None = None,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> ChatResponse:
        self.requests.append(
            {"messages": list(messages), "tools": tools, "model": model, "stream": True}
        )
        response = self._next(messages)
        for word in response.content.split(" ") if response.content else []:
            result = on_chunk(word + " ")
            if inspect.isawaitable(result):
                await result
            if self.fail_after_first_chunk is not None:
                error, self.fail_after_first_chunk = self.fail_after_first_chunk, None
                raise error
        return response

    async def probe(self) -> HealthStatus:
        return HealthStatus(reachable=True, usable=self.healthy)

    async def health_check(self) -> bool:
        return self.healthy


def build_registry(config: Config, *providers: ScriptedProvider) -> ProviderRegistry:
    """Registry holding only the given scripted providers."""
    registry = ProviderRegistry(config.llm, register_catalogue=False)
    for provider in providers:
        registry.register_instance(provider)
    return registry


def build_agent(
    config: Config,
    *providers: ScriptedProvider,
    workspace: str = ".",
    sleep: Callable[[float], Any] | None = None,
    **kwargs: Any,
) -> Agent:
    """Agent whose router talks to scripted providers only."""
    return Agent(
        config,
        workspace=workspace,
        registry=build_registry(config, *providers),
        sleep=sleep or AsyncMock(),
        **kwargs,
    )


# =============================================================================
# litellm response mocks
# =============================================================================


def create_mock_tool_call(call_id: str, name: str, arguments: str = "{}", index: int = 0) -> Any:
    """Create a tool call as found on litellm messages and stream deltas."""
    return SimpleNamespace(
        id=call_id,
        index=index,
        type="function",
        function=SimpleNamespace(name=name, arguments=arguments),
    )


def create_mock_llm_response(
    content: str | None = "Test response",
    *,
    tool_calls: list[Any] | None = None,
    model: str = "openrouter/test-model",
    finish_reason: str = "stop",
) -> Any:
    """Create a mock litellm ModelResponse.

    Args:
        content: Message content
        tool_calls: Tool calls built with create_mock_tool_call
        model: Model reported by the vendor
        finish_reason: Finish reason of the single choice

    Returns:
        Object mimicking the litellm response structure
    """
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(
        model=model,
        choices=[SimpleNamespace(message=message, finish_reason=finish_reason)],
        usage=SimpleNamespace(prompt_tokens=10, completion_tokens=20, total_tokens=30),
    )


def create_mock_llm_stream_chunk(
    text: str | None = "chunk",
    is_final: bool = False,
    *,
    tool_calls: list[Any] | None = None,
    usage: tuple[int, int] | None = None,
) -> Any:
    """Create a mock streaming chunk from litellm.

    Args:
        text: Chunk text content
        is_final: Whether this is the final chunk
        tool_calls: Tool call deltas built with create_mock_tool_call
        usage: (prompt_tokens, completion_tokens) reported on this chunk
    """
    delta = SimpleNamespace(content=text, tool_calls=tool_calls)
    return SimpleNamespace(
        choices=[SimpleNamespace(delta=delta, finish_reason="stop" if is_final else None)],
        usage=(
            SimpleNamespace(prompt_tokens=usage[0], completion_tokens=usage[1])
            if usage
            else None
        ),
    )


class MockStream:
    """Async iterator over chunks, optionally raising after some of them."""

    def __init__(self, chunks: list[Any], error: Exception | None = None) -> None:
        self._chunks = list(chunks)
        self._error = error

    def __aiter__(self) -> MockStream:
        return self

    async def __anext__(self) -> Any:
        if self._chunks:
            return self._chunks.pop(0)
        if self._error is not None:
            error, self._error = self._error, None
            raise error
        raise StopAsyncIteration
