"""LLM provider protocol and chat types."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, runtime_checkable


class Role(Enum):
    """Message role in a provider request."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass(frozen=True, slots=True)
class ToolCall:
    """A tool invocation requested by the model.

    Attributes:
        id: Call id assigned by the model, unique within one assistant reply
        name: Tool name
        arguments: Raw JSON arguments exactly as the model produced them
    """

    id: str
    name: str
    arguments: str = "{}"


@dataclass(frozen=True, slots=True)
class ChatMessage:
    """A message in a provider request.

    Assistant messages may carry ``tool_calls``; tool messages carry the
    ``tool_call_id`` they answer.
    """

    role: Role
    content: str
    tool_calls: tuple[ToolCall, ...] = ()
    tool_call_id: str | None = None


@dataclass(frozen=True, slots=True)
class ToolSchema:
    """Function schema advertised to the model."""

    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=dict)

    def to_openai(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters or {"type": "object", "properties": {}},
            },
        }


@dataclass(slots=True)
class ChatResponse:
    """Result of a chat call, streamed or not."""

    content: str
    finish_reason: str | None = None
    model: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    tool_calls: list[ToolCall] = field(default_factory=list)
    provider: str = ""


@dataclass(frozen=True, slots=True)
class HealthStatus:
    """Outcome of a provider health probe.

    ``reachable`` means the vendor answered at all; ``usable`` means the
    configured credentials were accepted.
    """

    reachable: bool
    usable: bool
    detail: str = ""


ChunkCallback = Callable[[str], "Awaitable[None] | None"]


@runtime_checkable
class LLMProvider(Protocol):
    """Protocol for LLM provider adapters."""

    @property
    def name(self) -> str:
        """Vendor name used for routing (e.g., "openrouter")."""
        ...

    @property
    def default_model(self) -> str:
        """Model used when the caller does not pick one."""
        ...

    async def chat(
        self,
        messages: list[ChatMessage],
        *,
        tools: list[ToolSchema] | None = None,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> ChatResponse:
        """Run a non-streaming chat completion."""
        ...

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
        """Run a streaming chat completion.

        ``on_chunk`` receives content deltas in arrival order. Returns the
        accumulated response after the terminal event.
        """
        ...

    async def probe(self) -> HealthStatus:
        """Check reachability and credential validity."""
        ...

    async def health_check(self) -> bool:
        """Return True when the provider is usable."""
        ...
