"""LiteLLM provider adapter.

One adapter class serves every vendor in the catalogue; litellm handles the
vendor-specific request and response shapes. Model names are qualified with
the vendor's litellm prefix, e.g. ``deepseek-chat`` -> ``deepseek/deepseek-chat``.

See https://docs.litellm.ai/docs/providers for the vendor list.
"""

from __future__ import annotations

import inspect
from typing import Any

import litellm

from agenttree.core.llm.provider import (
    ChatMessage,
    ChatResponse,
    ChunkCallback,
    HealthStatus,
    Role,
    ToolCall,
    ToolSchema,
)
from agenttree.core.llm.providers import VendorConfig
from agenttree.errors import ErrorKind, ProviderError
from agenttree.logging import get_logger

log = get_logger("provider")

# Checked in order: subclasses before their bases.
_EXCEPTION_KINDS: tuple[tuple[type[BaseException], ErrorKind], ...] = (
    (litellm.ContextWindowExceededError, ErrorKind.INVALID_ARGUMENT),
    (litellm.AuthenticationError, ErrorKind.PROVIDER_AUTH),
    (litellm.PermissionDeniedError, ErrorKind.AUTH_FAILED),
    (litellm.NotFoundError, ErrorKind.MODEL_NOT_FOUND),
    (litellm.RateLimitError, ErrorKind.RATE_LIMITED),
    (litellm.BadRequestError, ErrorKind.INVALID_ARGUMENT),
    (litellm.Timeout, ErrorKind.CONNECTION_TIMEOUT),
    (litellm.ServiceUnavailableError, ErrorKind.PROVIDER_UNAVAILABLE),
    (litellm.InternalServerError, ErrorKind.HTTP_ERROR),
    (litellm.APIConnectionError, ErrorKind.CONNECTION_FAILED),
)

_UNUSABLE_KINDS = frozenset(
    {
        ErrorKind.PROVIDER_AUTH,
        ErrorKind.AUTH_FAILED,
        ErrorKind.INVALID_TOKEN,
        ErrorKind.PROVIDER_QUOTA_EXCEEDED,
        ErrorKind.MODEL_NOT_FOUND,
        ErrorKind.INVALID_ARGUMENT,
    }
)
_UNREACHABLE_KINDS = frozenset(
    {
        ErrorKind.NETWORK,
        ErrorKind.CONNECTION_FAILED,
        ErrorKind.CONNECTION_TIMEOUT,
        ErrorKind.TIMEOUT,
    }
)


def _kind_for_status(status: int | None) -> ErrorKind:
    if status is None:
        return ErrorKind.PROVIDER
    if status in (401, 407):
        return ErrorKind.PROVIDER_AUTH
    if status == 403:
        return ErrorKind.AUTH_FAILED
    if status == 404:
        return ErrorKind.MODEL_NOT_FOUND
    if status == 408:
        return ErrorKind.CONNECTION_TIMEOUT
    if status == 429:
        return ErrorKind.RATE_LIMITED
    if status in (502, 503, 504):
        return ErrorKind.PROVIDER_UNAVAILABLE
    if status >= 500:
        return ErrorKind.HTTP_ERROR
    if status >= 400:
        return ErrorKind.INVALID_ARGUMENT
    return ErrorKind.PROVIDER


def classify_exception(exc: Exception, provider: str = "") -> ProviderError:
    """Map a litellm (or transport) exception to a classified ProviderError."""
    if isinstance(exc, ProviderError):
        return exc

    status = getattr(exc, "status_code", None)
    if not isinstance(status, int):
        status = None

    kind = None
    for exc_type, mapped in _EXCEPTION_KINDS:
        if isinstance(exc, exc_type):
            kind = mapped
            break
    if kind is None:
        if isinstance(exc, (TimeoutError, ConnectionError)):
            kind = ErrorKind.NETWORK
        else:
            kind = _kind_for_status(status)

    message = str(exc) or type(exc).__name__
    if kind is ErrorKind.RATE_LIMITED and "quota" in message.lower():
        kind = ErrorKind.PROVIDER_QUOTA_EXCEEDED

    return ProviderError(
        f"{provider or 'provider'}: {message}",
        kind=kind,
        provider=provider or None,
        status=status,
    )


def message_to_dict(message: ChatMessage) -> dict[str, Any]:
    """Convert a ChatMessage to the OpenAI-style dict litellm expects."""
    data: dict[str, Any] = {"role": message.role.value, "content": message.content}
    if message.role is Role.ASSISTANT and message.tool_calls:
        data["tool_calls"] = [
            {
                "id": call.id,
                "type": "function",
                "function": {"name": call.name, "arguments": call.arguments},
            }
            for call in message.tool_calls
        ]
        if not message.content:
            data["content"] = None
    if message.role is Role.TOOL:
        data["tool_call_id"] = message.tool_call_id
    return data


def _parse_tool_calls(raw_calls: Any) -> list[ToolCall]:
    calls: list[ToolCall] = []
    for raw in raw_calls or []:
        function = getattr(raw, "function", None)
        if function is None:
            continue
        calls.append(
            ToolCall(
                id=raw.id,
                name=function.name,
                arguments=function.arguments or "{}",
            )
        )
    return calls


class LiteLLMProvider:
    """Provider adapter backed by ``litellm.acompletion``.

    Usage:
        vendor = get_vendor("deepseek")
        provider = LiteLLMProvider.from_vendor(vendor, api_key="sk-...")
        response = await provider.chat([ChatMessage(Role.USER, "hi")])
    """

    def __init__(
        self,
        name: str,
        *,
        default_model: str,
        litellm_prefix: str | None = None,
        api_key: str | None = None,
        api_base: str | None = None,
        temperature: float = 0.7,
        timeout: float | None = 60.0,
        max_tokens: int = 4096,
        **kwargs: Any,
    ) -> None:
        self._name = name
        self._default_model = default_model
        self._prefix = litellm_prefix
        self._api_key = api_key
        self._api_base = api_base
        self._temperature = temperature
        self._timeout = timeout
        self._max_tokens = max_tokens
        self._kwargs = kwargs

    @classmethod
    def from_vendor(
        cls,
        vendor: VendorConfig,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        default_model: str | None = None,
        **kwargs: Any,
    ) -> LiteLLMProvider:
        return cls(
            vendor.name,
            default_model=default_model or vendor.default_model,
            litellm_prefix=vendor.litellm_prefix,
            api_key=api_key,
            api_base=base_url or vendor.base_url,
            **kwargs,
        )

    @property
    def name(self) -> str:
        return self._name

    @property
    def default_model(self) -> str:
        return self._default_model

    def qualify_model(self, model: str | None) -> str:
        """Prefix a bare model name with the vendor's litellm prefix."""
        model = model or self._default_model
        if self._prefix and not model.startswith(f"{self._prefix}/"):
            return f"{self._prefix}/{model}"
        return model

    def _build_kwargs(
        self,
        messages: list[ChatMessage],
        *,
        tools: list[ToolSchema] | None,
        model: str | None,
        temperature: float | None,
        max_tokens: int | None,
        stream: bool,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self.qualify_model(model),
            "messages": [message_to_dict(m) for m in messages],
            "max_tokens": max_tokens or self._max_tokens,
            "temperature": self._temperature if temperature is None else temperature,
            "stream": stream,
            **self._kwargs,
        }
        if tools:
            kwargs["tools"] = [t.to_openai() for t in tools]
        if self._api_key:
            kwargs["api_key"] = self._api_key
        if self._api_base:
            kwargs["api_base"] = self._api_base
        if self._timeout is not None:
            kwargs["timeout"] = self._timeout
        return kwargs

    async def _acompletion(self, kwargs: dict[str, Any]) -> Any:
        try:
            return await litellm.acompletion(**kwargs)
        except Exception as e:
            raise classify_exception(e, self._name) from e

    async def chat(
        self,
        messages: list[ChatMessage],
        *,
        tools: list[ToolSchema] | None = None,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> ChatResponse:
        kwargs = self._build_kwargs(
            messages,
            tools=tools,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            stream=False,
        )
        log.debug("%s: chat model=%s messages=%d", self._name, kwargs["model"], len(messages))

        response = await self._acompletion(kwargs)

        choice = response.choices[0]
        usage = getattr(response, "usage", None)
        return ChatResponse(
            content=choice.message.content or "",
            finish_reason=choice.finish_reason,
            model=getattr(response, "model", None) or kwargs["model"],
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
            tool_calls=_parse_tool_calls(getattr(choice.message, "tool_calls", None)),
            provider=self._name,
        )

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
        kwargs = self._build_kwargs(
            messages,
            tools=tools,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            stream=True,
        )
        log.debug("%s: stream model=%s messages=%d", self._name, kwargs["model"], len(messages))

        stream = await self._acompletion(kwargs)

        parts: list[str] = []
        finish_reason: str | None = None
        input_tokens = output_tokens = 0
        # index -> [id, name, arguments]
        pending_calls: dict[int, list[str]] = {}
        # Raised by on_chunk; re-raised unchanged after the stream loop
        callback_error: Exception | None = None

        try:
            async for chunk in stream:
                usage = getattr(chunk, "usage", None)
                if usage:
                    input_tokens = getattr(usage, "prompt_tokens", 0) or input_tokens
                    output_tokens = getattr(usage, "completion_tokens", 0) or output_tokens
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                delta = choice.delta
                if choice.finish_reason:
                    finish_reason = choice.finish_reason
                if delta is None:
                    continue

                text = delta.content or ""
                if text:
                    parts.append(text)
                    try:
                        result = on_chunk(text)
                        if inspect.isawaitable(result):
                            await result
                    except Exception as e:
                        callback_error = e
                        break

                for raw in getattr(delta, "tool_calls", None) or []:
                    index = getattr(raw, "index", 0) or 0
                    entry = pending_calls.setdefault(index, ["", "", ""])
                    if raw.id:
                        entry[0] = raw.id
                    function = getattr(raw, "function", None)
                    if function is not None:
                        if function.name:
                            entry[1] = function.name
                        if function.arguments:
                            entry[2] += function.arguments
        except ProviderError:
            raise
        except Exception as e:
            raise classify_exception(e, self._name) from e

        if callback_error is not None:
            raise callback_error

        tool_calls = [
            ToolCall(id=call_id, name=name, arguments=arguments or "{}")
            for _, (call_id, name, arguments) in sorted(pending_calls.items())
        ]
        return ChatResponse(
            content="".join(parts),
            finish_reason=finish_reason,
            model=kwargs["model"],
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            tool_calls=tool_calls,
            provider=self._name,
        )

    async def probe(self) -> HealthStatus:
        """Send a one-token request and classify the outcome."""
        try:
            await self.chat([ChatMessage(Role.USER, "ping")], max_tokens=1)
        except ProviderError as e:
            if e.kind in _UNREACHABLE_KINDS:
                return HealthStatus(reachable=False, usable=False, detail=e.message)
            if e.kind in _UNUSABLE_KINDS:
                return HealthStatus(reachable=True, usable=False, detail=e.message)
            return HealthStatus(reachable=e.status is not None, usable=False, detail=e.message)
        return HealthStatus(reachable=True, usable=True)

    async def health_check(self) -> bool:
        status = await self.probe()
        if not status.usable:
            log.warning("%s: health check failed: %s", self._name, status.detail)
        return status.usable
