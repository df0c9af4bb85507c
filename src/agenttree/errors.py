"""Error taxonomy for agenttree.

Every failure raised by the runtime is an ``AgentTreeError`` carrying an
``ErrorKind``, a human-readable message and the ``file:line`` of the raise
site. Causes are chained with ``raise ... from``.
"""

from __future__ import annotations

import inspect
import os
from enum import Enum


class ErrorKind(Enum):
    """Classified failure kinds."""

    INVALID_ARGUMENT = "invalid_argument"
    INVALID_STATE = "invalid_state"
    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    NOT_IMPLEMENTED = "not_implemented"
    OUT_OF_MEMORY = "out_of_memory"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    PERMISSION_DENIED = "permission_denied"
    NETWORK = "network"
    CONNECTION_FAILED = "connection_failed"
    CONNECTION_TIMEOUT = "connection_timeout"
    HTTP_ERROR = "http_error"
    RATE_LIMITED = "rate_limited"
    PROVIDER = "provider"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    PROVIDER_AUTH = "provider_auth"
    AUTH_FAILED = "auth_failed"
    INVALID_TOKEN = "invalid_token"
    PROVIDER_QUOTA_EXCEEDED = "provider_quota_exceeded"
    MODEL_NOT_FOUND = "model_not_found"
    TOOL_NOT_ALLOWED = "tool_not_allowed"
    TOOL_TIMEOUT = "tool_timeout"
    TOOL_EXECUTION_FAILED = "tool_execution_failed"
    CONFIG_PARSE = "config_parse"
    STATE_PARSE = "state_parse"


RETRYABLE_KINDS = frozenset(
    {
        ErrorKind.NETWORK,
        ErrorKind.TIMEOUT,
        ErrorKind.CONNECTION_FAILED,
        ErrorKind.CONNECTION_TIMEOUT,
        ErrorKind.HTTP_ERROR,
        ErrorKind.RATE_LIMITED,
        ErrorKind.PROVIDER,
        ErrorKind.PROVIDER_UNAVAILABLE,
    }
)


def is_retryable(kind: ErrorKind) -> bool:
    """Return True if a failure of this kind may succeed on retry."""
    return kind in RETRYABLE_KINDS


_THIS_FILE = os.path.normcase(os.path.abspath(__file__))


def _raise_site() -> str | None:
    """Find the first frame outside this module."""
    frame = inspect.currentframe()
    try:
        while frame is not None:
            filename = os.path.normcase(os.path.abspath(frame.f_code.co_filename))
            if filename != _THIS_FILE:
                return f"{os.path.basename(frame.f_code.co_filename)}:{frame.f_lineno}"
            frame = frame.f_back
        return None
    finally:
        del frame


class AgentTreeError(Exception):
    """Base class for all runtime errors.

    Attributes:
        kind: Classified error kind.
        message: Human-readable description.
        location: ``file:line`` where the error was constructed.
    """

    default_kind = ErrorKind.INVALID_STATE

    def __init__(self, message: str, *, kind: ErrorKind | None = None) -> None:
        super().__init__(message)
        self.kind = kind or self.default_kind
        self.message = message
        self.location = _raise_site()

    @property
    def retryable(self) -> bool:
        return is_retryable(self.kind)

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.kind.value}: {self.message!r} at {self.location})"


class InvalidArgumentError(AgentTreeError):
    default_kind = ErrorKind.INVALID_ARGUMENT


class InvalidStateError(AgentTreeError):
    default_kind = ErrorKind.INVALID_STATE


class NotFoundError(AgentTreeError):
    default_kind = ErrorKind.NOT_FOUND


class AlreadyExistsError(AgentTreeError):
    default_kind = ErrorKind.ALREADY_EXISTS


class StateParseError(AgentTreeError):
    """Raised when persisted session or memory data cannot be decoded."""

    default_kind = ErrorKind.STATE_PARSE


class ConfigParseError(AgentTreeError):
    default_kind = ErrorKind.CONFIG_PARSE


class TurnCancelled(AgentTreeError):
    """Raised when a turn is cancelled through its cancellation token."""

    default_kind = ErrorKind.CANCELLED


class TurnTimeout(AgentTreeError):
    """Raised when a turn exceeds its wall-clock budget."""

    default_kind = ErrorKind.TIMEOUT


class ProviderError(AgentTreeError):
    """Failure talking to an LLM provider.

    Attributes:
        provider: Name of the provider that failed, if known.
        status: HTTP status code reported by the vendor, if any.
    """

    default_kind = ErrorKind.PROVIDER

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind | None = None,
        provider: str | None = None,
        status: int | None = None,
    ) -> None:
        super().__init__(message, kind=kind)
        self.provider = provider
        self.status = status


class ToolError(AgentTreeError):
    """Failure dispatching or executing a tool.

    Attributes:
        tool_name: Name of the tool involved.
    """

    default_kind = ErrorKind.TOOL_EXECUTION_FAILED

    def __init__(
        self, message: str, *, tool_name: str = "", kind: ErrorKind | None = None
    ) -> None:
        super().__init__(message, kind=kind)
        self.tool_name = tool_name


class ToolNotAllowed(ToolError):
    default_kind = ErrorKind.TOOL_NOT_ALLOWED


class ToolTimeout(ToolError):
    default_kind = ErrorKind.TOOL_TIMEOUT


class ToolExecutionFailed(ToolError):
    default_kind = ErrorKind.TOOL_EXECUTION_FAILED


class ToolCancelled(ToolError):
    """Raised when the user declines a confirmation prompt."""

    default_kind = ErrorKind.CANCELLED
