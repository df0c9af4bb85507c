"""Tool registry and dispatcher.

Dispatch gates every call on the autonomy level, asks for confirmation at
SUPERVISED level, decodes the JSON arguments and bounds execution time.
"""

from __future__ import annotations

import asyncio
import inspect
import threading
from collections.abc import Awaitable, Callable
from typing import Any

from agenttree.core.llm.provider import ToolSchema
from agenttree.errors import (
    AgentTreeError,
    AlreadyExistsError,
    NotFoundError,
    ToolCancelled,
    ToolExecutionFailed,
    ToolNotAllowed,
    ToolTimeout,
)
from agenttree.logging import get_logger
from agenttree.tools.base import AutonomyLevel, Tool, ToolContext, ToolOutcome

log = get_logger("tools")

DEFAULT_TIMEOUT = 30.0

ConfirmCallback = Callable[[str, dict[str, Any]], "bool | Awaitable[bool]"]


class ToolRegistry:
    """Tools by case-sensitive name, with per-tool enable flags."""

    def __init__(self, *, timeout: float = DEFAULT_TIMEOUT) -> None:
        self._tools: dict[str, Tool] = {}
        self._disabled: set[str] = set()
        self._lock = threading.Lock()
        self.timeout = timeout

    def register(self, tool: Tool) -> None:
        """Add a tool.

        Raises:
            AlreadyExistsError: If a tool with the same name is registered.
        """
        with self._lock:
            if tool.name in self._tools:
                raise AlreadyExistsError(f"Tool already registered: {tool.name}")
            self._tools[tool.name] = tool
        log.debug("Registered tool %s", tool.name)

    def get(self, name: str) -> Tool:
        try:
            return self._tools[name]
        except KeyError:
            raise NotFoundError(f"Unknown tool: {name}") from None

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def names(self) -> list[str]:
        """Tool names in registration order."""
        return list(self._tools)

    def tools(self) -> list[Tool]:
        return list(self._tools.values())

    def enable(self, name: str) -> None:
        self.get(name)
        with self._lock:
            self._disabled.discard(name)

    def disable(self, name: str) -> None:
        self.get(name)
        with self._lock:
            self._disabled.add(name)

    def is_enabled(self, name: str) -> bool:
        return name in self._tools and name not in self._disabled

    def available(self, level: AutonomyLevel) -> list[Tool]:
        """Enabled tools usable at ``level``, in registration order."""
        return [t for t in self._tools.values() if t.name not in self._disabled and t.permits(level)]

    def schemas_for(self, level: AutonomyLevel) -> list[ToolSchema]:
        return [t.schema() for t in self.available(level)]

    def shutdown(self) -> None:
        with self._lock:
            self._tools.clear()
            self._disabled.clear()

    async def _confirm(
        self, tool: Tool, args: dict[str, Any], confirm: ConfirmCallback | None
    ) -> bool:
        if confirm is None:
            return False
        try:
            answer = confirm(tool.name, args)
            if inspect.isawaitable(answer):
                answer = await answer
        except AgentTreeError:
            raise
        except Exception as e:
            raise ToolCancelled(
                f"Confirmation for {tool.name} failed: {e}", tool_name=tool.name
            ) from e
        return bool(answer)

    async def dispatch(
        self,
        name: str,
        arguments_json: str,
        level: AutonomyLevel,
        context: ToolContext,
        *,
        confirm: ConfirmCallback | None = None,
        auto_confirm: bool = False,
        timeout: float | None = None,
    ) -> ToolOutcome:
        """Run a tool call under the autonomy policy.

        Returns:
            The successful ToolOutcome.

        Raises:
            NotFoundError: Unknown tool.
            ToolNotAllowed: Tool disabled, or not permitted at ``level``.
            ToolCancelled: Confirmation denied or no confirmation callback.
            InvalidArgumentError: Malformed JSON arguments.
            ToolTimeout: Execution exceeded the timeout.
            ToolExecutionFailed: The tool reported or raised a failure.
        """
        tool = self.get(name)
        if name in self._disabled:
            raise ToolNotAllowed(f"Tool {name} is disabled", tool_name=name)
        if not tool.permits(level):
            raise ToolNotAllowed(
                f"Tool {name} is not allowed at autonomy level {level.label}", tool_name=name
            )

        args = tool.parse_arguments(arguments_json)

        if level is AutonomyLevel.SUPERVISED and not auto_confirm:
            if not await self._confirm(tool, args, confirm):
                raise ToolCancelled(f"User declined to run {name}", tool_name=name)

        limit = timeout if timeout is not None else self.timeout
        log.debug("Executing tool %s", name)
        try:
            outcome = await asyncio.wait_for(tool.execute(args, context), timeout=limit)
        except asyncio.TimeoutError:
            raise ToolTimeout(f"Tool {name} timed out after {limit}s", tool_name=name) from None
        except AgentTreeError:
            raise
        except Exception as e:
            raise ToolExecutionFailed(f"{name} failed: {e}", tool_name=name) from e

        if not outcome.success:
            raise ToolExecutionFailed(outcome.content, tool_name=name)
        return outcome
