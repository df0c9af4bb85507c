"""The agent loop: request, response, tool calls, tool results, repeat.

A turn appends the user message, then alternates provider calls and tool
execution until the model answers without tool calls or the iteration cap
is hit. Every tool call requested by an appended assistant message gets a
result node, even when the turn ends early, so the tree never holds an
unanswered tool interaction.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from agenttree.config.schema import AgentConfig
from agenttree.conversation.linearise import fit_context
from agenttree.conversation.nodes import AssistantNode, ToolCallRequest, ToolResultNode, UserNode
from agenttree.core.llm.provider import ChatMessage, ChatResponse, ChunkCallback
from agenttree.core.llm.router import ProviderRouter
from agenttree.core.prompts import SystemPromptBuilder, ToolEntry
from agenttree.core.tokens import TokenCounter, count_tokens
from agenttree.errors import AgentTreeError, TurnCancelled, TurnTimeout
from agenttree.logging import get_logger
from agenttree.memory.base import MemoryStore
from agenttree.session.session import Session
from agenttree.tools.base import AutonomyLevel, ToolContext
from agenttree.tools.registry import ConfirmCallback, ToolRegistry

log = get_logger("loop")


class StopReason(Enum):
    COMPLETE = "complete"
    ITERATION_LIMIT = "iteration_limit"


@dataclass(slots=True)
class AssistantReply:
    """Outcome of one turn.

    Attributes:
        content: Text of the final assistant message
        stop_reason: Why the loop stopped
        iterations: Provider calls made during the turn
        assistant_node_id: Handle of the final assistant message
        input_tokens: Prompt tokens used across the turn
        output_tokens: Completion tokens used across the turn
        notice: Set when the turn ended early (iteration limit)
    """

    content: str
    stop_reason: StopReason
    iterations: int
    assistant_node_id: str
    input_tokens: int = 0
    output_tokens: int = 0
    notice: str | None = None
    model: str | None = None
    provider: str | None = None


class CancellationToken:
    """Cooperative cancellation flag checked between loop steps."""

    def __init__(self) -> None:
        self._cancelled = False
        self.reason = ""

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, reason: str = "cancelled") -> None:
        self._cancelled = True
        self.reason = reason

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise TurnCancelled(f"Turn cancelled: {self.reason}")


def _noop_chunk(text: str) -> None:
    return None


def normalise_tool_calls(calls: list[ToolCallRequest], iteration: int) -> list[ToolCallRequest]:
    """Give every call a non-empty id, unique within the reply."""
    seen: set[str] = set()
    result: list[ToolCallRequest] = []
    for index, call in enumerate(calls):
        call_id = call.id
        if not call_id or call_id in seen:
            call_id = f"call_{iteration}_{index}"
        seen.add(call_id)
        if call_id != call.id:
            call = ToolCallRequest(id=call_id, name=call.name, arguments=call.arguments)
        result.append(call)
    return result


class AgentLoop:
    """Runs turns against a session with a router and a tool registry."""

    def __init__(
        self,
        router: ProviderRouter,
        tools: ToolRegistry,
        *,
        config: AgentConfig | None = None,
        prompt_builder: SystemPromptBuilder | None = None,
        memory: MemoryStore | None = None,
        workspace_root: str | None = None,
        tool_timeout: float = 30.0,
        counter: TokenCounter = count_tokens,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.router = router
        self.tools = tools
        self.config = config or AgentConfig()
        self.prompt_builder = prompt_builder or SystemPromptBuilder(
            self.config.identity, max_tokens=self.config.system_prompt_tokens, counter=counter
        )
        self.memory = memory
        self.workspace_root = workspace_root
        self.tool_timeout = tool_timeout
        self._counter = counter
        self._clock = clock

    # -- request building ----------------------------------------------------

    def workspace_for(self, session: Session) -> Path:
        return Path(self.workspace_root or session.workspace)

    def system_prompt(self, session: Session, autonomy: AutonomyLevel) -> str | None:
        if not self.config.use_system_prompt:
            return None
        tools = [ToolEntry(t.name, t.description) for t in self.tools.available(autonomy)]
        return self.prompt_builder.build(
            cwd=str(self.workspace_for(session)),
            autonomy=autonomy,
            tools=tools,
            preferences=session.preferences,
        )

    def build_messages(self, session: Session, autonomy: AutonomyLevel) -> list[ChatMessage]:
        messages = session.linearise(
            system_prompt=self.system_prompt(session, autonomy),
            use_summaries=self.config.enable_summarization,
        )
        return fit_context(
            messages,
            max_messages=self.config.max_context_messages,
            max_tokens=self.config.context_window_tokens,
            counter=self._counter,
        )

    # -- turn ----------------------------------------------------------------

    async def run_turn(
        self,
        session: Session,
        text: str,
        *,
        autonomy: AutonomyLevel,
        confirm: ConfirmCallback | None = None,
        auto_confirm: bool | None = None,
        cancel: CancellationToken | None = None,
        stream: bool = False,
        on_chunk: ChunkCallback | None = None,
    ) -> AssistantReply:
        """Run one user turn to completion.

        Raises:
            TurnCancelled: The cancellation token was tripped.
            TurnTimeout: The turn exceeded ``turn_timeout``.
            ProviderError: Every provider failed.
            InvalidStateError: The cursor cannot take a user message.
        """
        token = cancel or CancellationToken()
        auto = self.config.auto_confirm if auto_confirm is None else auto_confirm
        budget = self.config.turn_timeout
        deadline = self._clock() + budget if budget and budget > 0 else None

        def timed_out() -> bool:
            return deadline is not None and self._clock() > deadline

        def checkpoint() -> None:
            token.raise_if_cancelled()
            if timed_out():
                raise TurnTimeout(f"Turn exceeded {budget}s")

        checkpoint()
        session.append(UserNode(text=text))

        max_iterations = max(1, self.config.max_iterations)
        iterations = 0
        input_tokens = output_tokens = 0

        while True:
            response = await self._call_provider(session, autonomy, stream, on_chunk)
            checkpoint()

            iterations += 1
            calls = normalise_tool_calls(response.tool_calls, iterations)
            assistant = AssistantNode(
                text=response.content,
                tool_calls=calls,
                model=response.model or None,
                input_tokens=response.input_tokens,
                output_tokens=response.output_tokens,
            )
            session.append(assistant)
            session.add_usage(response.input_tokens, response.output_tokens)
            input_tokens += response.input_tokens
            output_tokens += response.output_tokens

            def reply(reason: StopReason, notice: str | None = None) -> AssistantReply:
                return AssistantReply(
                    content=assistant.text,
                    stop_reason=reason,
                    iterations=iterations,
                    assistant_node_id=assistant.id,
                    input_tokens=input_tokens,
                    output_tokens=output_tokens,
                    notice=notice,
                    model=assistant.model,
                    provider=response.provider or None,
                )

            if not calls:
                log.debug("Session %s: turn complete after %d iteration(s)", session.id, iterations)
                return reply(StopReason.COMPLETE)

            if iterations >= max_iterations:
                notice = f"iteration limit reached after {iterations} steps"
                log.info("Session %s: %s", session.id, notice)
                self._close_calls(session, assistant, calls, f"Error (iteration_limit): {notice}")
                return reply(StopReason.ITERATION_LIMIT, notice)

            await self._run_tools(session, assistant, calls, autonomy, confirm, auto, token, timed_out)
            checkpoint()

    async def _call_provider(
        self,
        session: Session,
        autonomy: AutonomyLevel,
        stream: bool,
        on_chunk: ChunkCallback | None,
    ) -> ChatResponse:
        messages = self.build_messages(session, autonomy)
        schemas = self.tools.schemas_for(autonomy) or None
        common = {
            "tools": schemas,
            "model": session.model,
            "provider_name": session.provider_name,
            "temperature": session.temperature,
            "max_tokens": self.config.max_tokens_per_request,
        }
        if stream:
            return await self.router.chat_stream(
                messages, on_chunk=on_chunk or _noop_chunk, **common
            )
        return await self.router.chat(messages, **common)

    async def _run_tools(
        self,
        session: Session,
        assistant: AssistantNode,
        calls: list[ToolCallRequest],
        autonomy: AutonomyLevel,
        confirm: ConfirmCallback | None,
        auto_confirm: bool,
        token: CancellationToken,
        timed_out: Callable[[], bool],
    ) -> None:
        context = ToolContext(
            workspace=self.workspace_for(session),
            session_id=session.id,
            memory=self.memory,
            timeout=self.tool_timeout,
        )
        for index, call in enumerate(calls):
            if token.cancelled:
                self._close_calls(session, assistant, calls[index:], "Error (cancelled): turn cancelled")
                token.raise_if_cancelled()
            if timed_out():
                self._close_calls(session, assistant, calls[index:], "Error (timeout): turn timed out")
                raise TurnTimeout("Turn exceeded its time budget during tool execution")
            try:
                result = await self._execute(call, autonomy, context, confirm, auto_confirm)
            except asyncio.CancelledError:
                self._close_calls(session, assistant, calls[index:], "Error (cancelled): turn cancelled")
                raise
            except Exception as e:
                log.error("Tool %s raised outside dispatch: %s", call.name, e)
                self._close_calls(session, assistant, calls[index:], f"Error (tool_execution_failed): {e}")
                raise
            session.append_child(assistant.id, result, advance=True)

    async def _execute(
        self,
        call: ToolCallRequest,
        autonomy: AutonomyLevel,
        context: ToolContext,
        confirm: ConfirmCallback | None,
        auto_confirm: bool,
    ) -> ToolResultNode:
        try:
            outcome = await self.tools.dispatch(
                call.name,
                call.arguments,
                autonomy,
                context,
                confirm=confirm,
                auto_confirm=auto_confirm,
            )
        except AgentTreeError as e:
            log.info("Tool %s failed: %s (%s)", call.name, e.message, e.kind.value)
            return ToolResultNode(
                tool_call_id=call.id,
                content=f"Error ({e.kind.value}): {e.message}",
                success=False,
            )
        return ToolResultNode(tool_call_id=call.id, content=outcome.content, success=True)

    def _close_calls(
        self,
        session: Session,
        assistant: AssistantNode,
        calls: list[ToolCallRequest],
        content: str,
    ) -> None:
        """Record failed results for calls that will not run."""
        for call in calls:
            session.append_child(
                assistant.id,
                ToolResultNode(tool_call_id=call.id, content=content, success=False),
                advance=True,
            )
