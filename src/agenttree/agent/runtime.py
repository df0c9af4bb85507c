"""Agent context: wires providers, tools, memory and sessions together.

An ``Agent`` owns everything a conversation needs. Callers create or load a
session, then drive it with ``ask`` or ``ask_stream``::

    agent = Agent(config, workspace=".")
    session = agent.create_session("scratch")
    reply = await agent.ask(session, "List the files here")
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from agenttree.agent.loop import AgentLoop, AssistantReply, CancellationToken
from agenttree.config.loader import load_config
from agenttree.config.schema import Config
from agenttree.conversation.nodes import SummaryNode
from agenttree.core.llm.provider import ChatMessage, ChunkCallback, Role
from agenttree.core.llm.registry import ProviderRegistry
from agenttree.core.llm.router import ProviderRouter
from agenttree.core.prompts import SystemPromptBuilder
from agenttree.core.tokens import TokenCounter, count_tokens
from agenttree.errors import InvalidStateError
from agenttree.logging import get_logger, setup_logging
from agenttree.memory.base import MemoryStore
from agenttree.memory.stores import create_memory_store
from agenttree.session.manager import SessionManager
from agenttree.session.session import Session
from agenttree.session.storage import SessionMetadata, SessionStore, YamlSessionStore, get_sessions_dir
from agenttree.tools.base import AutonomyLevel
from agenttree.tools.builtin import register_builtin_tools
from agenttree.tools.registry import ConfirmCallback, ToolRegistry

log = get_logger("agent")

SUMMARY_INSTRUCTION = (
    "Summarize the conversation so far in a few sentences. Keep decisions, "
    "facts and open tasks; omit pleasantries."
)


class Agent:
    """Agent context for one workspace.

    Attributes:
        config: Resolved configuration
        router: Provider router (with its registry)
        tools: Tool registry
        memory: Memory store handed to the memory tools
        sessions: Manager of the loaded sessions
        started_at: Wall-clock start time
    """

    def __init__(
        self,
        config: Config | None = None,
        *,
        workspace: str = ".",
        registry: ProviderRegistry | None = None,
        router: ProviderRouter | None = None,
        tools: ToolRegistry | None = None,
        memory: MemoryStore | None = None,
        session_store: SessionStore | None = None,
        confirm: ConfirmCallback | None = None,
        token_counter: TokenCounter = count_tokens,
        sleep: Callable[[float], object] = asyncio.sleep,
    ) -> None:
        self.config = config if config is not None else load_config(workspace)
        setup_logging(self.config.logging)

        self.workspace = workspace
        self.started_at = time.time()
        self._autonomy = AutonomyLevel.parse(self.config.agent.autonomy_level)
        self._confirm = confirm

        if router is None:
            registry = registry or ProviderRegistry(self.config.llm)
            router = ProviderRouter(
                registry,
                llm_config=self.config.llm,
                reliability=self.config.reliability,
                sleep=sleep,
            )
        self.router = router

        if tools is None:
            tools = ToolRegistry(timeout=self.config.tools.timeout)
            register_builtin_tools(tools, self.config.tools)
        self.tools = tools

        if memory is None:
            memory = create_memory_store(self.config.memory.backend, self.config.memory.path)
        self.memory = memory

        if session_store is None:
            directory = self.config.session.sessions_dir or get_sessions_dir(workspace)
            session_store = YamlSessionStore(directory)
        self.sessions = SessionManager(
            session_store,
            workspace=workspace,
            system_prompt=self.config.agent.system_prompt,
            history_size=self.config.session.history_size,
            temperature=self.config.llm.temperature,
        )

        self.loop = AgentLoop(
            self.router,
            self.tools,
            config=self.config.agent,
            prompt_builder=SystemPromptBuilder(
                self.config.agent.identity,
                max_tokens=self.config.agent.system_prompt_tokens,
                counter=token_counter,
            ),
            memory=self.memory,
            workspace_root=self.config.tools.workspace_root,
            tool_timeout=self.config.tools.timeout,
            counter=token_counter,
        )
        self._tokens: set[CancellationToken] = set()
        log.debug(
            "Agent ready: workspace=%s autonomy=%s tools=%s",
            workspace,
            self._autonomy.label,
            ",".join(self.tools.names()),
        )

    # -- policy --------------------------------------------------------------

    @property
    def autonomy(self) -> AutonomyLevel:
        return self._autonomy

    def set_autonomy(self, level: AutonomyLevel | str) -> None:
        """Change the autonomy level for subsequent tool calls."""
        if not isinstance(level, AutonomyLevel):
            level = AutonomyLevel.parse(level)
        log.info("Autonomy level set to %s", level.label)
        self._autonomy = level

    def enable_tool(self, name: str) -> None:
        self.tools.enable(name)

    def disable_tool(self, name: str) -> None:
        self.tools.disable(name)

    # -- sessions ------------------------------------------------------------

    def create_session(
        self,
        name: str | None = None,
        *,
        system_prompt: str | None = None,
        workspace: str | None = None,
    ) -> Session:
        return self.sessions.create(name, system_prompt=system_prompt, workspace=workspace)

    def get_session(self, session_id: str) -> Session:
        return self.sessions.get(session_id)

    def load_session(self, session_id: str) -> Session:
        return self.sessions.load(session_id)

    def save_session(self, session: Session) -> None:
        self.sessions.save(session)

    def list_sessions(self) -> list[SessionMetadata]:
        return self.sessions.list_metadata()

    def close_session(self, session: Session) -> None:
        self.sessions.close(session)

    def delete_session(self, session_id: str) -> bool:
        return self.sessions.delete(session_id)

    # -- turns ---------------------------------------------------------------

    @contextmanager
    def _turn(self, session: Session, cancel: CancellationToken | None) -> Iterator[CancellationToken]:
        token = cancel or CancellationToken()
        with self.sessions.driving(session):
            self._tokens.add(token)
            try:
                yield token
            finally:
                self._tokens.discard(token)

    async def ask(
        self,
        session: Session,
        text: str,
        *,
        confirm: ConfirmCallback | None = None,
        cancel: CancellationToken | None = None,
    ) -> AssistantReply:
        """Run one turn and return the final assistant reply.

        Uses streaming when ``agent.stream_responses`` is set, without a
        chunk callback.

        Raises:
            InvalidStateError: Another turn is running in this agent.
            TurnCancelled: ``cancel_all`` or the given token cancelled the turn.
            TurnTimeout: The turn exceeded ``agent.turn_timeout``.
            ProviderError: Every provider candidate failed.
        """
        with self._turn(session, cancel) as token:
            return await self.loop.run_turn(
                session,
                text,
                autonomy=self._autonomy,
                confirm=confirm or self._confirm,
                cancel=token,
                stream=self.config.agent.stream_responses,
            )

    async def ask_stream(
        self,
        session: Session,
        text: str,
        on_chunk: ChunkCallback,
        *,
        confirm: ConfirmCallback | None = None,
        cancel: CancellationToken | None = None,
    ) -> AssistantReply:
        """Like ``ask``, delivering assistant text to ``on_chunk`` as it arrives."""
        with self._turn(session, cancel) as token:
            return await self.loop.run_turn(
                session,
                text,
                autonomy=self._autonomy,
                confirm=confirm or self._confirm,
                cancel=token,
                stream=True,
                on_chunk=on_chunk,
            )

    async def summarize(self, session: Session) -> SummaryNode:
        """Summarise the current branch and append the summary at the cursor.

        Raises:
            InvalidStateError: Summarisation is disabled, the session is
                empty, or the cursor is inside an open tool interaction.
        """
        if not self.config.agent.enable_summarization:
            raise InvalidStateError("Summarization is disabled")
        if session.cursor is None:
            raise InvalidStateError("Nothing to summarize in an empty session")
        if session.tree.is_open(session.cursor):
            raise InvalidStateError("Cannot summarize inside an open tool interaction")

        with self._turn(session, None):
            messages = session.linearise(use_summaries=True)
            messages.append(ChatMessage(role=Role.USER, content=SUMMARY_INSTRUCTION))
            response = await self.router.chat(
                messages,
                model=session.model,
                provider_name=session.provider_name,
                temperature=session.temperature,
                max_tokens=self.config.agent.max_tokens_per_request,
            )
            node = SummaryNode(
                text=response.content,
                model=response.model or None,
                input_tokens=response.input_tokens,
                output_tokens=response.output_tokens,
            )
            session.append(node)
            session.add_usage(response.input_tokens, response.output_tokens)
        log.info("Session %s: summarized %d messages", session.id, len(messages) - 1)
        return node

    # -- lifecycle -----------------------------------------------------------

    async def health_check(self) -> dict[str, bool]:
        return await self.router.health_check()

    def cancel_all(self, reason: str = "cancelled") -> int:
        """Trip every live cancellation token. Returns how many were tripped."""
        tokens = list(self._tokens)
        for token in tokens:
            token.cancel(reason)
        if tokens:
            log.info("Cancelled %d running turn(s)", len(tokens))
        return len(tokens)

    async def shutdown(self) -> None:
        """Cancel running turns, clear registries and close sessions."""
        self.cancel_all("shutdown")
        self.tools.shutdown()
        self.router.registry.clear()
        self.sessions.close_all()
        log.debug("Agent shut down after %.1fs", time.time() - self.started_at)
