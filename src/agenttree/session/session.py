"""Session: a conversation tree plus its cursor and settings."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from agenttree.conversation.history import DEFAULT_HISTORY_SIZE, NavigationHistory
from agenttree.conversation.linearise import linearise
from agenttree.conversation.nodes import MessageNode, SystemNode, node_from_dict
from agenttree.conversation.tree import ConversationTree
from agenttree.core.llm.provider import ChatMessage
from agenttree.errors import InvalidStateError, StateParseError
from agenttree.logging import get_logger

log = get_logger("session")

FORMAT_VERSION = 1


def generate_default_name() -> str:
    """Default session name like "Session 2026-01-17 10:30"."""
    return f"Session {datetime.now().strftime('%Y-%m-%d %H:%M')}"


class Session:
    """One conversation owned by a single driving task at a time.

    The cursor is the handle of the node new messages are appended below.
    An empty session has no cursor; its first appended node becomes the root.

    Attributes:
        id: Session identifier
        name: Human-readable name
        workspace: Working directory tools operate in
        provider_name: Provider to route to, None for the configured default
        model: Model to request, None for the provider default
        temperature: Sampling temperature
        preferences: Free-form user preferences rendered into the system prompt
    """

    def __init__(
        self,
        *,
        session_id: str | None = None,
        name: str | None = None,
        workspace: str = ".",
        provider_name: str | None = None,
        model: str | None = None,
        temperature: float = 0.7,
        system_prompt: str | None = None,
        history_size: int = DEFAULT_HISTORY_SIZE,
        tree: ConversationTree | None = None,
        cursor: str | None = None,
    ) -> None:
        self.id = session_id or uuid.uuid4().hex[:12]
        self.name = name or generate_default_name()
        self.workspace = workspace
        self.provider_name = provider_name
        self.model = model
        self.temperature = temperature
        self.preferences: dict[str, str] = {}
        self.created_at = datetime.now()
        self.last_active = self.created_at
        self.input_tokens = 0
        self.output_tokens = 0
        self.history = NavigationHistory(history_size)
        self.tree = tree if tree is not None else ConversationTree()
        self.cursor = cursor
        if system_prompt and self.tree.root_id is None:
            self.cursor = self.tree.append_child(None, SystemNode(text=system_prompt))

    def __repr__(self) -> str:
        return f"<Session {self.id} {self.name!r} nodes={len(self.tree)}>"

    def touch(self) -> None:
        self.last_active = datetime.now()

    @property
    def cursor_node(self) -> MessageNode | None:
        return self.tree.get(self.cursor) if self.cursor is not None else None

    # -- appending ---------------------------------------------------------

    def append(self, node: MessageNode, *, advance: bool = True) -> str:
        """Append ``node`` below the cursor, optionally moving the cursor to it."""
        return self.append_child(self.cursor, node, advance=advance)

    def append_child(self, parent_id: str | None, node: MessageNode, *, advance: bool = False) -> str:
        """Append ``node`` below ``parent_id``; the cursor stays put unless ``advance``."""
        if parent_id is None and self.tree.root_id is not None:
            raise InvalidStateError("Session has a root; an explicit parent is required")
        handle = self.tree.append_child(parent_id, node)
        if advance:
            self.cursor = handle
        self.touch()
        return handle

    def add_usage(self, input_tokens: int, output_tokens: int) -> None:
        self.input_tokens += input_tokens
        self.output_tokens += output_tokens

    # -- navigation --------------------------------------------------------

    def _move(self, target: str | None) -> str | None:
        if target == self.cursor:
            return self.cursor
        self.history.record(self.cursor)
        self.cursor = target
        self.touch()
        return target

    def navigate_to(self, node_id: str) -> str:
        """Move the cursor to ``node_id``. Moving to the current cursor is a no-op."""
        self.tree.get(node_id)
        self._move(node_id)
        return node_id

    def navigate_up(self) -> str:
        node = self._require_cursor()
        if node.parent_id is None:
            raise InvalidStateError("Cursor is at the root")
        return self.navigate_to(node.parent_id)

    def navigate_down(self, child_index: int = 0) -> str:
        node = self._require_cursor()
        if not 0 <= child_index < len(node.children):
            raise InvalidStateError(
                f"Child index {child_index} out of range ({len(node.children)} children)"
            )
        return self.navigate_to(node.children[child_index])

    def navigate_back(self) -> str | None:
        if not self.history.can_go_back():
            raise InvalidStateError("No earlier position in history")
        self.cursor = self.history.back(self.cursor)
        self.touch()
        return self.cursor

    def navigate_forward(self) -> str | None:
        if not self.history.can_go_forward():
            raise InvalidStateError("No later position in history")
        self.cursor = self.history.forward(self.cursor)
        self.touch()
        return self.cursor

    def branch_from(self, node_id: str) -> str:
        """Prepare an alternative to ``node_id``.

        No node is created. The cursor moves to the node's parent so the next
        append becomes a sibling of ``node_id``.

        Raises:
            InvalidStateError: If ``node_id`` is the root or not in the session.
        """
        node = self.tree.get(node_id)
        if node.parent_id is None:
            raise InvalidStateError("Cannot branch from the root")
        log.debug("Session %s: branching from %s", self.id, node_id)
        self._move(node.parent_id)
        return node.parent_id

    def _require_cursor(self) -> MessageNode:
        node = self.cursor_node
        if node is None:
            raise InvalidStateError("Session is empty")
        return node

    # -- views -------------------------------------------------------------

    def current_path(self) -> list[MessageNode]:
        return self.tree.path_to(self.cursor) if self.cursor is not None else []

    def linearise(
        self, *, system_prompt: str | None = None, use_summaries: bool = False
    ) -> list[ChatMessage]:
        return linearise(
            self.tree, self.cursor, system_prompt=system_prompt, use_summaries=use_summaries
        )

    # -- persistence -------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": FORMAT_VERSION,
            "session_id": self.id,
            "name": self.name,
            "workspace": self.workspace,
            "provider_name": self.provider_name,
            "model": self.model,
            "temperature": self.temperature,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.last_active.isoformat(),
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "preferences": dict(self.preferences),
            "cursor": self.cursor,
            "nodes": [node.to_dict() for node in self.tree.walk()],
        }

    @classmethod
    def from_dict(
        cls, data: dict[str, Any], *, history_size: int = DEFAULT_HISTORY_SIZE
    ) -> Session:
        """Rebuild a session saved with ``to_dict``.

        Raises:
            StateParseError: If the record is malformed.
        """
        try:
            nodes = [node_from_dict(n) for n in data.get("nodes") or []]
            tree = ConversationTree.from_nodes(nodes)
            cursor = data.get("cursor")
            if cursor is not None and cursor not in tree:
                raise StateParseError(f"Cursor {cursor} is not a node of the session")
            session = cls(
                session_id=data["session_id"],
                name=data.get("name"),
                workspace=data.get("workspace", "."),
                provider_name=data.get("provider_name"),
                model=data.get("model"),
                temperature=float(data.get("temperature", 0.7)),
                history_size=history_size,
                tree=tree,
                cursor=cursor,
            )
            session.created_at = datetime.fromisoformat(data["created_at"])
            session.last_active = datetime.fromisoformat(
                data.get("updated_at", data["created_at"])
            )
            session.input_tokens = int(data.get("input_tokens", 0))
            session.output_tokens = int(data.get("output_tokens", 0))
            session.preferences = {
                str(k): str(v) for k, v in (data.get("preferences") or {}).items()
            }
        except (KeyError, TypeError, ValueError) as e:
            raise StateParseError(f"Malformed session record: {e}") from e
        return session
