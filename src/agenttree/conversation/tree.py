"""Branchable conversation tree.

Nodes live in an id-keyed arena; parent/child links are handles (ids), so
the structure never holds reference cycles and a node's id doubles as its
external handle.

Tool-call shape invariants enforced on every append:
- a ToolResultNode hangs under the AssistantNode that requested its call,
  answers calls in request order, and each call is answered at most once
- an AssistantNode with tool calls accepts no other children
- a conversation continues below a tool interaction only from its final result
"""

from __future__ import annotations

from collections.abc import Iterator

from agenttree.conversation.nodes import (
    AssistantNode,
    MessageNode,
    SystemNode,
    ToolCallRequest,
    ToolResultNode,
    UserNode,
)
from agenttree.errors import InvalidStateError, StateParseError


class ConversationTree:
    """Arena of message nodes with a single root."""

    def __init__(self) -> None:
        self._nodes: dict[str, MessageNode] = {}
        self._root_id: str | None = None

    @property
    def root_id(self) -> str | None:
        return self._root_id

    @property
    def root(self) -> MessageNode | None:
        return self._nodes.get(self._root_id) if self._root_id else None

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def get(self, node_id: str) -> MessageNode:
        """Return the node for a handle.

        Raises:
            InvalidStateError: If the handle does not belong to this tree.
        """
        try:
            return self._nodes[node_id]
        except KeyError:
            raise InvalidStateError(f"Node {node_id} is not in this conversation") from None

    def children(self, node_id: str) -> list[MessageNode]:
        return [self._nodes[c] for c in self.get(node_id).children]

    def parent(self, node_id: str) -> MessageNode | None:
        parent_id = self.get(node_id).parent_id
        return self._nodes[parent_id] if parent_id else None

    # -- tool interaction queries ------------------------------------------

    def tool_results(self, assistant_id: str) -> list[ToolResultNode]:
        """Results recorded for an assistant's tool calls, in call order."""
        return [c for c in self.children(assistant_id) if isinstance(c, ToolResultNode)]

    def pending_tool_calls(self, assistant_id: str) -> list[ToolCallRequest]:
        """Tool calls of an assistant node that have no result yet."""
        node = self.get(assistant_id)
        if not isinstance(node, AssistantNode):
            return []
        answered = {r.tool_call_id for r in self.tool_results(assistant_id)}
        return [call for call in node.tool_calls if call.id not in answered]

    def is_open(self, node_id: str) -> bool:
        """True if appending a non-result child below ``node_id`` is invalid."""
        node = self.get(node_id)
        if isinstance(node, AssistantNode):
            return bool(node.tool_calls)
        if isinstance(node, ToolResultNode):
            return not self._is_final_result(node)
        return False

    def _is_final_result(self, result: ToolResultNode) -> bool:
        assistant = self._nodes.get(result.parent_id or "")
        if not isinstance(assistant, AssistantNode):
            return False
        results = self.tool_results(assistant.id)
        return (
            len(results) == len(assistant.tool_calls)
            and bool(results)
            and results[-1].id == result.id
        )

    # -- mutation ----------------------------------------------------------

    def _validate_append(self, parent: MessageNode | None, node: MessageNode) -> None:
        if node.id in self._nodes:
            raise InvalidStateError(f"Node id {node.id} already used in this conversation")
        if isinstance(node, AssistantNode) and len(set(node.call_ids)) != len(node.tool_calls):
            raise InvalidStateError("Tool call ids must be unique within a message")

        if parent is None:
            if self._root_id is not None:
                raise InvalidStateError("Conversation already has a root")
            if not isinstance(node, (SystemNode, UserNode)):
                raise InvalidStateError(
                    f"Root must be a system or user message, not {node.kind.value}"
                )
            return

        if isinstance(node, SystemNode):
            raise InvalidStateError("System messages are only allowed at the root")

        if isinstance(node, ToolResultNode):
            if not isinstance(parent, AssistantNode) or not parent.tool_calls:
                raise InvalidStateError(
                    f"Tool result {node.tool_call_id} has no open tool call to answer"
                )
            pending = self.pending_tool_calls(parent.id)
            if node.tool_call_id not in parent.call_ids:
                raise InvalidStateError(f"No tool call {node.tool_call_id} on this message")
            if not pending or pending[0].id != node.tool_call_id:
                raise InvalidStateError(
                    f"Tool result {node.tool_call_id} is a duplicate or out of call order"
                )
            return

        if isinstance(parent, AssistantNode) and parent.tool_calls:
            raise InvalidStateError(
                "Assistant message has tool calls; only tool results may follow it"
            )
        if isinstance(parent, ToolResultNode) and not self._is_final_result(parent):
            raise InvalidStateError(
                "Conversation may only continue from the final tool result"
            )

    def append_child(self, parent_id: str | None, node: MessageNode) -> str:
        """Attach ``node`` as the last child of ``parent_id`` (root if None).

        The node's timestamp is raised to its parent's if the clock went
        backwards, keeping timestamps monotone along every path.

        Returns:
            The new node's handle.

        Raises:
            InvalidStateError: If the parent is unknown or the append would
                break a tool-call invariant.
        """
        parent = self.get(parent_id) if parent_id is not None else None
        self._validate_append(parent, node)

        node.parent_id = parent.id if parent else None
        node.children = []
        if parent is not None:
            node.timestamp = max(node.timestamp, parent.timestamp)
            parent.children.append(node.id)
        else:
            self._root_id = node.id
        self._nodes[node.id] = node
        return node.id

    # -- traversal ---------------------------------------------------------

    def path_to(self, node_id: str) -> list[MessageNode]:
        """Nodes from the root down to ``node_id`` inclusive."""
        path: list[MessageNode] = []
        current: MessageNode | None = self.get(node_id)
        while current is not None:
            path.append(current)
            current = self._nodes[current.parent_id] if current.parent_id else None
        path.reverse()
        return path

    def walk(self) -> Iterator[MessageNode]:
        """Pre-order traversal, children in insertion order."""
        if self._root_id is None:
            return
        stack = [self._root_id]
        while stack:
            node = self._nodes[stack.pop()]
            yield node
            stack.extend(reversed(node.children))

    def leaves(self) -> list[MessageNode]:
        return [n for n in self.walk() if not n.children]

    def is_ancestor(self, ancestor_id: str, node_id: str) -> bool:
        return any(n.id == ancestor_id for n in self.path_to(node_id))

    # -- persistence -------------------------------------------------------

    @classmethod
    def from_nodes(cls, nodes: list[MessageNode]) -> ConversationTree:
        """Rebuild a tree from nodes listed parents-first.

        Raises:
            StateParseError: If a parent is missing, an id repeats or an
                invariant does not hold.
        """
        tree = cls()
        for node in nodes:
            if node.parent_id is not None and node.parent_id not in tree:
                raise StateParseError(
                    f"Node {node.id} refers to unknown parent {node.parent_id}"
                )
            timestamp = node.timestamp
            try:
                tree.append_child(node.parent_id, node)
            except InvalidStateError as e:
                raise StateParseError(f"Invalid conversation record: {e}") from e
            if node.timestamp != timestamp:
                raise StateParseError(f"Node {node.id} is older than its parent")
        return tree
