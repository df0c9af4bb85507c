"""Message nodes of a conversation tree.

Every node carries the same metadata (id, parent, ordered children,
timestamp, model, token usage). The concrete subclass decides how the node
is shown to a provider.
"""

from __future__ import annotations

import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar

from agenttree.core.llm.provider import ChatMessage, Role, ToolCall
from agenttree.errors import StateParseError

# A tool call as recorded on an assistant node
ToolCallRequest = ToolCall


class NodeKind(Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL_RESULT = "tool_result"
    SUMMARY = "summary"


def new_node_id() -> str:
    return uuid.uuid4().hex


@dataclass(slots=True, kw_only=True)
class MessageNode(ABC):
    """Base class for all conversation nodes.

    Attributes:
        id: Handle, unique within a session and never reused
        parent_id: Parent handle, None for the root
        children: Child handles in insertion order
        timestamp: Creation time (seconds since epoch), monotone along a path
        model: Model that produced the node, for assistant replies
        input_tokens: Prompt tokens billed for producing this node
        output_tokens: Completion tokens billed for producing this node
        is_complete: False while a streamed reply is still arriving
    """

    kind: ClassVar[NodeKind]

    id: str = field(default_factory=new_node_id)
    parent_id: str | None = None
    children: list[str] = field(default_factory=list)
    timestamp: float = field(default_factory=time.time)
    model: str | None = None
    input_tokens: int = 0
    output_tokens: int = 0
    is_complete: bool = True

    @abstractmethod
    def to_message(self) -> ChatMessage:
        """The provider message this node stands for."""

    def _payload(self) -> dict[str, Any]:
        return {}

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.kind.value,
            "id": self.id,
            "parent_id": self.parent_id,
            "timestamp": self.timestamp,
        }
        data.update(self._payload())
        if self.model:
            data["model"] = self.model
        if self.input_tokens or self.output_tokens:
            data["input_tokens"] = self.input_tokens
            data["output_tokens"] = self.output_tokens
        if not self.is_complete:
            data["is_complete"] = False
        return data


@dataclass(slots=True, kw_only=True)
class SystemNode(MessageNode):
    """System prompt at the root of a conversation."""

    kind: ClassVar[NodeKind] = NodeKind.SYSTEM
    text: str = ""

    def to_message(self) -> ChatMessage:
        return ChatMessage(Role.SYSTEM, self.text)

    def _payload(self) -> dict[str, Any]:
        return {"text": self.text}


@dataclass(slots=True, kw_only=True)
class UserNode(MessageNode):
    kind: ClassVar[NodeKind] = NodeKind.USER
    text: str = ""

    def to_message(self) -> ChatMessage:
        return ChatMessage(Role.USER, self.text)

    def _payload(self) -> dict[str, Any]:
        return {"text": self.text}


@dataclass(slots=True, kw_only=True)
class AssistantNode(MessageNode):
    """Model reply, possibly requesting tool calls."""

    kind: ClassVar[NodeKind] = NodeKind.ASSISTANT
    text: str = ""
    tool_calls: list[ToolCallRequest] = field(default_factory=list)

    @property
    def call_ids(self) -> list[str]:
        return [call.id for call in self.tool_calls]

    def to_message(self) -> ChatMessage:
        return ChatMessage(Role.ASSISTANT, self.text, tool_calls=tuple(self.tool_calls))

    def _payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"text": self.text}
        if self.tool_calls:
            payload["tool_calls"] = [
                {"id": c.id, "name": c.name, "arguments": c.arguments} for c in self.tool_calls
            ]
        return payload


@dataclass(slots=True, kw_only=True)
class ToolResultNode(MessageNode):
    """Outcome of one tool call, child of the requesting assistant node."""

    kind: ClassVar[NodeKind] = NodeKind.TOOL_RESULT
    tool_call_id: str = ""
    content: str = ""
    success: bool = True

    def to_message(self) -> ChatMessage:
        return ChatMessage(Role.TOOL, self.content, tool_call_id=self.tool_call_id)

    def _payload(self) -> dict[str, Any]:
        return {
            "tool_call_id": self.tool_call_id,
            "content": self.content,
            "success": self.success,
        }


@dataclass(slots=True, kw_only=True)
class SummaryNode(MessageNode):
    """Condensed account of the branch above it, sent as assistant text."""

    kind: ClassVar[NodeKind] = NodeKind.SUMMARY
    text: str = ""

    def to_message(self) -> ChatMessage:
        return ChatMessage(Role.ASSISTANT, self.text)

    def _payload(self) -> dict[str, Any]:
        return {"text": self.text}


_NODE_TYPES: dict[str, type[MessageNode]] = {
    cls.kind.value: cls
    for cls in (SystemNode, UserNode, AssistantNode, ToolResultNode, SummaryNode)
}


def node_from_dict(data: dict[str, Any]) -> MessageNode:
    """Rebuild a node from ``MessageNode.to_dict`` output.

    Children are not restored here; the tree relinks them on load.

    Raises:
        StateParseError: If the record is malformed.
    """
    try:
        node_type = _NODE_TYPES[data["type"]]
        common: dict[str, Any] = {
            "id": str(data["id"]),
            "parent_id": data.get("parent_id"),
            "timestamp": float(data["timestamp"]),
            "model": data.get("model"),
            "input_tokens": int(data.get("input_tokens", 0)),
            "output_tokens": int(data.get("output_tokens", 0)),
            "is_complete": bool(data.get("is_complete", True)),
        }
        if node_type is AssistantNode:
            calls = [
                ToolCallRequest(id=c["id"], name=c["name"], arguments=c.get("arguments", "{}"))
                for c in data.get("tool_calls") or []
            ]
            return AssistantNode(text=data.get("text", ""), tool_calls=calls, **common)
        if node_type is ToolResultNode:
            return ToolResultNode(
                tool_call_id=data["tool_call_id"],
                content=data.get("content", ""),
                success=bool(data.get("success", True)),
                **common,
            )
        return node_type(text=data.get("text", ""), **common)  # type: ignore[call-arg]
    except (KeyError, TypeError, ValueError) as e:
        raise StateParseError(f"Malformed node record: {e}") from e
