"""Conversation trees: nodes, branching, navigation, linearisation."""

from agenttree.conversation.history import NavigationHistory
from agenttree.conversation.linearise import fit_context, linearise
from agenttree.conversation.nodes import (
    AssistantNode,
    MessageNode,
    NodeKind,
    SummaryNode,
    SystemNode,
    ToolCallRequest,
    ToolResultNode,
    UserNode,
    node_from_dict,
)
from agenttree.conversation.tree import ConversationTree

__all__ = [
    "AssistantNode",
    "ConversationTree",
    "MessageNode",
    "NavigationHistory",
    "NodeKind",
    "SummaryNode",
    "SystemNode",
    "ToolCallRequest",
    "ToolResultNode",
    "UserNode",
    "fit_context",
    "linearise",
    "node_from_dict",
]
