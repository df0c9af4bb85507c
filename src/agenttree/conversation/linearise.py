"""Turning a tree path into the message sequence a provider sees."""

from __future__ import annotations

from agenttree.conversation.nodes import (
    AssistantNode,
    MessageNode,
    SummaryNode,
    SystemNode,
    ToolResultNode,
)
from agenttree.conversation.tree import ConversationTree
from agenttree.core.llm.provider import ChatMessage, Role
from agenttree.core.tokens import TokenCounter, count_message_tokens, count_tokens
from agenttree.logging import get_logger

log = get_logger("context")


def _apply_summary(path: list[MessageNode]) -> list[MessageNode]:
    """Drop everything between the system root and the newest summary."""
    for index in range(len(path) - 1, -1, -1):
        if isinstance(path[index], SummaryNode):
            head = [path[0]] if isinstance(path[0], SystemNode) else []
            return head + path[index:]
    return path


def linearise(
    tree: ConversationTree,
    cursor: str | None,
    *,
    system_prompt: str | None = None,
    use_summaries: bool = False,
) -> list[ChatMessage]:
    """Build provider messages for the path from the root to ``cursor``.

    - An assistant message with tool calls is followed by all of its tool
      results in call order; if some are still missing, the sequence ends
      just before that assistant message.
    - Summaries are sent as assistant text.
    - At most one system message is emitted, always first. ``system_prompt``
      is prepended only when the path has none.
    """
    messages: list[ChatMessage] = []
    path = tree.path_to(cursor) if cursor is not None else []
    if use_summaries:
        path = _apply_summary(path)

    for node in path:
        if isinstance(node, SystemNode):
            if not messages:
                messages.append(node.to_message())
            continue
        if isinstance(node, ToolResultNode):
            # Emitted together with the requesting assistant message
            continue
        if isinstance(node, AssistantNode) and node.tool_calls:
            results = tree.tool_results(node.id)
            if len(results) < len(node.tool_calls):
                break
            messages.append(node.to_message())
            messages.extend(result.to_message() for result in results)
            continue
        messages.append(node.to_message())

    if system_prompt and not (messages and messages[0].role is Role.SYSTEM):
        messages.insert(0, ChatMessage(Role.SYSTEM, system_prompt))
    return messages


def _group_units(messages: list[ChatMessage]) -> list[list[ChatMessage]]:
    """Group an assistant tool-call message with its tool results."""
    units: list[list[ChatMessage]] = []
    for message in messages:
        if message.role is Role.TOOL and units:
            units[-1].append(message)
        else:
            units.append([message])
    return units


def fit_context(
    messages: list[ChatMessage],
    *,
    max_messages: int = 0,
    max_tokens: int = 0,
    counter: TokenCounter = count_tokens,
) -> list[ChatMessage]:
    """Drop the oldest messages until both limits hold.

    The leading system message is always kept, as is the newest unit. A tool
    interaction is dropped as a whole so the context never opens with a
    tool result. Limits of 0 or less are ignored.
    """
    if not messages:
        return messages

    head: list[ChatMessage] = []
    body = messages
    if messages[0].role is Role.SYSTEM:
        head, body = [messages[0]], messages[1:]

    units = _group_units(body)
    sizes = [sum(count_message_tokens(m, counter) for m in unit) for unit in units]
    count = len(head) + sum(len(u) for u in units)
    tokens = sum(count_message_tokens(m, counter) for m in head) + sum(sizes)

    dropped = 0
    while len(units) - dropped > 1:
        over_count = max_messages > 0 and count > max_messages
        over_tokens = max_tokens > 0 and tokens > max_tokens
        if not (over_count or over_tokens):
            break
        count -= len(units[dropped])
        tokens -= sizes[dropped]
        dropped += 1

    if dropped:
        log.debug("Trimmed %d message group(s) from context", dropped)
    return head + [m for unit in units[dropped:] for m in unit]
