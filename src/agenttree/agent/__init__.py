"""Agent runtime: the turn loop and the agent context that drives it."""

from agenttree.agent.loop import (
    AgentLoop,
    AssistantReply,
    CancellationToken,
    StopReason,
    normalise_tool_calls,
)
from agenttree.agent.runtime import Agent

__all__ = [
    "Agent",
    "AgentLoop",
    "AssistantReply",
    "CancellationToken",
    "StopReason",
    "normalise_tool_calls",
]
