"""System prompt construction.

The prompt is a pure function of its inputs: identity, working directory,
autonomy level, tools (in registration order) and session preferences
(sorted by key). When it exceeds the token budget, tool descriptions are
dropped starting from the lowest-priority tool; tool names always stay.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from agenttree.core.tokens import TokenCounter, count_tokens
from agenttree.tools.base import AutonomyLevel

_AUTONOMY_NOTES = {
    AutonomyLevel.READONLY: "Tools are unavailable; answer from the conversation alone.",
    AutonomyLevel.SUPERVISED: "Each tool call is confirmed by the user before it runs.",
    AutonomyLevel.FULL: "Tool calls run without confirmation.",
}


@dataclass(frozen=True, slots=True)
class ToolEntry:
    name: str
    description: str


class SystemPromptBuilder:
    """Builds deterministic, budget-bounded system prompts."""

    def __init__(
        self,
        identity: str,
        *,
        max_tokens: int = 1024,
        counter: TokenCounter = count_tokens,
    ) -> None:
        self.identity = identity
        self.max_tokens = max_tokens
        self._counter = counter

    def _render(
        self,
        cwd: str,
        autonomy: AutonomyLevel,
        tools: Sequence[ToolEntry],
        described: int,
        preferences: Mapping[str, str],
    ) -> str:
        lines = [
            self.identity.strip(),
            "",
            f"Working directory: {cwd}",
            f"Autonomy level: {autonomy.label}. {_AUTONOMY_NOTES[autonomy]}",
        ]
        if tools:
            lines += ["", "Available tools:"]
            for index, tool in enumerate(tools):
                if index < described and tool.description:
                    lines.append(f"- {tool.name}: {tool.description}")
                else:
                    lines.append(f"- {tool.name}")
        if preferences:
            lines += ["", "User preferences:"]
            lines += [f"- {key}: {preferences[key]}" for key in sorted(preferences)]
        return "\n".join(lines)

    def build(
        self,
        *,
        cwd: str,
        autonomy: AutonomyLevel,
        tools: Sequence[ToolEntry] = (),
        preferences: Mapping[str, str] | None = None,
    ) -> str:
        preferences = preferences or {}
        described = len(tools)
        prompt = self._render(cwd, autonomy, tools, described, preferences)
        while (
            self.max_tokens > 0
            and described > 0
            and self._counter(prompt) > self.max_tokens
        ):
            described -= 1
            prompt = self._render(cwd, autonomy, tools, described, preferences)
        return prompt
