"""Tests for system prompt construction."""

from __future__ import annotations

from agenttree.core.prompts import SystemPromptBuilder, ToolEntry
from agenttree.core.tokens import count_tokens_heuristic
from agenttree.tools.base import AutonomyLevel

TOOLS = [
    ToolEntry("shell", "Run an allowlisted command in the workspace."),
    ToolEntry("file_read", "Read a UTF-8 text file from the workspace."),
    ToolEntry("memory_recall", "Look up a stored memory by key."),
]


def builder(max_tokens: int = 1024) -> SystemPromptBuilder:
    return SystemPromptBuilder(
        "You are a test assistant.", max_tokens=max_tokens, counter=count_tokens_heuristic
    )


class TestSystemPromptBuilder:
    def test_layout(self) -> None:
        prompt = builder().build(
            cwd="/work",
            autonomy=AutonomyLevel.SUPERVISED,
            tools=TOOLS,
            preferences={"tone": "terse"},
        )
        lines = prompt.splitlines()

        assert lines[0] == "You are a test assistant."
        assert lines[1] == ""
        assert lines[2] == "Working directory: /work"
        assert lines[3].startswith("Autonomy level: supervised.")
        assert "Available tools:" in lines
        assert "- shell: Run an allowlisted command in the workspace." in lines
        assert lines[-2:] == ["User preferences:", "- tone: terse"]

    def test_deterministic(self) -> None:
        kwargs = dict(cwd="/work", autonomy=AutonomyLevel.FULL, tools=TOOLS)
        assert builder().build(**kwargs) == builder().build(**kwargs)

    def test_preferences_sorted(self) -> None:
        first = builder().build(
            cwd="/w", autonomy=AutonomyLevel.FULL, preferences={"b": "2", "a": "1"}
        )
        second = builder().build(
            cwd="/w", autonomy=AutonomyLevel.FULL, preferences={"a": "1", "b": "2"}
        )
        assert first == second
        assert first.index("- a: 1") < first.index("- b: 2")

    def test_no_tools_section(self) -> None:
        prompt = builder().build(cwd="/w", autonomy=AutonomyLevel.READONLY)
        assert "Available tools:" not in prompt
        assert "User preferences:" not in prompt

    def test_budget_drops_descriptions_from_end(self) -> None:
        full = builder().build(cwd="/w", autonomy=AutonomyLevel.FULL, tools=TOOLS)
        # Just under the full size: only the last description has to go
        budget = count_tokens_heuristic(full) - 1
        prompt = builder(budget).build(cwd="/w", autonomy=AutonomyLevel.FULL, tools=TOOLS)

        assert "- shell: Run an allowlisted" in prompt
        assert "- file_read: Read a UTF-8" in prompt
        assert "- memory_recall\n" in prompt + "\n"
        assert "Look up a stored memory" not in prompt

    def test_names_survive_tiny_budget(self) -> None:
        prompt = builder(1).build(cwd="/w", autonomy=AutonomyLevel.FULL, tools=TOOLS)
        for tool in TOOLS:
            assert f"- {tool.name}" in prompt
            assert tool.description not in prompt
