"""Whitelisted shell command tool."""

from __future__ import annotations

import shlex
from typing import Any

from agenttree.config.schema import DEFAULT_SHELL_COMMANDS
from agenttree.errors import ToolTimeout
from agenttree.terminal.subprocess_executor import SubprocessTerminalExecutor
from agenttree.tools.base import (
    AutonomyLevel,
    Capability,
    Tool,
    ToolContext,
    ToolOutcome,
    require_str,
)


class ShellTool(Tool):
    """Runs a command whose program name is on the whitelist."""

    name = "shell"
    description = "Execute a whitelisted shell command in the workspace and return its output"
    parameters = {
        "type": "object",
        "properties": {
            "command": {"type": "string", "description": "Command line to execute"},
        },
        "required": ["command"],
    }
    capabilities = frozenset({Capability.SHELL})
    min_autonomy = AutonomyLevel.SUPERVISED

    def __init__(self, allowed_commands: list[str] | None = None) -> None:
        commands = DEFAULT_SHELL_COMMANDS if allowed_commands is None else allowed_commands
        self.allowed_commands = frozenset(commands)

    def is_allowed(self, command_line: str) -> bool:
        """Match the first word of the command line against the whitelist."""
        try:
            words = shlex.split(command_line)
        except ValueError:
            return False
        return bool(words) and words[0] in self.allowed_commands

    async def execute(self, args: dict[str, Any], context: ToolContext) -> ToolOutcome:
        command = require_str(args, "command")
        if not self.is_allowed(command):
            return ToolOutcome.fail("Command not allowed by whitelist")

        executor = SubprocessTerminalExecutor(default_cwd=str(context.workspace))
        result = await executor.execute(command, timeout=context.timeout)

        if result.timed_out:
            raise ToolTimeout(result.output, tool_name=self.name)
        if not result.success:
            message = f"Command failed with exit code {result.exit_code}"
            if result.output:
                message = f"{message}\n{result.output}"
            return ToolOutcome.fail(message)
        return ToolOutcome.ok(result.output or "Command executed successfully (no output)")
