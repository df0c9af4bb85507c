"""Local command execution used by the shell tool."""

from agenttree.terminal.result import ShellResult
from agenttree.terminal.subprocess_executor import SubprocessTerminalExecutor

__all__ = ["ShellResult", "SubprocessTerminalExecutor"]
