"""Tools the model can call, and the registry that gates them."""

from agenttree.tools.base import (
    AutonomyLevel,
    Capability,
    Tool,
    ToolContext,
    ToolOutcome,
    resolve_in_workspace,
)
from agenttree.tools.builtin import register_builtin_tools
from agenttree.tools.files import FileReadTool, FileWriteTool
from agenttree.tools.memory_tools import MemoryForgetTool, MemoryRecallTool, MemoryStoreTool
from agenttree.tools.registry import ConfirmCallback, ToolRegistry
from agenttree.tools.shell import ShellTool

__all__ = [
    "AutonomyLevel",
    "Capability",
    "ConfirmCallback",
    "FileReadTool",
    "FileWriteTool",
    "MemoryForgetTool",
    "MemoryRecallTool",
    "MemoryStoreTool",
    "ShellTool",
    "Tool",
    "ToolContext",
    "ToolOutcome",
    "ToolRegistry",
    "register_builtin_tools",
    "resolve_in_workspace",
]
