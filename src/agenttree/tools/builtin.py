"""Registration of the built-in tools from configuration."""

from __future__ import annotations

from agenttree.config.schema import ToolsConfig
from agenttree.tools.files import FileReadTool, FileWriteTool
from agenttree.tools.memory_tools import MemoryForgetTool, MemoryRecallTool, MemoryStoreTool
from agenttree.tools.registry import ToolRegistry
from agenttree.tools.shell import ShellTool


def register_builtin_tools(registry: ToolRegistry, config: ToolsConfig | None = None) -> None:
    """Register the shell, file and memory tools enabled in ``config``.

    Registration order is the priority order used by the system prompt.
    """
    config = config or ToolsConfig()
    if config.enable_shell_tool:
        registry.register(ShellTool(config.allowed_shell_commands))
    if config.enable_file_tools:
        registry.register(FileReadTool(max_bytes=config.max_file_bytes))
        registry.register(
            FileWriteTool(allow_overwrite=config.allow_overwrite, max_bytes=config.max_file_bytes)
        )
    if config.enable_memory_tools:
        registry.register(MemoryStoreTool())
        registry.register(MemoryRecallTool())
        registry.register(MemoryForgetTool())
