"""Workspace-confined file tools."""

from __future__ import annotations

import asyncio
import os
import tempfile
from pathlib import Path
from typing import Any

from agenttree.tools.base import (
    AutonomyLevel,
    Capability,
    Tool,
    ToolContext,
    ToolOutcome,
    require_str,
    resolve_in_workspace,
)

DEFAULT_MAX_FILE_BYTES = 1024 * 1024


class FileReadTool(Tool):
    name = "file_read"
    description = "Read a text file from the workspace"
    parameters = {
        "type": "object",
        "properties": {
            "path": {"type": "string", "description": "Path relative to the workspace"},
        },
        "required": ["path"],
    }
    capabilities = frozenset({Capability.FILESYSTEM})
    min_autonomy = AutonomyLevel.SUPERVISED

    def __init__(self, max_bytes: int = DEFAULT_MAX_FILE_BYTES) -> None:
        self.max_bytes = max_bytes

    async def execute(self, args: dict[str, Any], context: ToolContext) -> ToolOutcome:
        path = require_str(args, "path")
        target = resolve_in_workspace(context.workspace, path)

        if not target.exists():
            return ToolOutcome.fail(f"File not found: {path}")
        if not target.is_file():
            return ToolOutcome.fail(f"Not a regular file: {path}")
        size = target.stat().st_size
        if size > self.max_bytes:
            return ToolOutcome.fail(
                f"File too large: {path} is {size} bytes (limit {self.max_bytes})"
            )
        text = await asyncio.to_thread(target.read_text, encoding="utf-8", errors="replace")
        return ToolOutcome.ok(text)


class FileWriteTool(Tool):
    """Writes files atomically. Never available at FULL autonomy."""

    name = "file_write"
    description = "Write text content to a file in the workspace"
    parameters = {
        "type": "object",
        "properties": {
            "path": {"type": "string", "description": "Path relative to the workspace"},
            "content": {"type": "string", "description": "Content to write"},
        },
        "required": ["path", "content"],
    }
    capabilities = frozenset({Capability.FILESYSTEM})
    min_autonomy = AutonomyLevel.SUPERVISED
    allowed_levels = frozenset({AutonomyLevel.SUPERVISED})

    def __init__(
        self, *, allow_overwrite: bool = True, max_bytes: int = DEFAULT_MAX_FILE_BYTES
    ) -> None:
        self.allow_overwrite = allow_overwrite
        self.max_bytes = max_bytes

    async def execute(self, args: dict[str, Any], context: ToolContext) -> ToolOutcome:
        path = require_str(args, "path")
        content = require_str(args, "content", allow_empty=True)
        target = resolve_in_workspace(context.workspace, path)

        data = content.encode("utf-8")
        if len(data) > self.max_bytes:
            return ToolOutcome.fail(f"Content too large: {len(data)} bytes (limit {self.max_bytes})")
        if target.exists() and not self.allow_overwrite:
            return ToolOutcome.fail(f"File already exists: {path}")
        if target.exists() and not target.is_file():
            return ToolOutcome.fail(f"Not a regular file: {path}")

        await asyncio.to_thread(_write_atomic, target, data)
        return ToolOutcome.ok("File written successfully")


def _write_atomic(target: Path, data: bytes) -> None:
    """Write through a temp file in the same directory, then rename over ``target``."""
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(temp_name, target)
    except OSError:
        if os.path.exists(temp_name):
            os.unlink(temp_name)
        raise
