"""Tests for the tool registry, dispatch policy and built-in tools.

Tests coverage for:
- src/agenttree/tools/registry.py
- src/agenttree/tools/shell.py
- src/agenttree/tools/files.py
- src/agenttree/tools/memory_tools.py
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import pytest

from agenttree.config import ToolsConfig
from agenttree.errors import (
    AlreadyExistsError,
    ErrorKind,
    InvalidArgumentError,
    NotFoundError,
    ToolCancelled,
    ToolError,
    ToolExecutionFailed,
    ToolNotAllowed,
    ToolTimeout,
)
from agenttree.memory import InMemoryStore, MemoryCategory
from agenttree.tools import (
    AutonomyLevel,
    FileReadTool,
    FileWriteTool,
    MemoryForgetTool,
    MemoryRecallTool,
    MemoryStoreTool,
    ShellTool,
    Tool,
    ToolContext,
    ToolOutcome,
    ToolRegistry,
    register_builtin_tools,
)


class EchoTool(Tool):
    name = "echo"
    description = "Echo the text argument"
    parameters = {"type": "object", "properties": {"text": {"type": "string"}}}

    async def execute(self, args: dict[str, Any], context: ToolContext) -> ToolOutcome:
        return ToolOutcome.ok(args.get("text", ""))


class ReadOnlyTool(EchoTool):
    name = "peek"
    min_autonomy = AutonomyLevel.READONLY


class SlowTool(EchoTool):
    name = "slow"

    async def execute(self, args: dict[str, Any], context: ToolContext) -> ToolOutcome:
        await asyncio.sleep(5)
        return ToolOutcome.ok("late")


class BrokenTool(EchoTool):
    name = "broken"

    async def execute(self, args: dict[str, Any], context: ToolContext) -> ToolOutcome:
        raise RuntimeError("kaboom")


class FailingTool(EchoTool):
    name = "failing"

    async def execute(self, args: dict[str, Any], context: ToolContext) -> ToolOutcome:
        return ToolOutcome.fail("nothing to do")


@pytest.fixture
def registry() -> ToolRegistry:
    reg = ToolRegistry(timeout=1.0)
    for tool in (EchoTool(), ReadOnlyTool(), SlowTool(), BrokenTool(), FailingTool()):
        reg.register(tool)
    return reg


@pytest.fixture
def context(tmp_path: Path) -> ToolContext:
    return ToolContext(workspace=tmp_path, session_id="s1", memory=InMemoryStore(), timeout=5.0)


def args(**kwargs: Any) -> str:
    return json.dumps(kwargs)


# =============================================================================
# Registry
# =============================================================================


class TestRegistry:
    def test_registration_order(self, registry: ToolRegistry) -> None:
        assert registry.names() == ["echo", "peek", "slow", "broken", "failing"]

    def test_duplicate_name(self, registry: ToolRegistry) -> None:
        with pytest.raises(AlreadyExistsError):
            registry.register(EchoTool())

    def test_unknown_tool(self, registry: ToolRegistry) -> None:
        with pytest.raises(NotFoundError):
            registry.get("nope")

    def test_available_by_level(self, registry: ToolRegistry) -> None:
        assert [t.name for t in registry.available(AutonomyLevel.READONLY)] == ["peek"]
        assert len(registry.available(AutonomyLevel.SUPERVISED)) == 5

    def test_disable_and_enable(self, registry: ToolRegistry) -> None:
        registry.disable("echo")
        assert not registry.is_enabled("echo")
        assert "echo" not in [s.name for s in registry.schemas_for(AutonomyLevel.FULL)]
        registry.enable("echo")
        assert registry.is_enabled("echo")

    def test_disable_unknown(self, registry: ToolRegistry) -> None:
        with pytest.raises(NotFoundError):
            registry.disable("nope")

    def test_schema(self) -> None:
        schema = EchoTool().schema().to_openai()
        assert schema["type"] == "function"
        assert schema["function"]["name"] == "echo"
        assert schema["function"]["parameters"]["properties"]["text"] == {"type": "string"}

    def test_shutdown(self, registry: ToolRegistry) -> None:
        registry.shutdown()
        assert registry.names() == []


class TestDispatch:
    """The autonomy policy and error mapping of dispatch."""

    @pytest.mark.asyncio
    async def test_full_runs_without_confirmation(
        self, registry: ToolRegistry, context: ToolContext
    ) -> None:
        outcome = await registry.dispatch("echo", args(text="hi"), AutonomyLevel.FULL, context)
        assert outcome.success
        assert outcome.content == "hi"

    @pytest.mark.asyncio
    async def test_readonly_denied(self, registry: ToolRegistry, context: ToolContext) -> None:
        with pytest.raises(ToolNotAllowed) as info:
            await registry.dispatch("echo", "{}", AutonomyLevel.READONLY, context)
        assert info.value.kind is ErrorKind.TOOL_NOT_ALLOWED

    @pytest.mark.asyncio
    async def test_readonly_tool_at_readonly(
        self, registry: ToolRegistry, context: ToolContext
    ) -> None:
        outcome = await registry.dispatch("peek", args(text="x"), AutonomyLevel.READONLY, context)
        assert outcome.content == "x"

    @pytest.mark.asyncio
    async def test_disabled_denied(self, registry: ToolRegistry, context: ToolContext) -> None:
        registry.disable("echo")
        with pytest.raises(ToolNotAllowed):
            await registry.dispatch("echo", "{}", AutonomyLevel.FULL, context)

    @pytest.mark.asyncio
    async def test_supervised_needs_confirmation(
        self, registry: ToolRegistry, context: ToolContext
    ) -> None:
        with pytest.raises(ToolCancelled):
            await registry.dispatch("echo", "{}", AutonomyLevel.SUPERVISED, context)
        with pytest.raises(ToolCancelled):
            await registry.dispatch(
                "echo", "{}", AutonomyLevel.SUPERVISED, context, confirm=lambda n, a: False
            )

    @pytest.mark.asyncio
    async def test_supervised_confirmed(self, registry: ToolRegistry, context: ToolContext) -> None:
        seen: list[tuple[str, dict[str, Any]]] = []

        async def confirm(name: str, arguments: dict[str, Any]) -> bool:
            seen.append((name, arguments))
            return True

        outcome = await registry.dispatch(
            "echo", args(text="ok"), AutonomyLevel.SUPERVISED, context, confirm=confirm
        )
        assert outcome.content == "ok"
        assert seen == [("echo", {"text": "ok"})]

    @pytest.mark.asyncio
    async def test_confirm_error_wrapped(self, registry: ToolRegistry, context: ToolContext) -> None:
        def confirm(name: str, arguments: dict[str, Any]) -> bool:
            raise EOFError("stdin closed")

        with pytest.raises(ToolCancelled) as info:
            await registry.dispatch(
                "echo", args(text="ok"), AutonomyLevel.SUPERVISED, context, confirm=confirm
            )
        assert info.value.kind is ErrorKind.CANCELLED
        assert isinstance(info.value.__cause__, EOFError)

    @pytest.mark.asyncio
    async def test_supervised_auto_confirm(
        self, registry: ToolRegistry, context: ToolContext
    ) -> None:
        outcome = await registry.dispatch(
            "echo", args(text="auto"), AutonomyLevel.SUPERVISED, context, auto_confirm=True
        )
        assert outcome.content == "auto"

    @pytest.mark.asyncio
    async def test_malformed_arguments(self, registry: ToolRegistry, context: ToolContext) -> None:
        with pytest.raises(InvalidArgumentError):
            await registry.dispatch("echo", "{not json", AutonomyLevel.FULL, context)
        with pytest.raises(InvalidArgumentError):
            await registry.dispatch("echo", "[1, 2]", AutonomyLevel.FULL, context)

    @pytest.mark.asyncio
    async def test_timeout(self, registry: ToolRegistry, context: ToolContext) -> None:
        with pytest.raises(ToolTimeout):
            await registry.dispatch("slow", "{}", AutonomyLevel.FULL, context, timeout=0.05)

    @pytest.mark.asyncio
    async def test_exception_wrapped(self, registry: ToolRegistry, context: ToolContext) -> None:
        with pytest.raises(ToolExecutionFailed) as info:
            await registry.dispatch("broken", "{}", AutonomyLevel.FULL, context)
        assert "kaboom" in info.value.message
        assert isinstance(info.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_failed_outcome(self, registry: ToolRegistry, context: ToolContext) -> None:
        with pytest.raises(ToolExecutionFailed) as info:
            await registry.dispatch("failing", "{}", AutonomyLevel.FULL, context)
        assert info.value.message == "nothing to do"


class TestBuiltinRegistration:
    def test_default_order(self) -> None:
        registry = ToolRegistry()
        register_builtin_tools(registry)
        assert registry.names() == [
            "shell",
            "file_read",
            "file_write",
            "memory_store",
            "memory_recall",
            "memory_forget",
        ]

    def test_config_switches(self) -> None:
        registry = ToolRegistry()
        register_builtin_tools(
            registry, ToolsConfig(enable_shell_tool=False, enable_memory_tools=False)
        )
        assert registry.names() == ["file_read", "file_write"]

    def test_file_write_never_at_full(self) -> None:
        registry = ToolRegistry()
        register_builtin_tools(registry)
        assert "file_write" in [t.name for t in registry.available(AutonomyLevel.SUPERVISED)]
        assert "file_write" not in [t.name for t in registry.available(AutonomyLevel.FULL)]
        assert registry.available(AutonomyLevel.READONLY) == []


# =============================================================================
# Built-in tools
# =============================================================================


class TestShellTool:
    def test_whitelist(self) -> None:
        tool = ShellTool(["ls", "echo"])
        assert tool.is_allowed("ls -la")
        assert tool.is_allowed("echo 'hi there'")
        assert not tool.is_allowed("rm -rf /")
        assert not tool.is_allowed("")
        assert not tool.is_allowed("echo 'unterminated")

    @pytest.mark.asyncio
    async def test_rejected_command(self, context: ToolContext) -> None:
        outcome = await ShellTool().execute({"command": "rm -rf /"}, context)
        assert not outcome.success
        assert outcome.content == "Command not allowed by whitelist"

    @pytest.mark.asyncio
    async def test_missing_command(self, context: ToolContext) -> None:
        with pytest.raises(InvalidArgumentError):
            await ShellTool().execute({}, context)

    @pytest.mark.skipif(sys.platform == "win32", reason="uses POSIX commands")
    @pytest.mark.asyncio
    async def test_runs_in_workspace(self, context: ToolContext, tmp_path: Path) -> None:
        (tmp_path / "marker.txt").write_text("x")
        outcome = await ShellTool().execute({"command": "ls"}, context)
        assert outcome.success
        assert "marker.txt" in outcome.content

    @pytest.mark.skipif(sys.platform == "win32", reason="uses POSIX commands")
    @pytest.mark.asyncio
    async def test_nonzero_exit(self, context: ToolContext) -> None:
        outcome = await ShellTool().execute({"command": "cat missing.txt"}, context)
        assert not outcome.success
        assert outcome.content.startswith("Command failed with exit code")

    @pytest.mark.skipif(sys.platform == "win32", reason="uses POSIX commands")
    @pytest.mark.asyncio
    async def test_timeout(self, context: ToolContext) -> None:
        context.timeout = 0.1
        with pytest.raises(ToolTimeout):
            await ShellTool(["sleep"]).execute({"command": "sleep 5"}, context)


class TestFileTools:
    @pytest.mark.asyncio
    async def test_write_then_read(self, context: ToolContext, tmp_path: Path) -> None:
        outcome = await FileWriteTool().execute(
            {"path": "notes/todo.txt", "content": "buy milk"}, context
        )
        assert outcome.success
        assert outcome.content == "File written successfully"
        assert (tmp_path / "notes" / "todo.txt").read_text() == "buy milk"

        read = await FileReadTool().execute({"path": "notes/todo.txt"}, context)
        assert read.content == "buy milk"

    @pytest.mark.asyncio
    async def test_no_temp_files_left(self, context: ToolContext, tmp_path: Path) -> None:
        await FileWriteTool().execute({"path": "a.txt", "content": "1"}, context)
        await FileWriteTool().execute({"path": "a.txt", "content": "2"}, context)
        assert sorted(p.name for p in tmp_path.iterdir()) == ["a.txt"]
        assert (tmp_path / "a.txt").read_text() == "2"

    @pytest.mark.asyncio
    async def test_overwrite_refused(self, context: ToolContext, tmp_path: Path) -> None:
        (tmp_path / "a.txt").write_text("keep")
        outcome = await FileWriteTool(allow_overwrite=False).execute(
            {"path": "a.txt", "content": "replace"}, context
        )
        assert not outcome.success
        assert (tmp_path / "a.txt").read_text() == "keep"

    @pytest.mark.asyncio
    async def test_outside_workspace(self, context: ToolContext) -> None:
        with pytest.raises(ToolError) as info:
            await FileReadTool().execute({"path": "../../etc/passwd"}, context)
        assert info.value.kind is ErrorKind.PERMISSION_DENIED

    @pytest.mark.asyncio
    async def test_read_missing(self, context: ToolContext) -> None:
        outcome = await FileReadTool().execute({"path": "nope.txt"}, context)
        assert not outcome.success
        assert "not found" in outcome.content

    @pytest.mark.asyncio
    async def test_read_directory(self, context: ToolContext, tmp_path: Path) -> None:
        (tmp_path / "dir").mkdir()
        outcome = await FileReadTool().execute({"path": "dir"}, context)
        assert not outcome.success

    @pytest.mark.asyncio
    async def test_read_too_large(self, context: ToolContext, tmp_path: Path) -> None:
        (tmp_path / "big.txt").write_text("x" * 100)
        outcome = await FileReadTool(max_bytes=10).execute({"path": "big.txt"}, context)
        assert not outcome.success
        assert "too large" in outcome.content

    @pytest.mark.asyncio
    async def test_io_runs_in_worker_thread(
        self, context: ToolContext, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        offloaded: list[str] = []
        to_thread = asyncio.to_thread

        async def recording(func, /, *a, **kw):
            offloaded.append(getattr(func, "__name__", repr(func)))
            return await to_thread(func, *a, **kw)

        monkeypatch.setattr(asyncio, "to_thread", recording)

        await FileWriteTool().execute({"path": "a.txt", "content": "hi"}, context)
        read = await FileReadTool().execute({"path": "a.txt"}, context)

        assert read.content == "hi"
        assert offloaded == ["_write_atomic", "read_text"]


class TestMemoryTools:
    @pytest.mark.asyncio
    async def test_store_recall_forget(self, context: ToolContext) -> None:
        stored = await MemoryStoreTool().execute(
            {"key": "editor", "content": "uses vim", "category": "custom"}, context
        )
        assert stored.success
        entry = context.memory.recall("editor")
        assert entry.category is MemoryCategory.CUSTOM
        assert entry.session_id == "s1"

        by_key = await MemoryRecallTool().execute({"key": "editor"}, context)
        assert "uses vim" in by_key.content

        by_query = await MemoryRecallTool().execute({"query": "vim"}, context)
        assert "editor" in by_query.content
        assert "score" in by_query.content

        forgot = await MemoryForgetTool().execute({"id": entry.id}, context)
        assert forgot.success
        assert context.memory.recall("editor") is None

    @pytest.mark.asyncio
    async def test_recall_nothing(self, context: ToolContext) -> None:
        outcome = await MemoryRecallTool().execute({"query": "anything"}, context)
        assert outcome.success
        assert outcome.content == "No matching memories"

    @pytest.mark.asyncio
    async def test_forget_missing(self, context: ToolContext) -> None:
        outcome = await MemoryForgetTool().execute({"key": "ghost"}, context)
        assert not outcome.success
        with pytest.raises(InvalidArgumentError):
            await MemoryForgetTool().execute({}, context)

    @pytest.mark.asyncio
    async def test_bad_category(self, context: ToolContext) -> None:
        with pytest.raises(InvalidArgumentError):
            await MemoryStoreTool().execute(
                {"key": "k", "content": "c", "category": "weekly"}, context
            )

    @pytest.mark.asyncio
    async def test_no_store(self, tmp_path: Path) -> None:
        outcome = await MemoryStoreTool().execute(
            {"key": "k", "content": "c"}, ToolContext(workspace=tmp_path)
        )
        assert not outcome.success
        assert outcome.content == "Memory store not configured"
