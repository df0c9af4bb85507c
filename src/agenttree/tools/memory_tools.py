"""Tools that read and write the memory store."""

from __future__ import annotations

from typing import Any

from agenttree.errors import InvalidArgumentError
from agenttree.memory.base import MemoryCategory, MemoryEntry, MemoryStore, SearchOptions
from agenttree.tools.base import (
    AutonomyLevel,
    Capability,
    Tool,
    ToolContext,
    ToolOutcome,
    require_str,
)

_CATEGORIES = [c.value for c in MemoryCategory]


def _format_entry(entry: MemoryEntry, *, with_score: bool = False) -> str:
    line = f"- [{entry.category.value}] {entry.key}: {entry.content}"
    if with_score:
        line += f" (score {entry.score:.2f})"
    return line


class _MemoryTool(Tool):
    capabilities = frozenset({Capability.MEMORY})
    min_autonomy = AutonomyLevel.SUPERVISED

    def _store(self, context: ToolContext) -> MemoryStore | None:
        return context.memory


class MemoryStoreTool(_MemoryTool):
    name = "memory_store"
    description = "Store a fact in long-term memory under a key"
    parameters = {
        "type": "object",
        "properties": {
            "key": {"type": "string", "description": "Unique key for the memory"},
            "content": {"type": "string", "description": "Content to remember"},
            "category": {"type": "string", "enum": _CATEGORIES},
        },
        "required": ["key", "content"],
    }

    async def execute(self, args: dict[str, Any], context: ToolContext) -> ToolOutcome:
        store = self._store(context)
        if store is None:
            return ToolOutcome.fail("Memory store not configured")
        key = require_str(args, "key")
        content = require_str(args, "content")
        category = MemoryCategory.parse(args.get("category"))
        entry = store.store(key, content, category, context.session_id)
        return ToolOutcome.ok(f"Stored memory '{entry.key}' ({entry.category.value}, id {entry.id})")


class MemoryRecallTool(_MemoryTool):
    name = "memory_recall"
    description = "Recall memories by exact key or by searching for a query"
    parameters = {
        "type": "object",
        "properties": {
            "query": {"type": "string", "description": "Words to search for"},
            "key": {"type": "string", "description": "Exact key to recall"},
            "limit": {"type": "integer", "minimum": 1, "default": 10},
            "category": {"type": "string", "enum": _CATEGORIES},
        },
    }

    async def execute(self, args: dict[str, Any], context: ToolContext) -> ToolOutcome:
        store = self._store(context)
        if store is None:
            return ToolOutcome.fail("Memory store not configured")

        key = args.get("key")
        if key:
            entry = store.recall(str(key))
            if entry is None:
                return ToolOutcome.ok(f"No memory found for key '{key}'")
            return ToolOutcome.ok(_format_entry(entry))

        limit = args.get("limit", 10)
        if not isinstance(limit, int) or isinstance(limit, bool) or limit < 1:
            raise InvalidArgumentError("'limit' must be a positive integer")
        options = SearchOptions(limit=limit)
        if args.get("category"):
            options.category = MemoryCategory.parse(args["category"])

        entries = store.search(str(args.get("query") or ""), options)
        if not entries:
            return ToolOutcome.ok("No matching memories")
        return ToolOutcome.ok("\n".join(_format_entry(e, with_score=True) for e in entries))


class MemoryForgetTool(_MemoryTool):
    name = "memory_forget"
    description = "Forget a memory by key or id"
    parameters = {
        "type": "object",
        "properties": {
            "key": {"type": "string", "description": "Key of the memory to forget"},
            "id": {"type": "string", "description": "Id of the memory to forget"},
        },
        "anyOf": [{"required": ["key"]}, {"required": ["id"]}],
    }

    async def execute(self, args: dict[str, Any], context: ToolContext) -> ToolOutcome:
        store = self._store(context)
        if store is None:
            return ToolOutcome.fail("Memory store not configured")

        if args.get("key"):
            key = require_str(args, "key")
            if store.forget(key):
                return ToolOutcome.ok(f"Forgot memory '{key}'")
            return ToolOutcome.fail(f"No memory found for key '{key}'")
        if args.get("id"):
            entry_id = require_str(args, "id")
            if store.forget_by_id(entry_id):
                return ToolOutcome.ok(f"Forgot memory {entry_id}")
            return ToolOutcome.fail(f"No memory found with id {entry_id}")
        raise InvalidArgumentError("memory_forget needs a 'key' or an 'id'")
