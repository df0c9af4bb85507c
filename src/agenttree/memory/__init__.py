"""Long-term memory stores used by the memory tools."""

from agenttree.memory.base import MemoryCategory, MemoryEntry, MemoryStore, SearchOptions
from agenttree.memory.stores import (
    InMemoryStore,
    YamlMemoryStore,
    create_memory_store,
    score_entry,
)

__all__ = [
    "InMemoryStore",
    "MemoryCategory",
    "MemoryEntry",
    "MemoryStore",
    "SearchOptions",
    "YamlMemoryStore",
    "create_memory_store",
    "score_entry",
]
