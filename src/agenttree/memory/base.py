"""Memory store interface and entry types."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from agenttree.errors import InvalidArgumentError


class MemoryCategory(Enum):
    """Where a memory belongs. An empty name parses as CORE."""

    CORE = "core"
    DAILY = "daily"
    CONVERSATION = "conversation"
    CUSTOM = "custom"

    @classmethod
    def parse(cls, value: str | MemoryCategory | None) -> MemoryCategory:
        if isinstance(value, MemoryCategory):
            return value
        if not value:
            return cls.CORE
        try:
            return cls(value.lower())
        except ValueError:
            raise InvalidArgumentError(f"Unknown memory category: {value}") from None


@dataclass(slots=True)
class MemoryEntry:
    """One stored memory.

    ``score`` is filled in by ``search`` (relevance in [0, 1]); stored
    entries keep the default of 1.0.
    """

    key: str
    content: str
    category: MemoryCategory = MemoryCategory.CORE
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: float = field(default_factory=time.time)
    session_id: str | None = None
    score: float = 1.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "key": self.key,
            "content": self.content,
            "category": self.category.value,
            "timestamp": self.timestamp,
            "session_id": self.session_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MemoryEntry:
        return cls(
            id=data["id"],
            key=data["key"],
            content=data.get("content", ""),
            category=MemoryCategory.parse(data.get("category")),
            timestamp=float(data.get("timestamp", 0.0)),
            session_id=data.get("session_id"),
        )


@dataclass(slots=True)
class SearchOptions:
    """Filters for ``MemoryStore.search``. Limit 0 means no limit."""

    limit: int = 10
    category: MemoryCategory | None = None
    min_timestamp: float | None = None
    max_timestamp: float | None = None
    min_score: float = 0.0


@runtime_checkable
class MemoryStore(Protocol):
    """Long-term memory used by the memory tools."""

    def store(
        self,
        key: str,
        content: str,
        category: MemoryCategory = MemoryCategory.CORE,
        session_id: str | None = None,
    ) -> MemoryEntry:
        """Store or replace the memory under ``key``."""
        ...

    def recall(self, key: str) -> MemoryEntry | None: ...

    def recall_by_id(self, entry_id: str) -> MemoryEntry | None: ...

    def search(self, query: str, options: SearchOptions | None = None) -> list[MemoryEntry]:
        """Entries matching ``query``, best first."""
        ...

    def forget(self, key: str) -> bool: ...

    def forget_by_id(self, entry_id: str) -> bool: ...

    def forget_old(self, cutoff: float) -> int:
        """Remove entries older than ``cutoff``; returns how many were removed."""
        ...

    def stats(self) -> dict[MemoryCategory, int]: ...

    def backup(self, path: str | Path) -> None: ...

    def restore(self, path: str | Path) -> None: ...
