"""Memory store backends: in-process and YAML file."""

from __future__ import annotations

import os
import re
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, TypeVar

import yaml
from filelock import FileLock

from agenttree.errors import ConfigParseError, StateParseError
from agenttree.logging import get_logger
from agenttree.memory.base import MemoryCategory, MemoryEntry, SearchOptions

log = get_logger("memory")

T = TypeVar("T")

_WORD = re.compile(r"\w+")


def score_entry(entry: MemoryEntry, query: str) -> float:
    """Keyword relevance of ``entry`` for ``query`` in [0, 1].

    An exact key match scores 1.0; otherwise the score is the fraction of
    query words found in the key or content. An empty query matches all.
    """
    query = query.strip().lower()
    if not query:
        return 1.0
    if entry.key.lower() == query:
        return 1.0
    terms = set(_WORD.findall(query))
    if not terms:
        return 0.0
    haystack = f"{entry.key} {entry.content}".lower()
    matched = sum(1 for term in terms if term in haystack)
    return matched / len(terms)


def _dump(entries: list[MemoryEntry]) -> dict[str, Any]:
    return {"version": 1, "entries": [e.to_dict() for e in entries]}


def _parse(data: Any, source: str) -> list[MemoryEntry]:
    if data is None:
        return []
    if not isinstance(data, dict):
        raise StateParseError(f"Memory file {source} does not hold a mapping")
    try:
        return [MemoryEntry.from_dict(e) for e in data.get("entries") or []]
    except (KeyError, TypeError, ValueError) as e:
        raise StateParseError(f"Malformed memory entry in {source}: {e}") from e


def _write_atomic(path: Path, data: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_name(path.name + ".tmp")
    with open(temp_path, "w", encoding="utf-8") as f:
        yaml.safe_dump(data, f, default_flow_style=False, allow_unicode=True, sort_keys=False)
    os.replace(temp_path, path)


class InMemoryStore:
    """Memory kept in a dict keyed by memory key."""

    def __init__(self) -> None:
        self._entries: dict[str, MemoryEntry] = {}

    def store(
        self,
        key: str,
        content: str,
        category: MemoryCategory = MemoryCategory.CORE,
        session_id: str | None = None,
    ) -> MemoryEntry:
        existing = self._entries.get(key)
        entry = MemoryEntry(key=key, content=content, category=category, session_id=session_id)
        if existing is not None:
            entry.id = existing.id
        self._entries[key] = entry
        return entry

    def recall(self, key: str) -> MemoryEntry | None:
        return self._entries.get(key)

    def recall_by_id(self, entry_id: str) -> MemoryEntry | None:
        return self._find_by_id(entry_id)

    def _find_by_id(self, entry_id: str) -> MemoryEntry | None:
        for entry in self._entries.values():
            if entry.id == entry_id:
                return entry
        return None

    def search(self, query: str, options: SearchOptions | None = None) -> list[MemoryEntry]:
        options = options or SearchOptions()
        results: list[MemoryEntry] = []
        for entry in self._entries.values():
            if options.category is not None and entry.category is not options.category:
                continue
            if options.min_timestamp is not None and entry.timestamp < options.min_timestamp:
                continue
            if options.max_timestamp is not None and entry.timestamp > options.max_timestamp:
                continue
            score = score_entry(entry, query)
            if score <= 0.0 or score < options.min_score:
                continue
            hit = MemoryEntry(
                key=entry.key,
                content=entry.content,
                category=entry.category,
                id=entry.id,
                timestamp=entry.timestamp,
                session_id=entry.session_id,
                score=score,
            )
            results.append(hit)
        results.sort(key=lambda e: (-e.score, -e.timestamp))
        if options.limit > 0:
            results = results[: options.limit]
        return results

    def forget(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def forget_by_id(self, entry_id: str) -> bool:
        entry = self._find_by_id(entry_id)
        if entry is None:
            return False
        del self._entries[entry.key]
        return True

    def forget_old(self, cutoff: float) -> int:
        stale = [k for k, e in self._entries.items() if e.timestamp < cutoff]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def stats(self) -> dict[MemoryCategory, int]:
        counts = {category: 0 for category in MemoryCategory}
        for entry in self._entries.values():
            counts[entry.category] += 1
        return counts

    def backup(self, path: str | Path) -> None:
        _write_atomic(Path(path), _dump(list(self._entries.values())))

    def restore(self, path: str | Path) -> None:
        """Replace all entries with those from a backup file."""
        path = Path(path)
        with open(path, encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise StateParseError(f"Invalid YAML in {path}: {e}") from e
        self._entries = {e.key: e for e in _parse(data, str(path))}


class YamlMemoryStore(InMemoryStore):
    """Memory persisted to a YAML file shared between processes.

    Every operation re-reads the file under a file lock; mutating ones write
    it back atomically before the lock is released.
    """

    def __init__(self, path: str | Path) -> None:
        super().__init__()
        self._path = Path(path)
        self._lock_path = self._path.with_suffix(".lock")

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> None:
        if not self._path.exists():
            self._entries = {}
            return
        with open(self._path, encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise StateParseError(f"Invalid YAML in {self._path}: {e}") from e
        self._entries = {e.key: e for e in _parse(data, str(self._path))}

    @contextmanager
    def _locked(self) -> Iterator[None]:
        with FileLock(self._lock_path, timeout=10):
            self._read()
            yield

    def _update(self, operation: Callable[[], T]) -> T:
        with self._locked():
            result = operation()
            _write_atomic(self._path, _dump(list(self._entries.values())))
        return result

    def _view(self, operation: Callable[[], T]) -> T:
        with self._locked():
            return operation()

    def store(
        self,
        key: str,
        content: str,
        category: MemoryCategory = MemoryCategory.CORE,
        session_id: str | None = None,
    ) -> MemoryEntry:
        base = super()
        entry = self._update(lambda: base.store(key, content, category, session_id))
        log.debug("Stored memory %s (%s)", key, category.value)
        return entry

    def recall(self, key: str) -> MemoryEntry | None:
        return self._view(lambda: super(YamlMemoryStore, self).recall(key))

    def recall_by_id(self, entry_id: str) -> MemoryEntry | None:
        return self._view(lambda: super(YamlMemoryStore, self).recall_by_id(entry_id))

    def search(self, query: str, options: SearchOptions | None = None) -> list[MemoryEntry]:
        return self._view(lambda: super(YamlMemoryStore, self).search(query, options))

    def forget(self, key: str) -> bool:
        return self._update(lambda: super(YamlMemoryStore, self).forget(key))

    def forget_by_id(self, entry_id: str) -> bool:
        return self._update(lambda: super(YamlMemoryStore, self).forget_by_id(entry_id))

    def forget_old(self, cutoff: float) -> int:
        return self._update(lambda: super(YamlMemoryStore, self).forget_old(cutoff))

    def stats(self) -> dict[MemoryCategory, int]:
        return self._view(lambda: super(YamlMemoryStore, self).stats())

    def backup(self, path: str | Path) -> None:
        self._view(lambda: super(YamlMemoryStore, self).backup(path))

    def restore(self, path: str | Path) -> None:
        self._update(lambda: super(YamlMemoryStore, self).restore(path))


def create_memory_store(backend: str = "memory", path: str | None = None) -> InMemoryStore:
    """Build the configured memory backend ("memory" or "yaml")."""
    if backend == "yaml":
        if not path:
            raise ConfigParseError("memory.path is required for the yaml backend")
        return YamlMemoryStore(path)
    if backend != "memory":
        log.warning("Unknown memory backend %r, using in-memory store", backend)
    return InMemoryStore()
