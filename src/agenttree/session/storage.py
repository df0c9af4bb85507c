"""Session persistence storage.

The file store keeps one YAML document per session in:
  $WORKSPACE/.agenttree/sessions/<session-id>.yaml

Session files contain:
- session_id, name, workspace, provider/model settings
- created_at / updated_at: ISO timestamps
- cursor: handle of the current node
- nodes: the conversation tree, parents first, children in insertion order
"""

from __future__ import annotations

import copy
import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import yaml
from filelock import FileLock

from agenttree.config.paths import get_project_dir
from agenttree.errors import NotFoundError, StateParseError
from agenttree.logging import get_logger

log = get_logger("storage")

LOCK_TIMEOUT = 10


@dataclass
class SessionMetadata:
    """Lightweight session metadata for listing."""

    session_id: str
    name: str
    created_at: datetime
    updated_at: datetime
    workspace: str

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> SessionMetadata:
        created = datetime.fromisoformat(data["created_at"])
        return cls(
            session_id=data["session_id"],
            name=data.get("name", "Untitled"),
            created_at=created,
            updated_at=datetime.fromisoformat(data.get("updated_at", data["created_at"])),
            workspace=data.get("workspace", "."),
        )


@runtime_checkable
class SessionStore(Protocol):
    """Persistence backend for session records (``Session.to_dict`` output)."""

    def save(self, record: dict[str, Any]) -> None: ...

    def load(self, session_id: str) -> dict[str, Any]: ...

    def list_ids(self) -> list[str]: ...

    def list_metadata(self) -> list[SessionMetadata]: ...

    def delete(self, session_id: str) -> bool: ...


def get_sessions_dir(workspace: str) -> Path:
    return get_project_dir(workspace) / "sessions"


class YamlSessionStore:
    """Stores sessions as YAML files in a directory.

    Writes go to a temp file that is renamed over the target, under a
    per-session file lock, so readers never see a partial document.
    """

    def __init__(self, directory: str | os.PathLike[str]) -> None:
        self._dir = Path(directory)

    @classmethod
    def for_workspace(cls, workspace: str) -> YamlSessionStore:
        return cls(get_sessions_dir(workspace))

    @property
    def directory(self) -> Path:
        return self._dir

    def path_for(self, session_id: str) -> Path:
        if not session_id or "/" in session_id or "\\" in session_id or session_id.startswith("."):
            raise NotFoundError(f"Invalid session id: {session_id!r}")
        return self._dir / f"{session_id}.yaml"

    def _lock(self, path: Path) -> FileLock:
        return FileLock(str(path) + ".lock", timeout=LOCK_TIMEOUT)

    def save(self, record: dict[str, Any]) -> None:
        session_id = record["session_id"]
        path = self.path_for(session_id)
        temp_path = path.with_name(path.name + ".tmp")
        self._dir.mkdir(parents=True, exist_ok=True)

        with self._lock(path):
            try:
                with open(temp_path, "w", encoding="utf-8") as f:
                    yaml.safe_dump(
                        record, f, default_flow_style=False, allow_unicode=True, sort_keys=False
                    )
                os.replace(temp_path, path)
            except Exception as e:
                if temp_path.exists():
                    temp_path.unlink()
                raise RuntimeError(f"Failed to save session {session_id}: {e}") from e

        log.debug("Saved session %s to %s", session_id, path)

    def load(self, session_id: str) -> dict[str, Any]:
        path = self.path_for(session_id)
        if not path.exists():
            raise NotFoundError(f"Session not found: {session_id}")

        with self._lock(path):
            try:
                with open(path, encoding="utf-8") as f:
                    data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise StateParseError(f"Invalid YAML in {path}: {e}") from e

        if not isinstance(data, dict):
            raise StateParseError(f"Session file {path} does not hold a mapping")
        return data

    def list_ids(self) -> list[str]:
        if not self._dir.exists():
            return []
        return sorted(p.stem for p in self._dir.glob("*.yaml"))

    def list_metadata(self) -> list[SessionMetadata]:
        """Metadata for all readable sessions, most recently updated first."""
        sessions: list[SessionMetadata] = []
        for session_id in self.list_ids():
            try:
                sessions.append(SessionMetadata.from_record(self.load(session_id)))
            except (StateParseError, KeyError, ValueError) as e:
                log.warning("Skipping unreadable session %s: %s", session_id, e)
        sessions.sort(key=lambda s: s.updated_at, reverse=True)
        return sessions

    def delete(self, session_id: str) -> bool:
        path = self.path_for(session_id)
        with self._lock(path):
            if not path.exists():
                return False
            path.unlink()
        log.debug("Deleted session %s", session_id)
        return True


class InMemorySessionStore:
    """Session store kept in process memory. Records are deep-copied."""

    def __init__(self) -> None:
        self._records: dict[str, dict[str, Any]] = {}

    def save(self, record: dict[str, Any]) -> None:
        self._records[record["session_id"]] = copy.deepcopy(record)

    def load(self, session_id: str) -> dict[str, Any]:
        try:
            return copy.deepcopy(self._records[session_id])
        except KeyError:
            raise NotFoundError(f"Session not found: {session_id}") from None

    def list_ids(self) -> list[str]:
        return sorted(self._records)

    def list_metadata(self) -> list[SessionMetadata]:
        sessions = [SessionMetadata.from_record(r) for r in self._records.values()]
        sessions.sort(key=lambda s: s.updated_at, reverse=True)
        return sessions

    def delete(self, session_id: str) -> bool:
        return self._records.pop(session_id, None) is not None
