"""Tool base class, autonomy levels and execution context."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum, IntEnum
from pathlib import Path
from typing import TYPE_CHECKING, Any, ClassVar

from agenttree.core.llm.provider import ToolSchema
from agenttree.errors import ErrorKind, InvalidArgumentError, ToolError

if TYPE_CHECKING:
    from agenttree.memory.base import MemoryStore


class AutonomyLevel(IntEnum):
    """How much the agent may do without asking. Ordered by privilege."""

    READONLY = 0
    SUPERVISED = 1
    FULL = 2

    @classmethod
    def parse(cls, value: str | int | AutonomyLevel) -> AutonomyLevel:
        if isinstance(value, AutonomyLevel):
            return value
        if isinstance(value, int):
            return cls(value)
        try:
            return cls[value.strip().upper()]
        except KeyError:
            raise InvalidArgumentError(f"Unknown autonomy level: {value}") from None

    @property
    def label(self) -> str:
        return self.name.lower()


class Capability(Enum):
    MEMORY = "memory"
    FILESYSTEM = "filesystem"
    SHELL = "shell"
    NETWORK = "network"


@dataclass(slots=True)
class ToolContext:
    """What a tool may touch while executing.

    Attributes:
        workspace: Directory file and shell tools are confined to
        session_id: Session running the turn
        memory: Memory store for the memory tools, if configured
        timeout: Seconds the dispatcher allows the call
    """

    workspace: Path
    session_id: str | None = None
    memory: MemoryStore | None = None
    timeout: float = 30.0


@dataclass(slots=True)
class ToolOutcome:
    """Result reported by a tool. ``success=False`` is a tool-level failure."""

    success: bool
    content: str

    @classmethod
    def ok(cls, content: str) -> ToolOutcome:
        return cls(True, content)

    @classmethod
    def fail(cls, content: str) -> ToolOutcome:
        return cls(False, content)


class Tool(ABC):
    """Base class for tools the model can call.

    Subclasses set the class attributes and implement ``execute``.
    ``allowed_levels`` of None means every level at or above ``min_autonomy``.
    """

    name: ClassVar[str]
    description: ClassVar[str]
    parameters: ClassVar[dict[str, Any]] = {"type": "object", "properties": {}}
    capabilities: ClassVar[frozenset[Capability]] = frozenset()
    min_autonomy: ClassVar[AutonomyLevel] = AutonomyLevel.SUPERVISED
    allowed_levels: ClassVar[frozenset[AutonomyLevel] | None] = None

    def permits(self, level: AutonomyLevel) -> bool:
        if level < self.min_autonomy:
            return False
        return self.allowed_levels is None or level in self.allowed_levels

    def schema(self) -> ToolSchema:
        return ToolSchema(self.name, self.description, self.parameters)

    def parse_arguments(self, arguments_json: str) -> dict[str, Any]:
        """Decode model-supplied JSON arguments into a dict.

        Raises:
            InvalidArgumentError: If the JSON is malformed or not an object.
        """
        if not arguments_json or not arguments_json.strip():
            return {}
        try:
            args = json.loads(arguments_json)
        except json.JSONDecodeError as e:
            raise InvalidArgumentError(f"Malformed arguments for {self.name}: {e}") from e
        if not isinstance(args, dict):
            raise InvalidArgumentError(f"Arguments for {self.name} must be a JSON object")
        return args

    @abstractmethod
    async def execute(self, args: dict[str, Any], context: ToolContext) -> ToolOutcome:
        """Run the tool with decoded arguments."""
        ...

    def __repr__(self) -> str:
        return f"<Tool {self.name}>"


def require_str(args: dict[str, Any], key: str, *, allow_empty: bool = False) -> str:
    """Fetch a required string argument."""
    value = args.get(key)
    if not isinstance(value, str) or (not allow_empty and not value):
        raise InvalidArgumentError(f"Missing or invalid '{key}' argument")
    return value


def resolve_in_workspace(workspace: Path, path: str) -> Path:
    """Resolve ``path`` against the workspace, refusing anything outside it."""
    root = workspace.resolve()
    target = (root / path).resolve()
    if target != root and root not in target.parents:
        raise ToolError(
            f"Path is outside the workspace: {path}", kind=ErrorKind.PERMISSION_DENIED
        )
    return target
