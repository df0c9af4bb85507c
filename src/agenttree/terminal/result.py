"""Shell execution result dataclass."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class ShellResult:
    """Result of a shell command execution.

    Attributes:
        command: The command line that was executed.
        exit_code: Process exit code (0 = success), or None if killed on timeout.
        output: Combined stdout/stderr output (may be truncated).
        truncated: True if output was cut at the output limit.
        status: "ok", "error" or "timeout".
        duration_ms: Execution duration in milliseconds.
    """

    command: str
    exit_code: int | None
    output: str
    truncated: bool
    status: str
    duration_ms: float

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    @property
    def timed_out(self) -> bool:
        return self.status == "timeout"

    def __repr__(self) -> str:
        if self.success:
            lines = self.output.count("\n") + 1 if self.output else 0
            return f"<ShellResult ok, {lines} lines>"
        return f"<ShellResult {self.status}, exit={self.exit_code}>"
