"""Subprocess-based executor for local shell commands."""

from __future__ import annotations

import asyncio
import os
import shlex
import time

from agenttree.terminal.result import ShellResult

DEFAULT_OUTPUT_LIMIT = 50000


class SubprocessTerminalExecutor:
    """Execute commands with asyncio subprocesses, without a shell.

    The command line is split with ``shlex`` and run directly, so shell
    metacharacters are passed to the program as literal arguments.
    """

    def __init__(self, default_cwd: str = ".") -> None:
        self._default_cwd = default_cwd

    async def execute(
        self,
        command_line: str,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        timeout: float | None = 30.0,
        output_limit: int = DEFAULT_OUTPUT_LIMIT,
    ) -> ShellResult:
        """Run ``command_line`` and capture its combined output.

        Args:
            command_line: Program and arguments as one string.
            cwd: Working directory. Uses default_cwd if None.
            env: Extra environment variables.
            timeout: Seconds before the process is killed. None waits forever.
            output_limit: Maximum characters of output kept.
        """
        start_time = time.perf_counter()

        def elapsed() -> float:
            return (time.perf_counter() - start_time) * 1000

        try:
            argv = shlex.split(command_line)
        except ValueError as e:
            return ShellResult(command_line, 2, f"Invalid command line: {e}", False, "error", elapsed())
        if not argv:
            return ShellResult(command_line, 2, "Empty command", False, "error", elapsed())

        process_env = os.environ.copy()
        if env:
            process_env.update(env)

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                cwd=cwd or self._default_cwd,
                env=process_env,
            )
        except FileNotFoundError:
            return ShellResult(
                command_line, 127, f"Command not found: {argv[0]}", False, "error", elapsed()
            )
        except PermissionError:
            return ShellResult(
                command_line, 126, f"Permission denied: {argv[0]}", False, "error", elapsed()
            )
        except OSError as e:
            return ShellResult(command_line, 1, f"OS error: {e}", False, "error", elapsed())

        try:
            if timeout is not None:
                stdout_data, _ = await asyncio.wait_for(process.communicate(), timeout=timeout)
            else:
                stdout_data, _ = await process.communicate()
        except asyncio.TimeoutError:
            try:
                process.kill()
                await process.wait()
            except ProcessLookupError:
                pass
            return ShellResult(
                command_line,
                None,
                f"Command timed out after {timeout}s",
                False,
                "timeout",
                elapsed(),
            )
        except asyncio.CancelledError:
            try:
                process.kill()
            except ProcessLookupError:
                pass
            raise

        output = stdout_data.decode("utf-8", errors="replace")
        truncated = len(output) > output_limit
        if truncated:
            output = output[:output_limit] + "\n... (output truncated)"

        exit_code = process.returncode
        return ShellResult(
            command=command_line,
            exit_code=exit_code,
            output=output,
            truncated=truncated,
            status="ok" if exit_code == 0 else "error",
            duration_ms=elapsed(),
        )
