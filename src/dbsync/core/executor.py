"""Command execution with cleanup support.

Provides:
- Safe command execution with output capture
- Line-by-line streaming for long-running commands
- Secret masking in logged command lines
- Cleanup stack that runs on every exit path
"""

import os
import shlex
import subprocess
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from types import TracebackType
from typing import Callable, Optional, Sequence

from dbsync.core.context import ExecutionContext
from dbsync.core.exceptions import ExecutionError
from dbsync.core.output import Console, console

# Lines of streamed output kept for error reports
STREAM_TAIL_LINES = 200


@dataclass
class CleanupAction:
    """A single cleanup action."""
    description: str
    action: Callable[[], None]


class CleanupStack:
    """Stack of cleanup actions that always run when the scope exits.

    Usage:
        with CleanupStack() as cleanup:
            create_remote_file()
            handle = cleanup.add("Delete remote file", delete_remote_file)

            download()
            delete_remote_file()
            cleanup.discard(handle)  # already done on the happy path

    Actions run in reverse order. A failing action is reported and the
    remaining actions still run; the original exception, if any, is
    never masked.
    """

    def __init__(self, output: Optional[Console] = None) -> None:
        self.actions: list[CleanupAction] = []
        self._console = output or console

    def add(self, description: str, action: Callable[[], None]) -> CleanupAction:
        """Register a cleanup action and return its handle."""
        entry = CleanupAction(description, action)
        self.actions.append(entry)
        return entry

    def discard(self, entry: CleanupAction) -> None:
        """Forget an action that is no longer needed."""
        if entry in self.actions:
            self.actions.remove(entry)

    def run(self) -> None:
        """Execute all cleanup actions in reverse order."""
        while self.actions:
            entry = self.actions.pop()
            try:
                self._console.debug(f"Cleanup: {entry.description}")
                entry.action()
            except Exception as e:
                self._console.warn(f"Cleanup failed: {entry.description}: {e}")

    def __enter__(self) -> "CleanupStack":
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.run()


@dataclass
class CommandResult:
    """Result of a command execution."""
    command: list[str]
    return_code: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        """Check if command succeeded."""
        return self.return_code == 0


def mask_secrets(text: str, secrets: Sequence[str]) -> str:
    """Replace every non-empty secret in text with asterisks."""
    for secret in secrets:
        if secret:
            text = text.replace(secret, "****")
    return text


class CommandExecutor:
    """Safe local command execution with output capture.

    Features:
    - Output capture for processing
    - Optional timeout (None waits forever)
    - Streaming of merged stdout/stderr line by line
    - Sensitive command masking
    """

    def __init__(self, ctx: ExecutionContext) -> None:
        """Initialize executor with context.

        Args:
            ctx: Execution context with flags
        """
        self.ctx = ctx

    def _display(
        self,
        command: list[str],
        sensitive: bool,
        secrets: Sequence[str],
    ) -> str:
        if sensitive and not secrets:
            return "<sensitive command>"
        return mask_secrets(shlex.join(command), secrets)

    @staticmethod
    def _env(env: Optional[dict[str, str]]) -> Optional[dict[str, str]]:
        if not env:
            return None
        run_env = os.environ.copy()
        run_env.update(env)
        return run_env

    def run(
        self,
        command: list[str],
        *,
        description: Optional[str] = None,
        check: bool = True,
        capture: bool = True,
        sensitive: bool = False,
        secrets: Sequence[str] = (),
        timeout: Optional[int] = None,
        env: Optional[dict[str, str]] = None,
        cwd: Optional[Path] = None,
    ) -> CommandResult:
        """Execute a command safely.

        Args:
            command: Command as list of strings
            description: Human-readable description for logging
            check: Raise exception on non-zero exit
            capture: Capture stdout/stderr
            sensitive: Don't log the actual command
            secrets: Values masked wherever the command is displayed
            timeout: Command timeout in seconds
            env: Additional environment variables
            cwd: Working directory

        Returns:
            CommandResult with output

        Raises:
            ExecutionError: If command fails and check=True
        """
        if description:
            self.ctx.console.step(description)

        cmd_display = self._display(command, sensitive, secrets)
        self.ctx.console.debug(f"Running: {cmd_display}")

        try:
            result = subprocess.run(
                command,
                capture_output=capture,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=timeout,
                env=self._env(env),
                cwd=cwd,
            )
        except subprocess.TimeoutExpired:
            raise ExecutionError(
                f"Command timed out after {timeout}s: {description or cmd_display}",
                command=cmd_display,
            )
        except FileNotFoundError as e:
            raise ExecutionError(
                f"Command not found: {command[0]}",
                command=cmd_display,
                hint="Install it or set its path in the 'bin' configuration section",
                details=[str(e)],
            ) from e

        cmd_result = CommandResult(
            command=command,
            return_code=result.returncode,
            stdout=result.stdout if capture else "",
            stderr=result.stderr if capture else "",
        )

        if check and result.returncode != 0:
            stderr = result.stderr if capture else None
            raise ExecutionError(
                f"Command failed: {description or cmd_display}",
                command=cmd_display,
                return_code=result.returncode,
                stderr=mask_secrets(stderr, secrets) if stderr else None,
            )

        return cmd_result

    def stream(
        self,
        command: list[str],
        *,
        on_line: Optional[Callable[[str], bool]] = None,
        description: Optional[str] = None,
        sensitive: bool = False,
        secrets: Sequence[str] = (),
        env: Optional[dict[str, str]] = None,
        cwd: Optional[Path] = None,
    ) -> CommandResult:
        """Execute a command without timeout, streaming its output.

        stdout and stderr are merged. Every line is passed to ``on_line``;
        lines for which it returns True are treated as consumed and are
        not kept in the captured output.

        Returns:
            CommandResult whose stdout holds the last captured lines
        """
        if description:
            self.ctx.console.step(description)

        cmd_display = self._display(command, sensitive, secrets)
        self.ctx.console.debug(f"Streaming: {cmd_display}")

        tail: deque[str] = deque(maxlen=STREAM_TAIL_LINES)
        try:
            # Client errors may quote statements from a non UTF-8 dump
            process = subprocess.Popen(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
                env=self._env(env),
                cwd=cwd,
            )
        except FileNotFoundError as e:
            raise ExecutionError(
                f"Command not found: {command[0]}",
                command=cmd_display,
                details=[str(e)],
            ) from e

        with process:
            assert process.stdout is not None
            for raw_line in process.stdout:
                line = raw_line.rstrip("\n")
                if on_line is not None and on_line(line):
                    continue
                tail.append(line)
                self.ctx.console.verbose(mask_secrets(line, secrets))
            return_code = process.wait()

        return CommandResult(
            command=command,
            return_code=return_code,
            stdout=mask_secrets("\n".join(tail), secrets),
            stderr="",
        )
