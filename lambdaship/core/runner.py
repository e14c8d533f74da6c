"""Runs the build container client with streamed output."""

from __future__ import annotations

import shlex
import subprocess
from dataclasses import dataclass
from typing import Callable, Sequence

# Grace period between SIGTERM and SIGKILL when a build is interrupted.
TERMINATE_TIMEOUT = 10


@dataclass(frozen=True)
class CompletedCommand:
    """Normalized command execution result."""

    cmd: tuple[str, ...]
    returncode: int
    stdout: str = ""


class RunnerError(RuntimeError):
    """Raised when a command cannot be executed or fails with check=True."""


class CommandRunner:
    """Streams a command's combined output line by line; supports dry-run."""

    def __init__(
        self,
        *,
        dry_run: bool = False,
        printer: Callable[[str], None] | None = None,
    ) -> None:
        self.dry_run = dry_run
        self._printer = printer or print

    def format_cmd(self, cmd: Sequence[str]) -> str:
        return "$ " + " ".join(shlex.quote(str(token)) for token in cmd)

    def emit(self, message: str) -> None:
        self._printer(message)

    def run(
        self,
        cmd: Sequence[str],
        *,
        check: bool = True,
        on_line: Callable[[str], None] | None = None,
    ) -> CompletedCommand:
        """Block until `cmd` exits, forwarding stdout and stderr as they arrive."""
        rendered = self.format_cmd(cmd)
        tokens = [str(token) for token in cmd]
        if self.dry_run:
            self.emit(f"[dry-run] {rendered}")
            return CompletedCommand(tuple(tokens), 0)

        self.emit(rendered)
        try:
            proc = subprocess.Popen(
                tokens,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                bufsize=1,
                errors="replace",
            )
        except OSError as exc:
            raise RunnerError(f"failed to execute {rendered}: {exc}") from exc

        assert proc.stdout is not None
        captured: list[str] = []
        try:
            for raw_line in proc.stdout:
                line = raw_line.rstrip("\n")
                captured.append(line)
                if on_line:
                    on_line(line)
                self.emit(line)
            rc = proc.wait()
        except BaseException:
            # Interrupted: stop the container client before propagating.
            proc.terminate()
            try:
                proc.wait(timeout=TERMINATE_TIMEOUT)
            except subprocess.TimeoutExpired:
                proc.kill()
                proc.wait()
            raise
        finally:
            proc.stdout.close()

        if check and rc != 0:
            raise RunnerError(f"command failed with exit code {rc}: {rendered}")
        return CompletedCommand(tuple(tokens), rc, "\n".join(captured))
