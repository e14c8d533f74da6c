from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from lambdaship.core.runner import CompletedCommand


@dataclass
class FakeRunner:
    """Records commands; optionally writes the build output like the container would."""

    dry_run: bool = False
    returncode: int = 0
    output_lines: list[str] = field(default_factory=list)
    produce: Callable[[list[str]], None] | None = None

    def __post_init__(self) -> None:
        self.commands: list[list[str]] = []
        self.messages: list[str] = []

    def emit(self, message: str) -> None:
        self.messages.append(message)

    def run(self, cmd, *, check: bool = True, on_line=None) -> CompletedCommand:
        del check
        command = [str(token) for token in cmd]
        self.commands.append(command)
        if self.dry_run:
            self.emit("[dry-run] " + " ".join(command))
            return CompletedCommand(tuple(command), 0)
        for line in self.output_lines:
            if on_line:
                on_line(line)
        if self.produce is not None and self.returncode == 0:
            self.produce(command)
        return CompletedCommand(tuple(command), self.returncode, "\n".join(self.output_lines))


def writes_binary(path: Path, payload: bytes = b"\x7fELF-fake-binary"):
    def _produce(command: list[str]) -> None:
        del command
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(payload)

    return _produce
