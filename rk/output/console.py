"""Console output abstraction.

Services print through ``ConsoleProtocol`` so they never depend on a
specific backend. Release branches run in worker threads and share one
console; every implementation here serialises writes so lines from
different branches never interleave mid-line.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Protocol

__all__ = [
    "Style",
    "ConsoleProtocol",
    "RichConsole",
    "PrefixedConsole",
    "MockConsole",
]


class Style(Enum):
    """Text styles for console output."""

    DEFAULT = auto()
    SUCCESS = auto()
    ERROR = auto()
    WARNING = auto()
    INFO = auto()
    DIM = auto()  # echoed commands, hints
    BOLD = auto()
    HEADER = auto()

    def __str__(self) -> str:
        return self.name.lower()


class ConsoleProtocol(Protocol):
    """Protocol for console output."""

    def print(self, message: str, style: Style = Style.DEFAULT) -> None:
        """Print a message with optional styling."""
        ...

    def success(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...

    def warning(self, message: str) -> None: ...

    def info(self, message: str) -> None: ...

    def header(self, message: str) -> None: ...

    def newline(self) -> None: ...


class RichConsole:
    """Production console backed by Rich."""

    def __init__(self) -> None:
        # Import Rich lazily to avoid import-time dependency
        from rich.console import Console
        from rich.markup import escape

        self._console = Console()
        self._escape = escape
        self._lock = threading.Lock()
        self._style_map = {
            Style.DEFAULT: "",
            Style.SUCCESS: "green",
            Style.ERROR: "red bold",
            Style.WARNING: "yellow",
            Style.INFO: "cyan",
            Style.DIM: "dim",
            Style.BOLD: "bold",
            Style.HEADER: "blue bold",
        }

    def _emit(self, markup: str, *, style: str = "") -> None:
        with self._lock:
            if style:
                self._console.print(markup, style=style)
            else:
                self._console.print(markup)

    def print(self, message: str, style: Style = Style.DEFAULT) -> None:
        self._emit(self._escape(message), style=self._style_map.get(style, ""))

    def success(self, message: str) -> None:
        self._emit(f"[green]OK[/green] {self._escape(message)}")

    def error(self, message: str) -> None:
        self._emit(f"[red bold]error:[/red bold] {self._escape(message)}")

    def warning(self, message: str) -> None:
        self._emit(f"[yellow]warning:[/yellow] {self._escape(message)}")

    def info(self, message: str) -> None:
        self._emit(f"[cyan]info:[/cyan] {self._escape(message)}")

    def header(self, message: str) -> None:
        self._emit(f"\n[blue bold]{self._escape(message)}[/blue bold]")

    def newline(self) -> None:
        self._emit("")


class PrefixedConsole:
    """Decorates another console, tagging each line with a branch name."""

    def __init__(self, inner: ConsoleProtocol, prefix: str) -> None:
        self._inner = inner
        self._prefix = f"{prefix}: "

    def print(self, message: str, style: Style = Style.DEFAULT) -> None:
        self._inner.print(self._prefix + message, style)

    def success(self, message: str) -> None:
        self._inner.success(self._prefix + message)

    def error(self, message: str) -> None:
        self._inner.error(self._prefix + message)

    def warning(self, message: str) -> None:
        self._inner.warning(self._prefix + message)

    def info(self, message: str) -> None:
        self._inner.info(self._prefix + message)

    def header(self, message: str) -> None:
        self._inner.header(self._prefix + message)

    def newline(self) -> None:
        self._inner.newline()


@dataclass
class OutputRecord:
    """A single output record for MockConsole."""

    message: str
    style: Style


def _empty_outputs() -> list[OutputRecord]:
    return []


@dataclass
class MockConsole:
    """Console implementation that captures output for testing."""

    outputs: list[OutputRecord] = field(default_factory=_empty_outputs)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def _add(self, message: str, style: Style) -> None:
        with self._lock:
            self.outputs.append(OutputRecord(message, style))

    def print(self, message: str, style: Style = Style.DEFAULT) -> None:
        self._add(message, style)

    def success(self, message: str) -> None:
        self._add(f"OK {message}", Style.SUCCESS)

    def error(self, message: str) -> None:
        self._add(f"error: {message}", Style.ERROR)

    def warning(self, message: str) -> None:
        self._add(f"warning: {message}", Style.WARNING)

    def info(self, message: str) -> None:
        self._add(f"info: {message}", Style.INFO)

    def header(self, message: str) -> None:
        self._add(message, Style.HEADER)

    def newline(self) -> None:
        self._add("", Style.DEFAULT)

    # Test helper methods

    @property
    def messages(self) -> list[str]:
        return [o.message for o in self.outputs]

    @property
    def text(self) -> str:
        return "\n".join(self.messages)

    def has_error(self) -> bool:
        return any(o.style == Style.ERROR for o in self.outputs)

    def find(self, substring: str) -> list[OutputRecord]:
        return [o for o in self.outputs if substring in o.message]
