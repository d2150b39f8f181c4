"""Source-mapped diagnostics for license resolution.

A Files source map assigns ids to text buffers (real or synthesized
manifests), diagnostics reference spans inside those buffers, and
render_diagnostic prints them with rich in a compiler-like layout.
"""

import bisect
import enum
from dataclasses import dataclass, field
from typing import Optional

from rich.console import Console
from rich.text import Text


class Severity(enum.IntEnum):
    HELP = 1
    NOTE = 2
    WARNING = 3
    ERROR = 4
    BUG = 5


class LabelStyle(str, enum.Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"


@dataclass(frozen=True)
class Label:
    """A span of text a diagnostic points at.

    Attributes:
        style: Primary labels mark the cause, secondary labels add context.
        file_id: Id of the buffer in the Files source map.
        start: Start character offset, inclusive.
        end: End character offset, exclusive.
        message: Optional text shown next to the span.
    """

    style: LabelStyle
    file_id: int
    start: int
    end: int
    message: str = ""


@dataclass
class Diagnostic:
    severity: Severity
    message: str
    labels: list[Label] = field(default_factory=list)

    @classmethod
    def error(cls, message: str, labels: Optional[list[Label]] = None) -> "Diagnostic":
        return cls(Severity.ERROR, message, list(labels or []))

    @classmethod
    def warning(cls, message: str, labels: Optional[list[Label]] = None) -> "Diagnostic":
        return cls(Severity.WARNING, message, list(labels or []))


class Files:
    """Source map of named text buffers."""

    def __init__(self) -> None:
        self._files: list[tuple[str, str, list[int]]] = []

    def add(self, name: str, source: str) -> int:
        """Add a buffer and return its id."""
        line_starts = [0]
        for index, char in enumerate(source):
            if char == "\n":
                line_starts.append(index + 1)
        self._files.append((name, source, line_starts))
        return len(self._files) - 1

    def name(self, file_id: int) -> str:
        return self._files[file_id][0]

    def source(self, file_id: int) -> str:
        return self._files[file_id][1]

    def location(self, file_id: int, offset: int) -> tuple[int, int]:
        """Return the 1-based (line, column) of a character offset."""
        line_starts = self._files[file_id][2]
        line_index = bisect.bisect_right(line_starts, offset) - 1
        return line_index + 1, offset - line_starts[line_index] + 1

    def line(self, file_id: int, line_number: int) -> str:
        """Return the text of a 1-based line, without its newline."""
        source = self._files[file_id][1]
        line_starts = self._files[file_id][2]
        start = line_starts[line_number - 1]
        end = source.find("\n", start)
        return source[start:] if end == -1 else source[start:end]

    def __len__(self) -> int:
        return len(self._files)


_SEVERITY_STYLES = {
    Severity.BUG: ("bug", "bold red"),
    Severity.ERROR: ("error", "bold red"),
    Severity.WARNING: ("warning", "bold yellow"),
    Severity.NOTE: ("note", "bold green"),
    Severity.HELP: ("help", "bold cyan"),
}


def render_diagnostic(console: Console, files: Files, diagnostic: Diagnostic) -> None:
    """Print a diagnostic and the source lines its labels point at."""
    title, style = _SEVERITY_STYLES[diagnostic.severity]
    header = Text()
    header.append(title, style=style)
    header.append(f": {diagnostic.message}", style="bold")
    console.print(header)

    for label in diagnostic.labels:
        line_no, col = files.location(label.file_id, label.start)
        gutter = " " * len(str(line_no))
        console.print(
            Text(f"{gutter} ┌─ {files.name(label.file_id)}:{line_no}:{col}", style="blue")
        )
        console.print(Text(f"{gutter} │", style="blue"))

        source_line = Text(f"{line_no} │ ", style="blue")
        source_line.append(files.line(label.file_id, line_no))
        console.print(source_line)

        marker = "^" if label.style is LabelStyle.PRIMARY else "-"
        width = max(label.end - label.start, 1)
        underline = Text(f"{gutter} │ ", style="blue")
        underline.append(
            " " * (col - 1) + marker * width,
            style=style if label.style is LabelStyle.PRIMARY else "blue",
        )
        if label.message:
            underline.append(f" {label.message}")
        console.print(underline)
    console.print()
