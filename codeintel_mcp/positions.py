"""Coordinate conversion.

Adapters work with 0-based lines, columns and offsets. Clients speak 1-based
line/column. The +1/-1 arithmetic between the two lives here and nowhere else.
"""

from bisect import bisect_right
from dataclasses import fields, is_dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Any

from .models import Location


class LineIndex:
    """Offset <-> (line, column) table for one document.

    A trailing newline does not open an extra line, so ``"a\\nb\\n"`` has two
    lines and an empty document has none.
    """

    def __init__(self, text: str):
        self.text = text
        self._starts: list[int] = [0] if text else []
        pos = text.find("\n")
        while pos != -1 and pos + 1 < len(text):
            self._starts.append(pos + 1)
            pos = text.find("\n", pos + 1)

    @classmethod
    def from_file(cls, path: str | Path) -> "LineIndex":
        return cls(Path(path).read_text(encoding="utf-8", errors="replace"))

    @property
    def line_count(self) -> int:
        return len(self._starts)

    def line_start(self, line: int) -> int:
        return self._starts[line]

    def line_end(self, line: int) -> int:
        """Offset just past the last character of ``line``, line terminator excluded."""
        start = self._starts[line]
        if line + 1 < len(self._starts):
            end = self._starts[line + 1] - 1
        else:
            end = len(self.text)
            if self.text.endswith("\n"):
                end -= 1
        if end > start and self.text[end - 1] == "\r":
            end -= 1
        return end

    def line_text(self, line: int) -> str:
        return self.text[self.line_start(line):self.line_end(line)]

    def offset_for(self, line: int, column: int) -> int | None:
        """0-based (line, column) to offset, or None when outside the document."""
        if line < 0 or line >= self.line_count or column < 0:
            return None
        offset = self._starts[line] + column
        if offset > self.line_end(line):
            return None
        return offset

    def position_of(self, offset: int) -> tuple[int, int] | None:
        """Offset to 0-based (line, column), or None when outside the document."""
        if not self._starts or offset < 0 or offset > len(self.text):
            return None
        line = bisect_right(self._starts, offset) - 1
        return line, offset - self._starts[line]


def to_internal(line: int, column: int) -> tuple[int, int]:
    """Client (1-based) line/column to adapter (0-based) line/column."""
    return line - 1, column - 1


def location_to_wire(location: Location) -> Location:
    return replace(
        location,
        line=location.line + 1,
        column=location.column + 1,
        end_line=None if location.end_line is None else location.end_line + 1,
        end_column=None if location.end_column is None else location.end_column + 1,
    )


def location_from_wire(location: Location) -> Location:
    return replace(
        location,
        line=location.line - 1,
        column=location.column - 1,
        end_line=None if location.end_line is None else location.end_line - 1,
        end_column=None if location.end_column is None else location.end_column - 1,
    )


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _render_fields(record: Any) -> dict:
    rendered = {}
    for f in fields(record):
        value = getattr(record, f.name)
        if value is None:
            continue
        rendered[_camel(f.name)] = to_wire(value)
    return rendered


def to_wire(value: Any) -> Any:
    """Render model values as JSON-ready data.

    Dataclasses become camelCase dicts with None fields dropped, and every
    Location met on the way is shifted to 1-based.
    """
    if isinstance(value, Location):
        return _render_fields(location_to_wire(value))
    if is_dataclass(value) and not isinstance(value, type):
        return _render_fields(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return [to_wire(item) for item in value]
    if isinstance(value, dict):
        return {key: to_wire(item) for key, item in value.items()}
    return value
