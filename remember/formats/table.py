"""
Markdown table codec.

Persists ordered rows of JSON scalars as a markdown table:

    | Date | Rating |
    | :----: | :----: |
    | "20210101" | 4 |

Headers are plain text. Every cell is ``json.dumps`` of a scalar with
backslashes and pipes escaped, so a cell never contains a bare ``|``.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Union

from remember.core.errors import FormatError

Scalar = Union[str, int, float, bool, None]

SEPARATOR_CELL = ":----:"

# One escaped cell: any run of escape pairs or characters other than \ and |
_CELL = r"((?:\\.|[^\\|])*)"
_UNESCAPE = re.compile(r"\\(.)")


@dataclass
class Table:
    """A parsed table: header names and rows of scalars."""

    headers: list[str]
    rows: list[list[Scalar]] = field(default_factory=list)

    def records(self) -> list[dict[str, Scalar]]:
        """Rows as dictionaries keyed by header."""
        return [dict(zip(self.headers, row)) for row in self.rows]


def escape_cell(value: str) -> str:
    """Escape every backslash and pipe in a cell."""
    return value.replace("\\", "\\\\").replace("|", "\\|")


def unescape_cell(value: str) -> str:
    """Undo :func:`escape_cell`."""
    return _UNESCAPE.sub(r"\1", value)


def encode_scalar(value: Scalar) -> str:
    """Encode one scalar as an escaped cell."""
    if not isinstance(value, (str, int, float, bool)) and value is not None:
        raise TypeError(f"Table cells must be scalars, got {type(value).__name__}")
    return escape_cell(json.dumps(value, ensure_ascii=False))


def decode_scalar(cell: str) -> Scalar:
    """Decode one escaped cell back into a scalar."""
    try:
        value = json.loads(unescape_cell(cell))
    except json.JSONDecodeError as e:
        raise FormatError(f"Bad table cell {cell!r}: {e}") from e
    if isinstance(value, (list, dict)):
        raise FormatError(f"Table cell is not a scalar: {cell!r}")
    return value


def _row_pattern(width: int) -> re.Pattern[str]:
    return re.compile(r"^\|" + (r" " + _CELL + r" \|") * width + r"$")


def _header_cells(line: str) -> list[str]:
    stripped = line.strip()
    if len(stripped) < 4 or not stripped.startswith("| ") or not stripped.endswith(" |"):
        raise FormatError(f"Unexpected table header: {line!r}")
    return [unescape_cell(c) for c in re.split(r"(?<!\\) \| ", stripped[2:-2])]


def separator_line(width: int) -> str:
    return "| " + " | ".join([SEPARATOR_CELL] * width) + " |"


def parse_table(text: str) -> Table:
    """
    Parse a single markdown table.

    Args:
        text: Table text; blank lines are ignored

    Returns:
        Table with headers and decoded rows

    Raises:
        FormatError: If the header, separator or any row is malformed
    """
    lines = [line.rstrip() for line in text.split("\n") if line.strip()]
    if len(lines) < 2:
        raise FormatError("Table needs a header and a separator line")

    headers = _header_cells(lines[0])
    if lines[1].strip() != separator_line(len(headers)):
        raise FormatError(f"Unexpected table separator: {lines[1]!r}")

    pattern = _row_pattern(len(headers))
    rows: list[list[Scalar]] = []
    for line in lines[2:]:
        match = pattern.match(line.strip())
        if match is None:
            raise FormatError(f"Table row does not have {len(headers)} cells: {line!r}")
        rows.append([decode_scalar(cell) for cell in match.groups()])

    return Table(headers=headers, rows=rows)


def serialize_table(headers: list[str], rows: list[list[Scalar]]) -> str:
    """
    Serialize headers and rows; the exact inverse of :func:`parse_table`.

    The result always ends with a blank line.
    """
    if not headers:
        raise ValueError("A table needs at least one header")

    lines = [
        "| " + " | ".join(escape_cell(h) for h in headers) + " |",
        separator_line(len(headers)),
    ]
    for row in rows:
        if len(row) != len(headers):
            raise ValueError(f"Row has {len(row)} values for {len(headers)} headers: {row!r}")
        lines.append("| " + " | ".join(encode_scalar(v) for v in row) + " |")

    return "\n".join(lines) + "\n\n"
