"""
Key/value properties stored as a two-column markdown table.
"""

from __future__ import annotations

from collections.abc import Iterator

from remember.core.errors import FormatError
from remember.formats.table import Scalar, parse_table, serialize_table

HEADERS = ["Key", "Value"]


class PropertyGrid:
    """A tracked set of properties (key/value) that can be stored in Markdown."""

    def __init__(self, properties: dict[str, Scalar] | None = None) -> None:
        self.properties: dict[str, Scalar] = dict(properties or {})

    @classmethod
    def from_text(cls, text: str) -> PropertyGrid:
        grid = cls()
        grid.load(text)
        return grid

    def load(self, text: str) -> None:
        """
        Replace all properties with those parsed from ``text``.

        Raises:
            FormatError: If the table is malformed, the headers are not
                exactly ``Key | Value``, or a key is not a string
        """
        table = parse_table(text)
        if table.headers != HEADERS:
            raise FormatError(f"Property grid headers must be {HEADERS}, got {table.headers}")

        properties: dict[str, Scalar] = {}
        for key, value in table.rows:
            if not isinstance(key, str):
                raise FormatError(f"Property key must be a string, got {key!r}")
            properties[key] = value
        self.properties = properties

    def get(self, key: str, default: Scalar = None) -> Scalar:
        return self.properties.get(key, default)

    def set(self, key: str, value: Scalar) -> None:
        self.properties[key] = value

    def pop(self, key: str, default: Scalar = None) -> Scalar:
        return self.properties.pop(key, default)

    def __contains__(self, key: object) -> bool:
        return key in self.properties

    def __iter__(self) -> Iterator[str]:
        return iter(self.properties)

    def __len__(self) -> int:
        return len(self.properties)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PropertyGrid):
            return NotImplemented
        return self.properties == other.properties

    def __repr__(self) -> str:
        return f"PropertyGrid({self.properties!r})"

    def to_text(self) -> str:
        return serialize_table(HEADERS, [[k, v] for k, v in self.properties.items()])

    __str__ = to_text
