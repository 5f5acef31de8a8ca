"""Plain-text structured data formats (tables and property grids)."""

from remember.formats.property_grid import PropertyGrid
from remember.formats.table import Table, parse_table, serialize_table

__all__ = [
    "PropertyGrid",
    "Table",
    "parse_table",
    "serialize_table",
]
