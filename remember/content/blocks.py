"""
Trackable block extraction.

A trackable block is a fenced span in a note body:

    ```remember 12
    What is the capital of France?
    ```

The token after ``remember`` is the block id; new blocks have none until
their first scan.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass

FENCE = "```"
BLOCK_TOKEN = "remember"
REVIEW_TOKEN = "remember-review"

_OPEN = FENCE + BLOCK_TOKEN

BLOCK_PATTERN = re.compile(
    r"^" + re.escape(_OPEN) + r"(?P<header>[ \t][^\r\n]*)?\r?\n"
    r"(?P<body>.*?)"
    r"^" + re.escape(FENCE) + r"[ \t]*(?=\r?$)",
    re.MULTILINE | re.DOTALL,
)


@dataclass(frozen=True)
class BlockMatch:
    """One fenced block found in a document body."""

    text: str
    start: int
    stop: int
    body: str
    header: str

    @property
    def block_id(self) -> str | None:
        """First whitespace-delimited token after the opening fence."""
        tokens = self.header.split()
        return tokens[0] if tokens else None

    def with_id(self, block_id: int | str) -> str:
        """Fenced text with ``block_id`` inserted into (or replacing) the header token."""
        tokens = self.header.strip().split(None, 1)
        rest = f" {tokens[1]}" if len(tokens) > 1 else ""
        return f"{_OPEN} {block_id}{rest}" + self.text[len(_OPEN) + len(self.header):]


class BlockExtractor:
    """
    Restartable iterator over the trackable blocks of a body.

    Each iteration re-scans lazily, so the same extractor can be walked twice.
    """

    def __init__(self, body: str) -> None:
        self.body = body

    def __iter__(self) -> Iterator[BlockMatch]:
        for m in BLOCK_PATTERN.finditer(self.body):
            yield BlockMatch(
                text=m.group(0),
                start=m.start(),
                stop=m.end(),
                body=m.group("body").rstrip("\r\n"),
                header=m.group("header") or "",
            )

    def has_blocks(self) -> bool:
        return next(iter(self), None) is not None

    def by_id(self) -> dict[str, BlockMatch]:
        """Blocks keyed by id; the first block wins when an id repeats."""
        found: dict[str, BlockMatch] = {}
        for block in self:
            if block.block_id is not None:
                found.setdefault(block.block_id, block)
        return found


def extract_blocks(body: str) -> list[BlockMatch]:
    return list(BlockExtractor(body))


def splice_ids(body: str, assignments: list[tuple[BlockMatch, int]]) -> str:
    """
    Rewrite ``body`` so each matched block carries its assigned id.

    Assignments are applied back to front so earlier offsets stay valid.
    """
    for block, block_id in sorted(assignments, key=lambda a: a[0].start, reverse=True):
        body = body[: block.start] + block.with_id(block_id) + body[block.stop :]
    return body
