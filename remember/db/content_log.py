"""
Content logs: the per-note record of trackable blocks and their review history.

A content log is itself a note, laid out as:

    Content log for :/<source id>

    # Properties

    | Key | Value |
    | :----: | :----: |
    | "blockIdMax" | 2 |

    # Block 1

    | Date | Review | Rating | Easiness | Days |
    | :----: | :----: | :----: | :----: | :----: |
    | "20210107" | 3 | 4 | 1.3 | 6 |

State is always re-derived from this text; nothing is cached between scans.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from loguru import logger

from remember.content.blocks import BlockExtractor, BlockMatch, splice_ids
from remember.core.errors import FormatError, NotFoundError
from remember.formats.property_grid import PropertyGrid
from remember.formats.table import parse_table, serialize_table
from remember.study.scheduler import SM2Scheduler, parse_day

BLOCK_ID_MAX = "blockIdMax"
HISTORY_HEADERS = ["Date", "Review", "Rating", "Easiness", "Days"]

_HEADING = re.compile(r"^# (?P<title>.+?)\s*$")
_BLOCK_HEADING = re.compile(r"^Block (?P<id>[1-9][0-9]*)$")


@dataclass
class ReviewEvent:
    """A single rating of a block."""

    date: str  # YYYYMMDD
    review: int
    rating: int
    easiness: float
    days: int

    def to_row(self) -> list:
        return [self.date, self.review, self.rating, self.easiness, self.days]

    @classmethod
    def from_row(cls, row: list) -> ReviewEvent:
        date, review, rating, easiness, days = row
        if not isinstance(date, str):
            raise FormatError(f"History date must be a string, got {date!r}")
        parse_day(date)
        for name, value in (("review", review), ("rating", rating), ("days", days)):
            if isinstance(value, bool) or not isinstance(value, int):
                raise FormatError(f"History {name} must be an integer, got {value!r}")
        if isinstance(easiness, bool) or not isinstance(easiness, (int, float)):
            raise FormatError(f"History easiness must be a number, got {easiness!r}")
        return cls(date=date, review=review, rating=rating, easiness=float(easiness), days=days)


@dataclass
class BlockHistory:
    """Review events of one block, most recent first."""

    block_id: int
    events: list[ReviewEvent] = field(default_factory=list)

    @property
    def latest(self) -> ReviewEvent | None:
        return self.events[0] if self.events else None


@dataclass
class BlockScan:
    """What a call to :meth:`ContentLog.load_blocks` found and changed."""

    new_body: str | None = None
    blocks: dict[int, BlockMatch] = field(default_factory=dict)
    allocated: list[int] = field(default_factory=list)
    new_ids: list[int] = field(default_factory=list)
    missing_ids: list[int] = field(default_factory=list)

    @property
    def seen_ids(self) -> list[int]:
        return list(self.blocks)

    @property
    def changed(self) -> bool:
        return bool(self.allocated or self.new_ids)


class ContentLog:
    """
    Blocks and review history for one source note.

    Owns block id allocation: ids are positive, monotonically allocated and
    never reused.
    """

    def __init__(
        self,
        source_id: str,
        properties: PropertyGrid | None = None,
        histories: dict[int, BlockHistory] | None = None,
        scheduler: SM2Scheduler | None = None,
    ) -> None:
        self.source_id = source_id
        self.properties = properties or PropertyGrid()
        self.histories: dict[int, BlockHistory] = histories or {}
        self.scheduler = scheduler or SM2Scheduler()

        if not isinstance(self.properties.get(BLOCK_ID_MAX), int):
            recovered = max(self.histories, default=0)
            if BLOCK_ID_MAX in self.properties:
                logger.warning(
                    "Content log for {} has invalid {}; recovering as {}",
                    source_id,
                    BLOCK_ID_MAX,
                    recovered,
                )
            self.properties.set(BLOCK_ID_MAX, recovered)
        self._reserve_id(max(self.histories, default=0))

    # =========================================================================
    # SERIALIZATION
    # =========================================================================

    @classmethod
    def from_text(cls, text: str, source_id: str) -> ContentLog:
        """
        Parse a content log note body.

        Raises:
            FormatError: On unknown headings, duplicate blocks or bad tables
        """
        sections: list[tuple[str, list[str]]] = []
        for line in text.split("\n"):
            heading = _HEADING.match(line)
            if heading:
                sections.append((heading.group("title"), []))
            elif sections:
                sections[-1][1].append(line)

        properties: PropertyGrid | None = None
        histories: dict[int, BlockHistory] = {}
        for title, lines in sections:
            chunk = "\n".join(lines)
            if title == "Properties":
                if properties is not None:
                    raise FormatError(f"Content log for {source_id} has two Properties sections")
                properties = PropertyGrid.from_text(chunk)
                continue

            block = _BLOCK_HEADING.match(title)
            if block is None:
                raise FormatError(f"Unexpected heading in content log for {source_id}: {title!r}")
            block_id = int(block.group("id"))
            if block_id in histories:
                raise FormatError(f"Content log for {source_id} repeats block {block_id}")

            table = parse_table(chunk)
            if table.headers != HISTORY_HEADERS:
                raise FormatError(
                    f"Block {block_id} history headers must be {HISTORY_HEADERS}, got {table.headers}"
                )
            events = [ReviewEvent.from_row(row) for row in table.rows]
            events.sort(key=lambda e: e.date, reverse=True)
            histories[block_id] = BlockHistory(block_id=block_id, events=events)

        return cls(source_id=source_id, properties=properties, histories=histories)

    def to_text(self) -> str:
        parts = [
            f"Content log for :/{self.source_id}\n\n",
            "# Properties\n\n",
            self.properties.to_text(),
        ]
        for block_id in sorted(self.histories):
            history = self.histories[block_id]
            parts.append(f"# Block {block_id}\n\n")
            parts.append(serialize_table(HISTORY_HEADERS, [e.to_row() for e in history.events]))
        return "".join(parts)

    # =========================================================================
    # BLOCK IDS
    # =========================================================================

    @property
    def block_id_max(self) -> int:
        return self.properties.get(BLOCK_ID_MAX)

    def allocate_id(self) -> int:
        block_id = self.block_id_max + 1
        self.properties.set(BLOCK_ID_MAX, block_id)
        return block_id

    def _reserve_id(self, block_id: int) -> None:
        if block_id > self.block_id_max:
            self.properties.set(BLOCK_ID_MAX, block_id)

    def load_blocks(self, body: str) -> BlockScan:
        """
        Reconcile the log with the trackable blocks of a source body.

        Blocks without an id (or repeating an id already used earlier in the
        body) are allocated a fresh one, which is spliced into the returned
        ``new_body``. Ids known to the log but absent from the body keep their
        history.
        """
        scan = BlockScan()
        parsed: list[tuple[BlockMatch, int | None]] = []

        for block in BlockExtractor(body):
            raw = block.block_id
            if raw is None:
                parsed.append((block, None))
                continue
            try:
                block_id = int(raw)
                if block_id < 1:
                    raise ValueError(raw)
            except ValueError:
                logger.warning("Ignoring block with non-numeric id {!r} in note {}", raw, self.source_id)
                continue
            parsed.append((block, block_id))
            self._reserve_id(block_id)

        assignments: list[tuple[BlockMatch, int]] = []
        for block, block_id in parsed:
            if block_id is None or block_id in scan.blocks:
                if block_id is not None:
                    logger.info("Block id {} repeats in note {}; re-allocating", block_id, self.source_id)
                block_id = self.allocate_id()
                assignments.append((block, block_id))
                scan.allocated.append(block_id)

            scan.blocks[block_id] = block
            if block_id not in self.histories:
                self.histories[block_id] = BlockHistory(block_id=block_id)
                scan.new_ids.append(block_id)

        scan.missing_ids = [i for i in self.histories if i not in scan.blocks]
        if assignments:
            scan.new_body = splice_ids(body, assignments)

        return scan

    # =========================================================================
    # HISTORY
    # =========================================================================

    def log_score(self, block_id: int, date: str, review_number: int, rating: int) -> bool:
        """
        Record a rating for a block.

        A rating on a date that already has an event replaces it. A rating
        older than the most recent remaining event is stale and dropped.

        Returns:
            True if the history changed, False if the rating was stale or
            repeats the event already logged for ``date``

        Raises:
            NotFoundError: If the block is not part of this log
        """
        history = self.histories.get(block_id)
        if history is None:
            raise NotFoundError(f"Block {block_id} is not in the content log for {self.source_id}")

        parse_day(date)
        remaining = [e for e in history.events if e.date != date]
        if remaining and remaining[0].date > date:
            logger.debug(
                "Dropping stale rating for {}:{} on {} (latest {})",
                self.source_id,
                block_id,
                date,
                remaining[0].date,
            )
            return False

        result = self.scheduler.score_after(remaining, rating)
        event = ReviewEvent(
            date=date,
            review=review_number,
            rating=rating,
            easiness=result.easiness,
            days=result.days,
        )
        if event in history.events:
            return False
        history.events = [event] + remaining
        return True

    def due_block_ids(self, today: str) -> list[int]:
        return [
            block_id
            for block_id, history in sorted(self.histories.items())
            if self.scheduler.is_due(history.events, today)
        ]
