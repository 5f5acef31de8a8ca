"""
Review records: generated quiz session notes.

A review record is a note laid out as numbered sections, each holding one
rendered quiz and its rating control, followed by a property grid:

    # 1

    ```remember-review
    {"context": [...], "content": [...], "note": {...}}
    ```

    Level of recall:
    - [ ] 5 - Perfect response
    ...
    - [ ] 0 - Complete blackout
    <span style="display:none">...remember:<note id>:<block id>...</span>

    # Properties

    | Key | Value |
    | :----: | :----: |
    | "date" | "20210107" |
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from remember.content.blocks import FENCE
from remember.content.quiz import (
    RATING_HEADER,
    RATING_LABELS,
    RATING_LINE_PATTERN,
    SOURCE_MARKER_PATTERN,
    render_rating_control,
)
from remember.core.errors import FormatError
from remember.formats.property_grid import PropertyGrid
from remember.study.scheduler import parse_day

PROPERTIES_HEADING = "Properties"

_HEADING = re.compile(r"^# (?P<title>.+?)\s*$")
_CONTROL_LENGTH = 2 + len(RATING_LABELS)


@dataclass
class QuizSection:
    """One question of a review session."""

    index: int
    source_id: str
    block_id: int
    prompt: str
    rating: int | None = None

    @property
    def answered(self) -> bool:
        return self.rating is not None

    def to_text(self) -> str:
        return (
            f"# {self.index}\n\n"
            f"{self.prompt}\n\n"
            f"{render_rating_control(self.source_id, self.block_id, self.rating)}\n\n"
        )


def _parse_section(index: int, lines: list[str]) -> QuizSection:
    while lines and not lines[-1].strip():
        lines.pop()
    if len(lines) < _CONTROL_LENGTH:
        raise FormatError(f"Review section {index} is missing its rating control")

    control = lines[-_CONTROL_LENGTH:]
    if control[0].strip() != RATING_HEADER:
        raise FormatError(f"Review section {index}: expected {RATING_HEADER!r}, got {control[0]!r}")

    rating: int | None = None
    expected = sorted(RATING_LABELS, reverse=True)
    for line, value in zip(control[1:-1], expected):
        match = RATING_LINE_PATTERN.match(line.strip())
        if match is None or int(match.group("rating")) != value:
            raise FormatError(f"Review section {index}: bad rating line {line!r}")
        if rating is None and match.group("mark") in "xX":
            rating = value

    marker = SOURCE_MARKER_PATTERN.match(control[-1].strip())
    if marker is None:
        raise FormatError(f"Review section {index}: missing source marker")

    return QuizSection(
        index=index,
        source_id=marker.group("source_id"),
        block_id=int(marker.group("block_id")),
        prompt="\n".join(lines[:-_CONTROL_LENGTH]).strip(),
        rating=rating,
    )


@dataclass
class ReviewRecord:
    """A parsed review session note."""

    sections: list[QuizSection] = field(default_factory=list)
    properties: PropertyGrid = field(default_factory=PropertyGrid)
    preamble: str = ""

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def date(self) -> str:
        return self.properties.get("date")

    @property
    def review_number(self) -> int:
        return self.properties.get("review_number")

    @property
    def completed(self) -> bool:
        return bool(self.properties.get("completed", False))

    @property
    def harvested_on(self) -> str | None:
        """Day the ratings were first folded into the content logs."""
        return self.properties.get("harvested")

    def mark_completed(self, day: str) -> bool:
        """Flag the record as completed on ``day``; True only the first time."""
        if self.completed:
            return False
        parse_day(day)
        self.properties.set("completed", True)
        self.properties.set("harvested", day)
        return True

    @property
    def title(self) -> str:
        day = parse_day(self.date)
        return f"Review {day.isoformat()} (#{self.review_number})"

    def answered_sections(self) -> list[QuizSection]:
        return [s for s in self.sections if s.answered]

    # =========================================================================
    # PARSING
    # =========================================================================

    @classmethod
    def parse(cls, text: str) -> ReviewRecord:
        """
        Parse a review session note.

        Raises:
            FormatError: If a section lost its rating control, a heading is
                not numeric, or the properties are missing or malformed
        """
        preamble: list[str] = []
        chunks: list[tuple[str, list[str]]] = []
        in_fence = False

        for line in text.split("\n"):
            heading = None if in_fence else _HEADING.match(line)
            if line.startswith(FENCE):
                in_fence = not in_fence
            if heading:
                chunks.append((heading.group("title"), []))
            elif chunks:
                chunks[-1][1].append(line)
            else:
                preamble.append(line)

        record = cls(preamble="\n".join(preamble).strip())
        properties: PropertyGrid | None = None
        for title, lines in chunks:
            if title == PROPERTIES_HEADING:
                if properties is not None:
                    raise FormatError("Review record has two Properties sections")
                properties = PropertyGrid.from_text("\n".join(lines))
            elif title.isdigit():
                if properties is not None:
                    raise FormatError(f"Review section {title} follows the Properties section")
                record.sections.append(_parse_section(int(title), lines))
            else:
                raise FormatError(f"Unexpected heading in review record: {title!r}")

        if properties is None:
            raise FormatError("Review record has no Properties section")
        date = properties.get("date")
        if not isinstance(date, str):
            raise FormatError(f"Review record date must be a string, got {date!r}")
        parse_day(date)
        review_number = properties.get("review_number")
        if isinstance(review_number, bool) or not isinstance(review_number, int):
            raise FormatError(f"Review record number must be an integer, got {review_number!r}")

        record.properties = properties
        return record

    @classmethod
    def create(cls, date: str, review_number: int, quizzes: list[str]) -> ReviewRecord:
        """Build a new session from rendered quizzes."""
        properties = PropertyGrid({"date": date, "review_number": review_number, "completed": False})
        day = parse_day(date)
        preamble = (
            f"Review session for {day.isoformat()}. Tick one level of recall per question; "
            "unanswered questions are dropped at the next scan."
        )
        text = preamble + "\n\n"
        for index, quiz in enumerate(quizzes, start=1):
            text += f"# {index}\n\n{quiz}\n\n"
        text += f"# {PROPERTIES_HEADING}\n\n" + properties.to_text()
        return cls.parse(text)

    # =========================================================================
    # MUTATION
    # =========================================================================

    def cleanup_sections(self) -> bool:
        """Drop unanswered sections; True if anything was removed."""
        kept = self.answered_sections()
        changed = len(kept) != len(self.sections)
        self.sections = kept
        return changed

    def to_text(self) -> str:
        parts = []
        if self.preamble:
            parts.append(self.preamble + "\n\n")
        parts.extend(section.to_text() for section in self.sections)
        parts.append(f"# {PROPERTIES_HEADING}\n\n")
        parts.append(self.properties.to_text())
        return "".join(parts)
