"""
Quiz compilation.

Turns the body of a due trackable block into one or more quiz questions and
renders each as a ``remember-review`` fence followed by the rating control
that the review record parser reads back.

Two authoring styles are supported inside a block:

Marker style (body starts with ``Q:``)::

    Q: What is the capital of France?
    Paris
    Q: And of Italy?
    Rome

Legacy style (the whole body is the answer, optionally followed by context)::

    Paris is the capital of France.

    # context
    European capitals
"""

from __future__ import annotations

import random
import re
from dataclasses import dataclass, field

from pydantic import BaseModel

from remember.content.blocks import FENCE, REVIEW_TOKEN

QUESTION_MARKER = "Q:"

RATING_HEADER = "Level of recall:"
RATING_LABELS = {
    5: "Perfect response",
    4: "Correct response after a hesitation",
    3: "Correct response recalled with serious difficulty",
    2: "Incorrect response; where the correct one seemed easy to recall",
    1: "Incorrect response; the correct one remembered",
    0: "Complete blackout",
}

ZERO_WIDTH = "\u200b"
SOURCE_MARKER = (
    '<span style="display:none">' + ZERO_WIDTH + "remember:{source_id}:{block_id}" + ZERO_WIDTH + "</span>"
)
SOURCE_MARKER_PATTERN = re.compile(
    r'^<span style="display:none">'
    + ZERO_WIDTH
    + r"remember:(?P<source_id>[^:\s]+):(?P<block_id>[1-9][0-9]*)"
    + ZERO_WIDTH
    + r"</span>$"
)
RATING_LINE_PATTERN = re.compile(r"^- \[(?P<mark>[ xX])\] (?P<rating>[0-5]) - .*$")

_MARKER_LINE = re.compile(r"^\s*" + re.escape(QUESTION_MARKER) + r"(?P<prompt>.*)$", re.IGNORECASE)
_CONTEXT_HEADING = re.compile(r"^#\s+context\s*$", re.IGNORECASE)
_TOP_HEADING = re.compile(r"^#\s")


# =============================================================================
# Wire payload
# =============================================================================


class NoteRef(BaseModel):
    id: str
    title: str


class QuizPayload(BaseModel):
    """JSON consumed by the ``remember-review`` renderer; field names are fixed."""

    context: list[str]
    content: list[str]
    note: NoteRef
    noteLog: NoteRef | None = None

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=True)


@dataclass
class QuizQuestion:
    context: list[str] = field(default_factory=list)
    content: list[str] = field(default_factory=list)


@dataclass
class DueBlock:
    """A block selected for review, with everything needed to render it."""

    source_id: str
    source_title: str
    block_id: int
    body: str
    log_id: str | None = None
    log_title: str | None = None


# =============================================================================
# Rating control
# =============================================================================


def render_source_marker(source_id: str, block_id: int) -> str:
    return SOURCE_MARKER.format(source_id=source_id, block_id=block_id)


def render_rating_control(source_id: str, block_id: int, rating: int | None = None) -> str:
    """The checklist a user ticks to rate recall, plus the hidden origin marker."""
    lines = [RATING_HEADER]
    for value in sorted(RATING_LABELS, reverse=True):
        mark = "x" if value == rating else " "
        lines.append(f"- [{mark}] {value} - {RATING_LABELS[value]}")
    lines.append(render_source_marker(source_id, block_id))
    return "\n".join(lines)


# =============================================================================
# Compiler
# =============================================================================


def _parse_marker_style(body: str) -> list[QuizQuestion]:
    questions: list[QuizQuestion] = []
    prompt: str | None = None
    answer: list[str] = []

    def flush() -> None:
        if prompt is not None:
            context = [prompt] if prompt else []
            questions.append(QuizQuestion(context=context, content=["\n".join(answer).strip()]))

    for line in body.strip().split("\n"):
        marker = _MARKER_LINE.match(line)
        if marker:
            flush()
            prompt = marker.group("prompt").strip()
            answer = []
        elif prompt == "" and not answer and line.strip():
            prompt = line.strip()
        else:
            answer.append(line)
    flush()

    return questions


def _parse_legacy_style(body: str) -> QuizQuestion:
    content: list[str] = []
    context: list[str] = []
    in_context = False

    for line in body.split("\n"):
        if _CONTEXT_HEADING.match(line):
            in_context = True
            continue
        if in_context and _TOP_HEADING.match(line):
            in_context = False
        (context if in_context else content).append(line)

    question = QuizQuestion(content=["\n".join(content).strip()])
    context_text = "\n".join(context).strip()
    if context_text:
        question.context.append(context_text)
    return question


class QuizCompiler:
    """Compiles due blocks into rendered quiz sections."""

    def __init__(self, rng: random.Random | None = None) -> None:
        self.rng = rng or random.Random()

    def compile_block(self, body: str, source_title: str) -> list[QuizQuestion]:
        """
        Split a block body into quiz questions.

        Every question ends up with the source title as its last context entry.
        """
        if body.strip().lower().startswith(QUESTION_MARKER.lower()):
            questions = _parse_marker_style(body)
        else:
            questions = [_parse_legacy_style(body)]

        for question in questions:
            self.rng.shuffle(question.context)
            question.context.append(source_title)
        return questions

    @staticmethod
    def render(question: QuizQuestion, due: DueBlock) -> str:
        payload = QuizPayload(
            context=question.context,
            content=question.content,
            note=NoteRef(id=due.source_id, title=due.source_title),
            noteLog=NoteRef(id=due.log_id, title=due.log_title or "") if due.log_id else None,
        )
        return "\n".join(
            [
                f"{FENCE}{REVIEW_TOKEN}",
                payload.to_json(),
                FENCE,
                "",
                render_rating_control(due.source_id, due.block_id),
            ]
        )

    def compile_due_block(self, due: DueBlock) -> list[str]:
        return [self.render(q, due) for q in self.compile_block(due.body, due.source_title)]

    def compile_session(self, due_blocks: list[DueBlock]) -> list[str]:
        """Render every question of every due block, in block order."""
        quizzes: list[str] = []
        for due in due_blocks:
            quizzes.extend(self.compile_due_block(due))
        return quizzes
