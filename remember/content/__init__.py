"""Trackable block extraction and quiz compilation."""

from remember.content.blocks import BlockExtractor, BlockMatch, extract_blocks, splice_ids
from remember.content.quiz import DueBlock, QuizCompiler, QuizPayload, QuizQuestion

__all__ = [
    "BlockExtractor",
    "BlockMatch",
    "extract_blocks",
    "splice_ids",
    "DueBlock",
    "QuizCompiler",
    "QuizPayload",
    "QuizQuestion",
]
