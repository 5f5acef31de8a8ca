"""Spaced-repetition review for notes kept in a plain-text document store."""

__version__ = "0.1.0"
