"""
csval Error Hierarchy
=====================

This module defines the source position types shared by every stage of the
validator, and the exception hierarchy for *fatal* errors.

Syntax problems in the validated source are never raised: they are collected
as diagnostics (see ``csval.syntax.errors``) so that a single run reports
every problem. Exceptions are reserved for conditions that must abort a run
before any input is consumed, such as an unparseable language version.

Exception Hierarchy
-------------------
CsvalError (base)
├── InvalidLanguageVersionError - unknown --langversion value
└── CsvalUsageError - conflicting or invalid command-line input

Positions
---------
Lines and columns are 1-indexed for user-facing messages; offsets are
0-indexed into the source text. A Span is half-open: [start, end).
"""

from dataclasses import dataclass
from typing import Optional


# =============================================================================
# Base Exception Class
# =============================================================================

class CsvalError(Exception):
    """
    Base exception for all fatal csval errors.

    Callers can catch every configuration problem with a single clause:

        try:
            options = ParseOptions(language_version=LanguageVersion.parse(v))
        except CsvalError as e:
            print(f"Error: {e}")
    """
    pass


class InvalidLanguageVersionError(CsvalError):
    """
    Raised when a language version specification cannot be parsed.

    Attributes:
        specification: The text that was rejected
    """

    def __init__(self, specification: str):
        self.specification = specification
        super().__init__(f"Invalid C# language version specification: {specification}")


class CsvalUsageError(CsvalError):
    """
    Raised for invalid combinations of inputs, e.g. more than one source file.
    """

    def __init__(self, message: str, hint: Optional[str] = None):
        self.message = message
        self.hint = hint
        text = message if hint is None else f"{message}\nhint: {hint}"
        super().__init__(text)


# =============================================================================
# Source Position Tracking
# =============================================================================

@dataclass(frozen=True)
class Position:
    """
    A location in source text.

    Attributes:
        line: Line number (1-indexed)
        column: Column number (1-indexed)
        offset: Absolute character offset (0-indexed)
    """
    line: int
    column: int
    offset: int

    def __str__(self) -> str:
        """Format as '(line,column)' the way compiler diagnostics do."""
        return f"({self.line},{self.column})"


@dataclass(frozen=True)
class Span:
    """
    A half-open range [start, end) of source text.

    Attributes:
        start: First position covered
        end: Position just past the last character covered
    """
    start: Position
    end: Position

    @classmethod
    def at(cls, position: Position) -> "Span":
        """Return an empty span at the given position."""
        return cls(position, position)

    @property
    def length(self) -> int:
        """Number of characters covered."""
        return self.end.offset - self.start.offset

    def __str__(self) -> str:
        return str(self.start)
