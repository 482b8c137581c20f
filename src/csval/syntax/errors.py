"""
Syntax Diagnostics
==================

This module defines the structured diagnostics produced while validating
C# source, and the collector that accumulates them during a run.

Unlike a compiler that stops at the first problem, the validator reports
every problem it can find in one pass. Each stage appends diagnostics to a
shared DiagnosticCollector instead of raising.

Diagnostic Taxonomy
-------------------
DiagnosticCategory
├── LEXICAL - malformed token (bad character, unterminated literal)
├── PREPROCESSOR - directive structure or expression
├── VERSION - construct not available in the selected language version
└── SYNTAX - grammar violation

Only ERROR severity affects the verdict; WARNING and INFO are informational.

Diagnostic Format
-----------------
Diagnostics render the way the C# compiler prints them:

    Program.cs(5,12): error CS1002: ; expected
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from csval.errors import Span


# =============================================================================
# Severity and Category
# =============================================================================

class Severity(Enum):
    """Severity of a diagnostic."""
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class DiagnosticCategory(Enum):
    """Which stage produced a diagnostic."""
    LEXICAL = "lexical"
    PREPROCESSOR = "preprocessor"
    VERSION = "version"
    SYNTAX = "syntax"


# =============================================================================
# Diagnostic Codes
# =============================================================================
# Codes follow the numbering of the C# compiler so that output from this tool
# can be compared with csc output line for line.
# =============================================================================

# Lexical
ERR_NEWLINE_IN_CONSTANT = "CS1010"
ERR_EMPTY_CHAR_LITERAL = "CS1011"
ERR_TOO_MANY_CHARS_IN_CHAR = "CS1012"
ERR_INVALID_NUMBER = "CS1013"
ERR_INVALID_REAL = "CS0595"
ERR_UNTERMINATED_COMMENT = "CS1035"
ERR_UNTERMINATED_STRING = "CS1039"
ERR_ILLEGAL_ESCAPE = "CS1009"
ERR_UNEXPECTED_CHARACTER = "CS1056"
ERR_UNESCAPED_CLOSE_BRACE = "CS8087"
ERR_UNTERMINATED_RAW_STRING = "CS8997"
ERR_RAW_STRING_DELIMITER_LINE = "CS9000"
ERR_RAW_STRING_INDENTATION = "CS8999"
ERR_TOO_MANY_OPEN_BRACES = "CS9006"
ERR_RAW_STRING_TOO_MANY_QUOTES = "CS8998"

# Preprocessor
ERR_BAD_DIRECTIVE_PLACEMENT = "CS1040"
ERR_PP_DIRECTIVE_EXPECTED = "CS1024"
ERR_END_OF_DIRECTIVE_EXPECTED = "CS1025"
ERR_ENDIF_EXPECTED = "CS1027"
ERR_UNEXPECTED_DIRECTIVE = "CS1028"
ERR_ERROR_DIRECTIVE = "CS1029"
WRN_WARNING_DIRECTIVE = "CS1030"
ERR_DEFINE_AFTER_TOKEN = "CS1032"
ERR_ENDREGION_EXPECTED = "CS1038"
ERR_INVALID_PP_EXPRESSION = "CS1517"
ERR_INVALID_LINE_NUMBER = "CS1576"
WRN_UNRECOGNIZED_PRAGMA = "CS1633"
WRN_ILLEGAL_PRAGMA = "CS1634"
WRN_ILLEGAL_PP_CHECKSUM = "CS1695"
ERR_INVALID_NULLABLE_DIRECTIVE = "CS8637"
ERR_INVALID_NULLABLE_TARGET = "CS8668"
ERR_EXPECTED_PP_FILE = "CS7010"
ERR_SCRIPT_DIRECTIVE_IN_REGULAR = "CS7101"
ERR_SCRIPT_DIRECTIVE_AFTER_TOKEN = "CS7011"

# Syntax
ERR_IDENTIFIER_EXPECTED = "CS1001"
ERR_SEMICOLON_EXPECTED = "CS1002"
ERR_TOKEN_EXPECTED = "CS1003"
ERR_CLOSE_PAREN_EXPECTED = "CS1026"
ERR_NAMESPACE_MEMBER_EXPECTED = "CS1022"
ERR_CLOSE_BRACE_EXPECTED = "CS1513"
ERR_OPEN_BRACE_EXPECTED = "CS1514"
ERR_INVALID_MEMBER_TOKEN = "CS1519"
ERR_INVALID_EXPRESSION_TERM = "CS1525"
ERR_USING_AFTER_ELEMENTS = "CS1529"
ERR_TYPE_EXPECTED = "CS1031"
ERR_EXPRESSION_TOO_COMPLEX = "CS8078"
ERR_NAMESPACE_IN_SCRIPT = "CS7021"
ERR_TOP_LEVEL_STATEMENT_AFTER_TYPES = "CS8803"
ERR_EMBEDDED_STATEMENT = "CS1023"
ERR_EXPECTED_CATCH_OR_FINALLY = "CS1524"
ERR_BAD_NEW_EXPRESSION = "CS1526"
ERR_GET_OR_SET_EXPECTED = "CS1014"
ERR_ADD_OR_REMOVE_EXPECTED = "CS1055"
ERR_OVERLOADABLE_OPERATOR_EXPECTED = "CS1037"
ERR_THIS_OR_BASE_EXPECTED = "CS1018"
ERR_QUERY_BODY_END = "CS0742"


# =============================================================================
# Diagnostic Data Class
# =============================================================================

@dataclass(frozen=True)
class Diagnostic:
    """
    A single positioned problem report.

    Attributes:
        severity: ERROR, WARNING or INFO
        code: Stable diagnostic code (e.g. "CS1002")
        message: Human-readable description
        span: Source range the diagnostic refers to
        category: Stage that produced the diagnostic
    """
    severity: Severity
    code: str
    message: str
    span: Span
    category: DiagnosticCategory = DiagnosticCategory.SYNTAX

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR

    def format(self, path: Optional[str] = None) -> str:
        """
        Format the diagnostic for display.

        Args:
            path: Source name to prefix (e.g. a file name or "STDIN")

        Returns:
            Text like 'Program.cs(3,14): error CS1002: ; expected'
        """
        prefix = path or ""
        return f"{prefix}{self.span.start}: {self.severity.value} {self.code}: {self.message}"

    def __str__(self) -> str:
        return self.format()


# =============================================================================
# Diagnostic Collection
# =============================================================================

class DiagnosticCollector:
    """
    Collects diagnostics for one validation run.

    The collector is append-only while a run is in progress. Every stage of
    the pipeline (lexer, preprocessor, version gate, parser) receives the
    same collector so diagnostics from all stages end up in one list.

    Example:
        collector = DiagnosticCollector()
        collector.error(ERR_SEMICOLON_EXPECTED, "; expected", span)
        if collector.has_errors():
            for d in collector.sorted():
                print(d)
    """

    def __init__(self):
        self.diagnostics: list[Diagnostic] = []

    def add(self, diagnostic: Diagnostic) -> None:
        """Add a diagnostic to the collection."""
        self.diagnostics.append(diagnostic)

    def error(
        self,
        code: str,
        message: str,
        span: Span,
        category: DiagnosticCategory = DiagnosticCategory.SYNTAX,
    ) -> Diagnostic:
        """Record an error and return it."""
        diagnostic = Diagnostic(Severity.ERROR, code, message, span, category)
        self.add(diagnostic)
        return diagnostic

    def warning(
        self,
        code: str,
        message: str,
        span: Span,
        category: DiagnosticCategory = DiagnosticCategory.SYNTAX,
    ) -> Diagnostic:
        """Record a warning and return it."""
        diagnostic = Diagnostic(Severity.WARNING, code, message, span, category)
        self.add(diagnostic)
        return diagnostic

    def has_errors(self) -> bool:
        """Return True if any error-severity diagnostic has been collected."""
        return any(d.is_error for d in self.diagnostics)

    def error_count(self) -> int:
        """Return the number of collected errors."""
        return sum(1 for d in self.diagnostics if d.is_error)

    def warning_count(self) -> int:
        """Return the number of collected warnings."""
        return sum(1 for d in self.diagnostics if d.severity is Severity.WARNING)

    def sorted(self) -> list[Diagnostic]:
        """
        Return diagnostics ordered by source position.

        The sort is stable, so diagnostics at the same offset keep the order
        in which they were produced.
        """
        return sorted(self.diagnostics, key=lambda d: d.span.start.offset)

    def __len__(self) -> int:
        return len(self.diagnostics)
