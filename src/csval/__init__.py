"""
csval - C# Syntax Validator
===========================

This package checks C# source text for syntax errors without compiling it.
It reports every problem it finds in one pass, each with its position, and
a verdict: the source is valid when no diagnostic is an error.

Validation honours the selected C# language version, so a construct that a
version does not support (a record under C# 7, say) is reported as an error
naming the version it needs.

Main Components
---------------
- **syntax.lexer**: Tokenizer for C# source, including raw and
    interpolated strings
- **syntax.preprocessor**: #if/#define/#region handling and active-region
    filtering
- **syntax.versions**: Language versions and the feature gate
- **syntax.parser**: Recursive descent parser with error recovery
- **syntax.validator**: The validate() entry point

Quick Start
-----------
    >>> from csval import validate
    >>> validate("class C { }").success
    True

Or use the command-line tool:
    $ csval Program.cs
    $ csval --langversion 7.3 -d DEBUG Program.cs
    $ cat script.csx | csval --script
"""

__version__ = "0.1.0"

# =============================================================================
# Public API Exports
# =============================================================================

from csval.errors import (
    CsvalError,
    CsvalUsageError,
    InvalidLanguageVersionError,
    Position,
    Span,
)
from csval.syntax.errors import (
    Diagnostic,
    DiagnosticCategory,
    Severity,
)
from csval.syntax.versions import LanguageVersion
from csval.syntax.validator import (
    ParseOptions,
    SourceKind,
    ValidationResult,
    validate,
)

__all__ = [
    "__version__",
    # Entry point
    "validate",
    "ParseOptions",
    "SourceKind",
    "ValidationResult",
    "LanguageVersion",
    # Diagnostics
    "Diagnostic",
    "DiagnosticCategory",
    "Severity",
    "Position",
    "Span",
    # Exception hierarchy
    "CsvalError",
    "CsvalUsageError",
    "InvalidLanguageVersionError",
]
