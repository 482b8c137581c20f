"""
Validation Session
==================

This module ties the pipeline together:

    Source → Lex → Preprocess → Parse → Diagnostics

Each call to validate() is an independent session. It builds its own
collector, version gate, lexer, preprocessor and parser, so concurrent
calls share no state and the caller's ParseOptions are never modified.

Usage
-----
    >>> from csval import validate, ParseOptions, LanguageVersion
    >>> result = validate("class C { void M() { int x = 1 } }")
    >>> result.success
    False
    >>> print(result.errors[0].format("Program.cs"))
    Program.cs(1,31): error CS1002: ; expected

    >>> options = ParseOptions(language_version=LanguageVersion.CSHARP7)
    >>> validate("record R(int X);", options).success
    False
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import AbstractSet, Optional

from csval.syntax.errors import Diagnostic, DiagnosticCollector, Severity
from csval.syntax.lexer import Lexer
from csval.syntax.parser import Parser
from csval.syntax.preprocessor import Preprocessor
from csval.syntax.versions import LanguageVersion, VersionGate

logger = logging.getLogger(__name__)


class SourceKind(Enum):
    """How the source is parsed."""
    REGULAR = "regular"
    SCRIPT = "script"


@dataclass(frozen=True)
class ParseOptions:
    """
    Options for one validation run.

    Attributes:
        language_version: Version whose syntax rules apply; symbolic
                          versions (default, latest) are resolved per run
        kind: REGULAR for ordinary files, SCRIPT for script code
        preprocessor_symbols: Symbols defined before the first line
        features: Names of experimental features to switch on
    """
    language_version: LanguageVersion = LanguageVersion.DEFAULT
    kind: SourceKind = SourceKind.REGULAR
    preprocessor_symbols: AbstractSet[str] = frozenset()
    features: AbstractSet[str] = frozenset()


@dataclass(frozen=True)
class ValidationResult:
    """
    Outcome of a validation run.

    Attributes:
        diagnostics: Every diagnostic, ordered by source position
        success: True when no diagnostic is an error
        language_version: The concrete version the source was checked against
    """
    diagnostics: tuple[Diagnostic, ...]
    success: bool
    language_version: LanguageVersion

    @property
    def errors(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.severity is Severity.ERROR]

    @property
    def warnings(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.severity is Severity.WARNING]


def validate(source_text: str, options: Optional[ParseOptions] = None) -> ValidationResult:
    """
    Check C# source text for syntax errors.

    Args:
        source_text: The complete source
        options: Parse options (defaults to the default language version,
                 regular code, no symbols)

    Returns:
        ValidationResult with every diagnostic found
    """
    options = options or ParseOptions()
    started = time.perf_counter()

    collector = DiagnosticCollector()
    gate = VersionGate(options.language_version, options.features, collector)
    script = options.kind is SourceKind.SCRIPT
    logger.debug(
        f"Validating {len(source_text)} characters as C# {gate.version.display} "
        f"({options.kind.value})"
    )

    lexer = Lexer(source_text, collector)
    preprocessor = Preprocessor(
        lexer,
        gate,
        collector,
        symbols=options.preprocessor_symbols,
        script=script,
    )
    parser = Parser(preprocessor.tokens(), gate, collector, script=script)
    parser.parse()

    diagnostics = tuple(collector.sorted())
    elapsed = (time.perf_counter() - started) * 1000
    logger.debug(
        f"Validation finished in {elapsed:.1f} ms: "
        f"{collector.error_count()} errors, {collector.warning_count()} warnings"
    )
    return ValidationResult(
        diagnostics=diagnostics,
        success=not collector.has_errors(),
        language_version=gate.version,
    )
