"""
C# Syntax Checking
==================

The validation pipeline, leaf first:

- errors: Diagnostic, DiagnosticCollector and the diagnostic codes
- versions: LanguageVersion, Feature and the VersionGate
- lexer: Lexer and Token
- preprocessor: directive handling and active-region filtering
- parser: the grammar checker
- validator: validate(), ParseOptions and ValidationResult
"""

from csval.syntax.errors import Diagnostic, DiagnosticCollector, Severity
from csval.syntax.lexer import Lexer, Token, TokenKind
from csval.syntax.parser import Parser
from csval.syntax.preprocessor import Preprocessor
from csval.syntax.validator import ParseOptions, SourceKind, ValidationResult, validate
from csval.syntax.versions import Feature, LanguageVersion, VersionGate

__all__ = [
    "Diagnostic",
    "DiagnosticCollector",
    "Severity",
    "Lexer",
    "Token",
    "TokenKind",
    "Parser",
    "Preprocessor",
    "ParseOptions",
    "SourceKind",
    "ValidationResult",
    "validate",
    "Feature",
    "LanguageVersion",
    "VersionGate",
]
