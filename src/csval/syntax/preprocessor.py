"""
C# Preprocessor
===============

This module filters the lexer's token stream through the C# preprocessing
directives. It consumes each directive line, updates the conditional state,
and yields only the tokens of active regions to the parser.

Unlike the C preprocessor there is no macro expansion: C# symbols are only
defined or undefined, and conditions are boolean expressions over them.

Supported Directives
--------------------
#if EXPR / #elif EXPR / #else / #endif   - Conditional compilation
#define NAME / #undef NAME               - Symbols (before the first token only)
#region [text] / #endregion [text]       - Outlining regions
#error text / #warning text              - User diagnostics
#line N ["file"] / default / hidden      - Line mapping (validated only)
#pragma warning disable|restore [ids]    - Warning control (validated only)
#pragma checksum "file" "{guid}" "bytes" - Checksum (validated only)
#nullable enable|disable|restore [warnings|annotations]   - C# 8
#r "path" / #load "path"                 - Scripts only
#!...                                    - Shebang, first line of scripts

Condition Expressions
---------------------
    expr := or
    or   := and ('||' and)*
    and  := eq ('&&' eq)*
    eq   := unary (('==' | '!=') unary)*
    unary:= '!' unary | primary
    primary := IDENTIFIER | true | false | '(' expr ')'

An undefined identifier is false. A malformed expression is reported
(CS1517) and treated as false.

Disabled Code
-------------
When a directive leaves the current region inactive the preprocessor asks
the lexer to skip raw lines up to the next directive line, so disabled code
is never tokenized and cannot produce lexical diagnostics. Directives inside
disabled code are still tracked for structure (#if/#endif and
#region/#endregion nesting) but otherwise ignored.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import AbstractSet, Iterator, Optional

from csval.errors import Span
from csval.syntax.errors import (
    DiagnosticCategory,
    DiagnosticCollector,
    ERR_DEFINE_AFTER_TOKEN,
    ERR_END_OF_DIRECTIVE_EXPECTED,
    ERR_ENDIF_EXPECTED,
    ERR_ENDREGION_EXPECTED,
    ERR_ERROR_DIRECTIVE,
    ERR_EXPECTED_PP_FILE,
    ERR_IDENTIFIER_EXPECTED,
    ERR_INVALID_LINE_NUMBER,
    ERR_INVALID_NULLABLE_DIRECTIVE,
    ERR_INVALID_NULLABLE_TARGET,
    ERR_INVALID_PP_EXPRESSION,
    ERR_PP_DIRECTIVE_EXPECTED,
    ERR_SCRIPT_DIRECTIVE_AFTER_TOKEN,
    ERR_SCRIPT_DIRECTIVE_IN_REGULAR,
    ERR_UNEXPECTED_DIRECTIVE,
    WRN_ILLEGAL_PP_CHECKSUM,
    WRN_ILLEGAL_PRAGMA,
    WRN_UNRECOGNIZED_PRAGMA,
    WRN_WARNING_DIRECTIVE,
)
from csval.syntax.lexer import Lexer, Token, TokenKind
from csval.syntax.versions import Feature, VersionGate

logger = logging.getLogger(__name__)


# =============================================================================
# Conditional State
# =============================================================================

class FrameKind(Enum):
    """Kind of an open directive block."""
    IF = "if"
    REGION = "region"


@dataclass
class ConditionalFrame:
    """
    One open #if or #region block.

    Attributes:
        kind: IF or REGION
        span: Position of the opening directive
        parent_active: Whether the enclosing region is active
        active: Whether tokens in the current branch are passed on
        branch_taken: Whether some branch of this #if has been active
        else_seen: Whether #else has been seen
    """
    kind: FrameKind
    span: Span
    parent_active: bool
    active: bool
    branch_taken: bool = False
    else_seen: bool = False


class _ExpressionError(Exception):
    """Raised inside condition parsing; carries the offending token."""

    def __init__(self, token: Optional[Token]):
        self.token = token
        super().__init__("invalid preprocessor expression")


# =============================================================================
# Preprocessor
# =============================================================================

class Preprocessor:
    """
    Applies C# preprocessing directives to a token stream.

    Usage:
        pp = Preprocessor(lexer, gate, collector, symbols={"DEBUG"})
        for token in pp.tokens():
            ...

    Attributes:
        lexer: The lexer supplying raw tokens
        symbols: Symbols defined for this run (a private copy)
        script: True when parsing script code (#r, #load, #! allowed)
    """

    PRAGMA_WARNING_ACTIONS = frozenset({"disable", "restore"})
    NULLABLE_SETTINGS = frozenset({"enable", "disable", "restore"})
    NULLABLE_TARGETS = frozenset({"warnings", "annotations"})

    def __init__(
        self,
        lexer: Lexer,
        gate: VersionGate,
        collector: DiagnosticCollector,
        symbols: AbstractSet[str] = frozenset(),
        script: bool = False,
    ):
        self.lexer = lexer
        self.gate = gate
        self.collector = collector
        self.symbols: set[str] = set(symbols)
        self.script = script

        self._frames: list[ConditionalFrame] = []
        self._seen_token = False

        # Condition parsing state
        self._expr_tokens: list[Token] = []
        self._expr_pos = 0

    def tokens(self) -> Iterator[Token]:
        """
        Yield the tokens of active regions, ending with EOF.

        Directive tokens are consumed here and never yielded.
        """
        stream = self.lexer.tokenize()
        for token in stream:
            if token.kind is TokenKind.DIRECTIVE_START:
                directive = [token]
                for part in stream:
                    directive.append(part)
                    if part.kind is TokenKind.END_OF_DIRECTIVE:
                        break
                self._handle_directive(directive)
                if not self._is_active():
                    self.lexer.skip_disabled_text()
                continue

            if token.kind is TokenKind.EOF:
                self._check_unterminated(token)
                yield token
                return

            self._seen_token = True
            yield token

    def _is_active(self) -> bool:
        return self._frames[-1].active if self._frames else True

    def _error(self, code: str, message: str, span: Span) -> None:
        self.collector.error(code, message, span, DiagnosticCategory.PREPROCESSOR)

    def _warning(self, code: str, message: str, span: Span) -> None:
        self.collector.warning(code, message, span, DiagnosticCategory.PREPROCESSOR)

    def _check_unterminated(self, eof: Token) -> None:
        """Report open blocks at end of input, once per block kind."""
        if any(f.kind is FrameKind.IF for f in self._frames):
            self._error(ERR_ENDIF_EXPECTED, "#endif directive expected", eof.span)
        if any(f.kind is FrameKind.REGION for f in self._frames):
            self._error(ERR_ENDREGION_EXPECTED, "#endregion directive expected", eof.span)

    # =========================================================================
    # Directive Dispatch
    # =========================================================================

    def _handle_directive(self, directive: list[Token]) -> None:
        """Process one directive line: DIRECTIVE_START, body..., END_OF_DIRECTIVE."""
        hash_token = directive[0]
        end = directive[-1]
        body = directive[1:-1]
        name_token = body[0] if body else None
        args = body[1:]

        if name_token is not None and name_token.kind is TokenKind.DIRECTIVE_MESSAGE:
            self._handle_shebang(hash_token, name_token)
            return

        if name_token is None or name_token.kind not in (TokenKind.IDENTIFIER, TokenKind.KEYWORD):
            if self._is_active():
                self._error(ERR_PP_DIRECTIVE_EXPECTED, "Preprocessor directive expected", hash_token.span)
            return

        name = name_token.text
        logger.debug(f"Directive #{name} at {hash_token.span}")

        if name in ("if", "elif", "else", "endif"):
            self._handle_conditional(name, name_token, args, end)
            return
        if name in ("region", "endregion"):
            self._handle_region(name, name_token)
            return
        if not self._is_active():
            return

        handler = {
            "define": self._handle_define,
            "undef": self._handle_define,
            "error": self._handle_message,
            "warning": self._handle_message,
            "line": self._handle_line,
            "pragma": self._handle_pragma,
            "nullable": self._handle_nullable,
            "r": self._handle_script_directive,
            "load": self._handle_script_directive,
        }.get(name)
        if handler is None:
            self._error(ERR_PP_DIRECTIVE_EXPECTED, "Preprocessor directive expected", name_token.span)
            return
        handler(name_token, args, end)

    def _expect_end(self, args: list[Token], index: int) -> None:
        """Report CS1025 if anything follows args[index - 1]."""
        if index < len(args):
            self._error(
                ERR_END_OF_DIRECTIVE_EXPECTED,
                "Single-line comment or end-of-line expected",
                args[index].span,
            )

    # =========================================================================
    # Conditionals and Regions
    # =========================================================================

    def _handle_conditional(self, name: str, name_token: Token, args: list[Token], end: Token) -> None:
        if name == "if":
            parent_active = self._is_active()
            value = self._evaluate(args, end) if parent_active else False
            self._frames.append(ConditionalFrame(
                FrameKind.IF, name_token.span, parent_active,
                active=parent_active and value,
                branch_taken=value or not parent_active,
            ))
            return

        frame = self._top_if_frame(name_token)
        if frame is None:
            return

        if name == "endif":
            self._frames.pop()
            if frame.parent_active:
                self._expect_end(args, 0)
            return

        if frame.else_seen:
            if frame.parent_active:
                self._error(ERR_UNEXPECTED_DIRECTIVE, "Unexpected preprocessor directive", name_token.span)
            frame.active = False
            return

        if name == "elif":
            value = self._evaluate(args, end) if frame.parent_active else False
            frame.active = frame.parent_active and not frame.branch_taken and value
            frame.branch_taken = frame.branch_taken or frame.active
        else:
            frame.else_seen = True
            frame.active = frame.parent_active and not frame.branch_taken
            frame.branch_taken = True
            if frame.parent_active:
                self._expect_end(args, 0)

    def _top_if_frame(self, name_token: Token) -> Optional[ConditionalFrame]:
        """
        Return the innermost frame if it is an #if block.

        Otherwise report the mismatch and return None.
        """
        if not self._frames:
            self._error(ERR_UNEXPECTED_DIRECTIVE, "Unexpected preprocessor directive", name_token.span)
            return None
        frame = self._frames[-1]
        if frame.kind is not FrameKind.IF:
            self._error(ERR_ENDREGION_EXPECTED, "#endregion directive expected", name_token.span)
            return None
        return frame

    def _handle_region(self, name: str, name_token: Token) -> None:
        if name == "region":
            active = self._is_active()
            self._frames.append(ConditionalFrame(FrameKind.REGION, name_token.span, active, active))
            return

        if not self._frames:
            self._error(ERR_UNEXPECTED_DIRECTIVE, "Unexpected preprocessor directive", name_token.span)
        elif self._frames[-1].kind is not FrameKind.REGION:
            self._error(ERR_ENDIF_EXPECTED, "#endif directive expected", name_token.span)
        else:
            self._frames.pop()

    # =========================================================================
    # Condition Expressions
    # =========================================================================

    def _evaluate(self, args: list[Token], end: Token) -> bool:
        """
        Evaluate a condition, reporting CS1517 or CS1025 on malformed input.

        Returns False for an invalid expression.
        """
        self._expr_tokens = args
        self._expr_pos = 0
        try:
            if not args:
                raise _ExpressionError(end)
            value = self._parse_or()
        except _ExpressionError as e:
            span = e.token.span if e.token is not None else end.span
            self._error(ERR_INVALID_PP_EXPRESSION, "Invalid preprocessor expression", span)
            return False
        self._expect_end(args, self._expr_pos)
        logger.debug(f"Condition evaluated to {value}")
        return value

    def _expr_peek(self) -> Optional[Token]:
        if self._expr_pos < len(self._expr_tokens):
            return self._expr_tokens[self._expr_pos]
        return None

    def _expr_match(self, text: str) -> bool:
        token = self._expr_peek()
        if token is not None and token.is_punct(text):
            self._expr_pos += 1
            return True
        return False

    def _parse_or(self) -> bool:
        value = self._parse_and()
        while self._expr_match("||"):
            right = self._parse_and()
            value = value or right
        return value

    def _parse_and(self) -> bool:
        value = self._parse_equality()
        while self._expr_match("&&"):
            right = self._parse_equality()
            value = value and right
        return value

    def _parse_equality(self) -> bool:
        value = self._parse_unary()
        while True:
            if self._expr_match("=="):
                value = value == self._parse_unary()
            elif self._expr_match("!="):
                value = value != self._parse_unary()
            else:
                return value

    def _parse_unary(self) -> bool:
        if self._expr_match("!"):
            return not self._parse_unary()
        return self._parse_primary()

    def _parse_primary(self) -> bool:
        token = self._expr_peek()
        if token is None:
            raise _ExpressionError(None)
        if token.is_keyword("true"):
            self._expr_pos += 1
            return True
        if token.is_keyword("false"):
            self._expr_pos += 1
            return False
        if token.kind is TokenKind.IDENTIFIER:
            self._expr_pos += 1
            return token.value in self.symbols
        if self._expr_match("("):
            value = self._parse_or()
            if not self._expr_match(")"):
                raise _ExpressionError(self._expr_peek())
            return value
        raise _ExpressionError(token)

    # =========================================================================
    # Other Directives
    # =========================================================================

    def _handle_define(self, name_token: Token, args: list[Token], end: Token) -> None:
        """Process #define / #undef."""
        if not args or args[0].kind is not TokenKind.IDENTIFIER:
            span = args[0].span if args else end.span
            self._error(ERR_IDENTIFIER_EXPECTED, "Identifier expected", span)
            return
        if self._seen_token:
            self._error(
                ERR_DEFINE_AFTER_TOKEN,
                "Cannot define/undefine preprocessor symbols after first token in file",
                name_token.span,
            )
            return

        symbol = args[0].value
        if name_token.text == "define":
            self.symbols.add(symbol)
        else:
            self.symbols.discard(symbol)
        self._expect_end(args, 1)

    def _handle_message(self, name_token: Token, args: list[Token], end: Token) -> None:
        """Process #error / #warning."""
        text = args[0].text if args else ""
        if name_token.text == "error":
            self._error(ERR_ERROR_DIRECTIVE, f"#error: '{text}'", name_token.span)
        else:
            self._warning(WRN_WARNING_DIRECTIVE, f"#warning: '{text}'", name_token.span)

    def _handle_line(self, name_token: Token, args: list[Token], end: Token) -> None:
        """Process #line N ["file"] | default | hidden."""
        if args and (args[0].is_keyword("default") or args[0].is_contextual("hidden")):
            self._expect_end(args, 1)
            return

        if not args or args[0].kind is not TokenKind.NUMERIC_LITERAL or not args[0].text.isdigit():
            span = args[0].span if args else end.span
            self._error(
                ERR_INVALID_LINE_NUMBER,
                "The line number specified for #line directive is missing or invalid",
                span,
            )
            return
        if not 1 <= int(args[0].text) <= 0xFEEFED:
            self._error(
                ERR_INVALID_LINE_NUMBER,
                "The line number specified for #line directive is missing or invalid",
                args[0].span,
            )
            return

        index = 1
        if index < len(args) and args[index].kind is TokenKind.STRING_LITERAL:
            index += 1
        self._expect_end(args, index)

    def _handle_pragma(self, name_token: Token, args: list[Token], end: Token) -> None:
        """Process #pragma warning ... and #pragma checksum ..."""
        kind = args[0].text if args else ""

        if kind == "warning":
            if len(args) < 2 or args[1].text not in self.PRAGMA_WARNING_ACTIONS:
                span = args[1].span if len(args) > 1 else end.span
                self._warning(WRN_ILLEGAL_PRAGMA, "Expected 'disable' or 'restore'", span)
                return
            index = 2
            expect_id = True
            while index < len(args):
                token = args[index]
                if expect_id and token.kind in (TokenKind.IDENTIFIER, TokenKind.NUMERIC_LITERAL):
                    expect_id = False
                elif not expect_id and token.is_punct(","):
                    expect_id = True
                else:
                    self._warning(
                        WRN_ILLEGAL_PRAGMA,
                        "Expected identifier or numeric literal",
                        token.span,
                    )
                    return
                index += 1
            return

        if kind == "checksum":
            strings = args[1:4]
            if len(strings) < 3 or any(t.kind is not TokenKind.STRING_LITERAL for t in strings):
                span = next(
                    (t.span for t in strings if t.kind is not TokenKind.STRING_LITERAL), end.span
                )
                self._warning(WRN_ILLEGAL_PP_CHECKSUM, "Invalid #pragma checksum syntax", span)
                return
            self._expect_end(args, 4)
            return

        span = args[0].span if args else end.span
        self._warning(WRN_UNRECOGNIZED_PRAGMA, "Unrecognized #pragma directive", span)

    def _handle_nullable(self, name_token: Token, args: list[Token], end: Token) -> None:
        """Process #nullable enable|disable|restore [warnings|annotations]."""
        self.gate.check(Feature.NULLABLE_REFERENCE_TYPES, name_token.span)

        if not args or args[0].text not in self.NULLABLE_SETTINGS:
            span = args[0].span if args else end.span
            self._error(
                ERR_INVALID_NULLABLE_DIRECTIVE,
                "Expected 'enable', 'disable', or 'restore'",
                span,
            )
            return
        if len(args) > 1:
            if args[1].text not in self.NULLABLE_TARGETS:
                self._error(
                    ERR_INVALID_NULLABLE_TARGET,
                    "Expected 'warnings', 'annotations', or end of directive",
                    args[1].span,
                )
                return
            self._expect_end(args, 2)

    def _handle_script_directive(self, name_token: Token, args: list[Token], end: Token) -> None:
        """Process #r and #load, which only scripts may use."""
        directive = f"#{name_token.text}"
        if not self.script:
            self._error(
                ERR_SCRIPT_DIRECTIVE_IN_REGULAR,
                f"{directive} is only allowed in scripts",
                name_token.span,
            )
            return
        if self._seen_token:
            self._error(
                ERR_SCRIPT_DIRECTIVE_AFTER_TOKEN,
                f"Cannot use {directive} after first token in file",
                name_token.span,
            )
            return
        if not args or args[0].kind is not TokenKind.STRING_LITERAL:
            span = args[0].span if args else end.span
            self._error(ERR_EXPECTED_PP_FILE, "Quoted file name expected", span)
            return
        self._expect_end(args, 1)

    def _handle_shebang(self, hash_token: Token, message: Token) -> None:
        """A '#!' line is allowed as the very first line of a script."""
        if self.script and hash_token.span.start.offset == 0:
            return
        if self._is_active():
            self._error(ERR_PP_DIRECTIVE_EXPECTED, "Preprocessor directive expected", hash_token.span)
