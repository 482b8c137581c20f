"""
C# Parser
=========

This module implements a recursive descent parser that checks a token
stream against the C# grammar. It builds no tree: its only output is the
diagnostics it reports, one for each place where the source does not fit
the grammar, plus a version diagnostic for each construct the selected
language version does not support.

Grammar (abridged)
------------------
    compilation_unit = { extern_alias } { using_directive } { global_attribute }
                       { global_statement } { namespace_member } ;
    namespace_member = namespace_declaration | type_declaration ;
    type_declaration = { attribute_section } { modifier }
                       ( class | struct | interface | record | enum | delegate ) ... ;
    member           = field | constant | method | property | indexer | event
                     | operator | constructor | finalizer | type_declaration ;
    statement        = block | local_declaration | local_function | if | switch
                     | while | do | for | foreach | jump | try | lock | using
                     | yield | labeled_statement | expression_statement ;

Operator Precedence (lowest to highest)
---------------------------------------
1.  Assignment      = += -= *= /= %= &= |= ^= <<= >>= >>>= ??=  (right)
2.  Conditional     ?:
3.  Null-coalescing ??                                          (right)
4.  Logical OR      ||
5.  Logical AND     &&
6.  Bitwise OR      |
7.  Bitwise XOR     ^
8.  Bitwise AND     &
9.  Equality        == !=
10. Relational      < > <= >= is as
11. Shift           << >> >>>
12. Additive        + -
13. Multiplicative  * / %
14. Switch / with   x switch { ... }   x with { ... }
15. Range           ..
16. Unary           + - ! ~ ++ -- ^ & * (T)x await
17. Primary         x.y x?.y f(x) a[i] x++ x-- x! new typeof default ...

Associativity does not change whether a program is well formed, so
right-associative operators are parsed in a loop like the others.

Ambiguities
-----------
The C# grammar is not context free. Where it is ambiguous the parser looks
ahead without consuming tokens:

- `A<B>(x)` is a generic name when the token after the closing '>' is one
  of ( ) ] } : ; , . ? == != | ^ && || & [
- `(T)x` is a cast when `T` scans as a type and the next token can start
  an operand; for predefined and other unmistakable types any operand will do
- `x => ...` and `(...) => ...` are lambdas
- `T x ...` is a declaration when `T` scans as a type followed by a name

Error Recovery
--------------
A missing token is reported at the end of the previous token and is not
consumed, so the parse continues as if it were present. At most one syntax
diagnostic is reported per token. Loops that make no progress report the
offending token and resynchronize at a statement or declaration boundary.
Nesting deeper than MAX_NESTING_DEPTH reports once and abandons the file.
"""

import functools
import logging
from typing import Iterable, Optional

from csval.errors import Span
from csval.syntax.errors import (
    DiagnosticCategory,
    DiagnosticCollector,
    ERR_ADD_OR_REMOVE_EXPECTED,
    ERR_BAD_NEW_EXPRESSION,
    ERR_CLOSE_BRACE_EXPECTED,
    ERR_CLOSE_PAREN_EXPECTED,
    ERR_EMBEDDED_STATEMENT,
    ERR_EXPECTED_CATCH_OR_FINALLY,
    ERR_EXPRESSION_TOO_COMPLEX,
    ERR_GET_OR_SET_EXPECTED,
    ERR_IDENTIFIER_EXPECTED,
    ERR_INVALID_EXPRESSION_TERM,
    ERR_INVALID_MEMBER_TOKEN,
    ERR_NAMESPACE_IN_SCRIPT,
    ERR_NAMESPACE_MEMBER_EXPECTED,
    ERR_OPEN_BRACE_EXPECTED,
    ERR_OVERLOADABLE_OPERATOR_EXPECTED,
    ERR_QUERY_BODY_END,
    ERR_SEMICOLON_EXPECTED,
    ERR_THIS_OR_BASE_EXPECTED,
    ERR_TOKEN_EXPECTED,
    ERR_TOP_LEVEL_STATEMENT_AFTER_TYPES,
    ERR_TYPE_EXPECTED,
    ERR_USING_AFTER_ELEMENTS,
)
from csval.syntax.lexer import Token, TokenKind
from csval.syntax.versions import Feature, VersionGate

logger = logging.getLogger(__name__)


# =============================================================================
# Grammar Tables
# =============================================================================

# Nesting units (statements, expressions, unary operands, patterns, declarations)
# before the parser gives up on a file
MAX_NESTING_DEPTH = 100

# Generic and tuple nesting inside a single type
MAX_TYPE_DEPTH = 32

PREDEFINED_TYPES = frozenset({
    "bool", "byte", "char", "decimal", "double", "float", "int", "long",
    "object", "sbyte", "short", "string", "uint", "ulong", "ushort", "void",
})

# Keywords that can begin an expression
EXPRESSION_KEYWORDS = frozenset({
    "base", "checked", "default", "delegate", "false", "new", "null", "ref",
    "sizeof", "stackalloc", "this", "throw", "true", "typeof", "unchecked",
})

LITERAL_KINDS = frozenset({
    TokenKind.NUMERIC_LITERAL, TokenKind.STRING_LITERAL, TokenKind.CHAR_LITERAL,
})

# Tokens that may follow the closing '>' of a generic name in an expression
GENERIC_FOLLOW = (
    "(", ")", "]", "}", ":", ";", ",", ".", "?", "?.", "==", "!=", "|", "^",
    "&&", "||", "&", "[",
)

# Contextual words that follow an operand, so `(x) word` is not a cast
CAST_BLOCKERS = frozenset({
    "and", "or", "when", "with", "equals", "on", "by", "ascending",
    "descending", "into", "select", "group", "where", "orderby", "join", "let",
})

ASSIGNMENT_OPERATORS = frozenset({
    "=", "+=", "-=", "*=", "/=", "%=", "&=", "|=", "^=", "<<=", ">>=",
    ">>>=", "??=",
})

BINARY_PRECEDENCE = {
    "??": 3,
    "||": 4,
    "&&": 5,
    "|": 6,
    "^": 7,
    "&": 8,
    "==": 9, "!=": 9,
    "<": 10, ">": 10, "<=": 10, ">=": 10, "is": 10, "as": 10,
    "<<": 11, ">>": 11, ">>>": 11,
    "+": 12, "-": 12,
    "*": 13, "/": 13, "%": 13,
    "switch": 14, "with": 14,
    "..": 15,
}
COALESCE_PRECEDENCE = 3
SHIFT_PRECEDENCE = 11

UNARY_OPERATORS = frozenset({"+", "-", "!", "~", "++", "--", "&", "*", "^"})

OVERLOADABLE_OPERATORS = frozenset({
    "+", "-", "!", "~", "++", "--", "*", "/", "%", "&", "|", "^", "<<",
    ">>", ">>>", "==", "!=", "<", ">", "<=", ">=",
})
COMPOUND_ASSIGNMENT_OPERATORS = ASSIGNMENT_OPERATORS - {"=", "??="}

MODIFIER_KEYWORDS = frozenset({
    "abstract", "extern", "fixed", "internal", "new", "override", "private",
    "protected", "public", "readonly", "ref", "sealed", "static", "unsafe",
    "virtual", "volatile",
})
CONTEXTUAL_MODIFIERS = frozenset({"async", "file", "partial", "required"})

# Modifiers that only a member of a type can carry
MEMBER_ONLY_MODIFIERS = frozenset({
    "abstract", "internal", "override", "private", "protected", "public",
    "sealed", "virtual", "required",
})

LOCAL_MODIFIERS = frozenset({
    "const", "extern", "readonly", "ref", "static", "unsafe", "volatile",
})

# Keywords where a statement-level resynchronization stops
STATEMENT_KEYWORDS = frozenset({
    "break", "const", "continue", "do", "fixed", "for", "foreach", "goto",
    "if", "lock", "return", "switch", "throw", "try", "using", "while",
})

# Keywords where any resynchronization stops
DECLARATION_KEYWORDS = frozenset({
    "abstract", "class", "delegate", "enum", "event", "extern", "interface",
    "internal", "namespace", "override", "private", "protected", "public",
    "readonly", "sealed", "static", "struct", "virtual",
})

EXPECTED_CODES = {
    ";": ERR_SEMICOLON_EXPECTED,
    ")": ERR_CLOSE_PAREN_EXPECTED,
    "}": ERR_CLOSE_BRACE_EXPECTED,
    "{": ERR_OPEN_BRACE_EXPECTED,
}

# Results of _parse_pattern
TYPE_PATTERN = "type"
NAME_PATTERN = "name"
CONSTANT_PATTERN = "constant"
OTHER_PATTERN = "pattern"


def _nesting_guard(method):
    """Count nesting around a recursive parse method, abandoning past the limit."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        if self._abandoned:
            return None
        self._depth += 1
        try:
            if self._depth > MAX_NESTING_DEPTH:
                self._abandon()
                return None
            return method(self, *args, **kwargs)
        finally:
            self._depth -= 1

    return wrapper


# =============================================================================
# Parser Class
# =============================================================================

class Parser:
    """
    Recursive descent syntax checker for C#.

    The parser consumes the token list produced by the preprocessor and
    reports problems to the shared collector. Constructs that need a newer
    language version than the session's are reported through the version
    gate at the point where they are recognized.

    Attributes:
        tokens: Tokens to check, ending with EOF (bad tokens removed)
        gate: Version gate for the session's language version
        collector: Receives syntax diagnostics
        script: True for script code (top-level members, no namespaces)

    Example:
        >>> parser = Parser(tokens, gate, collector)
        >>> parser.parse()
        >>> collector.has_errors()
        False
    """

    def __init__(
        self,
        tokens: Iterable[Token],
        gate: VersionGate,
        collector: DiagnosticCollector,
        script: bool = False,
    ):
        # The lexer already reported every bad token
        self.tokens = [t for t in tokens if t.kind is not TokenKind.BAD_TOKEN]
        if not self.tokens or self.tokens[-1].kind is not TokenKind.EOF:
            raise ValueError("token stream must end with an EOF token")
        self.gate = gate
        self.collector = collector
        self.script = script

        self._pos = 0
        self._depth = 0
        # The lexer gives up on interpolated strings nested too deeply
        self._abandoned = any(d.code == ERR_EXPRESSION_TOO_COMPLEX for d in collector.diagnostics)
        self._reported: set[int] = set()

        # Top-level bookkeeping
        self._seen_declaration = False
        self._top_level_checked = False
        self._misplaced_statement_reported = False

        # Kinds of the enclosing type declarations, innermost last
        self._type_kinds: list[str] = []

        # Classification of the last subpattern parsed by _parse_subpatterns
        self._last_subpattern_kind: Optional[str] = None

        self._statement_parsers = {
            "if": self._parse_if,
            "while": self._parse_while,
            "do": self._parse_do,
            "for": self._parse_for,
            "foreach": self._parse_foreach,
            "switch": self._parse_switch_statement,
            "break": self._parse_jump,
            "continue": self._parse_jump,
            "goto": self._parse_goto,
            "return": self._parse_return,
            "throw": self._parse_return,
            "try": self._parse_try,
            "lock": self._parse_lock,
            "using": self._parse_using_statement,
            "fixed": self._parse_fixed,
        }

    def parse(self) -> None:
        """Check the whole compilation unit, reporting every problem found."""
        logger.debug(f"Parsing {len(self.tokens)} tokens (script={self.script})")
        if self._abandoned:
            return
        try:
            self._parse_namespace_body(in_namespace=False)
        except RecursionError:
            # The interpreter stack ran out before the nesting limit did
            self._abandon()
        logger.debug(f"Parse complete, {len(self._reported)} syntax errors")

    # =========================================================================
    # Token Access Methods
    # =========================================================================

    def _token(self, index: int) -> Token:
        """Return the token at an absolute index, or EOF past the end."""
        if index < len(self.tokens):
            return self.tokens[index]
        return self.tokens[-1]

    def _peek(self, offset: int = 0) -> Token:
        return self._token(self._pos + offset)

    def _at_end(self) -> bool:
        return self._peek().kind is TokenKind.EOF

    def _advance(self) -> Token:
        """Consume and return the current token. EOF is never consumed."""
        token = self._peek()
        if token.kind is not TokenKind.EOF:
            self._pos += 1
        return token

    def _check(self, *texts: str) -> bool:
        return self._peek().is_punct(*texts)

    def _check_keyword(self, *words: str) -> bool:
        return self._peek().is_keyword(*words)

    def _check_contextual(self, word: str) -> bool:
        return self._peek().is_contextual(word)

    def _match(self, text: str) -> Optional[Token]:
        if self._check(text):
            return self._advance()
        return None

    def _match_keyword(self, word: str) -> Optional[Token]:
        if self._check_keyword(word):
            return self._advance()
        return None

    def _expect(self, text: str) -> bool:
        """
        Consume the expected punctuation, or report it missing.

        A missing token is reported at the end of the previous token and
        nothing is consumed.
        """
        if self._check(text):
            self._advance()
            return True
        code = EXPECTED_CODES.get(text, ERR_TOKEN_EXPECTED)
        if code == ERR_TOKEN_EXPECTED:
            message = f"Syntax error, '{text}' expected"
        else:
            message = f"{text} expected"
        self._error(code, message, self._missing_span())
        return False

    def _expect_keyword(self, word: str) -> bool:
        if self._check_keyword(word) or self._check_contextual(word):
            self._advance()
            return True
        self._error(ERR_TOKEN_EXPECTED, f"Syntax error, '{word}' expected", self._missing_span())
        return False

    def _expect_identifier(self) -> bool:
        if self._peek().kind is TokenKind.IDENTIFIER:
            self._advance()
            return True
        self._error(ERR_IDENTIFIER_EXPECTED, "Identifier expected", self._missing_span())
        return False

    def _missing_span(self) -> Span:
        if self._pos == 0:
            return Span.at(self._peek().start)
        return Span.at(self._token(self._pos - 1).end)

    def _adjacent(self, first: Token, second: Token) -> bool:
        return first.end.offset == second.start.offset

    def _operator(self) -> tuple[str, int]:
        """
        Return the operator at the cursor and the number of tokens it spans.

        Adjacent '>' tokens are joined into '>>', '>>>', '>>=' and '>>>='.
        Returns ("", 0) when the cursor is not at an operator.
        """
        token = self._peek()
        if token.kind is TokenKind.KEYWORD:
            if token.text in ("is", "as"):
                return token.text, 1
            if token.text == "switch" and self._peek(1).is_punct("{"):
                return "switch", 1
            return "", 0
        if token.is_contextual("with") and self._peek(1).is_punct("{"):
            return "with", 1
        if token.kind not in (TokenKind.PUNCTUATION, TokenKind.OPERATOR):
            return "", 0
        if token.text == ">":
            second = self._peek(1)
            if self._adjacent(token, second):
                if second.is_punct(">="):
                    return ">>=", 2
                if second.is_punct(">"):
                    third = self._peek(2)
                    if self._adjacent(second, third):
                        if third.is_punct(">"):
                            return ">>>", 3
                        if third.is_punct(">="):
                            return ">>>=", 3
                    return ">>", 2
        return token.text, 1

    # =========================================================================
    # Diagnostics
    # =========================================================================

    def _error(
        self,
        code: str,
        message: str,
        span: Optional[Span] = None,
        index: Optional[int] = None,
    ) -> None:
        """
        Report a syntax error, at most once per token.

        Args:
            code: Diagnostic code
            message: Diagnostic message
            span: Where to report (defaults to the token at `index`)
            index: Token the error is charged to (defaults to the cursor)
        """
        if self._abandoned:
            return
        if index is None:
            index = self._pos
        if index in self._reported:
            return
        self._reported.add(index)
        if span is None:
            span = self._token(index).span
        self.collector.error(code, message, span, DiagnosticCategory.SYNTAX)

    def _abandon(self) -> None:
        """Report excessive nesting once and skip to the end of the file."""
        if not self._abandoned:
            logger.debug(f"Nesting limit reached at token {self._pos}")
            self.collector.error(
                ERR_EXPRESSION_TOO_COMPLEX,
                "An expression is too long or complex to compile",
                self._peek().span,
                DiagnosticCategory.SYNTAX,
            )
            self._abandoned = True
        self._pos = len(self.tokens) - 1

    def _require(self, feature: Feature, token: Optional[Token] = None) -> None:
        """Check a language feature at a token (the current one by default)."""
        self.gate.check(feature, (token or self._peek()).span)

    def _require_token_features(self, token: Token) -> None:
        for feature in token.features:
            self.gate.check(feature, token.span)

    def _invalid_member(self, token: Token) -> None:
        self._error(
            ERR_INVALID_MEMBER_TOKEN,
            f"Invalid token '{token.text}' in class, record, struct, or interface member declaration",
        )

    def _synchronize(self, statement: bool) -> None:
        """
        Skip tokens after a syntax error until a likely boundary.

        At least one token is skipped. A ';' is consumed and a '}' is left
        for the enclosing construct. Outside statements, brace-delimited
        groups are skipped whole.
        """
        self._skip_token(statement)
        while not self._at_end():
            token = self._peek()
            if token.is_punct(";"):
                self._advance()
                return
            if token.is_punct("}"):
                return
            if token.kind is TokenKind.KEYWORD:
                if token.text in DECLARATION_KEYWORDS:
                    return
                if statement and token.text in STATEMENT_KEYWORDS:
                    return
            if statement and token.is_punct("{"):
                return
            self._skip_token(statement)

    def _skip_token(self, statement: bool) -> None:
        if statement or not self._check("{"):
            self._advance()
            return
        depth = 0
        while not self._at_end():
            token = self._advance()
            if token.is_punct("{"):
                depth += 1
            elif token.is_punct("}"):
                depth -= 1
                if depth == 0:
                    return

    # =========================================================================
    # Lookahead
    # =========================================================================

    def _starts_expression(self, token: Token) -> bool:
        if token.kind in LITERAL_KINDS or token.kind in (
            TokenKind.IDENTIFIER, TokenKind.INTERPOLATED_STRING_START,
        ):
            return True
        if token.kind is TokenKind.KEYWORD:
            return token.text in EXPRESSION_KEYWORDS or token.text in PREDEFINED_TYPES
        return token.is_punct("(", "[", "!", "~", "+", "-", "++", "--", "&", "*", "^", "..")

    def _starts_type(self, token: Token) -> bool:
        if token.kind is TokenKind.IDENTIFIER or token.is_punct("("):
            return True
        if token.is_keyword("delegate"):
            return True
        return token.kind is TokenKind.KEYWORD and token.text in PREDEFINED_TYPES

    def _starts_pattern(self, token: Token) -> bool:
        return self._starts_expression(token) or token.is_punct("{", "<", "<=", ">", ">=")

    def _matching_close(self, index: int, open_text: str, close_text: str) -> Optional[int]:
        """
        Find the bracket that closes the one at `index`.

        Gives up at a statement boundary, so a stray bracket cannot make the
        lookahead scan the rest of the file.
        """
        depth = 0
        for i in range(index, len(self.tokens)):
            token = self.tokens[i]
            if token.is_punct(open_text):
                depth += 1
            elif token.is_punct(close_text):
                depth -= 1
                if depth == 0:
                    return i
            elif token.is_punct(";", "{", "}") or token.kind is TokenKind.EOF:
                return None
        return None

    def _skip_attribute_sections(self, index: int) -> Optional[int]:
        while self._token(index).is_punct("["):
            close = self._matching_close(index, "[", "]")
            if close is None:
                return None
            index = close + 1
        return index

    def _has_type_only_syntax(self, start: int, end: int, generics: bool = True) -> bool:
        """
        Return True if tokens[start:end] can only be read as a type.

        With generics=False, type arguments are neither a sign of a type nor
        searched, so List<int> counts as a plain name.
        """
        depth = 0
        for index in range(start, end):
            token = self._token(index)
            if token.is_punct("<"):
                if generics:
                    return True
                depth += 1
            elif token.is_punct(">"):
                depth -= 1
            elif depth:
                continue
            elif token.kind is TokenKind.KEYWORD and token.text in PREDEFINED_TYPES:
                return True
            elif token.is_punct("?", "[", "*", "(") or token.is_keyword("delegate"):
                return True
        return False

    def _is_plain_name(self, start: int, end: int) -> bool:
        """Return True if tokens[start:end] is a simple or dotted name."""
        expect_name = True
        for index in range(start, end):
            token = self._token(index)
            if expect_name and token.kind is TokenKind.IDENTIFIER:
                expect_name = False
            elif not expect_name and token.is_punct(".", "::"):
                expect_name = True
            else:
                return False
        return end > start and not expect_name

    # =========================================================================
    # Type Scanning
    # =========================================================================
    # Types are scanned without consuming tokens. A caller scans once to make
    # a decision and, if it commits, scans again with report=True so that
    # version gates fire for the constructs inside the type.
    # =========================================================================

    def _scan_type(
        self,
        index: int,
        in_expression: bool = False,
        report: bool = False,
        depth: int = 0,
    ) -> Optional[int]:
        """
        Scan a type starting at `index`.

        Args:
            index: Token index where the type would start
            in_expression: True after 'is' and 'as', where '?' may be the
                conditional operator and '*' multiplication
            report: Fire version gates for what is scanned
            depth: Generic and tuple nesting so far

        Returns:
            Index just past the type, or None if no type starts there
        """
        if depth > MAX_TYPE_DEPTH:
            return None
        token = self._token(index)
        if token.is_punct("("):
            end = self._scan_tuple_type(index, report, depth)
        elif token.kind is TokenKind.KEYWORD and token.text in PREDEFINED_TYPES:
            end = index + 1
        elif token.is_keyword("delegate") and self._token(index + 1).is_punct("*"):
            end = self._scan_function_pointer(index, report, depth)
        elif token.kind is TokenKind.IDENTIFIER:
            end = self._scan_qualified_name(index, report, depth)
        else:
            return None
        if end is None:
            return None

        while True:
            token = self._token(end)
            if token.is_punct("?"):
                if in_expression and self._starts_expression(self._token(end + 1)):
                    break
                if report:
                    self._require(Feature.NULLABLE_TYPES, token)
                end += 1
            elif token.is_punct("*") and not in_expression:
                end += 1
            elif token.is_punct("["):
                close = end + 1
                while self._token(close).is_punct(","):
                    close += 1
                if not self._token(close).is_punct("]"):
                    break
                end = close + 1
            else:
                break
        return end

    def _scan_qualified_name(self, index: int, report: bool = False, depth: int = 0) -> Optional[int]:
        end = index
        while True:
            if self._token(end).kind is not TokenKind.IDENTIFIER:
                return None
            end += 1
            following = self._token(end)
            if following.is_punct("::"):
                if report:
                    self._require(Feature.NAMESPACE_ALIAS_QUALIFIER, following)
                end += 1
                continue
            if following.is_punct("<"):
                close = self._scan_type_arguments(end, report, depth)
                if close is None:
                    return end
                end = close
                following = self._token(end)
            if following.is_punct(".") and self._token(end + 1).kind is TokenKind.IDENTIFIER:
                end += 1
                continue
            return end

    def _scan_type_arguments(self, index: int, report: bool = False, depth: int = 0) -> Optional[int]:
        """Scan '<' types '>' starting at `index`, allowing the unbound form <,>."""
        if report:
            self._require(Feature.GENERICS, self._token(index))
        end = index + 1
        if self._token(end).is_punct(",", ">"):
            while self._token(end).is_punct(","):
                end += 1
            return end + 1 if self._token(end).is_punct(">") else None
        while True:
            end = self._scan_type(end, report=report, depth=depth + 1)
            if end is None:
                return None
            token = self._token(end)
            if token.is_punct(","):
                end += 1
                continue
            if token.is_punct(">"):
                return end + 1
            return None

    def _scan_tuple_type(self, index: int, report: bool, depth: int) -> Optional[int]:
        end = index + 1
        count = 0
        while True:
            end = self._scan_type(end, report=report, depth=depth + 1)
            if end is None:
                return None
            if self._token(end).kind is TokenKind.IDENTIFIER:
                end += 1
            count += 1
            token = self._token(end)
            if token.is_punct(","):
                end += 1
                continue
            if token.is_punct(")") and count > 1:
                if report:
                    self._require(Feature.TUPLES, self._token(index))
                return end + 1
            return None

    def _scan_function_pointer(self, index: int, report: bool, depth: int) -> Optional[int]:
        # delegate* [managed | unmanaged [ '[' conventions ']' ]] < types >
        if report:
            self._require(Feature.FUNCTION_POINTERS, self._token(index))
        end = index + 2
        token = self._token(end)
        if token.is_contextual("managed") or token.is_contextual("unmanaged"):
            end += 1
            if self._token(end).is_punct("["):
                close = self._matching_close(end, "[", "]")
                if close is None:
                    return None
                end = close + 1
        if not self._token(end).is_punct("<"):
            return None
        end += 1
        while True:
            while self._token(end).is_keyword("ref", "in", "out", "readonly"):
                end += 1
            end = self._scan_type(end, report=report, depth=depth + 1)
            if end is None:
                return None
            token = self._token(end)
            if token.is_punct(","):
                end += 1
                continue
            if token.is_punct(">"):
                return end + 1
            return None

    def _parse_type(self, in_expression: bool = False) -> bool:
        """Consume a type, or report 'Type expected' and consume nothing."""
        end = self._scan_type(self._pos, in_expression)
        if end is None:
            self._error(ERR_TYPE_EXPECTED, "Type expected")
            return False
        self._scan_type(self._pos, in_expression, report=True)
        self._pos = end
        return True

    def _generic_arguments_end(self, index: int) -> Optional[int]:
        """Return the end of a generic argument list that belongs to a name in an expression."""
        end = self._scan_type_arguments(index)
        if end is None:
            return None
        following = self._token(end)
        if following.kind in (
            TokenKind.EOF, TokenKind.INTERPOLATION_END, TokenKind.INTERPOLATION_FORMAT,
        ) or following.is_punct(*GENERIC_FOLLOW):
            return end
        return None

    def _parse_generic_suffix(self) -> None:
        if not self._check("<"):
            return
        end = self._generic_arguments_end(self._pos)
        if end is None:
            return
        self._scan_type_arguments(self._pos, report=True)
        self._pos = end

    # =========================================================================
    # Compilation Units and Namespaces
    # =========================================================================

    def _parse_namespace_body(self, in_namespace: bool) -> None:
        """
        Parse namespace members until '}' (in a namespace) or EOF.

        At compilation-unit level this also accepts top-level statements.
        """
        members_seen = False
        while not self._at_end():
            token = self._peek()
            if in_namespace and token.is_punct("}"):
                return
            start = self._pos

            if token.is_keyword("extern") and self._peek(1).is_contextual("alias"):
                self._parse_extern_alias()
            elif self._is_using_directive(in_namespace):
                if members_seen:
                    self._error(
                        ERR_USING_AFTER_ELEMENTS,
                        "A using clause must precede all other elements defined in the "
                        "namespace except extern alias declarations",
                    )
                self._parse_using_directive()
            elif token.is_punct("[") and self._is_global_attribute():
                self._parse_attribute_section()
                members_seen = True
            elif token.is_keyword("namespace"):
                file_scoped = self._parse_namespace()
                members_seen = not file_scoped
            elif token.is_punct("}"):
                self._error(
                    ERR_NAMESPACE_MEMBER_EXPECTED,
                    "Type or namespace definition, or end-of-file expected",
                )
                self._advance()
            elif self._is_type_declaration_start():
                self._seen_declaration = True
                self._parse_member_declaration()
                members_seen = True
            elif in_namespace or self._is_member_start():
                self._parse_member_declaration()
                members_seen = True
            else:
                self._parse_global_statement()
                members_seen = True

            if self._pos == start:
                self._error(
                    ERR_NAMESPACE_MEMBER_EXPECTED,
                    "Type or namespace definition, or end-of-file expected",
                )
                self._synchronize(statement=False)

    def _parse_extern_alias(self) -> None:
        self._require(Feature.EXTERN_ALIAS)
        self._advance()
        self._advance()
        self._expect_identifier()
        self._expect(";")

    def _is_using_directive(self, in_namespace: bool) -> bool:
        """Tell a using directive from a using statement or declaration."""
        token = self._peek()
        if token.is_contextual("global") and self._peek(1).is_keyword("using"):
            return True
        if not token.is_keyword("using"):
            return False
        if in_namespace:
            return True
        following = self._peek(1)
        if following.is_punct("("):
            return False
        if following.is_keyword("static", "unsafe"):
            return True
        if following.kind is TokenKind.IDENTIFIER and self._peek(2).is_punct("="):
            return True
        end = self._scan_type(self._pos + 1)
        return end is not None and self._token(end).kind is not TokenKind.IDENTIFIER

    def _parse_using_directive(self) -> None:
        global_token = None
        if self._check_contextual("global"):
            global_token = self._advance()
            self._require(Feature.GLOBAL_USING, global_token)
        self._advance()

        if self._check_keyword("static"):
            self._require(Feature.USING_STATIC)
            self._advance()
            self._parse_type()
        else:
            self._match_keyword("unsafe")
            if self._peek().kind is TokenKind.IDENTIFIER and self._peek(1).is_punct("="):
                self._advance()
                self._advance()
                start = self._pos
                if self._parse_type() and self._has_type_only_syntax(start, self._pos, generics=False):
                    self._require(Feature.USING_TYPE_ALIAS, self._token(start))
            else:
                self._parse_type()
        self._expect(";")

    def _is_global_attribute(self) -> bool:
        target = self._peek(1)
        return (
            (target.is_contextual("assembly") or target.is_contextual("module"))
            and self._peek(2).is_punct(":")
        )

    @_nesting_guard
    def _parse_namespace(self) -> bool:
        """
        Parse a namespace declaration.

        Returns:
            True for a file-scoped namespace ('namespace N;')
        """
        token = self._advance()
        self._seen_declaration = True
        if self.script:
            self._error(
                ERR_NAMESPACE_IN_SCRIPT,
                "Cannot declare namespace in script code",
                token.span,
                self._pos - 1,
            )
        self._parse_qualified_name()
        if self._check(";"):
            self._require(Feature.FILE_SCOPED_NAMESPACE)
            self._advance()
            return True
        if not self._expect("{"):
            return False
        self._parse_namespace_body(in_namespace=True)
        self._expect("}")
        self._match(";")
        return False

    def _parse_qualified_name(self) -> None:
        self._expect_identifier()
        while self._check(".", "::"):
            self._advance()
            self._expect_identifier()

    def _parse_global_statement(self) -> None:
        token = self._peek()
        if not self.script:
            if not self._top_level_checked:
                self._top_level_checked = True
                self._require(Feature.TOP_LEVEL_STATEMENTS, token)
            if self._seen_declaration and not self._misplaced_statement_reported:
                self._misplaced_statement_reported = True
                self._error(
                    ERR_TOP_LEVEL_STATEMENT_AFTER_TYPES,
                    "Top-level statements must precede namespace and type declarations.",
                )
        self._parse_statement(top_level=True)

    # =========================================================================
    # Declarations
    # =========================================================================

    def _is_contextual_modifier(self, index: int) -> bool:
        """Decide whether the contextual word at `index` is used as a modifier."""
        following = self._token(index + 1)
        if following.kind is TokenKind.KEYWORD:
            return True
        if following.kind is TokenKind.IDENTIFIER:
            return not self._token(index + 2).is_punct("=", ";", ",", "(", "{", "=>", "[", ")")
        return False

    def _skip_modifiers(self, index: int) -> tuple[int, bool]:
        """
        Skip modifiers starting at `index`.

        Returns:
            (index after the modifiers, True if one only a type member can carry)
        """
        member_only = False
        while True:
            token = self._token(index)
            if token.kind is TokenKind.KEYWORD and token.text in MODIFIER_KEYWORDS:
                member_only = member_only or token.text in MEMBER_ONLY_MODIFIERS
            elif token.kind is TokenKind.IDENTIFIER and token.text in CONTEXTUAL_MODIFIERS \
                    and self._is_contextual_modifier(index):
                member_only = member_only or token.text in MEMBER_ONLY_MODIFIERS
            else:
                return index, member_only
            index += 1

    def _at_type_keyword(self, index: int) -> bool:
        token = self._token(index)
        if token.is_keyword("class", "struct", "interface", "enum"):
            return True
        if token.is_keyword("delegate"):
            return not self._token(index + 1).is_punct("(", "{", "*")
        if token.is_contextual("record"):
            following = self._token(index + 1)
            if following.is_keyword("class", "struct"):
                return True
            # 'record x = ...' declares a local of a type named record
            return following.kind is TokenKind.IDENTIFIER and not self._token(index + 2).is_punct("=", ",")
        return False

    def _is_type_declaration_start(self) -> bool:
        index = self._skip_attribute_sections(self._pos)
        if index is None:
            return False
        index, _ = self._skip_modifiers(index)
        return self._at_type_keyword(index)

    def _is_member_start(self) -> bool:
        """
        Return True if the cursor is at a declaration only a type body admits.

        Used at compilation-unit level, where methods and fields read as
        local functions and local declarations but properties, indexers,
        operators and events do not.
        """
        if self._check("["):
            return True
        index, member_only = self._skip_modifiers(self._pos)
        token = self._token(index)
        if token.is_keyword("event", "operator", "implicit", "explicit") or token.is_punct("~"):
            return True
        end = self._scan_type(index)
        if end is not None:
            after = self._token(end)
            if after.is_keyword("this", "operator"):
                return True
            if after.kind is TokenKind.IDENTIFIER:
                name_end = self._skip_declared_name(end)
                if self._token(name_end).is_punct("{", "=>"):
                    return True
        return member_only

    def _skip_declared_name(self, index: int) -> int:
        index += 1
        while True:
            if self._token(index).is_punct("<"):
                end = self._scan_type_arguments(index)
                if end is None or not self._token(end).is_punct("."):
                    return index
                index = end
            if not (self._token(index).is_punct(".") and self._token(index + 1).kind is TokenKind.IDENTIFIER):
                return index
            index += 2

    def _parse_modifiers(self) -> list[Token]:
        modifiers: list[Token] = []
        while True:
            token = self._peek()
            if token.kind is TokenKind.KEYWORD and token.text in MODIFIER_KEYWORDS:
                modifiers.append(self._advance())
            elif token.kind is TokenKind.IDENTIFIER and token.text in CONTEXTUAL_MODIFIERS \
                    and self._is_contextual_modifier(self._pos):
                modifiers.append(self._advance())
            else:
                break

        texts = [m.text for m in modifiers]
        if "private" in texts and "protected" in texts:
            self._require(Feature.PRIVATE_PROTECTED, modifiers[max(texts.index("private"), texts.index("protected"))])
        for modifier in modifiers:
            if modifier.text == "async":
                self._require(Feature.ASYNC, modifier)
            elif modifier.text == "required":
                self._require(Feature.REQUIRED_MEMBERS, modifier)
            elif modifier.text == "file":
                self._require(Feature.FILE_LOCAL_TYPES, modifier)
        return modifiers

    def _parse_attribute_section(self) -> Optional[Token]:
        """
        Parse '[' [target ':'] attribute {',' attribute} [','] ']'.

        Returns the target token, if the section has one.
        """
        self._advance()
        target = None
        token = self._peek()
        if token.kind in (TokenKind.IDENTIFIER, TokenKind.KEYWORD) and self._peek(1).is_punct(":"):
            target = self._advance()
            self._advance()
        while True:
            self._parse_attribute()
            if not self._match(",") or self._check("]"):
                break
        self._expect("]")
        return target

    def _parse_attribute(self) -> None:
        end = self._scan_qualified_name(self._pos)
        if end is None:
            self._expect_identifier()
            return
        for index in range(self._pos, end):
            if self._token(index).is_punct("<"):
                self._require(Feature.GENERIC_ATTRIBUTES, self._token(index))
                break
        self._scan_qualified_name(self._pos, report=True)
        self._pos = end
        if not self._match("("):
            return
        if self._match(")"):
            return
        while True:
            token = self._peek()
            if token.kind is TokenKind.IDENTIFIER and self._peek(1).is_punct("=", ":"):
                self._advance()
                self._advance()
            self._parse_expression()
            if not self._match(","):
                break
        self._expect(")")

    @_nesting_guard
    def _parse_member_declaration(self) -> None:
        """Parse one member of a type, namespace or script."""
        start = self._pos
        targets = []
        while self._check("["):
            targets.append(self._parse_attribute_section())
        modifiers = self._parse_modifiers()
        token = self._peek()

        if self._at_type_keyword(self._pos):
            self._parse_type_declaration(modifiers)
            return
        if token.is_contextual("extension") and self._peek(1).is_punct("(", "<"):
            self._parse_extension_block()
            return
        if token.is_keyword("event"):
            self._parse_event(modifiers)
            return
        if token.is_keyword("const"):
            self._advance()
            self._parse_type()
            self._parse_variable_declarators()
            self._expect(";")
            return
        if token.is_punct("~"):
            self._parse_finalizer()
            return
        if token.is_keyword("implicit", "explicit"):
            self._parse_conversion_operator()
            return
        if token.kind is TokenKind.IDENTIFIER and self._peek(1).is_punct("(") and self._type_kinds:
            self._parse_constructor(modifiers)
            return
        if not self._starts_type(token):
            if self._pos != start:
                self._invalid_member(token)
            return

        for previous, modifier in zip([None, *modifiers], modifiers):
            if modifier.text == "ref":
                self._require(Feature.REF_LOCALS_AND_RETURNS, modifier)
            elif modifier.text == "readonly" and previous is not None and previous.text == "ref":
                self._require(Feature.READONLY_REFERENCES, modifier)
        if not self._parse_type():
            return
        token = self._peek()
        if token.is_keyword("operator"):
            self._parse_operator()
            return
        if token.is_keyword("this"):
            self._parse_indexer(modifiers)
            return
        if token.kind is not TokenKind.IDENTIFIER:
            self._invalid_member(token)
            return
        if self._parse_declared_name():
            self._parse_indexer(modifiers)
            return

        token = self._peek()
        if token.is_punct("(", "<"):
            self._parse_method(modifiers)
        elif token.is_punct("{"):
            for target in targets:
                if target is not None and target.is_contextual("field"):
                    self._require(Feature.ATTRIBUTES_ON_BACKING_FIELDS, target)
            self._parse_property(modifiers)
        elif token.is_punct("=>"):
            self._require_readonly_member(modifiers)
            self._require(Feature.EXPRESSION_BODIED_MEMBERS)
            self._advance()
            self._parse_expression()
            self._expect(";")
        else:
            self._parse_field_rest(modifiers)

    def _parse_declared_name(self) -> bool:
        """
        Parse a member name, qualified for explicit interface implementations.

        Returns:
            True if the name ends in '.this', i.e. declares an indexer
        """
        self._advance()
        while True:
            if self._check("<"):
                end = self._scan_type_arguments(self._pos)
                if end is None or not self._token(end).is_punct("."):
                    return False
                self._scan_type_arguments(self._pos, report=True)
                self._pos = end
            if not self._check("."):
                return False
            following = self._peek(1)
            if following.is_keyword("this"):
                self._advance()
                return True
            if following.kind is not TokenKind.IDENTIFIER:
                return False
            self._advance()
            self._advance()

    def _in_interface(self) -> bool:
        return bool(self._type_kinds) and self._type_kinds[-1] == "interface"

    def _require_readonly_member(self, modifiers: list[Token]) -> None:
        for modifier in modifiers:
            if modifier.text == "readonly":
                self._require(Feature.READONLY_MEMBERS, modifier)

    @_nesting_guard
    def _parse_type_declaration(self, modifiers: list[Token]) -> None:
        by_text = {m.text: m for m in modifiers}
        if "partial" in by_text:
            self._require(Feature.PARTIAL_TYPES, by_text["partial"])

        token = self._peek()
        if token.is_keyword("enum"):
            self._parse_enum()
            return
        if token.is_keyword("delegate"):
            self._parse_delegate_declaration()
            return

        record = token.is_contextual("record")
        kind = "class"
        if record:
            self._require(Feature.RECORDS, token)
            self._advance()
            if self._check_keyword("struct"):
                self._require(Feature.RECORD_STRUCTS)
                kind = "struct"
                self._advance()
            else:
                self._match_keyword("class")
        else:
            kind = self._advance().text

        if kind == "class" and "static" in by_text:
            self._require(Feature.STATIC_CLASSES, by_text["static"])
        if kind == "struct":
            if "ref" in by_text:
                self._require(Feature.REF_STRUCTS, by_text["ref"])
            if "readonly" in by_text:
                self._require(Feature.READONLY_STRUCTS, by_text["readonly"])

        self._expect_identifier()
        if self._check("<"):
            self._parse_type_parameter_list()
        if self._check("("):
            if not record:
                self._require(Feature.PRIMARY_CONSTRUCTORS)
            self._parse_parameter_list()
        if self._match(":"):
            self._parse_base_list()
        self._parse_constraint_clauses()
        if self._match(";"):
            return
        if not self._expect("{"):
            return
        self._type_kinds.append(kind)
        self._parse_type_body()
        self._type_kinds.pop()
        self._expect("}")
        self._match(";")

    def _parse_type_body(self) -> None:
        while not self._check("}") and not self._at_end():
            start = self._pos
            self._parse_member_declaration()
            if self._pos == start:
                self._invalid_member(self._peek())
                self._synchronize(statement=False)

    def _parse_base_list(self) -> None:
        while True:
            self._parse_type()
            if self._match("("):
                self._parse_arguments(")")
            if not self._match(","):
                return

    def _parse_enum(self) -> None:
        self._advance()
        self._expect_identifier()
        if self._match(":"):
            self._parse_type()
        if not self._expect("{"):
            return
        while not self._check("}") and not self._at_end():
            while self._check("["):
                self._parse_attribute_section()
            if not self._expect_identifier():
                # Skip the malformed member up to the next separator
                while not self._check(",", "}") and not self._at_end():
                    self._advance()
            if self._match("="):
                self._parse_expression()
            if not self._match(","):
                break
        self._expect("}")
        self._match(";")

    def _parse_delegate_declaration(self) -> None:
        self._advance()
        self._parse_type()
        self._expect_identifier()
        if self._check("<"):
            self._parse_type_parameter_list()
        self._parse_parameter_list()
        self._parse_constraint_clauses()
        self._expect(";")

    def _parse_extension_block(self) -> None:
        # extension<T>(ReceiverType [name]) where ... { members }
        self._require(Feature.EXTENSIONS)
        self._advance()
        if self._check("<"):
            self._parse_type_parameter_list()
        if self._expect("("):
            while self._check("["):
                self._parse_attribute_section()
            self._parse_parameter_modifiers()
            self._parse_type()
            if self._peek().kind is TokenKind.IDENTIFIER:
                self._advance()
            self._expect(")")
        self._parse_constraint_clauses()
        if not self._expect("{"):
            return
        self._type_kinds.append("extension")
        self._parse_type_body()
        self._type_kinds.pop()
        self._expect("}")

    def _parse_type_parameter_list(self) -> None:
        self._require(Feature.GENERICS)
        self._advance()
        while True:
            while self._check("["):
                self._parse_attribute_section()
            if self._check_keyword("in", "out"):
                self._require(Feature.GENERIC_VARIANCE)
                self._advance()
            self._expect_identifier()
            if not self._match(","):
                break
        self._expect(">")

    def _parse_constraint_clauses(self) -> None:
        while (
            self._check_contextual("where")
            and self._peek(1).kind is TokenKind.IDENTIFIER
            and self._peek(2).is_punct(":")
        ):
            self._advance()
            self._advance()
            self._advance()
            while True:
                token = self._peek()
                if token.is_keyword("class", "struct"):
                    self._advance()
                    if token.text == "class":
                        self._match("?")
                elif token.is_keyword("new"):
                    self._advance()
                    self._expect("(")
                    self._expect(")")
                elif token.is_keyword("default"):
                    self._advance()
                elif token.is_contextual("allows"):
                    self._require(Feature.ALLOWS_REF_STRUCT)
                    self._advance()
                    self._expect_keyword("ref")
                    self._expect_keyword("struct")
                else:
                    self._parse_type()
                if not self._match(","):
                    break

    def _parse_parameter_modifiers(self) -> list[Token]:
        modifiers: list[Token] = []
        while True:
            token = self._peek()
            if token.is_keyword("ref", "out", "in", "params", "this", "readonly"):
                if token.text == "this":
                    self._require(Feature.EXTENSION_METHODS, token)
                elif token.text == "in":
                    self._require(Feature.READONLY_REFERENCES, token)
                elif token.text == "readonly" and modifiers and modifiers[-1].is_keyword("ref"):
                    self._require(Feature.REF_READONLY_PARAMETERS, token)
                modifiers.append(self._advance())
            elif token.is_contextual("scoped") and (
                self._peek(1).kind is TokenKind.KEYWORD
                or (self._peek(1).kind is TokenKind.IDENTIFIER
                    and not self._peek(2).is_punct(",", ")", "=", "=>"))
            ):
                modifiers.append(self._advance())
            else:
                return modifiers

    def _parse_parameter_list(self, open_text: str = "(", close_text: str = ")") -> None:
        if not self._expect(open_text):
            return
        if self._match(close_text):
            return
        while True:
            while self._check("["):
                self._parse_attribute_section()
            self._parse_parameter_modifiers()
            if self._parse_type():
                self._expect_identifier()
            if self._check("="):
                self._require(Feature.OPTIONAL_PARAMETERS)
                self._advance()
                self._parse_expression()
            if not self._match(","):
                break
        self._expect(close_text)

    def _parse_body(self, expression_feature: Optional[Feature]) -> None:
        """Parse a block body, an expression body ('=> expr;') or ';'."""
        token = self._peek()
        if token.is_punct("{"):
            if self._in_interface():
                self._require(Feature.DEFAULT_INTERFACE_IMPLEMENTATION, token)
            self._parse_block()
        elif token.is_punct("=>"):
            if expression_feature is not None:
                self._require(expression_feature, token)
            self._advance()
            self._parse_expression()
            self._expect(";")
        elif token.is_punct(";"):
            self._advance()
        else:
            self._expect("{")

    def _parse_method(self, modifiers: list[Token]) -> None:
        for modifier in modifiers:
            if modifier.text == "partial":
                self._require(Feature.PARTIAL_METHODS, modifier)
        self._require_readonly_member(modifiers)
        if self._check("<"):
            self._parse_type_parameter_list()
        self._parse_parameter_list()
        self._parse_constraint_clauses()
        self._parse_body(Feature.EXPRESSION_BODIED_MEMBERS)

    def _parse_property(self, modifiers: list[Token]) -> None:
        self._require_readonly_member(modifiers)
        self._parse_accessor_list(modifiers)
        if self._check("="):
            self._require(Feature.AUTO_PROPERTY_INITIALIZER)
            self._advance()
            self._parse_variable_initializer()
            self._expect(";")

    def _parse_accessor_list(self, modifiers: list[Token], event: bool = False) -> None:
        self._advance()
        names = ("add", "remove") if event else ("get", "set", "init")
        bodiless = self._in_interface() or any(m.text in ("abstract", "extern") for m in modifiers)

        while not self._check("}") and not self._at_end():
            while self._check("["):
                self._parse_attribute_section()
            while self._check_keyword("private", "protected", "internal", "readonly"):
                modifier = self._advance()
                if modifier.text == "readonly":
                    self._require(Feature.READONLY_MEMBERS, modifier)
                else:
                    self._require(Feature.PROPERTY_ACCESSOR_MODIFIERS, modifier)

            token = self._peek()
            if token.kind is not TokenKind.IDENTIFIER or token.text not in names:
                if event:
                    self._error(ERR_ADD_OR_REMOVE_EXPECTED, "An add or remove accessor expected")
                else:
                    self._error(ERR_GET_OR_SET_EXPECTED, "A get or set accessor expected")
                self._skip_token(statement=False)
                while not self._check("}") and not self._at_end():
                    current = self._peek()
                    if current.kind is TokenKind.IDENTIFIER and current.text in names:
                        break
                    self._skip_token(statement=False)
                continue

            if token.text == "init":
                self._require(Feature.INIT_ONLY_SETTERS, token)
            self._advance()
            body = self._peek()
            if body.is_punct(";"):
                if not event and not bodiless:
                    self._require(Feature.AUTO_PROPERTIES, token)
                self._advance()
            elif body.is_punct("{"):
                self._parse_block()
            elif body.is_punct("=>"):
                self._require(Feature.EXPRESSION_BODIED_ACCESSORS, body)
                self._advance()
                self._parse_expression()
                self._expect(";")
            else:
                self._expect("{")
        self._expect("}")

    def _parse_indexer(self, modifiers: list[Token]) -> None:
        self._require_readonly_member(modifiers)
        self._advance()
        self._parse_parameter_list("[", "]")
        if self._check("=>"):
            self._require(Feature.EXPRESSION_BODIED_MEMBERS)
            self._advance()
            self._parse_expression()
            self._expect(";")
        elif self._check("{"):
            self._parse_accessor_list(modifiers)
        else:
            self._expect("{")

    def _parse_event(self, modifiers: list[Token]) -> None:
        for modifier in modifiers:
            if modifier.text == "partial":
                self._require(Feature.PARTIAL_EVENTS_AND_CONSTRUCTORS, modifier)
        self._advance()
        self._parse_type()
        if self._peek().kind is TokenKind.IDENTIFIER:
            self._parse_declared_name()
        else:
            self._expect_identifier()
        if self._check("{"):
            self._parse_accessor_list(modifiers, event=True)
        else:
            self._parse_field_rest([])

    def _parse_field_rest(self, modifiers: list[Token]) -> None:
        """Parse the rest of a field declaration after its first name."""
        for modifier in modifiers:
            if modifier.text == "fixed":
                self._require(Feature.FIXED_BUFFERS, modifier)
        while True:
            if self._match("["):
                self._parse_expression()
                self._expect("]")
            if self._match("="):
                self._parse_variable_initializer()
            if not self._match(","):
                break
            self._expect_identifier()
        self._expect(";")

    def _parse_operator(self) -> None:
        self._advance()
        if self._check_keyword("checked"):
            self._require(Feature.CHECKED_USER_DEFINED_OPERATORS)
            self._advance()
        token = self._peek()
        op, count = self._operator()
        if token.is_keyword("true", "false"):
            self._advance()
        elif op in OVERLOADABLE_OPERATORS:
            if op == ">>>":
                self._require(Feature.UNSIGNED_RIGHT_SHIFT, token)
            self._pos += count
        elif op in COMPOUND_ASSIGNMENT_OPERATORS:
            self._require(Feature.USER_DEFINED_COMPOUND_ASSIGNMENT, token)
            self._pos += count
        else:
            self._error(ERR_OVERLOADABLE_OPERATOR_EXPECTED, "Overloadable operator expected")
        self._parse_parameter_list()
        self._parse_body(Feature.EXPRESSION_BODIED_MEMBERS)

    def _parse_conversion_operator(self) -> None:
        self._advance()
        self._expect_keyword("operator")
        if self._check_keyword("checked"):
            self._require(Feature.CHECKED_USER_DEFINED_OPERATORS)
            self._advance()
        self._parse_type()
        self._parse_parameter_list()
        self._parse_body(Feature.EXPRESSION_BODIED_MEMBERS)

    def _parse_constructor(self, modifiers: list[Token]) -> None:
        for modifier in modifiers:
            if modifier.text == "partial":
                self._require(Feature.PARTIAL_EVENTS_AND_CONSTRUCTORS, modifier)
        self._advance()
        self._parse_parameter_list()
        if self._match(":"):
            if self._check_keyword("base", "this"):
                self._advance()
            else:
                self._error(ERR_THIS_OR_BASE_EXPECTED, "Keyword 'this' or 'base' expected")
            if self._expect("("):
                self._parse_arguments(")")
        self._parse_body(Feature.EXPRESSION_BODIED_ACCESSORS)

    def _parse_finalizer(self) -> None:
        self._advance()
        self._expect_identifier()
        self._expect("(")
        self._expect(")")
        self._parse_body(Feature.EXPRESSION_BODIED_ACCESSORS)

    # =========================================================================
    # Statements
    # =========================================================================

    def _parse_block(self) -> None:
        if not self._expect("{"):
            return
        self._parse_statement_list()
        self._expect("}")

    def _parse_statement_list(self, switch_section: bool = False) -> None:
        while not self._check("}") and not self._at_end():
            if switch_section and self._at_switch_label():
                return
            start = self._pos
            self._parse_statement()
            if self._pos == start:
                token = self._peek()
                self._error(ERR_INVALID_EXPRESSION_TERM, f"Invalid expression term '{token.text}'")
                self._synchronize(statement=True)

    @_nesting_guard
    def _parse_statement(self, top_level: bool = False) -> None:
        """
        Parse one statement.

        Args:
            top_level: True for a top-level statement, where script code may
                end with an expression that has no ';'
        """
        token = self._peek()

        if token.is_punct("{"):
            self._parse_block()
            return
        if token.is_punct(";"):
            self._advance()
            return
        if token.kind is TokenKind.KEYWORD:
            handler = self._statement_parsers.get(token.text)
            if handler is not None:
                handler()
                return
            if token.text in ("checked", "unchecked", "unsafe") and self._peek(1).is_punct("{"):
                self._advance()
                self._parse_block()
                return
        if token.is_punct("["):
            index = self._skip_attribute_sections(self._pos)
            if index is not None and self._local_declaration_kind(index) == "function":
                while self._check("["):
                    self._parse_attribute_section()
                self._parse_local_function()
                return
        if token.is_contextual("yield") and self._peek(1).is_keyword("return", "break"):
            self._parse_yield()
            return
        if token.is_contextual("await") and self._peek(1).is_keyword("foreach", "using"):
            self._require(Feature.ASYNC_STREAMS, token)
            self._advance()
            if self._check_keyword("foreach"):
                self._parse_foreach()
            else:
                self._parse_using_statement()
            return
        if token.kind is TokenKind.IDENTIFIER and self._peek(1).is_punct(":"):
            self._advance()
            self._advance()
            self._parse_statement()
            return

        declaration = self._local_declaration_kind()
        if declaration == "function":
            self._parse_local_function()
        elif declaration == "local":
            self._parse_local_declaration()
        else:
            self._parse_expression_statement(top_level)

    def _parse_embedded_statement(self) -> None:
        """Parse the body of if/while/for/...; declarations are not allowed there."""
        token = self._peek()
        if self._local_declaration_kind() is not None or (
            token.kind is TokenKind.IDENTIFIER and self._peek(1).is_punct(":")
        ):
            self._error(ERR_EMBEDDED_STATEMENT, "Embedded statement cannot be a declaration or labeled statement")
        self._parse_statement()

    def _local_declaration_kind(self, index: Optional[int] = None) -> Optional[str]:
        """
        Look ahead for a local declaration.

        Returns:
            "local" for a variable declaration, "function" for a local
            function, or None for anything else
        """
        if index is None:
            index = self._pos
        start = index
        while True:
            token = self._token(index)
            if token.kind is TokenKind.KEYWORD and token.text in LOCAL_MODIFIERS:
                index += 1
            elif token.kind is TokenKind.IDENTIFIER and token.text in ("async", "scoped") \
                    and self._token(index + 1).kind in (TokenKind.IDENTIFIER, TokenKind.KEYWORD):
                index += 1
            else:
                break

        first = self._token(index)
        if first.is_contextual("await"):
            return None
        end = self._scan_type(index)
        if end is None or self._token(end).kind is not TokenKind.IDENTIFIER:
            return None
        after = self._token(end + 1)
        if after.is_punct("("):
            return "function"
        if after.is_punct("<"):
            close = self._scan_type_arguments(end + 1)
            if close is not None and self._token(close).is_punct("("):
                return "function"
        if after.is_punct("=", ";", ",", "["):
            return "local"
        if after.is_punct(":") and self._token(end - 1).is_punct("?"):
            # a ? b : c
            return None
        if index > start or self._has_type_only_syntax(index, end):
            return "local"
        return None

    def _parse_local_modifiers(self) -> list[Token]:
        modifiers: list[Token] = []
        while True:
            token = self._peek()
            if token.kind is TokenKind.KEYWORD and token.text in LOCAL_MODIFIERS:
                if token.text == "ref":
                    self._require(Feature.REF_LOCALS_AND_RETURNS, token)
                elif token.text == "readonly" and modifiers and modifiers[-1].text == "ref":
                    self._require(Feature.READONLY_REFERENCES, token)
            elif not (
                token.kind is TokenKind.IDENTIFIER and token.text in ("async", "scoped")
                and self._peek(1).kind in (TokenKind.IDENTIFIER, TokenKind.KEYWORD)
            ):
                return modifiers
            elif token.text == "async":
                self._require(Feature.ASYNC, token)
            modifiers.append(self._advance())

    def _parse_local_declaration(self, terminated: bool = True) -> None:
        self._parse_local_modifiers()
        self._parse_type()
        self._parse_variable_declarators()
        if terminated:
            self._expect(";")

    def _parse_variable_declarators(self) -> None:
        while True:
            self._expect_identifier()
            if self._match("="):
                if self._check_keyword("ref"):
                    self._require(Feature.REF_LOCALS_AND_RETURNS)
                    self._advance()
                self._parse_variable_initializer()
            if not self._match(","):
                return

    def _parse_variable_initializer(self) -> None:
        if self._check("{"):
            self._parse_initializer()
        else:
            self._parse_expression()

    def _parse_local_function(self) -> None:
        for modifier in self._parse_local_modifiers():
            if modifier.text == "static":
                self._require(Feature.STATIC_LOCAL_FUNCTIONS, modifier)
        self._parse_type()
        name = self._peek()
        self._expect_identifier()
        self._require(Feature.LOCAL_FUNCTIONS, name)
        if self._check("<"):
            self._parse_type_parameter_list()
        self._parse_parameter_list()
        self._parse_constraint_clauses()
        self._parse_body(None)

    def _parse_expression_statement(self, top_level: bool) -> None:
        self._parse_expression()
        if self._match(";"):
            return
        # Script code may end with a bare expression whose value is the result
        if top_level and self.script and self._at_end():
            return
        self._expect(";")

    def _parse_condition(self) -> None:
        self._expect("(")
        self._parse_expression()
        self._expect(")")

    def _parse_expression_list(self) -> None:
        while True:
            self._parse_expression()
            if not self._match(","):
                return

    def _parse_if(self) -> None:
        # else-if chains are parsed in a loop so long chains do not nest
        while True:
            self._advance()
            self._parse_condition()
            self._parse_embedded_statement()
            if not self._match_keyword("else"):
                return
            if not self._check_keyword("if"):
                self._parse_embedded_statement()
                return

    def _parse_while(self) -> None:
        self._advance()
        self._parse_condition()
        self._parse_embedded_statement()

    def _parse_do(self) -> None:
        self._advance()
        self._parse_embedded_statement()
        self._expect_keyword("while")
        self._parse_condition()
        self._expect(";")

    def _parse_for(self) -> None:
        self._advance()
        self._expect("(")
        if not self._check(";"):
            if self._local_declaration_kind() == "local":
                self._parse_local_declaration(terminated=False)
            else:
                self._parse_expression_list()
        self._expect(";")
        if not self._check(";"):
            self._parse_expression()
        self._expect(";")
        if not self._check(")"):
            self._parse_expression_list()
        self._expect(")")
        self._parse_embedded_statement()

    def _parse_foreach(self) -> None:
        self._advance()
        self._expect("(")
        if self._match_keyword("ref"):
            self._match_keyword("readonly")
        end = self._scan_type(self._pos)
        if end is not None and self._token(end).kind is TokenKind.IDENTIFIER \
                and self._token(end + 1).is_keyword("in"):
            self._parse_type()
            self._advance()
        else:
            # Deconstruction: var (a, b) or (var a, var b)
            self._parse_expression()
        self._expect_keyword("in")
        self._parse_expression()
        self._expect(")")
        self._parse_embedded_statement()

    def _at_switch_label(self) -> bool:
        token = self._peek()
        return token.is_keyword("case") or (token.is_keyword("default") and self._peek(1).is_punct(":"))

    def _parse_switch_statement(self) -> None:
        self._advance()
        if self._check("("):
            # Also covers the tuple form: switch (a, b)
            self._parse_expression()
        else:
            self._expect("(")
            self._parse_expression()
            self._expect(")")
        if not self._expect("{"):
            return
        while not self._check("}") and not self._at_end():
            start = self._pos
            while self._at_switch_label():
                self._parse_switch_label()
            self._parse_statement_list(switch_section=True)
            if self._pos == start:
                token = self._peek()
                self._error(ERR_INVALID_EXPRESSION_TERM, f"Invalid expression term '{token.text}'")
                self._synchronize(statement=True)
        self._expect("}")

    def _parse_switch_label(self) -> None:
        token = self._advance()
        if token.is_keyword("default"):
            self._advance()
            return
        pattern_start = self._peek()
        if self._parse_pattern() == TYPE_PATTERN:
            self._require(Feature.PATTERN_MATCHING, pattern_start)
        if self._check_contextual("when"):
            self._require(Feature.PATTERN_MATCHING)
            self._advance()
            self._parse_expression()
        self._expect(":")

    def _parse_jump(self) -> None:
        self._advance()
        self._expect(";")

    def _parse_goto(self) -> None:
        self._advance()
        if self._match_keyword("case"):
            self._parse_expression()
        elif not self._match_keyword("default"):
            self._expect_identifier()
        self._expect(";")

    def _parse_return(self) -> None:
        # return [expr];  throw [expr];
        self._advance()
        if not self._check(";"):
            self._parse_expression()
        self._expect(";")

    def _parse_try(self) -> None:
        self._advance()
        self._parse_block()
        handled = False
        while self._match_keyword("catch"):
            handled = True
            if self._match("("):
                self._parse_type()
                if self._peek().kind is TokenKind.IDENTIFIER:
                    self._advance()
                self._expect(")")
            if self._check_contextual("when"):
                self._require(Feature.EXCEPTION_FILTER)
                self._advance()
                self._parse_condition()
            self._parse_block()
        if self._match_keyword("finally"):
            handled = True
            self._parse_block()
        if not handled:
            self._error(ERR_EXPECTED_CATCH_OR_FINALLY, "Expected catch or finally")

    def _parse_lock(self) -> None:
        self._advance()
        self._parse_condition()
        self._parse_embedded_statement()

    def _parse_using_statement(self) -> None:
        using_token = self._advance()
        if self._match("("):
            if self._local_declaration_kind() == "local":
                self._parse_local_declaration(terminated=False)
            else:
                self._parse_expression()
            self._expect(")")
            self._parse_embedded_statement()
            return
        self._require(Feature.USING_DECLARATIONS, using_token)
        self._parse_local_declaration()

    def _parse_fixed(self) -> None:
        self._advance()
        self._expect("(")
        self._parse_local_declaration(terminated=False)
        self._expect(")")
        self._parse_embedded_statement()

    def _parse_yield(self) -> None:
        self._require(Feature.ITERATORS)
        self._advance()
        if self._match_keyword("return"):
            self._parse_expression()
        else:
            self._advance()
        self._expect(";")

    # =========================================================================
    # Expressions
    # =========================================================================

    @_nesting_guard
    def _parse_expression(self) -> bool:
        """
        Parse an expression at assignment level.

        Returns:
            True if the expression is a null-conditional access such as
            a?.b, which can only be assigned to with null-conditional
            assignment
        """
        while True:
            if self._is_lambda_start():
                self._parse_lambda()
                return False
            conditional = self._parse_conditional()
            op, count = self._operator()
            if op not in ASSIGNMENT_OPERATORS:
                return conditional
            token = self._peek()
            if op == "??=":
                self._require(Feature.NULL_COALESCING_ASSIGNMENT, token)
            elif op == ">>>=":
                self._require(Feature.UNSIGNED_RIGHT_SHIFT, token)
            if conditional:
                self._require(Feature.NULL_CONDITIONAL_ASSIGNMENT, token)
            self._pos += count
            if op == "=" and self._check_keyword("ref"):
                self._require(Feature.REF_REASSIGNMENT)
                self._advance()

    def _parse_conditional(self) -> bool:
        conditional = self._parse_binary(COALESCE_PRECEDENCE)
        if not self._check("?"):
            return conditional
        self._advance()
        if self._check_keyword("ref"):
            self._require(Feature.REF_CONDITIONAL)
        self._parse_expression()
        self._expect(":")
        self._parse_expression()
        return False

    def _parse_binary(self, min_precedence: int) -> bool:
        """
        Parse binary operators by precedence climbing.

        Right operands are parsed one level tighter than their operator, so
        each loop iteration handles one operator of the current level.
        """
        conditional = self._parse_unary()
        while True:
            op, count = self._operator()
            precedence = BINARY_PRECEDENCE.get(op)
            if precedence is None or precedence < min_precedence:
                return conditional
            conditional = False
            token = self._peek()
            self._pos += count

            if op == "is":
                pattern_start = self._peek()
                if self._parse_pattern() == CONSTANT_PATTERN:
                    self._require(Feature.PATTERN_MATCHING, pattern_start)
            elif op == "as":
                self._parse_type(in_expression=True)
            elif op == "switch":
                self._parse_switch_expression(token)
            elif op == "with":
                self._require(Feature.WITH_EXPRESSIONS, token)
                self._parse_initializer()
            elif op == "..":
                self._require(Feature.INDEX_AND_RANGE, token)
                if self._starts_expression(self._peek()):
                    self._parse_binary(precedence + 1)
            else:
                if op == ">>>":
                    self._require(Feature.UNSIGNED_RIGHT_SHIFT, token)
                self._parse_binary(precedence + 1)

    @_nesting_guard
    def _parse_unary(self) -> bool:
        token = self._peek()
        if token.kind in (TokenKind.PUNCTUATION, TokenKind.OPERATOR):
            if token.text in UNARY_OPERATORS:
                if token.text == "^":
                    self._require(Feature.INDEX_AND_RANGE, token)
                self._advance()
                self._parse_unary()
                return False
            if token.text == "..":
                self._require(Feature.INDEX_AND_RANGE, token)
                self._advance()
                if self._starts_expression(self._peek()):
                    self._parse_unary()
                return False
            if token.text == "(" and self._is_cast():
                self._advance()
                self._parse_type()
                self._expect(")")
                self._parse_unary()
                return False
        elif token.is_keyword("ref"):
            self._require(Feature.REF_LOCALS_AND_RETURNS, token)
            self._advance()
            self._parse_unary()
            return False
        elif token.is_keyword("throw"):
            self._require(Feature.THROW_EXPRESSION, token)
            self._advance()
            self._parse_binary(COALESCE_PRECEDENCE)
            return False
        elif token.is_contextual("await") and self._is_await_operand(self._peek(1)):
            self._advance()
            self._parse_unary()
            return False
        return self._parse_postfix()

    def _is_await_operand(self, token: Token) -> bool:
        if token.kind in LITERAL_KINDS or token.kind in (
            TokenKind.IDENTIFIER, TokenKind.INTERPOLATED_STRING_START,
        ):
            return True
        if token.kind is TokenKind.KEYWORD:
            return token.text in EXPRESSION_KEYWORDS and token.text not in ("ref", "throw")
        return token.is_punct("(")

    def _is_cast(self) -> bool:
        """Decide whether the '(' at the cursor starts a cast."""
        start = self._pos + 1
        end = self._scan_type(start)
        if end is None or not self._token(end).is_punct(")"):
            return False
        following = self._token(end + 1)
        if self._has_type_only_syntax(start, end):
            return self._starts_expression(following)
        if following.kind is TokenKind.IDENTIFIER:
            return following.text not in CAST_BLOCKERS
        if following.kind in LITERAL_KINDS or following.kind is TokenKind.INTERPOLATED_STRING_START:
            return True
        if following.kind is TokenKind.KEYWORD:
            return (
                following.text in PREDEFINED_TYPES
                or (following.text in EXPRESSION_KEYWORDS and following.text not in ("ref", "throw"))
            )
        return following.is_punct("(", "!", "~")

    def _parse_postfix(self) -> bool:
        conditional = self._parse_primary()
        while True:
            token = self._peek()
            if token.is_punct(".", "->"):
                self._advance()
                self._parse_name_part()
            elif token.is_punct("?."):
                self._require(Feature.NULL_PROPAGATION, token)
                self._advance()
                self._parse_name_part()
                conditional = True
            elif token.is_punct("?") and self._peek(1).is_punct("[") and self._adjacent(token, self._peek(1)):
                self._require(Feature.NULL_PROPAGATION, token)
                self._advance()
                self._advance()
                self._parse_arguments("]")
                conditional = True
            elif token.is_punct("("):
                self._advance()
                self._parse_arguments(")")
            elif token.is_punct("["):
                self._advance()
                self._parse_arguments("]")
            elif token.is_punct("++", "--"):
                self._advance()
            elif token.is_punct("!") and self._adjacent(self._token(self._pos - 1), token):
                # Null-forgiving x!
                self._require(Feature.NULLABLE_REFERENCE_TYPES, token)
                self._advance()
            else:
                return conditional

    def _parse_name_part(self) -> None:
        if self._peek().kind is TokenKind.IDENTIFIER:
            self._advance()
            self._parse_generic_suffix()
        else:
            self._expect_identifier()

    def _parse_primary(self) -> bool:
        token = self._peek()
        kind = token.kind

        if kind in LITERAL_KINDS:
            self._require_token_features(token)
            self._advance()
            return False
        if kind is TokenKind.INTERPOLATED_STRING_START:
            self._parse_interpolated_string()
            return False
        if kind is TokenKind.IDENTIFIER:
            if token.is_contextual("from") and self._is_query_start():
                self._parse_query()
                return False
            if token.is_contextual("var") and self._peek(1).is_punct("("):
                close = self._matching_close(self._pos + 1, "(", ")")
                following = self._token(close + 1) if close is not None else None
                if following is not None and (following.is_punct("=") or following.is_keyword("in")):
                    # var (a, b) = ...
                    self._require(Feature.DECONSTRUCTION, token)
            self._advance()
            if self._check("::"):
                self._require(Feature.NAMESPACE_ALIAS_QUALIFIER)
                self._advance()
                self._parse_name_part()
                return False
            self._parse_generic_suffix()
            return False
        if kind is TokenKind.KEYWORD:
            text = token.text
            if text in ("true", "false", "null", "this", "base") or text in PREDEFINED_TYPES:
                self._advance()
                return False
            if text == "new":
                self._parse_new()
                return False
            if text in ("typeof", "sizeof"):
                self._advance()
                self._expect("(")
                self._parse_type()
                self._expect(")")
                return False
            if text == "default":
                self._advance()
                if self._match("("):
                    self._parse_type()
                    self._expect(")")
                else:
                    self._require(Feature.DEFAULT_LITERAL, token)
                return False
            if text in ("checked", "unchecked"):
                self._advance()
                self._parse_condition()
                return False
            if text == "delegate":
                self._require(Feature.ANONYMOUS_METHODS, token)
                self._advance()
                if self._check("("):
                    self._parse_parameter_list()
                self._parse_block()
                return False
            if text == "stackalloc":
                self._parse_stackalloc()
                return False
        if token.is_punct("("):
            self._parse_parenthesized()
            return False
        if token.is_punct("["):
            self._parse_collection_expression()
            return False

        self._error(ERR_INVALID_EXPRESSION_TERM, f"Invalid expression term '{token.text}'")
        return False

    def _parse_parenthesized(self) -> None:
        """Parse a parenthesized expression or a tuple literal."""
        open_token = self._advance()
        elements = 0
        declarations = 0
        named = False
        while True:
            token = self._peek()
            if token.kind is TokenKind.IDENTIFIER and self._peek(1).is_punct(":"):
                named = True
                self._advance()
                self._advance()
            end = self._scan_type(self._pos)
            if end is not None and self._token(end).kind is TokenKind.IDENTIFIER \
                    and self._token(end + 1).is_punct(",", ")"):
                # Declaration inside a deconstruction: (int a, var b) = ...
                self._parse_type()
                self._advance()
                declarations += 1
            else:
                self._parse_expression()
            elements += 1
            if not self._match(","):
                break
        self._expect(")")
        if elements > 1 or named:
            self._require(Feature.TUPLES, open_token)
        if declarations:
            self._require(Feature.DECONSTRUCTION, open_token)
            if declarations < elements:
                self._require(Feature.MIXED_DECONSTRUCTION, open_token)

    def _parse_collection_expression(self) -> None:
        self._require(Feature.COLLECTION_EXPRESSIONS)
        self._advance()
        while not self._check("]") and not self._at_end():
            if self._match(".."):
                self._parse_expression()
            else:
                self._parse_expression()
                if self._check(":"):
                    self._require(Feature.DICTIONARY_EXPRESSIONS)
                    self._advance()
                    self._parse_expression()
            if not self._match(","):
                break
        self._expect("]")

    def _parse_arguments(self, close_text: str) -> None:
        """Parse an argument list after its opening bracket, through `close_text`."""
        if self._match(close_text):
            return
        while True:
            token = self._peek()
            if token.kind is TokenKind.IDENTIFIER and self._peek(1).is_punct(":"):
                self._require(Feature.NAMED_ARGUMENTS, token)
                self._advance()
                self._advance()
            if self._check_keyword("ref", "out", "in"):
                modifier = self._advance()
                end = self._scan_type(self._pos)
                if end is not None and self._token(end).kind is TokenKind.IDENTIFIER \
                        and self._token(end + 1).is_punct(",", close_text):
                    # out var x / out int x
                    self._require(Feature.OUT_VARIABLE_DECLARATION, modifier)
                    self._parse_type()
                    self._advance()
                    if not self._match(","):
                        break
                    continue
            self._parse_expression()
            if not self._match(","):
                break
        self._expect(close_text)

    def _parse_new(self) -> None:
        new_token = self._advance()

        if self._check("("):
            self._require(Feature.TARGET_TYPED_NEW, new_token)
            self._advance()
            self._parse_arguments(")")
            if self._check("{"):
                self._parse_object_initializer()
            return
        if self._check("["):
            self._require(Feature.IMPLICITLY_TYPED_ARRAYS, new_token)
            self._advance()
            while self._match(","):
                pass
            self._expect("]")
            if self._check("{"):
                self._parse_initializer()
            else:
                self._expect("{")
            return
        if self._check("{"):
            self._require(Feature.ANONYMOUS_TYPES, new_token)
            self._parse_initializer()
            return

        if not self._parse_type():
            return
        array_type = self._token(self._pos - 1).is_punct("]")
        if self._match("["):
            self._parse_arguments("]")
            while self._match("["):
                while self._match(","):
                    pass
                self._expect("]")
            if self._check("{"):
                self._parse_initializer()
        elif self._match("("):
            self._parse_arguments(")")
            if self._check("{"):
                self._parse_object_initializer()
        elif self._check("{"):
            if array_type:
                self._parse_initializer()
            else:
                self._parse_object_initializer()
        elif not array_type:
            self._error(
                ERR_BAD_NEW_EXPRESSION,
                "A new expression requires an argument list or (), [], or {} after type",
            )

    def _parse_object_initializer(self) -> None:
        first = self._peek(1)
        if (first.kind is TokenKind.IDENTIFIER and self._peek(2).is_punct("=")) or first.is_punct("["):
            self._require(Feature.OBJECT_INITIALIZERS)
        else:
            self._require(Feature.COLLECTION_INITIALIZERS)
        self._parse_initializer()

    @_nesting_guard
    def _parse_initializer(self) -> None:
        """Parse a brace-enclosed object, collection, array or anonymous-type initializer."""
        if not self._expect("{"):
            return
        while not self._check("}") and not self._at_end():
            token = self._peek()
            if token.is_punct("{"):
                self._parse_initializer()
            elif token.kind is TokenKind.IDENTIFIER and self._peek(1).is_punct("="):
                self._advance()
                self._advance()
                self._parse_variable_initializer()
            elif token.is_punct("[") and self._is_indexer_initializer():
                self._require(Feature.DICTIONARY_INITIALIZER)
                self._advance()
                self._parse_arguments("]")
                self._expect("=")
                self._parse_variable_initializer()
            else:
                self._parse_expression()
            if not self._match(","):
                break
        self._expect("}")

    def _is_indexer_initializer(self) -> bool:
        close = self._matching_close(self._pos, "[", "]")
        return close is not None and self._token(close + 1).is_punct("=")

    def _parse_stackalloc(self) -> None:
        self._advance()
        if self._match("["):
            self._expect("]")
            self._require(Feature.STACKALLOC_INITIALIZER)
            self._parse_initializer()
            return
        if not self._parse_type():
            return
        if self._match("["):
            if not self._check("]"):
                self._parse_expression()
            self._expect("]")
        if self._check("{"):
            self._require(Feature.STACKALLOC_INITIALIZER)
            self._parse_initializer()

    def _parse_interpolated_string(self) -> None:
        start = self._advance()
        self._require_token_features(start)
        while True:
            token = self._peek()
            if token.kind is TokenKind.INTERPOLATED_STRING_TEXT:
                self._advance()
            elif token.kind is TokenKind.INTERPOLATION_START:
                self._advance()
                self._parse_expression()
                if self._match(","):
                    self._parse_expression()
                if self._peek().kind is TokenKind.INTERPOLATION_FORMAT:
                    self._advance()
                if self._peek().kind is not TokenKind.INTERPOLATION_END:
                    self._error(ERR_CLOSE_BRACE_EXPECTED, "} expected", self._missing_span())
                    self._skip_to_interpolation_end()
                if self._peek().kind is TokenKind.INTERPOLATION_END:
                    self._advance()
            elif token.kind is TokenKind.INTERPOLATED_STRING_END:
                self._advance()
                return
            else:
                return

    def _skip_to_interpolation_end(self) -> None:
        depth = 0
        while not self._at_end():
            kind = self._peek().kind
            if kind is TokenKind.INTERPOLATION_START:
                depth += 1
            elif kind is TokenKind.INTERPOLATION_END:
                if depth == 0:
                    return
                depth -= 1
            self._advance()

    # -------------------------------------------------------------------------
    # Lambdas
    # -------------------------------------------------------------------------

    def _is_lambda_start(self) -> bool:
        index = self._skip_attribute_sections(self._pos)
        if index is None:
            return False
        while True:
            token = self._token(index)
            following = self._token(index + 1)
            if token.is_keyword("static"):
                index += 1
            elif token.is_contextual("async") and (
                following.kind is TokenKind.IDENTIFIER
                or following.is_punct("(")
                or following.is_keyword("static")
            ) and not following.is_punct("=>"):
                index += 1
            else:
                break

        token = self._token(index)
        if token.kind is TokenKind.IDENTIFIER and self._token(index + 1).is_punct("=>"):
            return True
        if token.is_punct("("):
            close = self._matching_close(index, "(", ")")
            return close is not None and self._token(close + 1).is_punct("=>")
        end = self._scan_type(index)
        if end is not None and self._token(end).is_punct("("):
            close = self._matching_close(end, "(", ")")
            return close is not None and self._token(close + 1).is_punct("=>")
        return False

    def _parse_lambda(self) -> None:
        while self._check("["):
            self._require(Feature.LAMBDA_ATTRIBUTES)
            self._parse_attribute_section()
        while True:
            token = self._peek()
            if token.is_keyword("static"):
                self._require(Feature.STATIC_ANONYMOUS_FUNCTIONS, token)
                self._advance()
            elif token.is_contextual("async") and not self._peek(1).is_punct("=>"):
                self._require(Feature.ASYNC, token)
                self._advance()
            else:
                break

        token = self._peek()
        if token.kind is TokenKind.IDENTIFIER and self._peek(1).is_punct("=>"):
            self._advance()
        else:
            if not token.is_punct("("):
                self._require(Feature.LAMBDA_RETURN_TYPE, token)
                self._parse_type()
            self._parse_lambda_parameters()

        arrow = self._peek()
        self._expect("=>")
        self._require(Feature.LAMBDAS, arrow)
        if self._check("{"):
            self._parse_block()
        else:
            self._parse_expression()

    def _parse_lambda_parameters(self) -> None:
        if not self._expect("("):
            return
        if self._match(")"):
            return
        while True:
            while self._check("["):
                self._parse_attribute_section()
            modifiers = self._parse_parameter_modifiers()
            token = self._peek()
            if token.kind is TokenKind.IDENTIFIER and self._peek(1).is_punct(",", ")"):
                if modifiers:
                    self._require(Feature.SIMPLE_LAMBDA_PARAMETER_MODIFIERS, modifiers[0])
                self._advance()
            else:
                if self._parse_type():
                    self._expect_identifier()
                if self._check("="):
                    self._require(Feature.LAMBDA_OPTIONAL_PARAMETERS)
                    self._advance()
                    self._parse_expression()
            if not self._match(","):
                break
        self._expect(")")

    # -------------------------------------------------------------------------
    # Query expressions
    # -------------------------------------------------------------------------

    def _is_query_start(self) -> bool:
        # from x in ...   or   from T x in ...
        following = self._peek(1)
        if following.kind is TokenKind.IDENTIFIER and self._peek(2).is_keyword("in"):
            return True
        end = self._scan_type(self._pos + 1)
        return (
            end is not None
            and self._token(end).kind is TokenKind.IDENTIFIER
            and self._token(end + 1).is_keyword("in")
        )

    def _parse_from_clause(self) -> None:
        # from|join [type] name in expr
        self._advance()
        if not (self._peek().kind is TokenKind.IDENTIFIER and self._peek(1).is_keyword("in")):
            self._parse_type()
        self._expect_identifier()
        self._expect_keyword("in")
        self._parse_expression()

    def _parse_query(self) -> None:
        self._require(Feature.QUERY_EXPRESSIONS)
        self._parse_from_clause()
        while True:
            self._parse_query_clauses()
            token = self._peek()
            if token.is_contextual("select"):
                self._advance()
                self._parse_expression()
            elif token.is_contextual("group"):
                self._advance()
                self._parse_expression()
                self._expect_keyword("by")
                self._parse_expression()
            else:
                self._error(
                    ERR_QUERY_BODY_END,
                    "A query body must end with a select clause or a group clause",
                    self._missing_span(),
                )
                return
            if not self._check_contextual("into"):
                return
            self._advance()
            self._expect_identifier()

    def _parse_query_clauses(self) -> None:
        while True:
            token = self._peek()
            if token.is_contextual("from"):
                self._parse_from_clause()
            elif token.is_contextual("let"):
                self._advance()
                self._expect_identifier()
                self._expect("=")
                self._parse_expression()
            elif token.is_contextual("where"):
                self._advance()
                self._parse_expression()
            elif token.is_contextual("join"):
                self._parse_from_clause()
                self._expect_keyword("on")
                self._parse_expression()
                self._expect_keyword("equals")
                self._parse_expression()
                if self._check_contextual("into"):
                    self._advance()
                    self._expect_identifier()
            elif token.is_contextual("orderby"):
                self._advance()
                while True:
                    self._parse_expression()
                    if self._check_contextual("ascending") or self._check_contextual("descending"):
                        self._advance()
                    if not self._match(","):
                        break
            else:
                return

    # -------------------------------------------------------------------------
    # Switch expressions and patterns
    # -------------------------------------------------------------------------

    def _parse_switch_expression(self, switch_token: Token) -> None:
        self._require(Feature.SWITCH_EXPRESSION, switch_token)
        self._expect("{")
        while not self._check("}") and not self._at_end():
            self._parse_pattern()
            if self._check_contextual("when"):
                self._advance()
                self._parse_expression()
            self._expect("=>")
            self._parse_expression()
            if not self._match(","):
                break
        self._expect("}")

    @_nesting_guard
    def _parse_pattern(self) -> Optional[str]:
        """
        Parse a pattern and classify it.

        Returns:
            TYPE_PATTERN for a bare type, NAME_PATTERN for a simple or dotted
            name (a type or a constant), CONSTANT_PATTERN for any other
            constant expression and OTHER_PATTERN for the rest. The first
            three are valid in every language version in some position, so
            the caller decides whether they need a version check; the rest
            have been checked already.
        """
        kind = self._parse_and_pattern()
        while self._check_contextual("or") and self._starts_pattern(self._peek(1)):
            self._require(Feature.PATTERN_COMBINATORS)
            self._advance()
            self._parse_and_pattern()
            kind = OTHER_PATTERN
        return kind

    def _parse_and_pattern(self) -> Optional[str]:
        kind = self._parse_not_pattern()
        while self._check_contextual("and") and self._starts_pattern(self._peek(1)):
            self._require(Feature.PATTERN_COMBINATORS)
            self._advance()
            self._parse_not_pattern()
            kind = OTHER_PATTERN
        return kind

    def _parse_not_pattern(self) -> Optional[str]:
        negated = False
        while self._check_contextual("not") and self._starts_pattern(self._peek(1)):
            self._require(Feature.PATTERN_COMBINATORS)
            self._advance()
            negated = True
        kind = self._parse_primary_pattern()
        return OTHER_PATTERN if negated else kind

    def _is_designation(self, token: Token) -> bool:
        return token.kind is TokenKind.IDENTIFIER and token.text not in ("and", "or", "when")

    def _parse_designation(self) -> None:
        if self._is_designation(self._peek()):
            self._advance()

    def _parse_primary_pattern(self) -> Optional[str]:
        token = self._peek()

        if token.is_punct("<", "<=", ">", ">="):
            self._require(Feature.RELATIONAL_PATTERNS)
            self._advance()
            self._parse_binary(SHIFT_PRECEDENCE)
            return OTHER_PATTERN
        if token.is_punct("("):
            return self._parse_parenthesized_pattern()
        if token.is_punct("{"):
            self._require(Feature.RECURSIVE_PATTERNS)
            self._parse_property_pattern()
            self._parse_designation()
            return OTHER_PATTERN
        if token.is_punct("["):
            self._parse_list_pattern()
            return OTHER_PATTERN
        if token.is_contextual("var") and (
            self._peek(1).kind is TokenKind.IDENTIFIER or self._peek(1).is_punct("(")
        ):
            self._require(Feature.PATTERN_MATCHING)
            self._advance()
            self._parse_var_designation()
            return OTHER_PATTERN
        if token.is_contextual("_") and not self._peek(1).is_punct(".", "(", "[", "<", "::"):
            self._advance()
            return OTHER_PATTERN

        end = self._scan_type(self._pos, in_expression=True)
        if end is not None:
            after = self._token(end)
            if self._is_designation(after):
                # Declaration pattern: T name
                self._require(Feature.PATTERN_MATCHING)
                self._parse_type(in_expression=True)
                self._advance()
                return OTHER_PATTERN
            if after.is_punct("{", "("):
                self._require(Feature.RECURSIVE_PATTERNS)
                self._parse_type(in_expression=True)
                if self._check("("):
                    self._parse_subpatterns()
                if self._check("{"):
                    self._parse_property_pattern()
                self._parse_designation()
                return OTHER_PATTERN
            if self._has_type_only_syntax(self._pos, end):
                self._parse_type(in_expression=True)
                return TYPE_PATTERN

        start = self._pos
        self._parse_binary(SHIFT_PRECEDENCE)
        return NAME_PATTERN if self._is_plain_name(start, self._pos) else CONSTANT_PATTERN

    def _parse_parenthesized_pattern(self) -> Optional[str]:
        open_token = self._peek()
        count, named = self._parse_subpatterns()
        if count == 1 and not named:
            # Parenthesized constants are as old as the language
            if self._last_subpattern_kind in (NAME_PATTERN, CONSTANT_PATTERN):
                return self._last_subpattern_kind
            self._require(Feature.PATTERN_COMBINATORS, open_token)
            return OTHER_PATTERN
        self._require(Feature.RECURSIVE_PATTERNS, open_token)
        if self._check("{"):
            self._parse_property_pattern()
        self._parse_designation()
        return OTHER_PATTERN

    def _parse_subpatterns(self) -> tuple[int, bool]:
        """
        Parse '(' [name ':'] pattern {',' ...} ')'.

        Returns:
            (number of subpatterns, True if any was named)
        """
        self._advance()
        count = 0
        named = False
        self._last_subpattern_kind = None
        if not self._check(")"):
            while True:
                if self._peek().kind is TokenKind.IDENTIFIER and self._peek(1).is_punct(":"):
                    named = True
                    self._advance()
                    self._advance()
                self._last_subpattern_kind = self._parse_pattern()
                count += 1
                if not self._match(","):
                    break
        self._expect(")")
        return count, named

    def _parse_property_pattern(self) -> None:
        self._advance()
        while not self._check("}") and not self._at_end():
            if self._peek().kind is TokenKind.IDENTIFIER and self._peek(1).is_punct(":", "."):
                first = self._advance()
                dotted = False
                while self._match("."):
                    self._expect_identifier()
                    dotted = True
                if dotted:
                    self._require(Feature.EXTENDED_PROPERTY_PATTERNS, first)
                self._expect(":")
            self._parse_pattern()
            if not self._match(","):
                break
        self._expect("}")

    def _parse_list_pattern(self) -> None:
        self._require(Feature.LIST_PATTERNS)
        self._advance()
        while not self._check("]") and not self._at_end():
            if self._match(".."):
                # Slice pattern, optionally with a subpattern
                if not self._check(",", "]"):
                    self._parse_pattern()
            else:
                self._parse_pattern()
            if not self._match(","):
                break
        self._expect("]")
        self._parse_designation()

    @_nesting_guard
    def _parse_var_designation(self) -> None:
        if not self._match("("):
            self._expect_identifier()
            return
        if not self._check(")"):
            while True:
                self._parse_var_designation()
                if not self._match(","):
                    break
        self._expect(")")
