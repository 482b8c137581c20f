"""
C# Lexer (Tokenizer)
====================

This module converts C# source text into a lazy stream of tokens for the
preprocessor and parser.

Token Categories
----------------
- Keywords: class, int, if, return, ... (reserved words only)
- Identifiers: names, including @-escaped keywords and contextual keywords
  (var, record, async, await, when, ...), which the parser recognizes by text
- Literals: numeric, character, string, verbatim, raw and UTF-8 strings
- Interpolated strings: split into start/text/hole/end tokens
- Punctuation and operators, with maximal munch
- Directive lines: '#' as the first non-whitespace character of a line

Number Formats
--------------
| Format      | Prefix  | Example      | Minimum version |
|-------------|---------|--------------|-----------------|
| Decimal     | (none)  | 1_000        | 1 (7.0 for _)   |
| Real        | (none)  | 1.5e-3, .5f  | 1               |
| Hexadecimal | 0x/0X   | 0xFF_FF      | 1               |
| Binary      | 0b/0B   | 0b1010       | 7.0             |

Suffixes: u, l, ul, lu (integers), f, d, m (reals). A separator directly
after the prefix (0x_FF) needs C# 7.2.

Shift Operators
---------------
The lexer never produces '>>', '>>>', '>>=' or '>>>='. It emits single '>'
(and '>=') tokens; the parser joins adjacent ones, so that nested generic
argument lists such as List<List<int>> close correctly.

Interpolated Strings
--------------------
    $"a{x,5:N2}b"

is emitted as

    INTERPOLATED_STRING_START  '$"'
    INTERPOLATED_STRING_TEXT   'a'
    INTERPOLATION_START        '{'
    IDENTIFIER 'x', PUNCTUATION ',', NUMERIC_LITERAL '5'
    INTERPOLATION_FORMAT       ':N2'
    INTERPOLATION_END          '}'
    INTERPOLATED_STRING_TEXT   'b'
    INTERPOLATED_STRING_END    '"'

The tokens inside a hole come from the ordinary token scanner, so holes
may contain nested interpolated strings. Start and end tokens are always
emitted, even when the literal is malformed.

Line Terminators
----------------
A line ends at LF, CR, CR LF, U+0085, U+2028 or U+2029; CR LF counts
as one line. U+FEFF and U+001A are whitespace, so a byte order mark left in
the text is skipped.

Identifiers may spell any character as a 4 or 8 digit Unicode escape
(backslash, u or U, hex digits). An escaped keyword is an identifier,
just like an '@'-prefixed one.

Error Handling
--------------
The lexer never raises for malformed input. It reports a diagnostic to the
shared collector and produces a best-effort token. Characters the lexer
cannot classify become single-character BAD_TOKEN tokens. Inside directive
lines no lexical diagnostics are reported: the preprocessor reports the
malformed directive instead. Interpolated strings nested deeper than
MAX_INTERPOLATION_DEPTH report CS8078 once, and the lexer stops reporting
and skips to the end of the source.

Example Usage
-------------
>>> from csval.syntax.lexer import Lexer
>>> [t.text for t in Lexer("int x = 0b1;").tokenize()]
['int', 'x', '=', '0b1', ';', '']
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterator, Optional
import string

from csval.errors import Position, Span
from csval.syntax.errors import (
    DiagnosticCategory,
    DiagnosticCollector,
    ERR_BAD_DIRECTIVE_PLACEMENT,
    ERR_CLOSE_BRACE_EXPECTED,
    ERR_EMPTY_CHAR_LITERAL,
    ERR_EXPRESSION_TOO_COMPLEX,
    ERR_ILLEGAL_ESCAPE,
    ERR_INVALID_NUMBER,
    ERR_INVALID_REAL,
    ERR_NEWLINE_IN_CONSTANT,
    ERR_RAW_STRING_DELIMITER_LINE,
    ERR_RAW_STRING_INDENTATION,
    ERR_RAW_STRING_TOO_MANY_QUOTES,
    ERR_TOO_MANY_CHARS_IN_CHAR,
    ERR_TOO_MANY_OPEN_BRACES,
    ERR_UNESCAPED_CLOSE_BRACE,
    ERR_UNEXPECTED_CHARACTER,
    ERR_UNTERMINATED_COMMENT,
    ERR_UNTERMINATED_RAW_STRING,
    ERR_UNTERMINATED_STRING,
)
from csval.syntax.versions import Feature


# =============================================================================
# Token Kind Enumeration
# =============================================================================

class TokenKind(Enum):
    """
    Token kinds for C#.

    Keywords share one kind; the parser tells them apart by text. This keeps
    the enumeration small while the keyword list grows with each version.
    """
    IDENTIFIER = auto()
    KEYWORD = auto()
    NUMERIC_LITERAL = auto()
    STRING_LITERAL = auto()
    CHAR_LITERAL = auto()

    # Interpolated string parts
    INTERPOLATED_STRING_START = auto()
    INTERPOLATED_STRING_TEXT = auto()
    INTERPOLATION_START = auto()
    INTERPOLATION_FORMAT = auto()
    INTERPOLATION_END = auto()
    INTERPOLATED_STRING_END = auto()

    PUNCTUATION = auto()    # { } ( ) [ ] ; , . :
    OPERATOR = auto()       # everything else: + ?? => ...

    # Directive lines
    DIRECTIVE_START = auto()     # the '#'
    DIRECTIVE_MESSAGE = auto()   # free text after #error, #region, ...
    END_OF_DIRECTIVE = auto()    # zero-width, at the end of the line

    BAD_TOKEN = auto()
    EOF = auto()


# Reserved keywords. Contextual keywords are lexed as identifiers.
KEYWORDS = frozenset({
    "abstract", "as", "base", "bool", "break", "byte", "case", "catch",
    "char", "checked", "class", "const", "continue", "decimal", "default",
    "delegate", "do", "double", "else", "enum", "event", "explicit",
    "extern", "false", "finally", "fixed", "float", "for", "foreach", "goto",
    "if", "implicit", "in", "int", "interface", "internal", "is", "lock",
    "long", "namespace", "new", "null", "object", "operator", "out",
    "override", "params", "private", "protected", "public", "readonly",
    "ref", "return", "sbyte", "sealed", "short", "sizeof", "stackalloc",
    "static", "string", "struct", "switch", "this", "throw", "true", "try",
    "typeof", "uint", "ulong", "unchecked", "unsafe", "ushort", "using",
    "virtual", "void", "volatile", "while",
})

# Identifiers with special meaning in some positions
CONTEXTUAL_KEYWORDS = frozenset({
    "add", "alias", "allows", "and", "args", "ascending", "async", "await",
    "by", "descending", "dynamic", "equals", "extension", "field", "file",
    "from", "get", "global", "group", "init", "into", "join", "let",
    "managed", "nameof", "nint", "not", "notnull", "nuint", "on", "or",
    "orderby", "partial", "record", "remove", "required", "scoped",
    "select", "set", "unmanaged", "value", "var", "when", "where", "with",
    "yield",
})

# Directives whose remainder is free text
MESSAGE_DIRECTIVES = frozenset({"error", "warning", "region", "endregion"})

PUNCTUATION_CHARS = frozenset("{}()[];,.:")

# Multi-character operators, longest first within each length
OPERATORS_3 = ("??=", "<<=")
OPERATORS_2 = (
    "??", "?.", "::", "=>", "..", "->", "==", "!=", "<=", ">=", "&&", "||",
    "++", "--", "+=", "-=", "*=", "/=", "%=", "&=", "|=", "^=", "<<",
)
OPERATORS_1 = frozenset("{}()[];,.:?+-*/%&|^!~=<>")

# Interpolated strings nested inside holes before the lexer gives up
MAX_INTERPOLATION_DEPTH = 64


# =============================================================================
# Token Data Class
# =============================================================================

@dataclass(frozen=True)
class Token:
    """
    A single token of C# source.

    Attributes:
        kind: The TokenKind classification
        text: Raw source text of the token
        value: Identifier name without any '@' escape (None for non-names)
        span: Source range covered
        at_line_start: True if no other token precedes it on its line
        features: Version-sensitive lexical features seen in the token
    """
    kind: TokenKind
    text: str
    value: Optional[str]
    span: Span
    at_line_start: bool = False
    features: tuple[Feature, ...] = ()

    def __repr__(self) -> str:
        start = self.span.start
        return f"Token({self.kind.name}, {self.text!r}, {start.line}:{start.column})"

    @property
    def start(self) -> Position:
        return self.span.start

    @property
    def end(self) -> Position:
        return self.span.end

    def is_punct(self, *texts: str) -> bool:
        """Return True if this is punctuation or an operator with one of the texts."""
        return self.kind in (TokenKind.PUNCTUATION, TokenKind.OPERATOR) and self.text in texts

    def is_keyword(self, *words: str) -> bool:
        """Return True if this is one of the given reserved keywords."""
        return self.kind is TokenKind.KEYWORD and self.text in words

    def is_contextual(self, word: str) -> bool:
        """
        Return True if this identifier is the contextual keyword `word`.

        '@var' is an ordinary identifier, so the raw text is compared.
        """
        return self.kind is TokenKind.IDENTIFIER and self.text == word


# =============================================================================
# Lexer Implementation
# =============================================================================

class Lexer:
    """
    Tokenizes C# source code.

    Usage:
        lexer = Lexer(source_text, collector)
        for token in lexer.tokenize():
            ...

    tokenize() is a generator. The preprocessor relies on this: after it
    receives the END_OF_DIRECTIVE of a directive that disables code, it
    calls skip_disabled_text() and the generator resumes past the skipped
    lines, so disabled code is never tokenized.

    Attributes:
        source: The source code being tokenized
        collector: Receives lexical diagnostics
    """

    # Characters that can start an identifier (besides Unicode letters)
    IDENT_START = "_"

    DIGITS = string.digits
    HEX_DIGITS = string.hexdigits
    NEWLINES = "\n\r\u0085\u2028\u2029"

    # Whitespace that str.isspace() does not cover
    EXTRA_WHITESPACE = "\ufeff\x1a"

    # Single-character escapes valid in every C# version
    SIMPLE_ESCAPES = frozenset("'\"\\0abfnrtv")

    def __init__(self, source: str, collector: Optional[DiagnosticCollector] = None):
        """
        Initialize the lexer with source code.

        Args:
            source: The C# source text
            collector: Diagnostic sink (a private one is created if omitted)
        """
        self.source = source
        self.collector = collector if collector is not None else DiagnosticCollector()

        # Current position in source
        self._pos = 0
        self._line = 1
        self._column = 1

        # Line-start tracking for directive recognition
        self._line_has_content = False
        self._pending_line_start = False

        self._in_directive = False

        # Interpolation holes currently open, and whether the lexer gave up
        self._interpolation_depth = 0
        self._abandoned = False

    def tokenize(self) -> Iterator[Token]:
        """
        Generate tokens from the source code.

        Yields:
            Token objects, ending with exactly one EOF token
        """
        while True:
            self._skip_trivia()

            if self._in_directive and (self._at_end() or self._peek() in self.NEWLINES):
                self._in_directive = False
                here = self._position()
                yield Token(TokenKind.END_OF_DIRECTIVE, "", None, Span.at(here))
                continue

            if self._at_end():
                break

            self._pending_line_start = not self._line_has_content
            if self._peek() == "#" and self._pending_line_start and not self._in_directive:
                tokens = self._scan_directive_start()
            else:
                tokens = self._scan_token()
            self._line_has_content = True
            yield from tokens

        here = self._position()
        yield Token(TokenKind.EOF, "", None, Span.at(here), not self._line_has_content)

    def skip_disabled_text(self) -> None:
        """
        Skip lines of conditionally excluded code.

        Advances to the start of the next line whose first non-whitespace
        character is '#', or to the end of input. Skipped text is not
        tokenized and produces no diagnostics.
        """
        self._skip_to_line_end()

        while not self._at_end():
            self._skip_newline()
            i = self._pos
            while i < len(self.source) and self._is_whitespace(self.source[i]):
                i += 1
            if i < len(self.source) and self.source[i] == "#":
                break
            self._skip_to_line_end()

        self._line_has_content = False

    # =========================================================================
    # Character Access Methods
    # =========================================================================

    def _at_end(self) -> bool:
        """Check if we've reached the end of source."""
        return self._pos >= len(self.source)

    def _peek(self, offset: int = 0) -> str:
        """
        Look at character at current position + offset without advancing.

        Returns empty string if past end of source.
        """
        pos = self._pos + offset
        if pos >= len(self.source):
            return ""
        return self.source[pos]

    def _advance(self) -> str:
        """
        Consume and return the current character, advancing position.

        Updates line and column tracking.
        """
        if self._at_end():
            return ""

        char = self.source[self._pos]
        self._pos += 1

        # CR LF ends one line, at the LF
        if char in self.NEWLINES and not (char == "\r" and self._peek() == "\n"):
            self._line += 1
            self._column = 1
            self._line_has_content = False
        else:
            self._column += 1

        return char

    def _advance_by(self, count: int) -> None:
        for _ in range(count):
            self._advance()

    def _match(self, expected: str) -> bool:
        """
        Consume the next characters if they match expected.

        Args:
            expected: The text to match

        Returns:
            True if matched and consumed, False otherwise
        """
        if self.source.startswith(expected, self._pos):
            self._advance_by(len(expected))
            return True
        return False

    def _is_newline(self, char: str) -> bool:
        return bool(char) and char in self.NEWLINES

    def _is_whitespace(self, char: str) -> bool:
        """Whitespace other than line terminators."""
        if not char or char in self.NEWLINES:
            return False
        return char.isspace() or char in self.EXTRA_WHITESPACE

    def _skip_newline(self) -> None:
        """Consume one line terminator, treating CR LF as one."""
        if self._peek() == "\r" and self._peek(1) == "\n":
            self._advance()
        self._advance()

    def _skip_to_line_end(self) -> None:
        """Advance to the next line terminator (or the end of input)."""
        while not self._at_end() and not self._is_newline(self._peek()):
            self._advance()

    def _line_end(self, pos: int) -> int:
        """Return the index of the first line terminator at or after pos."""
        while pos < len(self.source) and self.source[pos] not in self.NEWLINES:
            pos += 1
        return pos

    def _run_length(self, char: str) -> int:
        """Count consecutive occurrences of char at the current position."""
        count = 0
        while self._peek(count) == char:
            count += 1
        return count

    def _position(self) -> Position:
        return Position(self._line, self._column, self._pos)

    # =========================================================================
    # Token Creation and Diagnostics
    # =========================================================================

    def _make_token(
        self,
        kind: TokenKind,
        start: Position,
        value: Optional[str] = None,
        features: Optional[set[Feature]] = None,
    ) -> Token:
        """
        Create a token covering source from start to the current position.

        Only the first token created for a scan can be at line start.
        """
        at_line_start = self._pending_line_start
        self._pending_line_start = False
        return Token(
            kind=kind,
            text=self.source[start.offset:self._pos],
            value=value,
            span=Span(start, self._position()),
            at_line_start=at_line_start,
            features=tuple(sorted(features, key=lambda f: f.name)) if features else (),
        )

    def _report(self, code: str, message: str, start: Position, end: Optional[Position] = None) -> None:
        """Report a lexical diagnostic, unless inside a directive line or after giving up."""
        if self._in_directive or self._abandoned:
            return
        span = Span(start, end if end is not None else start)
        self.collector.error(code, message, span, DiagnosticCategory.LEXICAL)

    def _give_up(self, start: Position) -> Token:
        """Report CS8078 and swallow the rest of the source as one bad token."""
        self.collector.error(
            ERR_EXPRESSION_TOO_COMPLEX,
            "An expression is too long or complex to compile",
            Span.at(start),
            DiagnosticCategory.LEXICAL,
        )
        self._abandoned = True
        while not self._at_end():
            self._advance()
        return self._make_token(TokenKind.BAD_TOKEN, start)

    # =========================================================================
    # Whitespace and Comment Handling
    # =========================================================================

    def _skip_trivia(self) -> None:
        """
        Skip whitespace and comments.

        Inside a directive line the newline is not skipped, since it ends
        the directive.
        """
        while not self._at_end():
            char = self._peek()

            if self._is_newline(char):
                if self._in_directive:
                    return
                self._skip_newline()
                continue

            if self._is_whitespace(char):
                self._advance()
                continue

            if char == "/" and self._peek(1) == "/":
                self._skip_to_line_end()
                continue

            if char == "/" and self._peek(1) == "*":
                self._skip_block_comment()
                continue

            break

    def _skip_block_comment(self) -> None:
        """Skip a /* ... */ comment, reporting CS1035 if it never ends."""
        start = self._position()
        self._advance()
        self._advance()

        while not self._at_end():
            if self._peek() == "*" and self._peek(1) == "/":
                self._advance()
                self._advance()
                self._line_has_content = True
                return
            self._advance()

        self._report(ERR_UNTERMINATED_COMMENT, "End-of-file found, '*/' expected", start)

    # =========================================================================
    # Directive Lines
    # =========================================================================

    def _scan_directive_start(self) -> list[Token]:
        """
        Scan the '#' that opens a directive line, plus its name.

        For message directives the rest of the line becomes a single
        DIRECTIVE_MESSAGE token. A '#!' shebang line is treated the same way.
        """
        start = self._position()
        self._advance()
        tokens = [self._make_token(TokenKind.DIRECTIVE_START, start)]
        self._in_directive = True

        if self._peek() == "!":
            tokens.append(self._scan_directive_message())
            return tokens

        while self._peek() in (" ", "\t"):
            self._advance()
        if self._is_ident_start(self._peek()):
            name = self._scan_identifier()
            tokens.append(name)
            if name.text in MESSAGE_DIRECTIVES:
                while self._peek() in (" ", "\t"):
                    self._advance()
                message = self._scan_directive_message()
                if message.text:
                    tokens.append(message)
        return tokens

    def _scan_directive_message(self) -> Token:
        start = self._position()
        while not self._at_end() and self._peek() not in self.NEWLINES:
            self._advance()
        token = self._make_token(TokenKind.DIRECTIVE_MESSAGE, start)
        text = token.text.rstrip()
        return Token(token.kind, text, text, token.span, token.at_line_start)

    # =========================================================================
    # Token Scanning
    # =========================================================================

    def _scan_token(self) -> list[Token]:
        """
        Scan the next token (or token group) from source.

        Returns:
            One token, or the full token group of an interpolated string
        """
        start = self._position()
        char = self._peek()
        next_char = self._peek(1)

        if char == "$" or (char == "@" and next_char == "$"):
            if self._looks_like_interpolated_string():
                return self._scan_interpolated_string(start)

        if char == "@":
            if next_char == '"':
                return [self._scan_verbatim_string(start)]
            if self._is_ident_start(self._ident_char_at(1)[0]):
                self._advance()
                return [self._scan_identifier(start)]

        if self._is_ident_start(self._ident_char_at(0)[0]):
            return [self._scan_identifier(start)]

        if char in self.DIGITS or (char == "." and next_char in self.DIGITS):
            return [self._scan_number(start)]

        if char == '"':
            if self.source.startswith('"""', self._pos):
                return [self._scan_raw_string(start)]
            return [self._scan_string(start)]

        if char == "'":
            return [self._scan_char(start)]

        if char == "#":
            # Not first on the line
            self._advance()
            self._report(
                ERR_BAD_DIRECTIVE_PLACEMENT,
                "Preprocessor directives must appear as the first non-whitespace character on a line",
                start,
            )
            return [self._make_token(TokenKind.BAD_TOKEN, start)]

        if char in OPERATORS_1:
            return [self._scan_operator(start)]

        self._advance()
        self._report(ERR_UNEXPECTED_CHARACTER, f"Unexpected character '{char}'", start)
        return [self._make_token(TokenKind.BAD_TOKEN, start)]

    def _is_ident_start(self, char: str) -> bool:
        return bool(char) and (char.isalpha() or char in self.IDENT_START)

    def _is_ident_char(self, char: str) -> bool:
        return bool(char) and (char.isalnum() or char == "_")

    def _ident_char_at(self, offset: int) -> tuple[str, int]:
        """
        Decode the identifier character at the current position + offset.

        Returns:
            (character, source length). A \\uXXXX or \\UXXXXXXXX escape is
            decoded; anything else is returned as is with length 1.
        """
        char = self._peek(offset)
        if char != "\\" or self._peek(offset + 1) not in ("u", "U"):
            return char, 1
        length = 6 if self._peek(offset + 1) == "u" else 10
        begin = self._pos + offset + 2
        digits = self.source[begin:self._pos + offset + length]
        if len(digits) != length - 2 or any(c not in self.HEX_DIGITS for c in digits):
            return char, 1
        code = int(digits, 16)
        if code > 0x10FFFF:
            return char, 1
        return chr(code), length

    def _scan_identifier(self, start: Optional[Position] = None) -> Token:
        """
        Scan an identifier or keyword.

        When start precedes the current position, an '@' has already been
        consumed and the result is always an identifier. So is a keyword
        spelled with a Unicode escape.
        """
        if start is None:
            start = self._position()
        name_start = self._pos
        chars = []
        escaped = False
        while True:
            char, length = self._ident_char_at(0)
            if not self._is_ident_char(char):
                break
            chars.append(char)
            escaped = escaped or length > 1
            self._advance_by(length)

        name = "".join(chars)
        if name_start == start.offset and not escaped and name in KEYWORDS:
            return self._make_token(TokenKind.KEYWORD, start, name)
        return self._make_token(TokenKind.IDENTIFIER, start, name)

    def _scan_operator(self, start: Position) -> Token:
        """
        Scan an operator or punctuation with maximal munch.

        '?.' followed by a digit is '?' then a real literal ('a?.5:b').
        """
        for op in OPERATORS_3:
            if self._match(op):
                return self._make_token(TokenKind.OPERATOR, start)

        for op in OPERATORS_2:
            if op == "?." and self._peek(2) in self.DIGITS:
                continue
            if self._match(op):
                kind = TokenKind.PUNCTUATION if op == "::" else TokenKind.OPERATOR
                return self._make_token(kind, start)

        char = self._advance()
        kind = TokenKind.PUNCTUATION if char in PUNCTUATION_CHARS else TokenKind.OPERATOR
        return self._make_token(kind, start)

    # =========================================================================
    # Numeric Literals
    # =========================================================================

    def _consume_digits(self, allowed: str) -> str:
        begin = self._pos
        while self._peek() and (self._peek() in allowed or self._peek() == "_"):
            self._advance()
        return self.source[begin:self._pos]

    def _scan_number(self, start: Position) -> Token:
        """
        Scan a numeric literal.

        Handles:
        - Decimal and real: 123, 1_000, 1.5, .5, 1e-3, 2.0f, 10m
        - Hexadecimal: 0xFF, 0x_FF
        - Binary: 0b1010
        """
        features: set[Feature] = set()
        valid = True
        is_real = False
        bad_exponent = False
        prefixed = False

        if self._peek() == "0" and self._peek(1) in ("x", "X"):
            self._advance_by(2)
            prefixed = True
            digits = self._consume_digits(self.HEX_DIGITS)
            groups = [digits]
        elif self._peek() == "0" and self._peek(1) in ("b", "B"):
            self._advance_by(2)
            prefixed = True
            features.add(Feature.BINARY_LITERALS)
            digits = self._consume_digits(self.DIGITS)
            if any(c not in "01_" for c in digits):
                valid = False
            groups = [digits]
        else:
            digits = self._consume_digits(self.DIGITS)
            groups = [digits] if digits else []
            if self._peek() == "." and self._peek(1) in self.DIGITS:
                self._advance()
                groups.append(self._consume_digits(self.DIGITS))
                is_real = True
            if self._peek() in ("e", "E"):
                sign = 1 if self._peek(1) in ("+", "-") else 0
                self._advance_by(1 + sign)
                is_real = True
                exponent = self._consume_digits(self.DIGITS)
                if exponent:
                    groups.append(exponent)
                else:
                    bad_exponent = True

        for group in groups:
            if "_" in group:
                features.add(Feature.DIGIT_SEPARATORS)
            if not group.strip("_") or group.endswith("_"):
                valid = False
        if not groups:
            valid = False
        elif prefixed and groups[0].startswith("_"):
            features.add(Feature.LEADING_DIGIT_SEPARATOR)
        elif not prefixed and any(g.startswith("_") for g in groups[1:]):
            valid = False

        suffix = self._peek().lower()
        if suffix in ("f", "d", "m") and not prefixed:
            self._advance()
        elif not is_real and suffix in ("u", "l"):
            self._advance()
            other = "l" if suffix == "u" else "u"
            if self._peek().lower() == other:
                self._advance()

        if bad_exponent:
            self._report(ERR_INVALID_REAL, "Invalid real literal", start, self._position())
        elif not valid:
            self._report(ERR_INVALID_NUMBER, "Invalid number", start, self._position())
        return self._make_token(TokenKind.NUMERIC_LITERAL, start, features=features)

    # =========================================================================
    # Character and String Literals
    # =========================================================================

    def _scan_escape(self, features: set[Feature]) -> None:
        """
        Scan an escape sequence starting at the backslash.

        Reports CS1009 for an unrecognized sequence.
        """
        start = self._position()
        self._advance()  # consume backslash
        char = self._peek()

        if char and char in self.SIMPLE_ESCAPES:
            self._advance()
            return
        if char == "e":
            self._advance()
            features.add(Feature.ESCAPE_CHARACTER)
            return
        if char in ("x", "u", "U"):
            self._advance()
            count = 0
            limit = {"x": 4, "u": 4, "U": 8}[char]
            while count < limit and self._peek() and self._peek() in self.HEX_DIGITS:
                self._advance()
                count += 1
            if count == 0 or (char != "x" and count != limit):
                self._report(ERR_ILLEGAL_ESCAPE, "Unrecognized escape sequence", start, self._position())
            return

        if char and char not in self.NEWLINES:
            self._advance()
        self._report(ERR_ILLEGAL_ESCAPE, "Unrecognized escape sequence", start, self._position())

    def _scan_char(self, start: Position) -> Token:
        """
        Scan a character literal.

        Reports CS1011 for '', CS1012 for 'ab', and CS1010 when the line
        ends before the closing quote.
        """
        features: set[Feature] = set()
        self._advance()  # consume opening '

        if self._peek() == "'":
            self._advance()
            self._report(ERR_EMPTY_CHAR_LITERAL, "Empty character literal", start, self._position())
            return self._make_token(TokenKind.CHAR_LITERAL, start)

        if self._at_end() or self._peek() in self.NEWLINES:
            self._report(ERR_NEWLINE_IN_CONSTANT, "Newline in constant", start)
            return self._make_token(TokenKind.CHAR_LITERAL, start)

        if self._peek() == "\\":
            self._scan_escape(features)
        else:
            self._advance()

        if self._match("'"):
            return self._make_token(TokenKind.CHAR_LITERAL, start, features=features)

        # Too many characters, or no closing quote on this line
        while not self._at_end() and self._peek() != "'" and not self._is_newline(self._peek()):
            if self._peek() == "\\":
                self._advance()
            self._advance()
        if self._match("'"):
            self._report(
                ERR_TOO_MANY_CHARS_IN_CHAR, "Too many characters in character literal",
                start, self._position(),
            )
        else:
            self._report(ERR_NEWLINE_IN_CONSTANT, "Newline in constant", start)
        return self._make_token(TokenKind.CHAR_LITERAL, start, features=features)

    def _scan_utf8_suffix(self, features: set[Feature]) -> None:
        if self._peek() in ("u", "U") and self._peek(1) == "8":
            self._advance_by(2)
            features.add(Feature.UTF8_STRING_LITERALS)

    def _scan_string(self, start: Position) -> Token:
        """Scan a regular "..." string literal."""
        features: set[Feature] = set()
        self._advance()  # consume opening "

        while True:
            if self._at_end() or self._peek() in self.NEWLINES:
                self._report(ERR_NEWLINE_IN_CONSTANT, "Newline in constant", start)
                break
            char = self._peek()
            if char == '"':
                self._advance()
                self._scan_utf8_suffix(features)
                break
            if char == "\\":
                self._scan_escape(features)
            else:
                self._advance()

        return self._make_token(TokenKind.STRING_LITERAL, start, features=features)

    def _scan_verbatim_string(self, start: Position) -> Token:
        """Scan a verbatim @"..." string literal; "" is an escaped quote."""
        features: set[Feature] = set()
        self._advance_by(2)  # consume @"

        while True:
            if self._at_end():
                self._report(ERR_UNTERMINATED_STRING, "Unterminated string literal", start)
                break
            if self._peek() == '"':
                if self._peek(1) == '"':
                    self._advance_by(2)
                    continue
                self._advance()
                self._scan_utf8_suffix(features)
                break
            self._advance()

        return self._make_token(TokenKind.STRING_LITERAL, start, features=features)

    def _opening_line_is_blank(self) -> bool:
        """True if only whitespace remains before the end of the current line."""
        line_end = self._line_end(self._pos)
        return all(self._is_whitespace(c) for c in self.source[self._pos:line_end])

    def _scan_raw_string(self, start: Position) -> Token:
        """
        Scan a raw string literal of three or more quotes.

        Single-line form: the opening quotes, the text and the closing quotes
        all on one line.
        Multi-line form: the opening quotes end their line, the closing
        quotes start theirs, and every content line must begin with the
        whitespace that precedes the closing quotes.
        """
        features: set[Feature] = {Feature.RAW_STRING_LITERALS}
        quotes = self._run_length('"')
        delimiter = '"' * quotes
        self._advance_by(quotes)

        if not self._opening_line_is_blank():
            while True:
                if self._at_end() or self._peek() in self.NEWLINES:
                    self._report(ERR_UNTERMINATED_RAW_STRING, "Unterminated raw string literal", start)
                    return self._make_token(TokenKind.STRING_LITERAL, start, features=features)
                if self._peek() == '"':
                    run = self._run_length('"')
                    if run >= quotes:
                        self._finish_raw_delimiter(run, quotes, features)
                        break
                    self._advance_by(run)
                    continue
                self._advance()
            return self._make_token(TokenKind.STRING_LITERAL, start, features=features)

        # Multi-line: skip the rest of the opening line
        self._skip_to_line_end()
        content_lines: list[tuple[Position, str]] = []

        while True:
            if self._at_end():
                self._report(ERR_UNTERMINATED_RAW_STRING, "Unterminated raw string literal", start)
                return self._make_token(TokenKind.STRING_LITERAL, start, features=features)
            self._skip_newline()

            line_start = self._position()
            line = self.source[self._pos:self._line_end(self._pos)]
            stripped = line.lstrip(" \t")
            indent = line[:len(line) - len(stripped)]

            if stripped.startswith(delimiter):
                self._advance_by(len(indent))
                self._finish_raw_delimiter(self._run_length('"'), quotes, features)
                self._check_raw_indentation(content_lines, indent)
                break

            close = line.find(delimiter)
            if close >= 0:
                self._advance_by(close)
                self._report(
                    ERR_RAW_STRING_DELIMITER_LINE,
                    "The closing quotes of a multi-line raw string literal must be on their own line",
                    self._position(),
                )
                self._finish_raw_delimiter(self._run_length('"'), quotes, features)
                break

            content_lines.append((line_start, line))
            self._advance_by(len(line))

        return self._make_token(TokenKind.STRING_LITERAL, start, features=features)

    def _finish_raw_delimiter(self, run: int, quotes: int, features: set[Feature]) -> None:
        """Consume a closing delimiter of `run` quotes where `quotes` are needed."""
        here = self._position()
        self._advance_by(run)
        if run > quotes:
            self._report(
                ERR_RAW_STRING_TOO_MANY_QUOTES,
                "The raw string literal does not start with enough quote characters "
                "to allow this many consecutive quote characters as content",
                here, self._position(),
            )
        self._scan_utf8_suffix(features)

    def _check_raw_indentation(self, lines: list[tuple[Position, str]], indent: str) -> None:
        for position, line in lines:
            if line.strip() and not line.startswith(indent):
                self._report(
                    ERR_RAW_STRING_INDENTATION,
                    "Line does not start with the same whitespace as the closing line "
                    "of the raw string literal",
                    position,
                )
                return

    # =========================================================================
    # Interpolated Strings
    # =========================================================================

    def _looks_like_interpolated_string(self) -> bool:
        i = self._pos
        if self._peek() == "@":
            i += 1
        while i < len(self.source) and self.source[i] == "$":
            i += 1
        if i < len(self.source) and self.source[i] == "@" and self.source[self._pos] != "@":
            i += 1
        return i < len(self.source) and self.source[i] == '"'

    def _scan_interpolated_string(self, start: Position) -> list[Token]:
        """
        Scan an interpolated string into its token group.

        Forms: $"...", $@"...", @$"..." and raw strings opened by one or more
        '$' and three or more quote characters, where the number of '$' is
        the number of braces that open a hole.

        Holes nested deeper than MAX_INTERPOLATION_DEPTH report CS8078 once
        and the rest of the source is given up.
        """
        if self._interpolation_depth >= MAX_INTERPOLATION_DEPTH:
            return [self._give_up(start)]

        features: set[Feature] = {Feature.INTERPOLATED_STRINGS}
        at_line_start = self._pending_line_start
        self._pending_line_start = False

        verbatim = False
        if self._match("@"):
            verbatim = True
            features.add(Feature.ALTERNATIVE_INTERPOLATED_VERBATIM)
        dollars = self._run_length("$")
        self._advance_by(dollars)
        if not verbatim and self._match("@"):
            verbatim = True

        quotes = self._run_length('"')
        raw = quotes >= 3 and not verbatim
        if raw:
            features.add(Feature.RAW_STRING_LITERALS)
            self._advance_by(quotes)
            multi_line = self._opening_line_is_blank()
        else:
            quotes = 1
            multi_line = verbatim
            self._advance()
        brace_count = dollars if raw else 1

        start_text = self.source[start.offset:self._pos]
        parts: list[Token] = []
        text_start = self._position()

        def flush_text() -> None:
            if self._pos > text_start.offset:
                parts.append(self._make_token(TokenKind.INTERPOLATED_STRING_TEXT, text_start))

        end_start: Optional[Position] = None
        while True:
            if self._at_end():
                flush_text()
                if raw:
                    self._report(ERR_UNTERMINATED_RAW_STRING, "Unterminated raw string literal", start)
                else:
                    self._report(ERR_UNTERMINATED_STRING, "Unterminated string literal", start)
                break

            char = self._peek()

            if char in self.NEWLINES and not multi_line:
                flush_text()
                if raw:
                    self._report(ERR_UNTERMINATED_RAW_STRING, "Unterminated raw string literal", start)
                else:
                    self._report(ERR_NEWLINE_IN_CONSTANT, "Newline in constant", start)
                break

            if char == '"':
                if verbatim and self._peek(1) == '"':
                    self._advance_by(2)
                    continue
                run = self._run_length('"') if raw else 1
                if run >= quotes:
                    flush_text()
                    end_start = self._position()
                    if raw:
                        self._finish_raw_delimiter(run, quotes, features)
                    else:
                        self._advance()
                    break
                self._advance_by(run)
                continue

            if char == "\\" and not verbatim and not raw:
                self._scan_escape(features)
                continue

            if char == "{":
                run = self._run_length("{")
                if not raw:
                    if run >= 2:
                        self._advance_by(2)
                        continue
                elif run < brace_count:
                    self._advance_by(run)
                    continue
                elif run >= 2 * brace_count:
                    self._report(
                        ERR_TOO_MANY_OPEN_BRACES,
                        "The interpolated raw string literal does not start with enough '$' "
                        "characters to allow this many consecutive opening braces as content",
                        self._position(),
                    )
                    self._advance_by(run)
                    continue
                else:
                    self._advance_by(run - brace_count)
                flush_text()
                self._interpolation_depth += 1
                parts.extend(self._scan_interpolation(brace_count, multi_line, features))
                self._interpolation_depth -= 1
                text_start = self._position()
                continue

            if char == "}":
                if not raw:
                    if self._peek(1) == "}":
                        self._advance_by(2)
                        continue
                    here = self._position()
                    self._advance()
                    self._report(
                        ERR_UNESCAPED_CLOSE_BRACE,
                        "A '}' character must be escaped (by doubling) in an interpolated string",
                        here,
                    )
                    continue
                self._advance_by(self._run_length("}"))
                continue

            self._advance()

        if end_start is None:
            end_start = self._position()
        end = Token(
            TokenKind.INTERPOLATED_STRING_END,
            self.source[end_start.offset:self._pos],
            None,
            Span(end_start, self._position()),
        )
        start_token = Token(
            TokenKind.INTERPOLATED_STRING_START,
            start_text,
            None,
            Span(start, Position(start.line, start.column + len(start_text), start.offset + len(start_text))),
            at_line_start,
            tuple(sorted(features, key=lambda f: f.name)),
        )
        return [start_token, *parts, end]

    def _scan_interpolation(self, brace_count: int, multi_line: bool, features: set[Feature]) -> list[Token]:
        """
        Scan one interpolation hole, from its opening braces to its closing braces.

        The hole's expression is tokenized by the ordinary scanner. The hole
        ends at a '}' (or ':' format specifier) outside any nested brackets.
        """
        hole_start = self._position()
        self._advance_by(brace_count)
        tokens = [self._make_token(TokenKind.INTERPOLATION_START, hole_start)]
        start_line = self._line

        depth = 0
        while True:
            self._skip_trivia()
            if self._at_end():
                break
            char = self._peek()
            if depth == 0 and char == "}":
                break
            if depth == 0 and char == ":" and self._peek(1) != ":":
                break
            for token in self._scan_token():
                if token.is_punct("(", "[", "{"):
                    depth += 1
                elif token.is_punct(")", "]", "}") and depth > 0:
                    depth -= 1
                tokens.append(token)

        if self._line != start_line and not multi_line:
            features.add(Feature.NEWLINES_IN_INTERPOLATIONS)

        if self._peek() == ":":
            format_start = self._position()
            while not self._at_end() and self._peek() not in '}"' and (
                multi_line or self._peek() not in self.NEWLINES
            ):
                self._advance()
            tokens.append(self._make_token(TokenKind.INTERPOLATION_FORMAT, format_start))

        end_start = self._position()
        if self._peek() == "}":
            self._advance_by(min(brace_count, self._run_length("}")))
        elif not self._at_end():
            self._report(ERR_CLOSE_BRACE_EXPECTED, "} expected", end_start)
        tokens.append(self._make_token(TokenKind.INTERPOLATION_END, end_start))
        return tokens
