# =============================================================================
# test_lexer.py - Lexer Unit Tests
# =============================================================================
# Tests for the C# lexer/tokenizer.
#
# Test coverage includes:
#   - Keywords, contextual keywords, @-escaped and Unicode-escaped identifiers
#   - Operators with maximal munch, and the single '>' rule for shifts
#   - Numeric literals: hex, binary, digit separators, suffixes
#   - Character, string, verbatim, raw and UTF-8 string literals
#   - Interpolated string token groups
#   - Directive line recognition
#   - Line terminators (LF, CR, CR LF, U+0085, U+2028, U+2029) and BOM whitespace
#   - Lexical error conditions (reported, never raised)
# =============================================================================

import pytest
from csval.syntax.errors import DiagnosticCollector
from csval.syntax.lexer import MAX_INTERPOLATION_DEPTH, Lexer, TokenKind, Token
from csval.syntax.versions import Feature


# =============================================================================
# Helper Functions
# =============================================================================

def lex(source: str) -> tuple[list[Token], DiagnosticCollector]:
    """
    Tokenize source, dropping the trailing EOF token.

    Returns:
        (tokens, collector) so tests can check both output and diagnostics
    """
    collector = DiagnosticCollector()
    tokens = list(Lexer(source, collector).tokenize())
    assert tokens[-1].kind is TokenKind.EOF
    return tokens[:-1], collector


def texts(source: str) -> list[str]:
    tokens, _ = lex(source)
    return [t.text for t in tokens]


def codes(source: str) -> list[str]:
    _, collector = lex(source)
    return [d.code for d in collector.sorted()]


# =============================================================================
# Basic Token Recognition Tests
# =============================================================================

class TestBasicTokens:
    """Test basic token recognition for simple inputs."""

    def test_empty_source(self):
        """Empty source yields only EOF."""
        tokens = list(Lexer("").tokenize())
        assert len(tokens) == 1
        assert tokens[0].kind is TokenKind.EOF

    def test_whitespace_and_comments_only(self):
        """Comments and whitespace produce no tokens."""
        tokens, collector = lex("  // line comment\n /* block\n comment */ \t")
        assert tokens == []
        assert len(collector) == 0

    def test_simple_declaration(self):
        """A declaration splits into keyword, identifier, operator, literal, punctuation."""
        tokens, _ = lex("int x = 0b1;")
        assert [t.kind for t in tokens] == [
            TokenKind.KEYWORD,
            TokenKind.IDENTIFIER,
            TokenKind.OPERATOR,
            TokenKind.NUMERIC_LITERAL,
            TokenKind.PUNCTUATION,
        ]

    def test_positions(self):
        """Tokens carry 1-based line/column and 0-based offset."""
        tokens, _ = lex("a\n  bc")
        assert (tokens[1].start.line, tokens[1].start.column, tokens[1].start.offset) == (2, 3, 4)
        assert tokens[1].end.column == 5

    def test_at_line_start(self):
        """Only the first token of each line is marked at_line_start."""
        tokens, _ = lex("a b\nc")
        assert [t.at_line_start for t in tokens] == [True, False, True]


# =============================================================================
# Keyword and Identifier Tests
# =============================================================================

class TestKeywords:
    """Test reserved and contextual keyword classification."""

    @pytest.mark.parametrize("word", ["class", "int", "return", "namespace", "stackalloc"])
    def test_reserved_keywords(self, word):
        """Reserved words are KEYWORD tokens."""
        tokens, _ = lex(word)
        assert tokens[0].kind is TokenKind.KEYWORD
        assert tokens[0].is_keyword(word)

    @pytest.mark.parametrize("word", ["var", "record", "async", "await", "when", "yield", "_"])
    def test_contextual_keywords_are_identifiers(self, word):
        """Contextual keywords and the discard are IDENTIFIER tokens."""
        tokens, _ = lex(word)
        assert tokens[0].kind is TokenKind.IDENTIFIER
        assert tokens[0].is_contextual(word)

    def test_escaped_keyword_is_identifier(self):
        """'@class' is an identifier whose value drops the '@'."""
        tokens, _ = lex("@class")
        assert tokens[0].kind is TokenKind.IDENTIFIER
        assert tokens[0].value == "class"
        assert tokens[0].text == "@class"

    def test_escaped_contextual_keyword_is_plain_name(self):
        """'@var' is not recognized as the contextual keyword var."""
        tokens, _ = lex("@var")
        assert not tokens[0].is_contextual("var")

    def test_unicode_identifier(self):
        """Unicode letters may start and continue identifiers."""
        tokens, collector = lex("größe")
        assert tokens[0].kind is TokenKind.IDENTIFIER
        assert len(collector) == 0

    @pytest.mark.parametrize("source", ["\\u0061bc", "a\\u0062c", "ab\\U00000063"])
    def test_unicode_escape_in_identifier(self, source):
        """\\uXXXX and \\UXXXXXXXX may spell any identifier character."""
        tokens, collector = lex(source)
        assert len(tokens) == 1
        assert tokens[0].kind is TokenKind.IDENTIFIER
        assert tokens[0].value == "abc"
        assert tokens[0].text == source
        assert len(collector) == 0

    def test_unicode_escaped_keyword_is_identifier(self):
        """A keyword spelled with an escape is an identifier, like '@int'."""
        tokens, _ = lex("\\u0069nt x")
        assert tokens[0].kind is TokenKind.IDENTIFIER
        assert tokens[0].value == "int"

    def test_incomplete_unicode_escape(self):
        """A backslash that is not a full escape is an unexpected character."""
        assert codes("\\u00g1") == ["CS1056"]


# =============================================================================
# Operator Tests
# =============================================================================

class TestOperators:
    """Test operator and punctuation scanning."""

    @pytest.mark.parametrize("op", ["??=", "<<=", "??", "?.", "=>", "..", "->", "==", "&&", "++", "<<"])
    def test_multi_character_operators(self, op):
        """Multi-character operators are scanned as one token."""
        assert texts(f"a {op} b")[1] == op

    def test_shift_right_is_split(self):
        """'>>' is produced as two adjacent '>' tokens."""
        tokens, _ = lex("a >> b")
        assert [t.text for t in tokens] == ["a", ">", ">", "b"]
        assert tokens[1].end == tokens[2].start

    def test_shift_right_assignment_is_split(self):
        """'>>=' is produced as '>' followed by '>='."""
        assert texts("a >>= 2") == ["a", ">", ">=", "2"]

    def test_nested_generic_close(self):
        """List<List<int>> closes with two '>' tokens."""
        assert texts("List<List<int>>")[-2:] == [">", ">"]

    def test_conditional_before_real_literal(self):
        """'?.5' lexes as '?' followed by the literal '.5'."""
        assert texts("a?.5:b") == ["a", "?", ".5", ":", "b"]

    def test_punctuation_kind(self):
        """Braces, parentheses and '::' are PUNCTUATION."""
        tokens, _ = lex("{ } ( ) :: ;")
        assert all(t.kind is TokenKind.PUNCTUATION for t in tokens)

    def test_is_punct_matches_text(self):
        """is_punct accepts several candidate texts."""
        tokens, _ = lex("+")
        assert tokens[0].is_punct("-", "+")
        assert not tokens[0].is_punct("-")


# =============================================================================
# Numeric Literal Tests
# =============================================================================

class TestNumbers:
    """Test numeric literal scanning and the features they carry."""

    @pytest.mark.parametrize("literal", [
        "0", "123", "1.5", ".5", "1e10", "1.5E-3", "2.0f", "10m", "3d",
        "0xFF", "0XabCD", "10u", "10UL", "10lu", "0b1010",
    ])
    def test_valid_numbers(self, literal):
        """Valid literals scan as a single token with no diagnostics."""
        tokens, collector = lex(literal)
        assert len(tokens) == 1
        assert tokens[0].kind is TokenKind.NUMERIC_LITERAL
        assert tokens[0].text == literal
        assert len(collector) == 0

    def test_binary_feature(self):
        """Binary literals carry the binary literal feature."""
        tokens, _ = lex("0b1010")
        assert Feature.BINARY_LITERALS in tokens[0].features

    def test_digit_separator_feature(self):
        """Underscores between digits carry the digit separator feature."""
        tokens, _ = lex("1_000_000")
        assert Feature.DIGIT_SEPARATORS in tokens[0].features
        assert Feature.LEADING_DIGIT_SEPARATOR not in tokens[0].features

    def test_leading_separator_feature(self):
        """A separator right after 0x needs the leading separator feature."""
        tokens, collector = lex("0x_FF")
        assert Feature.LEADING_DIGIT_SEPARATOR in tokens[0].features
        assert len(collector) == 0

    def test_plain_number_has_no_features(self):
        """Plain decimal literals carry no version features."""
        tokens, _ = lex("42")
        assert tokens[0].features == ()

    @pytest.mark.parametrize("literal", ["1_", "0x", "0b102", "0b"])
    def test_invalid_numbers(self, literal):
        """Malformed literals report CS1013."""
        assert codes(literal) == ["CS1013"]

    @pytest.mark.parametrize("literal", ["1e", "1e+", "2.5E-"])
    def test_missing_exponent_digits(self, literal):
        """An exponent without digits is an invalid real literal."""
        tokens, collector = lex(literal + ";")
        assert [t.text for t in tokens] == [literal, ";"]
        assert [d.code for d in collector.sorted()] == ["CS0595"]


# =============================================================================
# Character and String Literal Tests
# =============================================================================

class TestStrings:
    """Test character, string, verbatim and raw literals."""

    def test_char_literal(self):
        """A simple character literal."""
        tokens, collector = lex("'a'")
        assert tokens[0].kind is TokenKind.CHAR_LITERAL
        assert len(collector) == 0

    def test_char_escapes(self):
        """Escapes inside character literals."""
        for literal in (r"'\n'", r"'\''", r"'\x41'", r"'\u0041'"):
            assert codes(literal) == [], literal

    def test_empty_char(self):
        """'' is an empty character literal."""
        assert codes("''") == ["CS1011"]

    def test_too_many_chars(self):
        """'ab' has too many characters."""
        assert codes("'ab'") == ["CS1012"]

    def test_char_newline(self):
        """A character literal cut off by a newline."""
        assert codes("'a\nb") == ["CS1010"]

    def test_string_literal(self):
        """A regular string with escapes."""
        tokens, collector = lex(r'"a\tb\"c"')
        assert tokens[0].kind is TokenKind.STRING_LITERAL
        assert len(collector) == 0

    def test_newline_in_string(self):
        """A regular string may not span lines."""
        assert codes('"abc\nx') == ["CS1010"]

    def test_bad_escape(self):
        """Unknown escape sequences report CS1009."""
        assert codes(r'"\q"') == ["CS1009"]

    def test_escape_character_feature(self):
        r"""'\e' is valid but needs the escape character feature."""
        tokens, collector = lex(r'"\e"')
        assert Feature.ESCAPE_CHARACTER in tokens[0].features
        assert len(collector) == 0

    def test_utf8_suffix(self):
        """u8 after a string is part of the literal."""
        tokens, _ = lex('"abc"u8')
        assert len(tokens) == 1
        assert Feature.UTF8_STRING_LITERALS in tokens[0].features

    def test_verbatim_string(self):
        """Verbatim strings span lines and double their quotes."""
        tokens, collector = lex('@"c:\\dir\n""quoted"""')
        assert len(tokens) == 1
        assert tokens[0].kind is TokenKind.STRING_LITERAL
        assert len(collector) == 0

    def test_unterminated_verbatim(self):
        """A verbatim string without its closing quote."""
        assert codes('@"abc') == ["CS1039"]

    def test_single_line_raw_string(self):
        """Raw strings carry the raw string feature."""
        tokens, collector = lex('"""say "hi" here"""')
        assert len(tokens) == 1
        assert Feature.RAW_STRING_LITERALS in tokens[0].features
        assert len(collector) == 0

    def test_multi_line_raw_string(self):
        """Content lines share the closing line's indentation."""
        source = 'var s = """\n    hello\n      world\n    """;'
        assert texts(source)[-1] == ";"
        assert codes(source) == []

    def test_raw_string_bad_indentation(self):
        """A content line left of the closing quotes."""
        source = 'var s = """\n  hello\n    """;'
        assert codes(source) == ["CS8999"]

    def test_raw_string_closing_not_alone(self):
        """Closing quotes of a multi-line raw string must start their line."""
        source = 'var s = """\n  hello """;'
        assert "CS9000" in codes(source)

    def test_unterminated_raw_string(self):
        """A single-line raw string without its closing quotes."""
        assert codes('"""abc') == ["CS8997"]


# =============================================================================
# Interpolated String Tests
# =============================================================================

class TestInterpolatedStrings:
    """Test the token groups produced for interpolated strings."""

    def test_token_group(self):
        """Text, hole, alignment and format parts are separate tokens."""
        tokens, collector = lex('$"a{x,5:N2}b"')
        assert [t.kind for t in tokens] == [
            TokenKind.INTERPOLATED_STRING_START,
            TokenKind.INTERPOLATED_STRING_TEXT,
            TokenKind.INTERPOLATION_START,
            TokenKind.IDENTIFIER,
            TokenKind.PUNCTUATION,
            TokenKind.NUMERIC_LITERAL,
            TokenKind.INTERPOLATION_FORMAT,
            TokenKind.INTERPOLATION_END,
            TokenKind.INTERPOLATED_STRING_TEXT,
            TokenKind.INTERPOLATED_STRING_END,
        ]
        assert tokens[6].text == ":N2"
        assert len(collector) == 0

    def test_start_carries_feature(self):
        """The start token records that interpolation was used."""
        tokens, _ = lex('$"{x}"')
        assert Feature.INTERPOLATED_STRINGS in tokens[0].features

    def test_escaped_braces_are_text(self):
        """Doubled braces are text, not holes."""
        tokens, collector = lex('$"{{literal}}"')
        kinds = [t.kind for t in tokens]
        assert TokenKind.INTERPOLATION_START not in kinds
        assert len(collector) == 0

    def test_nested_interpolated_string(self):
        """A hole may contain another interpolated string."""
        tokens, collector = lex('$"{$"{x}"}"')
        starts = [t for t in tokens if t.kind is TokenKind.INTERPOLATED_STRING_START]
        assert len(starts) == 2
        assert len(collector) == 0

    def test_hole_with_parenthesized_conditional(self):
        """A ':' inside parentheses does not start a format."""
        tokens, _ = lex('$"{(a ? b : c)}"')
        assert TokenKind.INTERPOLATION_FORMAT not in [t.kind for t in tokens]

    def test_verbatim_interpolated(self):
        """$@ and @$ both start a verbatim interpolated string."""
        tokens, _ = lex('@$"a\n{x}"')
        assert Feature.ALTERNATIVE_INTERPOLATED_VERBATIM in tokens[0].features
        tokens, _ = lex('$@"a\n{x}"')
        assert Feature.ALTERNATIVE_INTERPOLATED_VERBATIM not in tokens[0].features

    def test_raw_interpolated(self):
        """$$ raw strings open holes with two braces."""
        tokens, collector = lex('$$"""{literal} {{x}}"""')
        holes = [t for t in tokens if t.kind is TokenKind.INTERPOLATION_START]
        assert len(holes) == 1
        assert holes[0].text == "{{"
        assert Feature.RAW_STRING_LITERALS in tokens[0].features
        assert len(collector) == 0

    def test_unescaped_close_brace(self):
        """A lone '}' in the text must be doubled."""
        assert codes('$"a}b"') == ["CS8087"]

    def test_newline_in_hole(self):
        """A newline inside a hole of a regular string needs newer C#."""
        tokens, _ = lex('$"{x +\n y}"')
        assert Feature.NEWLINES_IN_INTERPOLATIONS in tokens[0].features

    def test_unterminated_interpolated(self):
        """The end token is emitted even when the string never closes."""
        tokens, collector = lex('$"abc')
        assert tokens[-1].kind is TokenKind.INTERPOLATED_STRING_END
        assert [d.code for d in collector.sorted()] == ["CS1039"]

    def test_nesting_at_limit(self):
        """Interpolated strings may nest up to the limit."""
        depth = MAX_INTERPOLATION_DEPTH
        _, collector = lex('$"{' * depth + "1" + '}"' * depth)
        assert len(collector) == 0

    def test_nesting_past_limit(self):
        """Deeper nesting reports CS8078 once and gives up on the rest."""
        depth = MAX_INTERPOLATION_DEPTH + 1
        _, collector = lex('$"{' * depth + "1" + '}"' * depth + " '' ` \"open")
        assert [d.code for d in collector.sorted()] == ["CS8078"]


# =============================================================================
# Directive Line Tests
# =============================================================================

class TestDirectives:
    """Test recognition of directive lines."""

    def test_directive_tokens(self):
        """A directive line is framed by DIRECTIVE_START and END_OF_DIRECTIVE."""
        tokens, _ = lex("#if DEBUG\nx")
        assert [t.kind for t in tokens] == [
            TokenKind.DIRECTIVE_START,
            TokenKind.KEYWORD,
            TokenKind.IDENTIFIER,
            TokenKind.END_OF_DIRECTIVE,
            TokenKind.IDENTIFIER,
        ]

    def test_message_directive(self):
        """The text after #error is one message token."""
        tokens, _ = lex("#error  something bad  ")
        assert tokens[2].kind is TokenKind.DIRECTIVE_MESSAGE
        assert tokens[2].text == "something bad"

    def test_indented_directive(self):
        """Leading whitespace before '#' is allowed."""
        tokens, _ = lex("    #region Setup\n")
        assert tokens[0].kind is TokenKind.DIRECTIVE_START

    def test_hash_after_token(self):
        """'#' later in a line is not a directive."""
        assert codes("x #if") == ["CS1040"]

    def test_no_lexical_errors_inside_directive(self):
        """Malformed text in a directive line is left to the preprocessor."""
        assert codes("#line 'ab'\n") == []


# =============================================================================
# Line Terminator and Whitespace Tests
# =============================================================================

class TestLineTerminators:
    """Test every C# line terminator and the extra whitespace characters."""

    @pytest.mark.parametrize("newline", ["\n", "\r", "\r\n", "\u0085", "\u2028", "\u2029"])
    def test_line_counting(self, newline):
        """Each terminator starts a new line."""
        tokens, _ = lex("a" + newline + "b")
        assert (tokens[1].start.line, tokens[1].start.column) == (2, 1)
        assert tokens[1].at_line_start

    def test_crlf_is_one_line(self):
        """CR LF counts once; a lone CR after it counts again."""
        tokens, _ = lex("a\r\n\rb")
        assert tokens[1].start.line == 3

    @pytest.mark.parametrize("newline", ["\r", "\u2028"])
    def test_line_comment_ends_at_terminator(self, newline):
        """A // comment stops at any line terminator."""
        assert texts("// note" + newline + "x") == ["x"]

    def test_directive_after_cr(self):
        """A directive is recognized on a line that follows a lone CR."""
        tokens, _ = lex("x\r#if A\ry")
        assert [t.kind for t in tokens] == [
            TokenKind.IDENTIFIER,
            TokenKind.DIRECTIVE_START,
            TokenKind.KEYWORD,
            TokenKind.IDENTIFIER,
            TokenKind.END_OF_DIRECTIVE,
            TokenKind.IDENTIFIER,
        ]

    def test_skip_disabled_text_with_cr(self):
        """Disabled lines separated by CR are skipped up to the next directive."""
        lexer = Lexer("#if A\rbroken(\r  #endif\rx")
        tokens = lexer.tokenize()
        head = [next(tokens) for _ in range(4)]
        assert head[-1].kind is TokenKind.END_OF_DIRECTIVE
        lexer.skip_disabled_text()
        assert [t.text for t in tokens] == ["#", "endif", "", "x", ""]

    def test_newline_in_string_at_cr(self):
        """A CR ends a regular string literal."""
        assert codes('"abc\rx') == ["CS1010"]

    @pytest.mark.parametrize("char", ["\ufeff", "\x1a"])
    def test_extra_whitespace(self, char):
        """U+FEFF and U+001A are skipped like spaces."""
        tokens, collector = lex(char + "class" + char + "C" + char)
        assert [t.text for t in tokens] == ["class", "C"]
        assert tokens[0].at_line_start
        assert len(collector) == 0

    def test_directive_after_byte_order_mark(self):
        """A byte order mark does not stop a directive on the first line."""
        tokens, _ = lex("\ufeff#define X\n")
        assert tokens[0].kind is TokenKind.DIRECTIVE_START


# =============================================================================
# Error Handling Tests
# =============================================================================

class TestErrors:
    """Test that errors are reported and scanning continues."""

    def test_unexpected_character(self):
        """Unknown characters become BAD_TOKEN tokens."""
        tokens, collector = lex("a ` b")
        assert [t.kind for t in tokens] == [TokenKind.IDENTIFIER, TokenKind.BAD_TOKEN, TokenKind.IDENTIFIER]
        assert [d.code for d in collector.sorted()] == ["CS1056"]

    def test_unterminated_block_comment(self):
        """A block comment running to end of input."""
        assert codes("a /* never closed") == ["CS1035"]

    def test_scanning_continues_after_error(self):
        """Tokens after an error are still produced."""
        assert texts("'' x")[-1] == "x"

    def test_lexer_never_raises(self):
        """Arbitrary punctuation soup tokenizes to completion."""
        tokens, _ = lex("\\ $ @ ` ' \" {{ }} #")
        assert tokens
