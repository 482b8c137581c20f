# =============================================================================
# test_validator.py - Validation Session Tests
# =============================================================================
# Tests for the validate() entry point.
#
# Test coverage includes:
#   - Result fields: success, diagnostics order, errors/warnings views
#   - Language version resolution reported in the result
#   - Preprocessor symbols and script kind passed through options
#   - Independence of sessions (determinism, options left untouched)
#   - CR, CR LF and Unicode line terminators, byte order marks
#   - Termination on arbitrary input
# =============================================================================

import random

import pytest
from csval import (
    Diagnostic,
    LanguageVersion,
    ParseOptions,
    Severity,
    SourceKind,
    ValidationResult,
    validate,
)


# =============================================================================
# Result Tests
# =============================================================================

class TestResult:
    """Test the fields of ValidationResult."""

    def test_valid_source(self):
        """Valid source succeeds with no diagnostics."""
        result = validate("class C { }")
        assert isinstance(result, ValidationResult)
        assert result.success
        assert result.diagnostics == ()

    def test_default_options(self):
        """Omitting options is the same as ParseOptions()."""
        source = "record R(int X);"
        assert validate(source) == validate(source, ParseOptions())

    def test_invalid_source(self):
        """A syntax error makes the run fail."""
        result = validate("class C { void M() { int x = 1 } }")
        assert not result.success
        [error] = result.errors
        assert isinstance(error, Diagnostic)
        assert error.format("Program.cs") == "Program.cs(1,31): error CS1002: ; expected"

    def test_warnings_do_not_fail(self):
        """A #warning is reported but the source is still valid."""
        result = validate("#warning later\nclass C { }")
        assert result.success
        assert result.errors == []
        assert [w.code for w in result.warnings] == ["CS1030"]
        assert result.warnings[0].severity is Severity.WARNING

    def test_diagnostics_sorted_by_position(self):
        """Diagnostics from every stage come out in source order."""
        source = (
            "class C {\n"
            "  void M() { int x = 1 }\n"
            "  char c = '';\n"
            "  void N() { F(1; }\n"
            "}\n"
            "#error stop\n"
        )
        result = validate(source)
        offsets = [d.span.start.offset for d in result.diagnostics]
        assert offsets == sorted(offsets)
        assert [d.code for d in result.diagnostics] == ["CS1002", "CS1011", "CS1026", "CS1029"]

    def test_byte_order_mark(self):
        """A byte order mark left in the text is whitespace."""
        assert validate("\ufeffclass C { }").success
        assert validate("class C\ufeff { }\x1a").success

    def test_empty_input(self):
        """Empty and whitespace-only sources are valid."""
        assert validate("").success
        assert validate("  \n\t\n").success


# =============================================================================
# Options Tests
# =============================================================================

class TestOptions:
    """Test that each option reaches the stage that uses it."""

    @pytest.mark.parametrize("version,resolved", [
        (LanguageVersion.DEFAULT, LanguageVersion.CSHARP14),
        (LanguageVersion.LATEST_MAJOR, LanguageVersion.CSHARP14),
        (LanguageVersion.LATEST, LanguageVersion.PREVIEW),
        (LanguageVersion.CSHARP7_3, LanguageVersion.CSHARP7_3),
    ])
    def test_language_version_resolved(self, version, resolved):
        """The result reports the concrete version."""
        assert validate("", ParseOptions(language_version=version)).language_version is resolved

    def test_preprocessor_symbols(self):
        """A defined symbol selects the other branch."""
        source = "#if FAST\nclass C { }\n#else\nclass {\n#endif\n"
        assert not validate(source).success
        assert validate(source, ParseOptions(preprocessor_symbols=frozenset({"FAST"}))).success

    def test_script_kind(self):
        """Script code allows a final expression without ';'."""
        source = "var x = 1;\nx"
        assert not validate(source).success
        assert validate(source, ParseOptions(kind=SourceKind.SCRIPT)).success

    def test_features(self):
        """Feature flags enable preview syntax."""
        source = 'class C { void M() { var d = ["a": 1]; } }'
        assert not validate(source).success
        assert validate(source, ParseOptions(features=frozenset({"dictionary-expressions"}))).success

    def test_options_not_modified(self):
        """The caller's symbol set survives #define and #undef."""
        symbols = {"A"}
        options = ParseOptions(preprocessor_symbols=symbols)
        validate("#define B\n#undef A\nclass C { }", options)
        assert symbols == {"A"}
        assert options.preprocessor_symbols == {"A"}
        assert options.language_version is LanguageVersion.DEFAULT

    def test_options_are_hashable(self):
        """Frozen options can be used as dictionary keys."""
        options = ParseOptions(
            preprocessor_symbols=frozenset({"DEBUG"}),
            features=frozenset({"dictionary-expressions"}),
        )
        assert hash(ParseOptions()) == hash(ParseOptions())
        assert {options: "cached"}[options] == "cached"

    def test_options_are_frozen(self):
        """ParseOptions cannot be changed after construction."""
        options = ParseOptions()
        with pytest.raises(AttributeError):
            options.kind = SourceKind.SCRIPT


# =============================================================================
# Session Independence Tests
# =============================================================================

class TestSessions:
    """Test that runs do not influence each other."""

    def test_deterministic(self):
        """The same input gives the same result every time."""
        source = "class C { void M() { x = ; F(1; } }\n#region\n"
        assert validate(source) == validate(source)

    def test_no_state_between_runs(self):
        """A failing run does not affect the next one."""
        validate("#define X\nclass {")
        result = validate("#if X\nbroken(\n#endif\nclass C { }")
        assert result.success


# =============================================================================
# Line Ending Tests
# =============================================================================

class TestLineEndings:
    """Test sources that use line terminators other than LF."""

    @pytest.mark.parametrize("newline", ["\n", "\r", "\r\n", "\u2028"])
    def test_disabled_region(self, newline):
        """Directives are found and disabled lines skipped with any terminator."""
        source = newline.join(["#if FOO", "broken(", "#endif", "class C { }"])
        assert validate(source).success

    def test_error_line_with_cr(self):
        """Positions count CR-only lines, and // comments end at CR."""
        result = validate("class C {\r// note\r int x = 1\r}")
        assert [(d.code, d.span.start.line) for d in result.errors] == [("CS1002", 3)]

    def test_crlf_positions(self):
        """CR LF counts as a single line."""
        result = validate("class C {\r\n  void M() { int x = 1 }\r\n}\r\n")
        [error] = result.errors
        assert (error.span.start.line, error.span.start.column) == (2, 23)


# =============================================================================
# Robustness Tests
# =============================================================================

# Fragments chosen to exercise as many grammar paths as possible
SOUP = [
    "class", "struct", "interface", "enum", "record", "namespace", "using",
    "public", "static", "async", "await", "void", "int", "var", "string",
    "if", "else", "for", "foreach", "in", "while", "do", "switch", "case",
    "default", "return", "try", "catch", "finally", "new", "is", "as", "not",
    "and", "or", "from", "select", "where", "delegate", "operator", "this",
    "x", "y", "List", "T", "_", "1", "0x1F", "2.5", '"s"', "'c'", '$"{x}"',
    "(", ")", "[", "]", "{", "}", "<", ">", ";", ",", ".", ":", "?", "??",
    "=", "=>", "==", "+", "-", "*", "!", "&&", "..", "?.", "::", "++", "\n",
]


class TestRobustness:
    """Test that arbitrary input terminates with a result."""

    @pytest.mark.parametrize("seed", range(200))
    def test_token_soup(self, seed):
        """Random token sequences produce sorted diagnostics, never an exception."""
        rng = random.Random(seed)
        source = " ".join(rng.choice(SOUP) for _ in range(rng.randint(1, 80)))
        result = validate(source)
        offsets = [d.span.start.offset for d in result.diagnostics]
        assert offsets == sorted(offsets)
        assert result.success == (not result.errors)

    @pytest.mark.parametrize("seed", range(100))
    def test_character_soup(self, seed):
        """Random characters, including quotes and directives, never crash."""
        rng = random.Random(seed)
        alphabet = "abcXYZ019 \t\n{}()[]<>;:,.?!=+-*/%&|^~\"'$@#\\_"
        source = "".join(rng.choice(alphabet) for _ in range(rng.randint(1, 200)))
        result = validate(source)
        assert all(d.span.start.offset <= len(source) for d in result.diagnostics)

    @pytest.mark.parametrize("opener,closer", [
        ("(", ")"),
        ("[", "]"),
        ("{", "}"),
        ("new[] {", "}"),
        ("x => ", ""),
        ("-", ""),
        ('$"{', '}"'),
    ])
    def test_deep_nesting(self, opener, closer):
        """Pathological nesting of any construct is reported as too complex."""
        body = "var v = " + opener * 3000 + "1" + closer * 3000 + ";"
        result = validate("class C { void M() { " + body + " } }")
        assert [d.code for d in result.errors] == ["CS8078"]
