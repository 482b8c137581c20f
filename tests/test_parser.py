# =============================================================================
# test_parser.py - Parser Tests
# =============================================================================
# Tests for the C# grammar checker.
#
# Test coverage includes:
#   - Well-formed programs across declarations, statements and expressions
#   - Ambiguity resolution: generics vs comparisons, casts, lambdas, shifts
#   - Error positions and codes for missing tokens
#   - Error recovery (several errors per run, one error per token)
#   - Language version gating of newer constructs
#   - Top-level statements and script code
#   - Excessive nesting
# =============================================================================

import pytest
from csval.syntax.errors import DiagnosticCollector
from csval.syntax.parser import Parser
from csval.syntax.validator import ParseOptions, SourceKind, validate
from csval.syntax.versions import LanguageVersion, VersionGate


# =============================================================================
# Helper Functions
# =============================================================================

def check(
    source: str,
    version: LanguageVersion = LanguageVersion.DEFAULT,
    script: bool = False,
    features=None,
) -> list[str]:
    """
    Validate source and return the diagnostic codes in source order.

    Args:
        source: C# source text
        version: Language version to parse with
        script: Parse as script code
        features: Experimental feature flags
    """
    options = ParseOptions(
        language_version=version,
        kind=SourceKind.SCRIPT if script else SourceKind.REGULAR,
        features=frozenset(features or ()),
    )
    return [d.code for d in validate(source, options).diagnostics]


def in_method(body: str) -> str:
    """Wrap statements in a class and method."""
    return "class C { void M() { " + body + " } }"


PROGRAM = """
using System;
using System.Collections.Generic;
using System.Linq;
using System.Threading.Tasks;
using static System.Math;
using Alias = System.Collections.Generic.Dictionary<string, int>;

namespace Demo.App
{
    public interface IShape
    {
        double Area { get; }
        string Describe();
    }

    public enum Color { Red, Green = 2, Blue, }

    public delegate void Changed(object sender, EventArgs e);

    [Serializable]
    public sealed class Circle : IShape, IComparable<Circle>
    {
        private readonly double _radius;
        private static int s_count = 0, s_total;
        public const double Tau = 2 * PI;

        public event Changed OnChanged;

        public Circle(double radius) : base()
        {
            _radius = radius;
            s_count++;
        }

        ~Circle() { s_count--; }

        public double Area => PI * _radius * _radius;

        public string Name { get; private set; } = "circle";

        public double this[int index]
        {
            get { return index == 0 ? _radius : Area; }
        }

        public string Describe() => $"Circle r={_radius:F2} area={Area,10:N1}";

        public int CompareTo(Circle other) => _radius.CompareTo(other?._radius ?? 0);

        public static Circle operator +(Circle a, Circle b) => new Circle(a._radius + b._radius);

        public static implicit operator double(Circle c) => c._radius;

        public override string ToString()
        {
            return string.Format("{0}", Describe());
        }
    }

    internal static class Program
    {
        private static async Task<int> ComputeAsync(IEnumerable<int> values)
        {
            await Task.Delay(10);
            return values.Sum();
        }

        public static int Main(string[] args)
        {
            var shapes = new List<IShape> { new Circle(1.5), new Circle(2) };
            Dictionary<string, List<int>> map = new Dictionary<string, List<int>>();
            int[] numbers = { 1, 2, 3 };
            int total = 0;

            foreach (var shape in shapes)
            {
                if (shape is Circle c && c.Area > 1)
                {
                    total += (int)c.Area;
                }
                else if (shape == null)
                {
                    continue;
                }
                else
                {
                    break;
                }
            }

            for (int i = 0; i < numbers.Length; i++)
            {
                total += numbers[i] << 1 >> 1;
            }

            var query = from n in numbers
                        where n % 2 == 1
                        orderby n descending
                        select n * 2;

            Func<int, int> square = x => x * x;
            Func<int, int, int> add = (a, b) => a + b;
            Action log = () => Console.WriteLine("done");

            string label = total switch
            {
                0 => "none",
                < 10 => "few",
                _ => "many",
            };

            switch (label)
            {
                case "none":
                case "few":
                    Console.WriteLine(label);
                    break;
                default:
                    goto case "none";
            }

            try
            {
                checked { total = total * 2; }
            }
            catch (OverflowException ex) when (ex.Message != null)
            {
                throw;
            }
            finally
            {
                log();
            }

            using (var reader = new System.IO.StringReader("text"))
            {
                reader.ReadLine();
            }

            int Local(int v) => v + 1;
            (int first, string second) pair = (1, "one");
            var (p, q) = pair;
            object boxed = default(int);
            var items = new[] { 1, 2, 3 };
            var anon = new { Name = "x", Count = 2 };
            total = Local(total) + square(2) + add(1, 2) + query.Count() + items.Length;
            label ??= "fallback";
            Console.WriteLine(nameof(total) + typeof(List<>).Name + sizeof(int));
            lock (map) { map["a"] = new List<int>(); }
            do { total--; } while (total > 100);
            while (false) ;
            return ComputeAsync(numbers).Result + p + (q.Length > 0 ? 1 : 0);
        }
    }
}
"""


# =============================================================================
# Well-Formed Program Tests
# =============================================================================

class TestWellFormed:
    """Test that valid programs produce no diagnostics."""

    def test_empty_source(self):
        """An empty file is a valid compilation unit."""
        assert check("") == []

    def test_complete_program(self):
        """A program using many constructs at once."""
        assert check(PROGRAM) == []

    @pytest.mark.parametrize("source", [
        "namespace A.B { class C { } }",
        "namespace A.B;\nclass C { }",
        "extern alias Lib;\nusing System;",
        "global using System.Text;",
        "[assembly: System.CLSCompliant(true)]\nclass C { }",
        "public partial class C<T> where T : class, new() { }",
        "record Person(string First, string Last);",
        "public record struct Point(int X, int Y) { public int Sum => X + Y; }",
        "readonly ref struct Span { }",
        "file class Hidden { }",
        "class C(int value) { int V => value; }",
        "interface I { void M(); int P { get; set; } event System.Action E; }",
        "enum E : byte { A = 1, B = A | 2 }",
        "static class Ext { public static int Twice(this int x) => x * 2; }",
        "class C { public required string Name { get; init; } }",
        "class C { public int this[int i, int j] { get => i; set { } } }",
        "class C { void IDisposable.Dispose() { } }",
        "class C { public static bool operator ==(C a, C b) => true; public static bool operator !=(C a, C b) => false; }",
        "class C { unsafe fixed byte buffer[16]; }",
        "class C { T Get<T>() where T : new() => new T(); }",
        "class C { event System.EventHandler E { add { } remove { } } }",
        "class C { static C() { } }",
    ])
    def test_declarations(self, source):
        """Declarations of every kind."""
        assert check(source) == []

    @pytest.mark.parametrize("body", [
        "int x = 5, y;",
        "var list = new List<int> { 1, 2 };",
        "var d = new Dictionary<string, int> { [\"a\"] = 1 };",
        "Foo? f = null;",
        "List<int>.Enumerator e = default;",
        "int[,] grid = new int[3, 4];",
        "x = y = z;",
        "a?.b?.c();",
        "x!.Length.ToString();",
        "var r = x switch { 1 => \"a\", _ => \"b\" };",
        "var s = $\"{a} and {b,5} and {c:N2}\";",
        "yield return 1;",
        "yield break;",
        "foreach (var (k, v) in pairs) { }",
        "await foreach (var item in stream) { }",
        "using var file = Open();",
        "for (;;) { break; }",
        "label: x++;",
        "goto label;",
        "unsafe { int* p = &x; *p = 1; }",
        "fixed (byte* p = data) { }",
        "Span<int> s = stackalloc int[10];",
        "if (o is Point { X: 0 } p) { }",
        "if (o is not null and { Length: > 0 }) { }",
        "if (arr is [1, .., var last]) { }",
        "var t = (a: 1, b: 2);",
        "int[] xs = [1, 2, ..rest];",
        "var range = items[1..^1];",
        "var p2 = p with { X = 1 };",
        "var f = static (int a) => a;",
        "var g = async () => await Task.Yield();",
        "var h = int (string s) => s.Length;",
        "Action<int> act = delegate (int i) { };",
        "var q = from c in customers join o in orders on c.Id equals o.Id into g select new { c, g };",
        "var grouped = from w in words group w by w.Length into lengths select lengths;",
        "obj?.Prop = 1;",
        "var hex = 0xFF_FF + 0b1010 + 1_000;",
        "string raw = \"\"\"a \"quoted\" word\"\"\";",
        "var u = \"bytes\"u8;",
        "throw new InvalidOperationException(nameof(x));",
        "var z = x ?? throw new ArgumentNullException();",
        "Method(out var result, ref x, in y);",
        "Method(name: \"n\", value: 1);",
    ])
    def test_statements(self, body):
        """Statements and expressions inside a method body."""
        assert check(in_method(body)) == []

    def test_top_level_statements(self):
        """A program made of top-level statements followed by a type."""
        source = 'using System;\nConsole.WriteLine("hi");\nint Add(int a, int b) => a + b;\nclass Helper { }'
        assert check(source) == []


# =============================================================================
# Ambiguity Tests
# =============================================================================

class TestAmbiguities:
    """Test lookahead decisions in ambiguous grammar positions."""

    def test_comparisons_not_generics(self):
        """F(a < b, c > d) passes two comparisons."""
        assert check(in_method("F(a < b, c > d);")) == []

    def test_generic_method_call(self):
        """F<int>(1) is a generic invocation."""
        assert check(in_method("var x = F<int>(1);")) == []

    def test_nested_generic_close(self):
        """'>>' closes two type argument lists."""
        assert check(in_method("List<List<int>> x = null;")) == []

    def test_shift_operators(self):
        """Adjacent '>' tokens act as shift operators in expressions."""
        assert check(in_method("x >>= 1; x = y >> 2; x = y >>> 3;")) == []

    def test_separated_greater_than_is_not_shift(self):
        """'> >' with whitespace is not a shift."""
        assert check(in_method("x = y > > 2;")) == ["CS1525"]

    def test_casts(self):
        """Casts of predefined, named and parenthesized operands."""
        assert check(in_method("var a = (int)x; var b = (Foo)y; var c = (int)-x;")) == []

    def test_parenthesized_is_not_cast(self):
        """(a) + b is an addition."""
        assert check(in_method("var c = (a) + b;")) == []

    def test_conditional_with_nullable_like_tokens(self):
        """a ? b : c is not a nullable declaration."""
        assert check(in_method("var r = a ? b : c;")) == []

    def test_record_as_identifier(self):
        """'record' may still name a local variable."""
        assert check(in_method("record = 1;")) == []

    def test_using_alias_with_generic_arguments(self):
        """Predefined types inside alias type arguments are not a newer alias form."""
        assert check("using M = System.Collections.Generic.Dictionary<string, int>;", LanguageVersion.CSHARP2) == []


# =============================================================================
# Missing Token Tests
# =============================================================================

class TestMissingTokens:
    """Test codes and positions of missing-token errors."""

    def test_missing_semicolon_position(self):
        """The error is placed at the end of the previous token."""
        result = validate("class C { void M() { int x = 1 } }")
        [error] = result.errors
        assert error.code == "CS1002"
        assert error.message == "; expected"
        assert (error.span.start.line, error.span.start.column) == (1, 31)

    def test_missing_semicolon_on_previous_line(self):
        """A missing ';' is reported on the line of the last token."""
        result = validate("class C {\n  void M() {\n    F()\n    G();\n  }\n}")
        [error] = result.errors
        assert (error.span.start.line, error.span.start.column) == (3, 8)

    def test_missing_close_paren(self):
        """Unclosed call arguments."""
        assert check(in_method("F(1;")) == ["CS1026"]

    def test_missing_close_brace_at_end(self):
        """A class left open at end of input."""
        assert check("class C { void M() { }") == ["CS1513"]

    def test_missing_open_brace(self):
        """A method header with no body."""
        assert check("class C { void M() int x; }") == ["CS1514"]

    def test_invalid_expression_term(self):
        """An initializer with no expression."""
        result = validate("class C { int x = ; }")
        assert [e.message for e in result.errors] == ["Invalid expression term ';'"]

    def test_identifier_expected(self):
        """A class without a name."""
        assert check("class { }") == ["CS1001"]


# =============================================================================
# Error Recovery Tests
# =============================================================================

class TestRecovery:
    """Test that parsing continues after errors."""

    def test_errors_on_separate_statements(self):
        """Each broken statement is reported."""
        assert check(in_method("int x = 1 int y = 2")) == ["CS1002", "CS1002"]

    def test_one_error_per_token(self):
        """Several missing ')' at the same place give one diagnostic."""
        assert check(in_method("F((((1;")) == ["CS1026"]

    def test_errors_in_separate_members(self):
        """A broken member does not hide errors in later members."""
        source = "class C { void A() { x = ; } void B() { F(1; } }"
        assert check(source) == ["CS1525", "CS1026"]

    def test_stray_close_brace(self):
        """An extra '}' at file level."""
        assert check("class C { } }") == ["CS1022"]

    def test_invalid_member_token(self):
        """A literal where a member should be."""
        result = validate("class C { 123 }")
        [error] = result.errors
        assert error.code == "CS1519"
        assert "'123'" in error.message

    def test_try_without_handlers(self):
        """try needs catch or finally."""
        assert check(in_method("try { }")) == ["CS1524"]

    def test_embedded_declaration(self):
        """A declaration cannot be the body of an if."""
        assert check(in_method("if (true) int x = 1;")) == ["CS1023"]

    def test_bad_accessor(self):
        """Only get, set and init are property accessors."""
        assert check("class C { int P { foo; } }") == ["CS1014"]

    def test_bad_constructor_initializer(self):
        """A constructor initializer must call this or base."""
        assert check("class C { C() : foo() { } }") == ["CS1018"]

    def test_bad_operator(self):
        """An operator declaration with no operator."""
        assert check("class C { public static C operator (C a) => a; }") == ["CS1037"]

    def test_query_without_select(self):
        """A query body must end in select or group."""
        assert check(in_method("var q = from x in xs where x > 0;")) == ["CS0742"]

    def test_new_without_arguments(self):
        """new T needs (), [] or an initializer."""
        assert check(in_method("var x = new Foo;")) == ["CS1526"]

    def test_using_after_members(self):
        """Using directives must come first."""
        assert check("class C { }\nusing System;") == ["CS1529"]

    def test_statement_after_type(self):
        """Top-level statements must precede type declarations."""
        assert check("class C { }\nSystem.Console.WriteLine();") == ["CS8803"]

    def test_version_error_does_not_stop_parse(self):
        """A version error and a later syntax error are both reported."""
        source = "record R(int X);\nclass C { void M() { int x = 1 } }"
        assert check(source, LanguageVersion.CSHARP8) == ["CS8400", "CS1002"]


# =============================================================================
# Language Version Tests
# =============================================================================

class TestVersionGating:
    """Test that constructs are checked against the language version."""

    @pytest.mark.parametrize("source,version,code", [
        ("class C { System.Collections.Generic.List<int> x; }", LanguageVersion.CSHARP1, "CS8022"),
        (in_method("F(x => x);"), LanguageVersion.CSHARP2, "CS8023"),
        ("class C { async void M() { } }", LanguageVersion.CSHARP4, "CS8025"),
        ('class C { string s = $"{1}"; }', LanguageVersion.CSHARP5, "CS8026"),
        ("class C { int x = 0b1; }", LanguageVersion.CSHARP6, "CS8059"),
        ("record R(int X);", LanguageVersion.CSHARP7, "CS8107"),
        ("record R(int X);", LanguageVersion.CSHARP7_3, "CS8370"),
        ("class C { int M(int x) => x switch { _ => 0 }; }", LanguageVersion.CSHARP7_3, "CS8370"),
        ("System.Console.WriteLine();", LanguageVersion.CSHARP8, "CS8400"),
        ("namespace N;", LanguageVersion.CSHARP9, "CS8773"),
        ('class C { string s = """raw"""; }', LanguageVersion.CSHARP10, "CS8936"),
        (in_method("x = y >>> 2;"), LanguageVersion.CSHARP10, "CS8936"),
        ("class C { [field: NonSerialized] int P { get; set; } }", LanguageVersion.CSHARP7_2, "CS8320"),
        (in_method("int[] a = [1, 2];"), LanguageVersion.CSHARP11, "CS9058"),
    ])
    def test_feature_requires_newer_version(self, source, version, code):
        """The construct is reported with the code for the current version."""
        assert check(source, version) == [code]

    @pytest.mark.parametrize("source", [
        "record R(int X);",
        "namespace N;",
        in_method("x = y >>> 2;"),
        in_method("int[] a = [1, 2];"),
        "class C { [field: NonSerialized] int P { get; set; } }",
    ])
    def test_same_source_valid_at_default(self, source):
        """The default version accepts every released feature."""
        assert check(source) == []

    def test_version_message(self):
        """The message names the feature and both versions."""
        options = ParseOptions(language_version=LanguageVersion.CSHARP7)
        [error] = validate("record R(int X);", options).errors
        assert error.message == (
            "Feature 'records' is not available in C# 7.0. "
            "Please use language version 9.0 or greater."
        )

    def test_type_patterns_need_no_version(self):
        """'x is T' is C# 1; declaration and null patterns are C# 7."""
        assert check(in_method("var b = o is string;"), LanguageVersion.CSHARP6) == []
        assert check(in_method("var b = o is string s;"), LanguageVersion.CSHARP6) == ["CS8059"]
        assert check(in_method("var b = o is null;"), LanguageVersion.CSHARP6) == ["CS8059"]

    def test_preview_feature(self):
        """Dictionary expressions need preview or the feature flag."""
        source = in_method('var d = ["a": 1];')
        assert check(source) == ["CS8652"]
        assert check(source, LanguageVersion.LATEST) == []
        assert check(source, features={"dictionary-expressions"}) == []

    def test_field_target_only_gated_on_properties(self):
        """'[field: ...]' on a plain field is C# 1."""
        source = "class C { [field: NonSerialized] int f; }"
        assert check(source, LanguageVersion.CSHARP7_2) == []
        source = "class C { [field: A, B] [return: C] int P { get; set; } }"
        assert check(source, LanguageVersion.CSHARP7_2) == ["CS8320"]

    def test_each_use_is_reported(self):
        """Every disallowed use gets its own diagnostic."""
        source = "record A(int X);\nrecord B(int Y);"
        assert check(source, LanguageVersion.CSHARP8) == ["CS8400", "CS8400"]

    def test_result_reports_resolved_version(self):
        """The result carries the concrete version used."""
        assert validate("", ParseOptions(language_version=LanguageVersion.LATEST)).language_version \
            is LanguageVersion.PREVIEW


# =============================================================================
# Script Code Tests
# =============================================================================

class TestScripts:
    """Test script parsing rules."""

    def test_final_expression_without_semicolon(self):
        """Script code may end with a bare expression."""
        assert check("int x = 1;\nx + 1", script=True) == []

    def test_regular_code_needs_semicolon(self):
        """The same text is an error in a regular file."""
        assert check("int x = 1;\nx + 1") == ["CS1002"]

    def test_namespace_in_script(self):
        """Scripts cannot declare namespaces."""
        assert check("namespace N { }", script=True) == ["CS7021"]

    def test_script_members_and_statements(self):
        """Scripts mix methods, types and statements freely."""
        source = 'void Hello() { }\nHello();\nclass K { }\nvar k = new K();'
        assert check(source, script=True) == []

    def test_top_level_statements_need_no_version_in_scripts(self):
        """Script statements are not C# 9 top-level statements."""
        assert check("System.Console.WriteLine();", LanguageVersion.CSHARP7, script=True) == []


# =============================================================================
# Nesting Limit Tests
# =============================================================================

class TestNesting:
    """Test that pathological nesting is reported, not crashed on."""

    def test_deep_parentheses(self):
        """Deeply nested parentheses report CS8078 once."""
        source = in_method("var x = " + "(" * 500 + "1" + ")" * 500 + ";")
        assert check(source) == ["CS8078"]

    def test_deep_blocks(self):
        """Deeply nested blocks report CS8078 once."""
        source = in_method("{" * 400 + "}" * 400)
        assert check(source) == ["CS8078"]

    def test_moderate_nesting_is_fine(self):
        """Realistic nesting depths are accepted."""
        source = in_method("var x = " + "(" * 20 + "1" + ")" * 20 + ";")
        assert check(source) == []


# =============================================================================
# Parser Construction Tests
# =============================================================================

class TestParserDirect:
    """Test the Parser class on its own."""

    def test_requires_eof(self):
        """A token list without EOF is rejected."""
        with pytest.raises(ValueError):
            Parser([], VersionGate(LanguageVersion.DEFAULT), DiagnosticCollector())
