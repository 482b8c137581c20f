"""
C# Language Versions and Feature Gating
=======================================

This module maps syntax features to the first language version that
permits them. The parser consults a VersionGate the moment it recognizes a
version-sensitive construct; a disallowed use produces a diagnostic but
parsing carries on as if the construct were valid, so unrelated errors later
in the file are still reported in the same run.

Version Specifiers
------------------
| Specifier     | Meaning                                      |
|---------------|----------------------------------------------|
| 1 .. 6        | C# 1 through C# 6 (also ISO-1, ISO-2)        |
| 7, 7.0 .. 7.3 | C# 7 and its minor releases                  |
| 8 .. 14       | C# 8.0 through C# 14.0                       |
| default       | latest released major version                |
| latestmajor   | latest released major version                |
| latest        | newest version, including preview            |
| preview       | preview features                             |

Symbolic specifiers are resolved once per validation session into a
concrete version; all comparisons use the resolved ordinal.

Example
-------
>>> gate = VersionGate(LanguageVersion.CSHARP7, collector=collector)
>>> gate.is_allowed(Feature.RECORDS)
False
"""

from enum import Enum, IntEnum
from typing import Iterable, Optional

from csval.errors import InvalidLanguageVersionError, Span
from csval.syntax.errors import DiagnosticCategory, DiagnosticCollector


# =============================================================================
# Language Versions
# =============================================================================

class LanguageVersion(IntEnum):
    """
    C# language versions.

    Values are ordinals: a later version always compares greater. Minor
    versions of C# 7 sit between 7 and 8 (701 < 702 < 703 < 800).
    """
    DEFAULT = 0
    CSHARP1 = 1
    CSHARP2 = 2
    CSHARP3 = 3
    CSHARP4 = 4
    CSHARP5 = 5
    CSHARP6 = 6
    CSHARP7 = 7
    CSHARP7_1 = 701
    CSHARP7_2 = 702
    CSHARP7_3 = 703
    CSHARP8 = 800
    CSHARP9 = 900
    CSHARP10 = 1000
    CSHARP11 = 1100
    CSHARP12 = 1200
    CSHARP13 = 1300
    CSHARP14 = 1400
    LATEST_MAJOR = 2**31 - 3
    PREVIEW = 2**31 - 2
    LATEST = 2**31 - 1

    @property
    def display(self) -> str:
        """Version as written on the command line, e.g. '7.1' or 'preview'."""
        return _DISPLAY_NAMES[self]

    @property
    def is_symbolic(self) -> bool:
        """True for DEFAULT, LATEST and LATEST_MAJOR."""
        return self in (LanguageVersion.DEFAULT, LanguageVersion.LATEST, LanguageVersion.LATEST_MAJOR)

    def resolve(self) -> "LanguageVersion":
        """
        Map a symbolic specifier to the concrete version it stands for.

        Concrete versions (and PREVIEW) resolve to themselves.
        """
        if self in (LanguageVersion.DEFAULT, LanguageVersion.LATEST_MAJOR):
            return LATEST_RELEASED
        if self is LanguageVersion.LATEST:
            return LanguageVersion.PREVIEW
        return self

    @classmethod
    def parse(cls, text: str) -> "LanguageVersion":
        """
        Parse a version specifier such as '7.3', '9', 'latest' or 'ISO-2'.

        Raises:
            InvalidLanguageVersionError: If the text is not a known version
        """
        key = text.strip().lower()
        if key in _PARSE_TABLE:
            return _PARSE_TABLE[key]
        raise InvalidLanguageVersionError(text)

    @classmethod
    def concrete_versions(cls) -> list["LanguageVersion"]:
        """All versions a source file can be parsed as, oldest first."""
        return [v for v in cls if not v.is_symbolic]


# Newest released (non-preview) version
LATEST_RELEASED = LanguageVersion.CSHARP14

_DISPLAY_NAMES: dict[LanguageVersion, str] = {
    LanguageVersion.DEFAULT: "default",
    LanguageVersion.CSHARP1: "1",
    LanguageVersion.CSHARP2: "2",
    LanguageVersion.CSHARP3: "3",
    LanguageVersion.CSHARP4: "4",
    LanguageVersion.CSHARP5: "5",
    LanguageVersion.CSHARP6: "6",
    LanguageVersion.CSHARP7: "7.0",
    LanguageVersion.CSHARP7_1: "7.1",
    LanguageVersion.CSHARP7_2: "7.2",
    LanguageVersion.CSHARP7_3: "7.3",
    LanguageVersion.CSHARP8: "8.0",
    LanguageVersion.CSHARP9: "9.0",
    LanguageVersion.CSHARP10: "10.0",
    LanguageVersion.CSHARP11: "11.0",
    LanguageVersion.CSHARP12: "12.0",
    LanguageVersion.CSHARP13: "13.0",
    LanguageVersion.CSHARP14: "14.0",
    LanguageVersion.LATEST_MAJOR: "latestmajor",
    LanguageVersion.PREVIEW: "preview",
    LanguageVersion.LATEST: "latest",
}

_PARSE_TABLE: dict[str, LanguageVersion] = {
    name: version for version, name in _DISPLAY_NAMES.items()
}
_PARSE_TABLE.update({
    "iso-1": LanguageVersion.CSHARP1,
    "iso-2": LanguageVersion.CSHARP2,
    "3.0": LanguageVersion.CSHARP3,
    "4.0": LanguageVersion.CSHARP4,
    "5.0": LanguageVersion.CSHARP5,
    "6.0": LanguageVersion.CSHARP6,
    "7": LanguageVersion.CSHARP7,
    "8": LanguageVersion.CSHARP8,
    "9": LanguageVersion.CSHARP9,
    "10": LanguageVersion.CSHARP10,
    "11": LanguageVersion.CSHARP11,
    "12": LanguageVersion.CSHARP12,
    "13": LanguageVersion.CSHARP13,
    "14": LanguageVersion.CSHARP14,
})

# Diagnostic code for "feature not available", keyed by the *current* version.
_VERSION_ERROR_CODES: dict[LanguageVersion, str] = {
    LanguageVersion.CSHARP1: "CS8022",
    LanguageVersion.CSHARP2: "CS8023",
    LanguageVersion.CSHARP3: "CS8024",
    LanguageVersion.CSHARP4: "CS8025",
    LanguageVersion.CSHARP5: "CS8026",
    LanguageVersion.CSHARP6: "CS8059",
    LanguageVersion.CSHARP7: "CS8107",
    LanguageVersion.CSHARP7_1: "CS8302",
    LanguageVersion.CSHARP7_2: "CS8320",
    LanguageVersion.CSHARP7_3: "CS8370",
    LanguageVersion.CSHARP8: "CS8400",
    LanguageVersion.CSHARP9: "CS8773",
    LanguageVersion.CSHARP10: "CS8936",
    LanguageVersion.CSHARP11: "CS9058",
    LanguageVersion.CSHARP12: "CS9202",
    LanguageVersion.CSHARP13: "CS9260",
}
ERR_FEATURE_IN_PREVIEW = "CS8652"


# =============================================================================
# Features
# =============================================================================

class Feature(Enum):
    """
    Version-sensitive syntax features.

    The value is the name used in diagnostics and, for preview features, the
    name accepted by the experimental-feature flag.
    """
    # C# 2
    GENERICS = "generics"
    ANONYMOUS_METHODS = "anonymous methods"
    NULLABLE_TYPES = "nullable types"
    STATIC_CLASSES = "static classes"
    PARTIAL_TYPES = "partial types"
    NAMESPACE_ALIAS_QUALIFIER = "namespace alias qualifier"
    ITERATORS = "iterators"
    PROPERTY_ACCESSOR_MODIFIERS = "access modifiers on properties"
    FIXED_BUFFERS = "fixed size buffers"
    EXTERN_ALIAS = "extern alias"
    # C# 3
    LAMBDAS = "lambda expression"
    QUERY_EXPRESSIONS = "query expression"
    OBJECT_INITIALIZERS = "object initializer"
    COLLECTION_INITIALIZERS = "collection initializer"
    ANONYMOUS_TYPES = "anonymous types"
    IMPLICITLY_TYPED_ARRAYS = "implicitly typed array"
    AUTO_PROPERTIES = "automatically implemented properties"
    EXTENSION_METHODS = "extension method"
    PARTIAL_METHODS = "partial method"
    # C# 4
    NAMED_ARGUMENTS = "named argument"
    OPTIONAL_PARAMETERS = "optional parameter"
    GENERIC_VARIANCE = "generic variance"
    # C# 5
    ASYNC = "async function"
    # C# 6
    INTERPOLATED_STRINGS = "interpolated strings"
    NULL_PROPAGATION = "null propagating operator"
    EXPRESSION_BODIED_MEMBERS = "expression-bodied method"
    AUTO_PROPERTY_INITIALIZER = "auto property initializer"
    EXCEPTION_FILTER = "exception filter"
    DICTIONARY_INITIALIZER = "dictionary initializer"
    USING_STATIC = "using static"
    # C# 7.0
    TUPLES = "tuples"
    PATTERN_MATCHING = "pattern matching"
    LOCAL_FUNCTIONS = "local functions"
    REF_LOCALS_AND_RETURNS = "byref locals and returns"
    OUT_VARIABLE_DECLARATION = "out variable declaration"
    THROW_EXPRESSION = "throw expression"
    BINARY_LITERALS = "binary literals"
    DIGIT_SEPARATORS = "digit separators"
    EXPRESSION_BODIED_ACCESSORS = "expression body constructor, destructor and accessor"
    DECONSTRUCTION = "deconstruction"
    # C# 7.1
    DEFAULT_LITERAL = "default literal"
    # C# 7.2
    LEADING_DIGIT_SEPARATOR = "leading digit separator"
    PRIVATE_PROTECTED = "private protected"
    REF_STRUCTS = "ref structs"
    READONLY_STRUCTS = "readonly structures"
    READONLY_REFERENCES = "readonly references"
    REF_CONDITIONAL = "ref conditional expression"
    # C# 7.3
    ATTRIBUTES_ON_BACKING_FIELDS = "field-targeted attributes on auto-properties"
    STACKALLOC_INITIALIZER = "stackalloc initializer"
    REF_REASSIGNMENT = "ref reassignment"
    # C# 8
    NULLABLE_REFERENCE_TYPES = "nullable reference types"
    ASYNC_STREAMS = "async streams"
    RECURSIVE_PATTERNS = "recursive patterns"
    SWITCH_EXPRESSION = "switch expression"
    INDEX_AND_RANGE = "index and range operators"
    NULL_COALESCING_ASSIGNMENT = "coalescing assignment"
    USING_DECLARATIONS = "using declarations"
    STATIC_LOCAL_FUNCTIONS = "static local functions"
    ALTERNATIVE_INTERPOLATED_VERBATIM = "alternative interpolated verbatim strings"
    READONLY_MEMBERS = "readonly members"
    DEFAULT_INTERFACE_IMPLEMENTATION = "default interface implementation"
    # C# 9
    RECORDS = "records"
    INIT_ONLY_SETTERS = "init-only setters"
    TOP_LEVEL_STATEMENTS = "top-level statements"
    TARGET_TYPED_NEW = "target-typed object creation"
    PATTERN_COMBINATORS = "and, or, not patterns"
    RELATIONAL_PATTERNS = "relational pattern"
    STATIC_ANONYMOUS_FUNCTIONS = "static anonymous function"
    FUNCTION_POINTERS = "function pointers"
    WITH_EXPRESSIONS = "with expression"
    # C# 10
    FILE_SCOPED_NAMESPACE = "file-scoped namespace"
    GLOBAL_USING = "global using directive"
    RECORD_STRUCTS = "record structs"
    EXTENDED_PROPERTY_PATTERNS = "extended property patterns"
    LAMBDA_ATTRIBUTES = "lambda attributes"
    LAMBDA_RETURN_TYPE = "lambda return type"
    MIXED_DECONSTRUCTION = "mixed declarations and expressions in deconstruction"
    # C# 11
    RAW_STRING_LITERALS = "raw string literals"
    LIST_PATTERNS = "list pattern"
    UTF8_STRING_LITERALS = "utf-8 string literals"
    REQUIRED_MEMBERS = "required members"
    FILE_LOCAL_TYPES = "file types"
    NEWLINES_IN_INTERPOLATIONS = "newlines in interpolations"
    UNSIGNED_RIGHT_SHIFT = "unsigned right shift"
    GENERIC_ATTRIBUTES = "generic attributes"
    CHECKED_USER_DEFINED_OPERATORS = "checked user-defined operators"
    # C# 12
    PRIMARY_CONSTRUCTORS = "primary constructors"
    COLLECTION_EXPRESSIONS = "collection expressions"
    LAMBDA_OPTIONAL_PARAMETERS = "lambda optional parameters"
    USING_TYPE_ALIAS = "using type alias"
    REF_READONLY_PARAMETERS = "ref readonly parameters"
    # C# 13
    ESCAPE_CHARACTER = "string escape character"
    ALLOWS_REF_STRUCT = "allows ref struct constraint"
    # C# 14
    NULL_CONDITIONAL_ASSIGNMENT = "null conditional assignment"
    EXTENSIONS = "extensions"
    SIMPLE_LAMBDA_PARAMETER_MODIFIERS = "simple lambda parameters with modifiers"
    PARTIAL_EVENTS_AND_CONSTRUCTORS = "partial events and constructors"
    USER_DEFINED_COMPOUND_ASSIGNMENT = "user-defined compound assignment"
    # Preview
    DICTIONARY_EXPRESSIONS = "dictionary-expressions"


_V = LanguageVersion

# Minimum language version for each feature.
FEATURE_VERSIONS: dict[Feature, LanguageVersion] = {
    Feature.GENERICS: _V.CSHARP2,
    Feature.ANONYMOUS_METHODS: _V.CSHARP2,
    Feature.NULLABLE_TYPES: _V.CSHARP2,
    Feature.STATIC_CLASSES: _V.CSHARP2,
    Feature.PARTIAL_TYPES: _V.CSHARP2,
    Feature.NAMESPACE_ALIAS_QUALIFIER: _V.CSHARP2,
    Feature.ITERATORS: _V.CSHARP2,
    Feature.PROPERTY_ACCESSOR_MODIFIERS: _V.CSHARP2,
    Feature.FIXED_BUFFERS: _V.CSHARP2,
    Feature.EXTERN_ALIAS: _V.CSHARP2,
    Feature.LAMBDAS: _V.CSHARP3,
    Feature.QUERY_EXPRESSIONS: _V.CSHARP3,
    Feature.OBJECT_INITIALIZERS: _V.CSHARP3,
    Feature.COLLECTION_INITIALIZERS: _V.CSHARP3,
    Feature.ANONYMOUS_TYPES: _V.CSHARP3,
    Feature.IMPLICITLY_TYPED_ARRAYS: _V.CSHARP3,
    Feature.AUTO_PROPERTIES: _V.CSHARP3,
    Feature.EXTENSION_METHODS: _V.CSHARP3,
    Feature.PARTIAL_METHODS: _V.CSHARP3,
    Feature.NAMED_ARGUMENTS: _V.CSHARP4,
    Feature.OPTIONAL_PARAMETERS: _V.CSHARP4,
    Feature.GENERIC_VARIANCE: _V.CSHARP4,
    Feature.ASYNC: _V.CSHARP5,
    Feature.INTERPOLATED_STRINGS: _V.CSHARP6,
    Feature.NULL_PROPAGATION: _V.CSHARP6,
    Feature.EXPRESSION_BODIED_MEMBERS: _V.CSHARP6,
    Feature.AUTO_PROPERTY_INITIALIZER: _V.CSHARP6,
    Feature.EXCEPTION_FILTER: _V.CSHARP6,
    Feature.DICTIONARY_INITIALIZER: _V.CSHARP6,
    Feature.USING_STATIC: _V.CSHARP6,
    Feature.TUPLES: _V.CSHARP7,
    Feature.PATTERN_MATCHING: _V.CSHARP7,
    Feature.LOCAL_FUNCTIONS: _V.CSHARP7,
    Feature.REF_LOCALS_AND_RETURNS: _V.CSHARP7,
    Feature.OUT_VARIABLE_DECLARATION: _V.CSHARP7,
    Feature.THROW_EXPRESSION: _V.CSHARP7,
    Feature.BINARY_LITERALS: _V.CSHARP7,
    Feature.DIGIT_SEPARATORS: _V.CSHARP7,
    Feature.EXPRESSION_BODIED_ACCESSORS: _V.CSHARP7,
    Feature.DECONSTRUCTION: _V.CSHARP7,
    Feature.DEFAULT_LITERAL: _V.CSHARP7_1,
    Feature.LEADING_DIGIT_SEPARATOR: _V.CSHARP7_2,
    Feature.PRIVATE_PROTECTED: _V.CSHARP7_2,
    Feature.REF_STRUCTS: _V.CSHARP7_2,
    Feature.READONLY_STRUCTS: _V.CSHARP7_2,
    Feature.READONLY_REFERENCES: _V.CSHARP7_2,
    Feature.REF_CONDITIONAL: _V.CSHARP7_2,
    Feature.ATTRIBUTES_ON_BACKING_FIELDS: _V.CSHARP7_3,
    Feature.STACKALLOC_INITIALIZER: _V.CSHARP7_3,
    Feature.REF_REASSIGNMENT: _V.CSHARP7_3,
    Feature.NULLABLE_REFERENCE_TYPES: _V.CSHARP8,
    Feature.ASYNC_STREAMS: _V.CSHARP8,
    Feature.RECURSIVE_PATTERNS: _V.CSHARP8,
    Feature.SWITCH_EXPRESSION: _V.CSHARP8,
    Feature.INDEX_AND_RANGE: _V.CSHARP8,
    Feature.NULL_COALESCING_ASSIGNMENT: _V.CSHARP8,
    Feature.USING_DECLARATIONS: _V.CSHARP8,
    Feature.STATIC_LOCAL_FUNCTIONS: _V.CSHARP8,
    Feature.ALTERNATIVE_INTERPOLATED_VERBATIM: _V.CSHARP8,
    Feature.READONLY_MEMBERS: _V.CSHARP8,
    Feature.DEFAULT_INTERFACE_IMPLEMENTATION: _V.CSHARP8,
    Feature.RECORDS: _V.CSHARP9,
    Feature.INIT_ONLY_SETTERS: _V.CSHARP9,
    Feature.TOP_LEVEL_STATEMENTS: _V.CSHARP9,
    Feature.TARGET_TYPED_NEW: _V.CSHARP9,
    Feature.PATTERN_COMBINATORS: _V.CSHARP9,
    Feature.RELATIONAL_PATTERNS: _V.CSHARP9,
    Feature.STATIC_ANONYMOUS_FUNCTIONS: _V.CSHARP9,
    Feature.FUNCTION_POINTERS: _V.CSHARP9,
    Feature.WITH_EXPRESSIONS: _V.CSHARP9,
    Feature.FILE_SCOPED_NAMESPACE: _V.CSHARP10,
    Feature.GLOBAL_USING: _V.CSHARP10,
    Feature.RECORD_STRUCTS: _V.CSHARP10,
    Feature.EXTENDED_PROPERTY_PATTERNS: _V.CSHARP10,
    Feature.LAMBDA_ATTRIBUTES: _V.CSHARP10,
    Feature.LAMBDA_RETURN_TYPE: _V.CSHARP10,
    Feature.MIXED_DECONSTRUCTION: _V.CSHARP10,
    Feature.RAW_STRING_LITERALS: _V.CSHARP11,
    Feature.LIST_PATTERNS: _V.CSHARP11,
    Feature.UTF8_STRING_LITERALS: _V.CSHARP11,
    Feature.REQUIRED_MEMBERS: _V.CSHARP11,
    Feature.FILE_LOCAL_TYPES: _V.CSHARP11,
    Feature.NEWLINES_IN_INTERPOLATIONS: _V.CSHARP11,
    Feature.UNSIGNED_RIGHT_SHIFT: _V.CSHARP11,
    Feature.GENERIC_ATTRIBUTES: _V.CSHARP11,
    Feature.CHECKED_USER_DEFINED_OPERATORS: _V.CSHARP11,
    Feature.PRIMARY_CONSTRUCTORS: _V.CSHARP12,
    Feature.COLLECTION_EXPRESSIONS: _V.CSHARP12,
    Feature.LAMBDA_OPTIONAL_PARAMETERS: _V.CSHARP12,
    Feature.USING_TYPE_ALIAS: _V.CSHARP12,
    Feature.REF_READONLY_PARAMETERS: _V.CSHARP12,
    Feature.ESCAPE_CHARACTER: _V.CSHARP13,
    Feature.ALLOWS_REF_STRUCT: _V.CSHARP13,
    Feature.NULL_CONDITIONAL_ASSIGNMENT: _V.CSHARP14,
    Feature.EXTENSIONS: _V.CSHARP14,
    Feature.SIMPLE_LAMBDA_PARAMETER_MODIFIERS: _V.CSHARP14,
    Feature.PARTIAL_EVENTS_AND_CONSTRUCTORS: _V.CSHARP14,
    Feature.USER_DEFINED_COMPOUND_ASSIGNMENT: _V.CSHARP14,
    Feature.DICTIONARY_EXPRESSIONS: _V.PREVIEW,
}


def required_version(feature: Feature) -> LanguageVersion:
    """Return the first language version that allows the feature."""
    return FEATURE_VERSIONS[feature]


def is_allowed(feature: Feature, version: LanguageVersion) -> bool:
    """
    Decide whether a feature may be used at a language version.

    Symbolic versions are resolved first, so callers may pass DEFAULT or
    LATEST directly; the VersionGate resolves once up front instead.
    """
    return version.resolve() >= FEATURE_VERSIONS[feature]


# =============================================================================
# Version Gate
# =============================================================================

class VersionGate:
    """
    Checks feature use against the session's language version.

    Attributes:
        version: The concrete (resolved) language version
        enabled_features: Names of experimental features switched on
    """

    def __init__(
        self,
        version: LanguageVersion,
        features: Iterable[str] = (),
        collector: Optional[DiagnosticCollector] = None,
    ):
        self.version = version.resolve()
        self.enabled_features = frozenset(name.lower() for name in features)
        self._collector = collector

    def is_allowed(self, feature: Feature) -> bool:
        """
        Return True if the feature can be used in this session.

        Preview features are also allowed when switched on by name.
        """
        minimum = FEATURE_VERSIONS[feature]
        if self.version >= minimum:
            return True
        return minimum is LanguageVersion.PREVIEW and feature.value in self.enabled_features

    def check(self, feature: Feature, span: Span) -> bool:
        """
        Report a diagnostic if the feature is not allowed.

        Args:
            feature: The construct that was recognized
            span: Where it was recognized

        Returns:
            True if the feature is allowed
        """
        if self.is_allowed(feature):
            return True
        if self._collector is not None:
            code, message = self.describe(feature)
            self._collector.error(code, message, span, DiagnosticCategory.VERSION)
        return False

    def describe(self, feature: Feature) -> tuple[str, str]:
        """Return the (code, message) pair reported for a disallowed feature."""
        minimum = FEATURE_VERSIONS[feature]
        if minimum is LanguageVersion.PREVIEW:
            return (
                ERR_FEATURE_IN_PREVIEW,
                f"The feature '{feature.value}' is currently in Preview and *unsupported*. "
                f"To use Preview features, use the 'preview' language version.",
            )
        code = _VERSION_ERROR_CODES.get(self.version, ERR_FEATURE_IN_PREVIEW)
        return (
            code,
            f"Feature '{feature.value}' is not available in C# {self.version.display}. "
            f"Please use language version {minimum.display} or greater.",
        )
