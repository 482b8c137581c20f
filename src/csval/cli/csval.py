"""
csval - C# Syntax Validator Command-Line Interface
==================================================

Validates C# syntax and exits with a non-zero code if the source contains
syntax errors. Errors are printed the way the C# compiler prints them:

    Program.cs(12,5): error CS1002: ; expected

Usage Examples
--------------
Validate a file:
    $ csval Program.cs

Validate standard input:
    $ cat Program.cs | csval

Use the rules of an older language version:
    $ csval --langversion 7.3 Program.cs

Define conditional compilation symbols:
    $ csval -d DEBUG -d "TRACE;NET8_0" Program.cs

Script code:
    $ csval --script build.csx

List the supported language versions:
    $ csval --langversions
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import click

from csval import __version__
from csval.cli.errors import ExitCode, handle_cli_exception
from csval.errors import CsvalUsageError
from csval.syntax.validator import ParseOptions, SourceKind, validate
from csval.syntax.versions import LanguageVersion

logger = logging.getLogger(__name__)

STDIN_NAME = "STDIN"


# =============================================================================
# Helpers
# =============================================================================

def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        stream=sys.stderr,
        format="%(name)s: %(message)s",
        force=True,
    )


def _split_symbols(values: tuple[str, ...]) -> frozenset[str]:
    """Flatten -d values, each of which may hold several ';'-separated names."""
    symbols = set()
    for value in values:
        for name in value.split(";"):
            name = name.strip()
            if name:
                symbols.add(name)
    return frozenset(symbols)


def _read_source(files: tuple[str, ...]) -> tuple[str, str]:
    """
    Read the source to validate.

    Returns:
        (display path, source text)

    Raises:
        CsvalUsageError: If more than one file was given
    """
    if len(files) > 1:
        raise CsvalUsageError(
            f"Expected at most one FILE, got {len(files)}",
            hint="validate files one at a time",
        )
    # utf-8-sig drops a leading byte order mark
    if not files or files[0] == "-":
        with click.open_file("-", encoding="utf-8-sig") as stream:
            return STDIN_NAME, stream.read()
    return files[0], Path(files[0]).read_text(encoding="utf-8-sig")


def _print_language_versions() -> None:
    default = LanguageVersion.DEFAULT.resolve()
    latest = LanguageVersion.LATEST.resolve()
    for version in LanguageVersion.concrete_versions():
        if version is default:
            click.echo(f"{version.display} (default)")
        elif version is latest:
            click.echo(f"{version.display} (latest)")
        else:
            click.echo(version.display)


# =============================================================================
# CLI Definition
# =============================================================================

@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.argument("files", nargs=-1, metavar="[FILE]")
@click.option(
    "-v", "--verbose",
    is_flag=True,
    help="Enable verbose output (options, timing and warnings on stderr)",
)
@click.option(
    "-q", "--quiet",
    is_flag=True,
    help="Suppress printing of syntax errors",
)
@click.option(
    "--langversion",
    metavar="VERSION",
    default=None,
    help='Use C# language version syntax rules, where VERSION is "default" '
         '(latest major version), "latest" (including preview), or a '
         'specific version like "6" or "7.1"',
)
@click.option(
    "--langversions",
    is_flag=True,
    help="List supported C# language versions",
)
@click.option(
    "--script",
    is_flag=True,
    help="Validate using scripting rules",
)
@click.option(
    "-d", "--define",
    multiple=True,
    metavar="NAME",
    help="Define NAME as a conditional compilation symbol (can be repeated)",
)
@click.option(
    "-f", "--feature",
    multiple=True,
    metavar="NAME",
    help="Enable experimental feature NAME (can be repeated)",
)
@click.version_option(version=__version__, prog_name="csval")
def main(
    files: tuple[str, ...],
    verbose: bool,
    quiet: bool,
    langversion: Optional[str],
    langversions: bool,
    script: bool,
    define: tuple[str, ...],
    feature: tuple[str, ...],
) -> None:
    """
    Validate the syntax of C# source.

    If FILE is not supplied, or is "-", the source is read from standard
    input (STDIN). The exit code is 0 when the source has no syntax errors
    and 1 otherwise.

    \b
    Examples:
        csval Program.cs                    # Validate a file
        csval --langversion 7.3 Program.cs  # Older language rules
        csval -d DEBUG Program.cs           # Define a symbol
        cat build.csx | csval --script      # Script code from STDIN
    """
    _configure_logging(verbose)

    try:
        if langversions:
            _print_language_versions()
            return

        version = LanguageVersion.DEFAULT
        if langversion is not None:
            version = LanguageVersion.parse(langversion)

        options = ParseOptions(
            language_version=version,
            kind=SourceKind.SCRIPT if script else SourceKind.REGULAR,
            preprocessor_symbols=_split_symbols(define),
            features=frozenset(feature),
        )
        logger.debug(f"Language version: {version.display} ({version.resolve().display})")
        logger.debug(f"Kind: {options.kind.value}")
        logger.debug(f"Symbols: {', '.join(sorted(options.preprocessor_symbols)) or '(none)'}")
        logger.debug(f"Features: {', '.join(feature) or '(none)'}")

        path, source = _read_source(files)
        result = validate(source, options)

    except Exception as e:
        handle_cli_exception(e, verbose)

    for diagnostic in result.diagnostics:
        if diagnostic.is_error:
            if not quiet:
                click.echo(diagnostic.format(path))
        elif verbose:
            click.echo(diagnostic.format(path))

    if not result.success:
        sys.exit(ExitCode.FAILURE)


if __name__ == "__main__":
    main()
