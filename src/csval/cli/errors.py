"""
CLI Error Handling
==================

Maps exceptions raised while running the command to messages and exit codes.
"""

import sys
import traceback
from enum import IntEnum
from typing import NoReturn

import click


class ExitCode(IntEnum):
    """Exit codes for csval."""
    SUCCESS = 0
    FAILURE = 1     # Syntax errors, invalid arguments, unreadable input or internal error


def handle_cli_exception(error: Exception, verbose: bool = False) -> NoReturn:
    """
    Report an exception that ended a run and exit with FAILURE.

    Configuration errors print their message; anything unexpected is an
    internal error, with a traceback in verbose mode.

    Args:
        error: The exception that was raised
        verbose: If True, print the full traceback for internal errors

    Raises:
        SystemExit: Always
    """
    from csval.errors import CsvalError

    if isinstance(error, CsvalError):
        click.echo(str(error), err=True)
    elif isinstance(error, (click.BadParameter, FileNotFoundError, PermissionError, IsADirectoryError)):
        click.echo(f"Error: {error}", err=True)
    elif isinstance(error, UnicodeDecodeError):
        click.echo(f"Error: input is not valid UTF-8: {error}", err=True)
    else:
        click.echo(f"Internal error: {error}", err=True)
        if verbose:
            traceback.print_exc()
    sys.exit(ExitCode.FAILURE)
