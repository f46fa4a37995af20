"""
Shared command-line helpers for dbfdump and dbfload.

Provides consistent logging setup, error handling and exit codes.
"""

import logging
import sys
import traceback
from enum import IntEnum
from typing import NoReturn

import click

from dbf_errors import DBFError


class ExitCode(IntEnum):
    """Standard exit codes for the CLI tools."""
    SUCCESS = 0
    DATA_ERROR = 1      # malformed DBF or CSV data
    INVALID_ARGS = 2    # invalid arguments or missing/unwritable files
    INTERNAL_ERROR = 3  # unexpected internal error


def setup_logging(verbose: bool = False) -> None:
    """Progress goes to stderr through logging; DEBUG when verbose."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s: %(message)s" if verbose else "%(message)s",
    )


def handle_cli_exception(error: Exception, verbose: bool = False) -> NoReturn:
    """
    Print an error and exit with the matching exit code.

    Args:
        error: The exception that was raised
        verbose: If True, print full traceback for internal errors
    """
    if isinstance(error, DBFError):
        click.echo(f"Error: {error}", err=True)
        sys.exit(ExitCode.DATA_ERROR)

    elif isinstance(error, OSError):
        click.echo(f"Error: {error}", err=True)
        sys.exit(ExitCode.INVALID_ARGS)

    else:
        click.echo(f"Internal error: {error}", err=True)
        if verbose:
            traceback.print_exc()
        sys.exit(ExitCode.INTERNAL_ERROR)
