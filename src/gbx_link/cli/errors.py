"""
CLI Error Handling
==================

Maps package exceptions to messages and exit codes for the gbxlink tool.
"""

import sys
import traceback
from enum import IntEnum
from typing import NoReturn

import click

from gbx_link.errors import CancelledError, CommsError, GBxError


class ExitCode(IntEnum):
    """Exit codes for the gbxlink tool."""
    SUCCESS = 0
    COMMS_ERROR = 1      # Communication, transfer or cartridge error
    INVALID_ARGS = 2     # Invalid arguments or file problems
    INTERNAL_ERROR = 3   # Unexpected internal error


def handle_cli_exception(
    error: Exception,
    verbose: bool = False,
    error_type: str | None = None
) -> NoReturn:
    """
    Report an exception and exit with the matching exit code.

    A user abort is not a failure: it prints "Aborted" and exits with
    SUCCESS.

    Args:
        error: The exception that was raised
        verbose: If True, print full traceback for internal errors
        error_type: Optional prefix for the error message (e.g., "Transfer")

    Raises:
        SystemExit: Always exits with an appropriate exit code
    """
    if isinstance(error, CancelledError):
        click.echo("\nAborted", err=True)
        sys.exit(ExitCode.SUCCESS)

    elif isinstance(error, CommsError):
        prefix = f"{error_type} error: " if error_type else "Communication error: "
        click.echo(f"{prefix}{error}", err=True)
        sys.exit(ExitCode.COMMS_ERROR)

    elif isinstance(error, GBxError):
        # Cartridge header problems (no cartridge, bad header block)
        click.echo(f"Error: {error}", err=True)
        sys.exit(ExitCode.COMMS_ERROR)

    elif isinstance(error, (click.BadParameter, ValueError)):
        click.echo(f"Error: {error}", err=True)
        sys.exit(ExitCode.INVALID_ARGS)

    elif isinstance(error, (FileNotFoundError, PermissionError, IsADirectoryError)):
        click.echo(f"Error: {error}", err=True)
        sys.exit(ExitCode.INVALID_ARGS)

    else:
        click.echo(f"Internal error: {error}", err=True)
        if verbose:
            traceback.print_exc()
        sys.exit(ExitCode.INTERNAL_ERROR)
