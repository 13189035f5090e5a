"""Exit codes and error messages shared by every gitship command.

Scripts can branch on the exit code: a conflict, an abort and a failed
precondition each have their own code, distinct from a fatal failure.
"""

from __future__ import annotations

from enum import IntEnum

import typer

from gitship.engine.save import SaveReport
from gitship.engine.ship import ShipReport
from gitship.engine.start import StartReport
from gitship.engine.sync import SyncReport
from gitship.models.errors import ErrorKind, OperationError, StashRestoreError
from gitship.models.outcome import Aborted, ConflictPending


class ExitCode(IntEnum):
    SUCCESS = 0
    """Outcome reached without error (including dry runs)."""

    FATAL = 1
    """Authentication failure, corruption, or any unclassified git failure."""

    CONFLICT = 2
    """Rebase stopped on conflicts; resolve them or abort."""

    ABORTED = 3
    """Declined confirmation or user interrupt between steps."""

    PRECONDITION = 4
    """The repository must be changed first (dirty tree, unknown branch, behind upstream)."""

    RETRIES_EXHAUSTED = 5
    """A transient failure persisted through every retry attempt."""

    SIGINT = 130
    """Terminated by SIGINT (Ctrl+C) - Unix standard."""


_KIND_CODES = {
    ErrorKind.TRANSIENT: ExitCode.RETRIES_EXHAUSTED,
    ErrorKind.CONFLICT: ExitCode.CONFLICT,
    ErrorKind.PRECONDITION: ExitCode.PRECONDITION,
    ErrorKind.FATAL: ExitCode.FATAL,
}

_SUGGESTIONS = {
    ErrorKind.TRANSIENT: "Check your network connection, then run the command again "
    "(raise retry.max_attempts in gitship.yaml for flaky remotes)",
    ErrorKind.PRECONDITION: "Fix the repository state described above, then run the command again",
    ErrorKind.FATAL: "Check your credentials and remote configuration ('git remote -v')",
}


def exit_code_for_error(error: OperationError) -> ExitCode:
    return _KIND_CODES[error.kind]


def exit_code_for(report: SyncReport | ShipReport | StartReport | SaveReport) -> ExitCode:
    if report.error is not None:
        return exit_code_for_error(report.error)
    if isinstance(report, SyncReport):
        if isinstance(report.outcome, ConflictPending):
            return ExitCode.CONFLICT
        if isinstance(report.outcome, Aborted):
            return ExitCode.ABORTED
        return ExitCode.SUCCESS
    if report.aborted is not None:
        return ExitCode.ABORTED
    return ExitCode.SUCCESS


def print_error(error: OperationError) -> None:
    """Print a failure with the attempt count and a recovery suggestion."""
    typer.echo(f"Error: {error.describe()}", err=True)
    if isinstance(error, StashRestoreError):
        if error.original_error is not None:
            typer.echo(f"  Original failure: {error.original_error.describe()}", err=True)
        return
    suggestion = _SUGGESTIONS.get(error.kind)
    if suggestion:
        typer.echo(f"  Try: {suggestion}", err=True)
