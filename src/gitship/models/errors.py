from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from gitship.models.outcome import StashEntry, SyncOutcome


class ErrorKind(str, Enum):
    TRANSIENT = "TRANSIENT"
    CONFLICT = "CONFLICT"
    PRECONDITION = "PRECONDITION"
    FATAL = "FATAL"


class OperationError(Exception):
    """A classified failure of a repository or remote operation.

    ``kind`` decides retry eligibility: only ``TRANSIENT`` errors are retried.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        step: str = "",
        conflicting_paths: frozenset[str] | None = None,
    ) -> None:
        self.kind = kind
        self.message = message
        self.step = step
        self.attempts = 0
        self.conflicting_paths = conflicting_paths or frozenset()
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        return self.kind == ErrorKind.TRANSIENT

    def describe(self) -> str:
        prefix = f"{self.step}: " if self.step else ""
        text = f"{prefix}{self.message}"
        if self.attempts:
            text += f" (gave up after {self.attempts} attempt{'s' if self.attempts != 1 else ''})"
        return text

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.kind.value}, {self.message!r})"


def transient(message: str, *, step: str = "") -> OperationError:
    return OperationError(ErrorKind.TRANSIENT, message, step=step)


def conflict(message: str, paths: frozenset[str], *, step: str = "") -> OperationError:
    return OperationError(ErrorKind.CONFLICT, message, step=step, conflicting_paths=paths)


def precondition(message: str, *, step: str = "") -> OperationError:
    return OperationError(ErrorKind.PRECONDITION, message, step=step)


def fatal(message: str, *, step: str = "") -> OperationError:
    return OperationError(ErrorKind.FATAL, message, step=step)


class OperationCancelled(OperationError):
    """Raised when an interrupt stops a retry loop between attempts."""

    def __init__(self, message: str = "interrupted by user", *, step: str = "") -> None:
        super().__init__(ErrorKind.FATAL, message, step=step)


class StashRestoreError(OperationError):
    """Restoring an auto-stash failed after the guarded body finished.

    Carries what the body produced (``outcome`` or ``original_error``) next to
    the restore failure so neither is lost. The stash is still present.
    """

    def __init__(
        self,
        stash: StashEntry,
        restore_error: Exception,
        *,
        outcome: SyncOutcome | None = None,
        original_error: OperationError | None = None,
    ) -> None:
        self.stash = stash
        self.restore_error = restore_error
        self.outcome = outcome
        self.original_error = original_error
        if original_error is not None:
            before = f"after error ({original_error.describe()})"
        elif outcome is not None:
            before = f"after {outcome.kind}"
        else:
            before = "after sync"
        super().__init__(
            ErrorKind.FATAL,
            f"could not restore stash {stash.short_id} {before}: {restore_error}. "
            f"Your changes are kept in the stash; run 'git stash apply {stash.identifier}'",
            step="restore",
        )
