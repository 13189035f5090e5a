from __future__ import annotations

import logging
from typing import Any, Callable, Protocol

from gitship.models.errors import ErrorKind, OperationError, StashRestoreError
from gitship.models.outcome import ConflictPending, StashEntry, SyncOutcome
from gitship.workspace.access import RepositoryAccess
from gitship.workspace.probe import RepositoryProbe

logger = logging.getLogger(__name__)


class EventEmitter(Protocol):
    def emit(self, event_type: str, **data: Any) -> None: ...


class StashGuard:
    """Protects uncommitted work around a risky sequence of repository steps.

    A clean tree runs the body directly. A dirty tree is stashed first
    (tracked, staged and untracked changes) and the stash is restored on every
    exit path, except when the body ends in a conflict: then the stash is left
    in place and handed to the caller through ``ConflictPending.stash`` so the
    pre-sync state stays recoverable.

    One guard instance owns at most one stash, exposed as :attr:`entry`.
    """

    def __init__(
        self,
        access: RepositoryAccess,
        probe: RepositoryProbe,
        *,
        emitter: EventEmitter | None = None,
        label: str = "sync",
    ) -> None:
        self._access = access
        self._probe = probe
        self._emitter = emitter
        self._label = label
        self.entry: StashEntry | None = None

    def run_guarded(self, body: Callable[[], SyncOutcome]) -> SyncOutcome:
        if self._probe.is_clean():
            logger.debug("Working tree clean, running %s without a stash", self._label)
            return body()

        entry = self._save()
        if entry is None:
            return body()

        try:
            outcome = body()
        except OperationError as e:
            if e.kind == ErrorKind.CONFLICT:
                self._retain(entry, "conflict")
                raise
            self._restore_after_error(entry, e)
            raise
        except BaseException:
            # mid-rebase or otherwise unknown state: applying on top is unsafe
            self._retain(entry, "interrupted")
            raise

        if isinstance(outcome, ConflictPending):
            self._retain(entry, "conflict")
            return outcome.model_copy(update={"stash": entry})

        try:
            self._restore(entry)
        except OperationError as restore_error:
            raise StashRestoreError(entry, restore_error, outcome=outcome) from restore_error
        return outcome

    def _save(self) -> StashEntry | None:
        message = f"gitship: auto-stash before {self._label}"
        stash_id = self._access.stash_save(message)
        if not stash_id:
            logger.debug("git reported nothing to stash")
            return None
        entry = StashEntry(identifier=stash_id, message=message)
        self.entry = entry
        logger.debug("Created stash %s", entry.short_id)
        if self._emitter:
            self._emitter.emit("StashCreated", stash_id=entry.identifier, message=message)
        return entry

    def _restore(self, entry: StashEntry) -> None:
        self._access.stash_apply(entry.identifier)
        entry.applied = True
        try:
            self._access.stash_drop(entry.identifier)
        except OperationError:
            logger.warning(
                "Changes restored but stash %s could not be dropped; remove it with 'git stash drop'",
                entry.short_id,
                exc_info=True,
            )
        logger.debug("Restored stash %s", entry.short_id)
        if self._emitter:
            self._emitter.emit("StashRestored", stash_id=entry.identifier)

    def _restore_after_error(self, entry: StashEntry, error: OperationError) -> None:
        try:
            self._restore(entry)
        except OperationError as restore_error:
            raise StashRestoreError(entry, restore_error, original_error=error) from error

    def _retain(self, entry: StashEntry, reason: str) -> None:
        logger.warning(
            "Keeping stash %s (%s); restore it later with 'git stash apply %s'",
            entry.short_id,
            reason,
            entry.identifier,
        )
        if self._emitter:
            self._emitter.emit("StashRetained", stash_id=entry.identifier, reason=reason)
