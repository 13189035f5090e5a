from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Protocol

from gitship.interviewer.base import Interviewer, ask_text
from gitship.models.context import WorkflowContext
from gitship.models.errors import OperationError, precondition
from gitship.models.outcome import Aborted
from gitship.workspace.access import RepositoryAccess

logger = logging.getLogger(__name__)


class EventEmitter(Protocol):
    def emit(self, event_type: str, **data: Any) -> None: ...


@dataclass
class SaveReport:
    # full id of the new commit; empty when nothing was committed
    commit: str = ""
    paths: list[str] = field(default_factory=list)
    aborted: Aborted | None = None
    error: OperationError | None = None
    planned: list[str] = field(default_factory=list)
    dry_run: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and self.aborted is None


class SaveEngine:
    """Stages local work and commits it on the current branch.

    Without ``paths`` every change is staged, untracked files included. A
    missing message is asked for through the interviewer; with no interviewer
    (``--yes``) the message is required up front.
    """

    def __init__(
        self,
        access: RepositoryAccess,
        *,
        interviewer: Interviewer | None = None,
        emitter: EventEmitter | None = None,
    ) -> None:
        self._access = access
        self._interviewer = interviewer
        self._emitter = emitter

    def run(self, context: WorkflowContext, message: str | None = None, paths: list[str] | None = None) -> SaveReport:
        started = time.monotonic()
        report = SaveReport(dry_run=context.dry_run)
        message = (message or "").strip()

        try:
            branch = self._access.current_branch()
            if not message and self._interviewer is None and not context.dry_run:
                raise precondition("a commit message is required; pass --message", step="save")
            self._emit("WorkflowStarted", workflow="save", branch=branch, dry_run=context.dry_run)

            if context.dry_run:
                self._simulate(report, message, paths)
                return self._completed(report, "planned", started)

            target = ", ".join(paths) if paths else "all changes"
            self._emit("StepStarted", step="stage", description=f"Staging {target}")
            self._access.stage(paths)
            report.paths = self._access.staged_paths()
            if not report.paths:
                logger.info("save: nothing staged on %s", branch)
                self._emit("StepCompleted", step="stage", detail="No changes to save")
                return self._completed(report, "nothing_to_save", started)

            if not message:
                assert self._interviewer is not None
                message = ask_text(self._interviewer, f"Commit message for {len(report.paths)} file(s):", stage="save")
            if not message:
                report.aborted = Aborted(reason="empty commit message")
                return self._completed(report, report.aborted.kind, started)

            self._emit("StepStarted", step="commit", description=f"Committing {len(report.paths)} file(s)")
            report.commit = self._access.commit(message)
        except OperationError as e:
            return self._failed(report, e)

        logger.debug("save: committed %s on %s", report.commit, branch)
        self._emit("StepCompleted", step="commit", detail=f"Saved as {report.commit[:8]}")
        return self._completed(report, "saved", started)

    def _simulate(self, report: SaveReport, message: str, paths: list[str] | None) -> None:
        report.paths = self._access.stage(paths, dry_run=True)
        if not report.paths and not self._access.staged_paths():
            report.planned.append("do nothing: there are no changes to save")
        else:
            target = ", ".join(paths) if paths else "all changes"
            report.planned.append(f"stage {target} ({len(report.paths)} path(s) not yet staged)")
            if message:
                report.planned.append(f"commit with message {message!r}")
            else:
                report.planned.append("ask for a commit message and commit")
        for action in report.planned:
            self._emit("DryRunAction", step="save", action=action)

    def _completed(self, report: SaveReport, outcome: str, started: float) -> SaveReport:
        self._emit(
            "WorkflowCompleted",
            workflow="save",
            outcome=outcome,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        return report

    def _failed(self, report: SaveReport, error: OperationError) -> SaveReport:
        report.error = error
        logger.debug("save failed: %r", error)
        self._emit("StepFailed", step=error.step or "save", error=error.describe(), kind=error.kind.value)
        self._emit("WorkflowFailed", workflow="save", error=error.describe(), kind=error.kind.value, completed_steps=[])
        return report

    def _emit(self, event_type: str, **data: Any) -> None:
        if self._emitter is not None:
            self._emitter.emit(event_type, **data)
