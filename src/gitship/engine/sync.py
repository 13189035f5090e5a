from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Protocol

from gitship.engine.confirmation import ConfirmationGate
from gitship.engine.retry import RetryExecutor
from gitship.interviewer.base import Interviewer
from gitship.models.context import WorkflowContext
from gitship.models.errors import (
    ErrorKind,
    OperationCancelled,
    OperationError,
    StashRestoreError,
)
from gitship.models.outcome import (
    Aborted,
    ConflictPending,
    FastForwarded,
    RebasedClean,
    StashEntry,
    SyncOutcome,
    UpToDate,
)
from gitship.workspace.access import RepositoryAccess
from gitship.workspace.probe import RepositoryProbe, RepositoryState
from gitship.workspace.stash_guard import StashGuard

logger = logging.getLogger(__name__)


class EventEmitter(Protocol):
    def emit(self, event_type: str, **data: Any) -> None: ...


@dataclass
class SyncReport:
    """Terminal result of one sync: the outcome plus everything already done."""

    outcome: SyncOutcome | None = None
    error: OperationError | None = None
    # auto-stash left in the repository for the user to restore
    stash: StashEntry | None = None
    planned: list[str] = field(default_factory=list)
    uncertain: str = ""
    dry_run: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and isinstance(self.outcome, (UpToDate, FastForwarded, RebasedClean))


class SyncEngine:
    """Brings the current branch up to date with ``<remote>/<base_branch>``.

    Probing -> Stashing (dirty trees only) -> Fetching -> Rebasing -> Restoring.

    After :meth:`run` the working tree is either up to date and pristine, up
    to date with the user's edits restored, or stopped mid-rebase with the
    conflicting paths and the retained stash reported. The engine never
    resolves or aborts a conflicted rebase on its own.
    """

    def __init__(
        self,
        access: RepositoryAccess,
        *,
        interviewer: Interviewer | None = None,
        emitter: EventEmitter | None = None,
        executor: RetryExecutor | None = None,
        refresh: bool = False,
    ) -> None:
        self._access = access
        self._interviewer = interviewer
        self._emitter = emitter
        self._executor = executor or RetryExecutor(emitter=emitter)
        self._refresh = refresh

    def run(self, context: WorkflowContext) -> SyncReport:
        started = time.monotonic()
        probe = RepositoryProbe(self._access)
        gate = ConfirmationGate(context, self._interviewer, self._emitter)

        logger.debug("sync: probing %s", context.upstream_ref)
        try:
            state = probe.inspect(context.upstream_ref)
        except OperationError as e:
            return self._failed(SyncReport(dry_run=context.dry_run), e)

        self._emit("WorkflowStarted", workflow="sync", branch=state.branch, dry_run=context.dry_run)

        if context.dry_run:
            report = self._simulate(context, state, gate)
        elif state.clean and state.up_to_date and not self._refresh:
            self._emit(
                "StepCompleted",
                step="probe",
                detail=f"{state.branch} already contains {state.upstream} (as of the last fetch)",
            )
            report = SyncReport(outcome=UpToDate())
        else:
            report = self._sync(context, state, probe, gate)

        if report.error is None:
            outcome = report.outcome.kind if report.outcome is not None else "undetermined"
            self._emit(
                "WorkflowCompleted",
                workflow="sync",
                outcome=outcome,
                duration_ms=int((time.monotonic() - started) * 1000),
            )
        return report

    def _sync(
        self,
        context: WorkflowContext,
        state: RepositoryState,
        probe: RepositoryProbe,
        gate: ConfirmationGate,
    ) -> SyncReport:
        guard = StashGuard(
            self._access, probe, emitter=self._emitter, label=f"sync of {state.branch}"
        )
        report = SyncReport()
        try:
            outcome = guard.run_guarded(lambda: self._fetch_and_rebase(context, state.branch, gate))
        except StashRestoreError as e:
            report.stash = e.stash
            report.outcome = e.outcome
            return self._failed(report, e)
        except OperationCancelled as e:
            logger.info("sync interrupted during %s", e.step or "sync")
            report.outcome = Aborted(reason="interrupted")
            report.stash = self._retained(guard)
            return report
        except OperationError as e:
            report.stash = self._retained(guard)
            return self._failed(report, e)
        except KeyboardInterrupt:
            # the repository may be mid-rebase; leave it for the user
            report.outcome = Aborted(reason="interrupted; repository left as-is")
            report.stash = self._retained(guard)
            return report

        report.outcome = outcome
        if isinstance(outcome, ConflictPending):
            report.stash = outcome.stash
            self._emit(
                "ConflictDetected",
                paths=sorted(outcome.conflicting_paths),
                stash_id=outcome.stash.identifier if outcome.stash else "",
            )
        return report

    def _fetch_and_rebase(
        self, context: WorkflowContext, branch: str, gate: ConfirmationGate
    ) -> SyncOutcome:
        upstream = context.upstream_ref

        self._emit("StepStarted", step="fetch", description=f"Fetching {upstream}")
        self._executor.execute(
            lambda: self._access.fetch(context.remote_name, context.base_branch),
            context.retry_policy,
            step="fetch",
        )
        self._executor.check_cancelled("fetch")

        ahead, behind = self._access.ahead_behind(branch, upstream)
        logger.debug("sync: %s is %d ahead, %d behind %s", branch, ahead, behind, upstream)
        if behind == 0:
            self._emit("StepCompleted", step="fetch", detail=f"{branch} already contains {upstream}")
            return UpToDate()

        if ahead == 0:
            self._emit("StepStarted", step="fast-forward", description=f"Fast-forwarding {behind} commit(s)")
            self._access.fast_forward(upstream)
            return FastForwarded(commits=behind)

        if self._is_published(context, branch) and not gate.confirm(
            f"Rebase {ahead} already-pushed commit(s) of {branch} onto {upstream}? "
            f"The branch will need a force push afterwards.",
            step="rebase",
        ):
            return Aborted(reason="rebase of published commits declined")

        self._executor.check_cancelled("rebase")
        self._emit("StepStarted", step="rebase", description=f"Rebasing {ahead} commit(s) onto {upstream}")
        try:
            self._access.rebase(upstream)
        except OperationError as e:
            if e.kind != ErrorKind.CONFLICT:
                raise
            logger.info("sync: rebase stopped on %d conflicting path(s)", len(e.conflicting_paths))
            return ConflictPending(conflicting_paths=e.conflicting_paths)
        self._emit("StepCompleted", step="rebase", detail=f"Replayed {ahead} commit(s)")
        return RebasedClean(replayed=ahead)

    def _simulate(
        self, context: WorkflowContext, state: RepositoryState, gate: ConfirmationGate
    ) -> SyncReport:
        report = SyncReport(dry_run=True)
        upstream = state.upstream

        if state.clean and state.up_to_date and not self._refresh:
            report.outcome = UpToDate()
            report.planned.append(f"do nothing: {state.branch} already contains {upstream} as of the last fetch")
        else:
            if not state.clean:
                report.planned.append("stash local changes (tracked, staged and untracked)")
            report.planned.append(
                f"fetch {context.base_branch} from {context.remote_name} "
                f"(up to {context.retry_policy.max_attempts} attempt(s))"
            )
            if not state.upstream_known:
                report.uncertain = f"{upstream} has never been fetched; the outcome depends on the fetch"
            elif state.behind == 0:
                report.outcome = UpToDate()
                report.uncertain = f"{upstream} may have moved since the last fetch"
            elif state.ahead == 0:
                report.outcome = FastForwarded(commits=state.behind or 0)
                report.planned.append(f"fast-forward {state.branch} by {state.behind} commit(s)")
            else:
                report.planned.append(f"rebase {state.ahead} commit(s) onto {upstream}")
                report.uncertain = "whether the rebase conflicts can only be known by running it"
                if self._is_published(context, state.branch):
                    gate.confirm(
                        f"Rebase {state.ahead} already-pushed commit(s) of {state.branch} onto {upstream}?",
                        step="rebase",
                    )
            if not state.clean:
                report.planned.append("restore the stashed changes")

        for action in report.planned:
            self._emit("DryRunAction", step="sync", action=action)
        return report

    def _is_published(self, context: WorkflowContext, branch: str) -> bool:
        if branch == context.base_branch:
            return False
        return self._access.ref_exists(f"{context.remote_name}/{branch}")

    def _retained(self, guard: StashGuard) -> StashEntry | None:
        if guard.entry is not None and not guard.entry.applied:
            return guard.entry
        return None

    def _failed(self, report: SyncReport, error: OperationError) -> SyncReport:
        report.error = error
        if report.outcome is None:
            report.outcome = Aborted(reason=error.describe())
        logger.debug("sync failed: %r", error)
        self._emit("StepFailed", step=error.step or "sync", error=error.describe(), kind=error.kind.value)
        self._emit(
            "WorkflowFailed",
            workflow="sync",
            error=error.describe(),
            kind=error.kind.value,
            completed_steps=[f"stash {report.stash.short_id} kept"] if report.stash else [],
        )
        return report

    def _emit(self, event_type: str, **data: Any) -> None:
        if self._emitter is not None:
            self._emitter.emit(event_type, **data)
