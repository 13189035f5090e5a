from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Protocol

from pydantic import BaseModel

from gitship.engine.confirmation import ConfirmationGate
from gitship.engine.retry import RetryExecutor
from gitship.interviewer.base import Interviewer
from gitship.models.context import WorkflowContext
from gitship.models.errors import (
    OperationCancelled,
    OperationError,
    StashRestoreError,
    precondition,
)
from gitship.models.outcome import Aborted, FastForwarded, StashEntry, SyncOutcome, UpToDate
from gitship.workspace.access import RepositoryAccess
from gitship.workspace.probe import RepositoryProbe
from gitship.workspace.stash_guard import StashGuard

logger = logging.getLogger(__name__)

_BRANCH_CHARS = re.compile(r"^[\w/-]+$")


class EventEmitter(Protocol):
    def emit(self, event_type: str, **data: Any) -> None: ...


def normalize_branch_name(name: str) -> str:
    return name.strip().replace(" ", "-").replace("_", "-").lower()


def is_valid_branch_name(name: str) -> bool:
    return (
        bool(name)
        and _BRANCH_CHARS.match(name) is not None
        and not name.startswith(("-", "/"))
        and not name.endswith(("-", "/"))
        and ".." not in name
        and "//" not in name
    )


class StartOptions(BaseModel):
    branch: str
    # defaults to the configured base branch
    base: str | None = None
    # branch from the local base without contacting the remote
    local: bool = False
    # leave the local base alone and branch from the last-fetched remote ref
    skip_update: bool = False
    # recreate the branch when it already exists
    force: bool = False


@dataclass
class StartReport:
    branch: str = ""
    base: str = ""
    start_point: str = ""
    # what updating the base branch did; None when the update was skipped
    updated: SyncOutcome | None = None
    created: bool = False
    aborted: Aborted | None = None
    error: OperationError | None = None
    stash: StashEntry | None = None
    planned: list[str] = field(default_factory=list)
    dry_run: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and self.aborted is None


class StartEngine:
    """Creates a feature branch from an up-to-date base branch.

    Validating -> Stashing (dirty trees only) -> Updating base? -> Creating
    -> Restoring onto the new branch.

    Uncommitted edits travel to the new branch through :class:`StashGuard`.
    If updating the base fails, the original branch is checked out again
    before the stash is restored, so the edits never land on the base.
    """

    def __init__(
        self,
        access: RepositoryAccess,
        options: StartOptions,
        *,
        interviewer: Interviewer | None = None,
        emitter: EventEmitter | None = None,
        executor: RetryExecutor | None = None,
    ) -> None:
        self._access = access
        self._options = options
        self._interviewer = interviewer
        self._emitter = emitter
        self._executor = executor or RetryExecutor(emitter=emitter)

    def run(self, context: WorkflowContext) -> StartReport:
        started = time.monotonic()
        options = self._options
        gate = ConfirmationGate(context, self._interviewer, self._emitter)
        report = StartReport(
            branch=normalize_branch_name(options.branch),
            base=options.base or context.base_branch,
            dry_run=context.dry_run,
        )
        probe = RepositoryProbe(self._access)

        try:
            original, exists = self._validate(context, report)
            clean = probe.is_clean()
            report.start_point = self._start_point(context, report.base)
        except OperationError as e:
            return self._failed(report, e)

        self._emit("WorkflowStarted", workflow="start", branch=report.branch, dry_run=context.dry_run)

        if not clean and not self._confirm(
            gate, context, f"Carry uncommitted changes over to the new branch {report.branch}?", "start"
        ):
            report.aborted = Aborted(reason="carrying uncommitted changes declined")
            return self._completed(report, started)
        if exists and not self._confirm(
            gate,
            context,
            f"Branch {report.branch} already exists. Discard it and recreate it from {report.start_point}?",
            "start",
        ):
            report.aborted = Aborted(reason=f"recreating {report.branch} declined")
            return self._completed(report, started)

        if context.dry_run:
            self._simulate(context, report, clean, exists)
            return self._completed(report, started)

        guard = StashGuard(self._access, probe, emitter=self._emitter, label=f"start of {report.branch}")
        try:
            updated = guard.run_guarded(lambda: self._update_and_create(context, report, original, exists))
            report.updated = updated if self._updates() else None
        except StashRestoreError as e:
            report.stash = e.stash
            return self._failed(report, e)
        except OperationCancelled:
            logger.info("start of %s interrupted", report.branch)
            report.aborted = Aborted(reason="interrupted")
            report.stash = self._retained(guard)
        except OperationError as e:
            report.stash = self._retained(guard)
            return self._failed(report, e)
        except KeyboardInterrupt:
            report.aborted = Aborted(reason="interrupted; repository left as-is")
            report.stash = self._retained(guard)
        return self._completed(report, started)

    def _validate(self, context: WorkflowContext, report: StartReport) -> tuple[str, bool]:
        options = self._options
        branch = report.branch
        base = report.base

        if not branch:
            raise precondition("a branch name is required", step="validate")
        if not is_valid_branch_name(branch):
            raise precondition(
                f"invalid branch name '{branch}': use letters, digits, '-', '_' and '/'",
                step="validate",
            )
        if branch == base:
            raise precondition(f"'{branch}' is the base branch", step="validate")
        if not self._access.branch_exists(base):
            raise precondition(f"base branch '{base}' does not exist locally", step="validate")
        if self._updates() and not self._access.remote_exists(context.remote_name):
            raise precondition(
                f"no remote named '{context.remote_name}'; pass --local to branch without it",
                step="validate",
            )

        original = self._access.current_branch()
        exists = self._access.branch_exists(branch)
        if exists and not options.force:
            raise precondition(f"branch '{branch}' already exists; pass --force to recreate it", step="validate")
        if exists and original == branch:
            raise precondition(f"cannot recreate '{branch}' while it is checked out", step="validate")
        return original, exists

    def _updates(self) -> bool:
        return not (self._options.local or self._options.skip_update)

    def _start_point(self, context: WorkflowContext, base: str) -> str:
        if self._options.skip_update and not self._options.local:
            tracking = f"{context.remote_name}/{base}"
            if self._access.ref_exists(tracking):
                return tracking
        return base

    def _update_and_create(
        self, context: WorkflowContext, report: StartReport, original: str, exists: bool
    ) -> SyncOutcome:
        outcome: SyncOutcome | None = None
        try:
            if self._updates():
                outcome = self._update_base(context, report.base, original)
            self._executor.check_cancelled("create-branch")
        except (OperationError, KeyboardInterrupt):
            self._return_to(original)
            raise

        self._emit(
            "StepStarted",
            step="create-branch",
            description=f"Creating {report.branch} from {report.start_point}",
        )
        self._access.create_branch(report.branch, report.start_point, force=exists)
        report.created = True
        return outcome if outcome is not None else UpToDate()

    def _update_base(self, context: WorkflowContext, base: str, original: str) -> SyncOutcome:
        remote = context.remote_name
        upstream = f"{remote}/{base}"
        if original != base:
            self._emit("StepStarted", step="switch", description=f"Checking out {base}")
            self._access.checkout(base)

        self._emit("StepStarted", step="fetch", description=f"Fetching {upstream}")
        self._executor.execute(lambda: self._access.fetch(remote, base), context.retry_policy, step="fetch")
        self._executor.check_cancelled("fetch")

        ahead, behind = self._access.ahead_behind(base, upstream)
        if behind and ahead:
            raise precondition(
                f"{base} has diverged from {upstream}; run 'gitship sync' on {base} or pass --skip-update",
                step="fetch",
            )
        if behind:
            self._emit("StepStarted", step="fast-forward", description=f"Fast-forwarding {base} by {behind} commit(s)")
            self._access.fast_forward(upstream)
            return FastForwarded(commits=behind)
        self._emit("StepCompleted", step="fetch", detail=f"{base} already contains {upstream}")
        return UpToDate()

    def _return_to(self, original: str) -> None:
        try:
            if self._access.current_branch() != original:
                self._access.checkout(original)
        except OperationError:
            logger.warning("Could not check out %s again after a failed start", original, exc_info=True)

    def _simulate(self, context: WorkflowContext, report: StartReport, clean: bool, exists: bool) -> None:
        base = report.base
        if not clean:
            report.planned.append("stash local changes (tracked, staged and untracked)")
        if self._updates():
            report.planned.append(f"check out {base}")
            report.planned.append(
                f"fetch {base} from {context.remote_name} (up to {context.retry_policy.max_attempts} attempt(s))"
            )
            report.planned.append(f"fast-forward {base} to {context.remote_name}/{base} if it is behind")
        verb = "recreate" if exists else "create"
        report.planned.append(f"{verb} {report.branch} from {report.start_point} and check it out")
        if not clean:
            report.planned.append(f"restore the stashed changes onto {report.branch}")
        for action in report.planned:
            self._emit("DryRunAction", step="start", action=action)

    def _confirm(self, gate: ConfirmationGate, context: WorkflowContext, action: str, step: str) -> bool:
        # in a dry run the gate records the prompt and the simulation continues
        return gate.confirm(action, step=step) or context.dry_run

    def _retained(self, guard: StashGuard) -> StashEntry | None:
        if guard.entry is not None and not guard.entry.applied:
            return guard.entry
        return None

    def _completed(self, report: StartReport, started: float) -> StartReport:
        if report.aborted is not None:
            outcome = report.aborted.kind
        elif report.dry_run:
            outcome = "planned"
        else:
            outcome = "started"
        self._emit(
            "WorkflowCompleted",
            workflow="start",
            outcome=outcome,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        return report

    def _failed(self, report: StartReport, error: OperationError) -> StartReport:
        report.error = error
        logger.debug("start failed: %r", error)
        self._emit("StepFailed", step=error.step or "start", error=error.describe(), kind=error.kind.value)
        self._emit(
            "WorkflowFailed",
            workflow="start",
            error=error.describe(),
            kind=error.kind.value,
            completed_steps=[f"stash {report.stash.short_id} kept"] if report.stash else [],
        )
        return report

    def _emit(self, event_type: str, **data: Any) -> None:
        if self._emitter is not None:
            self._emitter.emit(event_type, **data)
