from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Protocol

from pydantic import BaseModel

from gitship.engine.confirmation import ConfirmationGate
from gitship.engine.retry import RetryExecutor
from gitship.github.pr import PullRequest, PullRequestPayload, PullRequestService
from gitship.interviewer.base import Interviewer
from gitship.models.context import WorkflowContext
from gitship.models.errors import OperationCancelled, OperationError, precondition
from gitship.models.outcome import (
    Aborted,
    BranchDeleted,
    MergeStrategy,
    Merged,
    PullRequestCreated,
    Pushed,
    ShipOutcome,
    SwitchedBack,
)
from gitship.workspace.access import RepositoryAccess

logger = logging.getLogger(__name__)


class EventEmitter(Protocol):
    def emit(self, event_type: str, **data: Any) -> None: ...


class ShipOptions(BaseModel):
    create_pr: bool = False
    # choosing a merge strategy implies creating the pull request
    merge_strategy: MergeStrategy | None = None
    delete_branch: bool = False
    delete_remote_branch: bool = False
    switch_back: bool = True
    pr_title: str = ""
    pr_body: str = ""
    draft: bool = False

    @property
    def wants_pr(self) -> bool:
        return self.create_pr or self.merge_strategy is not None


@dataclass
class ShipReport:
    """Ordered outcomes of the steps that actually completed, plus the error that stopped the run."""

    steps: list[ShipOutcome] = field(default_factory=list)
    error: OperationError | None = None
    planned: list[str] = field(default_factory=list)
    dry_run: bool = False

    @property
    def aborted(self) -> Aborted | None:
        for step in self.steps:
            if isinstance(step, Aborted):
                return step
        return None

    @property
    def ok(self) -> bool:
        return self.error is None and self.aborted is None


class ShipEngine:
    """Publishes the current branch.

    Validating -> Pushing -> CreatingPR? -> Merging? -> DeletingBranch (remote)?
    -> SwitchingBack? -> DeletingBranch (local)?

    The branch must already be clean and contain ``<remote>/<base_branch>``;
    the engine checks this and never syncs on the user's behalf. Completed
    steps are never rolled back: a failure after the push reports the push.
    """

    def __init__(
        self,
        access: RepositoryAccess,
        pr_service: PullRequestService | None = None,
        options: ShipOptions | None = None,
        *,
        interviewer: Interviewer | None = None,
        emitter: EventEmitter | None = None,
        executor: RetryExecutor | None = None,
    ) -> None:
        self._access = access
        self._pr_service = pr_service
        self._options = options or ShipOptions()
        self._interviewer = interviewer
        self._emitter = emitter
        self._executor = executor or RetryExecutor(emitter=emitter)

    def run(self, context: WorkflowContext) -> ShipReport:
        started = time.monotonic()
        gate = ConfirmationGate(context, self._interviewer, self._emitter)
        report = ShipReport(dry_run=context.dry_run)

        try:
            branch = self._validate(context)
        except OperationError as e:
            return self._failed(report, e)

        self._emit("WorkflowStarted", workflow="ship", branch=branch, dry_run=context.dry_run)
        try:
            self._ship(context, gate, report, branch)
        except (OperationCancelled, KeyboardInterrupt):
            logger.info("ship interrupted after %d step(s)", len(report.steps))
            report.steps.append(Aborted(reason="interrupted"))
        except OperationError as e:
            return self._failed(report, e)

        self._emit(
            "WorkflowCompleted",
            workflow="ship",
            outcome=report.steps[-1].kind if report.steps else ("planned" if report.dry_run else "nothing"),
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        return report

    def _validate(self, context: WorkflowContext) -> str:
        options = self._options
        branch = self._access.current_branch()
        on_base = branch == context.base_branch
        logger.debug("ship: validating %s", branch)

        if not self._access.is_clean():
            raise precondition(
                "working tree has uncommitted changes; commit or stash them before shipping",
                step="validate",
            )
        if on_base and (options.wants_pr or options.delete_branch or options.delete_remote_branch):
            raise precondition(
                f"cannot open a pull request for or delete the base branch '{branch}'",
                step="validate",
            )
        if not self._access.remote_exists(context.remote_name):
            raise precondition(f"no remote named '{context.remote_name}'", step="validate")
        if options.wants_pr and self._pr_service is None:
            raise precondition("no pull request service configured", step="validate")
        if options.delete_branch and not options.switch_back:
            raise precondition(
                f"deleting '{branch}' locally requires switching back to '{context.base_branch}'",
                step="validate",
            )

        upstream = context.upstream_ref
        if self._access.ref_exists(upstream):
            _, behind = self._access.ahead_behind(branch, upstream)
            if behind:
                raise precondition(
                    f"'{branch}' is {behind} commit(s) behind {upstream}; run 'gitship sync' first",
                    step="validate",
                )
        elif not on_base:
            raise precondition(f"{upstream} has never been fetched; run 'gitship sync' first", step="validate")
        return branch

    def _ship(
        self,
        context: WorkflowContext,
        gate: ConfirmationGate,
        report: ShipReport,
        branch: str,
    ) -> None:
        options = self._options
        remote = context.remote_name
        base = context.base_branch

        if branch == base and not self._confirm(
            gate, context, f"Push directly to {remote}/{base} without a pull request?", "push"
        ):
            report.steps.append(Aborted(reason=f"push to {base} declined"))
            return

        if self._perform(report, "push", f"push {branch} to {remote}"):
            self._executor.execute(
                lambda: self._access.push(remote, branch), context.retry_policy, step="push"
            )
            report.steps.append(Pushed(remote=remote, branch=branch))

        pr: PullRequest | None = None
        if options.wants_pr:
            assert self._pr_service is not None
            payload = PullRequestPayload(
                head=branch,
                base=base,
                title=options.pr_title,
                body=options.pr_body,
                draft=options.draft,
            )
            if self._perform(report, "pull-request", f"open a pull request from {branch} into {base}"):
                pr = self._pr_service.create_pr(payload)
                report.steps.append(PullRequestCreated(id=pr.id, url=pr.url))

        merged = False
        if options.merge_strategy is not None:
            strategy = options.merge_strategy
            target = f"#{pr.id}" if pr else "the pull request"
            if not self._confirm(
                gate, context, f"Merge {target} into {base} ({strategy.value})? This cannot be undone.", "merge"
            ):
                report.steps.append(Aborted(reason="merge declined"))
                return
            if self._perform(report, "merge", f"merge {target} into {base} with {strategy.value}"):
                assert self._pr_service is not None and pr is not None
                self._pr_service.merge(pr.id, strategy)
                report.steps.append(Merged(strategy=strategy))
                merged = True

        if options.delete_remote_branch:
            if not self._confirm(gate, context, f"Delete {remote}/{branch}?", "delete-branch"):
                report.steps.append(Aborted(reason="remote branch deletion declined"))
                return
            if self._perform(report, "delete-branch", f"delete {remote}/{branch}"):
                self._executor.execute(
                    lambda: self._access.delete_remote_branch(remote, branch),
                    context.retry_policy,
                    step="delete-branch",
                )
                report.steps.append(BranchDeleted(branch=branch, remote=True))

        if options.switch_back and branch != base:
            if not self._confirm(gate, context, f"Switch to {base} and update it from {remote}?", "switch"):
                report.steps.append(Aborted(reason="switch back declined"))
                return
            if self._perform(report, "switch", f"check out {base} and fast-forward it to {remote}/{base}"):
                self._switch_back(context)
                report.steps.append(SwitchedBack(branch=base))

        if options.delete_branch:
            if not self._confirm(gate, context, f"Delete local branch {branch}?", "delete-branch"):
                report.steps.append(Aborted(reason="local branch deletion declined"))
                return
            if self._perform(report, "delete-branch", f"delete local branch {branch}"):
                # a squash or rebase merge leaves the local commits unmerged
                self._access.delete_branch(branch, force=merged)
                report.steps.append(BranchDeleted(branch=branch, remote=False))

    def _switch_back(self, context: WorkflowContext) -> None:
        base = context.base_branch
        upstream = context.upstream_ref
        self._access.checkout(base)
        self._executor.execute(
            lambda: self._access.fetch(context.remote_name, base),
            context.retry_policy,
            step="switch",
        )
        ahead, behind = self._access.ahead_behind(base, upstream)
        if behind and not ahead:
            self._access.fast_forward(upstream)
        elif behind:
            logger.warning("%s has diverged from %s; leaving it for 'gitship sync'", base, upstream)

    def _confirm(self, gate: ConfirmationGate, context: WorkflowContext, action: str, step: str) -> bool:
        self._executor.check_cancelled(step)
        # in a dry run the gate records the prompt and the simulation continues
        return gate.confirm(action, step=step) or context.dry_run

    def _perform(self, report: ShipReport, step: str, action: str) -> bool:
        # an interrupt requested during the previous step stops the run here
        self._executor.check_cancelled(step)
        if report.dry_run:
            report.planned.append(action)
            self._emit("DryRunAction", step=step, action=action)
            return False
        logger.debug("ship: %s", action)
        self._emit("StepStarted", step=step, description=action[:1].upper() + action[1:])
        return True

    def _failed(self, report: ShipReport, error: OperationError) -> ShipReport:
        report.error = error
        logger.debug("ship failed after %d step(s): %r", len(report.steps), error)
        self._emit("StepFailed", step=error.step or "ship", error=error.describe(), kind=error.kind.value)
        self._emit(
            "WorkflowFailed",
            workflow="ship",
            error=error.describe(),
            kind=error.kind.value,
            completed_steps=[describe_step(s) for s in report.steps],
        )
        return report

    def _emit(self, event_type: str, **data: Any) -> None:
        if self._emitter is not None:
            self._emitter.emit(event_type, **data)


def describe_step(step: ShipOutcome) -> str:
    if isinstance(step, Pushed):
        return f"pushed {step.branch} to {step.remote}"
    if isinstance(step, PullRequestCreated):
        return f"opened pull request #{step.id}" + (f" ({step.url})" if step.url else "")
    if isinstance(step, Merged):
        return f"merged ({step.strategy.value})"
    if isinstance(step, BranchDeleted):
        return f"deleted {'remote' if step.remote else 'local'} branch {step.branch}"
    if isinstance(step, SwitchedBack):
        return f"switched to {step.branch}"
    return f"aborted: {step.reason}"
