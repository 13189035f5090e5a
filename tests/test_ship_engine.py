from __future__ import annotations

import threading
from pathlib import Path
from unittest.mock import MagicMock, call

import pytest

from gitship.engine.retry import Backoff, RetryExecutor, RetryPolicy
from gitship.engine.ship import ShipEngine, ShipOptions, describe_step
from gitship.github.pr import PullRequest, PullRequestPayload
from gitship.interviewer.models import Answer, AnswerValue
from gitship.interviewer.queue import QueueInterviewer
from gitship.models.context import WorkflowContext
from gitship.models.errors import ErrorKind, OperationError, fatal, transient
from gitship.models.outcome import (
    Aborted,
    BranchDeleted,
    MergeStrategy,
    Merged,
    PullRequestCreated,
    Pushed,
    SwitchedBack,
)
from gitship.workspace.access import GitRepository
from gitship.workspace.git_ops import branch_exists, current_branch, rev_parse, run_git


class FakePullRequests:
    def __init__(self, *, create_error: OperationError | None = None, merge_error: OperationError | None = None) -> None:
        self.create_error = create_error
        self.merge_error = merge_error
        self.created: list[PullRequestPayload] = []
        self.merged: list[tuple[str, MergeStrategy]] = []

    def create_pr(self, payload: PullRequestPayload) -> PullRequest:
        if self.create_error is not None:
            raise self.create_error
        self.created.append(payload)
        return PullRequest(id="42", url="https://github.com/acme/app/pull/42")

    def merge(self, pr_id: str, strategy: MergeStrategy) -> None:
        if self.merge_error is not None:
            raise self.merge_error
        self.merged.append((pr_id, strategy))


class RecordingEmitter:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict]] = []

    def emit(self, event_type: str, **data) -> None:
        self.events.append((event_type, data))

    def of_type(self, event_type: str) -> list[dict]:
        return [data for t, data in self.events if t == event_type]


def _context(**overrides: object) -> WorkflowContext:
    values: dict = {
        "retry_policy": RetryPolicy(max_attempts=3, base_delay=1.0, backoff=Backoff.FIXED),
        "auto_confirm": True,
    }
    values.update(overrides)
    return WorkflowContext(**values)


def _access(*, branch: str = "feature", clean: bool = True, ahead_behind: tuple[int, int] = (2, 0)) -> MagicMock:
    access = MagicMock()
    access.current_branch.return_value = branch
    access.is_clean.return_value = clean
    access.ref_exists.return_value = True
    access.ahead_behind.return_value = ahead_behind
    return access


def _engine(access, pr_service=None, emitter=None, interviewer=None, **options: object) -> ShipEngine:
    executor = RetryExecutor(emitter=emitter, sleep_fn=lambda _: None)
    return ShipEngine(
        access,
        pr_service,
        ShipOptions(**options),
        interviewer=interviewer,
        emitter=emitter,
        executor=executor,
    )


class TestValidation:
    def test_dirty_tree_is_precondition(self) -> None:
        access = _access(clean=False)
        report = _engine(access).run(_context())
        assert report.error is not None
        assert report.error.kind == ErrorKind.PRECONDITION
        assert report.steps == []
        access.push.assert_not_called()

    def test_behind_upstream_is_precondition(self) -> None:
        access = _access(ahead_behind=(1, 2))
        report = _engine(access).run(_context())
        assert report.error is not None
        assert report.error.kind == ErrorKind.PRECONDITION
        assert "gitship sync" in report.error.message
        access.push.assert_not_called()

    def test_never_fetched_upstream_is_precondition(self) -> None:
        access = _access()
        access.ref_exists.return_value = False
        report = _engine(access).run(_context())
        assert report.error is not None
        assert report.error.kind == ErrorKind.PRECONDITION

    def test_pr_on_base_branch_is_precondition(self) -> None:
        access = _access(branch="main")
        report = _engine(access, FakePullRequests(), create_pr=True).run(_context())
        assert report.error is not None
        assert report.error.kind == ErrorKind.PRECONDITION

    def test_missing_remote_is_precondition(self) -> None:
        access = _access()
        access.remote_exists.return_value = False
        report = _engine(access).run(_context(remote_name="upstream"))
        assert report.error is not None
        assert report.error.kind == ErrorKind.PRECONDITION
        assert "upstream" in report.error.message
        access.push.assert_not_called()

    def test_pr_without_service_is_precondition(self) -> None:
        report = _engine(_access(), create_pr=True).run(_context())
        assert report.error is not None
        assert report.error.kind == ErrorKind.PRECONDITION

    def test_local_delete_requires_switch_back(self) -> None:
        report = _engine(_access(), delete_branch=True, switch_back=False).run(_context())
        assert report.error is not None
        assert report.error.kind == ErrorKind.PRECONDITION


class TestShip:
    def test_push_only(self) -> None:
        access = _access()
        report = _engine(access, switch_back=False).run(_context())
        assert report.steps == [Pushed(remote="origin", branch="feature")]
        assert report.ok
        access.push.assert_called_once_with("origin", "feature")

    def test_full_pipeline_order(self) -> None:
        access = _access()
        access.ahead_behind.side_effect = [(2, 0), (0, 1)]
        prs = FakePullRequests()
        report = _engine(
            access,
            prs,
            merge_strategy=MergeStrategy.SQUASH,
            delete_branch=True,
            delete_remote_branch=True,
            pr_title="Add feature",
        ).run(_context())

        assert report.error is None
        assert report.steps == [
            Pushed(remote="origin", branch="feature"),
            PullRequestCreated(id="42", url="https://github.com/acme/app/pull/42"),
            Merged(strategy=MergeStrategy.SQUASH),
            BranchDeleted(branch="feature", remote=True),
            SwitchedBack(branch="main"),
            BranchDeleted(branch="feature", remote=False),
        ]
        assert prs.created[0].head == "feature"
        assert prs.created[0].base == "main"
        assert prs.created[0].title == "Add feature"
        assert prs.merged == [("42", MergeStrategy.SQUASH)]
        access.delete_remote_branch.assert_called_once_with("origin", "feature")
        access.checkout.assert_called_once_with("main")
        access.fast_forward.assert_called_once_with("origin/main")
        access.delete_branch.assert_called_once_with("feature", force=True)

    def test_merge_strategy_implies_pr(self) -> None:
        options = ShipOptions(merge_strategy=MergeStrategy.REBASE)
        assert options.wants_pr

    def test_push_retries_transient_failures(self) -> None:
        access = _access()
        access.push.side_effect = [transient("early EOF"), None]
        report = _engine(access, switch_back=False).run(_context())
        assert report.steps == [Pushed(remote="origin", branch="feature")]
        assert access.push.call_count == 2

    def test_unmerged_local_delete_is_not_forced(self) -> None:
        access = _access()
        access.ahead_behind.side_effect = [(2, 0), (0, 0)]
        report = _engine(access, delete_branch=True).run(_context())
        assert report.ok
        access.delete_branch.assert_called_once_with("feature", force=False)
        access.fast_forward.assert_not_called()

    def test_base_branch_push_asks_first(self) -> None:
        access = _access(branch="main")
        interviewer = QueueInterviewer([Answer(value=AnswerValue.YES)])
        report = _engine(access, interviewer=interviewer).run(_context(auto_confirm=False))
        assert report.steps == [Pushed(remote="origin", branch="main")]
        assert len(interviewer.asked) == 1
        access.checkout.assert_not_called()


class TestPartialFailure:
    def test_pr_failure_keeps_push_in_report(self) -> None:
        access = _access()
        emitter = RecordingEmitter()
        prs = FakePullRequests(create_error=fatal("gh pr create failed: HTTP 422", step="pull-request"))
        report = _engine(access, prs, emitter, create_pr=True).run(_context())

        assert report.steps == [Pushed(remote="origin", branch="feature")]
        assert report.error is not None
        assert report.error.kind == ErrorKind.FATAL
        assert not report.ok
        access.checkout.assert_not_called()
        failed = emitter.of_type("WorkflowFailed")
        assert failed[0]["completed_steps"] == ["pushed feature to origin"]

    def test_merge_failure_reports_pr(self) -> None:
        prs = FakePullRequests(merge_error=fatal("not mergeable", step="merge"))
        report = _engine(_access(), prs, merge_strategy=MergeStrategy.MERGE).run(_context())
        assert [s.kind for s in report.steps] == ["pushed", "pull_request_created"]
        assert report.error is not None and report.error.step == "merge"

    def test_push_failure_has_no_steps(self) -> None:
        access = _access()
        access.push.side_effect = fatal("Permission denied (publickey)")
        prs = FakePullRequests()
        report = _engine(access, prs, create_pr=True).run(_context())
        assert report.steps == []
        assert report.error is not None
        assert report.error.step == "push"
        assert prs.created == []


class TestInterrupt:
    def test_interrupt_during_push_stops_before_pull_request(self) -> None:
        cancel = threading.Event()
        access = _access()
        access.push.side_effect = lambda *_: cancel.set()
        prs = MagicMock()
        engine = ShipEngine(
            access,
            prs,
            ShipOptions(merge_strategy=MergeStrategy.SQUASH, delete_branch=True, delete_remote_branch=True),
            executor=RetryExecutor(sleep_fn=lambda _: None, cancel=cancel),
        )
        report = engine.run(_context())

        assert report.steps == [Pushed(remote="origin", branch="feature"), Aborted(reason="interrupted")]
        assert report.error is None
        assert not report.ok
        prs.create_pr.assert_not_called()
        prs.merge.assert_not_called()
        access.delete_remote_branch.assert_not_called()
        access.checkout.assert_not_called()
        access.delete_branch.assert_not_called()

    def test_interrupt_after_pull_request_skips_merge(self) -> None:
        cancel = threading.Event()

        def create_pr(payload: PullRequestPayload) -> PullRequest:
            cancel.set()
            return PullRequest(id="42")

        prs = MagicMock()
        prs.create_pr.side_effect = create_pr
        engine = ShipEngine(
            _access(),
            prs,
            ShipOptions(merge_strategy=MergeStrategy.MERGE),
            executor=RetryExecutor(sleep_fn=lambda _: None, cancel=cancel),
        )
        report = engine.run(_context())

        assert [s.kind for s in report.steps] == ["pushed", "pull_request_created", "aborted"]
        prs.merge.assert_not_called()

    def test_keyboard_interrupt_keeps_completed_steps(self) -> None:
        access = _access()
        prs = MagicMock()
        prs.create_pr.side_effect = KeyboardInterrupt
        emitter = RecordingEmitter()
        report = _engine(access, prs, emitter, merge_strategy=MergeStrategy.SQUASH).run(_context())

        assert report.steps == [Pushed(remote="origin", branch="feature"), Aborted(reason="interrupted")]
        assert report.error is None
        access.push.assert_called_once_with("origin", "feature")
        prs.merge.assert_not_called()
        assert emitter.of_type("WorkflowCompleted")[0]["outcome"] == "aborted"


class TestConfirmation:
    def test_declined_merge_aborts(self) -> None:
        prs = FakePullRequests()
        interviewer = QueueInterviewer([Answer(value=AnswerValue.NO)])
        report = _engine(_access(), prs, interviewer=interviewer, merge_strategy=MergeStrategy.SQUASH).run(
            _context(auto_confirm=False)
        )
        assert [s.kind for s in report.steps] == ["pushed", "pull_request_created", "aborted"]
        assert report.aborted == Aborted(reason="merge declined")
        assert report.error is None
        assert prs.merged == []

    def test_no_interviewer_declines(self) -> None:
        access = _access()
        report = _engine(access).run(_context(auto_confirm=False))
        assert report.steps[-1] == Aborted(reason="switch back declined")
        access.checkout.assert_not_called()


class TestDryRun:
    def test_dry_run_plans_without_side_effects(self) -> None:
        access = _access()
        prs = FakePullRequests()
        emitter = RecordingEmitter()
        report = _engine(
            access,
            prs,
            emitter,
            merge_strategy=MergeStrategy.REBASE,
            delete_branch=True,
            delete_remote_branch=True,
        ).run(_context(dry_run=True, auto_confirm=False))

        assert report.dry_run
        assert report.steps == []
        assert report.error is None
        assert report.planned == [
            "push feature to origin",
            "open a pull request from feature into main",
            "merge the pull request into main with rebase",
            "delete origin/feature",
            "check out main and fast-forward it to origin/main",
            "delete local branch feature",
        ]
        assert len(emitter.of_type("ConfirmationSkipped")) == 4
        for name in ("push", "checkout", "fetch", "delete_branch", "delete_remote_branch"):
            getattr(access, name).assert_not_called()
        assert prs.created == [] and prs.merged == []

    def test_dry_run_still_validates(self) -> None:
        report = _engine(_access(clean=False)).run(_context(dry_run=True))
        assert report.error is not None
        assert report.error.kind == ErrorKind.PRECONDITION
        assert report.planned == []


def test_describe_step() -> None:
    assert describe_step(PullRequestCreated(id="7", url="u")) == "opened pull request #7 (u)"
    assert describe_step(BranchDeleted(branch="f", remote=True)) == "deleted remote branch f"
    assert describe_step(Aborted(reason="x")) == "aborted: x"


# --- real repositories ---


@pytest.fixture()
def repos(tmp_path: Path) -> tuple[Path, Path]:
    seed = tmp_path / "seed"
    seed.mkdir()
    run_git("init", "-b", "main", cwd=seed)
    run_git("config", "user.email", "test@test.com", cwd=seed)
    run_git("config", "user.name", "Test", cwd=seed)
    (seed / "README.md").write_text("# Project\n")
    run_git("add", "README.md", cwd=seed)
    run_git("commit", "-m", "Initial commit", cwd=seed)

    bare = tmp_path / "remote.git"
    run_git("clone", "--bare", str(seed), str(bare), cwd=tmp_path)
    work = tmp_path / "work"
    run_git("clone", str(bare), str(work), cwd=tmp_path)
    run_git("config", "user.email", "test@test.com", cwd=work)
    run_git("config", "user.name", "Test", cwd=work)
    return work, bare


def test_ship_pushes_and_switches_back(repos: tuple[Path, Path]) -> None:
    work, bare = repos
    run_git("checkout", "-b", "feature", cwd=work)
    (work / "feature.txt").write_text("feature\n")
    run_git("add", "feature.txt", cwd=work)
    run_git("commit", "-m", "feature", cwd=work)

    report = _engine(GitRepository(work), delete_remote_branch=True).run(_context())

    assert report.error is None
    assert [s.kind for s in report.steps] == ["pushed", "branch_deleted", "switched_back"]
    assert current_branch(cwd=work) == "main"
    assert not branch_exists("feature", cwd=bare)
    assert rev_parse("main", cwd=work) == rev_parse("origin/main", cwd=work)


def test_ship_push_reaches_remote(repos: tuple[Path, Path]) -> None:
    work, bare = repos
    run_git("checkout", "-b", "feature", cwd=work)
    (work / "feature.txt").write_text("feature\n")
    run_git("add", "feature.txt", cwd=work)
    run_git("commit", "-m", "feature", cwd=work)

    report = _engine(GitRepository(work), switch_back=False).run(_context())

    assert report.steps == [Pushed(remote="origin", branch="feature")]
    assert rev_parse("feature", cwd=bare) == rev_parse("feature", cwd=work)
    assert current_branch(cwd=work) == "feature"


def test_engine_calls_in_order() -> None:
    access = _access()
    access.ahead_behind.side_effect = [(2, 0), (0, 0)]
    _engine(access).run(_context())
    names = [c[0] for c in access.method_calls]
    assert names.index("push") < names.index("checkout") < names.index("fetch")
    assert access.fetch.call_args == call("origin", "main")
