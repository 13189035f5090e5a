from __future__ import annotations

from typing import Any, Optional

import typer

from gitship.cli.bootstrap import interrupt_requests, open_session
from gitship.cli.exit_codes import ExitCode, exit_code_for, print_error
from gitship.engine.ship import ShipEngine, describe_step
from gitship.github.pr import GhCliPullRequests
from gitship.models.outcome import MergeStrategy


def ship(
    ctx: typer.Context,
    pr: bool = typer.Option(False, "--pr", help="Open a pull request after pushing"),
    merge: Optional[MergeStrategy] = typer.Option(
        None, "--merge", help="Merge the pull request with this strategy (implies --pr)"
    ),
    delete_branch: bool = typer.Option(False, "--delete-branch", help="Delete the local branch afterwards"),
    delete_remote: bool = typer.Option(False, "--delete-remote", help="Delete the remote branch afterwards"),
    no_switch: bool = typer.Option(False, "--no-switch", help="Stay on the branch instead of switching back"),
    title: Optional[str] = typer.Option(None, "--title", help="Pull request title (default: from commits)"),
    body: Optional[str] = typer.Option(None, "--body", help="Pull request body"),
    draft: bool = typer.Option(False, "--draft", help="Open the pull request as a draft"),
) -> None:
    """Push the current branch and optionally open, merge and clean up a pull request."""
    session = open_session(ctx.obj)

    overrides: dict[str, Any] = {}
    if pr:
        overrides["create_pr"] = True
    if merge is not None:
        overrides["merge_strategy"] = merge
    if delete_branch:
        overrides["delete_branch"] = True
    if delete_remote:
        overrides["delete_remote_branch"] = True
    if no_switch:
        overrides["switch_back"] = False
    if title is not None:
        overrides["pr_title"] = title
    if body is not None:
        overrides["pr_body"] = body
    if draft:
        overrides["draft"] = True
    options = session.config.ship.model_copy(update=overrides)

    engine = ShipEngine(
        session.access,
        GhCliPullRequests(session.access.path),
        options,
        interviewer=session.interviewer,
        emitter=session.dispatcher,
        executor=session.executor,
    )
    with interrupt_requests(session.cancel):
        report = engine.run(session.context)

    if report.error is not None:
        print_error(report.error)
    elif report.steps and not report.dry_run:
        typer.echo("Shipped: " + "; ".join(describe_step(s) for s in report.steps))

    code = exit_code_for(report)
    if code == ExitCode.ABORTED and session.cancel.is_set():
        code = ExitCode.SIGINT
    if code != ExitCode.SUCCESS:
        raise typer.Exit(code=code)
