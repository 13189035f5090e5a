from __future__ import annotations

from typing import Optional

import typer

from gitship.cli.bootstrap import interrupt_requests, open_session
from gitship.cli.exit_codes import ExitCode, exit_code_for, print_error
from gitship.engine.start import StartEngine, StartOptions
from gitship.models.outcome import FastForwarded


def start(
    ctx: typer.Context,
    branch: str = typer.Argument(..., help="Name of the new branch (spaces and '_' become '-')"),
    base: Optional[str] = typer.Option(None, "--base", help="Branch to start from (default: the configured base)"),
    local: bool = typer.Option(False, "--local", help="Branch from the local base without contacting the remote"),
    skip_update: bool = typer.Option(
        False, "--skip-update", help="Branch from the last-fetched remote base instead of updating it first"
    ),
    force: bool = typer.Option(False, "--force", help="Recreate the branch if it already exists"),
) -> None:
    """Create a feature branch from an up-to-date base branch, carrying local edits along."""
    session = open_session(ctx.obj)
    options = StartOptions(branch=branch, base=base, local=local, skip_update=skip_update, force=force)
    engine = StartEngine(
        session.access,
        options,
        interviewer=session.interviewer,
        emitter=session.dispatcher,
        executor=session.executor,
    )

    with interrupt_requests(session.cancel):
        report = engine.run(session.context)

    if report.error is not None:
        print_error(report.error)
    elif report.created:
        if isinstance(report.updated, FastForwarded):
            typer.echo(f"Updated {report.base} by {report.updated.commits} commit(s)")
        typer.echo(f"Started: {report.branch} from {report.start_point}")
        typer.echo("\nNext: 'gitship save -m <message>' to commit, then 'gitship ship --pr'.")

    code = exit_code_for(report)
    if code == ExitCode.ABORTED and session.cancel.is_set():
        code = ExitCode.SIGINT
    if code != ExitCode.SUCCESS:
        raise typer.Exit(code=code)
