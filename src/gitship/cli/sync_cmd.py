from __future__ import annotations

import typer

from gitship.cli.bootstrap import interrupt_requests, open_session
from gitship.cli.exit_codes import ExitCode, exit_code_for, print_error
from gitship.engine.sync import SyncEngine
from gitship.models.outcome import Aborted


def sync(
    ctx: typer.Context,
    fetch: bool = typer.Option(
        False, "--fetch", help="Always fetch, even when the last fetch says the branch is up to date"
    ),
) -> None:
    """Bring the current branch up to date with the base branch, keeping local edits."""
    session = open_session(ctx.obj)
    engine = SyncEngine(
        session.access,
        interviewer=session.interviewer,
        emitter=session.dispatcher,
        executor=session.executor,
        refresh=fetch,
    )

    with interrupt_requests(session.cancel):
        report = engine.run(session.context)

    if report.error is not None:
        print_error(report.error)
    if report.dry_run:
        predicted = report.outcome.kind if report.outcome is not None else "unknown"
        typer.echo(f"Predicted outcome: {predicted}")
        if report.uncertain:
            typer.echo(f"  Note: {report.uncertain}")

    code = exit_code_for(report)
    if code == ExitCode.ABORTED and isinstance(report.outcome, Aborted) and session.cancel.is_set():
        code = ExitCode.SIGINT
    if code != ExitCode.SUCCESS:
        raise typer.Exit(code=code)
