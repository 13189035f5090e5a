from __future__ import annotations

from typing import List, Optional

import typer

from gitship.cli.bootstrap import open_session
from gitship.cli.exit_codes import ExitCode, exit_code_for, print_error
from gitship.engine.save import SaveEngine


def save(
    ctx: typer.Context,
    paths: Optional[List[str]] = typer.Argument(None, help="Files to save (default: every change)"),
    message: Optional[str] = typer.Option(None, "--message", "-m", help="Commit message (asked for when omitted)"),
) -> None:
    """Stage local changes and commit them on the current branch."""
    session = open_session(ctx.obj)
    engine = SaveEngine(session.access, interviewer=session.interviewer, emitter=session.dispatcher)
    report = engine.run(session.context, message, paths or None)

    if report.error is not None:
        print_error(report.error)
    elif report.commit:
        typer.echo(f"Saved {len(report.paths)} file(s) as {report.commit[:8]}")
    elif not report.dry_run and report.aborted is None:
        typer.echo("Nothing to save")

    code = exit_code_for(report)
    if code != ExitCode.SUCCESS:
        raise typer.Exit(code=code)
