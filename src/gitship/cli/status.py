from __future__ import annotations

import typer

from gitship.cli.bootstrap import open_session
from gitship.cli.exit_codes import exit_code_for_error, print_error
from gitship.models.errors import OperationError
from gitship.workspace.probe import RepositoryProbe


def status(ctx: typer.Context) -> None:
    """Show the branch, working tree and upstream state without touching the network."""
    session = open_session(ctx.obj)
    context = session.context
    probe = RepositoryProbe(session.access)

    try:
        state = probe.inspect(context.upstream_ref)
        stashes = session.access.stash_list()
    except OperationError as e:
        print_error(e)
        raise typer.Exit(code=exit_code_for_error(e))

    typer.echo(f"Branch:   {state.branch}")
    typer.echo(f"Base:     {context.upstream_ref}")
    typer.echo(f"Tree:     {'clean' if state.clean else 'uncommitted changes'}")
    if state.upstream_known:
        typer.echo(f"Upstream: {state.ahead} ahead, {state.behind} behind (as of the last fetch)")
    else:
        typer.echo(f"Upstream: {context.upstream_ref} has not been fetched yet")
    typer.echo(f"Stashes:  {len(stashes)}")

    policy = context.retry_policy
    typer.echo(
        f"Retry:    up to {policy.max_attempts} attempt(s), "
        f"{policy.base_delay:g}s {policy.backoff.value} backoff"
    )

    if not state.clean:
        typer.echo("\nNext: 'gitship sync' will stash your changes and restore them afterwards.")
    elif state.behind:
        typer.echo("\nNext: 'gitship sync' to catch up before shipping.")
