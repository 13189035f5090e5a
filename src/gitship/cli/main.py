from pathlib import Path

import typer

from gitship.cli.bootstrap import GlobalOptions, configure_logging
from gitship.cli.save_cmd import save as save_command
from gitship.cli.ship_cmd import ship as ship_command
from gitship.cli.start_cmd import start as start_command
from gitship.cli.status import status as status_command
from gitship.cli.sync_cmd import sync as sync_command

app = typer.Typer(name="gitship", help="Guarded git start, save, sync and ship workflows")
app.command(name="start")(start_command)
app.command(name="save")(save_command)
app.command(name="sync")(sync_command)
app.command(name="ship")(ship_command)
app.command(name="status")(status_command)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    dry_run: bool = typer.Option(False, "--dry-run", "-n", help="Report what would happen without changing anything"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Approve every confirmation without prompting"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show retry attempts and debug logging"),
    repo: Path = typer.Option(Path("."), "--repo", "-C", help="Repository to operate on"),
) -> None:
    configure_logging(verbose)
    ctx.obj = GlobalOptions(dry_run=dry_run, yes=yes, verbose=verbose, repo=repo)
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())


if __name__ == "__main__":
    app()
