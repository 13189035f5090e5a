from __future__ import annotations

from typing import Protocol

import typer

from gitship.events.types import (
    ConfirmationSkipped,
    ConflictDetected,
    DryRunAction,
    Event,
    StashCreated,
    StashRestored,
    StashRetained,
    StepCompleted,
    StepFailed,
    StepRetrying,
    StepStarted,
    WorkflowCompleted,
    WorkflowFailed,
    WorkflowStarted,
)


class EventObserver(Protocol):
    def on_event(self, event: Event) -> None: ...


class StdoutObserver:
    """Renders workflow events as status lines. Retry attempts only show in verbose mode."""

    def __init__(self, *, verbose: bool = False) -> None:
        self._verbose = verbose

    def on_event(self, event: Event) -> None:
        if isinstance(event, WorkflowStarted):
            mode = " (dry run)" if event.dry_run else ""
            typer.echo(f"[{event.workflow}] Started on {event.branch}{mode}")
        elif isinstance(event, WorkflowCompleted):
            typer.echo(f"[{event.workflow}] Done: {event.outcome} ({event.duration_ms}ms)")
        elif isinstance(event, WorkflowFailed):
            typer.echo(f"[{event.workflow}] FAILED ({event.kind}): {event.error}", err=True)
            if event.completed_steps:
                typer.echo(f"  Already completed: {', '.join(event.completed_steps)}", err=True)
        elif isinstance(event, StepStarted):
            typer.echo(f"  [{event.step}] {event.description}")
        elif isinstance(event, StepCompleted):
            if event.detail:
                typer.echo(f"  [{event.step}] {event.detail}")
        elif isinstance(event, StepFailed):
            typer.echo(f"  [{event.step}] FAILED: {event.error}", err=True)
        elif isinstance(event, StepRetrying):
            if self._verbose:
                typer.echo(
                    f"  [{event.step}] Attempt {event.attempt}/{event.max_attempts} failed: "
                    f"{event.error}; retrying in {event.delay_ms}ms"
                )
        elif isinstance(event, StashCreated):
            typer.echo(f"  [stash] Saved local changes as {event.stash_id[:8]}")
        elif isinstance(event, StashRestored):
            typer.echo(f"  [stash] Restored local changes from {event.stash_id[:8]}")
        elif isinstance(event, StashRetained):
            typer.echo(
                f"  [stash] Kept {event.stash_id[:8]} ({event.reason}); "
                f"restore later with: git stash apply {event.stash_id}"
            )
        elif isinstance(event, ConflictDetected):
            typer.echo("  [rebase] CONFLICT in:")
            for path in event.paths:
                typer.echo(f"    {path}")
            typer.echo("  To resolve: fix the files, 'git add' them, then 'git rebase --continue'.")
            abort_hint = "  To give up: 'git rebase --abort'"
            if event.stash_id:
                abort_hint += f", then 'git stash apply {event.stash_id}'"
            typer.echo(abort_hint + ".")
        elif isinstance(event, DryRunAction):
            typer.echo(f"  [dry-run] would {event.action}")
        elif isinstance(event, ConfirmationSkipped):
            typer.echo(f"  [dry-run] would ask: {event.action}")
