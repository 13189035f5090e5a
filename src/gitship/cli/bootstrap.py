from __future__ import annotations

import logging
import signal
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

import typer
from pydantic import ValidationError

from gitship.cli.exit_codes import ExitCode, exit_code_for_error, print_error
from gitship.config.settings import GitshipConfig, build_context, load_config
from gitship.engine.retry import RetryExecutor
from gitship.events.dispatcher import EventDispatcher
from gitship.events.observer import StdoutObserver
from gitship.interviewer.base import Interviewer
from gitship.interviewer.console import ConsoleInterviewer
from gitship.models.context import WorkflowContext
from gitship.models.errors import OperationError
from gitship.workspace.access import GitRepository, open_repository


@dataclass(frozen=True)
class GlobalOptions:
    dry_run: bool = False
    yes: bool = False
    verbose: bool = False
    repo: Path = Path(".")


@dataclass
class Session:
    config: GitshipConfig
    context: WorkflowContext
    access: GitRepository
    dispatcher: EventDispatcher
    interviewer: Interviewer | None
    executor: RetryExecutor
    cancel: threading.Event


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def open_session(options: GlobalOptions) -> Session:
    """Load config, open the repository and wire the event sink for one command.

    Exits with the matching code when the repository or config is unusable.
    """
    repo_path = options.repo.resolve()
    try:
        access = open_repository(repo_path)
    except OperationError as e:
        print_error(e)
        raise typer.Exit(code=exit_code_for_error(e))

    try:
        config = load_config(start=repo_path)
        context = build_context(
            config,
            access=access,
            dry_run=options.dry_run,
            auto_confirm=options.yes,
            verbose=options.verbose,
        )
    except (ValidationError, ValueError) as e:
        typer.echo(f"Error: invalid configuration: {e}", err=True)
        raise typer.Exit(code=ExitCode.FATAL)

    dispatcher = EventDispatcher()
    dispatcher.add_observer(StdoutObserver(verbose=options.verbose))
    cancel = threading.Event()
    return Session(
        config=config,
        context=context,
        access=access,
        dispatcher=dispatcher,
        interviewer=None if options.yes else ConsoleInterviewer(),
        executor=RetryExecutor(emitter=dispatcher, cancel=cancel),
        cancel=cancel,
    )


@contextmanager
def interrupt_requests(cancel: threading.Event) -> Iterator[None]:
    """First Ctrl+C stops retry loops between attempts; a second one interrupts outright."""
    original_handler = signal.getsignal(signal.SIGINT)

    def _sigint_handler(signum: int, frame: object) -> None:
        if cancel.is_set():
            raise KeyboardInterrupt
        typer.echo("\nInterrupt requested, stopping after the current step (Ctrl+C again to force)...", err=True)
        cancel.set()

    signal.signal(signal.SIGINT, _sigint_handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, original_handler)
