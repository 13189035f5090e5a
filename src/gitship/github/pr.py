from __future__ import annotations

import logging
import re
import subprocess
from pathlib import Path
from typing import Protocol, runtime_checkable

from pydantic import BaseModel

from gitship.models.errors import fatal, precondition
from gitship.models.outcome import MergeStrategy

logger = logging.getLogger(__name__)

_PR_NUMBER = re.compile(r"/pull/(\d+)")


class PullRequestPayload(BaseModel):
    head: str
    base: str
    title: str = ""
    body: str = ""
    draft: bool = False


class PullRequest(BaseModel):
    id: str
    url: str = ""


@runtime_checkable
class PullRequestService(Protocol):
    """Remote pull-request operations. Every method raises :class:`OperationError`."""

    def create_pr(self, payload: PullRequestPayload) -> PullRequest: ...

    def merge(self, pr_id: str, strategy: MergeStrategy) -> None: ...


class GhCliPullRequests:
    """:class:`PullRequestService` over the GitHub ``gh`` command line tool.

    Any non-zero exit is ``FATAL`` for the step: creating or merging a pull
    request is not retried because a half-applied remote call cannot be told
    apart from a failed one.
    """

    def __init__(self, cwd: Path, executable: str = "gh") -> None:
        self.cwd = cwd
        self.executable = executable

    def create_pr(self, payload: PullRequestPayload) -> PullRequest:
        args = ["pr", "create", "--head", payload.head, "--base", payload.base]
        if payload.title:
            args += ["--title", payload.title, "--body", payload.body]
        else:
            args.append("--fill")
        if payload.draft:
            args.append("--draft")

        output = self._run(args, step="pull-request")
        url = output.splitlines()[-1].strip() if output else ""
        match = _PR_NUMBER.search(url)
        if match is None:
            raise fatal(f"could not read the pull request number from gh output: {output!r}", step="pull-request")
        logger.debug("Created pull request %s at %s", match.group(1), url)
        return PullRequest(id=match.group(1), url=url)

    def merge(self, pr_id: str, strategy: MergeStrategy) -> None:
        self._run(["pr", "merge", pr_id, f"--{strategy.value}"], step="merge")

    def _run(self, args: list[str], *, step: str) -> str:
        cmd = [self.executable, *args]
        try:
            result = subprocess.run(cmd, cwd=self.cwd, capture_output=True, text=True)
        except FileNotFoundError as e:
            raise precondition(
                f"'{self.executable}' not found; install the GitHub CLI to create pull requests",
                step=step,
            ) from e
        if result.returncode != 0:
            detail = result.stderr.strip() or result.stdout.strip() or f"exit code {result.returncode}"
            raise fatal(f"{' '.join(cmd[:3])} failed: {detail}", step=step)
        return result.stdout.strip()
