from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Callable, Protocol, TypeVar, runtime_checkable

from gitship.models.errors import ErrorKind, OperationError, conflict, precondition
from gitship.workspace import git_ops
from gitship.workspace.git_ops import GitError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRANSIENT_PATTERNS = [
    r"could not resolve host",
    r"connection (timed out|refused|reset)",
    r"operation timed out",
    r"timed out",
    r"the remote end hung up unexpectedly",
    r"early eof",
    r"unexpected disconnect",
    r"failed to connect",
    r"network is unreachable",
    r"temporary failure in name resolution",
    r"the requested url returned error: 5\d\d",
    r"rpc failed",
    r"index\.lock",
    r"unable to create '.*\.lock'",
]

_FATAL_PATTERNS = [
    r"authentication failed",
    r"permission denied",
    r"could not read username",
    r"could not read password",
    r"the requested url returned error: 40[13]",
    r"corrupt",
    r"bad object",
    r"fatal: loose object",
]

_PRECONDITION_PATTERNS = [
    r"not a git repository",
    r"does not appear to be a git repository",
    r"couldn't find remote ref",
    r"no such remote",
    r"unknown revision",
    r"did not match any file\(s\) known to git",
    r"pathspec '.*' did not match",
    r"a branch named '.*' already exists",
    r"invalid reference",
    r"not a valid (object name|ref)",
    r"branch '.*' not found",
    r"please commit your changes or stash them",
    r"cannot rebase",
    r"would be overwritten",
    r"not possible to fast-forward",
    r"is not fully merged",
    r"cannot delete branch .* (checked out|used by worktree)",
    r"rejected",
]


def classify_git_error(error: GitError, *, step: str = "") -> OperationError:
    """Map a raw git failure onto the error taxonomy.

    Fatal patterns win over transient ones so that an authentication failure
    reported alongside a disconnect is never retried.
    """
    text = error.stderr.lower()
    if any(re.search(p, text) for p in _FATAL_PATTERNS):
        kind = ErrorKind.FATAL
    elif any(re.search(p, text) for p in _TRANSIENT_PATTERNS):
        kind = ErrorKind.TRANSIENT
    elif any(re.search(p, text) for p in _PRECONDITION_PATTERNS):
        kind = ErrorKind.PRECONDITION
    else:
        kind = ErrorKind.FATAL
    lines = [line.strip() for line in error.stderr.splitlines() if line.strip()]
    flagged = [line for line in lines if line.lower().startswith(("fatal:", "error:"))]
    message = (flagged or lines or [str(error)])[0]
    op_error = OperationError(kind, message, step=step)
    op_error.__cause__ = error
    return op_error


@runtime_checkable
class RepositoryAccess(Protocol):
    """Capabilities the engines need from a repository.

    Every method raises :class:`OperationError` on failure.
    """

    def current_branch(self) -> str: ...

    def is_clean(self) -> bool: ...

    def ahead_behind(self, local: str, remote: str) -> tuple[int, int]: ...

    def ref_exists(self, ref: str) -> bool: ...

    def branch_exists(self, name: str) -> bool: ...

    def remote_exists(self, name: str) -> bool: ...

    def stash_list(self) -> list[str]: ...

    def stash_save(self, message: str) -> str: ...

    def stash_apply(self, stash_id: str) -> None: ...

    def stash_drop(self, stash_id: str) -> None: ...

    def fetch(self, remote: str, branch: str) -> None: ...

    def rebase(self, onto: str) -> None: ...

    def fast_forward(self, ref: str) -> None: ...

    def push(self, remote: str, branch: str) -> None: ...

    def checkout(self, branch: str) -> None: ...

    def delete_branch(self, branch: str, *, force: bool = False) -> None: ...

    def delete_remote_branch(self, remote: str, branch: str) -> None: ...

    def create_branch(self, name: str, start_point: str, *, force: bool = False) -> None: ...

    def stage(self, paths: list[str] | None = None, *, dry_run: bool = False) -> list[str]: ...

    def staged_paths(self) -> list[str]: ...

    def commit(self, message: str) -> str: ...


class GitRepository:
    """:class:`RepositoryAccess` over the ``git`` executable in ``path``."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def _git(self, step: str, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        try:
            return fn(*args, cwd=self.path, **kwargs)
        except GitError as e:
            raise classify_git_error(e, step=step) from e
        except (FileNotFoundError, NotADirectoryError) as e:
            raise precondition(f"cannot run git in {self.path}: {e}", step=step) from e

    def current_branch(self) -> str:
        branch = self._git("probe", git_ops.current_branch)
        if branch == "HEAD":
            raise precondition("HEAD is detached; check out a branch first", step="probe")
        return branch

    def is_clean(self) -> bool:
        return self._git("probe", git_ops.status) == ""

    def ahead_behind(self, local: str, remote: str) -> tuple[int, int]:
        if not self.ref_exists(remote):
            raise precondition(f"unknown ref '{remote}'", step="probe")
        return self._git("probe", git_ops.ahead_behind, local, remote)

    def ref_exists(self, ref: str) -> bool:
        return self._git("probe", git_ops.ref_exists, ref)

    def branch_exists(self, name: str) -> bool:
        return self._git("probe", git_ops.branch_exists, name)

    def remote_exists(self, name: str) -> bool:
        return self._git("probe", git_ops.remote_exists, name)

    def stash_list(self) -> list[str]:
        return self._git("probe", git_ops.stash_list)

    def stash_save(self, message: str) -> str:
        return self._git("stash", git_ops.stash_push, message)

    def stash_apply(self, stash_id: str) -> None:
        self._git("restore", git_ops.stash_apply, stash_id)

    def stash_drop(self, stash_id: str) -> None:
        self._git("restore", git_ops.stash_drop, stash_id)

    def fetch(self, remote: str, branch: str) -> None:
        self._git("fetch", git_ops.fetch, remote, branch)

    def rebase(self, onto: str) -> None:
        try:
            git_ops.rebase(onto, cwd=self.path)
        except GitError as e:
            paths = self._git("rebase", git_ops.merge_conflicts)
            if paths:
                raise conflict(
                    f"rebase onto {onto} stopped on {len(paths)} conflicting path(s)",
                    frozenset(paths),
                    step="rebase",
                ) from e
            if self._git("rebase", git_ops.rebase_in_progress):
                # stopped without unmerged paths (interrupted, or an empty commit)
                raise conflict(f"rebase onto {onto} stopped before finishing", frozenset(), step="rebase") from e
            raise classify_git_error(e, step="rebase") from e

    def fast_forward(self, ref: str) -> None:
        self._git("fast-forward", git_ops.merge_ff_only, ref)

    def push(self, remote: str, branch: str) -> None:
        self._git("push", git_ops.push, remote, branch, set_upstream=True)

    def checkout(self, branch: str) -> None:
        self._git("switch", git_ops.checkout, branch)

    def delete_branch(self, branch: str, *, force: bool = False) -> None:
        self._git("delete-branch", git_ops.branch_delete, branch, force=force)

    def delete_remote_branch(self, remote: str, branch: str) -> None:
        self._git("delete-remote-branch", git_ops.delete_remote_branch, remote, branch)

    def create_branch(self, name: str, start_point: str, *, force: bool = False) -> None:
        self._git("create-branch", git_ops.create_branch, name, start_point, force=force)

    def stage(self, paths: list[str] | None = None, *, dry_run: bool = False) -> list[str]:
        return self._git("stage", git_ops.add, paths, dry_run=dry_run)

    def staged_paths(self) -> list[str]:
        return self._git("probe", git_ops.staged_paths)

    def commit(self, message: str) -> str:
        return self._git("commit", git_ops.commit, message)


def open_repository(path: Path) -> GitRepository:
    if not path.is_dir() or not git_ops.is_git_repo(path):
        raise precondition(f"not a git repository: {path}", step="probe")
    logger.debug("Opened repository at %s", path)
    return GitRepository(path)
