from __future__ import annotations

import subprocess
from pathlib import Path


class GitError(Exception):
    def __init__(self, command: list[str], returncode: int, stderr: str) -> None:
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"git command failed ({returncode}): {' '.join(command)}\n{stderr}")


def run_git(*args: str, cwd: Path) -> str:
    cmd = ["git", *args]
    result = subprocess.run(
        cmd,
        cwd=cwd,
        capture_output=True,
        text=True,
    )
    if result.returncode != 0:
        # rebase and merge report conflicts on stdout
        detail = "\n".join(s for s in (result.stderr.strip(), result.stdout.strip()) if s)
        raise GitError(cmd, result.returncode, detail)
    return result.stdout.strip()


def rev_parse(ref: str, *, cwd: Path) -> str:
    return run_git("rev-parse", ref, cwd=cwd)


def current_branch(*, cwd: Path) -> str:
    return run_git("rev-parse", "--abbrev-ref", "HEAD", cwd=cwd)


def checkout(ref: str, *, cwd: Path) -> None:
    run_git("checkout", ref, cwd=cwd)


def status(*, cwd: Path) -> str:
    return run_git("status", "--porcelain", cwd=cwd)


def is_git_repo(path: Path) -> bool:
    try:
        run_git("rev-parse", "--is-inside-work-tree", cwd=path)
        return True
    except (GitError, FileNotFoundError, NotADirectoryError):
        return False


def ref_exists(ref: str, *, cwd: Path) -> bool:
    try:
        run_git("rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}", cwd=cwd)
        return True
    except GitError:
        return False


def branch_exists(name: str, *, cwd: Path) -> bool:
    return ref_exists(f"refs/heads/{name}", cwd=cwd)


def remote_exists(name: str, *, cwd: Path) -> bool:
    output = run_git("remote", cwd=cwd)
    return name in output.splitlines()


def ahead_behind(local: str, upstream: str, *, cwd: Path) -> tuple[int, int]:
    output = run_git("rev-list", "--left-right", "--count", f"{local}...{upstream}", cwd=cwd)
    ahead, behind = output.split()
    return int(ahead), int(behind)


def fetch(remote: str, branch: str | None = None, *, cwd: Path) -> None:
    args = ["fetch", remote]
    if branch:
        args.append(branch)
    run_git(*args, cwd=cwd)


def push(remote: str, branch: str, *, cwd: Path, set_upstream: bool = False) -> None:
    args = ["push"]
    if set_upstream:
        args.append("--set-upstream")
    args.extend([remote, branch])
    run_git(*args, cwd=cwd)


def delete_remote_branch(remote: str, branch: str, *, cwd: Path) -> None:
    run_git("push", remote, "--delete", branch, cwd=cwd)


def rebase(onto: str, *, cwd: Path) -> None:
    run_git("rebase", onto, cwd=cwd)


def rebase_in_progress(*, cwd: Path) -> bool:
    git_dir = Path(run_git("rev-parse", "--absolute-git-dir", cwd=cwd))
    return (git_dir / "rebase-merge").exists() or (git_dir / "rebase-apply").exists()


def merge_ff_only(ref: str, *, cwd: Path) -> None:
    run_git("merge", "--ff-only", ref, cwd=cwd)


def merge_conflicts(*, cwd: Path) -> list[str]:
    output = run_git("diff", "--name-only", "--diff-filter=U", cwd=cwd)
    return output.splitlines() if output else []


def branch_delete(name: str, *, cwd: Path, force: bool = False) -> None:
    run_git("branch", "-D" if force else "-d", name, cwd=cwd)


def create_branch(name: str, start_point: str, *, cwd: Path, force: bool = False) -> None:
    run_git("checkout", "--no-track", "-B" if force else "-b", name, start_point, cwd=cwd)


def add(paths: list[str] | None = None, *, cwd: Path, dry_run: bool = False) -> list[str]:
    """Stage ``paths`` (everything when empty). Returns the paths git reports as added or removed."""
    args = ["add", "--verbose"]
    if dry_run:
        args.append("--dry-run")
    if paths:
        args.extend(["--", *paths])
    else:
        args.append("--all")
    output = run_git(*args, cwd=cwd)
    # lines look like: add 'src/app.py' / remove 'old.txt'
    return [line.split(" ", 1)[1].strip("'") for line in output.splitlines() if " " in line]


def staged_paths(*, cwd: Path) -> list[str]:
    output = run_git("diff", "--cached", "--name-only", cwd=cwd)
    return output.splitlines() if output else []


def commit(message: str, *, cwd: Path) -> str:
    run_git("commit", "-m", message, cwd=cwd)
    return rev_parse("HEAD", cwd=cwd)


def stash_push(message: str, *, cwd: Path) -> str:
    """Stash tracked, staged and untracked changes. Returns the stash commit id, or "" if nothing was stashed."""
    before = stash_list(cwd=cwd)
    run_git("stash", "push", "--include-untracked", "-m", message, cwd=cwd)
    after = stash_list(cwd=cwd)
    if after == before or not after:
        return ""
    return after[0]


def stash_list(*, cwd: Path) -> list[str]:
    output = run_git("stash", "list", "--format=%H", cwd=cwd)
    return output.splitlines() if output else []


def stash_apply(stash_id: str, *, cwd: Path) -> None:
    try:
        run_git("stash", "apply", "--index", stash_id, cwd=cwd)
    except GitError as e:
        if "--index" not in e.stderr:
            raise
        # the index could not be restored as-is; fall back to a worktree-only apply
        run_git("stash", "apply", stash_id, cwd=cwd)


def stash_drop(stash_id: str, *, cwd: Path) -> None:
    entries = stash_list(cwd=cwd)
    if stash_id not in entries:
        raise GitError(["git", "stash", "drop", stash_id], 1, f"stash {stash_id} not found")
    run_git("stash", "drop", f"stash@{{{entries.index(stash_id)}}}", cwd=cwd)
