from __future__ import annotations

from pathlib import Path

import pytest

from gitship.workspace.git_ops import (
    GitError,
    ahead_behind,
    branch_delete,
    add,
    branch_exists,
    checkout,
    commit,
    create_branch,
    current_branch,
    fetch,
    is_git_repo,
    merge_conflicts,
    merge_ff_only,
    push,
    rebase,
    rebase_in_progress,
    ref_exists,
    remote_exists,
    rev_parse,
    run_git,
    stash_apply,
    stash_drop,
    stash_list,
    stash_push,
    staged_paths,
    status,
)


def _configure(repo: Path) -> None:
    run_git("config", "user.email", "test@test.com", cwd=repo)
    run_git("config", "user.name", "Test", cwd=repo)


def _commit(repo: Path, name: str, content: str, message: str) -> str:
    (repo / name).write_text(content)
    run_git("add", name, cwd=repo)
    run_git("commit", "-m", message, cwd=repo)
    return rev_parse("HEAD", cwd=repo)


@pytest.fixture()
def git_repo(tmp_path: Path) -> Path:
    """Create a temporary git repo with an initial commit."""
    repo = tmp_path / "repo"
    repo.mkdir()
    run_git("init", "-b", "main", cwd=repo)
    _configure(repo)
    _commit(repo, "README.md", "# Hello\n", "Initial commit")
    return repo


@pytest.fixture()
def clone_pair(tmp_path: Path, git_repo: Path) -> tuple[Path, Path]:
    """A bare remote plus two working clones of it ("work" and "other")."""
    bare = tmp_path / "remote.git"
    run_git("clone", "--bare", str(git_repo), str(bare), cwd=tmp_path)
    clones = []
    for name in ("work", "other"):
        target = tmp_path / name
        run_git("clone", str(bare), str(target), cwd=tmp_path)
        _configure(target)
        clones.append(target)
    return clones[0], clones[1]


class TestBasics:
    def test_run_git_failure_carries_stderr(self, git_repo: Path) -> None:
        with pytest.raises(GitError) as exc_info:
            run_git("checkout", "no-such-branch", cwd=git_repo)
        assert exc_info.value.returncode != 0
        assert "no-such-branch" in exc_info.value.stderr

    def test_current_branch(self, git_repo: Path) -> None:
        assert current_branch(cwd=git_repo) == "main"

    def test_is_git_repo(self, git_repo: Path, tmp_path: Path) -> None:
        plain = tmp_path / "plain"
        plain.mkdir()
        assert is_git_repo(git_repo)
        assert not is_git_repo(plain)
        assert not is_git_repo(tmp_path / "missing")

    def test_ref_and_branch_exists(self, git_repo: Path) -> None:
        assert ref_exists("main", cwd=git_repo)
        assert branch_exists("main", cwd=git_repo)
        assert not ref_exists("origin/main", cwd=git_repo)
        assert not branch_exists("feature", cwd=git_repo)

    def test_status_lists_untracked(self, git_repo: Path) -> None:
        assert status(cwd=git_repo) == ""
        (git_repo / "new.txt").write_text("x")
        assert "new.txt" in status(cwd=git_repo)

    def test_branch_delete(self, git_repo: Path) -> None:
        run_git("branch", "feature", cwd=git_repo)
        branch_delete("feature", cwd=git_repo)
        assert not branch_exists("feature", cwd=git_repo)

    def test_branch_delete_unmerged_needs_force(self, git_repo: Path) -> None:
        run_git("checkout", "-b", "feature", cwd=git_repo)
        _commit(git_repo, "f.txt", "f\n", "feature work")
        checkout("main", cwd=git_repo)
        with pytest.raises(GitError):
            branch_delete("feature", cwd=git_repo)
        branch_delete("feature", cwd=git_repo, force=True)
        assert not branch_exists("feature", cwd=git_repo)

    def test_create_branch_checks_it_out(self, git_repo: Path) -> None:
        create_branch("feature", "main", cwd=git_repo)
        assert current_branch(cwd=git_repo) == "feature"
        with pytest.raises(GitError):
            create_branch("feature", "main", cwd=git_repo)

    def test_create_branch_force_resets_existing(self, git_repo: Path) -> None:
        base = rev_parse("HEAD", cwd=git_repo)
        run_git("checkout", "-b", "feature", cwd=git_repo)
        _commit(git_repo, "f.txt", "f\n", "feature work")
        checkout("main", cwd=git_repo)
        create_branch("feature", "main", cwd=git_repo, force=True)
        assert rev_parse("feature", cwd=git_repo) == base


class TestSave:
    def test_add_all_reports_paths(self, git_repo: Path) -> None:
        (git_repo / "README.md").write_text("# Changed\n")
        (git_repo / "new.txt").write_text("new\n")
        assert sorted(add(cwd=git_repo)) == ["README.md", "new.txt"]
        assert sorted(staged_paths(cwd=git_repo)) == ["README.md", "new.txt"]

    def test_add_dry_run_stages_nothing(self, git_repo: Path) -> None:
        (git_repo / "new.txt").write_text("new\n")
        assert add(cwd=git_repo, dry_run=True) == ["new.txt"]
        assert staged_paths(cwd=git_repo) == []

    def test_add_selected_paths(self, git_repo: Path) -> None:
        (git_repo / "a.txt").write_text("a\n")
        (git_repo / "b.txt").write_text("b\n")
        add(["a.txt"], cwd=git_repo)
        assert staged_paths(cwd=git_repo) == ["a.txt"]

    def test_commit_returns_new_head(self, git_repo: Path) -> None:
        (git_repo / "new.txt").write_text("new\n")
        add(cwd=git_repo)
        sha = commit("Add new.txt", cwd=git_repo)
        assert sha == rev_parse("HEAD", cwd=git_repo)
        assert run_git("log", "-1", "--format=%s", cwd=git_repo) == "Add new.txt"
        assert staged_paths(cwd=git_repo) == []


class TestRemote:
    def test_remote_exists(self, clone_pair: tuple[Path, Path]) -> None:
        work, _ = clone_pair
        assert remote_exists("origin", cwd=work)
        assert not remote_exists("upstream", cwd=work)

    def test_fetch_updates_tracking_ref(self, clone_pair: tuple[Path, Path]) -> None:
        work, other = clone_pair
        sha = _commit(other, "up.txt", "up\n", "upstream change")
        push("origin", "main", cwd=other)

        assert ahead_behind("main", "origin/main", cwd=work) == (0, 0)
        fetch("origin", "main", cwd=work)
        assert rev_parse("origin/main", cwd=work) == sha
        assert ahead_behind("main", "origin/main", cwd=work) == (0, 1)

    def test_push_sets_upstream(self, clone_pair: tuple[Path, Path]) -> None:
        work, _ = clone_pair
        run_git("checkout", "-b", "feature", cwd=work)
        _commit(work, "f.txt", "f\n", "feature")
        push("origin", "feature", cwd=work, set_upstream=True)
        assert run_git("rev-parse", "--abbrev-ref", "feature@{upstream}", cwd=work) == "origin/feature"

    def test_fetch_unknown_remote_fails(self, git_repo: Path) -> None:
        with pytest.raises(GitError):
            fetch("nowhere", "main", cwd=git_repo)

    def test_merge_ff_only(self, clone_pair: tuple[Path, Path]) -> None:
        work, other = clone_pair
        sha = _commit(other, "up.txt", "up\n", "upstream change")
        push("origin", "main", cwd=other)
        fetch("origin", "main", cwd=work)
        merge_ff_only("origin/main", cwd=work)
        assert rev_parse("HEAD", cwd=work) == sha


class TestRebase:
    def test_clean_rebase(self, clone_pair: tuple[Path, Path]) -> None:
        work, other = clone_pair
        _commit(other, "up.txt", "up\n", "upstream change")
        push("origin", "main", cwd=other)
        _commit(work, "mine.txt", "mine\n", "local change")
        fetch("origin", "main", cwd=work)

        rebase("origin/main", cwd=work)
        assert ahead_behind("main", "origin/main", cwd=work) == (1, 0)
        assert not rebase_in_progress(cwd=work)

    def test_conflicting_rebase_leaves_rebase_in_progress(self, clone_pair: tuple[Path, Path]) -> None:
        work, other = clone_pair
        _commit(other, "README.md", "# Theirs\n", "upstream edit")
        push("origin", "main", cwd=other)
        _commit(work, "README.md", "# Mine\n", "local edit")
        fetch("origin", "main", cwd=work)

        with pytest.raises(GitError):
            rebase("origin/main", cwd=work)
        assert rebase_in_progress(cwd=work)
        assert merge_conflicts(cwd=work) == ["README.md"]


class TestStash:
    def test_push_returns_commit_id(self, git_repo: Path) -> None:
        (git_repo / "README.md").write_text("edited\n")
        stash_id = stash_push("gitship: test", cwd=git_repo)
        assert len(stash_id) == 40
        assert stash_list(cwd=git_repo) == [stash_id]
        assert status(cwd=git_repo) == ""

    def test_push_includes_untracked(self, git_repo: Path) -> None:
        (git_repo / "scratch.txt").write_text("notes\n")
        stash_push("gitship: test", cwd=git_repo)
        assert not (git_repo / "scratch.txt").exists()

    def test_push_on_clean_tree_returns_empty(self, git_repo: Path) -> None:
        assert stash_push("gitship: nothing", cwd=git_repo) == ""
        assert stash_list(cwd=git_repo) == []

    def test_apply_restores_staged_and_untracked(self, git_repo: Path) -> None:
        (git_repo / "README.md").write_text("staged\n")
        run_git("add", "README.md", cwd=git_repo)
        (git_repo / "scratch.txt").write_text("notes\n")
        stash_id = stash_push("gitship: test", cwd=git_repo)

        stash_apply(stash_id, cwd=git_repo)
        assert (git_repo / "README.md").read_text() == "staged\n"
        assert (git_repo / "scratch.txt").read_text() == "notes\n"
        assert "M  README.md" in status(cwd=git_repo)

    def test_drop_removes_exact_entry(self, git_repo: Path) -> None:
        (git_repo / "README.md").write_text("first\n")
        first = stash_push("one", cwd=git_repo)
        (git_repo / "README.md").write_text("second\n")
        second = stash_push("two", cwd=git_repo)

        stash_drop(first, cwd=git_repo)
        assert stash_list(cwd=git_repo) == [second]

    def test_drop_unknown_id_raises(self, git_repo: Path) -> None:
        with pytest.raises(GitError):
            stash_drop("0" * 40, cwd=git_repo)
