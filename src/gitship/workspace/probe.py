from __future__ import annotations

from dataclasses import dataclass

from gitship.workspace.access import RepositoryAccess


@dataclass(frozen=True)
class RepositoryState:
    branch: str
    clean: bool
    upstream: str
    # None when the upstream tracking ref has never been fetched
    ahead: int | None
    behind: int | None

    @property
    def upstream_known(self) -> bool:
        return self.ahead is not None and self.behind is not None

    @property
    def up_to_date(self) -> bool:
        return self.upstream_known and self.behind == 0


class RepositoryProbe:
    """Read-only queries against a repository. Never mutates, never retries."""

    def __init__(self, access: RepositoryAccess) -> None:
        self._access = access

    def current_branch(self) -> str:
        return self._access.current_branch()

    def is_clean(self) -> bool:
        return self._access.is_clean()

    def ahead_behind(self, local: str, remote: str) -> tuple[int, int]:
        return self._access.ahead_behind(local, remote)

    def has_stash(self) -> bool:
        return bool(self._access.stash_list())

    def inspect(self, upstream: str) -> RepositoryState:
        branch = self.current_branch()
        clean = self.is_clean()
        ahead: int | None = None
        behind: int | None = None
        if self._access.ref_exists(upstream):
            ahead, behind = self.ahead_behind(branch, upstream)
        return RepositoryState(
            branch=branch,
            clean=clean,
            upstream=upstream,
            ahead=ahead,
            behind=behind,
        )
