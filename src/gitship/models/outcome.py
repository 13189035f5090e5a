from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field


class MergeStrategy(str, Enum):
    REBASE = "rebase"
    SQUASH = "squash"
    MERGE = "merge"


class StashEntry(BaseModel):
    identifier: str
    message: str = ""
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    applied: bool = False

    @property
    def short_id(self) -> str:
        return self.identifier[:8]


# --- sync outcomes ---


class UpToDate(BaseModel):
    kind: Literal["up_to_date"] = "up_to_date"


class FastForwarded(BaseModel):
    kind: Literal["fast_forwarded"] = "fast_forwarded"
    commits: int = 0


class RebasedClean(BaseModel):
    kind: Literal["rebased_clean"] = "rebased_clean"
    replayed: int = 0


class ConflictPending(BaseModel):
    kind: Literal["conflict_pending"] = "conflict_pending"
    conflicting_paths: frozenset[str] = frozenset()
    stash: StashEntry | None = None


class Aborted(BaseModel):
    kind: Literal["aborted"] = "aborted"
    reason: str = ""


SyncOutcome = Annotated[
    Union[UpToDate, FastForwarded, RebasedClean, ConflictPending, Aborted],
    Field(discriminator="kind"),
]


# --- ship outcomes ---


class Pushed(BaseModel):
    kind: Literal["pushed"] = "pushed"
    remote: str
    branch: str


class PullRequestCreated(BaseModel):
    kind: Literal["pull_request_created"] = "pull_request_created"
    id: str
    url: str = ""


class Merged(BaseModel):
    kind: Literal["merged"] = "merged"
    strategy: MergeStrategy


class BranchDeleted(BaseModel):
    kind: Literal["branch_deleted"] = "branch_deleted"
    branch: str
    remote: bool = False


class SwitchedBack(BaseModel):
    kind: Literal["switched_back"] = "switched_back"
    branch: str


ShipOutcome = Annotated[
    Union[Pushed, PullRequestCreated, Merged, BranchDeleted, SwitchedBack, Aborted],
    Field(discriminator="kind"),
]
