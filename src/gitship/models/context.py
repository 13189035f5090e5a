from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from gitship.engine.retry import PRESET_POLICIES, RetryPolicy


class WorkflowContext(BaseModel):
    """Per-invocation settings shared by both engines. Read-only once built."""

    model_config = ConfigDict(frozen=True)

    dry_run: bool = False
    auto_confirm: bool = False
    verbose: bool = False
    retry_policy: RetryPolicy = Field(default_factory=lambda: PRESET_POLICIES["standard"])
    remote_name: str = "origin"
    base_branch: str = "main"

    @property
    def upstream_ref(self) -> str:
        return f"{self.remote_name}/{self.base_branch}"
