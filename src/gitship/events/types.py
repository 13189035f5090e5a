from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field


class Event(BaseModel):
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    event_type: str


class WorkflowStarted(Event):
    event_type: str = "WorkflowStarted"
    workflow: str
    branch: str = ""
    dry_run: bool = False


class WorkflowCompleted(Event):
    event_type: str = "WorkflowCompleted"
    workflow: str
    outcome: str = ""
    duration_ms: int = 0


class WorkflowFailed(Event):
    event_type: str = "WorkflowFailed"
    workflow: str
    error: str = ""
    kind: str = ""
    completed_steps: list[str] = Field(default_factory=list)


class StepStarted(Event):
    event_type: str = "StepStarted"
    step: str
    description: str = ""


class StepCompleted(Event):
    event_type: str = "StepCompleted"
    step: str
    detail: str = ""


class StepFailed(Event):
    event_type: str = "StepFailed"
    step: str
    error: str = ""
    kind: str = ""


class StepRetrying(Event):
    event_type: str = "StepRetrying"
    step: str
    attempt: int = 0
    max_attempts: int = 0
    delay_ms: int = 0
    error: str = ""


class StashCreated(Event):
    event_type: str = "StashCreated"
    stash_id: str
    message: str = ""


class StashRestored(Event):
    event_type: str = "StashRestored"
    stash_id: str


class StashRetained(Event):
    event_type: str = "StashRetained"
    stash_id: str
    reason: str = ""


class ConflictDetected(Event):
    event_type: str = "ConflictDetected"
    paths: list[str] = Field(default_factory=list)
    stash_id: str = ""


class DryRunAction(Event):
    event_type: str = "DryRunAction"
    step: str
    action: str


class ConfirmationSkipped(Event):
    event_type: str = "ConfirmationSkipped"
    step: str = ""
    action: str = ""


EVENT_TYPE_MAP: dict[str, type[Event]] = {
    "WorkflowStarted": WorkflowStarted,
    "WorkflowCompleted": WorkflowCompleted,
    "WorkflowFailed": WorkflowFailed,
    "StepStarted": StepStarted,
    "StepCompleted": StepCompleted,
    "StepFailed": StepFailed,
    "StepRetrying": StepRetrying,
    "StashCreated": StashCreated,
    "StashRestored": StashRestored,
    "StashRetained": StashRetained,
    "ConflictDetected": ConflictDetected,
    "DryRunAction": DryRunAction,
    "ConfirmationSkipped": ConfirmationSkipped,
}
