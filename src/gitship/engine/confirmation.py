from __future__ import annotations

import logging
from typing import Any, Protocol

from gitship.interviewer.base import Interviewer, ask_yes_no
from gitship.models.context import WorkflowContext

logger = logging.getLogger(__name__)


class EventEmitter(Protocol):
    def emit(self, event_type: str, **data: Any) -> None: ...


class ConfirmationGate:
    """Asks before an irreversible step.

    Dry-run never prompts and never approves: the action is recorded in
    :attr:`skipped` so the simulation can keep going. Auto-confirm approves
    without prompting. Otherwise the interviewer decides.
    """

    def __init__(
        self,
        context: WorkflowContext,
        interviewer: Interviewer | None = None,
        emitter: EventEmitter | None = None,
    ) -> None:
        self._context = context
        self._interviewer = interviewer
        self._emitter = emitter
        self.skipped: list[str] = []

    def confirm(self, action_description: str, *, step: str = "") -> bool:
        if self._context.dry_run:
            self.skipped.append(action_description)
            if self._emitter:
                self._emitter.emit("ConfirmationSkipped", step=step, action=action_description)
            return False

        if self._context.auto_confirm:
            logger.debug("Auto-confirmed: %s", action_description)
            return True

        if self._interviewer is None:
            logger.warning("No interactive prompt available, declining: %s", action_description)
            return False

        approved = ask_yes_no(self._interviewer, action_description, stage=step)
        logger.debug("Confirmation for %r: %s", action_description, "approved" if approved else "declined")
        return approved
