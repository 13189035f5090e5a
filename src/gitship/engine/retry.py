from __future__ import annotations

import logging
import threading
import time
from enum import Enum
from typing import Any, Callable, Protocol, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from gitship.models.errors import OperationCancelled, OperationError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_DELAY = 30.0


class EventEmitter(Protocol):
    def emit(self, event_type: str, **data: Any) -> None: ...


class Backoff(str, Enum):
    FIXED = "fixed"
    EXPONENTIAL = "exponential"


class RetryPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=5, ge=1)
    base_delay: float = Field(default=1.0, ge=0)
    backoff: Backoff = Backoff.EXPONENTIAL
    max_delay: float = Field(default=DEFAULT_MAX_DELAY, ge=0)


PRESET_POLICIES: dict[str, RetryPolicy] = {
    "none": RetryPolicy(max_attempts=1),
    "standard": RetryPolicy(max_attempts=5, base_delay=1.0, backoff=Backoff.EXPONENTIAL),
    "patient": RetryPolicy(max_attempts=8, base_delay=2.0, backoff=Backoff.EXPONENTIAL),
    # The legacy shell workflow retried 50 times, one second apart.
    "persistent": RetryPolicy(max_attempts=50, base_delay=1.0, backoff=Backoff.FIXED),
}


def calculate_delay(policy: RetryPolicy, attempt: int) -> float:
    """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
    if policy.backoff == Backoff.FIXED:
        delay = policy.base_delay
    else:
        delay = policy.base_delay * (2 ** (attempt - 1))
    return min(delay, policy.max_delay)


class RetryExecutor:
    """Runs a remote-facing operation under a :class:`RetryPolicy`.

    Only ``TRANSIENT`` failures are retried; ``CONFLICT``, ``PRECONDITION``
    and ``FATAL`` failures are returned to the caller on the first attempt.
    The executor keeps no state between calls, so a single instance can be
    shared by every step of a workflow.

    ``cancel`` is checked before every attempt and waited on between
    attempts, so setting it (or pressing Ctrl+C during a wait) stops the loop
    with :class:`OperationCancelled`. An attempt that is already running is
    never interrupted. Engines call :meth:`check_cancelled` between steps that
    do not go through the executor.
    """

    def __init__(
        self,
        *,
        emitter: EventEmitter | None = None,
        sleep_fn: Callable[[float], Any] | None = None,
        cancel: threading.Event | None = None,
    ) -> None:
        self._emitter = emitter
        self._sleep_fn = sleep_fn
        self._cancel = cancel

    def execute(self, op: Callable[[], T], policy: RetryPolicy, *, step: str = "") -> T:
        last_error: OperationError | None = None

        for attempt in range(1, policy.max_attempts + 1):
            self.check_cancelled(step)
            try:
                return op()
            except KeyboardInterrupt:
                raise OperationCancelled(step=step) from None
            except OperationError as e:
                if not e.step:
                    e.step = step
                if not e.retryable:
                    raise
                last_error = e

            if attempt >= policy.max_attempts:
                break

            delay = calculate_delay(policy, attempt)
            logger.info(
                "%s failed (attempt %d/%d), retrying in %.1fs: %s",
                step or "operation",
                attempt,
                policy.max_attempts,
                delay,
                last_error.message,
            )
            if self._emitter:
                self._emitter.emit(
                    "StepRetrying",
                    step=step,
                    attempt=attempt,
                    max_attempts=policy.max_attempts,
                    delay_ms=int(delay * 1000),
                    error=last_error.message,
                )
            self._wait(delay, step)

        assert last_error is not None
        last_error.attempts = policy.max_attempts
        logger.warning(
            "%s failed after %d attempts: %s",
            step or "operation",
            policy.max_attempts,
            last_error.message,
        )
        raise last_error

    def check_cancelled(self, step: str = "") -> None:
        """Raise :class:`OperationCancelled` once an interrupt has been requested."""
        if self._cancel is not None and self._cancel.is_set():
            raise OperationCancelled(step=step)

    def _wait(self, delay: float, step: str) -> None:
        try:
            if self._sleep_fn is not None:
                self._sleep_fn(delay)
            elif self._cancel is not None:
                self._cancel.wait(delay)
            else:
                time.sleep(delay)
        except KeyboardInterrupt:
            raise OperationCancelled(step=step) from None
        self.check_cancelled(step)
