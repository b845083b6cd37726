"""
Backoff policy shared by every network-calling stage.

Transient failures are retried with exponential backoff and jitter;
everything else surfaces on the first attempt.
"""

import logging
import threading
from typing import Any, Callable, TypeVar

from pydantic import BaseModel, Field
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from retain_pipeline.core.exceptions import RunCancelledError, TransientNetworkError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy(BaseModel):
    """Bounded exponential backoff with jitter for transient failures."""

    model_config = {"frozen": True}

    max_attempts: int = Field(default=4, ge=1)
    initial_wait: float = Field(default=1.0, ge=0)
    max_wait: float = Field(default=30.0, ge=0)
    jitter: float = Field(default=1.0, ge=0)

    @classmethod
    def immediate(cls, max_attempts: int = 3) -> "RetryPolicy":
        """Policy that retries without sleeping, for tests and dry runs."""
        return cls(max_attempts=max_attempts, initial_wait=0, max_wait=0, jitter=0)

    def retrying(self, *, cancel_event: threading.Event | None = None) -> Retrying:
        """Build a tenacity Retrying object implementing this policy."""

        def _sleep(seconds: float) -> None:
            # Event.wait doubles as an interruptible sleep
            if cancel_event is not None:
                if cancel_event.wait(seconds):
                    raise RunCancelledError()
            elif seconds > 0:
                threading.Event().wait(seconds)

        return Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.initial_wait, max=self.max_wait)
            + wait_random(0, self.jitter),
            retry=retry_if_exception_type(TransientNetworkError),
            before_sleep=_log_retry,
            sleep=_sleep,
            reraise=True,
        )

    def call(
        self,
        fn: Callable[..., T],
        *args: Any,
        cancel_event: threading.Event | None = None,
        **kwargs: Any,
    ) -> T:
        """
        Invoke fn, retrying transient failures per this policy.

        Raises:
            TransientNetworkError: If every attempt failed transiently
            RunCancelledError: If cancelled while waiting between attempts
        """
        return self.retrying(cancel_event=cancel_event)(fn, *args, **kwargs)


def _log_retry(state: RetryCallState) -> None:
    error = state.outcome.exception() if state.outcome else None
    name = getattr(state.fn, "__name__", "call")
    wait = state.next_action.sleep if state.next_action else 0
    logger.warning(
        f"Transient failure in {name} (attempt {state.attempt_number}): {error}; "
        f"retrying in {wait:.1f}s"
    )
