"""
Backoff Policy

Exponential retry pacing with a permanent-failure escape hatch, built on
tenacity. Used by the readiness gates to wait for provider credentials,
which may take arbitrarily long, so attempts are unbounded by default.

Author: Bucket Mover Project
License: MIT
"""

import threading
import time
from typing import Callable, Iterator, Optional, TypeVar

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_not_exception_type,
    stop_after_attempt,
    stop_after_delay,
    stop_any,
    stop_never,
    stop_when_event_set,
    wait_exponential,
    wait_random,
)

from .errors import PermanentError
from ..utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def permanent(error: BaseException) -> PermanentError:
    """
    Mark an error as permanent so the policy stops retrying.

    Args:
        error: The underlying failure

    Returns:
        PermanentError wrapping ``error`` (or ``error`` itself if it is
        already permanent)
    """
    if isinstance(error, PermanentError):
        return error
    return PermanentError(str(error), cause=error)


class BackoffPolicy:
    """
    Exponential backoff retry strategy.

    Delay before retry ``n`` (1-based) is
    ``initial_interval * multiplier ** (n - 1)`` capped at ``max_interval``,
    plus up to ``jitter`` seconds of random delay.
    """

    def __init__(
        self,
        initial_interval: float = 0.5,
        multiplier: float = 1.5,
        max_interval: float = 60.0,
        jitter: float = 0.0,
        max_attempts: Optional[int] = None,
        max_elapsed: Optional[float] = None,
        sleep: Optional[Callable[[float], None]] = None
    ):
        """
        Initialize backoff policy.

        Args:
            initial_interval: Delay before the first retry (seconds)
            multiplier: Growth factor between consecutive delays
            max_interval: Upper bound for a single delay (seconds)
            jitter: Extra random delay bound added to each wait (seconds)
            max_attempts: Total attempt ceiling (None = unbounded)
            max_elapsed: Total time ceiling in seconds (None = unbounded)
            sleep: Sleep function, injectable for tests
        """
        if initial_interval < 0 or max_interval < 0 or jitter < 0:
            raise ValueError("Backoff intervals must be non-negative")
        if multiplier < 1:
            raise ValueError(f"Backoff multiplier must be >= 1: {multiplier}")
        if max_attempts is not None and max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1: {max_attempts}")

        self.initial_interval = initial_interval
        self.multiplier = multiplier
        self.max_interval = max_interval
        self.jitter = jitter
        self.max_attempts = max_attempts
        self.max_elapsed = max_elapsed
        self._sleep = sleep

    def _wait(self):
        wait = wait_exponential(
            multiplier=self.initial_interval,
            exp_base=self.multiplier,
            max=self.max_interval
        )
        if self.jitter:
            wait = wait + wait_random(0, self.jitter)
        return wait

    def _stop(self):
        stops = []
        if self.max_attempts is not None:
            stops.append(stop_after_attempt(self.max_attempts))
        if self.max_elapsed is not None:
            stops.append(stop_after_delay(self.max_elapsed))
        if not stops:
            return stop_never
        return stop_any(*stops)

    def delays(self) -> Iterator[float]:
        """Yield the jitter-free delay before each successive retry."""
        delay = self.initial_interval
        while True:
            yield min(delay, self.max_interval)
            delay *= self.multiplier

    def run(
        self,
        operation: Callable[[], T],
        description: str = "operation",
        cancel_event: Optional[threading.Event] = None
    ) -> T:
        """
        Invoke ``operation`` until it succeeds or fails permanently.

        Args:
            operation: Zero-argument callable to retry
            description: What is being waited for, used in log messages
            cancel_event: When set, stop retrying and re-raise the last error;
                also interrupts the wait between attempts

        Returns:
            The operation's return value

        Raises:
            PermanentError: Immediately, the first time the operation raises one
            Exception: The last retryable error once a ceiling is reached
        """
        def log_waiting(retry_state: RetryCallState):
            error = retry_state.outcome.exception()
            logger.warning(
                f"waiting for {description}: {error} "
                f"(attempt {retry_state.attempt_number}, "
                f"next try in {retry_state.next_action.sleep:.2f}s)"
            )

        stop = self._stop()
        sleep = self._sleep or time.sleep
        if cancel_event is not None:
            stop = stop | stop_when_event_set(cancel_event)
            if self._sleep is None:
                sleep = cancel_event.wait

        retrying = Retrying(
            wait=self._wait(),
            stop=stop,
            retry=retry_if_not_exception_type(PermanentError),
            sleep=sleep,
            before_sleep=log_waiting,
            reraise=True
        )
        return retrying(operation)

    def __repr__(self) -> str:
        return (
            f"BackoffPolicy(initial={self.initial_interval}, "
            f"multiplier={self.multiplier}, max={self.max_interval}, "
            f"max_attempts={self.max_attempts})"
        )
