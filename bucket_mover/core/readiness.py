"""
Credential Readiness Gate

Blocks startup until a provider's bucket is reachable with the current
credentials. Each gate is a small state machine:

    PENDING --probe succeeds--> READY
    PENDING --permanent error--> FAILED
    PENDING --retryable error--> PENDING (next attempt scheduled by BackoffPolicy)

READY and FAILED are terminal. Every attempt opens a brand new handle, so a
provider client that cached an "unauthenticated" result before credentials
existed can never poison later attempts.

Author: Bucket Mover Project
License: MIT
"""

import threading
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from enum import Enum
from typing import Callable, Dict, Iterable, Optional

from .backoff import BackoffPolicy
from .errors import CredentialNotYetAvailable, PermanentError, ReadinessFailed
from ..storage.base import ObjectStore
from ..utils.logger import get_logger

logger = get_logger(__name__)


class ReadinessState(Enum):
    """Readiness of one provider."""
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"


class CredentialGate:
    """
    Readiness probe for one provider.

    Attributes:
        name: Provider label (``aws``, ``gcp``)
        state: Current ReadinessState
        reason: Failure reason once FAILED
        attempts: Number of retryable failures observed so far
    """

    def __init__(
        self,
        name: str,
        opener: Callable[[], ObjectStore],
        policy: Optional[BackoffPolicy] = None
    ):
        """
        Initialize gate.

        Args:
            name: Provider label
            opener: Returns a freshly constructed store on every call
            policy: Retry pacing (defaults to unbounded exponential backoff)
        """
        self.name = name
        self._opener = opener
        self.policy = policy or BackoffPolicy()
        self.state = ReadinessState.PENDING
        self.reason: Optional[str] = None
        self.attempts = 0
        self._handle: Optional[ObjectStore] = None
        self._failure: Optional[ReadinessFailed] = None
        self._lock = threading.Lock()
        self._cancel = threading.Event()

    def _probe(self) -> ObjectStore:
        """Single readiness attempt; raises to signal retry or permanent failure."""
        if self._cancel.is_set():
            raise PermanentError(f"{self.name} readiness wait cancelled")

        try:
            store = self._opener()
        except PermanentError:
            raise
        except Exception as e:
            self.attempts += 1
            raise CredentialNotYetAvailable(f"{self.name} bucket handle: {e}") from e

        try:
            reachable = store.check_reachable()
        except PermanentError:
            store.close()
            raise
        except Exception as e:
            store.close()
            self.attempts += 1
            raise CredentialNotYetAvailable(f"{self.name} credentials: {e}") from e

        if not reachable:
            store.close()
            self.attempts += 1
            raise CredentialNotYetAvailable(f"{self.name} bucket not reachable yet")

        return store

    def await_ready(self) -> ObjectStore:
        """
        Block until the provider's bucket is confirmed reachable.

        Returns:
            Ready ObjectStore handle

        Raises:
            ReadinessFailed: On a permanent error, or when the policy's
                attempt/time ceiling runs out
        """
        with self._lock:
            if self.state is ReadinessState.READY:
                return self._handle
            if self.state is ReadinessState.FAILED:
                raise self._failure

            logger.info(f"Waiting for {self.name} credentials")
            try:
                handle = self.policy.run(
                    self._probe,
                    description=f"{self.name} credentials",
                    cancel_event=self._cancel
                )
            except Exception as e:
                self._fail(str(e), e)
                raise self._failure from e

            self._handle = handle
            self.state = ReadinessState.READY
            logger.info(f"{self.name} credentials present")
            return handle

    def cancel(self) -> None:
        """Stop waiting; a gate still PENDING ends up FAILED."""
        self._cancel.set()

    def _fail(self, reason: str, cause: BaseException) -> None:
        self.state = ReadinessState.FAILED
        self.reason = reason
        self._failure = ReadinessFailed(self.name, reason, cause)
        logger.error(f"{self.name} readiness failed: {reason}")

    @property
    def handle(self) -> Optional[ObjectStore]:
        """Ready handle, or None while not READY."""
        return self._handle

    def __repr__(self) -> str:
        return f"CredentialGate(name={self.name!r}, state={self.state.value}, attempts={self.attempts})"


def await_all(gates: Iterable[CredentialGate], concurrent: bool = True) -> Dict[str, ObjectStore]:
    """
    Wait for every gate to become ready.

    With ``concurrent`` each gate runs on its own thread, so one provider's
    wait never delays evaluation of another; as soon as one gate fails the
    others are cancelled. Otherwise gates are awaited one after another and
    later gates are not started once one fails.

    Handles of gates that did become ready are closed before a failure is
    raised; the caller never sees them.

    Args:
        gates: Gates to wait for
        concurrent: Probe providers in parallel

    Returns:
        Mapping of gate name to ready store

    Raises:
        ReadinessFailed: The first failure, in gate order
    """
    gates = list(gates)

    if not concurrent or len(gates) < 2:
        ready: Dict[str, ObjectStore] = {}
        for gate in gates:
            try:
                ready[gate.name] = gate.await_ready()
            except ReadinessFailed:
                _close_handles(ready)
                raise
        return ready

    with ThreadPoolExecutor(max_workers=len(gates), thread_name_prefix="readiness") as pool:
        futures = [pool.submit(gate.await_ready) for gate in gates]
        wait(futures, return_when=FIRST_EXCEPTION)
        # Failures seen before cancelling are the real cause
        failures = [
            future.exception() for future in futures
            if future.done() and future.exception() is not None
        ]
        if failures:
            for gate in gates:
                gate.cancel()

    if failures:
        _close_handles({
            gate.name: future.result() for gate, future in zip(gates, futures)
            if future.exception() is None
        })
        raise failures[0]
    return {gate.name: future.result() for gate, future in zip(gates, futures)}


def _close_handles(stores: Dict[str, ObjectStore]) -> None:
    for name, store in stores.items():
        try:
            store.close()
        except Exception as e:
            logger.warning(f"Failed to close {name} handle: {e}")
        else:
            logger.info(f"Closed {name} handle after another provider failed")
