"""
svcapp.coordinator
==================

Bounded graceful cancellation for work that may not stop promptly.

Design recap
------------
- `run_cancellable(work, trigger=...)` runs `work(token)` on a daemon thread.
- The calling thread blocks until the work returns OR the StopTrigger fires.
- On a trigger: cancel the token, then give the work `shutdown_timeout`
  seconds to return. If it doesn't, give up and report TIMED_OUT; the thread
  is abandoned (in-process work cannot be killed).
- `wait_or_escalate(...)` is the shared "wait up to a deadline, then escalate"
  step; the process supervisor uses it with a forced kill as escalation.

Completion is signalled through a `concurrent.futures.Future`, so the result is
written once, before any waiter wakes up.
"""

from __future__ import annotations

import logging
import signal
import threading
import time
from collections.abc import Callable, Iterator
from concurrent.futures import Future, wait as futures_wait
from contextlib import contextmanager
from dataclasses import dataclass
from enum import StrEnum
from types import FrameType
from typing import Any, Generic, TypeVar

from svcapp.constants import DEFAULT_SHUTDOWN_TIMEOUT, SIGNAL_POLL_INTERVAL
from svcapp.errors import ApplicationError, ShutdownTimeoutExceeded, TerminatedBySignal
from svcapp.outcome import TimeoutExceeded
from svcapp.platform import platform

log = logging.getLogger(__name__)

T = TypeVar("T")

__all__ = [
    "StopTrigger",
    "CancelToken",
    "CoordinatorState",
    "CoordinatorResult",
    "handle_signals",
    "run_cancellable",
    "wait_or_escalate",
]


# -----------------------------------------------------------------------------
# One-shot signals
# -----------------------------------------------------------------------------


class StopTrigger:
    """
    One-shot external stop request. The first `fire()` wins and its reason is
    kept; later calls are ignored.

    Signal handlers must use `request()` instead: it only stores the reason
    and takes no lock. Waiters pick the request up within
    SIGNAL_POLL_INTERVAL and fire it from normal thread context.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._event = threading.Event()
        self._reason: str | None = None
        self._pending: str | None = None
        self._callbacks: list[Callable[[str], None]] = []

    @property
    def fired(self) -> bool:
        return self.poll()

    @property
    def reason(self) -> str | None:
        return self._reason

    def request(self, reason: str) -> None:
        """Record a stop request without locking. Safe inside a signal handler."""
        if self._pending is None:
            self._pending = reason

    def poll(self) -> bool:
        """Fire a pending request, if any. Returns whether the trigger has fired."""
        pending = self._pending
        if pending is not None and not self._event.is_set():
            self.fire(pending)
        return self._event.is_set()

    def fire(self, reason: str = "stop requested") -> bool:
        """Fire the trigger. Returns False if it had already fired."""
        with self._lock:
            if self._event.is_set():
                return False
            self._reason = reason
            self._event.set()
            callbacks = list(self._callbacks)
        for cb in callbacks:
            cb(reason)
        return True

    def wait(self, timeout: float | None = None) -> bool:
        deadline = None if timeout is None else time.monotonic() + timeout
        while not self.poll():
            step = SIGNAL_POLL_INTERVAL
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                step = min(step, remaining)
            self._event.wait(step)
        return True

    def add_callback(self, cb: Callable[[str], None]) -> None:
        """Run `cb(reason)` on the first fire (immediately if already fired)."""
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(cb)
                return
            reason = self._reason or ""
        cb(reason)


class CancelToken:
    """Handed to cancellable work; the work polls or waits on it."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str | None = None) -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def wait(self, timeout: float | None = None) -> bool:
        """Sleep up to `timeout`; returns True as soon as cancellation is requested."""
        return self._event.wait(timeout)


@contextmanager
def handle_signals(trigger: StopTrigger, *signals: signal.Signals) -> Iterator[StopTrigger]:
    """
    Request `trigger` when any of `signals` (default: the platform's stop
    signals) arrives. Previous handlers are restored on exit. Main thread only.
    """
    sigs = signals or platform.stop_signals()

    def _handler(signum: int, frame: FrameType | None) -> None:
        _ = frame
        trigger.request(signal.Signals(signum).name)

    previous: dict[signal.Signals, Any] = {}
    try:
        for sig in sigs:
            previous[sig] = signal.signal(sig, _handler)
        yield trigger
    finally:
        for sig, prev in previous.items():
            signal.signal(sig, prev)


# -----------------------------------------------------------------------------
# Bounded wait
# -----------------------------------------------------------------------------


def wait_or_escalate(
    done: Future[Any],
    timeout: float,
    escalate: Callable[[], None] | None = None,
) -> bool:
    """
    Wait up to `timeout` seconds for `done`. Returns True if it completed.
    Otherwise runs `escalate()` once (if given) and returns False.
    """
    finished, _ = futures_wait([done], timeout=timeout)
    if finished:
        return True
    if escalate is not None:
        escalate()
    return False


# -----------------------------------------------------------------------------
# Coordinator
# -----------------------------------------------------------------------------


class CoordinatorState(StrEnum):
    RUNNING = "running"
    COMPLETED_NATURALLY = "completed_naturally"
    CANCEL_REQUESTED = "cancel_requested"
    COMPLETED_AFTER_CANCEL = "completed_after_cancel"
    TIMED_OUT = "timed_out"

    def is_terminal(self: CoordinatorState) -> bool:
        return self in {
            CoordinatorState.COMPLETED_NATURALLY,
            CoordinatorState.COMPLETED_AFTER_CANCEL,
            CoordinatorState.TIMED_OUT,
        }


@dataclass(frozen=True, slots=True)
class CoordinatorResult(Generic[T]):
    state: CoordinatorState
    value: T | None = None
    error: BaseException | None = None
    reason: str | None = None  # what fired the trigger, if anything
    timeout: float | None = None

    def unwrap(self) -> T | None:
        """Return the work's value, or raise what the caller should see."""
        if self.state == CoordinatorState.COMPLETED_NATURALLY:
            if self.error is not None:
                raise self.error
            return self.value

        if self.state == CoordinatorState.COMPLETED_AFTER_CANCEL:
            if self.error is not None:
                raise ApplicationError(f"application error: {self.error}") from self.error
            if self.value is not None:
                return self.value
            raise TerminatedBySignal(f"shutdown by signal: {self.reason}", reason=self.reason)

        if self.state == CoordinatorState.TIMED_OUT:
            timeout = self.timeout or 0.0
            raise ShutdownTimeoutExceeded(
                f"shutdown timeout exceeded after {timeout:g}s",
                hint="the work ignored its cancellation token",
                timeout=timeout,
                outcome=TimeoutExceeded(timeout=timeout),
            )

        raise RuntimeError(f"coordinator result in non-terminal state {self.state}")


def _run_into(work: Callable[[CancelToken], T], token: CancelToken, done: Future[T]) -> None:
    try:
        value = work(token)
    except BaseException as exc:  # handed to the coordinating thread
        done.set_exception(exc)
    else:
        done.set_result(value)


def _settled(state: CoordinatorState, done: Future[T], reason: str | None) -> CoordinatorResult[T]:
    exc = done.exception()
    if exc is not None:
        return CoordinatorResult(state, error=exc, reason=reason)
    return CoordinatorResult(state, value=done.result(), reason=reason)


def run_cancellable(
    work: Callable[[CancelToken], T],
    *,
    trigger: StopTrigger,
    shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT,
    name: str = "cancellable-work",
) -> CoordinatorResult[T]:
    """
    Run `work(token)` in the background and race it against `trigger`.

    Returns a terminal CoordinatorResult:
      - COMPLETED_NATURALLY: work returned/raised before any trigger.
      - COMPLETED_AFTER_CANCEL: trigger fired, work returned within `shutdown_timeout`.
      - TIMED_OUT: trigger fired, work still running after `shutdown_timeout`.
    """
    token = CancelToken()
    done: Future[T] = Future()
    wake = threading.Event()

    done.add_done_callback(lambda _f: wake.set())
    trigger.add_callback(lambda _r: wake.set())

    thread = threading.Thread(target=_run_into, args=(work, token, done), name=name, daemon=True)
    thread.start()

    while not wake.wait(SIGNAL_POLL_INTERVAL):
        trigger.poll()

    # Completion wins a tie with the trigger.
    if done.done():
        return _settled(CoordinatorState.COMPLETED_NATURALLY, done, None)

    reason = trigger.reason
    log.info("Stop requested (%s); cancelling %s, waiting up to %gs", reason, name, shutdown_timeout)
    token.cancel(reason)

    if wait_or_escalate(done, shutdown_timeout):
        return _settled(CoordinatorState.COMPLETED_AFTER_CANCEL, done, reason)

    log.error("%s did not stop within %gs; abandoning it", name, shutdown_timeout)
    return CoordinatorResult(CoordinatorState.TIMED_OUT, reason=reason, timeout=shutdown_timeout)
