from __future__ import annotations

import signal
from collections.abc import Callable, Sequence
from typing import TypeAlias, TypeVar

from svcapp.constants import DEFAULT_SHUTDOWN_TIMEOUT
from svcapp.coordinator import CancelToken, StopTrigger, handle_signals, run_cancellable

T = TypeVar("T")

# Main application logic: receives a cancellation token and the trailing CLI args.
RunFunc: TypeAlias = Callable[[CancelToken, Sequence[str]], T]


def run_with_signals(
    func: RunFunc[T],
    args: Sequence[str] = (),
    *,
    shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT,
    trigger: StopTrigger | None = None,
    signals: Sequence[signal.Signals] = (),
) -> T | None:
    """
    Run `func` until it returns or a stop signal arrives, then give it
    `shutdown_timeout` seconds to honour the cancellation.

    Returns the function's value when it finishes on its own. Raises the
    function's own exception, TerminatedBySignal, ApplicationError or
    ShutdownTimeoutExceeded otherwise (see CoordinatorResult.unwrap).
    Must be called from the main thread (signal handlers).
    """
    trigger = trigger or StopTrigger()
    with handle_signals(trigger, *signals):
        result = run_cancellable(
            lambda token: func(token, args),
            trigger=trigger,
            shutdown_timeout=shutdown_timeout,
            name="run",
        )
    return result.unwrap()
