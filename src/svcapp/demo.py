"""
Demo workload for the `run` command: tick once a second until a timeout or a
cancellation, then exit in a chosen way. Used to exercise the supervisor.
"""

from __future__ import annotations

import logging
import os
import random
import time
from enum import StrEnum

from svcapp.constants import DEFAULT_RUN_TIMEOUT, TICK_INTERVAL
from svcapp.coordinator import CancelToken

log = logging.getLogger(__name__)


class ExitMode(StrEnum):
    NIL = "nil"
    RAND = "rand"
    ERR = "err"
    PANIC = "panic"
    FATAL = "fatal"


class DemoError(Exception):
    pass


class DemoPanic(RuntimeError):
    pass


def determine_exit_mode(mode: ExitMode | str, rng: random.Random | None = None) -> ExitMode:
    """Resolve RAND to one of the concrete modes."""
    mode = ExitMode(mode)
    if mode != ExitMode.RAND:
        return mode
    choices = [ExitMode.NIL, ExitMode.ERR, ExitMode.PANIC, ExitMode.FATAL]
    return (rng or random).choice(choices)


def exit_with_mode(mode: ExitMode) -> None:
    log.info("Exiting...", extra={"mode": str(mode)})

    if mode == ExitMode.ERR:
        raise DemoError("some error occurred")
    if mode == ExitMode.PANIC:
        raise DemoPanic("panic occurred")
    if mode == ExitMode.FATAL:
        log.critical("fatal occurred")
        logging.shutdown()
        os._exit(1)


def run_main_loop(
    token: CancelToken,
    mode: ExitMode,
    timeout: float = DEFAULT_RUN_TIMEOUT,
    *,
    tick: float = TICK_INTERVAL,
) -> None:
    deadline = time.monotonic() + timeout

    while True:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            log.info("Timed out.")
            break
        if token.wait(min(tick, remaining)):
            log.info("Context canceled.")
            break
        left = max(0.0, deadline - time.monotonic())
        log.info("Running...", extra={"time_left": f"{left:.3f}s"})

    exit_with_mode(mode)
