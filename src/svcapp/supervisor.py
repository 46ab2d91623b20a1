"""
svcapp.supervisor
=================

ProcessSupervisor owns exactly one child process at a time.

Design recap
------------
- start(host):
    * resolves the command (this program via `python -m svcapp` when no
      executable is configured),
    * overlays extra `KEY=VALUE` entries on the inherited environment,
    * binds stdout/stderr sinks (fd-backed sinks are handed to the child,
      anything else is fed by a relay thread),
    * spawns the child in its own process group and returns immediately.
- A supervising thread waits for the child (and, up to `drain_timeout`, its
  relays), records the ExitResult into a Future, and only then tells the host
  about exits that were not requested through stop().
- stop(): SIGTERM, then wait up to `grace_period` for the Future; on overrun,
  one forced kill and ShutdownTimeoutError.
"""

from __future__ import annotations

import io
import logging
import os
import subprocess
import sys
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Any

from svcapp.constants import DEFAULT_GRACE_PERIOD, RELAY_DRAIN_TIMEOUT
from svcapp.coordinator import wait_or_escalate
from svcapp.errors import AlreadyStartedError, SetupError, ShutdownTimeoutError, SignalError
from svcapp.host import HostBridge
from svcapp.outcome import ExitResult, ForcedKill, GracefulExit, outcome_to_json
from svcapp.platform import platform

log = logging.getLogger(__name__)

_RELAY_CHUNK = 64 * 1024


@dataclass
class SupervisorConfig:
    """
    What to run and how to stop it.

    executable: program path; empty means this program (`python -m svcapp`).
    args: argv after the executable. Only change before start().
    env: extra `KEY=VALUE` entries on top of the inherited environment.
    stdout / stderr: binary sinks; None inherits the supervisor's streams.
    grace_period: seconds between SIGTERM and SIGKILL (0 means the default).
    cwd: working directory for the child (None inherits).
    drain_timeout: how long to keep waiting for output after the child exits
        (a grandchild may hold the pipes open); relays then continue detached.
    """

    executable: str = ""
    args: list[str] = field(default_factory=list)
    env: list[str] = field(default_factory=list)
    stdout: IO[bytes] | None = None
    stderr: IO[bytes] | None = None
    grace_period: float = DEFAULT_GRACE_PERIOD
    cwd: Path | None = None
    drain_timeout: float = RELAY_DRAIN_TIMEOUT

    def __post_init__(self) -> None:
        if not self.grace_period:
            self.grace_period = DEFAULT_GRACE_PERIOD
        if self.grace_period < 0:
            raise ValueError("grace_period must be positive (or 0 for the default)")
        if self.drain_timeout < 0:
            raise ValueError("drain_timeout must not be negative")


# -----------------------------------------------------------------------------
# Launch helpers
# -----------------------------------------------------------------------------


def resolve_command(config: SupervisorConfig) -> list[str]:
    """argv for the child. Raises SetupError if this program's interpreter is unknown."""
    if config.executable:
        return [config.executable, *config.args]
    if not sys.executable:
        raise SetupError(
            "executable path not found",
            hint="set an explicit executable; the Python interpreter path is unavailable",
        )
    return [sys.executable, "-m", "svcapp", *config.args]


def build_env(entries: list[str]) -> dict[str, str] | None:
    """Inherited environment plus `KEY=VALUE` entries (later wins). None means inherit as is."""
    if not entries:
        return None
    env = os.environ.copy()
    for entry in entries:
        key, sep, value = entry.partition("=")
        if not sep or not key:
            raise SetupError(f"invalid environment entry {entry!r}", hint="expected KEY=VALUE")
        env[key] = value
    return env


def _has_fileno(sink: IO[bytes]) -> bool:
    try:
        sink.fileno()
        return True
    except (AttributeError, OSError, io.UnsupportedOperation):
        return False


def _bind_sink(sink: IO[bytes] | None) -> tuple[Any, IO[bytes] | None]:
    """Return (Popen argument, sink that needs a relay thread)."""
    if sink is None:
        return None, None
    if _has_fileno(sink):
        # Anything buffered on our side must land before the child writes.
        sink.flush()
        return sink, None
    return subprocess.PIPE, sink


def _relay(src: IO[bytes], sink: IO[bytes]) -> None:
    with src:
        while chunk := src.read1(_RELAY_CHUNK):  # type: ignore[attr-defined]
            sink.write(chunk)
            sink.flush()


# -----------------------------------------------------------------------------
# Supervised process
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class SupervisedProcess:
    """
    A running child. `done` completes exactly once with the ExitResult; read
    the result only through it. It completes after the child exits and its
    output relays drain, but no later than `drain_timeout` after the exit.
    """

    proc: subprocess.Popen[bytes]
    done: Future[ExitResult] = field(default_factory=Future)
    relays: list[threading.Thread] = field(default_factory=list)
    stop_requested: threading.Event = field(default_factory=threading.Event)

    @property
    def pid(self) -> int:
        return self.proc.pid

    def running(self) -> bool:
        return not self.done.done()

    def wait(self, timeout: float | None = None) -> ExitResult:
        """Block until the child exits. Raises TimeoutError after `timeout`."""
        return self.done.result(timeout)


class ProcessSupervisor:
    """
    Start, watch and stop one child process.

    Implements the Program interface (`start(host)` / `stop(host)`) that
    ServiceHost drives. A supervisor can be restarted once its previous child
    has exited; starting while a child is still running is an error.
    """

    def __init__(self, config: SupervisorConfig | None = None) -> None:
        self.config = config or SupervisorConfig()
        self._lock = threading.Lock()
        self._process: SupervisedProcess | None = None

    @property
    def process(self) -> SupervisedProcess | None:
        return self._process

    # ---- start -----------------------------------------------------------------

    def start(self, host: HostBridge) -> SupervisedProcess:
        """Spawn the child and return without waiting for it."""
        with self._lock:
            if self._process is not None and self._process.running():
                raise AlreadyStartedError(
                    f"process {self._process.pid} is still running",
                    hint="stop() it before starting again",
                )

            cmd = resolve_command(self.config)
            env = build_env(self.config.env)
            stdout_arg, stdout_relay = _bind_sink(self.config.stdout)
            stderr_arg, stderr_relay = _bind_sink(self.config.stderr)

            popen_kwargs: dict[str, Any] = {}
            platform.configure_popen_group(popen_kwargs)

            try:
                proc = subprocess.Popen(
                    cmd,
                    cwd=None if self.config.cwd is None else str(self.config.cwd),
                    env=env,
                    stdin=subprocess.DEVNULL,
                    stdout=stdout_arg,
                    stderr=stderr_arg,
                    **popen_kwargs,
                )
            except (OSError, ValueError) as exc:
                raise SetupError(f"failed to start {cmd[0]}: {exc}") from exc

            process = SupervisedProcess(proc)
            for src, sink, label in (
                (proc.stdout, stdout_relay, "stdout"),
                (proc.stderr, stderr_relay, "stderr"),
            ):
                if src is None or sink is None:
                    continue
                t = threading.Thread(
                    target=_relay, args=(src, sink), name=f"relay-{label}[{proc.pid}]", daemon=True
                )
                t.start()
                process.relays.append(t)

            self._process = process

        log.info("Started child process", extra={"pid": proc.pid, "cmd": cmd})

        watcher = threading.Thread(
            target=self._supervise,
            args=(process, host),
            name=f"supervise[{proc.pid}]",
            daemon=True,
        )
        watcher.start()
        return process

    def _supervise(self, process: SupervisedProcess, host: HostBridge) -> None:
        rc = process.proc.wait()
        deadline = time.monotonic() + self.config.drain_timeout
        for t in process.relays:
            t.join(max(0.0, deadline - time.monotonic()))
        if any(t.is_alive() for t in process.relays):
            # Something the child spawned still holds its output pipes open.
            log.warning(
                "Child process %s exited but its output is still open after %gs; not waiting for it",
                process.pid,
                self.config.drain_timeout,
            )

        result = ExitResult(returncode=rc, pid=process.pid)
        process.done.set_result(result)

        if process.stop_requested.is_set():
            log.debug("Child process exited after stop request", extra={"pid": process.pid, "returncode": rc})
            return

        log.warning("Child process exited unexpectedly", extra={"pid": process.pid, "returncode": rc})
        try:
            host.notify_unexpected_exit()
        except Exception:
            log.exception("Host notification failed after child %s exited", process.pid)

    # ---- stop -----------------------------------------------------------------

    def stop(self, host: HostBridge | None = None) -> GracefulExit | None:
        """
        Ask the child to exit, then wait up to `grace_period`.

        Returns GracefulExit (check `.result` for the exit status), or None if
        nothing was ever started. Raises SignalError if SIGTERM could not be
        delivered and ShutdownTimeoutError if the child had to be killed.
        """
        _ = host
        process = self._process
        if process is None:
            return None

        grace = self.config.grace_period
        process.stop_requested.set()

        try:
            platform.terminate_tree_by(process.proc, "soft")
        except ProcessLookupError:
            log.debug("Child process %s already exited before stop", process.pid)
        except OSError as exc:
            raise SignalError(f"failed to send termination signal to process {process.pid}: {exc}") from exc

        kill_errors: list[str] = []

        def _kill() -> None:
            log.warning("Child process %s ignored termination for %gs; killing it", process.pid, grace)
            try:
                platform.terminate_tree_by(process.proc, "hard")
            except OSError as exc:
                kill_errors.append(str(exc))

        if wait_or_escalate(process.done, grace, _kill):
            outcome = GracefulExit(result=process.done.result())
            log.info("Child process stopped", extra={"pid": process.pid, "outcome": outcome_to_json(outcome)})
            return outcome

        forced = ForcedKill(kill_error=kill_errors[0] if kill_errors else None)
        raise ShutdownTimeoutError(
            "program exit timeout",
            hint=f"process {process.pid} was killed after {grace:g}s",
            grace_period=grace,
            outcome=forced,
        )
