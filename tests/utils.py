"""Shared helpers: child scripts, an in-memory sink, fake collaborators."""

from __future__ import annotations

import subprocess
import sys
import textwrap
import threading
from typing import Any

from svcapp.platform import platform as real_platform


def py(code: str) -> list[str]:
    """argv that runs `code` in a fresh interpreter."""
    return ["-c", textwrap.dedent(code)]


# Exits 0 shortly after SIGTERM.
EXIT_CLEANLY_ON_TERM = py(
    """
    import signal, sys, time

    def _term(signum, frame):
        time.sleep(0.05)
        sys.exit(0)

    signal.signal(signal.SIGTERM, _term)
    print("ready", flush=True)
    while True:
        time.sleep(0.01)
    """
)

# Exits 4 on SIGTERM.
EXIT_4_ON_TERM = py(
    """
    import signal, sys, time
    signal.signal(signal.SIGTERM, lambda *_: sys.exit(4))
    print("ready", flush=True)
    while True:
        time.sleep(0.01)
    """
)

# Ignores SIGTERM for longer than any grace period used in tests.
IGNORE_TERM = py(
    """
    import signal, time
    signal.signal(signal.SIGTERM, signal.SIG_IGN)
    print("ready", flush=True)
    time.sleep(30)
    """
)

SLEEP_FOREVER = py("import time; time.sleep(30)")


class RecordingSink:
    """Binary sink without a file descriptor (forces the relay path)."""

    def __init__(self) -> None:
        self._buf = bytearray()
        self._cond = threading.Condition()

    def write(self, data: bytes) -> int:
        with self._cond:
            self._buf += data
            self._cond.notify_all()
        return len(data)

    def flush(self) -> None:
        pass

    def getvalue(self) -> bytes:
        with self._cond:
            return bytes(self._buf)

    def wait_for(self, needle: bytes, timeout: float = 5.0) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: needle in self._buf, timeout)


class FakeBridge:
    def __init__(self, interactive: bool = True) -> None:
        self.interactive = interactive
        self.notifications = 0
        self.notified = threading.Event()

    def is_interactive_session(self) -> bool:
        return self.interactive

    def notify_unexpected_exit(self) -> None:
        self.notifications += 1
        self.notified.set()


class CountingPlatform:
    """Wraps the real platform ops and records terminate calls by mode."""

    def __init__(self, soft_error: BaseException | None = None) -> None:
        self.calls: list[str] = []
        self._soft_error = soft_error

    def __getattr__(self, name: str) -> Any:
        return getattr(real_platform, name)

    def terminate_tree_by(self, proc: subprocess.Popen[bytes], mode: str) -> None:
        self.calls.append(mode)
        if mode == "soft" and self._soft_error is not None:
            raise self._soft_error
        real_platform.terminate_tree_by(proc, mode)  # type: ignore[arg-type]

    def count(self, mode: str) -> int:
        return self.calls.count(mode)


class FakeManager:
    name = "svcapp"

    def __init__(self, stop_error: BaseException | None = None) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self._stop_error = stop_error

    def install(self) -> None:
        self.calls.append(("install", {}))

    def uninstall(self) -> None:
        self.calls.append(("uninstall", {}))

    def start(self) -> None:
        self.calls.append(("start", {}))

    def stop(self, *, no_block: bool = False) -> None:
        self.calls.append(("stop", {"no_block": no_block}))
        if self._stop_error is not None:
            raise self._stop_error

    def restart(self) -> None:
        self.calls.append(("restart", {}))


PYTHON = sys.executable
