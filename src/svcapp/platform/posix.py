from __future__ import annotations

import os
import signal
import subprocess
from typing import Any, ClassVar, Literal

from svcapp.constants import ENV_SYSTEMD_INVOCATION

from .base import PlatformOps, TerminationMode


class _Posix(PlatformOps):
    name: ClassVar[Literal["posix", "nt"]] = "posix"

    def configure_popen_group(self, popen_kwargs: dict[str, Any]) -> None:
        popen_kwargs["start_new_session"] = True

    def terminate_tree_by(self, proc: subprocess.Popen[bytes], mode: TerminationMode) -> None:
        if proc.poll() is not None:
            raise ProcessLookupError(f"process {proc.pid} already exited")

        sig = signal.SIGTERM if mode == "soft" else signal.SIGKILL

        # start_new_session makes the child its own group leader (pgid == pid).
        try:
            os.killpg(proc.pid, sig)
        except ProcessLookupError:
            # Group gone but the leader may still be unreaped; fall back to the pid.
            os.kill(proc.pid, sig)

    def stop_signals(self) -> tuple[signal.Signals, ...]:
        return (signal.SIGINT, signal.SIGTERM)

    def raise_termination(self) -> None:
        os.kill(os.getpid(), signal.SIGTERM)

    def service_managed(self) -> bool:
        return ENV_SYSTEMD_INVOCATION in os.environ or os.getppid() == 1


platform_impl: PlatformOps = _Posix()
