from __future__ import annotations

import signal
import subprocess
from typing import Any, ClassVar, Literal

from .base import PlatformOps, TerminationMode


class _Win(PlatformOps):
    name: ClassVar[Literal["posix", "nt"]] = "nt"

    def configure_popen_group(self, popen_kwargs: dict[str, Any]) -> None:
        new_group_flag = getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", 0)
        existing = int(popen_kwargs.get("creationflags", 0))
        popen_kwargs["creationflags"] = existing | new_group_flag

    def _taskkill(self, pid: int) -> None:
        result = subprocess.run(
            ["taskkill", "/PID", str(pid), "/T", "/F"],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            check=False,
        )
        if result.returncode != 0:
            raise OSError(f"taskkill exited with status {result.returncode}")

    def terminate_tree_by(self, proc: subprocess.Popen[bytes], mode: TerminationMode) -> None:
        if proc.poll() is not None:
            raise ProcessLookupError(f"process {proc.pid} already exited")

        if mode == "soft":
            # Only reaches children started with CREATE_NEW_PROCESS_GROUP.
            proc.send_signal(signal.CTRL_BREAK_EVENT)  # type: ignore[attr-defined]
        else:
            self._taskkill(proc.pid)

    def stop_signals(self) -> tuple[signal.Signals, ...]:
        return (signal.SIGINT, signal.SIGTERM, signal.SIGBREAK)  # type: ignore[attr-defined]

    def raise_termination(self) -> None:
        signal.raise_signal(signal.SIGTERM)

    def service_managed(self) -> bool:
        # No Windows service backend; always treated as an interactive session.
        return False


platform_impl: PlatformOps = _Win()
