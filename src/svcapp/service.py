"""
svcapp.service
==============

Service registration and control. Only systemd is supported; on other systems
`detect_manager()` raises NoServiceSystemError.

- render_unit(): ServiceSettings -> systemd unit text
- SystemdManager: install / uninstall / start / stop / restart via systemctl
- control(manager, action): dispatch a CLI action string
"""

from __future__ import annotations

import logging
import shlex
import shutil
import subprocess
import sys
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Protocol, TypeAlias, runtime_checkable

from svcapp.config import ServiceSettings
from svcapp.constants import SYSTEMD_UNIT_DIR, unit_path
from svcapp.errors import (
    NoServiceSystemError,
    NotInstalledError,
    ServiceCommandError,
    ServiceExistsError,
)

log = logging.getLogger(__name__)

CommandRunner: TypeAlias = Callable[..., subprocess.CompletedProcess[str]]

ACTIONS: tuple[str, ...] = ("start", "stop", "restart", "install", "uninstall")

_SYSTEMD_RUNTIME_DIR = Path("/run/systemd/system")


@runtime_checkable
class ServiceManager(Protocol):
    name: str

    def install(self) -> None: ...
    def uninstall(self) -> None: ...
    def start(self) -> None: ...
    def stop(self, *, no_block: bool = False) -> None: ...
    def restart(self) -> None: ...


# -----------------------------------------------------------------------------
# Unit rendering
# -----------------------------------------------------------------------------


def exec_start(settings: ServiceSettings, python: str | None = None) -> str:
    """Command line systemd should run: this interpreter, this package, configured arguments."""
    argv = [python or sys.executable, "-m", "svcapp", *settings.arguments]
    return shlex.join(argv)


def render_unit(settings: ServiceSettings, *, python: str | None = None) -> str:
    lines = [
        "[Unit]",
        f"Description={settings.description}",
    ]
    lines += [f"After={target}" for target in settings.after]
    lines += [f"Wants={target}" for target in settings.wants]
    lines += [
        "",
        "[Service]",
        f"ExecStart={exec_start(settings, python)}",
    ]
    if settings.working_directory:
        lines.append(f"WorkingDirectory={settings.working_directory}")
    if settings.pid_file:
        lines.append(f"PIDFile={settings.pid_file}")
    lines += [
        f"Restart={settings.restart}",
        f"SuccessExitStatus={settings.success_exit_status}",
        "LimitNOFILE=infinity",
        "",
        "[Install]",
        "WantedBy=multi-user.target",
        "",
    ]
    return "\n".join(lines)


# -----------------------------------------------------------------------------
# systemd
# -----------------------------------------------------------------------------


class SystemdManager(ServiceManager):
    """
    Manage one systemd unit. `runner` runs a command and returns a
    CompletedProcess (defaults to subprocess.run); tests pass a fake.
    """

    name: str

    def __init__(
        self,
        settings: ServiceSettings,
        *,
        unit_dir: Path = SYSTEMD_UNIT_DIR,
        runner: CommandRunner = subprocess.run,
    ) -> None:
        self.settings = settings
        self.name = settings.name
        self.unit_file = unit_path(settings.name, unit_dir)
        self._runner = runner

    # ---- helpers ----------------------------------------------------------

    def installed(self) -> bool:
        return self.unit_file.exists()

    def _require_installed(self) -> None:
        if not self.installed():
            raise NotInstalledError(
                f"service {self.name!r} is not installed",
                hint="run 'svcapp service install' to install it",
            )

    def _systemctl(self, *args: str) -> None:
        cmd: Sequence[str] = ["systemctl", *args]
        log.debug("Running %s", shlex.join(cmd))
        try:
            proc = self._runner(cmd, capture_output=True, text=True, check=False)
        except OSError as exc:
            raise ServiceCommandError(f"could not run systemctl: {exc}") from exc
        if proc.returncode != 0:
            stderr = (proc.stderr or "").strip()
            raise ServiceCommandError(
                f"{shlex.join(cmd)} failed with status {proc.returncode}: {stderr}",
                returncode=proc.returncode,
                stderr=stderr,
            )

    # ---- ServiceManager API ---------------------------------------------------

    def install(self) -> None:
        if self.installed():
            raise ServiceExistsError(f"service {self.name!r} is already installed")
        self.unit_file.parent.mkdir(parents=True, exist_ok=True)
        self.unit_file.write_text(render_unit(self.settings), encoding="utf-8")
        log.info("Wrote unit file %s", self.unit_file)
        self._systemctl("daemon-reload")
        self._systemctl("enable", self.name)

    def uninstall(self) -> None:
        self._require_installed()
        self._systemctl("disable", self.name)
        self.unit_file.unlink()
        log.info("Removed unit file %s", self.unit_file)
        self._systemctl("daemon-reload")

    def start(self) -> None:
        self._require_installed()
        self._systemctl("start", self.name)

    def stop(self, *, no_block: bool = False) -> None:
        # --no-block: the service itself may ask to be stopped; don't wait on our own shutdown.
        self._require_installed()
        if no_block:
            self._systemctl("stop", "--no-block", self.name)
        else:
            self._systemctl("stop", self.name)

    def restart(self) -> None:
        self._require_installed()
        self._systemctl("restart", self.name)


def detect_manager(settings: ServiceSettings, **kwargs: object) -> ServiceManager:
    """Pick the service manager for this host. Raises NoServiceSystemError if none."""
    if sys.platform.startswith("linux") and shutil.which("systemctl") and _SYSTEMD_RUNTIME_DIR.is_dir():
        return SystemdManager(settings, **kwargs)  # type: ignore[arg-type]
    raise NoServiceSystemError(
        "could not detect a service system",
        hint="only systemd is supported",
    )


def control(manager: ServiceManager, action: str) -> None:
    """Run one of ACTIONS against `manager`."""
    if action not in ACTIONS:
        raise ValueError(f"unknown service action {action!r}; expected one of {', '.join(ACTIONS)}")
    getattr(manager, action)()
    log.info("Service %s: %s done", manager.name, action)
