"""
Host-lifecycle bridge: how a supervised program talks to whatever is hosting
it (a service manager, or a user at a terminal).
"""

from __future__ import annotations

import logging
import os
import threading
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from svcapp.constants import ENV_INTERACTIVE
from svcapp.coordinator import StopTrigger, handle_signals
from svcapp.errors import ConfigError, ServiceError
from svcapp.platform import platform

if TYPE_CHECKING:
    from svcapp.service import ServiceManager

log = logging.getLogger(__name__)

__all__ = ["HostBridge", "Program", "LifecycleBridge", "ServiceHost", "interactive_override"]

_TRUTHY = {"1", "true", "yes", "y", "on"}
_FALSY = {"0", "false", "no", "n", "off"}


@runtime_checkable
class HostBridge(Protocol):
    def notify_unexpected_exit(self) -> None: ...
    def is_interactive_session(self) -> bool: ...


@runtime_checkable
class Program(Protocol):
    def start(self, host: HostBridge) -> Any: ...
    def stop(self, host: HostBridge) -> Any: ...


def interactive_override(environ: dict[str, str] | None = None) -> bool | None:
    """Read SVCAPP_INTERACTIVE. None when unset."""
    raw = (environ if environ is not None else os.environ).get(ENV_INTERACTIVE)
    if raw is None or raw.strip() == "":
        return None
    val = raw.strip().lower()
    if val in _TRUTHY:
        return True
    if val in _FALSY:
        return False
    raise ConfigError(f"{ENV_INTERACTIVE} must be a boolean (got {raw!r})")


class LifecycleBridge(HostBridge):
    """
    Default bridge. On an unexpected child exit it either asks the service
    manager to stop the service, or (interactive session, or no manager)
    re-raises a termination signal against this process so the host loop ends.
    Only the first notification acts.

    SVCAPP_INTERACTIVE is read once, here; an invalid value raises ConfigError
    before anything is started.
    """

    def __init__(self, manager: ServiceManager | None = None, *, interactive: bool | None = None) -> None:
        self.manager = manager
        self._interactive = interactive if interactive is not None else interactive_override()
        self._lock = threading.Lock()
        self._notified = False

    def is_interactive_session(self) -> bool:
        if self._interactive is not None:
            return self._interactive
        return not platform.service_managed()

    def notify_unexpected_exit(self) -> None:
        with self._lock:
            if self._notified:
                return
            self._notified = True

        if not self.is_interactive_session() and self.manager is not None:
            log.info("Asking the service manager to stop the service")
            try:
                self.manager.stop(no_block=True)
                return
            except ServiceError as exc:
                log.error("Service manager could not stop the service: %s", exc)

        log.info("Terminating the current process")
        platform.raise_termination()


class ServiceHost:
    """
    Foreground host loop: start the program, block until a stop signal (or an
    explicit `trigger.fire()`), then stop the program and return its outcome.
    """

    def __init__(self, bridge: HostBridge | None = None) -> None:
        self.bridge: HostBridge = bridge or LifecycleBridge()

    def run(self, program: Program, trigger: StopTrigger | None = None) -> Any:
        trigger = trigger or StopTrigger()
        with handle_signals(trigger):
            program.start(self.bridge)
            log.info("Service running; waiting for a stop signal")
            trigger.wait()
            log.info("Stopping service (%s)", trigger.reason)
            return program.stop(self.bridge)
