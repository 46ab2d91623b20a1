"""
svcapp exceptions: a base SvcError that carries a message and an optional hint,
and renders with Rich when printed through a Console.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from rich.console import Console, ConsoleOptions, RenderResult
from rich.text import Text

if TYPE_CHECKING:
    from svcapp.outcome import ForcedKill, TimeoutExceeded

__all__ = [
    "SvcError",
    "SetupError",
    "AlreadyStartedError",
    "SignalError",
    "ShutdownTimeoutError",
    "ChildExitError",
    "ShutdownTimeoutExceeded",
    "TerminatedBySignal",
    "ApplicationError",
    "ServiceError",
    "NotInstalledError",
    "ServiceExistsError",
    "NoServiceSystemError",
    "ServiceCommandError",
    "ConfigError",
]


@dataclass(eq=False, slots=True)
class SvcError(Exception):
    """
    Base svcapp exception. `hint` is an optional one-line suggestion shown
    below the message.
    """

    message: str
    hint: str | None = None

    # Plain-text fallback (logs, journal, non-Rich output)
    def __str__(self) -> str:  # pragma: no cover - trivial formatting
        return self.message if self.hint is None else f"{self.message} ({self.hint})"

    # Pretty rendering when printed via Rich Console
    def __rich_console__(self, console: Console, options: ConsoleOptions) -> RenderResult:
        _ = console
        _ = options
        yield Text.assemble(("error", "bold red"), (f"[{type(self).__name__}]", "dim"), ": ", self.message)
        if self.hint:
            yield Text.assemble(("  hint: ", "italic dim"), self.hint)


# ─────────── supervisor ───────────


class SetupError(SvcError):
    """The child process could not be resolved or created."""


class AlreadyStartedError(SetupError):
    """start() was called while a supervised process is still running."""


class SignalError(SvcError):
    """The graceful termination signal could not be delivered."""


@dataclass(eq=False, slots=True)
class ShutdownTimeoutError(SvcError):
    """The child outlived its grace period and a forced kill was issued."""

    grace_period: float = 0.0
    outcome: ForcedKill | None = None


@dataclass(eq=False, slots=True)
class ChildExitError(SvcError):
    """The child exited with a non-zero status."""

    returncode: int = 0


# ─────────── coordinator ───────────


@dataclass(eq=False, slots=True)
class ShutdownTimeoutExceeded(SvcError):
    """Cancelled work did not return before the shutdown deadline."""

    timeout: float = 0.0
    outcome: TimeoutExceeded | None = None


@dataclass(eq=False, slots=True)
class TerminatedBySignal(SvcError):
    """Work stopped cleanly, but only because a stop was requested."""

    reason: str | None = None


class ApplicationError(SvcError):
    """Work failed after cancellation was requested. The failure is chained."""


# ─────────── service management ───────────


class ServiceError(SvcError):
    """Base for service manager failures."""


class NotInstalledError(ServiceError):
    pass


class ServiceExistsError(ServiceError):
    pass


class NoServiceSystemError(ServiceError):
    pass


@dataclass(eq=False, slots=True)
class ServiceCommandError(ServiceError):
    """A service manager command (e.g. systemctl) returned non-zero."""

    returncode: int = 0
    stderr: str = ""


# ─────────── configuration ───────────


class ConfigError(SvcError):
    """Configuration file or environment override is invalid."""
