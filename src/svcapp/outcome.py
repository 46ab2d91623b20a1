from __future__ import annotations

from typing import TypeAlias

import msgspec
import msgspec.json

from svcapp.errors import ChildExitError


class ExitResult(msgspec.Struct, frozen=True):
    """How a supervised child ended. Negative return codes mean "killed by signal N" (POSIX)."""

    returncode: int
    pid: int | None = None

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def error(self) -> ChildExitError | None:
        if self.ok:
            return None
        return ChildExitError(
            f"child process {self.pid} exited with status {self.returncode}",
            returncode=self.returncode,
        )

    def check(self) -> None:
        """Raise ChildExitError for a non-zero status (like CompletedProcess.check_returncode)."""
        err = self.error()
        if err is not None:
            raise err


# -----------------------------------------------------------------------------
# Shutdown outcomes (exactly one per stop request)
# -----------------------------------------------------------------------------


class GracefulExit(msgspec.Struct, frozen=True, tag="graceful_exit"):
    result: ExitResult


class ForcedKill(msgspec.Struct, frozen=True, tag="forced_kill"):
    # Failure of the kill itself, if any. Never escalated.
    kill_error: str | None = None


class TimeoutExceeded(msgspec.Struct, frozen=True, tag="timeout_exceeded"):
    timeout: float


ShutdownOutcome: TypeAlias = GracefulExit | ForcedKill | TimeoutExceeded


def outcome_to_json(outcome: ShutdownOutcome) -> str:
    """Compact tagged JSON, for log lines."""
    return msgspec.json.encode(outcome).decode()
