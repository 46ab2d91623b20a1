import signal
import subprocess
from typing import Any, Literal, Protocol, TypeAlias

TerminationMode: TypeAlias = Literal["soft", "hard"]


class PlatformOps(Protocol):
    name: str  # "posix" | "nt"

    def configure_popen_group(self, popen_kwargs: dict[str, Any]) -> None:
        """Put the child in its own process group so signals reach the whole tree."""
        ...

    def terminate_tree_by(self, proc: subprocess.Popen[bytes], mode: TerminationMode) -> None:
        """
        Signal the child's process tree. "soft" asks it to exit, "hard" kills it.

        Raises ProcessLookupError when the child is already gone and OSError
        when delivery failed for any other reason.
        """
        ...

    def stop_signals(self) -> tuple[signal.Signals, ...]:
        """Signals that mean "stop" when delivered to this process."""
        ...

    def raise_termination(self) -> None:
        """Deliver a termination signal to the current process."""
        ...

    def service_managed(self) -> bool:
        """Best guess whether a service manager (not a user) started this process."""
        ...
