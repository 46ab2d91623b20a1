"""
svcapp
======

Supervise one child process with a bounded graceful shutdown, and run
in-process work with the same grace-period / force-timeout structure.

Unified import surface.
"""

from __future__ import annotations

from svcapp.coordinator import (
    CancelToken,
    CoordinatorResult,
    CoordinatorState,
    StopTrigger,
    handle_signals,
    run_cancellable,
    wait_or_escalate,
)
from svcapp.errors import (
    ApplicationError,
    ChildExitError,
    SetupError,
    ShutdownTimeoutError,
    ShutdownTimeoutExceeded,
    SignalError,
    SvcError,
    TerminatedBySignal,
)
from svcapp.host import HostBridge, LifecycleBridge, Program, ServiceHost
from svcapp.outcome import ExitResult, ForcedKill, GracefulExit, ShutdownOutcome, TimeoutExceeded
from svcapp.runner import RunFunc, run_with_signals
from svcapp.supervisor import ProcessSupervisor, SupervisedProcess, SupervisorConfig

__all__ = [
    "CancelToken",
    "CoordinatorResult",
    "CoordinatorState",
    "StopTrigger",
    "handle_signals",
    "run_cancellable",
    "wait_or_escalate",
    "ApplicationError",
    "ChildExitError",
    "SetupError",
    "ShutdownTimeoutError",
    "ShutdownTimeoutExceeded",
    "SignalError",
    "SvcError",
    "TerminatedBySignal",
    "HostBridge",
    "LifecycleBridge",
    "Program",
    "ServiceHost",
    "ExitResult",
    "ForcedKill",
    "GracefulExit",
    "ShutdownOutcome",
    "TimeoutExceeded",
    "RunFunc",
    "run_with_signals",
    "ProcessSupervisor",
    "SupervisedProcess",
    "SupervisorConfig",
]
