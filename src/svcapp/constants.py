"""
svcapp.constants
================

Single place for service names, default timeouts and environment variable
names. The supervisor, host bridge, service manager and CLI import from here so
we never duplicate strings like "svcapp".
"""

from __future__ import annotations

from pathlib import Path

# ---- service identity -------------------------------------------------------

SERVICE_NAME = "svcapp"
SERVICE_DISPLAY_NAME = "SvcApp"
SERVICE_DESCRIPTION = "A simple example of a Python application that can be installed as a service"

SYSTEMD_UNIT_DIR = Path("/etc/systemd/system")
PID_FILE = Path("/var/run/svcapp.pid")

# ---- timeouts (seconds) -------------------------------------------------------

DEFAULT_GRACE_PERIOD = 10.0  # supervisor: SIGTERM -> SIGKILL
DAEMON_EXIT_TIMEOUT = 5.0  # grace period the `daemon` command configures
DEFAULT_SHUTDOWN_TIMEOUT = 60.0  # coordinator: cancel -> give up
DEFAULT_RUN_TIMEOUT = 30.0  # demo `run` duration
TICK_INTERVAL = 1.0  # demo `run` progress log interval
SIGNAL_POLL_INTERVAL = 0.05  # how often waiters pick up a pending signal
RELAY_DRAIN_TIMEOUT = 2.0  # output still flowing after the child exited

# ---- child invocation ---------------------------------------------------------

CHILD_DEFAULT_ARGS = ("run",)

# ---- environment ----------------------------------------------------------------

ENV_CONFIG = "SVCAPP_CONFIG"
ENV_LOG_LEVEL = "SVCAPP_LOG_LEVEL"
ENV_LOG_FORMAT = "SVCAPP_LOG_FORMAT"
ENV_INTERACTIVE = "SVCAPP_INTERACTIVE"

# Set by systemd for every unit it starts.
ENV_SYSTEMD_INVOCATION = "INVOCATION_ID"


def unit_path(name: str, unit_dir: Path = SYSTEMD_UNIT_DIR) -> Path:
    """Path of the systemd unit file for a service name."""
    return unit_dir / f"{name}.service"
