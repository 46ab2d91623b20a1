"""
svcapp.config
=============

Typed application configuration, loaded from an optional TOML file.

    [service]
    name = "svcapp"
    working_directory = "/srv/svcapp"

    [daemon]
    args = ["run", "--exit-with", "nil"]
    env = ["APP_MODE=prod"]
    grace_period = 5.0

    [run]
    exit_with = "rand"
    timeout = 30.0

    [log]
    level = "info"
    format = "rich"

Every section and key is optional. Durations are seconds. A few environment
variables (SVCAPP_CONFIG, SVCAPP_LOG_LEVEL, SVCAPP_LOG_FORMAT) override the file.
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Literal

import msgspec
import msgspec.structs
import msgspec.toml

from svcapp.constants import (
    CHILD_DEFAULT_ARGS,
    DAEMON_EXIT_TIMEOUT,
    DEFAULT_RUN_TIMEOUT,
    DEFAULT_SHUTDOWN_TIMEOUT,
    ENV_CONFIG,
    ENV_LOG_FORMAT,
    ENV_LOG_LEVEL,
    PID_FILE,
    SERVICE_DESCRIPTION,
    SERVICE_DISPLAY_NAME,
    SERVICE_NAME,
)
from svcapp.errors import ConfigError

LogFormat = Literal["rich", "json"]
LogLevel = Literal["debug", "info", "warning", "error", "critical"]
ExitModeName = Literal["nil", "rand", "err", "panic", "fatal"]


class ServiceSettings(msgspec.Struct, frozen=True, forbid_unknown_fields=True):
    name: str = SERVICE_NAME
    display_name: str = SERVICE_DISPLAY_NAME
    description: str = SERVICE_DESCRIPTION
    working_directory: str | None = None
    arguments: list[str] = msgspec.field(default_factory=lambda: ["daemon"])
    after: list[str] = msgspec.field(default_factory=lambda: ["network-online.target"])
    wants: list[str] = msgspec.field(default_factory=lambda: ["network-online.target"])
    restart: str = "on-success"
    success_exit_status: str = "0 2 SIGKILL"
    pid_file: str | None = str(PID_FILE)


class DaemonSettings(msgspec.Struct, frozen=True, forbid_unknown_fields=True):
    executable: str = ""
    args: list[str] = msgspec.field(default_factory=lambda: list(CHILD_DEFAULT_ARGS))
    env: list[str] = msgspec.field(default_factory=list)
    grace_period: float = DAEMON_EXIT_TIMEOUT
    cwd: str | None = None


class RunSettings(msgspec.Struct, frozen=True, forbid_unknown_fields=True):
    exit_with: ExitModeName = "rand"
    timeout: float = DEFAULT_RUN_TIMEOUT
    shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT
    log_format: LogFormat = "json"


class LogSettings(msgspec.Struct, frozen=True, forbid_unknown_fields=True):
    level: LogLevel = "info"
    format: LogFormat = "rich"


class AppConfig(msgspec.Struct, frozen=True, forbid_unknown_fields=True):
    service: ServiceSettings = msgspec.field(default_factory=ServiceSettings)
    daemon: DaemonSettings = msgspec.field(default_factory=DaemonSettings)
    run: RunSettings = msgspec.field(default_factory=RunSettings)
    log: LogSettings = msgspec.field(default_factory=LogSettings)


def _validate(cfg: AppConfig) -> AppConfig:
    if cfg.daemon.grace_period < 0:
        raise ConfigError("daemon.grace_period must not be negative")
    if cfg.run.timeout <= 0:
        raise ConfigError("run.timeout must be positive")
    if cfg.run.shutdown_timeout <= 0:
        raise ConfigError("run.shutdown_timeout must be positive")
    return cfg


def _apply_env(cfg: AppConfig, environ: Mapping[str, str]) -> AppConfig:
    changes: dict[str, str] = {}
    if level := environ.get(ENV_LOG_LEVEL):
        changes["level"] = level.lower()
    if fmt := environ.get(ENV_LOG_FORMAT):
        changes["format"] = fmt.lower()
    if not changes:
        return cfg
    merged = msgspec.structs.asdict(cfg.log) | changes
    try:
        log_settings = msgspec.convert(merged, LogSettings)
    except msgspec.ValidationError as exc:
        raise ConfigError(f"invalid logging override: {exc}") from exc
    return msgspec.structs.replace(cfg, log=log_settings)


def load_config(path: Path | str | None = None, *, environ: Mapping[str, str] | None = None) -> AppConfig:
    """
    Load configuration from `path` (or $SVCAPP_CONFIG), then apply environment
    overrides. No path at all yields the defaults.
    """
    env = os.environ if environ is None else environ
    if path is None and env.get(ENV_CONFIG):
        path = env[ENV_CONFIG]

    if path is None:
        cfg = AppConfig()
    else:
        p = Path(path)
        try:
            data = p.read_bytes()
        except OSError as exc:
            raise ConfigError(f"cannot read config file {p}: {exc.strerror or exc}") from exc
        try:
            cfg = msgspec.toml.decode(data, type=AppConfig)
        except (msgspec.ValidationError, msgspec.DecodeError) as exc:
            raise ConfigError(f"invalid config file {p}: {exc}") from exc

    return _validate(_apply_env(cfg, env))


# -----------------------------------------------------------------------------
# Durations
# -----------------------------------------------------------------------------

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d*)?|\.\d+)\s*(ms|s|m|h)?\s*$")
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0, None: 1.0}


def parse_duration(text: str) -> float:
    """Parse "30s", "500ms", "1.5m", "2h" or plain seconds into seconds."""
    m = _DURATION_RE.match(text)
    if m is None:
        raise ValueError(f"invalid duration {text!r} (expected e.g. 30s, 500ms, 1m)")
    return float(m.group(1)) * _UNIT_SECONDS[m.group(2)]
