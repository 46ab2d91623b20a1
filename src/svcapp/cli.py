"""
Command line interface.

    svcapp [--config PATH] [-v] run [-e MODE] [-t DURATION]
    svcapp [--config PATH] [-v] service {start|stop|restart|install|uninstall}
    svcapp [--config PATH] [-v] daemon [ARGS...]

`daemon` forwards everything after it, verbatim, to the supervised child.
Exit status is 1 on any failure and 0 otherwise.
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

from svcapp.config import AppConfig, load_config, parse_duration
from svcapp.demo import DemoError, ExitMode, determine_exit_mode, run_main_loop
from svcapp.errors import NoServiceSystemError, ServiceExistsError
from svcapp.host import LifecycleBridge, ServiceHost
from svcapp.logs import setup_logging
from svcapp.pretty import run_with_diagnostics
from svcapp.runner import run_with_signals
from svcapp.service import ACTIONS, ServiceManager, control, detect_manager
from svcapp.supervisor import ProcessSupervisor, SupervisorConfig

log = logging.getLogger(__name__)

_GLOBAL_OPTS_WITH_VALUE = {"--config", "-c"}


def _duration(text: str) -> float:
    try:
        return parse_duration(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="svcapp", description="Run a program as a supervised service.")
    parser.add_argument("-c", "--config", type=Path, default=None, help="TOML configuration file")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    run_p = sub.add_parser("run", help="run the application and exit with the specified status")
    run_p.add_argument(
        "-e",
        "--exit-with",
        choices=[m.value for m in ExitMode],
        default=None,
        help="how the program exits: nil, rand, err, panic, fatal",
    )
    run_p.add_argument(
        "-t", "--timeout", type=_duration, default=None, help="time to run before exiting (e.g. 30s)"
    )

    svc_p = sub.add_parser("service", help="manage the application service; requires root")
    svc_p.add_argument("action", choices=ACTIONS)

    sub.add_parser(
        "daemon",
        help="run as a process supervisor; extra arguments are passed to the child",
    )
    return parser


def split_passthrough(argv: Sequence[str]) -> tuple[list[str], list[str]]:
    """
    Split argv at the `daemon` command: everything after it belongs to the
    child and must not be parsed here.
    """
    skip_next = False
    for i, tok in enumerate(argv):
        if skip_next:
            skip_next = False
            continue
        if tok in _GLOBAL_OPTS_WITH_VALUE:
            skip_next = True
            continue
        if tok.startswith("-"):
            continue
        if tok == "daemon":
            return list(argv[: i + 1]), list(argv[i + 1 :])
        break
    return list(argv), []


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------


def _log_level(cfg: AppConfig, verbose: bool) -> str:
    return "debug" if verbose else cfg.log.level


def cmd_run(cfg: AppConfig, ns: argparse.Namespace) -> int:
    setup_logging(_log_level(cfg, ns.verbose), cfg.run.log_format)

    mode = determine_exit_mode(ns.exit_with or cfg.run.exit_with)
    timeout = ns.timeout if ns.timeout is not None else cfg.run.timeout
    if mode != ExitMode.NIL:
        log.info("Process will exit with", extra={"mode": str(mode)})

    try:
        run_with_signals(
            lambda token, _args: run_main_loop(token, mode, timeout),
            shutdown_timeout=cfg.run.shutdown_timeout,
        )
    except DemoError as exc:
        log.error("Run failed: %s", exc)
        return 1
    return 0


def cmd_service(cfg: AppConfig, ns: argparse.Namespace) -> int:
    setup_logging(_log_level(cfg, ns.verbose), cfg.log.format)

    manager = detect_manager(cfg.service)
    try:
        control(manager, ns.action)
    except ServiceExistsError:
        log.info("Already installed.")
    return 0


def cmd_daemon(cfg: AppConfig, ns: argparse.Namespace, passthrough: Sequence[str]) -> int:
    setup_logging(_log_level(cfg, ns.verbose), cfg.log.format)

    supervisor = ProcessSupervisor(
        SupervisorConfig(
            executable=cfg.daemon.executable,
            args=[*cfg.daemon.args, *passthrough],
            env=list(cfg.daemon.env),
            grace_period=cfg.daemon.grace_period,
            cwd=Path(cfg.daemon.cwd) if cfg.daemon.cwd else None,
        )
    )

    manager: ServiceManager | None = None
    try:
        manager = detect_manager(cfg.service)
    except NoServiceSystemError:
        log.debug("No service system detected; unexpected exits will terminate this process")

    outcome = ServiceHost(LifecycleBridge(manager)).run(supervisor)
    if outcome is not None:
        outcome.result.check()
    return 0


@run_with_diagnostics()
def main(argv: Sequence[str] | None = None) -> int:
    raw = list(sys.argv[1:] if argv is None else argv)
    head, passthrough = split_passthrough(raw)
    ns = build_parser().parse_args(head)
    cfg = load_config(ns.config)

    if ns.command == "run":
        return cmd_run(cfg, ns)
    if ns.command == "service":
        return cmd_service(cfg, ns)
    return cmd_daemon(cfg, ns, passthrough)
