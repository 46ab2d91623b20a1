from __future__ import annotations

import logging
import os
import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

import svcapp.cli as cli
from svcapp.errors import NoServiceSystemError, ServiceExistsError
from svcapp.service import ServiceManager

from tests.utils import FakeManager

posix_only = pytest.mark.skipif(os.name != "posix", reason="POSIX signal semantics")


@pytest.fixture(autouse=True)
def _isolate(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """The commands reconfigure the root logger; put it back afterwards."""
    for name in ("SVCAPP_CONFIG", "SVCAPP_LOG_LEVEL", "SVCAPP_LOG_FORMAT", "SVCAPP_INTERACTIVE"):
        monkeypatch.delenv(name, raising=False)
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def _no_service_system(monkeypatch: pytest.MonkeyPatch) -> None:
    def detect(settings: object, **kwargs: object) -> ServiceManager:
        raise NoServiceSystemError("could not detect a service system")

    monkeypatch.setattr(cli, "detect_manager", detect)


# ---- argv splitting ----------------------------------------------------------------------


@pytest.mark.parametrize(
    ("argv", "head", "tail"),
    [
        (["daemon", "run", "-e", "nil"], ["daemon"], ["run", "-e", "nil"]),
        (["-v", "--config", "daemon", "daemon", "-x"], ["-v", "--config", "daemon", "daemon"], ["-x"]),
        (["run", "-e", "nil"], ["run", "-e", "nil"], []),
        (["service", "daemon"], ["service", "daemon"], []),
        ([], [], []),
    ],
)
def test_split_passthrough(argv: list[str], head: list[str], tail: list[str]) -> None:
    assert cli.split_passthrough(argv) == (head, tail)


def test_parser_rejects_unknown_service_action() -> None:
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["service", "reload"])


def test_parser_parses_durations() -> None:
    ns = cli.build_parser().parse_args(["run", "-t", "250ms", "-e", "nil"])
    assert ns.timeout == pytest.approx(0.25)
    assert ns.exit_with == "nil"


# ---- run -------------------------------------------------------------------------------------


def test_run_times_out_cleanly(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["run", "-e", "nil", "-t", "50ms"]) == 0
    out = capsys.readouterr().out
    assert '"msg":"Timed out."' in out


def test_run_error_mode_exits_1() -> None:
    assert cli.main(["run", "-e", "err", "-t", "10ms"]) == 1


def test_invalid_config_exits_1(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = tmp_path / "bad.toml"
    path.write_text("[run]\nexit_with = 3\n", encoding="utf-8")
    assert cli.main(["--config", str(path), "run"]) == 1
    assert "ConfigError" in capsys.readouterr().err


# ---- service -----------------------------------------------------------------------------------


def test_service_action_is_dispatched(monkeypatch: pytest.MonkeyPatch) -> None:
    manager = FakeManager()
    monkeypatch.setattr(cli, "detect_manager", lambda settings, **kw: manager)

    assert cli.main(["service", "restart"]) == 0
    assert manager.calls == [("restart", {})]


def test_service_already_installed_is_not_a_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    class Installed(FakeManager):
        def install(self) -> None:
            raise ServiceExistsError("already installed")

    monkeypatch.setattr(cli, "detect_manager", lambda settings, **kw: Installed())
    assert cli.main(["service", "install"]) == 0


def test_service_without_service_system_exits_1(monkeypatch: pytest.MonkeyPatch) -> None:
    _no_service_system(monkeypatch)
    assert cli.main(["service", "start"]) == 1


# ---- daemon ------------------------------------------------------------------------------------


def _daemon_config(tmp_path: Path, code: str) -> Path:
    path = tmp_path / "svcapp.toml"
    path.write_text(
        "[daemon]\n"
        f"executable = '{sys.executable}'\n"
        f'args = ["-c", "{code}"]\n'
        "grace_period = 2.0\n",
        encoding="utf-8",
    )
    return path


@posix_only
def test_daemon_forwards_args_and_ends_with_child(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _no_service_system(monkeypatch)
    out = tmp_path / "argv.txt"
    cfg = _daemon_config(tmp_path, "import sys; open(sys.argv[1], 'w').write(' '.join(sys.argv[2:]))")

    # The child exits on its own; the host terminates itself and reports the child's clean exit.
    rc = cli.main(["--config", str(cfg), "daemon", str(out), "--flag", "value"])

    assert rc == 0
    assert out.read_text() == "--flag value"


@posix_only
def test_daemon_reports_child_failure(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _no_service_system(monkeypatch)
    cfg = _daemon_config(tmp_path, "import sys; sys.exit(3)")

    assert cli.main(["--config", str(cfg), "daemon"]) == 1


def test_daemon_rejects_bad_interactive_flag_before_starting(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _no_service_system(monkeypatch)
    monkeypatch.setenv("SVCAPP_INTERACTIVE", "maybe")
    marker = tmp_path / "started"
    cfg = _daemon_config(tmp_path, "import sys; open(sys.argv[1], 'w').close()")

    assert cli.main(["--config", str(cfg), "daemon", str(marker)]) == 1
    assert not marker.exists()
