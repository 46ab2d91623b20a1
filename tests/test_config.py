from __future__ import annotations

from pathlib import Path

import pytest

from svcapp.config import AppConfig, load_config, parse_duration
from svcapp.constants import DAEMON_EXIT_TIMEOUT, SERVICE_NAME
from svcapp.errors import ConfigError


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "svcapp.toml"
    path.write_text(text, encoding="utf-8")
    return path


def test_defaults_without_file() -> None:
    cfg = load_config(environ={})
    assert cfg == AppConfig()
    assert cfg.service.name == SERVICE_NAME
    assert cfg.service.arguments == ["daemon"]
    assert cfg.daemon.args == ["run"]
    assert cfg.daemon.grace_period == DAEMON_EXIT_TIMEOUT
    assert cfg.run.exit_with == "rand"
    assert cfg.log.format == "rich"


def test_partial_file_keeps_other_defaults(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        """
        [daemon]
        args = ["run", "--exit-with", "nil"]
        env = ["APP_MODE=prod"]
        grace_period = 2.5

        [log]
        level = "debug"
        """,
    )
    cfg = load_config(path, environ={})

    assert cfg.daemon.args == ["run", "--exit-with", "nil"]
    assert cfg.daemon.env == ["APP_MODE=prod"]
    assert cfg.daemon.grace_period == 2.5
    assert cfg.log.level == "debug"
    assert cfg.log.format == "rich"
    assert cfg.run == AppConfig().run


def test_config_path_from_environment(tmp_path: Path) -> None:
    path = _write(tmp_path, '[service]\nname = "other"\n')
    cfg = load_config(environ={"SVCAPP_CONFIG": str(path)})
    assert cfg.service.name == "other"


def test_environment_overrides_logging(tmp_path: Path) -> None:
    path = _write(tmp_path, '[log]\nlevel = "error"\n')
    cfg = load_config(path, environ={"SVCAPP_LOG_LEVEL": "WARNING", "SVCAPP_LOG_FORMAT": "json"})
    assert cfg.log.level == "warning"
    assert cfg.log.format == "json"


@pytest.mark.parametrize(
    "text",
    [
        "[daemon]\nunknown = 1\n",
        '[run]\nexit_with = "sometimes"\n',
        '[daemon]\ngrace_period = "soon"\n',
        "[daemon]\ngrace_period = -1\n",
        "[run]\ntimeout = 0\n",
        "not toml at all [",
    ],
)
def test_invalid_file_is_a_config_error(tmp_path: Path, text: str) -> None:
    with pytest.raises(ConfigError):
        load_config(_write(tmp_path, text), environ={})


def test_invalid_environment_override() -> None:
    with pytest.raises(ConfigError):
        load_config(environ={"SVCAPP_LOG_FORMAT": "xml"})


def test_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigError) as ei:
        load_config(tmp_path / "nope.toml", environ={})
    assert "nope.toml" in ei.value.message


@pytest.mark.parametrize(
    ("text", "seconds"),
    [("30", 30.0), ("30s", 30.0), ("500ms", 0.5), ("1.5m", 90.0), ("2h", 7200.0), (" .25s ", 0.25)],
)
def test_parse_duration(text: str, seconds: float) -> None:
    assert parse_duration(text) == pytest.approx(seconds)


@pytest.mark.parametrize("text", ["", "s", "-1s", "10d", "1 minute"])
def test_parse_duration_rejects(text: str) -> None:
    with pytest.raises(ValueError):
        parse_duration(text)
