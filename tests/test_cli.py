import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from warelay import __version__
from warelay.cli.commands import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def _home(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    home = tmp_path / "home"
    monkeypatch.setenv("WARELAY_HOME", str(home))
    monkeypatch.setenv("WARELAY_SESSION__AUTH_DIR", str(tmp_path / "auth"))
    monkeypatch.delenv("PORT", raising=False)
    monkeypatch.delenv("FRONTEND_ORIGIN", raising=False)
    return home


def test_version_flag() -> None:
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_init_writes_default_config(_home: Path) -> None:
    result = runner.invoke(app, ["init"])

    assert result.exit_code == 0
    data = json.loads((_home / "config.json").read_text())
    assert data["server"]["port"] == 3001
    assert data["configVersion"] == 2


def test_session_clear_removes_store(tmp_path: Path) -> None:
    auth = tmp_path / "auth"
    auth.mkdir()
    (auth / "creds.json").write_text("{}")

    result = runner.invoke(app, ["session", "clear", "--yes"])

    assert result.exit_code == 0
    assert not auth.exists()


def test_session_clear_without_store() -> None:
    result = runner.invoke(app, ["session", "clear", "--yes"])

    assert result.exit_code == 0
    assert "No session stored" in result.output


def test_status_reports_unreachable_relay() -> None:
    result = runner.invoke(app, ["status", "--url", "http://127.0.0.1:9"])

    assert result.exit_code == 1
    assert "not reachable" in result.output
