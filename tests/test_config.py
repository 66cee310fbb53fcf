import json
from pathlib import Path

import pytest

from warelay.config.loader import (
    _migrate_config,
    apply_env_overrides,
    convert_keys,
    convert_to_camel,
    load_config,
    save_config,
)
from warelay.config.schema import Config, FormatterConfig, ServerConfig


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.delenv("PORT", raising=False)
    monkeypatch.delenv("FRONTEND_ORIGIN", raising=False)
    monkeypatch.setenv("WARELAY_HOME", str(tmp_path / "home"))


def test_defaults_match_relay_behavior() -> None:
    config = Config()

    assert config.server.port == 3001
    assert config.session.restart_delay_ms == 700
    assert config.session.max_auto_restarts == 5
    assert config.formatter.chat_list_limit == 50
    assert config.formatter.chat_fetch_retries == 3
    assert config.formatter.chat_retry_delay_ms == 500
    assert config.formatter.message_limit == 100
    assert config.formatter.media_lookup_limit == 200
    assert config.bridge.resolved_url == "ws://127.0.0.1:3002"


def test_allowed_origins_put_frontend_origin_first_without_duplicates() -> None:
    server = ServerConfig(
        frontend_origin="https://app.example.com/",
        allowed_origins=["http://localhost:5173", "https://app.example.com", ""],
    )

    assert server.resolved_allowed_origins == ["https://app.example.com", "http://localhost:5173"]


def test_chat_list_limit_cannot_exceed_fifty() -> None:
    with pytest.raises(ValueError):
        FormatterConfig(chat_list_limit=51)


def test_message_limit_must_fit_lookup_window() -> None:
    with pytest.raises(ValueError):
        FormatterConfig(message_limit=300, media_lookup_limit=200)


def test_legacy_env_overrides_port_and_origin() -> None:
    config = apply_env_overrides(Config(), {"PORT": "4100", "FRONTEND_ORIGIN": "https://chat.example.com"})

    assert config.server.port == 4100
    assert config.server.resolved_allowed_origins[0] == "https://chat.example.com"


def test_non_numeric_port_is_ignored() -> None:
    config = apply_env_overrides(Config(), {"PORT": "http"})

    assert config.server.port == 3001


def test_prefixed_env_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WARELAY_SERVER__PORT", "5005")
    monkeypatch.setenv("WARELAY_BRIDGE__TOKEN", "t0k")

    config = Config()

    assert config.server.port == 5005
    assert config.bridge.token == "t0k"


def test_save_and_load_roundtrip_uses_camel_case(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    config = Config()
    config.session.max_auto_restarts = 9
    config.bridge.token = "abc"

    save_config(config, path)
    raw = json.loads(path.read_text())
    loaded = load_config(path)

    assert raw["session"]["maxAutoRestarts"] == 9
    assert "restartDelayMs" in raw["session"]
    assert loaded.session.max_auto_restarts == 9
    assert loaded.bridge.token == "abc"
    assert path.stat().st_mode & 0o777 == 0o600


def test_flat_legacy_config_is_migrated_with_backup(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "port": 3100,
                "frontendOrigin": "https://old.example.com",
                "authFolderPath": "/var/lib/wa-auth",
            }
        )
    )

    config = load_config(path)

    assert config.server.port == 3100
    assert config.server.frontend_origin == "https://old.example.com"
    assert config.session.auth_dir == "/var/lib/wa-auth"
    rewritten = json.loads(path.read_text())
    assert rewritten["configVersion"] == 2
    assert rewritten["server"]["port"] == 3100
    assert "port" not in rewritten
    assert list(tmp_path.glob("config.backup.*.json"))


def test_migration_fills_missing_sections() -> None:
    migrated = _migrate_config({"configVersion": 2, "server": {"port": 3001}})

    assert migrated["formatter"]["chatFetchRetries"] == 3
    assert migrated["bridge"]["port"] == 3002
    assert migrated["server"]["allowedOrigins"]


def test_invalid_config_falls_back_to_defaults(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text("{not json")

    assert load_config(path).server.port == 3001


def test_key_conversion_roundtrip() -> None:
    data = {"maxAutoRestarts": 2, "browserArgs": ["--a"], "nested": [{"readySettleMs": 1}]}

    snake = convert_keys(data)

    assert snake == {"max_auto_restarts": 2, "browser_args": ["--a"], "nested": [{"ready_settle_ms": 1}]}
    assert convert_to_camel(snake) == data
