"""Configuration loading utilities."""

import json
import os
import shutil
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from loguru import logger

from warelay.config.defaults import apply_missing_defaults
from warelay.config.schema import Config

CONFIG_VERSION = 2

# Environment variables understood by earlier deployments of the relay.
LEGACY_PORT_ENV = "PORT"
LEGACY_ORIGIN_ENV = "FRONTEND_ORIGIN"


def get_config_path() -> Path:
    """Get the default configuration file path."""
    from warelay.utils.helpers import get_data_path

    return get_data_path() / "config.json"


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from file or create default.

    Args:
        config_path: Optional path to config file. Uses default if not provided.

    Returns:
        Loaded configuration object with legacy environment overrides applied.
    """
    path = config_path or get_config_path()
    config: Config | None = None

    if path.exists():
        try:
            with open(path) as f:
                raw = json.load(f)

            migrated_raw, changed = _migrate_config_with_change(raw)
            config = Config(**convert_keys(migrated_raw))
            if changed:
                _backup_config(path)
                _atomic_write_config(path, config)
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning(f"Failed to load config from {path}: {e}; using default configuration")

    return apply_env_overrides(config or Config())


def save_config(config: Config, config_path: Path | None = None) -> None:
    """
    Save configuration to file.

    Args:
        config: Configuration to save.
        config_path: Optional path to save to. Uses default if not provided.
    """
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    _atomic_write_config(path, config)


def apply_env_overrides(config: Config, environ: dict[str, str] | None = None) -> Config:
    """Apply ``PORT`` / ``FRONTEND_ORIGIN`` on top of file and WARELAY_* settings."""
    env = os.environ if environ is None else environ

    port_raw = (env.get(LEGACY_PORT_ENV) or "").strip()
    if port_raw:
        try:
            config.server.port = int(port_raw)
        except ValueError:
            logger.warning(f"Ignoring non-numeric {LEGACY_PORT_ENV}={port_raw!r}")

    origin = (env.get(LEGACY_ORIGIN_ENV) or "").strip()
    if origin:
        config.server.frontend_origin = origin

    return config


def _migrate_config(data: dict[str, Any]) -> dict[str, Any]:
    """Backward-compatible migration helper returning migrated payload only."""
    migrated, _ = _migrate_config_with_change(data)
    return migrated


def _migrate_config_with_change(data: dict[str, Any]) -> tuple[dict[str, Any], bool]:
    """Migrate old config formats to current schema version.

    Version 1 files were flat: ``port``, ``frontendOrigin``, ``allowedOrigins``
    and ``authFolderPath`` at the root.

    Returns:
        (migrated_data, changed)
    """
    if not isinstance(data, dict):
        raise ValueError("Config root must be a JSON object")

    original = json.dumps(data, sort_keys=True, separators=(",", ":"))
    snake = convert_keys(json.loads(json.dumps(data)))

    version = snake.get("config_version")
    try:
        version_num = int(version) if version is not None else 1
    except (TypeError, ValueError):
        version_num = 1

    if version_num < 2:
        server = snake.get("server")
        if not isinstance(server, dict):
            server = {}
            snake["server"] = server
        session = snake.get("session")
        if not isinstance(session, dict):
            session = {}
            snake["session"] = session

        if "port" in snake:
            server.setdefault("port", snake.pop("port"))
        if "frontend_origin" in snake:
            server.setdefault("frontend_origin", snake.pop("frontend_origin"))
        if "allowed_origins" in snake:
            server.setdefault("allowed_origins", snake.pop("allowed_origins"))
        if "auth_folder_path" in snake:
            session.setdefault("auth_dir", snake.pop("auth_folder_path"))

    apply_missing_defaults(snake)
    snake["config_version"] = CONFIG_VERSION

    migrated = convert_to_camel(snake)
    changed = original != json.dumps(migrated, sort_keys=True, separators=(",", ":"))
    return migrated, changed


def _backup_config(path: Path) -> None:
    """Create timestamped backup of config before migration rewrite."""
    if not path.exists():
        return
    timestamp = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    backup = path.with_name(f"{path.stem}.backup.{timestamp}{path.suffix}")
    shutil.copy2(path, backup)
    try:
        backup.chmod(0o600)
    except OSError:
        pass


def _atomic_write_config(path: Path, config: Config) -> None:
    """Atomically write config as camelCase JSON with secure permissions."""
    path.parent.mkdir(parents=True, exist_ok=True)
    data = convert_to_camel(config.model_dump())
    tmp_name = f".{path.name}.tmp-{os.getpid()}"
    tmp_path = path.with_name(tmp_name)
    with open(tmp_path, "w") as f:
        json.dump(data, f, indent=2)
    try:
        tmp_path.chmod(0o600)
    except OSError:
        pass
    os.replace(tmp_path, path)
    try:
        path.chmod(0o600)
    except OSError:
        pass


def convert_keys(data: Any) -> Any:
    """Convert camelCase keys to snake_case for Pydantic."""
    if isinstance(data, dict):
        return {camel_to_snake(k): convert_keys(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_keys(item) for item in data]
    return data


def convert_to_camel(data: Any) -> Any:
    """Convert snake_case keys to camelCase."""
    if isinstance(data, dict):
        return {snake_to_camel(k): convert_to_camel(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_to_camel(item) for item in data]
    return data


def camel_to_snake(name: str) -> str:
    """Convert camelCase to snake_case."""
    result = []
    for i, char in enumerate(name):
        if char.isupper() and i > 0:
            result.append("_")
        result.append(char.lower())
    return "".join(result)


def snake_to_camel(name: str) -> str:
    """Convert snake_case to camelCase."""
    components = name.split("_")
    return components[0] + "".join(x.title() for x in components[1:])
