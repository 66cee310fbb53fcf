"""Configuration schema using Pydantic."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import BaseSettings

from warelay.config.defaults import (
    DEFAULT_ALLOWED_ORIGINS,
    DEFAULT_BRIDGE,
    DEFAULT_BROWSER_ARGS,
    DEFAULT_FORMATTER,
    DEFAULT_SESSION,
    MAX_CHAT_LIST,
)


class ServerConfig(BaseModel):
    """HTTP + Socket.IO listener configuration."""

    model_config = ConfigDict(extra="ignore")

    host: str = "0.0.0.0"
    port: int = 3001
    frontend_origin: str = ""
    allowed_origins: list[str] = Field(default_factory=lambda: list(DEFAULT_ALLOWED_ORIGINS))

    @property
    def resolved_allowed_origins(self) -> list[str]:
        """Frontend origin first, then the allow-list, without duplicates."""
        origins: list[str] = []
        for origin in [self.frontend_origin, *self.allowed_origins]:
            origin = (origin or "").strip().rstrip("/")
            if origin and origin not in origins:
                origins.append(origin)
        return origins


class SessionConfig(BaseModel):
    """WhatsApp session lifecycle configuration."""

    model_config = ConfigDict(extra="ignore")

    auth_dir: str = str(DEFAULT_SESSION["auth_dir"])
    headless: bool = bool(DEFAULT_SESSION["headless"])
    browser_args: list[str] = Field(default_factory=lambda: list(DEFAULT_BROWSER_ARGS))
    restart_delay_ms: int = Field(default=int(DEFAULT_SESSION["restart_delay_ms"]), ge=0)
    max_auto_restarts: int = Field(default=int(DEFAULT_SESSION["max_auto_restarts"]), ge=0)  # 0 = unlimited
    ready_settle_ms: int = Field(default=int(DEFAULT_SESSION["ready_settle_ms"]), ge=0)
    ready_retry_delay_ms: int = Field(default=int(DEFAULT_SESSION["ready_retry_delay_ms"]), ge=0)

    @property
    def auth_path(self) -> Path:
        return Path(self.auth_dir).expanduser()


class FormatterConfig(BaseModel):
    """Chat/message projection and fetch retry settings."""

    model_config = ConfigDict(extra="ignore")

    chat_list_limit: int = Field(default=int(DEFAULT_FORMATTER["chat_list_limit"]), ge=1, le=MAX_CHAT_LIST)
    chat_fetch_retries: int = Field(default=int(DEFAULT_FORMATTER["chat_fetch_retries"]), ge=0)
    chat_retry_delay_ms: int = Field(default=int(DEFAULT_FORMATTER["chat_retry_delay_ms"]), ge=0)
    message_limit: int = Field(default=int(DEFAULT_FORMATTER["message_limit"]), ge=1)
    media_lookup_limit: int = Field(default=int(DEFAULT_FORMATTER["media_lookup_limit"]), ge=1)
    media_download_concurrency: int = Field(
        default=int(DEFAULT_FORMATTER["media_download_concurrency"]), ge=1
    )

    @model_validator(mode="after")
    def _validate_limits(self) -> "FormatterConfig":
        if self.message_limit > self.media_lookup_limit:
            raise ValueError("formatter.messageLimit must not exceed formatter.mediaLookupLimit")
        return self


class BridgeConfig(BaseModel):
    """Connection settings for the WhatsApp Web bridge runtime."""

    model_config = ConfigDict(extra="ignore")

    host: str = str(DEFAULT_BRIDGE["host"])
    port: int = int(DEFAULT_BRIDGE["port"])
    token: str = ""
    account_id: str = "default"
    startup_timeout_ms: int = int(DEFAULT_BRIDGE["startup_timeout_ms"])
    request_timeout_ms: int = int(DEFAULT_BRIDGE["request_timeout_ms"])
    initialize_timeout_ms: int = int(DEFAULT_BRIDGE["initialize_timeout_ms"])
    max_payload_bytes: int = int(DEFAULT_BRIDGE["max_payload_bytes"])

    @property
    def resolved_url(self) -> str:
        host = (self.host or "").strip() or "127.0.0.1"
        return f"ws://{host}:{self.port}"


class TelemetryConfig(BaseModel):
    """Metrics collection settings."""

    enabled: bool = True


class Config(BaseSettings):
    """Root configuration for warelay."""

    model_config = ConfigDict(
        extra="ignore", populate_by_name=True, env_prefix="WARELAY_", env_nested_delimiter="__"
    )

    config_version: int = 2
    log_level: Literal["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR"] = "INFO"
    server: ServerConfig = Field(default_factory=ServerConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    formatter: FormatterConfig = Field(default_factory=FormatterConfig)
    bridge: BridgeConfig = Field(default_factory=BridgeConfig)
    telemetry: TelemetryConfig = Field(default_factory=TelemetryConfig)
