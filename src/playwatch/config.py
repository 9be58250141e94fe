"""Configuration management for playwatch."""

from __future__ import annotations

import os
import tomllib
from pathlib import Path

from pydantic import BaseModel, Field, SecretStr


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

_BASE_DIR_NAME = ".playwatch"
_CONFIG_FILE = "config.toml"
_DB_FILE = "playwatch.db"
_LOG_DIR = "logs"


def get_base_dir() -> Path:
    """Return the base directory for all playwatch runtime files (~/.playwatch/)."""
    return Path.home() / _BASE_DIR_NAME


# ---------------------------------------------------------------------------
# Config models
# ---------------------------------------------------------------------------


class ServiceConfig(BaseModel):
    """Settings for the foreground service and its webhook server."""

    host: str = Field(default="0.0.0.0", description="Interface the webhook server binds to")  # noqa: S104
    port: int = Field(default=3000, description="Port for the webhook server")
    log_level: str = Field(default="info", description="Logging level")
    webhook_secret: SecretStr = Field(default=SecretStr(""), description="Token required by /check-playlists")


class TrackerConfig(BaseModel):
    """Settings that control the check passes."""

    interval_minutes: int = Field(default=60, description="Minutes between check passes")
    image_debounce_hours: int = Field(
        default=24,
        description="Hours before an unconfirmed cover image change is accepted",
    )
    trust_empty_fetch: bool = Field(
        default=True,
        description="Treat an empty playlist fetch as 'all tracks removed'",
    )


class SpotifyConfig(BaseModel):
    """Spotify client-credentials app."""

    client_id: str = Field(default="", description="Spotify Developer App client ID")
    client_secret: SecretStr = Field(default=SecretStr(""), description="Spotify Developer App client secret")


class TelegramConfig(BaseModel):
    """Telegram bot used for change notifications."""

    bot_token: SecretStr = Field(default=SecretStr(""), description="Telegram bot token")
    chat_id: str = Field(default="", description="Chat that receives notifications")
    timezone: str = Field(default="Asia/Manila", description="Timezone for dates in notifications")


class AppConfig(BaseModel):
    """Top-level application configuration."""

    service: ServiceConfig = Field(default_factory=ServiceConfig)
    tracker: TrackerConfig = Field(default_factory=TrackerConfig)
    spotify: SpotifyConfig = Field(default_factory=SpotifyConfig)
    telegram: TelegramConfig = Field(default_factory=TelegramConfig)

    # -- derived paths (not stored in TOML) --------------------------------

    @property
    def base_dir(self) -> Path:
        return get_base_dir()

    @property
    def db_path(self) -> Path:
        return self.base_dir / _DB_FILE

    @property
    def log_dir(self) -> Path:
        return self.base_dir / _LOG_DIR

    def is_spotify_configured(self) -> bool:
        """Return True if Spotify client credentials are set."""
        return bool(self.spotify.client_id and self.spotify.client_secret.get_secret_value())

    def is_telegram_configured(self) -> bool:
        """Return True if both the bot token and the target chat are set."""
        return bool(self.telegram.bot_token.get_secret_value() and self.telegram.chat_id)


# ---------------------------------------------------------------------------
# Filesystem helpers
# ---------------------------------------------------------------------------


def ensure_dirs() -> None:
    """Create the base directory and log directory if they don't already exist."""
    base = get_base_dir()
    base.mkdir(mode=0o700, parents=True, exist_ok=True)
    (base / _LOG_DIR).mkdir(mode=0o700, parents=True, exist_ok=True)


def config_exists() -> bool:
    """Return True if a config file is present on disk."""
    return (get_base_dir() / _CONFIG_FILE).is_file()


# ---------------------------------------------------------------------------
# Load / save
# ---------------------------------------------------------------------------


def load_config() -> AppConfig:
    """Load configuration from TOML, falling back to defaults if the file is missing."""
    path = get_base_dir() / _CONFIG_FILE
    if not path.is_file():
        return AppConfig()

    with open(path, "rb") as f:
        raw = tomllib.load(f)

    return AppConfig.model_validate(raw)


def _format_toml_value(value: object) -> str:
    """Format a single Python value as a TOML literal."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, SecretStr):
        raw = value.get_secret_value()
        escaped = raw.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    if isinstance(value, str):
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    msg = f"Unsupported TOML value type: {type(value)}"
    raise TypeError(msg)


def _sections(config: AppConfig) -> list[tuple[str, BaseModel]]:
    return [
        ("service", config.service),
        ("tracker", config.tracker),
        ("spotify", config.spotify),
        ("telegram", config.telegram),
    ]


def _dump_toml(config: AppConfig) -> str:
    """Serialize an AppConfig to a minimal TOML string.

    Only handles the flat two-level structure we actually use (tables with
    scalar values).
    """
    lines: list[str] = []
    for section_name, section_model in _sections(config):
        lines.append(f"[{section_name}]")
        for key, value in section_model.model_dump(mode="python").items():
            lines.append(f"{key} = {_format_toml_value(value)}")
        lines.append("")
    return "\n".join(lines)


def save_config(config: AppConfig) -> None:
    """Save configuration to TOML and restrict file permissions to owner-only."""
    ensure_dirs()
    path = get_base_dir() / _CONFIG_FILE
    path.write_text(_dump_toml(config), encoding="utf-8")
    os.chmod(path, 0o600)
