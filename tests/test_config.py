"""Tests for playwatch.config module."""

from __future__ import annotations

import os
import stat
import tomllib
from pathlib import Path

import pytest
from pydantic import SecretStr

from playwatch.config import (
    AppConfig,
    ServiceConfig,
    SpotifyConfig,
    TelegramConfig,
    TrackerConfig,
    _dump_toml,
    _format_toml_value,
    config_exists,
    ensure_dirs,
    load_config,
    save_config,
)

# ---------------------------------------------------------------------------
# 1. Default values
# ---------------------------------------------------------------------------


def test_service_config_defaults():
    cfg = ServiceConfig()
    assert cfg.port == 3000
    assert cfg.log_level == "info"
    assert cfg.webhook_secret.get_secret_value() == ""


def test_tracker_config_defaults():
    cfg = TrackerConfig()
    assert cfg.interval_minutes == 60
    assert cfg.image_debounce_hours == 24
    assert cfg.trust_empty_fetch is True


def test_telegram_config_defaults():
    assert TelegramConfig().timezone == "Asia/Manila"


# ---------------------------------------------------------------------------
# 2. AppConfig properties (use base_dir fixture)
# ---------------------------------------------------------------------------


def test_base_dir_property(base_dir: Path):
    assert AppConfig().base_dir == base_dir


def test_db_path(base_dir: Path):
    assert AppConfig().db_path == base_dir / "playwatch.db"


def test_log_dir(base_dir: Path):
    assert AppConfig().log_dir == base_dir / "logs"


def test_is_spotify_configured():
    assert not AppConfig().is_spotify_configured()
    cfg = AppConfig(spotify=SpotifyConfig(client_id="id", client_secret=SecretStr("secret")))
    assert cfg.is_spotify_configured()


def test_is_telegram_configured():
    assert not AppConfig(telegram=TelegramConfig(bot_token=SecretStr("t"))).is_telegram_configured()
    assert AppConfig(telegram=TelegramConfig(bot_token=SecretStr("t"), chat_id="1")).is_telegram_configured()


# ---------------------------------------------------------------------------
# 3. ensure_dirs / config_exists
# ---------------------------------------------------------------------------


def test_ensure_dirs_creates_directories(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    fresh = tmp_path / "fresh_base"
    monkeypatch.setattr("playwatch.config.get_base_dir", lambda: fresh)

    assert not fresh.exists()
    ensure_dirs()
    assert fresh.is_dir()
    assert (fresh / "logs").is_dir()


def test_config_exists_false_when_missing(base_dir: Path):
    assert config_exists() is False


def test_config_exists_true_when_file_present(base_dir: Path):
    (base_dir / "config.toml").write_text("")
    assert config_exists() is True


# ---------------------------------------------------------------------------
# 4. save_config / load_config
# ---------------------------------------------------------------------------


def test_load_config_no_file_returns_defaults(base_dir: Path):
    assert load_config() == AppConfig()


def test_save_load_round_trip_custom(base_dir: Path):
    original = AppConfig(
        service=ServiceConfig(port=8080, webhook_secret=SecretStr('we"ird')),
        tracker=TrackerConfig(interval_minutes=5, trust_empty_fetch=False),
        spotify=SpotifyConfig(client_id="cid", client_secret=SecretStr("csecret")),
        telegram=TelegramConfig(bot_token=SecretStr("123:abc"), chat_id="-100", timezone="UTC"),
    )
    save_config(original)
    loaded = load_config()

    assert loaded.service.port == 8080
    assert loaded.service.webhook_secret.get_secret_value() == 'we"ird'
    assert loaded.tracker.interval_minutes == 5
    assert loaded.tracker.trust_empty_fetch is False
    assert loaded.spotify.client_secret.get_secret_value() == "csecret"
    assert loaded.telegram.chat_id == "-100"
    assert loaded.telegram.timezone == "UTC"


def test_partial_file_fills_defaults(base_dir: Path):
    (base_dir / "config.toml").write_text("[tracker]\ninterval_minutes = 15\n")
    cfg = load_config()
    assert cfg.tracker.interval_minutes == 15
    assert cfg.tracker.image_debounce_hours == 24
    assert cfg.service.port == 3000


def test_save_config_sets_permissions(base_dir: Path):
    save_config(AppConfig())
    mode = stat.S_IMODE(os.stat(base_dir / "config.toml").st_mode)
    assert mode == 0o600


# ---------------------------------------------------------------------------
# 5. TOML serialisation
# ---------------------------------------------------------------------------


def test_format_toml_value_string_with_quotes():
    assert _format_toml_value('say "hi"') == '"say \\"hi\\""'


def test_format_toml_value_bool():
    assert _format_toml_value(True) == "true"
    assert _format_toml_value(False) == "false"


def test_format_toml_value_secret():
    assert _format_toml_value(SecretStr("x")) == '"x"'


def test_format_toml_value_unsupported():
    with pytest.raises(TypeError):
        _format_toml_value(1.5)


def test_dump_toml_is_valid_toml():
    data = tomllib.loads(_dump_toml(AppConfig()))
    assert set(data) == {"service", "tracker", "spotify", "telegram"}
    assert data["tracker"]["interval_minutes"] == 60
    assert data["tracker"]["trust_empty_fetch"] is True
