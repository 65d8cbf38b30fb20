"""
Tests for bridge configuration.

Verifies:
- Configuration loading from environment
- Required token validation
- Default values and tolerant parsing
- .env file loading without overriding the environment
"""
import pytest

from voice_control.config import BridgeConfig, load_env_files

ENV_KEYS = (
    "DISCORD_CLIENT_TOKEN",
    "AUDIO_DEVICE",
    "LOG_LEVEL",
    "LOG_JSON",
    "CONNECT_TIMEOUT_SECONDS",
    "SHUTDOWN_TIMEOUT_SECONDS",
    "CONTROL_API_HOST",
    "CONTROL_API_PORT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_config_from_env_all_fields(monkeypatch):
    monkeypatch.setenv("DISCORD_CLIENT_TOKEN", "test_token")
    monkeypatch.setenv("AUDIO_DEVICE", "Loopback")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("LOG_JSON", "false")
    monkeypatch.setenv("CONNECT_TIMEOUT_SECONDS", "12.5")
    monkeypatch.setenv("SHUTDOWN_TIMEOUT_SECONDS", "2")
    monkeypatch.setenv("CONTROL_API_HOST", "0.0.0.0")
    monkeypatch.setenv("CONTROL_API_PORT", "8080")

    config = BridgeConfig.from_env()

    assert config.discord_token == "test_token"
    assert config.audio_device == "Loopback"
    assert config.log_level == "DEBUG"
    assert config.log_json is False
    assert config.connect_timeout_seconds == 12.5
    assert config.shutdown_timeout_seconds == 2.0
    assert config.control_api_host == "0.0.0.0"
    assert config.control_api_port == 8080


def test_config_from_env_defaults(monkeypatch):
    monkeypatch.setenv("DISCORD_CLIENT_TOKEN", "test_token")

    config = BridgeConfig.from_env()

    assert config.audio_device is None
    assert config.log_level == "INFO"
    assert config.log_json is True
    assert config.connect_timeout_seconds == 30.0
    assert config.shutdown_timeout_seconds == 5.0
    assert config.control_api_host == "127.0.0.1"
    assert config.control_api_port is None


def test_missing_token():
    with pytest.raises(ValueError, match="DISCORD_CLIENT_TOKEN is required"):
        BridgeConfig.from_env()


def test_blank_token(monkeypatch):
    monkeypatch.setenv("DISCORD_CLIENT_TOKEN", "   ")

    with pytest.raises(ValueError, match="DISCORD_CLIENT_TOKEN is required"):
        BridgeConfig.from_env()


def test_inline_comments_are_stripped(monkeypatch):
    monkeypatch.setenv("DISCORD_CLIENT_TOKEN", "test_token")
    monkeypatch.setenv("CONTROL_API_PORT", "8080  # local only")

    assert BridgeConfig.from_env().control_api_port == 8080


def test_invalid_numbers_fall_back_to_defaults(monkeypatch):
    monkeypatch.setenv("DISCORD_CLIENT_TOKEN", "test_token")
    monkeypatch.setenv("CONNECT_TIMEOUT_SECONDS", "soon")
    monkeypatch.setenv("CONTROL_API_PORT", "http")

    config = BridgeConfig.from_env()

    assert config.connect_timeout_seconds == 30.0
    assert config.control_api_port is None


def test_env_files_do_not_override_environment(monkeypatch, tmp_path):
    (tmp_path / ".env").write_text("DISCORD_CLIENT_TOKEN=from_file\nAUDIO_DEVICE=File Device\n")
    (tmp_path / ".env_local").write_text("LOG_LEVEL=WARNING\n")
    monkeypatch.setenv("AUDIO_DEVICE", "Loopback")

    load_env_files(tmp_path)
    config = BridgeConfig.from_env()

    assert config.discord_token == "from_file"
    assert config.audio_device == "Loopback"
    assert config.log_level == "WARNING"


def test_missing_env_files_are_ignored(tmp_path):
    load_env_files(tmp_path)

    with pytest.raises(ValueError):
        BridgeConfig.from_env()
