"""
Bridge configuration.

Loads from environment variables, after .env / .env_local in the working
directory have been applied without overriding the real environment.
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

ENV_FILES = (".env", ".env_local")


def load_env_files(root: Optional[Path] = None) -> None:
    root = root or Path.cwd()
    for name in ENV_FILES:
        path = root / name
        if path.exists():
            load_dotenv(path, override=False)


def _clean(value: Optional[str]) -> str:
    """Strip trailing `# comment` and whitespace from an env value."""
    if not value:
        return ""
    if "#" in value:
        value = value.split("#")[0]
    return value.strip()


def _parse_float_env(key: str, default: float) -> float:
    value = _clean(os.environ.get(key))
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _parse_int_env(key: str, default: Optional[int]) -> Optional[int]:
    value = _clean(os.environ.get(key))
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _parse_bool_env(key: str, default: bool) -> bool:
    value = _clean(os.environ.get(key)).lower()
    if not value:
        return default
    return value in ("1", "true", "yes", "on")


@dataclass
class BridgeConfig:
    """Audio bridge configuration."""

    discord_token: str

    # Device index or exact name; None means prompt at startup
    audio_device: Optional[str] = None

    log_level: str = "INFO"
    log_json: bool = True

    connect_timeout_seconds: float = 30.0
    # Per-session bound on teardown during shutdown
    shutdown_timeout_seconds: float = 5.0

    # Control API is disabled unless a port is set
    control_api_host: str = "127.0.0.1"
    control_api_port: Optional[int] = None

    def __post_init__(self):
        if not self.discord_token:
            raise ValueError("DISCORD_CLIENT_TOKEN is required")

    @classmethod
    def from_env(cls) -> "BridgeConfig":
        """Load configuration from environment variables."""
        return cls(
            discord_token=_clean(os.environ.get("DISCORD_CLIENT_TOKEN")),
            audio_device=_clean(os.environ.get("AUDIO_DEVICE")) or None,
            log_level=_clean(os.environ.get("LOG_LEVEL")) or "INFO",
            log_json=_parse_bool_env("LOG_JSON", default=True),
            connect_timeout_seconds=_parse_float_env("CONNECT_TIMEOUT_SECONDS", default=30.0),
            shutdown_timeout_seconds=_parse_float_env("SHUTDOWN_TIMEOUT_SECONDS", default=5.0),
            control_api_host=_clean(os.environ.get("CONTROL_API_HOST")) or "127.0.0.1",
            control_api_port=_parse_int_env("CONTROL_API_PORT", default=None),
        )
