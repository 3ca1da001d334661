"""Configuration loader.

Reads environment variables (and `.env` in the project root) into a
`Settings` object.
"""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from steamwatch.errors import ConfigError

# Load .env from project root
load_dotenv(Path(__file__).resolve().parents[1] / ".env")


def _get_float(name: str, default: str) -> float:
    raw = os.environ.get(name, default)
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None
    if value < 0:
        raise ConfigError(f"{name} must not be negative, got {raw!r}")
    return value


@dataclass
class Settings:
    """Runtime settings, see `load_settings` for the environment mapping."""

    db_path: Path = Path("data/steamwatch.db")
    telegram_bot_token: str | None = None
    check_interval_hours: float = 24.0
    jitter_max_seconds: float = 0.0
    request_delay_seconds: float = 1.0
    fetch_timeout_seconds: float = 15.0
    steam_country: str | None = None
    steam_language: str | None = None
    log_level: str = "INFO"
    log_dir: str | None = "logs"

    def require_telegram_token(self) -> str:
        if not self.telegram_bot_token:
            raise ConfigError("TELEGRAM_BOT_TOKEN is not set")
        return self.telegram_bot_token


def get_db_path() -> Path:
    """Get database path from env or default."""
    return Path(os.environ.get("DB_PATH", "data/steamwatch.db"))


def load_settings() -> Settings:
    """Build settings from the current environment."""
    interval = _get_float("CHECK_INTERVAL_HOURS", "24")
    if interval == 0:
        raise ConfigError("CHECK_INTERVAL_HOURS must be greater than 0")
    timeout = _get_float("FETCH_TIMEOUT_SECONDS", "15")
    if timeout == 0:
        raise ConfigError("FETCH_TIMEOUT_SECONDS must be greater than 0")

    return Settings(
        db_path=get_db_path(),
        telegram_bot_token=os.environ.get("TELEGRAM_BOT_TOKEN") or None,
        check_interval_hours=interval,
        jitter_max_seconds=_get_float("JITTER_MAX_SECONDS", "0"),
        request_delay_seconds=_get_float("REQUEST_DELAY_SECONDS", "1.0"),
        fetch_timeout_seconds=timeout,
        steam_country=os.environ.get("STEAM_COUNTRY") or None,
        steam_language=os.environ.get("STEAM_LANGUAGE") or None,
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        log_dir=os.environ.get("LOG_DIR", "logs") or None,
    )
