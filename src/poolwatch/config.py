from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from poolwatch.errors import ConfigError

DEFAULT_BLOCKS_URL = "https://p2pool.io/mini/api/pool/blocks"

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_SEGMENT = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def parse_duration(text: str) -> float:
    """Parse a Go-style duration string ("90s", "5m", "1h15m", "250ms").

    Returns:
        Duration in seconds. Must be positive.

    Raises:
        ConfigError: on empty, unit-less, negative or zero durations
    """
    raw = (text or "").strip()
    if not raw:
        raise ConfigError("empty duration")
    pos = 0
    total = 0.0
    while pos < len(raw):
        match = _DURATION_SEGMENT.match(raw, pos)
        if not match:
            raise ConfigError(f"invalid duration {text!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if total <= 0:
        raise ConfigError(f"duration must be positive, got {text!r}")
    return total


class TelegramConfig(BaseModel):
    bot_token: str = Field(default_factory=lambda: os.getenv("TELEGRAM_BOT_TOKEN", ""))
    api_base: str = "https://api.telegram.org"
    poll_timeout: int = 60
    http_timeout_seconds: float = 10.0

    @field_validator("poll_timeout")
    @classmethod
    def _non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("poll_timeout must be >= 0")
        return v


class PoolConfig(BaseModel):
    blocks_url: str = DEFAULT_BLOCKS_URL
    http_timeout_seconds: float = 10.0

    @field_validator("http_timeout_seconds")
    @classmethod
    def _positive_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("http_timeout_seconds must be positive")
        return v


class NotifierConfig(BaseModel):
    max_parallel: int = 1

    @field_validator("max_parallel")
    @classmethod
    def _at_least_one(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_parallel must be >= 1")
        return v


class MessagesConfig(BaseModel):
    block_found: str = "Block found! Height: {height}, time: {time}"
    subscribed: str = (
        "You are subscribed! The bot will send you a message for every block "
        "found by the pool https://p2pool.io/mini/#pool"
    )
    subscribe_failed: str = "Could not subscribe you to notifications, please try again later."
    time_format: str = "%A, %d-%b-%y %H:%M:%S %Z"

    @field_validator("block_found")
    @classmethod
    def _known_placeholders(cls, v: str) -> str:
        # Only {height} and {time} are supplied when a block is announced
        try:
            v.format(height=0, time="")
        except (KeyError, IndexError, ValueError, AttributeError) as e:
            raise ValueError(f"block_found may only use {{height}} and {{time}}: {e!r}") from e
        return v


class AppConfig(BaseModel):
    telegram: TelegramConfig = Field(default_factory=TelegramConfig)
    pool: PoolConfig = Field(default_factory=PoolConfig)
    notifier: NotifierConfig = Field(default_factory=NotifierConfig)
    messages: MessagesConfig = Field(default_factory=MessagesConfig)
    subscribers_file: str = "subscribers.txt"
    state_file: Optional[str] = None
    notify_interval: str = "5m"

    @field_validator("notify_interval")
    @classmethod
    def _valid_interval(cls, v: str) -> str:
        try:
            parse_duration(v)
        except ConfigError as e:
            raise ValueError(e.message) from e
        return v

    @property
    def interval_seconds(self) -> float:
        return parse_duration(self.notify_interval)


def load_config(path: str | Path) -> AppConfig:
    """Load YAML config, filling secrets from the environment (.env beside the file).

    Raises:
        ConfigError: unreadable file, invalid values, or a missing bot token
    """
    path = Path(path)
    env_path = path.parent / ".env"
    load_dotenv(env_path, override=False)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigError(f"Cannot read config {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config {path} must be a mapping")
    try:
        cfg = AppConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid config: {e}") from e
    # Placeholder values in YAML fall back to env
    if not cfg.telegram.bot_token:
        cfg.telegram.bot_token = os.getenv("TELEGRAM_BOT_TOKEN", "")
    if not cfg.telegram.bot_token:
        raise ConfigError("telegram.bot_token is required (or set TELEGRAM_BOT_TOKEN)")
    return cfg
