"""Configuration loader.

Reads environment variables and `.env` to configure the monitor.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .errors import ConfigError

# Load variables from a .env file if present (project root).
load_dotenv(dotenv_path=Path(__file__).resolve().parents[1] / ".env")


def _get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(name, default)


def _parse_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.lower() in ("1", "true", "yes")


def _parse_int(value: Optional[str], default: int) -> int:
    try:
        return int(value) if value is not None else default
    except ValueError:
        return default


def _parse_float(value: Optional[str], default: float) -> float:
    try:
        return float(value) if value is not None else default
    except ValueError:
        return default


# ---- Collection & endpoints --------------------------------------------------

# Numeric id of the Workshop collection to monitor.
WORKSHOP_COLLECTION_ID: str = (_get_env("WORKSHOP_COLLECTION_ID", "") or "").strip()

# Base URLs. Should not include a trailing slash.
STEAM_API_BASE: str = _get_env("STEAM_API_BASE", "https://api.steampowered.com")
STEAM_COMMUNITY_BASE: str = _get_env("STEAM_COMMUNITY_BASE", "https://steamcommunity.com")

# ---- Snapshot ------------------------------------------------------------------

SNAPSHOT_PATH: str = _get_env("SNAPSHOT_PATH", "workshop_items.json")

# Keep a copy of the previous snapshot next to the new one (<path>.bak).
KEEP_BACKUP: bool = _parse_bool(_get_env("KEEP_BACKUP", "true"), True)

# ---- Fetching ------------------------------------------------------------------

# Ids per GetPublishedFileDetails call (the API accepts at most 50).
BATCH_SIZE: int = _parse_int(_get_env("BATCH_SIZE", "50"), 50)

# Batches allowed in flight at once.
MAX_CONCURRENT_BATCHES: int = _parse_int(_get_env("MAX_CONCURRENT_BATCHES", "4"), 4)

# Per-request timeout in seconds.
REQUEST_TIMEOUT: float = _parse_float(_get_env("REQUEST_TIMEOUT", "20"), 20.0)

# Courtesy delay before each fallback page fetch (seconds, plus jitter).
FALLBACK_DELAY_SECONDS: float = _parse_float(_get_env("FALLBACK_DELAY_SECONDS", "1.0"), 1.0)

# ---- Notifications -------------------------------------------------------------

DISCORD_WEBHOOK_URL: Optional[str] = _get_env("DISCORD_WEBHOOK_URL")
DISCORD_USERNAME: str = _get_env("DISCORD_USERNAME", "Workshop Monitor")

# Discord accepts at most 10 embeds per message.
NOTIFY_BATCH_SIZE: int = _parse_int(_get_env("NOTIFY_BATCH_SIZE", "10"), 10)
NOTIFY_PAUSE_SECONDS: float = _parse_float(_get_env("NOTIFY_PAUSE_SECONDS", "2.0"), 2.0)

# Log rendered embeds instead of posting them.
DRY_RUN: bool = _parse_bool(_get_env("DRY_RUN", "false"), False)

# ---- Scheduling & logging ------------------------------------------------------

# 0 = run once and exit (cron style); otherwise sleep this long between runs.
CHECK_INTERVAL_MINUTES: int = _parse_int(_get_env("CHECK_INTERVAL_MINUTES", "0"), 0)

# Logging level: DEBUG, INFO, WARNING, ERROR.
LOG_LEVEL: str = _get_env("LOG_LEVEL", "INFO")


# ---- Validation ----------------------------------------------------------------

def validate() -> None:
    """Validate required configuration parameters."""
    if not WORKSHOP_COLLECTION_ID or not WORKSHOP_COLLECTION_ID.isdigit():
        raise ConfigError(
            "WORKSHOP_COLLECTION_ID must be set to a numeric collection id. See .env.example."
        )
    if not DISCORD_WEBHOOK_URL and not DRY_RUN:
        raise ConfigError(
            "DISCORD_WEBHOOK_URL must be set (or DRY_RUN=true). See .env.example."
        )
    if not 1 <= BATCH_SIZE <= 50:
        raise ConfigError(f"BATCH_SIZE must be between 1 and 50, got {BATCH_SIZE}")
    if MAX_CONCURRENT_BATCHES < 1:
        raise ConfigError(
            f"MAX_CONCURRENT_BATCHES must be at least 1, got {MAX_CONCURRENT_BATCHES}"
        )
    if NOTIFY_BATCH_SIZE < 1:
        raise ConfigError(f"NOTIFY_BATCH_SIZE must be at least 1, got {NOTIFY_BATCH_SIZE}")


__all__ = [
    "WORKSHOP_COLLECTION_ID",
    "STEAM_API_BASE",
    "STEAM_COMMUNITY_BASE",
    "SNAPSHOT_PATH",
    "KEEP_BACKUP",
    "BATCH_SIZE",
    "MAX_CONCURRENT_BATCHES",
    "REQUEST_TIMEOUT",
    "FALLBACK_DELAY_SECONDS",
    "DISCORD_WEBHOOK_URL",
    "DISCORD_USERNAME",
    "NOTIFY_BATCH_SIZE",
    "NOTIFY_PAUSE_SECONDS",
    "DRY_RUN",
    "CHECK_INTERVAL_MINUTES",
    "LOG_LEVEL",
    "validate",
]
