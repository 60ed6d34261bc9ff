"""
Case Warden - Configuration Module
==================================

Process configuration loaded from environment variables.

DESIGN:
    One Config instance per process, built once by get_config().
    Moderation rules (filters, spam limits, escalation thresholds)
    are NOT here; they live in ModerationConfig and can be hot-reloaded
    by the host. This module only covers how the process runs: where
    data lives, which storage backend to use, and credentials.

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from src.core.logger import NY_TZ


# =============================================================================
# Constants
# =============================================================================

STORAGE_BACKENDS = ("json", "sqlite", "memory")


# =============================================================================
# Configuration Dataclass
# =============================================================================

@dataclass
class Config:
    """
    Process configuration.

    Attributes:
        discord_token: Bot token. Only the bot host requires it.
        data_dir: Directory holding the case store files.
        storage_backend: One of STORAGE_BACKENDS.
        error_webhook_url: Optional webhook for error alerts.
        developer_id: Optional user ID of the operator.
    """

    discord_token: Optional[str] = None
    data_dir: Path = Path("data")
    storage_backend: str = "json"
    error_webhook_url: Optional[str] = None
    developer_id: Optional[int] = None

    @property
    def cases_file(self) -> Path:
        return self.data_dir / "moderation" / "cases.json"

    @property
    def cases_db(self) -> Path:
        return self.data_dir / "moderation" / "cases.db"

    @property
    def moderation_config_file(self) -> Path:
        return self.data_dir / "moderation" / "config.json"


# =============================================================================
# Embed Colors
# =============================================================================

class EmbedColors:
    """Color palette for moderation log embeds."""

    GREEN = 0x1F5E2E
    GOLD = 0xE6B84A
    RED = 0xDC3545
    BLUE = 0x3498DB
    ORANGE = 0xFF9800
    BLURPLE = 0x5865F2

    WARN = GOLD
    TIMEOUT = BLUE
    KICK = ORANGE
    BAN = RED
    INFO = BLURPLE


# =============================================================================
# Validation
# =============================================================================

class ConfigValidationError(Exception):
    """Raised when configuration is missing or invalid."""
    pass


def _parse_int_optional(value: Optional[str], name: str) -> Optional[int]:
    """
    Parse an optional integer.

    Raises:
        ConfigValidationError: If a value is present but not an integer.
    """
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        raise ConfigValidationError(f"Invalid integer for {name}: {value}")


def _validate_url(value: Optional[str], name: str) -> Optional[str]:
    """Return the URL if it looks like http(s), None otherwise."""
    if not value:
        return None
    if not value.startswith(("https://", "http://")):
        from src.core.logger import logger
        logger.warning(f"Config {name} invalid URL format, ignoring")
        return None
    return value


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(require_token: bool = False) -> Config:
    """
    Load and validate configuration from environment variables.

    Args:
        require_token: Fail when DISCORD_TOKEN is missing (bot host only).

    Returns:
        Validated Config.

    Raises:
        ConfigValidationError: On missing or invalid values.
    """
    token = os.getenv("DISCORD_TOKEN")
    if require_token and not token:
        raise ConfigValidationError("Missing required environment variables: DISCORD_TOKEN")

    backend = os.getenv("STORAGE_BACKEND", "json").strip().lower()
    if backend not in STORAGE_BACKENDS:
        raise ConfigValidationError(
            f"Invalid STORAGE_BACKEND: {backend} (expected one of {', '.join(STORAGE_BACKENDS)})"
        )

    return Config(
        discord_token=token,
        data_dir=Path(os.getenv("DATA_DIR", "data")),
        storage_backend=backend,
        error_webhook_url=_validate_url(os.getenv("ERROR_WEBHOOK_URL"), "ERROR_WEBHOOK_URL"),
        developer_id=_parse_int_optional(os.getenv("DEVELOPER_ID"), "DEVELOPER_ID"),
    )


_config: Optional[Config] = None


def get_config() -> Config:
    """Return the process Config, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


__all__ = [
    "Config",
    "ConfigValidationError",
    "EmbedColors",
    "NY_TZ",
    "STORAGE_BACKENDS",
    "get_config",
    "load_config",
]
