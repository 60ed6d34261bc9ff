"""
Case Warden - Core Package
==========================

Configuration, logging, error types and the case store.

DESIGN:
    logger and get_config() are process-wide. The case store is NOT a
    singleton: the host builds one CaseStore at startup and passes it to
    the engine, so tests can run several stores side by side.

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

# =============================================================================
# Core Imports
# =============================================================================

from .config import (
    Config,
    ConfigValidationError,
    EmbedColors,
    NY_TZ,
    get_config,
    load_config,
)

from .errors import ErrorCode, ModerationError

from .logger import logger, TreeLogger

from .moderation_config import ModerationConfig, ModerationConfigProvider


# =============================================================================
# Module Export
# =============================================================================

__all__ = [
    # Config
    "Config",
    "ConfigValidationError",
    "EmbedColors",
    "NY_TZ",
    "get_config",
    "load_config",
    # Errors
    "ErrorCode",
    "ModerationError",
    # Logger
    "logger",
    "TreeLogger",
    # Moderation rules
    "ModerationConfig",
    "ModerationConfigProvider",
]
