"""
Case Warden - Utils Package
===========================

Helpers shared across services.

Available Utilities:
    dm_helpers: DM template rendering and best-effort delivery
    async_utils: Logged gather and safe await helpers

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

from .async_utils import gather_with_logging, safe_async_operation
from .dm_helpers import render_dm_template, safe_send_dm

__all__ = [
    "gather_with_logging",
    "safe_async_operation",
    "render_dm_template",
    "safe_send_dm",
]
