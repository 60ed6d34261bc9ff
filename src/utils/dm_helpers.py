"""
Case Warden - DM Helper Utilities
=================================

Centralized helpers for member direct messages.

Usage:
    from src.utils.dm_helpers import render_dm_template, safe_send_dm

    content = render_dm_template(templates.warn, guild="Syria", reason="Spam")
    delivered = await safe_send_dm(platform, user_id, content, context="Warn DM")

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

from typing import Optional, TYPE_CHECKING

from src.core.errors import ModerationError, NotificationError
from src.core.logger import logger

if TYPE_CHECKING:
    from src.services.moderation.platform import ModerationPlatform


def render_dm_template(
    template: str,
    guild: Optional[str] = None,
    reason: Optional[str] = None,
    duration: Optional[int] = None,
) -> str:
    """
    Fill {guild}, {reason} and {duration} placeholders.

    Plain replacement, so stray braces in a custom template are left alone.
    """
    values = {
        "{guild}": guild or "this server",
        "{reason}": reason or "No reason provided.",
        "{duration}": str(duration) if duration else "N/A",
    }
    text = template
    for placeholder, value in values.items():
        text = text.replace(placeholder, value)
    return text


async def safe_send_dm(
    platform: "ModerationPlatform",
    user_id: str,
    content: str,
    context: Optional[str] = None,
) -> bool:
    """
    Send a DM and swallow delivery failures.

    Returns:
        True if the DM was sent, False otherwise.
    """
    try:
        await platform.send_direct_message(user_id, content)
        return True
    except NotificationError as e:
        # DMs disabled is expected, not an error
        logger.debug("DM Blocked", [
            ("Context", context or "N/A"),
            ("User", user_id),
            ("Error", e.message[:100]),
        ])
        return False
    except ModerationError as e:
        logger.warning("DM Send Failed", [
            ("Context", context or "N/A"),
            ("User", user_id),
            ("Error Type", type(e).__name__),
            ("Error", e.message[:100]),
        ])
        return False


__all__ = [
    "render_dm_template",
    "safe_send_dm",
]
