"""
Moderation Engine Constants
===========================

Action sources, bypass permissions and message templates for the engine.

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

# =============================================================================
# Action Sources
# =============================================================================

SOURCE_DASHBOARD = "dashboard"
SOURCE_SPAM = "spam-detector"
SOURCE_ESCALATION = "auto-escalation"
SOURCE_SYSTEM = "system"

MANUAL_SOURCES = frozenset({SOURCE_DASHBOARD})


# =============================================================================
# Bypass
# =============================================================================

# Any one of these exempts a member from automod entirely
BYPASS_PERMISSIONS = ("administrator", "manage_messages", "manage_guild")


# =============================================================================
# Message Templates
# =============================================================================

MODERATOR_REPLY_DM = "Message from the moderators of {guild}: {body}"

STAFF_UPDATE_NOTICE = "{mention}New {category} update from {member} in {guild}. Open case {case_id} in the dashboard."
