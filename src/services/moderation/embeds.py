"""
Moderation Engine Embeds
========================

Log-channel notice builders for recorded actions.

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

from typing import Dict, Optional

from src.core.config import EmbedColors
from src.core.database.models import ActionRecord, ActionType, Case, CaseCategory, UserTotals

from .platform import LogNotice


# =============================================================================
# Palette
# =============================================================================

ACTION_TITLES: Dict[ActionType, str] = {
    ActionType.WARN: "⚠️ Member Warned",
    ActionType.TIMEOUT: "⏳ Member Timed Out",
    ActionType.KICK: "👢 Member Kicked",
    ActionType.BAN: "🔨 Member Banned",
}

ACTION_COLORS: Dict[ActionType, int] = {
    ActionType.WARN: EmbedColors.WARN,
    ActionType.TIMEOUT: EmbedColors.TIMEOUT,
    ActionType.KICK: EmbedColors.KICK,
    ActionType.BAN: EmbedColors.BAN,
}


# =============================================================================
# Action Notice
# =============================================================================

def build_action_notice(
    case: Case,
    record: ActionRecord,
    totals: Optional[UserTotals] = None,
) -> LogNotice:
    """
    Build the log notice for one recorded action.

    Args:
        case: Case the action was recorded on.
        record: The action itself.
        totals: Member totals after the action, shown as a history line.

    Returns:
        LogNotice ready for ModerationPlatform.send_log_message().
    """
    member = f"<@{case.user_id}>"
    if case.user_tag:
        member = f"{member} ({case.user_tag})"

    if record.moderator_id:
        moderator = f"<@{record.moderator_id}>"
    else:
        moderator = "Automod"

    fields = [
        ("Member", member, True),
        ("Moderator", moderator, True),
        ("Source", record.source, True),
    ]
    if record.type is ActionType.TIMEOUT and record.duration_minutes:
        fields.append(("Duration", f"{record.duration_minutes} minutes", True))
    fields.append(("Reason", record.reason or "No reason provided", False))

    if totals is not None:
        fields.append((
            "History",
            f"{totals.warnings} warnings · {totals.timeouts} timeouts · "
            f"{totals.kicks} kicks · {totals.bans} bans",
            False,
        ))

    escalated_from = record.metadata.get("escalated_from")
    if escalated_from:
        fields.append(("Escalated From", str(escalated_from), True))

    return LogNotice(
        title=ACTION_TITLES.get(record.type, "Moderation Action"),
        color=ACTION_COLORS.get(record.type, EmbedColors.INFO),
        fields=fields,
        footer=f"Case {case.id}",
    )


# =============================================================================
# Support Intake Notice
# =============================================================================

TICKET_COLOR = 0x4F86F7
CASE_REQUEST_COLOR = 0xFFB020


def build_support_intake_notice(
    case: Case,
    member_display: str,
    topic_label: Optional[str] = None,
    reason: Optional[str] = None,
    requested_by: Optional[str] = None,
    origin: str = "slash",
) -> LogNotice:
    """Intake channel notice for a newly opened ticket or case request."""
    is_ticket = case.category is CaseCategory.TICKET

    fields = [
        ("Member", member_display, False),
        ("Category", "Ticket" if is_ticket else "Moderation case", True),
    ]
    if topic_label:
        fields.append(("Topic", topic_label, True))
    fields.append(("Case ID", case.id, True))
    if requested_by:
        fields.append(("Requested by", requested_by, True))
    fields.append(("Origin", "Direct message" if origin == "dm" else "In-server command", True))

    return LogNotice(
        title="New support ticket" if is_ticket else "New moderation case request",
        color=TICKET_COLOR if is_ticket else CASE_REQUEST_COLOR,
        description=reason or "No description provided.",
        fields=fields,
    )


__all__ = [
    "ACTION_COLORS",
    "ACTION_TITLES",
    "build_action_notice",
    "build_support_intake_notice",
]
