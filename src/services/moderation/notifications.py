"""
Moderation Engine Notifications
===============================

Best-effort side channels: member DMs, action log posts and staff pings.

DESIGN:
    Nothing here raises. A notification that fails is logged and the
    enforcement or case update it belongs to stands as recorded.

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

from typing import TYPE_CHECKING, Optional

from src.core.database.models import ActionRecord, ActionType, Case, CaseCategory, UserTotals
from src.core.errors import ModerationError
from src.core.logger import logger
from src.utils.dm_helpers import render_dm_template, safe_send_dm

from .constants import MANUAL_SOURCES, STAFF_UPDATE_NOTICE
from .embeds import build_action_notice, build_support_intake_notice

if TYPE_CHECKING:
    from src.core.moderation_config import ModerationConfigProvider

    from .platform import ModerationPlatform


class NotificationsMixin:
    """Mixin for member and staff notifications."""

    platform: "ModerationPlatform"
    config_provider: "ModerationConfigProvider"

    async def _notify_member(
        self,
        action: ActionType,
        user_id: str,
        guild_name: Optional[str],
        reason: Optional[str],
        duration: Optional[int] = None,
    ) -> bool:
        """DM the member the configured template for this action."""
        template = self.config_provider.current.dm_templates.for_action(action.value)
        if not template:
            return False
        content = render_dm_template(template, guild=guild_name, reason=reason, duration=duration)
        return await safe_send_dm(self.platform, user_id, content, context=f"{action.value.title()} DM")

    async def _post_action_log(
        self,
        case: Case,
        record: ActionRecord,
        totals: Optional[UserTotals] = None,
    ) -> None:
        """Post the action notice to the log channel, pinging staff for automated actions."""
        alerts = self.config_provider.current.alerts
        if not alerts.log_channel_id:
            return

        mention = None
        if record.source not in MANUAL_SOURCES and alerts.notify_on_auto_action and alerts.staff_role_id:
            mention = f"<@&{alerts.staff_role_id}>"

        try:
            await self.platform.send_log_message(
                alerts.log_channel_id,
                content=mention,
                notice=build_action_notice(case, record, totals),
            )
        except ModerationError as e:
            logger.warning("Action Log Post Failed", [
                ("Case ID", case.id),
                ("Channel", alerts.log_channel_id),
                ("Error Type", type(e).__name__),
                ("Error", e.message[:100]),
            ])

    async def _notify_staff(self, case: Case, member_display: Optional[str] = None) -> None:
        """Ping the staff role about a member-authored update."""
        alerts = self.config_provider.current.alerts
        if not alerts.notify_on_auto_action or not alerts.staff_role_id or not alerts.log_channel_id:
            return

        display = (member_display or "").strip() or case.user_tag or f"<@{case.user_id}>"
        content = STAFF_UPDATE_NOTICE.format(
            mention=f"<@&{alerts.staff_role_id}> ",
            category="ticket" if case.category is CaseCategory.TICKET else "case",
            member=display,
            guild=case.guild_name or "the server",
            case_id=case.id,
        )
        try:
            await self.platform.send_log_message(alerts.log_channel_id, content=content)
        except ModerationError as e:
            logger.debug("Staff Notice Failed", [
                ("Case ID", case.id),
                ("Error", e.message[:100]),
            ])

    async def _post_support_intake(
        self,
        case: Case,
        channel_id: Optional[str],
        member_display: str,
        topic_label: Optional[str],
        reason: Optional[str],
        requested_by: Optional[str],
        origin: str,
    ) -> None:
        if not channel_id:
            return
        try:
            await self.platform.send_log_message(
                channel_id,
                notice=build_support_intake_notice(
                    case,
                    member_display,
                    topic_label=topic_label,
                    reason=reason,
                    requested_by=requested_by,
                    origin=origin,
                ),
            )
        except ModerationError as e:
            logger.warning("Support Intake Post Failed", [
                ("Case ID", case.id),
                ("Channel", channel_id),
                ("Error", e.message[:100]),
            ])


__all__ = ["NotificationsMixin"]
