"""
Moderation Engine Case Operations
=================================

Dashboard and member-facing case workflows layered on the CaseStore.

DESIGN:
    Each workflow is one or two store calls plus best-effort
    notifications. Store errors (ValidationError, CaseNotFound,
    PersistenceError) propagate to the host unchanged.

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Optional, Tuple

from src.core.constants import DEFAULT_LIST_LIMIT
from src.core.database import (
    AuthorType,
    Case,
    CaseAssignee,
    CaseCategory,
    CaseMessage,
    CaseStore,
    StatsSnapshot,
    UserTotals,
    normalize_category,
)
from src.core.database.events import StoreListener
from src.core.errors import EmptyMessage, MemberNotResolvable, ValidationError
from src.core.logger import logger
from src.utils.async_utils import gather_with_logging
from src.utils.dm_helpers import safe_send_dm

from .constants import MODERATOR_REPLY_DM

if TYPE_CHECKING:
    from src.core.moderation_config import ModerationConfigProvider

    from .platform import GuildRef, MemberRef, ModerationPlatform


# =============================================================================
# Results
# =============================================================================

@dataclass
class MemberMessageResult:
    case: Case
    message: Optional[CaseMessage]


@dataclass
class SupportRequestResult:
    case: Case
    message: Optional[CaseMessage]
    created: bool
    intake_channel_id: Optional[str]


def _actor(moderator_id: Optional[Any]) -> Optional[str]:
    return str(moderator_id) if moderator_id else None


def _member_display(member: "MemberRef") -> str:
    return f"<@{member.id}>"


# =============================================================================
# Mixin
# =============================================================================

class CaseOpsMixin:
    """Mixin for case workflows (dashboard, member messages, support requests)."""

    store: CaseStore
    platform: "ModerationPlatform"
    config_provider: "ModerationConfigProvider"
    _clock: Callable[[], float]

    async def _resolve(self, guild_id: Any, user_id: Any) -> Tuple["GuildRef", "MemberRef"]:
        if not guild_id or not user_id:
            raise ValidationError("guild_id and user_id are required")
        guild = await self.platform.resolve_guild(str(guild_id))
        if guild is None:
            raise MemberNotResolvable(f"Guild {guild_id} not found")
        member = await self.platform.resolve_member(guild.id, str(user_id))
        if member is None:
            raise MemberNotResolvable(f"Member {user_id} not found in guild {guild_id}")
        return guild, member

    # =========================================================================
    # Opening Cases
    # =========================================================================

    async def open_member_case(
        self,
        guild_id: Any,
        user_id: Any,
        reason: Optional[str] = None,
        initial_message: Optional[str] = None,
    ) -> Case:
        """Find or open the member's moderation case."""
        guild, member = await self._resolve(guild_id, user_id)
        result = await self.store.ensure_member_case(
            guild.id,
            member.id,
            category=CaseCategory.MODERATION,
            initial_message=initial_message,
            user_tag=member.tag,
            guild_name=guild.name,
            reason=reason,
        )
        return result.case

    async def open_support_request(
        self,
        guild_id: Any,
        user_id: Any,
        *,
        category: Any = CaseCategory.TICKET,
        topic_id: Optional[str] = None,
        topic_label: Optional[str] = None,
        reason: Optional[str] = None,
        origin: str = "slash",
        intake_channel_id: Optional[Any] = None,
        requested_by_id: Optional[Any] = None,
        requested_by_tag: Optional[str] = None,
    ) -> SupportRequestResult:
        """
        Open a fresh ticket (or moderation request) for a member.

        Always opens a new case. An active case in the same category is
        closed and superseded by it. The intake channel defaults to
        support.intake_channel_id.
        """
        guild, member = await self._resolve(guild_id, user_id)
        normalized = CaseCategory.TICKET if normalize_category(category) is CaseCategory.TICKET else CaseCategory.MODERATION

        trimmed = (reason or "").strip()
        if trimmed:
            initial_message = trimmed
        elif normalized is CaseCategory.TICKET:
            initial_message = "Member opened a support ticket."
        else:
            initial_message = "Member requested moderation assistance."

        channel_id = (
            str(intake_channel_id) if intake_channel_id
            else self.config_provider.current.support.intake_channel_id
        )

        ensured = await self.store.ensure_member_case(
            guild.id,
            member.id,
            category=normalized,
            initial_message=initial_message,
            user_tag=member.tag,
            guild_name=guild.name,
            reason=trimmed or None,
            ticket_type=topic_id,
            support_topic=topic_label,
            support_context=origin,
            intake_channel_id=channel_id,
            allow_existing=False,
            source="support",
        )
        case = ensured.case

        requested_by = None
        if requested_by_id and str(requested_by_id) != member.id:
            requested_by = (
                f"{requested_by_tag} ({requested_by_id})" if requested_by_tag else f"<@{requested_by_id}>"
            )

        await gather_with_logging(
            ("Notify Staff", self._notify_staff(case, _member_display(member))),
            ("Post Support Intake", self._post_support_intake(
                case,
                channel_id,
                _member_display(member),
                topic_label=topic_label,
                reason=trimmed or None,
                requested_by=requested_by,
                origin=origin,
            )),
            context="Support Request",
        )

        logger.tree("Support Request Opened", [
            ("Case ID", case.id),
            ("Guild", guild.name or guild.id),
            ("Member", f"{member.tag or 'Unknown'} ({member.id})"),
            ("Category", normalized.value),
            ("Topic", topic_label or "None"),
            ("Origin", origin),
        ], emoji="🎫")

        return SupportRequestResult(
            case=case,
            message=ensured.message,
            created=ensured.created,
            intake_channel_id=channel_id,
        )

    # =========================================================================
    # Messages
    # =========================================================================

    async def post_moderator_message(
        self,
        guild_id: Any,
        case_id: str,
        body: Optional[str],
        moderator_id: Optional[Any] = None,
        moderator_tag: Optional[str] = None,
    ) -> Optional[CaseMessage]:
        """Reply on a case from the dashboard and relay the reply to the member by DM."""
        trimmed = (body or "").strip()
        if not trimmed:
            raise EmptyMessage()

        message = await self.store.append_case_message(
            guild_id,
            case_id,
            AuthorType.MODERATOR,
            trimmed,
            author_id=_actor(moderator_id),
            author_tag=moderator_tag,
            via="dashboard",
        )

        case = await self.store.get_case_for_guild(guild_id, case_id)
        if case is not None:
            guild_name = case.guild_name
            if not guild_name:
                guild = await self.platform.resolve_guild(case.guild_id)
                guild_name = guild.name if guild else None
            await safe_send_dm(
                self.platform,
                case.user_id,
                MODERATOR_REPLY_DM.format(guild=guild_name or "the server", body=trimmed),
                context="Moderator Reply",
            )

        return message

    async def post_member_message(
        self,
        guild_id: Any,
        user_id: Any,
        body: Optional[str],
        user_tag: Optional[str] = None,
        guild_name: Optional[str] = None,
    ) -> Optional[MemberMessageResult]:
        """Append a member message to their moderation case, opening one if needed."""
        trimmed = (body or "").strip()
        if not guild_id or not user_id or not trimmed:
            return None

        ensured = await self.store.ensure_member_case(
            guild_id,
            user_id,
            category=CaseCategory.MODERATION,
            initial_message=trimmed,
            user_tag=user_tag,
            guild_name=guild_name,
        )

        await self._notify_staff(ensured.case, user_tag)
        return MemberMessageResult(case=ensured.case, message=ensured.message)

    async def route_member_direct_message(
        self,
        user_id: Any,
        body: Optional[str],
        attachment_urls: Iterable[str] = (),
        user_tag: Optional[str] = None,
    ) -> Optional[MemberMessageResult]:
        """
        File a DM from a member on their case.

        Goes to the member's active case in any guild. If their newest
        case is closed, a new moderation case is opened in that case's
        guild. With no case at all, one is opened in the first guild the
        bot shares with them. Attachment URLs are appended to the body as
        lines.

        Returns:
            None when the DM is empty or no shared guild exists.
        """
        if not user_id:
            return None
        user = str(user_id)

        combined = (body or "").strip()
        attachment_text = "\n".join(f"Attachment: {url}" for url in attachment_urls if url)
        if attachment_text:
            combined = f"{combined}\n\n{attachment_text}" if combined else attachment_text
        combined = combined.strip()
        if not combined:
            return None

        case = await self.store.find_active_case_for_member(user)
        if case is not None and not case.is_active:
            # Closed cases are not written to; start over in the same guild
            ensured = await self.store.ensure_member_case(
                case.guild_id,
                user,
                category=CaseCategory.MODERATION,
                initial_message=combined,
                user_tag=user_tag,
                guild_name=case.guild_name,
            )
            logger.info("DM Opened New Case", [
                ("User", f"{user_tag or 'Unknown'} ({user})"),
                ("Closed Case", case.id),
                ("New Case", ensured.case.id),
            ])
            await self._notify_staff(ensured.case, user_tag)
            return MemberMessageResult(case=ensured.case, message=ensured.message)

        if case is None:
            for guild in await self.platform.member_guilds(user):
                ensured = await self.store.ensure_member_case(
                    guild.id,
                    user,
                    category=CaseCategory.MODERATION,
                    initial_message=combined,
                    user_tag=user_tag,
                    guild_name=guild.name,
                )
                await self._notify_staff(ensured.case, user_tag)
                return MemberMessageResult(case=ensured.case, message=ensured.message)

            logger.debug("DM Not Routed", [
                ("User", user),
                ("Reason", "No shared guild"),
            ])
            return None

        message = await self.store.append_case_message(
            case.guild_id,
            case.id,
            AuthorType.MEMBER,
            combined,
            author_id=user,
            author_tag=user_tag,
            via="dm",
        )
        case = await self.store.get_case_for_guild(case.guild_id, case.id) or case

        await self._notify_staff(case, user_tag)
        return MemberMessageResult(case=case, message=message)

    # =========================================================================
    # Dashboard Updates
    # =========================================================================

    async def set_case_status(
        self,
        guild_id: Any,
        case_id: str,
        status: Any,
        moderator_id: Optional[Any] = None,
        moderator_tag: Optional[str] = None,
        note: Optional[str] = None,
    ) -> Case:
        return await self.store.update_case_status(
            guild_id,
            case_id,
            status,
            actor_type="moderator",
            actor_id=_actor(moderator_id),
            actor_tag=moderator_tag,
            note=note,
        )

    async def set_case_assignee(
        self,
        guild_id: Any,
        case_id: str,
        assignee_id: Optional[Any] = None,
        assignee_tag: Optional[str] = None,
        assignee_display_name: Optional[str] = None,
        moderator_id: Optional[Any] = None,
        moderator_tag: Optional[str] = None,
    ) -> Case:
        """Assign a moderator, or clear the assignment when assignee_id is empty."""
        assignee = None
        if assignee_id:
            assignee = CaseAssignee(
                id=str(assignee_id),
                tag=assignee_tag,
                display_name=assignee_display_name,
            )
        return await self.store.set_case_assignee(
            guild_id,
            case_id,
            assignee,
            actor_id=_actor(moderator_id),
            actor_tag=moderator_tag,
        )

    async def set_case_sla(
        self,
        guild_id: Any,
        case_id: str,
        due_at: Optional[float],
        moderator_id: Optional[Any] = None,
        moderator_tag: Optional[str] = None,
    ) -> Case:
        return await self.store.update_case_sla(
            guild_id,
            case_id,
            due_at,
            actor_id=_actor(moderator_id),
            actor_tag=moderator_tag,
        )

    async def delete_case(
        self,
        guild_id: Any,
        case_id: str,
        moderator_id: Optional[Any] = None,
        moderator_tag: Optional[str] = None,
    ) -> Case:
        return await self.store.delete_case(
            guild_id,
            case_id,
            actor_type="moderator",
            actor_id=_actor(moderator_id),
            actor_tag=moderator_tag,
        )

    # =========================================================================
    # Reads
    # =========================================================================

    async def list_cases_for_guild(
        self,
        guild_id: Any,
        status: Optional[Any] = None,
        category: Optional[Any] = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> List[Case]:
        return await self.store.list_cases(guild_id, status=status, category=category, limit=limit)

    async def get_case(self, case_id: str) -> Optional[Case]:
        return await self.store.get_case(case_id)

    async def get_case_details(self, guild_id: Any, case_id: str) -> Optional[Dict[str, Any]]:
        """Full case record plus derived SLA state and the member's totals."""
        case = await self.store.get_case_for_guild(guild_id, case_id)
        if case is None:
            return None
        totals = await self.store.get_user_totals(case.guild_id, case.user_id)
        details = case.to_dict()
        details["sla_state"] = case.sla_state(self._clock()).value
        details["totals"] = totals.to_dict()
        return details

    async def get_user_totals(self, guild_id: Any, user_id: Any) -> UserTotals:
        return await self.store.get_user_totals(guild_id, user_id)

    async def get_stats(self) -> StatsSnapshot:
        return await self.store.get_stats()

    async def get_recent_cases(self, limit: int = 20) -> List[Case]:
        return await self.store.get_recent_cases(limit)

    def on_moderation_store_event(self, listener: StoreListener) -> Callable[[], None]:
        return self.store.on_moderation_store_event(listener)


__all__ = [
    "CaseOpsMixin",
    "MemberMessageResult",
    "SupportRequestResult",
]
