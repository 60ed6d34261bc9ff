"""
Moderation Platform Port
========================

The engine's only view of the chat platform, plus the discord.py adapter.

DESIGN:
    The engine calls an abstract ModerationPlatform with plain string IDs
    and small value objects, never discord.py types. DiscordPlatform maps
    discord.py errors onto the core error types:

        guild or member missing       -> MemberNotResolvable
        discord.Forbidden / hierarchy -> NotModeratable
        other discord.HTTPException   -> ModerationPermissionError
        DM refused or failed          -> NotificationError

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import timedelta
from typing import FrozenSet, List, Optional, Tuple

import discord

from src.core.errors import (
    MemberNotResolvable,
    ModerationPermissionError,
    NotificationError,
    NotModeratable,
)
from src.core.logger import logger


# =============================================================================
# Value Objects
# =============================================================================

@dataclass(frozen=True)
class GuildRef:
    id: str
    name: Optional[str] = None


@dataclass(frozen=True)
class MemberRef:
    id: str
    tag: Optional[str] = None
    display_name: Optional[str] = None


@dataclass(frozen=True)
class InboundMessage:
    """
    A guild chat message as the engine sees it.

    has_authority is True when the author holds Administrator,
    Manage Messages or Manage Server.
    """

    guild_id: Optional[str]
    channel_id: Optional[str]
    message_id: Optional[str]
    author_id: str
    author_tag: Optional[str] = None
    content: str = ""
    attachments_count: int = 0
    mention_count: int = 0
    role_ids: FrozenSet[str] = frozenset()
    has_authority: bool = False
    is_bot: bool = False
    jump_url: Optional[str] = None
    guild_name: Optional[str] = None

    def evidence(self) -> dict:
        return {
            "content": self.content,
            "message_id": self.message_id,
            "channel_id": self.channel_id,
            "jump_url": self.jump_url,
            "attachments": self.attachments_count,
        }


@dataclass(frozen=True)
class LogNotice:
    """Platform-neutral embed for the moderation log channel."""

    title: str
    color: int
    description: Optional[str] = None
    fields: List[Tuple[str, str, bool]] = field(default_factory=list)
    footer: Optional[str] = None


# =============================================================================
# Port
# =============================================================================

class ModerationPlatform(ABC):
    """Actions the engine needs from the chat platform."""

    @abstractmethod
    def bot_user_id(self) -> Optional[str]:
        ...

    @abstractmethod
    async def resolve_guild(self, guild_id: str) -> Optional[GuildRef]:
        ...

    @abstractmethod
    async def resolve_member(self, guild_id: str, user_id: str) -> Optional[MemberRef]:
        ...

    @abstractmethod
    async def member_guilds(self, user_id: str) -> List[GuildRef]:
        """Guilds the bot shares with the user."""

    @abstractmethod
    async def timeout_member(self, guild_id: str, user_id: str, minutes: int, reason: Optional[str]) -> None:
        ...

    @abstractmethod
    async def kick_member(self, guild_id: str, user_id: str, reason: Optional[str]) -> None:
        ...

    @abstractmethod
    async def ban_member(self, guild_id: str, user_id: str, reason: Optional[str]) -> None:
        ...

    @abstractmethod
    async def send_direct_message(self, user_id: str, content: str) -> None:
        """Raises NotificationError when the DM cannot be delivered."""

    @abstractmethod
    async def delete_message(self, channel_id: str, message_id: str) -> None:
        ...

    @abstractmethod
    async def send_log_message(
        self,
        channel_id: str,
        content: Optional[str] = None,
        notice: Optional[LogNotice] = None,
    ) -> None:
        ...


# =============================================================================
# discord.py Adapter
# =============================================================================

class DiscordPlatform(ModerationPlatform):
    """ModerationPlatform backed by a discord.py client."""

    def __init__(self, client: discord.Client) -> None:
        self.client = client

    def bot_user_id(self) -> Optional[str]:
        return str(self.client.user.id) if self.client.user else None

    # =========================================================================
    # Lookups
    # =========================================================================

    async def _get_guild(self, guild_id: str) -> Optional[discord.Guild]:
        guild = self.client.get_guild(int(guild_id))
        if guild is not None:
            return guild
        try:
            return await self.client.fetch_guild(int(guild_id))
        except discord.NotFound:
            return None
        except discord.HTTPException as e:
            logger.warning("Guild Fetch Failed", [
                ("Guild ID", guild_id),
                ("Error", str(e)[:100]),
            ])
            return None

    async def _get_member(self, guild: discord.Guild, user_id: str) -> Optional[discord.Member]:
        member = guild.get_member(int(user_id))
        if member is not None:
            return member
        try:
            return await guild.fetch_member(int(user_id))
        except discord.NotFound:
            return None
        except discord.HTTPException as e:
            logger.warning("Member Fetch Failed", [
                ("Guild ID", str(guild.id)),
                ("User ID", user_id),
                ("Error", str(e)[:100]),
            ])
            return None

    async def _require(self, guild_id: str, user_id: str) -> Tuple[discord.Guild, discord.Member]:
        guild = await self._get_guild(guild_id)
        if guild is None:
            raise MemberNotResolvable(f"Guild {guild_id} not found")
        member = await self._get_member(guild, user_id)
        if member is None:
            raise MemberNotResolvable(f"Member {user_id} not found in guild {guild_id}")
        return guild, member

    async def resolve_guild(self, guild_id: str) -> Optional[GuildRef]:
        guild = await self._get_guild(guild_id)
        return GuildRef(id=str(guild.id), name=guild.name) if guild else None

    async def resolve_member(self, guild_id: str, user_id: str) -> Optional[MemberRef]:
        guild = await self._get_guild(guild_id)
        if guild is None:
            return None
        member = await self._get_member(guild, user_id)
        if member is None:
            return None
        return MemberRef(id=str(member.id), tag=str(member), display_name=member.display_name)

    async def member_guilds(self, user_id: str) -> List[GuildRef]:
        shared = []
        for guild in self.client.guilds:
            if await self._get_member(guild, user_id) is not None:
                shared.append(GuildRef(id=str(guild.id), name=guild.name))
        return shared

    # =========================================================================
    # Enforcement
    # =========================================================================

    @staticmethod
    def _check_hierarchy(guild: discord.Guild, member: discord.Member, action: str) -> None:
        """Refuse owners and members at or above the bot's top role."""
        me = guild.me
        if member.id == guild.owner_id or (me is not None and member.top_role >= me.top_role):
            logger.tree(f"{action.upper()} BLOCKED", [
                ("Reason", "Bot role too low"),
                ("Target", f"{member} ({member.id})"),
                ("Target Role", member.top_role.name),
            ], emoji="🚫")
            raise NotModeratable(f"Cannot {action}: missing permissions or hierarchy issue")

    @staticmethod
    def _map_http_error(e: discord.HTTPException, action: str) -> Exception:
        if isinstance(e, discord.Forbidden):
            return NotModeratable(f"Cannot {action}: missing permissions or hierarchy issue")
        if isinstance(e, discord.NotFound):
            return MemberNotResolvable(f"Cannot {action}: member not found")
        return ModerationPermissionError(f"Cannot {action}: {e}")

    async def timeout_member(self, guild_id: str, user_id: str, minutes: int, reason: Optional[str]) -> None:
        guild, member = await self._require(guild_id, user_id)
        self._check_hierarchy(guild, member, "timeout")
        try:
            await member.timeout(timedelta(minutes=max(1, minutes)), reason=reason or "Timeout applied.")
        except discord.HTTPException as e:
            raise self._map_http_error(e, "timeout") from e

    async def kick_member(self, guild_id: str, user_id: str, reason: Optional[str]) -> None:
        guild, member = await self._require(guild_id, user_id)
        self._check_hierarchy(guild, member, "kick")
        try:
            await member.kick(reason=reason or "Kick issued.")
        except discord.HTTPException as e:
            raise self._map_http_error(e, "kick") from e

    async def ban_member(self, guild_id: str, user_id: str, reason: Optional[str]) -> None:
        """Members who already left are banned by ID."""
        guild = await self._get_guild(guild_id)
        if guild is None:
            raise MemberNotResolvable(f"Guild {guild_id} not found")

        member = await self._get_member(guild, user_id)
        if member is not None:
            self._check_hierarchy(guild, member, "ban")
        target = member or discord.Object(id=int(user_id))
        try:
            await guild.ban(target, reason=reason or "Ban issued.", delete_message_seconds=0)
        except discord.HTTPException as e:
            raise self._map_http_error(e, "ban") from e

    # =========================================================================
    # Messaging
    # =========================================================================

    async def send_direct_message(self, user_id: str, content: str) -> None:
        user = self.client.get_user(int(user_id))
        try:
            if user is None:
                user = await self.client.fetch_user(int(user_id))
            await user.send(content=content)
        except discord.Forbidden as e:
            raise NotificationError("Member has DMs disabled") from e
        except discord.HTTPException as e:
            raise NotificationError(f"DM failed: {e}") from e

    async def delete_message(self, channel_id: str, message_id: str) -> None:
        channel = self.client.get_channel(int(channel_id))
        if channel is None or not hasattr(channel, "get_partial_message"):
            return
        try:
            await channel.get_partial_message(int(message_id)).delete()
        except discord.NotFound:
            return
        except discord.HTTPException as e:
            raise self._map_http_error(e, "delete message") from e

    async def send_log_message(
        self,
        channel_id: str,
        content: Optional[str] = None,
        notice: Optional[LogNotice] = None,
    ) -> None:
        channel = self.client.get_channel(int(channel_id))
        if channel is None:
            try:
                channel = await self.client.fetch_channel(int(channel_id))
            except discord.HTTPException as e:
                raise ModerationPermissionError(f"Log channel {channel_id} unavailable: {e}") from e
        if not isinstance(channel, discord.abc.Messageable):
            raise ModerationPermissionError(f"Log channel {channel_id} is not a text channel")

        embed = build_discord_embed(notice) if notice else None
        try:
            await channel.send(
                content=content,
                embed=embed,
                allowed_mentions=discord.AllowedMentions(roles=True, users=False, everyone=False),
            )
        except discord.HTTPException as e:
            raise self._map_http_error(e, "post log message") from e


def build_discord_embed(notice: LogNotice) -> discord.Embed:
    embed = discord.Embed(title=notice.title, description=notice.description, color=notice.color)
    for name, value, inline in notice.fields:
        embed.add_field(name=name, value=value, inline=inline)
    if notice.footer:
        embed.set_footer(text=notice.footer)
    return embed


__all__ = [
    "GuildRef",
    "MemberRef",
    "InboundMessage",
    "LogNotice",
    "ModerationPlatform",
    "DiscordPlatform",
    "build_discord_embed",
]
