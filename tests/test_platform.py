"""
Case Warden - Platform Adapter Tests
====================================

Tests for DiscordPlatform error mapping and embed building.
"""

from dataclasses import dataclass, field
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from src.core.errors import (
    MemberNotResolvable,
    ModerationPermissionError,
    NotificationError,
    NotModeratable,
)
from src.services.moderation import DiscordPlatform, LogNotice
from src.services.moderation.platform import build_discord_embed


def http_error(cls, status: int, reason: str):
    return cls(MagicMock(status=status, reason=reason), "error")


@dataclass(order=True)
class FakeRole:
    position: int
    name: str = field(default="role", compare=False)


def make_client(member_role: int = 1, bot_role: int = 10, owner_id: int = 1):
    member = MagicMock()
    member.id = 2000
    member.top_role = FakeRole(member_role, "Member")
    member.timeout = AsyncMock()
    member.kick = AsyncMock()

    guild = MagicMock()
    guild.id = 1000
    guild.name = "Syria"
    guild.owner_id = owner_id
    guild.me.top_role = FakeRole(bot_role, "Warden")
    guild.get_member.return_value = member
    guild.ban = AsyncMock()

    client = MagicMock()
    client.get_guild.return_value = guild
    client.guilds = [guild]
    return client, guild, member


class TestErrorMapping:
    """Tests for _map_http_error()."""

    def test_forbidden(self):
        """Test Forbidden maps to NotModeratable."""
        error = DiscordPlatform._map_http_error(http_error(discord.Forbidden, 403, "Forbidden"), "kick")
        assert isinstance(error, NotModeratable)
        assert "Cannot kick" in error.message

    def test_not_found(self):
        """Test NotFound maps to MemberNotResolvable."""
        error = DiscordPlatform._map_http_error(http_error(discord.NotFound, 404, "Not Found"), "ban")
        assert isinstance(error, MemberNotResolvable)

    def test_other_http_error(self):
        """Test other HTTP failures map to ModerationPermissionError."""
        error = DiscordPlatform._map_http_error(http_error(discord.HTTPException, 500, "Server Error"), "ban")
        assert type(error) is ModerationPermissionError


class TestEnforcement:
    """Tests for timeout, kick and ban through the adapter."""

    @pytest.mark.asyncio
    async def test_timeout(self):
        """Test a timeout calls discord.py with the duration."""
        client, _, member = make_client()
        platform = DiscordPlatform(client)

        await platform.timeout_member("1000", "2000", 15, "Spam")

        member.timeout.assert_awaited_once()
        assert member.timeout.await_args.args[0].total_seconds() == 900

    @pytest.mark.asyncio
    async def test_hierarchy_blocks(self):
        """Test members at or above the bot's role are refused."""
        client, _, member = make_client(member_role=10, bot_role=10)

        with pytest.raises(NotModeratable):
            await DiscordPlatform(client).kick_member("1000", "2000", "Raid")
        member.kick.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_owner_blocked(self):
        """Test the guild owner is never moderated."""
        client, _, _ = make_client(owner_id=2000)
        with pytest.raises(NotModeratable):
            await DiscordPlatform(client).timeout_member("1000", "2000", 5, None)

    @pytest.mark.asyncio
    async def test_forbidden_from_discord(self):
        """Test a Forbidden response surfaces as NotModeratable."""
        client, _, member = make_client()
        member.kick.side_effect = http_error(discord.Forbidden, 403, "Forbidden")

        with pytest.raises(NotModeratable):
            await DiscordPlatform(client).kick_member("1000", "2000", "Raid")

    @pytest.mark.asyncio
    async def test_missing_member(self):
        """Test an absent member raises MemberNotResolvable."""
        client, guild, _ = make_client()
        guild.get_member.return_value = None
        guild.fetch_member = AsyncMock(side_effect=http_error(discord.NotFound, 404, "Not Found"))

        with pytest.raises(MemberNotResolvable):
            await DiscordPlatform(client).timeout_member("1000", "2000", 5, None)

    @pytest.mark.asyncio
    async def test_ban_by_id(self):
        """Test a member who left is banned by ID."""
        client, guild, _ = make_client()
        guild.get_member.return_value = None
        guild.fetch_member = AsyncMock(side_effect=http_error(discord.NotFound, 404, "Not Found"))

        await DiscordPlatform(client).ban_member("1000", "2000", "Raid")

        guild.ban.assert_awaited_once()
        assert guild.ban.await_args.args[0].id == 2000


class TestMessaging:
    """Tests for DMs, lookups and log posts."""

    @pytest.mark.asyncio
    async def test_dm_forbidden(self):
        """Test DMs disabled surfaces as NotificationError."""
        client, _, _ = make_client()
        user = MagicMock()
        user.send = AsyncMock(side_effect=http_error(discord.Forbidden, 403, "Forbidden"))
        client.get_user.return_value = user

        with pytest.raises(NotificationError):
            await DiscordPlatform(client).send_direct_message("2000", "hello")

    @pytest.mark.asyncio
    async def test_resolve_and_member_guilds(self):
        """Test lookups return plain value objects."""
        client, _, member = make_client()
        member.display_name = "Member"
        platform = DiscordPlatform(client)

        guild = await platform.resolve_guild("1000")
        resolved = await platform.resolve_member("1000", "2000")
        shared = await platform.member_guilds("2000")

        assert guild.id == "1000"
        assert guild.name == "Syria"
        assert resolved.id == "2000"
        assert resolved.display_name == "Member"
        assert [g.id for g in shared] == ["1000"]

    @pytest.mark.asyncio
    async def test_log_message(self):
        """Test a notice is posted as an embed with role mentions allowed."""
        client, _, _ = make_client()
        channel = MagicMock(spec=discord.TextChannel)
        channel.send = AsyncMock()
        client.get_channel.return_value = channel

        notice = LogNotice(title="Member Warned", color=0xFFD700, fields=[("Reason", "Spam", False)])
        await DiscordPlatform(client).send_log_message("4000", content="<@&5000>", notice=notice)

        kwargs = channel.send.await_args.kwargs
        assert kwargs["content"] == "<@&5000>"
        assert kwargs["embed"].title == "Member Warned"
        assert kwargs["allowed_mentions"].roles is True

    def test_build_discord_embed(self):
        """Test LogNotice fields and footer carry over."""
        notice = LogNotice(
            title="Member Banned",
            color=0xFF0000,
            description="Raid",
            fields=[("Member", "<@1>", True), ("Reason", "Raid", False)],
            footer="Case abc",
        )
        embed = build_discord_embed(notice)

        assert embed.title == "Member Banned"
        assert embed.description == "Raid"
        assert embed.color.value == 0xFF0000
        assert [(f.name, f.value, f.inline) for f in embed.fields] == [
            ("Member", "<@1>", True),
            ("Reason", "Raid", False),
        ]
        assert embed.footer.text == "Case abc"
