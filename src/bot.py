"""
Case Warden - Bot Host
======================

discord.py host that feeds guild messages and member DMs into the
ModerationEngine.

Features:
- Automod on every guild message (filters, spam windows, escalation)
- Member DMs filed on their active case
- Moderation rules hot-reloaded from data/moderation/config.json

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

import json
import sys
import traceback
from datetime import datetime
from typing import List, Optional, Tuple

import discord
from discord.ext import commands

from src.core.config import Config, get_config
from src.core.database import CaseStore, create_backend
from src.core.logger import logger
from src.core.moderation_config import ModerationConfigProvider
from src.services.moderation import DiscordPlatform, InboundMessage, ModerationEngine
from src.services.moderation.constants import BYPASS_PERMISSIONS


# =============================================================================
# Message Conversion
# =============================================================================

def inbound_from_discord(message: discord.Message) -> InboundMessage:
    """Flatten a discord.py message into the engine's InboundMessage."""
    author = message.author
    guild = message.guild

    role_ids = frozenset()
    has_authority = False
    if isinstance(author, discord.Member):
        role_ids = frozenset(str(role.id) for role in author.roles)
        perms = author.guild_permissions
        has_authority = any(getattr(perms, name) for name in BYPASS_PERMISSIONS)

    return InboundMessage(
        guild_id=str(guild.id) if guild else None,
        channel_id=str(message.channel.id) if message.channel else None,
        message_id=str(message.id),
        author_id=str(author.id),
        author_tag=str(author),
        content=message.content or "",
        attachments_count=len(message.attachments),
        mention_count=len(message.mentions) + len(message.role_mentions),
        role_ids=role_ids,
        has_authority=has_authority,
        is_bot=author.bot,
        jump_url=message.jump_url,
        guild_name=guild.name if guild else None,
    )


def event_error_details(event_method: str) -> List[Tuple[str, str]]:
    """Details for the exception currently being handled in an event."""
    error = sys.exc_info()[1]
    return [
        ("Event", event_method),
        ("Error Type", type(error).__name__ if error else "Unknown"),
        ("Error", str(error)[:200] if error else "None"),
        ("Traceback", traceback.format_exc()),
    ]


# =============================================================================
# WardenBot Class
# =============================================================================

class WardenBot(commands.Bot):
    """
    Discord client wiring the case store, platform adapter and engine.

    DESIGN:
        The store and engine are built once in setup_hook and passed by
        reference. Nothing reads the case file except the store.
    """

    def __init__(self, config: Optional[Config] = None) -> None:
        self.config = config or get_config()

        intents = discord.Intents.default()
        intents.message_content = True
        intents.members = True

        super().__init__(
            command_prefix="!",
            intents=intents,
            help_command=None,
        )

        self.start_time: datetime = datetime.now()
        self.store: Optional[CaseStore] = None
        self.engine: Optional[ModerationEngine] = None
        self.moderation_config = ModerationConfigProvider()

        logger.info("Bot Instance Created")

    # =========================================================================
    # Setup Hook
    # =========================================================================

    async def setup_hook(self) -> None:
        """Build the store and engine before the gateway connects."""
        self._load_moderation_config()

        self.store = CaseStore(create_backend(self.config))
        await self.store.load()

        self.engine = ModerationEngine(
            self.store,
            DiscordPlatform(self),
            self.moderation_config,
        )

        if self.config.error_webhook_url:
            logger.set_webhook(self.config.error_webhook_url)

    def _load_moderation_config(self) -> None:
        path = self.config.moderation_config_file
        if not path.exists():
            logger.info("Moderation Config Not Found, Using Defaults", [("Path", str(path))])
            return
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Moderation Config Unreadable", [
                ("Path", str(path)),
                ("Error Type", type(e).__name__),
                ("Error", str(e)[:100]),
            ])
            return
        self.moderation_config.load(raw if isinstance(raw, dict) else {})

    # =========================================================================
    # Events
    # =========================================================================

    async def on_ready(self) -> None:
        if not self.user:
            return

        stats = await self.store.get_stats()
        logger.tree("WARDEN READY", [
            ("Name", self.user.name),
            ("ID", str(self.user.id)),
            ("Guilds", str(len(self.guilds))),
            ("Backend", self.config.storage_backend),
            ("Cases", str(stats.cases)),
        ], emoji="🚀")

    async def on_message(self, message: discord.Message) -> None:
        if self.engine is None or message.author.bot:
            return

        if message.guild is None:
            await self.engine.route_member_direct_message(
                message.author.id,
                message.content,
                attachment_urls=[a.url for a in message.attachments],
                user_tag=str(message.author),
            )
            return

        await self.engine.handle_message(inbound_from_discord(message))

    async def on_error(self, event_method: str, *args, **kwargs) -> None:
        logger.error("Event Handler Failed", event_error_details(event_method))

    # =========================================================================
    # Shutdown
    # =========================================================================

    async def close(self) -> None:
        """Close the engine and store, then disconnect."""
        logger.info("Initiating Graceful Shutdown")

        if self.engine:
            self.engine.close()
        if self.store:
            self.store.close()

        await super().close()

        logger.tree("SHUTDOWN COMPLETE", [
            ("Uptime", str(datetime.now() - self.start_time)),
        ], emoji="🛑")


# =============================================================================
# Module Export
# =============================================================================

__all__ = ["WardenBot", "inbound_from_discord"]
