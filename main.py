#!/usr/bin/env python3
"""
Case Warden - Entry Point
=========================

Loads .env, validates configuration and runs the moderation bot.

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

import asyncio
import sys

import discord
from dotenv import load_dotenv

from src.core.config import ConfigValidationError, load_config
from src.core.logger import logger


async def main() -> None:
    """
    Main entry point.

    Raises:
        SystemExit: If configuration is invalid or the bot fails to start.
    """
    load_dotenv()

    try:
        config = load_config(require_token=True)
    except ConfigValidationError as e:
        logger.error("Invalid Configuration", [("Error", str(e))])
        sys.exit(1)

    logger.tree("WARDEN STARTING", [
        ("Backend", config.storage_backend),
        ("Data Dir", str(config.data_dir)),
    ], emoji="🛡️")

    from src.bot import WardenBot

    bot = WardenBot(config)
    try:
        await bot.start(config.discord_token)
    except (discord.LoginFailure, discord.GatewayNotFound, discord.HTTPException) as e:
        logger.error("Bot Failed To Start", [
            ("Error Type", type(e).__name__),
            ("Error", str(e)[:100]),
        ])
        sys.exit(1)
    finally:
        if not bot.is_closed():
            await bot.close()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Bot stopped by user (Ctrl+C)")
