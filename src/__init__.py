"""
Case Warden - Source Package
============================

Moderation decision engine and case store for Discord communities.

Package Structure:
- bot.py: Discord client host that feeds messages into the engine
- core/: Config, logging, errors and the case store
- services/: Violation scanning, spam detection, escalation and the engine
- utils/: Async and DM helpers

Author: حَـــــنَّـــــا
Server: discord.gg/syria
Version: v1.0.0
"""
