"""
Case Warden - Services Package
==============================

Detection and enforcement services built on the case store.

DESIGN:
    Detectors (violations, antispam) are pure and never suspend.
    The moderation package wires them to the platform port and the
    CaseStore.

Available Services:
    ViolationScanner: Content filters (links, invites, media, profanity, keywords)
    SpamDetector: Per-member sliding-window burst detection
    ModerationEngine: Enforcement, escalation and case workflows

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

from src.services.antispam import SpamDetector, SpamSignals, SpamVerdict
from src.services.moderation import ModerationEngine
from src.services.violations import Violation, ViolationScanner

__all__ = [
    "SpamDetector",
    "SpamSignals",
    "SpamVerdict",
    "ModerationEngine",
    "Violation",
    "ViolationScanner",
]
