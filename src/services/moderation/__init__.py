"""
Moderation Engine Package
=========================

Automod enforcement, penalties and case workflows.

Structure:
    - engine.py: ModerationEngine (main class)
    - case_ops.py: Case workflow mixin
    - notifications.py: DM / log / staff notification mixin
    - escalation.py: Escalation ladder and evaluator
    - platform.py: ModerationPlatform port and discord.py adapter
    - embeds.py: Log notice builders
    - constants.py: Sources and message templates

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

from .case_ops import MemberMessageResult, SupportRequestResult
from .engine import EnforcementResult, ModerationEngine
from .escalation import (
    ESCALATION_LADDER,
    EscalationDecision,
    EscalationEvaluator,
    ladder_depth,
)
from .platform import (
    DiscordPlatform,
    GuildRef,
    InboundMessage,
    LogNotice,
    MemberRef,
    ModerationPlatform,
)

__all__ = [
    "ModerationEngine",
    "EnforcementResult",
    "MemberMessageResult",
    "SupportRequestResult",
    "ESCALATION_LADDER",
    "EscalationDecision",
    "EscalationEvaluator",
    "ladder_depth",
    "DiscordPlatform",
    "GuildRef",
    "InboundMessage",
    "LogNotice",
    "MemberRef",
    "ModerationPlatform",
]
