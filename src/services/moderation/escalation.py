"""
Escalation Evaluator
====================

Decides whether a just-recorded action must be followed by a stronger
automatic penalty.

DESIGN:
    A pure function over (action, updated totals, thresholds). The ladder
    is an explicit transition table:

        warn -> timeout -> ban
        kick, ban -> (none)

    so one triggering action can cause at most two escalation hops. The
    engine drives the hops in a bounded loop instead of recursing.

    Thresholds repeat: the modulo test fires on the 3rd, 6th, 9th...
    warning for warn_threshold=3, not only on the first crossing.
    A threshold of 0 disables its rule.

    The ban rule counts warnings + timeouts, so a warning that already
    escalated into a timeout is counted twice. This is intentional for
    now and covered by a test.

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from src.core.database.models import ActionType, UserTotals
from src.core.moderation_config import EscalationConfig


# =============================================================================
# Ladder
# =============================================================================

ESCALATION_LADDER: Dict[ActionType, Optional[ActionType]] = {
    ActionType.WARN: ActionType.TIMEOUT,
    ActionType.TIMEOUT: ActionType.BAN,
    ActionType.KICK: None,
    ActionType.BAN: None,
}


def ladder_depth(action: ActionType) -> int:
    """Number of hops the ladder allows from this action."""
    depth = 0
    current = ESCALATION_LADDER.get(action)
    while current is not None:
        depth += 1
        current = ESCALATION_LADDER.get(current)
    return depth


# =============================================================================
# Decision
# =============================================================================

@dataclass(frozen=True)
class EscalationDecision:
    """
    The stronger penalty to apply.

    Attributes:
        action: Next rung on the ladder.
        reason: Reason recorded on the escalated action.
        note: Audit note for the status change to escalated.
        duration_minutes: Timeout length, None for bans.
        metadata: Stored on the ActionRecord (escalated_from).
    """

    action: ActionType
    reason: str
    note: str
    duration_minutes: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


def _hits(count: int, threshold: int) -> bool:
    return threshold > 0 and count > 0 and count % threshold == 0


# =============================================================================
# Evaluator
# =============================================================================

class EscalationEvaluator:
    """Stateless. One instance is shared by the engine."""

    def evaluate(
        self,
        action: ActionType,
        totals: UserTotals,
        config: EscalationConfig,
        auto_timeout_minutes: int,
    ) -> Optional[EscalationDecision]:
        next_action = ESCALATION_LADDER.get(action)
        if next_action is None:
            return None

        if action is ActionType.WARN:
            warnings = totals.warnings
            if _hits(warnings, config.warn_threshold):
                return EscalationDecision(
                    action=next_action,
                    reason=f"Auto-timeout after {warnings} warnings.",
                    note=f"Escalated after {warnings} warnings.",
                    duration_minutes=auto_timeout_minutes,
                    metadata={"escalated_from": "warn"},
                )
            if _hits(warnings, config.timeout_threshold):
                return EscalationDecision(
                    action=next_action,
                    reason=f"Auto-timeout after {warnings} warnings.",
                    note=f"Escalated after crossing warning threshold ({warnings}).",
                    duration_minutes=auto_timeout_minutes,
                    metadata={"escalated_from": "warn-threshold"},
                )
            return None

        if action is ActionType.TIMEOUT:
            offences = totals.warnings + totals.timeouts
            by_timeouts = _hits(totals.timeouts, config.timeout_threshold)
            by_offences = config.ban_threshold > 0 and offences >= config.ban_threshold
            if by_timeouts or by_offences:
                return EscalationDecision(
                    action=next_action,
                    reason=(
                        f"Auto-ban after repeated offences "
                        f"(warnings: {totals.warnings}, timeouts: {totals.timeouts})."
                    ),
                    note="Escalated to ban due to repeated offences.",
                    metadata={"escalated_from": "timeout"},
                )

        return None


__all__ = [
    "ESCALATION_LADDER",
    "EscalationDecision",
    "EscalationEvaluator",
    "ladder_depth",
]
