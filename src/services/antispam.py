"""
Case Warden - Anti-Spam Detector
================================

Per-member sliding-window burst detection.

DESIGN:
    Two independent mechanisms, checked in this order:

    1. Legacy per-minute bucket: message timestamps over the last 60s.
       Trips when the count exceeds messages_per_minute.
    2. Multi-signal window: one timestamp list per signal (messages,
       mentions, links, emojis, attachments) over limits.window_sec.
       A message carrying several links/emojis adds its extra count on
       top of the window length, so one message with 6 links trips a
       limit of 5 by itself.

    The first positive short-circuits. Buckets that trip are cleared so
    the next message does not re-trip immediately.

    State is in memory only and owned by one detector instance. Losing it
    on restart is fine: it only throttles.

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

import re
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Hashable, Optional, Pattern, Tuple

from src.core.constants import LEGACY_SPAM_WINDOW, SPAM_BUCKET_TTL
from src.core.logger import logger
from src.core.moderation_config import SpamConfig
from src.services.violations import LINK_PATTERN


# =============================================================================
# Constants
# =============================================================================

SPAM_SIGNALS: Tuple[str, ...] = ("messages", "mentions", "links", "emojis", "attachments")

EMOJI_PATTERN: Pattern = re.compile(r"<a?:\w+:\d+>|[\U0001F300-\U0001FAFF]")


# =============================================================================
# Models
# =============================================================================

@dataclass(frozen=True)
class SpamSignals:
    """Signal counts carried by one message."""

    messages: int = 1
    mentions: int = 0
    links: int = 0
    emojis: int = 0
    attachments: int = 0

    @classmethod
    def from_content(
        cls,
        content: Optional[str],
        mention_count: int = 0,
        attachments_count: int = 0,
    ) -> "SpamSignals":
        text = content or ""
        return cls(
            messages=1,
            mentions=max(0, mention_count),
            links=len(LINK_PATTERN.findall(text)),
            emojis=len(EMOJI_PATTERN.findall(text)),
            attachments=max(0, attachments_count),
        )


@dataclass(frozen=True)
class SpamVerdict:
    """
    Why a member was flagged.

    Attributes:
        reason: Text used as the timeout reason.
        signals: Exceeded signals, in check order.
        counts: Observed counts per checked signal.
        window: Window label, "60s" for the legacy bucket.
    """

    reason: str
    signals: Tuple[str, ...]
    counts: Dict[str, int]
    window: str

    def to_metadata(self) -> Dict[str, object]:
        return {"window": self.window, "signals": list(self.signals), **self.counts}


@dataclass
class _MemberBuckets:
    minute: Deque[float] = field(default_factory=deque)
    windows: Dict[str, Deque[float]] = field(default_factory=dict)
    last_seen: float = 0.0


def _drop_older(bucket: Deque[float], cutoff: float) -> None:
    while bucket and bucket[0] < cutoff:
        bucket.popleft()


# =============================================================================
# Detector
# =============================================================================

class SpamDetector:
    """Sliding-window counters keyed by member (usually (guild_id, user_id))."""

    def __init__(self) -> None:
        self._buckets: Dict[Hashable, _MemberBuckets] = {}

    def __len__(self) -> int:
        return len(self._buckets)

    def observe(
        self,
        member_key: Hashable,
        signals: SpamSignals,
        now: float,
        config: SpamConfig,
    ) -> Optional[SpamVerdict]:
        """Record one message and return a verdict if it tips a limit."""
        if not config.enabled:
            return None

        buckets = self._buckets.get(member_key)
        if buckets is None:
            buckets = self._buckets[member_key] = _MemberBuckets()
        buckets.last_seen = now

        # Legacy per-minute bucket
        if config.messages_per_minute > 0:
            minute = buckets.minute
            minute.append(now)
            _drop_older(minute, now - LEGACY_SPAM_WINDOW)
            if len(minute) > config.messages_per_minute:
                count = len(minute)
                minute.clear()
                return SpamVerdict(
                    reason=f"Automated timeout: {count} messages in {LEGACY_SPAM_WINDOW} seconds",
                    signals=("messages",),
                    counts={"messages": count},
                    window=f"{LEGACY_SPAM_WINDOW}s",
                )

        limits = config.limits
        if not limits.enabled:
            return None

        cutoff = now - limits.window_sec
        counts: Dict[str, int] = {}
        exceeded = []

        for signal in SPAM_SIGNALS:
            limit = limits.limit_for(signal)
            if limit <= 0:
                continue
            bucket = buckets.windows.setdefault(signal, deque())
            per_message = getattr(signals, signal)
            if per_message > 0:
                bucket.append(now)
            _drop_older(bucket, cutoff)

            observed = len(bucket) + max(0, per_message - 1) if per_message > 0 else len(bucket)
            counts[signal] = observed
            if per_message > 0 and observed > limit:
                exceeded.append(signal)

        if not exceeded:
            return None

        for signal in exceeded:
            buckets.windows[signal].clear()

        return SpamVerdict(
            reason=f"Automated timeout: {', '.join(exceeded)} spike in {limits.window_sec}s",
            signals=tuple(exceeded),
            counts=counts,
            window=f"{limits.window_sec}s",
        )

    def reset(self, member_key: Hashable) -> None:
        self._buckets.pop(member_key, None)

    def clear(self) -> None:
        self._buckets.clear()

    def prune(self, now: float, max_age: float = SPAM_BUCKET_TTL) -> int:
        """Drop members idle longer than max_age. Returns how many were dropped."""
        stale = [key for key, b in self._buckets.items() if b.last_seen < now - max_age]
        for key in stale:
            del self._buckets[key]
        if stale:
            logger.debug("Spam Buckets Pruned", [
                ("Dropped", str(len(stale))),
                ("Tracked", str(len(self._buckets))),
            ])
        return len(stale)


__all__ = [
    "EMOJI_PATTERN",
    "SPAM_SIGNALS",
    "SpamDetector",
    "SpamSignals",
    "SpamVerdict",
]
