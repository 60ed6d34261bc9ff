"""
Case Warden - Violation Scanner
===============================

Stateless content classifier for automod filters.

DESIGN:
    Rules run in a fixed order and the first match wins:
        links -> invites -> media -> profanity -> keyword
    Matching works on a lower-cased copy of the message. Profanity is
    matched against whole tokens (punctuation stripped), so "class"
    never trips on "ass". Custom keywords are plain substrings.

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, Optional, Pattern

from src.core.moderation_config import FilterConfig


# =============================================================================
# Patterns
# =============================================================================

LINK_PATTERN: Pattern = re.compile(r"(https?://|www\.)\S+", re.IGNORECASE)
INVITE_PATTERN: Pattern = re.compile(r"(discord\.gg|discord(?:app)?\.com/invite)", re.IGNORECASE)
TOKEN_STRIP_PATTERN: Pattern = re.compile(r"[^a-z0-9\s]")

DEFAULT_PROFANITY: FrozenSet[str] = frozenset({
    "fuck",
    "shit",
    "bitch",
    "asshole",
    "bastard",
    "slut",
    "cunt",
    "whore",
    "dick",
    "pussy",
})


# =============================================================================
# Result
# =============================================================================

@dataclass(frozen=True)
class Violation:
    """
    A matched automod rule.

    Attributes:
        type: Rule name (links, invites, media, profanity, keyword).
            Also used as the action source when the engine warns.
        message: Member-facing explanation.
        metadata: Evidence for the case record.
    """

    type: str
    message: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "message": self.message, "metadata": dict(self.metadata)}


# =============================================================================
# Scanner
# =============================================================================

class ViolationScanner:
    """Pure function over (content, attachments, filters). Holds only the word list."""

    def __init__(self, profanity_words: Iterable[str] = DEFAULT_PROFANITY) -> None:
        self.profanity: FrozenSet[str] = frozenset(w.strip().lower() for w in profanity_words if w.strip())

    def tokens(self, content: str) -> set:
        """Normalized word tokens of lower-cased content."""
        return set(TOKEN_STRIP_PATTERN.sub(" ", content).split())

    def contains_profanity(self, content: str) -> bool:
        if not content:
            return False
        return not self.profanity.isdisjoint(self.tokens(content))

    def detect(
        self,
        content: Optional[str],
        attachments_count: int,
        filters: FilterConfig,
    ) -> Optional[Violation]:
        """Return the first rule the message breaks, or None."""
        text = (content or "").lower()

        if filters.links and LINK_PATTERN.search(text):
            return Violation(
                type="links",
                message="Link sharing is restricted in this server.",
                metadata={"content": text},
            )

        if filters.invites and INVITE_PATTERN.search(text):
            return Violation(
                type="invites",
                message="Sharing Discord invites is blocked.",
                metadata={"content": text},
            )

        if filters.media and attachments_count > 0:
            return Violation(
                type="media",
                message="Media uploads are currently restricted.",
                metadata={"attachments": attachments_count},
            )

        if filters.profanity and self.contains_profanity(text):
            return Violation(
                type="profanity",
                message="Please keep the conversation respectful.",
                metadata={"content": text},
            )

        for keyword in filters.custom_keywords:
            normalized = keyword.lower()
            if normalized and normalized in text:
                return Violation(
                    type="keyword",
                    message=f'The term "{keyword}" is not allowed here.',
                    metadata={"keyword": keyword, "content": text},
                )

        return None


__all__ = [
    "DEFAULT_PROFANITY",
    "INVITE_PATTERN",
    "LINK_PATTERN",
    "Violation",
    "ViolationScanner",
]
