"""
Moderation Engine
=================

Orchestrates automod detection, enforcement and case bookkeeping.

DESIGN:
    Enforcement order for one penalty:

        1. platform action (timeout / kick / ban; warn has none)
        2. member DM (best effort)
        3. CaseStore.record_case
        4. action log post (best effort)
        5. escalation

    A platform failure raises before step 3, so a penalty that did not
    happen is never recorded. Escalation is a bounded loop over the
    ladder (at most MAX_ESCALATION_HOPS hops). Each hop is recorded like
    any other action and then marks the case escalated. A failed hop is
    logged and ends the loop.

    Members with moderation authority, or on a channel/role/user
    allow-list, skip detection entirely.

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from src.core.constants import MAX_ESCALATION_HOPS, SPAM_PRUNE_INTERVAL
from src.core.database import (
    ActionType,
    CaseEntry,
    CaseRecordResult,
    CaseStatus,
    CaseStore,
)
from src.core.errors import MemberNotResolvable, ModerationError, ValidationError
from src.core.logger import logger
from src.core.moderation_config import ModerationConfig, ModerationConfigProvider
from src.services.antispam import SpamDetector, SpamSignals
from src.services.violations import Violation, ViolationScanner
from src.utils.async_utils import safe_async_operation

from .case_ops import CaseOpsMixin
from .constants import (
    SOURCE_DASHBOARD,
    SOURCE_ESCALATION,
    SOURCE_SPAM,
    SOURCE_SYSTEM,
)
from .escalation import EscalationEvaluator
from .notifications import NotificationsMixin
from .platform import InboundMessage, ModerationPlatform


# =============================================================================
# Result
# =============================================================================

@dataclass
class EnforcementResult:
    """Outcome of handle_message()."""

    action_taken: bool = False
    violations: List[Violation] = field(default_factory=list)


# =============================================================================
# Engine
# =============================================================================

class ModerationEngine(NotificationsMixin, CaseOpsMixin):
    """
    Single entry point for the bot host and the dashboard.

    One engine owns one SpamDetector. The CaseStore and the config
    provider are injected and may be shared with other readers.
    """

    def __init__(
        self,
        store: CaseStore,
        platform: ModerationPlatform,
        config_provider: Optional[ModerationConfigProvider] = None,
        scanner: Optional[ViolationScanner] = None,
        spam: Optional[SpamDetector] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.platform = platform
        self.config_provider = config_provider or ModerationConfigProvider()
        self.scanner = scanner or ViolationScanner()
        self.spam = spam or SpamDetector()
        self.evaluator = EscalationEvaluator()
        self._clock = clock
        self._last_prune = 0.0

        self._unsubscribe_config = self.config_provider.on_change(self._on_config_change)

    @property
    def config(self) -> ModerationConfig:
        return self.config_provider.current

    def _on_config_change(self, config: ModerationConfig) -> None:
        # Limits may have changed under existing windows
        self.spam.clear()

    def close(self) -> None:
        self._unsubscribe_config()

    # =========================================================================
    # Automod
    # =========================================================================

    def should_bypass(self, message: InboundMessage) -> bool:
        """True when the author is exempt from automod."""
        if message.has_authority:
            return True
        scopes = self.config.scopes
        if message.author_id in scopes.user_allow:
            return True
        if message.channel_id and message.channel_id in scopes.channel_allow:
            return True
        return not scopes.role_allow.isdisjoint(message.role_ids)

    async def handle_message(self, message: InboundMessage, now: Optional[float] = None) -> EnforcementResult:
        """
        Run automod on one guild message.

        The violation scanner runs first; the spam detector only sees
        messages the scanner let through.
        """
        if not message.guild_id or message.is_bot:
            return EnforcementResult()
        if self.should_bypass(message):
            return EnforcementResult()

        now = self._clock() if now is None else now
        if now - self._last_prune >= SPAM_PRUNE_INTERVAL:
            self._last_prune = now
            self.spam.prune(now)

        config = self.config

        violation = self.scanner.detect(message.content, message.attachments_count, config.filters)
        if violation is not None:
            return await self._enforce_violation(message, violation)

        verdict = self.spam.observe(
            (message.guild_id, message.author_id),
            SpamSignals.from_content(message.content, message.mention_count, message.attachments_count),
            now,
            config.spam,
        )
        if verdict is None:
            return EnforcementResult()

        spam_violation = Violation(type="spam", message=verdict.reason, metadata=verdict.to_metadata())
        try:
            await self.apply_penalty(
                ActionType.TIMEOUT,
                message.guild_id,
                message.author_id,
                reason=verdict.reason,
                duration_minutes=config.spam.auto_timeout_minutes,
                user_tag=message.author_tag,
                guild_name=message.guild_name,
                source=SOURCE_SPAM,
                metadata={"spam": verdict.to_metadata(), "evidence": message.evidence()},
            )
        except ModerationError as e:
            logger.warning("Spam Timeout Failed", [
                ("User", f"{message.author_tag or 'Unknown'} ({message.author_id})"),
                ("Guild", message.guild_id),
                ("Error Type", type(e).__name__),
                ("Error", e.message[:100]),
            ])
            return EnforcementResult(action_taken=False, violations=[spam_violation])

        return EnforcementResult(action_taken=True, violations=[spam_violation])

    async def _enforce_violation(self, message: InboundMessage, violation: Violation) -> EnforcementResult:
        if message.channel_id and message.message_id:
            await safe_async_operation(
                "Delete Violating Message",
                self.platform.delete_message(message.channel_id, message.message_id),
                log_level="debug",
            )

        try:
            await self.apply_penalty(
                ActionType.WARN,
                message.guild_id,
                message.author_id,
                reason=violation.message,
                user_tag=message.author_tag,
                guild_name=message.guild_name,
                source=violation.type,
                metadata={**violation.metadata, "evidence": message.evidence()},
            )
        except ModerationError as e:
            logger.warning("Automod Warning Failed", [
                ("User", f"{message.author_tag or 'Unknown'} ({message.author_id})"),
                ("Rule", violation.type),
                ("Error Type", type(e).__name__),
                ("Error", e.message[:100]),
            ])
            return EnforcementResult(action_taken=False, violations=[violation])

        return EnforcementResult(action_taken=True, violations=[violation])

    # =========================================================================
    # Dashboard Actions
    # =========================================================================

    async def warn(
        self,
        guild_id: Any,
        user_id: Any,
        moderator_id: Optional[Any] = None,
        moderator_tag: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> CaseRecordResult:
        guild, member = await self._resolve(guild_id, user_id)
        return await self.apply_penalty(
            ActionType.WARN,
            guild.id,
            member.id,
            reason=reason,
            moderator_id=moderator_id,
            moderator_tag=moderator_tag,
            user_tag=member.tag,
            guild_name=guild.name,
            source=SOURCE_DASHBOARD,
        )

    async def timeout(
        self,
        guild_id: Any,
        user_id: Any,
        moderator_id: Optional[Any] = None,
        moderator_tag: Optional[str] = None,
        reason: Optional[str] = None,
        duration_minutes: Optional[int] = None,
    ) -> CaseRecordResult:
        guild, member = await self._resolve(guild_id, user_id)
        return await self.apply_penalty(
            ActionType.TIMEOUT,
            guild.id,
            member.id,
            reason=reason,
            duration_minutes=duration_minutes,
            moderator_id=moderator_id,
            moderator_tag=moderator_tag,
            user_tag=member.tag,
            guild_name=guild.name,
            source=SOURCE_DASHBOARD,
        )

    async def kick(
        self,
        guild_id: Any,
        user_id: Any,
        moderator_id: Optional[Any] = None,
        moderator_tag: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> CaseRecordResult:
        guild, member = await self._resolve(guild_id, user_id)
        return await self.apply_penalty(
            ActionType.KICK,
            guild.id,
            member.id,
            reason=reason,
            moderator_id=moderator_id,
            moderator_tag=moderator_tag,
            user_tag=member.tag,
            guild_name=guild.name,
            source=SOURCE_DASHBOARD,
        )

    async def ban(
        self,
        guild_id: Any,
        user_id: Any,
        moderator_id: Optional[Any] = None,
        moderator_tag: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> CaseRecordResult:
        """Ban by ID. Only the guild must resolve; the member may have left."""
        if not guild_id or not user_id:
            raise ValidationError("guild_id and user_id are required")
        guild = await self.platform.resolve_guild(str(guild_id))
        if guild is None:
            raise MemberNotResolvable(f"Guild {guild_id} not found")
        member = await self.platform.resolve_member(guild.id, str(user_id))
        return await self.apply_penalty(
            ActionType.BAN,
            guild.id,
            str(user_id),
            reason=reason,
            moderator_id=moderator_id,
            moderator_tag=moderator_tag,
            user_tag=member.tag if member else None,
            guild_name=guild.name,
            source=SOURCE_DASHBOARD,
        )

    # =========================================================================
    # Penalties
    # =========================================================================

    async def apply_penalty(
        self,
        action: ActionType,
        guild_id: str,
        user_id: str,
        *,
        reason: Optional[str] = None,
        duration_minutes: Optional[int] = None,
        moderator_id: Optional[Any] = None,
        moderator_tag: Optional[str] = None,
        user_tag: Optional[str] = None,
        guild_name: Optional[str] = None,
        source: str = SOURCE_SYSTEM,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> CaseRecordResult:
        """
        Enforce, record and escalate one penalty.

        Returns:
            The record of the requested action (escalations are recorded
            separately on the same case).

        Raises:
            MemberNotResolvable / NotModeratable / ModerationPermissionError:
                The platform refused; nothing was recorded.
            PersistenceError: The action happened but could not be saved.
        """
        result = await self._execute_penalty(
            action,
            guild_id,
            user_id,
            reason=reason,
            duration_minutes=duration_minutes,
            moderator_id=moderator_id,
            moderator_tag=moderator_tag,
            user_tag=user_tag,
            guild_name=guild_name,
            source=source,
            metadata=metadata,
        )
        await self._escalate(result, guild_name)
        return result

    async def _execute_penalty(
        self,
        action: ActionType,
        guild_id: str,
        user_id: str,
        *,
        reason: Optional[str],
        duration_minutes: Optional[int],
        moderator_id: Optional[Any],
        moderator_tag: Optional[str],
        user_tag: Optional[str],
        guild_name: Optional[str],
        source: str,
        metadata: Optional[Dict[str, Any]],
    ) -> CaseRecordResult:
        if action is ActionType.TIMEOUT:
            duration_minutes = max(1, duration_minutes or self.config.spam.auto_timeout_minutes)
        else:
            duration_minutes = None

        try:
            if action is ActionType.TIMEOUT:
                await self.platform.timeout_member(guild_id, user_id, duration_minutes, reason)
            elif action is ActionType.KICK:
                await self.platform.kick_member(guild_id, user_id, reason)
            elif action is ActionType.BAN:
                await self.platform.ban_member(guild_id, user_id, reason)
        except ModerationError as e:
            logger.error("Penalty Failed", [
                ("Action", action.value),
                ("User", user_id),
                ("Guild", guild_id),
                ("Source", source),
                ("Error Type", type(e).__name__),
                ("Error", e.message[:100]),
            ])
            raise

        await self._notify_member(action, user_id, guild_name, reason, duration_minutes)

        result = await self.store.record_case(CaseEntry(
            guild_id=guild_id,
            user_id=user_id,
            action=action,
            reason=reason,
            duration_minutes=duration_minutes,
            moderator_id=str(moderator_id) if moderator_id else None,
            moderator_tag=moderator_tag,
            source=source,
            metadata=dict(metadata or {}),
            guild_name=guild_name,
            user_tag=user_tag,
        ))

        await self._post_action_log(result.case, result.action, result.totals)
        return result

    async def _escalate(self, result: CaseRecordResult, guild_name: Optional[str]) -> None:
        current = result
        for _ in range(MAX_ESCALATION_HOPS):
            config = self.config
            decision = self.evaluator.evaluate(
                current.action.type,
                current.totals,
                config.escalation,
                config.spam.auto_timeout_minutes,
            )
            if decision is None:
                return

            case = current.case
            try:
                escalated = await self._execute_penalty(
                    decision.action,
                    case.guild_id,
                    case.user_id,
                    reason=decision.reason,
                    duration_minutes=decision.duration_minutes,
                    moderator_id=None,
                    moderator_tag=None,
                    user_tag=case.user_tag,
                    guild_name=guild_name or case.guild_name,
                    source=SOURCE_ESCALATION,
                    metadata=decision.metadata,
                )
            except ModerationError as e:
                logger.warning("Escalation Failed", [
                    ("Case ID", case.id),
                    ("From", current.action.type.value),
                    ("To", decision.action.value),
                    ("Error Type", type(e).__name__),
                    ("Error", e.message[:100]),
                ])
                return

            try:
                await self.store.update_case_status(
                    case.guild_id,
                    case.id,
                    CaseStatus.ESCALATED,
                    actor_type="system",
                    note=decision.note,
                )
            except ModerationError as e:
                logger.warning("Escalation Status Update Failed", [
                    ("Case ID", case.id),
                    ("Error Type", type(e).__name__),
                    ("Error", e.message[:100]),
                ])

            logger.tree("Penalty Escalated", [
                ("Case ID", case.id),
                ("User", f"{case.user_tag or 'Unknown'} ({case.user_id})"),
                ("From", current.action.type.value),
                ("To", decision.action.value),
                ("Totals", f"{escalated.totals.warnings}W / {escalated.totals.timeouts}T"),
            ], emoji="⬆️")

            current = escalated


__all__ = [
    "EnforcementResult",
    "ModerationEngine",
]
