"""
Case Warden - Case Store
========================

Durable repository for moderation and support cases, their audit
trail, and per-member aggregate totals.

DESIGN:
    Single writer. Every mutation runs inside _transaction(), which holds
    one asyncio.Lock for the whole read-modify-write cycle:

        fork state -> mutate fork -> save fork -> swap in -> publish events

    The fork is copy-on-write: the case list and totals map are shallow
    copies and only the cases a mutation touches are deep-copied. Reads
    never take the lock and always see the last committed state. If the
    save fails the fork is discarded, so memory stays at the last good
    commit and the next mutation can still succeed.

    Invariants held here:
    - at most one non-terminal case per (guild, user, category)
    - messages/actions/audit_log are append-only, trimmed from the head
      only after an append pushes them past capacity
    - each mutating call writes exactly one audit entry on its case
    - timestamps are strictly increasing, so append order is causal order
    - totals are rebuilt from remaining cases on delete, never subtracted

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

import asyncio
import copy
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Tuple

from src.core.constants import (
    DEFAULT_LIST_LIMIT,
    MAX_ACTIONS_PER_CASE,
    MAX_AUDIT_LOG_ENTRIES,
    MAX_CASES,
    MAX_MESSAGES_PER_CASE,
    MAX_PARTICIPANTS,
    SUBJECT_MAX_LENGTH,
    SUBJECT_MESSAGE_PREVIEW,
)
from src.core.database.base import StateBackend
from src.core.database.events import ModerationEventBus, StoreEventType, StoreListener
from src.core.database.models import (
    ActionRecord,
    ActionType,
    AuditEntry,
    AuditType,
    AuthorType,
    Case,
    CaseAssignee,
    CaseCategory,
    CaseEntry,
    CaseMessage,
    CaseRecordResult,
    CaseStatus,
    EnsureCaseResult,
    ModerationStats,
    Participant,
    StatsSnapshot,
    UserTotals,
    new_id,
    normalize_action,
    normalize_author_type,
    normalize_category,
    normalize_status,
)
from src.core.errors import (
    ActiveCaseConflict,
    CaseNotFound,
    EmptyMessage,
    InvalidStatus,
    PersistenceError,
    ValidationError,
)
from src.core.logger import logger


STATE_VERSION = 1


# =============================================================================
# Helpers
# =============================================================================

def _trim_head(items: list, capacity: int) -> None:
    """Drop the oldest entries once a list exceeds capacity."""
    overflow = len(items) - capacity
    if overflow > 0:
        del items[:overflow]


def _totals_key(guild_id: str, user_id: str) -> str:
    return f"{guild_id}:{user_id}"


def _clean_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def build_system_message(
    action: ActionType,
    reason: Optional[str] = None,
    duration_minutes: Optional[int] = None,
) -> str:
    """Body of the system message appended to a case for each action."""
    if action is ActionType.WARN:
        text = "Automatic warning issued."
    elif action is ActionType.TIMEOUT:
        text = (
            f"Automatic timeout issued for {duration_minutes} minute(s)."
            if duration_minutes else "Automatic timeout issued."
        )
    elif action is ActionType.BAN:
        text = "Automatic ban issued."
    else:
        text = "Moderation action recorded."
    if reason:
        text += f" Reason: {reason}"
    return text


def assign_subject(
    case: Case,
    support_topic: Optional[str] = None,
    reason: Optional[str] = None,
    action: Optional[ActionType] = None,
) -> None:
    """Derive the case subject once. A subject that is already set never changes."""
    if case.subject and case.subject.strip():
        return

    topic = support_topic or case.metadata.get("support_topic")
    if topic:
        prefix = "Ticket" if case.category is CaseCategory.TICKET else "Case"
        case.subject = f"{prefix}: {topic}"[:SUBJECT_MAX_LENGTH]
        return

    reason = reason or case.metadata.get("reason")
    if isinstance(reason, str) and reason.strip():
        case.subject = reason.strip()[:SUBJECT_MAX_LENGTH]
        return

    if action is None and case.actions:
        action = case.actions[0].type
    if action is not None:
        case.subject = f"Moderation: {action.value.capitalize()}"
        return

    for message in case.messages:
        if message.author_type is AuthorType.MEMBER and message.body:
            case.subject = message.body[:SUBJECT_MESSAGE_PREVIEW]
            return

    case.subject = f"Case for {case.user_tag or case.user_id}"


def ensure_participant(case: Case, kind: str, user_id: Optional[str], tag: Optional[str], now: float) -> None:
    """Add or refresh a participant, deduplicated by (type, id)."""
    if not user_id:
        return
    key = f"{kind}:{user_id}"
    for participant in case.participants:
        if participant.key == key:
            if tag:
                participant.tag = tag
            return
    case.participants.append(Participant(type=kind, id=str(user_id), tag=tag, added_at=now))
    _trim_head(case.participants, MAX_PARTICIPANTS)


def _append_audit(case: Case, entry: AuditEntry) -> None:
    case.audit_log.append(entry)
    _trim_head(case.audit_log, MAX_AUDIT_LOG_ENTRIES)


def _append_message(case: Case, message: CaseMessage) -> None:
    """Append a message and update recency, participants and unread count."""
    case.messages.append(message)
    _trim_head(case.messages, MAX_MESSAGES_PER_CASE)
    case.last_message_at = message.created_at
    case.updated_at = message.created_at

    if message.author_type is AuthorType.MEMBER:
        ensure_participant(case, "member", message.author_id, message.author_tag, message.created_at)
        case.unread_count = min(case.unread_count + 1, len(case.messages))
    elif message.author_type is AuthorType.MODERATOR:
        ensure_participant(case, "moderator", message.author_id, message.author_tag, message.created_at)
        case.unread_count = 0


def _apply_status(case: Case, status: CaseStatus, now: float) -> bool:
    """Set the status. Returns True if it changed."""
    if case.status is status:
        return False
    case.status = status
    case.updated_at = now
    if status.is_terminal:
        case.unread_count = 0
        if case.sla.due_at is not None and case.sla.completed_at is None:
            case.sla.completed_at = now
    else:
        case.sla.completed_at = None
    return True


def rebuild_user_totals(cases: List[Case], guild_id: str, user_id: str) -> Optional[UserTotals]:
    """Recompute a member's totals from the cases that remain. None if they have none."""
    related = [c for c in cases if c.guild_id == guild_id and c.user_id == user_id]
    if not related:
        return None

    totals = UserTotals(cases=len(related))
    for case in related:
        for action in case.actions:
            totals.bump(action.type)
            if totals.last_action_at is None or action.created_at > totals.last_action_at:
                totals.last_action_at = action.created_at
    return totals


# =============================================================================
# State
# =============================================================================

@dataclass
class _State:
    cases: List[Case] = field(default_factory=list)
    user_totals: Dict[str, UserTotals] = field(default_factory=dict)
    stats: ModerationStats = field(default_factory=ModerationStats)
    updated_at: Optional[float] = None

    def fork(self) -> "_State":
        return _State(
            cases=list(self.cases),
            user_totals=dict(self.user_totals),
            stats=replace(self.stats),
            updated_at=self.updated_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": STATE_VERSION,
            "updated_at": self.updated_at,
            "stats": self.stats.to_dict(),
            "user_totals": {key: t.to_dict() for key, t in self.user_totals.items()},
            "cases": [c.to_dict() for c in self.cases],
        }

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> "_State":
        if not raw:
            return cls()
        cases = [c for c in (Case.from_dict(x) for x in raw.get("cases") or []) if c]
        cases.sort(key=lambda c: c.updated_at, reverse=True)
        return cls(
            cases=cases,
            user_totals={
                str(key): UserTotals.from_dict(value)
                for key, value in (raw.get("user_totals") or {}).items()
            },
            stats=ModerationStats.from_dict(raw.get("stats"), case_count=len(cases)),
            updated_at=raw.get("updated_at"),
        )


class _Transaction:
    """Working copy for one mutation. Nothing here is visible until commit."""

    def __init__(self, state: _State) -> None:
        self.state = state
        self.dirty = False
        self.events: List[Tuple[StoreEventType, Dict[str, Any]]] = []
        self._touched: set = set()

    def find_index(self, guild_id: Optional[str], case_id: str) -> Optional[int]:
        for index, case in enumerate(self.state.cases):
            if case.id == case_id and (guild_id is None or case.guild_id == guild_id):
                return index
        return None

    def find_active_index(self, guild_id: str, user_id: str, category: CaseCategory) -> Optional[int]:
        for index, case in enumerate(self.state.cases):
            if (
                case.guild_id == guild_id
                and case.user_id == user_id
                and case.category is category
                and case.is_active
            ):
                return index
        return None

    def touch(self, index: int) -> Case:
        """Return a private, mutable copy of the case at index."""
        case = self.state.cases[index]
        if case.id not in self._touched:
            case = copy.deepcopy(case)
            self.state.cases[index] = case
            self._touched.add(case.id)
        self.dirty = True
        return case

    def insert(self, case: Case) -> None:
        self.state.cases.insert(0, case)
        self._touched.add(case.id)
        self.dirty = True

    def remove(self, index: int) -> Case:
        self.dirty = True
        return self.state.cases.pop(index)

    def totals(self, guild_id: str, user_id: str) -> UserTotals:
        key = _totals_key(guild_id, user_id)
        current = self.state.user_totals.get(key)
        totals = replace(current) if current else UserTotals()
        self.state.user_totals[key] = totals
        self.dirty = True
        return totals

    def emit(self, event_type: StoreEventType, payload: Dict[str, Any]) -> None:
        self.events.append((event_type, payload))


# =============================================================================
# Case Store
# =============================================================================

class CaseStore:
    """
    Case repository with a serialized writer and lock-free readers.

    Objects returned by read methods belong to the committed state and
    must be treated as read-only.
    """

    def __init__(self, backend: StateBackend, clock: Callable[[], float] = time.time) -> None:
        self._backend = backend
        self._clock = clock
        self._state = _State()
        self._loaded = False
        self._lock = asyncio.Lock()
        self._last_timestamp = 0.0
        self.events = ModerationEventBus()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def load(self) -> None:
        """Read the backing store into memory. Safe to call more than once."""
        if self._loaded:
            return
        async with self._lock:
            await self._load_locked()

    async def _load_locked(self) -> None:
        if self._loaded:
            return
        try:
            raw = await asyncio.to_thread(self._backend.load)
        except PersistenceError as e:
            logger.error("Case Store Load Failed", [
                ("Backend", self._backend.name),
                ("Error", str(e)[:200]),
            ])
            raise

        self._state = _State.from_dict(raw)
        self._loaded = True
        for case in self._state.cases:
            for stamp in (case.updated_at, case.last_message_at):
                if stamp and stamp > self._last_timestamp:
                    self._last_timestamp = stamp

        logger.tree("Case Store Loaded", [
            ("Backend", self._backend.name),
            ("Cases", str(len(self._state.cases))),
            ("Members Tracked", str(len(self._state.user_totals))),
        ], emoji="🗄️")

    def close(self) -> None:
        self._backend.close()

    def on_moderation_store_event(self, listener: StoreListener) -> Callable[[], None]:
        return self.events.subscribe(listener)

    # =========================================================================
    # Transaction
    # =========================================================================

    def _now(self) -> float:
        """Clock reading forced strictly past the previous one."""
        now = float(self._clock())
        if now <= self._last_timestamp:
            now = self._last_timestamp + 1e-6
        self._last_timestamp = now
        return now

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[_Transaction]:
        async with self._lock:
            await self._load_locked()
            tx = _Transaction(self._state.fork())
            yield tx
            if not tx.dirty:
                return

            tx.state.cases.sort(key=lambda c: c.updated_at, reverse=True)
            _trim_case_list(tx.state.cases)
            tx.state.updated_at = self._last_timestamp

            await self._persist(tx.state)
            self._state = tx.state

            for event_type, payload in tx.events:
                self.events.publish(event_type, payload)

    async def _persist(self, state: _State) -> None:
        try:
            await asyncio.to_thread(self._backend.save, state.to_dict())
        except PersistenceError as e:
            logger.error("Case Store Save Failed", [
                ("Backend", self._backend.name),
                ("Error", str(e)[:200]),
            ])
            raise
        except Exception as e:
            logger.error("Case Store Save Failed", [
                ("Backend", self._backend.name),
                ("Error Type", type(e).__name__),
                ("Error", str(e)[:200]),
            ])
            raise PersistenceError(str(e)) from e

    def _stats_payload(self, tx: _Transaction) -> Dict[str, Any]:
        return self._snapshot(tx.state).to_dict()

    @staticmethod
    def _snapshot(state: _State) -> StatsSnapshot:
        return StatsSnapshot(
            updated_at=state.updated_at,
            warnings=state.stats.warnings,
            timeouts=state.stats.timeouts,
            bans=state.stats.bans,
            kicks=state.stats.kicks,
            cases=state.stats.cases,
        )

    def _emit_case_updated(self, tx: _Transaction, case: Case) -> None:
        tx.emit(StoreEventType.CASES_UPDATED, case.summary())
        tx.emit(StoreEventType.STATS_UPDATED, self._stats_payload(tx))

    # =========================================================================
    # Record Action
    # =========================================================================

    async def record_case(self, entry: CaseEntry) -> CaseRecordResult:
        """
        Record an enforcement action on the member's active moderation case.

        Reuses the active case if there is one, otherwise opens a new one.
        Appends a system message and the ActionRecord, writes one audit
        entry, and bumps member totals and global stats.

        Raises:
            ValidationError: guild_id, user_id or action missing/invalid.
            PersistenceError: Save failed; nothing was recorded.
        """
        action = normalize_action(entry.action)
        if not entry.guild_id or not entry.user_id or action is None:
            raise ValidationError("Invalid moderation case payload")

        guild_id = str(entry.guild_id)
        user_id = str(entry.user_id)
        moderator_id = str(entry.moderator_id) if entry.moderator_id else None
        reason = _clean_text(entry.reason)

        async with self._transaction() as tx:
            now = self._now()
            index = tx.find_active_index(guild_id, user_id, CaseCategory.MODERATION)
            created = index is None

            if created:
                case = Case(
                    id=new_id(),
                    guild_id=guild_id,
                    user_id=user_id,
                    created_at=now,
                    updated_at=now,
                    category=CaseCategory.MODERATION,
                    status=CaseStatus.OPEN,
                    guild_name=entry.guild_name,
                    user_tag=entry.user_tag,
                    source=entry.source or "system",
                    metadata={"reason": reason} if reason else {},
                    opened_by={
                        "type": "moderator" if moderator_id else "system",
                        "id": moderator_id or "system",
                        "tag": entry.moderator_tag,
                        "at": now,
                        "reason": reason,
                    },
                )
                ensure_participant(case, "member", user_id, entry.user_tag, now)
                tx.insert(case)
            else:
                case = tx.touch(index)
                if entry.user_tag:
                    case.user_tag = entry.user_tag
                if entry.guild_name:
                    case.guild_name = entry.guild_name

            ensure_participant(case, "moderator", moderator_id, entry.moderator_tag, now)

            record = ActionRecord(
                id=new_id(),
                type=action,
                created_at=now,
                reason=reason,
                duration_minutes=entry.duration_minutes if action is ActionType.TIMEOUT else None,
                moderator_id=moderator_id,
                moderator_tag=entry.moderator_tag,
                source=entry.source or "system",
                metadata=dict(entry.metadata or {}),
            )
            case.actions.append(record)
            _trim_head(case.actions, MAX_ACTIONS_PER_CASE)

            _append_message(case, CaseMessage(
                id=new_id(),
                author_type=AuthorType.SYSTEM,
                body=build_system_message(action, reason, record.duration_minutes),
                created_at=now,
                via="system",
            ))
            _append_audit(case, AuditEntry(
                id=new_id(),
                type=AuditType.ACTION,
                created_at=now,
                actor_type="moderator" if moderator_id else "system",
                actor_id=moderator_id,
                actor_tag=entry.moderator_tag,
                note=reason,
                ref_id=record.id,
            ))
            assign_subject(case, reason=reason, action=action)

            tx.state.stats.bump(action.stat_key)
            if created:
                tx.state.stats.bump("cases")

            totals = tx.totals(guild_id, user_id)
            if created or totals.cases == 0:
                totals.cases += 1
            totals.bump(action)
            totals.last_action_at = now

            if created:
                tx.emit(StoreEventType.CASE_CREATED, case.summary())
            self._emit_case_updated(tx, case)

        logger.tree("Case Action Recorded", [
            ("Case ID", case.id),
            ("Guild", guild_id),
            ("User", f"{entry.user_tag or 'Unknown'} ({user_id})"),
            ("Action", action.value),
            ("Source", record.source),
            ("New Case", "Yes" if created else "No"),
            ("Totals", f"{totals.warnings}W / {totals.timeouts}T / {totals.kicks}K / {totals.bans}B"),
        ], emoji="📋")

        return CaseRecordResult(case=case, action=record, totals=replace(totals), created=created)

    # =========================================================================
    # Member Cases
    # =========================================================================

    async def ensure_member_case(
        self,
        guild_id: Any,
        user_id: Any,
        *,
        category: Any = CaseCategory.MODERATION,
        initial_message: Optional[str] = None,
        user_tag: Optional[str] = None,
        guild_name: Optional[str] = None,
        reason: Optional[str] = None,
        ticket_type: Optional[str] = None,
        support_topic: Optional[str] = None,
        support_context: Optional[str] = None,
        intake_channel_id: Optional[Any] = None,
        allow_existing: bool = True,
        source: str = "member",
    ) -> EnsureCaseResult:
        """
        Find the member's active case in a category, or open one.

        With allow_existing=False a new case is always opened. An active
        case in the same category is closed first (with a status audit
        entry pointing at its replacement), so a member never holds two
        active cases in one category. An initial_message is appended as
        a member message and moves the case to pending-response.
        """
        if not guild_id or not user_id:
            raise ValidationError("guild_id and user_id are required to open a member case")

        guild_id = str(guild_id)
        user_id = str(user_id)
        normalized_category = normalize_category(category)
        body = _clean_text(initial_message)
        reason = _clean_text(reason)
        intake = str(intake_channel_id) if intake_channel_id else None

        async with self._transaction() as tx:
            index = tx.find_active_index(guild_id, user_id, normalized_category)
            superseded: Optional[Case] = None
            if index is not None and not allow_existing:
                superseded = tx.touch(index)
                index = None

            if index is not None:
                existing = tx.state.cases[index]
                updates: Dict[str, Any] = {}
                metadata_updates: Dict[str, Any] = {}
                if reason and not existing.metadata.get("reason"):
                    metadata_updates["reason"] = reason
                if support_topic and existing.metadata.get("support_topic") != support_topic:
                    metadata_updates["support_topic"] = support_topic
                if support_context and existing.metadata.get("support_context") != support_context:
                    metadata_updates["support_context"] = support_context
                if ticket_type and existing.ticket_type != str(ticket_type):
                    updates["ticket_type"] = str(ticket_type)
                if intake and existing.intake_channel_id != intake:
                    updates["intake_channel_id"] = intake

                if not body and not updates and not metadata_updates:
                    return_result = EnsureCaseResult(case=existing, created=False)
                else:
                    case = tx.touch(index)
                    now = self._now()
                    case.metadata.update(metadata_updates)
                    for name, value in updates.items():
                        setattr(case, name, value)
                    case.updated_at = now
                    ensure_participant(case, "member", user_id, user_tag, now)

                    message = None
                    if body:
                        message = CaseMessage(
                            id=new_id(),
                            author_type=AuthorType.MEMBER,
                            body=body,
                            created_at=now,
                            author_id=user_id,
                            author_tag=user_tag,
                            via="member",
                        )
                        _append_message(case, message)
                        changed = _apply_status(case, CaseStatus.PENDING_RESPONSE, now)
                        _append_audit(case, AuditEntry(
                            id=new_id(),
                            type=AuditType.MESSAGE,
                            created_at=now,
                            actor_type="member",
                            actor_id=user_id,
                            actor_tag=user_tag,
                            status=case.status if changed else None,
                            note="Member sent a new message when opening the case.",
                            ref_id=message.id,
                        ))
                        tx.emit(StoreEventType.CASE_MESSAGE, {
                            "guild_id": case.guild_id,
                            "case_id": case.id,
                            "message": message.to_dict(),
                        })
                    else:
                        _append_audit(case, AuditEntry(
                            id=new_id(),
                            type=AuditType.UPDATE,
                            created_at=now,
                            actor_type="member",
                            actor_id=user_id,
                            actor_tag=user_tag,
                            note="Case details updated: " + ", ".join(
                                sorted(list(updates) + list(metadata_updates))
                            ),
                        ))
                    self._emit_case_updated(tx, case)
                    return_result = EnsureCaseResult(case=case, created=False, message=message)
            else:
                replacement_id = new_id()
                if superseded is not None:
                    closed_at = self._now()
                    _apply_status(superseded, CaseStatus.CLOSED, closed_at)
                    _append_audit(superseded, AuditEntry(
                        id=new_id(),
                        type=AuditType.STATUS,
                        created_at=closed_at,
                        actor_type="system",
                        status=CaseStatus.CLOSED,
                        note=f"Superseded by case {replacement_id}.",
                        ref_id=replacement_id,
                    ))
                    tx.emit(StoreEventType.CASE_STATUS, superseded.summary())
                    self._emit_case_updated(tx, superseded)

                now = self._now()
                metadata: Dict[str, Any] = {}
                if reason:
                    metadata["reason"] = reason
                if support_topic:
                    metadata["support_topic"] = support_topic
                if support_context:
                    metadata["support_context"] = support_context

                case = Case(
                    id=replacement_id,
                    guild_id=guild_id,
                    user_id=user_id,
                    created_at=now,
                    updated_at=now,
                    category=normalized_category,
                    status=CaseStatus.PENDING_RESPONSE if body else CaseStatus.OPEN,
                    guild_name=guild_name,
                    user_tag=user_tag,
                    source=source or "member",
                    ticket_type=str(ticket_type) if ticket_type else None,
                    intake_channel_id=intake,
                    metadata=metadata,
                    opened_by={"type": "member", "id": user_id, "tag": user_tag, "at": now, "reason": reason},
                )
                ensure_participant(case, "member", user_id, user_tag, now)

                message = None
                if body:
                    message = CaseMessage(
                        id=new_id(),
                        author_type=AuthorType.MEMBER,
                        body=body,
                        created_at=now,
                        author_id=user_id,
                        author_tag=user_tag,
                        via="member",
                    )
                    _append_message(case, message)
                case.last_message_at = message.created_at if message else now
                assign_subject(case, support_topic=support_topic, reason=reason)

                _append_audit(case, AuditEntry(
                    id=new_id(),
                    type=AuditType.CREATED,
                    created_at=now,
                    actor_type="member",
                    actor_id=user_id,
                    actor_tag=user_tag,
                    status=case.status,
                    note="Member opened a new case.",
                    ref_id=message.id if message else None,
                ))
                tx.insert(case)
                tx.state.stats.bump("cases")
                totals = tx.totals(guild_id, user_id)
                totals.cases += 1

                tx.emit(StoreEventType.CASE_CREATED, case.summary())
                if message:
                    tx.emit(StoreEventType.CASE_MESSAGE, {
                        "guild_id": case.guild_id,
                        "case_id": case.id,
                        "message": message.to_dict(),
                    })
                self._emit_case_updated(tx, case)
                return_result = EnsureCaseResult(case=case, created=True, message=message)

        if return_result.created:
            logger.tree("Member Case Opened", [
                ("Case ID", return_result.case.id),
                ("Guild", guild_id),
                ("User", f"{user_tag or 'Unknown'} ({user_id})"),
                ("Category", normalized_category.value),
                ("Status", return_result.case.status.value),
                ("Superseded", superseded.id if superseded else "None"),
            ], emoji="📂")
        return return_result

    # =========================================================================
    # Messages
    # =========================================================================

    async def append_case_message(
        self,
        guild_id: Optional[Any],
        case_id: str,
        author_type: Any,
        body: Optional[str],
        author_id: Optional[Any] = None,
        author_tag: Optional[str] = None,
        via: Optional[str] = None,
    ) -> Optional[CaseMessage]:
        """
        Append a message to a case.

        Bot-authored messages are dropped and return None. A member
        message moves a non-terminal case to pending-response; a
        moderator message moves it to open. Terminal cases keep their
        status.

        Raises:
            EmptyMessage: body is empty after trimming.
            CaseNotFound: no such case (in that guild).
        """
        text = _clean_text(body)
        if not text:
            raise EmptyMessage()

        kind = normalize_author_type(author_type)
        if kind is AuthorType.BOT:
            return None

        guild = str(guild_id) if guild_id else None
        author = str(author_id) if author_id else None

        async with self._transaction() as tx:
            index = tx.find_index(guild, case_id)
            if index is None:
                raise CaseNotFound()
            case = tx.touch(index)
            now = self._now()

            message = CaseMessage(
                id=new_id(),
                author_type=kind,
                body=text,
                created_at=now,
                author_id=author,
                author_tag=author_tag,
                via=via,
            )
            _append_message(case, message)

            changed = False
            if case.is_active:
                if kind is AuthorType.MEMBER:
                    changed = _apply_status(case, CaseStatus.PENDING_RESPONSE, now)
                elif kind is AuthorType.MODERATOR:
                    changed = _apply_status(case, CaseStatus.OPEN, now)

            _append_audit(case, AuditEntry(
                id=new_id(),
                type=AuditType.MESSAGE,
                created_at=now,
                actor_type=kind.value,
                actor_id=author,
                actor_tag=author_tag,
                status=case.status if changed else None,
                ref_id=message.id,
            ))

            tx.emit(StoreEventType.CASE_MESSAGE, {
                "guild_id": case.guild_id,
                "case_id": case.id,
                "message": message.to_dict(),
            })
            if changed:
                tx.emit(StoreEventType.CASE_STATUS, case.summary())
            self._emit_case_updated(tx, case)

        logger.debug("Case Message Appended", [
            ("Case ID", case.id),
            ("Author", f"{kind.value} {author or ''}".strip()),
            ("Via", via or "unknown"),
        ])
        return message

    # =========================================================================
    # Status / Assignment / SLA
    # =========================================================================

    async def update_case_status(
        self,
        guild_id: Optional[Any],
        case_id: str,
        status: Any,
        actor_type: str = "system",
        actor_id: Optional[Any] = None,
        actor_tag: Optional[str] = None,
        note: Optional[str] = None,
    ) -> Case:
        """
        Change a case's status.

        Setting the current status without a note is a no-op and writes
        nothing. A note alone still writes an audit entry.

        Raises:
            InvalidStatus: status does not normalize.
            CaseNotFound: no such case.
            ActiveCaseConflict: reopening would leave two active cases
                in the same category.
        """
        normalized = normalize_status(status)
        if normalized is None:
            raise InvalidStatus(f"Invalid case status: {status}")

        guild = str(guild_id) if guild_id else None
        note = _clean_text(note)

        async with self._transaction() as tx:
            index = tx.find_index(guild, case_id)
            if index is None:
                raise CaseNotFound()

            case = tx.state.cases[index]
            if case.status is normalized and not note:
                return case

            if case.status.is_terminal and not normalized.is_terminal:
                active = tx.find_active_index(case.guild_id, case.user_id, case.category)
                if active is not None:
                    raise ActiveCaseConflict(
                        f"Case {tx.state.cases[active].id} is already active for this member"
                    )

            case = tx.touch(index)
            now = self._now()
            previous = case.status
            _apply_status(case, normalized, now)
            case.updated_at = now
            _append_audit(case, AuditEntry(
                id=new_id(),
                type=AuditType.STATUS,
                created_at=now,
                actor_type=actor_type,
                actor_id=str(actor_id) if actor_id else None,
                actor_tag=actor_tag,
                status=normalized,
                note=note,
            ))
            tx.emit(StoreEventType.CASE_STATUS, case.summary())
            self._emit_case_updated(tx, case)

        logger.tree("Case Status Changed", [
            ("Case ID", case.id),
            ("From", previous.value),
            ("To", normalized.value),
            ("Actor", f"{actor_type} {actor_tag or actor_id or ''}".strip()),
        ], emoji="🔖")
        return case

    async def set_case_assignee(
        self,
        guild_id: Optional[Any],
        case_id: str,
        assignee: Optional[CaseAssignee],
        actor_type: str = "moderator",
        actor_id: Optional[Any] = None,
        actor_tag: Optional[str] = None,
    ) -> Case:
        """Assign a moderator to a case, or clear the assignment with None."""
        guild = str(guild_id) if guild_id else None

        async with self._transaction() as tx:
            index = tx.find_index(guild, case_id)
            if index is None:
                raise CaseNotFound()
            if tx.state.cases[index].assignee == assignee:
                return tx.state.cases[index]

            case = tx.touch(index)
            now = self._now()
            case.assignee = replace(assignee) if assignee else None
            case.updated_at = now
            if assignee:
                note = f"Assigned to {assignee.display_name or assignee.tag or assignee.id}."
                ensure_participant(case, "moderator", assignee.id, assignee.tag, now)
            else:
                note = "Assignment cleared."
            _append_audit(case, AuditEntry(
                id=new_id(),
                type=AuditType.ASSIGNMENT,
                created_at=now,
                actor_type=actor_type,
                actor_id=str(actor_id) if actor_id else None,
                actor_tag=actor_tag,
                note=note,
                ref_id=assignee.id if assignee else None,
            ))
            tx.emit(StoreEventType.CASE_ASSIGNMENT, {
                "guild_id": case.guild_id,
                "case_id": case.id,
                "assignee": case.assignee.to_dict() if case.assignee else None,
            })
            self._emit_case_updated(tx, case)

        logger.info("Case Assignee Updated", [
            ("Case ID", case.id),
            ("Assignee", case.assignee.id if case.assignee else "None"),
        ])
        return case

    async def update_case_sla(
        self,
        guild_id: Optional[Any],
        case_id: str,
        due_at: Optional[float],
        actor_type: str = "moderator",
        actor_id: Optional[Any] = None,
        actor_tag: Optional[str] = None,
    ) -> Case:
        """Set or clear the case's response deadline (epoch seconds)."""
        guild = str(guild_id) if guild_id else None

        async with self._transaction() as tx:
            index = tx.find_index(guild, case_id)
            if index is None:
                raise CaseNotFound()

            case = tx.touch(index)
            now = self._now()
            case.sla.due_at = float(due_at) if due_at is not None else None
            case.sla.completed_at = now if (due_at is not None and not case.is_active) else None
            case.updated_at = now
            _append_audit(case, AuditEntry(
                id=new_id(),
                type=AuditType.SLA,
                created_at=now,
                actor_type=actor_type,
                actor_id=str(actor_id) if actor_id else None,
                actor_tag=actor_tag,
                note="SLA cleared." if due_at is None else f"SLA due at {case.sla.due_at:.0f}.",
            ))
            tx.emit(StoreEventType.CASE_SLA, {
                "guild_id": case.guild_id,
                "case_id": case.id,
                "sla": case.sla.to_dict(),
                "state": case.sla_state(now).value,
            })
            self._emit_case_updated(tx, case)

        return case

    # =========================================================================
    # Delete
    # =========================================================================

    async def delete_case(
        self,
        guild_id: Optional[Any],
        case_id: str,
        actor_type: str = "system",
        actor_id: Optional[Any] = None,
        actor_tag: Optional[str] = None,
    ) -> Case:
        """
        Remove a case, take its actions out of the global stats, and
        rebuild the member's totals from whatever cases remain.
        """
        if not case_id:
            raise ValidationError("Case ID is required to delete a case")
        guild = str(guild_id) if guild_id else None

        async with self._transaction() as tx:
            index = tx.find_index(guild, case_id)
            if index is None:
                raise CaseNotFound()
            removed = tx.remove(index)

            tx.state.stats.bump("cases", -1)
            for action in removed.actions:
                tx.state.stats.bump(action.type.stat_key, -1)

            key = _totals_key(removed.guild_id, removed.user_id)
            rebuilt = rebuild_user_totals(tx.state.cases, removed.guild_id, removed.user_id)
            if rebuilt is None:
                tx.state.user_totals.pop(key, None)
            else:
                tx.state.user_totals[key] = rebuilt

            payload = {
                "guild_id": removed.guild_id,
                "case_id": removed.id,
                "actor_id": str(actor_id) if actor_id else None,
                "actor_tag": actor_tag,
                "actor_type": actor_type,
            }
            tx.emit(StoreEventType.CASE_DELETED, payload)
            tx.emit(StoreEventType.CASES_UPDATED, {**payload, "deleted": True})
            tx.emit(StoreEventType.STATS_UPDATED, self._stats_payload(tx))

        logger.tree("Case Deleted", [
            ("Case ID", removed.id),
            ("Guild", removed.guild_id),
            ("User", removed.user_id),
            ("Actions Removed", str(len(removed.actions))),
            ("Actor", f"{actor_type} {actor_tag or actor_id or ''}".strip()),
        ], emoji="🗑️")
        return removed

    # =========================================================================
    # Reads
    # =========================================================================

    async def list_cases(
        self,
        guild_id: Any,
        status: Optional[Any] = None,
        category: Optional[Any] = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> List[Case]:
        """Cases for a guild, most recently updated first. Unknown status yields []."""
        await self.load()
        guild = str(guild_id)
        items = [c for c in self._state.cases if c.guild_id == guild]

        if status is not None and str(status).strip().lower() != "all":
            normalized = normalize_status(status)
            if normalized is None:
                return []
            items = [c for c in items if c.status is normalized]

        if category is not None and str(getattr(category, "value", category)).strip().lower() != "all":
            wanted = normalize_category(category)
            items = [c for c in items if c.category is wanted]

        items.sort(key=lambda c: c.updated_at, reverse=True)
        return items[:max(0, min(int(limit), MAX_CASES))]

    async def get_case(self, case_id: str) -> Optional[Case]:
        await self.load()
        return next((c for c in self._state.cases if c.id == case_id), None)

    async def get_case_for_guild(self, guild_id: Any, case_id: str) -> Optional[Case]:
        await self.load()
        guild = str(guild_id)
        return next((c for c in self._state.cases if c.id == case_id and c.guild_id == guild), None)

    async def find_active_case_for_member(self, user_id: Any) -> Optional[Case]:
        """Newest active case for the member in any guild, else their newest case."""
        await self.load()
        user = str(user_id)
        related = sorted(
            (c for c in self._state.cases if c.user_id == user),
            key=lambda c: c.updated_at,
            reverse=True,
        )
        for case in related:
            if case.is_active:
                return case
        return related[0] if related else None

    async def get_stats(self) -> StatsSnapshot:
        await self.load()
        return self._snapshot(self._state)

    async def get_recent_cases(self, limit: int = DEFAULT_LIST_LIMIT) -> List[Case]:
        await self.load()
        return self._state.cases[:max(0, min(int(limit), MAX_CASES))]

    async def get_user_totals(self, guild_id: Any, user_id: Any) -> UserTotals:
        if not guild_id or not user_id:
            return UserTotals()
        await self.load()
        totals = self._state.user_totals.get(_totals_key(str(guild_id), str(user_id)))
        return replace(totals) if totals else UserTotals()


def _trim_case_list(cases: List[Case]) -> None:
    """Cases are sorted newest first, so the oldest sit at the tail."""
    if len(cases) > MAX_CASES:
        del cases[MAX_CASES:]


__all__ = [
    "CaseStore",
    "assign_subject",
    "build_system_message",
    "ensure_participant",
    "rebuild_user_totals",
]
