"""
Case Warden - Case Store Models
===============================

Enums and dataclasses for cases, actions, messages, audit entries and
aggregate totals, plus their JSON-compatible serialization.

DESIGN:
    Status, category and action strings are normalized once at the input
    boundary (normalize_status / normalize_category / normalize_action).
    Everything past that boundary works with the enums.

    from_dict() never trims bounded collections. Trimming is a write-path
    concern and happens only when the store mutates a case.

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

import secrets
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from src.core.constants import SLA_DUE_SOON_WINDOW


# =============================================================================
# Enums
# =============================================================================

class CaseStatus(str, Enum):
    OPEN = "open"
    PENDING_RESPONSE = "pending-response"
    PENDING = "pending"
    ESCALATED = "escalated"
    CLOSED = "closed"
    ARCHIVED = "archived"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({CaseStatus.CLOSED, CaseStatus.ARCHIVED})

STATUS_ALIASES: Dict[str, CaseStatus] = {
    "pendingresponse": CaseStatus.PENDING_RESPONSE,
    "pending_response": CaseStatus.PENDING_RESPONSE,
    "waiting": CaseStatus.PENDING_RESPONSE,
    "archive": CaseStatus.ARCHIVED,
}


class CaseCategory(str, Enum):
    MODERATION = "moderation"
    TICKET = "ticket"


class ActionType(str, Enum):
    WARN = "warn"
    TIMEOUT = "timeout"
    KICK = "kick"
    BAN = "ban"

    @property
    def stat_key(self) -> str:
        return ACTION_STAT_KEYS[self]


ACTION_STAT_KEYS: Dict[ActionType, str] = {
    ActionType.WARN: "warnings",
    ActionType.TIMEOUT: "timeouts",
    ActionType.KICK: "kicks",
    ActionType.BAN: "bans",
}


class AuthorType(str, Enum):
    MEMBER = "member"
    MODERATOR = "moderator"
    SYSTEM = "system"
    BOT = "bot"


class AuditType(str, Enum):
    CREATED = "created"
    ACTION = "action"
    MESSAGE = "message"
    STATUS = "status"
    ASSIGNMENT = "assignment"
    SLA = "sla"
    UPDATE = "update"


class SlaState(str, Enum):
    NONE = "none"
    MET = "met"
    OVERDUE = "overdue"
    DUE_SOON = "due-soon"
    PENDING = "pending"


# =============================================================================
# Normalization
# =============================================================================

def normalize_status(value: Any) -> Optional[CaseStatus]:
    """Map a status string (or alias) to CaseStatus. None if unknown."""
    if isinstance(value, CaseStatus):
        return value
    if not isinstance(value, str):
        return None
    key = value.strip().lower()
    if key in STATUS_ALIASES:
        return STATUS_ALIASES[key]
    try:
        return CaseStatus(key)
    except ValueError:
        return None


def normalize_category(value: Any) -> CaseCategory:
    """"ticket"/"tickets" map to TICKET, anything else to MODERATION."""
    if isinstance(value, CaseCategory):
        return value
    if isinstance(value, str) and value.strip().lower() in ("ticket", "tickets"):
        return CaseCategory.TICKET
    return CaseCategory.MODERATION


def normalize_action(value: Any) -> Optional[ActionType]:
    if isinstance(value, ActionType):
        return value
    if not isinstance(value, str):
        return None
    try:
        return ActionType(value.strip().lower())
    except ValueError:
        return None


def normalize_author_type(value: Any) -> AuthorType:
    if isinstance(value, AuthorType):
        return value
    if isinstance(value, str):
        try:
            return AuthorType(value.strip().lower())
        except ValueError:
            pass
    return AuthorType.SYSTEM


def new_id() -> str:
    """16 hex chars, same shape as existing case IDs."""
    return secrets.token_hex(8)


def _str_or_none(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _float_or_none(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _int(value: Any, default: int = 0) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return default


# =============================================================================
# Case Parts
# =============================================================================

@dataclass
class ActionRecord:
    """One enforcement event. Never modified after it is appended."""

    id: str
    type: ActionType
    created_at: float
    reason: Optional[str] = None
    duration_minutes: Optional[int] = None
    moderator_id: Optional[str] = None
    moderator_tag: Optional[str] = None
    source: str = "system"
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "created_at": self.created_at,
            "reason": self.reason,
            "duration_minutes": self.duration_minutes,
            "moderator_id": self.moderator_id,
            "moderator_tag": self.moderator_tag,
            "source": self.source,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> Optional["ActionRecord"]:
        action = normalize_action(raw.get("type"))
        if action is None:
            return None
        duration = raw.get("duration_minutes")
        return cls(
            id=str(raw.get("id") or new_id()),
            type=action,
            created_at=_float_or_none(raw.get("created_at")) or 0.0,
            reason=raw.get("reason"),
            duration_minutes=int(duration) if duration is not None else None,
            moderator_id=_str_or_none(raw.get("moderator_id")),
            moderator_tag=raw.get("moderator_tag"),
            source=raw.get("source") or "system",
            metadata=dict(raw.get("metadata") or {}),
        )


@dataclass
class CaseMessage:
    id: str
    author_type: AuthorType
    body: str
    created_at: float
    author_id: Optional[str] = None
    author_tag: Optional[str] = None
    via: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "author_type": self.author_type.value,
            "author_id": self.author_id,
            "author_tag": self.author_tag,
            "body": self.body,
            "via": self.via,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "CaseMessage":
        return cls(
            id=str(raw.get("id") or new_id()),
            author_type=normalize_author_type(raw.get("author_type")),
            body=str(raw.get("body") or ""),
            created_at=_float_or_none(raw.get("created_at")) or 0.0,
            author_id=_str_or_none(raw.get("author_id")),
            author_tag=raw.get("author_tag"),
            via=raw.get("via"),
        )


@dataclass
class AuditEntry:
    """
    One entry in a case's audit trail.

    `status` is set when the entry records a status change, including a
    change folded into a message or action entry.
    """

    id: str
    type: AuditType
    created_at: float
    actor_type: str = "system"
    actor_id: Optional[str] = None
    actor_tag: Optional[str] = None
    status: Optional[CaseStatus] = None
    note: Optional[str] = None
    ref_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "created_at": self.created_at,
            "actor_type": self.actor_type,
            "actor_id": self.actor_id,
            "actor_tag": self.actor_tag,
            "status": self.status.value if self.status else None,
            "note": self.note,
            "ref_id": self.ref_id,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "AuditEntry":
        try:
            audit_type = AuditType(raw.get("type"))
        except ValueError:
            audit_type = AuditType.UPDATE
        return cls(
            id=str(raw.get("id") or new_id()),
            type=audit_type,
            created_at=_float_or_none(raw.get("created_at")) or 0.0,
            actor_type=raw.get("actor_type") or "system",
            actor_id=_str_or_none(raw.get("actor_id")),
            actor_tag=raw.get("actor_tag"),
            status=normalize_status(raw.get("status")),
            note=raw.get("note"),
            ref_id=raw.get("ref_id"),
        )


@dataclass
class Participant:
    type: str
    id: str
    tag: Optional[str] = None
    added_at: Optional[float] = None

    @property
    def key(self) -> str:
        return f"{self.type}:{self.id}"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "id": self.id, "tag": self.tag, "added_at": self.added_at}

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> Optional["Participant"]:
        if not raw.get("id"):
            return None
        return cls(
            type=str(raw.get("type") or "member"),
            id=str(raw["id"]),
            tag=raw.get("tag"),
            added_at=_float_or_none(raw.get("added_at")),
        )


@dataclass
class CaseAssignee:
    id: str
    tag: Optional[str] = None
    display_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "tag": self.tag, "display_name": self.display_name}

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> Optional["CaseAssignee"]:
        if not raw or not raw.get("id"):
            return None
        return cls(id=str(raw["id"]), tag=raw.get("tag"), display_name=raw.get("display_name"))


@dataclass
class CaseSla:
    due_at: Optional[float] = None
    completed_at: Optional[float] = None

    def state(self, now: float) -> SlaState:
        if self.due_at is None:
            return SlaState.NONE
        if self.completed_at is not None:
            return SlaState.MET if self.completed_at <= self.due_at else SlaState.OVERDUE
        if now > self.due_at:
            return SlaState.OVERDUE
        if self.due_at - now <= SLA_DUE_SOON_WINDOW:
            return SlaState.DUE_SOON
        return SlaState.PENDING

    def to_dict(self) -> Dict[str, Any]:
        return {"due_at": self.due_at, "completed_at": self.completed_at}

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> "CaseSla":
        raw = raw or {}
        return cls(
            due_at=_float_or_none(raw.get("due_at")),
            completed_at=_float_or_none(raw.get("completed_at")),
        )


# =============================================================================
# Case
# =============================================================================

@dataclass
class Case:
    """A moderation or support thread for one member in one guild."""

    id: str
    guild_id: str
    user_id: str
    created_at: float
    updated_at: float
    category: CaseCategory = CaseCategory.MODERATION
    status: CaseStatus = CaseStatus.OPEN
    last_message_at: Optional[float] = None
    subject: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    ticket_type: Optional[str] = None
    guild_name: Optional[str] = None
    user_tag: Optional[str] = None
    source: str = "system"
    opened_by: Dict[str, Any] = field(default_factory=dict)
    intake_channel_id: Optional[str] = None
    unread_count: int = 0
    assignee: Optional[CaseAssignee] = None
    sla: CaseSla = field(default_factory=CaseSla)
    actions: List[ActionRecord] = field(default_factory=list)
    messages: List[CaseMessage] = field(default_factory=list)
    audit_log: List[AuditEntry] = field(default_factory=list)
    participants: List[Participant] = field(default_factory=list)

    @property
    def is_active(self) -> bool:
        return not self.status.is_terminal

    def sla_state(self, now: float) -> SlaState:
        return self.sla.state(now)

    def summary(self) -> Dict[str, Any]:
        """Compact payload for cases:updated / case:created / case:status events."""
        return {
            "guild_id": self.guild_id,
            "case_id": self.id,
            "status": self.status.value,
            "updated_at": self.updated_at,
            "unread_count": self.unread_count,
            "subject": self.subject,
            "user_id": self.user_id,
            "user_tag": self.user_tag,
            "last_message_at": self.last_message_at,
            "category": self.category.value,
            "ticket_type": self.ticket_type,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "guild_id": self.guild_id,
            "guild_name": self.guild_name,
            "user_id": self.user_id,
            "user_tag": self.user_tag,
            "category": self.category.value,
            "status": self.status.value,
            "source": self.source,
            "opened_by": dict(self.opened_by),
            "ticket_type": self.ticket_type,
            "intake_channel_id": self.intake_channel_id,
            "subject": self.subject,
            "metadata": dict(self.metadata),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "last_message_at": self.last_message_at,
            "unread_count": self.unread_count,
            "assignee": self.assignee.to_dict() if self.assignee else None,
            "sla": self.sla.to_dict(),
            "actions": [a.to_dict() for a in self.actions],
            "messages": [m.to_dict() for m in self.messages],
            "audit_log": [e.to_dict() for e in self.audit_log],
            "participants": [p.to_dict() for p in self.participants],
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> Optional["Case"]:
        """Rebuild a case from storage. Returns None for unusable records."""
        if not raw.get("id") or not raw.get("guild_id") or not raw.get("user_id"):
            return None
        created_at = _float_or_none(raw.get("created_at")) or 0.0
        actions = [a for a in (ActionRecord.from_dict(x) for x in raw.get("actions") or []) if a]
        participants = [
            p for p in (Participant.from_dict(x) for x in raw.get("participants") or []) if p
        ]
        return cls(
            id=str(raw["id"]),
            guild_id=str(raw["guild_id"]),
            user_id=str(raw["user_id"]),
            created_at=created_at,
            updated_at=_float_or_none(raw.get("updated_at")) or created_at,
            category=normalize_category(raw.get("category")),
            status=normalize_status(raw.get("status")) or CaseStatus.OPEN,
            last_message_at=_float_or_none(raw.get("last_message_at")),
            subject=raw.get("subject"),
            metadata=dict(raw.get("metadata") or {}),
            ticket_type=_str_or_none(raw.get("ticket_type")),
            guild_name=raw.get("guild_name"),
            user_tag=raw.get("user_tag"),
            source=raw.get("source") or "system",
            opened_by=dict(raw.get("opened_by") or {}),
            intake_channel_id=_str_or_none(raw.get("intake_channel_id")),
            unread_count=_int(raw.get("unread_count")),
            assignee=CaseAssignee.from_dict(raw.get("assignee")),
            sla=CaseSla.from_dict(raw.get("sla")),
            actions=actions,
            messages=[CaseMessage.from_dict(x) for x in raw.get("messages") or []],
            audit_log=[AuditEntry.from_dict(x) for x in raw.get("audit_log") or []],
            participants=participants,
        )


# =============================================================================
# Aggregates
# =============================================================================

@dataclass
class UserTotals:
    """Cumulative counters for one (guild, user) pair."""

    warnings: int = 0
    timeouts: int = 0
    bans: int = 0
    kicks: int = 0
    cases: int = 0
    last_action_at: Optional[float] = None

    def bump(self, action: ActionType) -> None:
        key = action.stat_key
        setattr(self, key, getattr(self, key) + 1)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "warnings": self.warnings,
            "timeouts": self.timeouts,
            "bans": self.bans,
            "kicks": self.kicks,
            "cases": self.cases,
            "last_action_at": self.last_action_at,
        }

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> "UserTotals":
        raw = raw or {}
        return cls(
            warnings=_int(raw.get("warnings")),
            timeouts=_int(raw.get("timeouts")),
            bans=_int(raw.get("bans")),
            kicks=_int(raw.get("kicks")),
            cases=_int(raw.get("cases")),
            last_action_at=_float_or_none(raw.get("last_action_at")),
        )


@dataclass
class ModerationStats:
    """Global per-action counters."""

    warnings: int = 0
    timeouts: int = 0
    bans: int = 0
    kicks: int = 0
    cases: int = 0

    def bump(self, key: str, delta: int = 1) -> None:
        setattr(self, key, max(0, getattr(self, key) + delta))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "warnings": self.warnings,
            "timeouts": self.timeouts,
            "bans": self.bans,
            "kicks": self.kicks,
            "cases": self.cases,
        }

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]], case_count: int = 0) -> "ModerationStats":
        raw = raw or {}
        return cls(
            warnings=_int(raw.get("warnings")),
            timeouts=_int(raw.get("timeouts")),
            bans=_int(raw.get("bans")),
            kicks=_int(raw.get("kicks")),
            cases=_int(raw.get("cases"), case_count) if "cases" in raw else case_count,
        )


@dataclass(frozen=True)
class StatsSnapshot:
    updated_at: Optional[float]
    warnings: int
    timeouts: int
    bans: int
    kicks: int
    cases: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "updated_at": self.updated_at,
            "warnings": self.warnings,
            "timeouts": self.timeouts,
            "bans": self.bans,
            "kicks": self.kicks,
            "cases": self.cases,
        }


# =============================================================================
# Store Inputs / Results
# =============================================================================

@dataclass
class CaseEntry:
    """Input to CaseStore.record_case()."""

    guild_id: str
    user_id: str
    action: ActionType
    reason: Optional[str] = None
    duration_minutes: Optional[int] = None
    moderator_id: Optional[str] = None
    moderator_tag: Optional[str] = None
    source: str = "system"
    metadata: Dict[str, Any] = field(default_factory=dict)
    guild_name: Optional[str] = None
    user_tag: Optional[str] = None


@dataclass
class CaseRecordResult:
    case: Case
    action: ActionRecord
    totals: UserTotals
    created: bool


@dataclass
class EnsureCaseResult:
    case: Case
    created: bool
    message: Optional[CaseMessage] = None


__all__ = [
    "CaseStatus",
    "TERMINAL_STATUSES",
    "STATUS_ALIASES",
    "CaseCategory",
    "ActionType",
    "ACTION_STAT_KEYS",
    "AuthorType",
    "AuditType",
    "SlaState",
    "normalize_status",
    "normalize_category",
    "normalize_action",
    "normalize_author_type",
    "new_id",
    "ActionRecord",
    "CaseMessage",
    "AuditEntry",
    "Participant",
    "CaseAssignee",
    "CaseSla",
    "Case",
    "UserTotals",
    "ModerationStats",
    "StatsSnapshot",
    "CaseEntry",
    "CaseRecordResult",
    "EnsureCaseResult",
]
