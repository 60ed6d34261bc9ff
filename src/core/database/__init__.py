"""
Case Warden - Database Module
=============================

Case store, persistence backends and the store event bus.

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

from src.core.database.base import (
    StateBackend,
    MemoryBackend,
    JsonFileBackend,
    SqliteBackend,
    create_backend,
)
from src.core.database.events import (
    ModerationEventBus,
    StoreEvent,
    StoreEventType,
)
from src.core.database.cases import CaseStore
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
    CaseSla,
    CaseStatus,
    EnsureCaseResult,
    SlaState,
    StatsSnapshot,
    UserTotals,
    normalize_category,
    normalize_status,
)

__all__ = [
    # Store
    "CaseStore",

    # Backends
    "StateBackend",
    "MemoryBackend",
    "JsonFileBackend",
    "SqliteBackend",
    "create_backend",

    # Events
    "ModerationEventBus",
    "StoreEvent",
    "StoreEventType",

    # Models
    "ActionRecord",
    "ActionType",
    "AuditEntry",
    "AuditType",
    "AuthorType",
    "Case",
    "CaseAssignee",
    "CaseCategory",
    "CaseEntry",
    "CaseMessage",
    "CaseRecordResult",
    "CaseSla",
    "CaseStatus",
    "EnsureCaseResult",
    "SlaState",
    "StatsSnapshot",
    "UserTotals",
    "normalize_category",
    "normalize_status",
]
