"""
Case Warden - Error Types
=========================

Exception hierarchy for the moderation core.

DESIGN:
    Every error carries an ErrorCode so a host (bot command, dashboard
    route) can map it to a response without string matching.

    - ValidationError: bad input, surfaced, never retried
    - NotFoundError: case/guild/member absent, surfaced
    - ModerationPermissionError: platform refused the action; nothing is recorded
    - NotificationError: DM failed; the engine swallows it
    - PersistenceError: backing store failed; in-memory state stays at last commit

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

from enum import Enum
from typing import Optional


# =============================================================================
# Error Codes
# =============================================================================

class ErrorCode(str, Enum):
    """Stable error codes, format CATEGORY_SPECIFIC_ERROR."""

    VALIDATION_FAILED = "VALIDATION_FAILED"
    CASE_EMPTY_MESSAGE = "CASE_EMPTY_MESSAGE"
    CASE_INVALID_STATUS = "CASE_INVALID_STATUS"
    CASE_ACTIVE_CONFLICT = "CASE_ACTIVE_CONFLICT"

    NOT_FOUND = "NOT_FOUND"
    CASE_NOT_FOUND = "CASE_NOT_FOUND"
    MEMBER_NOT_RESOLVABLE = "MEMBER_NOT_RESOLVABLE"

    PERMISSION_DENIED = "PERMISSION_DENIED"
    MEMBER_NOT_MODERATABLE = "MEMBER_NOT_MODERATABLE"

    NOTIFICATION_FAILED = "NOTIFICATION_FAILED"
    PERSISTENCE_FAILED = "PERSISTENCE_FAILED"


# =============================================================================
# Base
# =============================================================================

class ModerationError(Exception):
    """Base class for all moderation core errors."""

    code: ErrorCode = ErrorCode.VALIDATION_FAILED
    default_message: str = "Moderation error"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code.value}, message={self.message!r})"


# =============================================================================
# Validation
# =============================================================================

class ValidationError(ModerationError):
    code = ErrorCode.VALIDATION_FAILED
    default_message = "Invalid moderation payload"


class EmptyMessage(ValidationError):
    code = ErrorCode.CASE_EMPTY_MESSAGE
    default_message = "Message body cannot be empty"


class InvalidStatus(ValidationError):
    code = ErrorCode.CASE_INVALID_STATUS
    default_message = "Invalid case status"


class ActiveCaseConflict(ValidationError):
    code = ErrorCode.CASE_ACTIVE_CONFLICT
    default_message = "Member already has an active case in this category"


# =============================================================================
# Not Found
# =============================================================================

class NotFoundError(ModerationError):
    code = ErrorCode.NOT_FOUND
    default_message = "Not found"


class CaseNotFound(NotFoundError):
    code = ErrorCode.CASE_NOT_FOUND
    default_message = "Case not found"


class MemberNotResolvable(NotFoundError):
    code = ErrorCode.MEMBER_NOT_RESOLVABLE
    default_message = "Unable to resolve member"


# =============================================================================
# Platform
# =============================================================================

class ModerationPermissionError(ModerationError):
    code = ErrorCode.PERMISSION_DENIED
    default_message = "Platform refused the moderation action"


class NotModeratable(ModerationPermissionError):
    code = ErrorCode.MEMBER_NOT_MODERATABLE
    default_message = "Missing permissions or hierarchy issue"


class NotificationError(ModerationError):
    code = ErrorCode.NOTIFICATION_FAILED
    default_message = "Direct message could not be delivered"


# =============================================================================
# Persistence
# =============================================================================

class PersistenceError(ModerationError):
    code = ErrorCode.PERSISTENCE_FAILED
    default_message = "Case store could not be persisted"


__all__ = [
    "ErrorCode",
    "ModerationError",
    "ValidationError",
    "EmptyMessage",
    "InvalidStatus",
    "ActiveCaseConflict",
    "NotFoundError",
    "CaseNotFound",
    "MemberNotResolvable",
    "ModerationPermissionError",
    "NotModeratable",
    "NotificationError",
    "PersistenceError",
]
