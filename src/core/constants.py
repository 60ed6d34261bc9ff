"""
Case Warden - Centralized Constants
===================================

Magic numbers for the case store and detection layers.
Import from here instead of hardcoding values.

Author: John Hamwi
Server: discord.gg/syria
"""

# =============================================================================
# Time Constants (in seconds)
# =============================================================================

SECONDS_PER_DAY = 86400

# =============================================================================
# Case Store Capacity
# =============================================================================

MAX_CASES = 500                       # Cases kept in the store
MAX_MESSAGES_PER_CASE = 400           # Oldest trimmed first
MAX_ACTIONS_PER_CASE = 100            # Oldest trimmed first
MAX_AUDIT_LOG_ENTRIES = 400           # Oldest trimmed first
MAX_PARTICIPANTS = 25                 # Deduplicated by (type, id)

SUBJECT_MAX_LENGTH = 200
SUBJECT_MESSAGE_PREVIEW = 80          # Member message used as subject

DEFAULT_LIST_LIMIT = 50

# =============================================================================
# SLA
# =============================================================================

SLA_DUE_SOON_WINDOW = SECONDS_PER_DAY  # "due-soon" when due within 24 hours

# =============================================================================
# Spam Detection
# =============================================================================

LEGACY_SPAM_WINDOW = 60               # Per-minute message bucket
SPAM_WINDOW_DEFAULT = 10              # Multi-signal window
SPAM_WINDOW_MIN = 3
SPAM_PRUNE_INTERVAL = 60              # Drop idle buckets this often
SPAM_BUCKET_TTL = 300                 # Idle time after which a bucket holds nothing live

# =============================================================================
# Escalation
# =============================================================================

MAX_ESCALATION_HOPS = 2               # warn -> timeout -> ban

# =============================================================================
# Event Bus
# =============================================================================

EVENT_QUEUE_SIZE = 100                # Per-subscriber queue

# =============================================================================
# SQLite Backend
# =============================================================================

DB_CONNECTION_TIMEOUT = 30            # Seconds to wait for a lock on connect
SQLITE_BUSY_TIMEOUT = 5000            # Milliseconds
