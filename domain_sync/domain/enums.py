"""
domain_sync.domain.enums — Enumerations used across the pipeline.

Keep this module import-clean (stdlib only).
"""

from enum import Enum


# ---------------------------------------------------------------------------
# Job lifecycle
# ---------------------------------------------------------------------------

class JobStatus(str, Enum):
    """
    queued → in_progress → complete | failed.

    ``failed`` is terminal for the attempt; re-queuing is decided by
    whoever calls ``enqueue`` next.
    """
    QUEUED      = "queued"
    IN_PROGRESS = "in_progress"
    COMPLETE    = "complete"
    FAILED      = "failed"


# ---------------------------------------------------------------------------
# Change log
# ---------------------------------------------------------------------------

class ChangeType(str, Enum):
    ADDED   = "added"
    REMOVED = "removed"
    UPDATED = "updated"


# ---------------------------------------------------------------------------
# Delivery channels
# ---------------------------------------------------------------------------

class ChannelKind(str, Enum):
    EMAIL    = "email"
    PUSH     = "push"
    WEBHOOK  = "webhook"
    SIGNAL   = "signal"
    TELEGRAM = "telegram"
    SLACK    = "slack"
    MATRIX   = "matrix"
