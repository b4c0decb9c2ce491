"""
domain-sync — Error taxonomy.

Every error raised by the pipeline derives from ``DomainSyncError`` and
carries the HTTP status a trigger should answer with.
"""

from __future__ import annotations


class DomainSyncError(Exception):
    http_status: int = 500


class ValidationError(DomainSyncError):
    """Required input is missing or malformed."""
    http_status = 400


class NotFoundError(DomainSyncError):
    """The domain is not registered for the given user."""
    http_status = 404


class UpstreamError(DomainSyncError):
    """The domain intelligence provider failed, timed out or sent junk."""
    http_status = 502


class PersistenceError(DomainSyncError):
    """A datastore write failed while reconciling a category."""
    http_status = 500


class DispatchError(DomainSyncError):
    """A notification channel could not deliver a message."""
    http_status = 502

    def __init__(self, channel: str, reason: str) -> None:
        super().__init__(f"{channel}: {reason}")
        self.channel = channel
        self.reason = reason
