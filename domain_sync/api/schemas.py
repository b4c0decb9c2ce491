"""
domain-sync — API request/response schemas (Pydantic).

Every trigger endpoint returns one of these models so the contract shows up
in the OpenAPI docs and stays stable for the callers.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------

class UpdateDomainRequest(BaseModel):
    """Body for a single-domain reconciliation.

    Both fields are optional at the schema level so a missing value is
    answered with the pipeline's own 400 rather than FastAPI's 422.
    """
    domain: Optional[str] = None
    user_id: Optional[str] = None


class UpdateDomainResponse(BaseModel):
    message: str
    changes: int = 0
    notifications: int = 0
    failed_categories: List[str] = Field(default_factory=list)

    class Config:
        json_schema_extra = {
            "example": {
                "message": "example.com updated successfully: 2 changes.",
                "changes": 2,
                "notifications": 1,
                "failed_categories": [],
            }
        }


class BatchResponse(BaseModel):
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0


class EnqueueResponse(BaseModel):
    queued: int = 0


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------

class DispatchResponse(BaseModel):
    attempted: int = 0
    delivered: int = 0
    channel_failures: int = 0


class CleanupResponse(BaseModel):
    resent: int = 0
    deleted: int = 0


class ReminderResponse(BaseModel):
    created: int = 0


class ErrorResponse(BaseModel):
    detail: str
