"""
domain_sync.orchestrator — Reconciliation of one domain.

fetch snapshot → load stored graph → run the change detector (one commit per
category).

All collaborators travel in an explicit ``ReconcileContext`` so concurrent
invocations share no mutable state; counts come back as return values.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from domain_sync.core.errors import DomainSyncError, NotFoundError, PersistenceError, ValidationError
from domain_sync.core.utils import utcnow
from domain_sync.data_pipeline.fetcher import DomainInfoFetcher
from domain_sync.database import SessionLocal, get_domain_graph
from domain_sync.detection.change_detector import ChangeDetector
from domain_sync.domain.models import DomainOutcome, DomainSnapshot
from domain_sync.metrics import record_changes, record_error

logger = logging.getLogger(__name__)


@dataclass
class ReconcileContext:
    """Everything one reconciliation needs, passed explicitly."""
    session_factory: Callable[[], Session] = SessionLocal
    fetcher: DomainInfoFetcher = field(default_factory=DomainInfoFetcher)
    clock: Callable[[], datetime] = utcnow


def _validate(domain: Optional[str], user_id: Optional[str]) -> None:
    if not domain or not str(domain).strip() or not user_id or not str(user_id).strip():
        raise ValidationError("Missing params, domain and/or user_id")


def _apply_snapshot(ctx: ReconcileContext, domain: str, user_id: str, snapshot: DomainSnapshot) -> DomainOutcome:
    """Synchronous half of a reconciliation (runs in a worker thread)."""
    db = ctx.session_factory()
    try:
        try:
            record = get_domain_graph(db, domain, user_id)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not load {domain}") from exc
        if record is None:
            raise NotFoundError(f"Domain {domain} not found for user {user_id}")

        result = ChangeDetector(db, clock=ctx.clock).run(record, snapshot)
        try:
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise PersistenceError(f"Could not commit changes for {domain}") from exc
    finally:
        db.close()

    record_changes(result.change_count, result.notification_count)
    failed = [c.category for c in result.failed_categories]
    return DomainOutcome(
        domain=domain,
        user_id=user_id,
        success=result.ok,
        change_count=result.change_count,
        notification_count=result.notification_count,
        error=f"categories failed: {', '.join(failed)}" if failed else None,
        failed_categories=failed,
    )


async def reconcile_domain(ctx: ReconcileContext, domain: str, user_id: str) -> DomainOutcome:
    """Fetch, diff and record one domain.

    Raises
    ------
    ValidationError
        ``domain`` or ``user_id`` is empty.
    UpstreamError
        The provider failed or timed out; nothing was written.
    NotFoundError
        No such domain for this user.
    PersistenceError
        The datastore could not be read or the final commit failed.

    A failure inside a single category does not raise; it is reported through
    ``DomainOutcome.failed_categories`` with ``success=False``.
    """
    _validate(domain, user_id)
    domain = domain.strip()
    user_id = str(user_id).strip()

    snapshot = await ctx.fetcher.fetch(domain)
    outcome = await asyncio.to_thread(_apply_snapshot, ctx, domain, user_id, snapshot)

    if outcome.success:
        logger.info("%s", outcome.message)
    else:
        logger.warning("%s reconciled with errors: %s", domain, outcome.error)
    return outcome


async def reconcile_safely(ctx: ReconcileContext, domain: str, user_id: str) -> DomainOutcome:
    """``reconcile_domain`` that never raises; errors become a failed outcome."""
    try:
        return await reconcile_domain(ctx, domain, user_id)
    except asyncio.CancelledError:
        raise
    except DomainSyncError as exc:
        logger.warning("Reconciliation of %s failed: %s", domain, exc)
        record_error()
        return DomainOutcome(domain=domain, user_id=user_id, success=False, error=type(exc).__name__)
    except Exception:
        logger.exception("Unexpected error reconciling %s", domain)
        record_error()
        return DomainOutcome(domain=domain, user_id=user_id, success=False, error="UnexpectedError")
