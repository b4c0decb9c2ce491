"""
Batch runners for domain-sync.

- run_batch:            dequeue → claim → reconcile → complete/fail, bounded parallelism
- run_dispatch:         deliver unsent notifications
- run_cleanup:          retention sweep (re-send unsent, delete old)
- run_enqueue_all:      queue every monitored domain
- run_release_leases:   return abandoned in_progress jobs to the queue
- run_expiry_reminders: queue renewal reminders for domains about to expire

Each runner is one-shot: it does one pass and returns a report.  The worker
entrypoint and the HTTP triggers both call into here.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from domain_sync import config
from domain_sync.alerts.dispatcher import NotificationDispatcher
from domain_sync.alerts.policy import queue_reminder
from domain_sync.core.constants import REMINDER_DAYS
from domain_sync.database import DomainUpdateJob, domains_expiring_on
from domain_sync.domain.models import BatchReport, DispatchReport, JobOutcome, RetentionReport
from domain_sync.jobs import queue
from domain_sync.metrics import record_job
from domain_sync.orchestrator import ReconcileContext, reconcile_safely

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Job processing
# ---------------------------------------------------------------------------

def _dequeue(ctx: ReconcileContext, batch_size: int, retry_cutoff_seconds: float) -> List[DomainUpdateJob]:
    db = ctx.session_factory()
    try:
        # Loaded attributes stay readable after close; claim works off id + attempts.
        return queue.dequeue(db, batch_size, retry_cutoff_seconds, now=ctx.clock())
    finally:
        db.close()


def _claim(ctx: ReconcileContext, job: DomainUpdateJob) -> bool:
    db = ctx.session_factory()
    try:
        return queue.claim(db, job, now=ctx.clock())
    finally:
        db.close()


def _finish(ctx: ReconcileContext, job_id: int, succeeded: bool) -> None:
    db = ctx.session_factory()
    try:
        job = db.get(DomainUpdateJob, job_id)
        if job is None:
            logger.warning("Job %s disappeared before it could be finished", job_id)
            return
        if succeeded:
            queue.complete(db, job, now=ctx.clock())
        else:
            queue.fail(db, job)
    finally:
        db.close()


async def process_job(ctx: ReconcileContext, job: DomainUpdateJob) -> JobOutcome:
    """Claim and reconcile one job.  Never raises.

    A job that cannot be claimed (lost the race, or the claim write failed)
    is skipped and left untouched.
    """
    job_id, domain, user_id = job.id, job.domain, job.user_id
    try:
        claimed = await asyncio.to_thread(_claim, ctx, job)
    except SQLAlchemyError:
        logger.exception("Could not claim job %s for %s; skipping", job_id, domain)
        return JobOutcome(job_id=job_id, domain=domain, status="skipped")
    if not claimed:
        return JobOutcome(job_id=job_id, domain=domain, status="skipped")

    outcome = await reconcile_safely(ctx, domain, user_id)
    if not outcome.success:
        logger.warning("Job %s for %s failed: %s", job_id, domain, outcome.error)

    try:
        await asyncio.to_thread(_finish, ctx, job_id, outcome.success)
    except SQLAlchemyError:
        # The lease release will pick the job up again.
        logger.exception("Could not record final status of job %s for %s", job_id, domain)

    record_job(outcome.success)
    return JobOutcome(
        job_id=job_id,
        domain=domain,
        status="succeeded" if outcome.success else "failed",
        outcome=outcome,
    )


async def run_batch(
    ctx: Optional[ReconcileContext] = None,
    batch_size: Optional[int] = None,
    retry_cutoff_seconds: Optional[float] = None,
    concurrency: Optional[int] = None,
) -> BatchReport:
    """Process one batch of queued jobs and return per-job results."""
    ctx = ctx or ReconcileContext()
    batch_size = batch_size if batch_size is not None else config.JOB_BATCH_SIZE
    retry_cutoff_seconds = (
        retry_cutoff_seconds if retry_cutoff_seconds is not None else config.JOB_RETRY_CUTOFF_SECONDS
    )
    concurrency = max(1, concurrency if concurrency is not None else config.BATCH_CONCURRENCY)

    jobs = await asyncio.to_thread(_dequeue, ctx, batch_size, retry_cutoff_seconds)
    if not jobs:
        logger.info("No jobs to process")
        return BatchReport()

    semaphore = asyncio.Semaphore(concurrency)

    async def _guarded(job: DomainUpdateJob) -> JobOutcome:
        async with semaphore:
            return await process_job(ctx, job)

    outcomes = await asyncio.gather(*[_guarded(job) for job in jobs])
    report = BatchReport(jobs=list(outcomes))
    logger.info("Batch finished: %s", report.summary())
    return report


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------

async def run_dispatch(
    dispatcher: Optional[NotificationDispatcher] = None,
    limit: Optional[int] = None,
) -> DispatchReport:
    dispatcher = dispatcher or NotificationDispatcher()
    return await dispatcher.dispatch_pending(limit)


async def run_cleanup(
    dispatcher: Optional[NotificationDispatcher] = None,
    retention_days: Optional[int] = None,
) -> RetentionReport:
    dispatcher = dispatcher or NotificationDispatcher()
    return await dispatcher.run_retention_sweep(retention_days)


# ---------------------------------------------------------------------------
# Queue maintenance
# ---------------------------------------------------------------------------

def _enqueue_all(ctx: ReconcileContext) -> int:
    db = ctx.session_factory()
    try:
        return queue.enqueue_all(db)
    finally:
        db.close()


def _release(ctx: ReconcileContext, lease_seconds: float) -> int:
    db = ctx.session_factory()
    try:
        return queue.release_expired_leases(db, lease_seconds, now=ctx.clock())
    finally:
        db.close()


async def run_enqueue_all(ctx: Optional[ReconcileContext] = None) -> int:
    ctx = ctx or ReconcileContext()
    return await asyncio.to_thread(_enqueue_all, ctx)


async def run_release_leases(
    ctx: Optional[ReconcileContext] = None,
    lease_seconds: Optional[float] = None,
) -> int:
    ctx = ctx or ReconcileContext()
    lease_seconds = lease_seconds if lease_seconds is not None else config.JOB_LEASE_SECONDS
    return await asyncio.to_thread(_release, ctx, lease_seconds)


# ---------------------------------------------------------------------------
# Expiry reminders
# ---------------------------------------------------------------------------

def _queue_reminders(ctx: ReconcileContext, now: datetime) -> int:
    db = ctx.session_factory()
    try:
        created = 0
        for days in REMINDER_DAYS:
            target = now.date() + timedelta(days=days)
            for domain in domains_expiring_on(db, target):
                if queue_reminder(db, domain, days, now) is not None:
                    created += 1
        db.commit()
        return created
    finally:
        db.close()


async def run_expiry_reminders(
    ctx: Optional[ReconcileContext] = None,
    now: Optional[datetime] = None,
) -> int:
    """Queue a reminder for every domain expiring exactly 90, 30, 7 or 2 days out."""
    ctx = ctx or ReconcileContext()
    now = now or ctx.clock()
    created = await asyncio.to_thread(_queue_reminders, ctx, now)
    logger.info("Expiry reminders: %d created", created)
    return created


async def close_context(ctx: ReconcileContext) -> None:
    """Release the fetcher's HTTP client."""
    await ctx.fetcher.close()

