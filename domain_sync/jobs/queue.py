"""
domain_sync.jobs.queue — Domain update job queue.

Jobs live in ``domain_update_jobs`` and move through

    queued ──claim──▶ in_progress ──complete──▶ complete
                                  └──fail─────▶ failed

``claim`` is a compare-and-swap on (status, attempts), so two schedulers
that dequeue the same row cannot both win it.  ``release_expired_leases``
returns abandoned in_progress jobs to the queue once their lease runs out.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from domain_sync.core.utils import utcnow
from domain_sync.database import DomainUpdateJob, list_domain_pairs
from domain_sync.domain.enums import JobStatus

logger = logging.getLogger(__name__)


def dequeue(
    db: Session,
    batch_size: int,
    retry_cutoff_seconds: float,
    now: Optional[datetime] = None,
) -> List[DomainUpdateJob]:
    """Select up to ``batch_size`` eligible queued jobs.

    Eligible means never attempted, or last attempted before
    ``now - retry_cutoff_seconds``.  Never-attempted jobs come first, then
    the oldest attempts.
    """
    now = now or utcnow()
    cutoff = now - timedelta(seconds=retry_cutoff_seconds)
    return (
        db.query(DomainUpdateJob)
        .filter(
            DomainUpdateJob.status == JobStatus.QUEUED.value,
            or_(
                DomainUpdateJob.last_attempt_at.is_(None),
                DomainUpdateJob.last_attempt_at < cutoff,
            ),
        )
        .order_by(
            DomainUpdateJob.last_attempt_at.is_(None).desc(),
            DomainUpdateJob.last_attempt_at.asc(),
            DomainUpdateJob.id.asc(),
        )
        .limit(batch_size)
        .all()
    )


def claim(db: Session, job: DomainUpdateJob, now: Optional[datetime] = None) -> bool:
    """Move ``job`` to in_progress and bump its attempt counter.

    Returns False when the row is no longer the queued row we read (another
    worker claimed it first); the caller must then skip the job.
    """
    now = now or utcnow()
    seen_attempts = job.attempts or 0
    updated = (
        db.query(DomainUpdateJob)
        .filter(
            DomainUpdateJob.id == job.id,
            DomainUpdateJob.status == JobStatus.QUEUED.value,
            DomainUpdateJob.attempts == seen_attempts,
        )
        .update(
            {
                DomainUpdateJob.status: JobStatus.IN_PROGRESS.value,
                DomainUpdateJob.attempts: seen_attempts + 1,
                DomainUpdateJob.last_attempt_at: now,
            },
            synchronize_session=False,
        )
    )
    db.commit()
    if updated != 1:
        logger.info("Job %s for %s already claimed elsewhere; skipping", job.id, job.domain)
        return False
    if job in db:
        db.refresh(job)
    else:
        job.status = JobStatus.IN_PROGRESS.value
        job.attempts = seen_attempts + 1
        job.last_attempt_at = now
    return True


def complete(db: Session, job: DomainUpdateJob, now: Optional[datetime] = None) -> None:
    job.status = JobStatus.COMPLETE.value
    job.last_updated_at = now or utcnow()
    db.commit()


def fail(db: Session, job: DomainUpdateJob) -> None:
    """Terminal for this attempt; re-queuing is up to ``enqueue``."""
    job.status = JobStatus.FAILED.value
    db.commit()


def enqueue(db: Session, domain: str, user_id: str) -> DomainUpdateJob:
    """Queue a job for (domain, user_id).

    Finished jobs (complete or failed) are re-queued; queued or in-progress
    jobs are returned untouched.
    """
    job = (
        db.query(DomainUpdateJob)
        .filter(DomainUpdateJob.domain == domain, DomainUpdateJob.user_id == user_id)
        .first()
    )
    if job is None:
        job = DomainUpdateJob(domain=domain, user_id=user_id, status=JobStatus.QUEUED.value, attempts=0)
        db.add(job)
    elif job.status in (JobStatus.COMPLETE.value, JobStatus.FAILED.value):
        job.status = JobStatus.QUEUED.value
    db.commit()
    return job


def enqueue_all(db: Session) -> int:
    """Queue every monitored domain; returns how many pairs were processed."""
    pairs = list_domain_pairs(db)
    for pair in pairs:
        enqueue(db, pair["domain"], pair["user_id"])
    logger.info("Enqueued %d domains", len(pairs))
    return len(pairs)


def release_expired_leases(db: Session, lease_seconds: float, now: Optional[datetime] = None) -> int:
    """Return in_progress jobs claimed more than ``lease_seconds`` ago to the queue."""
    now = now or utcnow()
    cutoff = now - timedelta(seconds=lease_seconds)
    released = (
        db.query(DomainUpdateJob)
        .filter(
            DomainUpdateJob.status == JobStatus.IN_PROGRESS.value,
            DomainUpdateJob.last_attempt_at < cutoff,
        )
        .update({DomainUpdateJob.status: JobStatus.QUEUED.value}, synchronize_session=False)
    )
    db.commit()
    if released:
        logger.warning("Released %d expired job leases", released)
    return released
