"""Tests for the batch runners in domain_sync.tasks."""

from __future__ import annotations

from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from domain_sync import tasks
from domain_sync.core.errors import UpstreamError
from domain_sync.database import DomainUpdate, DomainUpdateJob, Notification
from domain_sync.jobs.queue import enqueue
from domain_sync.metrics import metrics_snapshot
from domain_sync.orchestrator import ReconcileContext

NOW = datetime(2026, 3, 15, 12, 0, 0)


def _ctx(session_factory, snapshot=None, error=None):
    fetcher = MagicMock()
    fetcher.fetch = AsyncMock(return_value=snapshot, side_effect=error)
    fetcher.close = AsyncMock()
    return ReconcileContext(session_factory=session_factory, fetcher=fetcher, clock=lambda: NOW)


@pytest.fixture
def queued(session_factory, make_domain):
    with session_factory() as s:
        make_domain(s)
        enqueue(s, "example.com", "user-1")


def _stored_job(session_factory):
    with session_factory() as s:
        job = s.query(DomainUpdateJob).one()
        return job.status, job.attempts, job.last_attempt_at, job.last_updated_at


@pytest.mark.asyncio
async def test_successful_job_is_completed(session_factory, queued, make_snapshot):
    ctx = _ctx(session_factory, snapshot=make_snapshot(status=["ok"]))

    report = await tasks.run_batch(ctx, batch_size=10, retry_cutoff_seconds=60, concurrency=1)

    assert (report.succeeded, report.failed, report.skipped) == (1, 0, 0)
    assert report.jobs[0].outcome.change_count == 2
    status, attempts, last_attempt_at, last_updated_at = _stored_job(session_factory)
    assert status == "complete"
    assert attempts == 1
    assert last_attempt_at == NOW
    assert last_updated_at == NOW
    assert metrics_snapshot()["jobs_succeeded"] == 1


@pytest.mark.asyncio
async def test_provider_timeout_fails_the_job(session_factory, queued):
    ctx = _ctx(session_factory, error=UpstreamError("Provider timed out after 5.0s for example.com"))

    report = await tasks.run_batch(ctx, batch_size=10, retry_cutoff_seconds=60)

    assert (report.succeeded, report.failed, report.skipped) == (0, 1, 0)
    status, attempts, _, last_updated_at = _stored_job(session_factory)
    assert status == "failed"
    assert attempts == 1
    assert last_updated_at is None
    with session_factory() as s:
        assert s.query(DomainUpdate).count() == 0
    assert metrics_snapshot()["jobs_failed"] == 1


@pytest.mark.asyncio
async def test_job_for_missing_domain_fails(session_factory, make_snapshot):
    with session_factory() as s:
        enqueue(s, "gone.com", "user-1")
    ctx = _ctx(session_factory, snapshot=make_snapshot(domain="gone.com"))

    report = await tasks.run_batch(ctx, batch_size=10, retry_cutoff_seconds=60)

    assert report.failed == 1
    assert report.jobs[0].outcome.error == "NotFoundError"


@pytest.mark.asyncio
async def test_lost_claim_is_skipped(session_factory, queued, make_snapshot, monkeypatch):
    monkeypatch.setattr(tasks.queue, "claim", lambda db, job, now=None: False)
    ctx = _ctx(session_factory, snapshot=make_snapshot())

    report = await tasks.run_batch(ctx, batch_size=10, retry_cutoff_seconds=60)

    assert (report.succeeded, report.failed, report.skipped) == (0, 0, 1)
    ctx.fetcher.fetch.assert_not_awaited()
    assert _stored_job(session_factory)[0] == "queued"


@pytest.mark.asyncio
async def test_recently_attempted_jobs_wait(session_factory, queued, make_snapshot):
    with session_factory() as s:
        job = s.query(DomainUpdateJob).one()
        job.last_attempt_at = NOW - timedelta(seconds=10)
        s.commit()
    ctx = _ctx(session_factory, snapshot=make_snapshot())

    report = await tasks.run_batch(ctx, batch_size=10, retry_cutoff_seconds=60)

    assert report.jobs == []
    ctx.fetcher.fetch.assert_not_awaited()


@pytest.mark.asyncio
async def test_one_failure_does_not_stop_the_batch(session_factory, make_domain, make_snapshot):
    with session_factory() as s:
        make_domain(s, domain_name="a.com")
        make_domain(s, domain_name="b.com")
        enqueue(s, "a.com", "user-1")
        enqueue(s, "b.com", "user-1")

    async def _fetch(domain):
        if domain == "a.com":
            raise UpstreamError("Provider returned HTTP 500 for a.com")
        return make_snapshot(domain=domain)

    ctx = _ctx(session_factory)
    ctx.fetcher.fetch = AsyncMock(side_effect=_fetch)

    report = await tasks.run_batch(ctx, batch_size=10, retry_cutoff_seconds=60)

    assert {j.domain: j.status for j in report.jobs} == {"a.com": "failed", "b.com": "succeeded"}
    assert report.summary() == "1 succeeded, 1 failed, 0 skipped"


@pytest.mark.asyncio
async def test_enqueue_all_and_release_leases(session_factory, make_domain):
    with session_factory() as s:
        make_domain(s, domain_name="a.com")
        make_domain(s, domain_name="b.com")
    ctx = _ctx(session_factory)

    assert await tasks.run_enqueue_all(ctx) == 2

    with session_factory() as s:
        for job in s.query(DomainUpdateJob):
            job.status = "in_progress"
            job.last_attempt_at = NOW - timedelta(hours=1)
        s.commit()

    assert await tasks.run_release_leases(ctx, lease_seconds=900) == 2
    with session_factory() as s:
        assert {j.status for j in s.query(DomainUpdateJob)} == {"queued"}


# ---------------------------------------------------------------------------
# Expiry reminders
# ---------------------------------------------------------------------------

@pytest.fixture
def expiring(session_factory, make_domain):
    with session_factory() as s:
        make_domain(s, "ninety.com", expiry=datetime(2026, 6, 13, 23, 30))
        make_domain(s, "thirty.com", expiry=datetime(2026, 4, 14))
        make_domain(s, "seven.com", registrar=None, expiry=datetime(2026, 3, 22, 6, 0))
        make_domain(s, "two.com", expiry=datetime(2026, 3, 17))
        make_domain(s, "eight.com", expiry=datetime(2026, 3, 23))
        make_domain(s, "thirtyone.com", expiry=datetime(2026, 4, 15))
        make_domain(s, "no-expiry.com", expiry=None)


def _reminders(session_factory):
    with session_factory() as s:
        rows = s.query(Notification).order_by(Notification.id).all()
        return [(r.change_type, r.message, r.sent, r.created_at) for r in rows]


@pytest.mark.asyncio
async def test_reminders_only_on_exact_days(session_factory, expiring):
    created = await tasks.run_expiry_reminders(_ctx(session_factory))

    assert created == 4
    assert [message for _, message, _, _ in _reminders(session_factory)] == [
        "Domain ninety.com expiring in 90 days. Renew it on OldCo.",
        "Domain thirty.com expiring in 30 days. Renew it on OldCo.",
        "Domain seven.com expiring in 7 days.",
        "Domain two.com expiring in 2 days. Renew it on OldCo.",
    ]
    assert {(kind, sent, at) for kind, _, sent, at in _reminders(session_factory)} == {
        ("reminder", False, NOW),
    }


@pytest.mark.asyncio
async def test_reminders_are_not_duplicated_within_a_day(session_factory, expiring):
    await tasks.run_expiry_reminders(_ctx(session_factory))
    again = await tasks.run_expiry_reminders(_ctx(session_factory), now=NOW + timedelta(hours=6))

    assert again == 0
    assert len(_reminders(session_factory)) == 4


@pytest.mark.asyncio
async def test_no_reminders_when_nothing_expires(session_factory, make_domain):
    with session_factory() as s:
        make_domain(s)

    assert await tasks.run_expiry_reminders(_ctx(session_factory)) == 0
    assert _reminders(session_factory) == []
