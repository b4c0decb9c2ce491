"""Tests for single-domain reconciliation."""

from __future__ import annotations

from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from domain_sync.core.errors import NotFoundError, UpstreamError, ValidationError
from domain_sync.database import DnsRecord, DomainUpdate, Notification
from domain_sync.metrics import metrics_snapshot
from domain_sync.orchestrator import ReconcileContext, reconcile_domain, reconcile_safely

NOW = datetime(2026, 3, 15, 12, 0, 0)


def _fetcher(snapshot=None, error=None):
    fetcher = MagicMock()
    fetcher.fetch = AsyncMock(return_value=snapshot, side_effect=error)
    fetcher.close = AsyncMock()
    return fetcher


@pytest.fixture
def seeded(session_factory, make_domain):
    with session_factory() as s:
        make_domain(s, preferences={"dns_": True})


@pytest.mark.asyncio
async def test_reconcile_records_changes(session_factory, seeded, make_snapshot):
    snapshot = make_snapshot(dns={
        "nameServers": ["ns1.x", "ns2.x", "ns3.x"],
        "txtRecords": ["v=spf1 -all"],
        "mxRecords": ["mx1.example.com"],
    })
    ctx = ReconcileContext(session_factory=session_factory, fetcher=_fetcher(snapshot), clock=lambda: NOW)

    outcome = await reconcile_domain(ctx, " example.com ", "user-1")

    assert outcome.success
    assert outcome.change_count == 1
    assert outcome.notification_count == 1
    assert outcome.message == "example.com updated successfully: 1 changes."
    ctx.fetcher.fetch.assert_awaited_once_with("example.com")

    with session_factory() as s:
        assert s.query(DnsRecord).filter(DnsRecord.record_type == "NS").count() == 3
        assert s.query(DomainUpdate).count() == 1
        assert s.query(Notification).count() == 1

    counters = metrics_snapshot()
    assert counters["changes_recorded"] == 1
    assert counters["notifications_created"] == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("domain, user_id", [("", "user-1"), ("example.com", ""), (None, "u"), ("   ", "u")])
async def test_missing_input_is_rejected_before_fetch(session_factory, domain, user_id):
    ctx = ReconcileContext(session_factory=session_factory, fetcher=_fetcher())

    with pytest.raises(ValidationError):
        await reconcile_domain(ctx, domain, user_id)
    ctx.fetcher.fetch.assert_not_awaited()


@pytest.mark.asyncio
async def test_unknown_domain(session_factory, seeded, make_snapshot):
    ctx = ReconcileContext(session_factory=session_factory, fetcher=_fetcher(make_snapshot()))

    with pytest.raises(NotFoundError):
        await reconcile_domain(ctx, "example.com", "someone-else")


@pytest.mark.asyncio
async def test_provider_failure_writes_nothing(session_factory, seeded):
    ctx = ReconcileContext(
        session_factory=session_factory,
        fetcher=_fetcher(error=UpstreamError("Provider timed out after 5.0s for example.com")),
    )

    with pytest.raises(UpstreamError):
        await reconcile_domain(ctx, "example.com", "user-1")

    with session_factory() as s:
        assert s.query(DomainUpdate).count() == 0


@pytest.mark.asyncio
async def test_reconcile_safely_converts_errors(session_factory, seeded):
    ctx = ReconcileContext(session_factory=session_factory, fetcher=_fetcher(error=UpstreamError("boom")))

    outcome = await reconcile_safely(ctx, "example.com", "user-1")

    assert outcome.success is False
    assert outcome.error == "UpstreamError"
    assert outcome.message == "example.com could not be updated"
    assert metrics_snapshot()["errors_last_hour"] == 1


@pytest.mark.asyncio
async def test_reconcile_safely_hides_unexpected_errors(session_factory, seeded):
    ctx = ReconcileContext(session_factory=session_factory, fetcher=_fetcher(error=RuntimeError("secret")))

    outcome = await reconcile_safely(ctx, "example.com", "user-1")

    assert outcome.success is False
    assert outcome.error == "UnexpectedError"
