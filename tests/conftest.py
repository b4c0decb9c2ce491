"""
Pytest configuration and shared fixtures.

Fixtures available to all tests:
  • engine / session_factory / db  — throwaway SQLite database per test
  • make_domain(db, ...)           — seed a fully populated domain graph
  • make_payload(**overrides)      — provider response matching make_domain's defaults
  • make_snapshot(**overrides)     — the same, parsed into a DomainSnapshot
"""

from __future__ import annotations

import os
import sys
from datetime import datetime
from typing import Dict, Iterable, Optional

import pytest

# Ensure the project root is on the path so all domain_sync imports resolve.
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from domain_sync.data_pipeline.normalizer import parse_snapshot  # noqa: E402
from domain_sync.database import (  # noqa: E402
    Base,
    DnsRecord,
    Domain,
    DomainStatus,
    IpAddress,
    NotificationPreference,
    Registrar,
    SslCertificate,
    WhoisInfo,
    configure_sqlite,
)
from domain_sync.metrics import reset_metrics_for_tests  # noqa: E402

DEFAULT_WHOIS = {
    "name": "Jane Doe",
    "organization": "Example Org",
    "state": "CA",
    "city": "San Francisco",
    "country": "US",
    "postal_code": "94105",
}


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite so worker threads each get their own connection."""
    eng = create_engine(
        f"sqlite:///{tmp_path / 'domain_sync_test.db'}",
        connect_args={"check_same_thread": False},
    )
    configure_sqlite(eng)
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def _reset_metrics():
    reset_metrics_for_tests()
    yield
    reset_metrics_for_tests()


# ---------------------------------------------------------------------------
# Domain graph factory
# ---------------------------------------------------------------------------

def _make_domain(
    db,
    domain_name: str = "example.com",
    user_id: str = "user-1",
    registrar: Optional[str] = "OldCo",
    whois: Optional[Dict[str, str]] = None,
    ns: Iterable[str] = ("ns1.x", "ns2.x"),
    txt: Iterable[str] = ("v=spf1 -all",),
    mx: Iterable[str] = ("mx1.example.com",),
    ipv4: Iterable[str] = ("192.0.2.1",),
    ipv6: Iterable[str] = (),
    ssl: Optional[tuple] = ("Let's Encrypt", datetime(2026, 1, 1), datetime(2026, 4, 1)),
    statuses: Iterable[str] = ("clientTransferProhibited",),
    expiry: Optional[datetime] = datetime(2027, 5, 1),
    updated: Optional[datetime] = datetime(2025, 5, 1),
    preferences: Optional[Dict[str, bool]] = None,
) -> Domain:
    domain = Domain(
        domain_name=domain_name,
        user_id=user_id,
        expiry_date=expiry,
        updated_date=updated,
    )
    if registrar is not None:
        existing = db.query(Registrar).filter(Registrar.name == registrar).first()
        domain.registrar = existing or Registrar(name=registrar, url="https://oldco.example")
    whois_values = DEFAULT_WHOIS if whois is None else whois
    if whois_values:
        domain.whois_info = WhoisInfo(**whois_values)
    domain.dns_records = (
        [DnsRecord(record_type="NS", record_value=v) for v in ns]
        + [DnsRecord(record_type="TXT", record_value=v) for v in txt]
        + [DnsRecord(record_type="MX", record_value=v) for v in mx]
    )
    domain.ip_addresses = (
        [IpAddress(ip_address=v, is_ipv6=False) for v in ipv4]
        + [IpAddress(ip_address=v, is_ipv6=True) for v in ipv6]
    )
    if ssl is not None:
        issuer, valid_from, valid_to = ssl
        domain.ssl_certificate = SslCertificate(issuer=issuer, valid_from=valid_from, valid_to=valid_to)
    domain.statuses = [DomainStatus(status_code=v) for v in statuses]
    db.add(domain)
    db.flush()
    for notification_type, enabled in (preferences or {}).items():
        db.add(NotificationPreference(
            domain_id=domain.id, notification_type=notification_type, is_enabled=enabled,
        ))
    db.commit()
    return domain


@pytest.fixture
def make_domain():
    return _make_domain


# ---------------------------------------------------------------------------
# Provider payload factory
# ---------------------------------------------------------------------------

def _domain_info(**overrides) -> dict:
    info = {
        "domain": "example.com",
        "registrar": {"name": "OldCo", "url": "https://oldco.example"},
        "whois": dict(DEFAULT_WHOIS),
        "dns": {
            "nameServers": ["ns1.x", "ns2.x"],
            "txtRecords": ["v=spf1 -all"],
            "mxRecords": ["mx1.example.com"],
        },
        "ip_addresses": {"ipv4": ["192.0.2.1"], "ipv6": []},
        "ssl": {
            "issuer": "Let's Encrypt",
            "valid_from": "2026-01-01T00:00:00Z",
            "valid_to": "2026-04-01T00:00:00Z",
        },
        "status": ["clientTransferProhibited"],
        "dates": {
            "expiry_date": "2027-05-01T00:00:00Z",
            "updated_date": "2025-05-01T00:00:00Z",
        },
    }
    info.update(overrides)
    return info


@pytest.fixture
def make_payload():
    def _factory(**overrides) -> dict:
        return {"body": {"domainInfo": _domain_info(**overrides)}}
    return _factory


@pytest.fixture
def make_snapshot(make_payload):
    def _factory(**overrides):
        info = _domain_info(**overrides)
        return parse_snapshot(info["domain"], {"body": {"domainInfo": info}})
    return _factory
