"""Tests for the change → notification policy."""

from __future__ import annotations

from datetime import datetime

import pytest

from domain_sync.alerts.policy import build_message, handle_change, is_enabled, notification_type_for
from domain_sync.database import Notification, NotificationPreference, get_preference
from domain_sync.domain.enums import ChangeType
from domain_sync.domain.models import ChangeRecord

TS = datetime(2026, 3, 15, 12, 0, 0)


def _set_preference(db, domain_id, notification_type, enabled):
    row = get_preference(db, domain_id, notification_type)
    if row:
        row.is_enabled = enabled
    else:
        db.add(NotificationPreference(
            domain_id=domain_id, notification_type=notification_type, is_enabled=enabled,
        ))
    db.commit()


def _change(domain_id, field="dns_ns", old=None, new="ns3.x", change_type=ChangeType.ADDED):
    return ChangeRecord(
        domain_id=domain_id, user_id="user-1", field=field, change_type=change_type,
        old_value=old, new_value=new, timestamp=TS,
    )


@pytest.mark.parametrize("field, expected", [
    ("registrar", "registrar"),
    ("ssl_issuer", "ssl_issuer"),
    ("status", "status"),
    ("whois_organization", "whois_"),
    ("whois_postal_code", "whois_"),
    ("dns_ns", "dns_"),
    ("dns_txt", "dns_"),
    ("ip_ipv6", "ip_"),
    ("dates_expiry", None),
    ("dates_updated", None),
    ("something_else", None),
])
def test_notification_type_for(field, expected):
    assert notification_type_for(field) == expected


class TestBuildMessage:
    def test_added(self):
        assert build_message("dns_ns", None, "ns3.x") == 'Nameserver was added "ns3.x"'

    def test_removed(self):
        assert build_message("ip_ipv4", "192.0.2.1", None) == 'IPv4 Address was removed "192.0.2.1"'

    def test_updated(self):
        assert build_message("registrar", "OldCo", "NewCo") == (
            'The Registrar for your domain has changed from "OldCo" to "NewCo".'
        )

    def test_unmapped_field_uses_raw_name(self):
        assert build_message("custom", "a", "b").startswith("The custom for your domain")


class TestHandleChange:
    def test_missing_preference_means_disabled(self, db, make_domain):
        domain = make_domain(db)
        assert is_enabled(db, domain.id, "dns_") is False
        assert handle_change(db, _change(domain.id)) is None
        db.commit()
        assert db.query(Notification).count() == 0

    def test_disabled_preference(self, db, make_domain):
        domain = make_domain(db, preferences={"dns_": False})
        assert handle_change(db, _change(domain.id)) is None

    def test_enabled_preference_queues_notification(self, db, make_domain):
        domain = make_domain(db, preferences={"dns_": True})

        notification = handle_change(db, _change(domain.id))
        db.commit()

        assert notification is not None
        row = db.query(Notification).one()
        assert row.user_id == "user-1"
        assert row.change_type == "dns_ns"
        assert row.message == 'Nameserver was added "ns3.x"'
        assert row.sent is False
        assert row.read is False
        assert row.created_at == TS

    def test_unmapped_field_never_notifies(self, db, make_domain):
        domain = make_domain(db)
        _set_preference(db, domain.id, "dates_", True)
        assert handle_change(db, _change(domain.id, field="dates_expiry", old="a", new="b")) is None

    def test_preference_toggle(self, db, make_domain):
        domain = make_domain(db)
        _set_preference(db, domain.id, "registrar", True)
        assert is_enabled(db, domain.id, "registrar")
        _set_preference(db, domain.id, "registrar", False)
        assert not is_enabled(db, domain.id, "registrar")
