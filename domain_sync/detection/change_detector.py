"""
domain_sync.detection.change_detector — Snapshot vs stored-state diffing.

Walks one domain's stored graph against a freshly fetched snapshot in a
fixed order:

    registrar → whois → dns (NS, TXT, MX) → ip (v4, v6) → ssl → status → dates

Three comparison shapes are used:

  • Scalars      — trimmed, case-insensitive strings and day-truncated dates;
                   one ``updated`` change per differing field.
  • Sets         — DNS records, IP addresses and status codes; every
                   membership difference becomes one ``added`` or
                   ``removed`` change plus the matching insert/delete.
  • SSL          — one coarse ``ssl_issuer`` change whenever issuer or either
                   validity date differs; all three columns updated together.

Every change is written to ``domain_updates`` and handed to the notification
policy before the detector moves on.  Each category runs inside its own
SAVEPOINT so a datastore failure in one category leaves the others intact.

Usage::

    detector = ChangeDetector(db)
    result = detector.run(domain, snapshot)
    db.commit()
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from domain_sync.alerts.policy import handle_change
from domain_sync.core.constants import (
    CATEGORIES,
    DNS_RECORD_KEYS,
    FIELD_DATES_EXPIRY,
    FIELD_DATES_UPDATED,
    FIELD_REGISTRAR,
    FIELD_SSL_ISSUER,
    FIELD_STATUS,
    IP_VERSIONS,
    WHOIS_FIELDS,
)
from domain_sync.core.utils import (
    days_differ,
    display_value,
    is_unknown,
    normalize_set,
    normalize_text,
    parse_datetime,
    texts_differ,
    utcnow,
)
from domain_sync.database import (
    DnsRecord,
    Domain,
    DomainStatus,
    DomainUpdate,
    IpAddress,
    Registrar,
    SslCertificate,
    WhoisInfo,
    find_registrar_by_name,
)
from domain_sync.domain.enums import ChangeType
from domain_sync.domain.models import (
    CategoryError,
    ChangeRecord,
    DetectionResult,
    DomainSnapshot,
)

logger = logging.getLogger(__name__)

NotifyFn = Callable[[Session, ChangeRecord], Any]


class ChangeDetector:
    """Diff one snapshot against one stored domain graph.

    Parameters
    ----------
    db:
        Open session.  Each category that succeeds is committed before the
        next one starts, so a later failure never undoes earlier work.
    notify:
        Called with every emitted change.  A non-``None`` return counts as a
        queued notification.
    clock:
        Timestamp source for change rows.
    """

    def __init__(
        self,
        db: Session,
        notify: NotifyFn = handle_change,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.db = db
        self._notify = notify
        self._clock = clock
        self._pending: List[ChangeRecord] = []
        self._pending_notifications = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(self, domain: Domain, snapshot: DomainSnapshot) -> DetectionResult:
        result = DetectionResult()
        for category in CATEGORIES:
            reconcile = getattr(self, f"_reconcile_{category}")
            self._pending = []
            self._pending_notifications = 0
            try:
                with self.db.begin_nested():
                    reconcile(domain, snapshot)
                    self.db.flush()
                self.db.commit()
            except SQLAlchemyError as exc:
                self.db.rollback()
                logger.exception(
                    "Reconciling %s for %s failed; category rolled back",
                    category, domain.domain_name,
                )
                result.failed_categories.append(
                    CategoryError(category=category, error=str(getattr(exc, "orig", exc)))
                )
                continue
            result.changes.extend(self._pending)
            result.notification_count += self._pending_notifications

        logger.info(
            "Reconciled %s: %d changes, %d notifications, %d failed categories",
            domain.domain_name, result.change_count,
            result.notification_count, len(result.failed_categories),
        )
        return result

    # ------------------------------------------------------------------
    # Change emission
    # ------------------------------------------------------------------

    def _record(
        self,
        domain: Domain,
        field: str,
        change_type: ChangeType,
        old_value: Any,
        new_value: Any,
    ) -> ChangeRecord:
        change = ChangeRecord(
            domain_id=domain.id,
            user_id=domain.user_id,
            field=field,
            change_type=change_type,
            old_value=display_value(old_value),
            new_value=display_value(new_value),
            timestamp=self._clock(),
        )
        logger.info(
            'Domain %s %s %s from "%s" to "%s"',
            domain.domain_name, change_type.value, field, change.old_value, change.new_value,
        )
        self.db.add(DomainUpdate(
            domain_id=change.domain_id,
            user_id=change.user_id,
            change=field,
            change_type=change_type.value,
            old_value=change.old_value,
            new_value=change.new_value,
            date=change.timestamp,
        ))
        if self._notify(self.db, change) is not None:
            self._pending_notifications += 1
        self._pending.append(change)
        return change

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    def _reconcile_registrar(self, domain: Domain, snapshot: DomainSnapshot) -> None:
        new_name = snapshot.registrar.name
        current = domain.registrar.name if domain.registrar else None
        if is_unknown(new_name) or not texts_differ(current, new_name):
            return

        self._record(domain, FIELD_REGISTRAR, ChangeType.UPDATED, current, new_name)

        registrar = find_registrar_by_name(self.db, new_name)
        if registrar is None:
            registrar = Registrar(name=new_name.strip(), url=snapshot.registrar.url)
            self.db.add(registrar)
            self.db.flush()
        domain.registrar = registrar

    def _reconcile_whois(self, domain: Domain, snapshot: DomainSnapshot) -> None:
        info = domain.whois_info
        for name in WHOIS_FIELDS:
            new = getattr(snapshot.whois, name)
            old = getattr(info, name) if info is not None else None
            if is_unknown(new) or not texts_differ(old, new):
                continue
            self._record(domain, f"whois_{name}", ChangeType.UPDATED, old, new)
            if info is None:
                info = WhoisInfo()
                domain.whois_info = info
            setattr(info, name, new)

    def _reconcile_dns(self, domain: Domain, snapshot: DomainSnapshot) -> None:
        for record_type in DNS_RECORD_KEYS:
            self._reconcile_set(
                domain,
                field=f"dns_{record_type.lower()}",
                collection=domain.dns_records,
                rows=[r for r in domain.dns_records if r.record_type == record_type],
                value_of=lambda r: r.record_value,
                fetched=snapshot.dns_records(record_type),
                make_row=lambda v, rt=record_type: DnsRecord(record_type=rt, record_value=v),
            )

    def _reconcile_ip(self, domain: Domain, snapshot: DomainSnapshot) -> None:
        for version in IP_VERSIONS:
            is_v6 = version == "ipv6"
            self._reconcile_set(
                domain,
                field=f"ip_{version}",
                collection=domain.ip_addresses,
                rows=[r for r in domain.ip_addresses if bool(r.is_ipv6) == is_v6],
                value_of=lambda r: r.ip_address,
                fetched=snapshot.ips(version),
                make_row=lambda v, v6=is_v6: IpAddress(ip_address=v, is_ipv6=v6),
            )

    def _reconcile_ssl(self, domain: Domain, snapshot: DomainSnapshot) -> None:
        fetched = snapshot.ssl
        if fetched is None:
            return

        new_from = parse_datetime(fetched.valid_from)
        new_to = parse_datetime(fetched.valid_to)
        cert = domain.ssl_certificate
        if cert is None:
            domain.ssl_certificate = SslCertificate(
                issuer=fetched.issuer, valid_from=new_from, valid_to=new_to,
            )
            logger.info("Stored first SSL certificate for %s", domain.domain_name)
            return

        issuer_changed = not is_unknown(fetched.issuer) and texts_differ(cert.issuer, fetched.issuer)
        from_changed = new_from is not None and days_differ(cert.valid_from, new_from)
        to_changed = new_to is not None and days_differ(cert.valid_to, new_to)
        if not (issuer_changed or from_changed or to_changed):
            return

        new_issuer = fetched.issuer if not is_unknown(fetched.issuer) else cert.issuer
        if issuer_changed:
            old_value, new_value = cert.issuer, new_issuer
        else:
            # Same issuer: describe the whole certificate so the change reads sensibly.
            old_value = _describe_cert(cert.issuer, cert.valid_from, cert.valid_to)
            new_value = _describe_cert(
                new_issuer, new_from or cert.valid_from, new_to or cert.valid_to,
            )
        self._record(domain, FIELD_SSL_ISSUER, ChangeType.UPDATED, old_value, new_value)

        cert.issuer = new_issuer
        if new_from is not None:
            cert.valid_from = new_from
        if new_to is not None:
            cert.valid_to = new_to

    def _reconcile_status(self, domain: Domain, snapshot: DomainSnapshot) -> None:
        self._reconcile_set(
            domain,
            field=FIELD_STATUS,
            collection=domain.statuses,
            rows=list(domain.statuses),
            value_of=lambda r: r.status_code,
            fetched=snapshot.status,
            make_row=lambda v: DomainStatus(status_code=v),
        )

    def _reconcile_dates(self, domain: Domain, snapshot: DomainSnapshot) -> None:
        for field, attr, raw in (
            (FIELD_DATES_EXPIRY, "expiry_date", snapshot.dates.expiry_date),
            (FIELD_DATES_UPDATED, "updated_date", snapshot.dates.updated_date),
        ):
            new = parse_datetime(raw)
            if new is None:
                if not is_unknown(raw):
                    logger.warning("Unparseable %s for %s: %r", field, domain.domain_name, raw)
                continue
            old = getattr(domain, attr)
            if not days_differ(old, new):
                continue
            self._record(domain, field, ChangeType.UPDATED, old, raw)
            setattr(domain, attr, new)

    # ------------------------------------------------------------------
    # Set reconciliation
    # ------------------------------------------------------------------

    def _reconcile_set(
        self,
        domain: Domain,
        field: str,
        collection: list,
        rows: List[Any],
        value_of: Callable[[Any], str],
        fetched: Iterable[Any],
        make_row: Callable[[str], Any],
    ) -> None:
        """Bring ``rows`` in line with ``fetched``.

        added   = normalize(fetched) − normalize(stored)
        removed = normalize(stored) − normalize(fetched)

        New rows are stored in normalized form.  Stored rows sharing a
        normalized value are removed together with a single change.
        """
        current: Dict[str, List[Any]] = {}
        for row in rows:
            current.setdefault(normalize_text(value_of(row)), []).append(row)
        wanted = normalize_set(fetched)

        added = [value for value in wanted if value not in current]
        removed = [value for value in current if value not in wanted]

        for value in added:
            self._record(domain, field, ChangeType.ADDED, None, value)
            collection.append(make_row(value))

        for value in removed:
            stored = current[value]
            self._record(domain, field, ChangeType.REMOVED, value_of(stored[0]), None)
            for row in stored:
                collection.remove(row)


def _describe_cert(issuer: Optional[str], valid_from: Any, valid_to: Any) -> str:
    start = parse_datetime(valid_from)
    end = parse_datetime(valid_to)
    return "{} ({} to {})".format(
        issuer or "unknown issuer",
        start.date().isoformat() if start else "?",
        end.date().isoformat() if end else "?",
    )
