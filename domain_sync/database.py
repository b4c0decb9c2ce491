"""
SQL Database Layer for domain-sync
Stores monitored domains, their sub-records, the change log, notifications
and the update job queue.
"""

from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    create_engine, Column, Integer, String, Boolean,
    DateTime, Text, Index, ForeignKey, JSON, UniqueConstraint, event, func,
)
from sqlalchemy.orm import declarative_base, relationship, selectinload, sessionmaker, Session

from domain_sync import config
from domain_sync.core.constants import REMINDER_CHANGE_TYPE
from domain_sync.core.utils import utcnow

_connect_args = {"check_same_thread": False} if config.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(config.DATABASE_URL, connect_args=_connect_args)


def configure_sqlite(sqlite_engine) -> None:
    """Install pragmas and explicit BEGIN handling on a SQLite engine.

    pysqlite defers BEGIN until the first DML statement, which breaks the
    SAVEPOINTs the change detector opens per category; SQLAlchemy takes over
    transaction demarcation instead.
    """
    @event.listens_for(sqlite_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA busy_timeout=5000")
        cursor.close()

    @event.listens_for(sqlite_engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")


if engine.dialect.name == "sqlite":
    configure_sqlite(engine)


SessionLocal = sessionmaker(bind=engine, autoflush=False)
Base = declarative_base()


# ---------------------------------------------------------------------------
# Domain graph (owned by the registration flow, mutated by reconciliation)
# ---------------------------------------------------------------------------

class Registrar(Base):
    """Registrar looked up by case-insensitive name.  Never deleted."""
    __tablename__ = "registrars"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, index=True)
    url = Column(String(512), nullable=True)


class Domain(Base):
    __tablename__ = "domains"

    id = Column(Integer, primary_key=True, autoincrement=True)
    domain_name = Column(String(255), nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    registrar_id = Column(Integer, ForeignKey("registrars.id"), nullable=True)
    expiry_date = Column(DateTime, nullable=True)
    updated_date = Column(DateTime, nullable=True)

    registrar = relationship("Registrar")
    whois_info = relationship("WhoisInfo", uselist=False, cascade="all, delete-orphan")
    ssl_certificate = relationship("SslCertificate", uselist=False, cascade="all, delete-orphan")
    dns_records = relationship("DnsRecord", cascade="all, delete-orphan")
    ip_addresses = relationship("IpAddress", cascade="all, delete-orphan")
    statuses = relationship("DomainStatus", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("domain_name", "user_id", name="uq_domain_user"),
    )


class WhoisInfo(Base):
    """Singleton per domain, upserted field-by-field."""
    __tablename__ = "whois_info"

    id = Column(Integer, primary_key=True, autoincrement=True)
    domain_id = Column(Integer, ForeignKey("domains.id"), nullable=False, unique=True)
    name = Column(String(255), nullable=True)
    organization = Column(String(255), nullable=True)
    state = Column(String(128), nullable=True)
    city = Column(String(128), nullable=True)
    country = Column(String(128), nullable=True)
    postal_code = Column(String(32), nullable=True)


class DnsRecord(Base):
    __tablename__ = "dns_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    domain_id = Column(Integer, ForeignKey("domains.id"), nullable=False)
    record_type = Column(String(8), nullable=False)   # NS, TXT, MX
    record_value = Column(Text, nullable=False)

    __table_args__ = (
        Index("ix_dns_domain_type", "domain_id", "record_type"),
    )


class IpAddress(Base):
    __tablename__ = "ip_addresses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    domain_id = Column(Integer, ForeignKey("domains.id"), nullable=False, index=True)
    ip_address = Column(String(64), nullable=False)
    is_ipv6 = Column(Boolean, nullable=False, default=False)


class SslCertificate(Base):
    """Singleton per domain: insert if absent, otherwise whole-record update."""
    __tablename__ = "ssl_certificates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    domain_id = Column(Integer, ForeignKey("domains.id"), nullable=False, unique=True)
    issuer = Column(String(255), nullable=True)
    valid_from = Column(DateTime, nullable=True)
    valid_to = Column(DateTime, nullable=True)


class DomainStatus(Base):
    __tablename__ = "domain_statuses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    domain_id = Column(Integer, ForeignKey("domains.id"), nullable=False, index=True)
    status_code = Column(String(128), nullable=False)


# ---------------------------------------------------------------------------
# Change log + notifications
# ---------------------------------------------------------------------------

class DomainUpdate(Base):
    """Append-only audit record of one detected change."""
    __tablename__ = "domain_updates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    domain_id = Column(Integer, ForeignKey("domains.id"), nullable=False, index=True)
    user_id = Column(String(64), nullable=False)
    change = Column(String(64), nullable=False)        # field, e.g. dns_ns
    change_type = Column(String(16), nullable=False)   # added, removed, updated
    old_value = Column(Text, nullable=True)
    new_value = Column(Text, nullable=True)
    date = Column(DateTime, nullable=False, default=utcnow)


class NotificationPreference(Base):
    __tablename__ = "notification_preferences"

    id = Column(Integer, primary_key=True, autoincrement=True)
    domain_id = Column(Integer, ForeignKey("domains.id"), nullable=False)
    notification_type = Column(String(32), nullable=False)
    is_enabled = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("domain_id", "notification_type", name="uq_pref_domain_type"),
    )


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    domain_id = Column(Integer, nullable=False)
    change_type = Column(String(64), nullable=False)   # originating field
    message = Column(Text, nullable=False)
    sent = Column(Boolean, nullable=False, default=False)
    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)


# ---------------------------------------------------------------------------
# Job queue
# ---------------------------------------------------------------------------

class DomainUpdateJob(Base):
    __tablename__ = "domain_update_jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    domain = Column(String(255), nullable=False)
    user_id = Column(String(64), nullable=False)
    status = Column(String(16), nullable=False, default="queued")
    attempts = Column(Integer, nullable=False, default=0)
    last_attempt_at = Column(DateTime, nullable=True)
    last_updated_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("domain", "user_id", name="uq_job_domain_user"),
        Index("ix_job_status_attempt", "status", "last_attempt_at"),
    )


# ---------------------------------------------------------------------------
# Account collaborators (read-only here)
# ---------------------------------------------------------------------------

class UserInfo(Base):
    __tablename__ = "user_info"

    user_id = Column(String(64), primary_key=True)
    email = Column(String(255), nullable=True)
    notification_channels = Column(JSON, nullable=True)


class Billing(Base):
    __tablename__ = "billing"

    user_id = Column(String(64), primary_key=True)
    current_plan = Column(String(32), nullable=True)


# ---------------------------------------------------------------------------
# Database initialization
# ---------------------------------------------------------------------------

def init_db():
    """Create all tables if they don't exist."""
    Base.metadata.create_all(bind=engine)


# ---------------------------------------------------------------------------
# Helper queries
# ---------------------------------------------------------------------------

def get_domain_graph(db: Session, domain_name: str, user_id: str) -> Optional[Domain]:
    """Load a domain with every sub-record the detector compares against."""
    return (
        db.query(Domain)
        .options(
            selectinload(Domain.registrar),
            selectinload(Domain.whois_info),
            selectinload(Domain.ssl_certificate),
            selectinload(Domain.dns_records),
            selectinload(Domain.ip_addresses),
            selectinload(Domain.statuses),
        )
        .filter(Domain.domain_name == domain_name, Domain.user_id == user_id)
        .first()
    )


def find_registrar_by_name(db: Session, name: str) -> Optional[Registrar]:
    """Case-insensitive registrar lookup (oldest row wins on duplicates)."""
    return (
        db.query(Registrar)
        .filter(func.lower(Registrar.name) == name.strip().lower())
        .order_by(Registrar.id.asc())
        .first()
    )


def get_preference(db: Session, domain_id: int, notification_type: str) -> Optional[NotificationPreference]:
    return (
        db.query(NotificationPreference)
        .filter(
            NotificationPreference.domain_id == domain_id,
            NotificationPreference.notification_type == notification_type,
        )
        .first()
    )


def get_user_info(db: Session, user_id: str) -> Optional[UserInfo]:
    return db.query(UserInfo).filter(UserInfo.user_id == user_id).first()


def get_billing_plan(db: Session, user_id: str) -> Optional[str]:
    row = db.query(Billing).filter(Billing.user_id == user_id).first()
    if row is None or not row.current_plan:
        return None
    return row.current_plan.strip().lower()


def get_unsent_notifications(db: Session, limit: Optional[int] = None) -> List[Notification]:
    """Unsent notifications, oldest first."""
    q = (
        db.query(Notification)
        .filter(Notification.sent.is_(False))
        .order_by(Notification.created_at.asc(), Notification.id.asc())
    )
    if limit:
        q = q.limit(limit)
    return q.all()


def delete_notifications_before(db: Session, cutoff: datetime) -> int:
    """Delete notifications created before ``cutoff`` regardless of sent state."""
    deleted = (
        db.query(Notification)
        .filter(Notification.created_at < cutoff)
        .delete(synchronize_session=False)
    )
    db.commit()
    return deleted


def list_domain_pairs(db: Session) -> List[Dict[str, Any]]:
    """All (domain_name, user_id) pairs under monitoring."""
    rows = db.query(Domain.domain_name, Domain.user_id).order_by(Domain.id.asc()).all()
    return [{"domain": r[0], "user_id": r[1]} for r in rows]


def domains_expiring_on(db: Session, day: date) -> List[Domain]:
    """Domains whose expiry falls on calendar day ``day`` (time of day ignored)."""
    start = datetime(day.year, day.month, day.day)
    return (
        db.query(Domain)
        .options(selectinload(Domain.registrar))
        .filter(Domain.expiry_date >= start, Domain.expiry_date < start + timedelta(days=1))
        .order_by(Domain.id.asc())
        .all()
    )


def reminder_exists(db: Session, domain_id: int, message: str, since: datetime) -> bool:
    return (
        db.query(Notification.id)
        .filter(
            Notification.domain_id == domain_id,
            Notification.change_type == REMINDER_CHANGE_TYPE,
            Notification.message == message,
            Notification.created_at >= since,
        )
        .first()
        is not None
    )
