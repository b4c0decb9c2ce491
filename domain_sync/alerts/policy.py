"""
domain_sync.alerts.policy — Change → Notification policy.

Maps a change's field onto the coarser notification type users opt into,
checks the per-domain preference, and queues a Notification row when the
preference is enabled.  Expiry reminders are queued here too; they are not
gated by a preference.  Delivery is the dispatcher's job.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from domain_sync.core.constants import (
    FIELD_HUMAN_NAMES,
    NOTIFICATION_TYPE_EXACT,
    NOTIFICATION_TYPE_PREFIXES,
    REMINDER_CHANGE_TYPE,
)
from domain_sync.core.utils import is_unknown
from domain_sync.database import Domain, Notification, get_preference, reminder_exists
from domain_sync.domain.models import ChangeRecord

logger = logging.getLogger(__name__)


def notification_type_for(field: str) -> Optional[str]:
    """Return the preference key for ``field``, or ``None`` if unmapped.

    ``whois_*``, ``dns_*`` and ``ip_*`` collapse onto their prefix;
    ``registrar``, ``ssl_issuer`` and ``status`` map one-to-one.

    >>> notification_type_for("dns_mx")
    'dns_'
    >>> notification_type_for("dates_expiry") is None
    True
    """
    if field in NOTIFICATION_TYPE_EXACT:
        return field
    for prefix in NOTIFICATION_TYPE_PREFIXES:
        if field.startswith(prefix):
            return prefix
    return None


def is_enabled(db: Session, domain_id: int, notification_type: str) -> bool:
    """A missing preference row means disabled."""
    pref = get_preference(db, domain_id, notification_type)
    return bool(pref and pref.is_enabled)


def build_message(field: str, old_value: Optional[str], new_value: Optional[str]) -> str:
    human = FIELD_HUMAN_NAMES.get(field, field)
    if is_unknown(old_value):
        return f'{human} was added "{new_value}"'
    if is_unknown(new_value):
        return f'{human} was removed "{old_value}"'
    return f'The {human} for your domain has changed from "{old_value}" to "{new_value}".'


def handle_change(db: Session, change: ChangeRecord) -> Optional[Notification]:
    """Queue a Notification for ``change`` if its owner opted in.

    The row is added to ``db`` but not committed; the caller owns the
    transaction so the change and its notification land together.
    """
    notification_type = notification_type_for(change.field)
    if notification_type is None:
        logger.debug("No notification type for field %s", change.field)
        return None

    if not is_enabled(db, change.domain_id, notification_type):
        logger.debug("Notifications for %s are off (domain %s)", notification_type, change.domain_id)
        return None

    message = build_message(change.field, change.old_value, change.new_value)
    notification = Notification(
        user_id=change.user_id,
        domain_id=change.domain_id,
        change_type=change.field,
        message=message,
        sent=False,
        read=False,
        created_at=change.timestamp,
    )
    db.add(notification)
    logger.info("Queued notification for domain %s: %s", change.domain_id, message)
    return notification


def build_reminder_message(domain_name: str, days: int, registrar: Optional[str] = None) -> str:
    message = f"Domain {domain_name} expiring in {days} days."
    if registrar:
        message += f" Renew it on {registrar}."
    return message


def queue_reminder(db: Session, domain: Domain, days: int, now: datetime) -> Optional[Notification]:
    """Add an expiry reminder for ``domain`` unless one went out today.

    Not committed; the caller owns the transaction.
    """
    registrar = domain.registrar.name if domain.registrar else None
    message = build_reminder_message(domain.domain_name, days, registrar)
    since = datetime(now.year, now.month, now.day)
    if reminder_exists(db, domain.id, message, since):
        logger.debug("Reminder for %s (%dd) already queued today", domain.domain_name, days)
        return None

    notification = Notification(
        user_id=domain.user_id,
        domain_id=domain.id,
        change_type=REMINDER_CHANGE_TYPE,
        message=message,
        sent=False,
        read=False,
        created_at=now,
    )
    db.add(notification)
    logger.info("Reminder created for %s (%dd)", domain.domain_name, days)
    return notification
