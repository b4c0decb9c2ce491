"""
domain_sync.alerts.dispatcher — Deliver queued notifications.

Reads unsent ``notifications`` rows, resolves each user's enabled channels
(free-plan users get email only) and fans the message out to every channel
concurrently.  A notification is marked sent once delivery has been
attempted, whatever the per-channel results; failures stay in the returned
``DispatchReport`` and the logs.

Database work runs in worker threads; only the channel sends run on the
event loop.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from domain_sync import config
from domain_sync.alerts.channels import ChannelConfig, EmailChannel, PushChannel, parse_channel_configs
from domain_sync.alerts.notifiers import Notifier, build_notifiers
from domain_sync.core.utils import utcnow
from domain_sync.database import (
    Notification,
    SessionLocal,
    delete_notifications_before,
    get_billing_plan,
    get_unsent_notifications,
    get_user_info,
)
from domain_sync.domain.enums import ChannelKind
from domain_sync.domain.models import ChannelResult, DispatchReport, DispatchResult, RetentionReport

logger = logging.getLogger(__name__)


def resolve_channels(db: Session, user_id: str) -> List[ChannelConfig]:
    """Channels a user's notifications go to.

    * Free plan (or no billing row): a single email channel, addressed to the
      stored email channel if there is one, otherwise ``user_info.email``.
    * Paid plan: every enabled, valid stored channel.  A user with no stored
      channel preferences at all falls back to ``user_info.email``.
    """
    info = get_user_info(db, user_id)
    if info is None:
        logger.warning("No user_info for %s; nothing to deliver to", user_id)
        return []

    raw = info.notification_channels
    channels = parse_channel_configs(raw)
    channels = [
        c.model_copy(update={"user_id": user_id}) if isinstance(c, PushChannel) else c
        for c in channels
    ]

    plan = get_billing_plan(db, user_id)
    if plan is None or plan == config.FREE_PLAN_NAME:
        stored = [c for c in channels if isinstance(c, EmailChannel)]
        if stored:
            return stored[:1]
        return [EmailChannel(enabled=True, address=info.email)] if info.email else []

    if not raw and info.email:
        return [EmailChannel(enabled=True, address=info.email)]
    return channels


class NotificationDispatcher:
    """Fan queued notifications out to their users' channels.

    Parameters
    ----------
    session_factory:
        Returns a fresh ``Session``; one is opened per unit of database work.
    notifiers:
        Channel kind → ``Notifier``.  Defaults to ``build_notifiers()``.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        notifiers: Optional[Dict[ChannelKind, Notifier]] = None,
    ) -> None:
        self._session_factory = session_factory
        self._notifiers = notifiers if notifiers is not None else build_notifiers()

    # ------------------------------------------------------------------
    # Database half (threads)
    # ------------------------------------------------------------------

    def _load(self, limit: Optional[int]) -> List[Tuple[int, str, str, List[ChannelConfig]]]:
        db = self._session_factory()
        try:
            pending = get_unsent_notifications(db, limit)
            plans: Dict[str, List[ChannelConfig]] = {}
            out = []
            for n in pending:
                if n.user_id not in plans:
                    plans[n.user_id] = resolve_channels(db, n.user_id)
                out.append((n.id, n.user_id, n.message, plans[n.user_id]))
            return out
        finally:
            db.close()

    def _mark_sent(self, notification_ids: List[int]) -> None:
        if not notification_ids:
            return
        db = self._session_factory()
        try:
            (
                db.query(Notification)
                .filter(Notification.id.in_(notification_ids))
                .update({Notification.sent: True}, synchronize_session=False)
            )
            db.commit()
        finally:
            db.close()

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def _send_one(self, channel: ChannelConfig, message: str) -> ChannelResult:
        kind = ChannelKind(channel.kind)
        notifier = self._notifiers.get(kind)
        if notifier is None:
            logger.error("No notifier registered for channel %s", kind.value)
            return ChannelResult(kind=kind, ok=False, error="no notifier registered")
        return await notifier.send(channel, message)

    async def deliver(self, notification_id: int, message: str, channels: List[ChannelConfig]) -> DispatchResult:
        """Send one message to every channel concurrently."""
        results = await asyncio.gather(
            *[self._send_one(c, message) for c in channels],
            return_exceptions=True,
        )
        channel_results: List[ChannelResult] = []
        for channel, res in zip(channels, results):
            if isinstance(res, BaseException):
                logger.error("Channel %s raised for notification %s: %s", channel.kind, notification_id, res)
                res = ChannelResult(kind=ChannelKind(channel.kind), ok=False, error=type(res).__name__)
            channel_results.append(res)
        if not channels:
            logger.warning("Notification %s has no deliverable channels", notification_id)
        return DispatchResult(notification_id=notification_id, channels=channel_results)

    async def dispatch_pending(self, limit: Optional[int] = None) -> DispatchReport:
        """Deliver up to ``limit`` unsent notifications, oldest first."""
        limit = limit if limit is not None else config.NOTIFICATION_DISPATCH_LIMIT
        pending = await asyncio.to_thread(self._load, limit)

        report = DispatchReport()
        for notification_id, user_id, message, channels in pending:
            result = await self.deliver(notification_id, message, channels)
            await asyncio.to_thread(self._mark_sent, [notification_id])
            report.results.append(result)
            logger.debug(
                "Notification %s for %s: %d/%d channels ok",
                notification_id, user_id,
                sum(1 for c in result.channels if c.ok), len(result.channels),
            )

        logger.info(
            "Dispatched %d notifications (%d delivered, %d channel failures)",
            report.attempted, report.delivered, report.channel_failures,
        )
        return report

    async def run_retention_sweep(
        self, retention_days: Optional[int] = None, now: Optional[datetime] = None,
    ) -> RetentionReport:
        """Re-send anything still unsent, then delete notifications past retention."""
        retention_days = retention_days if retention_days is not None else config.NOTIFICATION_RETENTION_DAYS

        resent = await self.dispatch_pending(limit=0)
        cutoff = (now or utcnow()) - timedelta(days=retention_days)
        deleted = await asyncio.to_thread(self._delete_before, cutoff)

        logger.info("Retention sweep: re-sent %d, deleted %d older than %s", resent.attempted, deleted, cutoff)
        return RetentionReport(resent=resent.attempted, deleted=deleted)

    def _delete_before(self, cutoff: datetime) -> int:
        db = self._session_factory()
        try:
            return delete_notifications_before(db, cutoff)
        finally:
            db.close()
