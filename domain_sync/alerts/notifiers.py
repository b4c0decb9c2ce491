"""
domain_sync.alerts.notifiers — Delivery channel implementations.

Every channel implements the ``Notifier`` ABC.  Subclasses provide
``_deliver(channel, message)`` and raise on failure; ``send`` bounds the
call with a timeout and turns any failure into a logged, failed
``ChannelResult`` so one channel can never take down the others.

Current implementations:
    EmailNotifier     — SMTP (blocking smtplib, run in a worker thread)
    PushNotifier      — push gateway HTTP endpoint
    WebhookNotifier   — arbitrary HTTP webhook
    SignalNotifier    — signal-cli REST API
    TelegramNotifier  — Telegram Bot API sendMessage
    SlackNotifier     — Slack incoming webhook
    MatrixNotifier    — Matrix client-server room message

Usage::

    notifiers = build_notifiers()
    result = await notifiers[ChannelKind.SLACK].send(slack_config, "Registrar changed")
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
import uuid
from abc import ABC, abstractmethod
from email.mime.text import MIMEText
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from domain_sync import config
from domain_sync.core.errors import DispatchError
from domain_sync.domain.enums import ChannelKind
from domain_sync.domain.models import ChannelResult
from domain_sync.metrics import record_channel_send

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Abstract base
# ---------------------------------------------------------------------------

class Notifier(ABC):
    """Abstract delivery channel."""

    kind: ChannelKind

    def __init__(self, timeout: Optional[float] = None) -> None:
        self.timeout = timeout if timeout is not None else config.CHANNEL_TIMEOUT_SECONDS

    @abstractmethod
    async def _deliver(self, channel: Any, message: str) -> None:
        """Deliver ``message``; raise ``DispatchError`` on failure."""

    async def send(self, channel: Any, message: str) -> ChannelResult:
        try:
            await asyncio.wait_for(self._deliver(channel, message), timeout=self.timeout)
        except asyncio.CancelledError:
            raise
        except asyncio.TimeoutError:
            return self._failed(f"timed out after {self.timeout}s")
        except DispatchError as exc:
            return self._failed(exc.reason)
        except Exception as exc:
            logger.exception("%s: unexpected delivery error", type(self).__name__)
            return self._failed(type(exc).__name__)
        record_channel_send(True)
        return ChannelResult(kind=self.kind, ok=True)

    def _failed(self, reason: str) -> ChannelResult:
        logger.error("%s: %s", type(self).__name__, reason)
        record_channel_send(False)
        return ChannelResult(kind=self.kind, ok=False, error=reason)


class _HttpNotifier(Notifier):
    """Shared httpx plumbing.  A client may be injected (tests, pooling)."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: Optional[float] = None) -> None:
        super().__init__(timeout)
        self._client = client

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            if self._client is not None:
                resp = await self._client.request(method, url, **kwargs)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    resp = await client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise DispatchError(self.kind.value, f"{type(exc).__name__}: {exc}") from exc
        if resp.status_code >= 400:
            raise DispatchError(self.kind.value, f"HTTP {resp.status_code}")
        return resp


# ---------------------------------------------------------------------------
# Email
# ---------------------------------------------------------------------------

class EmailNotifier(Notifier):
    kind = ChannelKind.EMAIL

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        sender: Optional[str] = None,
        use_tls: Optional[bool] = None,
        timeout: Optional[float] = None,
    ) -> None:
        super().__init__(timeout)
        self.host = host if host is not None else config.SMTP_HOST
        self.port = port if port is not None else config.SMTP_PORT
        self.username = username if username is not None else config.SMTP_USERNAME
        self.password = password if password is not None else config.SMTP_PASSWORD
        self.sender = sender if sender is not None else config.SMTP_FROM
        self.use_tls = use_tls if use_tls is not None else config.SMTP_USE_TLS

    def _send_sync(self, address: str, message: str) -> None:
        msg = MIMEText(message, "plain")
        msg["Subject"] = config.EMAIL_SUBJECT
        msg["From"] = self.sender or self.username or "domain-sync@localhost"
        msg["To"] = address
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls()
            if self.username:
                server.login(self.username, self.password or "")
            server.sendmail(msg["From"], [address], msg.as_string())

    async def _deliver(self, channel: Any, message: str) -> None:
        if not self.host:
            raise DispatchError(self.kind.value, "SMTP_HOST is not configured")
        try:
            await asyncio.to_thread(self._send_sync, channel.address, message)
        except (smtplib.SMTPException, OSError) as exc:
            raise DispatchError(self.kind.value, f"{type(exc).__name__}: {exc}") from exc


# ---------------------------------------------------------------------------
# HTTP channels
# ---------------------------------------------------------------------------

class PushNotifier(_HttpNotifier):
    kind = ChannelKind.PUSH

    def __init__(self, gateway_url: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.gateway_url = gateway_url if gateway_url is not None else config.PUSH_GATEWAY_URL

    async def _deliver(self, channel: Any, message: str) -> None:
        if not self.gateway_url:
            raise DispatchError(self.kind.value, "PUSH_GATEWAY_URL is not configured")
        await self._request(
            "POST", self.gateway_url,
            json={"user_id": channel.user_id, "title": config.EMAIL_SUBJECT, "body": message},
        )


class WebhookNotifier(_HttpNotifier):
    kind = ChannelKind.WEBHOOK

    @staticmethod
    def _headers(channel: Any) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        raw = channel.headers
        if isinstance(raw, dict):
            headers.update({str(k): str(v) for k, v in raw.items()})
        elif isinstance(raw, str):
            # "Name: value" pairs, one per line
            for line in raw.splitlines():
                name, sep, value = line.partition(":")
                if sep and name.strip():
                    headers[name.strip()] = value.strip()
        if channel.token:
            headers.setdefault("Authorization", f"Bearer {channel.token}")
        return headers

    async def _deliver(self, channel: Any, message: str) -> None:
        payload = {"title": config.EMAIL_SUBJECT, "message": message}
        if channel.topic:
            payload["topic"] = channel.topic
        if channel.provider:
            payload["provider"] = channel.provider
        await self._request("POST", channel.url, json=payload, headers=self._headers(channel))


class SignalNotifier(_HttpNotifier):
    kind = ChannelKind.SIGNAL

    def __init__(self, api_url: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.api_url = api_url if api_url is not None else config.SIGNAL_API_URL

    async def _deliver(self, channel: Any, message: str) -> None:
        if not self.api_url:
            raise DispatchError(self.kind.value, "SIGNAL_API_URL is not configured")
        headers = {"Authorization": f"Bearer {channel.api_key}"} if channel.api_key else {}
        await self._request(
            "POST", f"{self.api_url.rstrip('/')}/v2/send",
            json={"message": message, "recipients": [channel.number]},
            headers=headers,
        )


class TelegramNotifier(_HttpNotifier):
    kind = ChannelKind.TELEGRAM

    def __init__(self, api_base: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.api_base = api_base if api_base is not None else config.TELEGRAM_API_BASE

    async def _deliver(self, channel: Any, message: str) -> None:
        url = f"{self.api_base.rstrip('/')}/bot{channel.bot_token}/sendMessage"
        await self._request("POST", url, json={"chat_id": channel.chat_id, "text": message})


class SlackNotifier(_HttpNotifier):
    kind = ChannelKind.SLACK

    async def _deliver(self, channel: Any, message: str) -> None:
        await self._request("POST", channel.webhook_url, json={"text": message})


class MatrixNotifier(_HttpNotifier):
    kind = ChannelKind.MATRIX

    async def _deliver(self, channel: Any, message: str) -> None:
        url = "{}/_matrix/client/v3/rooms/{}/send/m.room.message/{}".format(
            channel.homeserver_url.rstrip("/"),
            quote(channel.room_id, safe=""),
            uuid.uuid4().hex,
        )
        await self._request(
            "PUT", url,
            json={"msgtype": "m.text", "body": message},
            headers={"Authorization": f"Bearer {channel.access_token}"},
        )


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def build_notifiers(client: Optional[httpx.AsyncClient] = None) -> Dict[ChannelKind, Notifier]:
    """One notifier per channel kind, HTTP channels sharing ``client`` if given."""
    return {
        ChannelKind.EMAIL: EmailNotifier(),
        ChannelKind.PUSH: PushNotifier(client=client),
        ChannelKind.WEBHOOK: WebhookNotifier(client=client),
        ChannelKind.SIGNAL: SignalNotifier(client=client),
        ChannelKind.TELEGRAM: TelegramNotifier(client=client),
        ChannelKind.SLACK: SlackNotifier(client=client),
        ChannelKind.MATRIX: MatrixNotifier(client=client),
    }
