"""
domain_sync.alerts.channels — Typed delivery channel configuration.

``user_info.notification_channels`` holds one JSON object per channel::

    {"email": {"enabled": true, "address": "me@example.com"},
     "slack": {"enabled": true, "webhookUrl": "https://hooks.slack.com/..."},
     "telegram": {"enabled": false, "botToken": "...", "chatId": "..."}}

Each entry decodes into one case of the ``ChannelConfig`` tagged union.
Disabled entries are dropped. An enabled entry that fails validation is
logged at ERROR and dropped so one bad channel never blocks the rest.

Required keys per enabled channel: ``email.address``, ``webHook.url``,
``signal.number``, ``telegram.botToken`` + ``chatId``, ``slack.webhookUrl``,
``matrix.homeserverUrl`` + ``accessToken`` + ``roomId``.  A Matrix entry
without ``roomId`` has no room to post to and is dropped.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from typing_extensions import Annotated

from domain_sync.core.constants import CHANNEL_CONFIG_KEYS

logger = logging.getLogger(__name__)


class _Channel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    enabled: bool = False


class EmailChannel(_Channel):
    kind: Literal["email"] = "email"
    address: str = Field(min_length=3)


class PushChannel(_Channel):
    kind: Literal["push"] = "push"
    # Filled in by the dispatcher; the stored config carries only the flag.
    user_id: Optional[str] = None


class WebhookChannel(_Channel):
    kind: Literal["webhook"] = "webhook"
    url: str = Field(min_length=1)
    provider: Optional[str] = None
    topic: Optional[str] = None
    token: Optional[str] = None
    headers: Optional[Union[Dict[str, str], str]] = None


class SignalChannel(_Channel):
    kind: Literal["signal"] = "signal"
    number: str = Field(min_length=1)
    api_key: Optional[str] = Field(default=None, alias="apiKey")


class TelegramChannel(_Channel):
    kind: Literal["telegram"] = "telegram"
    bot_token: str = Field(min_length=1, alias="botToken")
    chat_id: str = Field(min_length=1, alias="chatId")


class SlackChannel(_Channel):
    kind: Literal["slack"] = "slack"
    webhook_url: str = Field(min_length=1, alias="webhookUrl")


class MatrixChannel(_Channel):
    kind: Literal["matrix"] = "matrix"
    homeserver_url: str = Field(min_length=1, alias="homeserverUrl")
    access_token: str = Field(min_length=1, alias="accessToken")
    room_id: str = Field(min_length=1, alias="roomId")


ChannelConfig = Annotated[
    Union[
        EmailChannel,
        PushChannel,
        WebhookChannel,
        SignalChannel,
        TelegramChannel,
        SlackChannel,
        MatrixChannel,
    ],
    Field(discriminator="kind"),
]

_ADAPTER: TypeAdapter = TypeAdapter(ChannelConfig)


def parse_channel_configs(raw: Any) -> List[ChannelConfig]:
    """Decode stored channel preferences into enabled, validated configs."""
    if not raw:
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.warning("Stored notification channels are not valid JSON")
            return []
    if not isinstance(raw, dict):
        logger.warning("Stored notification channels are not an object: %s", type(raw).__name__)
        return []

    configs: List[ChannelConfig] = []
    for key, kind in CHANNEL_CONFIG_KEYS.items():
        entry = raw.get(key)
        if not isinstance(entry, dict) or not entry.get("enabled"):
            continue
        data = {k: v for k, v in entry.items() if k != "kind"}
        data["kind"] = kind
        try:
            configs.append(_ADAPTER.validate_python(data))
        except ValidationError as exc:
            logger.error(
                "Dropping enabled %s channel: invalid config (%s)",
                key, ", ".join(".".join(map(str, e["loc"])) for e in exc.errors()),
            )
    return configs
