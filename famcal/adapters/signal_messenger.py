"""Signal messenger adapter — signal-cli REST API over httpx.

Implements NotificationPort for sending and turns received envelopes into
SignalMessage values for the poll loop in ``famcal.bot.signal_bot``.

Endpoints (https://github.com/bbernhard/signal-cli-rest-api):
    GET  /v1/receive/{number}   pending envelopes (normal/native mode)
    POST /v2/send               {"message", "number", "recipients"}
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

import httpx

logger = logging.getLogger(__name__)

_TIMEOUT_SECONDS = 30
_GROUP_PREFIX = "group."


@dataclass
class SignalMessage:
    """One inbound data message, reduced to what the core needs."""

    message_id: str                 # "<sender>:<envelope timestamp ms>"
    sender: str                     # E.164 number, or account UUID if hidden
    text: str | None                # None for attachment-only messages
    timestamp: datetime
    group_id: str | None = None

    @property
    def reply_to(self) -> str:
        """Group messages are answered in the group."""
        if self.group_id:
            return group_recipient(self.group_id)
        return self.sender


def group_recipient(group_id: str) -> str:
    """REST API recipient id for a group (``group.`` + base64 of the internal id)."""
    if group_id.startswith(_GROUP_PREFIX):
        return group_id
    encoded = base64.b64encode(group_id.encode("utf-8")).decode("ascii")
    return f"{_GROUP_PREFIX}{encoded}"


def parse_envelope(payload: dict) -> SignalMessage | None:
    """Convert one received item into a SignalMessage, or None to ignore it.

    Sync messages (our own sends echoed back), receipts, typing indicators
    and reactions carry no data message worth answering.
    """
    envelope = payload.get("envelope", payload)
    data = envelope.get("dataMessage")
    if envelope.get("syncMessage") or not data:
        return None
    if data.get("reaction"):
        return None

    sender = envelope.get("sourceNumber") or envelope.get("source") or envelope.get("sourceUuid")
    stamp = envelope.get("timestamp")
    if not sender or stamp is None:
        logger.warning("Ignoring envelope without sender or timestamp: %s", envelope)
        return None

    group_info = data.get("groupInfo") or {}
    return SignalMessage(
        message_id=f"{sender}:{stamp}",
        sender=sender,
        text=data.get("message") or None,
        timestamp=datetime.fromtimestamp(int(stamp) / 1000, tz=timezone.utc),
        group_id=group_info.get("groupId"),
    )


class SignalMessenger:
    """signal-cli REST API client; implements NotificationPort."""

    def __init__(
        self,
        api_url: str | None = None,
        number: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if api_url is None or number is None:
            from famcal.config import settings
            api_url = api_url or settings.SIGNAL_API_URL
            number = number or settings.SIGNAL_PHONE_NUMBER

        self._number = number
        self._client = client or httpx.AsyncClient(
            base_url=api_url.rstrip("/"), timeout=_TIMEOUT_SECONDS,
        )

    async def receive(self) -> list[SignalMessage]:
        """Fetch pending envelopes. Raises httpx.HTTPError on transport failure."""
        resp = await self._client.get(f"/v1/receive/{self._number}")
        resp.raise_for_status()
        items = resp.json() or []

        messages = []
        for item in items:
            message = parse_envelope(item)
            if message is not None:
                messages.append(message)
        if items:
            logger.debug("Received %d envelope(s), %d message(s)", len(items), len(messages))
        return messages

    async def send_message(self, recipient: str, text: str) -> bool:
        try:
            resp = await self._client.post(
                "/v2/send",
                json={"message": text, "number": self._number, "recipients": [recipient]},
            )
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Failed to send Signal message to %s: %s", recipient, exc)
            return False

        logger.info("Signal message sent to %s (%d chars)", recipient, len(text))
        return True

    async def aclose(self) -> None:
        await self._client.aclose()
