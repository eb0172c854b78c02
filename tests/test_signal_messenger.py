"""Tests for famcal.adapters.signal_messenger — envelope parsing and REST calls.

HTTP traffic goes through httpx.MockTransport; no signal-cli needed.
"""

import base64
import json

import httpx
import pytest

from famcal.adapters.signal_messenger import (
    SignalMessenger,
    group_recipient,
    parse_envelope,
)

BOT_NUMBER = "+4915100000000"
ANNA = "+4915112345678"
ANNA_UUID = "3f2a6b1c-8d4e-4f5a-9b6c-1d2e3f4a5b6c"


def _envelope(data_message=None, **extra):
    envelope = {
        "source": ANNA,
        "sourceNumber": ANNA,
        "sourceUuid": ANNA_UUID,
        "timestamp": 1760875200000,
    }
    if data_message is not None:
        envelope["dataMessage"] = data_message
    envelope.update(extra)
    return {"envelope": envelope, "account": BOT_NUMBER}


def _messenger(handler) -> SignalMessenger:
    client = httpx.AsyncClient(
        base_url="http://signal:8080", transport=httpx.MockTransport(handler),
    )
    return SignalMessenger(api_url="http://signal:8080", number=BOT_NUMBER, client=client)


# ---------------------------------------------------------------------------
# parse_envelope
# ---------------------------------------------------------------------------


class TestParseEnvelope:
    def test_text_message(self):
        message = parse_envelope(_envelope({"message": "Was steht morgen an?"}))
        assert message.sender == ANNA
        assert message.text == "Was steht morgen an?"
        assert message.message_id == f"{ANNA}:1760875200000"
        assert message.timestamp.year == 2025
        assert message.reply_to == ANNA

    def test_same_millisecond_from_two_senders_has_distinct_ids(self):
        first = parse_envelope(_envelope({"message": "Hallo"}))
        second = parse_envelope(_envelope(
            {"message": "Hallo"}, source="+4915187654321", sourceNumber="+4915187654321",
        ))
        assert first.message_id != second.message_id

    def test_attachment_only_has_no_text(self):
        message = parse_envelope(_envelope({"message": None, "attachments": [{"id": "a"}]}))
        assert message is not None
        assert message.text is None

    def test_sync_message_ignored(self):
        payload = _envelope(syncMessage={"sentMessage": {"message": "hi"}})
        assert parse_envelope(payload) is None

    def test_receipt_ignored(self):
        assert parse_envelope(_envelope(receiptMessage={"isDelivery": True})) is None

    def test_reaction_ignored(self):
        payload = _envelope({"reaction": {"emoji": "👍"}, "message": None})
        assert parse_envelope(payload) is None

    def test_uuid_only_sender(self):
        payload = _envelope({"message": "Hallo"})
        del payload["envelope"]["source"]
        del payload["envelope"]["sourceNumber"]
        assert parse_envelope(payload).sender == ANNA_UUID

    def test_group_reply_goes_to_group(self):
        payload = _envelope({"message": "Hallo", "groupInfo": {"groupId": "abc=="}})
        message = parse_envelope(payload)
        expected = "group." + base64.b64encode(b"abc==").decode("ascii")
        assert message.group_id == "abc=="
        assert message.reply_to == expected

    def test_group_recipient_already_encoded(self):
        assert group_recipient("group.YWJj") == "group.YWJj"


# ---------------------------------------------------------------------------
# SignalMessenger
# ---------------------------------------------------------------------------


class TestReceive:
    @pytest.mark.asyncio
    async def test_receive_filters_envelopes(self):
        def handler(request):
            assert request.url.path == f"/v1/receive/{BOT_NUMBER}"
            return httpx.Response(200, json=[
                _envelope({"message": "Hallo"}),
                _envelope(receiptMessage={"isRead": True}),
            ])

        messenger = _messenger(handler)
        messages = await messenger.receive()
        await messenger.aclose()

        assert [m.text for m in messages] == ["Hallo"]

    @pytest.mark.asyncio
    async def test_receive_raises_on_http_error(self):
        messenger = _messenger(lambda request: httpx.Response(503))
        with pytest.raises(httpx.HTTPError):
            await messenger.receive()
        await messenger.aclose()


class TestSend:
    @pytest.mark.asyncio
    async def test_send_payload(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json={"timestamp": "1"})

        messenger = _messenger(handler)
        assert await messenger.send_message(ANNA, "Dienstag ist frei!") is True
        await messenger.aclose()

        assert seen["path"] == "/v2/send"
        assert seen["body"] == {
            "message": "Dienstag ist frei!",
            "number": BOT_NUMBER,
            "recipients": [ANNA],
        }

    @pytest.mark.asyncio
    async def test_send_failure_returns_false(self):
        messenger = _messenger(lambda request: httpx.Response(400, json={"error": "bad"}))
        assert await messenger.send_message(ANNA, "Hallo") is False
        await messenger.aclose()

    @pytest.mark.asyncio
    async def test_transport_error_returns_false(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        messenger = _messenger(handler)
        assert await messenger.send_message(ANNA, "Hallo") is False
        await messenger.aclose()
