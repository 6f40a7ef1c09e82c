"""Unit tests for the WhatsApp channel"""
import asyncio
import json

import httpx
import pytest

from ticket_reminders.domain.enums import RecipientType
from ticket_reminders.domain.errors import ChannelError, ChannelNotConfiguredError, RecipientNotFoundError
from ticket_reminders.domain.models import OutboundMessage
from ticket_reminders.services.whatsapp_service import WhatsAppService, format_phone_number


class StaticContacts:
    def __init__(self, phones):
        self.phones = phones

    async def get_phone(self, recipient_type, recipient_ref):
        return self.phones.get(recipient_ref)


MESSAGE = OutboundMessage(
    template_name="ticket_reminder",
    template_params={"ticket_id": "T-1", "subcategory": "Plumbing", "hours": "12", "reminder_number": "1"},
    fallback_text="Reminder #1: Ticket #T-1 is still pending.",
    ticket_ref="TKT-1",
)


def make_service(handler, phones=None, **overrides):
    options = {
        "api_url": "https://graph.example.test/v18.0",
        "access_token": "token",
        "phone_number_id": "555",
        "language_code": "en",
        "transport": httpx.MockTransport(handler),
    }
    options.update(overrides)
    return WhatsAppService(StaticContacts(phones or {"user-1": "98765 43210"}), **options)


def send(service, recipient_ref="user-1"):
    return asyncio.run(service.send(RecipientType.USER, recipient_ref, MESSAGE))


class TestFormatPhoneNumber:
    @pytest.mark.parametrize("raw, expected", [
        ("+91 98765-43210", "919876543210"),
        ("09876543210", "919876543210"),
        ("9876543210", "919876543210"),
        ("+44 20 7946 0958", "442079460958"),
    ])
    def test_normalizes(self, raw, expected):
        assert format_phone_number(raw) == expected


class TestWhatsAppService:
    def test_sends_template_message(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"messages": [{"id": "wamid.abc"}]})

        receipt = send(make_service(handler))

        assert receipt.message_id == "wamid.abc"
        assert receipt.used_fallback is False
        (request,) = requests
        assert str(request.url) == "https://graph.example.test/v18.0/555/messages"
        assert request.headers["Authorization"] == "Bearer token"
        body = json.loads(request.content)
        assert body["to"] == "919876543210"
        assert body["type"] == "template"
        assert body["template"]["name"] == "ticket_reminder"
        params = body["template"]["components"][0]["parameters"]
        assert [p["text"] for p in params] == ["T-1", "Plumbing", "12", "1"]

    def test_falls_back_to_text_when_template_rejected(self):
        bodies = []

        def handler(request):
            body = json.loads(request.content)
            bodies.append(body)
            if body["type"] == "template":
                return httpx.Response(400, json={"error": {"code": 132001, "message": "Template name does not exist"}})
            return httpx.Response(200, json={"messages": [{"id": "wamid.text"}]})

        receipt = send(make_service(handler))

        assert receipt.message_id == "wamid.text"
        assert receipt.used_fallback is True
        assert [b["type"] for b in bodies] == ["template", "text"]
        assert bodies[1]["text"]["body"] == MESSAGE.fallback_text

    def test_other_api_errors_raise(self):
        def handler(request):
            return httpx.Response(401, json={"error": {"code": 190, "message": "Invalid OAuth access token"}})

        with pytest.raises(ChannelError) as exc:
            send(make_service(handler))

        assert "OAuth" in exc.value.message

    def test_network_errors_raise_channel_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ChannelError) as exc:
            send(make_service(handler))

        assert exc.value.message.startswith("Network error")

    def test_missing_phone(self):
        def handler(request):
            raise AssertionError("no request expected")

        with pytest.raises(RecipientNotFoundError):
            send(make_service(handler), recipient_ref="user-without-phone")

    def test_not_configured(self):
        def handler(request):
            raise AssertionError("no request expected")

        service = make_service(handler, access_token="")

        assert service.is_configured is False
        with pytest.raises(ChannelNotConfiguredError):
            send(service)
