from __future__ import annotations

import asyncio
import json

import httpx
import pytest
import respx

from agents.errors import NotificationError
from config.settings import Settings
from config.voice_config import EscalationConfig
from escalation.notifiers import (
    GatewayNotifier,
    SmsNotifier,
    TelegramNotifier,
    WebhookNotifier,
    build_notifier,
)
from escalation.queue import EscalationEntry


def _entry(**extra) -> EscalationEntry:
    return EscalationEntry(message="Plan my trip", caller_number="+15550001111", caller_name="Ada", **extra)


@respx.mock
def test_telegram_uses_destination_hint_over_default():
    route = respx.post("https://api.telegram.org/botTOKEN/sendMessage").mock(
        return_value=httpx.Response(200, json={"ok": True})
    )
    notifier = TelegramNotifier("TOKEN", default_chat_id="default-chat")

    asyncio.run(notifier.send(_entry(destination_hint="chat-42"), "hello"))

    body = json.loads(route.calls.last.request.content)
    assert body == {"chat_id": "chat-42", "text": "hello"}


@respx.mock
def test_telegram_falls_back_to_default_chat():
    route = respx.post("https://api.telegram.org/botTOKEN/sendMessage").mock(
        return_value=httpx.Response(200, json={"ok": True})
    )

    asyncio.run(TelegramNotifier("TOKEN", default_chat_id="default-chat").send(_entry(), "hi"))

    assert json.loads(route.calls.last.request.content)["chat_id"] == "default-chat"


@respx.mock
def test_telegram_http_error_raises_notification_error():
    respx.post("https://api.telegram.org/botTOKEN/sendMessage").mock(
        return_value=httpx.Response(400, text="chat not found")
    )

    with pytest.raises(NotificationError, match="HTTP 400"):
        asyncio.run(TelegramNotifier("TOKEN", default_chat_id="x").send(_entry(), "hi"))


def test_missing_configuration_raises_at_send_time():
    with pytest.raises(NotificationError):
        asyncio.run(TelegramNotifier(None, default_chat_id="x").send(_entry(), "hi"))
    with pytest.raises(NotificationError):
        asyncio.run(TelegramNotifier("TOKEN").send(_entry(), "hi"))
    with pytest.raises(NotificationError):
        asyncio.run(WebhookNotifier(None).send(_entry(), "hi"))


@respx.mock
def test_gateway_posts_channel_and_bearer_token():
    route = respx.post("https://gateway.example.com/send").mock(return_value=httpx.Response(202))
    notifier = GatewayNotifier(
        "https://gateway.example.com/send", token="secret", channel="whatsapp", default_destination="+1999"
    )

    asyncio.run(notifier.send(_entry(), "hello"))

    request = route.calls.last.request
    assert request.headers["authorization"] == "Bearer secret"
    body = json.loads(request.content)
    assert body["channel"] == "whatsapp"
    assert body["to"] == "+1999"
    assert body["message"] == "hello"


@respx.mock
def test_webhook_posts_entry_fields():
    route = respx.post("https://hooks.example.com/voice").mock(return_value=httpx.Response(200))
    notifier = WebhookNotifier("https://hooks.example.com/voice", headers={"X-Key": "k"})

    asyncio.run(notifier.send(_entry(), "answer"))

    request = route.calls.last.request
    assert request.headers["x-key"] == "k"
    body = json.loads(request.content)
    assert body["query"] == "Plan my trip"
    assert body["message"] == "answer"
    assert body["callerNumber"] == "+15550001111"


@respx.mock
def test_webhook_connection_error_raises_notification_error():
    respx.post("https://hooks.example.com/voice").mock(side_effect=httpx.ConnectError("refused"))

    with pytest.raises(NotificationError):
        asyncio.run(WebhookNotifier("https://hooks.example.com/voice").send(_entry(), "answer"))


class FakeMessages:
    def __init__(self) -> None:
        self.created: list[dict] = []

    def create(self, *, body: str, from_: str, to: str):
        self.created.append({"body": body, "from_": from_, "to": to})

        class _Message:
            sid = "SM123"

        return _Message()


class FakeTwilioClient:
    def __init__(self) -> None:
        self.messages = FakeMessages()


def test_sms_defaults_to_caller_number():
    client = FakeTwilioClient()
    notifier = SmsNotifier(from_number="+15005550006", client=client)

    asyncio.run(notifier.send(_entry(), "answer"))

    assert client.messages.created == [{"body": "answer", "from_": "+15005550006", "to": "+15550001111"}]


def test_sms_without_sender_raises():
    with pytest.raises(NotificationError):
        asyncio.run(SmsNotifier(from_number=None, client=FakeTwilioClient()).send(_entry(), "x"))


def test_build_notifier_selects_configured_method():
    settings = Settings(telegram_bot_token="env-token", gateway_url="https://gw.example.com")

    assert isinstance(build_notifier(EscalationConfig(method="telegram"), settings), TelegramNotifier)
    assert isinstance(build_notifier(EscalationConfig(method="gateway"), settings), GatewayNotifier)
    assert isinstance(build_notifier(EscalationConfig(method="sms"), settings), SmsNotifier)
    assert isinstance(build_notifier(EscalationConfig(method="webhook"), settings), WebhookNotifier)
