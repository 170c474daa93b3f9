"""Delivery channels for follow-up replies.

Exactly one channel is active per deployment (``escalation.method`` in the voice
config). Every channel resolves its recipient from the entry's destination hint
first and the channel default second.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod

import httpx

from agents.errors import NotificationError
from calls.messages import t
from config.settings import Settings
from config.voice_config import EscalationConfig
from escalation.queue import EscalationEntry

LOGGER = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"
SMS_MAX_CHARS = 1500


def format_followup(entry: EscalationEntry, reply: str) -> str:
    return t(entry.language, "followup_header", message=entry.message) + reply.strip()


class BaseNotifier(ABC):
    name: str

    @abstractmethod
    async def send(self, entry: EscalationEntry, text: str) -> None:
        """Deliver ``text``; raises ``NotificationError`` on any failure."""

    def _destination(self, entry: EscalationEntry, default: str | None) -> str:
        destination = entry.destination_hint or default
        if not destination:
            raise NotificationError(f"No {self.name} destination for entry {entry.id}")
        return destination


async def _post_json(url: str, payload: dict, *, headers: dict[str, str] | None = None, timeout: float) -> None:
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.post(url, json=payload, headers=headers)
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise NotificationError(
            f"HTTP {exc.response.status_code}: {exc.response.text[:200]}"
        ) from exc
    except httpx.HTTPError as exc:
        raise NotificationError(str(exc) or exc.__class__.__name__) from exc


class GatewayNotifier(BaseNotifier):
    """Relay through a messaging gateway that fans out to the caller's channel."""

    name = "gateway"

    def __init__(
        self,
        url: str | None,
        *,
        token: str | None = None,
        channel: str = "telegram",
        default_destination: str | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._url = url
        self._token = token
        self._channel = channel
        self._default = default_destination
        self._timeout = timeout

    async def send(self, entry: EscalationEntry, text: str) -> None:
        if not self._url:
            raise NotificationError("Gateway URL not configured")
        headers = {"Authorization": f"Bearer {self._token}"} if self._token else None
        payload = {
            "channel": self._channel,
            "to": self._destination(entry, self._default),
            "message": text,
            "metadata": {"queryId": entry.id, "kind": entry.kind},
        }
        await _post_json(self._url, payload, headers=headers, timeout=self._timeout)


class TelegramNotifier(BaseNotifier):
    name = "telegram"

    def __init__(
        self,
        bot_token: str | None,
        *,
        default_chat_id: str | None = None,
        api_url: str = TELEGRAM_API_URL,
        timeout: float = 10.0,
    ) -> None:
        self._token = bot_token
        self._default = default_chat_id
        self._api_url = api_url
        self._timeout = timeout

    async def send(self, entry: EscalationEntry, text: str) -> None:
        if not self._token:
            raise NotificationError("Telegram bot token not configured")
        url = f"{self._api_url}/bot{self._token}/sendMessage"
        payload = {"chat_id": self._destination(entry, self._default), "text": text}
        await _post_json(url, payload, timeout=self._timeout)


class SmsNotifier(BaseNotifier):
    """Carrier SMS through the Twilio REST client."""

    name = "sms"

    def __init__(self, *, from_number: str | None, default_to: str | None = None, client=None) -> None:
        self._from = from_number
        self._default = default_to
        self._client = client

    def _get_client(self):
        if self._client is None:
            from integrations.twilio_client import build_twilio_client

            try:
                self._client = build_twilio_client()
            except ValueError as exc:
                raise NotificationError(str(exc)) from exc
        return self._client

    async def send(self, entry: EscalationEntry, text: str) -> None:
        from twilio.base.exceptions import TwilioException

        if not self._from:
            raise NotificationError("SMS sender number not configured")
        # Follow-ups go back to the caller unless routed elsewhere.
        to = entry.destination_hint or self._default or entry.caller_number
        client = self._get_client()
        try:
            message = await asyncio.to_thread(
                client.messages.create, body=text[:SMS_MAX_CHARS], from_=self._from, to=to
            )
        except TwilioException as exc:
            raise NotificationError(f"Twilio SMS failed: {exc}") from exc
        LOGGER.info("SMS %s queued to %s", getattr(message, "sid", "?"), to)


class WebhookNotifier(BaseNotifier):
    name = "webhook"

    def __init__(self, url: str | None, *, headers: dict[str, str] | None = None, timeout: float = 10.0) -> None:
        self._url = url
        self._headers = headers or {}
        self._timeout = timeout

    async def send(self, entry: EscalationEntry, text: str) -> None:
        if not self._url:
            raise NotificationError("Webhook URL not configured")
        payload = {
            "id": entry.id,
            "kind": entry.kind,
            "callerNumber": entry.caller_number,
            "callerName": entry.caller_name,
            "destination": entry.destination_hint,
            "language": entry.language,
            "query": entry.message,
            "message": text,
        }
        await _post_json(self._url, payload, headers=self._headers, timeout=self._timeout)


def build_notifier(config: EscalationConfig, settings: Settings) -> BaseNotifier:
    """Instantiate the single configured notification channel."""

    method = config.method
    if method == "gateway":
        return GatewayNotifier(
            config.gateway.url or settings.gateway_url,
            token=settings.gateway_token,
            channel=config.gateway.channel,
            default_destination=config.gateway.default_destination,
        )
    if method == "telegram":
        return TelegramNotifier(
            config.telegram.bot_token or settings.telegram_bot_token,
            default_chat_id=config.telegram.default_chat_id,
        )
    if method == "sms":
        return SmsNotifier(
            from_number=config.sms.from_number or settings.twilio_from_number,
            default_to=config.sms.default_to,
        )
    if method == "webhook":
        return WebhookNotifier(config.webhook.url, headers=config.webhook.headers)
    raise ValueError(f"Unsupported notification method: {method}")
