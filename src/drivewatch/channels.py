"""Notification channels: per-platform rendering, endpoint and success rules."""
from __future__ import annotations

import logging
from typing import Callable

from .config import AppConfig, ChannelConfig, is_placeholder
from .errors import DeliveryFailure
from .models import ChangeRecord
from .sender import is_2xx, send_with_retry
from .util import format_display_time

log = logging.getLogger(__name__)

TELEGRAM_API = "https://api.telegram.org"


class Channel:
    """Generic JSON webhook; also the fallback for unknown channel names."""

    def __init__(self, config: ChannelConfig, display_timezone: str = "UTC") -> None:
        self.config = config
        self.display_timezone = display_timezone

    @property
    def name(self) -> str:
        return self.config.name

    def credentials(self) -> list[str]:
        return [self.config.webhook_url]

    def is_configured(self) -> bool:
        return all(not is_placeholder(value) for value in self.credentials())

    def endpoint(self) -> str:
        return self.config.webhook_url

    def format_record(self, record: ChangeRecord) -> str:
        return f"{record.name} - {record.url}\nLast Updated: {self._when(record)}"

    def render(self, records: list[ChangeRecord]) -> str:
        return "\n\n".join(self.format_record(r) for r in records)

    def payload(self, message: str) -> dict:
        return {"text": message}

    def is_success(self, status_code: int) -> bool:
        return is_2xx(status_code)

    def deliver(self, records: list[ChangeRecord], sender: Callable[..., bool] = send_with_retry) -> None:
        """
        Render records and send them as one message.

        Raises:
            DeliveryFailure: if the sender exhausted its retries
        """
        log.info(f"Sending {self.name} notification...")
        message = self.render(records)
        ok = sender(self.endpoint(), self.payload(message), self.is_success, label=self.name)
        if not ok:
            raise DeliveryFailure(self.name, "retries exhausted")

    def _when(self, record: ChangeRecord) -> str:
        return format_display_time(record.last_updated, self.display_timezone)


class DiscordChannel(Channel):
    def format_record(self, record: ChangeRecord) -> str:
        return f"**[{record.name}]({record.url})**\nLast Updated: {self._when(record)}"

    def payload(self, message: str) -> dict:
        return {"content": message}

    def is_success(self, status_code: int) -> bool:
        return status_code in (200, 204)


class SlackChannel(Channel):
    def format_record(self, record: ChangeRecord) -> str:
        return f"*<{record.url}|{record.name}>*\nLast Updated: {self._when(record)}"


class TelegramChannel(Channel):
    def credentials(self) -> list[str]:
        return [self.config.bot_token, self.config.chat_id]

    def endpoint(self) -> str:
        return f"{TELEGRAM_API}/bot{self.config.bot_token}/sendMessage"

    def format_record(self, record: ChangeRecord) -> str:
        return f"[{record.name}]({record.url})\nLast Updated: {self._when(record)}"

    def payload(self, message: str) -> dict:
        return {"chat_id": self.config.chat_id, "text": message, "parse_mode": "Markdown"}

    def is_success(self, status_code: int) -> bool:
        return status_code == 200


CHANNEL_TYPES: dict[str, type[Channel]] = {
    "discord": DiscordChannel,
    "slack": SlackChannel,
    "telegram": TelegramChannel,
    "webhook": Channel,
}


def make_channel(config: ChannelConfig, display_timezone: str = "UTC") -> Channel:
    channel_cls = CHANNEL_TYPES.get(config.name.lower(), Channel)
    return channel_cls(config, display_timezone)


def build_channels(config: AppConfig) -> list[Channel]:
    return [make_channel(c, config.display_timezone) for c in config.channels]
