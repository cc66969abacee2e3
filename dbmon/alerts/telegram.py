from __future__ import annotations

import httpx

from dbmon.alerts.base import AlertEvent, AlertSender
from dbmon.core.config import Settings, settings as default_settings
from dbmon.services.metrics import format_duration


class TelegramNotifier(AlertSender):
    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or default_settings
        if not settings.telegram_bot_token:
            raise RuntimeError("Telegram bot token is not configured")
        if not settings.telegram_chat_id:
            raise RuntimeError("Telegram chat id is not configured")
        self._client = client or httpx.AsyncClient(timeout=5.0)
        self._token = settings.telegram_bot_token
        self._chat_id = settings.telegram_chat_id
        self._parse_mode = settings.telegram_parse_mode

    async def send(self, event: AlertEvent) -> None:
        url = f"https://api.telegram.org/bot{self._token}/sendMessage"
        payload = {
            "chat_id": self._chat_id,
            "text": self._format_message(event),
            "parse_mode": self._parse_mode,
            "disable_web_page_preview": True,
        }
        resp = await self._client.post(url, json=payload)
        resp.raise_for_status()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _format_message(self, event: AlertEvent) -> str:
        status_line = f"Status: {event.status.value}"
        prev = f" (previous: {event.previous_status.value})" if event.previous_status else ""
        err = f"\nError: {event.error}" if event.error else ""
        window = ""
        if event.started_at:
            end = event.ended_at.isoformat() if event.ended_at else "ongoing"
            window = f"\nDowntime: {event.started_at.isoformat()} → {end}"
            if event.ended_at:
                ms = (event.ended_at - event.started_at).total_seconds() * 1000
                window += f" ({format_duration(ms)})"
        checked = f"\nChecked at: {event.checked_at.isoformat()}"
        return (
            f"Database: {event.target_name} ({event.engine})\n"
            f"Address: {event.address}\n"
            f"{status_line}{prev}{window}{err}{checked}"
        )


def build_notifier(settings: Settings | None = None) -> TelegramNotifier | None:
    settings = settings or default_settings
    if not (settings.telegram_bot_token and settings.telegram_chat_id):
        return None
    return TelegramNotifier(settings=settings)
