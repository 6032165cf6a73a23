"""Notification channel contract and the Telegram implementation."""

from __future__ import annotations

import abc
import logging
from typing import Optional

from services.notifications import NotificationResult, send_telegram_message
from services.notifications.telegram import RequestFunc

from .events import (
    HedgeExecuted,
    HedgeSignal,
    PositionClosed,
    SignalTemplate,
    WarningAlert,
    render_connection_test,
    render_hedge_executed,
    render_hedge_signal,
    render_position_closed,
    render_warning_alert,
)

logger = logging.getLogger(__name__)


class NotificationChannel(abc.ABC):
    """Deliver monitor events to a human or to a signal consumer."""

    name: str = "channel"

    @abc.abstractmethod
    async def send_warning_alert(self, event: WarningAlert) -> NotificationResult:
        ...

    @abc.abstractmethod
    async def send_hedge_signal(self, event: HedgeSignal) -> NotificationResult:
        ...

    @abc.abstractmethod
    async def send_hedge_executed(self, event: HedgeExecuted) -> NotificationResult:
        ...

    @abc.abstractmethod
    async def send_position_closed(self, event: PositionClosed) -> NotificationResult:
        ...

    @abc.abstractmethod
    async def test_connection(self) -> NotificationResult:
        ...


class TelegramNotificationChannel(NotificationChannel):
    """Send alerts to a personal chat and hedge signals to a group chat.

    Alerts use Markdown. The signal is sent as plain text to ``signal_chat_id``
    so copy-trading bots listening in that group can parse it.
    """

    name = "telegram"

    def __init__(
        self,
        bot_token: Optional[str],
        chat_id: Optional[str],
        *,
        signal_chat_id: Optional[str] = None,
        template: Optional[SignalTemplate] = None,
        max_retries: int = 2,
        backoff_seconds: float = 0.5,
        timeout: float = 10.0,
        request_func: Optional[RequestFunc] = None,
    ) -> None:
        self._bot_token = bot_token
        self.chat_id = chat_id
        self.signal_chat_id = signal_chat_id
        self.template = template or SignalTemplate()
        self._max_retries = max_retries
        self._backoff_seconds = backoff_seconds
        self._timeout = timeout
        self._request_func = request_func

    async def _send(
        self, chat_id: Optional[str], text: str, *, parse_mode: Optional[str] = "Markdown", target: str = "chat"
    ) -> NotificationResult:
        if not self._bot_token:
            logger.error("Telegram bot token not configured")
            return NotificationResult.not_configured(self.name, "bot token not configured")
        if not chat_id:
            logger.error("Telegram %s id not configured", target)
            return NotificationResult.not_configured(self.name, f"{target} id not configured")
        return await send_telegram_message(
            self._bot_token,
            chat_id,
            text,
            parse_mode=parse_mode,
            request_func=self._request_func,
            max_retries=self._max_retries,
            backoff_seconds=self._backoff_seconds,
            timeout=self._timeout,
        )

    async def send_warning_alert(self, event: WarningAlert) -> NotificationResult:
        return await self._send(self.chat_id, render_warning_alert(event))

    async def send_hedge_signal(self, event: HedgeSignal) -> NotificationResult:
        text = render_hedge_signal(event, self.template)
        return await self._send(self.signal_chat_id, text, parse_mode=None, target="signal chat")

    async def send_hedge_executed(self, event: HedgeExecuted) -> NotificationResult:
        return await self._send(self.chat_id, render_hedge_executed(event))

    async def send_position_closed(self, event: PositionClosed) -> NotificationResult:
        return await self._send(self.chat_id, render_position_closed(event))

    async def test_connection(self) -> NotificationResult:
        return await self._send(self.chat_id, render_connection_test(self.template))


__all__ = ["NotificationChannel", "TelegramNotificationChannel"]
