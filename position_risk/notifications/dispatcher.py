"""Fire-and-report delivery of monitor events."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional

from services.notifications import NotificationResult
from services.telemetry import Telemetry

from ..exceptions import NotificationDeliveryError
from ..metrics import MetricRegistry
from .channels import NotificationChannel
from .events import HedgeExecuted, HedgeSignal, PositionClosed, WarningAlert

logger = logging.getLogger(__name__)

SERVICE_NAME = "notifications"


class NotificationDispatcher:
    """Deliver events through an optional channel without ever raising.

    Every call is bounded by the telemetry timeout and reports ``True`` only
    when the channel confirmed delivery.
    """

    def __init__(
        self,
        channel: Optional[NotificationChannel],
        *,
        telemetry: Optional[Telemetry] = None,
        metrics: Optional[MetricRegistry] = None,
    ) -> None:
        self.channel = channel
        self._telemetry = telemetry or Telemetry()
        # Channels retry on their own; the wrapper only enforces the timeout.
        self._policy = self._telemetry.policy.without_retries()
        self._metrics = metrics or MetricRegistry()

    async def warning_alert(self, event: WarningAlert) -> bool:
        return await self._deliver("warning_alert", event.symbol, lambda channel: channel.send_warning_alert(event))

    async def hedge_signal(self, event: HedgeSignal) -> bool:
        return await self._deliver("hedge_signal", event.symbol, lambda channel: channel.send_hedge_signal(event))

    async def hedge_executed(self, event: HedgeExecuted) -> bool:
        return await self._deliver("hedge_executed", event.symbol, lambda channel: channel.send_hedge_executed(event))

    async def position_closed(self, event: PositionClosed) -> bool:
        return await self._deliver(
            "position_closed", event.symbol, lambda channel: channel.send_position_closed(event)
        )

    async def test_connection(self) -> bool:
        return await self._deliver("test_connection", None, lambda channel: channel.test_connection())

    async def _deliver(
        self,
        event_name: str,
        symbol: Optional[str],
        send: Callable[[NotificationChannel], Awaitable[NotificationResult]],
    ) -> bool:
        channel = self.channel
        if channel is None:
            logger.warning(
                "No notification channel configured",
                extra={"event": event_name, "symbol": symbol},
            )
            self._metrics.inc("notifications_total", labels={"event": event_name, "status": "skipped"})
            return False
        try:
            result = await self._telemetry.execute_with_resilience(
                SERVICE_NAME, lambda: send(channel), policy=self._policy
            )
            if not result.success:
                reason = result.error.reason if result.error else "unknown error"
                raise NotificationDeliveryError(event_name, reason)
        except Exception as exc:
            error = exc
            if not isinstance(exc, NotificationDeliveryError):
                error = NotificationDeliveryError(event_name, str(exc) or type(exc).__name__)
            logger.warning(
                "Notification delivery failed: %s",
                error,
                extra={"event": event_name, "symbol": symbol, "channel": channel.name},
            )
            self._metrics.inc("notifications_total", labels={"event": event_name, "status": "failed"})
            return False
        logger.info(
            "Notification delivered",
            extra={"event": event_name, "symbol": symbol, "channel": channel.name, "attempts": result.attempts},
        )
        self._metrics.inc("notifications_total", labels={"event": event_name, "status": "sent"})
        return True


__all__ = ["NotificationDispatcher"]
