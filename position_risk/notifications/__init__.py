"""Notification events, channels and the dispatcher used by the monitor."""

from .channels import NotificationChannel, TelegramNotificationChannel
from .dispatcher import NotificationDispatcher
from .events import (
    HedgeExecuted,
    HedgeSignal,
    PositionClosed,
    SignalTemplate,
    WarningAlert,
)

__all__ = [
    "HedgeExecuted",
    "HedgeSignal",
    "NotificationChannel",
    "NotificationDispatcher",
    "PositionClosed",
    "SignalTemplate",
    "TelegramNotificationChannel",
    "WarningAlert",
]
