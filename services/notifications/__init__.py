from .telegram import TelegramApiError, send_telegram_message
from .types import NotificationError, NotificationResult

__all__ = [
    "send_telegram_message",
    "NotificationError",
    "NotificationResult",
    "TelegramApiError",
]
