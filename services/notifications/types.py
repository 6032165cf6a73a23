from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional


@dataclass
class NotificationError:
    channel: str
    reason: str
    retryable: bool
    details: Optional[Mapping[str, Any]] = None


@dataclass
class NotificationResult:
    channel: str
    success: bool
    attempts: int
    error: Optional[NotificationError] = None
    payload: Optional[Mapping[str, Any]] = None

    @classmethod
    def not_configured(cls, channel: str, reason: str) -> "NotificationResult":
        error = NotificationError(channel=channel, reason=reason, retryable=False)
        return cls(channel=channel, success=False, attempts=0, error=error)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "channel": self.channel,
            "success": self.success,
            "attempts": self.attempts,
            "error": self.error.reason if self.error else None,
        }
