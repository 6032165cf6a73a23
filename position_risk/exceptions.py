"""Exception hierarchy shared by the monitor, adapters and HTTP surface."""

from __future__ import annotations


class PositionRiskError(Exception):
    """Base class for errors raised by the position risk tooling."""


class ConfigurationError(PositionRiskError, ValueError):
    """Raised when a configuration payload or update is invalid."""


class SnapshotFetchError(PositionRiskError):
    """Raised when positions or balances cannot be read from the exchange."""


class NotificationDeliveryError(PositionRiskError):
    """Raised when a notification could not be delivered to its channel."""

    def __init__(self, event: str, reason: str) -> None:
        self.event = event
        self.reason = reason
        super().__init__(f"{event} notification failed: {reason}")


class OrderPlacementError(PositionRiskError):
    """Raised when the exchange rejects or fails to acknowledge an order."""


class PositionNotFound(PositionRiskError, KeyError):
    """Raised when an operation targets a position that is not tracked."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message instead.
        return str(self.args[0]) if self.args else "position not tracked"
