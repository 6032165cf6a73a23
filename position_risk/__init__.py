"""Position risk monitoring with staged loss alerts and hedge signals."""

from .exceptions import (
    ConfigurationError,
    NotificationDeliveryError,
    OrderPlacementError,
    PositionNotFound,
    PositionRiskError,
    SnapshotFetchError,
)
from .models import (
    AccountBalance,
    HedgeIntent,
    OrderSide,
    OrderType,
    PlacedOrder,
    Position,
    PositionKey,
    PositionSide,
)

__all__ = [
    "AccountBalance",
    "ConfigurationError",
    "HedgeIntent",
    "NotificationDeliveryError",
    "OrderPlacementError",
    "OrderSide",
    "OrderType",
    "PlacedOrder",
    "Position",
    "PositionKey",
    "PositionNotFound",
    "PositionRiskError",
    "PositionSide",
    "SnapshotFetchError",
]
