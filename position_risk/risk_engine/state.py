"""Per-position threshold state and the pure rules that drive it."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from ..models import HedgeIntent, OrderSide, Position, PositionKey
from .config import RiskManagementConfig


class ThresholdTrigger(str, Enum):
    WARNING = "warning"
    HEDGE = "hedge"


@dataclass
class MonitoredPositionState:
    """Latest snapshot of a position plus the flags of its current loss episode."""

    position: Position
    warning_fired: bool = False
    hedge_fired: bool = False
    hedge_order_id: Optional[str] = None
    hedge_entry_price: Optional[float] = None
    hedge_intent: Optional[HedgeIntent] = None
    last_warning_at: Optional[datetime] = None
    last_hedge_at: Optional[datetime] = None
    first_seen_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def key(self) -> PositionKey:
        return self.position.key

    def refresh(self, position: Position) -> None:
        if position.key != self.key:
            raise ValueError(f"Cannot refresh {self.key} with {position.key}")
        self.position = position

    def mark_warning(self, when: Optional[datetime] = None) -> None:
        self.warning_fired = True
        self.last_warning_at = when or datetime.now(timezone.utc)

    def mark_hedge(self, intent: HedgeIntent, when: Optional[datetime] = None) -> None:
        self.hedge_fired = True
        self.hedge_intent = intent
        self.last_hedge_at = when or datetime.now(timezone.utc)

    def record_hedge_order(self, intent: HedgeIntent, order_id: str, entry_price: float) -> None:
        self.hedge_intent = intent
        self.hedge_order_id = order_id
        self.hedge_entry_price = entry_price

    def hedge_contribution(self) -> float:
        """Mark-to-market value of the executed hedge at the last seen mark price."""

        if self.hedge_order_id is None or self.hedge_intent is None or self.hedge_entry_price is None:
            return 0.0
        move = self.position.mark_price - self.hedge_entry_price
        if self.hedge_intent.side is OrderSide.SELL:
            move = -move
        return self.hedge_intent.quantity * move

    def to_payload(self) -> Dict[str, Any]:
        return {
            "key": str(self.key),
            "position": self.position.to_payload(),
            "warning_fired": self.warning_fired,
            "hedge_fired": self.hedge_fired,
            "hedge_order_id": self.hedge_order_id,
            "hedge_entry_price": self.hedge_entry_price,
            "hedge_intent": self.hedge_intent.to_payload() if self.hedge_intent else None,
            "last_warning_at": self.last_warning_at.isoformat() if self.last_warning_at else None,
            "last_hedge_at": self.last_hedge_at.isoformat() if self.last_hedge_at else None,
            "first_seen_at": self.first_seen_at.isoformat(),
        }


def ineligibility_reason(position: Position, config: RiskManagementConfig) -> Optional[str]:
    """Return why ``position`` is not monitored this tick, or ``None`` if it is."""

    if config.protected_symbols and position.symbol.upper() not in config.protected_symbols:
        return "not_protected"
    if abs(position.unrealized_pnl) < config.min_position_size:
        return "below_min_size"
    if position.pnl_percentage >= 0:
        return "not_losing"
    return None


def pending_triggers(
    state: MonitoredPositionState, config: RiskManagementConfig
) -> List[ThresholdTrigger]:
    """Thresholds crossed by the latest snapshot that have not fired yet.

    The warning always precedes the hedge when both are crossed in one tick.
    """

    triggers: List[ThresholdTrigger] = []
    if state.position.pnl_percentage >= 0:
        return triggers
    loss = state.position.loss_percent
    if loss >= config.warning_threshold and not state.warning_fired:
        triggers.append(ThresholdTrigger.WARNING)
    if loss >= config.hedge_trigger and not state.hedge_fired:
        triggers.append(ThresholdTrigger.HEDGE)
    return triggers


__all__ = [
    "MonitoredPositionState",
    "ThresholdTrigger",
    "ineligibility_reason",
    "pending_triggers",
]
