from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, NamedTuple, Optional


class PositionSide(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"

    @classmethod
    def _missing_(cls, value: object) -> Optional["PositionSide"]:
        if isinstance(value, str):
            upper = value.strip().upper()
            for member in cls:
                if member.value == upper:
                    return member
        return None

    @property
    def hedge_side(self) -> "OrderSide":
        return OrderSide.SELL if self is PositionSide.LONG else OrderSide.BUY


class OrderSide(str, Enum):
    BUY = "BUY"
    SELL = "SELL"

    @classmethod
    def _missing_(cls, value: object) -> Optional["OrderSide"]:
        if isinstance(value, str):
            upper = value.strip().upper()
            for member in cls:
                if member.value == upper:
                    return member
        return None


class OrderType(str, Enum):
    MARKET = "MARKET"
    LIMIT = "LIMIT"


class PositionKey(NamedTuple):
    """Identity of a position: one entry per symbol and side."""

    symbol: str
    side: PositionSide

    def __str__(self) -> str:
        return f"{self.symbol}_{self.side.value}"

    @classmethod
    def parse(cls, value: str) -> "PositionKey":
        """Parse ``"BTCUSDT_LONG"`` style keys."""

        if not isinstance(value, str) or "_" not in value:
            raise ValueError(f"Invalid position key: {value!r}")
        symbol, _, side_raw = value.rpartition("_")
        if not symbol:
            raise ValueError(f"Invalid position key: {value!r}")
        try:
            side = PositionSide(side_raw)
        except ValueError as exc:
            raise ValueError(f"Invalid position side in key {value!r}") from exc
        return cls(symbol, side)


@dataclass(frozen=True)
class Position:
    """One open leveraged position as reported by the exchange."""

    symbol: str
    side: PositionSide
    size: float
    entry_price: float
    mark_price: float
    unrealized_pnl: float
    pnl_percentage: float
    margin: float = 0.0
    leverage: int = 1
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if not self.symbol:
            raise ValueError("Position symbol must not be empty")
        if not isinstance(self.side, PositionSide):
            object.__setattr__(self, "side", PositionSide(self.side))
        if self.size <= 0:
            raise ValueError(f"Position size must be positive, got {self.size}")
        if self.leverage < 1:
            raise ValueError(f"Position leverage must be positive, got {self.leverage}")

    @property
    def key(self) -> PositionKey:
        return PositionKey(self.symbol, self.side)

    @property
    def loss_percent(self) -> float:
        return abs(self.pnl_percentage)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "side": self.side.value,
            "size": self.size,
            "entry_price": self.entry_price,
            "mark_price": self.mark_price,
            "unrealized_pnl": self.unrealized_pnl,
            "pnl_percentage": self.pnl_percentage,
            "margin": self.margin,
            "leverage": self.leverage,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass(frozen=True)
class AccountBalance:
    total_wallet_balance: float
    total_unrealized_pnl: float = 0.0
    total_margin_balance: float = 0.0
    available_balance: float = 0.0
    max_withdraw_amount: float = 0.0
    currency: str = "USDT"

    def to_payload(self) -> Dict[str, Any]:
        return {
            "total_wallet_balance": self.total_wallet_balance,
            "total_unrealized_pnl": self.total_unrealized_pnl,
            "total_margin_balance": self.total_margin_balance,
            "available_balance": self.available_balance,
            "max_withdraw_amount": self.max_withdraw_amount,
            "currency": self.currency,
        }


@dataclass(frozen=True)
class HedgeIntent:
    """An order that would offset part of a losing position."""

    symbol: str
    side: OrderSide
    quantity: float
    reference_price: float

    def __post_init__(self) -> None:
        if self.quantity <= 0:
            raise ValueError(f"Hedge quantity must be positive, got {self.quantity}")

    def to_payload(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "side": self.side.value,
            "quantity": self.quantity,
            "reference_price": self.reference_price,
        }


@dataclass(frozen=True)
class PlacedOrder:
    order_id: str
    symbol: str
    side: OrderSide
    quantity: float
    price: Optional[float] = None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "order_id": self.order_id,
            "symbol": self.symbol,
            "side": self.side.value,
            "quantity": self.quantity,
            "price": self.price,
        }


__all__ = [
    "AccountBalance",
    "HedgeIntent",
    "OrderSide",
    "OrderType",
    "PlacedOrder",
    "Position",
    "PositionKey",
    "PositionSide",
]
