"""Notification events emitted by the risk monitor and their text rendering."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..models import HedgeIntent, OrderSide, PositionSide


@dataclass(frozen=True)
class WarningAlert:
    symbol: str
    side: PositionSide
    size: float
    current_loss_percent: float
    loss_threshold: Optional[float] = None
    hedge_trigger: Optional[float] = None


@dataclass(frozen=True)
class HedgeSignal:
    symbol: str
    side: PositionSide
    size: float
    current_loss_percent: float
    hedge_intent: HedgeIntent


@dataclass(frozen=True)
class HedgeExecuted:
    symbol: str
    side: OrderSide
    quantity: float
    executed_price: float
    order_id: str


@dataclass(frozen=True)
class PositionClosed:
    symbol: str
    final_pnl: float
    hedge_contribution: float = 0.0

    @property
    def net_result(self) -> float:
        return self.final_pnl + self.hedge_contribution


@dataclass(frozen=True)
class SignalTemplate:
    """Price offsets of the copy-trading signal, in percent of the reference price."""

    exchange_label: str = "Binance Futures"
    entry_band_pct: float = 0.1
    take_profit_pct: float = 2.5
    stop_loss_pct: float = 2.0


@dataclass(frozen=True)
class SignalLevels:
    direction: str
    entry_low: float
    entry_high: float
    take_profit: float
    stop_loss: float


def signal_levels(intent: HedgeIntent, template: SignalTemplate = SignalTemplate()) -> SignalLevels:
    price = intent.reference_price
    band = template.entry_band_pct / 100
    take_profit = template.take_profit_pct / 100
    stop_loss = template.stop_loss_pct / 100
    if intent.side is OrderSide.BUY:
        return SignalLevels(
            direction="LONG",
            entry_low=price * (1 - band),
            entry_high=price * (1 + band),
            take_profit=price * (1 + take_profit),
            stop_loss=price * (1 - stop_loss),
        )
    return SignalLevels(
        direction="SHORT",
        entry_low=price * (1 - band),
        entry_high=price * (1 + band),
        take_profit=price * (1 - take_profit),
        stop_loss=price * (1 + stop_loss),
    )


def render_warning_alert(event: WarningAlert) -> str:
    lines = [
        "⚠️ *POSITION WARNING ALERT*",
        "",
        f"Symbol: {event.symbol}",
        f"Side: {event.side.value}",
        f"Size: {event.size:g}",
        f"Current Loss: -{event.current_loss_percent:.2f}%",
    ]
    if event.loss_threshold is not None and event.hedge_trigger is not None:
        lines.extend(
            [
                "",
                f"Position is approaching -{event.loss_threshold:g}% loss threshold. "
                f"Hedge signal will be sent at -{event.hedge_trigger:g}%.",
            ]
        )
    return "\n".join(lines)


def render_hedge_signal(event: HedgeSignal, template: SignalTemplate = SignalTemplate()) -> str:
    """Plain-text signal readable by copy-trading bots.

    Leverage and order size are left to the executing platform.
    """

    levels = signal_levels(event.hedge_intent, template)
    tag = event.symbol.replace("/", "")
    lines = [
        event.symbol,
        f"Exchange: {template.exchange_label}",
        f"Direction: {levels.direction}",
        "",
        f"Entry: {levels.entry_low:.4f} - {levels.entry_high:.4f}",
        "",
        "Targets:",
        f"1) {levels.take_profit:.4f}",
        "",
        f"Stop Loss: {levels.stop_loss:.4f}",
        "",
        f"#{tag} #{levels.direction.lower()}",
    ]
    return "\n".join(lines)


def render_hedge_executed(event: HedgeExecuted) -> str:
    lines = [
        "✅ *HEDGE POSITION EXECUTED*",
        "",
        f"Symbol: {event.symbol}",
        f"Action: {event.side.value}",
        f"Quantity: {event.quantity:.4f}",
        f"Executed Price: ${event.executed_price:.2f}",
        f"Order ID: {event.order_id}",
        "",
        "Position is now protected against further losses.",
    ]
    return "\n".join(lines)


def render_position_closed(event: PositionClosed) -> str:
    emoji = "🎉" if event.final_pnl >= 0 else "💰"
    outcome = "successful" if event.net_result >= 0 else "limited losses"
    lines = [
        f"{emoji} *POSITION CLOSED*",
        "",
        f"Symbol: {event.symbol}",
        f"Final P&L: ${event.final_pnl:.2f}",
        f"Hedge Contribution: ${event.hedge_contribution:.2f}",
        f"Net Result: ${event.net_result:.2f}",
        "",
        f"Protection strategy {outcome}.",
    ]
    return "\n".join(lines)


def render_connection_test(template: SignalTemplate = SignalTemplate()) -> str:
    lines = [
        f"🤖 *{template.exchange_label} Risk Monitor*",
        "",
        "Connection test successful!",
        "Risk management system is active.",
    ]
    return "\n".join(lines)


__all__ = [
    "HedgeExecuted",
    "HedgeSignal",
    "PositionClosed",
    "SignalLevels",
    "SignalTemplate",
    "WarningAlert",
    "render_connection_test",
    "render_hedge_executed",
    "render_hedge_signal",
    "render_position_closed",
    "render_warning_alert",
    "signal_levels",
]
