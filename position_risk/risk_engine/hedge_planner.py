"""Sizing of the offsetting order proposed when a position nears its loss limit."""

from __future__ import annotations

from ..models import HedgeIntent, Position

HEDGE_BASE_FRACTION = 0.1
LOSS_BUFFER_POINTS = 1.0


def compute_hedge(
    position: Position,
    loss_threshold: float,
    *,
    base_fraction: float = HEDGE_BASE_FRACTION,
) -> HedgeIntent:
    """Return the hedge for ``position`` given the configured loss threshold.

    The order takes the opposite side and is sized as a fraction of the
    position that grows with the loss, capped at ``base_fraction`` of the size:

        quantity = size * min(1, (|pnl%| + 1) / loss_threshold) * base_fraction

    The reference price is the mark price at the time of the call.
    """

    if loss_threshold <= 0:
        raise ValueError("loss_threshold must be greater than zero")
    buffer_ratio = min(1.0, (abs(position.pnl_percentage) + LOSS_BUFFER_POINTS) / loss_threshold)
    quantity = position.size * buffer_ratio * base_fraction
    return HedgeIntent(
        symbol=position.symbol,
        side=position.side.hedge_side,
        quantity=quantity,
        reference_price=position.mark_price,
    )


__all__ = ["HEDGE_BASE_FRACTION", "LOSS_BUFFER_POINTS", "compute_hedge"]
