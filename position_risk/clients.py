"""Collaborator interfaces the risk monitor depends on."""

from __future__ import annotations

import abc
from typing import Optional, Sequence

from .models import AccountBalance, OrderSide, OrderType, PlacedOrder, Position


class PositionSnapshotSource(abc.ABC):
    """Read-only view of the account's open positions."""

    @abc.abstractmethod
    async def list_positions(self) -> Sequence[Position]:
        """Return every open position with a non-zero size.

        Implementations raise :class:`~position_risk.exceptions.SnapshotFetchError`
        when the exchange cannot be reached or returns an unusable payload.
        """

    @abc.abstractmethod
    async def get_account_balance(self) -> AccountBalance:
        """Return wallet and margin totals for the account."""


class OrderExecutionClient(abc.ABC):
    """Submit orders to the exchange."""

    @abc.abstractmethod
    async def place_order(
        self,
        symbol: str,
        side: OrderSide,
        quantity: float,
        order_type: OrderType = OrderType.MARKET,
        price: Optional[float] = None,
    ) -> PlacedOrder:
        """Place an order and return the exchange acknowledgement.

        ``LIMIT`` orders require ``price`` and rest good-till-cancelled.
        Failures raise :class:`~position_risk.exceptions.OrderPlacementError`.
        """


__all__ = ["OrderExecutionClient", "PositionSnapshotSource"]
