import asyncio
from typing import Callable, List, Optional, Sequence

import pytest

from position_risk.clients import OrderExecutionClient, PositionSnapshotSource
from position_risk.exceptions import OrderPlacementError, SnapshotFetchError
from position_risk.models import (
    AccountBalance,
    OrderSide,
    OrderType,
    PlacedOrder,
    Position,
    PositionSide,
)
from position_risk.notifications.channels import NotificationChannel
from position_risk.notifications.events import HedgeExecuted, HedgeSignal, PositionClosed, WarningAlert
from services.notifications import NotificationResult
from services.telemetry import ResiliencePolicy, Telemetry


def build_position(
    symbol: str = "BTCUSDT",
    side: PositionSide = PositionSide.LONG,
    *,
    size: float = 0.5,
    pnl_percentage: float = -5.0,
    unrealized_pnl: Optional[float] = None,
    entry_price: float = 50000.0,
    mark_price: Optional[float] = None,
    margin: float = 2500.0,
    leverage: int = 10,
) -> Position:
    if unrealized_pnl is None:
        unrealized_pnl = margin * pnl_percentage / 100
    if mark_price is None:
        move = pnl_percentage / 100 / leverage
        mark_price = entry_price * (1 + move) if side is PositionSide.LONG else entry_price * (1 - move)
    return Position(
        symbol=symbol,
        side=side,
        size=size,
        entry_price=entry_price,
        mark_price=mark_price,
        unrealized_pnl=unrealized_pnl,
        pnl_percentage=pnl_percentage,
        margin=margin,
        leverage=leverage,
    )


class FakeSnapshotSource(PositionSnapshotSource):
    """Serve positions set by the test; optionally block or fail a fetch."""

    def __init__(self, positions: Sequence[Position] = ()) -> None:
        self.positions: List[Position] = list(positions)
        self.fail_with: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None
        self.started = asyncio.Event()
        self.calls = 0
        self.balance = AccountBalance(total_wallet_balance=10000.0, available_balance=7500.0)

    async def list_positions(self) -> Sequence[Position]:
        self.calls += 1
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_with is not None:
            raise self.fail_with
        return list(self.positions)

    async def get_account_balance(self) -> AccountBalance:
        if self.fail_with is not None:
            raise SnapshotFetchError(str(self.fail_with))
        return self.balance


class RecordingChannel(NotificationChannel):
    name = "recording"

    def __init__(self, *, succeed: bool = True) -> None:
        self.succeed = succeed
        self.events: List[object] = []

    def _result(self) -> NotificationResult:
        if self.succeed:
            return NotificationResult(channel=self.name, success=True, attempts=1)
        return NotificationResult.not_configured(self.name, "channel offline")

    async def send_warning_alert(self, event: WarningAlert) -> NotificationResult:
        self.events.append(event)
        return self._result()

    async def send_hedge_signal(self, event: HedgeSignal) -> NotificationResult:
        self.events.append(event)
        return self._result()

    async def send_hedge_executed(self, event: HedgeExecuted) -> NotificationResult:
        self.events.append(event)
        return self._result()

    async def send_position_closed(self, event: PositionClosed) -> NotificationResult:
        self.events.append(event)
        return self._result()

    async def test_connection(self) -> NotificationResult:
        return self._result()

    def of_type(self, event_type: type) -> List[object]:
        return [event for event in self.events if isinstance(event, event_type)]


class FakeOrderClient(OrderExecutionClient):
    def __init__(self, *, fail: bool = False, fill_price: Optional[float] = None) -> None:
        self.fail = fail
        self.fill_price = fill_price
        self.orders: List[dict] = []

    async def place_order(
        self,
        symbol: str,
        side: OrderSide,
        quantity: float,
        order_type: OrderType = OrderType.MARKET,
        price: Optional[float] = None,
    ) -> PlacedOrder:
        self.orders.append({"symbol": symbol, "side": side, "quantity": quantity, "type": order_type})
        if self.fail:
            raise OrderPlacementError("insufficient margin")
        return PlacedOrder(
            order_id=f"order-{len(self.orders)}",
            symbol=symbol,
            side=side,
            quantity=quantity,
            price=self.fill_price,
        )


@pytest.fixture
def make_position() -> Callable[..., Position]:
    return build_position


@pytest.fixture
def source() -> FakeSnapshotSource:
    return FakeSnapshotSource()


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def order_client() -> FakeOrderClient:
    return FakeOrderClient()


@pytest.fixture
def telemetry() -> Telemetry:
    return Telemetry(policy=ResiliencePolicy(request_timeout=1.0, max_retries=0, circuit_breaker_threshold=100))
