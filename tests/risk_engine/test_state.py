import pytest

from position_risk.models import HedgeIntent, OrderSide, PositionSide
from position_risk.risk_engine.config import RiskManagementConfig
from position_risk.risk_engine.state import (
    MonitoredPositionState,
    ThresholdTrigger,
    ineligibility_reason,
    pending_triggers,
)


@pytest.fixture
def config():
    return RiskManagementConfig()


def test_losing_position_above_min_size_is_eligible(make_position, config):
    assert ineligibility_reason(make_position(pnl_percentage=-3.0, unrealized_pnl=-75.0), config) is None


def test_small_loss_in_money_is_ignored(make_position, config):
    position = make_position(pnl_percentage=-40.0, unrealized_pnl=-49.99)

    assert ineligibility_reason(position, config) == "below_min_size"


def test_profitable_position_is_ignored(make_position, config):
    position = make_position(pnl_percentage=0.0, unrealized_pnl=120.0)

    assert ineligibility_reason(position, config) == "not_losing"


def test_protected_symbols_restrict_monitoring(make_position):
    config = RiskManagementConfig(protected_symbols=frozenset({"ETHUSDT"}))

    assert ineligibility_reason(make_position(symbol="BTCUSDT"), config) == "not_protected"
    assert ineligibility_reason(make_position(symbol="ETHUSDT"), config) is None


def test_no_trigger_below_warning(make_position, config):
    state = MonitoredPositionState(position=make_position(pnl_percentage=-7.99))

    assert pending_triggers(state, config) == []


def test_warning_then_hedge_ordering(make_position, config):
    state = MonitoredPositionState(position=make_position(pnl_percentage=-12.0))

    assert pending_triggers(state, config) == [ThresholdTrigger.WARNING, ThresholdTrigger.HEDGE]


def test_hedge_fires_just_below_loss_threshold(make_position, config):
    state = MonitoredPositionState(position=make_position(pnl_percentage=-9.99), warning_fired=True)

    assert pending_triggers(state, config) == [ThresholdTrigger.HEDGE]

    state.refresh(make_position(pnl_percentage=-9.98))
    assert pending_triggers(state, config) == []


def test_fired_flags_suppress_triggers(make_position, config):
    state = MonitoredPositionState(
        position=make_position(pnl_percentage=-15.0), warning_fired=True, hedge_fired=True
    )

    assert pending_triggers(state, config) == []


def test_refresh_rejects_other_position(make_position):
    state = MonitoredPositionState(position=make_position())

    with pytest.raises(ValueError):
        state.refresh(make_position(side=PositionSide.SHORT))


@pytest.mark.parametrize(
    "side, mark, expected",
    [
        (OrderSide.SELL, 95.0, 0.5),
        (OrderSide.SELL, 105.0, -0.5),
        (OrderSide.BUY, 105.0, 0.5),
    ],
)
def test_hedge_contribution_is_marked_to_market(make_position, side, mark, expected):
    state = MonitoredPositionState(position=make_position(mark_price=mark))
    intent = HedgeIntent(symbol="BTCUSDT", side=side, quantity=0.1, reference_price=100.0)
    state.record_hedge_order(intent, "order-1", 100.0)

    assert state.hedge_contribution() == pytest.approx(expected)


def test_hedge_contribution_is_zero_without_order(make_position):
    state = MonitoredPositionState(position=make_position())
    state.mark_hedge(HedgeIntent(symbol="BTCUSDT", side=OrderSide.SELL, quantity=0.1, reference_price=100.0))

    assert state.hedge_contribution() == 0.0
    assert state.to_payload()["hedge_order_id"] is None
