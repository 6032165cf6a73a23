import pytest

from position_risk.models import OrderSide, PositionSide
from position_risk.risk_engine.hedge_planner import compute_hedge


def test_long_position_is_hedged_with_a_sell(make_position):
    position = make_position(size=0.5, pnl_percentage=-9.0, mark_price=45500.0)

    intent = compute_hedge(position, 10.0)

    assert intent.side is OrderSide.SELL
    assert intent.quantity == pytest.approx(0.05)
    assert intent.reference_price == 45500.0
    assert intent.symbol == "BTCUSDT"


def test_short_position_is_hedged_with_a_buy(make_position):
    position = make_position(side=PositionSide.SHORT, size=2.0, pnl_percentage=-4.0)

    intent = compute_hedge(position, 10.0)

    assert intent.side is OrderSide.BUY
    # (4 + 1) / 10 of the 10% base fraction
    assert intent.quantity == pytest.approx(2.0 * 0.5 * 0.1)


def test_quantity_is_capped_at_base_fraction(make_position):
    position = make_position(size=3.0, pnl_percentage=-25.0)

    intent = compute_hedge(position, 10.0)

    assert intent.quantity == pytest.approx(0.3)


def test_planner_is_deterministic(make_position):
    position = make_position(pnl_percentage=-7.5)

    assert compute_hedge(position, 10.0) == compute_hedge(position, 10.0)


def test_rejects_non_positive_threshold(make_position):
    with pytest.raises(ValueError):
        compute_hedge(make_position(), 0)
