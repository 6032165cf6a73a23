import asyncio

from position_risk.models import HedgeIntent, OrderSide, PositionSide
from position_risk.notifications import TelegramNotificationChannel
from position_risk.notifications.events import HedgeSignal, PositionClosed, WarningAlert


class RecordingRequests:
    def __init__(self):
        self.calls = []

    async def __call__(self, url, payload):
        self.calls.append((url, dict(payload)))
        return {"ok": True}


def _channel(requests, **overrides):
    options = {"signal_chat_id": "-100200", "max_retries": 0, "backoff_seconds": 0, "request_func": requests}
    options.update(overrides)
    return TelegramNotificationChannel("123:abc", "555", **options)


def test_hedge_signal_goes_to_signal_chat_as_plain_text():
    requests = RecordingRequests()
    channel = _channel(requests)
    event = HedgeSignal(
        symbol="BTCUSDT",
        side=PositionSide.LONG,
        size=0.5,
        current_loss_percent=9.99,
        hedge_intent=HedgeIntent(symbol="BTCUSDT", side=OrderSide.SELL, quantity=0.05, reference_price=50000.0),
    )

    result = asyncio.run(channel.send_hedge_signal(event))

    assert result.success
    _, payload = requests.calls[0]
    assert payload["chat_id"] == "-100200"
    assert "parse_mode" not in payload
    assert payload["text"].startswith("BTCUSDT\n")


def test_alerts_go_to_personal_chat_with_markdown():
    requests = RecordingRequests()
    channel = _channel(requests)

    asyncio.run(
        channel.send_warning_alert(
            WarningAlert(symbol="BTCUSDT", side=PositionSide.LONG, size=0.5, current_loss_percent=8.5)
        )
    )
    asyncio.run(channel.send_position_closed(PositionClosed(symbol="BTCUSDT", final_pnl=-10.0)))

    assert [payload["chat_id"] for _, payload in requests.calls] == ["555", "555"]
    assert all(payload["parse_mode"] == "Markdown" for _, payload in requests.calls)


def test_missing_signal_chat_is_not_configured():
    requests = RecordingRequests()
    channel = _channel(requests, signal_chat_id=None)
    event = HedgeSignal(
        symbol="BTCUSDT",
        side=PositionSide.SHORT,
        size=1.0,
        current_loss_percent=10.0,
        hedge_intent=HedgeIntent(symbol="BTCUSDT", side=OrderSide.BUY, quantity=0.1, reference_price=100.0),
    )

    result = asyncio.run(channel.send_hedge_signal(event))

    assert not result.success
    assert result.attempts == 0
    assert "signal chat" in result.error.reason
    assert requests.calls == []


def test_missing_token_short_circuits():
    requests = RecordingRequests()
    channel = TelegramNotificationChannel(None, "555", request_func=requests)

    result = asyncio.run(channel.test_connection())

    assert not result.success
    assert result.error.reason == "bot token not configured"
    assert requests.calls == []
