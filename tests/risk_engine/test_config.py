import threading

import pytest

from position_risk.exceptions import ConfigurationError
from position_risk.risk_engine.config import ConfigurationStore, RiskManagementConfig


def test_defaults_match_documented_values():
    config = RiskManagementConfig()

    assert config.enabled is False
    assert config.loss_threshold == 10.0
    assert config.warning_threshold == 8.0
    assert config.hedge_ratio == 10.0
    assert config.auto_execute_hedge is False
    assert config.poll_interval == 5.0
    assert config.protected_symbols == frozenset()
    assert config.min_position_size == 50.0
    assert config.hedge_trigger == pytest.approx(9.99)


def test_merge_keeps_unspecified_fields():
    base = RiskManagementConfig(loss_threshold=12.0, min_position_size=10.0)

    merged = base.merged({"warning_threshold": 6})

    assert merged.loss_threshold == 12.0
    assert merged.min_position_size == 10.0
    assert merged.warning_threshold == 6.0


def test_merge_accepts_camel_case_and_millisecond_interval():
    merged = RiskManagementConfig().merged(
        {
            "lossThreshold": 15,
            "warningThreshold": 11,
            "autoExecuteHedge": "true",
            "monitoringInterval": 2500,
            "protectedSymbols": ["btcusdt", " ETHUSDT "],
        }
    )

    assert merged.loss_threshold == 15.0
    assert merged.warning_threshold == 11.0
    assert merged.auto_execute_hedge is True
    assert merged.poll_interval == pytest.approx(2.5)
    assert merged.protected_symbols == frozenset({"BTCUSDT", "ETHUSDT"})


@pytest.mark.parametrize(
    "update",
    [
        {"warning_threshold": 10.0},
        {"warning_threshold": 12.0},
        {"loss_threshold": 0},
        {"poll_interval": 0},
        {"min_position_size": -1},
        {"loss_threshold": "ten"},
        {"enabled": "maybe"},
        {"unknown_key": 1},
    ],
)
def test_invalid_updates_are_rejected(update):
    with pytest.raises(ConfigurationError):
        RiskManagementConfig().merged(update)


def test_store_rejects_invalid_update_and_keeps_previous():
    store = ConfigurationStore()

    with pytest.raises(ConfigurationError):
        store.set_config({"warning_threshold": 10.0, "loss_threshold": 9.0})

    assert store.get_config() == RiskManagementConfig()


def test_store_set_config_is_idempotent():
    store = ConfigurationStore()

    _, first = store.set_config({"loss_threshold": 12.0})
    previous, second = store.set_config({"loss_threshold": 12.0})

    assert first == second == previous


def test_store_updates_are_atomic_across_threads():
    store = ConfigurationStore()

    def worker(value: float) -> None:
        for _ in range(50):
            store.set_config({"loss_threshold": value + 5, "warning_threshold": value})

    threads = [threading.Thread(target=worker, args=(value,)) for value in (1.0, 2.0, 3.0)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    config = store.get_config()
    assert config.loss_threshold - config.warning_threshold == pytest.approx(5.0)


def test_environment_overrides():
    env = {
        "RISK_ENABLED": "yes",
        "RISK_LOSS_THRESHOLD": "12.5",
        "RISK_WARNING_THRESHOLD": "9",
        "RISK_PROTECTED_SYMBOLS": "BTCUSDT,ETHUSDT",
        "RISK_POLL_INTERVAL": "not-a-number",
    }

    config = RiskManagementConfig.from_environment(env=env)

    assert config.enabled is True
    assert config.loss_threshold == 12.5
    assert config.warning_threshold == 9.0
    assert config.protected_symbols == frozenset({"BTCUSDT", "ETHUSDT"})
    assert config.poll_interval == 5.0


def test_payload_lists_protected_symbols_sorted():
    payload = RiskManagementConfig(protected_symbols=frozenset({"ETHUSDT", "BTCUSDT"})).to_payload()

    assert payload["protected_symbols"] == ["BTCUSDT", "ETHUSDT"]
    assert payload["hedge_trigger"] == pytest.approx(9.99)
