import json

import pytest

from position_risk.configuration import (
    apply_environment_overrides,
    load_monitor_config,
    validate_monitor_config,
)
from position_risk.exceptions import ConfigurationError


def _write_config(tmp_path, payload):
    path = tmp_path / "monitor.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_load_full_configuration(tmp_path):
    path = _write_config(
        tmp_path,
        {
            "risk": {
                "enabled": True,
                "lossThreshold": 12,
                "warningThreshold": 9,
                "autoExecuteHedge": "yes",
                "monitoringInterval": 2500,
                "protectedSymbols": ["btcusdt"],
            },
            "exchange": {
                "name": "main",
                "api_key": " key ",
                "credentials": {"secret_key": "secret"},
                "testnet": "true",
            },
            "telegram": {"botToken": "123:abc", "chatId": "555", "groupChatId": "-100200"},
            "resilience": {"request_timeout": 3, "max_retries": 1},
        },
    )

    config = load_monitor_config(path, env={})

    assert config.config_path == path.resolve()
    assert config.risk.enabled is True
    assert config.risk.loss_threshold == 12.0
    assert config.risk.warning_threshold == 9.0
    assert config.risk.auto_execute_hedge is True
    assert config.risk.poll_interval == pytest.approx(2.5)
    assert config.risk.protected_symbols == frozenset({"BTCUSDT"})
    assert config.exchange.name == "main"
    assert config.exchange.exchange == "binanceusdm"
    assert config.exchange.credentials == {"apiKey": "key", "secret": "secret"}
    assert config.exchange.testnet is True
    assert config.telegram.signal_chat_id == "-100200"
    assert config.telegram.configured
    assert config.resilience.request_timeout == 3.0
    assert config.resilience.max_retries == 1


def test_defaults_when_sections_missing():
    config = validate_monitor_config({})

    assert config.risk.enabled is False
    assert config.risk.loss_threshold == 10.0
    assert config.risk.warning_threshold == 8.0
    assert config.risk.min_position_size == 50.0
    assert config.telegram.configured is False
    assert config.exchange.credentials == {}


def test_invalid_risk_section_names_section():
    with pytest.raises(ConfigurationError, match="Invalid 'risk' section"):
        validate_monitor_config({"risk": {"warningThreshold": 10, "lossThreshold": 10}})


def test_unknown_telegram_setting_rejected():
    with pytest.raises(ValueError, match="Unknown telegram setting"):
        validate_monitor_config({"telegram": {"webhook": "https://example.com"}})


def test_non_object_sections_rejected(tmp_path):
    with pytest.raises(TypeError):
        validate_monitor_config({"exchange": ["binance"]})

    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ValueError, match="Invalid JSON"):
        load_monitor_config(path, env={})

    with pytest.raises(FileNotFoundError):
        load_monitor_config(tmp_path / "missing.json", env={})


def test_environment_overrides_file_values():
    config = validate_monitor_config(
        {
            "risk": {"lossThreshold": 10},
            "telegram": {"bot_token": "file-token", "chat_id": "1"},
            "exchange": {"credentials": {"apiKey": "file-key", "secret": "file-secret"}},
        }
    )

    overridden = apply_environment_overrides(
        config,
        env={
            "RISK_ENABLED": "true",
            "RISK_LOSS_THRESHOLD": "15",
            "RISK_WARNING_THRESHOLD": "not-a-number",
            "RISK_TELEGRAM_TOKEN": "env-token",
            "RISK_TELEGRAM_SIGNAL_CHAT_ID": "-100",
            "BINANCE_API_KEY": "env-key",
            "BINANCE_TESTNET": "1",
        },
    )

    assert overridden.risk.enabled is True
    assert overridden.risk.loss_threshold == 15.0
    assert overridden.risk.warning_threshold == 8.0
    assert overridden.telegram.bot_token == "env-token"
    assert overridden.telegram.chat_id == "1"
    assert overridden.telegram.signal_chat_id == "-100"
    assert overridden.exchange.credentials == {"apiKey": "env-key", "secret": "file-secret"}
    assert overridden.exchange.testnet is True
    # The original object is left untouched.
    assert config.risk.enabled is False
