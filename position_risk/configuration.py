"""Utilities for loading the monitor configuration file."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Mapping, MutableMapping, Optional

from services.telemetry import ResiliencePolicy

from .config.models import ExchangeAccountConfig, MonitorConfig, TelegramSettings
from .exceptions import ConfigurationError
from .logging_setup import configure_logging, debug_to_logging_level
from .risk_engine.config import RiskManagementConfig

logger = logging.getLogger(__name__)

_CREDENTIAL_ALIASES = {
    "key": "apiKey",
    "apikey": "apiKey",
    "api_key": "apiKey",
    "secret": "secret",
    "secret_key": "secret",
    "secretkey": "secret",
    "apisecret": "secret",
    "api_secret": "secret",
    "password": "password",
    "passphrase": "password",
}

_TELEGRAM_ALIASES = {
    "bot_token": "bot_token",
    "bottoken": "bot_token",
    "token": "bot_token",
    "chat_id": "chat_id",
    "chatid": "chat_id",
    "signal_chat_id": "signal_chat_id",
    "signalchatid": "signal_chat_id",
    "group_chat_id": "signal_chat_id",
    "groupchatid": "signal_chat_id",
    "exchange_label": "exchange_label",
    "exchangelabel": "exchange_label",
}


def _ensure_logger_level(logger: logging.Logger, level: int) -> None:
    """Ensure ``logger`` and its handlers are set to at most ``level``."""

    if logger.level in {logging.NOTSET} or logger.level > level:
        logger.setLevel(level)
    for handler in logger.handlers:
        if handler.level in {logging.NOTSET} or handler.level > level:
            handler.setLevel(level)


def _configure_default_logging(debug_level: int = 1) -> bool:
    """Install the redacting handler unless the host already configured logging."""

    root_logger = logging.getLogger()
    already_configured = bool(root_logger.handlers)
    if not already_configured:
        configure_logging(debug=debug_level)

    desired_level = debug_to_logging_level(debug_level)
    _ensure_logger_level(logging.getLogger("position_risk"), desired_level)
    return not already_configured


def _load_json(path: Path) -> Dict[str, Any]:
    """Return parsed JSON payload from ``path`` with helpful error messages."""

    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise FileNotFoundError(f"Configuration file not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in configuration file {path}: {exc}") from exc


def _ensure_mapping(payload: Any, *, description: str) -> MutableMapping[str, Any]:
    """Return ``payload`` when it is a mapping, otherwise raise ``TypeError``."""

    if isinstance(payload, MutableMapping):
        return payload
    if isinstance(payload, Mapping):
        return dict(payload)
    raise TypeError(f"{description} must be a JSON object, not {type(payload).__name__}.")


def _coerce_bool(value: Any, default: bool = False) -> bool:
    """Return a boolean for ``value`` supporting common string representations."""

    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"", "default", "auto"}:
            return default
        if lowered in {"1", "true", "yes", "on", "enabled", "enable"}:
            return True
        if lowered in {"0", "false", "no", "off", "disabled", "disable"}:
            return False
    return bool(value)


def _lookup_key(raw_key: Any) -> str:
    return str(raw_key).strip().lower().replace("-", "_").replace(" ", "")


def _normalise_credentials(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Normalise credential keys to ccxt's expected names."""

    normalised: Dict[str, Any] = {}
    for raw_key, value in data.items():
        if value is None:
            continue
        if isinstance(value, str):
            value = value.strip()
            if value == "":
                continue
        key = _CREDENTIAL_ALIASES.get(_lookup_key(raw_key), str(raw_key))
        normalised[key] = value
    return normalised


def _parse_exchange(settings: Any, debug_default: bool) -> ExchangeAccountConfig:
    if settings is None:
        return ExchangeAccountConfig(debug_api_payloads=debug_default)
    raw = _ensure_mapping(settings, description="Configuration 'exchange'")
    credentials_raw = raw.get("credentials") or {}
    credentials = _normalise_credentials(
        _ensure_mapping(credentials_raw, description="Configuration 'exchange.credentials'")
    )
    # Credentials may also sit directly on the exchange block.
    inline = {
        key: value
        for key, value in raw.items()
        if _lookup_key(key) in _CREDENTIAL_ALIASES
    }
    credentials.update(_normalise_credentials(inline))
    params = _ensure_mapping(raw.get("params") or {}, description="Configuration 'exchange.params'")
    return ExchangeAccountConfig(
        name=str(raw.get("name") or "binance"),
        exchange=str(raw.get("exchange") or raw.get("id") or "binanceusdm"),
        settle_currency=str(raw.get("settle_currency") or "USDT"),
        credentials=credentials,
        params=dict(params),
        testnet=_coerce_bool(raw.get("testnet"), False),
        debug_api_payloads=_coerce_bool(raw.get("debug_api_payloads"), debug_default),
    )


def _parse_telegram(settings: Any) -> TelegramSettings:
    if settings is None:
        return TelegramSettings()
    raw = _ensure_mapping(settings, description="Configuration 'telegram'")
    values: Dict[str, Any] = {}
    for raw_key, value in raw.items():
        name = _TELEGRAM_ALIASES.get(_lookup_key(raw_key))
        if name is None:
            raise ValueError(f"Unknown telegram setting: {raw_key}")
        if value is None or str(value).strip() == "":
            continue
        values[name] = str(value).strip()
    return TelegramSettings(**values)


def _parse_risk(settings: Any) -> RiskManagementConfig:
    if settings is None:
        return RiskManagementConfig()
    raw = _ensure_mapping(settings, description="Configuration 'risk'")
    return RiskManagementConfig.from_mapping(raw)


def load_monitor_payload(path: Path | str) -> tuple[MutableMapping[str, Any], Path]:
    """Load and return the raw configuration mapping from disk."""

    path = Path(path).expanduser().resolve()
    payload = _load_json(path)
    return _ensure_mapping(payload, description="Monitor configuration"), path


def validate_monitor_config(
    config: Mapping[str, Any], *, source_path: Optional[Path] = None
) -> MonitorConfig:
    """Validate and normalise a monitor configuration payload.

    Invalid risk settings raise :class:`ConfigurationError`; structural problems
    raise ``TypeError`` or ``ValueError`` naming the offending section.
    """

    debug_api_payloads = _coerce_bool(config.get("debug_api_payloads"), False)
    try:
        risk = _parse_risk(config.get("risk"))
    except ConfigurationError as exc:
        raise ConfigurationError(f"Invalid 'risk' section: {exc}") from exc
    exchange = _parse_exchange(config.get("exchange"), debug_api_payloads)
    telegram = _parse_telegram(config.get("telegram"))
    resilience = ResiliencePolicy.from_mapping(config.get("resilience"))
    return MonitorConfig(
        risk=risk,
        exchange=exchange,
        telegram=telegram,
        resilience=resilience,
        debug_api_payloads=debug_api_payloads,
        config_path=source_path,
    )


def apply_environment_overrides(
    config: MonitorConfig, *, env: Optional[Mapping[str, str]] = None
) -> MonitorConfig:
    """Return ``config`` with ``RISK_*`` and ``BINANCE_*`` environment values applied."""

    env = os.environ if env is None else env
    risk = RiskManagementConfig.from_environment(config.risk, env=env)

    telegram = config.telegram
    telegram = replace(
        telegram,
        bot_token=env.get("RISK_TELEGRAM_TOKEN") or telegram.bot_token,
        chat_id=env.get("RISK_TELEGRAM_CHAT_ID") or telegram.chat_id,
        signal_chat_id=env.get("RISK_TELEGRAM_SIGNAL_CHAT_ID") or telegram.signal_chat_id,
    )

    exchange = config.exchange
    credentials = dict(exchange.credentials)
    if env.get("BINANCE_API_KEY"):
        credentials["apiKey"] = env["BINANCE_API_KEY"]
    if env.get("BINANCE_API_SECRET"):
        credentials["secret"] = env["BINANCE_API_SECRET"]
    testnet = exchange.testnet
    if env.get("BINANCE_TESTNET") is not None:
        testnet = _coerce_bool(env.get("BINANCE_TESTNET"), testnet)
    exchange = replace(exchange, credentials=credentials, testnet=testnet)

    return replace(config, risk=risk, telegram=telegram, exchange=exchange)


def load_monitor_config(path: Path | str, *, env: Optional[Mapping[str, str]] = None) -> MonitorConfig:
    """Load, validate and apply environment overrides to a configuration file."""

    payload, resolved_path = load_monitor_payload(path)
    config = validate_monitor_config(payload, source_path=resolved_path)
    config = apply_environment_overrides(config, env=env)
    if config.debug_api_payloads or config.exchange.debug_api_payloads:
        _configure_default_logging(debug_level=2)
    logger.debug("Loaded monitor configuration", extra={"path": str(resolved_path)})
    return config


__all__ = [
    "ExchangeAccountConfig",
    "MonitorConfig",
    "TelegramSettings",
    "apply_environment_overrides",
    "load_monitor_config",
    "load_monitor_payload",
    "validate_monitor_config",
]
