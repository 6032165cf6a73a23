from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from services.telemetry import ResiliencePolicy

from ..risk_engine.config import RiskManagementConfig


@dataclass()
class ExchangeAccountConfig:
    """Exchange account the monitor reads positions from and hedges on."""

    name: str = "binance"
    exchange: str = "binanceusdm"
    settle_currency: str = "USDT"
    credentials: Dict[str, Any] = field(default_factory=dict)
    params: Dict[str, Any] = field(default_factory=dict)
    testnet: bool = False
    debug_api_payloads: bool = False


@dataclass()
class TelegramSettings:
    """Bot credentials plus the personal and signal chats."""

    bot_token: Optional[str] = None
    chat_id: Optional[str] = None
    signal_chat_id: Optional[str] = None
    exchange_label: str = "Binance Futures"

    @property
    def configured(self) -> bool:
        return bool(self.bot_token and (self.chat_id or self.signal_chat_id))


@dataclass()
class MonitorConfig:
    """Top-level configuration for the monitor service."""

    risk: RiskManagementConfig = field(default_factory=RiskManagementConfig)
    exchange: ExchangeAccountConfig = field(default_factory=ExchangeAccountConfig)
    telegram: TelegramSettings = field(default_factory=TelegramSettings)
    resilience: ResiliencePolicy = field(default_factory=ResiliencePolicy)
    debug_api_payloads: bool = False
    config_path: Optional[Path] = None
