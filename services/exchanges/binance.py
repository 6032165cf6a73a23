"""Binance USDⓈ-M futures adapter leveraging the ccxt client."""

from __future__ import annotations

from typing import Any, Mapping, Optional

from position_risk.config.models import ExchangeAccountConfig

from .base import CcxtFuturesAdapter, create_ccxt_client


class BinanceFuturesAdapter(CcxtFuturesAdapter):
    """Adapter for Binance futures accounts (``binanceusdm`` in ccxt)."""

    def __init__(
        self,
        name: str,
        client: Any,
        *,
        settle_currency: str = "USDT",
        params: Optional[Mapping[str, Mapping[str, object]]] = None,
    ) -> None:
        super().__init__(name, client, settle_currency, params=params)

    @classmethod
    def from_config(cls, config: ExchangeAccountConfig) -> "BinanceFuturesAdapter":
        client = create_ccxt_client(config.exchange, config.credentials, testnet=config.testnet)
        return cls(
            config.name,
            client,
            settle_currency=config.settle_currency,
            params=config.params,
        )
