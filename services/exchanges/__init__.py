"""Exchange adapter implementations."""

from .base import CcxtFuturesAdapter, create_ccxt_client
from .binance import BinanceFuturesAdapter

__all__ = [
    "BinanceFuturesAdapter",
    "CcxtFuturesAdapter",
    "create_ccxt_client",
]
