"""ccxt-backed futures adapter exposing positions, balances and order placement."""

from __future__ import annotations
import asyncio
import inspect
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, MutableMapping, Optional

import ccxt.async_support as ccxt_async
from ccxt.base.errors import BaseError, NotSupported

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

logger = logging.getLogger(__name__)

_AUTH_TOKENS = ("api key", "apikey", "api-key", "auth", "permission", "signature", "invalid key")


def create_ccxt_client(
    exchange_id: str,
    credentials: Mapping[str, Any],
    *,
    testnet: bool = False,
) -> Any:
    """Instantiate a rate-limited ccxt async client for ``exchange_id``."""

    try:
        exchange_class = getattr(ccxt_async, exchange_id)
    except AttributeError as exc:
        raise ValueError(f"Exchange '{exchange_id}' is not supported by ccxt.") from exc

    params: MutableMapping[str, Any] = dict(credentials)
    params.setdefault("enableRateLimit", True)
    client = exchange_class(params)
    if testnet:
        try:
            client.set_sandbox_mode(True)
        except NotSupported as exc:
            raise ValueError(f"Exchange '{exchange_id}' has no testnet in this ccxt release.") from exc
    return client


def _first_float(*values: Any) -> Optional[float]:
    for value in values:
        if value in (None, ""):
            continue
        try:
            return float(value)
        except (TypeError, ValueError):
            continue
    return None


def _info(payload: Mapping[str, Any]) -> Mapping[str, Any]:
    info = payload.get("info")
    return info if isinstance(info, Mapping) else {}


@dataclass
class _CcxtParams:
    balance: MutableMapping[str, Any]
    positions: MutableMapping[str, Any]
    orders: MutableMapping[str, Any]


class CcxtFuturesAdapter(PositionSnapshotSource, OrderExecutionClient):
    """Shared ccxt adapter logic for USDⓈ-margined futures accounts.

    Positions are keyed by the exchange-native symbol (``BTCUSDT``); orders for
    such symbols are routed back to the unified ccxt symbol.
    """

    def __init__(
        self,
        name: str,
        client: Any,
        settle_currency: str = "USDT",
        *,
        params: Optional[Mapping[str, Mapping[str, Any]]] = None,
    ) -> None:
        self.name = name
        self.client = client
        self.settle_currency = settle_currency
        self._markets_lock: Optional[asyncio.Lock] = None
        self._unified_symbols: Dict[str, str] = {}
        base_params = params or {}
        self._params = _CcxtParams(
            balance=dict(base_params.get("balance", {})),
            positions=dict(base_params.get("positions", {})),
            orders=dict(base_params.get("orders", {})),
        )

    async def _ensure_markets(self) -> None:
        lock = self._markets_lock
        if lock is None:
            lock = asyncio.Lock()
            self._markets_lock = lock
        async with lock:
            if getattr(self.client, "markets", None):
                return
            if hasattr(self.client, "load_markets"):
                await self.client.load_markets()

    def _describe_error(self, error: BaseError) -> str:
        """Condense a ccxt error into a single prefixed line."""

        message = str(error)
        detail: Optional[str] = None
        if "{" in message and "}" in message:
            try:
                payload = json.loads(message[message.find("{") : message.rfind("}") + 1])
            except ValueError:
                payload = None
            if isinstance(payload, Mapping):
                detail = payload.get("msg") or payload.get("message")
        summary = str(detail or message or type(error).__name__)
        if any(token in summary.lower() for token in _AUTH_TOKENS):
            summary = f"{summary} (check API key permissions and IP whitelist)"
        return f"[{self.name}] {summary}"

    async def list_positions(self) -> List[Position]:
        try:
            await self._ensure_markets()
            raw_positions = await self.client.fetch_positions(params=self._params.positions)
        except BaseError as exc:
            logger.debug("fetch_positions failed on %s", self.name, exc_info=True)
            raise SnapshotFetchError(self._describe_error(exc)) from exc
        positions: List[Position] = []
        for raw in raw_positions or []:
            if not isinstance(raw, Mapping):
                continue
            parsed = self._parse_position(raw)
            if parsed is not None:
                positions.append(parsed)
        return positions

    def _parse_position(self, raw: Mapping[str, Any]) -> Optional[Position]:
        info = _info(raw)
        signed_size = _first_float(info.get("positionAmt"), raw.get("contracts"), raw.get("size"))
        if signed_size is None or abs(signed_size) < 1e-12:
            return None
        contract_size = _first_float(raw.get("contractSize")) or 1.0
        side_raw = str(raw.get("side") or info.get("positionSide") or "").upper()
        if side_raw in {"LONG", "SHORT"}:
            side = PositionSide(side_raw)
        else:
            side = PositionSide.LONG if signed_size > 0 else PositionSide.SHORT

        unified = str(raw.get("symbol") or "")
        symbol = str(info.get("symbol") or unified.split(":")[0].replace("/", ""))
        if not symbol:
            return None
        if unified:
            self._unified_symbols[symbol] = unified

        entry_price = _first_float(raw.get("entryPrice"), info.get("entryPrice")) or 0.0
        mark_price = _first_float(raw.get("markPrice"), info.get("markPrice")) or entry_price
        unrealized = _first_float(raw.get("unrealizedPnl"), info.get("unRealizedProfit")) or 0.0
        margin = (
            _first_float(
                raw.get("initialMargin"),
                raw.get("collateral"),
                info.get("isolatedWallet"),
                info.get("initialMargin"),
            )
            or 0.0
        )
        percentage = _first_float(raw.get("percentage"))
        if percentage is None:
            percentage = (unrealized / margin * 100.0) if margin else 0.0
        leverage = _first_float(raw.get("leverage"), info.get("leverage")) or 1.0
        timestamp = _first_float(raw.get("timestamp"), info.get("updateTime"))
        updated_at = (
            datetime.fromtimestamp(timestamp / 1000, timezone.utc) if timestamp else None
        )
        return Position(
            symbol=symbol,
            side=side,
            size=abs(signed_size) * contract_size,
            entry_price=entry_price,
            mark_price=mark_price,
            unrealized_pnl=unrealized,
            pnl_percentage=percentage,
            margin=margin,
            leverage=max(int(leverage), 1),
            updated_at=updated_at,
        )

    async def get_account_balance(self) -> AccountBalance:
        try:
            raw = await self.client.fetch_balance(params=self._params.balance)
        except BaseError as exc:
            raise SnapshotFetchError(self._describe_error(exc)) from exc
        if not isinstance(raw, Mapping):
            raise SnapshotFetchError(f"[{self.name}] Malformed balance payload")
        info = _info(raw)
        totals = raw.get("total") if isinstance(raw.get("total"), Mapping) else {}
        free = raw.get("free") if isinstance(raw.get("free"), Mapping) else {}
        wallet = _first_float(info.get("totalWalletBalance"), totals.get(self.settle_currency)) or 0.0
        return AccountBalance(
            total_wallet_balance=wallet,
            total_unrealized_pnl=_first_float(info.get("totalUnrealizedProfit")) or 0.0,
            total_margin_balance=_first_float(info.get("totalMarginBalance")) or wallet,
            available_balance=_first_float(info.get("availableBalance"), free.get(self.settle_currency)) or 0.0,
            max_withdraw_amount=_first_float(info.get("maxWithdrawAmount")) or 0.0,
            currency=self.settle_currency,
        )

    def _resolve_symbol(self, symbol: str) -> str:
        if symbol in self._unified_symbols:
            return self._unified_symbols[symbol]
        markets_by_id = getattr(self.client, "markets_by_id", None) or {}
        entry = markets_by_id.get(symbol)
        if isinstance(entry, list) and entry:
            entry = entry[0]
        if isinstance(entry, Mapping) and entry.get("symbol"):
            return str(entry["symbol"])
        return symbol

    async def place_order(
        self,
        symbol: str,
        side: OrderSide,
        quantity: float,
        order_type: OrderType = OrderType.MARKET,
        price: Optional[float] = None,
    ) -> PlacedOrder:
        if quantity <= 0:
            raise OrderPlacementError(f"[{self.name}] Order quantity must be positive")
        if order_type is OrderType.LIMIT and price is None:
            raise OrderPlacementError(f"[{self.name}] LIMIT orders require a price")
        params = dict(self._params.orders)
        if order_type is OrderType.LIMIT:
            params.setdefault("timeInForce", "GTC")
        try:
            await self._ensure_markets()
            unified = self._resolve_symbol(symbol)
            amount = quantity
            if hasattr(self.client, "amount_to_precision"):
                amount = float(self.client.amount_to_precision(unified, quantity))
            order = await self.client.create_order(
                unified,
                order_type.value.lower(),
                side.value.lower(),
                amount,
                price if order_type is OrderType.LIMIT else None,
                params=params,
            )
        except BaseError as exc:
            raise OrderPlacementError(self._describe_error(exc)) from exc
        if not isinstance(order, Mapping):
            raise OrderPlacementError(f"[{self.name}] Malformed order response")
        info = _info(order)
        order_id = str(order.get("id") or info.get("orderId") or "")
        if not order_id:
            raise OrderPlacementError(f"[{self.name}] Exchange did not return an order id")
        fill_price = _first_float(order.get("average"), info.get("avgPrice"), order.get("price"))
        logger.info(
            "Order accepted",
            extra={"exchange": self.name, "symbol": symbol, "side": side.value, "order_id": order_id},
        )
        return PlacedOrder(
            order_id=order_id,
            symbol=symbol,
            side=side,
            quantity=_first_float(order.get("amount"), info.get("origQty")) or amount,
            price=fill_price or None,
        )

    async def close(self) -> None:
        closer = getattr(self.client, "close", None)
        if closer is None:
            return
        result = closer()
        if inspect.isawaitable(result):
            await result
