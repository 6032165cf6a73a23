"""Control loop that tracks losing positions and fires staged alerts."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set, Tuple, Union

from services.telemetry import Telemetry

from ..clients import OrderExecutionClient, PositionSnapshotSource
from ..exceptions import OrderPlacementError, PositionNotFound, SnapshotFetchError
from ..metrics import MetricRegistry
from ..models import AccountBalance, HedgeIntent, OrderType, PlacedOrder, Position, PositionKey
from ..notifications.channels import NotificationChannel
from ..notifications.dispatcher import NotificationDispatcher
from ..notifications.events import HedgeExecuted, HedgeSignal, PositionClosed, WarningAlert
from .config import ConfigurationStore, RiskManagementConfig
from .hedge_planner import compute_hedge
from .scheduler import PeriodicTicker
from .state import MonitoredPositionState, ThresholdTrigger, ineligibility_reason, pending_triggers
from .stats import StatsSnapshot, compute_stats

logger = logging.getLogger(__name__)

POSITIONS_SERVICE = "positions"
ORDERS_SERVICE = "orders"
BALANCE_SERVICE = "balance"


@dataclass
class TickReport:
    started_at: datetime
    evaluated: int = 0
    tracked: int = 0
    warnings: int = 0
    hedges: int = 0
    orders: int = 0
    removed: int = 0
    closed: int = 0
    duration: float = 0.0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_payload(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["started_at"] = self.started_at.isoformat()
        return payload


class RiskMonitor:
    """Watch open positions and react once per threshold crossing.

    Each tracked position carries two independent flags: a warning fired at
    ``warning_threshold`` and a hedge signal fired just below
    ``loss_threshold``. Both fire at most once per loss episode; the episode
    ends when the position stops losing or disappears from the snapshot.
    """

    def __init__(
        self,
        snapshot_source: PositionSnapshotSource,
        notifications: Union[NotificationDispatcher, NotificationChannel, None] = None,
        *,
        order_client: Optional[OrderExecutionClient] = None,
        config_store: Optional[ConfigurationStore] = None,
        config: Optional[RiskManagementConfig] = None,
        telemetry: Optional[Telemetry] = None,
        metrics: Optional[MetricRegistry] = None,
    ) -> None:
        if config_store is not None and config is not None:
            raise ValueError("Pass either config_store or config, not both")
        self._snapshot_source = snapshot_source
        self._order_client = order_client
        self._config_store = config_store or ConfigurationStore(config)
        self._telemetry = telemetry or Telemetry()
        self._metrics = metrics or MetricRegistry()
        if isinstance(notifications, NotificationDispatcher):
            self._notifications = notifications
        else:
            self._notifications = NotificationDispatcher(
                notifications, telemetry=self._telemetry, metrics=self._metrics
            )
        self._positions: Dict[PositionKey, MonitoredPositionState] = {}
        self._lock = asyncio.Lock()
        self._tick_lock = asyncio.Lock()
        self._ticker = PeriodicTicker(
            self.tick,
            lambda: self._config_store.get_config().poll_interval,
            metrics=self._metrics,
        )
        self._last_tick: Optional[TickReport] = None
        self._last_error: Optional[str] = None

    @property
    def metrics(self) -> MetricRegistry:
        return self._metrics

    @property
    def is_monitoring(self) -> bool:
        return self._ticker.running

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    def start(self) -> bool:
        started = self._ticker.start()
        if started:
            logger.info(
                "Starting risk monitoring",
                extra={"poll_interval": self._config_store.get_config().poll_interval},
            )
        return started

    def stop(self) -> bool:
        stopped = self._ticker.stop()
        if stopped:
            logger.info("Stopping risk monitoring", extra={"tick_in_flight": self._ticker.in_flight})
        return stopped

    async def wait_idle(self) -> None:
        await self._ticker.wait_idle()

    async def shutdown(self) -> None:
        self.stop()
        await self.wait_idle()

    # ------------------------------------------------------------------
    # configuration
    # ------------------------------------------------------------------
    def get_config(self) -> RiskManagementConfig:
        return self._config_store.get_config()

    def set_config(self, update: Mapping[str, Any]) -> RiskManagementConfig:
        """Merge ``update`` and start or stop the loop when ``enabled`` flips.

        Enabling requires a running event loop; without one ``RuntimeError`` is
        raised and the stored configuration is left unchanged.
        """

        stored = self._config_store.get_config()
        if not stored.enabled and stored.merged(update).enabled:
            asyncio.get_running_loop()
        previous, current = self._config_store.set_config(update)
        if previous != current:
            logger.info("Risk configuration updated", extra={"config": current.to_payload()})
        if current.enabled and not previous.enabled:
            self.start()
        elif previous.enabled and not current.enabled:
            self.stop()
        return current

    # ------------------------------------------------------------------
    # control loop
    # ------------------------------------------------------------------
    async def tick(self) -> TickReport:
        """Run one evaluation pass over the current position snapshot.

        Steps:
        1. Fetch positions (a failure skips the tick and keeps all state).
        2. Filter eligible positions with the config read at the start.
        3. Evaluate each eligible position under the lock, warning before hedge.
        4. Drop every tracked key that is no longer eligible and notify closures.

        Ticks never overlap: a tick started while another is running waits for
        it and then works from its own fresh snapshot.
        """

        async with self._tick_lock:
            return await self._run_tick()

    async def _run_tick(self) -> TickReport:
        config = self._config_store.get_config()
        report = TickReport(started_at=datetime.now(timezone.utc))
        loop_start = time.perf_counter()
        self._metrics.inc("risk_ticks_total")

        try:
            with self._metrics.timed("exchange_api_latency_seconds", labels={"op": "list_positions"}):
                positions: Sequence[Position] = await self._telemetry.execute_with_resilience(
                    POSITIONS_SERVICE, self._snapshot_source.list_positions
                )
        except Exception as exc:
            error = exc if isinstance(exc, SnapshotFetchError) else SnapshotFetchError(str(exc) or type(exc).__name__)
            self._metrics.inc("snapshot_fetch_errors_total")
            logger.error(
                "Failed to fetch positions",
                extra={"error": str(error), "op": "list_positions"},
                exc_info=True,
            )
            self._last_error = str(error)
            report.error = str(error)
            report.tracked = len(self._positions)
            return self._finish(report, loop_start)

        self._last_error = None
        snapshot: Dict[PositionKey, Position] = {position.key: position for position in positions}
        eligible: List[Position] = []
        for position in snapshot.values():
            reason = ineligibility_reason(position, config)
            if reason is None:
                eligible.append(position)
            else:
                logger.debug("Position not monitored", extra={"position": str(position.key), "reason": reason})
        report.evaluated = len(eligible)

        for position in eligible:
            try:
                await self._evaluate(position, config, report)
            except Exception:
                logger.exception("Failed to evaluate position", extra={"position": str(position.key)})

        closed = await self._prune({position.key for position in eligible}, snapshot, report)
        for event in closed:
            await self._notifications.position_closed(event)
        report.closed = len(closed)
        report.tracked = len(self._positions)
        return self._finish(report, loop_start)

    def _finish(self, report: TickReport, loop_start: float) -> TickReport:
        report.duration = time.perf_counter() - loop_start
        self._metrics.observe("risk_tick_latency_seconds", report.duration)
        self._last_tick = report
        logger.info(
            "Risk tick completed",
            extra={
                "evaluated": report.evaluated,
                "tracked": report.tracked,
                "warnings": report.warnings,
                "hedges": report.hedges,
                "removed": report.removed,
                "duration": report.duration,
                "error": report.error,
            },
        )
        return report

    async def _evaluate(self, position: Position, config: RiskManagementConfig, report: TickReport) -> None:
        async with self._lock:
            state = self._positions.get(position.key)
            if state is None:
                state = MonitoredPositionState(position=position)
                self._positions[position.key] = state
                logger.info(
                    "Tracking losing position",
                    extra={"position": str(position.key), "pnl_percentage": position.pnl_percentage},
                )
            else:
                state.refresh(position)

            for trigger in pending_triggers(state, config):
                if trigger is ThresholdTrigger.WARNING:
                    await self._fire_warning(state, config)
                    report.warnings += 1
                else:
                    order = await self._fire_hedge(state, config)
                    report.hedges += 1
                    if order is not None:
                        report.orders += 1

    async def _fire_warning(self, state: MonitoredPositionState, config: RiskManagementConfig) -> None:
        position = state.position
        logger.warning(
            "Warning threshold crossed",
            extra={"position": str(position.key), "pnl_percentage": position.pnl_percentage},
        )
        event = WarningAlert(
            symbol=position.symbol,
            side=position.side,
            size=position.size,
            current_loss_percent=position.loss_percent,
            loss_threshold=config.loss_threshold,
            hedge_trigger=config.hedge_trigger,
        )
        await self._notifications.warning_alert(event)
        state.mark_warning()

    async def _fire_hedge(
        self, state: MonitoredPositionState, config: RiskManagementConfig
    ) -> Optional[PlacedOrder]:
        position = state.position
        intent = compute_hedge(position, config.loss_threshold)
        logger.warning(
            "Hedge threshold crossed",
            extra={"position": str(position.key), "pnl_percentage": position.pnl_percentage, "hedge": intent.to_payload()},
        )
        event = HedgeSignal(
            symbol=position.symbol,
            side=position.side,
            size=position.size,
            current_loss_percent=position.loss_percent,
            hedge_intent=intent,
        )
        await self._notifications.hedge_signal(event)
        state.mark_hedge(intent)
        if not config.auto_execute_hedge:
            return None
        return await self._execute_hedge(state, intent)

    async def _execute_hedge(self, state: MonitoredPositionState, intent: HedgeIntent) -> Optional[PlacedOrder]:
        """Submit ``intent`` once; failures are logged and reported as ``None``."""

        try:
            order = await self._place_order(intent)
        except OrderPlacementError as exc:
            self._metrics.inc("hedge_orders_total", labels={"status": "failed"})
            logger.error(
                "Hedge order failed",
                extra={"position": str(state.key), "error": str(exc), "hedge": intent.to_payload()},
            )
            return None
        self._metrics.inc("hedge_orders_total", labels={"status": "placed"})
        executed_price = order.price if order.price else intent.reference_price
        state.record_hedge_order(intent, order.order_id, executed_price)
        logger.info(
            "Hedge order placed",
            extra={"position": str(state.key), "order_id": order.order_id, "price": executed_price},
        )
        await self._notifications.hedge_executed(
            HedgeExecuted(
                symbol=intent.symbol,
                side=intent.side,
                quantity=order.quantity or intent.quantity,
                executed_price=executed_price,
                order_id=order.order_id,
            )
        )
        return order

    async def _place_order(self, intent: HedgeIntent) -> PlacedOrder:
        client = self._order_client
        if client is None:
            raise OrderPlacementError("No order execution client configured")
        try:
            return await self._telemetry.execute_with_resilience(
                ORDERS_SERVICE,
                lambda: client.place_order(intent.symbol, intent.side, intent.quantity, OrderType.MARKET),
                # A retried market order could fill twice.
                policy=self._telemetry.policy.without_retries(),
            )
        except OrderPlacementError:
            raise
        except Exception as exc:
            raise OrderPlacementError(str(exc) or type(exc).__name__) from exc

    async def _prune(
        self,
        eligible_keys: Set[PositionKey],
        snapshot: Mapping[PositionKey, Position],
        report: TickReport,
    ) -> List[PositionClosed]:
        closed: List[PositionClosed] = []
        async with self._lock:
            for key in list(self._positions):
                if key in eligible_keys:
                    continue
                state = self._positions.pop(key)
                report.removed += 1
                current = snapshot.get(key)
                if current is None:
                    closed.append(
                        PositionClosed(
                            symbol=key.symbol,
                            final_pnl=state.position.unrealized_pnl,
                            hedge_contribution=state.hedge_contribution(),
                        )
                    )
                    logger.info("Position closed", extra={"position": str(key)})
                elif current.pnl_percentage >= 0:
                    logger.info(
                        "Position recovered; thresholds re-armed",
                        extra={"position": str(key), "pnl_percentage": current.pnl_percentage},
                    )
                else:
                    logger.info("Position no longer monitored", extra={"position": str(key)})
        return closed

    # ------------------------------------------------------------------
    # manual operations
    # ------------------------------------------------------------------
    async def manual_hedge(self, key: Union[PositionKey, str]) -> bool:
        """Place the hedge for a tracked position now.

        The trigger flags are left untouched. Returns ``False`` when the key is
        not tracked or the order fails.
        """

        config = self._config_store.get_config()
        async with self._lock:
            try:
                state = self._tracked_state(key)
            except PositionNotFound as exc:
                logger.error("Position not found for manual hedge", extra={"position": str(key), "error": str(exc)})
                return False
            try:
                intent = compute_hedge(state.position, config.loss_threshold)
            except ValueError:
                logger.exception("Failed to compute manual hedge", extra={"position": str(state.key)})
                return False
            logger.info("Manual hedge requested", extra={"position": str(state.key), "hedge": intent.to_payload()})
            order = await self._execute_hedge(state, intent)
            return order is not None

    async def remove_position(self, key: Union[PositionKey, str]) -> bool:
        """Stop tracking ``key``; returns whether anything was removed."""

        async with self._lock:
            resolved = _resolve_key(key)
            removed = self._positions.pop(resolved, None) is not None
        if removed:
            logger.info("Position removed from monitoring", extra={"position": str(resolved)})
        return removed

    async def fetch_account_balance(self) -> AccountBalance:
        try:
            return await self._telemetry.execute_with_resilience(
                BALANCE_SERVICE, self._snapshot_source.get_account_balance
            )
        except SnapshotFetchError:
            raise
        except Exception as exc:
            raise SnapshotFetchError(str(exc) or type(exc).__name__) from exc

    async def test_notifications(self) -> bool:
        return await self._notifications.test_connection()

    # ------------------------------------------------------------------
    # introspection
    # ------------------------------------------------------------------
    def _tracked_state(self, key: Union[PositionKey, str]) -> MonitoredPositionState:
        resolved = _resolve_key(key)
        state = self._positions.get(resolved)
        if state is None:
            raise PositionNotFound(f"Position {resolved} is not monitored")
        return state

    def get_position_state(self, key: Union[PositionKey, str]) -> Optional[MonitoredPositionState]:
        return self._positions.get(_resolve_key(key))

    def tracked_keys(self) -> Tuple[PositionKey, ...]:
        return tuple(self._positions)

    def get_stats(self) -> StatsSnapshot:
        return compute_stats(list(self._positions.values()))

    def get_monitoring_status(self) -> Dict[str, Any]:
        states = list(self._positions.values())
        last_tick = self._last_tick
        return {
            "is_monitoring": self.is_monitoring,
            "tracked_count": len(states),
            "config": self._config_store.get_config().to_payload(),
            "positions": [state.to_payload() for state in states],
            "last_tick_at": last_tick.started_at.isoformat() if last_tick else None,
            "last_error": self._last_error,
            "ticks_skipped": self._ticker.skipped,
            "health": self._telemetry.health_snapshot(),
            "metrics": self._metrics.snapshot(),
        }


def _resolve_key(key: Union[PositionKey, str]) -> PositionKey:
    if isinstance(key, PositionKey):
        return key
    return PositionKey.parse(key)


__all__ = ["RiskMonitor", "TickReport"]
