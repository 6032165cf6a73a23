"""Aggregate counters over the currently tracked positions."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable

from .state import MonitoredPositionState


@dataclass(frozen=True)
class StatsSnapshot:
    total_monitored_positions: int = 0
    warnings_triggered: int = 0
    hedges_triggered: int = 0
    total_loss_at_risk: float = 0.0
    average_loss_percent: float = 0.0

    def to_payload(self) -> Dict[str, Any]:
        return asdict(self)


def compute_stats(states: Iterable[MonitoredPositionState]) -> StatsSnapshot:
    """Recompute the snapshot from scratch on every call."""

    items = list(states)
    if not items:
        return StatsSnapshot()
    loss_percents = [state.position.loss_percent for state in items]
    return StatsSnapshot(
        total_monitored_positions=len(items),
        warnings_triggered=sum(1 for state in items if state.warning_fired),
        hedges_triggered=sum(1 for state in items if state.hedge_fired),
        total_loss_at_risk=sum(abs(state.position.unrealized_pnl) for state in items),
        average_loss_percent=sum(loss_percents) / len(loss_percents),
    )


__all__ = ["StatsSnapshot", "compute_stats"]
