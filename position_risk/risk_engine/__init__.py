"""Risk engine components for position loss monitoring.

The package is composed of a pure hedge planner, the per-position threshold
state, a configuration store, a periodic scheduler and the monitor that ties
them to the exchange and notification collaborators.
"""

from .config import ConfigurationStore, RiskManagementConfig
from .hedge_planner import compute_hedge
from .monitor import RiskMonitor, TickReport
from .scheduler import PeriodicTicker
from .state import MonitoredPositionState, ThresholdTrigger
from .stats import StatsSnapshot, compute_stats

__all__ = [
    "ConfigurationStore",
    "MonitoredPositionState",
    "PeriodicTicker",
    "RiskManagementConfig",
    "RiskMonitor",
    "StatsSnapshot",
    "ThresholdTrigger",
    "TickReport",
    "compute_hedge",
    "compute_stats",
]
