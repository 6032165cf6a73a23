"""Runtime tunables for the risk monitor and the store that guards them."""

from __future__ import annotations

import os
import threading
from dataclasses import asdict, dataclass, field, fields, replace
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional, Tuple

from ..exceptions import ConfigurationError

# Keys accepted in updates besides the field names themselves.
_FIELD_ALIASES = {
    "lossThreshold": "loss_threshold",
    "warningThreshold": "warning_threshold",
    "hedgeRatio": "hedge_ratio",
    "autoExecuteHedge": "auto_execute_hedge",
    "pollInterval": "poll_interval",
    "protectedSymbols": "protected_symbols",
    "minPositionSize": "min_position_size",
    "hedgeTriggerOffset": "hedge_trigger_offset",
}
_MILLISECOND_ALIASES = {"monitoringInterval": "poll_interval", "monitoring_interval_ms": "poll_interval"}
_BOOL_FIELDS = {"enabled", "auto_execute_hedge"}


@dataclass(frozen=True)
class RiskManagementConfig:
    """Thresholds are loss percentages relative to position margin."""

    enabled: bool = False
    loss_threshold: float = 10.0
    warning_threshold: float = 8.0
    hedge_ratio: float = 10.0
    auto_execute_hedge: bool = False
    poll_interval: float = 5.0
    protected_symbols: FrozenSet[str] = field(default_factory=frozenset)
    min_position_size: float = 50.0
    hedge_trigger_offset: float = 0.01

    def __post_init__(self) -> None:
        object.__setattr__(self, "protected_symbols", _normalise_symbols(self.protected_symbols))

    @property
    def hedge_trigger(self) -> float:
        """Loss percentage at which the hedge signal fires."""

        return self.loss_threshold - self.hedge_trigger_offset

    def validate(self) -> "RiskManagementConfig":
        if self.loss_threshold <= 0:
            raise ConfigurationError("loss_threshold must be greater than zero")
        if self.warning_threshold <= 0:
            raise ConfigurationError("warning_threshold must be greater than zero")
        if self.warning_threshold >= self.loss_threshold:
            raise ConfigurationError(
                f"warning_threshold ({self.warning_threshold}) must be below "
                f"loss_threshold ({self.loss_threshold})"
            )
        if not 0 <= self.hedge_trigger_offset < self.loss_threshold:
            raise ConfigurationError("hedge_trigger_offset must be within [0, loss_threshold)")
        if self.hedge_ratio < 0:
            raise ConfigurationError("hedge_ratio must not be negative")
        if self.poll_interval <= 0:
            raise ConfigurationError("poll_interval must be greater than zero")
        if self.min_position_size < 0:
            raise ConfigurationError("min_position_size must not be negative")
        return self

    def merged(self, update: Optional[Mapping[str, Any]]) -> "RiskManagementConfig":
        """Return a validated copy with ``update`` applied on top.

        Unspecified fields keep their current values. Unknown keys are rejected.
        """

        if not update:
            return self
        if not isinstance(update, Mapping):
            raise ConfigurationError("Configuration update must be a mapping")
        known = {item.name for item in fields(self)}
        changes: Dict[str, Any] = {}
        for raw_key, value in update.items():
            key = str(raw_key)
            if key in _MILLISECOND_ALIASES:
                changes[_MILLISECOND_ALIASES[key]] = _coerce_float(key, value) / 1000.0
                continue
            name = _FIELD_ALIASES.get(key, key)
            if name not in known:
                raise ConfigurationError(f"Unknown configuration key: {key}")
            changes[name] = _coerce_field(name, value)
        return replace(self, **changes).validate()

    @classmethod
    def from_mapping(cls, payload: Optional[Mapping[str, Any]]) -> "RiskManagementConfig":
        return cls().merged(payload).validate()

    @classmethod
    def from_environment(
        cls,
        base: Optional["RiskManagementConfig"] = None,
        *,
        env: Optional[Mapping[str, str]] = None,
    ) -> "RiskManagementConfig":
        """Apply ``RISK_*`` environment overrides on top of ``base``."""

        env = os.environ if env is None else env
        base = base or cls()
        overrides: Dict[str, Any] = {}

        enabled = _env_bool(env.get("RISK_ENABLED"))
        if enabled is not None:
            overrides["enabled"] = enabled
        auto_execute = _env_bool(env.get("RISK_AUTO_EXECUTE_HEDGE"))
        if auto_execute is not None:
            overrides["auto_execute_hedge"] = auto_execute
        for env_key, name in (
            ("RISK_LOSS_THRESHOLD", "loss_threshold"),
            ("RISK_WARNING_THRESHOLD", "warning_threshold"),
            ("RISK_HEDGE_RATIO", "hedge_ratio"),
            ("RISK_POLL_INTERVAL", "poll_interval"),
            ("RISK_MIN_POSITION_SIZE", "min_position_size"),
            ("RISK_HEDGE_TRIGGER_OFFSET", "hedge_trigger_offset"),
        ):
            value = _env_float(env.get(env_key))
            if value is not None:
                overrides[name] = value
        protected = env.get("RISK_PROTECTED_SYMBOLS")
        if protected is not None:
            overrides["protected_symbols"] = protected
        return base.merged(overrides)

    def to_payload(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["protected_symbols"] = sorted(self.protected_symbols)
        payload["hedge_trigger"] = self.hedge_trigger
        return payload


class ConfigurationStore:
    """Hold the current configuration and apply partial updates atomically."""

    def __init__(self, initial: Optional[RiskManagementConfig] = None) -> None:
        self._config = (initial or RiskManagementConfig()).validate()
        self._lock = threading.Lock()

    def get_config(self) -> RiskManagementConfig:
        with self._lock:
            return self._config

    def set_config(
        self, update: Mapping[str, Any]
    ) -> Tuple[RiskManagementConfig, RiskManagementConfig]:
        """Merge ``update`` and return ``(previous, current)``.

        Invalid updates raise :class:`ConfigurationError` and leave the stored
        configuration untouched.
        """

        with self._lock:
            previous = self._config
            self._config = previous.merged(update)
            return previous, self._config


def _normalise_symbols(value: Any) -> FrozenSet[str]:
    if value is None:
        return frozenset()
    if isinstance(value, str):
        items: Iterable[Any] = value.split(",")
    elif isinstance(value, Iterable):
        items = value
    else:
        raise ConfigurationError("protected_symbols must be a list of symbols")
    return frozenset(str(item).strip().upper() for item in items if str(item).strip())


def _coerce_field(name: str, value: Any) -> Any:
    if name in _BOOL_FIELDS:
        if isinstance(value, bool):
            return value
        parsed = _env_bool(value) if isinstance(value, str) else None
        if parsed is None:
            raise ConfigurationError(f"{name} must be a boolean")
        return parsed
    if name == "protected_symbols":
        return _normalise_symbols(value)
    return _coerce_float(name, value)


def _coerce_float(name: str, value: Any) -> float:
    if isinstance(value, bool):
        raise ConfigurationError(f"{name} must be numeric")
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{name} must be numeric, got {value!r}") from exc


def _env_float(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _env_bool(value: Optional[str]) -> Optional[bool]:
    if value is None:
        return None
    normalized = str(value).strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return None


__all__ = ["ConfigurationStore", "RiskManagementConfig"]
