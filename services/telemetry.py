"""Timeouts, retries, circuit breaking and health tracking for external calls."""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Union

logger = logging.getLogger(__name__)

Operation = Callable[[], Union[Awaitable[Any], Any]]

_POLICY_FIELDS = (
    ("request_timeout", float),
    ("max_retries", int),
    ("retry_backoff", float),
    ("circuit_breaker_threshold", int),
    ("circuit_breaker_reset_s", float),
)


class CircuitOpenError(RuntimeError):
    """Raised instead of calling a service whose breaker is open."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Circuit open for {name}")


@dataclass(frozen=True)
class ResiliencePolicy:
    """How a collaborator call is bounded: timeout, retries and breaker."""

    request_timeout: float = 10.0
    max_retries: int = 2
    retry_backoff: float = 0.5
    circuit_breaker_threshold: int = 3
    circuit_breaker_reset_s: float = 30.0

    @classmethod
    def from_mapping(cls, payload: Optional[Mapping[str, Any]]) -> "ResiliencePolicy":
        if not payload:
            return cls()
        if not isinstance(payload, Mapping):
            raise TypeError("Resilience settings must be an object")
        values: Dict[str, Any] = {}
        for key, cast in _POLICY_FIELDS:
            raw = payload.get(key)
            if raw is None:
                continue
            try:
                values[key] = cast(raw)
            except (TypeError, ValueError) as exc:
                raise ValueError(f"resilience.{key} must be numeric") from exc
        policy = cls(**values)
        if policy.request_timeout <= 0:
            raise ValueError("resilience.request_timeout must be positive")
        if policy.max_retries < 0:
            raise ValueError("resilience.max_retries must not be negative")
        return policy

    def without_retries(self) -> "ResiliencePolicy":
        """Same timeout and breaker with a single attempt."""

        return replace(self, max_retries=0)

    def backoff_for(self, attempt: int) -> float:
        return self.retry_backoff * attempt


@dataclass
class CircuitBreakerState:
    """Consecutive-failure breaker with a half-open trial after ``reset_seconds``.

    Once the open window expires one call is let through. A success closes the
    breaker; a failure reopens it immediately.
    """

    threshold: int
    reset_seconds: float
    consecutive_failures: int = 0
    open_until: Optional[float] = None
    half_open: bool = False

    def allows_call(self) -> bool:
        if self.open_until is None:
            return True
        if time.monotonic() < self.open_until:
            return False
        self.open_until = None
        self.half_open = True
        return True

    def on_failure(self) -> None:
        self.consecutive_failures += 1
        if self.open_until is not None:
            return
        if self.half_open or self.consecutive_failures >= self.threshold:
            self.open_until = time.monotonic() + self.reset_seconds
            self.half_open = False

    def on_success(self) -> None:
        self.consecutive_failures = 0
        self.open_until = None
        self.half_open = False


@dataclass
class ServiceStatus:
    """Last known health of one collaborator."""

    status: str = "unknown"
    reason: Optional[str] = None
    last_success: Optional[datetime] = None
    last_checked: Optional[datetime] = None
    failures: int = 0
    successes: int = 0

    def record(self, ok: bool, reason: Optional[str] = None) -> None:
        now = datetime.now(timezone.utc)
        self.last_checked = now
        if ok:
            self.status, self.reason = "healthy", None
            self.last_success = now
            self.successes += 1
        else:
            self.status, self.reason = "degraded", reason
            self.failures += 1

    def to_payload(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "reason": self.reason,
            "last_success": self.last_success.isoformat() if self.last_success else None,
            "last_checked": self.last_checked.isoformat() if self.last_checked else None,
            "failures": self.failures,
            "successes": self.successes,
        }


class Telemetry:
    """Run collaborator calls under a :class:`ResiliencePolicy`.

    Each named service gets its own breaker and status; the health snapshot
    reports the whole set as ``degraded`` as soon as one service is.
    """

    def __init__(self, *, policy: Optional[ResiliencePolicy] = None) -> None:
        self.policy = policy or ResiliencePolicy()
        self.latencies_ms: Dict[str, float] = {}
        self.service_status: Dict[str, ServiceStatus] = {}
        self._breakers: Dict[str, CircuitBreakerState] = {}

    def _breaker(self, name: str) -> CircuitBreakerState:
        if name not in self._breakers:
            self._breakers[name] = CircuitBreakerState(
                threshold=self.policy.circuit_breaker_threshold,
                reset_seconds=self.policy.circuit_breaker_reset_s,
            )
        return self._breakers[name]

    def _status(self, name: str) -> ServiceStatus:
        return self.service_status.setdefault(name, ServiceStatus())

    def _observe(self, name: str, started: float) -> None:
        self.latencies_ms[name] = round((time.perf_counter() - started) * 1000, 2)

    async def execute_with_resilience(
        self,
        name: str,
        func: Operation,
        *,
        policy: Optional[ResiliencePolicy] = None,
    ) -> Any:
        """Call ``func`` until it succeeds or the policy gives up.

        The last failure is re-raised; a timeout surfaces as
        :class:`asyncio.TimeoutError`. An open breaker raises
        :class:`CircuitOpenError` without calling ``func``.
        """

        active = policy or self.policy
        breaker = self._breaker(name)
        status = self._status(name)
        if not breaker.allows_call():
            logger.warning("Circuit breaker open for %s", name, extra={"service": name})
            status.record(False, "circuit_open")
            raise CircuitOpenError(name)

        attempts = active.max_retries + 1
        for attempt in range(1, attempts + 1):
            started = time.perf_counter()
            try:
                result = await asyncio.wait_for(_call(func), timeout=active.request_timeout)
            except Exception as exc:
                self._observe(name, started)
                breaker.on_failure()
                reason = str(exc) or type(exc).__name__
                status.record(False, reason)
                logger.debug(
                    "%s attempt %s/%s failed: %s",
                    name,
                    attempt,
                    attempts,
                    reason,
                    extra={"service": name, "attempt": attempt},
                )
                if attempt == attempts or not breaker.allows_call():
                    raise
                await asyncio.sleep(active.backoff_for(attempt))
            else:
                self._observe(name, started)
                breaker.on_success()
                status.record(True)
                return result
        raise AssertionError("unreachable")  # pragma: no cover

    def health_snapshot(self) -> Dict[str, Any]:
        degraded = any(item.status == "degraded" for item in self.service_status.values())
        return {
            "status": "degraded" if degraded else "healthy",
            "services": {name: item.to_payload() for name, item in self.service_status.items()},
            "latency_ms": dict(self.latencies_ms),
        }


async def _call(func: Operation) -> Any:
    result = func()
    if inspect.isawaitable(result):
        return await result
    return result


__all__ = ["CircuitBreakerState", "CircuitOpenError", "ResiliencePolicy", "ServiceStatus", "Telemetry"]
