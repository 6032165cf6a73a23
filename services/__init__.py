"""Service-level utilities shared by the position risk monitor."""

from .telemetry import CircuitBreakerState, CircuitOpenError, ResiliencePolicy, Telemetry

__all__ = ["CircuitBreakerState", "CircuitOpenError", "ResiliencePolicy", "Telemetry"]
