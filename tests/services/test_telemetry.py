import asyncio
import time

import pytest

from services.telemetry import CircuitBreakerState, CircuitOpenError, ResiliencePolicy, Telemetry


def test_retries_until_success_and_marks_healthy():
    telemetry = Telemetry(policy=ResiliencePolicy(max_retries=2, retry_backoff=0))
    calls = 0

    async def flaky():
        nonlocal calls
        calls += 1
        if calls < 3:
            raise RuntimeError("transient")
        return "ok"

    result = asyncio.run(telemetry.execute_with_resilience("positions", flaky))

    assert result == "ok"
    assert calls == 3
    snapshot = telemetry.health_snapshot()
    assert snapshot["status"] == "healthy"
    assert snapshot["services"]["positions"]["failures"] == 2
    assert "positions" in snapshot["latency_ms"]


def test_timeout_surfaces_and_degrades_service():
    telemetry = Telemetry(policy=ResiliencePolicy(request_timeout=0.01, max_retries=0))

    async def slow():
        await asyncio.sleep(1)

    with pytest.raises(asyncio.TimeoutError):
        asyncio.run(telemetry.execute_with_resilience("notifications", slow))

    assert telemetry.health_snapshot()["status"] == "degraded"


def test_circuit_opens_after_threshold():
    telemetry = Telemetry(
        policy=ResiliencePolicy(max_retries=5, retry_backoff=0, circuit_breaker_threshold=2)
    )
    calls = 0

    def failing():
        nonlocal calls
        calls += 1
        raise RuntimeError("down")

    with pytest.raises(RuntimeError, match="down"):
        asyncio.run(telemetry.execute_with_resilience("orders", failing))
    assert calls == 2

    with pytest.raises(CircuitOpenError):
        asyncio.run(telemetry.execute_with_resilience("orders", failing))
    assert calls == 2
    assert telemetry.service_status["orders"].reason == "circuit_open"


def test_half_open_breaker_reopens_on_first_failure():
    breaker = CircuitBreakerState(threshold=3, reset_seconds=0.01)
    for _ in range(3):
        breaker.on_failure()
    assert breaker.allows_call() is False

    time.sleep(0.02)
    assert breaker.allows_call() is True
    breaker.on_failure()
    assert breaker.allows_call() is False

    time.sleep(0.02)
    assert breaker.allows_call() is True
    breaker.on_success()
    breaker.on_failure()
    assert breaker.allows_call() is True
    assert breaker.consecutive_failures == 1


def test_policy_override_disables_retries():
    telemetry = Telemetry(policy=ResiliencePolicy(max_retries=3, retry_backoff=0, circuit_breaker_threshold=10))
    calls = 0

    def failing():
        nonlocal calls
        calls += 1
        raise RuntimeError("rejected")

    with pytest.raises(RuntimeError):
        asyncio.run(
            telemetry.execute_with_resilience("orders", failing, policy=telemetry.policy.without_retries())
        )
    assert calls == 1


def test_policy_from_mapping_validates():
    policy = ResiliencePolicy.from_mapping({"request_timeout": "2.5", "max_retries": 1})
    assert policy.request_timeout == 2.5
    assert policy.max_retries == 1
    assert ResiliencePolicy.from_mapping(None) == ResiliencePolicy()

    with pytest.raises(ValueError):
        ResiliencePolicy.from_mapping({"request_timeout": 0})
    with pytest.raises(ValueError):
        ResiliencePolicy.from_mapping({"max_retries": "many"})
