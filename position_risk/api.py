"""FastAPI surface for operating the risk monitor.

The routes expose the monitor's status, statistics and configuration, and the
manual operations (start/stop, single tick, manual hedge, position removal).
"""

from __future__ import annotations

import json
import logging
from typing import Any, Awaitable, Callable, Dict, Mapping, Sequence

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse

from .exceptions import ConfigurationError, SnapshotFetchError
from .models import PositionKey
from .risk_engine.monitor import RiskMonitor

logger = logging.getLogger(__name__)

ShutdownHook = Callable[[], Awaitable[None]]


def _parse_key(raw: str) -> PositionKey:
    try:
        return PositionKey.parse(raw)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


def create_app(
    monitor: RiskMonitor,
    *,
    manage_lifecycle: bool = False,
    shutdown_hooks: Sequence[ShutdownHook] = (),
) -> FastAPI:
    """Build the application around an existing ``monitor``.

    With ``manage_lifecycle`` the monitor is started on startup when the
    configuration is enabled. Shutdown always stops the loop, waits for the
    in-flight tick and then runs ``shutdown_hooks``.
    """

    app = FastAPI(title="Position Risk Monitor")
    app.state.monitor = monitor

    @app.on_event("startup")
    async def startup() -> None:
        if manage_lifecycle and monitor.get_config().enabled:
            monitor.start()

    @app.on_event("shutdown")
    async def shutdown() -> None:  # pragma: no cover - FastAPI lifecycle
        await monitor.shutdown()
        for hook in shutdown_hooks:
            try:
                await hook()
            except Exception:
                logger.exception("Shutdown hook failed")

    @app.get("/health", response_class=JSONResponse)
    async def health() -> Dict[str, Any]:
        status_payload = monitor.get_monitoring_status()
        return {
            "status": status_payload["health"]["status"],
            "is_monitoring": status_payload["is_monitoring"],
            "last_error": status_payload["last_error"],
        }

    @app.get("/api/risk/status", response_class=JSONResponse)
    async def risk_status() -> Dict[str, Any]:
        return monitor.get_monitoring_status()

    @app.get("/api/risk/stats", response_class=JSONResponse)
    async def risk_stats() -> Dict[str, Any]:
        return monitor.get_stats().to_payload()

    @app.get("/api/risk/config", response_class=JSONResponse)
    async def get_config() -> Dict[str, Any]:
        return monitor.get_config().to_payload()

    @app.patch("/api/risk/config", response_class=JSONResponse)
    async def update_config(request: Request) -> Dict[str, Any]:
        try:
            payload = await request.json()
        except json.JSONDecodeError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON payload") from exc
        if not isinstance(payload, Mapping):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Configuration update must be an object")
        try:
            config = monitor.set_config(payload)
        except ConfigurationError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
        return config.to_payload()

    @app.post("/api/risk/start", response_class=JSONResponse)
    async def start_monitoring() -> Dict[str, Any]:
        started = monitor.start()
        return {"started": started, "is_monitoring": monitor.is_monitoring}

    @app.post("/api/risk/stop", response_class=JSONResponse)
    async def stop_monitoring() -> Dict[str, Any]:
        stopped = monitor.stop()
        return {"stopped": stopped, "is_monitoring": monitor.is_monitoring}

    @app.post("/api/risk/tick", response_class=JSONResponse)
    async def run_tick() -> Dict[str, Any]:
        report = await monitor.tick()
        return report.to_payload()

    @app.post("/api/risk/positions/{position_key}/hedge", response_class=JSONResponse)
    async def manual_hedge(position_key: str) -> Dict[str, Any]:
        key = _parse_key(position_key)
        success = await monitor.manual_hedge(key)
        return {"position": str(key), "success": success}

    @app.delete("/api/risk/positions/{position_key}", response_class=JSONResponse)
    async def remove_position(position_key: str) -> Dict[str, Any]:
        key = _parse_key(position_key)
        removed = await monitor.remove_position(key)
        return {"position": str(key), "removed": removed}

    @app.get("/api/account/balance", response_class=JSONResponse)
    async def account_balance() -> Dict[str, Any]:
        try:
            balance = await monitor.fetch_account_balance()
        except SnapshotFetchError as exc:
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
        return balance.to_payload()

    @app.post("/api/notifications/test", response_class=JSONResponse)
    async def test_notifications() -> Dict[str, Any]:
        return {"success": await monitor.test_notifications()}

    return app


__all__ = ["create_app"]
