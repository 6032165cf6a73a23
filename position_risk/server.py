"""Command line entry point for the position risk monitor service."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Optional, TYPE_CHECKING

from fastapi import FastAPI

from services.telemetry import Telemetry

from .config.models import MonitorConfig
from .configuration import _configure_default_logging, load_monitor_config
from .metrics import MetricRegistry
from .notifications import NotificationDispatcher, SignalTemplate, TelegramNotificationChannel
from .risk_engine import ConfigurationStore, RiskMonitor

if TYPE_CHECKING:  # pragma: no cover - used only for type hints
    import uvicorn

logger = logging.getLogger(__name__)


def _import_uvicorn() -> "uvicorn":
    """Import :mod:`uvicorn` with a helpful error message when missing."""

    try:
        import uvicorn  # type: ignore[import]
    except ModuleNotFoundError as exc:  # pragma: no cover - depends on runtime environment
        raise ModuleNotFoundError(
            "The 'uvicorn' package is required to run the position risk monitor. "
            "Install it with 'pip install uvicorn'."
        ) from exc
    return uvicorn


def build_channel(config: MonitorConfig) -> Optional[TelegramNotificationChannel]:
    telegram = config.telegram
    if not telegram.configured:
        logger.warning("Telegram is not configured; notifications will be skipped")
        return None
    return TelegramNotificationChannel(
        telegram.bot_token,
        telegram.chat_id,
        signal_chat_id=telegram.signal_chat_id,
        template=SignalTemplate(exchange_label=telegram.exchange_label),
        timeout=config.resilience.request_timeout,
    )


def build_app(config: MonitorConfig) -> FastAPI:
    """Wire the exchange adapter, Telegram channel and monitor into an app."""

    # Imported lazily to avoid loading ccxt at import time.
    from services.exchanges import BinanceFuturesAdapter

    from .api import create_app

    adapter = BinanceFuturesAdapter.from_config(config.exchange)
    telemetry = Telemetry(policy=config.resilience)
    metrics = MetricRegistry()
    dispatcher = NotificationDispatcher(build_channel(config), telemetry=telemetry, metrics=metrics)
    monitor = RiskMonitor(
        adapter,
        dispatcher,
        order_client=adapter,
        config_store=ConfigurationStore(config.risk),
        telemetry=telemetry,
        metrics=metrics,
    )
    return create_app(monitor, manage_lifecycle=True, shutdown_hooks=[adapter.close])


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Run the position risk monitor and its HTTP API")
    parser.add_argument("--config", type=Path, required=True, help="Path to the JSON configuration file")
    parser.add_argument("--host", default="127.0.0.1", help="Host address for the web server")
    parser.add_argument("--port", type=int, default=8000, help="Port for the web server")
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=1,
        help="Increase log verbosity (repeat for debug output)",
    )
    args = parser.parse_args(argv)

    _configure_default_logging(debug_level=args.verbose)
    try:
        config = load_monitor_config(args.config)
    except (OSError, TypeError, ValueError) as exc:
        parser.error(str(exc))
    log_level = "debug" if config.debug_api_payloads or args.verbose > 1 else "info"

    app = build_app(config)
    uvicorn = _import_uvicorn()
    uvicorn.run(app, host=args.host, port=args.port, log_level=log_level)


if __name__ == "__main__":
    main()
