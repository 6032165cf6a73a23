"""Process-wide logging configuration with credential redaction."""

from __future__ import annotations

import logging
import re
import sys
from typing import Any, Callable, Optional, TextIO

REDACTED = "***REDACTED***"

_SENSITIVE_KEYS = r"(?:X-MBX-APIKEY|api[_-]?key|apiKey|secret|api[_-]?secret|signature|password|passphrase|bot_token|token)"
# "key": "value", 'key': 'value', key=value and key: value forms.
_KEY_VALUE_PATTERN = re.compile(
    rf"""(?P<prefix>(?P<quote>['"]?){_SENSITIVE_KEYS}(?P=quote)\s*[:=]\s*)(?P<value>['"][^'"]*['"]|[^\s,&'"}}]+)""",
    re.IGNORECASE,
)
_TELEGRAM_TOKEN_PATTERN = re.compile(r"(/bot)\d+:[A-Za-z0-9_-]+")

_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
_HANDLER_NAME = "position_risk"

_base_factory: Optional[Callable[..., logging.LogRecord]] = None


def redact(text: str) -> str:
    """Mask credentials embedded in ``text``."""

    def _mask(match: "re.Match[str]") -> str:
        value = match.group("value")
        if value[:1] in {"'", '"'}:
            return f"{match.group('prefix')}{value[0]}{REDACTED}{value[0]}"
        return f"{match.group('prefix')}{REDACTED}"

    text = _KEY_VALUE_PATTERN.sub(_mask, text)
    return _TELEGRAM_TOKEN_PATTERN.sub(rf"\1{REDACTED}", text)


def _redacting_factory(*args: Any, **kwargs: Any) -> logging.LogRecord:
    assert _base_factory is not None
    record = _base_factory(*args, **kwargs)
    try:
        message = record.getMessage()
    except Exception:
        # Leave malformed records alone so logging reports them as usual.
        return record
    cleaned = redact(message)
    if cleaned != message or record.args:
        record.msg = cleaned
        record.args = None
    return record


def install_redaction() -> None:
    """Redact every record at creation time so all handlers see clean text."""

    global _base_factory
    if _base_factory is not None:
        return
    _base_factory = logging.getLogRecordFactory()
    logging.setLogRecordFactory(_redacting_factory)


def debug_to_logging_level(debug_level: int) -> int:
    """Map a debug verbosity integer to a logging level."""

    if debug_level <= 0:
        return logging.WARNING
    if debug_level == 1:
        return logging.INFO
    return logging.DEBUG


def configure_logging(debug: int = 1, *, stream_target: Optional[TextIO] = None) -> logging.Logger:
    """Install a single stream handler on the root logger.

    Calling it again replaces the handler installed by a previous call, so the
    output target can be switched in tests.
    """

    install_redaction()
    level = debug_to_logging_level(debug)
    root = logging.getLogger()
    for handler in list(root.handlers):
        if handler.get_name() == _HANDLER_NAME:
            root.removeHandler(handler)
    handler = logging.StreamHandler(stream_target or sys.stderr)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(logging.Formatter(_FORMAT))
    handler.setLevel(level)
    root.addHandler(handler)
    root.setLevel(level)
    # ccxt logs full request headers at DEBUG.
    logging.getLogger("ccxt").setLevel(max(level, logging.INFO))
    return root


__all__ = ["REDACTED", "configure_logging", "debug_to_logging_level", "install_redaction", "redact"]
