"""Telegram Bot API delivery with bounded retries."""

from __future__ import annotations

import asyncio
import json
import logging
import urllib.error
import urllib.request
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from .types import NotificationError, NotificationResult

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org/bot{token}/sendMessage"
CHANNEL_NAME = "telegram"

RequestFunc = Callable[[str, Mapping[str, Any]], Awaitable[Mapping[str, Any]]]


class TelegramApiError(RuntimeError):
    """The Bot API rejected a message or could not be reached."""

    def __init__(self, message: str, *, status: Optional[int] = None, retryable: bool = True) -> None:
        super().__init__(message)
        self.status = status
        self.retryable = retryable


async def send_telegram_message(
    token: str,
    chat_id: str,
    message: str,
    *,
    parse_mode: Optional[str] = "Markdown",
    request_func: Optional[RequestFunc] = None,
    max_retries: int = 2,
    backoff_seconds: float = 0.5,
    timeout: float = 10.0,
) -> NotificationResult:
    """Post ``message`` to ``chat_id`` and report the outcome.

    ``parse_mode=None`` sends plain text, which keeps signal parsers that read
    the raw message working. ``request_func`` replaces the HTTP call and
    receives ``(url, payload)``.
    """

    url = TELEGRAM_API_URL.format(token=token)
    payload: Dict[str, Any] = {"chat_id": chat_id, "text": message}
    if parse_mode:
        payload["parse_mode"] = parse_mode

    if request_func is None:
        async def post() -> Mapping[str, Any]:
            return await asyncio.to_thread(_post_json, url, payload, timeout)
    else:
        async def post() -> Mapping[str, Any]:
            return await request_func(url, payload)

    return await _deliver_with_retries(post, max_retries=max_retries, backoff_seconds=backoff_seconds)


def _post_json(url: str, payload: Mapping[str, Any], timeout: float) -> Mapping[str, Any]:
    request = urllib.request.Request(
        url,
        data=json.dumps(payload).encode("utf-8"),
        headers={"Content-Type": "application/json"},
        method="POST",
    )
    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:  # nosec B310
            body = response.read()
    except urllib.error.HTTPError as exc:
        detail = exc.read().decode("utf-8", errors="replace")
        raise TelegramApiError(
            f"telegram responded with {exc.code}: {detail}",
            status=exc.code,
            retryable=exc.code == 429 or exc.code >= 500,
        ) from exc
    except urllib.error.URLError as exc:
        raise TelegramApiError(f"telegram unreachable: {exc.reason}") from exc
    data = json.loads(body.decode("utf-8"))
    if not data.get("ok", True):
        raise TelegramApiError(f"telegram returned failure: {data.get('description') or data}", retryable=False)
    return data


async def _deliver_with_retries(
    post: Callable[[], Awaitable[Mapping[str, Any]]],
    *,
    max_retries: int,
    backoff_seconds: float,
) -> NotificationResult:
    attempts = 0
    failure: Optional[Exception] = None
    for attempts in range(1, max_retries + 2):
        try:
            response = await post()
        except Exception as exc:
            failure = exc
            logger.debug("telegram attempt %s failed: %s", attempts, exc)
            if not getattr(exc, "retryable", True) or attempts > max_retries:
                break
            await asyncio.sleep(backoff_seconds * attempts)
        else:
            return NotificationResult(channel=CHANNEL_NAME, success=True, attempts=attempts, payload=response)

    error = NotificationError(
        channel=CHANNEL_NAME,
        reason=str(failure),
        retryable=getattr(failure, "retryable", True),
        details={"attempts": attempts},
    )
    return NotificationResult(channel=CHANNEL_NAME, success=False, attempts=attempts, error=error)
