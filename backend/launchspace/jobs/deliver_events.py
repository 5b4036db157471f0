from __future__ import annotations
import asyncio
import hashlib
import hmac
import json
from datetime import datetime, timezone as dt_tz
from typing import Any, Awaitable, Callable

import httpx
import structlog

from launchspace.config import settings
from launchspace.store.base import WEBHOOK_LOGS, DocumentStore

log = structlog.get_logger()

RETRY_DELAYS = (1, 5, 15)  # seconds; one initial attempt plus three retries
USER_AGENT = "LaunchSpace-Webhook/1.0"


def sign(body: bytes, secret: str) -> str:
    return "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def encode_event(event_type: str, payload: dict[str, Any], now: datetime) -> bytes:
    return json.dumps(
        {"event": event_type, "timestamp": now.isoformat(), "data": payload},
        default=str,
        separators=(",", ":"),
    ).encode()


async def post_with_retries(
    client: httpx.AsyncClient,
    url: str,
    event_type: str,
    payload: dict[str, Any],
    *,
    secret: str = "",
    store: DocumentStore | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> bool:
    """POST one event to one endpoint; each attempt is recorded in webhook_logs when a store is given."""
    now = datetime.now(dt_tz.utc)
    body = encode_event(event_type, payload, now)
    headers = {
        "Content-Type": "application/json",
        "User-Agent": USER_AGENT,
        "X-DH-Event": event_type,
        "X-DH-Timestamp": now.isoformat(),
    }
    if secret:
        headers["X-DH-Signature"] = sign(body, secret)

    delays = (0,) + RETRY_DELAYS
    for attempt, delay in enumerate(delays, start=1):
        if delay:
            await sleep(delay)
        status_code, error = None, None
        try:
            resp = await client.post(url, content=body, headers=headers, timeout=30.0)
            status_code = resp.status_code
            if resp.is_success:
                await _record(store, event_type, url, payload, attempt, status_code, True, None)
                log.info("webhook_delivered", url=url, event=event_type, status=status_code, attempt=attempt)
                return True
            error = f"HTTP {status_code}"
        except httpx.HTTPError as e:
            error = str(e) or e.__class__.__name__
        await _record(store, event_type, url, payload, attempt, status_code, False, error)
        log.warning("webhook_attempt_failed", url=url, event=event_type, attempt=attempt, error=error)
    log.error("webhook_gave_up", url=url, event=event_type, attempts=len(delays))
    return False


async def _record(store, event_type, url, payload, attempt, status_code, success, error):
    if store is None:
        return
    try:
        await store.insert_one(WEBHOOK_LOGS, {
            "event_type": event_type,
            "url": url,
            "status_code": status_code,
            "success": success,
            "attempt": attempt,
            "error": error,
            "payload": json.loads(json.dumps(payload, default=str)),
            "created_at": datetime.now(dt_tz.utc),
        })
    except Exception as e:
        log.warning("webhook_log_failed", url=url, error=str(e))


async def _run(url: str, event_type: str, payload: dict[str, Any], secret: str) -> bool:
    from launchspace.db import SessionLocal
    from launchspace.store.sql import SqlDocumentStore
    async with httpx.AsyncClient() as client:
        return await post_with_retries(client, url, event_type, payload, secret=secret,
                                       store=SqlDocumentStore(SessionLocal))


def deliver_webhook(url: str, event_type: str, payload: dict[str, Any]) -> bool:
    # RQ entry point (sync); run the async coroutine
    return asyncio.run(_run(url, event_type, payload, settings.webhook_secret))


def deliver_notification(url: str, kind: str, payload: dict[str, Any]) -> bool:
    # RQ entry point (sync); notifications share the signed delivery path
    return asyncio.run(_run(url, f"notification.{kind}", payload, settings.webhook_secret))
