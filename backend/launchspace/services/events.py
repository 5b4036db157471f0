from __future__ import annotations
from typing import Any
import structlog
from rq import Queue
from redis import Redis

from launchspace.config import settings
from launchspace.enums import EventType, NotificationType

log = structlog.get_logger()


class EventDispatcher:
    """Outbound side effects: user notifications and integration webhooks."""

    async def notify(self, kind: NotificationType, payload: dict[str, Any]) -> None:
        raise NotImplementedError

    async def emit(self, event: EventType, payload: dict[str, Any]) -> None:
        raise NotImplementedError


class LogOnlyDispatcher(EventDispatcher):
    async def notify(self, kind: NotificationType, payload: dict[str, Any]) -> None:
        log.info("notification_skipped", kind=kind.value, payload_keys=sorted(payload))

    async def emit(self, event: EventType, payload: dict[str, Any]) -> None:
        log.info("event_skipped", event=event.value, payload_keys=sorted(payload))


class QueueDispatcher(EventDispatcher):
    """Hands delivery to rq workers; HTTP retries happen in the job, not the request."""

    def __init__(self, redis_url: str | None = None, webhook_urls: list[str] | None = None,
                 notification_url: str | None = None):
        self._redis_url = redis_url or settings.redis_url
        self._queue: Queue | None = None
        self.webhook_urls = list(settings.webhook_urls if webhook_urls is None else webhook_urls)
        self.notification_url = settings.notification_url if notification_url is None else notification_url

    @property
    def queue(self) -> Queue:
        if self._queue is None:
            self._queue = Queue("events", connection=Redis.from_url(self._redis_url))
        return self._queue

    async def notify(self, kind: NotificationType, payload: dict[str, Any]) -> None:
        from launchspace.jobs.deliver_events import deliver_notification
        if not self.notification_url:
            return
        self.queue.enqueue(deliver_notification, self.notification_url, kind.value, payload, job_timeout=120)

    async def emit(self, event: EventType, payload: dict[str, Any]) -> None:
        from launchspace.jobs.deliver_events import deliver_webhook
        for url in self.webhook_urls:
            self.queue.enqueue(deliver_webhook, url, event.value, payload, job_timeout=120)


async def safe_notify(events: EventDispatcher, kind: NotificationType, payload: dict[str, Any]) -> bool:
    try:
        await events.notify(kind, payload)
        return True
    except Exception as e:
        log.warning("notify_failed", kind=kind.value, error=str(e))
        return False


async def safe_emit(events: EventDispatcher, event: EventType, payload: dict[str, Any]) -> bool:
    try:
        await events.emit(event, payload)
        return True
    except Exception as e:
        log.warning("emit_failed", event=event.value, error=str(e))
        return False


def project_payload(app: dict[str, Any], **extra: Any) -> dict[str, Any]:
    body = {
        "project": {
            "id": app.get("id"),
            "name": app.get("name"),
            "slug": app.get("slug"),
            "url": app.get("website_url"),
            "categories": app.get("categories") or [],
            "plan": app.get("plan"),
            "status": app.get("status"),
        }
    }
    body["project"].update(extra)
    return body


def build_dispatcher() -> EventDispatcher:
    if settings.webhook_urls or settings.notification_url:
        return QueueDispatcher()
    return LogOnlyDispatcher()
