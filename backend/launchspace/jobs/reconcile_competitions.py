from __future__ import annotations
import asyncio
import structlog

from launchspace.services.lifecycle import CompetitionLifecycle
from launchspace.store.base import DocumentStore

log = structlog.get_logger()

async def reconcile_once(store: DocumentStore, **kwargs) -> dict:
    report = await CompetitionLifecycle(store, **kwargs).run()
    return report.to_dict()

async def reconcile_forever(store: DocumentStore, interval_seconds: int, **kwargs) -> None:
    """In-process scheduler loop; each tick is isolated so one failure never stops the loop."""
    while True:
        try:
            await reconcile_once(store, **kwargs)
        except Exception:
            log.exception("reconcile_tick_failed")
        await asyncio.sleep(interval_seconds)

async def _run() -> dict:
    from launchspace.deps import build_store
    from launchspace.services.events import build_dispatcher
    return await reconcile_once(build_store(), events=build_dispatcher())

def reconcile_competitions() -> dict:
    # RQ / cron entry point (sync); run the async coroutine
    return asyncio.run(_run())

if __name__ == "__main__":
    from launchspace.logging_setup import configure_logging
    configure_logging()
    reconcile_competitions()
