"""
APScheduler jobs that run alongside a live run.

  - journal_snapshot: every JOURNAL_INTERVAL_SECONDS (30 s) write the
    crash-recovery snapshot. Best-effort: a missed tick only coarsens what
    a recovery would restore.
  - live_publish: every LIVE_PUBLISH_INTERVAL_SECONDS (1 s) hand a
    read-only LiveStatus to the publisher (lock screen, watch, websocket…).

Both jobs only call RunTracker's public methods, which serialize on the
tracker's lock, so they never race with samples or control events.
"""
import asyncio
import logging
from typing import Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from runtrack.config import get_settings
from runtrack.tracking.live import LiveStatus, log_publisher
from runtrack.tracking.session import SessionState

logger = logging.getLogger(__name__)

Publisher = Callable[[LiveStatus], None]


def build_scheduler(tracker, publisher: Optional[Publisher] = None) -> AsyncIOScheduler:
    """
    Create and configure the APScheduler.

    Args:
        tracker: RunTracker whose live run is snapshotted/published.
        publisher: receives LiveStatus every tick; defaults to log_publisher.

    Returns:
        Configured AsyncIOScheduler (not yet started).
    """
    settings = get_settings()
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        _journal_snapshot,
        trigger="interval",
        seconds=settings.journal_interval_seconds,
        id="journal_snapshot",
        replace_existing=True,
        kwargs={"tracker": tracker},
    )
    scheduler.add_job(
        _publish_live,
        trigger="interval",
        seconds=settings.live_publish_interval_seconds,
        id="live_publish",
        replace_existing=True,
        kwargs={"tracker": tracker, "publisher": publisher or log_publisher},
    )

    return scheduler


async def _journal_snapshot(tracker) -> None:
    """Write the recovery snapshot if a run is live. Never raises."""
    try:
        # Store writes block; keep them off the event loop
        written = await asyncio.get_running_loop().run_in_executor(None, tracker.checkpoint)
        if written:
            logger.debug("Recovery snapshot written for %s", tracker.session_id)
    except Exception as exc:
        logger.error("Recovery snapshot failed: %s", exc)


async def _publish_live(tracker, publisher: Publisher) -> None:
    """Publish the live status while a run is in progress. Never raises."""
    try:
        status = tracker.live_status()
        if status.state not in (SessionState.TRACKING, SessionState.PAUSED):
            return
        publisher(status)
    except Exception as exc:
        logger.error("Live status publish failed: %s", exc)
