"""
Scheduler — periodic resync of the managed certificate.

Infrastructure layer — uses APScheduler (3.x) for lightweight in-process
scheduling. A resync enqueues the managed identity on a fixed interval so
drift is corrected even when no watch event or issuer change arrives.

The scheduler runs in its own background thread and is shut down when the
manager's stop event is set.
"""

from __future__ import annotations

import threading

import structlog
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from istiod_cert.domain.models import ReconcileTrigger
from istiod_cert.runtime.controller import Enqueue

log = structlog.get_logger()

RESYNC_JOB_ID = "istiod_cert_resync"


def create_resync_scheduler(
    enqueue: Enqueue,
    target: ReconcileTrigger,
    interval_minutes: int,
) -> BackgroundScheduler:
    """
    Create a BackgroundScheduler that enqueues `target` every `interval_minutes`.

    Returns:
        A configured, not yet started BackgroundScheduler.
    """
    scheduler = BackgroundScheduler()

    def _job() -> None:
        accepted = enqueue(target)
        log.info("scheduler.resync_enqueued", trigger=str(target), accepted=accepted)

    scheduler.add_job(
        _job,
        trigger=IntervalTrigger(minutes=interval_minutes),
        id=RESYNC_JOB_ID,
        name="istiod certificate resync",
        replace_existing=True,
        coalesce=True,
        max_instances=1,
    )
    return scheduler


class PeriodicResyncSource:
    """Controller source that re-enqueues the managed certificate on an interval."""

    def __init__(self, target: ReconcileTrigger, interval_minutes: int) -> None:
        self._target = target
        self._interval_minutes = interval_minutes

    def start(self, stop: threading.Event, enqueue: Enqueue) -> None:
        scheduler = create_resync_scheduler(enqueue, self._target, self._interval_minutes)
        scheduler.start()
        log.info("scheduler.started", interval_minutes=self._interval_minutes)
        try:
            stop.wait()
        finally:
            scheduler.shutdown(wait=False)
            log.info("scheduler.shutdown")
