"""
Controller — delivers reconcile triggers from its sources to one reconcile
function, one trigger at a time.

  sources (channel, watch, resync) → predicate → WorkQueue → worker → reconcile

The predicate is the selectivity boundary: triggers it rejects never reach
the reconcile function. Failed reconciles are retried for the same trigger
with exponential backoff until they succeed or the manager stops. A new
trigger for the item in backoff cuts the wait short, so a fix (a corrected
issuer, say) is picked up at once rather than after the next backoff step.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from typing import Protocol

import structlog
from railway import LoggingExecutionContext
from railway.result import Result
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_result,
    stop_when_event_set,
    wait_exponential,
)

from istiod_cert.domain.models import ReconcileOutcome, ReconcileTrigger
from istiod_cert.runtime.workqueue import WorkQueue

log = structlog.get_logger()

ReconcileFn = Callable[[ReconcileTrigger], Result[ReconcileOutcome]]
Enqueue = Callable[[ReconcileTrigger], bool]


class Source(Protocol):
    """Something that produces triggers until `stop` is set."""

    def start(self, stop: threading.Event, enqueue: Enqueue) -> None: ...


def _is_failure(result: Result[ReconcileOutcome]) -> bool:
    return result.is_failure()


def _last_result(retry_state: RetryCallState) -> Result[ReconcileOutcome]:
    if retry_state.outcome is None:
        raise RuntimeError("retry ended before any reconcile attempt")
    return retry_state.outcome.result()


class Controller:
    """Runnable pairing a work queue with a single reconcile worker."""

    def __init__(
        self,
        name: str,
        reconcile: ReconcileFn,
        predicate: Callable[[ReconcileTrigger], bool] = lambda _: True,
        requeue_base_seconds: float = 1.0,
        requeue_max_seconds: float = 300.0,
        poll_interval: float = 0.5,
    ) -> None:
        self._name = name
        self._reconcile = reconcile
        self._predicate = predicate
        self._requeue_base_seconds = requeue_base_seconds
        self._requeue_max_seconds = requeue_max_seconds
        self._poll_interval = poll_interval
        self._queue: WorkQueue[ReconcileTrigger] = WorkQueue()
        self._sources: list[Source] = []
        self._ctx = LoggingExecutionContext(operation=name)
        self._in_flight: ReconcileTrigger | None = None
        self._retrigger = threading.Event()

    @property
    def name(self) -> str:
        return self._name

    def watches(self, source: Source) -> Controller:
        self._sources.append(source)
        return self

    def needs_leader_election(self) -> bool:
        return True

    def enqueue(self, trigger: ReconcileTrigger) -> bool:
        """Queue `trigger` if the predicate accepts it."""
        if not self._predicate(trigger):
            log.debug("controller.trigger_filtered", controller=self._name, trigger=str(trigger))
            return False
        self._queue.add(trigger)
        if trigger == self._in_flight:
            self._retrigger.set()
        return True

    def start(self, stop: threading.Event) -> None:
        threads = [
            threading.Thread(
                target=source.start,
                args=(stop, self.enqueue),
                name=f"{self._name}-source-{index}",
                daemon=True,
            )
            for index, source in enumerate(self._sources)
        ]
        for thread in threads:
            thread.start()

        log.info("controller.started", controller=self._name, sources=len(threads))
        try:
            while not stop.is_set():
                trigger = self._queue.get(timeout=self._poll_interval)
                if trigger is None:
                    continue
                try:
                    self.process(trigger, stop)
                finally:
                    self._queue.done(trigger)
        finally:
            self._queue.shut_down()
            for thread in threads:
                thread.join(timeout=self._poll_interval * 2)
            log.info("controller.shutdown", controller=self._name)

    def process(self, trigger: ReconcileTrigger, stop: threading.Event) -> Result[ReconcileOutcome]:
        """Reconcile one trigger, retrying failures with backoff."""
        self._retrigger.clear()
        self._in_flight = trigger
        retrying = Retrying(
            retry=retry_if_result(_is_failure),
            wait=wait_exponential(multiplier=self._requeue_base_seconds, max=self._requeue_max_seconds),
            stop=stop_when_event_set(stop),
            sleep=lambda seconds: self._backoff(trigger, seconds, stop),
            before_sleep=lambda state: self._log_requeue(trigger, state),
            retry_error_callback=_last_result,
        )
        try:
            return retrying(self._ctx.execute, lambda: self._reconcile(trigger))
        finally:
            self._in_flight = None

    def _backoff(self, trigger: ReconcileTrigger, seconds: float, stop: threading.Event) -> None:
        """Sleep up to `seconds`; return early on stop or on a new trigger for `trigger`."""
        deadline = time.monotonic() + seconds
        while not stop.is_set():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return
            if self._retrigger.wait(min(remaining, self._poll_interval)):
                self._retrigger.clear()
                log.info("controller.requeue_expedited", controller=self._name, trigger=str(trigger))
                return

    def _log_requeue(self, trigger: ReconcileTrigger, retry_state: RetryCallState) -> None:
        failure = retry_state.outcome.result().error() if retry_state.outcome else None
        log.warning(
            "controller.requeue",
            controller=self._name,
            trigger=str(trigger),
            attempt=retry_state.attempt_number,
            failure=str(failure),
            wait_seconds=round(retry_state.upcoming_sleep, 3),
        )
