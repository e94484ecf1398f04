"""
Manager — runs runnables on threads and gates leader-only work.

A runnable is anything with `start(stop)` and `needs_leader_election()`.
Runnables that do not need leadership (issuer notifiers) start right away on
every replica. The rest (bridge, controllers) start once this replica wins
the leader election. Losing leadership after that stops the whole manager:
a replica that is no longer leader must not keep writing.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Protocol

import structlog

log = structlog.get_logger()


class Runnable(Protocol):
    def start(self, stop: threading.Event) -> None: ...

    def needs_leader_election(self) -> bool: ...


class LeaderElector(Protocol):
    """Blocks in `run`, calling back when leadership is gained or lost."""

    def run(
        self,
        on_started_leading: Callable[[], None],
        on_stopped_leading: Callable[[], None],
    ) -> None: ...


class Manager:
    def __init__(
        self,
        leader_elector: LeaderElector | None = None,
        shutdown_timeout: float = 5.0,
        poll_interval: float = 0.5,
    ) -> None:
        self._leader_elector = leader_elector
        self._shutdown_timeout = shutdown_timeout
        self._poll_interval = poll_interval
        self._runnables: list[Runnable] = []
        self._threads: list[threading.Thread] = []
        self._started = False
        self._elected = threading.Event()

    def add(self, runnable: Runnable) -> None:
        if self._started:
            raise RuntimeError("cannot add a runnable to a manager that has already started")
        self._runnables.append(runnable)

    @property
    def started(self) -> bool:
        return self._started

    @property
    def leading(self) -> bool:
        return self._elected.is_set()

    def start(self, stop: threading.Event) -> None:
        """Run until `stop` is set; blocks the calling thread."""
        self._started = True
        log.info(
            "manager.starting",
            runnables=len(self._runnables),
            leader_election=self._leader_elector is not None,
        )

        self._launch([r for r in self._runnables if not r.needs_leader_election()], stop)

        if self._leader_elector is None:
            self._elected.set()
        else:
            threading.Thread(
                target=self._run_elector,
                args=(self._leader_elector, stop),
                name="leader-election",
                daemon=True,
            ).start()

        while not stop.is_set() and not self._elected.wait(self._poll_interval):
            pass

        if not stop.is_set():
            log.info("manager.leading", runnables=sum(r.needs_leader_election() for r in self._runnables))
            self._launch([r for r in self._runnables if r.needs_leader_election()], stop)

        stop.wait()
        log.info("manager.stopping", threads=len(self._threads))
        for thread in self._threads:
            thread.join(timeout=self._shutdown_timeout)
            if thread.is_alive():
                log.warning("manager.thread_timeout", thread=thread.name, timeout_seconds=self._shutdown_timeout)
        self._elected.clear()
        log.info("manager.shutdown")

    def _launch(self, runnables: list[Runnable], stop: threading.Event) -> None:
        for runnable in runnables:
            thread = threading.Thread(
                target=self._run_runnable,
                args=(runnable, stop),
                name=type(runnable).__name__,
                daemon=True,
            )
            self._threads.append(thread)
            thread.start()

    @staticmethod
    def _run_runnable(runnable: Runnable, stop: threading.Event) -> None:
        try:
            runnable.start(stop)
        except Exception as e:
            log.error("manager.runnable_failed", runnable=type(runnable).__name__, error=str(e))
            stop.set()

    def _run_elector(self, elector: LeaderElector, stop: threading.Event) -> None:
        def _on_started_leading() -> None:
            log.info("manager.leader_elected")
            self._elected.set()

        def _on_stopped_leading() -> None:
            if not stop.is_set():
                log.error("manager.leadership_lost", action="stopping")
            stop.set()

        try:
            elector.run(_on_started_leading, _on_stopped_leading)
        except Exception as e:
            log.error("manager.leader_election_failed", error=str(e))
            stop.set()
