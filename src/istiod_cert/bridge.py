"""
Issuer change bridge — turns pushed issuer notifications into reconcile triggers.

Runs on its own thread for the lifetime of the manager:

  notifier queue → IssuerStateGuard.decide → HandoffChannel → controller

Notifications are applied strictly in arrival order by this single thread.
The hand-off blocks until the controller accepts the trigger, so a stalled
controller stalls issuer updates; both waits give way to the stop event.
"""

from __future__ import annotations

import queue
import threading

import structlog

from istiod_cert.domain.models import IssuerRef, ReconcileTrigger
from istiod_cert.issuer_state import IssuerStateGuard
from istiod_cert.runtime.channel import HandoffChannel

log = structlog.get_logger()


class IssuerChangeBridge:
    """
    Runnable that listens for issuer changes and triggers reconciliation of
    the managed certificate.
    """

    def __init__(
        self,
        guard: IssuerStateGuard,
        notifications: queue.Queue[IssuerRef | None],
        channel: HandoffChannel[ReconcileTrigger],
        target: ReconcileTrigger,
        poll_interval: float = 0.5,
    ) -> None:
        self._guard = guard
        self._notifications = notifications
        self._channel = channel
        self._target = target
        self._poll_interval = poll_interval

    def needs_leader_election(self) -> bool:
        """
        Only one replica may run the bridge; duplicates would race to create
        the same certificate.
        """
        return True

    def start(self, stop: threading.Event) -> None:
        log.info("bridge.started", cert_name=self._target.name, cert_namespace=self._target.namespace)
        while not stop.is_set():
            try:
                update = self._notifications.get(timeout=self._poll_interval)
            except queue.Empty:
                continue
            self.handle_issuer_update(update, stop)

        log.info("bridge.shutdown", reason="stop requested")

    def handle_issuer_update(self, update: IssuerRef | None, stop: threading.Event) -> bool:
        """
        Apply one notification; return True if a trigger was handed off.
        """
        decision = self._guard.decide(update)
        if not decision.changed:
            log.info(
                "bridge.issuer_restored",
                issuer_name=decision.issuer_ref.name if decision.issuer_ref else None,
                reason="notification cleared the issuer; keeping initial issuer",
            )
            return False

        log.info(
            "bridge.issuer_changed",
            issuer_name=update.name if update else None,
            issuer_kind=update.kind if update else None,
            issuer_group=update.group if update else None,
            cert_name=self._target.name,
            cert_namespace=self._target.namespace,
        )

        if not self._channel.send(self._target, stop):
            log.info("bridge.trigger_dropped", reason="stop requested before hand-off")
            return False
        return True
