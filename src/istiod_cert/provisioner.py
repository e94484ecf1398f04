"""
Dynamic istiod certificate provisioner — owns the issuer guard, the change
bridge and the reconciler, and wires them into a Manager.

    provisioner = DynamicIstiodCertProvisioner(options, notifier, store, trust_domain)
    provisioner.add_controllers_to_manager(manager)
    manager.start(stop)
"""

from __future__ import annotations

from collections.abc import Iterable

from railway.result import Result

from istiod_cert.bridge import IssuerChangeBridge
from istiod_cert.domain.models import ProvisionerOptions, ReconcileOutcome, ReconcileTrigger
from istiod_cert.domain.ports import CertificateStore, IssuerChangeNotifier
from istiod_cert.issuer_state import IssuerStateGuard
from istiod_cert.reconciler import IstiodCertReconciler
from istiod_cert.runtime.channel import HandoffChannel
from istiod_cert.runtime.controller import Controller, Source
from istiod_cert.runtime.manager import Manager
from istiod_cert.runtime.sources import ChannelSource

CONTROLLER_NAME = "IstiodCertReconcile"


class DynamicIstiodCertProvisioner:
    def __init__(
        self,
        options: ProvisionerOptions,
        notifier: IssuerChangeNotifier,
        store: CertificateStore,
        trust_domain: str,
    ) -> None:
        self._options = options
        self._guard = IssuerStateGuard(notifier.initial_issuer())
        self._channel: HandoffChannel[ReconcileTrigger] = HandoffChannel()
        self._bridge = IssuerChangeBridge(self._guard, notifier.subscribe(), self._channel, options.target)
        self._reconciler = IstiodCertReconciler(self._guard, store, options, trust_domain)

    @property
    def target(self) -> ReconcileTrigger:
        return self._options.target

    @property
    def guard(self) -> IssuerStateGuard:
        return self._guard

    @property
    def bridge(self) -> IssuerChangeBridge:
        return self._bridge

    @property
    def channel(self) -> HandoffChannel[ReconcileTrigger]:
        return self._channel

    def matches(self, trigger: ReconcileTrigger) -> bool:
        """Only the managed certificate is ever reconciled."""
        return trigger == self._options.target

    def reconcile(self, trigger: ReconcileTrigger) -> Result[ReconcileOutcome]:
        return self._reconciler.reconcile(trigger)

    def add_controllers_to_manager(
        self,
        manager: Manager,
        extra_sources: Iterable[Source] = (),
        requeue_base_seconds: float = 1.0,
        requeue_max_seconds: float = 300.0,
    ) -> Controller:
        """
        Register the bridge and the reconcile controller with `manager`.

        The controller receives triggers from the bridge channel plus any
        `extra_sources` (certificate watch, periodic resync), filtered by
        `matches`. Returns the controller so callers can enqueue manually.
        """
        controller = Controller(
            CONTROLLER_NAME,
            self._reconciler.reconcile,
            predicate=self.matches,
            requeue_base_seconds=requeue_base_seconds,
            requeue_max_seconds=requeue_max_seconds,
        )
        controller.watches(ChannelSource(self._channel))
        for source in extra_sources:
            controller.watches(source)

        manager.add(self._bridge)
        manager.add(controller)
        return controller
