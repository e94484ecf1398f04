"""
Unit tests for DynamicIstiodCertProvisioner — wiring and end-to-end flow
with in-memory adapters.
"""

from __future__ import annotations

import threading
import time

from conftest import ISSUER_A, ISSUER_B, ISSUER_INITIAL, FakeCertificateStore

from istiod_cert.adapters.issuer_notifier import StaticIssuerNotifier
from istiod_cert.domain.models import ProvisionerOptions, ReconcileOutcome, ReconcileTrigger
from istiod_cert.provisioner import DynamicIstiodCertProvisioner
from istiod_cert.runtime.controller import Controller
from istiod_cert.runtime.manager import Manager


def _wait_for(condition, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return False


class TestConstruction:
    def test_initial_issuer_snapshot(self, options: ProvisionerOptions, store: FakeCertificateStore) -> None:
        provisioner = DynamicIstiodCertProvisioner(
            options, StaticIssuerNotifier(ISSUER_INITIAL), store, "cluster.local"
        )

        assert provisioner.guard.initial_issuer == ISSUER_INITIAL
        assert provisioner.guard.current() == ISSUER_INITIAL
        assert provisioner.target == options.target

    def test_matches_only_managed_identity(
        self, options: ProvisionerOptions, store: FakeCertificateStore
    ) -> None:
        provisioner = DynamicIstiodCertProvisioner(options, StaticIssuerNotifier(None), store, "cluster.local")

        assert provisioner.matches(ReconcileTrigger("istio-system", "istiod-dynamic"))
        assert not provisioner.matches(ReconcileTrigger("istio-system", "other"))
        assert not provisioner.matches(ReconcileTrigger("default", "istiod-dynamic"))

    def test_reconcile_delegates(self, options: ProvisionerOptions, store: FakeCertificateStore) -> None:
        provisioner = DynamicIstiodCertProvisioner(options, StaticIssuerNotifier(ISSUER_A), store, "cluster.local")

        assert provisioner.reconcile(options.target).value() is ReconcileOutcome.CREATED


class TestAddControllersToManager:
    def test_registers_bridge_and_controller(
        self, options: ProvisionerOptions, store: FakeCertificateStore
    ) -> None:
        provisioner = DynamicIstiodCertProvisioner(options, StaticIssuerNotifier(None), store, "cluster.local")
        manager = Manager()

        controller = provisioner.add_controllers_to_manager(manager)

        assert isinstance(controller, Controller)
        assert manager._runnables == [provisioner.bridge, controller]
        assert controller.enqueue(ReconcileTrigger("istio-system", "other")) is False


class TestEndToEnd:
    def test_issuer_changes_converge_certificate(
        self, options: ProvisionerOptions, store: FakeCertificateStore
    ) -> None:
        """
        GIVEN a running manager with a provisioner and no initial issuer
        WHEN issuer A and then issuer B are notified
        THEN the Certificate is created once and finally references B.
        """
        notifier = StaticIssuerNotifier(None)
        provisioner = DynamicIstiodCertProvisioner(options, notifier, store, "cluster.local")
        manager = Manager(poll_interval=0.01)
        provisioner.add_controllers_to_manager(manager, requeue_base_seconds=0.01, requeue_max_seconds=0.05)
        stop = threading.Event()
        thread = threading.Thread(target=manager.start, args=(stop,))
        thread.start()

        try:
            notifier.subscribe().put(ISSUER_A)
            assert _wait_for(lambda: store.count("create") == 1)
            notifier.subscribe().put(ISSUER_B)
            key = ("istio-system", "istiod-dynamic")
            assert _wait_for(lambda: store.objects[key].spec["issuerRef"]["name"] == "issuer-b")
        finally:
            stop.set()
            thread.join(timeout=5)

        assert store.count("create") == 1
        assert not thread.is_alive()
