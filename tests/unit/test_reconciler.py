"""
Unit tests for IstiodCertReconciler — create vs update convergence.

Uses the in-memory FakeCertificateStore from conftest, so every store call
is recorded and can be counted.
"""

from __future__ import annotations

from unittest.mock import MagicMock

from conftest import ISSUER_A, ISSUER_B, FakeCertificateStore
from railway import ErrorCode, ResultAssertions
from railway.result import Result

from istiod_cert.domain.models import (
    CertificateResource,
    ProvisionerOptions,
    ReconcileOutcome,
)
from istiod_cert.issuer_state import IssuerStateGuard
from istiod_cert.reconciler import IstiodCertReconciler


def _reconciler(
    guard: IssuerStateGuard, store: FakeCertificateStore, options: ProvisionerOptions
) -> IstiodCertReconciler:
    return IstiodCertReconciler(guard, store, options, "cluster.local")


class TestNoIssuer:
    def test_skips_without_touching_the_store(
        self, store: FakeCertificateStore, options: ProvisionerOptions
    ) -> None:
        """
        GIVEN no issuer has ever been set
        WHEN reconcile is called
        THEN it succeeds as SKIPPED_NO_ISSUER and the store is never called.
        """
        reconciler = _reconciler(IssuerStateGuard(None), store, options)

        result = reconciler.reconcile(options.target)

        assert ResultAssertions.assert_success(result) is ReconcileOutcome.SKIPPED_NO_ISSUER
        assert store.calls == []


class TestCreate:
    def test_creates_when_missing(self, store: FakeCertificateStore, options: ProvisionerOptions) -> None:
        """
        GIVEN an issuer and no existing Certificate
        WHEN reconcile is called
        THEN exactly one create happens with the full desired spec.
        """
        reconciler = _reconciler(IssuerStateGuard(ISSUER_A), store, options)

        result = reconciler.reconcile(options.target)

        assert ResultAssertions.assert_success(result) is ReconcileOutcome.CREATED
        assert store.count("create") == 1
        assert store.count("update") == 0
        created = store.objects[("istio-system", "istiod-dynamic")]
        assert created.spec["issuerRef"] == {"name": "issuer-a", "kind": "Issuer", "group": "cert-manager.io"}
        assert created.spec["dnsNames"] == ["istiod.istio-system.svc"]
        assert created.spec["uris"] == [
            "spiffe://cluster.local/ns/istio-system/sa/istiod-service-account"
        ]

    def test_create_failure_is_returned(self, options: ProvisionerOptions) -> None:
        """
        GIVEN the create call fails with a conflict
        WHEN reconcile is called
        THEN the failure is returned unchanged.
        """
        store = MagicMock()
        store.get.return_value = Result.failure(ErrorCode.NOT_FOUND, "missing")
        store.create.return_value = Result.failure(ErrorCode.CONFLICT_ERROR, "already exists")
        reconciler = IstiodCertReconciler(IssuerStateGuard(ISSUER_A), store, options, "cluster.local")

        result = reconciler.reconcile(options.target)

        ResultAssertions.assert_failure(result, ErrorCode.CONFLICT_ERROR)
        store.update.assert_not_called()


class TestUpdate:
    def test_updates_existing_with_spec_replaced(
        self, store: FakeCertificateStore, options: ProvisionerOptions
    ) -> None:
        """
        GIVEN an existing Certificate with a stale spec and labels
        WHEN reconcile is called with issuer B active
        THEN exactly one update replaces the spec and keeps the metadata.
        """
        store.objects[("istio-system", "istiod-dynamic")] = CertificateResource(
            namespace="istio-system",
            name="istiod-dynamic",
            spec={"secretName": "old", "subject": {"organizations": ["acme"]}},
            metadata={"resourceVersion": "5", "labels": {"team": "mesh"}},
        )
        reconciler = _reconciler(IssuerStateGuard(ISSUER_B), store, options)

        result = reconciler.reconcile(options.target)

        assert ResultAssertions.assert_success(result) is ReconcileOutcome.UPDATED
        assert store.count("update") == 1
        assert store.count("create") == 0
        stored = store.objects[("istio-system", "istiod-dynamic")]
        assert "subject" not in stored.spec
        assert stored.spec["issuerRef"]["name"] == "issuer-b"
        assert stored.spec["issuerRef"]["kind"] == "ClusterIssuer"
        assert stored.metadata["labels"] == {"team": "mesh"}

    def test_idempotent(self, store: FakeCertificateStore, options: ProvisionerOptions) -> None:
        """
        GIVEN unchanged inputs
        WHEN reconcile runs three times
        THEN the stored spec is identical after each run.
        """
        reconciler = _reconciler(IssuerStateGuard(ISSUER_A), store, options)

        reconciler.reconcile(options.target)
        first = dict(store.objects[("istio-system", "istiod-dynamic")].spec)
        reconciler.reconcile(options.target)
        reconciler.reconcile(options.target)

        assert store.objects[("istio-system", "istiod-dynamic")].spec == first
        assert store.count("create") == 1
        assert store.count("update") == 2

    def test_uses_latest_issuer(self, store: FakeCertificateStore, options: ProvisionerOptions) -> None:
        """
        GIVEN issuer A then issuer B applied before the reconcile runs
        WHEN reconcile is called
        THEN the Certificate references B.
        """
        guard = IssuerStateGuard(None)
        guard.decide(ISSUER_A)
        guard.decide(ISSUER_B)

        _reconciler(guard, store, options).reconcile(options.target)

        assert store.objects[("istio-system", "istiod-dynamic")].spec["issuerRef"]["name"] == "issuer-b"


class TestGetFailure:
    def test_other_failure_writes_nothing(
        self, store: FakeCertificateStore, options: ProvisionerOptions
    ) -> None:
        """
        GIVEN get fails with something other than NOT_FOUND
        WHEN reconcile is called
        THEN the failure keeps its code, mentions the identity, and nothing is written.
        """
        store.get_failure = Result.failure(ErrorCode.AUTHORIZATION_ERROR, "forbidden")
        reconciler = _reconciler(IssuerStateGuard(ISSUER_A), store, options)

        result = reconciler.reconcile(options.target)

        error = ResultAssertions.assert_failure(result, ErrorCode.AUTHORIZATION_ERROR)
        assert "istio-system/istiod-dynamic" in error.message
        assert "forbidden" in error.message
        assert store.count("create") == 0
        assert store.count("update") == 0
