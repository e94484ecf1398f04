"""
Reconciler — converges the managed Certificate to its desired spec.

All I/O goes through the CertificateStore port; the desired spec comes from
the pure desired_state module. The flow for one trigger:

  guard.current()
    → None: nothing to do (no issuer has been supplied yet)
    → build_desired_spec(issuer, options, namespace, trust domain)
      → store.get(namespace, name)
        → NOT_FOUND: store.create(new resource)
        → other failure: return it, write nothing
        → found: store.update(existing with spec replaced wholesale)

Each stage returns Result[T]. Failures surface to the controller, which
requeues with backoff.
"""

from __future__ import annotations

import structlog
from railway import ErrorCode, FailureDescription
from railway.result import Result

from istiod_cert.domain.desired_state import build_desired_spec
from istiod_cert.domain.models import (
    CertificateResource,
    CertificateSpec,
    ProvisionerOptions,
    ReconcileOutcome,
    ReconcileTrigger,
)
from istiod_cert.domain.ports import CertificateStore
from istiod_cert.issuer_state import IssuerStateGuard

log = structlog.get_logger()


class IstiodCertReconciler:
    """
    Reconcile the dynamic istiod certificate.

    Holds no state of its own beyond references to the guard, the store and
    the immutable options, so concurrent reconcile calls are safe.
    """

    def __init__(
        self,
        guard: IssuerStateGuard,
        store: CertificateStore,
        options: ProvisionerOptions,
        trust_domain: str,
    ) -> None:
        self._guard = guard
        self._store = store
        self._options = options
        self._trust_domain = trust_domain

    def reconcile(self, trigger: ReconcileTrigger) -> Result[ReconcileOutcome]:
        issuer_ref = self._guard.current()
        if issuer_ref is None:
            log.info("reconcile.skipped", cert=str(trigger), reason="no issuerRef is set")
            return Result.success(ReconcileOutcome.SKIPPED_NO_ISSUER)

        log.info(
            "reconcile.started",
            cert=str(trigger),
            issuer_name=issuer_ref.name,
            issuer_kind=issuer_ref.kind,
            issuer_group=issuer_ref.group,
        )

        desired = build_desired_spec(
            issuer_ref, self._options, trigger.namespace, self._trust_domain
        )

        return (
            self._converge(trigger, desired)
            .peek(lambda outcome: log.info("reconcile.converged", cert=str(trigger), outcome=outcome.value))
            .peek_failure(lambda err: log.warning("reconcile.failed", cert=str(trigger), failure=str(err)))
        )

    def _converge(
        self, trigger: ReconcileTrigger, desired: CertificateSpec
    ) -> Result[ReconcileOutcome]:
        existing = self._store.get(trigger.namespace, trigger.name)

        if existing.is_success():
            return self._store.update(existing.value().with_spec(desired)).map(
                lambda _: ReconcileOutcome.UPDATED
            )

        err = existing.error()
        if err.code is not ErrorCode.NOT_FOUND:
            return Result.failure_from(
                FailureDescription(err.code, f"failed to fetch cert {trigger}: {err.message}", err.exception)
            )

        resource = CertificateResource(namespace=trigger.namespace, name=trigger.name).with_spec(desired)
        return self._store.create(resource).map(lambda _: ReconcileOutcome.CREATED)
