"""
Shared test fixtures and helpers for the istiod-cert-provisioner test suite.

Provides an in-memory CertificateStore that records every call, plus the
common issuer references and options used across the unit tests.
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest
import structlog
from railway import ErrorCode
from railway.result import Result

from istiod_cert.domain.models import CertificateResource, IssuerRef, ProvisionerOptions

ISSUER_A = IssuerRef(name="issuer-a")
ISSUER_B = IssuerRef(name="issuer-b", kind="ClusterIssuer")
ISSUER_INITIAL = IssuerRef(name="bootstrap-issuer")


class FakeCertificateStore:
    """
    In-memory CertificateStore keyed by (namespace, name).

    Records every call in `calls` as (method, namespace, name). Set
    `get_failure` to make every `get` fail with that Result instead.
    """

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str], CertificateResource] = {}
        self.calls: list[tuple[str, str, str]] = []
        self.get_failure: Result[CertificateResource] | None = None
        self._revision = 0

    def get(self, namespace: str, name: str) -> Result[CertificateResource]:
        self.calls.append(("get", namespace, name))
        if self.get_failure is not None:
            return self.get_failure
        stored = self.objects.get((namespace, name))
        if stored is None:
            return Result.failure(ErrorCode.NOT_FOUND, f"certificate {namespace}/{name} not found")
        return Result.success(stored)

    def create(self, resource: CertificateResource) -> Result[CertificateResource]:
        self.calls.append(("create", resource.namespace, resource.name))
        key = (resource.namespace, resource.name)
        if key in self.objects:
            return Result.failure(ErrorCode.CONFLICT_ERROR, "already exists")
        return Result.success(self._store(resource))

    def update(self, resource: CertificateResource) -> Result[CertificateResource]:
        self.calls.append(("update", resource.namespace, resource.name))
        if (resource.namespace, resource.name) not in self.objects:
            return Result.failure(ErrorCode.NOT_FOUND, "gone")
        return Result.success(self._store(resource))

    def count(self, method: str) -> int:
        return sum(1 for call in self.calls if call[0] == method)

    def _store(self, resource: CertificateResource) -> CertificateResource:
        self._revision += 1
        stored = CertificateResource(
            namespace=resource.namespace,
            name=resource.name,
            spec=dict(resource.spec),
            metadata={**resource.metadata, "resourceVersion": str(self._revision)},
        )
        self.objects[(resource.namespace, resource.name)] = stored
        return stored


@pytest.fixture(autouse=True)
def _reset_structlog() -> Iterator[None]:
    """Undo any structlog.configure() a test triggered (main/asgi call it)."""
    yield
    structlog.reset_defaults()


@pytest.fixture()
def options() -> ProvisionerOptions:
    """Options for the default managed certificate."""
    return ProvisionerOptions(certificate_name="istiod-dynamic", certificate_namespace="istio-system")


@pytest.fixture()
def store() -> FakeCertificateStore:
    return FakeCertificateStore()
