"""
Domain models — immutable value objects for the managed istiod certificate.

These are pure value objects with no I/O. They carry the issuer reference,
the provisioner's static options, the desired cert-manager Certificate spec
and the stored resource as returned by the API server.

All models are frozen dataclasses (immutable) following functional principles.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import timedelta
from enum import Enum
from typing import Any

from istiod_cert.domain.durations import format_duration

CERT_MANAGER_GROUP = "cert-manager.io"
CERT_MANAGER_VERSION = "v1"
CERTIFICATE_KIND = "Certificate"
CERTIFICATE_PLURAL = "certificates"

DEFAULT_REVISION = "default"
ISTIOD_SECRET_NAME = "istiod-tls"
REVISION_HISTORY_LIMIT = 1


class KeyAlgorithm(str, Enum):
    """Private key algorithms accepted by cert-manager."""

    RSA = "RSA"
    ECDSA = "ECDSA"


class RotationPolicy(str, Enum):
    ALWAYS = "Always"
    NEVER = "Never"


class ReconcileOutcome(str, Enum):
    """What a single reconcile did to the managed Certificate."""

    SKIPPED_NO_ISSUER = "skipped_no_issuer"
    CREATED = "created"
    UPDATED = "updated"


@dataclass(frozen=True, slots=True)
class IssuerRef:
    """
    Reference to the cert-manager issuer that signs the certificate.

    Maps to `spec.issuerRef` of a cert-manager Certificate.
    """

    name: str
    kind: str = "Issuer"
    group: str = CERT_MANAGER_GROUP

    def to_k8s(self) -> dict[str, str]:
        return {"name": self.name, "kind": self.kind, "group": self.group}


@dataclass(frozen=True, slots=True)
class ReconcileTrigger:
    """
    Identity of the Certificate to converge.

    Carries no payload: the reconciler always re-reads the current issuer
    and options instead of trusting anything captured with the trigger.
    """

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass(frozen=True, slots=True)
class ProvisionerOptions:
    """
    Static configuration of the managed certificate, captured at startup.

    Read-only after construction, so it is shared between threads without
    synchronisation.
    """

    certificate_name: str
    certificate_namespace: str
    istio_revisions: tuple[str, ...] = (DEFAULT_REVISION,)
    additional_dns_names: tuple[str, ...] = ()
    duration: timedelta = timedelta(hours=1)
    renew_before: timedelta = timedelta(minutes=30)
    key_algorithm: KeyAlgorithm = KeyAlgorithm.RSA
    key_size: int = 2048

    @property
    def target(self) -> ReconcileTrigger:
        """The one Certificate identity this provisioner owns."""
        return ReconcileTrigger(namespace=self.certificate_namespace, name=self.certificate_name)


@dataclass(frozen=True, slots=True)
class PrivateKeyPolicy:
    rotation_policy: RotationPolicy
    algorithm: KeyAlgorithm
    size: int

    def to_k8s(self) -> dict[str, Any]:
        return {
            "rotationPolicy": self.rotation_policy.value,
            "algorithm": self.algorithm.value,
            "size": self.size,
        }


@dataclass(frozen=True, slots=True)
class CertificateSpec:
    """
    The desired state of the managed Certificate.

    Produced fresh on every reconcile and never persisted by this service.
    `to_k8s()` renders the cert-manager wire shape; every field is always
    emitted so a full-spec update is idempotent.
    """

    common_name: str
    dns_names: tuple[str, ...]
    uris: tuple[str, ...]
    secret_name: str
    duration: timedelta
    renew_before: timedelta
    private_key: PrivateKeyPolicy
    revision_history_limit: int
    issuer_ref: IssuerRef

    def to_k8s(self) -> dict[str, Any]:
        return {
            "commonName": self.common_name,
            "dnsNames": list(self.dns_names),
            "uris": list(self.uris),
            "secretName": self.secret_name,
            "duration": format_duration(self.duration),
            "renewBefore": format_duration(self.renew_before),
            "privateKey": self.private_key.to_k8s(),
            "revisionHistoryLimit": self.revision_history_limit,
            "issuerRef": self.issuer_ref.to_k8s(),
        }


@dataclass(frozen=True, slots=True)
class CertificateResource:
    """
    A cert-manager Certificate as stored by the API server.

    `spec` and `metadata` are kept as raw mappings so that fields this
    service does not manage (labels, annotations, resourceVersion) survive
    a read-modify-write cycle untouched.
    """

    namespace: str
    name: str
    spec: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def resource_version(self) -> str | None:
        return self.metadata.get("resourceVersion")

    @classmethod
    def from_k8s(cls, obj: dict[str, Any]) -> CertificateResource:
        metadata = dict(obj.get("metadata") or {})
        return cls(
            namespace=metadata.get("namespace", ""),
            name=metadata.get("name", ""),
            spec=dict(obj.get("spec") or {}),
            metadata=metadata,
        )

    def with_spec(self, spec: CertificateSpec) -> CertificateResource:
        """Return a copy whose spec is replaced wholesale by the desired spec."""
        return replace(self, spec=spec.to_k8s())

    def to_k8s(self) -> dict[str, Any]:
        return {
            "apiVersion": f"{CERT_MANAGER_GROUP}/{CERT_MANAGER_VERSION}",
            "kind": CERTIFICATE_KIND,
            "metadata": {**self.metadata, "name": self.name, "namespace": self.namespace},
            "spec": self.spec,
        }
