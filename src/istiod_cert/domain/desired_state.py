"""
Desired state — pure computation of the istiod Certificate spec.

Domain layer — no side effects, no I/O. Given the active issuer, the static
options and the target namespace, always produces the same spec.
"""

from __future__ import annotations

from collections.abc import Sequence

from istiod_cert.domain.models import (
    DEFAULT_REVISION,
    ISTIOD_SECRET_NAME,
    REVISION_HISTORY_LIMIT,
    CertificateSpec,
    IssuerRef,
    PrivateKeyPolicy,
    ProvisionerOptions,
    RotationPolicy,
)

SPIFFE_URI_TEMPLATE = "spiffe://{trust_domain}/ns/{namespace}/sa/istiod-service-account"


def compute_dns_names(
    namespace: str,
    istio_revisions: Sequence[str],
    additional_dns_names: Sequence[str] = (),
) -> tuple[str, tuple[str, ...]]:
    """
    Map Istio revisions to istiod DNS names and pick the common name.

    The "default" revision is special-cased to `istiod.<namespace>.svc`;
    any other revision `r` becomes `istiod<r>.<namespace>.svc`. Order and
    duplicates are preserved, and additional names are appended verbatim.

    An empty revision list is treated as just the default revision.

    The common name is always the default revision's name, whether or not
    "default" is among the revisions. This matches the static istiod
    certificate shipped by the Helm chart. Issuers that require the common
    name to appear among the DNS names need "default" listed as a revision.
    """
    revisions = list(istio_revisions) or [DEFAULT_REVISION]

    default_san = f"istiod.{namespace}.svc"

    dns_names = [
        default_san if revision == DEFAULT_REVISION else f"istiod{revision}.{namespace}.svc"
        for revision in revisions
    ]
    dns_names.extend(additional_dns_names)

    return default_san, tuple(dns_names)


def spiffe_uri(trust_domain: str, namespace: str) -> str:
    return SPIFFE_URI_TEMPLATE.format(trust_domain=trust_domain, namespace=namespace)


def build_desired_spec(
    issuer_ref: IssuerRef,
    options: ProvisionerOptions,
    namespace: str,
    trust_domain: str,
) -> CertificateSpec:
    """
    Assemble the full desired Certificate spec.

    Key rotation is always "Always", the secret name is fixed to
    `istiod-tls` and only one CertificateRequest revision is kept.
    """
    common_name, dns_names = compute_dns_names(
        namespace, options.istio_revisions, options.additional_dns_names
    )
    return CertificateSpec(
        common_name=common_name,
        dns_names=dns_names,
        uris=(spiffe_uri(trust_domain, namespace),),
        secret_name=ISTIOD_SECRET_NAME,
        duration=options.duration,
        renew_before=options.renew_before,
        private_key=PrivateKeyPolicy(
            rotation_policy=RotationPolicy.ALWAYS,
            algorithm=options.key_algorithm,
            size=options.key_size,
        ),
        revision_history_limit=REVISION_HISTORY_LIMIT,
        issuer_ref=issuer_ref,
    )
