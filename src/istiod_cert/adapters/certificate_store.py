"""
Kubernetes adapter — cert-manager Certificate reads and writes.

Adapter layer — implements the CertificateStore port on top of the
kubernetes client's CustomObjectsApi (Certificates are a CRD).

Retry/backoff via tenacity on transient transport errors (connection reset,
timeouts surfaced by urllib3). API errors are not retried here: they are
classified by HTTP status into ErrorCodes and returned as Result failures,
and the controller's requeue policy decides what happens next.
"""

from __future__ import annotations

from typing import Any

import structlog
import urllib3
from kubernetes.client import ApiException, CustomObjectsApi
from railway import ErrorCode, FailureDescription
from railway.result import Result
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from istiod_cert.domain.models import (
    CERT_MANAGER_GROUP,
    CERT_MANAGER_VERSION,
    CERTIFICATE_PLURAL,
    CertificateResource,
)

log = structlog.get_logger()

_STATUS_CODES = {
    400: ErrorCode.VALIDATION_ERROR,
    401: ErrorCode.AUTHENTICATION_ERROR,
    403: ErrorCode.AUTHORIZATION_ERROR,
    404: ErrorCode.NOT_FOUND,
    409: ErrorCode.CONFLICT_ERROR,
    422: ErrorCode.VALIDATION_ERROR,
    429: ErrorCode.RATE_LIMIT_ERROR,
    503: ErrorCode.SERVICE_UNAVAILABLE_ERROR,
    504: ErrorCode.TIMEOUT_ERROR,
}

_transient_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=0.1, max=10),
    retry=retry_if_exception_type(urllib3.exceptions.HTTPError),
    reraise=True,
)


def classify_api_failure(err: FailureDescription) -> FailureDescription:
    """Refine a generic failure using the HTTP status of an ApiException."""
    exc = err.exception
    if not isinstance(exc, ApiException):
        return err
    code = _STATUS_CODES.get(exc.status or 0, ErrorCode.EXTERNAL_SERVICE_ERROR)
    return FailureDescription(code, f"{err.message}: {exc.status} {exc.reason}", exc)


class KubernetesCertificateStore:
    """
    Read, create and replace cert-manager Certificates.

    Implements the CertificateStore port.
    All exceptions are caught at this adapter boundary via Result.from_computation().
    """

    def __init__(self, custom_objects: CustomObjectsApi, request_timeout: int = 30) -> None:
        self._api = custom_objects
        self._request_timeout = request_timeout

    def get(self, namespace: str, name: str) -> Result[CertificateResource]:
        return Result.from_computation(
            lambda: self._do_get(namespace, name),
            ErrorCode.EXTERNAL_SERVICE_ERROR,
            f"Failed to get certificate {namespace}/{name}",
        ).map_failure(classify_api_failure)

    def create(self, resource: CertificateResource) -> Result[CertificateResource]:
        return Result.from_computation(
            lambda: self._do_create(resource),
            ErrorCode.EXTERNAL_SERVICE_ERROR,
            f"Failed to create certificate {resource.namespace}/{resource.name}",
        ).map_failure(classify_api_failure)

    def update(self, resource: CertificateResource) -> Result[CertificateResource]:
        return Result.from_computation(
            lambda: self._do_replace(resource),
            ErrorCode.EXTERNAL_SERVICE_ERROR,
            f"Failed to update certificate {resource.namespace}/{resource.name}",
        ).map_failure(classify_api_failure)

    @_transient_retry
    def _do_get(self, namespace: str, name: str) -> CertificateResource:
        obj: dict[str, Any] = self._api.get_namespaced_custom_object(
            CERT_MANAGER_GROUP,
            CERT_MANAGER_VERSION,
            namespace,
            CERTIFICATE_PLURAL,
            name,
            _request_timeout=self._request_timeout,
        )
        return CertificateResource.from_k8s(obj)

    @_transient_retry
    def _do_create(self, resource: CertificateResource) -> CertificateResource:
        obj: dict[str, Any] = self._api.create_namespaced_custom_object(
            CERT_MANAGER_GROUP,
            CERT_MANAGER_VERSION,
            resource.namespace,
            CERTIFICATE_PLURAL,
            resource.to_k8s(),
            _request_timeout=self._request_timeout,
        )
        log.info("certificate.created", namespace=resource.namespace, name=resource.name)
        return CertificateResource.from_k8s(obj)

    @_transient_retry
    def _do_replace(self, resource: CertificateResource) -> CertificateResource:
        obj: dict[str, Any] = self._api.replace_namespaced_custom_object(
            CERT_MANAGER_GROUP,
            CERT_MANAGER_VERSION,
            resource.namespace,
            CERTIFICATE_PLURAL,
            resource.name,
            resource.to_k8s(),
            _request_timeout=self._request_timeout,
        )
        log.info(
            "certificate.updated",
            namespace=resource.namespace,
            name=resource.name,
            resource_version=obj.get("metadata", {}).get("resourceVersion"),
        )
        return CertificateResource.from_k8s(obj)
