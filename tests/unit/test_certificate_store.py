"""
Unit tests for KubernetesCertificateStore — CustomObjectsApi is mocked.

Verifies API call arguments, status → ErrorCode classification and the
transient-error retry.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import urllib3
from kubernetes.client import ApiException
from railway import ErrorCode, ResultAssertions

from istiod_cert.adapters.certificate_store import KubernetesCertificateStore
from istiod_cert.domain.models import CertificateResource

STORED = {
    "apiVersion": "cert-manager.io/v1",
    "kind": "Certificate",
    "metadata": {"name": "istiod-dynamic", "namespace": "istio-system", "resourceVersion": "9"},
    "spec": {"secretName": "istiod-tls"},
}


@pytest.fixture()
def api() -> MagicMock:
    return MagicMock()


@pytest.fixture()
def store(api: MagicMock) -> KubernetesCertificateStore:
    return KubernetesCertificateStore(api, request_timeout=7)


class TestGet:
    def test_returns_resource(self, api: MagicMock, store: KubernetesCertificateStore) -> None:
        """
        GIVEN the API returns a Certificate
        WHEN get is called
        THEN it is parsed and the call is scoped to cert-manager.io/v1 certificates.
        """
        api.get_namespaced_custom_object.return_value = STORED

        resource = ResultAssertions.assert_success(store.get("istio-system", "istiod-dynamic"))

        assert resource.resource_version == "9"
        api.get_namespaced_custom_object.assert_called_once_with(
            "cert-manager.io", "v1", "istio-system", "certificates", "istiod-dynamic",
            _request_timeout=7,
        )

    @pytest.mark.parametrize(
        ("status", "code"),
        [
            (404, ErrorCode.NOT_FOUND),
            (403, ErrorCode.AUTHORIZATION_ERROR),
            (401, ErrorCode.AUTHENTICATION_ERROR),
            (409, ErrorCode.CONFLICT_ERROR),
            (429, ErrorCode.RATE_LIMIT_ERROR),
            (500, ErrorCode.EXTERNAL_SERVICE_ERROR),
        ],
    )
    def test_classifies_api_errors(
        self, api: MagicMock, store: KubernetesCertificateStore, status: int, code: ErrorCode
    ) -> None:
        api.get_namespaced_custom_object.side_effect = ApiException(status=status, reason="x")

        ResultAssertions.assert_failure(store.get("istio-system", "istiod-dynamic"), code)

    def test_api_errors_are_not_retried(self, api: MagicMock, store: KubernetesCertificateStore) -> None:
        api.get_namespaced_custom_object.side_effect = ApiException(status=404, reason="Not Found")

        store.get("istio-system", "istiod-dynamic")

        assert api.get_namespaced_custom_object.call_count == 1

    def test_transient_error_is_retried(self, api: MagicMock, store: KubernetesCertificateStore) -> None:
        """
        GIVEN the first call fails with a urllib3 transport error
        WHEN get is called
        THEN it is retried and the second response is returned.
        """
        api.get_namespaced_custom_object.side_effect = [
            urllib3.exceptions.ProtocolError("connection reset"),
            STORED,
        ]

        ResultAssertions.assert_success(store.get("istio-system", "istiod-dynamic"))

        assert api.get_namespaced_custom_object.call_count == 2


class TestCreate:
    def test_posts_full_body(self, api: MagicMock, store: KubernetesCertificateStore) -> None:
        api.create_namespaced_custom_object.return_value = STORED
        resource = CertificateResource(namespace="istio-system", name="istiod-dynamic", spec={"a": 1})

        ResultAssertions.assert_success(store.create(resource))

        args = api.create_namespaced_custom_object.call_args
        assert args.args[:4] == ("cert-manager.io", "v1", "istio-system", "certificates")
        assert args.args[4]["metadata"]["name"] == "istiod-dynamic"
        assert args.args[4]["spec"] == {"a": 1}

    def test_conflict(self, api: MagicMock, store: KubernetesCertificateStore) -> None:
        api.create_namespaced_custom_object.side_effect = ApiException(status=409, reason="Conflict")
        resource = CertificateResource(namespace="istio-system", name="istiod-dynamic")

        ResultAssertions.assert_failure(store.create(resource), ErrorCode.CONFLICT_ERROR)


class TestUpdate:
    def test_replaces_with_resource_version(self, api: MagicMock, store: KubernetesCertificateStore) -> None:
        """
        GIVEN a resource read earlier with resourceVersion 9
        WHEN update is called
        THEN replace is called with the full body carrying that resourceVersion.
        """
        api.replace_namespaced_custom_object.return_value = STORED
        resource = CertificateResource.from_k8s(STORED)

        ResultAssertions.assert_success(store.update(resource))

        args = api.replace_namespaced_custom_object.call_args
        assert args.args[4] == "istiod-dynamic"
        assert args.args[5]["metadata"]["resourceVersion"] == "9"
        assert args.kwargs == {"_request_timeout": 7}
