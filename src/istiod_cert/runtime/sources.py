"""
Controller sources that feed reconcile triggers into a Controller.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any

import structlog
from kubernetes.client import CustomObjectsApi

from istiod_cert.domain.models import (
    CERT_MANAGER_GROUP,
    CERT_MANAGER_VERSION,
    CERTIFICATE_PLURAL,
    ReconcileTrigger,
)
from istiod_cert.runtime.channel import HandoffChannel
from istiod_cert.runtime.controller import Enqueue
from istiod_cert.runtime.watch import ResourceWatch, object_metadata

log = structlog.get_logger()


class ChannelSource:
    """Receive triggers from a HandoffChannel, mapping each before enqueueing."""

    def __init__(
        self,
        channel: HandoffChannel[ReconcileTrigger],
        map_fn: Callable[[ReconcileTrigger], ReconcileTrigger] = lambda trigger: trigger,
    ) -> None:
        self._channel = channel
        self._map_fn = map_fn

    def start(self, stop: threading.Event, enqueue: Enqueue) -> None:
        while True:
            trigger = self._channel.receive(stop)
            if trigger is None:
                return
            enqueue(self._map_fn(trigger))


class CertificateWatchSource:
    """
    Watch cert-manager Certificates and enqueue the ones that change.

    Any edit or deletion of the managed Certificate made outside this
    service is reconciled back to the desired spec.
    """

    def __init__(self, custom_objects: CustomObjectsApi, namespace: str, name: str | None = None) -> None:
        selector = {"field_selector": f"metadata.name={name}"} if name else {}
        self._watch = ResourceWatch(
            f"certificates/{namespace}",
            custom_objects.list_namespaced_custom_object,
            self._on_event,
            CERT_MANAGER_GROUP,
            CERT_MANAGER_VERSION,
            namespace,
            CERTIFICATE_PLURAL,
            **selector,
        )
        self._enqueue: Enqueue | None = None

    def start(self, stop: threading.Event, enqueue: Enqueue) -> None:
        self._enqueue = enqueue
        self._watch.run(stop)

    def _on_event(self, event_type: str, obj: Any) -> None:
        namespace, name, _ = object_metadata(obj)
        if not namespace or not name or self._enqueue is None:
            return
        log.debug("certificate_watch.event", event_type=event_type, namespace=namespace, name=name)
        self._enqueue(ReconcileTrigger(namespace=namespace, name=name))
