"""
Issuer notifiers — where the active issuer reference comes from.

Adapter layer — implements the IssuerChangeNotifier port twice:

  StaticIssuerNotifier     issuer fixed by configuration, never changes
  ConfigMapIssuerNotifier  issuer read at runtime from a ConfigMap:

      data:
        issuer-name: my-issuer          (required)
        issuer-kind: ClusterIssuer      (default "Issuer")
        issuer-group: cert-manager.io   (default "cert-manager.io")

The ConfigMap notifier publishes a parsed IssuerRef whenever the ConfigMap
is added or modified, and None when it is deleted or its data is invalid.
Repeated identical values are published only once. At most `max_pending`
notifications are held; when full, the oldest is dropped.
"""

from __future__ import annotations

import queue
import threading
from typing import Any

import structlog
from kubernetes.client import CoreV1Api

from istiod_cert.domain.models import CERT_MANAGER_GROUP, IssuerRef
from istiod_cert.runtime.watch import ResourceWatch

log = structlog.get_logger()

ISSUER_NAME_KEY = "issuer-name"
ISSUER_KIND_KEY = "issuer-kind"
ISSUER_GROUP_KEY = "issuer-group"

_UNSET = object()


def issuer_from_config_map_data(data: dict[str, str] | None) -> IssuerRef | None:
    """Parse runtime issuance data; None if the issuer name is missing or blank."""
    data = data or {}
    name = (data.get(ISSUER_NAME_KEY) or "").strip()
    if not name:
        return None
    kind = (data.get(ISSUER_KIND_KEY) or "").strip() or "Issuer"
    group = (data.get(ISSUER_GROUP_KEY) or "").strip() or CERT_MANAGER_GROUP
    return IssuerRef(name=name, kind=kind, group=group)


class StaticIssuerNotifier:
    """Implements IssuerChangeNotifier for a fixed, configured issuer."""

    def __init__(self, issuer_ref: IssuerRef | None) -> None:
        self._issuer_ref = issuer_ref
        self._updates: queue.Queue[IssuerRef | None] = queue.Queue()

    def initial_issuer(self) -> IssuerRef | None:
        return self._issuer_ref

    def subscribe(self) -> queue.Queue[IssuerRef | None]:
        return self._updates


class ConfigMapIssuerNotifier:
    """
    Implements IssuerChangeNotifier by watching a runtime issuance ConfigMap.

    Also a manager runnable: `start` runs the watch. It runs on every
    replica, not only the leader, so a newly elected leader starts with
    the latest issuer already queued.
    """

    def __init__(
        self,
        core_api: CoreV1Api,
        namespace: str,
        config_map_name: str,
        initial_issuer: IssuerRef | None = None,
        max_pending: int = 16,
    ) -> None:
        self._namespace = namespace
        self._config_map_name = config_map_name
        self._initial_issuer = initial_issuer
        self._updates: queue.Queue[IssuerRef | None] = queue.Queue(maxsize=max_pending)
        self._last_published: Any = _UNSET
        self._watch = ResourceWatch(
            f"configmap/{namespace}/{config_map_name}",
            core_api.list_namespaced_config_map,
            self.handle_event,
            namespace,
            field_selector=f"metadata.name={config_map_name}",
        )

    def initial_issuer(self) -> IssuerRef | None:
        return self._initial_issuer

    def subscribe(self) -> queue.Queue[IssuerRef | None]:
        return self._updates

    def needs_leader_election(self) -> bool:
        return False

    def start(self, stop: threading.Event) -> None:
        log.info(
            "issuer_notifier.watching",
            namespace=self._namespace,
            config_map=self._config_map_name,
        )
        self._watch.run(stop)

    def handle_event(self, event_type: str, config_map: Any) -> None:
        if event_type == "DELETED":
            log.info("issuer_notifier.config_map_deleted", config_map=self._config_map_name)
            self._publish(None)
            return

        if event_type not in ("ADDED", "MODIFIED"):
            return

        issuer_ref = issuer_from_config_map_data(getattr(config_map, "data", None))
        if issuer_ref is None:
            log.warning(
                "issuer_notifier.invalid_config_map",
                config_map=self._config_map_name,
                reason=f"missing {ISSUER_NAME_KEY}",
            )
        self._publish(issuer_ref)

    def _publish(self, issuer_ref: IssuerRef | None) -> None:
        if issuer_ref == self._last_published:
            return
        self._last_published = issuer_ref
        log.info(
            "issuer_notifier.issuer_published",
            issuer_name=issuer_ref.name if issuer_ref else None,
            issuer_kind=issuer_ref.kind if issuer_ref else None,
            issuer_group=issuer_ref.group if issuer_ref else None,
        )
        self._put_latest(issuer_ref)

    def _put_latest(self, issuer_ref: IssuerRef | None) -> None:
        # Nothing drains the queue until this replica leads; keep the newest values.
        while True:
            try:
                self._updates.put_nowait(issuer_ref)
                return
            except queue.Full:
                try:
                    dropped = self._updates.get_nowait()
                except queue.Empty:
                    continue
                log.warning(
                    "issuer_notifier.stale_update_dropped",
                    issuer_name=dropped.name if dropped else None,
                )
