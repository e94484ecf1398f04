"""
Leader election backed by a ConfigMap lock (kubernetes.leaderelection).

Requires the global Kubernetes client configuration to be loaded first:
the ConfigMap lock builds its own CoreV1Api from it.
"""

from __future__ import annotations

import socket
import uuid
from collections.abc import Callable

import structlog
from kubernetes.leaderelection import electionconfig, leaderelection
from kubernetes.leaderelection.resourcelock.configmaplock import ConfigMapLock

log = structlog.get_logger()


def default_identity() -> str:
    """Hostname plus a random suffix, unique per process."""
    return f"{socket.gethostname()}_{uuid.uuid4()}"


class ConfigMapLeaderElector:
    def __init__(
        self,
        namespace: str,
        lock_name: str,
        identity: str | None = None,
        lease_duration_seconds: int = 15,
        renew_deadline_seconds: int = 10,
        retry_period_seconds: int = 2,
    ) -> None:
        self._namespace = namespace
        self._lock_name = lock_name
        self._identity = identity or default_identity()
        self._lease_duration_seconds = lease_duration_seconds
        self._renew_deadline_seconds = renew_deadline_seconds
        self._retry_period_seconds = retry_period_seconds

    @property
    def identity(self) -> str:
        return self._identity

    def run(
        self,
        on_started_leading: Callable[[], None],
        on_stopped_leading: Callable[[], None],
    ) -> None:
        """Block until leadership is lost; acquire retries forever."""
        lock = ConfigMapLock(self._lock_name, self._namespace, self._identity)
        config = electionconfig.Config(
            lock,
            lease_duration=self._lease_duration_seconds,
            renew_deadline=self._renew_deadline_seconds,
            retry_period=self._retry_period_seconds,
            onstarted_leading=on_started_leading,
            onstopped_leading=on_stopped_leading,
        )
        log.info(
            "leader_election.campaigning",
            namespace=self._namespace,
            lock_name=self._lock_name,
            identity=self._identity,
        )
        leaderelection.LeaderElection(config).run()
