"""
Kubernetes client construction.

Loads the in-cluster service account configuration, or a kubeconfig file
when one is given or when not running inside a cluster. The configuration
is installed as the client default, which the leader election lock relies on.
"""

from __future__ import annotations

import structlog
from kubernetes import client, config
from railway import ErrorCode
from railway.result import Result

log = structlog.get_logger()


def _load(kubeconfig: str | None) -> client.ApiClient:
    if kubeconfig:
        config.load_kube_config(config_file=kubeconfig)
        log.info("kube.config_loaded", source="kubeconfig", path=kubeconfig)
        return client.ApiClient()
    try:
        config.load_incluster_config()
        log.info("kube.config_loaded", source="in-cluster")
    except config.ConfigException:
        config.load_kube_config()
        log.info("kube.config_loaded", source="kubeconfig", path="default")
    return client.ApiClient()


def create_api_client(kubeconfig: str | None = None) -> Result[client.ApiClient]:
    """Build the shared ApiClient; CONFIGURATION_ERROR if no config can be loaded."""
    return Result.from_computation(
        lambda: _load(kubeconfig),
        ErrorCode.CONFIGURATION_ERROR,
        "Failed to load Kubernetes client configuration",
    )
