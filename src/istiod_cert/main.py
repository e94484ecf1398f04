"""
Application entry point — wires dependencies and starts the manager.

Composition root: creates the Kubernetes clients and concrete adapters,
injects them into the provisioner, and registers everything with the
manager.

This is the ONLY place where concrete classes are instantiated.
Everything else depends on Protocol interfaces.

Responsibilities:
  1. Configure structlog for structured logging
  2. Load and validate configuration from environment
  3. Build the Kubernetes API client (fatal on failure)
  4. Create the issuer notifier and certificate store
  5. Wire provisioner, controller sources and leader election into a Manager
  6. Run the manager until SIGINT/SIGTERM
"""

from __future__ import annotations

import logging
import signal
import sys
import threading

import structlog
from kubernetes import client

from istiod_cert import __version__
from istiod_cert.adapters.certificate_store import KubernetesCertificateStore
from istiod_cert.adapters.issuer_notifier import ConfigMapIssuerNotifier, StaticIssuerNotifier
from istiod_cert.adapters.kube import create_api_client
from istiod_cert.adapters.leader_election import ConfigMapLeaderElector
from istiod_cert.config import AppSettings
from istiod_cert.provisioner import DynamicIstiodCertProvisioner
from istiod_cert.runtime.controller import Controller, Source
from istiod_cert.runtime.manager import Manager
from istiod_cert.runtime.sources import CertificateWatchSource
from istiod_cert.scheduler import PeriodicResyncSource


def configure_structlog(log_level: str = "INFO") -> None:
    """
    Configure structlog for structured logging.

    Colored, human-readable console output with ISO timestamps, filtered
    at `log_level`.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


_Adapters = tuple[
    StaticIssuerNotifier | ConfigMapIssuerNotifier,
    KubernetesCertificateStore,
]


def _create_adapters(settings: AppSettings, api_client: client.ApiClient) -> _Adapters:
    """
    Instantiate the issuer notifier and the certificate store.

    The notifier follows the runtime issuance ConfigMap when one is
    configured, otherwise it serves the statically configured issuer.
    """
    initial_issuer = settings.issuer.initial_issuer()
    notifier: StaticIssuerNotifier | ConfigMapIssuerNotifier
    if settings.issuer.runtime_config_map_name:
        notifier = ConfigMapIssuerNotifier(
            core_api=client.CoreV1Api(api_client),
            namespace=settings.issuer_config_map_namespace(),
            config_map_name=settings.issuer.runtime_config_map_name,
            initial_issuer=initial_issuer,
        )
    else:
        notifier = StaticIssuerNotifier(initial_issuer)

    store = KubernetesCertificateStore(
        custom_objects=client.CustomObjectsApi(api_client),
        request_timeout=settings.kube_request_timeout_seconds,
    )
    return notifier, store


def build_manager(settings: AppSettings, api_client: client.ApiClient) -> tuple[Manager, Controller]:
    """
    Wire the provisioner into a Manager.

    Returns the manager and the reconcile controller; the controller is
    exposed so callers can enqueue the managed certificate by hand.
    """
    notifier, store = _create_adapters(settings, api_client)
    options = settings.provisioner_options()
    provisioner = DynamicIstiodCertProvisioner(options, notifier, store, settings.trust_domain)

    elector = None
    if settings.leader_election.enabled:
        elector = ConfigMapLeaderElector(
            namespace=settings.leader_election_namespace(),
            lock_name=settings.leader_election.lock_name,
            lease_duration_seconds=settings.leader_election.lease_duration_seconds,
            renew_deadline_seconds=settings.leader_election.renew_deadline_seconds,
            retry_period_seconds=settings.leader_election.retry_period_seconds,
        )
    manager = Manager(leader_elector=elector)

    if isinstance(notifier, ConfigMapIssuerNotifier):
        manager.add(notifier)

    sources: list[Source] = []
    if settings.reconcile.watch_certificate:
        sources.append(
            CertificateWatchSource(
                client.CustomObjectsApi(api_client),
                namespace=options.certificate_namespace,
                name=options.certificate_name,
            )
        )
    if settings.reconcile.resync_interval_minutes > 0:
        sources.append(PeriodicResyncSource(options.target, settings.reconcile.resync_interval_minutes))

    controller = provisioner.add_controllers_to_manager(
        manager,
        extra_sources=sources,
        requeue_base_seconds=settings.reconcile.requeue_base_seconds,
        requeue_max_seconds=settings.reconcile.requeue_max_seconds,
    )
    return manager, controller


def _register_shutdown_signals(stop: threading.Event) -> None:
    """Register SIGINT and SIGTERM handlers that set the stop event."""
    log = structlog.get_logger()

    def _shutdown(signum: int, frame: object) -> None:
        log.info("app.shutdown_requested", signal=signal.Signals(signum).name)
        stop.set()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)


def main() -> None:
    """Wire dependencies and run the manager until a shutdown signal."""
    try:
        settings = AppSettings()
    except Exception as e:
        print(f"FATAL: Configuration error — {e}", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    configure_structlog(settings.log_level)
    log = structlog.get_logger()

    log.info(
        "app.starting",
        version=__version__,
        log_level=settings.log_level,
        cert_name=settings.certificate.name,
        cert_namespace=settings.certificate.namespace,
        leader_election=settings.leader_election.enabled,
    )

    api_client = create_api_client(settings.kubeconfig)
    if api_client.is_failure():
        log.error("app.fatal_error", failure=str(api_client.error()))
        sys.exit(1)

    manager, _ = build_manager(settings, api_client.value())

    stop = threading.Event()
    _register_shutdown_signals(stop)

    try:
        manager.start(stop)
    except Exception as e:
        log.error("app.fatal_error", error=str(e))
        sys.exit(1)

    log.info("app.shutdown", reason="stop requested")


if __name__ == "__main__":
    main()
