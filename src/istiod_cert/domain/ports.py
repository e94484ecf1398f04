"""
Ports — Protocol-based interfaces for infrastructure adapters.

These define WHAT the provisioner needs from the outside world without
specifying HOW it's done. Following hexagonal architecture:

  Domain ← Ports (protocols) ← Adapters (implementations)

Each port is a Protocol (structural typing) so adapters satisfy
the contract simply by implementing the methods — no inheritance.
"""

from __future__ import annotations

import queue
from typing import Protocol, runtime_checkable

from railway.result import Result

from istiod_cert.domain.models import CertificateResource, IssuerRef


@runtime_checkable
class IssuerChangeNotifier(Protocol):
    """
    Port: source of the active issuer reference.

    `initial_issuer()` is read once when the provisioner is built.
    `subscribe()` returns the queue the notifier publishes every later
    issuer value to, in order; `None` means "no issuer configured".
    """

    def initial_issuer(self) -> IssuerRef | None: ...

    def subscribe(self) -> queue.Queue[IssuerRef | None]: ...


@runtime_checkable
class CertificateStore(Protocol):
    """
    Port: read and write cert-manager Certificate resources.

    A missing object is reported as Failure(ErrorCode.NOT_FOUND), which the
    reconciler treats as the signal to create rather than as an error.
    Any other failure is surfaced unchanged.
    """

    def get(self, namespace: str, name: str) -> Result[CertificateResource]: ...

    def create(self, resource: CertificateResource) -> Result[CertificateResource]: ...

    def update(self, resource: CertificateResource) -> Result[CertificateResource]:
        """Replace the whole object (PUT), never a partial patch."""
        ...
