"""
Issuer state guard — the single piece of mutable state shared between the
issuer-change bridge and concurrently running reconciles.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass

from istiod_cert.domain.models import IssuerRef


@dataclass(frozen=True, slots=True)
class IssuerDecision:
    """Outcome of applying one issuer notification."""

    issuer_ref: IssuerRef | None
    changed: bool


class IssuerStateGuard:
    """
    Holds the active issuer reference behind a lock.

    If an initial issuer was supplied it is never permanently cleared: a
    notification of "no issuer" restores the initial issuer and is not
    reported as a change.
    """

    def __init__(self, initial_issuer: IssuerRef | None) -> None:
        self._initial_issuer = initial_issuer
        self._issuer_ref = initial_issuer
        self._lock = threading.Lock()

    @property
    def initial_issuer(self) -> IssuerRef | None:
        return self._initial_issuer

    def decide(self, update: IssuerRef | None) -> IssuerDecision:
        with self._lock:
            if update is None and self._initial_issuer is not None:
                # don't blank out the issuer if there's an initial ref; use that instead
                self._issuer_ref = self._initial_issuer
                return IssuerDecision(issuer_ref=self._initial_issuer, changed=False)

            self._issuer_ref = update
            return IssuerDecision(issuer_ref=update, changed=True)

    def current(self) -> IssuerRef | None:
        with self._lock:
            return self._issuer_ref
