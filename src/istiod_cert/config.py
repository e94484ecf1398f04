"""
Configuration — typed, validated settings loaded from environment/.env.

Uses pydantic-settings to:
  - Load from environment variables (12-factor app)
  - Fall back to .env file
  - Validate types and constraints at startup

Only AppSettings is a BaseSettings instance. Sub-settings are plain BaseModel
classes populated via env_nested_delimiter="__", so CERTIFICATE__NAME maps to
certificate.name, ISSUER__KIND maps to issuer.kind, etc. List values are
given as JSON, e.g. CERTIFICATE__ISTIO_REVISIONS='["default","canary"]'.
"""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from istiod_cert.domain.durations import parse_duration
from istiod_cert.domain.models import (
    CERT_MANAGER_GROUP,
    DEFAULT_REVISION,
    IssuerRef,
    KeyAlgorithm,
    ProvisionerOptions,
)

# Resolve the .env file relative to the project root (two levels above this file),
# so settings load correctly regardless of the working directory at runtime.
_ENV_FILE = Path(__file__).parent.parent.parent / ".env"

_ECDSA_KEY_SIZES = (256, 384, 521)
_RSA_MIN_KEY_SIZE = 2048
_LEADER_ELECTION_JITTER = 1.2


def _to_timedelta(value: Any) -> Any:
    """Accept Go duration strings ("1h", "90m") or plain seconds."""
    if isinstance(value, str):
        stripped = value.strip()
        try:
            return timedelta(seconds=float(stripped))
        except ValueError:
            return parse_duration(stripped)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return timedelta(seconds=value)
    return value


class CertificateSettings(BaseModel):
    """
    The managed istiod Certificate.

    DNS names are derived from `istio_revisions` (istiod.<ns>.svc for
    "default", istiod<rev>.<ns>.svc otherwise) plus `additional_dns_names`.
    """

    name: str = Field(default="istiod-dynamic", min_length=1)
    namespace: str = Field(default="istio-system", min_length=1)
    istio_revisions: list[str] = Field(default_factory=lambda: [DEFAULT_REVISION])
    additional_dns_names: list[str] = Field(default_factory=list)
    duration: timedelta = Field(default=timedelta(hours=1))
    renew_before: timedelta = Field(default=timedelta(minutes=30))
    key_algorithm: KeyAlgorithm = Field(default=KeyAlgorithm.RSA)
    key_size: int = Field(default=2048, gt=0)

    @field_validator("duration", "renew_before", mode="before")
    @classmethod
    def parse_durations(cls, value: Any) -> Any:
        return _to_timedelta(value)

    @model_validator(mode="after")
    def check_lifetimes_and_key(self) -> CertificateSettings:
        if self.duration <= timedelta(0):
            raise ValueError("certificate duration must be positive")
        if not timedelta(0) < self.renew_before < self.duration:
            raise ValueError(
                f"renew_before ({self.renew_before}) must be positive and shorter "
                f"than duration ({self.duration})"
            )
        if self.key_algorithm is KeyAlgorithm.RSA and self.key_size < _RSA_MIN_KEY_SIZE:
            raise ValueError(f"RSA key size must be at least {_RSA_MIN_KEY_SIZE}, got {self.key_size}")
        if self.key_algorithm is KeyAlgorithm.ECDSA and self.key_size not in _ECDSA_KEY_SIZES:
            raise ValueError(f"ECDSA key size must be one of {_ECDSA_KEY_SIZES}, got {self.key_size}")
        return self


class IssuerSettings(BaseModel):
    """
    Issuer used to sign the certificate.

    `name` is the initial issuer; leave it empty to start without one. When
    `runtime_config_map_name` is set, the issuer is also read at runtime from
    that ConfigMap and follows its changes.
    """

    name: str | None = Field(default=None)
    kind: str = Field(default="Issuer", min_length=1)
    group: str = Field(default=CERT_MANAGER_GROUP, min_length=1)
    runtime_config_map_name: str | None = Field(default=None)
    runtime_config_map_namespace: str | None = Field(
        default=None,
        description="Defaults to the certificate namespace",
    )

    def initial_issuer(self) -> IssuerRef | None:
        if not self.name or not self.name.strip():
            return None
        return IssuerRef(name=self.name.strip(), kind=self.kind, group=self.group)


class LeaderElectionSettings(BaseModel):
    """ConfigMap-lock leader election; timings in seconds."""

    enabled: bool = Field(default=True)
    namespace: str | None = Field(default=None, description="Defaults to the certificate namespace")
    lock_name: str = Field(default="istiod-cert-provisioner-lock", min_length=1)
    lease_duration_seconds: int = Field(default=15, ge=1)
    renew_deadline_seconds: int = Field(default=10, ge=1)
    retry_period_seconds: int = Field(default=2, ge=1)

    @model_validator(mode="after")
    def check_timings(self) -> LeaderElectionSettings:
        if self.lease_duration_seconds <= self.renew_deadline_seconds:
            raise ValueError("lease_duration_seconds must be greater than renew_deadline_seconds")
        if self.renew_deadline_seconds <= _LEADER_ELECTION_JITTER * self.retry_period_seconds:
            raise ValueError(
                f"renew_deadline_seconds must be greater than "
                f"{_LEADER_ELECTION_JITTER} x retry_period_seconds"
            )
        return self


class ReconcileSettings(BaseModel):
    """Controller behaviour."""

    resync_interval_minutes: int = Field(default=600, ge=0, description="0 disables periodic resync")
    requeue_base_seconds: float = Field(default=1.0, gt=0)
    requeue_max_seconds: float = Field(default=300.0, gt=0)
    watch_certificate: bool = Field(default=True)

    @model_validator(mode="after")
    def check_requeue(self) -> ReconcileSettings:
        if self.requeue_max_seconds < self.requeue_base_seconds:
            raise ValueError("requeue_max_seconds must not be smaller than requeue_base_seconds")
        return self


class AppSettings(BaseSettings):
    """
    Root application settings — aggregates all sub-settings.

    Load order (highest priority first):
      1. Environment variables
      2. .env file
      3. Default values
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    certificate: CertificateSettings = Field(default_factory=lambda: CertificateSettings())
    issuer: IssuerSettings = Field(default_factory=lambda: IssuerSettings())
    leader_election: LeaderElectionSettings = Field(default_factory=lambda: LeaderElectionSettings())
    reconcile: ReconcileSettings = Field(default_factory=lambda: ReconcileSettings())

    trust_domain: str = Field(default="cluster.local", min_length=1)
    kubeconfig: str | None = Field(default=None)
    kube_request_timeout_seconds: int = Field(default=30, ge=1)
    log_level: str = Field(default="INFO")

    def provisioner_options(self) -> ProvisionerOptions:
        cert = self.certificate
        return ProvisionerOptions(
            certificate_name=cert.name,
            certificate_namespace=cert.namespace,
            istio_revisions=tuple(cert.istio_revisions),
            additional_dns_names=tuple(cert.additional_dns_names),
            duration=cert.duration,
            renew_before=cert.renew_before,
            key_algorithm=cert.key_algorithm,
            key_size=cert.key_size,
        )

    def issuer_config_map_namespace(self) -> str:
        return self.issuer.runtime_config_map_namespace or self.certificate.namespace

    def leader_election_namespace(self) -> str:
        return self.leader_election.namespace or self.certificate.namespace
