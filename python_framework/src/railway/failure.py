"""
Failure description — structured error information for the failure track.

ErrorCode + FailureDescription travel together on the failure track so a
caller can branch on the category (NOT_FOUND vs CONFLICT_ERROR, ...) without
inspecting exception types.
"""

from __future__ import annotations

import traceback
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum, unique
from typing import Optional


@unique
class ErrorCode(Enum):
    """
    Structured error codes for the failure track.

    Organized by HTTP status range, matching the statuses returned by the
    Kubernetes API server:
    - Client errors (4xx): VALIDATION, AUTHENTICATION, AUTHORIZATION, NOT_FOUND, CONFLICT, RATE_LIMIT
    - Server errors (5xx): TECHNICAL, CONFIGURATION, EXTERNAL_SERVICE, UNAVAILABLE, TIMEOUT, UNKNOWN
    """

    # --- Client-side errors (4xx HTTP range) ---
    VALIDATION_ERROR = "VALIDATION_ERROR"
    """Invalid object, rejected by schema or admission (→ 400 / 422)."""

    AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"
    """Invalid credentials, expired tokens (→ 401)."""

    AUTHORIZATION_ERROR = "AUTHORIZATION_ERROR"
    """Insufficient permissions (→ 403)."""

    NOT_FOUND = "NOT_FOUND"
    """Resource doesn't exist (→ 404)."""

    CONFLICT_ERROR = "CONFLICT_ERROR"
    """Already exists, or stale resourceVersion on update (→ 409)."""

    RATE_LIMIT_ERROR = "RATE_LIMIT_ERROR"
    """Request limits exceeded (→ 429)."""

    # --- Server-side errors (5xx HTTP range) ---
    TECHNICAL_ERROR = "TECHNICAL_ERROR"
    """Infrastructure issues (→ 500)."""

    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    """System misconfiguration (→ 500)."""

    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    """External API call failures (→ 502)."""

    SERVICE_UNAVAILABLE_ERROR = "SERVICE_UNAVAILABLE_ERROR"
    """Service maintenance or overload (→ 503)."""

    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    """Operation exceeded time limit (→ 504)."""

    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    """Unexpected/unclassified failures (→ 500)."""


@dataclass(frozen=True, slots=True)
class FailureDescription:
    """
    Immutable failure descriptor carrying error code, message, optional exception, and timestamp.

    >>> desc = FailureDescription(ErrorCode.NOT_FOUND, "certificate missing")
    >>> desc.code
    <ErrorCode.NOT_FOUND: 'NOT_FOUND'>
    """

    code: ErrorCode
    message: str
    exception: Optional[BaseException] = field(default=None, repr=False)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def full_stack_trace(self) -> str:
        """Message followed by the formatted exception chain, if any."""
        if self.exception is None:
            return self.message
        tb = "".join(traceback.format_exception(type(self.exception), self.exception, self.exception.__traceback__))
        return f"{self.message}\n{tb}"

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"
