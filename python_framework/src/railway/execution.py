"""
Execution contexts — separate WHAT (pure logic) from HOW (side effects).

A pipeline describes what should happen and returns Result[T]; an
ExecutionContext decides how it runs (timing, logging). The controller
wraps every reconcile in a LoggingExecutionContext.

    ctx = LoggingExecutionContext(operation="IstiodCertReconcile")
    result = ctx.execute(lambda: reconciler.reconcile(trigger))
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Protocol, TypeVar, runtime_checkable

import structlog

from railway.failure import ErrorCode, FailureDescription
from railway.result import Failure, Result

T = TypeVar("T")
log = structlog.get_logger("railway.execution")


@runtime_checkable
class ExecutionContext(Protocol):
    """
    Protocol for execution contexts.

    Any class implementing execute(computation) satisfies this protocol
    via structural typing — no explicit inheritance needed.
    """

    def execute(self, computation: Callable[[], Result[T]]) -> Result[T]:
        """Execute a Result-returning computation within this context."""
        ...


class NoOpExecutionContext:
    """Passthrough execution context — runs computation without any wrapper."""

    def execute(self, computation: Callable[[], Result[T]]) -> Result[T]:
        return computation()


class LoggingExecutionContext:
    """
    Execution context that logs entry, exit, duration, and result state.

    Wraps another context (decorator pattern) to add observability.
    An exception escaping the computation is converted into a
    TECHNICAL_ERROR failure so a worker loop never dies on it.
    """

    def __init__(
        self,
        inner: ExecutionContext | None = None,
        operation: str = "unknown",
        log_level: int = logging.INFO,
    ) -> None:
        self._inner = inner or NoOpExecutionContext()
        self._operation = operation
        self._log_level = log_level

    def execute(self, computation: Callable[[], Result[T]]) -> Result[T]:
        log.log(self._log_level, "execution.started", operation=self._operation)
        start = time.monotonic()

        try:
            result = self._inner.execute(computation)
        except Exception as e:
            elapsed = time.monotonic() - start
            log.error(
                "execution.raised",
                operation=self._operation,
                elapsed_seconds=round(elapsed, 3),
                error=str(e),
            )
            return Failure(
                FailureDescription(
                    ErrorCode.TECHNICAL_ERROR,
                    f"Execution failed: {e}",
                    e,
                )
            )

        elapsed = time.monotonic() - start
        log.log(
            self._log_level,
            "execution.completed",
            operation=self._operation,
            elapsed_seconds=round(elapsed, 3),
            state="SUCCESS" if result.is_success() else "FAILURE",
        )
        return result
