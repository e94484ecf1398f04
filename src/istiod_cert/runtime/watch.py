"""
Long-running Kubernetes watch with reconnects.

Streams events from a list function (`list_namespaced_config_map`,
`list_namespaced_custom_object`, ...) and hands each one to a callback.

  - resumes from the last seen resourceVersion after a stream ends
  - on 410 Gone (etcd compaction) drops the resourceVersion and re-lists
  - on 401/403 stops: RBAC problems do not fix themselves
  - on any other error reconnects with jittered exponential backoff
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any

import structlog
from kubernetes import watch
from kubernetes.client import ApiException
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_when_event_set,
    wait_exponential_jitter,
)

log = structlog.get_logger()

EventHandler = Callable[[str, Any], None]

_DENIED = frozenset({401, 403})


def object_metadata(obj: Any) -> tuple[str | None, str | None, str | None]:
    """Return (namespace, name, resourceVersion) for a typed model or a raw dict."""
    if isinstance(obj, dict):
        metadata = obj.get("metadata") or {}
        return metadata.get("namespace"), metadata.get("name"), metadata.get("resourceVersion")
    metadata = getattr(obj, "metadata", None)
    return (
        getattr(metadata, "namespace", None),
        getattr(metadata, "name", None),
        getattr(metadata, "resource_version", None),
    )


def _is_retryable(exc: BaseException) -> bool:
    return not (isinstance(exc, ApiException) and exc.status in _DENIED)


class ResourceWatch:
    """Watch one kind of object and feed events to `handler(event_type, obj)`."""

    def __init__(
        self,
        name: str,
        list_fn: Callable[..., Any],
        handler: EventHandler,
        *list_args: Any,
        timeout_seconds: int = 300,
        max_backoff_seconds: float = 30.0,
        **list_kwargs: Any,
    ) -> None:
        self._name = name
        self._list_fn = list_fn
        self._handler = handler
        self._list_args = list_args
        self._list_kwargs = list_kwargs
        self._timeout_seconds = timeout_seconds
        self._max_backoff_seconds = max_backoff_seconds
        self._resource_version: str | None = None

    def run(self, stop: threading.Event) -> None:
        """Watch until `stop` is set or access is denied."""
        try:
            while not stop.is_set():
                for attempt in self._retrying(stop):
                    with attempt:
                        self._watch_once(stop)
        except ApiException as exc:
            if exc.status in _DENIED:
                log.error(
                    "watch.access_denied",
                    watch=self._name,
                    status=exc.status,
                    hint="check RBAC for the service account",
                )
                return
            self._log_exit(stop, exc)
        except Exception as exc:
            self._log_exit(stop, exc)
        else:
            log.info("watch.stopped", watch=self._name)

    def _log_exit(self, stop: threading.Event, exc: Exception) -> None:
        # A reconnect interrupted by shutdown re-raises the last stream error.
        if stop.is_set():
            log.info("watch.stopped", watch=self._name, last_error=str(exc))
            return
        log.warning("watch.failed", watch=self._name, error=str(exc))

    def _retrying(self, stop: threading.Event) -> Retrying:
        return Retrying(
            retry=retry_if_exception(_is_retryable),
            wait=wait_exponential_jitter(initial=1, max=self._max_backoff_seconds),
            stop=stop_when_event_set(stop),
            sleep=stop.wait,
            before_sleep=self._log_reconnect,
            reraise=True,
        )

    def _log_reconnect(self, retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        log.warning(
            "watch.reconnecting",
            watch=self._name,
            attempt=retry_state.attempt_number,
            error=str(outcome.exception()) if outcome else None,
            wait_seconds=round(retry_state.upcoming_sleep, 2),
        )

    def _watch_once(self, stop: threading.Event) -> None:
        watcher = watch.Watch()
        try:
            stream = watcher.stream(
                self._list_fn,
                *self._list_args,
                resource_version=self._resource_version,
                timeout_seconds=self._timeout_seconds,
                **self._list_kwargs,
            )
            for event in stream:
                if stop.is_set():
                    break
                obj = event.get("object")
                if obj is None:
                    continue
                _, _, resource_version = object_metadata(obj)
                if resource_version:
                    self._resource_version = resource_version
                self._handler(str(event.get("type", "")), obj)
        except ApiException as exc:
            if exc.status != 410:
                raise
            log.info("watch.resource_version_expired", watch=self._name)
            self._resource_version = None
        finally:
            watcher.stop()
