"""
Unit tests for ResourceWatch — kubernetes.watch.Watch is patched.
"""

from __future__ import annotations

import threading
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

from kubernetes.client import ApiException
from structlog.testing import capture_logs

from istiod_cert.runtime.watch import ResourceWatch, object_metadata


def _event(event_type: str, name: str, resource_version: str) -> dict:
    return {
        "type": event_type,
        "object": {"metadata": {"namespace": "ns", "name": name, "resourceVersion": resource_version}},
    }


class TestObjectMetadata:
    def test_dict_object(self) -> None:
        assert object_metadata(_event("ADDED", "a", "3")["object"]) == ("ns", "a", "3")

    def test_typed_model(self) -> None:
        obj = SimpleNamespace(metadata=SimpleNamespace(namespace="ns", name="cm", resource_version="8"))
        assert object_metadata(obj) == ("ns", "cm", "8")


class TestResourceWatch:
    @patch("istiod_cert.runtime.watch.watch.Watch")
    def test_delivers_events_and_resumes_from_last_version(self, watch_cls: MagicMock) -> None:
        """
        GIVEN a stream that yields two events and then ends
        WHEN the watch runs
        THEN both events reach the handler and the next stream resumes from
             the last resourceVersion.
        """
        stop = threading.Event()
        handler = MagicMock()
        streams = [iter([_event("ADDED", "a", "1"), _event("MODIFIED", "a", "2")])]

        def stream(*args, **kwargs):
            if streams:
                return streams.pop()
            stop.set()
            return iter([])

        watch_cls.return_value.stream.side_effect = stream
        list_fn = MagicMock()
        resource_watch = ResourceWatch("test", list_fn, handler, "ns", field_selector="metadata.name=a")

        resource_watch.run(stop)

        assert [call.args[0] for call in handler.call_args_list] == ["ADDED", "MODIFIED"]
        second = watch_cls.return_value.stream.call_args_list[1]
        assert second.args == (list_fn, "ns")
        assert second.kwargs["resource_version"] == "2"
        assert second.kwargs["field_selector"] == "metadata.name=a"

    @patch("istiod_cert.runtime.watch.watch.Watch")
    def test_gone_clears_resource_version(self, watch_cls: MagicMock) -> None:
        """
        GIVEN the server answers 410 Gone
        WHEN the watch reconnects
        THEN it relists without a resourceVersion.
        """
        stop = threading.Event()
        calls: list[dict] = []

        def stream(*args, **kwargs):
            calls.append(kwargs)
            if len(calls) == 1:
                return iter([_event("ADDED", "a", "5")])
            if len(calls) == 2:
                raise ApiException(status=410, reason="Gone")
            stop.set()
            return iter([])

        watch_cls.return_value.stream.side_effect = stream

        ResourceWatch("test", MagicMock(), MagicMock()).run(stop)

        assert calls[1]["resource_version"] == "5"
        assert calls[2]["resource_version"] is None

    @patch("istiod_cert.runtime.watch.watch.Watch")
    def test_forbidden_stops_watching(self, watch_cls: MagicMock) -> None:
        """
        GIVEN the server answers 403
        WHEN the watch runs
        THEN it logs access denied and returns without retrying.
        """
        watch_cls.return_value.stream.side_effect = ApiException(status=403, reason="Forbidden")

        with capture_logs() as logs:
            ResourceWatch("test", MagicMock(), MagicMock()).run(threading.Event())

        assert watch_cls.return_value.stream.call_count == 1
        assert any(entry["event"] == "watch.access_denied" for entry in logs)

    @patch("istiod_cert.runtime.watch.watch.Watch")
    def test_errors_reconnect_until_stopped(self, watch_cls: MagicMock) -> None:
        """
        GIVEN a stream that keeps failing with 500
        WHEN the stop event is set from the reconnect log hook
        THEN the watch makes one more attempt and returns, logging a clean stop at info level.
        """
        stop = threading.Event()
        watch_cls.return_value.stream.side_effect = ApiException(status=500, reason="boom")
        resource_watch = ResourceWatch("test", MagicMock(), MagicMock(), max_backoff_seconds=0.01)

        with (
            capture_logs() as logs,
            patch.object(resource_watch, "_log_reconnect", side_effect=lambda _: stop.set()),
        ):
            resource_watch.run(stop)

        assert watch_cls.return_value.stream.call_count == 2
        stopped = [entry for entry in logs if entry["event"] == "watch.stopped"]
        assert len(stopped) == 1
        assert stopped[0]["log_level"] == "info"
        assert "boom" in stopped[0]["last_error"]
        assert not any(entry["log_level"] == "warning" for entry in logs)
