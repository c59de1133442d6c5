"""Tests for the metrics sinks."""

import json

from prometheus_client import CollectorRegistry

from stampede_harness import config
from stampede_harness.sinks import (
    FanoutSink,
    JsonLinesSink,
    NullSink,
    PrometheusSink,
    build_default_sink,
)

OK = {
    "timestamp": "2026-01-01T00:00:00+00:00",
    "scenario": "with_sf",
    "endpoint": "/api/with-singleflight",
    "vu": 0,
    "iteration": 0,
    "status": 200,
    "outcome": "ok",
    "latency_ms": 250.0,
    "body_length": 42,
    "checks": {"status is 200": True, "has response body": True},
}
UNREACHABLE = dict(
    OK, status=0, outcome="transport_error", latency_ms=3.0,
    checks={"status is 200": False, "has response body": False},
)


class TestJsonLinesSink:
    def test_one_line_per_record(self, tmp_path) -> None:
        path = tmp_path / "out" / "requests.jsonl"
        sink = JsonLinesSink(path)
        sink.emit(OK)
        sink.emit(UNREACHABLE)
        sink.close()

        lines = path.read_text().splitlines()
        assert [json.loads(line)["outcome"] for line in lines] == ["ok", "transport_error"]

    def test_nothing_written_without_records(self, tmp_path) -> None:
        path = tmp_path / "requests.jsonl"
        sink = JsonLinesSink(path)
        sink.close()

        assert not path.exists()


class TestPrometheusSink:
    def test_counters_and_latency(self) -> None:
        registry = CollectorRegistry()
        sink = PrometheusSink(registry=registry)
        sink.emit(OK)
        sink.emit(OK)
        sink.emit(UNREACHABLE)

        labels = {"scenario": "with_sf", "endpoint": "/api/with-singleflight"}
        assert registry.get_sample_value(
            "harness_requests_total", dict(labels, outcome="ok")
        ) == 2
        assert registry.get_sample_value(
            "harness_requests_total", dict(labels, outcome="transport_error")
        ) == 1
        assert registry.get_sample_value(
            "harness_checks_total",
            {"scenario": "with_sf", "check": "status is 200", "result": "fail"},
        ) == 1
        # Unreachable requests carry no latency sample.
        assert registry.get_sample_value("harness_request_duration_seconds_count", labels) == 2
        assert registry.get_sample_value(
            "harness_request_duration_seconds_sum", labels
        ) == 0.5

    def test_close_without_gateway_is_noop(self) -> None:
        PrometheusSink(registry=CollectorRegistry()).close()


class TestFanout:
    def test_forwards_and_closes_all(self, sink) -> None:
        other = type(sink)()
        fanout = FanoutSink(sink, other)
        fanout.emit(OK)
        fanout.close()

        assert sink.records == other.records == [OK]
        assert sink.closed and other.closed

    def test_default_sink_is_null(self, monkeypatch) -> None:
        monkeypatch.setattr(config, "METRICS_JSONL_PATH", None)
        monkeypatch.setattr(config, "PUSHGATEWAY_URL", None)

        assert isinstance(build_default_sink(), NullSink)

    def test_default_sink_from_arguments(self, monkeypatch, tmp_path) -> None:
        monkeypatch.setattr(config, "PUSHGATEWAY_URL", None)

        sink = build_default_sink(jsonl_path=str(tmp_path / "r.jsonl"))

        assert isinstance(sink, JsonLinesSink)
