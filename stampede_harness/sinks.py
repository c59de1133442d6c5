"""Metrics sinks: every request outcome is emitted as one record.

Sinks receive the flat dict from ``RequestOutcome.to_record()``. The Prometheus
sink mirrors the counter/histogram layout the target exposes, so harness-side
and service-side panels line up on the same dashboard.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import IO, Optional, Protocol, Union

from prometheus_client import CollectorRegistry, Counter, Histogram, push_to_gateway

from . import config


class MetricsSink(Protocol):
    def emit(self, record: dict) -> None: ...

    def close(self) -> None: ...


class NullSink:
    def emit(self, record: dict) -> None:
        pass

    def close(self) -> None:
        pass


class JsonLinesSink:
    """Append one JSON object per outcome to a file."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        self._fh: Optional[IO[str]] = None

    def emit(self, record: dict) -> None:
        if self._fh is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = self.path.open("a", encoding="utf-8")
        self._fh.write(json.dumps(record, separators=(",", ":")) + "\n")

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None


class PrometheusSink:
    """Prometheus counters in a private registry, optionally pushed on close."""

    def __init__(
        self,
        registry: Optional[CollectorRegistry] = None,
        pushgateway_url: Optional[str] = None,
        job: str = "stampede_harness",
    ) -> None:
        self.registry = registry or CollectorRegistry()
        self.pushgateway_url = pushgateway_url
        self.job = job
        self.requests_total = Counter(
            "harness_requests_total",
            "Requests issued by the harness",
            ["scenario", "endpoint", "outcome"],
            registry=self.registry,
        )
        self.checks_total = Counter(
            "harness_checks_total",
            "Check evaluations by result",
            ["scenario", "check", "result"],
            registry=self.registry,
        )
        self.request_duration = Histogram(
            "harness_request_duration_seconds",
            "Request latency observed by the harness",
            ["scenario", "endpoint"],
            registry=self.registry,
        )

    def emit(self, record: dict) -> None:
        scenario = record["scenario"]
        endpoint = record["endpoint"]
        self.requests_total.labels(
            scenario=scenario, endpoint=endpoint, outcome=record["outcome"]
        ).inc()
        if record["status"]:
            self.request_duration.labels(scenario=scenario, endpoint=endpoint).observe(
                record["latency_ms"] / 1000.0
            )
        for check, passed in record["checks"].items():
            self.checks_total.labels(
                scenario=scenario, check=check, result="pass" if passed else "fail"
            ).inc()

    def close(self) -> None:
        if self.pushgateway_url:
            push_to_gateway(self.pushgateway_url, job=self.job, registry=self.registry)
            print(f"[sinks] Pushed metrics to {self.pushgateway_url} (job={self.job})")


class FanoutSink:
    def __init__(self, *sinks: MetricsSink) -> None:
        self.sinks = sinks

    def emit(self, record: dict) -> None:
        for sink in self.sinks:
            sink.emit(record)

    def close(self) -> None:
        for sink in self.sinks:
            sink.close()


def build_default_sink(
    jsonl_path: Optional[str] = None,
    pushgateway_url: Optional[str] = None,
) -> MetricsSink:
    """Sink assembled from explicit arguments, falling back to the environment."""
    jsonl_path = jsonl_path or config.METRICS_JSONL_PATH
    pushgateway_url = pushgateway_url or config.PUSHGATEWAY_URL
    sinks: list[MetricsSink] = []
    if jsonl_path:
        sinks.append(JsonLinesSink(jsonl_path))
    if pushgateway_url:
        sinks.append(PrometheusSink(pushgateway_url=pushgateway_url))
    if not sinks:
        return NullSink()
    if len(sinks) == 1:
        return sinks[0]
    return FanoutSink(*sinks)
