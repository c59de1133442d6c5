"""Tests for outcome aggregation."""

import pytest

from stampede_harness.aggregate import (
    LatencyHistogram,
    OutcomeAggregate,
    OutcomeKind,
    RequestOutcome,
)


def make_outcome(status=200, latency_ms=12.0, checks=None, error=None, reasons=None):
    return RequestOutcome(
        scenario="s",
        endpoint="/api/with-singleflight",
        vu=0,
        iteration=0,
        status_code=status,
        body_length=10,
        latency_ms=latency_ms,
        checks=checks if checks is not None else {"status is 200": status == 200},
        failure_reasons=reasons or {},
        error=error,
    )


class TestRequestOutcome:
    def test_kind(self) -> None:
        assert make_outcome().kind == OutcomeKind.ok
        assert make_outcome(status=500).kind == OutcomeKind.assertion_failure
        assert make_outcome(status=0, error="ConnectError: refused").kind == OutcomeKind.transport_error

    def test_record_shape(self) -> None:
        """Every outcome is emittable as one flat record."""
        record = make_outcome(latency_ms=1.23456).to_record()

        assert record["endpoint"] == "/api/with-singleflight"
        assert record["status"] == 200
        assert record["outcome"] == "ok"
        assert record["latency_ms"] == 1.235
        assert record["checks"] == {"status is 200": True}
        assert "timestamp" in record


class TestLatencyHistogram:
    def test_empty(self) -> None:
        hist = LatencyHistogram()

        assert hist.avg_ms == 0.0
        assert hist.quantile(0.95) == 0.0

    def test_summary_values(self) -> None:
        hist = LatencyHistogram()
        for ms in (10.0, 20.0, 30.0, 40.0):
            hist.observe(ms)

        assert hist.count == 4
        assert hist.avg_ms == 25.0
        assert hist.min_ms == 10.0
        assert hist.max_ms == 40.0

    def test_quantile_within_bounds(self) -> None:
        hist = LatencyHistogram()
        for ms in range(1, 101):
            hist.observe(float(ms))

        p50 = hist.quantile(0.5)
        p99 = hist.quantile(0.99)
        assert 25.0 <= p50 <= 75.0
        assert p50 <= p99 <= 100.0

    def test_open_bucket_returns_max(self) -> None:
        hist = LatencyHistogram()
        hist.observe(20000.0)

        assert hist.quantile(0.99) == 20000.0


class TestOutcomeAggregate:
    def test_record_counts_checks_and_status(self) -> None:
        agg = OutcomeAggregate()
        agg.record(make_outcome())
        agg.record(make_outcome(status=500, reasons={"status is 200": "expected status 200, got 500"}))

        assert agg.requests == 2
        assert agg.status_codes == {200: 1, 500: 1}
        assert agg.checks["status is 200"].passes == 1
        assert agg.checks["status is 200"].fails == 1
        assert agg.checks["status is 200"].last_failure == "expected status 200, got 500"
        assert agg.latency.count == 2

    def test_transport_error_has_no_latency_sample(self) -> None:
        agg = OutcomeAggregate()
        agg.record(
            make_outcome(status=0, checks={"status is 200": False}, error="ConnectTimeout: timed out")
        )

        assert agg.transport_errors == 1
        assert agg.last_transport_error == "ConnectTimeout: timed out"
        assert agg.status_codes == {}
        assert agg.latency.count == 0
        assert agg.check_fails == 1

    def test_merge(self) -> None:
        """VU-local aggregates merge into the same totals as one shared aggregate."""
        first, second, combined = OutcomeAggregate(), OutcomeAggregate(), OutcomeAggregate()
        outcomes = [make_outcome(latency_ms=5.0), make_outcome(status=503, latency_ms=80.0)]
        first.record(outcomes[0])
        second.record(outcomes[1])
        second.record_iteration_error(RuntimeError("boom"))
        for outcome in outcomes:
            combined.record(outcome)

        first.merge(second)

        assert first.requests == combined.requests == 2
        assert first.status_codes == combined.status_codes
        assert first.check_passes == 1
        assert first.check_fails == 1
        assert first.latency.counts == combined.latency.counts
        assert first.latency.max_ms == pytest.approx(80.0)
        assert first.iteration_errors == 1
        assert first.last_error == "RuntimeError: boom"

    def test_unexpected_results_counted_per_failed_check(self) -> None:
        """Failed checks on arrived responses are counted apart from unreachable ones."""
        agg = OutcomeAggregate()
        agg.record(make_outcome(status=0, checks={"a ok": False}, error="ConnectError: refused"))
        agg.record(make_outcome(status=500, checks={"status is 200": False, "has response body": True}))
        agg.record(make_outcome(status=500, checks={"status is 200": False, "has response body": False}))

        assert agg.transport_errors == 1
        assert agg.check_fails == 4
        assert agg.unexpected_results == 3

        other = OutcomeAggregate()
        other.record(make_outcome(status=404))
        agg.merge(other)

        assert agg.unexpected_results == 4
