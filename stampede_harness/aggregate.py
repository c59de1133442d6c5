"""Per-request outcomes and the mergeable counters they are folded into.

Outcomes are never retained: each one updates a VU-local ``OutcomeAggregate``
and is dropped. Pools merge the VU aggregates once at teardown.
"""

from __future__ import annotations

import bisect
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .timing import now_iso

# Upper bounds in milliseconds; the last bucket is open-ended.
LATENCY_BUCKETS_MS = (
    5.0, 10.0, 25.0, 50.0, 75.0, 100.0, 250.0, 500.0, 750.0,
    1000.0, 2500.0, 5000.0, 7500.0, 10000.0, math.inf,
)


class OutcomeKind(str, Enum):
    ok = "ok"
    assertion_failure = "assertion_failure"
    transport_error = "transport_error"


@dataclass(frozen=True)
class RequestOutcome:
    scenario: str
    endpoint: str
    vu: int
    iteration: int
    status_code: int                 # 0 when the target was unreachable
    body_length: int
    latency_ms: float
    checks: dict[str, bool]
    failure_reasons: dict[str, str] = field(default_factory=dict)
    error: Optional[str] = None      # transport error description

    @property
    def kind(self) -> OutcomeKind:
        if self.error is not None:
            return OutcomeKind.transport_error
        if not all(self.checks.values()):
            return OutcomeKind.assertion_failure
        return OutcomeKind.ok

    def to_record(self) -> dict:
        """Flat record for metrics sinks."""
        return {
            "timestamp": now_iso(),
            "scenario": self.scenario,
            "endpoint": self.endpoint,
            "vu": self.vu,
            "iteration": self.iteration,
            "status": self.status_code,
            "outcome": self.kind.value,
            "latency_ms": round(self.latency_ms, 3),
            "body_length": self.body_length,
            "checks": dict(self.checks),
        }


@dataclass
class CheckTally:
    passes: int = 0
    fails: int = 0
    last_failure: Optional[str] = None

    def merge(self, other: "CheckTally") -> None:
        self.passes += other.passes
        self.fails += other.fails
        if other.last_failure is not None:
            self.last_failure = other.last_failure


@dataclass
class LatencyHistogram:
    """Fixed-bucket histogram; memory does not grow with request count."""

    counts: list[int] = field(default_factory=lambda: [0] * len(LATENCY_BUCKETS_MS))
    count: int = 0
    total_ms: float = 0.0
    min_ms: float = math.inf
    max_ms: float = 0.0

    def observe(self, latency_ms: float) -> None:
        self.counts[bisect.bisect_left(LATENCY_BUCKETS_MS, latency_ms)] += 1
        self.count += 1
        self.total_ms += latency_ms
        self.min_ms = min(self.min_ms, latency_ms)
        self.max_ms = max(self.max_ms, latency_ms)

    def merge(self, other: "LatencyHistogram") -> None:
        self.counts = [a + b for a, b in zip(self.counts, other.counts)]
        self.count += other.count
        self.total_ms += other.total_ms
        self.min_ms = min(self.min_ms, other.min_ms)
        self.max_ms = max(self.max_ms, other.max_ms)

    @property
    def avg_ms(self) -> float:
        return self.total_ms / self.count if self.count else 0.0

    def quantile(self, q: float) -> float:
        """Estimate the q-quantile by linear interpolation inside its bucket."""
        if not self.count:
            return 0.0
        rank = q * self.count
        seen = 0
        lower = 0.0
        for upper, n in zip(LATENCY_BUCKETS_MS, self.counts):
            if n and seen + n >= rank:
                if math.isinf(upper):
                    return self.max_ms
                estimate = lower + (upper - lower) * ((rank - seen) / n)
                return min(max(estimate, self.min_ms), self.max_ms)
            seen += n
            lower = upper
        return self.max_ms


@dataclass
class OutcomeAggregate:
    iterations: int = 0
    requests: int = 0
    transport_errors: int = 0
    interrupted: int = 0
    iteration_errors: int = 0
    unexpected_results: int = 0     # failed checks on responses that arrived
    last_error: Optional[str] = None
    last_transport_error: Optional[str] = None
    status_codes: dict[int, int] = field(default_factory=dict)
    checks: dict[str, CheckTally] = field(default_factory=dict)
    latency: LatencyHistogram = field(default_factory=LatencyHistogram)

    def record(self, outcome: RequestOutcome) -> None:
        self.requests += 1
        if outcome.error is not None:
            self.transport_errors += 1
            self.last_transport_error = outcome.error
        else:
            self.status_codes[outcome.status_code] = (
                self.status_codes.get(outcome.status_code, 0) + 1
            )
            self.latency.observe(outcome.latency_ms)
        for name, passed in outcome.checks.items():
            tally = self.checks.setdefault(name, CheckTally())
            if passed:
                tally.passes += 1
            else:
                tally.fails += 1
                tally.last_failure = outcome.failure_reasons.get(name, tally.last_failure)
                if outcome.error is None:
                    self.unexpected_results += 1

    def record_iteration_error(self, exc: BaseException) -> None:
        self.iteration_errors += 1
        self.last_error = f"{type(exc).__name__}: {exc}"

    def merge(self, other: "OutcomeAggregate") -> None:
        self.iterations += other.iterations
        self.requests += other.requests
        self.transport_errors += other.transport_errors
        self.interrupted += other.interrupted
        self.iteration_errors += other.iteration_errors
        self.unexpected_results += other.unexpected_results
        self.last_error = other.last_error or self.last_error
        self.last_transport_error = other.last_transport_error or self.last_transport_error
        for code, n in other.status_codes.items():
            self.status_codes[code] = self.status_codes.get(code, 0) + n
        for name, tally in other.checks.items():
            self.checks.setdefault(name, CheckTally()).merge(tally)
        self.latency.merge(other.latency)

    @property
    def check_passes(self) -> int:
        return sum(t.passes for t in self.checks.values())

    @property
    def check_fails(self) -> int:
        return sum(t.fails for t in self.checks.values())
