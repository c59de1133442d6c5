"""Immutable run report built at teardown from the scheduler's results."""

from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, computed_field

from .aggregate import OutcomeAggregate
from .scheduler import ScenarioResult


# ── Scenario level ──────────────────────────────────────────────────────────

class CheckSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    passes: int = 0
    fails: int = 0
    last_failure: Optional[str] = None

    @property
    def pass_rate(self) -> float:
        total = self.passes + self.fails
        return self.passes / total if total else 1.0


class LatencySummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    count: int = 0
    avg_ms: float = 0.0
    min_ms: float = 0.0
    max_ms: float = 0.0
    p50_ms: float = 0.0
    p95_ms: float = 0.0
    p99_ms: float = 0.0


class ScenarioReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    executor: str
    exec: str
    started_at_s: Optional[float] = None
    elapsed_s: float = 0.0
    iterations: int = 0
    requests: int = 0
    transport_errors: int = 0
    interrupted: int = 0
    iteration_errors: int = 0
    unexpected_results: int = 0
    last_error: Optional[str] = None
    last_transport_error: Optional[str] = None
    status_codes: Dict[int, int] = {}
    checks: Dict[str, CheckSummary] = {}
    latency: LatencySummary = LatencySummary()
    vus_created: int = 0
    peak_vus: int = 0
    resets_issued: int = 0
    reset_failures: int = 0
    warnings: Tuple[str, ...] = ()
    error: Optional[str] = None
    skipped: bool = False

    @property
    def check_fails(self) -> int:
        return sum(c.fails for c in self.checks.values())

    @property
    def check_total(self) -> int:
        return sum(c.passes + c.fails for c in self.checks.values())

    @classmethod
    def from_result(cls, result: ScenarioResult) -> "ScenarioReport":
        scenario = result.scenario
        pool = result.pool
        agg = pool.aggregate if pool is not None else OutcomeAggregate()
        warnings = []
        if pool is not None and pool.overrun is not None:
            warnings.append(f"SchedulingOverrun: {pool.overrun}")
        if pool is not None and pool.reset_failures:
            warnings.append(f"{pool.reset_failures} cache reset(s) failed mid-scenario")
        if result.skipped:
            warnings.append("skipped: run ceiling reached before start offset")
        hist = agg.latency
        return cls(
            name=scenario.name,
            executor=scenario.executor,
            exec=scenario.exec,
            started_at_s=result.started_at_s,
            elapsed_s=pool.elapsed_s if pool is not None else 0.0,
            iterations=agg.iterations,
            requests=agg.requests,
            transport_errors=agg.transport_errors,
            interrupted=agg.interrupted,
            iteration_errors=agg.iteration_errors,
            unexpected_results=agg.unexpected_results,
            last_error=agg.last_error,
            last_transport_error=agg.last_transport_error,
            status_codes=dict(agg.status_codes),
            checks={
                name: CheckSummary(
                    passes=tally.passes, fails=tally.fails, last_failure=tally.last_failure
                )
                for name, tally in agg.checks.items()
            },
            latency=LatencySummary(
                count=hist.count,
                avg_ms=round(hist.avg_ms, 3),
                min_ms=round(hist.min_ms if hist.count else 0.0, 3),
                max_ms=round(hist.max_ms, 3),
                p50_ms=round(hist.quantile(0.50), 3),
                p95_ms=round(hist.quantile(0.95), 3),
                p99_ms=round(hist.quantile(0.99), 3),
            ),
            vus_created=pool.vus_created if pool is not None else 0,
            peak_vus=pool.peak_vus if pool is not None else 0,
            resets_issued=pool.resets_issued if pool is not None else 0,
            reset_failures=pool.reset_failures if pool is not None else 0,
            warnings=tuple(warnings),
            error=result.error,
            skipped=result.skipped,
        )

    def summary_lines(self) -> list[str]:
        lines = [
            f"{self.name} [{self.executor} -> {self.exec}] "
            f"iterations={self.iterations} requests={self.requests} "
            f"peak_vus={self.peak_vus} resets={self.resets_issued} "
            f"elapsed={self.elapsed_s:.2f}s",
            f"  latency avg={self.latency.avg_ms:.1f}ms p95={self.latency.p95_ms:.1f}ms "
            f"max={self.latency.max_ms:.1f}ms",
        ]
        for name, check in self.checks.items():
            mark = "✓" if check.fails == 0 else "✗"
            lines.append(
                f"  {mark} {name}: {check.passes} passed, {check.fails} failed"
                + (f" ({check.last_failure})" if check.fails and check.last_failure else "")
            )
        if self.transport_errors:
            lines.append(
                f"  target unreachable: {self.transport_errors} request(s) "
                f"(last: {self.last_transport_error})"
            )
        if self.unexpected_results:
            lines.append(f"  target returned unexpected result: {self.unexpected_results} check(s)")
        if self.interrupted:
            lines.append(f"  interrupted at graceful stop: {self.interrupted} iteration(s)")
        if self.iteration_errors:
            lines.append(f"  iteration errors: {self.iteration_errors} (last: {self.last_error})")
        if self.error:
            lines.append(f"  scenario error: {self.error}")
        for warning in self.warnings:
            lines.append(f"  warning: {warning}")
        return lines


# ── Run level ───────────────────────────────────────────────────────────────

class RunReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    started_at: str
    finished_at: str
    elapsed_s: float
    failed_check_threshold: Optional[float] = None
    scenarios: List[ScenarioReport]

    @computed_field
    @property
    def failed_check_ratio(self) -> float:
        """Failed checks over all checks; an interrupted or errored iteration counts as one failed check."""
        failed = 0
        total = 0
        for scenario in self.scenarios:
            extra = scenario.interrupted + scenario.iteration_errors
            failed += scenario.check_fails + extra
            total += scenario.check_total + extra
        return failed / total if total else 0.0

    @computed_field
    @property
    def passed(self) -> bool:
        if self.failed_check_threshold is None:
            return True
        return self.failed_check_ratio <= self.failed_check_threshold

    @property
    def warnings(self) -> list[str]:
        return [f"{s.name}: {w}" for s in self.scenarios for w in s.warnings]

    def scenario(self, name: str) -> ScenarioReport:
        for report in self.scenarios:
            if report.name == name:
                return report
        raise KeyError(name)

    @classmethod
    def build(
        cls,
        *,
        title: str,
        started_at: str,
        finished_at: str,
        elapsed_s: float,
        threshold: Optional[float],
        results: list[ScenarioResult],
    ) -> "RunReport":
        return cls(
            title=title,
            started_at=started_at,
            finished_at=finished_at,
            elapsed_s=elapsed_s,
            failed_check_threshold=threshold,
            scenarios=[ScenarioReport.from_result(result) for result in results],
        )

    def summary_lines(self) -> list[str]:
        lines = [f"{self.title}: {len(self.scenarios)} scenario(s) in {self.elapsed_s:.2f}s"]
        for scenario in self.scenarios:
            lines.extend(scenario.summary_lines())
        verdict = "PASSED" if self.passed else "FAILED"
        threshold = (
            "unset (observational)"
            if self.failed_check_threshold is None
            else f"{self.failed_check_threshold:.2%}"
        )
        lines.append(
            f"Failed check ratio {self.failed_check_ratio:.2%}, threshold {threshold}: {verdict}"
        )
        return lines
