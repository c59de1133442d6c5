"""Run Orchestrator: setup, scheduled scenarios, teardown, report."""

from __future__ import annotations

import asyncio
from typing import Mapping, Optional

import httpx

from . import config
from .errors import ConfigurationError
from .executor import RequestExecutor
from .models import RunConfig
from .pool import TargetFn, VirtualUserPool
from .report import RunReport
from .reset import CacheResetCoordinator
from .scheduler import ScenarioScheduler
from .sinks import MetricsSink, NullSink
from .timing import monotonic, now_iso

BANNER = "=" * 60


class RunOrchestrator:
    """Drives one run of a ``RunConfig`` against the target service.

    ``targets`` maps the ``exec`` name of each scenario to its target
    function; it defaults to the built-in registry in ``profiles``.
    """

    def __init__(
        self,
        *,
        base_url: str = config.TARGET_BASE_URL,
        targets: Optional[Mapping[str, TargetFn]] = None,
        sink: Optional[MetricsSink] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout_s: float = config.REQUEST_TIMEOUT_S,
        reset_path: str = config.RESET_PATH,
        setup_attempts: int = config.SETUP_RESET_ATTEMPTS,
        setup_backoff_s: float = config.SETUP_RESET_BACKOFF_S,
        ramp_tick_s: float = config.RAMP_TICK_S,
    ) -> None:
        if targets is None:
            from .profiles import TARGETS

            targets = TARGETS
        self.base_url = base_url
        self.targets = dict(targets)
        self.sink = sink or NullSink()
        self._client = client
        self.timeout_s = timeout_s
        self.reset_path = reset_path
        self.setup_attempts = setup_attempts
        self.setup_backoff_s = setup_backoff_s
        self.ramp_tick_s = ramp_tick_s

    async def run(self, run_config: RunConfig) -> RunReport:
        """Run every scenario and return the report.

        Raises ``SetupError`` before any scenario starts when the pre-run
        cache reset cannot be performed.
        """
        self._check_targets(run_config)
        executor = RequestExecutor(
            base_url=self.base_url,
            timeout_s=self.timeout_s,
            sink=self.sink,
            client=self._client,
        )
        coordinator = CacheResetCoordinator(executor, path=self.reset_path)
        try:
            started_at = now_iso()
            await self._setup(run_config, coordinator)

            def make_pool(scenario) -> VirtualUserPool:
                return VirtualUserPool(
                    scenario,
                    self.targets[scenario.exec],
                    executor,
                    coordinator,
                    ramp_tick_s=self.ramp_tick_s,
                )

            run_start = monotonic()
            results = await ScenarioScheduler(make_pool).run(
                run_config.scenarios,
                run_start=run_start,
                ceiling_s=run_config.run_ceiling_s,
            )
            report = RunReport.build(
                title=run_config.title,
                started_at=started_at,
                finished_at=now_iso(),
                elapsed_s=monotonic() - run_start,
                threshold=run_config.failed_check_threshold,
                results=results,
            )
            self._teardown(report)
            return report
        finally:
            await executor.aclose()
            self._close_sink()

    def _close_sink(self) -> None:
        try:
            self.sink.close()
        except Exception as exc:
            # A failed push still leaves the finished report to the caller.
            print(f"[sinks] Closing metrics sink failed: {type(exc).__name__}: {exc}")

    def run_sync(self, run_config: RunConfig) -> RunReport:
        return asyncio.run(self.run(run_config))

    def _check_targets(self, run_config: RunConfig) -> None:
        missing = sorted({s.exec for s in run_config.scenarios} - set(self.targets))
        if missing:
            raise ConfigurationError(f"unknown target function(s): {', '.join(missing)}")

    async def _setup(self, run_config: RunConfig, coordinator: CacheResetCoordinator) -> None:
        if run_config.setup_reset:
            await coordinator.setup_reset(self.setup_attempts, self.setup_backoff_s)
        print(BANNER)
        print(run_config.title)
        print(BANNER)
        for i, scenario in enumerate(run_config.scenarios, start=1):
            print(
                f"Phase {i} ({scenario.start_offset_s:g}s): {scenario.name} "
                f"{scenario.max_vus} VUs {scenario.executor} -> {scenario.exec}"
            )
        for first, second in run_config.overlapping():
            print(f"[orchestrator] Scenarios {first!r} and {second!r} overlap")
        print(BANNER)

    def _teardown(self, report: RunReport) -> None:
        print(BANNER)
        print("Test completed!")
        for line in report.summary_lines():
            print(line)
        print("Compare the backend call rate between phases on the dashboard")
        print(BANNER)
