"""Scenario Scheduler: launches each scenario's pool at its start offset."""

from __future__ import annotations

import asyncio
import itertools
from dataclasses import dataclass
from typing import Callable, Optional

from .pool import PoolResult, VirtualUserPool
from .timing import monotonic

PoolFactory = Callable[[object], VirtualUserPool]


@dataclass
class ScenarioResult:
    scenario: object
    started_at_s: Optional[float] = None    # offset from run start, None if never launched
    pool: Optional[PoolResult] = None
    error: Optional[str] = None
    skipped: bool = False


def launch_groups(scenarios: list) -> list[tuple[float, list]]:
    """Scenarios grouped by start offset, declaration order kept within a group."""
    ordered = sorted(scenarios, key=lambda s: s.start_offset_s)
    return [
        (offset, list(group))
        for offset, group in itertools.groupby(ordered, key=lambda s: s.start_offset_s)
    ]


async def sleep_until(when: float) -> None:
    while True:
        delay = when - monotonic()
        if delay <= 0:
            return
        await asyncio.sleep(delay)


class ScenarioScheduler:
    def __init__(self, pool_factory: PoolFactory) -> None:
        self._pool_factory = pool_factory

    async def run(
        self,
        scenarios: list,
        *,
        run_start: float,
        ceiling_s: float,
    ) -> list[ScenarioResult]:
        """Run every scenario on one timeline; results come back in declaration order."""
        results = {scenario.name: ScenarioResult(scenario=scenario) for scenario in scenarios}
        run_deadline = run_start + ceiling_s
        tasks: list[asyncio.Task] = []

        for offset, group in launch_groups(scenarios):
            await sleep_until(run_start + offset)
            if monotonic() >= run_deadline:
                for scenario in group:
                    results[scenario.name].skipped = True
                    print(f"[scheduler] Run ceiling reached; skipping {scenario.name!r}")
                continue
            for scenario in group:
                print(
                    f"[scheduler] Launching {scenario.name!r} "
                    f"({scenario.executor}) at +{monotonic() - run_start:.2f}s"
                )
                tasks.append(
                    asyncio.create_task(
                        self._run_one(scenario, results[scenario.name], run_start, run_deadline)
                    )
                )

        if tasks:
            await asyncio.gather(*tasks)
        return [results[scenario.name] for scenario in scenarios]

    async def _run_one(
        self,
        scenario,
        result: ScenarioResult,
        run_start: float,
        run_deadline: float,
    ) -> None:
        result.started_at_s = monotonic() - run_start
        pool: Optional[VirtualUserPool] = None
        try:
            pool = self._pool_factory(scenario)
            result.pool = await pool.run(deadline=run_deadline)
        except Exception as exc:
            result.error = f"{type(exc).__name__}: {exc}"
            print(f"[scheduler] Scenario {scenario.name!r} failed: {result.error}")
            if pool is not None:
                result.pool = pool.snapshot()
            return
        print(
            f"[scheduler] Finished {scenario.name!r} in {result.pool.elapsed_s:.2f}s "
            f"({result.pool.aggregate.iterations} iterations)"
        )
