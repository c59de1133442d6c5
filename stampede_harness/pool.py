"""Virtual User Pool: runs one scenario's workers under its executor kind.

fixed-vu-single-shot    N workers x ``iterations`` each
shared-iteration-pool   N workers draining one shared iteration budget
ramping-stages          worker count follows the stage profile, re-evaluated
                        every ramp tick; retired workers finish their current
                        iteration first
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Mapping, Optional

from . import config
from .aggregate import OutcomeAggregate, RequestOutcome
from .checks import CheckFn
from .errors import SchedulingOverrun, TransportError
from .executor import RequestExecutor
from .models import (
    FixedVUScenario,
    RampingStagesScenario,
    SharedIterationScenario,
    Stage,
)
from .reset import CacheResetCoordinator, ResetBarrier
from .timing import monotonic

# Scheduler jitter tolerated before a late finish counts as an overrun.
OVERRUN_TOLERANCE_S = 0.2


# ── Virtual users ───────────────────────────────────────────────────────────

@dataclass
class VirtualUser:
    ordinal: int
    scenario: str
    executor: RequestExecutor
    aggregate: OutcomeAggregate = field(default_factory=OutcomeAggregate)
    iteration: int = 0
    retired: bool = False
    in_flight: bool = False

    async def get(self, endpoint: str, checks: Mapping[str, CheckFn]) -> RequestOutcome:
        """Request ``endpoint`` as this VU; outcome goes to the VU's own counters."""
        return await self.executor.execute(
            endpoint,
            checks,
            scenario=self.scenario,
            vu=self.ordinal,
            iteration=self.iteration,
            recorder=self.aggregate,
        )


TargetFn = Callable[[VirtualUser], Awaitable[None]]


class SharedIterationCounter:
    """Iteration budget shared by every VU of a shared-iteration pool."""

    def __init__(self, total: int) -> None:
        self._remaining = total
        self.taken = 0

    def take(self) -> bool:
        # No await between the check and the decrement: atomic on the event loop.
        if self._remaining <= 0:
            return False
        self._remaining -= 1
        self.taken += 1
        return True

    @property
    def remaining(self) -> int:
        return self._remaining


def target_vus(stages: list[Stage], elapsed_s: float, start_vus: int = 0) -> int:
    """Concurrency the stage profile asks for ``elapsed_s`` into the ramp."""
    previous = start_vus
    for stage in stages:
        if elapsed_s < stage.duration_s:
            fraction = max(elapsed_s, 0.0) / stage.duration_s
            return int(round(previous + (stage.target - previous) * fraction))
        elapsed_s -= stage.duration_s
        previous = stage.target
    return previous


@dataclass
class PoolResult:
    scenario: str
    aggregate: OutcomeAggregate
    elapsed_s: float
    vus_created: int
    peak_vus: int
    resets_issued: int
    reset_failures: int
    overrun: Optional[SchedulingOverrun] = None


# ── Pool ────────────────────────────────────────────────────────────────────

class VirtualUserPool:
    def __init__(
        self,
        scenario,
        target: TargetFn,
        executor: RequestExecutor,
        coordinator: CacheResetCoordinator,
        *,
        ramp_tick_s: float = config.RAMP_TICK_S,
    ) -> None:
        self.scenario = scenario
        self._target = target
        self._executor = executor
        self._coordinator = coordinator
        self._ramp_tick_s = ramp_tick_s
        self._barrier = ResetBarrier()
        self._users: list[VirtualUser] = []
        self._tasks: list[asyncio.Task] = []
        self._counter: Optional[SharedIterationCounter] = None
        self._deadline = 0.0
        self._started = 0.0
        self._live = 0
        self.peak_vus = 0

    async def run(self, deadline: float) -> PoolResult:
        """Run the scenario; no iteration starts after ``deadline`` or max duration."""
        scenario = self.scenario
        self._started = monotonic()
        self._deadline = min(deadline, self._started + scenario.max_duration_s)

        if isinstance(scenario, FixedVUScenario):
            for _ in range(scenario.vus):
                self._spawn(budget=scenario.iterations)
        elif isinstance(scenario, SharedIterationScenario):
            self._counter = SharedIterationCounter(scenario.iterations)
            for _ in range(scenario.vus):
                self._spawn(budget=None)
        elif isinstance(scenario, RampingStagesScenario):
            await self._ramp(scenario)
        else:
            raise TypeError(f"unsupported scenario type {type(scenario).__name__}")

        await self._drain()
        return self.snapshot()

    def snapshot(self) -> PoolResult:
        """Merge VU-local counters into one result; usable after a failed run too."""
        merged = OutcomeAggregate()
        for vu in self._users:
            merged.merge(vu.aggregate)
        elapsed = monotonic() - self._started if self._started else 0.0
        overrun = None
        if elapsed > self.scenario.max_duration_s + OVERRUN_TOLERANCE_S:
            overrun = SchedulingOverrun(self.scenario.name, elapsed, self.scenario.max_duration_s)
        return PoolResult(
            scenario=self.scenario.name,
            aggregate=merged,
            elapsed_s=elapsed,
            vus_created=len(self._users),
            peak_vus=self.peak_vus,
            resets_issued=self._barrier.resets_issued,
            reset_failures=self._barrier.reset_failures,
            overrun=overrun,
        )

    # ── Workers ─────────────────────────────────────────────────────────────

    def _spawn(self, budget: Optional[int]) -> VirtualUser:
        vu = VirtualUser(
            ordinal=len(self._users),
            scenario=self.scenario.name,
            executor=self._executor,
        )
        self._users.append(vu)
        self._live += 1
        self.peak_vus = max(self.peak_vus, self._live)
        self._tasks.append(asyncio.create_task(self._vu_loop(vu, budget)))
        return vu

    async def _vu_loop(self, vu: VirtualUser, budget: Optional[int]) -> None:
        pacing = self.scenario.pacing_s
        try:
            while not vu.retired and monotonic() < self._deadline:
                if budget is not None and vu.iteration >= budget:
                    break
                if self._counter is not None and not self._counter.take():
                    break
                await self._iterate(vu)
                vu.iteration += 1
                if pacing:
                    remaining = self._deadline - monotonic()
                    if remaining <= 0:
                        break
                    await asyncio.sleep(min(pacing, remaining))
        finally:
            self._live -= 1

    async def _iterate(self, vu: VirtualUser) -> None:
        vu.in_flight = True
        try:
            await self._coordinator.reset_if_due(
                vu.ordinal, vu.iteration, self.scenario.reset, self._barrier
            )
            await self._target(vu)
        except TransportError:
            pass  # already recorded by the executor
        except asyncio.CancelledError:
            vu.aggregate.interrupted += 1
            raise
        except Exception as exc:
            vu.aggregate.record_iteration_error(exc)
        finally:
            vu.in_flight = False
        vu.aggregate.iterations += 1

    # ── Ramping ─────────────────────────────────────────────────────────────

    async def _ramp(self, scenario: RampingStagesScenario) -> None:
        ramp_start = monotonic()
        total = scenario.stages_duration_s
        while True:
            now = monotonic()
            elapsed = now - ramp_start
            if elapsed >= total or now >= self._deadline:
                break
            self._scale_to(target_vus(scenario.stages, elapsed, scenario.start_vus))
            await asyncio.sleep(min(self._ramp_tick_s, total - elapsed, self._deadline - now))
        for vu in self._users:
            vu.retired = True

    def _scale_to(self, target: int) -> None:
        active = [vu for vu in self._users if not vu.retired]
        if target > len(active):
            for _ in range(target - len(active)):
                self._spawn(budget=None)
        elif target < len(active):
            # Newest VUs leave first; each finishes its current iteration.
            for vu in active[target:]:
                vu.retired = True

    # ── Teardown ────────────────────────────────────────────────────────────

    async def _drain(self) -> None:
        if not self._tasks:
            return
        grace = max(0.0, self._deadline - monotonic()) + self.scenario.graceful_stop_s
        done, pending = await asyncio.wait(self._tasks, timeout=grace)
        if pending:
            in_flight = sum(1 for vu in self._users if vu.in_flight)
            print(
                f"[pool:{self.scenario.name}] Graceful stop elapsed; "
                f"cancelling {len(pending)} VUs ({in_flight} iterations in flight)"
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
        for task in done:
            if task.cancelled():
                continue
            exc = task.exception()
            if exc is not None:
                raise exc
