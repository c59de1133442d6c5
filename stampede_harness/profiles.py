"""Built-in traffic profiles and the target functions they reference.

without-singleflight   1000 VUs x 1 request, cache stampede prone endpoint
with-singleflight      1000 VUs x 1 request, single-flight protected endpoint
comparison             both bursts back to back, cache reset before each
sustained              ramping load on both endpoints, cache reset every 50
                       iterations of each VU to recreate repeated misses
"""

from __future__ import annotations

from .checks import has_body, status_is
from .models import (
    FixedVUScenario,
    LeaderOnlyReset,
    PeriodicReset,
    RampingStagesScenario,
    RunConfig,
    Stage,
    sequential,
)
from .pool import VirtualUser

WITHOUT_SINGLEFLIGHT = "/api/without-singleflight"
WITH_SINGLEFLIGHT = "/api/with-singleflight"

PHASE_DURATION_S = 30.0
PHASE_GAP_S = 5.0


# ── Target functions ────────────────────────────────────────────────────────

async def hit_without_singleflight(vu: VirtualUser) -> None:
    await vu.get(
        WITHOUT_SINGLEFLIGHT,
        {"status is 200": status_is(200), "has response body": has_body()},
    )


async def hit_with_singleflight(vu: VirtualUser) -> None:
    await vu.get(
        WITH_SINGLEFLIGHT,
        {"status is 200": status_is(200), "has response body": has_body()},
    )


TARGETS = {
    "testWithoutSingleflight": hit_without_singleflight,
    "testWithSingleflight": hit_with_singleflight,
}


# ── Profiles ────────────────────────────────────────────────────────────────

def without_singleflight(vus: int = 1000) -> RunConfig:
    return RunConfig(
        title="Cache stampede: without singleflight",
        scenarios=[
            FixedVUScenario(
                name="cache_stampede",
                exec="testWithoutSingleflight",
                vus=vus,
                max_duration_s=PHASE_DURATION_S,
            )
        ],
    )


def with_singleflight(vus: int = 1000) -> RunConfig:
    return RunConfig(
        title="Singleflight protection",
        scenarios=[
            FixedVUScenario(
                name="singleflight_protection",
                exec="testWithSingleflight",
                vus=vus,
                max_duration_s=PHASE_DURATION_S,
            )
        ],
    )


def comparison(vus: int = 1000, gap_s: float = PHASE_GAP_S) -> RunConfig:
    """Phase 1 without singleflight, phase 2 with it once phase 1 is over."""
    phases = sequential(
        [
            FixedVUScenario(
                name="without_sf",
                exec="testWithoutSingleflight",
                vus=vus,
                max_duration_s=PHASE_DURATION_S,
            ),
            FixedVUScenario(
                name="with_sf",
                exec="testWithSingleflight",
                vus=vus,
                max_duration_s=PHASE_DURATION_S,
                reset=LeaderOnlyReset(),
            ),
        ],
        gap_s=gap_s,
    )
    return RunConfig(title="Singleflight Comparison Test", scenarios=phases)


def sustained(peak_vus: int = 200, reset_every: int = 50, gap_s: float = PHASE_GAP_S) -> RunConfig:
    stages = [
        Stage(duration_s=10, target=peak_vus // 4),
        Stage(duration_s=20, target=peak_vus),
        Stage(duration_s=20, target=peak_vus),
        Stage(duration_s=10, target=0),
    ]
    reset = PeriodicReset(every=reset_every)
    phases = sequential(
        [
            RampingStagesScenario(
                name="sustained_without_sf",
                exec="testWithoutSingleflight",
                stages=stages,
                reset=reset,
                pacing_s=0.1,
            ),
            RampingStagesScenario(
                name="sustained_with_sf",
                exec="testWithSingleflight",
                stages=stages,
                reset=reset,
                pacing_s=0.1,
            ),
        ],
        gap_s=gap_s,
    )
    return RunConfig(title="Sustained load with periodic cache resets", scenarios=phases)


PROFILES = {
    "without-singleflight": without_singleflight,
    "with-singleflight": with_singleflight,
    "comparison": comparison,
    "sustained": sustained,
}
