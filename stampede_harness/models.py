"""Pydantic scenario configuration: one closed model per executor kind."""

from __future__ import annotations

import json
from abc import abstractmethod
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from . import config


# ── Enums ───────────────────────────────────────────────────────────────────

class ExecutorKind(str, Enum):
    fixed = "fixed-vu-single-shot"
    shared = "shared-iteration-pool"
    ramping = "ramping-stages"


# ── Reset policies ──────────────────────────────────────────────────────────

class NoReset(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["none"] = "none"


class LeaderOnlyReset(BaseModel):
    """One reset per scenario, issued by the designated leader VU."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["leader_only"] = "leader_only"
    leader_ordinal: int = Field(default=0, ge=0)


class PeriodicReset(BaseModel):
    """Each VU resets on its own iterations 0, N, 2N, ..."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["periodic"] = "periodic"
    every: int = Field(default=50, ge=1)


ResetPolicy = Annotated[
    Union[NoReset, LeaderOnlyReset, PeriodicReset],
    Field(discriminator="kind"),
]


# ── Scenarios ───────────────────────────────────────────────────────────────

class Stage(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    duration_s: float = Field(..., gt=0)
    target: int = Field(..., ge=0)

    @model_validator(mode="before")
    @classmethod
    def _from_pair(cls, data: Any) -> Any:
        # Accept the compact (duration_s, target) form.
        if isinstance(data, (list, tuple)):
            if len(data) != 2:
                raise ValueError("stage must be a (duration_s, target) pair")
            return {"duration_s": data[0], "target": data[1]}
        return data


class ScenarioBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., min_length=1)
    exec: str = Field(..., min_length=1, description="Name of the target function")
    start_offset_s: float = Field(default=0.0, ge=0)
    max_duration_s: float = Field(default=30.0, gt=0)
    graceful_stop_s: float = Field(default_factory=lambda: config.GRACEFUL_STOP_S, ge=0)
    pacing_s: float = Field(default=0.0, ge=0)
    reset: ResetPolicy = Field(default_factory=NoReset)

    @property
    def kind(self) -> ExecutorKind:
        return ExecutorKind(self.executor)

    @property
    @abstractmethod
    def max_vus(self) -> int:
        ...

    @property
    def leader_capacity(self) -> int:
        """How many VU ordinals are guaranteed to run at least one iteration."""
        return self.max_vus

    @property
    def end_offset_s(self) -> float:
        return self.start_offset_s + self.max_duration_s

    @model_validator(mode="after")
    def _leader_in_range(self) -> "ScenarioBase":
        capacity = self.leader_capacity
        if isinstance(self.reset, LeaderOnlyReset) and capacity > 0:
            if self.reset.leader_ordinal >= capacity:
                raise ValueError(
                    f"leader_ordinal {self.reset.leader_ordinal} is outside "
                    f"the {capacity} VUs of scenario {self.name!r} that run an iteration"
                )
        return self


class FixedVUScenario(ScenarioBase):
    """N VUs, each running ``iterations`` iterations (one by default)."""

    executor: Literal["fixed-vu-single-shot"] = "fixed-vu-single-shot"
    vus: int = Field(..., ge=0)
    iterations: int = Field(default=1, ge=1)

    @property
    def max_vus(self) -> int:
        return self.vus


class SharedIterationScenario(ScenarioBase):
    """N VUs draining a shared budget of ``iterations``."""

    executor: Literal["shared-iteration-pool"] = "shared-iteration-pool"
    vus: int = Field(..., ge=0)
    iterations: int = Field(..., ge=0)

    @property
    def max_vus(self) -> int:
        return self.vus

    @property
    def leader_capacity(self) -> int:
        # VUs take from the shared budget in ordinal order, one each, before any
        # VU takes a second iteration.
        return min(self.vus, self.iterations)


class RampingStagesScenario(ScenarioBase):
    """VU count follows a piecewise-linear profile over ``stages``."""

    executor: Literal["ramping-stages"] = "ramping-stages"
    stages: List[Stage] = Field(..., min_length=1)
    start_vus: int = Field(default=0, ge=0)

    @model_validator(mode="before")
    @classmethod
    def _default_max_duration(cls, data: Any) -> Any:
        if not isinstance(data, dict) or data.get("max_duration_s") is not None:
            return data
        total = 0.0
        try:
            for stage in data.get("stages") or []:
                if isinstance(stage, Stage):
                    total += stage.duration_s
                elif isinstance(stage, dict):
                    total += float(stage.get("duration_s", 0))
                else:
                    total += float(stage[0])
        except (TypeError, ValueError, IndexError, KeyError):
            # Malformed stages are reported by field validation.
            return data
        if total > 0:
            data = {**data, "max_duration_s": total}
        return data

    @property
    def max_vus(self) -> int:
        return max([self.start_vus] + [stage.target for stage in self.stages])

    @property
    def stages_duration_s(self) -> float:
        return sum(stage.duration_s for stage in self.stages)


Scenario = Annotated[
    Union[FixedVUScenario, SharedIterationScenario, RampingStagesScenario],
    Field(discriminator="executor"),
]


# ── Run ─────────────────────────────────────────────────────────────────────

class RunConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    title: str = "Cache Stampede Harness"
    scenarios: List[Scenario] = Field(..., min_length=1)
    run_ceiling_s: float = Field(default_factory=lambda: config.RUN_CEILING_S, gt=0)
    failed_check_threshold: Optional[float] = Field(
        default_factory=lambda: config.FAILED_CHECK_THRESHOLD, ge=0, le=1
    )
    setup_reset: bool = True

    @model_validator(mode="after")
    def _check_timeline(self) -> "RunConfig":
        seen: set[str] = set()
        for scenario in self.scenarios:
            if scenario.name in seen:
                raise ValueError(f"duplicate scenario name {scenario.name!r}")
            seen.add(scenario.name)
            if scenario.end_offset_s > self.run_ceiling_s:
                raise ValueError(
                    f"scenario {scenario.name!r} ends at {scenario.end_offset_s}s, "
                    f"past the run ceiling of {self.run_ceiling_s}s"
                )
        return self

    def overlapping(self) -> list[tuple[str, str]]:
        """Pairs of scenarios whose active windows intersect."""
        pairs = []
        for i, first in enumerate(self.scenarios):
            for second in self.scenarios[i + 1:]:
                if (
                    first.start_offset_s < second.end_offset_s
                    and second.start_offset_s < first.end_offset_s
                ):
                    pairs.append((first.name, second.name))
        return pairs

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "RunConfig":
        return cls.model_validate(json.loads(Path(path).read_text()))


def sequential(scenarios: list, gap_s: float = 0.0) -> list:
    """Re-offset scenarios so each starts after the previous one's max duration."""
    if gap_s < 0:
        raise ValueError("gap_s must be non-negative")
    placed = []
    offset = 0.0
    for scenario in scenarios:
        placed.append(scenario.model_copy(update={"start_offset_s": offset}))
        offset += scenario.max_duration_s + gap_s
    return placed
