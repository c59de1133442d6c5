"""Load-test harness comparing cache stampede and single-flight cache fill."""

from .errors import (
    AssertionFailure,
    ConfigurationError,
    SchedulingOverrun,
    SetupError,
    TransportError,
)
from .models import (
    FixedVUScenario,
    LeaderOnlyReset,
    NoReset,
    PeriodicReset,
    RampingStagesScenario,
    RunConfig,
    SharedIterationScenario,
    Stage,
    sequential,
)
from .orchestrator import RunOrchestrator
from .report import RunReport, ScenarioReport

__all__ = [
    "AssertionFailure",
    "ConfigurationError",
    "FixedVUScenario",
    "LeaderOnlyReset",
    "NoReset",
    "PeriodicReset",
    "RampingStagesScenario",
    "RunConfig",
    "RunOrchestrator",
    "RunReport",
    "ScenarioReport",
    "SchedulingOverrun",
    "SetupError",
    "SharedIterationScenario",
    "Stage",
    "TransportError",
    "sequential",
]
