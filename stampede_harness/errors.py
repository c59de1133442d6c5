"""Exception taxonomy for the harness.

Only ``SetupError`` and ``ConfigurationError`` are fatal to a run; both are
raised before any scenario starts. ``TransportError`` and
``AssertionFailure`` stay local to one iteration, and ``SchedulingOverrun`` is
surfaced as a report warning.
"""

from __future__ import annotations


class HarnessError(Exception):
    """Base class for harness errors."""


class TransportError(HarnessError):
    """The target could not be reached (connect failure or timeout)."""

    def __init__(self, endpoint: str, reason: str) -> None:
        super().__init__(f"{endpoint}: {reason}")
        self.endpoint = endpoint
        self.reason = reason


class AssertionFailure(HarnessError):
    """A response arrived but a named check did not hold.

    Check predicates may raise this to attach a reason to the failure.
    """


class SchedulingOverrun(HarnessError):
    """A scenario ran longer than its max duration because of slow responses."""

    def __init__(self, scenario: str, elapsed_s: float, max_duration_s: float) -> None:
        super().__init__(
            f"scenario {scenario!r} ran {elapsed_s:.2f}s, "
            f"past its max duration of {max_duration_s:.2f}s"
        )
        self.scenario = scenario
        self.elapsed_s = elapsed_s
        self.max_duration_s = max_duration_s


class SetupError(HarnessError):
    """The pre-run cache reset failed, so no comparison would be valid."""


class ConfigurationError(HarnessError, ValueError):
    """The run configuration cannot be executed, e.g. an unknown target function."""
