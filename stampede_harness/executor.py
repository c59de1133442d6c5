"""Request Executor: one HTTP call, its checks, and one emitted outcome."""

from __future__ import annotations

from typing import Mapping, Optional

import httpx

from . import config
from .aggregate import OutcomeAggregate, RequestOutcome
from .checks import CheckFn, evaluate_checks
from .errors import TransportError
from .sinks import MetricsSink, NullSink
from .timing import Timer


def _describe(exc: httpx.TransportError) -> str:
    detail = str(exc) or "no detail"
    return f"{type(exc).__name__}: {detail}"


class RequestExecutor:
    """Issues GET requests against the target on behalf of virtual users.

    A client passed in is borrowed and left open; otherwise the executor builds
    one with an unbounded connection pool so VU count equals real concurrency.
    """

    def __init__(
        self,
        base_url: str = config.TARGET_BASE_URL,
        timeout_s: float = config.REQUEST_TIMEOUT_S,
        sink: Optional[MetricsSink] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.timeout_s = timeout_s
        self.sink = sink or NullSink()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout_s,
            limits=httpx.Limits(max_connections=None, max_keepalive_connections=None),
        )

    async def execute(
        self,
        endpoint: str,
        checks: Mapping[str, CheckFn],
        *,
        scenario: str,
        vu: int,
        iteration: int,
        recorder: OutcomeAggregate,
    ) -> RequestOutcome:
        """Perform one request and fold its outcome into ``recorder``.

        Failed checks are recorded, never raised. Raises ``TransportError``
        after recording when the target cannot be reached.
        """
        timer = Timer()
        try:
            with timer:
                response = await self._client.get(endpoint, timeout=self.timeout_s)
        except httpx.TransportError as exc:
            reason = _describe(exc)
            outcome = RequestOutcome(
                scenario=scenario,
                endpoint=endpoint,
                vu=vu,
                iteration=iteration,
                status_code=0,
                body_length=0,
                latency_ms=timer.elapsed_ms,
                checks={name: False for name in checks},
                failure_reasons={name: f"target unreachable: {reason}" for name in checks},
                error=reason,
            )
            self._emit(outcome, recorder)
            raise TransportError(endpoint, reason) from exc

        results, reasons = evaluate_checks(response, checks)
        outcome = RequestOutcome(
            scenario=scenario,
            endpoint=endpoint,
            vu=vu,
            iteration=iteration,
            status_code=response.status_code,
            body_length=len(response.content),
            latency_ms=timer.elapsed_ms,
            checks=results,
            failure_reasons=reasons,
        )
        self._emit(outcome, recorder)
        return outcome

    async def reset(self, path: str = config.RESET_PATH) -> int:
        """Call the target's cache-reset endpoint and return its status code."""
        try:
            response = await self._client.get(path, timeout=self.timeout_s)
        except httpx.TransportError as exc:
            raise TransportError(path, _describe(exc)) from exc
        return response.status_code

    def _emit(self, outcome: RequestOutcome, recorder: OutcomeAggregate) -> None:
        recorder.record(outcome)
        self.sink.emit(outcome.to_record())

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
