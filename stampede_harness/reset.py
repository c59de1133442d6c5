"""Cache-Reset Coordinator and the per-scenario barrier it synchronises on."""

from __future__ import annotations

import asyncio
from typing import Optional

from . import config
from .errors import SetupError, TransportError
from .executor import RequestExecutor
from .models import LeaderOnlyReset, PeriodicReset


class ResetBarrier:
    """Cross-VU reset state for one scenario.

    Holds the leader's "fired" flag and the reset counters. All mutation goes
    through ``_lock``; followers wait on ``_leader_done``.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._leader_done = asyncio.Event()
        self._leader_claimed = False
        self.resets_issued = 0
        self.reset_failures = 0

    async def claim_leader(self) -> bool:
        async with self._lock:
            if self._leader_claimed:
                return False
            self._leader_claimed = True
            return True

    def release_followers(self) -> None:
        self._leader_done.set()

    async def wait_for_leader(self, timeout_s: Optional[float]) -> bool:
        """Block until the leader's reset finished; False on timeout."""
        try:
            await asyncio.wait_for(self._leader_done.wait(), timeout=timeout_s)
        except asyncio.TimeoutError:
            return False
        return True

    async def record(self, ok: bool) -> None:
        async with self._lock:
            self.resets_issued += 1
            if not ok:
                self.reset_failures += 1


class CacheResetCoordinator:
    def __init__(
        self,
        executor: RequestExecutor,
        path: str = config.RESET_PATH,
        leader_wait_s: Optional[float] = None,
    ) -> None:
        self.executor = executor
        self.path = path
        self.leader_wait_s = executor.timeout_s if leader_wait_s is None else leader_wait_s

    async def reset_if_due(
        self,
        vu_ordinal: int,
        iteration_index: int,
        policy,
        barrier: ResetBarrier,
    ) -> bool:
        """Issue a reset if ``policy`` says this VU/iteration should; True if sent."""
        if isinstance(policy, PeriodicReset):
            if iteration_index % policy.every != 0:
                return False
            return await self._issue(barrier)

        if isinstance(policy, LeaderOnlyReset):
            if iteration_index != 0:
                return False
            if vu_ordinal != policy.leader_ordinal:
                if not await barrier.wait_for_leader(self.leader_wait_s):
                    print(f"[reset] VU {vu_ordinal} gave up waiting for the leader's reset")
                return False
            if not await barrier.claim_leader():
                return False
            try:
                return await self._issue(barrier)
            finally:
                barrier.release_followers()

        return False

    async def _issue(self, barrier: ResetBarrier) -> bool:
        try:
            status = await self.executor.reset(self.path)
        except TransportError as exc:
            await barrier.record(ok=False)
            print(f"[reset] Reset failed: {exc}")
            return True
        if status != 200:
            print(f"[reset] Reset returned unexpected status {status}")
        await barrier.record(ok=status == 200)
        return True

    async def setup_reset(
        self,
        attempts: int = config.SETUP_RESET_ATTEMPTS,
        backoff_s: float = config.SETUP_RESET_BACKOFF_S,
    ) -> None:
        """Pre-run reset; raises ``SetupError`` when every attempt fails."""
        last_error = "no attempts made"
        for attempt in range(1, attempts + 1):
            try:
                status = await self.executor.reset(self.path)
            except TransportError as exc:
                last_error = str(exc)
            else:
                if status == 200:
                    print("[reset] Cache cleared before test")
                    return
                last_error = f"unexpected status {status}"
            print(f"[reset] Setup reset attempt {attempt}/{attempts} failed: {last_error}")
            if attempt < attempts:
                await asyncio.sleep(backoff_s * attempt)
        raise SetupError(f"cache reset failed after {attempts} attempts: {last_error}")
