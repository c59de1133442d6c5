"""Timing helpers shared by the executor, pools and reports."""

from __future__ import annotations

import time


def now_iso() -> str:
    """ISO-8601 UTC timestamp string with millisecond precision."""
    now = time.time()
    return time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(now)) + f".{int(now * 1000) % 1000:03d}Z"


def monotonic() -> float:
    return time.monotonic()


class Timer:
    """Simple wall-clock context-manager timer."""

    def __init__(self) -> None:
        self.start: float = 0
        self.end: float = 0

    def __enter__(self) -> "Timer":
        self.start = time.monotonic()
        return self

    def __exit__(self, *_: object) -> None:
        self.end = time.monotonic()

    @property
    def elapsed_s(self) -> float:
        return self.end - self.start

    @property
    def elapsed_ms(self) -> float:
        return (self.end - self.start) * 1000.0
