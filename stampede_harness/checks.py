"""Named check predicates evaluated against every response."""

from __future__ import annotations

from typing import Callable, Mapping

import httpx

from .errors import AssertionFailure

CheckFn = Callable[[httpx.Response], bool]


def status_is(expected: int) -> CheckFn:
    def check(response: httpx.Response) -> bool:
        if response.status_code != expected:
            raise AssertionFailure(f"expected status {expected}, got {response.status_code}")
        return True

    return check


def has_body() -> CheckFn:
    def check(response: httpx.Response) -> bool:
        if not response.content:
            raise AssertionFailure("empty response body")
        return True

    return check


def evaluate_checks(
    response: httpx.Response, checks: Mapping[str, CheckFn]
) -> tuple[dict[str, bool], dict[str, str]]:
    """Run every predicate; a failing or broken predicate fails its check only.

    Returns (pass/fail per check, failure reason per failed check).
    """
    results: dict[str, bool] = {}
    reasons: dict[str, str] = {}
    for name, predicate in checks.items():
        try:
            results[name] = bool(predicate(response))
        except AssertionFailure as exc:
            results[name] = False
            reasons[name] = str(exc)
        except Exception as exc:
            results[name] = False
            reasons[name] = f"{type(exc).__name__}: {exc}"
        else:
            if not results[name]:
                reasons[name] = "check returned false"
    return results, reasons
