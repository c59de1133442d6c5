"""Environment-driven defaults for the harness.

Every value can be overridden per run; these are only what a run falls back to
when the scenario configuration or the caller does not say otherwise.
"""

from __future__ import annotations

import os
from typing import Optional

# ── Target ──────────────────────────────────────────────────────────────────

TARGET_BASE_URL = os.environ.get("TARGET_BASE_URL", "http://app:8080")
RESET_PATH = os.environ.get("RESET_PATH", "/api/clear-cache")
REQUEST_TIMEOUT_S = float(os.environ.get("REQUEST_TIMEOUT_S", "10"))

# ── Scheduling ──────────────────────────────────────────────────────────────

GRACEFUL_STOP_S = float(os.environ.get("GRACEFUL_STOP_S", "30"))
RUN_CEILING_S = float(os.environ.get("RUN_CEILING_S", "600"))
RAMP_TICK_S = float(os.environ.get("RAMP_TICK_S", "0.1"))

# ── Setup ───────────────────────────────────────────────────────────────────

SETUP_RESET_ATTEMPTS = int(os.environ.get("SETUP_RESET_ATTEMPTS", "3"))
SETUP_RESET_BACKOFF_S = float(os.environ.get("SETUP_RESET_BACKOFF_S", "1"))

# ── Reporting ───────────────────────────────────────────────────────────────

METRICS_JSONL_PATH: Optional[str] = os.environ.get("METRICS_JSONL_PATH") or None
PUSHGATEWAY_URL: Optional[str] = os.environ.get("PUSHGATEWAY_URL") or None


def _optional_float(name: str) -> Optional[float]:
    raw = os.environ.get(name, "").strip()
    return float(raw) if raw else None


# Unset means observational: the run never fails on check ratio.
FAILED_CHECK_THRESHOLD = _optional_float("FAILED_CHECK_THRESHOLD")
