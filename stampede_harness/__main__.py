"""Run a built-in profile or a JSON scenario file against the target.

  python -m stampede_harness comparison
  python -m stampede_harness with-singleflight --vus 100 --base-url http://localhost:8080
  python -m stampede_harness --config scenarios.json --threshold 0.01 --jsonl out/requests.jsonl

Exit status: 0 passed, 1 failed-check ratio above threshold, 2 setup failed or
invalid configuration.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from . import config
from .errors import ConfigurationError, SetupError
from .models import RunConfig
from .orchestrator import RunOrchestrator
from .profiles import PROFILES
from .sinks import build_default_sink


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="stampede_harness", description=__doc__.splitlines()[0])
    parser.add_argument("profile", nargs="?", choices=sorted(PROFILES), help="built-in profile")
    parser.add_argument("--config", type=Path, help="JSON run configuration file")
    parser.add_argument("--vus", type=int, help="VU count for the built-in burst profiles")
    parser.add_argument("--base-url", default=config.TARGET_BASE_URL)
    parser.add_argument("--timeout", type=float, default=config.REQUEST_TIMEOUT_S)
    parser.add_argument("--threshold", type=float, help="fail when the failed-check ratio exceeds this")
    parser.add_argument("--jsonl", help="write one JSON record per request to this file")
    parser.add_argument("--pushgateway", help="push Prometheus metrics here when the run ends")
    parser.add_argument("--report-json", type=Path, help="write the run report as JSON")
    return parser


def load_run_config(args: argparse.Namespace) -> RunConfig:
    if args.config is not None:
        run_config = RunConfig.from_file(args.config)
    elif args.profile is not None:
        factory = PROFILES[args.profile]
        run_config = factory(args.vus) if args.vus is not None else factory()
    else:
        raise SystemExit("either a profile or --config is required")
    if args.threshold is not None:
        run_config = RunConfig.model_validate(
            {**run_config.model_dump(), "failed_check_threshold": args.threshold}
        )
    return run_config


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        run_config = load_run_config(args)
    except ValidationError as exc:
        parser.error(f"invalid run configuration:\n{exc}")
    orchestrator = RunOrchestrator(
        base_url=args.base_url,
        timeout_s=args.timeout,
        sink=build_default_sink(args.jsonl, args.pushgateway),
    )
    try:
        report = orchestrator.run_sync(run_config)
    except SetupError as exc:
        print(f"[orchestrator] Aborting before any scenario: {exc}", file=sys.stderr)
        return 2
    except ConfigurationError as exc:
        print(f"[orchestrator] Invalid run configuration: {exc}", file=sys.stderr)
        return 2
    if args.report_json is not None:
        args.report_json.write_text(report.model_dump_json(indent=2))
    return 0 if report.passed else 1


if __name__ == "__main__":
    sys.exit(main())
