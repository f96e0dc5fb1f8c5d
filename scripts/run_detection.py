#!/usr/bin/env python
from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path

from backend.core.logging import configure_logging
from backend.core.reference import load_reference_dataset
from backend.core.schema import UploadedFile
from backend.domain import DetectionRequest
from backend.workers.detection import DetectionOrchestrator


async def _run(args: argparse.Namespace) -> dict:
    dataset = load_reference_dataset(Path(args.reference) if args.reference else None)
    files = tuple(UploadedFile(original_name=Path(name).name, stored_path=name) for name in args.file)
    request = DetectionRequest(files=files, dataset=dataset, routine_codes=tuple(args.routine))

    orchestrator = DetectionOrchestrator(tick_interval=args.tick, tier_timeout=args.timeout or None)
    await orchestrator.start(args.job_id, args.report, request)
    await orchestrator.wait(args.job_id)
    return orchestrator.status(args.job_id) or {}


def main() -> None:
    parser = argparse.ArgumentParser(description="Run one report detection job against local file names")
    parser.add_argument("--report", action="append", required=True, help="report key to detect (repeatable)")
    parser.add_argument("--file", action="append", default=[], help="uploaded file name or path (repeatable)")
    parser.add_argument("--routine", action="append", default=[], help="selected routine code (repeatable)")
    parser.add_argument("--reference", help="reference dataset (.json/.yaml), defaults to the bundled fixture")
    parser.add_argument("--job-id", default="cli-job", help="job identifier")
    parser.add_argument("--tick", type=float, default=0.0, help="seconds between steps")
    parser.add_argument("--timeout", type=float, default=30.0, help="per tier timeout in seconds, 0 disables")
    parser.add_argument("--verbose", action="store_true", help="log every tier call")
    args = parser.parse_args()

    configure_logging(level="DEBUG" if args.verbose else "INFO", force=True)
    snapshot = asyncio.run(_run(args))
    print(json.dumps(snapshot, indent=2, ensure_ascii=False))


if __name__ == "__main__":
    main()
