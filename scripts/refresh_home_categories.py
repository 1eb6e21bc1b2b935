#!/usr/bin/env python3
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path

from catalog_backend.config import ConfigurationError, EngineSettings
from catalog_backend.engine import CatalogEngine
from catalog_backend.repositories.content_cache import ContentCacheError
from catalog_backend.utils.env import load_env


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="refresh_home_categories",
        description="Run one home-category refresh cycle and write the snapshot file.",
    )
    parser.add_argument("--snapshot", type=Path, default=None, help="Snapshot path (default: HOME_SNAPSHOT_PATH).")
    parser.add_argument("--json", action="store_true", help="Print the refresh summary as JSON.")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging.")
    return parser.parse_args(argv)


async def _run(engine: CatalogEngine) -> dict[str, object] | None:
    await engine.start(refresh_on_start=False, schedule_daily=False)
    try:
        summary = await engine.refresh_now()
    finally:
        await engine.shutdown()
    return summary.as_dict() if summary is not None else None


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(sys.argv[1:] if argv is None else argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    load_env()

    try:
        settings = EngineSettings.from_env()
    except ConfigurationError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2
    if args.snapshot is not None:
        settings = replace(settings, snapshot_path=args.snapshot)

    try:
        engine = CatalogEngine(settings)
    except ContentCacheError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2

    report = asyncio.run(_run(engine))
    if report is None:
        print("refresh_home_categories: a refresh was already running; nothing done")
        return 1

    if args.json:
        print(json.dumps(report, indent=2))
    else:
        committed = report["committed"]
        print(
            "refresh_home_categories: "
            f"committed={committed} dropped={report['dropped']} failed={report['failed']}"
        )
    return 0 if not report["failed"] else 1


if __name__ == "__main__":
    raise SystemExit(main())
