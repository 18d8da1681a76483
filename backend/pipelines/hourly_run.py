from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Sequence

from loguru import logger

from app.core.config import Settings, get_settings
from app.db import build_db_components, init_db
from app.services.cache import HotCache
from ingestion.errors import IngestionError
from ingestion.publisher import SnapshotPublisher
from ingestion.service import (
    PlatformRun,
    run_combined,
    run_kalshi_ingestion,
    run_polymarket_ingestion,
)


SCOPES = ("polymarket", "kalshi", "combined")


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run one market ingestion cycle")
    parser.add_argument(
        "scope",
        choices=(*SCOPES, "all"),
        help="Platform to ingest, the combined rollup, or all three in order",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Fetch and reconcile without writing to the cache or database",
    )
    parser.add_argument(
        "--summary-path",
        type=Path,
        default=None,
        help="Write a JSON summary of the run(s) to the specified path",
    )
    return parser.parse_args(argv)


def configure_logging(settings: Settings) -> None:
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level)


def run_scopes(
    scopes: Sequence[str],
    settings: Settings,
    *,
    cache: HotCache,
    publisher: SnapshotPublisher | None,
    dry_run: bool = False,
) -> list[PlatformRun]:
    runs: list[PlatformRun] = []
    for scope in scopes:
        if scope == "polymarket":
            runs.append(run_polymarket_ingestion(settings, publisher=publisher, dry_run=dry_run))
        elif scope == "kalshi":
            runs.append(run_kalshi_ingestion(settings, publisher=publisher, dry_run=dry_run))
        elif scope == "combined":
            runs.append(run_combined(cache=cache, publisher=publisher, dry_run=dry_run))
        else:
            raise ValueError(f"unknown scope: {scope}")
    return runs


def _write_summary(path: Path, runs: Sequence[PlatformRun]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps([run.to_dict() for run in runs], indent=2, sort_keys=True) + "\n",
        encoding="utf-8",
    )


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    settings = get_settings()
    configure_logging(settings)
    scopes = SCOPES if args.scope == "all" else (args.scope,)

    engine, session_factory = build_db_components(settings.resolved_database_url, echo=settings.debug)
    cache = HotCache.from_url(settings.redis_url, ttl_seconds=settings.cache_ttl_seconds)
    try:
        publisher = None
        if not args.dry_run:
            init_db(engine)
            publisher = SnapshotPublisher(cache, session_factory)
        runs = run_scopes(scopes, settings, cache=cache, publisher=publisher, dry_run=args.dry_run)
    except IngestionError:
        logger.exception("Ingestion run aborted; previous cache and durable data left intact")
        return 1
    finally:
        cache.close()
        engine.dispose()

    if args.summary_path:
        _write_summary(args.summary_path, runs)
        logger.info("Wrote run summary to {}", args.summary_path)
    return 0


if __name__ == "__main__":
    sys.exit(main())
