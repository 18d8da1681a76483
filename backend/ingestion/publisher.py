from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Any

from loguru import logger
from sqlalchemy.orm import Session, sessionmaker

from app import crud
from app.db import session_scope
from app.domain import MarketSnapshot, Platform, PlatformTotals, SummaryStats
from app.services.cache import COMBINED_SCOPE, HotCache, markets_key, summary_key

from .summary import CombinedView


class SnapshotPublisher:
    """Write one run's results to the durable store and the hot cache.

    Durable writes share one transaction; the cache pipeline executes inside
    it, so a cache failure rolls the database back and a database failure
    leaves the cache untouched.
    """

    def __init__(
        self,
        cache: HotCache,
        session_factory: sessionmaker[Session] | None = None,
    ) -> None:
        self.cache = cache
        self.session_factory = session_factory

    def publish_platform(
        self,
        *,
        run_id: str,
        platform: Platform,
        snapshots: Sequence[MarketSnapshot],
        summary: SummaryStats,
        captured_at: datetime,
    ) -> None:
        scope = platform.prefix
        values: dict[str, Any] = {
            markets_key(scope): [snapshot.to_dict() for snapshot in snapshots],
            summary_key(scope): summary.to_dict(),
        }
        if self.session_factory is None:
            self.cache.set_many_json(values)
        else:
            with session_scope(self.session_factory) as session:
                crud.upsert_snapshots(session, snapshots, updated_at=captured_at)
                deactivated = crud.deactivate_missing(
                    session,
                    platform,
                    [snapshot.id for snapshot in snapshots],
                    updated_at=captured_at,
                )
                crud.record_point_in_time(
                    session, snapshots, run_id=run_id, captured_at=captured_at
                )
                crud.record_rollup(
                    session,
                    platform,
                    summary.by_platform.get(platform, PlatformTotals()),
                    run_id=run_id,
                    captured_at=captured_at,
                )
                session.flush()
                self.cache.set_many_json(values)
            logger.info("Marked {} stale {} markets inactive", deactivated, platform.value)
        logger.info(
            "Published {} {} snapshots to {}",
            len(snapshots),
            platform.value,
            ", ".join(values),
        )

    def publish_combined(self, view: CombinedView) -> None:
        values = {
            markets_key(COMBINED_SCOPE): [snapshot.to_dict() for snapshot in view.snapshots],
            summary_key(COMBINED_SCOPE): view.summary_payload(),
        }
        self.cache.set_many_json(values)
        logger.info("Published combined view of {} markets", len(view.snapshots))
