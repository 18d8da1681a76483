from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime

from sqlalchemy.orm import Session

from app.domain import MarketSnapshot, Platform, PlatformTotals
from app.repositories import MarketRepository

from .models import Market, PlatformRollup


def upsert_snapshots(
    session: Session, snapshots: Iterable[MarketSnapshot], *, updated_at: datetime
) -> int:
    return MarketRepository(session).upsert_snapshots(snapshots, updated_at=updated_at)


def deactivate_missing(
    session: Session,
    platform: Platform,
    active_ids: Sequence[str],
    *,
    updated_at: datetime,
) -> int:
    return MarketRepository(session).deactivate_missing(
        platform, active_ids, updated_at=updated_at
    )


def record_point_in_time(
    session: Session,
    snapshots: Iterable[MarketSnapshot],
    *,
    run_id: str,
    captured_at: datetime,
) -> int:
    return MarketRepository(session).record_point_in_time(
        snapshots, run_id=run_id, captured_at=captured_at
    )


def record_rollup(
    session: Session,
    platform: Platform,
    totals: PlatformTotals,
    *,
    run_id: str,
    captured_at: datetime,
) -> PlatformRollup:
    return MarketRepository(session).record_rollup(
        platform, totals, run_id=run_id, captured_at=captured_at
    )


def get_market(session: Session, market_id: str) -> Market | None:
    return MarketRepository(session).get_market(market_id)
