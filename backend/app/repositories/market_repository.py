"""Market-focused data access helpers."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.domain import MarketSnapshot, Platform, PlatformTotals
from app.models import Market, MarketSnapshotRecord, PlatformRollup


class MarketRepository:
    """Encapsulate all snapshot persistence concerns."""

    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Mutations

    def upsert_snapshot(self, snapshot: MarketSnapshot, *, updated_at: datetime) -> Market:
        existing = self._session.get(Market, snapshot.id)
        if existing is None:
            existing = Market(id=snapshot.id)
            self._session.add(existing)

        existing.platform = snapshot.platform.value
        existing.question = snapshot.question
        existing.category = snapshot.category
        existing.yes_price = snapshot.yes_price
        existing.no_price = snapshot.no_price
        existing.volume_24h = snapshot.volume_24h
        existing.open_interest = snapshot.open_interest
        existing.last_trade_ts = snapshot.last_trade_ts
        existing.is_active = True
        existing.updated_at = updated_at
        return existing

    def upsert_snapshots(self, snapshots: Iterable[MarketSnapshot], *, updated_at: datetime) -> int:
        count = 0
        for snapshot in snapshots:
            self.upsert_snapshot(snapshot, updated_at=updated_at)
            count += 1
        return count

    def deactivate_missing(
        self,
        platform: Platform,
        active_ids: Sequence[str],
        *,
        updated_at: datetime,
    ) -> int:
        """Zero volume and clear the active flag on rows absent from this run."""

        statement = (
            update(Market)
            .where(Market.platform == platform.value)
            .where(Market.id.not_in(list(active_ids)))
            .where(Market.is_active.is_(True))
            .values(is_active=False, volume_24h=0.0, updated_at=updated_at)
            .execution_options(synchronize_session="fetch")
        )
        result = self._session.execute(statement)
        return result.rowcount or 0

    def record_point_in_time(
        self,
        snapshots: Iterable[MarketSnapshot],
        *,
        run_id: str,
        captured_at: datetime,
    ) -> int:
        records = [
            MarketSnapshotRecord(
                run_id=run_id,
                market_id=snapshot.id,
                platform=snapshot.platform.value,
                captured_at=captured_at,
                yes_price=snapshot.yes_price,
                no_price=snapshot.no_price,
                volume_24h=snapshot.volume_24h,
                open_interest=snapshot.open_interest,
            )
            for snapshot in snapshots
        ]
        self._session.add_all(records)
        return len(records)

    def record_rollup(
        self,
        platform: Platform,
        totals: PlatformTotals,
        *,
        run_id: str,
        captured_at: datetime,
    ) -> PlatformRollup:
        rollup = PlatformRollup(
            run_id=run_id,
            platform=platform.value,
            captured_at=captured_at,
            active_markets=totals.active,
            volume_24h=totals.vol24h,
            open_interest=totals.oi,
        )
        self._session.add(rollup)
        return rollup

    # ------------------------------------------------------------------
    # Queries

    def get_market(self, market_id: str) -> Market | None:
        return self._session.get(Market, market_id)

    def list_active(self, platform: Platform) -> list[Market]:
        query = (
            select(Market)
            .where(Market.platform == platform.value)
            .where(Market.is_active.is_(True))
            .order_by(Market.volume_24h.desc())
        )
        return list(self._session.execute(query).scalars().all())

    def latest_rollup(self, platform: Platform) -> PlatformRollup | None:
        query = (
            select(PlatformRollup)
            .where(PlatformRollup.platform == platform.value)
            .order_by(PlatformRollup.captured_at.desc(), PlatformRollup.rollup_id.desc())
            .limit(1)
        )
        return self._session.execute(query).scalars().first()
