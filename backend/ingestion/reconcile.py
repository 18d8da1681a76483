"""Merge catalog snapshots with activity and open-interest feeds."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, replace

from loguru import logger

from app.domain import UNCATEGORIZED, MarketSnapshot, Platform, SummaryStats

from .activity import ActivityWindow
from .normalize import dedupe_by_id
from .open_interest import OpenInterestResult
from .summary import apply_authoritative_totals, compute_summary


@dataclass(slots=True)
class ReconciledPlatform:
    snapshots: list[MarketSnapshot]
    summary: SummaryStats
    stubs_created: int = 0
    dropped_inactive: int = 0


def stub_snapshot(platform: Platform, condition_id: str, window: ActivityWindow) -> MarketSnapshot:
    return MarketSnapshot(
        id=f"{platform.prefix}_cid_{condition_id}",
        platform=platform,
        question=condition_id,
        category=UNCATEGORIZED,
        volume_24h=window.by_market_usd.get(condition_id, 0.0),
        last_trade_ts=window.by_last_trade_ts.get(condition_id),
        raw={"_conditionId": condition_id, "_stub": True},
    )


def index_by_condition_id(snapshots: Sequence[MarketSnapshot]) -> dict[str, MarketSnapshot]:
    index: dict[str, MarketSnapshot] = {}
    for snapshot in snapshots:
        condition_id = snapshot.condition_id
        if condition_id is None:
            continue
        if condition_id in index:
            logger.debug(
                "Condition id {} shared by {} and {}; keeping the first",
                condition_id,
                index[condition_id].id,
                snapshot.id,
            )
            continue
        index[condition_id] = snapshot
    return index


def reconcile_snapshots(
    platform: Platform,
    catalog: Sequence[MarketSnapshot],
    activity: ActivityWindow | None,
    open_interest: OpenInterestResult | None,
) -> ReconciledPlatform:
    """Produce the active snapshot set and its summary for one platform run.

    When ``activity`` is None the feed was not configured or unreachable:
    catalog volume and timestamps stand, no stubs are created and the active
    window filter is skipped because there is no authoritative trade clock.
    """

    snapshots = [replace(snapshot) for snapshot in dedupe_by_id(catalog)]
    index = index_by_condition_id(snapshots)
    stubs_created = 0

    if activity is not None:
        for condition_id in activity.by_market_usd:
            if condition_id in index:
                continue
            stub = stub_snapshot(platform, condition_id, activity)
            snapshots.append(stub)
            index[condition_id] = stub
            stubs_created += 1

        # Markets without a condition id cannot match activity; their catalog
        # estimate and clock stand.
        for snapshot in snapshots:
            if snapshot.condition_id is not None:
                snapshot.volume_24h = 0.0
                snapshot.last_trade_ts = None
        for condition_id, usd in activity.by_market_usd.items():
            matched = index[condition_id]
            matched.volume_24h = usd
            matched.last_trade_ts = activity.by_last_trade_ts.get(condition_id)

    if open_interest is not None and open_interest.available:
        for condition_id, oi in open_interest.by_market.items():
            matched = index.get(condition_id)
            if matched is not None:
                matched.open_interest = oi

    dropped = 0
    if activity is not None:
        active = [snapshot for snapshot in snapshots if activity.contains(snapshot.last_trade_ts)]
        dropped = len(snapshots) - len(active)
        snapshots = active

    summary = compute_summary(snapshots, platforms=(platform,))
    platform_volume = activity.total_usd if activity is not None else summary.total_volume_24h
    platform_oi = open_interest.total if open_interest is not None and open_interest.available else 0.0
    apply_authoritative_totals(
        summary,
        platform,
        volume_24h=platform_volume,
        open_interest=platform_oi,
    )

    logger.info(
        "Reconciled {}: {} active ({} stubs, {} inactive dropped), vol24h={:.2f}, oi={:.2f}",
        platform.value,
        len(snapshots),
        stubs_created,
        dropped,
        summary.total_volume_24h,
        summary.total_open_interest,
    )
    return ReconciledPlatform(
        snapshots=snapshots,
        summary=summary,
        stubs_created=stubs_created,
        dropped_inactive=dropped,
    )
