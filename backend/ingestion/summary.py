"""Reductions from snapshot sets to SummaryStats, single- and cross-platform."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from app.domain import (
    UNCATEGORIZED,
    CategoryBucket,
    MarketSnapshot,
    Platform,
    PlatformTotals,
    SummaryStats,
    isoformat_utc,
)


TOP_MARKETS_LIMIT = 10


def _value(number: float | None) -> float:
    return number if number is not None else 0.0


def compute_summary(
    snapshots: Sequence[MarketSnapshot],
    platforms: Iterable[Platform] = tuple(Platform),
) -> SummaryStats:
    by_platform = {platform: PlatformTotals() for platform in platforms}
    # dict preserves first-seen order; sorted() is stable for ties.
    categories: dict[str, CategoryBucket] = {}
    total_volume = 0.0
    total_oi = 0.0

    for snapshot in snapshots:
        volume = _value(snapshot.volume_24h)
        oi = _value(snapshot.open_interest)
        total_volume += volume
        total_oi += oi

        totals = by_platform.setdefault(snapshot.platform, PlatformTotals())
        totals.active += 1
        totals.vol24h += volume
        totals.oi += oi

        key = snapshot.category or UNCATEGORIZED
        bucket = categories.get(key)
        if bucket is None:
            bucket = categories[key] = CategoryBucket(category=key)
        bucket.vol24h += volume
        bucket.count += 1

    return SummaryStats(
        active_markets=len(snapshots),
        total_volume_24h=total_volume,
        total_open_interest=total_oi,
        by_platform=by_platform,
        by_category=sorted(categories.values(), key=lambda bucket: bucket.vol24h, reverse=True),
    )


def apply_authoritative_totals(
    summary: SummaryStats,
    platform: Platform,
    *,
    volume_24h: float,
    open_interest: float,
) -> SummaryStats:
    """Replace a single-platform summary's totals with feed-level aggregates."""

    totals = summary.by_platform.setdefault(platform, PlatformTotals())
    totals.vol24h = volume_24h
    totals.oi = open_interest
    summary.total_volume_24h = sum(item.vol24h for item in summary.by_platform.values())
    summary.total_open_interest = sum(item.oi for item in summary.by_platform.values())
    return summary


@dataclass(slots=True)
class PlatformCache:
    """One platform's published output, as read back for combination."""

    summary: SummaryStats | None
    snapshots: list[MarketSnapshot] = field(default_factory=list)


@dataclass(slots=True)
class CombinedView:
    summary: SummaryStats
    snapshots: list[MarketSnapshot]
    top_markets: list[MarketSnapshot]
    generated_at: datetime

    @property
    def hottest_market(self) -> MarketSnapshot | None:
        return self.top_markets[0] if self.top_markets else None

    def summary_payload(self) -> dict[str, Any]:
        payload = self.summary.to_dict()
        payload["topMarkets"] = [snapshot.to_dict() for snapshot in self.top_markets]
        hottest = self.hottest_market
        payload["hottestMarket"] = hottest.to_dict() if hottest else None
        payload["generatedAt"] = isoformat_utc(self.generated_at)
        return payload


def combine_platforms(
    parts: Mapping[Platform, PlatformCache],
    *,
    generated_at: datetime,
    top_limit: int = TOP_MARKETS_LIMIT,
) -> CombinedView:
    snapshots = [snapshot for part in parts.values() for snapshot in part.snapshots]
    recomputed = compute_summary(snapshots)

    by_platform: dict[Platform, PlatformTotals] = {}
    for platform in Platform:
        fallback = recomputed.by_platform.get(platform, PlatformTotals())
        part = parts.get(platform)
        authoritative = None
        if part is not None and part.summary is not None:
            authoritative = part.summary.by_platform.get(platform)
        if authoritative is None or authoritative.is_zero():
            chosen = fallback
        else:
            chosen = authoritative
        by_platform[platform] = PlatformTotals(chosen.active, chosen.vol24h, chosen.oi)

    summary = SummaryStats(
        active_markets=sum(totals.active for totals in by_platform.values()),
        total_volume_24h=sum(totals.vol24h for totals in by_platform.values()),
        total_open_interest=sum(totals.oi for totals in by_platform.values()),
        by_platform=by_platform,
        by_category=recomputed.by_category,
    )
    top_markets = sorted(snapshots, key=lambda snapshot: _value(snapshot.volume_24h), reverse=True)
    return CombinedView(
        summary=summary,
        snapshots=snapshots,
        top_markets=top_markets[:top_limit],
        generated_at=generated_at,
    )
