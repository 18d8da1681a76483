"""Typed domain representations shared by ingestion, publishing, and the read API."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from dateutil import parser as date_parser


UNCATEGORIZED = "uncategorized"


class Platform(str, Enum):
    POLYMARKET = "polymarket"
    KALSHI = "kalshi"

    @property
    def prefix(self) -> str:
        """Namespace used for snapshot ids and cache keys."""

        return _PLATFORM_PREFIXES[self]

    @classmethod
    def from_prefix(cls, prefix: str) -> "Platform":
        for platform, candidate in _PLATFORM_PREFIXES.items():
            if candidate == prefix:
                return platform
        raise ValueError(f"unknown platform prefix: {prefix}")


_PLATFORM_PREFIXES = {
    Platform.POLYMARKET: "poly",
    Platform.KALSHI: "kalshi",
}


def isoformat_utc(value: datetime) -> str:
    return value.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _parse_timestamp(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    try:
        parsed = date_parser.isoparse(str(value))
    except (ValueError, TypeError):
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


@dataclass(slots=True)
class MarketSnapshot:
    """Canonical per-market record produced by one ingestion cycle."""

    id: str
    platform: Platform
    question: str
    category: str = UNCATEGORIZED
    yes_price: float | None = None
    no_price: float | None = None
    volume_24h: float | None = None
    open_interest: float | None = None
    last_trade_ts: datetime | None = None
    # Upstream payload plus derived correlation ids; never serialized.
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @property
    def condition_id(self) -> str | None:
        value = self.raw.get("_conditionId")
        return value if isinstance(value, str) else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "platform": self.platform.value,
            "question": self.question,
            "category": self.category,
            "yesPrice": self.yes_price,
            "noPrice": self.no_price,
            "volume24h": self.volume_24h,
            "openInterest": self.open_interest,
            "lastTradeTs": isoformat_utc(self.last_trade_ts) if self.last_trade_ts else None,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "MarketSnapshot":
        return cls(
            id=str(payload["id"]),
            platform=Platform(payload["platform"]),
            question=str(payload.get("question") or ""),
            category=payload.get("category") or UNCATEGORIZED,
            yes_price=payload.get("yesPrice"),
            no_price=payload.get("noPrice"),
            volume_24h=payload.get("volume24h"),
            open_interest=payload.get("openInterest"),
            last_trade_ts=_parse_timestamp(payload.get("lastTradeTs")),
        )


@dataclass(slots=True)
class PlatformTotals:
    active: int = 0
    vol24h: float = 0.0
    oi: float = 0.0

    def is_zero(self) -> bool:
        return self.active == 0 and self.vol24h == 0 and self.oi == 0

    def to_dict(self) -> dict[str, Any]:
        return {"active": self.active, "vol24h": self.vol24h, "oi": self.oi}

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "PlatformTotals":
        return cls(
            active=int(payload.get("active") or 0),
            vol24h=float(payload.get("vol24h") or 0.0),
            oi=float(payload.get("oi") or 0.0),
        )


@dataclass(slots=True)
class CategoryBucket:
    category: str
    vol24h: float = 0.0
    count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"category": self.category, "vol24h": self.vol24h, "count": self.count}


@dataclass(slots=True)
class SummaryStats:
    """Aggregate view over a snapshot set."""

    active_markets: int = 0
    total_volume_24h: float = 0.0
    total_open_interest: float = 0.0
    by_platform: dict[Platform, PlatformTotals] = field(default_factory=dict)
    by_category: list[CategoryBucket] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "activeMarkets": self.active_markets,
            "totalVolume24h": self.total_volume_24h,
            "totalOpenInterest": self.total_open_interest,
            "byPlatform": {
                platform.value: totals.to_dict() for platform, totals in self.by_platform.items()
            },
            "byCategory": [bucket.to_dict() for bucket in self.by_category],
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "SummaryStats":
        by_platform: dict[Platform, PlatformTotals] = {}
        for key, totals in (payload.get("byPlatform") or {}).items():
            try:
                platform = Platform(key)
            except ValueError:
                continue
            if isinstance(totals, dict):
                by_platform[platform] = PlatformTotals.from_dict(totals)
        return cls(
            active_markets=int(payload.get("activeMarkets") or 0),
            total_volume_24h=float(payload.get("totalVolume24h") or 0.0),
            total_open_interest=float(payload.get("totalOpenInterest") or 0.0),
            by_platform=by_platform,
            by_category=[
                CategoryBucket(
                    category=str(item.get("category") or UNCATEGORIZED),
                    vol24h=float(item.get("vol24h") or 0.0),
                    count=int(item.get("count") or 0),
                )
                for item in payload.get("byCategory") or []
                if isinstance(item, dict)
            ],
        )
