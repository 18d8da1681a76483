"""Domain models representing normalized market data."""

from .models import (
    UNCATEGORIZED,
    CategoryBucket,
    MarketSnapshot,
    Platform,
    PlatformTotals,
    SummaryStats,
    isoformat_utc,
)

__all__ = [
    "UNCATEGORIZED",
    "CategoryBucket",
    "MarketSnapshot",
    "Platform",
    "PlatformTotals",
    "SummaryStats",
    "isoformat_utc",
]
