from typing import Any

from pydantic import BaseModel, Field, field_validator


class MarketSnapshot(BaseModel):
    id: str
    platform: str
    question: str
    category: str
    yesPrice: float | None = None
    noPrice: float | None = None
    volume24h: float | None = None
    openInterest: float | None = None
    lastTradeTs: str | None = None

    @field_validator("yesPrice", "noPrice", "volume24h", "openInterest", mode="before")
    @classmethod
    def _coerce_numeric(cls, value: Any) -> float | None:
        if value is None:
            return None
        return float(value)


class PlatformTotals(BaseModel):
    active: int = 0
    vol24h: float = 0.0
    oi: float = 0.0


class CategoryBucket(BaseModel):
    category: str
    vol24h: float = 0.0
    count: int = 0


class SummaryStats(BaseModel):
    activeMarkets: int
    totalVolume24h: float
    totalOpenInterest: float
    byPlatform: dict[str, PlatformTotals] = Field(default_factory=dict)
    byCategory: list[CategoryBucket] = Field(default_factory=list)

    @field_validator("totalVolume24h", "totalOpenInterest", mode="before")
    @classmethod
    def _coerce_numeric(cls, value: Any) -> float:
        if value is None:
            return 0.0
        return float(value)


class CombinedSummary(SummaryStats):
    topMarkets: list[MarketSnapshot] = Field(default_factory=list)
    hottestMarket: MarketSnapshot | None = None
    generatedAt: str | None = None
