from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from loguru import logger

from app.domain import UNCATEGORIZED, MarketSnapshot, Platform

from .utils import (
    as_list,
    coerce_number,
    coerce_timestamp,
    first_present,
    normalize_condition_id,
    numeric_id_from_slug,
)


# Ordered field-name candidates per logical attribute; the first present wins.
POLYMARKET_FIELDS: dict[str, tuple[str, ...]] = {
    "id": ("id", "slug", "ticker", "question"),
    "question": ("question", "title"),
    "yes_price": ("yes_price", "yesPrice", "probability"),
    "no_price": ("no_price", "noPrice"),
    "volume_24h": ("volume24hr", "volume_24h", "volume24h", "day_volume", "dayVolume"),
    "open_interest": ("open_interest", "openInterest", "oi"),
    "last_trade_ts": ("last_trade_time", "lastTradeAt", "lastTradeTs", "updatedAt"),
    "condition_id": ("conditionId", "condition_id"),
    "source_market_id": ("id", "marketId"),
    "event_id": ("eventId", "event_id"),
}

KALSHI_FIELDS: dict[str, tuple[str, ...]] = {
    "id": ("ticker", "id", "event_ticker", "title"),
    "question": ("title", "subtitle", "question"),
    # Integer cents.
    "yes_price": ("yes_price", "last_price", "yes_bid", "yes_ask"),
    "no_price": ("no_price", "no_bid", "no_ask"),
    # Fixed-point dollar strings, e.g. "0.4500".
    "yes_price_dollars": ("last_price_dollars", "yes_bid_dollars", "yes_ask_dollars"),
    "no_price_dollars": ("no_bid_dollars", "no_ask_dollars"),
    "volume_24h": ("volume_24h", "volume24h"),
    "open_interest": ("open_interest", "openInterest"),
    "last_trade_ts": ("last_trade_time", "updated_time", "lastTradeTs"),
}

# Wrapper shapes seen across catalog versions, probed in order.
_WRAPPER_PATHS: tuple[tuple[str, ...], ...] = (
    ("markets", "nodes"),
    ("markets",),
    ("data", "markets", "nodes"),
    ("data", "markets"),
    ("data",),
    ("result",),
    ("items",),
)

_QUESTION_PLACEHOLDER = "unknown"


def extract_market_list(payload: Any) -> list[dict[str, Any]]:
    """Return the market records from a bare list or any known wrapper."""

    if isinstance(payload, list):
        return [item for item in payload if isinstance(item, dict)]
    if not isinstance(payload, Mapping):
        return []
    for path in _WRAPPER_PATHS:
        node: Any = payload
        for key in path:
            node = node.get(key) if isinstance(node, Mapping) else None
        if isinstance(node, list):
            return [item for item in node if isinstance(item, dict)]
    single = payload.get("market")
    return [dict(single)] if isinstance(single, Mapping) else []


def clean_category(raw: Mapping[str, Any]) -> str:
    category = raw.get("category")
    if isinstance(category, str) and category.strip():
        return category.strip()
    tags = raw.get("tags")
    if isinstance(tags, list) and tags:
        tag = tags[0]
        if isinstance(tag, Mapping):
            tag = tag.get("label") or tag.get("name") or tag.get("slug")
        if tag is not None and str(tag).strip():
            return str(tag).strip()
    events = raw.get("events")
    if isinstance(events, list) and events and isinstance(events[0], Mapping):
        event_category = events[0].get("category")
        if event_category is not None and str(event_category).strip():
            return str(event_category).strip()
    return UNCATEGORIZED


def _probability(value: Any, *, cents: bool = False) -> float | None:
    number = coerce_number(value)
    if number is None:
        return None
    if cents:
        number /= 100.0
    if 0.0 <= number <= 1.0:
        return number
    return None


def _first_probability(
    raw: Mapping[str, Any], candidates: Sequence[str], *, cents: bool = False
) -> float | None:
    """Return the first candidate that holds a valid probability, skipping invalid ones."""

    for key in candidates:
        probability = _probability(raw.get(key), cents=cents)
        if probability is not None:
            return probability
    return None


def _complete_prices(yes: float | None, no: float | None) -> tuple[float | None, float | None]:
    if yes is not None and no is None:
        return yes, 1.0 - yes
    if no is not None and yes is None:
        return 1.0 - no, no
    return yes, no


def _non_negative(value: Any) -> float | None:
    number = coerce_number(value)
    if number is None or number < 0:
        return None
    return number


def _event_id(raw: Mapping[str, Any]) -> int | None:
    candidate = first_present(raw, POLYMARKET_FIELDS["event_id"])
    if candidate is None:
        event = raw.get("event")
        if isinstance(event, Mapping):
            candidate = event.get("id")
    if candidate is None:
        events = raw.get("events")
        if isinstance(events, list) and events and isinstance(events[0], Mapping):
            candidate = events[0].get("id")
    number = coerce_number(candidate)
    return int(number) if number is not None else None


def _source_market_id(raw: Mapping[str, Any]) -> int | None:
    number = coerce_number(first_present(raw, POLYMARKET_FIELDS["source_market_id"]))
    if number is not None:
        return int(number)
    return numeric_id_from_slug(raw.get("slug"))


def _snapshot_id(platform: Platform, raw: Mapping[str, Any], candidates: Sequence[str]) -> str:
    value = first_present(raw, candidates)
    return f"{platform.prefix}_{value if value is not None else _QUESTION_PLACEHOLDER}"


def normalize_polymarket_market(raw: Mapping[str, Any]) -> MarketSnapshot:
    fields = POLYMARKET_FIELDS

    yes = _first_probability(raw, fields["yes_price"])
    if yes is None:
        outcome_prices = as_list(raw.get("outcomePrices"))
        if outcome_prices:
            yes = _probability(outcome_prices[0])
    no = _first_probability(raw, fields["no_price"])
    yes, no = _complete_prices(yes, no)

    derived = dict(raw)
    derived["_conditionId"] = normalize_condition_id(first_present(raw, fields["condition_id"]))
    derived["_sourceMarketId"] = _source_market_id(raw)
    derived["_eventId"] = _event_id(raw)

    return MarketSnapshot(
        id=_snapshot_id(Platform.POLYMARKET, raw, fields["id"]),
        platform=Platform.POLYMARKET,
        question=str(first_present(raw, fields["question"]) or _QUESTION_PLACEHOLDER),
        category=clean_category(raw),
        yes_price=yes,
        no_price=no,
        volume_24h=_non_negative(first_present(raw, fields["volume_24h"])),
        open_interest=_non_negative(first_present(raw, fields["open_interest"])),
        last_trade_ts=coerce_timestamp(first_present(raw, fields["last_trade_ts"])),
        raw=derived,
    )


def normalize_kalshi_market(raw: Mapping[str, Any]) -> MarketSnapshot:
    fields = KALSHI_FIELDS

    yes = _first_probability(raw, fields["yes_price"], cents=True)
    if yes is None:
        yes = _first_probability(raw, fields["yes_price_dollars"])
    no = _first_probability(raw, fields["no_price"], cents=True)
    if no is None:
        no = _first_probability(raw, fields["no_price_dollars"])
    yes, no = _complete_prices(yes, no)

    return MarketSnapshot(
        id=_snapshot_id(Platform.KALSHI, raw, fields["id"]),
        platform=Platform.KALSHI,
        question=str(first_present(raw, fields["question"]) or _QUESTION_PLACEHOLDER),
        category=clean_category(raw),
        yes_price=yes,
        no_price=no,
        volume_24h=_non_negative(first_present(raw, fields["volume_24h"])),
        open_interest=_non_negative(first_present(raw, fields["open_interest"])),
        last_trade_ts=coerce_timestamp(first_present(raw, fields["last_trade_ts"])),
        raw=dict(raw),
    )


def dedupe_by_id(snapshots: Iterable[MarketSnapshot]) -> list[MarketSnapshot]:
    """Keep the first snapshot per id; offset paging repeats rows that update mid-scan."""

    unique: dict[str, MarketSnapshot] = {}
    duplicates = 0
    for snapshot in snapshots:
        if snapshot.id in unique:
            duplicates += 1
            continue
        unique[snapshot.id] = snapshot
    if duplicates:
        logger.debug("Dropped {} duplicate snapshot ids", duplicates)
    return list(unique.values())


def normalize_polymarket(payload: Any) -> list[MarketSnapshot]:
    return dedupe_by_id(normalize_polymarket_market(market) for market in extract_market_list(payload))


def normalize_kalshi(payload: Any) -> list[MarketSnapshot]:
    return dedupe_by_id(normalize_kalshi_market(market) for market in extract_market_list(payload))


NORMALIZERS = {
    Platform.POLYMARKET: normalize_polymarket,
    Platform.KALSHI: normalize_kalshi,
}
