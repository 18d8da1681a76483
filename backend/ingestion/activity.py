"""Trailing-window trade volume keyed by condition id."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol, Sequence

import httpx
from loguru import logger

from .errors import ActivitySchemaError, FeedUnavailableError, GraphQLError
from .utils import coerce_number, coerce_timestamp, condition_id_from_asset_id

# Price and size are 6-decimal fixed-point integers.
FIXED_POINT_SCALE = 1_000_000


class GraphQLExecutor(Protocol):
    def execute(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]: ...


@dataclass(slots=True, frozen=True)
class ActivitySchema:
    """One known shape of the trade-activity feed."""

    name: str
    root: str
    timestamp_field: str
    asset_field: str
    price_field: str
    size_field: str
    id_field: str = "id"

    def build_query(self) -> str:
        selection = " ".join(
            (self.id_field, self.timestamp_field, self.asset_field, self.price_field, self.size_field)
        )
        return (
            "query Activity($since: BigInt!, $first: Int!, $skip: Int!) {"
            f" {self.root}(first: $first, skip: $skip, orderBy: {self.timestamp_field},"
            f" orderDirection: desc, where: {{{self.timestamp_field}_gte: $since}})"
            f" {{ {selection} }}"
            " }"
        )


DEFAULT_ACTIVITY_SCHEMAS: tuple[ActivitySchema, ...] = (
    ActivitySchema("orderFilledEvents", "orderFilledEvents", "timestamp", "makerAssetId", "price", "size"),
    ActivitySchema("trades", "trades", "timestamp", "maker_asset_id", "price", "size"),
    ActivitySchema("fills", "fills", "timestamp", "makerAssetID", "price", "amount"),
)


@dataclass(slots=True)
class ActivityWindow:
    """Per-condition-id volume, trade count and last trade over ``[since, now]``."""

    since: datetime
    now: datetime
    by_market_usd: dict[str, float] = field(default_factory=dict)
    by_market_count: dict[str, int] = field(default_factory=dict)
    by_last_trade_ts: dict[str, datetime] = field(default_factory=dict)
    schema: str | None = None
    rows_scanned: int = 0
    skipped: int = 0

    @property
    def total_usd(self) -> float:
        return sum(self.by_market_usd.values())

    def contains(self, ts: datetime | None) -> bool:
        return ts is not None and self.since <= ts <= self.now

    def record(self, condition_id: str, usd: float, ts: datetime) -> None:
        self.by_market_usd[condition_id] = self.by_market_usd.get(condition_id, 0.0) + usd
        self.by_market_count[condition_id] = self.by_market_count.get(condition_id, 0) + 1
        previous = self.by_last_trade_ts.get(condition_id)
        if previous is None or ts > previous:
            self.by_last_trade_ts[condition_id] = ts


def trailing_window(now: datetime, hours: int = 24) -> tuple[datetime, datetime]:
    now = now if now.tzinfo else now.replace(tzinfo=timezone.utc)
    return now - timedelta(hours=hours), now


def trade_notional_usd(price: Any, size: Any) -> float | None:
    price_value = coerce_number(price)
    size_value = coerce_number(size)
    if price_value is None or size_value is None:
        return None
    return (price_value / FIXED_POINT_SCALE) * (size_value / FIXED_POINT_SCALE)


class ActivityAggregator:
    """Page through a trade feed and bucket notional volume by condition id."""

    def __init__(
        self,
        executor: GraphQLExecutor,
        *,
        page_size: int = 1000,
        max_rows: int = 50_000,
        probe_size: int = 5,
        window_hours: int = 24,
        schemas: Sequence[ActivitySchema] = DEFAULT_ACTIVITY_SCHEMAS,
    ) -> None:
        self.executor = executor
        self.page_size = page_size
        self.max_rows = max_rows
        self.probe_size = probe_size
        self.window_hours = window_hours
        self.schemas = tuple(schemas)

    def _fetch(self, schema: ActivitySchema, *, since: int, first: int, skip: int) -> list[dict[str, Any]]:
        data = self.executor.execute(
            schema.build_query(),
            {"since": str(since), "first": first, "skip": skip},
        )
        rows = data.get(schema.root)
        if not isinstance(rows, list):
            return []
        return [row for row in rows if isinstance(row, dict)]

    def discover_schema(self, since: int) -> ActivitySchema:
        """Commit to the first schema candidate whose probe returns rows."""

        transport_failures = 0
        for schema in self.schemas:
            try:
                rows = self._fetch(schema, since=since, first=self.probe_size, skip=0)
            except GraphQLError as exc:
                logger.debug("Activity schema {} rejected: {}", schema.name, exc)
                continue
            except (httpx.HTTPError, FeedUnavailableError) as exc:
                transport_failures += 1
                logger.warning("Activity probe for {} failed: {}", schema.name, exc)
                continue
            if rows:
                logger.info("Activity feed matched schema {}", schema.name)
                return schema
            logger.debug("Activity schema {} returned no rows", schema.name)

        if self.schemas and transport_failures == len(self.schemas):
            raise FeedUnavailableError("activity feed unreachable for every schema probe")
        raise ActivitySchemaError(
            "no activity schema candidate matched: "
            + ", ".join(schema.name for schema in self.schemas)
        )

    def aggregate(self, now: datetime) -> ActivityWindow:
        since, now = trailing_window(now, self.window_hours)
        window = ActivityWindow(since=since, now=now)
        since_epoch = int(since.timestamp())

        schema = self.discover_schema(since_epoch)
        window.schema = schema.name

        skip = 0
        while window.rows_scanned < self.max_rows:
            first = min(self.page_size, self.max_rows - window.rows_scanned)
            try:
                rows = self._fetch(schema, since=since_epoch, first=first, skip=skip)
            except (GraphQLError, FeedUnavailableError, httpx.HTTPError) as exc:
                logger.warning("Activity page at offset {} failed; keeping partial data: {}", skip, exc)
                break

            window.rows_scanned += len(rows)
            for row in rows:
                self._accumulate(window, schema, row)

            if len(rows) < first:
                break
            skip += len(rows)
        else:
            logger.warning("Activity scan stopped at the {} row cap", self.max_rows)

        logger.info(
            "Activity window {} -> {}: {} rows, {} markets, {} skipped, ${:.2f}",
            since.isoformat(),
            now.isoformat(),
            window.rows_scanned,
            len(window.by_market_usd),
            window.skipped,
            window.total_usd,
        )
        return window

    def _accumulate(self, window: ActivityWindow, schema: ActivitySchema, row: dict[str, Any]) -> None:
        condition_id = condition_id_from_asset_id(row.get(schema.asset_field))
        usd = trade_notional_usd(row.get(schema.price_field), row.get(schema.size_field))
        ts = coerce_timestamp(row.get(schema.timestamp_field))
        if condition_id is None or usd is None or not window.contains(ts) or usd == 0:
            window.skipped += 1
            return
        window.record(condition_id, usd, ts)
