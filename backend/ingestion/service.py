from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Protocol
from uuid import uuid4

from loguru import logger

from app.core.config import Settings
from app.domain import MarketSnapshot, Platform, SummaryStats, isoformat_utc
from app.services.cache import HotCache, markets_key, summary_key

from .activity import ActivityAggregator, ActivityWindow, GraphQLExecutor
from .client import KalshiCatalogClient, PolymarketCatalogClient
from .errors import FeedUnavailableError
from .graphql import GraphQLClient
from .normalize import normalize_kalshi, normalize_polymarket
from .open_interest import OpenInterestReconciler, OpenInterestResult
from .publisher import SnapshotPublisher
from .reconcile import reconcile_snapshots
from .summary import PlatformCache, combine_platforms, compute_summary


class CatalogClient(Protocol):
    def fetch_catalog(self) -> list[dict[str, Any]]: ...

    def close(self) -> None: ...


ExecutorFactory = Callable[[], GraphQLExecutor | None]


@dataclass(slots=True)
class PlatformRun:
    run_id: str
    scope: str
    started_at: datetime
    snapshots: list[MarketSnapshot] = field(default_factory=list)
    summary: SummaryStats = field(default_factory=SummaryStats)
    degraded: list[str] = field(default_factory=list)
    published: bool = False

    def to_dict(self) -> dict[str, object]:
        return {
            "run_id": self.run_id,
            "scope": self.scope,
            "started_at": isoformat_utc(self.started_at),
            "markets": len(self.snapshots),
            "summary": self.summary.to_dict(),
            "degraded": list(self.degraded),
            "published": self.published,
        }


def _resolve_now(now: datetime | None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now if now.tzinfo else now.replace(tzinfo=timezone.utc)


def _graphql_factory(url: str | None, settings: Settings) -> ExecutorFactory:
    def _factory() -> GraphQLExecutor | None:
        if not url:
            return None
        return GraphQLClient(url, timeout=settings.http_timeout_seconds)

    return _factory


def _close(resource: object) -> None:
    close = getattr(resource, "close", None)
    if callable(close):
        close()


def _fetch_catalog(factory: Callable[[], CatalogClient]) -> list[dict[str, Any]]:
    client = factory()
    try:
        return client.fetch_catalog()
    finally:
        _close(client)


def _aggregate_activity(
    settings: Settings,
    factory: ExecutorFactory,
    now: datetime,
    run: PlatformRun,
) -> ActivityWindow | None:
    executor = factory()
    if executor is None:
        logger.warning("Activity feed not configured; using catalog volume estimates")
        run.degraded.append("activity:unconfigured")
        return None
    try:
        aggregator = ActivityAggregator(
            executor,
            page_size=settings.activity_page_size,
            max_rows=settings.activity_max_rows,
            probe_size=settings.activity_probe_size,
            window_hours=settings.activity_window_hours,
        )
        return aggregator.aggregate(now)
    except FeedUnavailableError as exc:
        logger.warning("Activity feed unavailable; using catalog volume estimates: {}", exc)
        run.degraded.append("activity:unavailable")
        return None
    finally:
        _close(executor)


def _reconcile_open_interest(
    settings: Settings,
    factory: ExecutorFactory,
    run: PlatformRun,
) -> OpenInterestResult:
    executor = factory()
    try:
        result = OpenInterestReconciler(
            executor,
            root_field=settings.open_interest_root_field,
            page_size=settings.open_interest_page_size,
            max_rows=settings.open_interest_max_rows,
        ).fetch()
    finally:
        if executor is not None:
            _close(executor)
    if not result.available:
        run.degraded.append("open_interest:unavailable")
    return result


def run_polymarket_ingestion(
    settings: Settings,
    *,
    publisher: SnapshotPublisher | None = None,
    now: datetime | None = None,
    dry_run: bool = False,
    catalog_client_factory: Callable[[], CatalogClient] | None = None,
    activity_executor_factory: ExecutorFactory | None = None,
    open_interest_executor_factory: ExecutorFactory | None = None,
) -> PlatformRun:
    """One Polymarket cycle: catalog, activity, open interest, reconcile, publish.

    Raises ``CatalogFetchError`` or ``ActivitySchemaError`` before anything is
    published; optional feeds degrade to their fallbacks instead.
    """

    now = _resolve_now(now)
    run = PlatformRun(run_id=str(uuid4()), scope=Platform.POLYMARKET.prefix, started_at=now)
    catalog_client_factory = catalog_client_factory or (
        lambda: PolymarketCatalogClient(settings=settings)
    )
    activity_executor_factory = activity_executor_factory or _graphql_factory(
        settings.activity_feed_url, settings
    )
    open_interest_executor_factory = open_interest_executor_factory or _graphql_factory(
        settings.open_interest_feed_url, settings
    )

    logger.info("Starting polymarket ingestion run {} (dry_run={})", run.run_id, dry_run)
    raw_markets = _fetch_catalog(catalog_client_factory)
    catalog = normalize_polymarket(raw_markets)
    logger.info("Normalized {} of {} catalog markets", len(catalog), len(raw_markets))

    activity = _aggregate_activity(settings, activity_executor_factory, now, run)
    open_interest = _reconcile_open_interest(settings, open_interest_executor_factory, run)

    reconciled = reconcile_snapshots(Platform.POLYMARKET, catalog, activity, open_interest)
    run.snapshots = reconciled.snapshots
    run.summary = reconciled.summary

    if not dry_run and publisher is not None:
        publisher.publish_platform(
            run_id=run.run_id,
            platform=Platform.POLYMARKET,
            snapshots=run.snapshots,
            summary=run.summary,
            captured_at=now,
        )
        run.published = True
    return run


def run_kalshi_ingestion(
    settings: Settings,
    *,
    publisher: SnapshotPublisher | None = None,
    now: datetime | None = None,
    dry_run: bool = False,
    catalog_client_factory: Callable[[], CatalogClient] | None = None,
) -> PlatformRun:
    now = _resolve_now(now)
    run = PlatformRun(run_id=str(uuid4()), scope=Platform.KALSHI.prefix, started_at=now)
    catalog_client_factory = catalog_client_factory or (
        lambda: KalshiCatalogClient(settings=settings)
    )

    logger.info("Starting kalshi ingestion run {} (dry_run={})", run.run_id, dry_run)
    raw_markets = _fetch_catalog(catalog_client_factory)
    run.snapshots = normalize_kalshi(raw_markets)
    run.summary = compute_summary(run.snapshots, platforms=(Platform.KALSHI,))
    run.degraded.append("activity:none")
    logger.info(
        "Kalshi: {} markets, vol24h={:.2f}, oi={:.2f}",
        len(run.snapshots),
        run.summary.total_volume_24h,
        run.summary.total_open_interest,
    )

    if not dry_run and publisher is not None:
        publisher.publish_platform(
            run_id=run.run_id,
            platform=Platform.KALSHI,
            snapshots=run.snapshots,
            summary=run.summary,
            captured_at=now,
        )
        run.published = True
    return run


def load_platform_cache(cache: HotCache, platform: Platform) -> PlatformCache:
    summary_payload = cache.get_json(summary_key(platform.prefix))
    markets_payload = cache.get_json(markets_key(platform.prefix))
    summary = SummaryStats.from_dict(summary_payload) if isinstance(summary_payload, dict) else None
    snapshots: list[MarketSnapshot] = []
    for item in markets_payload if isinstance(markets_payload, list) else []:
        try:
            snapshots.append(MarketSnapshot.from_dict(item))
        except (KeyError, TypeError, ValueError):
            logger.warning("Skipping malformed cached {} snapshot", platform.value)
    if summary is None:
        logger.warning("No cached {} summary; combining from snapshots", platform.value)
    return PlatformCache(summary=summary, snapshots=snapshots)


def run_combined(
    *,
    cache: HotCache,
    publisher: SnapshotPublisher | None = None,
    now: datetime | None = None,
    dry_run: bool = False,
) -> PlatformRun:
    now = _resolve_now(now)
    run = PlatformRun(run_id=str(uuid4()), scope="combined", started_at=now)
    parts = {platform: load_platform_cache(cache, platform) for platform in Platform}
    for platform, part in parts.items():
        if part.summary is None:
            run.degraded.append(f"{platform.prefix}:summary_missing")

    view = combine_platforms(parts, generated_at=now)
    run.snapshots = view.snapshots
    run.summary = view.summary

    if not dry_run and publisher is not None:
        publisher.publish_combined(view)
        run.published = True
    logger.info(
        "Combined {} markets, vol24h={:.2f}, oi={:.2f}",
        view.summary.active_markets,
        view.summary.total_volume_24h,
        view.summary.total_open_interest,
    )
    return run
