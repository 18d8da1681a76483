import argparse
import json
from collections import Counter

from loguru import logger

from app.core.config import get_settings
from ingestion.client import ALLOWED_FILTER_KEYS, PolymarketCatalogClient
from ingestion.normalize import normalize_polymarket


def _parse_filter_value(raw_value: str) -> object:
    try:
        return json.loads(raw_value)
    except json.JSONDecodeError:
        lowered = raw_value.lower()
        if lowered in {"true", "false"}:
            return lowered == "true"
        return raw_value


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Report field coverage of the Polymarket catalog")
    parser.add_argument("--page-size", type=int, default=None, help="Override pagination size")
    parser.add_argument("--max-pages", type=int, default=None, help="Override the page cap")
    parser.add_argument(
        "--filter",
        action="append",
        default=None,
        metavar="KEY=VALUE",
        help="Additional catalog query parameter (repeatable, e.g. --filter closed=false)",
    )
    parser.add_argument("--top", type=int, default=10, help="Categories to include in the report")
    return parser.parse_args()


def build_report(raw_markets: list[dict[str, object]], *, top: int = 10) -> dict[str, object]:
    snapshots = normalize_polymarket(raw_markets)
    categories = Counter(snapshot.category for snapshot in snapshots)
    return {
        "fetched": len(raw_markets),
        "normalized": len(snapshots),
        "withVolume": sum(1 for snapshot in snapshots if snapshot.volume_24h is not None),
        "withOpenInterest": sum(1 for snapshot in snapshots if snapshot.open_interest is not None),
        "withPrices": sum(1 for snapshot in snapshots if snapshot.yes_price is not None),
        "withSourceMarketId": sum(
            1 for snapshot in snapshots if snapshot.raw.get("_sourceMarketId") is not None
        ),
        "withEventId": sum(1 for snapshot in snapshots if snapshot.raw.get("_eventId") is not None),
        "withConditionId": sum(1 for snapshot in snapshots if snapshot.condition_id is not None),
        "topCategories": [
            {"category": category, "count": count} for category, count in categories.most_common(top)
        ],
    }


def main() -> None:
    args = parse_args()
    settings = get_settings()

    filters = dict(settings.polymarket_catalog_filters)
    for raw_filter in args.filter or []:
        if "=" not in raw_filter:
            logger.warning("Ignoring invalid filter argument: {}", raw_filter)
            continue
        key, value = raw_filter.split("=", 1)
        key = key.strip()
        if key not in ALLOWED_FILTER_KEYS:
            logger.warning(
                "Ignoring unsupported filter '{}'. Allowed keys: {}",
                key,
                ", ".join(sorted(ALLOWED_FILTER_KEYS)),
            )
            continue
        filters[key] = _parse_filter_value(value.strip())

    with PolymarketCatalogClient(
        settings=settings,
        page_size=args.page_size,
        max_pages=args.max_pages,
        filters=filters,
    ) as client:
        raw_markets = client.fetch_catalog()

    report = build_report(raw_markets, top=args.top)
    logger.info("Probed {} catalog markets", report["fetched"])
    print(json.dumps(report, indent=2))


if __name__ == "__main__":
    main()
