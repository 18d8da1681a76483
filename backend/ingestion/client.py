from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Iterable

import httpx
from loguru import logger

from app.core.config import Settings, settings as default_settings

from .errors import CatalogFetchError
from .normalize import extract_market_list


ALLOWED_FILTER_KEYS = {
    "active",
    "archived",
    "closed",
    "order",
    "ascending",
    "tag_id",
    "related_tags",
    "liquidity_num_min",
    "volume_num_min",
    "start_date_min",
    "end_date_min",
    "end_date_max",
}


def _serialize_filter_value(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
        parts = [part for part in (_serialize_filter_value(item) for item in value) if part is not None]
        return ",".join(parts) if parts else None
    return str(value)


def _get_json(client: httpx.Client, path: str, params: dict[str, Any], *, source: str) -> Any:
    try:
        response = client.get(path, params=params)
        response.raise_for_status()
        return response.json()
    except httpx.HTTPError as exc:
        raise CatalogFetchError(f"{source} catalog request failed: {exc}") from exc
    except ValueError as exc:
        raise CatalogFetchError(f"{source} catalog returned unparseable content: {exc}") from exc


class PolymarketCatalogClient:
    """Thin wrapper around the Polymarket Gamma markets listing."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        markets_path: str | None = None,
        page_size: int | None = None,
        max_pages: int | None = None,
        filters: dict[str, Any] | None = None,
        timeout: float | None = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or default_settings
        self.base_url = base_url or str(settings.polymarket_base_url)
        self.markets_path = markets_path or settings.polymarket_markets_path
        self.page_size = page_size or settings.catalog_page_size
        self.max_pages = max_pages or settings.catalog_max_pages
        base_filters = settings.polymarket_catalog_filters if filters is None else filters
        self.filters = {key: value for key, value in base_filters.items() if key in ALLOWED_FILTER_KEYS}
        dropped_filters = sorted(set(base_filters) - ALLOWED_FILTER_KEYS)
        if dropped_filters:
            logger.warning(
                "Dropped unsupported Polymarket catalog filters from configuration: {}",
                ", ".join(dropped_filters),
            )
        self.timeout = timeout or settings.http_timeout_seconds
        self.client = httpx.Client(base_url=self.base_url, timeout=self.timeout)

    def _build_params(self, *, cursor: str | None, offset: int) -> dict[str, Any]:
        params: dict[str, Any] = {"limit": self.page_size, "offset": offset}
        if cursor:
            params["cursor"] = cursor
        for key, value in self.filters.items():
            serialized = _serialize_filter_value(value)
            if serialized is not None:
                params[key] = serialized
        return params

    def fetch_page(self, *, cursor: str | None, offset: int) -> Any:
        params = self._build_params(cursor=cursor, offset=offset)
        logger.info("Polymarket GET {} params={}", self.markets_path, params)
        return _get_json(self.client, self.markets_path, params, source="Polymarket")

    def iter_markets(self) -> Iterable[dict[str, Any]]:
        cursor: str | None = None
        offset = 0
        for _ in range(self.max_pages):
            payload = self.fetch_page(cursor=cursor, offset=offset)
            raw_markets = extract_market_list(payload)
            if not raw_markets:
                break

            yield from raw_markets

            next_cursor = None
            if isinstance(payload, dict):
                next_cursor = payload.get("cursor") or payload.get("nextCursor")
            if next_cursor:
                cursor = next_cursor
                offset = 0
                continue
            cursor = None
            offset += self.page_size
            if len(raw_markets) < self.page_size:
                break
        else:
            logger.warning("Polymarket catalog stopped at the {} page cap", self.max_pages)

    def fetch_catalog(self) -> list[dict[str, Any]]:
        return list(self.iter_markets())

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "PolymarketCatalogClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class KalshiCatalogClient:
    """Cursor-paginated reader for the Kalshi markets listing."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        markets_path: str | None = None,
        page_size: int | None = None,
        max_pages: int | None = None,
        timeout: float | None = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or default_settings
        self.base_url = base_url or str(settings.kalshi_base_url)
        self.markets_path = markets_path or settings.kalshi_markets_path
        self.page_size = page_size or settings.kalshi_page_size
        self.max_pages = max_pages or settings.kalshi_max_pages
        self.timeout = timeout or settings.http_timeout_seconds
        self.client = httpx.Client(base_url=self.base_url, timeout=self.timeout)

    def iter_markets(self) -> Iterable[dict[str, Any]]:
        cursor: str | None = None
        for page in range(self.max_pages):
            params: dict[str, Any] = {"limit": self.page_size, "status": "open"}
            if cursor:
                params["cursor"] = cursor
            logger.info("Kalshi GET {} page={} cursor={}", self.markets_path, page, cursor)
            payload = _get_json(self.client, self.markets_path, params, source="Kalshi")
            yield from extract_market_list(payload)

            cursor = None
            if isinstance(payload, dict):
                cursor = payload.get("cursor") or payload.get("next") or payload.get("next_cursor")
            if not cursor:
                break

    def fetch_catalog(self) -> list[dict[str, Any]]:
        return list(self.iter_markets())

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "KalshiCatalogClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
