from __future__ import annotations

import pytest

from ingestion.client import PolymarketCatalogClient
from ingestion.errors import CatalogFetchError
from ingestion.normalize import normalize_polymarket


@pytest.mark.network
def test_polymarket_catalog_live_fetches_markets():
    client = PolymarketCatalogClient(page_size=5, max_pages=1)
    try:
        markets = client.fetch_catalog()
    except CatalogFetchError as exc:
        pytest.skip(f"Polymarket API unavailable: {exc}")
    finally:
        client.close()

    assert markets, "Polymarket API returned no markets"
    for market in markets:
        assert isinstance(market, dict)
        assert market.get("id"), "market payload missing identifier"
        assert market.get("question") or market.get("title"), "market payload missing question text"

    snapshots = normalize_polymarket(markets)
    assert len(snapshots) == len(markets)
    assert all(snapshot.id.startswith("poly_") for snapshot in snapshots)
