from __future__ import annotations

import json

import httpx
import pytest

from ingestion.client import KalshiCatalogClient, PolymarketCatalogClient, _serialize_filter_value
from ingestion.errors import CatalogFetchError, FeedUnavailableError, GraphQLError
from ingestion.graphql import GraphQLClient


def _mount(catalog_client, handler):
    catalog_client.client.close()
    catalog_client.client = httpx.Client(
        base_url=catalog_client.base_url, transport=httpx.MockTransport(handler)
    )
    return catalog_client


def _markets(start, count):
    return [{"id": str(start + index), "question": f"Q{start + index}?"} for index in range(count)]


def test_serialize_filter_value():
    assert _serialize_filter_value(True) == "true"
    assert _serialize_filter_value(5) == "5"
    assert _serialize_filter_value(["a", None, 2]) == "a,2"
    assert _serialize_filter_value([]) is None
    assert _serialize_filter_value(None) is None


def test_unsupported_filters_are_dropped(test_settings):
    client = PolymarketCatalogClient(settings=test_settings, filters={"active": True, "bogus": 1})
    try:
        assert client.filters == {"active": True}
    finally:
        client.close()


def test_polymarket_pages_by_offset_until_short_page(test_settings):
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        offset = int(request.url.params["offset"])
        return httpx.Response(200, json=_markets(offset, 2 if offset == 0 else 1))

    with _mount(PolymarketCatalogClient(settings=test_settings), handler) as client:
        markets = client.fetch_catalog()

    assert [market["id"] for market in markets] == ["0", "1", "2"]
    assert [request.url.params["offset"] for request in requests] == ["0", "2"]
    first = requests[0].url.params
    assert first["limit"] == "2"
    assert first["active"] == "true"
    assert first["closed"] == "false"
    assert first["order"] == "updatedAt"
    assert requests[0].url.path == "/markets"


def test_polymarket_follows_cursor_and_respects_page_cap(test_settings):
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"data": _markets(len(requests) * 10, 2), "cursor": f"c{len(requests)}"})

    with _mount(PolymarketCatalogClient(settings=test_settings), handler) as client:
        markets = client.fetch_catalog()

    assert len(markets) == 6
    assert [request.url.params.get("cursor") for request in requests] == [None, "c1", "c2"]
    assert all(request.url.params["offset"] == "0" for request in requests)


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, json={"error": "upstream"}),
        httpx.Response(200, content=b"<html>maintenance</html>"),
    ],
)
def test_polymarket_failures_raise_catalog_fetch_error(test_settings, response):
    with _mount(PolymarketCatalogClient(settings=test_settings), lambda request: response) as client:
        with pytest.raises(CatalogFetchError):
            client.fetch_catalog()


def test_kalshi_follows_cursor_up_to_page_cap(test_settings):
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        page = len(requests)
        return httpx.Response(200, json={"markets": [{"ticker": f"KX-{page}"}], "cursor": f"next-{page}"})

    with _mount(KalshiCatalogClient(settings=test_settings), handler) as client:
        markets = client.fetch_catalog()

    assert [market["ticker"] for market in markets] == ["KX-1", "KX-2"]
    assert requests[0].url.params["status"] == "open"
    assert "cursor" not in requests[0].url.params
    assert requests[1].url.params["cursor"] == "next-1"
    assert requests[0].url.path.endswith("/markets")


def test_kalshi_stops_when_cursor_is_empty(test_settings, kalshi_payload):
    with _mount(
        KalshiCatalogClient(settings=test_settings),
        lambda request: httpx.Response(200, json=kalshi_payload),
    ) as client:
        assert len(client.fetch_catalog()) == 2


def _graphql(handler) -> GraphQLClient:
    return GraphQLClient(
        "https://feeds.example/subgraph",
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )


def test_graphql_returns_data_and_sends_variables():
    seen: list[dict[str, object]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"data": {"trades": [{"id": "1"}]}})

    data = _graphql(handler).execute("query { trades { id } }", {"first": 5})

    assert data == {"trades": [{"id": "1"}]}
    assert seen == [{"query": "query { trades { id } }", "variables": {"first": 5}}]


def test_graphql_errors_raise():
    client = _graphql(lambda request: httpx.Response(200, json={"errors": [{"message": "bad field"}]}))

    with pytest.raises(GraphQLError) as excinfo:
        client.execute("query { nope }")
    assert excinfo.value.errors == [{"message": "bad field"}]

    with pytest.raises(GraphQLError):
        _graphql(lambda request: httpx.Response(200, json=[1, 2])).execute("query { x }")


def test_graphql_http_failure_propagates_as_httpx_error():
    client = _graphql(lambda request: httpx.Response(502, text="bad gateway"))

    with pytest.raises(httpx.HTTPError):
        client.execute("query { x }")


def test_graphql_non_json_body_means_feed_unavailable():
    client = _graphql(lambda request: httpx.Response(200, text="<html>gateway</html>"))

    with pytest.raises(FeedUnavailableError):
        client.execute("query { x }")
