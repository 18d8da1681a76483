from __future__ import annotations

import json

import pytest
import redis

from app.services.cache import HotCache, markets_key, summary_key
from app.services.hot_data_service import DataNotReadyError, HotDataService, UnknownScopeError


def test_cache_keys_follow_scope_layout():
    assert markets_key("poly") == "hot:poly:markets"
    assert summary_key("combined") == "hot:combined:summary"


def test_set_many_json_writes_one_transaction_with_expiry(hot_cache, fake_redis):
    hot_cache.set_many_json({"hot:poly:markets": [{"id": "poly_1"}], "hot:poly:summary": {"activeMarkets": 1}})

    (pipe,) = fake_redis.pipelines
    assert pipe.transaction is True
    assert [(key, ttl) for key, _, ttl in pipe.commands] == [
        ("hot:poly:markets", 600),
        ("hot:poly:summary", 600),
    ]
    assert json.loads(fake_redis.store["hot:poly:markets"]) == [{"id": "poly_1"}]


def test_set_many_json_honours_ttl_override(hot_cache, fake_redis):
    hot_cache.set_many_json({"hot:kalshi:summary": {}}, ttl_seconds=30)
    assert fake_redis.ttls["hot:kalshi:summary"] == 30


def test_failed_transaction_leaves_previous_values(hot_cache, fake_redis):
    hot_cache.set_many_json({"hot:poly:summary": {"activeMarkets": 1}})
    fake_redis.fail_on_execute = True

    with pytest.raises(redis.exceptions.ConnectionError):
        hot_cache.set_many_json({"hot:poly:summary": {"activeMarkets": 2}})

    assert hot_cache.get_json("hot:poly:summary") == {"activeMarkets": 1}


def test_get_json_treats_missing_and_corrupt_values_as_absent(hot_cache, fake_redis):
    assert hot_cache.get_json("hot:poly:markets") is None
    fake_redis.store["hot:poly:markets"] = "{not json"
    assert hot_cache.get_json("hot:poly:markets") is None


def test_hot_data_service_reads_published_scope(hot_cache):
    hot_cache.set_many_json({"hot:kalshi:markets": [{"id": "kalshi_A"}]})
    service = HotDataService(hot_cache)

    assert service.markets("kalshi") == [{"id": "kalshi_A"}]


def test_hot_data_service_reports_missing_data(hot_cache):
    service = HotDataService(hot_cache)

    with pytest.raises(DataNotReadyError) as excinfo:
        service.summary()
    assert excinfo.value.key == "hot:combined:summary"

    with pytest.raises(UnknownScopeError):
        service.markets("manifold")
