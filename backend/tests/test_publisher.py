from __future__ import annotations

import json

import pytest
import redis
from sqlalchemy import func, select

from app import crud
from app.db import session_scope
from app.domain import MarketSnapshot, Platform
from app.models import Market, MarketSnapshotRecord, PlatformRollup
from ingestion.publisher import SnapshotPublisher
from ingestion.summary import PlatformCache, combine_platforms, compute_summary


def _snapshot(market_id, volume):
    return MarketSnapshot(
        id=market_id,
        platform=Platform.POLYMARKET,
        question=f"{market_id}?",
        category="Politics",
        volume_24h=volume,
        raw={"_conditionId": None, "payload": "not cached"},
    )


def _count(session_factory, model):
    with session_scope(session_factory) as session:
        return session.scalar(select(func.count()).select_from(model))


def _publish(publisher, snapshots, *, run_id, now):
    publisher.publish_platform(
        run_id=run_id,
        platform=Platform.POLYMARKET,
        snapshots=snapshots,
        summary=compute_summary(snapshots, platforms=(Platform.POLYMARKET,)),
        captured_at=now,
    )


def test_publish_platform_writes_store_and_cache(hot_cache, fake_redis, session_factory, now):
    publisher = SnapshotPublisher(hot_cache, session_factory)

    _publish(publisher, [_snapshot("poly_1", 4.0), _snapshot("poly_2", 6.0)], run_id="run-1", now=now)

    assert _count(session_factory, Market) == 2
    assert _count(session_factory, MarketSnapshotRecord) == 2
    assert _count(session_factory, PlatformRollup) == 1

    markets = json.loads(fake_redis.store["hot:poly:markets"])
    assert [item["id"] for item in markets] == ["poly_1", "poly_2"]
    assert "raw" not in markets[0]
    summary = json.loads(fake_redis.store["hot:poly:summary"])
    assert summary["totalVolume24h"] == 10.0
    assert fake_redis.ttls["hot:poly:summary"] == 600


def test_republish_marks_absent_markets_inactive(hot_cache, session_factory, now):
    publisher = SnapshotPublisher(hot_cache, session_factory)
    _publish(publisher, [_snapshot("poly_1", 4.0), _snapshot("poly_2", 6.0)], run_id="run-1", now=now)

    _publish(publisher, [_snapshot("poly_1", 5.0)], run_id="run-2", now=now)

    with session_scope(session_factory) as session:
        stale = crud.get_market(session, "poly_2")
        assert stale.is_active is False
        assert stale.volume_24h == 0.0
        assert crud.get_market(session, "poly_1").volume_24h == 5.0
    assert _count(session_factory, PlatformRollup) == 2


def test_cache_failure_rolls_back_durable_writes(hot_cache, fake_redis, session_factory, now):
    publisher = SnapshotPublisher(hot_cache, session_factory)
    fake_redis.fail_on_execute = True

    with pytest.raises(redis.exceptions.ConnectionError):
        _publish(publisher, [_snapshot("poly_1", 4.0)], run_id="run-1", now=now)

    assert _count(session_factory, Market) == 0
    assert _count(session_factory, PlatformRollup) == 0


def test_store_failure_leaves_cache_untouched(hot_cache, fake_redis, session_factory, now, monkeypatch):
    publisher = SnapshotPublisher(hot_cache, session_factory)

    def _boom(*args, **kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr(crud, "record_rollup", _boom)

    with pytest.raises(RuntimeError):
        _publish(publisher, [_snapshot("poly_1", 4.0)], run_id="run-1", now=now)

    assert fake_redis.store == {}
    assert _count(session_factory, Market) == 0


def test_cache_only_publisher_skips_store(hot_cache, fake_redis, now):
    publisher = SnapshotPublisher(hot_cache)

    _publish(publisher, [_snapshot("poly_1", 4.0)], run_id="run-1", now=now)

    assert set(fake_redis.store) == {"hot:poly:markets", "hot:poly:summary"}


def test_publish_combined_writes_combined_keys(hot_cache, fake_redis, now):
    view = combine_platforms(
        {Platform.POLYMARKET: PlatformCache(summary=None, snapshots=[_snapshot("poly_1", 4.0)])},
        generated_at=now,
    )

    SnapshotPublisher(hot_cache).publish_combined(view)

    summary = json.loads(fake_redis.store["hot:combined:summary"])
    assert summary["hottestMarket"]["id"] == "poly_1"
    assert len(json.loads(fake_redis.store["hot:combined:markets"])) == 1
