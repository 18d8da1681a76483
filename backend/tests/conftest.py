from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import pytest
import redis

from app.core.config import Settings
from app.db import build_db_components, init_db
from app.services.cache import HotCache
from ingestion.errors import GraphQLError

CID_A = "0x" + "ab" * 32
CID_B = "0x" + "cd" * 32
CID_C = "0x" + "ef" * 32

FIXED_NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def asset_id_for(condition_id: str, suffix: str = "00ff") -> str:
    return condition_id + suffix


class FakePipeline:
    def __init__(self, owner: "FakeRedis", transaction: bool) -> None:
        self.owner = owner
        self.transaction = transaction
        self.commands: list[tuple[str, str, int | None]] = []

    def set(self, key: str, value: str, ex: int | None = None) -> "FakePipeline":
        self.commands.append((key, value, ex))
        return self

    def execute(self) -> list[bool]:
        if self.owner.fail_on_execute:
            raise redis.exceptions.ConnectionError("connection reset")
        for key, value, ex in self.commands:
            self.owner.store[key] = value
            self.owner.ttls[key] = ex
        return [True] * len(self.commands)


class FakeRedis:
    """In-memory stand-in for the handful of redis commands the cache uses."""

    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}
        self.pipelines: list[FakePipeline] = []
        self.fail_on_execute = False
        self.closed = False

    def get(self, key: str) -> str | None:
        return self.store.get(key)

    def pipeline(self, transaction: bool = True) -> FakePipeline:
        pipe = FakePipeline(self, transaction)
        self.pipelines.append(pipe)
        return pipe

    def ping(self) -> bool:
        return True

    def close(self) -> None:
        self.closed = True


class FakeGraphQLExecutor:
    """Serve canned rows per root field, honouring ``first``/``skip`` paging."""

    def __init__(self, feeds: dict[str, Any]) -> None:
        self.feeds = feeds
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.closed = False

    def execute(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        variables = variables or {}
        self.calls.append((query, variables))
        for root, rows in self.feeds.items():
            if f" {root}(" not in query:
                continue
            if isinstance(rows, Exception):
                raise rows
            if callable(rows):
                rows = rows(variables)
            skip = int(variables.get("skip", 0))
            first = int(variables.get("first", len(rows)))
            return {root: rows[skip : skip + first]}
        raise GraphQLError([{"message": "Type `Query` has no field for this query"}])

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def polymarket_payload() -> list[dict[str, object]]:
    path = Path(__file__).parent / "data" / "polymarket_markets.json"
    return json.loads(path.read_text(encoding="utf-8"))


@pytest.fixture
def kalshi_payload() -> dict[str, object]:
    path = Path(__file__).parent / "data" / "kalshi_markets.json"
    return json.loads(path.read_text(encoding="utf-8"))


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def hot_cache(fake_redis) -> HotCache:
    return HotCache(fake_redis, ttl_seconds=600)


@pytest.fixture
def db_components(tmp_path):
    engine, session_factory = build_db_components(f"sqlite:///{tmp_path/'marketboard.db'}")
    init_db(engine)
    yield engine, session_factory
    engine.dispose()


@pytest.fixture
def session_factory(db_components):
    return db_components[1]


@pytest.fixture
def test_settings(tmp_path, monkeypatch) -> Settings:
    settings = Settings(
        database_url=f"sqlite:///{tmp_path/'marketboard.db'}",
        redis_url="redis://localhost:6399/0",
        cache_ttl_seconds=600,
        catalog_page_size=2,
        catalog_max_pages=3,
        activity_feed_url=None,
        activity_page_size=2,
        activity_max_rows=100,
        open_interest_feed_url=None,
        open_interest_page_size=2,
        kalshi_page_size=2,
        kalshi_max_pages=2,
    )
    monkeypatch.setattr("app.core.config.get_settings", lambda: settings)
    monkeypatch.setattr("app.core.config.settings", settings)
    return settings
