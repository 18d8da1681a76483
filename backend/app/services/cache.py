"""Redis-backed hot cache for the ``hot:<scope>:*`` keys."""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

import redis
from loguru import logger


COMBINED_SCOPE = "combined"


def markets_key(scope: str) -> str:
    return f"hot:{scope}:markets"


def summary_key(scope: str) -> str:
    return f"hot:{scope}:summary"


class HotCache:
    """JSON values written with expiry; multi-key writes go through one MULTI/EXEC."""

    def __init__(self, client: redis.Redis, *, ttl_seconds: int) -> None:
        self._client = client
        self.ttl_seconds = ttl_seconds

    @classmethod
    def from_url(cls, url: str, *, ttl_seconds: int) -> "HotCache":
        return cls(redis.Redis.from_url(url, decode_responses=True), ttl_seconds=ttl_seconds)

    def get_json(self, key: str) -> Any | None:
        value = self._client.get(key)
        if value is None:
            return None
        try:
            return json.loads(value)
        except (TypeError, ValueError):
            logger.warning("Discarding unparseable cache value at {}", key)
            return None

    def set_many_json(self, values: Mapping[str, Any], *, ttl_seconds: int | None = None) -> None:
        ttl = ttl_seconds or self.ttl_seconds
        pipe = self._client.pipeline(transaction=True)
        for key, value in values.items():
            pipe.set(key, json.dumps(value, separators=(",", ":")), ex=ttl)
        pipe.execute()
        logger.debug("Cached {} keys with ttl={}s", len(values), ttl)

    def ping(self) -> bool:
        return bool(self._client.ping())

    def close(self) -> None:
        self._client.close()
