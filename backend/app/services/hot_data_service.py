"""Read-side access to the published hot cache."""

from __future__ import annotations

from typing import Any

from app.domain import Platform

from .cache import COMBINED_SCOPE, HotCache, markets_key, summary_key


KNOWN_SCOPES = (COMBINED_SCOPE, *(platform.prefix for platform in Platform))


class DataNotReadyError(LookupError):
    """No completed ingestion has published the requested key yet."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"data not yet available: {key}")


class UnknownScopeError(ValueError):
    pass


class HotDataService:
    def __init__(self, cache: HotCache) -> None:
        self._cache = cache

    def _read(self, key: str) -> Any:
        value = self._cache.get_json(key)
        if value is None:
            raise DataNotReadyError(key)
        return value

    @staticmethod
    def _check_scope(scope: str) -> str:
        if scope not in KNOWN_SCOPES:
            raise UnknownScopeError(scope)
        return scope

    def summary(self, scope: str = COMBINED_SCOPE) -> dict[str, Any]:
        return self._read(summary_key(self._check_scope(scope)))

    def markets(self, scope: str = COMBINED_SCOPE) -> list[dict[str, Any]]:
        return self._read(markets_key(self._check_scope(scope)))
