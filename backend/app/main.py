from __future__ import annotations

from collections.abc import Generator

from fastapi import Depends, FastAPI, HTTPException

from . import schemas
from .core.config import settings
from .services.cache import COMBINED_SCOPE, HotCache
from .services.hot_data_service import DataNotReadyError, HotDataService, UnknownScopeError

app = FastAPI(title="Marketboard API", version="0.1.0", debug=settings.debug)


def _hot_data_service() -> Generator[HotDataService, None, None]:
    """Provide a read service over a per-request cache connection."""

    cache = HotCache.from_url(settings.redis_url, ttl_seconds=settings.cache_ttl_seconds)
    try:
        yield HotDataService(cache)
    finally:
        cache.close()


def _read(reader, scope: str):
    try:
        return reader(scope)
    except UnknownScopeError:
        raise HTTPException(status_code=404, detail=f"Unknown scope: {scope}")
    except DataNotReadyError:
        raise HTTPException(status_code=503, detail="data not yet available")


@app.get("/healthz", tags=["system"])
def healthcheck() -> dict[str, str]:
    """Basic readiness probe consumed by infrastructure monitors."""

    return {"status": "ok"}


@app.get("/v1/summary", response_model=schemas.CombinedSummary, tags=["summary"])
def combined_summary(service: HotDataService = Depends(_hot_data_service)):
    """Cross-platform rollup from the last successful combined run."""

    return _read(service.summary, COMBINED_SCOPE)


@app.get("/v1/summary/{scope}", response_model=schemas.CombinedSummary, tags=["summary"])
def scoped_summary(scope: str, service: HotDataService = Depends(_hot_data_service)):
    return _read(service.summary, scope)


@app.get("/v1/markets", response_model=list[schemas.MarketSnapshot], tags=["markets"])
def combined_markets(service: HotDataService = Depends(_hot_data_service)):
    return _read(service.markets, COMBINED_SCOPE)


@app.get("/v1/markets/{scope}", response_model=list[schemas.MarketSnapshot], tags=["markets"])
def scoped_markets(scope: str, service: HotDataService = Depends(_hot_data_service)):
    """Markets published by one platform's last successful run."""

    return _read(service.markets, scope)
