from functools import lru_cache
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from pydantic import AnyUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _ensure_sqlalchemy_postgres_scheme(value: str) -> str:
    if not value.lower().startswith("postgres"):
        return value

    parsed = urlparse(value)
    scheme = parsed.scheme.lower()

    if scheme in {"postgres", "postgresql"}:
        scheme = "postgresql+psycopg"

    if scheme not in {"postgresql+psycopg", "postgresql+asyncpg"}:
        scheme = "postgresql+psycopg"

    query_params = dict(parse_qsl(parsed.query, keep_blank_values=True))
    query_params.setdefault("target_session_attrs", "read-write")
    new_query = urlencode(query_params, doseq=True)

    return urlunparse(parsed._replace(scheme=scheme, query=new_query))


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    debug: bool = Field(False, description="Enable FastAPI and SQLAlchemy debug output")
    environment: str = Field(
        default="development",
        description="Runtime environment (development|staging|production)",
    )
    log_level: str = Field(default="INFO", description="Minimum loguru level for CLI runs")
    database_url: AnyUrl | str = Field(
        default="sqlite:///../data/marketboard.db",
        description="SQLAlchemy compatible database URL",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis instance holding the hot:* cache keys",
    )
    cache_ttl_seconds: int = Field(
        default=7200,
        description="Expiry applied to every hot:* cache key",
        ge=1,
    )
    http_timeout_seconds: float = Field(
        default=30.0,
        description="Per-request timeout for every upstream feed",
        gt=0,
    )

    polymarket_base_url: AnyUrl = Field(
        default="https://gamma-api.polymarket.com",
        description="Base URL for the Polymarket market catalog",
    )
    polymarket_markets_path: str = Field(
        default="/markets",
        description="Relative path for the catalog markets endpoint",
    )
    polymarket_catalog_filters: dict[str, Any] = Field(
        default_factory=lambda: {
            "active": True,
            "closed": False,
            "archived": False,
            "order": "updatedAt",
            "ascending": False,
        },
        description="Query parameters applied to every catalog page request",
    )
    catalog_page_size: int = Field(500, description="Markets requested per catalog page")
    catalog_max_pages: int = Field(10, description="Hard cap on catalog pages per run")

    activity_feed_url: str | None = Field(
        default=None,
        description="GraphQL endpoint for trade activity; unset disables activity volume",
    )
    activity_page_size: int = Field(1000, description="Trade events requested per page")
    activity_max_rows: int = Field(
        50_000, description="Hard cap on trade events scanned per run"
    )
    activity_probe_size: int = Field(
        5, description="Rows requested when probing activity schema candidates"
    )
    activity_window_hours: int = Field(
        24, description="Trailing window used for volume and the active-market filter", ge=1
    )

    open_interest_feed_url: str | None = Field(
        default=None,
        description="GraphQL endpoint for per-market open interest; unset reports OI as 0",
    )
    open_interest_root_field: str = Field(
        default="marketOpenInterests",
        description="Root query field of the open-interest feed",
    )
    open_interest_page_size: int = Field(1000, description="OI records requested per page")
    open_interest_max_rows: int = Field(
        100_000, description="Hard cap on OI records scanned per run"
    )

    kalshi_base_url: AnyUrl = Field(
        default="https://api.elections.kalshi.com/trade-api/v2",
        description="Base URL for the Kalshi market catalog",
    )
    kalshi_markets_path: str = Field(default="/markets", description="Kalshi markets endpoint")
    kalshi_page_size: int = Field(200, description="Markets requested per Kalshi page")
    kalshi_max_pages: int = Field(3, description="Hard cap on Kalshi cursor pages per run")

    @field_validator(
        "catalog_page_size",
        "catalog_max_pages",
        "activity_page_size",
        "activity_max_rows",
        "activity_probe_size",
        "open_interest_page_size",
        "open_interest_max_rows",
        "kalshi_page_size",
        "kalshi_max_pages",
    )
    @classmethod
    def _require_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("page sizes, page caps and row caps must be positive")
        return value

    @field_validator("activity_feed_url", "open_interest_feed_url", mode="before")
    @classmethod
    def _blank_feed_is_unset(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unsupported log level: {value}")
        return level

    @field_validator("database_url", mode="before")
    @classmethod
    def _normalize_postgres_urls(cls, value: Any) -> Any:
        if value is None or not isinstance(value, str):
            return value
        if value.startswith("postgres://"):
            return "postgresql://" + value[len("postgres://") :]
        return value

    @property
    def resolved_database_url(self) -> str:
        return _ensure_sqlalchemy_postgres_scheme(str(self.database_url))


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
