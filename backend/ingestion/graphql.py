from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from .errors import FeedUnavailableError, GraphQLError


class GraphQLClient:
    """Minimal POST-based GraphQL transport for subgraph-style feeds."""

    def __init__(self, url: str, *, timeout: float = 30.0, client: httpx.Client | None = None) -> None:
        self.url = url
        self.timeout = timeout
        self._owns_client = client is None
        self.client = client or httpx.Client(timeout=timeout)

    def execute(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        logger.debug("GraphQL POST {} variables={}", self.url, variables)
        response = self.client.post(
            self.url,
            json={"query": query, "variables": variables or {}},
            headers={"content-type": "application/json"},
        )
        response.raise_for_status()
        try:
            payload = response.json()
        except ValueError as exc:
            raise FeedUnavailableError(f"{self.url} returned unparseable content: {exc}") from exc
        if not isinstance(payload, dict):
            raise GraphQLError(f"unexpected response type {type(payload).__name__}")
        errors = payload.get("errors")
        if errors:
            raise GraphQLError(errors)
        data = payload.get("data")
        return data if isinstance(data, dict) else {}

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def __enter__(self) -> "GraphQLClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
