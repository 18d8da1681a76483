from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import httpx
from loguru import logger

from .activity import FIXED_POINT_SCALE, GraphQLExecutor
from .errors import FeedUnavailableError, GraphQLError
from .utils import coerce_number, condition_id_from_text


@dataclass(slots=True)
class OpenInterestResult:
    by_market: dict[str, float] = field(default_factory=dict)
    rows_scanned: int = 0
    skipped: int = 0
    available: bool = False

    @property
    def total(self) -> float:
        return sum(self.by_market.values())


class OpenInterestReconciler:
    """Map condition id -> USD open interest from a paged ``{id, amount}`` feed."""

    def __init__(
        self,
        executor: GraphQLExecutor | None,
        *,
        root_field: str = "marketOpenInterests",
        page_size: int = 1000,
        max_rows: int = 100_000,
    ) -> None:
        self.executor = executor
        self.root_field = root_field
        self.page_size = page_size
        self.max_rows = max_rows

    def build_query(self) -> str:
        return (
            "query OpenInterest($first: Int!, $skip: Int!) {"
            f" {self.root_field}(first: $first, skip: $skip, orderBy: id, orderDirection: asc)"
            " { id amount }"
            " }"
        )

    def fetch(self) -> OpenInterestResult:
        result = OpenInterestResult()
        if self.executor is None:
            logger.warning("Open-interest feed not configured; reporting OI as 0")
            return result

        query = self.build_query()
        skip = 0
        while result.rows_scanned < self.max_rows:
            first = min(self.page_size, self.max_rows - result.rows_scanned)
            try:
                data = self.executor.execute(query, {"first": first, "skip": skip})
            except (GraphQLError, FeedUnavailableError, httpx.HTTPError) as exc:
                logger.warning("Open-interest page at offset {} failed: {}", skip, exc)
                break
            rows = data.get(self.root_field)
            rows = rows if isinstance(rows, list) else []

            result.rows_scanned += len(rows)
            for row in rows:
                self._accumulate(result, row)

            if len(rows) < first:
                break
            skip += len(rows)
        else:
            logger.warning("Open-interest scan stopped at the {} row cap", self.max_rows)

        result.available = bool(result.by_market)
        if not result.available:
            logger.warning("Open-interest feed returned no usable rows; reporting OI as 0")
        else:
            logger.info(
                "Open interest: {} markets from {} rows ({} skipped), total ${:.2f}",
                len(result.by_market),
                result.rows_scanned,
                result.skipped,
                result.total,
            )
        return result

    @staticmethod
    def _accumulate(result: OpenInterestResult, row: Any) -> None:
        if not isinstance(row, dict):
            result.skipped += 1
            return
        condition_id = condition_id_from_text(row.get("id"))
        amount = coerce_number(row.get("amount"))
        if condition_id is None or amount is None:
            result.skipped += 1
            return
        result.by_market[condition_id] = result.by_market.get(condition_id, 0.0) + amount / FIXED_POINT_SCALE
