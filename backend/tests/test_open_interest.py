from __future__ import annotations

import httpx
import pytest

from ingestion.open_interest import OpenInterestReconciler

from conftest import CID_A, CID_B, FakeGraphQLExecutor


def test_unconfigured_feed_reports_zero():
    result = OpenInterestReconciler(None).fetch()

    assert result.available is False
    assert result.by_market == {}
    assert result.total == 0.0


def test_fetch_sums_amounts_per_condition_id():
    rows = [
        {"id": CID_A, "amount": "2500000"},
        {"id": f"{CID_A}-no", "amount": "500000"},
        {"id": CID_B.upper().replace("0X", "0x"), "amount": 1_000_000},
        {"id": "not-a-condition", "amount": "10"},
        {"id": CID_B, "amount": "lots"},
    ]
    executor = FakeGraphQLExecutor({"marketOpenInterests": rows})

    result = OpenInterestReconciler(executor, page_size=10).fetch()

    assert result.available is True
    assert result.by_market == {CID_A: pytest.approx(3.0), CID_B: pytest.approx(1.0)}
    assert result.total == pytest.approx(4.0)
    assert result.rows_scanned == 5
    assert result.skipped == 2


def test_fetch_pages_until_short_page():
    rows = [{"id": CID_A, "amount": "1000000"} for _ in range(5)]
    executor = FakeGraphQLExecutor({"marketOpenInterests": rows})

    result = OpenInterestReconciler(executor, page_size=2).fetch()

    assert [variables["skip"] for _, variables in executor.calls] == [0, 2, 4]
    assert result.by_market[CID_A] == pytest.approx(5.0)
    assert "orderBy: id, orderDirection: asc" in executor.calls[0][0]


def test_custom_root_field_and_row_cap():
    rows = [{"id": CID_A, "amount": "1000000"} for _ in range(10)]
    executor = FakeGraphQLExecutor({"openInterests": rows})

    result = OpenInterestReconciler(
        executor, root_field="openInterests", page_size=4, max_rows=6
    ).fetch()

    assert result.rows_scanned == 6
    assert result.total == pytest.approx(6.0)


def test_transport_failure_degrades_to_unavailable():
    executor = FakeGraphQLExecutor({"marketOpenInterests": httpx.ReadTimeout("timed out")})

    result = OpenInterestReconciler(executor).fetch()

    assert result.available is False
    assert result.total == 0.0
