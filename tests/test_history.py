from dataclasses import replace

import pytest

from diamond_calc.db import get_estimate, save_estimate
from diamond_calc.history import (
    active_filter_count,
    estimates_to_frame,
    price_estimate,
    price_estimates,
)
from diamond_calc.models import EstimateFilters, EstimateRecord, EstimateStone
from diamond_calc.pricing import compute_breakdown


@pytest.fixture
def records():
    return [
        EstimateRecord("Light band", "22", 1.0, id=1, created_at="2026-03-01T10:00:00+00:00"),
        EstimateRecord("Heavy band", "22", 3.0, id=2, created_at="2026-01-01T10:00:00+00:00"),
        EstimateRecord(
            "Solitaire",
            "18",
            5.0,
            stones=(EstimateStone("RD-VVS", "Round VVS/EF", 0.5, 1),),
            id=3,
            created_at="2026-02-01T10:00:00+00:00",
        ),
    ]


def test_saved_estimate_reprices_to_the_same_total(conn, settings):
    record = EstimateRecord(
        "Pendant",
        "18",
        5.0,
        stones=(EstimateStone("RD-VVS", "Round VVS/EF", 0.5, 1),),
    )
    live_total = compute_breakdown(settings, record.to_pricing_input()).total

    stored = get_estimate(conn, save_estimate(conn, record))
    assert price_estimate(stored, settings).breakdown.total == live_total


def test_repricing_follows_current_settings(settings, records):
    before = price_estimate(records[0], settings).breakdown.total
    after = price_estimate(records[0], replace(settings, gold_rate_24k=16000)).breakdown.total
    assert after > before


def test_dangling_stone_prices_without_error(settings):
    record = EstimateRecord("Old ring", "22", 1.0, stones=(EstimateStone("removed", "Gone", 0.2, 1),))
    priced = price_estimate(record, settings)
    assert priced.breakdown.total_stone_cost == 0


class TestPriceEstimates:
    def test_default_sort_is_newest_first(self, settings, records):
        priced = price_estimates(records, settings)
        assert [item.record.id for item in priced] == [1, 3, 2]

    def test_oldest_first(self, settings, records):
        priced = price_estimates(records, settings, sort="date_asc")
        assert [item.record.id for item in priced] == [2, 3, 1]

    def test_price_sorts(self, settings, records):
        high_to_low = price_estimates(records, settings, sort="price_desc")
        low_to_high = price_estimates(records, settings, sort="price_asc")
        assert [item.record.id for item in high_to_low] == [3, 2, 1]
        assert [item.record.id for item in low_to_high] == [1, 2, 3]

    def test_price_range_uses_computed_totals(self, settings, records):
        priced = price_estimates(records, settings, EstimateFilters(price_min=20000, price_max=60000))
        assert [item.record.id for item in priced] == [2]

    def test_price_range_is_inclusive(self, settings, records):
        total = price_estimate(records[1], settings).breakdown.total
        priced = price_estimates(records, settings, EstimateFilters(price_min=total, price_max=total))
        assert [item.record.id for item in priced] == [2]


@pytest.mark.parametrize(
    "filters,expected",
    [
        (EstimateFilters(), 0),
        (EstimateFilters(search="  "), 0),
        (EstimateFilters(search="ring"), 1),
        (EstimateFilters(purities=("22", "18")), 2),
        (EstimateFilters(stone_type_ids=("RD",), gold_weight_min=1.0), 2),
        (EstimateFilters(price_min=100, price_max=200), 1),
    ],
)
def test_active_filter_count(filters, expected):
    assert active_filter_count(filters) == expected


def test_estimates_to_frame(settings, records):
    frame = estimates_to_frame(price_estimates(records, settings))
    assert list(frame["id"]) == [1, 3, 2]
    solitaire = frame[frame["id"] == 3].iloc[0]
    assert solitaire["purity"] == "18K"
    assert solitaire["stone_count"] == 1
    assert solitaire["total"] == pytest.approx(83430)


def test_empty_frame_keeps_columns():
    frame = estimates_to_frame([])
    assert frame.empty
    assert "total" in frame.columns
