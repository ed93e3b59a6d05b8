from datetime import datetime, timezone
from typing import Iterable, Literal

import pandas as pd

from diamond_calc.models import EstimateFilters, EstimateRecord, PricedEstimate, Settings
from diamond_calc.pricing import compute_breakdown

SortKey = Literal["date_desc", "date_asc", "price_desc", "price_asc"]

SORT_OPTIONS: dict[str, str] = {
    "date_desc": "Newest first",
    "date_asc": "Oldest first",
    "price_desc": "Price: high to low",
    "price_asc": "Price: low to high",
}


def price_estimate(record: EstimateRecord, settings: Settings) -> PricedEstimate:
    return PricedEstimate(record=record, breakdown=compute_breakdown(settings, record.to_pricing_input()))


def _created_at_key(priced: PricedEstimate) -> datetime:
    try:
        parsed = datetime.fromisoformat(priced.record.created_at)
    except ValueError:
        return datetime.min.replace(tzinfo=timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def price_estimates(
    records: Iterable[EstimateRecord],
    settings: Settings,
    filters: EstimateFilters | None = None,
    sort: SortKey = "date_desc",
) -> list[PricedEstimate]:
    """
    Prices every record against the current settings, then applies the
    price range and sort order. Both depend on live totals, so neither can
    run in the store.
    """
    filters = filters or EstimateFilters()
    priced = [price_estimate(record, settings) for record in records]

    if filters.price_min is not None:
        priced = [item for item in priced if item.breakdown.total >= filters.price_min]
    if filters.price_max is not None:
        priced = [item for item in priced if item.breakdown.total <= filters.price_max]

    if sort == "date_asc":
        priced.sort(key=_created_at_key)
    elif sort == "price_desc":
        priced.sort(key=lambda item: item.breakdown.total, reverse=True)
    elif sort == "price_asc":
        priced.sort(key=lambda item: item.breakdown.total)
    else:
        priced.sort(key=_created_at_key, reverse=True)

    return priced


def active_filter_count(filters: EstimateFilters) -> int:
    count = 0
    if filters.search.strip():
        count += 1
    count += len(filters.purities)
    count += len(filters.stone_type_ids)
    if filters.gold_weight_min is not None or filters.gold_weight_max is not None:
        count += 1
    if filters.price_min is not None or filters.price_max is not None:
        count += 1
    return count


def estimates_to_frame(priced: Iterable[PricedEstimate]) -> pd.DataFrame:
    columns = [
        "id",
        "created_at",
        "product_name",
        "purity",
        "net_gold_weight",
        "stone_count",
        "gross_weight",
        "gold_cost",
        "making_cost",
        "stone_cost",
        "gst",
        "total",
    ]
    rows = [
        {
            "id": item.record.id,
            "created_at": item.record.created_at,
            "product_name": item.record.product_name,
            "purity": f"{item.record.purity}K",
            "net_gold_weight": item.record.net_gold_weight,
            "stone_count": sum(stone.quantity for stone in item.record.stones),
            "gross_weight": item.breakdown.gross_weight,
            "gold_cost": item.breakdown.gold_cost,
            "making_cost": item.breakdown.making_cost,
            "stone_cost": item.breakdown.total_stone_cost,
            "gst": item.breakdown.gst,
            "total": item.breakdown.total,
        }
        for item in priced
    ]
    return pd.DataFrame(rows, columns=columns)
