"""
Parsing and merging of the published price sheet.

The sheet has three tabs exported as CSV:

- ``rates``: ``key,value`` rows overriding the scalar settings and the
  ``purity_<N>`` percentages.
- ``stones``: one catalog row per stone type.
- ``slabs``: pricing tiers keyed by stone id. Row order is the order the
  slab resolver scans them in.
"""

import logging
import math
import re
from dataclasses import replace
from typing import Any

from diamond_calc.models import Settings, StoneSlab, StoneType

logger = logging.getLogger(__name__)

RATE_FIELDS = {
    "goldRate24k": "gold_rate_24k",
    "makingChargeFlat": "making_charge_flat",
    "makingChargePerGram": "making_charge_per_gram",
    "gstRate": "gst_rate",
}
PURITY_KEY_PATTERN = re.compile(r"^purity_(\d+)$")


def parse_csv(raw: str) -> list[list[str]]:
    rows: list[list[str]] = []
    row: list[str] = []
    field: list[str] = []
    in_quotes = False
    index = 0
    length = len(raw)

    def end_field() -> None:
        row.append("".join(field).strip())
        field.clear()

    def end_row() -> None:
        nonlocal row
        if any(cell != "" for cell in row):
            rows.append(row)
        row = []

    while index < length:
        char = raw[index]
        if in_quotes:
            if char == '"' and index + 1 < length and raw[index + 1] == '"':
                field.append('"')
                index += 1
            elif char == '"':
                in_quotes = False
            else:
                field.append(char)
        elif char == '"':
            in_quotes = True
        elif char == ",":
            end_field()
        elif char == "\n":
            end_field()
            end_row()
        elif char != "\r":
            field.append(char)
        index += 1

    if field or row:
        end_field()
        end_row()

    return rows


def csv_to_objects(rows: list[list[str]]) -> list[dict[str, str]]:
    if len(rows) < 2:
        return []
    headers = [header.strip().lower() for header in rows[0]]
    return [
        {header: (row[position] if position < len(row) else "") for position, header in enumerate(headers)}
        for row in rows[1:]
    ]


def parse_table(raw: str) -> list[dict[str, str]]:
    return csv_to_objects(parse_csv(raw))


def parse_number(value: Any) -> float | None:
    try:
        number = float(str(value).strip())
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def _number_or_zero(value: Any) -> float:
    number = parse_number(value)
    return 0.0 if number is None else number


def parse_rates(rows: list[dict[str, str]]) -> dict[str, Any]:
    """
    Returns the rate overrides found in the table.

    Scalar settings come back under their attribute names. Purity overrides
    come back under ``purity_percentages`` as ``{purity: percentage}``.
    """
    values: dict[str, str] = {}
    for row in rows:
        key = row.get("key", "").strip()
        if key:
            values[key] = row.get("value", "").strip()

    overrides: dict[str, Any] = {}
    purity_percentages: dict[str, float] = {}
    for key, raw_value in values.items():
        purity_match = PURITY_KEY_PATTERN.match(key)
        if key not in RATE_FIELDS and purity_match is None:
            continue

        number = parse_number(raw_value)
        if number is None:
            logger.warning("Ignoring rate %r with non-numeric value %r", key, raw_value)
            continue

        if purity_match is not None:
            purity_percentages[purity_match.group(1)] = number
        else:
            overrides[RATE_FIELDS[key]] = number

    if purity_percentages:
        overrides["purity_percentages"] = purity_percentages
    return overrides


def parse_stones(rows: list[dict[str, str]]) -> list[StoneType]:
    stone_types = []
    for row in rows:
        stone_id = row.get("stoneid", "").strip()
        if not stone_id:
            logger.debug("Skipping stone row without a stone id: %s", row)
            continue
        category_cell = row.get("type", row.get("category", "")).strip()
        stone_types.append(
            StoneType(
                stone_id=stone_id,
                name=row.get("name", "").strip(),
                category="Gemstone" if category_cell == "Gemstone" else "Diamond",
                clarity=row.get("clarity", "").strip(),
                color=row.get("color", "").strip(),
            )
        )
    return stone_types


def parse_slabs(rows: list[dict[str, str]]) -> dict[str, list[StoneSlab]]:
    slabs_by_stone: dict[str, list[StoneSlab]] = {}
    for row in rows:
        stone_id = row.get("stoneid", "").strip()
        if not stone_id:
            logger.debug("Skipping slab row without a stone id: %s", row)
            continue
        slabs_by_stone.setdefault(stone_id, []).append(
            StoneSlab(
                code=row.get("code", "").strip(),
                from_weight=_number_or_zero(row.get("fromweight")),
                to_weight=_number_or_zero(row.get("toweight")),
                price_per_carat=_number_or_zero(row.get("pricepercarat")),
                discount=_number_or_zero(row.get("discount")),
            )
        )
    return slabs_by_stone


def attach_slabs(
    stone_types: list[StoneType], slabs_by_stone: dict[str, list[StoneSlab]]
) -> tuple[StoneType, ...]:
    """Slabs whose stone id has no stone type are dropped."""
    return tuple(
        replace(stone_type, slabs=tuple(slabs_by_stone.get(stone_type.stone_id, ())))
        for stone_type in stone_types
    )


def merge_settings(
    current: Settings,
    rate_overrides: dict[str, Any],
    stone_types: list[StoneType],
    slabs_by_stone: dict[str, list[StoneSlab]],
) -> Settings:
    changes = dict(rate_overrides)
    if "purity_percentages" in changes:
        changes["purity_percentages"] = {**current.purity_percentages, **changes["purity_percentages"]}

    if stone_types:
        changes["stone_types"] = attach_slabs(stone_types, slabs_by_stone)
    else:
        logger.warning("Stones tab has no rows; keeping the current catalog of %d stone types", len(current.stone_types))

    # gold_rates is derived from the merged values on access
    return replace(current, **changes)


def parse_and_merge_settings(current: Settings, rates_text: str, stones_text: str, slabs_text: str) -> Settings:
    return merge_settings(
        current,
        parse_rates(parse_table(rates_text)),
        parse_stones(parse_table(stones_text)),
        parse_slabs(parse_table(slabs_text)),
    )
