from typing import Iterable, Optional, Sequence

from diamond_calc.models import (
    Found,
    NotFound,
    PriceBreakdown,
    PricingInput,
    Settings,
    StoneLine,
    StoneLookup,
    StoneSlab,
    StoneType,
)

# Net gold weights strictly below this are charged the flat making fee.
MAKING_CHARGE_THRESHOLD_GRAMS = 2.0


def resolve_slab(slabs: Sequence[StoneSlab], total_weight: float, quantity: int) -> Optional[StoneSlab]:
    """Return the first slab whose [from, to) interval contains the per-piece weight."""
    if total_weight <= 0 or not slabs:
        return None
    per_piece_weight = total_weight / max(1, quantity)
    for slab in slabs:
        if slab.from_weight <= per_piece_weight < slab.to_weight:
            return slab
    return None


def making_charge(net_gold_weight: float, flat_rate: float, per_gram_rate: float) -> float:
    if net_gold_weight <= 0:
        return 0.0
    if net_gold_weight < MAKING_CHARGE_THRESHOLD_GRAMS:
        return flat_rate
    return net_gold_weight * per_gram_rate


def gold_rate_for(settings: Settings, purity: str) -> float:
    for gold_rate in settings.gold_rates:
        if gold_rate.purity == purity:
            return gold_rate.rate
    return 0.0


def find_stone_type(stone_types: Iterable[StoneType], stone_type_id: str) -> StoneLookup:
    for stone_type in stone_types:
        if stone_type.stone_id == stone_type_id:
            return Found(stone_type)
    return NotFound(stone_type_id)


def compute_breakdown(settings: Settings, pricing_input: PricingInput) -> PriceBreakdown:
    """
    Price a piece against the given settings.

    Missing purities, unknown stone types and unmatched slabs all contribute
    zero instead of raising, so a stale estimate still produces a number.
    """
    net_gold_weight = pricing_input.net_gold_weight
    gold_rate_value = gold_rate_for(settings, pricing_input.purity)
    gold_cost = net_gold_weight * gold_rate_value

    making_cost = making_charge(
        net_gold_weight,
        settings.making_charge_flat,
        settings.making_charge_per_gram,
    )
    if net_gold_weight <= 0:
        making_rule = "none"
    elif net_gold_weight < MAKING_CHARGE_THRESHOLD_GRAMS:
        making_rule = "flat"
    else:
        making_rule = "per_gram"

    stone_lines = []
    for entry in pricing_input.stones:
        lookup = find_stone_type(settings.stone_types, entry.stone_type_id)
        slab = None
        if isinstance(lookup, Found):
            slab = resolve_slab(lookup.stone_type.slabs, entry.weight, entry.quantity)
        price_per_carat = slab.price_per_carat if slab is not None else 0.0
        # weight is already the total across all pieces
        stone_lines.append(
            StoneLine(
                entry=entry,
                lookup=lookup,
                slab=slab,
                price_per_carat=price_per_carat,
                cost=price_per_carat * entry.weight,
            )
        )

    total_stone_weight = sum(line.entry.weight for line in stone_lines)
    total_stone_cost = sum(line.cost for line in stone_lines)
    sub_total = gold_cost + making_cost + total_stone_cost
    gst = sub_total * settings.gst_rate

    return PriceBreakdown(
        purity=pricing_input.purity,
        gold_rate_value=gold_rate_value,
        net_gold_weight=net_gold_weight,
        gold_cost=gold_cost,
        making_cost=making_cost,
        making_rule=making_rule,
        making_charge_per_gram=settings.making_charge_per_gram,
        stone_lines=tuple(stone_lines),
        total_stone_weight=total_stone_weight,
        total_stone_cost=total_stone_cost,
        sub_total=sub_total,
        gst_rate=settings.gst_rate,
        gst=gst,
        total=sub_total + gst,
        gross_weight=net_gold_weight + total_stone_weight,
    )
