import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Literal, Mapping, Optional

StoneCategory = Literal["Diamond", "Gemstone"]


class SettingsShapeError(ValueError):
    """Raised when a persisted settings blob does not have the expected shape."""


@dataclass(frozen=True)
class StoneSlab:
    code: str
    from_weight: float
    to_weight: float
    price_per_carat: float
    discount: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "fromWeight": self.from_weight,
            "toWeight": self.to_weight,
            "pricePerCarat": self.price_per_carat,
            "discount": self.discount,
        }


@dataclass(frozen=True)
class StoneType:
    stone_id: str
    name: str
    category: StoneCategory = "Diamond"
    clarity: str = ""
    color: str = ""
    slabs: tuple[StoneSlab, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "stoneId": self.stone_id,
            "name": self.name,
            "type": self.category,
            "clarity": self.clarity,
            "color": self.color,
            "slabs": [slab.to_dict() for slab in self.slabs],
        }


@dataclass(frozen=True)
class GoldRate:
    purity: str
    label: str
    rate: float


def round_half_up(value: float) -> float:
    # Halves round towards +infinity, like the rates published in the price sheet.
    return float(math.floor(value + 0.5))


def _purity_sort_key(purity: str) -> tuple[int, float, str]:
    try:
        return (0, -float(purity), purity)
    except ValueError:
        return (1, 0.0, purity)


def derive_gold_rates(gold_rate_24k: float, purity_percentages: Mapping[str, float]) -> tuple[GoldRate, ...]:
    """Rate per gram for each purity, highest purity first."""
    return tuple(
        GoldRate(
            purity=purity,
            label=f"{purity}K",
            rate=round_half_up(gold_rate_24k * (purity_percentages[purity] / 100)),
        )
        for purity in sorted(purity_percentages, key=_purity_sort_key)
    )


@dataclass(frozen=True)
class Settings:
    """
    Global pricing configuration.

    Gold rates are not stored. They are derived from the 24k rate and the
    purity percentages every time they are read. The percentages are copied
    into a read-only mapping on construction.
    """

    gold_rate_24k: float
    purity_percentages: Mapping[str, float]
    making_charge_flat: float
    making_charge_per_gram: float
    gst_rate: float
    stone_types: tuple[StoneType, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "purity_percentages", MappingProxyType(dict(self.purity_percentages)))
        object.__setattr__(self, "stone_types", tuple(self.stone_types))

    @property
    def gold_rates(self) -> tuple[GoldRate, ...]:
        return derive_gold_rates(self.gold_rate_24k, self.purity_percentages)

    @property
    def purities(self) -> list[str]:
        return [gold_rate.purity for gold_rate in self.gold_rates]

    def to_dict(self) -> dict[str, Any]:
        return {
            "goldRate24k": self.gold_rate_24k,
            "purityPercentages": dict(self.purity_percentages),
            "makingChargeFlat": self.making_charge_flat,
            "makingChargePerGram": self.making_charge_per_gram,
            "gstRate": self.gst_rate,
            "stoneTypes": [stone_type.to_dict() for stone_type in self.stone_types],
        }

    @classmethod
    def from_dict(cls, payload: Any) -> "Settings":
        if not isinstance(payload, dict):
            raise SettingsShapeError("Settings payload must be an object")

        def number(container: dict, key: str) -> float:
            value = container.get(key)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise SettingsShapeError(f"'{key}' must be a number")
            return float(value)

        def text(container: dict, key: str) -> str:
            value = container.get(key, "")
            if not isinstance(value, str):
                raise SettingsShapeError(f"'{key}' must be a string")
            return value

        percentages = payload.get("purityPercentages")
        if not isinstance(percentages, dict) or not percentages:
            raise SettingsShapeError("'purityPercentages' must be a non-empty object")

        raw_stone_types = payload.get("stoneTypes")
        if not isinstance(raw_stone_types, list):
            raise SettingsShapeError("'stoneTypes' must be a list")

        stone_types = []
        for raw_stone in raw_stone_types:
            if not isinstance(raw_stone, dict):
                raise SettingsShapeError("Each stone type must be an object")
            raw_slabs = raw_stone.get("slabs", [])
            if not isinstance(raw_slabs, list) or not all(isinstance(s, dict) for s in raw_slabs):
                raise SettingsShapeError("'slabs' must be a list of objects")
            stone_types.append(
                StoneType(
                    stone_id=text(raw_stone, "stoneId"),
                    name=text(raw_stone, "name"),
                    category="Gemstone" if raw_stone.get("type") == "Gemstone" else "Diamond",
                    clarity=text(raw_stone, "clarity"),
                    color=text(raw_stone, "color"),
                    slabs=tuple(
                        StoneSlab(
                            code=text(raw_slab, "code"),
                            from_weight=number(raw_slab, "fromWeight"),
                            to_weight=number(raw_slab, "toWeight"),
                            price_per_carat=number(raw_slab, "pricePerCarat"),
                            discount=number({"discount": 0, **raw_slab}, "discount"),
                        )
                        for raw_slab in raw_slabs
                    ),
                )
            )

        return cls(
            gold_rate_24k=number(payload, "goldRate24k"),
            purity_percentages={str(key): number(percentages, key) for key in percentages},
            making_charge_flat=number(payload, "makingChargeFlat"),
            making_charge_per_gram=number(payload, "makingChargePerGram"),
            gst_rate=number(payload, "gstRate"),
            stone_types=tuple(stone_types),
        )


@dataclass(frozen=True)
class StoneEntry:
    stone_type_id: str
    weight: float
    quantity: int = 1


@dataclass(frozen=True)
class PricingInput:
    net_gold_weight: float
    purity: str
    stones: tuple[StoneEntry, ...] = ()


@dataclass(frozen=True)
class Found:
    stone_type: StoneType


@dataclass(frozen=True)
class NotFound:
    stone_type_id: str


StoneLookup = Found | NotFound


@dataclass(frozen=True)
class StoneLine:
    entry: StoneEntry
    lookup: StoneLookup
    slab: Optional[StoneSlab]
    price_per_carat: float
    cost: float

    @property
    def stone_type(self) -> Optional[StoneType]:
        if isinstance(self.lookup, Found):
            return self.lookup.stone_type
        return None


@dataclass(frozen=True)
class PriceBreakdown:
    purity: str
    gold_rate_value: float
    net_gold_weight: float
    gold_cost: float
    making_cost: float
    making_rule: Literal["none", "flat", "per_gram"]
    making_charge_per_gram: float
    stone_lines: tuple[StoneLine, ...]
    total_stone_weight: float
    total_stone_cost: float
    sub_total: float
    gst_rate: float
    gst: float
    total: float
    gross_weight: float


@dataclass(frozen=True)
class EstimateStone:
    stone_type_id: str
    name: str
    weight: float
    quantity: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "stoneTypeId": self.stone_type_id,
            "name": self.name,
            "weight": self.weight,
            "quantity": self.quantity,
        }


@dataclass(frozen=True)
class EstimateRecord:
    """Raw inputs of a saved calculation. Prices are recomputed on every read."""

    product_name: str
    purity: str
    net_gold_weight: float
    stones: tuple[EstimateStone, ...] = ()
    product_image_url: Optional[str] = None
    id: Optional[int] = None
    created_at: str = ""

    def to_pricing_input(self) -> PricingInput:
        return PricingInput(
            net_gold_weight=self.net_gold_weight,
            purity=self.purity,
            stones=tuple(
                StoneEntry(stone.stone_type_id, stone.weight, stone.quantity)
                for stone in self.stones
            ),
        )


@dataclass(frozen=True)
class PricedEstimate:
    record: EstimateRecord
    breakdown: PriceBreakdown


@dataclass(frozen=True)
class EstimateFilters:
    search: str = ""
    purities: tuple[str, ...] = ()
    stone_type_ids: tuple[str, ...] = ()
    gold_weight_min: Optional[float] = None
    gold_weight_max: Optional[float] = None
    price_min: Optional[float] = None
    price_max: Optional[float] = None


@dataclass(frozen=True)
class SyncResult:
    success: bool
    error: Optional[str] = None
    settings: Optional[Settings] = None
    synced_at: Optional[str] = None
    stone_type_count: int = field(default=0, compare=False)
