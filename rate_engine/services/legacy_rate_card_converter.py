"""
Legacy Rate Card Conversion.

Older rate cards priced with weight slabs plus per-zone multipliers or
additives:

    base_rates:       [{min_weight, max_weight, base_price}, ...]
    weight_rules:     [{min_weight, max_weight, price_per_kg}, ...]
    zone_multipliers: {"zoneC": 1.5, ...}
    zone_additives:   {"zoneE": 25, ...}

The calculator only understands zone_pricing, so a legacy card is
converted once into a new version carrying the equivalent zone_pricing.
"""
import logging
import uuid
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from rate_engine.core.exceptions import ConfigError
from rate_engine.models.rate_card import RateCardStatus, ZoneCode
from rate_engine.schemas.rate_card import RateCardSnapshot, ZonePrice, normalize_zone_code

logger = logging.getLogger(__name__)

DEFAULT_PRICE_PER_KG = Decimal("20")


class LegacyBaseRate(BaseModel):
    min_weight: Decimal = Field(..., ge=0)
    max_weight: Decimal = Field(..., gt=0)
    base_price: Decimal = Field(..., ge=0)


class LegacyWeightRule(BaseModel):
    min_weight: Decimal = Field(default=Decimal("0"), ge=0)
    max_weight: Optional[Decimal] = None
    price_per_kg: Decimal = Field(..., ge=0)


class LegacyPricing(BaseModel):
    """Pricing section of a legacy rate card document."""
    base_rates: List[LegacyBaseRate] = Field(default_factory=list)
    weight_rules: List[LegacyWeightRule] = Field(default_factory=list)
    zone_multipliers: Dict[str, Decimal] = Field(default_factory=dict)
    zone_additives: Dict[str, Decimal] = Field(default_factory=dict)


def _by_zone(values: Dict[str, Decimal], label: str) -> Dict[ZoneCode, Decimal]:
    normalized = {}
    for key, value in values.items():
        zone = normalize_zone_code(key)
        if zone is None:
            raise ConfigError(f"Unknown zone '{key}' in {label}", details={"zone": key})
        normalized[zone] = value
    return normalized


def legacy_zone_pricing(legacy: LegacyPricing) -> Dict[ZoneCode, ZonePrice]:
    """
    Derive zone_pricing from a legacy pricing document.

    The lowest base-rate slab gives base_weight (its upper bound) and the
    raw price; the first weight rule gives the raw per-kg rate (20 if
    none). A zone additive is added to the base price; otherwise the zone
    multiplier (default 1.0) scales both the price and the per-kg rate.
    """
    if not legacy.base_rates:
        raise ConfigError("Legacy rate card has no base rates")

    first_slab = min(legacy.base_rates, key=lambda r: (r.min_weight, r.max_weight))
    raw_per_kg = legacy.weight_rules[0].price_per_kg if legacy.weight_rules else DEFAULT_PRICE_PER_KG

    multipliers = _by_zone(legacy.zone_multipliers, "zone_multipliers")
    additives = _by_zone(legacy.zone_additives, "zone_additives")

    pricing = {}
    for zone in ZoneCode:
        if zone in additives:
            base_price = first_slab.base_price + additives[zone]
            per_kg = raw_per_kg
        else:
            multiplier = multipliers.get(zone, Decimal("1.0"))
            base_price = first_slab.base_price * multiplier
            per_kg = raw_per_kg * multiplier
        pricing[zone] = ZonePrice(
            base_weight=first_slab.max_weight,
            base_price=base_price,
            additional_price_per_kg=per_kg,
        )
    return pricing


def convert_legacy_rate_card(source: RateCardSnapshot, legacy: LegacyPricing) -> RateCardSnapshot:
    """
    New version of `source` priced through zone_pricing.

    The result is a DRAFT snapshot with a fresh id, the next version number
    and parent_version_id pointing at `source`; publishing it is up to the
    caller.
    """
    zone_pricing = legacy_zone_pricing(legacy)
    converted = source.model_copy(update={
        "id": uuid.uuid4(),
        "zone_pricing": zone_pricing,
        "version_number": source.version_number + 1,
        "parent_version_id": source.id,
        "status": RateCardStatus.DRAFT,
    })
    logger.info(
        f"Converted legacy rate card {source.name} v{source.version_number} "
        f"to v{converted.version_number}"
    )
    return converted
