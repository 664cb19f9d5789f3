"""Pydantic schemas for rate cards and the pincode master."""
import re
import uuid
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from rate_engine.core.enum_utils import (
    create_uppercase_validator,
    VALID_SHIPMENT_TYPES,
    VALID_RATE_CARD_STATUSES,
    VALID_ZONE_B_TYPES,
    VALID_FUEL_SURCHARGE_BASES,
    VALID_MINIMUM_FARE_BASES,
    VALID_CHARGE_TYPES,
    VALID_ROUNDING_MODES,
)
from rate_engine.models.rate_card import (
    ZoneCode, ShipmentType, RateCardStatus, ZoneBType,
    FuelSurchargeBase, MinimumFareBase, ChargeType, RoundingMode,
    default_rounding_unit_kg, default_volumetric_divisor,
)
from rate_engine.schemas.base import BaseSnapshotSchema


_ZONE_KEY_PATTERNS = (
    re.compile(r"^([a-e])$"),
    re.compile(r"^zone[ _\-]?([a-e])$"),
    re.compile(r"^(?:route|lane)_([a-e])$"),
)


def normalize_zone_code(value) -> Optional[ZoneCode]:
    """
    Normalize the zone spellings found in rate sheets and courier payloads.

    'A', 'zoneA', 'zone_a', 'Zone A', 'lane_a' -> ZoneCode.A. Returns None
    for anything that is not one of the five zones.
    """
    if value is None:
        return None
    if isinstance(value, ZoneCode):
        return value
    raw = str(value).strip().lower()
    for pattern in _ZONE_KEY_PATTERNS:
        match = pattern.match(raw)
        if match:
            return ZoneCode(match.group(1).upper())
    return None


def normalize_zone_pricing_keys(value):
    """Re-key a zone_pricing mapping by ZoneCode, rejecting unknown or repeated zones."""
    if value is None:
        return {}
    if not isinstance(value, dict):
        return value
    normalized = {}
    for key, price in value.items():
        zone = normalize_zone_code(key)
        if zone is None:
            raise ValueError(f"Unknown zone '{key}' in zone_pricing")
        if zone in normalized:
            raise ValueError(f"Zone {zone.value} configured twice in zone_pricing")
        normalized[zone] = price
    return normalized


# ============================================
# RATE CARD COMPONENTS
# ============================================

class ZonePrice(BaseSnapshotSchema):
    """Free-weight allowance, flat price for it, and linear rate beyond it."""
    base_weight: Decimal = Field(..., ge=0)
    base_price: Decimal = Field(..., ge=0)
    additional_price_per_kg: Decimal = Field(default=Decimal("0"), ge=0)


class CodSlab(BaseSnapshotSchema):
    """COD charge tier keyed by declared value (bounds inclusive)."""
    min: Decimal = Field(..., ge=0)
    max: Decimal = Field(..., ge=0)
    type: ChargeType = ChargeType.FLAT
    value: Decimal = Field(..., ge=0)

    _normalize_type = create_uppercase_validator('type', VALID_CHARGE_TYPES)

    @model_validator(mode='after')
    def check_bounds(self):
        if self.max < self.min:
            raise ValueError(f"COD slab max {self.max} is below min {self.min}")
        return self

    def contains(self, amount: Decimal) -> bool:
        return self.min <= amount <= self.max


class CustomerOverride(BaseSnapshotSchema):
    """
    Payer-specific discount attached to a rate card.

    Exactly one of customer_id / customer_group identifies the payer.
    priority orders overrides that match the same payer; higher wins.
    """
    customer_id: Optional[str] = None
    customer_group: Optional[str] = None
    discount_percentage: Optional[Decimal] = Field(default=None, ge=0, le=100)
    flat_discount: Optional[Decimal] = Field(default=None, ge=0)
    priority: int = 0

    @model_validator(mode='after')
    def check_target(self):
        if bool(self.customer_id) == bool(self.customer_group):
            raise ValueError("Override needs exactly one of customer_id or customer_group")
        if self.discount_percentage is None and self.flat_discount is None:
            raise ValueError("Override needs discount_percentage or flat_discount")
        return self


# ============================================
# RATE CARD SNAPSHOT
# ============================================

class RateCardSnapshot(BaseSnapshotSchema):
    """
    Frozen view of one rate card version.

    This is what the selector returns and what the calculator prices
    against. It is also what gets cached, so it must survive a JSON
    round trip unchanged.
    """
    id: uuid.UUID
    company_id: str
    name: str
    shipment_type: Optional[ShipmentType] = None
    category: Optional[str] = None
    carrier: Optional[str] = None
    service_type: Optional[str] = None

    zone_pricing: Dict[ZoneCode, ZonePrice] = Field(default_factory=dict)

    cod_percentage: Optional[Decimal] = Field(default=None, ge=0)
    cod_minimum_charge: Optional[Decimal] = Field(default=None, ge=0)
    cod_maximum_charge: Optional[Decimal] = Field(default=None, ge=0)
    cod_slabs: List[CodSlab] = Field(default_factory=list)

    fuel_surcharge_percentage: Decimal = Field(default=Decimal("0"), ge=0)
    fuel_surcharge_base: FuelSurchargeBase = FuelSurchargeBase.FREIGHT

    remote_area_enabled: bool = False
    remote_area_surcharge: Decimal = Field(default=Decimal("0"), ge=0)

    minimum_fare: Decimal = Field(default=Decimal("0"), ge=0)
    minimum_fare_calculated_on: MinimumFareBase = MinimumFareBase.FREIGHT

    gst_percentage: Optional[Decimal] = Field(default=None, ge=0)

    zone_b_type: ZoneBType = ZoneBType.STATE
    zone_b_distance_km: Optional[Decimal] = Field(default=None, gt=0)

    rounding_unit_kg: Decimal = Field(default_factory=default_rounding_unit_kg, gt=0)
    rounding_mode: RoundingMode = RoundingMode.CEIL
    volumetric_divisor: int = Field(default_factory=default_volumetric_divisor, gt=0)

    customer_overrides: List[CustomerOverride] = Field(default_factory=list)

    effective_from: date
    effective_to: Optional[date] = None
    status: RateCardStatus = RateCardStatus.DRAFT
    is_deleted: bool = False
    is_default: bool = False
    is_special_promotion: bool = False
    priority: int = 0
    version_number: int = 1
    parent_version_id: Optional[uuid.UUID] = None

    _normalize_shipment_type = create_uppercase_validator('shipment_type', VALID_SHIPMENT_TYPES)
    _normalize_status = create_uppercase_validator('status', VALID_RATE_CARD_STATUSES)
    _normalize_zone_b_type = create_uppercase_validator('zone_b_type', VALID_ZONE_B_TYPES)
    _normalize_fuel_base = create_uppercase_validator('fuel_surcharge_base', VALID_FUEL_SURCHARGE_BASES)
    _normalize_minimum_base = create_uppercase_validator('minimum_fare_calculated_on', VALID_MINIMUM_FARE_BASES)
    _normalize_rounding_mode = create_uppercase_validator('rounding_mode', VALID_ROUNDING_MODES)

    @field_validator('zone_pricing', mode='before')
    @classmethod
    def normalize_zone_keys(cls, v):
        return normalize_zone_pricing_keys(v)

    @field_validator(
        'fuel_surcharge_percentage', 'remote_area_surcharge', 'minimum_fare',
        mode='before'
    )
    @classmethod
    def none_as_zero(cls, v):
        return Decimal("0") if v is None else v

    @field_validator('cod_slabs', 'customer_overrides', mode='before')
    @classmethod
    def none_as_empty(cls, v):
        return [] if v is None else v

    @model_validator(mode='after')
    def check_dates(self):
        if self.effective_to is not None and self.effective_to < self.effective_from:
            raise ValueError("effective_to is before effective_from")
        return self

    def is_effective_on(self, on_date: date) -> bool:
        if self.effective_from > on_date:
            return False
        return self.effective_to is None or self.effective_to >= on_date

    def zone_price(self, zone: ZoneCode) -> Optional[ZonePrice]:
        return self.zone_pricing.get(zone)

    def missing_zones(self) -> List[ZoneCode]:
        return [zone for zone in ZoneCode if zone not in self.zone_pricing]


class RateCardDraft(BaseModel):
    """
    Input for publishing a new rate card version.

    Carries the pricing fields only; identity of the version (id, number,
    parent) is assigned by the version service.
    """
    company_id: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=2, max_length=200)
    description: Optional[str] = None
    shipment_type: Optional[ShipmentType] = None
    category: Optional[str] = Field(default=None, max_length=50)
    carrier: Optional[str] = None
    service_type: Optional[str] = None
    zone_pricing: Dict[ZoneCode, ZonePrice]
    cod_percentage: Optional[Decimal] = Field(default=None, ge=0)
    cod_minimum_charge: Optional[Decimal] = Field(default=None, ge=0)
    cod_maximum_charge: Optional[Decimal] = Field(default=None, ge=0)
    cod_slabs: List[CodSlab] = Field(default_factory=list)
    fuel_surcharge_percentage: Decimal = Field(default=Decimal("0"), ge=0)
    fuel_surcharge_base: FuelSurchargeBase = FuelSurchargeBase.FREIGHT
    remote_area_enabled: bool = False
    remote_area_surcharge: Decimal = Field(default=Decimal("0"), ge=0)
    minimum_fare: Decimal = Field(default=Decimal("0"), ge=0)
    minimum_fare_calculated_on: MinimumFareBase = MinimumFareBase.FREIGHT
    gst_percentage: Optional[Decimal] = Field(default=None, ge=0)
    zone_b_type: ZoneBType = ZoneBType.STATE
    zone_b_distance_km: Optional[Decimal] = Field(default=None, gt=0)
    rounding_unit_kg: Decimal = Field(default_factory=default_rounding_unit_kg, gt=0)
    rounding_mode: RoundingMode = RoundingMode.CEIL
    volumetric_divisor: int = Field(default_factory=default_volumetric_divisor, gt=0)
    customer_overrides: List[CustomerOverride] = Field(default_factory=list)
    effective_from: date
    effective_to: Optional[date] = None
    is_default: bool = False
    is_special_promotion: bool = False
    priority: int = 0

    _normalize_shipment_type = create_uppercase_validator('shipment_type', VALID_SHIPMENT_TYPES)
    _normalize_zone_b_type = create_uppercase_validator('zone_b_type', VALID_ZONE_B_TYPES)
    _normalize_fuel_base = create_uppercase_validator('fuel_surcharge_base', VALID_FUEL_SURCHARGE_BASES)
    _normalize_minimum_base = create_uppercase_validator('minimum_fare_calculated_on', VALID_MINIMUM_FARE_BASES)
    _normalize_rounding_mode = create_uppercase_validator('rounding_mode', VALID_ROUNDING_MODES)

    @classmethod
    def from_snapshot(cls, snapshot: RateCardSnapshot) -> "RateCardDraft":
        """Draft carrying the pricing fields of an existing snapshot."""
        return cls.model_validate(snapshot.model_dump(include=set(cls.model_fields)))

    @field_validator('zone_pricing', mode='before')
    @classmethod
    def normalize_zone_keys(cls, v):
        return normalize_zone_pricing_keys(v)

    @model_validator(mode='after')
    def check_all_zones(self):
        missing = [zone.value for zone in ZoneCode if zone not in self.zone_pricing]
        if missing:
            raise ValueError(f"Missing zones: {', '.join(missing)}")
        if self.effective_to is not None and self.effective_to < self.effective_from:
            raise ValueError("effective_to is before effective_from")
        return self


# ============================================
# PINCODE MASTER
# ============================================

class PincodeInfo(BaseSnapshotSchema):
    """Postal master attributes of one pincode, as seen by one company."""
    pincode: str
    state: str
    city: Optional[str] = None
    latitude: Optional[Decimal] = None
    longitude: Optional[Decimal] = None
    is_metro: bool = False
    is_remote: bool = False
    is_serviceable: bool = True
    zone_override: Optional[ZoneCode] = None
    company_id: Optional[str] = None

    @field_validator('zone_override', mode='before')
    @classmethod
    def normalize_override(cls, v):
        if v is None or v == "":
            return None
        zone = normalize_zone_code(v)
        if zone is None:
            raise ValueError(f"Unknown zone override '{v}'")
        return zone

    @field_validator('state', 'city', mode='before')
    @classmethod
    def upper_names(cls, v):
        return v.strip().upper() if isinstance(v, str) else v
